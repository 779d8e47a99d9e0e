"""Billing schemas"""

from typing import Optional

from pydantic import BaseModel

from ...models import ShopSubscription


class SubscriptionCancelRequest(BaseModel):
    reason: Optional[str] = None
    immediate: bool = False


class AdminSubscriptionAction(BaseModel):
    reason: Optional[str] = None


def _iso(value):
    return value.isoformat() if value else None


def serialize_subscription(s: ShopSubscription) -> dict:
    return {
        "id": s.id,
        "shopId": s.shop_id,
        "status": s.status,
        "stripeStatus": s.stripe_status,
        "monthlyAmount": s.monthly_amount,
        "subscriptionType": s.subscription_type,
        "stripeSubscriptionId": s.stripe_subscription_id,
        "currentPeriodEnd": _iso(s.current_period_end),
        "cancelAtPeriodEnd": s.cancel_at_period_end,
        "paymentsMade": s.payments_made,
        "totalPaid": s.total_paid,
        "lastPaymentDate": _iso(s.last_payment_date),
        "nextPaymentDate": _iso(s.next_payment_date),
        "missedPayments": s.missed_payments,
        "enrolledAt": _iso(s.enrolled_at),
        "activatedAt": _iso(s.activated_at),
        "cancelledAt": _iso(s.cancelled_at),
        "cancellationReason": s.cancellation_reason,
        "pausedAt": _iso(s.paused_at),
    }
