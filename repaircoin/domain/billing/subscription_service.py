"""
Subscription service - monthly shop plan backed by Stripe Billing

Local state follows Stripe: checkout creates a pending row, webhooks
activate it and record payments, and the worker defaults shops that stop
paying.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import stripe
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import (
    FRONTEND_URL,
    SUBSCRIPTION_GRACE_PERIOD_DAYS,
    SUBSCRIPTION_MONTHLY_AMOUNT,
)
from ...models import ShopSubscription
from ..admin.repository import AdminRepository
from ..notification.repository import notify
from ..shop.repository import ShopRepository, is_operational
from .repository import SubscriptionRepository
from .schemas import serialize_subscription
from .stripe_service import StripeNotConfiguredError, stripe_service

logger = logging.getLogger(__name__)

# Stripe status -> local status; None keeps the current local status
STRIPE_STATUS_MAP = {
    "active": "active",
    "trialing": "active",
    "past_due": "active",
    "unpaid": "active",
    "canceled": "cancelled",
    "paused": "paused",
    "incomplete": None,
    "incomplete_expired": "cancelled",
}


def from_unix(ts) -> Optional[datetime]:
    if not ts:
        return None
    return datetime.fromtimestamp(int(ts), tz=timezone.utc).replace(tzinfo=None)


def invoice_subscription_id(invoice: dict) -> Optional[str]:
    """Subscription id of an invoice across Stripe API versions"""
    if invoice.get("subscription"):
        return invoice["subscription"]
    parent = invoice.get("parent") or {}
    details = parent.get("subscription_details") or {}
    return details.get("subscription")


def invoice_period_end(invoice: dict) -> Optional[datetime]:
    lines = (invoice.get("lines") or {}).get("data") or []
    for line in lines:
        period = line.get("period") or {}
        if period.get("end"):
            return from_unix(period["end"])
    return None


class SubscriptionService:
    """Service layer for shop subscriptions"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SubscriptionRepository()

    def _get_shop(self, shop_id: str):
        shop = ShopRepository.get(self.db, shop_id)
        if not shop:
            raise HTTPException(status_code=404, detail="Shop not found")
        return shop

    def _refresh_shop(self, shop_id: str) -> None:
        shop = ShopRepository.get(self.db, shop_id)
        if shop:
            self.db.flush()
            previous = shop.operational_status
            status = ShopRepository.refresh_operational_status(self.db, shop)
            if status != previous:
                logger.info(f"🏪 Shop {shop_id} operational status {previous} -> {status}")

    # ============================================================================
    # SHOP ENDPOINTS
    # ============================================================================

    def subscribe(self, shop_id: str) -> dict:
        """Start a Stripe Checkout session for the monthly plan"""
        shop = self._get_shop(shop_id)
        existing = self.repo.get_open(self.db, shop_id)
        if existing:
            raise HTTPException(
                status_code=400,
                detail=f"Shop already has a {existing.status} subscription",
            )
        if not stripe_service.is_available():
            raise HTTPException(status_code=503, detail="Subscriptions are not available")

        subscription = ShopSubscription(
            shop_id=shop_id,
            status="pending",
            monthly_amount=SUBSCRIPTION_MONTHLY_AMOUNT,
            enrolled_at=datetime.utcnow(),
        )
        self.db.add(subscription)
        self.db.flush()

        try:
            if not shop.stripe_customer_id:
                shop.stripe_customer_id = stripe_service.create_customer(
                    shop.email, shop.name, metadata={"shopId": shop_id}
                )
            checkout = stripe_service.create_subscription_checkout(
                customer_id=shop.stripe_customer_id,
                success_url=f"{FRONTEND_URL}/shop/subscription?status=success",
                cancel_url=f"{FRONTEND_URL}/shop/subscription?status=cancelled",
                metadata={
                    "type": "shop_subscription",
                    "shopId": shop_id,
                    "subscriptionId": str(subscription.id),
                },
            )
        except StripeNotConfiguredError as e:
            self.db.rollback()
            raise HTTPException(status_code=503, detail="Subscriptions are not available") from e
        except stripe.StripeError as e:
            self.db.rollback()
            logger.error(f"❌ Stripe subscription checkout failed for {shop_id}: {e}")
            raise HTTPException(status_code=503, detail="Payment provider error") from e

        subscription.stripe_customer_id = shop.stripe_customer_id
        subscription.stripe_checkout_session_id = checkout["session_id"]
        self.db.commit()
        self.db.refresh(subscription)

        logger.info(f"📝 Subscription checkout started for {shop_id} (sub {subscription.id})")
        return {
            "subscription": serialize_subscription(subscription),
            "checkoutUrl": checkout["url"],
            "sessionId": checkout["session_id"],
        }

    def status(self, shop_id: str) -> dict:
        shop = self._get_shop(shop_id)
        subscription = self.repo.get_current(self.db, shop_id)
        return {
            "subscription": serialize_subscription(subscription) if subscription else None,
            "hasActiveSubscription": bool(subscription and subscription.status == "active"),
            "operationalStatus": shop.operational_status,
            "isOperational": is_operational(shop),
            "nextPaymentDate": (
                subscription.next_payment_date.isoformat()
                if subscription and subscription.next_payment_date
                else None
            ),
        }

    def cancel(self, shop_id: str, reason: Optional[str] = None, immediate: bool = False) -> dict:
        subscription = self.repo.get_current(self.db, shop_id)
        if not subscription or subscription.status not in ("pending", "active", "paused"):
            raise HTTPException(status_code=404, detail="No subscription to cancel")
        return self._cancel(subscription, reason, immediate)

    def _cancel(self, subscription: ShopSubscription, reason: Optional[str], immediate: bool) -> dict:
        if subscription.stripe_subscription_id:
            try:
                stripe_data = stripe_service.cancel_subscription(
                    subscription.stripe_subscription_id, immediate=immediate
                )
            except StripeNotConfiguredError as e:
                raise HTTPException(status_code=503, detail="Subscriptions are not available") from e
            except stripe.StripeError as e:
                logger.error(f"❌ Stripe cancel failed for sub {subscription.id}: {e}")
                raise HTTPException(status_code=503, detail="Payment provider error") from e
            subscription.stripe_status = stripe_data.get("status")

        subscription.cancellation_reason = reason
        if immediate or not subscription.stripe_subscription_id:
            subscription.status = "cancelled"
            subscription.cancelled_at = datetime.utcnow()
            subscription.cancel_at_period_end = False
        else:
            subscription.cancel_at_period_end = True

        self._refresh_shop(subscription.shop_id)
        self.db.commit()
        self.db.refresh(subscription)
        logger.info(
            f"🛑 Subscription {subscription.id} for {subscription.shop_id} cancelled "
            f"({'immediately' if immediate else 'at period end'})"
        )
        return serialize_subscription(subscription)

    def sync(self, shop_id: str) -> dict:
        """Pull the subscription from Stripe and apply it locally"""
        subscription = self.repo.get_current(self.db, shop_id)
        if not subscription or not subscription.stripe_subscription_id:
            raise HTTPException(status_code=400, detail="No Stripe subscription to sync")
        try:
            stripe_data = stripe_service.get_subscription(subscription.stripe_subscription_id)
        except StripeNotConfiguredError as e:
            raise HTTPException(status_code=503, detail="Subscriptions are not available") from e
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe sync failed for sub {subscription.id}: {e}")
            raise HTTPException(status_code=503, detail="Payment provider error") from e

        self.apply_stripe_subscription(stripe_data)
        self.db.refresh(subscription)
        return serialize_subscription(subscription)

    # ============================================================================
    # WEBHOOK HANDLERS
    # ============================================================================

    def _find_for_stripe(self, stripe_subscription_id: Optional[str], metadata: dict) -> Optional[ShopSubscription]:
        if stripe_subscription_id:
            subscription = self.repo.get_by_stripe_id(self.db, stripe_subscription_id)
            if subscription:
                return subscription
        local_id = (metadata or {}).get("subscriptionId")
        if local_id and str(local_id).isdigit():
            subscription = self.repo.get(self.db, int(local_id))
            if subscription:
                return subscription
        shop_id = (metadata or {}).get("shopId")
        if shop_id:
            return self.repo.get_open(self.db, shop_id)
        return None

    def apply_stripe_subscription(self, data: dict) -> dict:
        """customer.subscription.created/updated and manual sync"""
        subscription = self._find_for_stripe(data.get("id"), data.get("metadata") or {})
        if not subscription:
            logger.warning(f"⚠️ No local subscription for Stripe subscription {data.get('id')}")
            return {"handled": False, "reason": "subscription not found"}

        stripe_status = data.get("status")
        subscription.stripe_subscription_id = data.get("id") or subscription.stripe_subscription_id
        if data.get("customer"):
            subscription.stripe_customer_id = data["customer"]
        subscription.stripe_status = stripe_status
        subscription.cancel_at_period_end = bool(data.get("cancel_at_period_end"))

        period_end = from_unix(data.get("current_period_end"))
        if period_end:
            subscription.current_period_end = period_end
            subscription.next_payment_date = period_end

        local_status = STRIPE_STATUS_MAP.get(stripe_status)
        now = datetime.utcnow()
        if local_status == "active":
            subscription.status = "active"
            if not subscription.activated_at:
                subscription.activated_at = now
        elif local_status == "cancelled":
            subscription.status = "cancelled"
            subscription.cancelled_at = subscription.cancelled_at or now
        elif local_status == "paused":
            subscription.status = "paused"
            subscription.paused_at = subscription.paused_at or now

        self._refresh_shop(subscription.shop_id)
        self.db.commit()
        logger.info(
            f"🔄 Subscription {subscription.id} synced from Stripe: "
            f"{stripe_status} -> {subscription.status}"
        )
        return {"handled": True, "subscriptionId": subscription.id, "status": subscription.status}

    def handle_subscription_deleted(self, data: dict) -> dict:
        subscription = self._find_for_stripe(data.get("id"), data.get("metadata") or {})
        if not subscription:
            return {"handled": False, "reason": "subscription not found"}

        subscription.status = "cancelled"
        subscription.stripe_status = data.get("status") or "canceled"
        subscription.cancelled_at = subscription.cancelled_at or datetime.utcnow()
        subscription.cancel_at_period_end = False
        self._refresh_shop(subscription.shop_id)
        self.db.commit()
        logger.info(f"🛑 Subscription {subscription.id} ended by Stripe")
        return {"handled": True, "subscriptionId": subscription.id, "status": "cancelled"}

    def handle_checkout_completed(self, session: dict) -> dict:
        """Link a finished subscription checkout to its Stripe subscription"""
        subscription = self.repo.get_by_checkout_session(self.db, session.get("id"))
        if not subscription:
            subscription = self._find_for_stripe(None, session.get("metadata") or {})
        if not subscription:
            logger.warning(f"⚠️ No subscription for checkout session {session.get('id')}")
            return {"handled": False, "reason": "subscription not found"}

        if session.get("subscription"):
            subscription.stripe_subscription_id = session["subscription"]
        if session.get("customer"):
            subscription.stripe_customer_id = session["customer"]
        self.db.commit()
        logger.info(
            f"🔗 Subscription {subscription.id} linked to {subscription.stripe_subscription_id}"
        )
        return {"handled": True, "subscriptionId": subscription.id}

    def handle_invoice_paid(self, invoice: dict) -> dict:
        subscription = self._find_for_stripe(
            invoice_subscription_id(invoice), invoice.get("metadata") or {}
        )
        if not subscription:
            return {"handled": False, "reason": "subscription not found"}

        now = datetime.utcnow()
        amount = (invoice.get("amount_paid") or 0) / 100
        subscription.payments_made = (subscription.payments_made or 0) + 1
        subscription.total_paid = (subscription.total_paid or 0) + amount
        subscription.last_payment_date = now
        subscription.next_payment_date = (
            invoice_period_end(invoice)
            or subscription.current_period_end
            or now + timedelta(days=30)
        )
        subscription.missed_payments = 0
        subscription.status = "active"
        if not subscription.activated_at:
            subscription.activated_at = now

        self._refresh_shop(subscription.shop_id)
        self.db.commit()
        logger.info(f"💰 Subscription payment of ${amount} recorded for {subscription.shop_id}")
        return {"handled": True, "subscriptionId": subscription.id, "amount": amount}

    def handle_invoice_failed(self, invoice: dict) -> dict:
        subscription = self._find_for_stripe(
            invoice_subscription_id(invoice), invoice.get("metadata") or {}
        )
        if not subscription:
            return {"handled": False, "reason": "subscription not found"}

        subscription.missed_payments = (subscription.missed_payments or 0) + 1
        AdminRepository.create_alert(
            self.db,
            "subscription_payment_failed",
            "Subscription payment failed",
            f"Monthly payment for shop {subscription.shop_id} failed "
            f"({subscription.missed_payments} missed)",
            severity="high",
            shop_id=subscription.shop_id,
            details={"invoiceId": invoice.get("id"), "subscriptionId": subscription.id},
        )
        shop = ShopRepository.get(self.db, subscription.shop_id)
        if shop:
            notify(
                self.db,
                shop.wallet_address,
                "subscription_payment_failed",
                "Your monthly subscription payment failed. Please update your payment method.",
                details={"subscriptionId": subscription.id},
            )
        self.db.commit()
        logger.warning(f"⚠️ Subscription payment failed for {subscription.shop_id}")
        return {"handled": True, "subscriptionId": subscription.id}

    # ============================================================================
    # SWEEP
    # ============================================================================

    def mark_overdue_defaulted(self) -> int:
        """Default active subscriptions past the grace period"""
        cutoff = datetime.utcnow() - timedelta(days=SUBSCRIPTION_GRACE_PERIOD_DAYS)
        overdue = self.repo.overdue(self.db, cutoff)
        for subscription in overdue:
            subscription.status = "defaulted"
            self._refresh_shop(subscription.shop_id)
            logger.warning(f"⚠️ Subscription {subscription.id} for {subscription.shop_id} defaulted")
        if overdue:
            self.db.commit()
        return len(overdue)

    # ============================================================================
    # ADMIN
    # ============================================================================

    def _get_or_404(self, subscription_id: int) -> ShopSubscription:
        subscription = self.repo.get(self.db, subscription_id)
        if not subscription:
            raise HTTPException(status_code=404, detail="Subscription not found")
        return subscription

    def list_all(self, status: Optional[str], limit: int, offset: int) -> dict:
        rows, total = self.repo.list_subscriptions(self.db, status, limit, offset)
        return {"subscriptions": [serialize_subscription(s) for s in rows], "total": total}

    def admin_pause(self, subscription_id: int) -> dict:
        subscription = self._get_or_404(subscription_id)
        if subscription.status != "active":
            raise HTTPException(status_code=400, detail="Only active subscriptions can be paused")
        if subscription.stripe_subscription_id:
            try:
                stripe_service.pause_subscription(subscription.stripe_subscription_id)
            except (StripeNotConfiguredError, stripe.StripeError) as e:
                logger.error(f"❌ Stripe pause failed for sub {subscription.id}: {e}")
                raise HTTPException(status_code=503, detail="Payment provider error") from e

        subscription.status = "paused"
        subscription.paused_at = datetime.utcnow()
        self._refresh_shop(subscription.shop_id)
        self.db.commit()
        self.db.refresh(subscription)
        return serialize_subscription(subscription)

    def admin_resume(self, subscription_id: int) -> dict:
        subscription = self._get_or_404(subscription_id)
        if subscription.status != "paused":
            raise HTTPException(status_code=400, detail="Only paused subscriptions can be resumed")
        if subscription.stripe_subscription_id:
            try:
                stripe_service.resume_subscription(subscription.stripe_subscription_id)
            except (StripeNotConfiguredError, stripe.StripeError) as e:
                logger.error(f"❌ Stripe resume failed for sub {subscription.id}: {e}")
                raise HTTPException(status_code=503, detail="Payment provider error") from e

        subscription.status = "active"
        subscription.paused_at = None
        self._refresh_shop(subscription.shop_id)
        self.db.commit()
        self.db.refresh(subscription)
        return serialize_subscription(subscription)

    def admin_cancel(self, subscription_id: int, reason: Optional[str]) -> dict:
        subscription = self._get_or_404(subscription_id)
        if subscription.status in ("cancelled", "defaulted"):
            raise HTTPException(status_code=400, detail=f"Subscription is already {subscription.status}")
        return self._cancel(subscription, reason or "Cancelled by admin", immediate=True)
