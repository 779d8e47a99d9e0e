"""Stripe service - Integration with the Stripe API"""

import logging
from typing import Any, Optional

import stripe

from ...config import STRIPE_MONTHLY_PRICE_ID, STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET

logger = logging.getLogger(__name__)


class StripeNotConfiguredError(Exception):
    pass


def subscription_to_dict(subscription: Any) -> dict:
    """Flatten a Stripe Subscription into the shape webhooks deliver"""
    period_end = getattr(subscription, "current_period_end", None)
    if period_end is None:
        # Newer API versions report the period on the subscription items
        try:
            period_end = subscription["items"]["data"][0]["current_period_end"]
        except (KeyError, IndexError, TypeError):
            period_end = None
    metadata = getattr(subscription, "metadata", None) or {}
    return {
        "id": subscription.id,
        "status": subscription.status,
        "customer": getattr(subscription, "customer", None),
        "current_period_end": period_end,
        "cancel_at_period_end": bool(getattr(subscription, "cancel_at_period_end", False)),
        "metadata": dict(metadata),
    }


class StripeService:
    """Service for Stripe API operations"""

    def __init__(self):
        self.api_key = STRIPE_SECRET_KEY
        self.webhook_secret = STRIPE_WEBHOOK_SECRET
        self.monthly_price_id = STRIPE_MONTHLY_PRICE_ID

        if not self.api_key:
            logger.warning("STRIPE_SECRET_KEY not set; payment endpoints will fail until configured")
        else:
            stripe.api_key = self.api_key
            logger.info("Stripe client initialized")

    def is_available(self) -> bool:
        """Check if Stripe is configured"""
        return bool(self.api_key)

    def _require(self):
        if not self.is_available():
            raise StripeNotConfiguredError("Stripe is not configured")

    def construct_event(self, payload: bytes, signature: str):
        """
        Verify a webhook signature.

        Raises:
            StripeNotConfiguredError: no webhook secret
            ValueError: malformed payload
            stripe.SignatureVerificationError: bad signature
        """
        if not self.webhook_secret:
            raise StripeNotConfiguredError("Stripe webhook secret is not configured")
        return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)

    def create_customer(self, email: Optional[str], name: str, metadata: dict) -> str:
        self._require()
        customer = stripe.Customer.create(email=email, name=name, metadata=metadata)
        logger.info(f"💳 Created Stripe customer {customer.id}")
        return customer.id

    def create_subscription_checkout(
        self,
        customer_id: str,
        success_url: str,
        cancel_url: str,
        metadata: dict,
    ) -> dict:
        """Checkout session in subscription mode for the monthly shop plan"""
        self._require()
        if not self.monthly_price_id:
            raise StripeNotConfiguredError("STRIPE_MONTHLY_PRICE_ID is not configured")
        session = stripe.checkout.Session.create(
            mode="subscription",
            customer=customer_id,
            line_items=[{"price": self.monthly_price_id, "quantity": 1}],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            subscription_data={"metadata": metadata},
        )
        return {"session_id": session.id, "url": session.url}

    def create_payment_checkout(
        self,
        name: str,
        amount_usd: float,
        success_url: str,
        cancel_url: str,
        metadata: dict,
        customer_email: Optional[str] = None,
    ) -> dict:
        """One-off card payment checkout session"""
        self._require()
        params = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": "usd",
                        "product_data": {"name": name},
                        "unit_amount": int(round(amount_usd * 100)),
                    },
                    "quantity": 1,
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        }
        if customer_email:
            params["customer_email"] = customer_email
        session = stripe.checkout.Session.create(**params)
        return {"session_id": session.id, "url": session.url}

    def create_payment_intent(self, amount_cents: int, metadata: dict) -> dict:
        self._require()
        intent = stripe.PaymentIntent.create(
            amount=amount_cents,
            currency="usd",
            metadata=metadata,
            automatic_payment_methods={"enabled": True},
        )
        return {"id": intent.id, "client_secret": intent.client_secret, "status": intent.status}

    def retrieve_payment_intent(self, payment_intent_id: str) -> dict:
        self._require()
        intent = stripe.PaymentIntent.retrieve(payment_intent_id)
        return {
            "id": intent.id,
            "status": intent.status,
            "amount": intent.amount,
            "metadata": dict(getattr(intent, "metadata", None) or {}),
        }

    def cancel_payment_intent(self, payment_intent_id: str) -> dict:
        """Cancel an unpaid PaymentIntent so it can no longer be charged"""
        self._require()
        intent = stripe.PaymentIntent.cancel(payment_intent_id)
        logger.info(f"🚫 Cancelled PaymentIntent {payment_intent_id}")
        return {"id": intent.id, "status": intent.status}

    def refund_payment_intent(self, payment_intent_id: str, metadata: Optional[dict] = None) -> dict:
        """Refund the full amount captured by a PaymentIntent"""
        self._require()
        refund = stripe.Refund.create(payment_intent=payment_intent_id, metadata=metadata or {})
        logger.info(f"💸 Refund {refund.id} issued for PaymentIntent {payment_intent_id}")
        return {"id": refund.id, "status": refund.status, "amount": refund.amount}

    def get_subscription(self, subscription_id: str) -> dict:
        self._require()
        return subscription_to_dict(stripe.Subscription.retrieve(subscription_id))

    def cancel_subscription(self, subscription_id: str, immediate: bool = False) -> dict:
        """Cancel now, or flag the subscription to end with the current period"""
        self._require()
        if immediate:
            subscription = stripe.Subscription.cancel(subscription_id)
        else:
            subscription = stripe.Subscription.modify(subscription_id, cancel_at_period_end=True)
        return subscription_to_dict(subscription)

    def pause_subscription(self, subscription_id: str) -> dict:
        self._require()
        subscription = stripe.Subscription.modify(
            subscription_id, pause_collection={"behavior": "void"}
        )
        return subscription_to_dict(subscription)

    def resume_subscription(self, subscription_id: str) -> dict:
        self._require()
        subscription = stripe.Subscription.modify(subscription_id, pause_collection="")
        return subscription_to_dict(subscription)


# Global instance
stripe_service = StripeService()
