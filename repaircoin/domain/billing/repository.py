"""Billing repository - shop subscription queries"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import ShopSubscription

OPEN_STATUSES = ("pending", "active")


class SubscriptionRepository:
    """Repository for shop subscriptions"""

    @staticmethod
    def get(db: Session, subscription_id: int) -> Optional[ShopSubscription]:
        return db.query(ShopSubscription).filter(ShopSubscription.id == subscription_id).first()

    @staticmethod
    def get_current(db: Session, shop_id: str) -> Optional[ShopSubscription]:
        """Most recent subscription of the shop, whatever its state"""
        return (
            db.query(ShopSubscription)
            .filter(ShopSubscription.shop_id == shop_id)
            .order_by(ShopSubscription.id.desc())
            .first()
        )

    @staticmethod
    def get_open(db: Session, shop_id: str) -> Optional[ShopSubscription]:
        return (
            db.query(ShopSubscription)
            .filter(
                ShopSubscription.shop_id == shop_id,
                ShopSubscription.status.in_(OPEN_STATUSES),
            )
            .order_by(ShopSubscription.id.desc())
            .first()
        )

    @staticmethod
    def get_by_stripe_id(db: Session, stripe_subscription_id: str) -> Optional[ShopSubscription]:
        return (
            db.query(ShopSubscription)
            .filter(ShopSubscription.stripe_subscription_id == stripe_subscription_id)
            .first()
        )

    @staticmethod
    def get_by_checkout_session(db: Session, session_id: str) -> Optional[ShopSubscription]:
        return (
            db.query(ShopSubscription)
            .filter(ShopSubscription.stripe_checkout_session_id == session_id)
            .first()
        )

    @staticmethod
    def list_subscriptions(
        db: Session, status: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> tuple[list[ShopSubscription], int]:
        query = db.query(ShopSubscription)
        if status:
            query = query.filter(ShopSubscription.status == status)
        total = query.count()
        rows = query.order_by(ShopSubscription.id.desc()).offset(offset).limit(limit).all()
        return rows, total

    @staticmethod
    def overdue(db: Session, cutoff: datetime) -> list[ShopSubscription]:
        """Active subscriptions whose next payment date is before cutoff"""
        return (
            db.query(ShopSubscription)
            .filter(
                ShopSubscription.status == "active",
                ShopSubscription.next_payment_date.isnot(None),
                ShopSubscription.next_payment_date < cutoff,
            )
            .all()
        )
