"""Service repository - listings, appointment configuration and order queries"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ...models import (
    DateOverride,
    ServiceDuration,
    ServiceOrder,
    Shop,
    ShopAvailability,
    ShopService,
    TimeSlotConfig,
)

# Orders in these states no longer hold their time slot
INACTIVE_BOOKING_STATUSES = ("cancelled", "refunded", "no_show")


class ServiceRepository:
    """Repository for service listing operations"""

    @staticmethod
    def get(db: Session, service_id: str) -> Optional[ShopService]:
        return db.query(ShopService).filter(ShopService.service_id == service_id).first()

    @staticmethod
    def search(
        db: Session,
        shop_id: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[ShopService], int]:
        """Active services of active, verified, unsuspended shops"""
        query = (
            db.query(ShopService)
            .join(Shop, Shop.shop_id == ShopService.shop_id)
            .filter(
                ShopService.active.is_(True),
                Shop.active.is_(True),
                Shop.verified.is_(True),
                Shop.suspended_at.is_(None),
            )
        )
        if shop_id:
            query = query.filter(ShopService.shop_id == shop_id)
        if category:
            query = query.filter(ShopService.category == category)
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(ShopService.name.ilike(pattern), ShopService.description.ilike(pattern))
            )
        if min_price is not None:
            query = query.filter(ShopService.price_usd >= min_price)
        if max_price is not None:
            query = query.filter(ShopService.price_usd <= max_price)

        total = query.count()
        rows = query.order_by(ShopService.created_at.desc()).offset(offset).limit(limit).all()
        return rows, total

    @staticmethod
    def list_for_shop(db: Session, shop_id: str, include_inactive: bool = False) -> list[ShopService]:
        query = db.query(ShopService).filter(ShopService.shop_id == shop_id)
        if not include_inactive:
            query = query.filter(ShopService.active.is_(True))
        return query.order_by(ShopService.created_at.desc()).all()


class AppointmentRepository:
    """Repository for availability, slot configuration and booking counts"""

    @staticmethod
    def get_availability(db: Session, shop_id: str) -> list[ShopAvailability]:
        return (
            db.query(ShopAvailability)
            .filter(ShopAvailability.shop_id == shop_id)
            .order_by(ShopAvailability.day_of_week)
            .all()
        )

    @staticmethod
    def get_day(db: Session, shop_id: str, day_of_week: int) -> Optional[ShopAvailability]:
        return (
            db.query(ShopAvailability)
            .filter(
                ShopAvailability.shop_id == shop_id,
                ShopAvailability.day_of_week == day_of_week,
            )
            .first()
        )

    @staticmethod
    def get_config(db: Session, shop_id: str) -> Optional[TimeSlotConfig]:
        return db.query(TimeSlotConfig).filter(TimeSlotConfig.shop_id == shop_id).first()

    @staticmethod
    def get_override(db: Session, shop_id: str, day: date) -> Optional[DateOverride]:
        return (
            db.query(DateOverride)
            .filter(DateOverride.shop_id == shop_id, DateOverride.override_date == day)
            .first()
        )

    @staticmethod
    def list_overrides(
        db: Session, shop_id: str, start: Optional[date] = None, end: Optional[date] = None
    ) -> list[DateOverride]:
        query = db.query(DateOverride).filter(DateOverride.shop_id == shop_id)
        if start:
            query = query.filter(DateOverride.override_date >= start)
        if end:
            query = query.filter(DateOverride.override_date <= end)
        return query.order_by(DateOverride.override_date).all()

    @staticmethod
    def get_service_duration(db: Session, service_id: str) -> Optional[ServiceDuration]:
        return db.query(ServiceDuration).filter(ServiceDuration.service_id == service_id).first()

    @staticmethod
    def booked_counts(db: Session, shop_id: str, day: date) -> dict:
        """{"HH:MM": bookings} for orders still holding a slot on that date"""
        rows = (
            db.query(ServiceOrder.booking_time, func.count(ServiceOrder.order_id))
            .filter(
                ServiceOrder.shop_id == shop_id,
                ServiceOrder.booking_date == day,
                ServiceOrder.booking_time.isnot(None),
                ServiceOrder.status.notin_(INACTIVE_BOOKING_STATUSES),
            )
            .group_by(ServiceOrder.booking_time)
            .all()
        )
        return {time: count for time, count in rows}

    @staticmethod
    def bookings_between(db: Session, shop_id: str, start: date, end: date) -> list[ServiceOrder]:
        return (
            db.query(ServiceOrder)
            .filter(
                ServiceOrder.shop_id == shop_id,
                ServiceOrder.booking_date >= start,
                ServiceOrder.booking_date <= end,
                ServiceOrder.status.notin_(INACTIVE_BOOKING_STATUSES),
            )
            .order_by(ServiceOrder.booking_date, ServiceOrder.booking_time)
            .all()
        )


class OrderRepository:
    """Repository for service orders"""

    @staticmethod
    def get(db: Session, order_id: str) -> Optional[ServiceOrder]:
        return db.query(ServiceOrder).filter(ServiceOrder.order_id == order_id).first()

    @staticmethod
    def get_by_payment_intent(db: Session, payment_intent_id: str) -> Optional[ServiceOrder]:
        return (
            db.query(ServiceOrder)
            .filter(ServiceOrder.stripe_payment_intent_id == payment_intent_id)
            .first()
        )

    @staticmethod
    def list_orders(
        db: Session,
        customer_address: Optional[str] = None,
        shop_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[ServiceOrder], int]:
        query = db.query(ServiceOrder)
        if customer_address:
            query = query.filter(ServiceOrder.customer_address == customer_address)
        if shop_id:
            query = query.filter(ServiceOrder.shop_id == shop_id)
        if status:
            query = query.filter(ServiceOrder.status == status)
        total = query.count()
        rows = query.order_by(ServiceOrder.created_at.desc()).offset(offset).limit(limit).all()
        return rows, total

    @staticmethod
    def mark_paid(db: Session, order_id: str, now: datetime) -> bool:
        """pending -> paid exactly once"""
        updated = (
            db.query(ServiceOrder)
            .filter(ServiceOrder.order_id == order_id, ServiceOrder.status == "pending")
            .update(
                {ServiceOrder.status: "paid", ServiceOrder.paid_at: now},
                synchronize_session="fetch",
            )
        )
        return updated == 1

    @staticmethod
    def stale_pending(db: Session, cutoff: datetime) -> list[ServiceOrder]:
        return (
            db.query(ServiceOrder)
            .filter(ServiceOrder.status == "pending", ServiceOrder.created_at < cutoff)
            .all()
        )

    @staticmethod
    def shop_analytics(db: Session, shop_id: str) -> dict:
        by_status = dict(
            db.query(ServiceOrder.status, func.count(ServiceOrder.order_id))
            .filter(ServiceOrder.shop_id == shop_id)
            .group_by(ServiceOrder.status)
            .all()
        )
        revenue, rcn_redeemed, rcn_earned = (
            db.query(
                func.coalesce(func.sum(ServiceOrder.final_amount), 0),
                func.coalesce(func.sum(ServiceOrder.rcn_redeemed), 0),
                func.coalesce(func.sum(ServiceOrder.rcn_earned), 0),
            )
            .filter(
                ServiceOrder.shop_id == shop_id,
                ServiceOrder.status.in_(("paid", "completed")),
            )
            .one()
        )
        top = (
            db.query(
                ShopService.service_id,
                ShopService.name,
                func.count(ServiceOrder.order_id).label("orders"),
                func.coalesce(func.sum(ServiceOrder.final_amount), 0).label("revenue"),
            )
            .join(ServiceOrder, ServiceOrder.service_id == ShopService.service_id)
            .filter(
                ServiceOrder.shop_id == shop_id,
                ServiceOrder.status.in_(("paid", "completed")),
            )
            .group_by(ShopService.service_id, ShopService.name)
            .order_by(func.count(ServiceOrder.order_id).desc())
            .limit(5)
            .all()
        )
        return {
            "ordersByStatus": by_status,
            "totalOrders": sum(by_status.values()),
            "revenueUsd": float(revenue),
            "rcnRedeemed": float(rcn_redeemed),
            "rcnEarned": float(rcn_earned),
            "topServices": [
                {
                    "serviceId": row.service_id,
                    "name": row.name,
                    "orders": row.orders,
                    "revenueUsd": float(row.revenue),
                }
                for row in top
            ],
        }
