"""Admin repository - alerts, admins and platform-wide aggregates"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Admin, Alert, Customer, Shop, ShopSubscription, Transaction


class AdminRepository:
    """Repository for admin database operations"""

    @staticmethod
    def create_alert(
        db: Session,
        alert_type: str,
        title: str,
        message: str,
        severity: str = "medium",
        shop_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> Alert:
        """Add an alert to the session (caller commits)"""
        alert = Alert(
            alert_type=alert_type,
            title=title,
            message=message,
            severity=severity,
            shop_id=shop_id,
            details=details,
            created_at=datetime.utcnow(),
        )
        db.add(alert)
        return alert

    @staticmethod
    def list_alerts(db: Session, resolved: Optional[bool] = None, limit: int = 50, offset: int = 0) -> tuple[list[Alert], int]:
        query = db.query(Alert)
        if resolved is not None:
            query = query.filter(Alert.resolved.is_(resolved))
        total = query.count()
        rows = query.order_by(Alert.created_at.desc(), Alert.id.desc()).offset(offset).limit(limit).all()
        return rows, total

    @staticmethod
    def get_alert(db: Session, alert_id: int) -> Optional[Alert]:
        return db.query(Alert).filter(Alert.id == alert_id).first()

    @staticmethod
    def get_admin(db: Session, address: str) -> Optional[Admin]:
        return db.query(Admin).filter(Admin.wallet_address == address.lower()).first()

    @staticmethod
    def list_admins(db: Session) -> list[Admin]:
        return db.query(Admin).filter(Admin.is_active.is_(True)).order_by(Admin.created_at).all()

    @staticmethod
    def list_customers(
        db: Session,
        tier: Optional[str] = None,
        active: Optional[bool] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Customer], int]:
        query = db.query(Customer)
        if tier:
            query = query.filter(Customer.tier == tier.upper())
        if active is True:
            query = query.filter(Customer.suspended_at.is_(None))
        elif active is False:
            query = query.filter(Customer.suspended_at.isnot(None))
        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(
                func.lower(Customer.name).like(pattern)
                | Customer.address.like(pattern)
                | func.lower(Customer.email).like(pattern)
            )
        total = query.count()
        rows = query.order_by(Customer.created_at.desc()).offset(offset).limit(limit).all()
        return rows, total

    @staticmethod
    def count_shops(db: Session) -> dict:
        total = db.query(Shop).count()
        verified = db.query(Shop).filter(Shop.verified.is_(True)).count()
        return {
            "total": total,
            "verified": verified,
            "pending": db.query(Shop).filter(Shop.verified.is_(False), Shop.active.is_(True)).count(),
            "suspended": db.query(Shop).filter(Shop.suspended_at.isnot(None)).count(),
        }

    @staticmethod
    def shop_balances_total(db: Session) -> float:
        return float(db.query(func.coalesce(func.sum(Shop.purchased_rcn_balance), 0)).scalar() or 0)

    @staticmethod
    def customer_balances_total(db: Session) -> float:
        return float(db.query(func.coalesce(func.sum(Customer.current_balance), 0)).scalar() or 0)

    @staticmethod
    def count_active_subscriptions(db: Session) -> int:
        return db.query(ShopSubscription).filter(ShopSubscription.status == "active").count()

    @staticmethod
    def daily_activity(db: Session, days: int) -> list[dict]:
        """Per-day minted, redeemed and new customers for the last N days"""
        since = datetime.utcnow().date() - timedelta(days=days - 1)
        since_dt = datetime.combine(since, datetime.min.time())

        def per_day(column, query):
            return {str(r.day): r for r in query.group_by(func.date(column)).all()}

        minted = per_day(
            Transaction.created_at,
            db.query(
                func.date(Transaction.created_at).label("day"),
                func.sum(Transaction.amount).label("total"),
            ).filter(
                Transaction.created_at >= since_dt,
                Transaction.type.in_(("mint", "tier_bonus", "promo_bonus", "referral", "admin_mint")),
            ),
        )
        redeemed = per_day(
            Transaction.created_at,
            db.query(
                func.date(Transaction.created_at).label("day"),
                func.sum(Transaction.amount).label("total"),
            ).filter(
                Transaction.created_at >= since_dt,
                Transaction.type.in_(("redeem", "service_redemption")),
            ),
        )
        new_customers = per_day(
            Customer.created_at,
            db.query(
                func.date(Customer.created_at).label("day"),
                func.count(Customer.address).label("total"),
            ).filter(Customer.created_at >= since_dt),
        )

        result = []
        for offset in range(days):
            day = str(since + timedelta(days=offset))
            result.append(
                {
                    "date": day,
                    "tokensMinted": float(minted[day].total) if day in minted else 0,
                    "tokensRedeemed": float(redeemed[day].total) if day in redeemed else 0,
                    "newCustomers": int(new_customers[day].total) if day in new_customers else 0,
                }
            )
        return result
