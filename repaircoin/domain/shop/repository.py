"""Shop repository - Database operations for shops, purchases and promo codes"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...config import RCG_MINIMUM_FOR_QUALIFICATION
from ...models import (
    Customer,
    PromoCode,
    PromoCodeUse,
    Shop,
    ShopPurchase,
    ShopSubscription,
    Transaction,
)


def compute_operational_status(shop: Shop, has_active_subscription: bool) -> str:
    """Paused shops stay paused; otherwise subscription beats RCG holdings"""
    if shop.operational_status == "paused":
        return "paused"
    if has_active_subscription:
        return "subscription_qualified"
    if (shop.rcg_balance or 0) >= RCG_MINIMUM_FOR_QUALIFICATION:
        return "rcg_qualified"
    return "not_qualified"


def is_operational(shop: Shop) -> bool:
    return bool(
        shop.active
        and shop.verified
        and shop.suspended_at is None
        and shop.operational_status in ("subscription_qualified", "rcg_qualified")
    )


class ShopRepository:
    """Repository for shop database operations"""

    @staticmethod
    def get(db: Session, shop_id: str) -> Optional[Shop]:
        """Get shop by ID"""
        return db.query(Shop).filter(Shop.shop_id == shop_id).first()

    @staticmethod
    def get_by_wallet(db: Session, wallet_address: str) -> Optional[Shop]:
        return db.query(Shop).filter(Shop.wallet_address == wallet_address.lower()).first()

    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[Shop]:
        return db.query(Shop).filter(Shop.email == email.lower()).first()

    @staticmethod
    def list_shops(
        db: Session,
        verified: Optional[bool] = None,
        active: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Shop], int]:
        query = db.query(Shop)
        if verified is not None:
            query = query.filter(Shop.verified.is_(verified))
        if active is not None:
            query = query.filter(Shop.active.is_(active))
        total = query.count()
        return query.order_by(Shop.created_at.desc()).offset(offset).limit(limit).all(), total

    @staticmethod
    def has_active_subscription(db: Session, shop_id: str) -> bool:
        return (
            db.query(ShopSubscription)
            .filter(ShopSubscription.shop_id == shop_id, ShopSubscription.status == "active")
            .first()
            is not None
        )

    @staticmethod
    def refresh_operational_status(db: Session, shop: Shop) -> str:
        """Recompute operational_status from subscription and RCG holdings (caller commits)"""
        shop.operational_status = compute_operational_status(
            shop, ShopRepository.has_active_subscription(db, shop.shop_id)
        )
        return shop.operational_status

    @staticmethod
    def get_shop_customers(db: Session, shop_id: str, limit: int = 50, offset: int = 0) -> list[dict]:
        """Customers who earned at the shop with their totals"""
        rows = (
            db.query(
                Transaction.customer_address,
                func.sum(Transaction.amount).label("total"),
                func.count(Transaction.id).label("count"),
                func.max(Transaction.created_at).label("last_visit"),
            )
            .filter(
                Transaction.shop_id == shop_id,
                Transaction.type.in_(("mint", "tier_bonus", "promo_bonus")),
                Transaction.customer_address.isnot(None),
            )
            .group_by(Transaction.customer_address)
            .order_by(func.sum(Transaction.amount).desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        customers = {
            c.address: c
            for c in db.query(Customer).filter(
                Customer.address.in_([r.customer_address for r in rows])
            )
        }
        result = []
        for r in rows:
            customer = customers.get(r.customer_address)
            result.append(
                {
                    "address": r.customer_address,
                    "name": customer.name if customer else None,
                    "tier": customer.tier if customer else None,
                    "currentBalance": customer.current_balance if customer else 0,
                    "totalEarnedAtShop": float(r.total or 0),
                    "transactionCount": r.count,
                    "lastVisit": r.last_visit.isoformat() if r.last_visit else None,
                }
            )
        return result

    @staticmethod
    def count_customers_served(db: Session, shop_id: str) -> int:
        return (
            db.query(func.count(func.distinct(Transaction.customer_address)))
            .filter(Transaction.shop_id == shop_id, Transaction.type == "mint")
            .scalar()
            or 0
        )

    @staticmethod
    def tier_bonus_stats(db: Session, shop_id: str) -> list[dict]:
        rows = (
            db.query(
                Customer.tier,
                func.count(Transaction.id).label("count"),
                func.sum(Transaction.amount).label("total"),
            )
            .join(Customer, Customer.address == Transaction.customer_address)
            .filter(Transaction.shop_id == shop_id, Transaction.type == "tier_bonus")
            .group_by(Customer.tier)
            .all()
        )
        return [
            {"tier": r.tier, "bonusesIssued": r.count, "totalBonusAmount": float(r.total or 0)}
            for r in rows
        ]


class PurchaseRepository:
    """Repository for shop RCN purchases"""

    @staticmethod
    def get(db: Session, purchase_id: int) -> Optional[ShopPurchase]:
        return db.query(ShopPurchase).filter(ShopPurchase.id == purchase_id).first()

    @staticmethod
    def get_by_checkout_session(db: Session, session_id: str) -> Optional[ShopPurchase]:
        return (
            db.query(ShopPurchase)
            .filter(ShopPurchase.stripe_checkout_session_id == session_id)
            .first()
        )

    @staticmethod
    def history(db: Session, shop_id: str, limit: int = 50, offset: int = 0) -> tuple[list[ShopPurchase], int]:
        query = db.query(ShopPurchase).filter(ShopPurchase.shop_id == shop_id)
        total = query.count()
        rows = (
            query.order_by(ShopPurchase.created_at.desc(), ShopPurchase.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return rows, total

    @staticmethod
    def totals(db: Session, shop_id: Optional[str] = None) -> dict:
        query = db.query(
            func.coalesce(func.sum(ShopPurchase.amount), 0),
            func.coalesce(func.sum(ShopPurchase.total_cost), 0),
            func.count(ShopPurchase.id),
        ).filter(ShopPurchase.status == "completed")
        if shop_id:
            query = query.filter(ShopPurchase.shop_id == shop_id)
        amount, revenue, count = query.one()
        return {"rcnSold": float(amount), "revenueUsd": float(revenue), "purchaseCount": count}


class PromoCodeRepository:
    """Repository for promo codes and their redemptions"""

    @staticmethod
    def get(db: Session, promo_id: int) -> Optional[PromoCode]:
        return db.query(PromoCode).filter(PromoCode.id == promo_id).first()

    @staticmethod
    def get_by_code(db: Session, code: str) -> Optional[PromoCode]:
        return db.query(PromoCode).filter(PromoCode.code == code.strip().upper()).first()

    @staticmethod
    def list_for_shop(db: Session, shop_id: str, include_inactive: bool = True) -> list[PromoCode]:
        query = db.query(PromoCode).filter(PromoCode.shop_id == shop_id)
        if not include_inactive:
            query = query.filter(PromoCode.is_active.is_(True))
        return query.order_by(PromoCode.created_at.desc(), PromoCode.id.desc()).all()

    @staticmethod
    def count_customer_uses(db: Session, promo_id: int, customer_address: str) -> int:
        return (
            db.query(PromoCodeUse)
            .filter(
                PromoCodeUse.promo_code_id == promo_id,
                PromoCodeUse.customer_address == customer_address,
            )
            .count()
        )

    @staticmethod
    def record_use(
        db: Session,
        promo: PromoCode,
        customer_address: str,
        shop_id: str,
        base_reward: float,
        bonus_amount: float,
    ) -> PromoCodeUse:
        use = PromoCodeUse(
            promo_code_id=promo.id,
            customer_address=customer_address,
            shop_id=shop_id,
            base_reward=base_reward,
            bonus_amount=bonus_amount,
            created_at=datetime.utcnow(),
        )
        db.add(use)
        promo.times_used = (promo.times_used or 0) + 1
        promo.total_bonus_issued = (promo.total_bonus_issued or 0) + bonus_amount
        return use
