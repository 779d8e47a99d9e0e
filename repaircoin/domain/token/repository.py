"""Token repository - ledger, balance and redemption session queries"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Customer, RedemptionSession, Shop, Transaction

EARNING_TYPES = ("mint", "tier_bonus", "promo_bonus")
REDEMPTION_TYPES = ("redeem", "service_redemption")
MINTED_TYPES = ("mint", "tier_bonus", "promo_bonus", "referral", "admin_mint")


class TokenRepository:
    """Repository for RCN ledger operations"""

    @staticmethod
    def get_customer(db: Session, address: str) -> Optional[Customer]:
        """Get customer by wallet address"""
        return db.query(Customer).filter(Customer.address == address.lower()).first()

    @staticmethod
    def get_shop(db: Session, shop_id: str) -> Optional[Shop]:
        """Get shop by ID"""
        return db.query(Shop).filter(Shop.shop_id == shop_id).first()

    @staticmethod
    def record_transaction(
        db: Session,
        type: str,
        amount: float,
        customer_address: Optional[str] = None,
        shop_id: Optional[str] = None,
        reason: Optional[str] = None,
        tx_hash: Optional[str] = None,
        counterparty_address: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> Transaction:
        """Add a ledger row to the session (caller commits)"""
        transaction = Transaction(
            type=type,
            amount=amount,
            customer_address=customer_address,
            shop_id=shop_id,
            reason=reason,
            tx_hash=tx_hash,
            counterparty_address=counterparty_address,
            details=details,
            created_at=datetime.utcnow(),
        )
        db.add(transaction)
        return transaction

    @staticmethod
    def debit_customer(db: Session, address: str, amount: float) -> bool:
        """Atomically debit a balance; False when the balance is insufficient"""
        updated = (
            db.query(Customer)
            .filter(Customer.address == address, Customer.current_balance >= amount)
            .update(
                {
                    Customer.current_balance: Customer.current_balance - amount,
                    Customer.total_redemptions: Customer.total_redemptions + amount,
                },
                synchronize_session="fetch",
            )
        )
        return updated == 1

    @staticmethod
    def debit_for_transfer(db: Session, address: str, amount: float) -> bool:
        updated = (
            db.query(Customer)
            .filter(Customer.address == address, Customer.current_balance >= amount)
            .update(
                {Customer.current_balance: Customer.current_balance - amount},
                synchronize_session="fetch",
            )
        )
        return updated == 1

    @staticmethod
    def get_transactions(
        db: Session,
        customer_address: Optional[str] = None,
        shop_id: Optional[str] = None,
        types: Optional[list[str]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Transaction], int]:
        """Paginated ledger rows, newest first"""
        query = db.query(Transaction)
        if customer_address:
            query = query.filter(Transaction.customer_address == customer_address)
        if shop_id:
            query = query.filter(Transaction.shop_id == shop_id)
        if types:
            query = query.filter(Transaction.type.in_(types))
        total = query.count()
        rows = (
            query.order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return rows, total

    @staticmethod
    def get_earning_sources(db: Session, address: str) -> list[dict]:
        """Earnings per shop, largest first"""
        rows = (
            db.query(
                Transaction.shop_id,
                func.sum(Transaction.amount).label("total"),
                func.count(Transaction.id).label("count"),
                func.max(Transaction.created_at).label("last_earned"),
            )
            .filter(
                Transaction.customer_address == address,
                Transaction.type.in_(EARNING_TYPES),
                Transaction.shop_id.isnot(None),
            )
            .group_by(Transaction.shop_id)
            .order_by(func.sum(Transaction.amount).desc())
            .all()
        )
        return [
            {
                "shopId": r.shop_id,
                "totalEarned": float(r.total or 0),
                "transactionCount": r.count,
                "lastEarnedAt": r.last_earned.isoformat() if r.last_earned else None,
            }
            for r in rows
        ]

    @staticmethod
    def sum_by_types(db: Session, types: tuple, **filters) -> float:
        query = db.query(func.coalesce(func.sum(Transaction.amount), 0)).filter(
            Transaction.type.in_(types)
        )
        if filters.get("customer_address"):
            query = query.filter(Transaction.customer_address == filters["customer_address"])
        if filters.get("shop_id"):
            query = query.filter(Transaction.shop_id == filters["shop_id"])
        if filters.get("since"):
            query = query.filter(Transaction.created_at >= filters["since"])
        return float(query.scalar() or 0)


class RedemptionSessionRepository:
    """Repository for redemption session persistence"""

    @staticmethod
    def get(db: Session, session_id: str) -> Optional[RedemptionSession]:
        return db.query(RedemptionSession).filter(RedemptionSession.session_id == session_id).first()

    @staticmethod
    def get_pending_for_pair(
        db: Session, customer_address: str, shop_id: str, now: datetime
    ) -> Optional[RedemptionSession]:
        return (
            db.query(RedemptionSession)
            .filter(
                RedemptionSession.customer_address == customer_address,
                RedemptionSession.shop_id == shop_id,
                RedemptionSession.status == "pending",
                RedemptionSession.expires_at > now,
            )
            .first()
        )

    @staticmethod
    def list_for_customer(db: Session, customer_address: str, limit: int = 20) -> list[RedemptionSession]:
        return (
            db.query(RedemptionSession)
            .filter(RedemptionSession.customer_address == customer_address)
            .order_by(RedemptionSession.created_at.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def mark_used(db: Session, session_id: str, shop_id: str, amount: float, now: datetime) -> bool:
        """Consume an approved session; only one caller can succeed"""
        updated = (
            db.query(RedemptionSession)
            .filter(
                RedemptionSession.session_id == session_id,
                RedemptionSession.shop_id == shop_id,
                RedemptionSession.status == "approved",
                RedemptionSession.expires_at > now,
                RedemptionSession.max_amount >= amount,
            )
            .update(
                {RedemptionSession.status: "used", RedemptionSession.used_at: now},
                synchronize_session="fetch",
            )
        )
        return updated == 1

    @staticmethod
    def expire_stale(db: Session, now: datetime) -> int:
        """Mark pending and approved sessions past their expiry as expired"""
        return (
            db.query(RedemptionSession)
            .filter(
                RedemptionSession.status.in_(["pending", "approved"]),
                RedemptionSession.expires_at <= now,
            )
            .update({RedemptionSession.status: "expired"}, synchronize_session=False)
        )
