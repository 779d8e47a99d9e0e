"""Customer service - registration, profile, balance and referrals"""

import logging
import secrets
import string
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...auth import is_admin_address
from ...models import Customer, Referral, Shop
from ..token.repository import TokenRepository
from ..token.schemas import serialize_transaction
from ..token.service import TokenService
from ..token.tiers import TIERS, earning_capacity, get_tier_benefits, tier_progress
from .schemas import CustomerRegister, CustomerUpdate, serialize_customer

logger = logging.getLogger(__name__)

REFERRAL_CODE_LENGTH = 8


def generate_referral_code() -> str:
    alphabet = string.ascii_uppercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(REFERRAL_CODE_LENGTH))


class CustomerService:
    """Service layer for customer business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = TokenRepository()

    def get_customer_or_404(self, address: str) -> Customer:
        customer = self.repo.get_customer(self.db, address)
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        return customer

    def _unique_referral_code(self) -> str:
        while True:
            code = generate_referral_code()
            if not self.db.query(Customer).filter(Customer.referral_code == code).first():
                return code

    def register(self, data: CustomerRegister) -> dict:
        """Create a BRONZE customer, optionally linked to a referrer"""
        address = data.walletAddress
        if self.repo.get_customer(self.db, address):
            raise HTTPException(status_code=409, detail="Customer already registered")
        if self.db.query(Shop).filter(Shop.wallet_address == address).first():
            raise HTTPException(
                status_code=409, detail="Wallet address is already registered as a shop"
            )
        if is_admin_address(self.db, address):
            raise HTTPException(status_code=409, detail="Wallet address belongs to an admin")
        if data.email and self.db.query(Customer).filter(Customer.email == data.email).first():
            raise HTTPException(status_code=409, detail="Email already registered")

        referrer: Optional[Customer] = None
        if data.referralCode:
            referrer = (
                self.db.query(Customer).filter(Customer.referral_code == data.referralCode).first()
            )
            if not referrer:
                raise HTTPException(status_code=400, detail="Invalid referral code")

        customer = Customer(
            address=address,
            name=data.name,
            email=data.email,
            phone=data.phone,
            tier="BRONZE",
            referral_code=self._unique_referral_code(),
            referred_by=referrer.address if referrer else None,
        )
        self.db.add(customer)

        if referrer:
            self.db.add(
                Referral(
                    referral_code=data.referralCode,
                    referrer_address=referrer.address,
                    referee_address=address,
                    status="pending",
                )
            )

        self.db.commit()
        self.db.refresh(customer)
        logger.info(
            f"👤 Customer registered: {address}"
            + (f" (referred by {referrer.address})" if referrer else "")
        )
        return serialize_customer(customer)

    def get_profile(self, address: str) -> dict:
        customer = self.get_customer_or_404(address)
        return {
            **serialize_customer(customer),
            "tierBenefits": get_tier_benefits(customer.tier),
            "tierProgress": tier_progress(customer.lifetime_earnings),
            "earningCapacity": earning_capacity(customer),
        }

    def update(self, address: str, data: CustomerUpdate) -> dict:
        customer = self.get_customer_or_404(address)
        if data.email is not None and data.email != customer.email:
            existing = self.db.query(Customer).filter(Customer.email == data.email).first()
            if existing and existing.address != customer.address:
                raise HTTPException(status_code=409, detail="Email already registered")
            customer.email = data.email
        if data.name is not None:
            customer.name = data.name
        if data.phone is not None:
            customer.phone = data.phone
        self.db.commit()
        self.db.refresh(customer)
        return serialize_customer(customer)

    def balance(self, address: str) -> dict:
        return TokenService(self.db).get_balance_breakdown(address)

    def transactions(self, address: str, tx_type: Optional[str], limit: int, offset: int) -> dict:
        customer = self.get_customer_or_404(address)
        rows, total = self.repo.get_transactions(
            self.db,
            customer_address=customer.address,
            types=[tx_type] if tx_type else None,
            limit=limit,
            offset=offset,
        )
        return {"transactions": [serialize_transaction(t) for t in rows], "total": total}

    def referrals(self, address: str) -> dict:
        customer = self.get_customer_or_404(address)
        rows = (
            self.db.query(Referral)
            .filter(Referral.referrer_address == customer.address)
            .order_by(Referral.created_at.desc())
            .all()
        )
        return {
            "referralCode": customer.referral_code,
            "referralCount": customer.referral_count,
            "totalEarned": sum(r.referrer_reward or 0 for r in rows),
            "referrals": [
                {
                    "refereeAddress": r.referee_address,
                    "status": r.status,
                    "reward": r.referrer_reward,
                    "createdAt": r.created_at.isoformat() if r.created_at else None,
                    "completedAt": r.completed_at.isoformat() if r.completed_at else None,
                }
                for r in rows
            ],
        }

    def list_by_tier(self, tier: str, limit: int, offset: int) -> dict:
        tier = tier.upper()
        if tier not in TIERS:
            raise HTTPException(status_code=400, detail="Tier must be BRONZE, SILVER or GOLD")
        query = self.db.query(Customer).filter(Customer.tier == tier)
        total = query.count()
        rows = query.order_by(Customer.lifetime_earnings.desc()).offset(offset).limit(limit).all()
        return {"tier": tier, "customers": [serialize_customer(c) for c in rows], "total": total}
