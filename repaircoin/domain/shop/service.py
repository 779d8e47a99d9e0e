"""Shop service - registration, profile and dashboards"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...auth import Identity, is_admin_address
from ...models import Customer, Shop
from ..token.repository import TokenRepository
from ..token.schemas import serialize_transaction
from ..token.tiers import earning_capacity, get_tier_benefits, tier_progress
from .repository import ShopRepository
from .schemas import ShopRegister, ShopUpdate, serialize_shop

logger = logging.getLogger(__name__)


class ShopService:
    """Service layer for shop business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ShopRepository()

    def get_shop_or_404(self, shop_id: str) -> Shop:
        shop = self.repo.get(self.db, shop_id)
        if not shop:
            raise HTTPException(status_code=404, detail="Shop not found")
        return shop

    def register(self, data: ShopRegister) -> dict:
        """Register an unverified, active shop"""
        if self.repo.get(self.db, data.shopId):
            raise HTTPException(status_code=409, detail="Shop ID already registered")
        if self.repo.get_by_wallet(self.db, data.walletAddress):
            raise HTTPException(status_code=409, detail="Wallet address already registered to a shop")
        if data.email and self.repo.get_by_email(self.db, data.email):
            raise HTTPException(status_code=409, detail="Email already registered")
        if self.db.query(Customer).filter(Customer.address == data.walletAddress).first():
            raise HTTPException(
                status_code=409, detail="Wallet address already registered as a customer"
            )
        if is_admin_address(self.db, data.walletAddress):
            raise HTTPException(status_code=409, detail="Wallet address belongs to an admin")

        shop = Shop(
            shop_id=data.shopId,
            name=data.name,
            wallet_address=data.walletAddress,
            email=data.email,
            phone=data.phone,
            owner_name=data.ownerName,
            address=data.address,
            city=data.city,
            country=data.country,
            website=data.website,
            category=data.category,
            verified=False,
            active=True,
            operational_status="not_qualified",
        )
        self.db.add(shop)
        self.db.commit()
        self.db.refresh(shop)
        logger.info(f"🏪 Shop registered: {shop.shop_id} ({shop.wallet_address})")
        return serialize_shop(shop, include_private=True)

    def list_public(self, limit: int, offset: int) -> dict:
        shops, total = self.repo.list_shops(self.db, verified=True, active=True, limit=limit, offset=offset)
        visible = [s for s in shops if s.suspended_at is None]
        return {"shops": [serialize_shop(s) for s in visible], "total": total}

    def get_profile(self, shop_id: str, identity: Optional[Identity]) -> dict:
        shop = self.get_shop_or_404(shop_id)
        include_private = bool(
            identity and (identity.is_admin or (identity.role == "shop" and identity.shop_id == shop_id))
        )
        return serialize_shop(shop, include_private=include_private)

    def update(self, shop_id: str, data: ShopUpdate) -> dict:
        shop = self.get_shop_or_404(shop_id)

        if data.email is not None and data.email != shop.email:
            existing = self.repo.get_by_email(self.db, data.email)
            if existing and existing.shop_id != shop_id:
                raise HTTPException(status_code=409, detail="Email already registered")
            shop.email = data.email
        if data.name is not None:
            shop.name = data.name
        if data.phone is not None:
            shop.phone = data.phone
        if data.ownerName is not None:
            shop.owner_name = data.ownerName
        if data.address is not None:
            shop.address = data.address
        if data.city is not None:
            shop.city = data.city
        if data.country is not None:
            shop.country = data.country
        if data.website is not None:
            shop.website = data.website
        if data.category is not None:
            shop.category = data.category
        if data.crossShopEnabled is not None:
            shop.cross_shop_enabled = data.crossShopEnabled

        self.db.commit()
        self.db.refresh(shop)
        return serialize_shop(shop, include_private=True)

    def dashboard(self, shop_id: str) -> dict:
        shop = self.get_shop_or_404(shop_id)
        recent, _ = TokenRepository.get_transactions(self.db, shop_id=shop_id, limit=10)
        return {
            "shop": serialize_shop(shop, include_private=True),
            "stats": {
                "purchasedRcnBalance": shop.purchased_rcn_balance,
                "totalTokensIssued": shop.total_tokens_issued,
                "totalRedemptions": shop.total_redemptions,
                "totalRcnPurchased": shop.total_rcn_purchased,
                "customersServed": self.repo.count_customers_served(self.db, shop_id),
                "operationalStatus": shop.operational_status,
            },
            "recentTransactions": [serialize_transaction(t) for t in recent],
        }

    def transactions(self, shop_id: str, tx_type: Optional[str], limit: int, offset: int) -> dict:
        self.get_shop_or_404(shop_id)
        rows, total = TokenRepository.get_transactions(
            self.db,
            shop_id=shop_id,
            types=[tx_type] if tx_type else None,
            limit=limit,
            offset=offset,
        )
        return {"transactions": [serialize_transaction(t) for t in rows], "total": total}

    def customers(self, shop_id: str, limit: int, offset: int) -> dict:
        self.get_shop_or_404(shop_id)
        return {"customers": self.repo.get_shop_customers(self.db, shop_id, limit, offset)}

    def customer_lookup(self, address: str) -> dict:
        """What a shop needs to see before issuing a reward"""
        customer = TokenRepository.get_customer(self.db, address)
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        return {
            "address": customer.address,
            "name": customer.name,
            "tier": customer.tier,
            "currentBalance": customer.current_balance,
            "lifetimeEarnings": customer.lifetime_earnings,
            "suspended": customer.suspended_at is not None,
            "tierBenefits": get_tier_benefits(customer.tier),
            "tierProgress": tier_progress(customer.lifetime_earnings),
            "earningCapacity": earning_capacity(customer),
        }

    def tier_bonus_stats(self, shop_id: str) -> dict:
        self.get_shop_or_404(shop_id)
        by_tier = self.repo.tier_bonus_stats(self.db, shop_id)
        return {
            "shopId": shop_id,
            "byTier": by_tier,
            "totalBonusesIssued": sum(t["bonusesIssued"] for t in by_tier),
            "totalBonusAmount": sum(t["totalBonusAmount"] for t in by_tier),
            "generatedAt": datetime.utcnow().isoformat(),
        }
