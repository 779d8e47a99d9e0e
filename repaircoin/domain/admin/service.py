"""Admin service - platform oversight, treasury and account management"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...auth import Identity, is_env_admin
from ...cache import PLATFORM_STATS_KEY, cache, invalidate_platform_stats, invalidate_service_catalogue
from ...models import Admin, Customer
from ..customer.schemas import serialize_customer
from ..notification.repository import notify
from ..shop.purchase_service import pricing_table
from ..shop.repository import PurchaseRepository, ShopRepository
from ..shop.schemas import serialize_shop
from ..token.minter import TokenMinter, get_token_minter
from ..token.repository import MINTED_TYPES, REDEMPTION_TYPES, TokenRepository
from ..token.tiers import credit_lifetime
from .repository import AdminRepository
from .schemas import AdminCreate, serialize_admin, serialize_alert

logger = logging.getLogger(__name__)

PLATFORM_STATS_TTL = 60


class AdminService:
    """Service layer for admin operations"""

    def __init__(self, db: Session, minter: Optional[TokenMinter] = None):
        self.db = db
        self.repo = AdminRepository()
        self.minter = minter or get_token_minter()

    # ============================================================================
    # PLATFORM
    # ============================================================================

    def platform_stats(self) -> dict:
        cached = cache.get(PLATFORM_STATS_KEY)
        if cached is not None:
            return cached

        minted = TokenRepository.sum_by_types(self.db, MINTED_TYPES)
        redeemed = TokenRepository.sum_by_types(self.db, REDEMPTION_TYPES)
        stats = {
            "customers": {
                "total": self.db.query(Customer).count(),
                "active": self.db.query(Customer).filter(Customer.suspended_at.is_(None)).count(),
            },
            "shops": self.repo.count_shops(self.db),
            "tokens": {
                "minted": minted,
                "redeemed": redeemed,
                "circulating": self.repo.customer_balances_total(self.db),
            },
            "purchases": PurchaseRepository.totals(self.db),
            "activeSubscriptions": self.repo.count_active_subscriptions(self.db),
            "generatedAt": datetime.utcnow().isoformat(),
        }
        cache.set(PLATFORM_STATS_KEY, stats, ttl=PLATFORM_STATS_TTL)
        return stats

    def treasury(self) -> dict:
        totals = PurchaseRepository.totals(self.db)
        return {
            "rcnSoldToShops": totals["rcnSold"],
            "revenueUsd": totals["revenueUsd"],
            "purchaseCount": totals["purchaseCount"],
            "tokensInShopBalances": self.repo.shop_balances_total(self.db),
            "tokensInCustomerBalances": self.repo.customer_balances_total(self.db),
            "pricingTiers": pricing_table(),
        }

    def activity(self, days: int) -> list[dict]:
        return self.repo.daily_activity(self.db, days)

    # ============================================================================
    # SHOPS
    # ============================================================================

    def _get_shop(self, shop_id: str):
        shop = ShopRepository.get(self.db, shop_id)
        if not shop:
            raise HTTPException(status_code=404, detail="Shop not found")
        return shop

    def list_shops(self, verified: Optional[bool], active: Optional[bool], limit: int, offset: int) -> dict:
        rows, total = ShopRepository.list_shops(self.db, verified, active, limit, offset)
        return {"shops": [serialize_shop(s, include_private=True) for s in rows], "total": total}

    def verify_shop(self, shop_id: str, admin_address: str) -> dict:
        shop = self._get_shop(shop_id)
        if shop.verified:
            raise HTTPException(status_code=400, detail="Shop is already verified")

        shop.verified = True
        shop.verified_at = datetime.utcnow()
        shop.verified_by = admin_address
        ShopRepository.refresh_operational_status(self.db, shop)
        notify(
            self.db,
            shop.wallet_address,
            "shop_verified",
            f"{shop.name} has been verified and can now issue rewards",
            sender_address=admin_address,
            details={"shopId": shop_id},
        )
        self.db.commit()
        self.db.refresh(shop)
        invalidate_platform_stats()
        invalidate_service_catalogue()
        logger.info(f"✅ Shop {shop_id} verified by {admin_address}")
        return serialize_shop(shop, include_private=True)

    def suspend_shop(self, shop_id: str, reason: str, admin_address: str) -> dict:
        shop = self._get_shop(shop_id)
        if shop.suspended_at is not None:
            raise HTTPException(status_code=400, detail="Shop is already suspended")
        shop.suspended_at = datetime.utcnow()
        shop.suspension_reason = reason
        shop.active = False
        self.db.commit()
        self.db.refresh(shop)
        invalidate_service_catalogue()
        logger.warning(f"⛔ Shop {shop_id} suspended by {admin_address}: {reason}")
        return serialize_shop(shop, include_private=True)

    def unsuspend_shop(self, shop_id: str, admin_address: str) -> dict:
        shop = self._get_shop(shop_id)
        if shop.suspended_at is None:
            raise HTTPException(status_code=400, detail="Shop is not suspended")
        shop.suspended_at = None
        shop.suspension_reason = None
        shop.active = True
        self.db.commit()
        self.db.refresh(shop)
        invalidate_service_catalogue()
        logger.info(f"✅ Shop {shop_id} unsuspended by {admin_address}")
        return serialize_shop(shop, include_private=True)

    def set_rcg_balance(self, shop_id: str, rcg_balance: float) -> dict:
        shop = self._get_shop(shop_id)
        shop.rcg_balance = rcg_balance
        ShopRepository.refresh_operational_status(self.db, shop)
        self.db.commit()
        self.db.refresh(shop)
        return serialize_shop(shop, include_private=True)

    def pause_shop(self, shop_id: str) -> dict:
        shop = self._get_shop(shop_id)
        shop.operational_status = "paused"
        self.db.commit()
        self.db.refresh(shop)
        logger.info(f"⏸️ Shop {shop_id} paused")
        return serialize_shop(shop, include_private=True)

    def resume_shop(self, shop_id: str) -> dict:
        shop = self._get_shop(shop_id)
        if shop.operational_status != "paused":
            raise HTTPException(status_code=400, detail="Shop is not paused")
        shop.operational_status = "not_qualified"
        ShopRepository.refresh_operational_status(self.db, shop)
        self.db.commit()
        self.db.refresh(shop)
        logger.info(f"▶️ Shop {shop_id} resumed as {shop.operational_status}")
        return serialize_shop(shop, include_private=True)

    def mint_shop_balance(self, shop_id: str, amount: float, reason: str, admin_address: str) -> dict:
        """Credit shop RCN outside the purchase flow"""
        shop = self._get_shop(shop_id)
        shop.purchased_rcn_balance = (shop.purchased_rcn_balance or 0) + amount
        shop.total_rcn_purchased = (shop.total_rcn_purchased or 0) + amount
        TokenRepository.record_transaction(
            self.db,
            "shop_purchase",
            amount,
            shop_id=shop_id,
            reason=f"Admin credit: {reason}",
            counterparty_address=admin_address,
            details={"adminCredit": True},
        )
        self.db.commit()
        self.db.refresh(shop)
        logger.info(f"🪙 Admin {admin_address} credited {amount} RCN to shop {shop_id}")
        return serialize_shop(shop, include_private=True)

    # ============================================================================
    # CUSTOMERS
    # ============================================================================

    def _get_customer(self, address: str) -> Customer:
        customer = TokenRepository.get_customer(self.db, address)
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        return customer

    def list_customers(self, tier, active, search, limit: int, offset: int) -> dict:
        rows, total = self.repo.list_customers(self.db, tier, active, search, limit, offset)
        return {"customers": [serialize_customer(c) for c in rows], "total": total}

    def suspend_customer(self, address: str, reason: str, admin_address: str) -> dict:
        customer = self._get_customer(address)
        if customer.suspended_at is not None:
            raise HTTPException(status_code=400, detail="Customer is already suspended")
        customer.suspended_at = datetime.utcnow()
        customer.suspension_reason = reason
        customer.is_active = False
        self.db.commit()
        self.db.refresh(customer)
        logger.warning(f"⛔ Customer {address} suspended by {admin_address}: {reason}")
        return serialize_customer(customer)

    def unsuspend_customer(self, address: str, admin_address: str) -> dict:
        customer = self._get_customer(address)
        if customer.suspended_at is None:
            raise HTTPException(status_code=400, detail="Customer is not suspended")
        customer.suspended_at = None
        customer.suspension_reason = None
        customer.is_active = True
        self.db.commit()
        self.db.refresh(customer)
        logger.info(f"✅ Customer {address} unsuspended by {admin_address}")
        return serialize_customer(customer)

    async def mint_to_customer(self, address: str, amount: float, reason: str, admin_address: str) -> dict:
        """Admin mint: counts toward lifetime earnings and tier, ignores earning limits"""
        customer = self._get_customer(address)
        tx_hash = await self.minter.mint_to(customer.address, amount, reason=reason)

        credit_lifetime(customer, amount)
        TokenRepository.record_transaction(
            self.db,
            "admin_mint",
            amount,
            customer_address=customer.address,
            reason=reason,
            tx_hash=tx_hash,
            counterparty_address=admin_address,
        )
        notify(
            self.db,
            customer.address,
            "reward_issued",
            f"You received {amount} RCN: {reason}",
            sender_address=admin_address,
            details={"amount": amount},
        )
        self.db.commit()
        self.db.refresh(customer)
        invalidate_platform_stats()
        logger.info(f"🪙 Admin {admin_address} minted {amount} RCN to {customer.address}")
        return {**serialize_customer(customer), "minted": amount, "txHash": tx_hash}

    # ============================================================================
    # ADMINS
    # ============================================================================

    def _is_super_admin(self, address: str) -> bool:
        if is_env_admin(address):
            return True
        admin = self.repo.get_admin(self.db, address)
        return bool(admin and admin.is_active and admin.is_super_admin)

    def _require_super_admin(self, identity: Identity) -> None:
        if not self._is_super_admin(identity.address):
            raise HTTPException(status_code=403, detail="Super admin access required")

    def list_admins(self) -> list[dict]:
        return [serialize_admin(a) for a in self.repo.list_admins(self.db)]

    def create_admin(self, data: AdminCreate, identity: Identity) -> dict:
        self._require_super_admin(identity)
        existing = self.repo.get_admin(self.db, data.walletAddress)
        if existing and existing.is_active:
            raise HTTPException(status_code=409, detail="Admin already exists")
        if TokenRepository.get_customer(self.db, data.walletAddress) or ShopRepository.get_by_wallet(
            self.db, data.walletAddress
        ):
            raise HTTPException(
                status_code=409, detail="Wallet address is already registered as a customer or shop"
            )

        if existing:
            admin = existing
            admin.is_active = True
        else:
            admin = Admin(wallet_address=data.walletAddress)
            self.db.add(admin)
        admin.name = data.name
        admin.email = data.email
        admin.is_super_admin = data.isSuperAdmin
        admin.created_by = identity.address

        self.db.commit()
        self.db.refresh(admin)
        logger.info(f"🛡️ Admin {data.walletAddress} added by {identity.address}")
        return serialize_admin(admin)

    def remove_admin(self, address: str, identity: Identity) -> dict:
        self._require_super_admin(identity)
        if address == identity.address:
            raise HTTPException(status_code=400, detail="You cannot remove yourself")
        admin = self.repo.get_admin(self.db, address)
        if not admin or not admin.is_active:
            raise HTTPException(status_code=404, detail="Admin not found")
        admin.is_active = False
        self.db.commit()
        logger.info(f"🛡️ Admin {address} removed by {identity.address}")
        return {"walletAddress": address, "removed": True}

    # ============================================================================
    # ALERTS
    # ============================================================================

    def list_alerts(self, resolved: Optional[bool], limit: int, offset: int) -> dict:
        rows, total = self.repo.list_alerts(self.db, resolved, limit, offset)
        return {"alerts": [serialize_alert(a) for a in rows], "total": total}

    def resolve_alert(self, alert_id: int, admin_address: str) -> dict:
        alert = self.repo.get_alert(self.db, alert_id)
        if not alert:
            raise HTTPException(status_code=404, detail="Alert not found")
        if not alert.resolved:
            alert.resolved = True
            alert.resolved_at = datetime.utcnow()
            alert.resolved_by = admin_address
            self.db.commit()
            self.db.refresh(alert)
        return serialize_alert(alert)
