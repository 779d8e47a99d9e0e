"""Token service - verification, balances, transfers and platform stats"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Customer, Shop
from ..notification.repository import notify
from .minter import TokenMinter, get_token_minter
from .repository import EARNING_TYPES, MINTED_TYPES, REDEMPTION_TYPES, TokenRepository
from .schemas import serialize_transaction
from .tiers import earning_capacity, get_tier_benefits, tier_progress

logger = logging.getLogger(__name__)


def shop_accepts_redemptions(shop: Optional[Shop]) -> bool:
    return bool(shop and shop.active and shop.verified and shop.suspended_at is None)


class TokenService:
    """Service layer for RCN balances and redemption checks"""

    def __init__(self, db: Session, minter: Optional[TokenMinter] = None):
        self.db = db
        self.repo = TokenRepository()
        self.minter = minter or get_token_minter()

    def get_customer_or_404(self, address: str) -> Customer:
        customer = self.repo.get_customer(self.db, address)
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        return customer

    def get_home_shop_id(self, address: str) -> Optional[str]:
        """Shop where the customer earned the most"""
        sources = self.repo.get_earning_sources(self.db, address)
        return sources[0]["shopId"] if sources else None

    # ============================================================================
    # VERIFICATION
    # ============================================================================

    def verify_redemption(self, customer_address: str, shop_id: str, amount: float) -> dict:
        """
        Check whether a customer can redeem an amount at a shop.

        The full balance is redeemable at any active, verified shop.
        """
        customer = self.repo.get_customer(self.db, customer_address)
        if not customer:
            return {
                "canRedeem": False,
                "availableBalance": 0,
                "maxRedeemable": 0,
                "isHomeShop": False,
                "message": "Customer not found",
            }

        balance = customer.current_balance or 0
        home_shop_id = self.get_home_shop_id(customer.address)
        result = {
            "availableBalance": balance,
            "maxRedeemable": balance,
            "isHomeShop": home_shop_id == shop_id,
            "homeShopId": home_shop_id,
        }

        shop = self.repo.get_shop(self.db, shop_id)
        if not shop_accepts_redemptions(shop):
            return {
                **result,
                "canRedeem": False,
                "maxRedeemable": 0,
                "message": "Shop not found or not active",
            }
        if not customer.is_active or customer.suspended_at is not None:
            return {**result, "canRedeem": False, "message": "Customer account is suspended"}
        if amount > balance:
            return {
                **result,
                "canRedeem": False,
                "message": f"Insufficient balance. Available: {balance:.2f} RCN, requested: {amount} RCN",
            }
        return {**result, "canRedeem": True, "message": "Redemption allowed"}

    async def get_verification_balance(self, address: str) -> dict:
        customer = self.get_customer_or_404(address)
        return {
            "address": customer.address,
            "tier": customer.tier,
            "availableBalance": customer.current_balance,
            "lifetimeEarnings": customer.lifetime_earnings,
            "totalRedeemed": customer.total_redemptions,
            "homeShopId": self.get_home_shop_id(customer.address),
            "earningCapacity": earning_capacity(customer),
            # None while balances are tracked off-chain
            "onChainBalance": await self.minter.get_balance(customer.address),
        }

    def get_earning_sources(self, address: str) -> dict:
        customer = self.get_customer_or_404(address)
        sources = self.repo.get_earning_sources(self.db, customer.address)
        shop_names = {
            s.shop_id: s.name
            for s in self.db.query(Shop).filter(Shop.shop_id.in_([x["shopId"] for x in sources]))
        }
        for source in sources:
            source["shopName"] = shop_names.get(source["shopId"])
        return {
            "address": customer.address,
            "totalEarnedAtShops": sum(s["totalEarned"] for s in sources),
            "sources": sources,
        }

    # ============================================================================
    # BALANCES
    # ============================================================================

    def get_balance_breakdown(self, address: str) -> dict:
        customer = self.get_customer_or_404(address)
        by_type = {}
        for tx_type in ("mint", "tier_bonus", "promo_bonus", "referral", "admin_mint", "transfer_in"):
            by_type[tx_type] = self.repo.sum_by_types(
                self.db, (tx_type,), customer_address=customer.address
            )
        return {
            "address": customer.address,
            "currentBalance": customer.current_balance,
            "lifetimeEarnings": customer.lifetime_earnings,
            "totalRedemptions": customer.total_redemptions,
            "tier": customer.tier,
            "tierBenefits": get_tier_benefits(customer.tier),
            "tierProgress": tier_progress(customer.lifetime_earnings),
            "breakdown": {
                "repairRewards": by_type["mint"],
                "tierBonuses": by_type["tier_bonus"],
                "promoBonuses": by_type["promo_bonus"],
                "referralRewards": by_type["referral"],
                "adminMints": by_type["admin_mint"],
                "transfersReceived": by_type["transfer_in"],
            },
            "earningSources": self.repo.get_earning_sources(self.db, customer.address),
        }

    # ============================================================================
    # TRANSFERS
    # ============================================================================

    def transfer(self, sender_address: str, to_address: str, amount: float, message: Optional[str]) -> dict:
        """Gift RCN from one customer to another"""
        if sender_address == to_address:
            raise HTTPException(status_code=400, detail="Cannot transfer tokens to yourself")

        sender = self.get_customer_or_404(sender_address)
        recipient = self.repo.get_customer(self.db, to_address)
        if not recipient:
            raise HTTPException(status_code=404, detail="Recipient is not a registered customer")
        if not recipient.is_active or recipient.suspended_at is not None:
            raise HTTPException(status_code=400, detail="Recipient account is not active")

        if not self.repo.debit_for_transfer(self.db, sender.address, amount):
            self.db.rollback()
            raise HTTPException(
                status_code=400,
                detail=f"Insufficient balance. Available: {sender.current_balance or 0:.2f} RCN",
            )

        # Transfers move existing tokens; lifetime earnings and tier are unaffected
        recipient.current_balance = (recipient.current_balance or 0) + amount

        self.repo.record_transaction(
            self.db,
            "transfer_out",
            amount,
            customer_address=sender.address,
            counterparty_address=recipient.address,
            reason=message or "Token gift",
        )
        self.repo.record_transaction(
            self.db,
            "transfer_in",
            amount,
            customer_address=recipient.address,
            counterparty_address=sender.address,
            reason=message or "Token gift",
        )
        notify(
            self.db,
            recipient.address,
            "token_gift_received",
            f"You received {amount} RCN from {sender.address}",
            sender_address=sender.address,
            details={"amount": amount, "message": message},
        )
        self.db.commit()
        self.db.refresh(sender)

        logger.info(f"🎁 Transfer of {amount} RCN {sender.address} -> {recipient.address}")
        return {
            "fromAddress": sender.address,
            "toAddress": recipient.address,
            "amount": amount,
            "newBalance": sender.current_balance,
        }

    def transfer_history(self, address: str, limit: int = 50, offset: int = 0) -> dict:
        rows, total = self.repo.get_transactions(
            self.db,
            customer_address=address,
            types=["transfer_in", "transfer_out"],
            limit=limit,
            offset=offset,
        )
        return {"transfers": [serialize_transaction(t) for t in rows], "total": total}

    # ============================================================================
    # STATS
    # ============================================================================

    def get_stats(self) -> dict:
        minted = self.repo.sum_by_types(self.db, MINTED_TYPES)
        redeemed = self.repo.sum_by_types(self.db, REDEMPTION_TYPES)
        return {
            "totalMinted": minted,
            "totalRedeemed": redeemed,
            "circulatingSupply": minted - redeemed,
            "totalEarnedFromRepairs": self.repo.sum_by_types(self.db, EARNING_TYPES),
            "totalCustomers": self.db.query(Customer).count(),
            "totalShops": self.db.query(Shop).filter(Shop.verified.is_(True)).count(),
        }
