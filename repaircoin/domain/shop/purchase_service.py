"""
RCN purchase service - shops buy RCN from the platform.

Price per RCN depends on the shop's RCG holdings:
    standard  >= 10,000 RCG   $0.10
    premium   >= 50,000 RCG   $0.08
    elite     >= 200,000 RCG  $0.06
Shops below 10,000 RCG pay the standard price.
"""

import logging
from datetime import datetime
from typing import Optional

import stripe
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import FRONTEND_URL
from ...models import Shop, ShopPurchase
from ..billing.stripe_service import StripeNotConfiguredError, stripe_service
from ..token.repository import TokenRepository
from .repository import PurchaseRepository, ShopRepository
from .schemas import serialize_purchase

logger = logging.getLogger(__name__)

MIN_PURCHASE_AMOUNT = 100
MAX_PURCHASE_AMOUNT = 100_000

PRICING_TIERS = [
    # (name, minimum RCG, price per RCN)
    ("elite", 200_000, 0.06),
    ("premium", 50_000, 0.08),
    ("standard", 10_000, 0.10),
]


def get_pricing_tier(rcg_balance: float) -> tuple[str, float]:
    for name, minimum, price in PRICING_TIERS:
        if (rcg_balance or 0) >= minimum:
            return name, price
    return "standard", 0.10


def pricing_table() -> list[dict]:
    return [
        {"tier": name, "minimumRcg": minimum, "pricePerRcn": price}
        for name, minimum, price in reversed(PRICING_TIERS)
    ]


class PurchaseService:
    """Service layer for shop RCN purchases"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = PurchaseRepository()
        self.shop_repo = ShopRepository()

    def _get_shop(self, shop_id: str) -> Shop:
        shop = self.shop_repo.get(self.db, shop_id)
        if not shop:
            raise HTTPException(status_code=404, detail="Shop not found")
        return shop

    def get_pricing(self, shop_id: Optional[str] = None) -> dict:
        data = {
            "tiers": pricing_table(),
            "minimumPurchase": MIN_PURCHASE_AMOUNT,
            "maximumPurchase": MAX_PURCHASE_AMOUNT,
        }
        if shop_id:
            shop = self._get_shop(shop_id)
            tier, price = get_pricing_tier(shop.rcg_balance)
            data["currentTier"] = tier
            data["currentPrice"] = price
        return data

    def initiate(self, shop_id: str, amount: int, payment_method: str) -> dict:
        shop = self._get_shop(shop_id)
        if shop.suspended_at is not None or not shop.active:
            raise HTTPException(status_code=403, detail="Shop is not active")
        if not MIN_PURCHASE_AMOUNT <= amount <= MAX_PURCHASE_AMOUNT:
            raise HTTPException(
                status_code=400,
                detail=f"Purchase amount must be between {MIN_PURCHASE_AMOUNT} and {MAX_PURCHASE_AMOUNT} RCN",
            )

        tier, price = get_pricing_tier(shop.rcg_balance)
        total_cost = round(amount * price, 2)
        purchase = ShopPurchase(
            shop_id=shop_id,
            amount=amount,
            price_per_rcn=price,
            total_cost=total_cost,
            pricing_tier=tier,
            payment_method=payment_method,
            status="pending",
            created_at=datetime.utcnow(),
        )
        self.db.add(purchase)
        self.db.flush()

        checkout_url = None
        if payment_method == "card":
            try:
                checkout = stripe_service.create_payment_checkout(
                    name=f"{amount} RCN tokens",
                    amount_usd=total_cost,
                    success_url=f"{FRONTEND_URL}/shop?purchase=success&purchaseId={purchase.id}",
                    cancel_url=f"{FRONTEND_URL}/shop?purchase=cancelled&purchaseId={purchase.id}",
                    metadata={
                        "type": "rcn_purchase",
                        "purchaseId": str(purchase.id),
                        "shopId": shop_id,
                    },
                    customer_email=shop.email,
                )
            except StripeNotConfiguredError as e:
                self.db.rollback()
                raise HTTPException(status_code=503, detail="Card payments are not available") from e
            except stripe.StripeError as e:
                self.db.rollback()
                logger.error(f"❌ Stripe checkout for purchase failed: {e}")
                raise HTTPException(status_code=503, detail="Payment provider error") from e
            purchase.stripe_checkout_session_id = checkout["session_id"]
            checkout_url = checkout["url"]

        self.db.commit()
        self.db.refresh(purchase)
        logger.info(f"🛒 Purchase {purchase.id} initiated by {shop_id}: {amount} RCN @ ${price}")
        return {**serialize_purchase(purchase), "checkoutUrl": checkout_url}

    def complete(self, purchase_id: int, payment_reference: Optional[str] = None, shop_id: Optional[str] = None) -> dict:
        """Mark a purchase paid and credit the shop. shop_id restricts to the owner."""
        purchase = self.repo.get(self.db, purchase_id)
        if not purchase or (shop_id and purchase.shop_id != shop_id):
            raise HTTPException(status_code=404, detail="Purchase not found")
        if purchase.status == "completed":
            raise HTTPException(status_code=400, detail="Purchase already completed")

        self._apply_completion(purchase, payment_reference)
        self.db.commit()
        self.db.refresh(purchase)
        return serialize_purchase(purchase)

    def _apply_completion(self, purchase: ShopPurchase, payment_reference: Optional[str]) -> None:
        shop = self._get_shop(purchase.shop_id)
        purchase.status = "completed"
        purchase.completed_at = datetime.utcnow()
        if payment_reference:
            purchase.payment_reference = payment_reference

        shop.purchased_rcn_balance = (shop.purchased_rcn_balance or 0) + purchase.amount
        shop.total_rcn_purchased = (shop.total_rcn_purchased or 0) + purchase.amount

        TokenRepository.record_transaction(
            self.db,
            "shop_purchase",
            purchase.amount,
            shop_id=shop.shop_id,
            reason=f"Purchased {purchase.amount} RCN ({purchase.pricing_tier})",
            details={"purchaseId": purchase.id, "totalCost": purchase.total_cost},
        )
        logger.info(f"✅ Purchase {purchase.id} completed: {shop.shop_id} +{purchase.amount} RCN")

    def complete_from_checkout(self, session: dict) -> bool:
        """checkout.session.completed for an RCN purchase; idempotent"""
        metadata = session.get("metadata") or {}
        purchase = None
        if metadata.get("purchaseId"):
            purchase = self.repo.get(self.db, int(metadata["purchaseId"]))
        if not purchase and session.get("id"):
            purchase = self.repo.get_by_checkout_session(self.db, session["id"])
        if not purchase:
            raise ValueError(f"Purchase not found for checkout session {session.get('id')}")
        if purchase.status == "completed":
            logger.info(f"ℹ️ Purchase {purchase.id} already completed")
            return False

        self._apply_completion(purchase, session.get("payment_intent") or session.get("id"))
        self.db.commit()
        return True

    def get_balance(self, shop_id: str) -> dict:
        shop = self._get_shop(shop_id)
        tier, price = get_pricing_tier(shop.rcg_balance)
        return {
            "shopId": shop_id,
            "purchasedRcnBalance": shop.purchased_rcn_balance,
            "totalRcnPurchased": shop.total_rcn_purchased,
            "totalTokensIssued": shop.total_tokens_issued,
            "pricingTier": tier,
            "pricePerRcn": price,
            **self.repo.totals(self.db, shop_id),
        }

    def get_history(self, shop_id: str, limit: int = 50, offset: int = 0) -> dict:
        self._get_shop(shop_id)
        rows, total = self.repo.history(self.db, shop_id, limit, offset)
        return {"purchases": [serialize_purchase(p) for p in rows], "total": total}
