"""Reward service - issuing repair rewards and redeeming RCN at shops"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import LARGE_REDEMPTION_ALERT_THRESHOLD
from ...models import Customer, Referral, Shop
from ..admin.repository import AdminRepository
from ..notification.repository import notify
from ..token.minter import TokenMinter, get_token_minter
from ..token.redemption_service import RedemptionSessionService
from ..token.repository import TokenRepository
from ..token.service import TokenService
from ..token.tiers import (
    apply_earnings,
    calculate_base_reward,
    check_earning_limits,
    credit_lifetime,
    get_tier_bonus,
    is_eligible_repair,
)
from .promo_service import PromoCodeService, calculate_promo_bonus
from .repository import PromoCodeRepository, ShopRepository, is_operational

logger = logging.getLogger(__name__)

REFERRER_REWARD = 25
REFEREE_REWARD = 10


class RewardService:
    """Service layer for the issue-reward and redeem flows"""

    def __init__(self, db: Session, minter: Optional[TokenMinter] = None):
        self.db = db
        self.minter = minter or get_token_minter()
        self.shop_repo = ShopRepository()
        self.token_repo = TokenRepository()

    def _get_shop(self, shop_id: str) -> Shop:
        shop = self.shop_repo.get(self.db, shop_id)
        if not shop:
            raise HTTPException(status_code=404, detail="Shop not found")
        return shop

    def _ensure_can_issue(self, shop: Shop) -> None:
        if not shop.active or shop.suspended_at is not None:
            raise HTTPException(status_code=403, detail="Shop is not active")
        if not shop.verified:
            raise HTTPException(status_code=403, detail="Shop must be verified to issue rewards")
        if not is_operational(shop):
            raise HTTPException(
                status_code=403,
                detail=(
                    "Shop is not operational. An active subscription or at least "
                    "10,000 RCG is required to issue rewards"
                ),
            )

    # ============================================================================
    # ISSUE REWARD
    # ============================================================================

    async def issue_reward(
        self,
        shop_id: str,
        customer_address: str,
        repair_amount: float,
        skip_tier_bonus: bool = False,
        promo_code: Optional[str] = None,
        source: str = "repair",
    ) -> dict:
        """Reward a customer for a completed repair"""
        shop = self._get_shop(shop_id)
        self._ensure_can_issue(shop)

        customer = self.token_repo.get_customer(self.db, customer_address)
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        if not customer.is_active or customer.suspended_at is not None:
            raise HTTPException(status_code=400, detail="Cannot issue rewards to suspended customer")

        base_reward = calculate_base_reward(repair_amount)
        tier_at_issue = customer.tier
        tier_bonus = 0 if skip_tier_bonus else get_tier_bonus(customer.tier)

        promo = None
        promo_bonus = 0.0
        if promo_code:
            promo, error = PromoCodeService(self.db).check_code(shop_id, promo_code, customer.address)
            if error:
                raise HTTPException(status_code=400, detail=f"Invalid promo code: {error}")
            promo_bonus = calculate_promo_bonus(promo, base_reward)

        limits = check_earning_limits(customer, base_reward)
        if not limits["allowed"]:
            logger.warning(f"⚠️ Earning limit hit for {customer.address}: {limits['reason']}")
            raise HTTPException(
                status_code=400,
                detail={"error": limits["reason"], "limits": limits},
            )

        total_reward = base_reward + tier_bonus + promo_bonus
        available = shop.purchased_rcn_balance or 0
        if available < total_reward:
            raise HTTPException(
                status_code=400,
                detail={
                    "error": "Insufficient shop RCN balance",
                    "required": total_reward,
                    "available": available,
                },
            )

        first_repair = (
            self.token_repo.sum_by_types(self.db, ("mint",), customer_address=customer.address) == 0
        )

        tx_hash = await self.minter.mint_to(
            customer.address, total_reward, reason=f"Repair reward from {shop_id}"
        )

        shop.purchased_rcn_balance = available - total_reward
        shop.total_tokens_issued = (shop.total_tokens_issued or 0) + total_reward
        shop.last_activity = datetime.utcnow()

        apply_earnings(customer, base_reward, total_reward)

        details = {"repairAmount": repair_amount, "source": source}
        self.token_repo.record_transaction(
            self.db,
            "mint",
            base_reward,
            customer_address=customer.address,
            shop_id=shop_id,
            reason=f"Repair reward - ${repair_amount:.2f} repair",
            tx_hash=tx_hash,
            details=details,
        )
        if tier_bonus:
            self.token_repo.record_transaction(
                self.db,
                "tier_bonus",
                tier_bonus,
                customer_address=customer.address,
                shop_id=shop_id,
                reason=f"{tier_at_issue} tier bonus",
                tx_hash=tx_hash,
                details={"tier": tier_at_issue},
            )
        if promo:
            self.token_repo.record_transaction(
                self.db,
                "promo_bonus",
                promo_bonus,
                customer_address=customer.address,
                shop_id=shop_id,
                reason=f"Promo code {promo.code}",
                tx_hash=tx_hash,
                details={"promoCode": promo.code, "promoCodeId": promo.id},
            )
            PromoCodeRepository.record_use(
                self.db, promo, customer.address, shop_id, base_reward, promo_bonus
            )

        referral = await self._complete_referral(customer) if first_repair else None

        self.db.flush()
        customer.home_shop_id = TokenService(self.db).get_home_shop_id(customer.address)

        notify(
            self.db,
            customer.address,
            "reward_issued",
            f"You earned {total_reward} RCN from {shop.name}",
            sender_address=shop.wallet_address,
            details={"shopId": shop_id, "amount": total_reward},
        )
        self.db.commit()
        self.db.refresh(customer)
        self.db.refresh(shop)

        logger.info(
            f"🎉 {shop_id} issued {total_reward} RCN to {customer.address} "
            f"(base {base_reward}, tier {tier_bonus}, promo {promo_bonus})"
        )
        return {
            "customerAddress": customer.address,
            "baseReward": base_reward,
            "tierBonus": tier_bonus,
            "promoBonus": promo_bonus,
            "promoCode": promo.code if promo else None,
            "totalReward": total_reward,
            "txHash": tx_hash,
            "customerTier": customer.tier,
            "customerBalance": customer.current_balance,
            "shopBalance": shop.purchased_rcn_balance,
            "referral": referral,
        }

    async def _complete_referral(self, customer: Customer) -> Optional[dict]:
        """Pay out a pending referral on the referee's first repair"""
        referral = (
            self.db.query(Referral)
            .filter(Referral.referee_address == customer.address, Referral.status == "pending")
            .first()
        )
        if not referral:
            return None

        referrer = self.token_repo.get_customer(self.db, referral.referrer_address)
        if not referrer:
            logger.warning(f"⚠️ Referrer {referral.referrer_address} missing; skipping referral")
            return None

        referrer_tx = await self.minter.mint_to(referrer.address, REFERRER_REWARD, reason="Referral")
        referee_tx = await self.minter.mint_to(customer.address, REFEREE_REWARD, reason="Referral")

        credit_lifetime(referrer, REFERRER_REWARD)
        credit_lifetime(customer, REFEREE_REWARD)
        referrer.referral_count = (referrer.referral_count or 0) + 1

        self.token_repo.record_transaction(
            self.db,
            "referral",
            REFERRER_REWARD,
            customer_address=referrer.address,
            counterparty_address=customer.address,
            reason="Referral reward - referred customer completed first repair",
            tx_hash=referrer_tx,
        )
        self.token_repo.record_transaction(
            self.db,
            "referral",
            REFEREE_REWARD,
            customer_address=customer.address,
            counterparty_address=referrer.address,
            reason="Referral welcome bonus",
            tx_hash=referee_tx,
        )

        referral.status = "completed"
        referral.completed_at = datetime.utcnow()
        referral.referrer_reward = REFERRER_REWARD
        referral.referee_reward = REFEREE_REWARD

        notify(
            self.db,
            referrer.address,
            "referral_completed",
            f"Your referral completed a first repair. You earned {REFERRER_REWARD} RCN",
            details={"refereeAddress": customer.address},
        )
        logger.info(f"🤝 Referral completed: {referrer.address} -> {customer.address}")
        return {
            "completed": True,
            "referrerAddress": referrer.address,
            "referrerReward": REFERRER_REWARD,
            "refereeReward": REFEREE_REWARD,
        }

    # ============================================================================
    # PREVIEW
    # ============================================================================

    def preview(self, customer_address: str, repair_amount: float) -> dict:
        """Reward breakdown without side effects"""
        customer = self.token_repo.get_customer(self.db, customer_address)
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")

        eligible = is_eligible_repair(repair_amount)
        base_reward = calculate_base_reward(repair_amount) if eligible else 0
        tier_bonus = get_tier_bonus(customer.tier) if eligible else 0
        limits = check_earning_limits(customer, base_reward)
        return {
            "customerAddress": customer.address,
            "customerTier": customer.tier,
            "repairAmount": repair_amount,
            "eligible": eligible,
            "baseReward": base_reward,
            "tierBonus": tier_bonus,
            "totalReward": base_reward + tier_bonus,
            "withinLimits": limits["allowed"],
            "limits": limits,
        }

    # ============================================================================
    # REDEEM
    # ============================================================================

    def redeem(self, shop_id: str, customer_address: str, amount: float, session_id: str) -> dict:
        """Redeem RCN at a shop using an approved redemption session"""
        shop = self._get_shop(shop_id)

        verification = TokenService(self.db).verify_redemption(customer_address, shop_id, amount)
        if not verification["canRedeem"]:
            raise HTTPException(status_code=400, detail=verification["message"])

        session = RedemptionSessionService(self.db).consume_session(session_id, shop_id, amount)
        if session.customer_address != customer_address:
            self.db.rollback()
            raise HTTPException(status_code=400, detail="Session belongs to a different customer")

        if not self.token_repo.debit_customer(self.db, customer_address, amount):
            self.db.rollback()
            raise HTTPException(status_code=400, detail="Insufficient balance")

        shop.total_redemptions = (shop.total_redemptions or 0) + amount
        shop.last_activity = datetime.utcnow()

        self.token_repo.record_transaction(
            self.db,
            "redeem",
            amount,
            customer_address=customer_address,
            shop_id=shop_id,
            reason=f"Redemption at {shop.name}",
            details={"sessionId": session_id, "isHomeShop": verification["isHomeShop"]},
        )
        if amount >= LARGE_REDEMPTION_ALERT_THRESHOLD:
            AdminRepository.create_alert(
                self.db,
                alert_type="large_redemption",
                title="Large redemption",
                message=f"{customer_address} redeemed {amount} RCN at {shop_id}",
                severity="medium",
                shop_id=shop_id,
                details={"amount": amount, "customerAddress": customer_address},
            )
        notify(
            self.db,
            customer_address,
            "redemption_completed",
            f"You redeemed {amount} RCN at {shop.name}",
            sender_address=shop.wallet_address,
            details={"shopId": shop_id, "amount": amount},
        )
        self.db.commit()

        customer = self.token_repo.get_customer(self.db, customer_address)
        logger.info(f"💸 {customer_address} redeemed {amount} RCN at {shop_id}")
        return {
            "customerAddress": customer_address,
            "amount": amount,
            "sessionId": session_id,
            "isHomeShop": verification["isHomeShop"],
            "newBalance": customer.current_balance if customer else None,
            "shopTotalRedemptions": shop.total_redemptions,
        }
