"""Promo code service - shop-defined bonus codes applied to rewards"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import PromoCode
from .repository import PromoCodeRepository
from .schemas import PromoCodeCreate, PromoCodeUpdate, check_promo_values, serialize_promo

logger = logging.getLogger(__name__)


def calculate_promo_bonus(promo: PromoCode, base_reward: float) -> float:
    """Fixed bonus, or a percentage of the base reward capped by max_bonus"""
    if promo.bonus_type == "fixed":
        return float(promo.bonus_value)
    bonus = base_reward * promo.bonus_value / 100
    if promo.max_bonus is not None:
        bonus = min(bonus, promo.max_bonus)
    return round(bonus, 2)


class PromoCodeService:
    """Service layer for promo code management and validation"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = PromoCodeRepository()

    def list_codes(self, shop_id: str) -> list[dict]:
        return [serialize_promo(p) for p in self.repo.list_for_shop(self.db, shop_id)]

    def create_code(self, shop_id: str, data: PromoCodeCreate) -> dict:
        if self.repo.get_by_code(self.db, data.code):
            raise HTTPException(status_code=409, detail="Promo code already exists")

        promo = PromoCode(
            shop_id=shop_id,
            code=data.code,
            name=data.name,
            description=data.description,
            bonus_type=data.bonusType,
            bonus_value=data.bonusValue,
            max_bonus=data.maxBonus,
            start_date=data.startDate,
            end_date=data.endDate,
            total_usage_limit=data.totalUsageLimit,
            per_customer_limit=data.perCustomerLimit,
        )
        self.db.add(promo)
        self.db.commit()
        self.db.refresh(promo)
        logger.info(f"🏷️ Promo code {promo.code} created for shop {shop_id}")
        return serialize_promo(promo)

    def _get_owned(self, shop_id: str, promo_id: int) -> PromoCode:
        promo = self.repo.get(self.db, promo_id)
        if not promo or promo.shop_id != shop_id:
            raise HTTPException(status_code=404, detail="Promo code not found")
        return promo

    def update_code(self, shop_id: str, promo_id: int, data: PromoCodeUpdate) -> dict:
        promo = self._get_owned(shop_id, promo_id)

        if data.name is not None:
            promo.name = data.name
        if data.description is not None:
            promo.description = data.description
        if data.bonusValue is not None:
            promo.bonus_value = data.bonusValue
        if data.maxBonus is not None:
            promo.max_bonus = data.maxBonus
        if data.startDate is not None:
            promo.start_date = data.startDate
        if data.endDate is not None:
            promo.end_date = data.endDate
        if data.totalUsageLimit is not None:
            promo.total_usage_limit = data.totalUsageLimit
        if data.perCustomerLimit is not None:
            if data.perCustomerLimit < 1:
                raise HTTPException(status_code=400, detail="perCustomerLimit must be at least 1")
            promo.per_customer_limit = data.perCustomerLimit
        if data.isActive is not None:
            promo.is_active = data.isActive

        try:
            check_promo_values(promo.bonus_type, promo.bonus_value, promo.start_date, promo.end_date)
        except ValueError as e:
            self.db.rollback()
            raise HTTPException(status_code=400, detail=str(e)) from e

        self.db.commit()
        self.db.refresh(promo)
        return serialize_promo(promo)

    def deactivate_code(self, shop_id: str, promo_id: int) -> dict:
        promo = self._get_owned(shop_id, promo_id)
        promo.is_active = False
        self.db.commit()
        self.db.refresh(promo)
        logger.info(f"🏷️ Promo code {promo.code} deactivated")
        return serialize_promo(promo)

    def check_code(self, shop_id: str, code: str, customer_address: str) -> tuple[Optional[PromoCode], Optional[str]]:
        """
        Validate a code for a customer at a shop.

        Returns:
            (promo, None) when usable, (None or promo, error message) otherwise
        """
        promo = self.repo.get_by_code(self.db, code)
        if not promo or promo.shop_id != shop_id:
            return None, "Promo code not found"
        if not promo.is_active:
            return promo, "Promo code is not active"

        now = datetime.utcnow()
        if now < promo.start_date:
            return promo, "Promo code is not yet valid"
        if now > promo.end_date:
            return promo, "Promo code has expired"
        if promo.total_usage_limit is not None and promo.times_used >= promo.total_usage_limit:
            return promo, "Promo code usage limit reached"
        uses = self.repo.count_customer_uses(self.db, promo.id, customer_address)
        if uses >= promo.per_customer_limit:
            return promo, "Customer has already used this promo code"
        return promo, None

    def validate_code(self, shop_id: str, code: str, customer_address: str) -> dict:
        promo, error = self.check_code(shop_id, code, customer_address)
        return {
            "isValid": error is None,
            "error": error,
            "promoCode": serialize_promo(promo) if promo and error is None else None,
        }
