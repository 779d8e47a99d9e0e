"""Shop domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from ...models import PromoCode, Shop, ShopPurchase
from ...shared.validators import (
    normalize_address,
    to_naive_utc,
    validate_email,
    validate_shop_id,
)


class ShopRegister(BaseModel):
    """Schema for registering a new shop"""

    shopId: str
    name: str
    walletAddress: str
    email: Optional[str] = None
    phone: Optional[str] = None
    ownerName: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    website: Optional[str] = None
    category: Optional[str] = None

    @field_validator("shopId")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return validate_shop_id(v)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = (v or "").strip()
        if len(v) < 2:
            raise ValueError("Shop name must be at least 2 characters")
        return v

    @field_validator("walletAddress")
    @classmethod
    def validate_wallet(cls, v: str) -> str:
        return normalize_address(v)

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v: Optional[str]) -> Optional[str]:
        return validate_email(v)


class ShopUpdate(BaseModel):
    """Schema for updating a shop profile"""

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    ownerName: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    website: Optional[str] = None
    category: Optional[str] = None
    crossShopEnabled: Optional[bool] = None

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v: Optional[str]) -> Optional[str]:
        return validate_email(v)


class IssueRewardRequest(BaseModel):
    customerAddress: str
    repairAmount: float
    skipTierBonus: bool = False
    promoCode: Optional[str] = None

    @field_validator("customerAddress")
    @classmethod
    def validate_address(cls, v: str) -> str:
        return normalize_address(v)

    @field_validator("repairAmount")
    @classmethod
    def validate_amount(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Repair amount must be greater than 0")
        return v


class RedeemRequest(BaseModel):
    customerAddress: str
    amount: float
    sessionId: str

    @field_validator("customerAddress")
    @classmethod
    def validate_address(cls, v: str) -> str:
        return normalize_address(v)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Amount must be greater than 0")
        return v


class TierBonusPreviewRequest(BaseModel):
    customerAddress: str
    repairAmount: float

    @field_validator("customerAddress")
    @classmethod
    def validate_address(cls, v: str) -> str:
        return normalize_address(v)


class PurchaseInitiate(BaseModel):
    amount: int
    paymentMethod: str = "card"

    @field_validator("paymentMethod")
    @classmethod
    def validate_method(cls, v: str) -> str:
        allowed = {"card", "bank_transfer", "usdc"}
        if v not in allowed:
            raise ValueError("paymentMethod must be one of: card, bank_transfer, usdc")
        return v


class PurchaseComplete(BaseModel):
    purchaseId: int
    paymentReference: Optional[str] = None


class PromoCodeCreate(BaseModel):
    """Schema for creating a promo code"""

    code: str
    name: str
    description: Optional[str] = None
    bonusType: str
    bonusValue: float
    maxBonus: Optional[float] = None
    startDate: datetime
    endDate: datetime
    totalUsageLimit: Optional[int] = None
    perCustomerLimit: int = 1

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not 3 <= len(v) <= 20 or not v.replace("_", "").replace("-", "").isalnum():
            raise ValueError("Code must be 3-20 letters, digits, '-' or '_'")
        return v

    @field_validator("bonusType")
    @classmethod
    def validate_type(cls, v: str) -> str:
        if v not in ("fixed", "percentage"):
            raise ValueError("bonusType must be 'fixed' or 'percentage'")
        return v

    @field_validator("perCustomerLimit")
    @classmethod
    def validate_per_customer(cls, v: int) -> int:
        if v < 1:
            raise ValueError("perCustomerLimit must be at least 1")
        return v

    @field_validator("startDate", "endDate")
    @classmethod
    def validate_dates(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    @model_validator(mode="after")
    def validate_bonus(self):
        check_promo_values(self.bonusType, self.bonusValue, self.startDate, self.endDate)
        return self


class PromoCodeUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    bonusValue: Optional[float] = None
    maxBonus: Optional[float] = None
    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None
    totalUsageLimit: Optional[int] = None
    perCustomerLimit: Optional[int] = None
    isActive: Optional[bool] = None

    @field_validator("startDate", "endDate")
    @classmethod
    def validate_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class PromoCodeValidate(BaseModel):
    code: str
    customerAddress: str

    @field_validator("customerAddress")
    @classmethod
    def validate_address(cls, v: str) -> str:
        return normalize_address(v)


def check_promo_values(bonus_type: str, bonus_value: float, start: datetime, end: datetime):
    """Shared bonus/date rules for create and update; raises ValueError"""
    if bonus_type == "percentage" and not 0 < bonus_value <= 100:
        raise ValueError("Percentage bonus must be between 0 and 100")
    if bonus_type == "fixed" and bonus_value <= 0:
        raise ValueError("Fixed bonus must be greater than 0")
    if end <= start:
        raise ValueError("End date must be after start date")


def serialize_shop(shop: Shop, include_private: bool = False) -> dict:
    data = {
        "shopId": shop.shop_id,
        "name": shop.name,
        "walletAddress": shop.wallet_address,
        "phone": shop.phone,
        "address": shop.address,
        "city": shop.city,
        "country": shop.country,
        "website": shop.website,
        "category": shop.category,
        "verified": shop.verified,
        "active": shop.active,
        "crossShopEnabled": shop.cross_shop_enabled,
        "createdAt": shop.created_at.isoformat() if shop.created_at else None,
    }
    if include_private:
        data.update(
            {
                "email": shop.email,
                "ownerName": shop.owner_name,
                "suspended": shop.suspended_at is not None,
                "suspensionReason": shop.suspension_reason,
                "verifiedAt": shop.verified_at.isoformat() if shop.verified_at else None,
                "purchasedRcnBalance": shop.purchased_rcn_balance,
                "totalTokensIssued": shop.total_tokens_issued,
                "totalRedemptions": shop.total_redemptions,
                "totalRcnPurchased": shop.total_rcn_purchased,
                "rcgBalance": shop.rcg_balance,
                "operationalStatus": shop.operational_status,
            }
        )
    return data


def serialize_purchase(p: ShopPurchase) -> dict:
    return {
        "id": p.id,
        "shopId": p.shop_id,
        "amount": p.amount,
        "pricePerRcn": p.price_per_rcn,
        "totalCost": p.total_cost,
        "pricingTier": p.pricing_tier,
        "paymentMethod": p.payment_method,
        "paymentReference": p.payment_reference,
        "status": p.status,
        "createdAt": p.created_at.isoformat() if p.created_at else None,
        "completedAt": p.completed_at.isoformat() if p.completed_at else None,
    }


def serialize_promo(p: PromoCode) -> dict:
    return {
        "id": p.id,
        "shopId": p.shop_id,
        "code": p.code,
        "name": p.name,
        "description": p.description,
        "bonusType": p.bonus_type,
        "bonusValue": p.bonus_value,
        "maxBonus": p.max_bonus,
        "startDate": p.start_date.isoformat() if p.start_date else None,
        "endDate": p.end_date.isoformat() if p.end_date else None,
        "totalUsageLimit": p.total_usage_limit,
        "perCustomerLimit": p.per_customer_limit,
        "timesUsed": p.times_used,
        "totalBonusIssued": p.total_bonus_issued,
        "isActive": p.is_active,
    }
