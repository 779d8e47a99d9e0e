"""Customer domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import Customer
from ...shared.validators import normalize_address, validate_email


class CustomerRegister(BaseModel):
    """Schema for registering a customer wallet"""

    walletAddress: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    referralCode: Optional[str] = None

    @field_validator("walletAddress")
    @classmethod
    def validate_wallet(cls, v: str) -> str:
        return normalize_address(v)

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v: Optional[str]) -> Optional[str]:
        return validate_email(v)

    @field_validator("referralCode")
    @classmethod
    def validate_referral(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else None


class CustomerUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v: Optional[str]) -> Optional[str]:
        return validate_email(v)


def serialize_customer(c: Customer) -> dict:
    return {
        "address": c.address,
        "name": c.name,
        "email": c.email,
        "phone": c.phone,
        "tier": c.tier,
        "lifetimeEarnings": c.lifetime_earnings,
        "currentBalance": c.current_balance,
        "totalRedemptions": c.total_redemptions,
        "referralCode": c.referral_code,
        "referredBy": c.referred_by,
        "referralCount": c.referral_count,
        "homeShopId": c.home_shop_id,
        "isActive": c.is_active,
        "suspended": c.suspended_at is not None,
        "suspensionReason": c.suspension_reason,
        "createdAt": c.created_at.isoformat() if c.created_at else None,
    }
