"""Admin domain schemas"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...models import Admin, Alert
from ...shared.validators import normalize_address, validate_email


class SuspendRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class RcgBalanceUpdate(BaseModel):
    rcgBalance: float = Field(..., ge=0)


class MintRequest(BaseModel):
    amount: float = Field(..., gt=0, le=1_000_000)
    reason: str = Field(..., min_length=1, max_length=500)


class AdminCreate(BaseModel):
    walletAddress: str
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = None
    isSuperAdmin: bool = False

    @field_validator("walletAddress")
    @classmethod
    def validate_wallet(cls, v: str) -> str:
        return normalize_address(v)

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v: Optional[str]) -> Optional[str]:
        return validate_email(v)


def serialize_admin(a: Admin) -> dict:
    return {
        "walletAddress": a.wallet_address,
        "name": a.name,
        "email": a.email,
        "isSuperAdmin": a.is_super_admin,
        "isActive": a.is_active,
        "createdBy": a.created_by,
        "lastLogin": a.last_login.isoformat() if a.last_login else None,
        "createdAt": a.created_at.isoformat() if a.created_at else None,
    }


def serialize_alert(a: Alert) -> dict:
    return {
        "id": a.id,
        "alertType": a.alert_type,
        "severity": a.severity,
        "title": a.title,
        "message": a.message,
        "details": a.details,
        "shopId": a.shop_id,
        "resolved": a.resolved,
        "resolvedAt": a.resolved_at.isoformat() if a.resolved_at else None,
        "resolvedBy": a.resolved_by,
        "createdAt": a.created_at.isoformat() if a.created_at else None,
    }
