"""Token domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import RedemptionSession, Transaction
from ...shared.validators import normalize_address


class RedemptionVerifyRequest(BaseModel):
    """Schema for checking whether a customer can redeem at a shop"""

    customerAddress: str
    shopId: str
    amount: float

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


class CreateSessionRequest(BaseModel):
    customerAddress: str
    amount: float

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


class SessionActionRequest(BaseModel):
    sessionId: str


class TransferRequest(BaseModel):
    """Schema for gifting RCN to another customer"""

    toAddress: str
    amount: float
    message: Optional[str] = None

    @field_validator("toAddress")
    @classmethod
    def validate_address(cls, v: str) -> str:
        return normalize_address(v)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Amount must be greater than 0")
        return v

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) > 500:
            raise ValueError("Message must be 500 characters or less")
        return v


def serialize_transaction(t: Transaction) -> dict:
    return {
        "id": t.id,
        "type": t.type,
        "amount": t.amount,
        "customerAddress": t.customer_address,
        "shopId": t.shop_id,
        "counterpartyAddress": t.counterparty_address,
        "reason": t.reason,
        "txHash": t.tx_hash,
        "status": t.status,
        "metadata": t.details or {},
        "createdAt": t.created_at.isoformat() if t.created_at else None,
    }


def serialize_session(s: RedemptionSession) -> dict:
    return {
        "sessionId": s.session_id,
        "customerAddress": s.customer_address,
        "shopId": s.shop_id,
        "maxAmount": s.max_amount,
        "status": s.status,
        "expiresAt": s.expires_at.isoformat() if s.expires_at else None,
        "approvedAt": s.approved_at.isoformat() if s.approved_at else None,
        "usedAt": s.used_at.isoformat() if s.used_at else None,
        "cancelledByShop": s.cancelled_by_shop,
        "createdAt": s.created_at.isoformat() if s.created_at else None,
    }
