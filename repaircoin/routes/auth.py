import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..auth import (
    Identity,
    find_admin,
    get_current_identity,
    is_admin_address,
    is_env_admin,
)
from ..database import get_db
from ..models import Customer, RefreshToken, Shop
from ..rate_limiter import create_rate_limiter
from ..security_utils import (
    InvalidTokenError,
    TokenExpiredError,
    create_access_token,
    create_refresh_token,
    decode_jwt_token,
)
from ..shared.validators import normalize_address

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

auth_rate_limit = create_rate_limiter(limit=30, window_seconds=60, key_prefix="auth")


class TokenRequest(BaseModel):
    address: str
    role: str

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        return normalize_address(v)

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        v = v.lower()
        if v not in ("admin", "shop", "customer"):
            raise ValueError("Role must be admin, shop or customer")
        return v


class CheckUserRequest(BaseModel):
    address: str

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        return normalize_address(v)


class RefreshRequest(BaseModel):
    refreshToken: str


def _resolve_role(db: Session, address: str, role: str) -> Optional[str]:
    """Check the address holds the role. Returns the shop id for shops."""
    if role == "admin":
        if is_env_admin(address):
            return None
        admin = find_admin(db, address)
        if not admin:
            raise HTTPException(status_code=403, detail="Address is not an admin")
        admin.last_login = datetime.utcnow()
        return None

    if role == "shop":
        shop = db.query(Shop).filter(Shop.wallet_address == address).first()
        if not shop:
            raise HTTPException(status_code=404, detail="Shop not found for this wallet")
        if shop.suspended_at is not None:
            logger.warning(f"🚫 Token refused for suspended shop {shop.shop_id}")
            raise HTTPException(status_code=403, detail="Shop is suspended")
        return shop.shop_id

    customer = db.query(Customer).filter(Customer.address == address).first()
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    if customer.suspended_at is not None:
        logger.warning(f"🚫 Token refused for suspended customer {address}")
        raise HTTPException(status_code=403, detail="Customer account is suspended")
    return None


@router.post("/token")
async def issue_token(
    data: TokenRequest,
    db: Session = Depends(get_db),
    _: None = Depends(auth_rate_limit),
):
    """Issue an access and refresh token for a wallet and role"""
    shop_id = _resolve_role(db, data.address, data.role)

    access_token = create_access_token(data.address, data.role, shop_id)
    refresh_token, token_id, expires_at = create_refresh_token(data.address, data.role, shop_id)

    db.add(
        RefreshToken(
            token_id=token_id,
            user_address=data.address,
            user_role=data.role,
            shop_id=shop_id,
            expires_at=expires_at,
        )
    )
    db.commit()

    logger.info(f"🔑 Issued {data.role} token for {data.address}")
    return {
        "success": True,
        "data": {
            "accessToken": access_token,
            "refreshToken": refresh_token,
            "tokenType": "bearer",
            "user": {"address": data.address, "role": data.role, "shopId": shop_id},
        },
    }


@router.post("/check-user")
async def check_user(
    data: CheckUserRequest,
    db: Session = Depends(get_db),
    _: None = Depends(auth_rate_limit),
):
    """Report which roles an address holds, without issuing a token"""
    shop = db.query(Shop).filter(Shop.wallet_address == data.address).first()
    customer = db.query(Customer).filter(Customer.address == data.address).first()

    return {
        "success": True,
        "data": {
            "address": data.address,
            "isAdmin": is_admin_address(db, data.address),
            "shop": (
                {
                    "shopId": shop.shop_id,
                    "name": shop.name,
                    "verified": shop.verified,
                    "suspended": shop.suspended_at is not None,
                }
                if shop
                else None
            ),
            "customer": (
                {
                    "tier": customer.tier,
                    "suspended": customer.suspended_at is not None,
                }
                if customer
                else None
            ),
        },
    }


@router.post("/refresh")
async def refresh(
    data: RefreshRequest,
    db: Session = Depends(get_db),
    _: None = Depends(auth_rate_limit),
):
    """Exchange a refresh token for a new access token"""
    try:
        payload = decode_jwt_token(data.refreshToken)
    except TokenExpiredError as e:
        raise HTTPException(
            status_code=401, detail="Refresh token expired", headers={"X-Token-Expired": "true"}
        ) from e
    except InvalidTokenError as e:
        raise HTTPException(status_code=401, detail="Invalid refresh token") from e

    if payload.get("type") != "refresh" or not payload.get("jti"):
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    stored = db.query(RefreshToken).filter(RefreshToken.token_id == payload["jti"]).first()
    if not stored or stored.revoked:
        logger.warning(f"⚠️ Revoked or unknown refresh token used by {payload.get('address')}")
        raise HTTPException(status_code=401, detail="Refresh token revoked")

    # Re-check the role so suspensions block refresh as well
    shop_id = _resolve_role(db, stored.user_address, stored.user_role)
    db.commit()

    access_token = create_access_token(stored.user_address, stored.user_role, shop_id)
    return {"success": True, "data": {"accessToken": access_token, "tokenType": "bearer"}}


@router.post("/logout")
async def logout(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Revoke every refresh token of the caller"""
    revoked = (
        db.query(RefreshToken)
        .filter(RefreshToken.user_address == identity.address, RefreshToken.revoked.is_(False))
        .update({"revoked": True, "revoked_at": datetime.utcnow()}, synchronize_session=False)
    )
    db.commit()
    logger.info(f"👋 Logged out {identity.address} ({revoked} refresh tokens revoked)")
    return {"success": True, "message": "Logged out"}
