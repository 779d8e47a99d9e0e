import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .config import ADMIN_ADDRESSES
from .database import get_db
from .models import Admin, Customer, Shop
from .security_utils import InvalidTokenError, TokenExpiredError, decode_jwt_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

ROLES = ("admin", "shop", "customer")


@dataclass
class Identity:
    """Authenticated caller decoded from an access token"""

    address: str
    role: str
    shop_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def is_env_admin(address: str) -> bool:
    return address.lower() in ADMIN_ADDRESSES


def find_admin(db: Session, address: str) -> Optional[Admin]:
    return (
        db.query(Admin)
        .filter(Admin.wallet_address == address.lower(), Admin.is_active.is_(True))
        .first()
    )


def is_admin_address(db: Session, address: str) -> bool:
    return is_env_admin(address) or find_admin(db, address) is not None


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Identity:
    """Get the caller from the bearer access token"""

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    try:
        payload = decode_jwt_token(credentials.credentials)
    except TokenExpiredError as e:
        raise HTTPException(
            status_code=401,
            detail="Token expired",
            headers={"X-Token-Expired": "true"},
        ) from e
    except InvalidTokenError as e:
        raise HTTPException(status_code=401, detail="Invalid token") from e

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type")

    address = payload.get("address")
    role = payload.get("role")
    if not address or role not in ROLES:
        raise HTTPException(status_code=401, detail="Invalid token claims")

    identity = Identity(address=address.lower(), role=role, shop_id=payload.get("shopId"))

    # Suspensions take effect immediately, not when the token expires
    if role == "shop":
        shop = db.query(Shop).filter(Shop.shop_id == identity.shop_id).first()
        if not shop or shop.wallet_address != identity.address:
            raise HTTPException(status_code=401, detail="Shop no longer exists")
        if shop.suspended_at is not None:
            logger.warning(f"⚠️ Suspended shop {shop.shop_id} attempted access")
            raise HTTPException(status_code=403, detail="Shop is suspended")
    elif role == "customer":
        customer = db.query(Customer).filter(Customer.address == identity.address).first()
        if not customer:
            raise HTTPException(status_code=401, detail="Customer no longer exists")
        if customer.suspended_at is not None:
            raise HTTPException(status_code=403, detail="Customer account is suspended")
    elif not is_admin_address(db, identity.address):
        raise HTTPException(status_code=403, detail="Admin access has been revoked")

    return identity


async def get_optional_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[Identity]:
    """Like get_current_identity but anonymous callers get None"""
    if not credentials:
        return None
    try:
        return await get_current_identity(credentials, db)
    except HTTPException:
        return None


def _require_roles(*roles: str):
    async def dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        if identity.role not in roles:
            raise HTTPException(
                status_code=403,
                detail=f"This endpoint requires {' or '.join(roles)} role",
            )
        return identity

    return dependency


require_admin = _require_roles("admin")
require_shop = _require_roles("shop")
require_customer = _require_roles("customer")
require_shop_or_admin = _require_roles("shop", "admin")


def ensure_shop_access(identity: Identity, shop_id: str) -> None:
    """Shops may only act on their own shop; admins on any"""
    if identity.is_admin:
        return
    if identity.role != "shop" or identity.shop_id != shop_id:
        raise HTTPException(status_code=403, detail="You can only access your own shop")


def ensure_self_or_admin(identity: Identity, address: str) -> None:
    if identity.is_admin:
        return
    if identity.address != address.lower():
        raise HTTPException(status_code=403, detail="You can only access your own account")
