"""
JWT helpers for wallet sessions
Access and refresh tokens are HS256 JWTs signed with JWT_SECRET
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

from jose import ExpiredSignatureError, JWTError
from jose import jwt as jose_jwt

from .config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    JWT_ALGORITHM,
    JWT_SECRET,
    REFRESH_TOKEN_EXPIRE_DAYS,
)

logger = logging.getLogger(__name__)


class TokenExpiredError(Exception):
    pass


class InvalidTokenError(Exception):
    pass


def create_jwt_token(data: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT token

    Args:
        data: Data to encode in the token
        expires_delta: Token expiration time (default 15 minutes)
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=15)

    to_encode.update({"exp": expire})
    return jose_jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_jwt_token(token: str) -> dict[str, Any]:
    """
    Verify and decode a JWT token

    Raises:
        TokenExpiredError: signature valid but token expired
        InvalidTokenError: any other verification failure
    """
    try:
        return jose_jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError as e:
        raise TokenExpiredError("Token expired") from e
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        raise InvalidTokenError("Invalid token") from e


def create_access_token(address: str, role: str, shop_id: Optional[str] = None) -> str:
    claims = {"address": address, "role": role, "type": "access"}
    if shop_id:
        claims["shopId"] = shop_id
    return create_jwt_token(claims, timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))


def create_refresh_token(
    address: str, role: str, shop_id: Optional[str] = None
) -> tuple[str, str, datetime]:
    """Returns (token, jti, expires_at)"""
    token_id = uuid.uuid4().hex
    expires_at = datetime.utcnow() + timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)
    claims = {"address": address, "role": role, "type": "refresh", "jti": token_id}
    if shop_id:
        claims["shopId"] = shop_id
    token = create_jwt_token(claims, timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS))
    return token, token_id, expires_at
