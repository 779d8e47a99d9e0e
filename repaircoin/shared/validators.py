"""Shared validation utilities"""

import re
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import HTTPException

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")
TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
SHOP_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]{2,99}$")


def is_valid_address(value: Optional[str]) -> bool:
    """Check wallet address format (0x + 40 hex characters)"""
    return bool(value) and bool(ADDRESS_PATTERN.match(value))


def normalize_address(address: Optional[str]) -> str:
    """
    Validate a wallet address and return it lower-cased.

    Raises:
        ValueError: If the address is not 0x followed by 40 hex characters
    """
    if not address or not ADDRESS_PATTERN.match(address.strip()):
        raise ValueError("Invalid wallet address format")
    return address.strip().lower()


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def validate_time(value: Optional[str]) -> Optional[str]:
    """Validate a 24h "HH:MM" time string"""
    if value is None:
        return value
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM format")
    return value


def validate_shop_id(shop_id: str) -> str:
    """Shop ids are lower-case slugs of 3-100 characters"""
    shop_id = (shop_id or "").strip().lower()
    if not SHOP_ID_PATTERN.match(shop_id):
        raise ValueError(
            "Shop ID must be 3-100 characters of lowercase letters, digits, '-' or '_'"
        )
    return shop_id


def time_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def minutes_to_time(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD string"""
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError) as e:
        raise ValueError("Date must be in YYYY-MM-DD format") from e


def address_param(address: str) -> str:
    """Normalize an address taken from a URL path; 400 when malformed"""
    try:
        return normalize_address(address)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored datetimes are naive UTC"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
