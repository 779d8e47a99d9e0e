"""
Customer tier and reward rules.

Tiers come from lifetime earnings:
    BRONZE < 200 <= SILVER < 1000 <= GOLD

Every qualifying repair earns a base reward from the repair amount plus a flat
tier bonus. Daily and monthly earning limits apply to the base reward only.
"""

from datetime import date
from typing import Optional

from fastapi import HTTPException

SILVER_THRESHOLD = 200
GOLD_THRESHOLD = 1000

DAILY_EARNING_LIMIT = 40
MONTHLY_EARNING_LIMIT = 500

MINIMUM_REPAIR_AMOUNT = 50
LARGE_REPAIR_AMOUNT = 100
SMALL_REPAIR_REWARD = 10
LARGE_REPAIR_REWARD = 25

TIER_BONUSES = {"BRONZE": 10, "SILVER": 20, "GOLD": 30}

TIER_BENEFITS = {
    "BRONZE": {
        "earningMultiplier": 1.0,
        "maxDailyEarnings": 50,
        "maxMonthlyEarnings": 500,
        "crossShopRedemptionLimit": 10,
        "engagementMultiplier": 1.0,
        "specialBenefits": ["Basic customer support", "Standard earning rate"],
    },
    "SILVER": {
        "earningMultiplier": 2.0,
        "maxDailyEarnings": 80,
        "maxMonthlyEarnings": 1000,
        "crossShopRedemptionLimit": 20,
        "engagementMultiplier": 1.5,
        "specialBenefits": [
            "Priority customer support",
            "2x earning rate",
            "Exclusive promotions",
        ],
    },
    "GOLD": {
        "earningMultiplier": 3.0,
        "maxDailyEarnings": 120,
        "maxMonthlyEarnings": 1500,
        "crossShopRedemptionLimit": 30,
        "engagementMultiplier": 2.0,
        "specialBenefits": [
            "VIP customer support",
            "3x earning rate",
            "Early access to new features",
            "Special event invitations",
        ],
    },
}

TIERS = tuple(TIER_BONUSES)


def calculate_tier(lifetime_earnings: float) -> str:
    if lifetime_earnings >= GOLD_THRESHOLD:
        return "GOLD"
    if lifetime_earnings >= SILVER_THRESHOLD:
        return "SILVER"
    return "BRONZE"


def get_tier_benefits(tier: str) -> dict:
    return TIER_BENEFITS.get(tier, TIER_BENEFITS["BRONZE"])


def get_tier_bonus(tier: str) -> int:
    return TIER_BONUSES.get(tier, TIER_BONUSES["BRONZE"])


def calculate_base_reward(repair_amount: float) -> int:
    """Base RCN for a repair; raises 400 below the minimum repair amount"""
    if repair_amount >= LARGE_REPAIR_AMOUNT:
        return LARGE_REPAIR_REWARD
    if repair_amount >= MINIMUM_REPAIR_AMOUNT:
        return SMALL_REPAIR_REWARD
    raise HTTPException(
        status_code=400,
        detail=f"Repair amount must be at least ${MINIMUM_REPAIR_AMOUNT} to earn rewards",
    )


def is_eligible_repair(repair_amount: float) -> bool:
    return repair_amount >= MINIMUM_REPAIR_AMOUNT


def effective_earnings(
    daily_earnings: float,
    monthly_earnings: float,
    last_earned_date: Optional[date],
    today: Optional[date] = None,
) -> tuple[float, float]:
    """Daily/monthly counters after applying day and month resets"""
    today = today or date.today()
    if last_earned_date is None:
        return 0, 0
    daily = daily_earnings if last_earned_date == today else 0
    same_month = (last_earned_date.year, last_earned_date.month) == (today.year, today.month)
    monthly = monthly_earnings if same_month else 0
    return daily, monthly


def earning_capacity(customer, today: Optional[date] = None) -> dict:
    """Remaining daily and monthly base-reward allowance for a customer"""
    daily, monthly = effective_earnings(
        customer.daily_earnings or 0,
        customer.monthly_earnings or 0,
        customer.last_earned_date,
        today,
    )
    return {
        "dailyEarnings": daily,
        "monthlyEarnings": monthly,
        "dailyLimit": DAILY_EARNING_LIMIT,
        "monthlyLimit": MONTHLY_EARNING_LIMIT,
        "dailyRemaining": max(0, DAILY_EARNING_LIMIT - daily),
        "monthlyRemaining": max(0, MONTHLY_EARNING_LIMIT - monthly),
    }


def check_earning_limits(customer, amount: float, today: Optional[date] = None) -> dict:
    """
    Check a base reward against the daily and monthly limits.

    Returns:
        dict with 'allowed', 'reason' and the capacity data
    """
    capacity = earning_capacity(customer, today)
    if capacity["dailyEarnings"] + amount > DAILY_EARNING_LIMIT:
        return {"allowed": False, "reason": "Daily earning limit exceeded", **capacity}
    if capacity["monthlyEarnings"] + amount > MONTHLY_EARNING_LIMIT:
        return {"allowed": False, "reason": "Monthly earning limit exceeded", **capacity}
    return {"allowed": True, "reason": None, **capacity}


def apply_earnings(customer, base_reward: float, total_reward: float, today: Optional[date] = None):
    """Update a customer's counters, balances and tier after a reward"""
    today = today or date.today()
    daily, monthly = effective_earnings(
        customer.daily_earnings or 0,
        customer.monthly_earnings or 0,
        customer.last_earned_date,
        today,
    )
    customer.daily_earnings = daily + base_reward
    customer.monthly_earnings = monthly + base_reward
    customer.last_earned_date = today
    credit_lifetime(customer, total_reward)


def credit_lifetime(customer, amount: float) -> None:
    """Credit balance and lifetime earnings and recompute tier"""
    customer.current_balance = (customer.current_balance or 0) + amount
    customer.lifetime_earnings = (customer.lifetime_earnings or 0) + amount
    customer.tier = calculate_tier(customer.lifetime_earnings)


def tier_progress(lifetime_earnings: float) -> dict:
    tier = calculate_tier(lifetime_earnings)
    if tier == "BRONZE":
        next_tier, needed = "SILVER", SILVER_THRESHOLD - lifetime_earnings
    elif tier == "SILVER":
        next_tier, needed = "GOLD", GOLD_THRESHOLD - lifetime_earnings
    else:
        next_tier, needed = None, 0
    return {"currentTier": tier, "nextTier": next_tier, "tokensToNextTier": max(0, needed)}
