"""Tier and reward rule tests"""
from datetime import date
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from repaircoin.domain.token.tiers import (
    apply_earnings,
    calculate_base_reward,
    calculate_tier,
    check_earning_limits,
    effective_earnings,
    get_tier_bonus,
    tier_progress,
)


def make_customer(**kwargs):
    defaults = {
        "daily_earnings": 0,
        "monthly_earnings": 0,
        "last_earned_date": None,
        "current_balance": 0,
        "lifetime_earnings": 0,
        "tier": "BRONZE",
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


class TestCalculateTier:
    @pytest.mark.parametrize(
        "lifetime, tier",
        [(0, "BRONZE"), (199.99, "BRONZE"), (200, "SILVER"), (999, "SILVER"), (1000, "GOLD")],
    )
    def test_thresholds(self, lifetime, tier):
        assert calculate_tier(lifetime) == tier

    def test_tier_bonuses(self):
        assert get_tier_bonus("BRONZE") == 10
        assert get_tier_bonus("SILVER") == 20
        assert get_tier_bonus("GOLD") == 30

    def test_unknown_tier_falls_back_to_bronze(self):
        assert get_tier_bonus("PLATINUM") == 10

    def test_progress_to_next_tier(self):
        progress = tier_progress(150)
        assert progress == {"currentTier": "BRONZE", "nextTier": "SILVER", "tokensToNextTier": 50}
        assert tier_progress(1500)["nextTier"] is None


class TestBaseReward:
    def test_small_repair(self):
        assert calculate_base_reward(50) == 10
        assert calculate_base_reward(99.99) == 10

    def test_large_repair(self):
        assert calculate_base_reward(100) == 25
        assert calculate_base_reward(500) == 25

    def test_below_minimum_rejected(self):
        with pytest.raises(HTTPException) as exc:
            calculate_base_reward(49.99)
        assert exc.value.status_code == 400


class TestEarningLimits:
    def test_counters_reset_on_new_day(self):
        today = date(2026, 3, 15)
        daily, monthly = effective_earnings(30, 100, date(2026, 3, 14), today)
        assert daily == 0
        assert monthly == 100

    def test_counters_reset_on_new_month(self):
        daily, monthly = effective_earnings(30, 100, date(2026, 2, 28), date(2026, 3, 1))
        assert (daily, monthly) == (0, 0)

    def test_daily_limit(self):
        today = date(2026, 3, 15)
        customer = make_customer(daily_earnings=25, monthly_earnings=25, last_earned_date=today)
        assert check_earning_limits(customer, 10, today)["allowed"] is True

        result = check_earning_limits(customer, 25, today)
        assert result["allowed"] is False
        assert result["reason"] == "Daily earning limit exceeded"
        assert result["dailyRemaining"] == 15

    def test_monthly_limit(self):
        today = date(2026, 3, 15)
        customer = make_customer(daily_earnings=0, monthly_earnings=490, last_earned_date=date(2026, 3, 10))
        result = check_earning_limits(customer, 25, today)
        assert result["allowed"] is False
        assert result["reason"] == "Monthly earning limit exceeded"

    def test_apply_earnings_counts_base_only_toward_limits(self):
        today = date(2026, 3, 15)
        customer = make_customer(lifetime_earnings=180, current_balance=20)
        apply_earnings(customer, 25, 35, today)

        assert customer.daily_earnings == 25
        assert customer.monthly_earnings == 25
        assert customer.last_earned_date == today
        assert customer.current_balance == 55
        assert customer.lifetime_earnings == 215
        assert customer.tier == "SILVER"
