"""Coin accrual and redemption rules."""

import math
from datetime import date, datetime, timedelta, timezone

import pytest

from storeops.models.loyalty_settings import SystemSettings
from storeops.models.wallet import Wallet
from storeops.services.rules import (
    calculate_coins_earned,
    can_redeem_coins,
    coins_expiry,
    festive_active,
    is_order_eligible,
    referral_coins,
)


@pytest.mark.parametrize(
    "amount,rate,multiplier",
    [(1234.56, 0.10, 1.5), (999.99, 0.10, 1.0), (50, 0.25, 2.0), (10, 0.03, 1.0), (7777.7, 0.07, 1.25)],
)
def test_coins_earned_floors_each_step(amount, rate, multiplier):
    settings = SystemSettings(default_coins_per_rupee=rate, global_coins_multiplier=multiplier)
    expected = math.floor(math.floor(round(amount * rate, 6)) * multiplier)
    assert calculate_coins_earned(amount, settings) == expected


def test_coins_earned_exact_values():
    settings = SystemSettings(default_coins_per_rupee=0.10, global_coins_multiplier=1.5)
    assert calculate_coins_earned(1234.56, settings) == 184
    assert calculate_coins_earned(9.99, settings) == 0


def test_coins_earned_clamped_at_max_per_order():
    settings = SystemSettings(default_coins_per_rupee=0.10, max_coins_per_order=100)
    assert calculate_coins_earned(5000, settings) == 100
    assert calculate_coins_earned(500, settings) == 50


def test_coins_earned_zero_when_disabled_or_non_positive():
    assert calculate_coins_earned(1000, SystemSettings(is_system_enabled=False)) == 0
    assert calculate_coins_earned(0, SystemSettings()) == 0
    assert calculate_coins_earned(-50, SystemSettings()) == 0


def test_festive_multiplier_applies_when_active():
    settings = SystemSettings(default_coins_per_rupee=0.10, festive_multiplier=2.0, is_festive_active=True)
    assert calculate_coins_earned(1234.56, settings) == 246


def test_festive_window_used_when_flag_unset():
    today = date(2026, 10, 20)
    settings = SystemSettings(
        festive_multiplier=2.0,
        is_festive_active=None,
        festive_start_date=today - timedelta(days=1),
        festive_end_date=today + timedelta(days=1),
    )
    assert festive_active(settings, today)
    assert not festive_active(settings, today + timedelta(days=5))
    assert calculate_coins_earned(100, settings, today) == 20


def test_stored_festive_flag_wins_over_window():
    today = date(2026, 10, 20)
    settings = SystemSettings(is_festive_active=False, festive_start_date=today, festive_end_date=today)
    assert not festive_active(settings, today)


def test_cannot_redeem_below_minimum_regardless_of_balance():
    settings = SystemSettings(min_coins_to_redeem=10)
    wallet = Wallet(user_id="u1", total_coins_earned=100, available_coins=100)
    assert can_redeem_coins(wallet, settings, 5) is False
    assert can_redeem_coins(wallet, settings, 10) is True


def test_cannot_redeem_more_than_available():
    settings = SystemSettings(min_coins_to_redeem=10)
    wallet = Wallet(user_id="u1", total_coins_earned=40, total_coins_used=20, available_coins=20)
    assert can_redeem_coins(wallet, settings, 21) is False
    assert can_redeem_coins(wallet, settings, 20) is True


def test_cannot_redeem_without_wallet_or_when_disabled():
    wallet = Wallet(user_id="u1", total_coins_earned=100, available_coins=100)
    assert can_redeem_coins(None, SystemSettings(), 50) is False
    assert can_redeem_coins(wallet, SystemSettings(is_system_enabled=False), 50) is False


def test_order_eligibility():
    assert is_order_eligible(100, SystemSettings())
    assert not is_order_eligible(100, SystemSettings(min_order_amount=500))
    assert not is_order_eligible(1000, SystemSettings(is_system_enabled=False))


def test_referral_coins():
    assert referral_coins("signup", 50, 100) == 50
    assert referral_coins("purchase", 50, 100) == 100
    with pytest.raises(ValueError):
        referral_coins("bogus", 50, 100)


def test_coins_expiry():
    created = datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert coins_expiry(created, SystemSettings()) is None
    assert coins_expiry(created, SystemSettings(coin_expiry_days=30)) == created + timedelta(days=30)
