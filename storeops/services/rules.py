"""Coin accrual and redemption rules. Pure functions of settings and wallet state."""

import math
from datetime import date, datetime, timedelta
from decimal import Decimal

from storeops.models.loyalty_settings import SystemSettings
from storeops.models.wallet import Wallet


def _dec(value: float | int) -> Decimal:
    # via str so 0.1 stays 0.1 and floor() is exact
    return Decimal(str(value))


def festive_active(settings: SystemSettings, today: date | None = None) -> bool:
    """Stored flag wins; without one, the festive window decides."""
    if settings.is_festive_active is not None:
        return settings.is_festive_active
    if settings.festive_start_date and settings.festive_end_date:
        today = today or date.today()
        return settings.festive_start_date <= today <= settings.festive_end_date
    return False


def calculate_coins_earned(amount: float, settings: SystemSettings, today: date | None = None) -> int:
    """Coins for a purchase amount: rate, global multiplier, festive multiplier, per-order cap."""
    if not settings.is_system_enabled or amount <= 0:
        return 0
    coins = math.floor(_dec(amount) * _dec(settings.default_coins_per_rupee))
    coins = math.floor(coins * _dec(settings.global_coins_multiplier))
    if festive_active(settings, today):
        coins = math.floor(coins * _dec(settings.festive_multiplier))
    if settings.max_coins_per_order and coins > settings.max_coins_per_order:
        coins = settings.max_coins_per_order
    return int(coins)


def can_redeem_coins(wallet: Wallet | None, settings: SystemSettings, coins_required: int) -> bool:
    if wallet is None:
        return False
    if not settings.is_system_enabled:
        return False
    if coins_required < settings.min_coins_to_redeem:
        return False
    return wallet.available_coins >= coins_required


def is_order_eligible(amount: float, settings: SystemSettings) -> bool:
    if not settings.is_system_enabled:
        return False
    if settings.min_order_amount and amount < settings.min_order_amount:
        return False
    return True


def referral_coins(referral_type: str, signup_coins: int, purchase_coins: int) -> int:
    if referral_type == "signup":
        return signup_coins
    if referral_type == "purchase":
        return purchase_coins
    raise ValueError(f"Unknown referral type: {referral_type}")


def coins_expiry(created_at: datetime, settings: SystemSettings) -> datetime | None:
    """When coins earned at created_at expire; None if coins never expire."""
    if not settings.coin_expiry_days:
        return None
    return created_at + timedelta(days=settings.coin_expiry_days)
