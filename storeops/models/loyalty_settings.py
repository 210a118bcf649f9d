from datetime import date
from typing import ClassVar

from pydantic import BaseModel, Field

SYSTEM_TABLE = "loyalty_system_settings"
PRODUCT_TABLE = "loyalty_product_settings"


class SystemSettings(BaseModel):
    """Process-wide loyalty configuration (single row)."""

    table_name: ClassVar[str] = SYSTEM_TABLE

    id: str | None = None
    is_system_enabled: bool = True
    global_coins_multiplier: float = Field(default=1.0, ge=0)
    default_coins_per_rupee: float = Field(default=0.10, ge=0)
    coin_expiry_days: int | None = None
    min_coins_to_redeem: int = Field(default=10, ge=0)
    max_coins_per_order: int | None = None
    min_order_amount: float | None = None
    festive_multiplier: float = Field(default=1.0, ge=0)
    festive_start_date: date | None = None
    festive_end_date: date | None = None
    is_festive_active: bool | None = False


class ProductLoyaltySettings(BaseModel):
    table_name: ClassVar[str] = PRODUCT_TABLE

    id: str | None = None
    product_id: str
    coins_earned_per_purchase: int = Field(default=0, ge=0)
    coins_required_to_buy: int = Field(default=0, ge=0)
    is_coin_purchase_enabled: bool = False
    is_coin_earning_enabled: bool = True
