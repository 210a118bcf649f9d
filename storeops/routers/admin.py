from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from storeops.container import ServiceContainer
from storeops.deps import get_container
from storeops.services import ledger
from storeops.services import product_settings as product_settings_service

router = APIRouter()


class SettingsUpdate(BaseModel):
    is_system_enabled: bool | None = None
    default_coins_per_rupee: float | None = Field(default=None, ge=0)
    global_coins_multiplier: float | None = Field(default=None, ge=0)
    min_coins_to_redeem: int | None = Field(default=None, ge=0)
    max_coins_per_order: int | None = Field(default=None, ge=0)
    coin_expiry_days: int | None = Field(default=None, ge=0)
    min_order_amount: float | None = Field(default=None, ge=0)
    festive_multiplier: float | None = Field(default=None, ge=0)
    is_festive_active: bool | None = None
    festive_start_date: date | None = None
    festive_end_date: date | None = None


class ProductSettingsUpdate(BaseModel):
    coins_earned_per_purchase: int | None = Field(default=None, ge=0)
    coins_required_to_buy: int | None = Field(default=None, ge=0)
    is_coin_purchase_enabled: bool | None = None
    is_coin_earning_enabled: bool | None = None


class AdjustmentRequest(BaseModel):
    user_id: str
    coins: int = Field(gt=0)
    type: Literal["add", "remove"]
    reason: str = Field(min_length=1)
    actor_id: str | None = None


@router.put("/settings")
async def admin_update_settings(body: SettingsUpdate, container: ServiceContainer = Depends(get_container)):
    """Admin: update loyalty system settings."""
    patch = body.model_dump(exclude_unset=True)
    settings = await container.settings.update_settings(patch)
    return settings.model_dump(mode="json")


@router.put("/products/{product_id}")
async def admin_update_product_settings(
    product_id: str, body: ProductSettingsUpdate, container: ServiceContainer = Depends(get_container)
):
    patch = body.model_dump(exclude_unset=True, exclude_none=True)
    settings = await product_settings_service.update_product_settings(container.backend, product_id, patch)
    return settings.model_dump(mode="json")


@router.get("/wallets")
async def admin_wallets(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    container: ServiceContainer = Depends(get_container),
):
    wallets = await container.wallets.list_wallets(limit, offset)
    return {"wallets": [w.model_dump(mode="json") for w in wallets], "limit": limit, "offset": offset}


@router.get("/transactions")
async def admin_transactions(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    container: ServiceContainer = Depends(get_container),
):
    entries = await ledger.list_all(container.backend, limit, offset)
    return {"transactions": [t.model_dump(mode="json") for t in entries], "limit": limit, "offset": offset}


@router.post("/adjust")
async def admin_adjust(body: AdjustmentRequest, container: ServiceContainer = Depends(get_container)):
    """Admin: add or remove coins with a reason."""
    wallet = await container.loyalty.manual_adjustment(body.user_id, body.coins, body.type, body.reason, body.actor_id)
    return wallet.model_dump(mode="json")


@router.get("/stats")
async def admin_stats(container: ServiceContainer = Depends(get_container)):
    return await container.loyalty.dashboard_stats()


@router.post("/wallets/{user_id}/reconcile")
async def admin_reconcile(user_id: str, container: ServiceContainer = Depends(get_container)):
    """Admin: rebuild a wallet from its ledger."""
    in_sync = await container.wallets.verify_wallet_sync(user_id)
    wallet = await container.wallets.reconcile_wallet(user_id)
    return {"was_in_sync": in_sync, "wallet": wallet.model_dump(mode="json")}


@router.post("/wallets/{user_id}/expire")
async def admin_expire(user_id: str, container: ServiceContainer = Depends(get_container)):
    return {"expired": await container.loyalty.expire_coins(user_id)}
