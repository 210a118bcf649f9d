from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from storeops.container import ServiceContainer
from storeops.core.exceptions import ServiceUnavailableError
from storeops.deps import get_container
from storeops.services import product_settings as product_settings_service
from storeops.services.loyalty import OrderCoins

router = APIRouter()


class RedeemRequest(BaseModel):
    user_id: str
    coins: int = Field(gt=0)
    order_id: str
    description: str = ""


class ReferralCreditRequest(BaseModel):
    user_id: str
    referral_code: str
    referred_user_id: str
    referral_type: Literal["signup", "purchase"]


class OfferCreditRequest(BaseModel):
    user_id: str
    offer_id: str
    offer_name: str
    bonus_coins: int


@router.get("/settings")
async def loyalty_settings(container: ServiceContainer = Depends(get_container)):
    """Current loyalty system settings (static defaults if they can't be read)."""
    settings = await container.settings.get_settings()
    return settings.model_dump(mode="json")


@router.get("/wallet/{user_id}")
async def loyalty_wallet(user_id: str, container: ServiceContainer = Depends(get_container)):
    """Wallet and recent transactions; creates the wallet when the system is enabled."""
    state = await container.loyalty.load_user_state(user_id)
    return {
        "wallet": state.wallet.model_dump(mode="json") if state.wallet else None,
        "transactions": [t.model_dump(mode="json") for t in state.transactions],
        "is_system_enabled": state.settings.is_system_enabled,
    }


@router.get("/transactions/{user_id}")
async def loyalty_transactions(
    user_id: str,
    limit: int = Query(50, ge=1, le=200),
    container: ServiceContainer = Depends(get_container),
):
    """User's coin transactions (newest first)."""
    entries = await container.loyalty.list_transactions(user_id, limit)
    return {"transactions": [t.model_dump(mode="json") for t in entries], "limit": limit}


@router.get("/quote")
async def loyalty_quote(amount: float = Query(..., ge=0), container: ServiceContainer = Depends(get_container)):
    """Coins a purchase of `amount` would earn."""
    return {"amount": amount, "coins": await container.loyalty.quote(amount)}


@router.post("/redeem")
async def loyalty_redeem(body: RedeemRequest, container: ServiceContainer = Depends(get_container)):
    """Redeem coins against an order."""
    ok = await container.loyalty.redeem_coins(body.user_id, body.coins, body.order_id, body.description)
    if not ok:
        raise ServiceUnavailableError("Failed to redeem coins")
    wallet = await container.wallets.get_wallet(body.user_id)
    return {"redeemed": body.coins, "wallet": wallet.model_dump(mode="json") if wallet else None}


@router.post("/credits/order")
async def loyalty_credit_order(body: OrderCoins, container: ServiceContainer = Depends(get_container)):
    """Credit coins for a completed order."""
    return {"credited": await container.loyalty.credit_coins_for_order(body)}


@router.post("/credits/referral")
async def loyalty_credit_referral(body: ReferralCreditRequest, container: ServiceContainer = Depends(get_container)):
    credited = await container.loyalty.credit_coins_for_referral(
        body.user_id, body.referral_code, body.referred_user_id, body.referral_type
    )
    return {"credited": credited}


@router.post("/credits/offer")
async def loyalty_credit_offer(body: OfferCreditRequest, container: ServiceContainer = Depends(get_container)):
    credited = await container.loyalty.credit_coins_for_offer(
        body.user_id, body.offer_id, body.offer_name, body.bonus_coins
    )
    return {"credited": credited}


@router.get("/products/{product_id}")
async def loyalty_product_settings(product_id: str, container: ServiceContainer = Depends(get_container)):
    """Per-product loyalty settings, created with defaults on first lookup."""
    settings = await product_settings_service.get_product_settings(container.backend, product_id)
    if settings is None:
        raise ServiceUnavailableError("Failed to load product loyalty settings")
    return settings.model_dump(mode="json")
