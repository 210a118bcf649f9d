"""Per-product earn/redeem overrides, created with defaults on first lookup."""

from typing import Any

from storeops.backend.base import BackendClient, BackendError, eq
from storeops.core.exceptions import BadRequestError
from storeops.core.logging import get_logger
from storeops.models.loyalty_settings import PRODUCT_TABLE, ProductLoyaltySettings

log = get_logger(__name__)

EDITABLE_FIELDS = (
    "coins_earned_per_purchase",
    "coins_required_to_buy",
    "is_coin_purchase_enabled",
    "is_coin_earning_enabled",
)


async def get_product_settings(backend: BackendClient, product_id: str) -> ProductLoyaltySettings | None:
    """Settings for a product, auto-created by the backend function when first seen.

    Falls back to a plain read; None only when nothing exists and creation failed.
    """
    try:
        data = await backend.rpc("get_or_create_loyalty_settings", {"input_product_id": product_id})
        if data:
            return ProductLoyaltySettings.model_validate(data[0] if isinstance(data, list) else data)
    except BackendError as exc:
        log.warning("product_settings_rpc_unavailable", product_id=product_id, code=exc.code)

    try:
        row = await backend.select_one(PRODUCT_TABLE, eq("product_id", product_id))
    except BackendError as exc:
        if not exc.is_no_rows():
            log.error("product_settings_read_failed", product_id=product_id, code=exc.code)
        return None
    return ProductLoyaltySettings.model_validate(row)


async def update_product_settings(
    backend: BackendClient, product_id: str, patch: dict[str, Any]
) -> ProductLoyaltySettings:
    unknown = set(patch) - set(EDITABLE_FIELDS)
    if unknown:
        raise BadRequestError("Unknown product settings fields", details={"fields": sorted(unknown)})
    current = await get_product_settings(backend, product_id) or ProductLoyaltySettings(product_id=product_id)
    merged = ProductLoyaltySettings.model_validate({**current.model_dump(), **patch})
    row = merged.model_dump(mode="json", exclude_none=True)
    saved = await backend.upsert(PRODUCT_TABLE, row, on_conflict="product_id")
    return ProductLoyaltySettings.model_validate(saved)
