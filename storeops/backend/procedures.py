"""Server-side functions callable through BackendClient.rpc.

Written against the abstract client so every backend registers the same set.
Argument names follow the hosted database's function signatures.
"""

from typing import Any

from storeops.backend.base import RAISE_EXCEPTION, BackendClient, BackendError, eq, gte, timestamp
from storeops.models.coin_transaction import CREDIT_TYPES, DEBIT_TYPES
from storeops.models.coin_transaction import TABLE as TRANSACTIONS_TABLE
from storeops.models.loyalty_settings import PRODUCT_TABLE, ProductLoyaltySettings
from storeops.models.wallet import TABLE as WALLET_TABLE
from storeops.models.wallet import Wallet


async def _get_or_create(backend: BackendClient, table: str, column: str, value: str, row: dict[str, Any]) -> dict[str, Any]:
    found = await backend.select(table, eq(column, value), limit=1)
    if found:
        return found[0]
    try:
        return (await backend.insert(table, row))[0]
    except BackendError as exc:
        # lost a creation race; the other writer's row is the one
        if exc.is_unique_violation():
            return await backend.select_one(table, eq(column, value))
        raise


async def _wallet_row(backend: BackendClient, user_id: str) -> dict[str, Any]:
    fresh = Wallet(user_id=user_id).model_dump(mode="json", exclude_none=True)
    fresh["last_updated"] = timestamp()
    return await _get_or_create(backend, WALLET_TABLE, "user_id", user_id, fresh)


async def get_user_wallet_safe(backend: BackendClient, input_user_id: str) -> list[dict[str, Any]]:
    return [await _wallet_row(backend, input_user_id)]


async def initialize_user_wallet(backend: BackendClient, p_user_id: str) -> dict[str, Any]:
    return await _wallet_row(backend, p_user_id)


async def update_user_coin_wallet_safe(
    backend: BackendClient, p_user_id: str, p_coins_change: int, p_transaction_type: str
) -> dict[str, Any]:
    """Apply a coin movement to the wallet aggregate.

    p_coins_change is a magnitude for debits (redeemed, manual_remove, expired).
    """
    wallet = Wallet.model_validate(await _wallet_row(backend, p_user_id))
    change = abs(int(p_coins_change))
    earned, used = wallet.total_coins_earned, wallet.total_coins_used
    if p_transaction_type in CREDIT_TYPES:
        earned += change
    elif p_transaction_type in DEBIT_TYPES:
        if change > wallet.available_coins:
            raise BackendError(RAISE_EXCEPTION, f"Insufficient coins: available {wallet.available_coins}, requested {change}")
        used += change
    else:
        raise BackendError(RAISE_EXCEPTION, f"Unknown transaction type: {p_transaction_type}")
    patch = {
        "total_coins_earned": earned,
        "total_coins_used": used,
        "available_coins": earned - used,
        "last_updated": timestamp(),
    }
    rows = await backend.update(WALLET_TABLE, patch, eq("user_id", p_user_id))
    return rows[0]


async def get_or_create_loyalty_settings(backend: BackendClient, input_product_id: str) -> list[dict[str, Any]]:
    defaults = ProductLoyaltySettings(product_id=input_product_id).model_dump(mode="json", exclude_none=True)
    return [await _get_or_create(backend, PRODUCT_TABLE, "product_id", input_product_id, defaults)]


async def calculate_monthly_salary(backend: BackendClient, emp_id: str, month: int, year: int) -> list[dict[str, float]]:
    from storeops.models.employee import TABLE as EMPLOYEE_TABLE
    from storeops.models.employee import Employee
    from storeops.services import payroll

    employee = Employee.model_validate(await backend.select_one(EMPLOYEE_TABLE, eq("id", emp_id)))
    summary = await payroll.get_attendance_summary(backend, emp_id, month, year)
    record = payroll.build_salary_record(employee, month, year, summary)
    return [
        {
            "calculated_gross": record.gross_salary,
            "calculated_deductions": record.total_deductions,
            "calculated_net": record.net_salary,
        }
    ]


async def get_loyalty_dashboard_stats(backend: BackendClient, active_since: str | None = None) -> dict[str, int]:
    wallets = await backend.select(WALLET_TABLE, columns=["total_coins_earned", "total_coins_used"])
    recent = []
    if active_since:
        recent = await backend.select(TRANSACTIONS_TABLE, gte("created_at", active_since), columns=["user_id"])
    return {
        "total_users": len(wallets),
        "total_coins_issued": sum(w.get("total_coins_earned") or 0 for w in wallets),
        "total_coins_redeemed": sum(w.get("total_coins_used") or 0 for w in wallets),
        "active_users": len({t["user_id"] for t in recent}),
        "total_transactions": await backend.count(TRANSACTIONS_TABLE),
    }


PROCEDURES = {
    "get_user_wallet_safe": get_user_wallet_safe,
    "initialize_user_wallet": initialize_user_wallet,
    "update_user_coin_wallet_safe": update_user_coin_wallet_safe,
    "get_or_create_loyalty_settings": get_or_create_loyalty_settings,
    "calculate_monthly_salary": calculate_monthly_salary,
    "get_loyalty_dashboard_stats": get_loyalty_dashboard_stats,
}
