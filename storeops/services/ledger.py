"""Coin transaction ledger: append-only, the source of truth for wallets."""

from datetime import datetime, timezone

from storeops.backend.base import BackendClient, BackendError, eq, timestamp
from storeops.core.exceptions import BadRequestError
from storeops.core.logging import get_logger
from storeops.models.coin_transaction import CREDIT_TYPES, TABLE, CoinTransaction, LedgerTotals

log = get_logger(__name__)


def check_sign(entry: CoinTransaction) -> None:
    if entry.coins_amount == 0:
        raise BadRequestError("Transaction amount must be non-zero")
    if entry.transaction_type in CREDIT_TYPES and entry.coins_amount < 0:
        raise BadRequestError(f"{entry.transaction_type} transactions must be positive")
    if entry.transaction_type not in CREDIT_TYPES and entry.coins_amount > 0:
        raise BadRequestError(f"{entry.transaction_type} transactions must be negative")


async def append_transaction(backend: BackendClient, entry: CoinTransaction) -> bool:
    """Insert one record. Does not touch the wallet; the caller updates it afterwards."""
    check_sign(entry)
    try:
        await backend.insert(TABLE, entry.to_row())
    except BackendError as exc:
        log.error(
            "ledger_append_failed",
            user_id=entry.user_id,
            transaction_type=entry.transaction_type,
            coins=entry.coins_amount,
            code=exc.code,
        )
        return False
    return True


async def list_transactions(backend: BackendClient, user_id: str, limit: int = 50) -> list[CoinTransaction]:
    """User's transactions, newest first. Empty when the ledger can't be read."""
    try:
        rows = await backend.select(TABLE, eq("user_id", user_id), order_by="created_at", descending=True, limit=limit)
    except BackendError as exc:
        if exc.is_missing_relation():
            log.warning("ledger_table_missing", user_id=user_id)
        else:
            log.error("ledger_read_failed", user_id=user_id, code=exc.code)
        return []
    return [CoinTransaction.model_validate(r) for r in rows]


async def list_all(backend: BackendClient, limit: int = 100, offset: int = 0) -> list[CoinTransaction]:
    try:
        rows = await backend.select(TABLE, order_by="created_at", descending=True, limit=limit, offset=offset)
    except BackendError as exc:
        log.error("ledger_read_failed", code=exc.code)
        return []
    return [CoinTransaction.model_validate(r) for r in rows]


async def ledger_totals(backend: BackendClient, user_id: str) -> LedgerTotals:
    """Earned and used coins summed over the whole ledger."""
    rows = await backend.select(TABLE, eq("user_id", user_id), columns=["coins_amount"])
    totals = LedgerTotals()
    for row in rows:
        amount = int(row.get("coins_amount") or 0)
        if amount > 0:
            totals.earned += amount
        else:
            totals.used += -amount
    return totals


def _consume(lots: list[list], amount: int) -> None:
    for lot in lots:
        if amount <= 0:
            return
        take = min(lot[1], amount)
        lot[1] -= take
        amount -= take


async def expirable_coins(backend: BackendClient, user_id: str, now: datetime | None = None) -> int:
    """Unspent coins from earn entries whose expires_at has passed.

    Replays the ledger oldest first, one lot per credit. Spending draws from
    the oldest lots; earlier expiries draw from the soonest-expiring lots.
    """
    cutoff = timestamp(now or datetime.now(timezone.utc))
    rows = await backend.select(
        TABLE,
        eq("user_id", user_id),
        columns=["transaction_type", "coins_amount", "expires_at", "created_at"],
        order_by="created_at",
    )
    lots: list[list] = []  # [expires_at, remaining]
    for row in rows:
        amount = int(row.get("coins_amount") or 0)
        if amount > 0:
            lots.append([row.get("expires_at"), amount])
        elif row.get("transaction_type") == "expired":
            _consume(sorted((lot for lot in lots if lot[0]), key=lambda lot: lot[0]), -amount)
        else:
            _consume(lots, -amount)
    return sum(remaining for expires_at, remaining in lots if expires_at and expires_at <= cutoff)
