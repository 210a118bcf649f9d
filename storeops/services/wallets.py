"""Per-user coin wallets: a cached aggregate of the ledger."""

from storeops.backend.base import BackendClient, BackendError, eq, timestamp
from storeops.core.logging import get_logger
from storeops.models.coin_transaction import CREDIT_TYPES, DEBIT_TYPES
from storeops.models.loyalty_settings import SystemSettings
from storeops.models.wallet import TABLE, Wallet
from storeops.services import ledger

log = get_logger(__name__)


class WalletStore:
    def __init__(self, backend: BackendClient) -> None:
        self._backend = backend
        self._initializing: set[str] = set()

    async def get_wallet(self, user_id: str) -> Wallet | None:
        """Get-or-create through the backend function; plain read (no create) if it is missing."""
        try:
            data = await self._backend.rpc("get_user_wallet_safe", {"input_user_id": user_id})
        except BackendError as exc:
            log.warning("wallet_rpc_unavailable", user_id=user_id, code=exc.code)
            return await self._read_wallet(user_id)
        row = data[0] if isinstance(data, list) and data else data
        return Wallet.model_validate(row) if row else None

    async def _read_wallet(self, user_id: str) -> Wallet | None:
        try:
            row = await self._backend.select_one(TABLE, eq("user_id", user_id))
        except BackendError as exc:
            if not exc.is_no_rows():
                log.error("wallet_read_failed", user_id=user_id, code=exc.code)
            return None
        return Wallet.model_validate(row)

    async def initialize_wallet(self, user_id: str) -> Wallet | None:
        """Create the wallet if missing. A call already in flight for the user makes this a no-op.

        Uniqueness across processes is the backend's job (one wallet per user_id).
        """
        if user_id in self._initializing:
            return None
        self._initializing.add(user_id)
        try:
            await self._backend.rpc("initialize_user_wallet", {"p_user_id": user_id})
        except BackendError as exc:
            log.warning("wallet_init_failed", user_id=user_id, code=exc.code, error=exc.message)
            return None
        finally:
            self._initializing.discard(user_id)
        log.info("wallet_initialized", user_id=user_id)
        return await self.get_wallet(user_id)

    def is_initializing(self, user_id: str) -> bool:
        return user_id in self._initializing

    async def ensure_wallet(self, user_id: str, wallet: Wallet | None, settings: SystemSettings) -> Wallet | None:
        """Initialise once the system is enabled and no wallet was found."""
        if wallet is not None or not settings.is_system_enabled or self.is_initializing(user_id):
            return wallet
        return await self.initialize_wallet(user_id)

    async def update_wallet_safe(
        self, user_id: str, coins_change: int, transaction_type: str, allow_direct: bool = True
    ) -> bool:
        """Apply a coin movement to the aggregate: backend function first, direct update otherwise.

        coins_change is a magnitude; transaction_type decides earned vs used.
        """
        change = abs(coins_change)
        try:
            await self._backend.rpc(
                "update_user_coin_wallet_safe",
                {"p_user_id": user_id, "p_coins_change": change, "p_transaction_type": transaction_type},
            )
            return True
        except BackendError as exc:
            log.error("wallet_rpc_update_failed", user_id=user_id, change=change, code=exc.code, error=exc.message)
        if not allow_direct:
            return False
        return await self._direct_update(user_id, change, transaction_type)

    async def _direct_update(self, user_id: str, change: int, transaction_type: str) -> bool:
        wallet = await self._read_wallet(user_id)
        if wallet is None:
            return False
        earned, used = wallet.total_coins_earned, wallet.total_coins_used
        if transaction_type in CREDIT_TYPES:
            earned += change
        elif transaction_type in DEBIT_TYPES:
            used += min(change, wallet.available_coins)
        else:
            return False
        try:
            await self._backend.update(
                TABLE,
                {
                    "total_coins_earned": earned,
                    "total_coins_used": used,
                    "available_coins": earned - used,
                    "last_updated": timestamp(),
                },
                eq("user_id", user_id),
            )
        except BackendError as exc:
            log.error("wallet_direct_update_failed", user_id=user_id, code=exc.code)
            return False
        return True

    async def list_wallets(self, limit: int = 50, offset: int = 0) -> list[Wallet]:
        """Admin view: richest wallets first."""
        try:
            rows = await self._backend.select(TABLE, order_by="available_coins", descending=True, limit=limit, offset=offset)
        except BackendError as exc:
            log.error("wallet_list_failed", code=exc.code)
            return []
        return [Wallet.model_validate(r) for r in rows]

    async def verify_wallet_sync(self, user_id: str) -> bool:
        """True if the wallet aggregate matches the ledger sums."""
        wallet = await self._read_wallet(user_id)
        totals = await ledger.ledger_totals(self._backend, user_id)
        if wallet is None:
            return totals.earned == 0 and totals.used == 0
        in_sync = (
            wallet.total_coins_earned == totals.earned
            and wallet.total_coins_used == totals.used
            and wallet.is_consistent()
        )
        if not in_sync:
            log.warning(
                "wallet_out_of_sync",
                user_id=user_id,
                wallet_available=wallet.available_coins,
                ledger_available=totals.available,
            )
        return in_sync

    async def reconcile_wallet(self, user_id: str) -> Wallet:
        """Rewrite the wallet from the ledger; the ledger wins."""
        totals = await ledger.ledger_totals(self._backend, user_id)
        patch = {
            "total_coins_earned": totals.earned,
            "total_coins_used": totals.used,
            "available_coins": max(0, totals.available),
            "last_updated": timestamp(),
        }
        rows = await self._backend.update(TABLE, patch, eq("user_id", user_id))
        if not rows:
            rows = await self._backend.insert(TABLE, {"user_id": user_id, **patch})
        log.info("wallet_reconciled", user_id=user_id, available=patch["available_coins"])
        return Wallet.model_validate(rows[0])
