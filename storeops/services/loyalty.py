"""Loyalty coins: earning, redemption and admin adjustments over ledger + wallet.

Every movement is two writes, a ledger append followed by a wallet update.
They are not atomic: if the second write fails the ledger is ahead of the
wallet until reconcile_wallet runs.
"""

import asyncio
import inspect
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Literal

from pydantic import BaseModel

from storeops.backend.base import BackendClient, BackendError, eq, timestamp
from storeops.backend.channels import Channel
from storeops.backend.procedures import get_loyalty_dashboard_stats
from storeops.core.audit import log_event
from storeops.core.config import Settings, get_settings
from storeops.core.exceptions import BadRequestError, ServiceUnavailableError
from storeops.core.logging import get_logger
from storeops.models.coin_transaction import TABLE as TRANSACTIONS_TABLE
from storeops.models.coin_transaction import CoinTransaction
from storeops.models.loyalty_settings import SystemSettings
from storeops.models.wallet import TABLE as WALLET_TABLE
from storeops.models.wallet import Wallet
from storeops.services import ledger
from storeops.services.rules import calculate_coins_earned, can_redeem_coins, coins_expiry, is_order_eligible, referral_coins
from storeops.services.system_settings import SystemSettingsProvider
from storeops.services.wallets import WalletStore

log = get_logger(__name__)

ACTIVE_USER_WINDOW_DAYS = 30


class OrderCoins(BaseModel):
    order_id: str
    user_id: str
    order_amount: float
    order_number: str
    customer_name: str = ""


class UserLoyaltyState(BaseModel):
    settings: SystemSettings
    wallet: Wallet | None = None
    transactions: list[CoinTransaction] = []


class Subscription:
    """Open change channels for one user; close with unsubscribe()."""

    def __init__(self, channels: list[Channel]) -> None:
        self.channels = channels

    def unsubscribe(self) -> None:
        for channel in self.channels:
            channel.unsubscribe()


async def _call(callback: Callable[[Any], Awaitable[None] | None], value: Any) -> None:
    result = callback(value)
    if inspect.isawaitable(result):
        await result


class LoyaltyService:
    def __init__(
        self,
        backend: BackendClient,
        settings_provider: SystemSettingsProvider,
        wallets: WalletStore,
        config: Settings | None = None,
    ) -> None:
        self._backend = backend
        self.settings = settings_provider
        self.wallets = wallets
        self._config = config or get_settings()

    async def quote(self, amount: float) -> int:
        """Coins a purchase of `amount` would earn under current settings."""
        return calculate_coins_earned(amount, await self.settings.get_settings())

    async def can_redeem(self, user_id: str, coins_required: int) -> bool:
        settings = await self.settings.get_settings()
        wallet = await self.wallets.get_wallet(user_id)
        return can_redeem_coins(wallet, settings, coins_required)

    async def list_transactions(self, user_id: str, limit: int | None = None) -> list[CoinTransaction]:
        return await ledger.list_transactions(self._backend, user_id, limit or self._config.loyalty_transactions_limit)

    async def load_user_state(self, user_id: str) -> UserLoyaltyState:
        """Settings first, then wallet and transactions together; creates the wallet when missing."""
        settings = await self.settings.get_settings()
        wallet, transactions = await asyncio.gather(
            self.wallets.get_wallet(user_id),
            self.list_transactions(user_id),
        )
        wallet = await self.wallets.ensure_wallet(user_id, wallet, settings)
        return UserLoyaltyState(settings=settings, wallet=wallet, transactions=transactions)

    async def redeem_coins(self, user_id: str, coins: int, order_id: str, description: str) -> bool:
        """Spend coins on an order.

        Ineligible requests raise BadRequestError before anything is written.
        Returns False if the ledger append or the wallet update fails; an
        appended transaction is not rolled back.
        """
        settings = await self.settings.get_settings()
        wallet = await self.wallets.get_wallet(user_id)
        if wallet is None:
            raise BadRequestError("No loyalty wallet for this user")
        if not can_redeem_coins(wallet, settings, coins):
            raise BadRequestError(
                "Insufficient coins for redemption",
                details={
                    "available_coins": wallet.available_coins,
                    "requested": coins,
                    "min_coins_to_redeem": settings.min_coins_to_redeem,
                },
            )
        entry = CoinTransaction(
            user_id=user_id,
            transaction_type="redeemed",
            coins_amount=-coins,
            reference_type="order",
            reference_id=order_id,
            order_id=order_id,
            description=description,
        )
        if not await ledger.append_transaction(self._backend, entry):
            return False
        if not await self.wallets.update_wallet_safe(user_id, coins, "redeemed", allow_direct=False):
            log.error("redeem_wallet_not_updated", user_id=user_id, coins=coins, order_id=order_id)
            return False
        log.info("coins_redeemed", user_id=user_id, coins=coins, order_id=order_id)
        return True

    async def _credit(
        self,
        user_id: str,
        coins: int,
        settings: SystemSettings,
        reference_type: str,
        reference_id: str,
        description: str,
        order_id: str | None = None,
        allow_direct: bool = False,
    ) -> bool:
        now = datetime.now(timezone.utc)
        entry = CoinTransaction(
            user_id=user_id,
            transaction_type="earned",
            coins_amount=coins,
            reference_type=reference_type,
            reference_id=reference_id,
            order_id=order_id,
            description=description,
            expires_at=coins_expiry(now, settings),
        )
        if not await ledger.append_transaction(self._backend, entry):
            return False
        if not await self.wallets.update_wallet_safe(user_id, coins, "earned", allow_direct=allow_direct):
            log.error("credit_wallet_not_updated", user_id=user_id, coins=coins, reference_type=reference_type)
            return False
        log.info("coins_credited", user_id=user_id, coins=coins, reference_type=reference_type, reference_id=reference_id)
        return True

    async def credit_coins_for_order(self, order: OrderCoins) -> bool:
        """Credit coins after a successful order. False when skipped or when a write failed."""
        settings = await self.settings.get_settings()
        if not is_order_eligible(order.order_amount, settings):
            log.info("order_not_eligible_for_coins", order_id=order.order_id, amount=order.order_amount)
            return False
        coins = calculate_coins_earned(order.order_amount, settings)
        if coins <= 0:
            return False
        return await self._credit(
            order.user_id,
            coins,
            settings,
            reference_type="order",
            reference_id=order.order_id,
            order_id=order.order_id,
            description=f"Earned {coins} coins from order {order.order_number}",
            allow_direct=True,
        )

    async def credit_coins_for_referral(
        self, user_id: str, referral_code: str, referred_user_id: str, referral_type: Literal["signup", "purchase"]
    ) -> bool:
        settings = await self.settings.get_settings()
        if not settings.is_system_enabled:
            return False
        coins = referral_coins(
            referral_type,
            self._config.loyalty_referral_signup_coins,
            self._config.loyalty_referral_purchase_coins,
        )
        return await self._credit(
            user_id,
            coins,
            settings,
            reference_type="referral",
            reference_id=referred_user_id,
            description=f"Earned {coins} coins from referral {referral_code}",
        )

    async def credit_coins_for_offer(self, user_id: str, offer_id: str, offer_name: str, bonus_coins: int) -> bool:
        settings = await self.settings.get_settings()
        if not settings.is_system_enabled:
            return False
        if bonus_coins <= 0:
            raise BadRequestError("Bonus coins must be greater than 0")
        return await self._credit(
            user_id,
            bonus_coins,
            settings,
            reference_type="offer",
            reference_id=offer_id,
            description=f"Earned {bonus_coins} bonus coins from {offer_name}",
        )

    async def manual_adjustment(
        self,
        user_id: str,
        coins: int,
        kind: Literal["add", "remove"],
        reason: str,
        actor_id: str | None = None,
    ) -> Wallet:
        """Admin add/remove. Removal can't exceed the available balance."""
        if coins <= 0:
            raise BadRequestError("Coins amount must be greater than 0")
        if not reason or not reason.strip():
            raise BadRequestError("A reason is required")
        if kind not in ("add", "remove"):
            raise BadRequestError(f"Unknown adjustment type: {kind}")
        wallet = await self.wallets.get_wallet(user_id)
        if wallet is None:
            raise BadRequestError("No loyalty wallet for this user")
        if kind == "remove" and wallet.available_coins < coins:
            raise BadRequestError(f"Insufficient coins. Available: {wallet.available_coins}, Requested: {coins}")

        transaction_type = "manual_add" if kind == "add" else "manual_remove"
        entry = CoinTransaction(
            user_id=user_id,
            transaction_type=transaction_type,
            coins_amount=coins if kind == "add" else -coins,
            description=reason,
            admin_notes=f"Manual adjustment by admin: {reason}",
        )
        if not await ledger.append_transaction(self._backend, entry):
            raise ServiceUnavailableError("Failed to process manual adjustment")
        if not await self.wallets.update_wallet_safe(user_id, coins, transaction_type):
            raise ServiceUnavailableError(
                "Adjustment recorded but wallet not updated", details={"user_id": user_id, "coins": coins}
            )
        await log_event(
            self._backend,
            actor_id,
            "update",
            WALLET_TABLE,
            entity_id=user_id,
            operation_source="admin_loyalty_adjustment",
            metadata={"type": transaction_type, "coins": coins, "reason": reason},
        )
        updated = await self.wallets.get_wallet(user_id)
        log.info("coins_adjusted", user_id=user_id, type=transaction_type, coins=coins)
        return updated or wallet

    async def expire_coins(self, user_id: str, now: datetime | None = None) -> int:
        """Expire earned coins past their expires_at. Returns the number of coins expired."""
        due = await ledger.expirable_coins(self._backend, user_id, now)
        if due <= 0:
            return 0
        wallet = await self.wallets.get_wallet(user_id)
        coins = min(due, wallet.available_coins if wallet else 0)
        if coins <= 0:
            return 0
        entry = CoinTransaction(
            user_id=user_id,
            transaction_type="expired",
            coins_amount=-coins,
            description=f"{coins} coins expired",
        )
        if not await ledger.append_transaction(self._backend, entry):
            return 0
        if not await self.wallets.update_wallet_safe(user_id, coins, "expired"):
            log.error("expire_wallet_not_updated", user_id=user_id, coins=coins)
        return coins

    async def dashboard_stats(self) -> dict[str, int]:
        active_since = timestamp(datetime.now(timezone.utc) - timedelta(days=ACTIVE_USER_WINDOW_DAYS))
        try:
            return await self._backend.rpc("get_loyalty_dashboard_stats", {"active_since": active_since})
        except BackendError as exc:
            log.warning("loyalty_stats_rpc_unavailable", code=exc.code)
        try:
            return await get_loyalty_dashboard_stats(self._backend, active_since=active_since)
        except BackendError as exc:
            log.warning("loyalty_stats_unavailable", code=exc.code)
            return {
                "total_users": 0,
                "total_coins_issued": 0,
                "total_coins_redeemed": 0,
                "active_users": 0,
                "total_transactions": 0,
            }

    async def subscribe(
        self,
        user_id: str,
        on_wallet: Callable[[Wallet | None], Awaitable[None] | None],
        on_transactions: Callable[[list[CoinTransaction]], Awaitable[None] | None],
    ) -> Subscription | None:
        """Push re-fetched wallet/transactions to the callbacks when the user's rows change.

        Notifications only trigger re-fetches; they carry no balance themselves.
        Returns None while the loyalty system is disabled.
        """
        settings = await self.settings.get_settings()
        if not settings.is_system_enabled:
            return None

        async def wallet_changed(_change) -> None:
            await _call(on_wallet, await self.wallets.get_wallet(user_id))

        async def transaction_added(_change) -> None:
            await _call(on_transactions, await self.list_transactions(user_id))

        wallet_channel = (
            self._backend.channel(f"loyalty_wallet_{user_id}")
            .on("*", WALLET_TABLE, wallet_changed, filters=[eq("user_id", user_id)])
            .subscribe()
        )
        transaction_channel = (
            self._backend.channel(f"loyalty_transaction_{user_id}")
            .on("INSERT", TRANSACTIONS_TABLE, transaction_added, filters=[eq("user_id", user_id)])
            .subscribe()
        )
        return Subscription([wallet_channel, transaction_channel])
