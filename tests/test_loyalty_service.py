"""LoyaltyService: redemption, credits, admin adjustments and change subscriptions."""

from datetime import datetime, timedelta, timezone

import pytest

from storeops.backend.memory import MemoryBackend
from storeops.container import ServiceContainer
from storeops.core.exceptions import BadRequestError, ServiceUnavailableError
from storeops.services.loyalty import OrderCoins

pytestmark = pytest.mark.asyncio


async def _fund(container: ServiceContainer, user_id: str, coins: int) -> None:
    await container.wallets.initialize_wallet(user_id)
    await container.loyalty.credit_coins_for_offer(user_id, "welcome", "Welcome offer", coins)


async def test_redeem_more_than_available_rejected_before_any_write(container: ServiceContainer, backend: MemoryBackend):
    await _fund(container, "u1", 50)
    before = backend.rows("loyalty_transactions")
    with pytest.raises(BadRequestError):
        await container.loyalty.redeem_coins("u1", 80, "order-1", "Too much")
    assert backend.rows("loyalty_transactions") == before
    wallet = await container.wallets.get_wallet("u1")
    assert wallet.available_coins == 50


async def test_redeem_below_minimum_rejected(container: ServiceContainer):
    await _fund(container, "u1", 100)
    with pytest.raises(BadRequestError):
        await container.loyalty.redeem_coins("u1", 5, "order-1", "Small")


async def test_redeem_debits_wallet_and_records_negative_entry(container: ServiceContainer, backend: MemoryBackend):
    await _fund(container, "u1", 100)
    assert await container.loyalty.redeem_coins("u1", 40, "order-9", "Used on order")
    wallet = await container.wallets.get_wallet("u1")
    assert (wallet.total_coins_earned, wallet.total_coins_used, wallet.available_coins) == (100, 40, 60)
    entry = (await container.loyalty.list_transactions("u1"))[0]
    assert entry.transaction_type == "redeemed"
    assert entry.coins_amount == -40
    assert entry.order_id == "order-9"


async def test_redeem_reports_wallet_failure_without_direct_fallback(container: ServiceContainer, backend: MemoryBackend):
    await _fund(container, "u1", 100)
    backend.drop_function("update_user_coin_wallet_safe")
    assert await container.loyalty.redeem_coins("u1", 40, "order-9", "Used on order") is False
    # ledger is ahead of the wallet until reconciled
    assert not await container.wallets.verify_wallet_sync("u1")
    wallet = await container.wallets.reconcile_wallet("u1")
    assert wallet.available_coins == 60


async def test_order_credit_uses_quote_and_sets_expiry(container: ServiceContainer, backend: MemoryBackend):
    await container.settings.update_settings({"default_coins_per_rupee": 0.10, "coin_expiry_days": 30})
    await container.wallets.initialize_wallet("u1")
    order = OrderCoins(order_id="o-1", user_id="u1", order_amount=1234.56, order_number="SO-1001")
    assert await container.loyalty.quote(1234.56) == 123
    assert await container.loyalty.credit_coins_for_order(order)
    wallet = await container.wallets.get_wallet("u1")
    assert wallet.available_coins == 123
    entry = (await container.loyalty.list_transactions("u1"))[0]
    assert entry.reference_type == "order"
    assert entry.expires_at is not None


async def test_order_below_minimum_amount_earns_nothing(container: ServiceContainer):
    await container.settings.update_settings({"min_order_amount": 500})
    await container.wallets.initialize_wallet("u1")
    order = OrderCoins(order_id="o-1", user_id="u1", order_amount=200, order_number="SO-1")
    assert await container.loyalty.credit_coins_for_order(order) is False
    assert await container.loyalty.list_transactions("u1") == []


async def test_referral_credit(container: ServiceContainer):
    await container.wallets.initialize_wallet("u1")
    assert await container.loyalty.credit_coins_for_referral("u1", "REF42", "u2", "signup")
    wallet = await container.wallets.get_wallet("u1")
    assert wallet.available_coins == container.config.loyalty_referral_signup_coins


async def test_manual_adjustment_add_and_remove(container: ServiceContainer, backend: MemoryBackend):
    await container.wallets.initialize_wallet("u1")
    wallet = await container.loyalty.manual_adjustment("u1", 30, "add", "Goodwill", actor_id="admin-1")
    assert wallet.available_coins == 30
    wallet = await container.loyalty.manual_adjustment("u1", 10, "remove", "Correction", actor_id="admin-1")
    assert (wallet.total_coins_earned, wallet.total_coins_used, wallet.available_coins) == (30, 10, 20)
    audits = backend.rows("audit_logs")
    assert [a["operation_source"] for a in audits] == ["admin_loyalty_adjustment"] * 2
    assert audits[0]["user_id"] == "admin-1"


async def test_manual_remove_beyond_available_rejected(container: ServiceContainer, backend: MemoryBackend):
    await container.wallets.initialize_wallet("u1")
    with pytest.raises(BadRequestError):
        await container.loyalty.manual_adjustment("u1", 10, "remove", "Nope")
    with pytest.raises(BadRequestError):
        await container.loyalty.manual_adjustment("u1", 10, "add", "  ")
    assert backend.rows("loyalty_transactions") == []


async def test_manual_adjustment_partial_failure_surfaces(container: ServiceContainer, backend: MemoryBackend):
    await container.wallets.initialize_wallet("u1")
    backend.drop_table("loyalty_transactions")
    with pytest.raises(ServiceUnavailableError):
        await container.loyalty.manual_adjustment("u1", 10, "add", "Goodwill")


async def test_expire_coins(container: ServiceContainer):
    await container.settings.update_settings({"coin_expiry_days": 10})
    await _fund(container, "u1", 60)
    assert await container.loyalty.expire_coins("u1") == 0
    later = datetime.now(timezone.utc) + timedelta(days=11)
    assert await container.loyalty.expire_coins("u1", later) == 60
    assert await container.loyalty.expire_coins("u1", later) == 0
    wallet = await container.wallets.get_wallet("u1")
    assert wallet.available_coins == 0
    assert wallet.is_consistent()


async def test_expiry_skips_spent_and_non_expiring_coins(container: ServiceContainer):
    await container.settings.update_settings({"coin_expiry_days": 10})
    await _fund(container, "u1", 60)
    assert await container.loyalty.redeem_coins("u1", 50, "order-1", "Partial spend")
    await container.settings.update_settings({"coin_expiry_days": None})
    await container.loyalty.credit_coins_for_offer("u1", "evergreen", "Evergreen offer", 30)

    later = datetime.now(timezone.utc) + timedelta(days=11)
    assert await container.loyalty.expire_coins("u1", later) == 10
    assert await container.loyalty.expire_coins("u1", later) == 0
    wallet = await container.wallets.get_wallet("u1")
    assert wallet.available_coins == 30
    assert wallet.is_consistent()


async def test_expiry_ignores_fully_spent_lot_and_later_unexpired_credit(container: ServiceContainer):
    await container.settings.update_settings({"coin_expiry_days": 10})
    await _fund(container, "u1", 60)
    assert await container.loyalty.redeem_coins("u1", 60, "order-1", "Spend all")
    later = datetime.now(timezone.utc) + timedelta(days=11)
    assert await container.loyalty.expire_coins("u1", later) == 0

    await container.settings.update_settings({"coin_expiry_days": 365})
    await container.loyalty.credit_coins_for_offer("u1", "fresh", "Fresh offer", 40)
    assert await container.loyalty.expire_coins("u1", later) == 0
    wallet = await container.wallets.get_wallet("u1")
    assert wallet.available_coins == 40


async def test_expiry_draws_spending_from_oldest_credit(container: ServiceContainer, backend: MemoryBackend):
    await container.settings.update_settings({"coin_expiry_days": 10})
    await _fund(container, "u1", 30)
    await container.settings.update_settings({"coin_expiry_days": 100})
    await container.loyalty.credit_coins_for_offer("u1", "second", "Second offer", 50)
    assert await container.loyalty.redeem_coins("u1", 20, "order-1", "Spend")

    later = datetime.now(timezone.utc) + timedelta(days=11)
    assert await container.loyalty.expire_coins("u1", later) == 10
    much_later = datetime.now(timezone.utc) + timedelta(days=101)
    assert await container.loyalty.expire_coins("u1", much_later) == 50
    types = [r["transaction_type"] for r in backend.rows("loyalty_transactions")]
    assert types.count("expired") == 2
    assert (await container.wallets.get_wallet("u1")).available_coins == 0


async def test_load_user_state_creates_wallet(container: ServiceContainer, backend: MemoryBackend):
    state = await container.loyalty.load_user_state("new-user")
    assert state.wallet is not None
    assert state.wallet.available_coins == 0
    assert state.transactions == []
    assert len(backend.rows("loyalty_coins_wallet")) == 1


async def test_load_user_state_without_backend_functions():
    bare = MemoryBackend(register_functions=False)
    container = ServiceContainer(backend=bare)
    state = await container.loyalty.load_user_state("u1")
    assert state.settings.is_system_enabled
    assert state.wallet is None


async def test_dashboard_stats(container: ServiceContainer):
    await _fund(container, "u1", 100)
    await _fund(container, "u2", 50)
    await container.loyalty.redeem_coins("u1", 20, "o-1", "Spend")
    stats = await container.loyalty.dashboard_stats()
    assert stats == {
        "total_users": 2,
        "total_coins_issued": 150,
        "total_coins_redeemed": 20,
        "active_users": 2,
        "total_transactions": 3,
    }


async def test_dashboard_stats_without_function(container: ServiceContainer, backend: MemoryBackend):
    backend.drop_function("get_loyalty_dashboard_stats")
    await _fund(container, "u1", 10)
    stats = await container.loyalty.dashboard_stats()
    assert stats["total_users"] == 1
    assert stats["total_coins_issued"] == 10


async def test_subscription_refetches_on_changes(container: ServiceContainer):
    await container.wallets.initialize_wallet("u1")
    await container.wallets.initialize_wallet("u2")
    wallets, transactions = [], []
    sub = await container.loyalty.subscribe("u1", wallets.append, transactions.append)
    assert sub is not None

    await container.loyalty.credit_coins_for_offer("u1", "o", "Offer", 25)
    assert transactions and transactions[-1][0].coins_amount == 25
    assert wallets and wallets[-1].available_coins == 25

    seen = (len(wallets), len(transactions))
    await container.loyalty.credit_coins_for_offer("u2", "o", "Offer", 25)
    assert (len(wallets), len(transactions)) == seen

    sub.unsubscribe()
    await container.loyalty.credit_coins_for_offer("u1", "o", "Offer", 5)
    assert (len(wallets), len(transactions)) == seen


async def test_no_subscription_when_disabled(container: ServiceContainer):
    await container.settings.update_settings({"is_system_enabled": False})
    assert await container.loyalty.subscribe("u1", print, print) is None
