"""
Pool registry tests: one pool per unordered pair, independent pools.
"""
import pytest

from mini_amm.config import Config, MonitoringConfig
from mini_amm.crypto import new_address
from mini_amm.errors import InvalidAssetPair, PoolExists, PoolNotFound
from mini_amm.events import LiquidityAdded, Swapped
from mini_amm.ledger import TokenLedger
from mini_amm.registry import PoolRegistry


@pytest.fixture
def ledger():
    return TokenLedger()


@pytest.fixture
def registry(ledger):
    return PoolRegistry(ledger)


@pytest.fixture
def assets():
    return [new_address() for _ in range(3)]


@pytest.fixture
def trader(ledger, assets):
    account = new_address()
    for asset in assets:
        ledger.mint(asset, account, 1_000_000)
    return account


class TestPoolLifecycle:
    def test_create_and_lookup_in_any_order(self, registry, assets):
        a, b, _ = assets
        pool = registry.create_pool(a, b)

        assert registry.get_pool(a, b) is pool
        assert registry.get_pool(b, a) is pool
        assert (b, a) in registry
        assert len(registry) == 1

    def test_duplicate_pair_rejected(self, registry, assets):
        a, b, _ = assets
        registry.create_pool(a, b)

        with pytest.raises(PoolExists):
            registry.create_pool(b, a)
        assert len(registry) == 1

    def test_missing_pool(self, registry, assets):
        a, b, _ = assets
        with pytest.raises(PoolNotFound):
            registry.get_pool(a, b)
        assert (a, b) not in registry

    def test_invalid_pair_rejected(self, registry, assets):
        with pytest.raises(InvalidAssetPair):
            registry.create_pool(assets[0], assets[0])
        assert (assets[0], assets[0]) not in registry
        assert (assets[0], None) not in registry
        assert len(registry) == 0

    def test_get_or_create_is_idempotent(self, registry, assets):
        a, b, _ = assets
        first = registry.get_or_create_pool(a, b)
        second = registry.get_or_create_pool(b, a)

        assert first is second
        assert registry.list_pools() == [first]

    def test_pools_share_ledger_and_event_bus(self, registry, ledger, assets, trader):
        a, b, c = assets
        seen = []
        registry.event_bus.subscribe(seen.append)

        ab = registry.create_pool(a, b)
        bc = registry.create_pool(b, c)
        ab.deposit(trader, 1000, 2000)
        bc.deposit(trader, 500, 500)

        assert ab.ledger is ledger and bc.ledger is ledger
        assert seen == [
            LiquidityAdded(1000, 2000, ab.address),
            LiquidityAdded(500, 500, bc.address),
        ]

    def test_pools_are_independent(self, registry, assets, trader):
        a, b, c = assets
        ab = registry.create_pool(a, b)
        bc = registry.create_pool(b, c)
        ab.deposit(trader, 1000, 2000)
        bc.deposit(trader, 3000, 3000)

        event = ab.swap(trader, 100, 0)

        assert event == Swapped(100, 182, ab.address)
        assert (bc.reserve_low, bc.reserve_high) == (3000, 3000)
        assert ab.address != bc.address
        assert bc.events == [LiquidityAdded(3000, 3000, bc.address)]


class TestFromConfig:
    def test_default_config_has_no_monitor(self, ledger):
        registry = PoolRegistry.from_config(ledger)
        assert registry.monitor is None

    def test_monitoring_enabled(self, ledger, assets, trader):
        config = Config(monitoring=MonitoringConfig(enabled=True, namespace="registry_test"))
        registry = PoolRegistry.from_config(ledger, config)

        pool = registry.create_pool(assets[0], assets[1])
        pool.deposit(trader, 1000, 2000)

        assert pool.monitor is registry.monitor
        assert registry.monitor.sample('pools') == 1.0
        assert registry.monitor.sample(
            'pool_operations_total', {'operation': 'deposit', 'status': 'committed'}
        ) == 1.0
