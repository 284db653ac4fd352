"""
Registry owning the lifecycle of liquidity pools.

There is at most one pool per unordered asset pair. All pools share the
registry's ledger, event bus and monitor but no reserve state.
"""
import logging
import threading
from typing import Optional

from mini_amm.amm_state import LiquidityPool, canonical_pair
from mini_amm.config import Config, configure_logging
from mini_amm.errors import PoolExists, PoolNotFound, ValidationError
from mini_amm.events import EventBus
from mini_amm.ledger import AssetLedger
from mini_amm.monitoring import PoolMonitor
from mini_amm.utils.encoding import address_to_hex

logger = logging.getLogger(__name__)


class PoolRegistry:
    def __init__(self, ledger: AssetLedger, event_bus: Optional[EventBus] = None,
                 monitor: Optional[PoolMonitor] = None):
        self.ledger = ledger
        self.event_bus = event_bus or EventBus()
        self.monitor = monitor
        # {(asset_low, asset_high): LiquidityPool}
        self.pools: dict[tuple[bytes, bytes], LiquidityPool] = {}
        self.lock = threading.Lock()

    @classmethod
    def from_config(cls, ledger: AssetLedger, config: Optional[Config] = None) -> 'PoolRegistry':
        """Build a registry with logging and monitoring set up from config."""
        config = config or Config.default()
        configure_logging(config.logging)

        monitor = None
        if config.monitoring.enabled:
            logger.info(f"Initializing monitor with host={config.monitoring.host}, port={config.monitoring.port}")
            monitor = PoolMonitor(
                namespace=config.monitoring.namespace,
                host=config.monitoring.host,
                port=config.monitoring.port,
            )
            if config.monitoring.serve:
                monitor.start_server()
        return cls(ledger, monitor=monitor)

    def create_pool(self, asset_a, asset_b) -> LiquidityPool:
        key = canonical_pair(asset_a, asset_b)
        with self.lock:
            if key in self.pools:
                raise PoolExists(
                    f"Pool already exists for {address_to_hex(key[0])}/{address_to_hex(key[1])}"
                )
            pool = LiquidityPool(*key, self.ledger, event_bus=self.event_bus, monitor=self.monitor)
            self.pools[key] = pool
            pool_count = len(self.pools)

        logger.info(f"Created pool {address_to_hex(pool.address)} for {pool}")
        if self.monitor is not None:
            self.monitor.pool_count.set(pool_count)
        return pool

    def get_pool(self, asset_a, asset_b) -> LiquidityPool:
        key = canonical_pair(asset_a, asset_b)
        with self.lock:
            try:
                return self.pools[key]
            except KeyError as e:
                raise PoolNotFound(
                    f"No pool for {address_to_hex(key[0])}/{address_to_hex(key[1])}"
                ) from e

    def get_or_create_pool(self, asset_a, asset_b) -> LiquidityPool:
        try:
            return self.get_pool(asset_a, asset_b)
        except PoolNotFound:
            try:
                return self.create_pool(asset_a, asset_b)
            except PoolExists:
                # Another thread created it in between
                return self.get_pool(asset_a, asset_b)

    def list_pools(self) -> list[LiquidityPool]:
        with self.lock:
            return list(self.pools.values())

    def __len__(self) -> int:
        with self.lock:
            return len(self.pools)

    def __contains__(self, pair) -> bool:
        try:
            key = canonical_pair(*pair)
        except (TypeError, ValidationError):
            return False
        with self.lock:
            return key in self.pools
