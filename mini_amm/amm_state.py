"""
AMM (Automated Market Maker) liquidity pool for two assets.
Implements the constant product formula: x * y = k

Reserves only change after every ledger transfer of an operation has
succeeded, so a rejected operation or a failed transfer leaves the pool
exactly as it was.
"""
import logging
import threading
import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

import msgpack

from mini_amm.crypto import pool_address
from mini_amm.errors import (
    AmbiguousDirection,
    InsufficientLiquidity,
    InvalidAmount,
    InvalidAssetPair,
    NoLiquidity,
    RatioMismatch,
    TransferFailed,
    ValidationError,
    ZeroAmount,
)
from mini_amm.events import EventBus, LiquidityAdded, PoolEvent, Swapped
from mini_amm.ledger import AssetLedger
from mini_amm.utils.encoding import to_address, address_to_hex

logger = logging.getLogger(__name__)


class PoolStatus(str, Enum):
    UNINITIALIZED = "UNINITIALIZED"
    ACTIVE = "ACTIVE"


@dataclass(frozen=True)
class PoolReserves:
    """Committed pool state. Replaced as a whole on every commit."""
    reserve_low: int = 0
    reserve_high: int = 0
    invariant_product: int = 0

    @classmethod
    def from_reserves(cls, reserve_low: int, reserve_high: int) -> 'PoolReserves':
        return cls(reserve_low, reserve_high, reserve_low * reserve_high)

    def validate(self):
        """Ensure state consistency."""
        if self.reserve_low < 0 or self.reserve_high < 0:
            raise ValidationError("Reserves cannot be negative")
        if self.invariant_product != self.reserve_low * self.reserve_high:
            raise ValidationError(
                f"Invariant {self.invariant_product} does not match reserves "
                f"{self.reserve_low} * {self.reserve_high}"
            )
        if self.invariant_product == 0 and (self.reserve_low or self.reserve_high):
            raise ValidationError("A pool with liquidity must hold both assets")


def canonical_pair(asset_a, asset_b) -> tuple[bytes, bytes]:
    """Order two asset identifiers so the smaller one comes first."""
    if asset_a is None or asset_b is None:
        raise InvalidAssetPair("Both asset identifiers are required")
    try:
        asset_a = to_address(asset_a)
        asset_b = to_address(asset_b)
    except ValueError as e:
        raise InvalidAssetPair(str(e)) from e

    if asset_a == asset_b:
        raise InvalidAssetPair("Pool assets must be distinct")
    return (asset_a, asset_b) if asset_a < asset_b else (asset_b, asset_a)


def get_amount_out(amount_in: int, reserve_in: int, reserve_out: int) -> int:
    """
    Calculate swap output using the constant product formula.

    Formula: amount_out = y - floor(x * y / (x + amount_in))
    """
    k = reserve_in * reserve_out
    return reserve_out - k // (reserve_in + amount_in)


def get_required_amount(amount: int, reserve_in: int, reserve_other: int) -> int:
    """
    Calculate the paired amount that keeps the pool ratio.

    Maintains: required / amount = reserve_other / reserve_in (rounded down)
    """
    return (amount * reserve_other) // reserve_in


def _check_amount(value, name: str):
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise InvalidAmount(f"{name} cannot be negative")


def _stored_int(record: dict, field: str) -> int:
    value = record[field]
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{field} must be an integer, got {type(value).__name__}")
    return value


class LiquidityPool:
    """
    Two-asset constant product pool.

    Deposits and swaps on one pool are serialized by a per-pool lock that is
    held across the ledger transfers and the commit. Readers see the last
    committed ``PoolReserves`` and never a half-applied update. Events go
    to listeners once the lock is released.
    """

    def __init__(self, asset_a, asset_b, ledger: AssetLedger,
                 event_bus: Optional[EventBus] = None, monitor=None,
                 reserves: Optional[PoolReserves] = None):
        """
        Args:
            asset_a, asset_b: the two asset addresses, in any order
            ledger: moves assets between callers and the pool account
            event_bus: receives every committed event
            monitor: optional PoolMonitor fed with operation metrics
            reserves: previously committed state to restore
        """
        self._asset_low, self._asset_high = canonical_pair(asset_a, asset_b)
        self._address = pool_address(self._asset_low, self._asset_high)
        self.ledger = ledger
        self.event_bus = event_bus or EventBus()
        self.monitor = monitor
        self.events: list[PoolEvent] = []

        reserves = reserves or PoolReserves()
        reserves.validate()
        self._reserves = reserves
        self._lock = threading.RLock()

    # ==========================================================================
    # COMMITTED STATE
    # ==========================================================================

    @property
    def asset_low(self) -> bytes:
        return self._asset_low

    @property
    def asset_high(self) -> bytes:
        return self._asset_high

    @property
    def address(self) -> bytes:
        """Ledger account holding the pool's reserves."""
        return self._address

    @property
    def reserve_low(self) -> int:
        return self._reserves.reserve_low

    @property
    def reserve_high(self) -> int:
        return self._reserves.reserve_high

    @property
    def invariant_product(self) -> int:
        return self._reserves.invariant_product

    @property
    def status(self) -> PoolStatus:
        if self._reserves.invariant_product == 0:
            return PoolStatus.UNINITIALIZED
        return PoolStatus.ACTIVE

    @property
    def current_price(self) -> Optional[Decimal]:
        """
        Price of one unit of the low asset in units of the high asset.

        Returns:
            reserve_high / reserve_low, or None before the first deposit
        """
        reserves = self._reserves
        if reserves.invariant_product == 0:
            return None
        return Decimal(reserves.reserve_high) / Decimal(reserves.reserve_low)

    def snapshot(self) -> PoolReserves:
        """Return the committed reserves as one consistent value."""
        return self._reserves

    # ==========================================================================
    # DEPOSIT
    # ==========================================================================

    def get_required_high(self, amount_low: int) -> int:
        """High-asset amount a deposit of ``amount_low`` must be paired with."""
        _check_amount(amount_low, "amount_low")
        reserves = self._reserves
        if reserves.invariant_product == 0:
            raise NoLiquidity("Pool has no liquidity; the first deposit sets the ratio")
        return get_required_amount(amount_low, reserves.reserve_low, reserves.reserve_high)

    def get_required_low(self, amount_high: int) -> int:
        """Low-asset amount a deposit of ``amount_high`` must be paired with."""
        _check_amount(amount_high, "amount_high")
        reserves = self._reserves
        if reserves.invariant_product == 0:
            raise NoLiquidity("Pool has no liquidity; the first deposit sets the ratio")
        return get_required_amount(amount_high, reserves.reserve_high, reserves.reserve_low)

    def deposit(self, account, amount_low: int, amount_high: int) -> LiquidityAdded:
        """
        Add liquidity of both assets from ``account``.

        The first deposit sets the pool price. Every later deposit must pair
        ``amount_low`` with exactly floor(amount_low * reserve_high / reserve_low)
        of the high asset.

        Raises:
            ZeroAmount: either amount is zero
            RatioMismatch: amount_high differs from the required amount
            TransferFailed: the ledger could not move one of the amounts
        """
        return self._publish(self._run("deposit", self._deposit, account, amount_low, amount_high))

    def _deposit(self, account, amount_low: int, amount_high: int) -> LiquidityAdded:
        account = self._account(account)
        _check_amount(amount_low, "amount_low")
        _check_amount(amount_high, "amount_high")
        if amount_low == 0 or amount_high == 0:
            raise ZeroAmount("Cannot add zero liquidity")

        with self._lock:
            reserves = self._reserves
            if reserves.invariant_product > 0:
                required_high = get_required_amount(
                    amount_low, reserves.reserve_low, reserves.reserve_high
                )
                if amount_high != required_high:
                    raise RatioMismatch(
                        f"Deposit of {amount_low} low requires exactly "
                        f"{required_high} high, got {amount_high}"
                    )

            self._transfer(self._asset_low, account, self._address, amount_low)
            self._transfer(self._asset_high, account, self._address, amount_high)

            self._commit(
                reserves.reserve_low + amount_low,
                reserves.reserve_high + amount_high,
            )
            if reserves.invariant_product == 0:
                logger.info(f"Pool {self} initialized at {amount_low}:{amount_high}")

            logger.info(
                f"Liquidity added to {self}: {amount_low} low, {amount_high} high "
                f"by {address_to_hex(account)}"
            )
            return self._record_event(LiquidityAdded(amount_low, amount_high, self._address))

    # ==========================================================================
    # SWAP
    # ==========================================================================

    def quote_swap(self, amount_low_in: int, amount_high_in: int) -> tuple[int, int]:
        """
        Preview a swap against the committed reserves without executing it.

        Returns:
            (amount_low, amount_high) exactly as the Swapped event would report
        """
        amount_low, amount_high, _ = self._quote(self._reserves, amount_low_in, amount_high_in)
        logger.debug(f"Quote on {self}: ({amount_low_in}, {amount_high_in}) -> ({amount_low}, {amount_high})")
        return amount_low, amount_high

    def swap(self, account, amount_low_in: int, amount_high_in: int) -> Swapped:
        """
        Exchange one asset for the other. Exactly one input must be positive.

        Raises:
            NoLiquidity: pool has not been initialized
            AmbiguousDirection: both inputs are positive
            ZeroAmount: both inputs are zero
            InsufficientLiquidity: input exceeds the reserve of the same asset
            TransferFailed: the ledger could not move the input or the output
        """
        return self._publish(self._run("swap", self._swap, account, amount_low_in, amount_high_in))

    def _swap(self, account, amount_low_in: int, amount_high_in: int) -> Swapped:
        account = self._account(account)

        with self._lock:
            reserves = self._reserves
            amount_low, amount_high, low_in = self._quote(reserves, amount_low_in, amount_high_in)

            # Input always moves before output
            if low_in:
                self._transfer(self._asset_low, account, self._address, amount_low)
                self._transfer(self._asset_high, self._address, account, amount_high)
                self._commit(reserves.reserve_low + amount_low, reserves.reserve_high - amount_high)
            else:
                self._transfer(self._asset_high, account, self._address, amount_high)
                self._transfer(self._asset_low, self._address, account, amount_low)
                self._commit(reserves.reserve_low - amount_low, reserves.reserve_high + amount_high)

            logger.info(
                f"Swap on {self}: {'low' if low_in else 'high'} in, "
                f"{amount_low} low / {amount_high} high, "
                f"reserves {self.reserve_low}:{self.reserve_high}"
            )
            return self._record_event(Swapped(amount_low, amount_high, self._address))

    def _quote(self, reserves: PoolReserves, amount_low_in: int,
               amount_high_in: int) -> tuple[int, int, bool]:
        _check_amount(amount_low_in, "amount_low_in")
        _check_amount(amount_high_in, "amount_high_in")

        if reserves.invariant_product == 0:
            raise NoLiquidity("Pool has no liquidity")
        if amount_low_in > 0 and amount_high_in > 0:
            raise AmbiguousDirection("Swap must provide exactly one input asset")
        if amount_low_in == 0 and amount_high_in == 0:
            raise ZeroAmount("Swap input cannot be zero")

        if amount_low_in > 0:
            if amount_low_in > reserves.reserve_low:
                raise InsufficientLiquidity(
                    f"Input {amount_low_in} exceeds low reserve {reserves.reserve_low}"
                )
            amount_high_out = get_amount_out(amount_low_in, reserves.reserve_low, reserves.reserve_high)
            if amount_high_out >= reserves.reserve_high:
                raise InsufficientLiquidity("Swap would drain the high reserve")
            return amount_low_in, amount_high_out, True

        if amount_high_in > reserves.reserve_high:
            raise InsufficientLiquidity(
                f"Input {amount_high_in} exceeds high reserve {reserves.reserve_high}"
            )
        amount_low_out = get_amount_out(amount_high_in, reserves.reserve_high, reserves.reserve_low)
        if amount_low_out >= reserves.reserve_low:
            raise InsufficientLiquidity("Swap would drain the low reserve")
        return amount_low_out, amount_high_in, False

    # ==========================================================================
    # INTERNALS
    # ==========================================================================

    def _run(self, operation: str, handler, *args):
        started = time.perf_counter()
        try:
            result = handler(*args)
        except ValidationError as e:
            logger.warning(f"{operation.capitalize()} on {self} rejected ({e.code}): {e}")
            self._record(operation, started, error=e)
            raise
        self._record(operation, started)
        return result

    def _record(self, operation: str, started: float, error: Optional[ValidationError] = None):
        if self.monitor is not None:
            self.monitor.record_operation(self, operation, time.perf_counter() - started, error)

    @staticmethod
    def _account(account) -> bytes:
        try:
            return to_address(account)
        except ValueError as e:
            raise ValidationError(f"Invalid account: {e}") from e

    def _transfer(self, asset: bytes, sender: bytes, recipient: bytes, amount: int):
        try:
            result = self.ledger.transfer(asset, sender, recipient, amount)
        except Exception as e:
            raise TransferFailed(asset, sender, recipient, amount, str(e)) from e
        if not result.success:
            raise TransferFailed(asset, sender, recipient, amount, result.reason)

    def _commit(self, reserve_low: int, reserve_high: int):
        self._reserves = PoolReserves.from_reserves(reserve_low, reserve_high)

    def _record_event(self, event: PoolEvent) -> PoolEvent:
        # Called under the pool lock, so history order matches commit order
        self.events.append(event)
        return event

    def _publish(self, event: PoolEvent) -> PoolEvent:
        # Listeners run after the pool lock is released and may trade on any pool
        self.event_bus.publish(event)
        return event

    # ==========================================================================
    # STORAGE
    # ==========================================================================

    def to_dict(self) -> dict:
        """
        Convert committed state to a dict for storage.
        """
        reserves = self._reserves
        return {
            'asset_low': self._asset_low,
            'asset_high': self._asset_high,
            'reserve_low': reserves.reserve_low,
            'reserve_high': reserves.reserve_high,
            'invariant_product': reserves.invariant_product,
        }

    def encode(self) -> bytes:
        return msgpack.packb(self.to_dict(), use_bin_type=True)

    @classmethod
    def from_dict(cls, data: dict, ledger: AssetLedger, **kwargs) -> 'LiquidityPool':
        """Restore a pool from a stored record, rejecting inconsistent state."""
        try:
            reserves = PoolReserves(
                _stored_int(data, 'reserve_low'),
                _stored_int(data, 'reserve_high'),
                _stored_int(data, 'invariant_product'),
            )
            asset_low = to_address(data['asset_low'])
            asset_high = to_address(data['asset_high'])
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Corrupt pool record: {e}") from e

        if not asset_low < asset_high:
            raise ValidationError("Pool record assets are not canonically ordered")
        return cls(asset_low, asset_high, ledger, reserves=reserves, **kwargs)

    @classmethod
    def decode(cls, raw: bytes, ledger: AssetLedger, **kwargs) -> 'LiquidityPool':
        try:
            data = msgpack.unpackb(raw, raw=False)
        except (msgpack.exceptions.UnpackException, ValueError) as e:
            raise ValidationError(f"Corrupt pool record: {e}") from e
        return cls.from_dict(data, ledger, **kwargs)

    def __repr__(self) -> str:
        """String representation for debugging."""
        reserves = self._reserves
        return (
            f"LiquidityPool("
            f"low={address_to_hex(self._asset_low)[:10]}, "
            f"high={address_to_hex(self._asset_high)[:10]}, "
            f"reserves={reserves.reserve_low}:{reserves.reserve_high}, "
            f"k={reserves.invariant_product})"
        )
