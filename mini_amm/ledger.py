"""
Asset ledger consumed by liquidity pools.

Pools only depend on the ``AssetLedger`` protocol. ``TokenLedger`` is an
in-memory implementation that keeps accounts the way the chain does:
msgpack-encoded records stored under ``ACCOUNT:`` + address.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Protocol

import msgpack

from mini_amm.utils.encoding import to_address, address_to_hex

logger = logging.getLogger(__name__)

ACCOUNT_PREFIX = b"ACCOUNT:"


@dataclass(frozen=True)
class TransferResult:
    """Outcome of a single ledger transfer."""
    success: bool
    reason: str = ""

    @classmethod
    def ok(cls) -> 'TransferResult':
        return cls(success=True)

    @classmethod
    def failed(cls, reason: str) -> 'TransferResult':
        return cls(success=False, reason=reason)


class AssetLedger(Protocol):
    """Moves balances of fungible assets between accounts."""

    def transfer(self, asset: bytes, sender: bytes, recipient: bytes,
                 amount: int) -> TransferResult:
        """Move exactly ``amount`` of ``asset`` or report why it could not."""
        ...

    def balance_of(self, asset: bytes, account: bytes) -> int:
        ...


class TokenLedger:
    """In-memory multi-asset ledger."""

    def __init__(self):
        self._store: dict[bytes, bytes] = {}
        # Thread-safety
        self.lock = threading.RLock()  # _reject re-enters from transfer
        # Statistics
        self.stats = {
            'total_transfers': 0,
            'total_rejected': 0,
            'total_minted': 0,
        }

    def _get_account(self, addr: bytes) -> dict:
        raw = self._store.get(ACCOUNT_PREFIX + addr)
        if not raw:
            return {'balances': {}}
        return msgpack.unpackb(raw, raw=False)

    def _set_account(self, addr: bytes, account: dict):
        self._store[ACCOUNT_PREFIX + addr] = msgpack.packb(account, use_bin_type=True)

    def get_account(self, address) -> dict:
        """Public method to get a copy of an account record."""
        with self.lock:
            return self._get_account(to_address(address))

    def mint(self, asset, account, amount: int):
        """Credit new units of an asset to an account."""
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise ValueError("Mint amount must be a positive integer")

        asset = to_address(asset)
        account = to_address(account)
        with self.lock:
            record = self._get_account(account)
            key = asset.hex()
            record['balances'][key] = record['balances'].get(key, 0) + amount
            self._set_account(account, record)
            self.stats['total_minted'] += amount

        logger.info(f"Minted {amount} of {address_to_hex(asset)} to {address_to_hex(account)}")

    def balance_of(self, asset, account) -> int:
        asset = to_address(asset)
        account = to_address(account)
        with self.lock:
            return self._get_account(account)['balances'].get(asset.hex(), 0)

    def transfer(self, asset, sender, recipient, amount: int) -> TransferResult:
        """
        Move ``amount`` of ``asset`` from ``sender`` to ``recipient``.

        A zero amount is a successful no-op. The transfer is all-or-nothing:
        a failed result leaves both accounts untouched.
        """
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            return self._reject(f"Invalid transfer amount: {amount!r}")

        try:
            asset = to_address(asset)
            sender = to_address(sender)
            recipient = to_address(recipient)
        except ValueError as e:
            return self._reject(str(e))

        if amount == 0:
            return TransferResult.ok()

        key = asset.hex()
        with self.lock:
            sender_account = self._get_account(sender)
            balance = sender_account['balances'].get(key, 0)
            if balance < amount:
                return self._reject(
                    f"Insufficient {address_to_hex(asset)} funds: "
                    f"balance {balance}, needed {amount}"
                )

            sender_account['balances'][key] = balance - amount
            if sender != recipient:
                recipient_account = self._get_account(recipient)
                recipient_account['balances'][key] = recipient_account['balances'].get(key, 0) + amount
                self._set_account(recipient, recipient_account)
            else:
                sender_account['balances'][key] += amount
            self._set_account(sender, sender_account)
            self.stats['total_transfers'] += 1

        logger.debug(
            f"Transfer: {amount} {address_to_hex(asset)} "
            f"{address_to_hex(sender)} -> {address_to_hex(recipient)}"
        )
        return TransferResult.ok()

    def _reject(self, reason: str) -> TransferResult:
        with self.lock:
            self.stats['total_rejected'] += 1
        logger.warning(f"Transfer rejected: {reason}")
        return TransferResult.failed(reason)
