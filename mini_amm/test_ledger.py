"""
Test the in-memory token ledger used by pools.
"""
import threading
import unittest

import msgpack

from mini_amm.crypto import new_address
from mini_amm.ledger import ACCOUNT_PREFIX, TokenLedger, TransferResult


class TestTokenLedger(unittest.TestCase):
    def setUp(self):
        """Set up a ledger with two users and one asset."""
        self.ledger = TokenLedger()
        self.asset = new_address()
        self.alice = new_address()
        self.bob = new_address()
        self.ledger.mint(self.asset, self.alice, 100)

    def test_mint_credits_balance(self):
        self.assertEqual(self.ledger.balance_of(self.asset, self.alice), 100)
        self.assertEqual(self.ledger.balance_of(self.asset, self.bob), 0)
        self.assertEqual(self.ledger.stats['total_minted'], 100)

    def test_mint_rejects_non_positive(self):
        with self.assertRaises(ValueError):
            self.ledger.mint(self.asset, self.alice, 0)
        with self.assertRaises(ValueError):
            self.ledger.mint(self.asset, self.alice, -5)
        with self.assertRaises(ValueError):
            self.ledger.mint(self.asset, self.alice, True)
        self.assertEqual(self.ledger.balance_of(self.asset, self.alice), 100)

    def test_transfer_basic(self):
        result = self.ledger.transfer(self.asset, self.alice, self.bob, 30)

        self.assertEqual(result, TransferResult.ok())
        self.assertEqual(self.ledger.balance_of(self.asset, self.alice), 70)
        self.assertEqual(self.ledger.balance_of(self.asset, self.bob), 30)
        self.assertEqual(self.ledger.stats['total_transfers'], 1)

    def test_transfer_insufficient_balance_fails(self):
        result = self.ledger.transfer(self.asset, self.alice, self.bob, 101)

        self.assertFalse(result.success)
        self.assertIn("Insufficient", result.reason)
        self.assertEqual(self.ledger.balance_of(self.asset, self.alice), 100)
        self.assertEqual(self.ledger.balance_of(self.asset, self.bob), 0)
        self.assertEqual(self.ledger.stats['total_rejected'], 1)

    def test_transfer_of_other_asset_fails(self):
        other_asset = new_address()
        result = self.ledger.transfer(other_asset, self.alice, self.bob, 1)
        self.assertFalse(result.success)

    def test_zero_transfer_is_noop(self):
        result = self.ledger.transfer(self.asset, self.alice, self.bob, 0)

        self.assertTrue(result.success)
        self.assertEqual(self.ledger.balance_of(self.asset, self.alice), 100)
        self.assertEqual(self.ledger.stats['total_transfers'], 0)

    def test_invalid_amounts_fail(self):
        for amount in (-1, 1.0, True, None):
            result = self.ledger.transfer(self.asset, self.alice, self.bob, amount)
            self.assertFalse(result.success, amount)
        self.assertEqual(self.ledger.balance_of(self.asset, self.alice), 100)

    def test_invalid_address_fails(self):
        result = self.ledger.transfer(self.asset, self.alice, b'\x00' * 3, 10)

        self.assertFalse(result.success)
        self.assertIn("20 bytes", result.reason)
        self.assertEqual(self.ledger.balance_of(self.asset, self.alice), 100)

    def test_rejections_counted_across_threads(self):
        def reject_many():
            for _ in range(200):
                self.ledger.transfer(self.asset, self.alice, self.bob, -1)
                self.ledger.transfer(self.asset, self.alice, b'bad', 1)
                self.ledger.transfer(self.asset, self.alice, self.bob, 1_000)

        threads = [threading.Thread(target=reject_many) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(self.ledger.stats['total_rejected'], 8 * 200 * 3)
        self.assertEqual(self.ledger.balance_of(self.asset, self.alice), 100)

    def test_self_transfer_keeps_balance(self):
        result = self.ledger.transfer(self.asset, self.alice, self.alice, 40)

        self.assertTrue(result.success)
        self.assertEqual(self.ledger.balance_of(self.asset, self.alice), 100)

    def test_hex_addresses_accepted(self):
        result = self.ledger.transfer('0x' + self.asset.hex(), self.alice.hex(), self.bob, 10)

        self.assertTrue(result.success)
        self.assertEqual(self.ledger.balance_of(self.asset, self.bob), 10)

    def test_accounts_stored_as_msgpack_records(self):
        raw = self.ledger._store[ACCOUNT_PREFIX + self.alice]
        record = msgpack.unpackb(raw, raw=False)

        self.assertEqual(record, {'balances': {self.asset.hex(): 100}})
        self.assertEqual(self.ledger.get_account(self.alice), record)


if __name__ == '__main__':
    unittest.main()
