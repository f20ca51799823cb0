#!/usr/bin/env python3
"""
Immutables Tests

Usage:
    python test_immutables.py
"""

import sys
import os
import unittest
from dataclasses import replace

from eth_abi import encode

# Add SDK to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from escrow_fixtures import TIMELOCKS, new_address

from fusion_sdk.core import keccak, generate_secret, ZERO_ADDRESS
from fusion_sdk.escrow.immutables import Immutables, DstImmutablesComplement
from fusion_sdk.escrow.timelocks import Stage


class TestImmutables(unittest.TestCase):

    def setUp(self):
        _, self.hashlock = generate_secret()
        self.maker = new_address()
        self.taker = new_address()
        self.token = new_address()
        self.immutables = Immutables(
            order_hash=keccak(b"order-1"),
            hashlock=self.hashlock,
            maker=self.maker,
            taker=self.taker,
            token=self.token,
            amount=1000,
            safety_deposit=10,
            timelocks=TIMELOCKS.with_deployed_at(1_700_000_000),
        )

    def test_hash_is_keccak_of_abi_encoding(self):
        expected = keccak(encode(
            ["bytes32", "bytes32", "address", "address", "address", "uint256", "uint256", "uint256"],
            [keccak(b"order-1"), self.hashlock, self.maker, self.taker, self.token,
             1000, 10, int(self.immutables.timelocks)],
        ))
        self.assertEqual(self.immutables.hash(), expected)

    def test_every_field_changes_hash(self):
        base = self.immutables.hash()
        variants = [
            replace(self.immutables, order_hash=keccak(b"order-2")),
            replace(self.immutables, hashlock=keccak(b"other")),
            replace(self.immutables, maker=new_address()),
            replace(self.immutables, taker=new_address()),
            replace(self.immutables, token=ZERO_ADDRESS),
            replace(self.immutables, amount=1001),
            replace(self.immutables, safety_deposit=11),
            self.immutables.with_deployed_at(1_700_000_001),
        ]
        hashes = {v.hash() for v in variants}
        self.assertEqual(len(hashes), len(variants))
        self.assertNotIn(base, hashes)

    def test_normalizes_inputs(self):
        same = Immutables(
            order_hash="0x" + keccak(b"order-1").hex(),
            hashlock=self.hashlock.hex(),
            maker=self.maker.lower(),
            taker=self.taker.lower(),
            token=self.token.lower(),
            amount=1000,
            safety_deposit=10,
            timelocks=int(self.immutables.timelocks),
        )
        self.assertEqual(same, self.immutables)
        self.assertEqual(same.hash(), self.immutables.hash())

    def test_negative_amount_rejected(self):
        with self.assertRaises(ValueError):
            replace(self.immutables, amount=-1)

    def test_to_dict(self):
        data = self.immutables.to_dict()
        self.assertEqual(data["deployed_at"], 1_700_000_000)
        self.assertEqual(data["hashlock"], "0x" + self.hashlock.hex())
        self.assertEqual(data["maker"], self.maker)

    def test_complement_builds_destination_terms(self):
        dst_token = new_address()
        complement = DstImmutablesComplement(self.maker, 990, dst_token, 5, 56)
        dst = complement.to_immutables(self.immutables, self.taker, TIMELOCKS)
        self.assertEqual(dst.order_hash, self.immutables.order_hash)
        self.assertEqual(dst.hashlock, self.hashlock)
        self.assertEqual(dst.token, dst_token)
        self.assertEqual(dst.amount, 990)
        self.assertEqual(dst.safety_deposit, 5)
        self.assertEqual(dst.timelocks.offset(Stage.DST_CANCELLATION),
                         TIMELOCKS.offset(Stage.DST_CANCELLATION))


if __name__ == "__main__":
    unittest.main(verbosity=2)
