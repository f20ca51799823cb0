#!/usr/bin/env python3
"""
Post-Fill Payload and Fee Bank Tests

Usage:
    python test_extra_data.py
"""

import sys
import os
import unittest

# Add SDK to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from escrow_fixtures import TIMELOCKS, Deployment, new_address

from fusion_sdk.core import (
    ORDER_FEE_BASE_POINTS, UINT128_MAX, AccessDenied, InsufficientCredit, InvalidExtraData,
    generate_secret,
)
from fusion_sdk.escrow.extra_data import (
    ESCROW_ARGS_SIZE, ExtraDataArgs, WhitelistEntry, address_suffix, pack_safety_deposits,
)


class TestExtraDataCodec(unittest.TestCase):

    def setUp(self):
        _, self.hashlock = generate_secret()
        self.resolver = new_address()
        self.args = ExtraDataArgs(
            hashlock=self.hashlock,
            dst_chain_id=56,
            dst_token=new_address(),
            deposits=pack_safety_deposits(7, 3),
            timelocks=TIMELOCKS,
            allowed_time=1_700_000_000,
            whitelist=(WhitelistEntry.for_address(self.resolver, 12),
                       WhitelistEntry.for_address(new_address())),
            resolver_fee=25,
        )

    def test_decode_restores_fields(self):
        self.assertEqual(ExtraDataArgs.decode(self.args.encode()), self.args)

    def test_layout(self):
        data = self.args.encode()
        self.assertEqual(data[0], (2 << 3) | 0x01)
        self.assertEqual(data[1:33], self.hashlock)
        tail = data[1 + ESCROW_ARGS_SIZE:]
        self.assertEqual(len(tail), 4 + 4 + 2 * 12)
        self.assertEqual(int.from_bytes(tail[0:4], "big"), 25)
        self.assertEqual(int.from_bytes(tail[4:8], "big"), 1_700_000_000)
        self.assertEqual(tail[8:18], address_suffix(self.resolver))
        self.assertEqual(int.from_bytes(tail[18:20], "big"), 12)

    def test_without_fee(self):
        args = ExtraDataArgs(self.hashlock, 1, new_address(), 0, TIMELOCKS)
        data = args.encode()
        self.assertEqual(data[0], 0)
        self.assertEqual(len(data), 1 + ESCROW_ARGS_SIZE + 4)
        decoded = ExtraDataArgs.decode(data)
        self.assertIsNone(decoded.resolver_fee)
        self.assertEqual(decoded.fee, 0)

    def test_safety_deposits(self):
        self.assertEqual(self.args.src_safety_deposit, 7)
        self.assertEqual(self.args.dst_safety_deposit, 3)
        with self.assertRaises(ValueError):
            pack_safety_deposits(UINT128_MAX + 1, 0)

    def test_fee_units(self):
        self.assertEqual(self.args.fee, 25 * ORDER_FEE_BASE_POINTS)

    def test_malformed(self):
        data = self.args.encode()
        with self.assertRaises(InvalidExtraData):
            ExtraDataArgs.decode(data[:10])
        with self.assertRaises(InvalidExtraData):
            ExtraDataArgs.decode(data + b"\x00")
        with self.assertRaises(InvalidExtraData):
            # Flags claim three entries, payload carries two
            ExtraDataArgs.decode(bytes([(3 << 3) | 0x01]) + data[1:])


class TestWhitelist(unittest.TestCase):

    def setUp(self):
        self.first = new_address()
        self.second = new_address()
        self.args = ExtraDataArgs(
            hashlock=b"\x01" * 32,
            dst_chain_id=56,
            dst_token=new_address(),
            deposits=0,
            timelocks=TIMELOCKS,
            allowed_time=1000,
            whitelist=(WhitelistEntry.for_address(self.first, 100),
                       WhitelistEntry.for_address(self.second)),
        )

    def test_nobody_before_allowed_time(self):
        self.assertFalse(self.args.is_whitelisted(self.first, 999))

    def test_first_resolver_exclusive_period(self):
        self.assertTrue(self.args.is_whitelisted(self.first, 1000))
        self.assertFalse(self.args.is_whitelisted(self.second, 1099))
        self.assertTrue(self.args.is_whitelisted(self.second, 1100))

    def test_unknown_resolver(self):
        self.assertFalse(self.args.is_whitelisted(new_address(), 10 ** 9))

    def test_empty_whitelist_opens_after_allowed_time(self):
        args = ExtraDataArgs(b"\x01" * 32, 56, new_address(), 0, TIMELOCKS, allowed_time=1000)
        self.assertFalse(args.is_whitelisted(new_address(), 999))
        self.assertTrue(args.is_whitelisted(new_address(), 1000))


class TestFeeBank(unittest.TestCase):

    def setUp(self):
        self.dep = Deployment()
        self.chain = self.dep.chain
        self.bank = self.chain.contract(self.dep.factory.fee_bank)
        self.resolver = new_address()
        self.dep.mint(self.resolver, 1000, token=self.dep.fee_token)
        self.dep.approve(self.resolver, self.bank.address, 1000, token=self.dep.fee_token)

    def test_deposit_and_withdraw(self):
        self.chain.transact(self.resolver, self.bank.address, "deposit", 600)
        self.assertEqual(self.bank.available_credit(self.resolver), 600)
        self.assertEqual(self.dep.fee_token.balance_of(self.bank.address), 600)

        self.chain.transact(self.resolver, self.bank.address, "withdraw", 200)
        self.assertEqual(self.bank.available_credit(self.resolver), 400)
        self.assertEqual(self.dep.fee_token.balance_of(self.resolver), 600)

        with self.assertRaises(InsufficientCredit):
            self.chain.transact(self.resolver, self.bank.address, "withdraw", 401)

    def test_deposit_for_other_account(self):
        other = new_address()
        self.chain.transact(self.resolver, self.bank.address, "deposit_for", other, 300)
        self.assertEqual(self.bank.available_credit(other), 300)
        self.assertEqual(self.bank.available_credit(self.resolver), 0)

    def test_only_factory_charges(self):
        self.chain.transact(self.resolver, self.bank.address, "deposit", 100)
        with self.assertRaises(AccessDenied):
            self.chain.transact(self.resolver, self.bank.address, "charge_fee", self.resolver, 100)
        self.assertEqual(self.bank.available_credit(self.resolver), 100)


if __name__ == "__main__":
    unittest.main(verbosity=2)
