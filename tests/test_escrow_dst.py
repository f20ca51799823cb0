#!/usr/bin/env python3
"""
Destination Escrow Tests

Usage:
    python test_escrow_dst.py
"""

import sys
import os
import unittest

# Add SDK to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from escrow_fixtures import (
    AMOUNT, DEPOSIT, DST_CHAIN_ID, Deployment, dst_immutables, new_address, open_dst_escrow,
)

from fusion_sdk.core import (
    ZERO_ADDRESS, InvalidCaller, InvalidCancellationTime, InvalidSecret,
    InvalidWithdrawalTime, generate_secret,
)
from fusion_sdk.escrow import Phase, Stage


class DstEscrowCase(unittest.TestCase):
    native = False

    def setUp(self):
        self.dep = Deployment(chain_id=DST_CHAIN_ID, name="dst")
        self.chain = self.dep.chain
        self.maker = new_address()
        self.resolver = new_address()
        self.stranger = new_address()
        self.secret, hashlock = generate_secret()
        token = ZERO_ADDRESS if self.native else self.dep.token.address
        self.escrow, self.imm = open_dst_escrow(
            self.dep, dst_immutables(self.maker, self.resolver, hashlock, token)
        )

    def at(self, stage: Stage, delta: int = 0):
        self.chain.warp(self.imm.timelocks.get(stage) + delta)

    def call(self, sender, method, *args):
        return self.chain.transact(sender, self.escrow, method, *args)


class TestDstWithdraw(DstEscrowCase):

    def test_funded_on_creation(self):
        self.assertEqual(self.dep.token.balance_of(self.escrow), AMOUNT)
        self.assertEqual(self.chain.balance_of(self.escrow), DEPOSIT)
        self.assertEqual(self.chain.contract(self.escrow).implementation,
                         self.dep.factory.escrow_dst_implementation)

    def test_withdraw_pays_maker(self):
        self.at(Stage.DST_WITHDRAWAL, -1)
        with self.assertRaises(InvalidWithdrawalTime):
            self.call(self.resolver, "withdraw", self.secret, self.imm)

        self.at(Stage.DST_WITHDRAWAL)
        settlement = self.call(self.resolver, "withdraw", self.secret, self.imm)
        self.assertEqual(settlement.recipient, self.maker)
        self.assertEqual(self.dep.token.balance_of(self.maker), AMOUNT)
        self.assertEqual(self.chain.balance_of(self.resolver), DEPOSIT)
        self.assertEqual(self.dep.token.balance_of(self.escrow), 0)

    def test_withdraw_reveals_secret(self):
        self.at(Stage.DST_WITHDRAWAL)
        self.call(self.resolver, "withdraw", self.secret, self.imm)
        events = self.chain.events(address=self.escrow, name="Withdrawal")
        self.assertEqual([e.args["secret"] for e in events], [self.secret])

    def test_wrong_secret(self):
        self.at(Stage.DST_WITHDRAWAL)
        with self.assertRaises(InvalidSecret):
            self.call(self.resolver, "withdraw", self.secret[::-1], self.imm)
        self.assertEqual(self.dep.token.balance_of(self.escrow), AMOUNT)

    def test_only_taker_in_private_window(self):
        self.at(Stage.DST_WITHDRAWAL)
        with self.assertRaises(InvalidCaller):
            self.call(self.maker, "withdraw", self.secret, self.imm)

    def test_public_withdraw(self):
        self.at(Stage.DST_PUBLIC_WITHDRAWAL, -1)
        with self.assertRaises(InvalidWithdrawalTime):
            self.call(self.stranger, "public_withdraw", self.secret, self.imm)

        self.at(Stage.DST_PUBLIC_WITHDRAWAL)
        self.assertEqual(self.chain.contract(self.escrow).phase(self.imm), Phase.PUBLIC_WITHDRAWAL)
        self.call(self.stranger, "public_withdraw", self.secret, self.imm)
        self.assertEqual(self.dep.token.balance_of(self.maker), AMOUNT)
        self.assertEqual(self.chain.balance_of(self.stranger), DEPOSIT)

    def test_public_withdraw_closes_at_cancellation(self):
        self.at(Stage.DST_CANCELLATION)
        with self.assertRaises(InvalidWithdrawalTime):
            self.call(self.stranger, "public_withdraw", self.secret, self.imm)


class TestDstCancel(DstEscrowCase):

    def test_cancel_refunds_taker(self):
        self.at(Stage.DST_CANCELLATION, -1)
        with self.assertRaises(InvalidCancellationTime):
            self.call(self.resolver, "cancel", self.imm)

        self.at(Stage.DST_CANCELLATION)
        settlement = self.call(self.resolver, "cancel", self.imm)
        self.assertEqual(settlement.recipient, self.resolver)
        self.assertEqual(self.dep.token.balance_of(self.resolver), AMOUNT)
        self.assertEqual(self.chain.balance_of(self.resolver), DEPOSIT)

    def test_no_public_cancel(self):
        self.at(Stage.DST_CANCELLATION, 100_000)
        with self.assertRaises(InvalidCancellationTime):
            self.call(self.stranger, "public_cancel", self.imm)
        self.assertEqual(self.chain.contract(self.escrow).phase(self.imm), Phase.PRIVATE_CANCELLATION)

    def test_withdraw_then_cancel_is_noop(self):
        self.at(Stage.DST_WITHDRAWAL)
        self.call(self.resolver, "withdraw", self.secret, self.imm)
        self.at(Stage.DST_CANCELLATION)
        settlement = self.call(self.resolver, "cancel", self.imm)
        self.assertTrue(settlement.already_settled)
        self.assertEqual(self.dep.token.balance_of(self.resolver), 0)


class TestDstNative(DstEscrowCase):
    native = True

    def test_native_escrow_holds_amount_and_deposit(self):
        self.assertEqual(self.chain.balance_of(self.escrow), AMOUNT + DEPOSIT)

    def test_native_withdraw(self):
        self.at(Stage.DST_WITHDRAWAL)
        self.call(self.resolver, "withdraw", self.secret, self.imm)
        self.assertEqual(self.chain.balance_of(self.maker), AMOUNT)
        self.assertEqual(self.chain.balance_of(self.resolver), DEPOSIT)
        self.assertEqual(self.chain.balance_of(self.escrow), 0)

    def test_native_second_withdraw_is_noop(self):
        self.at(Stage.DST_WITHDRAWAL)
        self.call(self.resolver, "withdraw", self.secret, self.imm)
        self.assertTrue(self.call(self.resolver, "withdraw", self.secret, self.imm).already_settled)


if __name__ == "__main__":
    unittest.main(verbosity=2)
