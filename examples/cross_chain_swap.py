#!/usr/bin/env python3
"""
Example: Cross-Chain Escrow Swap

Runs a full swap between two in-memory chains:

1. Deploy tokens, limit-order protocol and escrow factories
2. Maker signs an order (100 SRC for 99 DST)
3. Resolver fills it -> source escrow locked
4. Resolver locks the taker asset on the destination chain
5. Maker shares the secret, resolver pays the maker on destination
6. Resolver claims the source escrow with the revealed secret

With --cancel the secret is never shared and both legs are refunded
after their cancellation stages open.

Usage:
    python cross_chain_swap.py [--cancel] [--fee UNITS]
"""

import sys
import argparse
import logging
from pathlib import Path

from eth_account import Account

# Add SDK to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fusion_sdk.core import SwapState
from fusion_sdk.chains import Chain, ChainConfig, Token
from fusion_sdk.escrow import EscrowFactory, FactoryConfig, LimitOrderProtocol, Stage
from fusion_sdk.swap import SwapExecutor, SwapConfig

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s'
)
log = logging.getLogger(__name__)

ETHER = 10 ** 18


def deploy(chain: Chain, deployer: str, symbol: str):
    """Token, limit-order protocol, fee token and factory on one chain."""
    token = chain.deploy(deployer, Token, f"{symbol} Token", symbol)
    fee_token = chain.deploy(deployer, Token, "Fee Token", "FEE")
    lop = chain.deploy(deployer, LimitOrderProtocol)
    factory = chain.deploy(deployer, EscrowFactory, lop.address, fee_token.address, FactoryConfig.from_env())
    return token, fee_token, lop, factory


def main():
    parser = argparse.ArgumentParser(description="Cross-chain escrow swap demo")
    parser.add_argument("--cancel", action="store_true", help="Skip the secret and refund both legs")
    parser.add_argument("--fee", type=int, default=None, help="Resolver fee units")
    parser.add_argument("--amount", type=int, default=100 * ETHER, help="Maker amount (wei)")
    args = parser.parse_args()

    # =================================================================
    # 1. Chains and accounts
    # =================================================================
    src = Chain(ChainConfig(chain_id=1, name="ethereum"))
    dst = Chain(ChainConfig(chain_id=56, name="bsc", native_symbol="BNB"))

    deployer = Account.create().address
    maker = Account.create().address
    resolver = Account.create().address

    for chain in (src, dst):
        chain.fund(resolver, 10 * ETHER)

    src_token, src_fee, src_lop, src_factory = deploy(src, deployer, "SRC")
    dst_token, _, _, dst_factory = deploy(dst, deployer, "DST")

    src.transact(deployer, src_token.address, "mint", maker, args.amount)
    dst.transact(deployer, dst_token.address, "mint", resolver, args.amount)
    src.transact(maker, src_token.address, "approve", src_lop.address, args.amount)

    if args.fee:
        fee = args.fee * 10 ** 15
        src.transact(deployer, src_fee.address, "mint", resolver, fee)
        src.transact(resolver, src_fee.address, "approve", src_factory.fee_bank, fee)
        src.transact(resolver, src_factory.fee_bank, "deposit", fee)

    # =================================================================
    # 2. Order
    # =================================================================
    executor = SwapExecutor(src, dst, src_factory.address, dst_factory.address,
                            SwapConfig(resolver_fee=args.fee))
    taking = args.amount * 99 // 100
    swap = executor.create_swap(maker, src_token.address, args.amount,
                                dst_token.address, taking, resolver)

    # =================================================================
    # 3. Lock both legs
    # =================================================================
    executor.lock_source(swap.swap_id)
    log.info(f"Source escrow: {swap.src_escrow}")

    dst.warp(src.timestamp + 30)
    executor.lock_destination(swap.swap_id)
    log.info(f"Destination escrow: {swap.dst_escrow}")

    if args.cancel:
        # =============================================================
        # 4b. Refund both legs
        # =============================================================
        dst.warp(swap.dst_immutables.timelocks.get(Stage.DST_CANCELLATION))
        executor.cancel_destination(swap.swap_id)

        src.warp(swap.src_immutables.timelocks.get(Stage.SRC_CANCELLATION))
        executor.cancel_source(swap.swap_id)
    else:
        # =============================================================
        # 4. Settle
        # =============================================================
        executor.share_secret(swap.swap_id)

        dst.warp(swap.dst_immutables.timelocks.get(Stage.DST_WITHDRAWAL))
        executor.withdraw_destination(swap.swap_id)

        src.warp(max(src.timestamp, swap.src_immutables.timelocks.get(Stage.SRC_WITHDRAWAL)))
        executor.withdraw_source(swap.swap_id)

    # =================================================================
    # 5. Results
    # =================================================================
    log.info(f"Swap {swap.swap_id}: {swap.state.value}")
    log.info(f"  maker    SRC={src_token.balance_of(maker)}  DST={dst_token.balance_of(maker)}")
    log.info(f"  resolver SRC={src_token.balance_of(resolver)}  DST={dst_token.balance_of(resolver)}")

    expected = SwapState.CANCELLED if args.cancel else SwapState.COMPLETED
    return 0 if swap.state == expected else 1


if __name__ == "__main__":
    sys.exit(main())
