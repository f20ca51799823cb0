"""
Shared setup for escrow tests: one deployment per chain and helpers to
open source and destination escrows.
"""

import os
import sys
from dataclasses import dataclass

from eth_account import Account

# Add SDK to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fusion_sdk.core import (
    ZERO_ADDRESS, generate_secret, keccak,
    DEFAULT_SRC_TIMELOCKS, DEFAULT_DST_TIMELOCKS,
)
from fusion_sdk.chains import Chain, ChainConfig, Token
from fusion_sdk.escrow import (
    EscrowFactory, ExtraDataArgs, FactoryConfig, Immutables, LimitOrderProtocol,
    Order, Stage, Timelocks, WhitelistEntry, pack_safety_deposits,
)

ETHER = 10 ** 18
AMOUNT = 100 * ETHER
DEPOSIT = ETHER // 100

SRC_CHAIN_ID = 1
DST_CHAIN_ID = 56

TIMELOCKS = Timelocks.pack({**DEFAULT_SRC_TIMELOCKS, **DEFAULT_DST_TIMELOCKS})


def new_address() -> str:
    return Account.create().address


class Deployment:
    """Token, fee token, limit-order protocol and factory on a fresh chain."""

    def __init__(self, chain_id: int = SRC_CHAIN_ID, name: str = "src", config: FactoryConfig = None):
        self.chain = Chain(ChainConfig(chain_id=chain_id, name=name))
        self.deployer = new_address()
        self.token = self.chain.deploy(self.deployer, Token, "Swap Token", "SWP")
        self.fee_token = self.chain.deploy(self.deployer, Token, "Fee Token", "FEE")
        self.lop = self.chain.deploy(self.deployer, LimitOrderProtocol)
        self.factory = self.chain.deploy(self.deployer, EscrowFactory, self.lop.address,
                                         self.fee_token.address, config)

    def mint(self, to: str, amount: int, token: Token = None):
        token = token or self.token
        self.chain.transact(self.deployer, token.address, "mint", to, amount)

    def approve(self, owner: str, spender: str, amount: int, token: Token = None):
        token = token or self.token
        self.chain.transact(owner, token.address, "approve", spender, amount)

    def escrow(self, address: str):
        return self.chain.contract(address)


@dataclass
class SrcFill:
    """Result of opening a source escrow through an order fill."""
    secret: bytes
    immutables: Immutables
    escrow: str
    order: Order
    extra: ExtraDataArgs


def build_order(dep: Deployment, maker: str, amount: int = AMOUNT, taking: int = None) -> Order:
    return Order(
        salt=int.from_bytes(os.urandom(8), "big"),
        maker=maker,
        maker_asset=dep.token.address,
        taker_asset=new_address(),
        making_amount=amount,
        taking_amount=amount if taking is None else taking,
        post_interaction=dep.factory.address,
    )


def build_extra(dep: Deployment, hashlock: bytes, resolver: str, deposit: int = DEPOSIT,
                timelocks: Timelocks = TIMELOCKS, whitelist=None, allowed_time: int = None,
                resolver_fee: int = None) -> ExtraDataArgs:
    return ExtraDataArgs(
        hashlock=hashlock,
        dst_chain_id=DST_CHAIN_ID,
        dst_token=new_address(),
        deposits=pack_safety_deposits(deposit, deposit),
        timelocks=timelocks,
        allowed_time=dep.chain.timestamp if allowed_time is None else allowed_time,
        whitelist=(WhitelistEntry.for_address(resolver),) if whitelist is None else tuple(whitelist),
        resolver_fee=resolver_fee,
    )


def predict_src(dep: Deployment, order: Order, extra: ExtraDataArgs, resolver: str,
                amount: int = None) -> Immutables:
    return Immutables(
        order_hash=dep.lop.hash_order(order),
        hashlock=extra.hashlock,
        maker=order.maker,
        taker=resolver,
        token=order.maker_asset,
        amount=order.making_amount if amount is None else amount,
        safety_deposit=extra.src_safety_deposit,
        timelocks=extra.timelocks.with_deployed_at(dep.chain.timestamp),
    )


def open_src_escrow(dep: Deployment, maker: str, resolver: str, amount: int = AMOUNT,
                    deposit: int = DEPOSIT, timelocks: Timelocks = TIMELOCKS, **extra_kwargs) -> SrcFill:
    """Fill a fresh order so the factory deploys its source escrow."""
    secret, hashlock = generate_secret()
    order = build_order(dep, maker, amount)
    extra = build_extra(dep, hashlock, resolver, deposit, timelocks, **extra_kwargs)

    dep.mint(maker, amount)
    dep.approve(maker, dep.lop.address, amount)
    dep.chain.fund(resolver, deposit)

    immutables = predict_src(dep, order, extra, resolver)
    escrow = dep.factory.address_of_escrow_src(immutables)
    dep.chain.transact(resolver, dep.lop.address, "fill_order", order, amount, escrow,
                       extra.encode(), value=deposit)
    return SrcFill(secret, immutables, escrow, order, extra)


def dst_immutables(maker: str, resolver: str, hashlock: bytes, token: str, amount: int = AMOUNT,
                   deposit: int = DEPOSIT, timelocks: Timelocks = TIMELOCKS) -> Immutables:
    return Immutables(
        order_hash=keccak(b"order"),
        hashlock=hashlock,
        maker=maker,
        taker=resolver,
        token=token,
        amount=amount,
        safety_deposit=deposit,
        timelocks=timelocks,
    )


def open_dst_escrow(dep: Deployment, immutables: Immutables, src_cancellation: int = None):
    """
    Fund the resolver and create a destination escrow.

    Returns:
        (escrow address, immutables stamped with the deployment time)
    """
    resolver = immutables.taker
    if src_cancellation is None:
        src_cancellation = dep.chain.timestamp + immutables.timelocks.offset(Stage.SRC_CANCELLATION)

    value = immutables.safety_deposit
    if immutables.token == ZERO_ADDRESS:
        value += immutables.amount
    else:
        dep.mint(resolver, immutables.amount)
        dep.approve(resolver, dep.factory.address, immutables.amount)
    dep.chain.fund(resolver, value)

    escrow = dep.chain.transact(resolver, dep.factory.address, "create_dst_escrow",
                                immutables, src_cancellation, value=value)
    return escrow, immutables.with_deployed_at(dep.chain.timestamp)
