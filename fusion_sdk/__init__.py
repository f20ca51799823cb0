"""
fusion SDK - Cross-Chain Escrow Swap Library

Atomic swaps between two chains using hash/time-locked escrows deployed at
deterministic (CREATE2) addresses by an escrow factory.

Usage:
    from fusion_sdk import Chain, ChainConfig, Token, EscrowFactory, LimitOrderProtocol
    from fusion_sdk import SwapExecutor, generate_secret

    # Two independent ledgers
    src = Chain(ChainConfig(chain_id=1, name="ethereum"))
    dst = Chain(ChainConfig(chain_id=56, name="bsc"))

    # Protocol contracts
    lop = src.deploy(deployer, LimitOrderProtocol)
    factory = src.deploy(deployer, EscrowFactory, lop.address, fee_token)

    # Orchestrate
    executor = SwapExecutor(src, dst, src_factory, dst_factory)
    swap = executor.create_swap(maker, usdc, 100, usdt, 99, resolver)
    executor.lock_source(swap.swap_id)
    executor.lock_destination(swap.swap_id)
"""

from .core import (
    SwapState,
    Leg,
    FusionError,
    EscrowError,
    LedgerError,
    generate_secret,
    verify_secret,
    keccak,
    ZERO_ADDRESS,
    DEFAULT_RESCUE_DELAY,
)

from .chains.ledger import Chain, ChainConfig, CallContext, Contract, public
from .chains.token import Token

from .escrow.timelocks import Stage, Timelocks
from .escrow.immutables import Immutables, DstImmutablesComplement
from .escrow.escrow import Escrow, Phase, Settlement
from .escrow.extra_data import ExtraDataArgs, WhitelistEntry
from .escrow.fee_bank import FeeBank
from .escrow.order import Order, LimitOrderProtocol
from .escrow.factory import EscrowFactory, FactoryConfig

from .swap.executor import SwapExecutor, SwapConfig, ActiveSwap
from .swap.watcher import SecretWatcher

__version__ = "0.1.0"
__all__ = [
    # Core types
    "SwapState",
    "Leg",
    "FusionError",
    "EscrowError",
    "LedgerError",
    # Utilities
    "generate_secret",
    "verify_secret",
    "keccak",
    "ZERO_ADDRESS",
    "DEFAULT_RESCUE_DELAY",
    # Ledger
    "Chain",
    "ChainConfig",
    "CallContext",
    "Contract",
    "public",
    "Token",
    # Escrow
    "Stage",
    "Timelocks",
    "Immutables",
    "DstImmutablesComplement",
    "Escrow",
    "Phase",
    "Settlement",
    "ExtraDataArgs",
    "WhitelistEntry",
    "FeeBank",
    "Order",
    "LimitOrderProtocol",
    "EscrowFactory",
    "FactoryConfig",
    # Swap
    "SwapExecutor",
    "SwapConfig",
    "ActiveSwap",
    "SecretWatcher",
]
