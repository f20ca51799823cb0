"""
Ledger model for the fusion escrow SDK.

Provides the execution guarantees the escrow protocol assumes:
- Atomic transactions with full rollback
- A monotonic block timestamp per chain
- Deterministic CREATE / CREATE2 addressing
"""

from .ledger import (
    Chain,
    ChainConfig,
    CallContext,
    Contract,
    Event,
    public,
    compute_create_address,
    compute_create2_address,
    proxy_init_code,
    proxy_bytecode_hash,
)
from .token import Token, uni_balance_of, uni_transfer

__all__ = [
    "Chain",
    "ChainConfig",
    "CallContext",
    "Contract",
    "Event",
    "public",
    "compute_create_address",
    "compute_create2_address",
    "proxy_init_code",
    "proxy_bytecode_hash",
    "Token",
    "uni_balance_of",
    "uni_transfer",
]
