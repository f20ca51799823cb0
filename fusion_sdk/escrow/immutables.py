"""
Escrow immutables: the frozen parameter set that defines one escrow instance.

The keccak256 of the ABI-encoded immutables is the CREATE2 salt, so the
instance address commits to every field.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict

from eth_abi import encode

from ..core import keccak, to_address, to_bytes32
from .timelocks import Timelocks

IMMUTABLES_ABI = [
    "bytes32",  # order_hash
    "bytes32",  # hashlock
    "address",  # maker
    "address",  # taker
    "address",  # token
    "uint256",  # amount
    "uint256",  # safety_deposit
    "uint256",  # timelocks
]


@dataclass(frozen=True)
class Immutables:
    """Parameters of one escrow leg."""
    order_hash: bytes
    hashlock: bytes
    maker: str
    taker: str
    token: str
    amount: int
    safety_deposit: int
    timelocks: Timelocks = field(default_factory=Timelocks)

    def __post_init__(self):
        # Normalize once so equal swaps always hash equally
        object.__setattr__(self, "order_hash", to_bytes32(self.order_hash))
        object.__setattr__(self, "hashlock", to_bytes32(self.hashlock))
        object.__setattr__(self, "maker", to_address(self.maker))
        object.__setattr__(self, "taker", to_address(self.taker))
        object.__setattr__(self, "token", to_address(self.token))
        if isinstance(self.timelocks, int):
            object.__setattr__(self, "timelocks", Timelocks(self.timelocks))
        if self.amount < 0 or self.safety_deposit < 0:
            raise ValueError("amount and safety_deposit must be non-negative")

    def encode(self) -> bytes:
        return encode(IMMUTABLES_ABI, [
            self.order_hash,
            self.hashlock,
            self.maker,
            self.taker,
            self.token,
            self.amount,
            self.safety_deposit,
            int(self.timelocks),
        ])

    def hash(self) -> bytes:
        """CREATE2 salt of the escrow defined by these immutables."""
        return keccak(self.encode())

    def with_deployed_at(self, timestamp: int) -> "Immutables":
        return replace(self, timelocks=self.timelocks.with_deployed_at(timestamp))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_hash": "0x" + self.order_hash.hex(),
            "hashlock": "0x" + self.hashlock.hex(),
            "maker": self.maker,
            "taker": self.taker,
            "token": self.token,
            "amount": self.amount,
            "safety_deposit": self.safety_deposit,
            "timelocks": int(self.timelocks),
            "deployed_at": self.timelocks.deployed_at,
        }


@dataclass(frozen=True)
class DstImmutablesComplement:
    """Destination leg terms published when the source escrow is created."""
    maker: str
    amount: int
    token: str
    safety_deposit: int
    chain_id: int

    def to_immutables(self, src: Immutables, taker: str, timelocks: Timelocks) -> Immutables:
        """Destination immutables for the resolver `taker`, sharing order and hashlock with `src`."""
        return Immutables(
            order_hash=src.order_hash,
            hashlock=src.hashlock,
            maker=self.maker,
            taker=taker,
            token=self.token,
            amount=self.amount,
            safety_deposit=self.safety_deposit,
            timelocks=timelocks,
        )
