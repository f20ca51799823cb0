"""
Core types, errors and helpers for the fusion escrow SDK.
"""

import secrets
from enum import Enum
from typing import Tuple, Union

from web3 import Web3


class SwapState(Enum):
    """Two-leg swap lifecycle states (as seen by the coordinator)."""
    CREATED = "created"                 # Order built, secret held by maker
    SRC_LOCKED = "src_locked"           # Source escrow deployed and funded
    DST_LOCKED = "dst_locked"           # Destination escrow deployed and funded
    SECRET_SHARED = "secret_shared"     # Maker released the secret to the resolver
    DST_WITHDRAWN = "dst_withdrawn"     # Maker paid on destination, secret public
    COMPLETED = "completed"             # Both legs settled
    CANCELLED = "cancelled"             # Both legs refunded
    FAILED = "failed"                   # Error state


class Leg(Enum):
    """Side of a cross-chain swap."""
    SRC = "src"
    DST = "dst"


# =============================================================================
# Errors
# =============================================================================

class FusionError(Exception):
    """Base class for all SDK failures."""


class EscrowError(FusionError):
    """Base class for escrow protocol failures."""


class InvalidImmutables(EscrowError):
    """Supplied immutables do not hash to the escrow's own address."""


class InvalidSecret(EscrowError):
    """keccak256(secret) does not match the hashlock."""


class InvalidWithdrawalTime(EscrowError):
    """Withdrawal attempted outside its window."""


class InvalidCancellationTime(EscrowError):
    """Cancellation attempted outside its window."""


class InvalidRescueTime(EscrowError):
    """Rescue attempted before the rescue delay elapsed."""


class InvalidCaller(EscrowError):
    """Caller is not allowed to perform this action in this window."""


class InvalidCreationTime(EscrowError):
    """Destination escrow created too late for the source leg."""


class InsufficientEscrowBalance(EscrowError):
    """Escrow address is not funded with the expected amounts."""


class InvalidExtraData(EscrowError):
    """Malformed post-fill hook payload."""


class ResolverNotWhitelisted(EscrowError):
    """Resolver is not allowed to fill at the current time."""


class AccessDenied(EscrowError):
    """Entry point restricted to a specific caller."""


class InsufficientCredit(EscrowError):
    """Resolver fee balance cannot cover the fee."""


class OrderError(EscrowError):
    """Order cannot be filled as requested."""


class LedgerError(FusionError):
    """Base class for execution environment failures."""


class InsufficientBalance(LedgerError):
    """Sender balance too low for a transfer."""


class InsufficientAllowance(LedgerError):
    """Spender allowance too low for transfer_from."""


class DeploymentFailed(LedgerError):
    """Target address already holds code."""


class UnknownContract(LedgerError):
    """No contract (or no such public method) at the target address."""


# =============================================================================
# Hashlock Utilities
# =============================================================================

def keccak(data: bytes) -> bytes:
    """keccak256 digest as plain bytes."""
    return bytes(Web3.keccak(data))


def generate_secret() -> Tuple[bytes, bytes]:
    """
    Generate a random 32-byte secret and its keccak256 hashlock.

    Returns:
        (secret, hashlock)
    """
    secret = secrets.token_bytes(32)
    return secret, keccak(secret)


def verify_secret(secret: bytes, hashlock: bytes) -> bool:
    """Check keccak256(secret) == hashlock."""
    if not isinstance(secret, (bytes, bytearray)):
        return False
    return keccak(bytes(secret)) == bytes(hashlock)


def to_bytes32(value: Union[bytes, str, int]) -> bytes:
    """Normalize hex strings, ints and short byte strings to 32 bytes."""
    if isinstance(value, int):
        return value.to_bytes(32, "big")
    if isinstance(value, str):
        value = bytes.fromhex(value[2:] if value.startswith("0x") else value)
    value = bytes(value)
    if len(value) > 32:
        raise ValueError(f"bytes32 overflow: {len(value)} bytes")
    return value.rjust(32, b"\x00")


# =============================================================================
# Address Utilities
# =============================================================================

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def to_address(value: Union[str, bytes]) -> str:
    """Checksum an address given as hex string or 20 raw bytes."""
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 20:
            raise ValueError(f"address must be 20 bytes, got {len(value)}")
        value = "0x" + bytes(value).hex()
    return Web3.to_checksum_address(value)


def address_bytes(address: str) -> bytes:
    """Raw 20 bytes of a hex address."""
    return bytes.fromhex(to_address(address)[2:])


def short(address: str) -> str:
    """Shortened address for log lines."""
    return f"{address[:8]}...{address[-4:]}"


# =============================================================================
# Constants
# =============================================================================

# Default rescue delay for both legs (7 days)
DEFAULT_RESCUE_DELAY = 604800

# Fee base: resolver fee units in the extra data are multiplied by this
ORDER_FEE_BASE_POINTS = 10 ** 15

UINT32_MAX = 2 ** 32 - 1
UINT128_MAX = 2 ** 128 - 1

# Default stage offsets in seconds, relative to deployment.
# Source: finality 120s, private withdraw 240s, then cancellation and public cancellation.
DEFAULT_SRC_TIMELOCKS = {
    "src_withdrawal": 120,
    "src_public_withdrawal": 360,
    "src_cancellation": 1020,
    "src_public_cancellation": 1140,
}

# Destination: finality 300s, private withdraw 240s, public withdraw 360s.
DEFAULT_DST_TIMELOCKS = {
    "dst_withdrawal": 300,
    "dst_public_withdrawal": 540,
    "dst_cancellation": 900,
}
