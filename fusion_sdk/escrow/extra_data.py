"""
Post-fill hook payload.

Layout:

    flags                 1 byte    bit 0: resolver fee present
                                    bits 3..7: number of whitelist entries
    escrow args           160 bytes abi.encode(bytes32 hashlock, uint256 dstChainId,
                                    address dstToken, uint256 deposits, uint256 timelocks)
    resolver fee          4 bytes   uint32, only if flags & 0x01
    allowed time          4 bytes   uint32, first moment any resolver may fill
    whitelist             N x 12    bytes10 taker address suffix ++ uint16 delay

`deposits` packs both safety deposits: src << 128 | dst.
"""

import struct
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError

from ..core import (
    ORDER_FEE_BASE_POINTS,
    UINT128_MAX,
    InvalidExtraData,
    address_bytes,
    to_address,
    to_bytes32,
)
from .timelocks import Timelocks

RESOLVER_FEE_FLAG = 0x01
WHITELIST_SHIFT = 3
MAX_WHITELIST = 0xFF >> WHITELIST_SHIFT

ESCROW_ARGS_ABI = ["bytes32", "uint256", "address", "uint256", "uint256"]
ESCROW_ARGS_SIZE = 32 * len(ESCROW_ARGS_ABI)

SUFFIX_SIZE = 10
WHITELIST_ENTRY = struct.Struct(">10sH")


def pack_safety_deposits(src: int, dst: int) -> int:
    if not (0 <= src <= UINT128_MAX and 0 <= dst <= UINT128_MAX):
        raise ValueError(f"Safety deposits must fit 128 bits: src={src}, dst={dst}")
    return (src << 128) | dst


def address_suffix(address: str) -> bytes:
    """Last 10 bytes of an address, as stored in whitelist entries."""
    return address_bytes(address)[-SUFFIX_SIZE:]


@dataclass(frozen=True)
class WhitelistEntry:
    """A whitelisted resolver; `delay` postpones the entries after it."""
    suffix: bytes
    delay: int = 0

    @classmethod
    def for_address(cls, address: str, delay: int = 0) -> "WhitelistEntry":
        return cls(address_suffix(address), delay)


@dataclass(frozen=True)
class ExtraDataArgs:
    """Decoded post-fill hook payload."""
    hashlock: bytes
    dst_chain_id: int
    dst_token: str
    deposits: int
    timelocks: Timelocks
    allowed_time: int = 0
    whitelist: Tuple[WhitelistEntry, ...] = field(default_factory=tuple)
    resolver_fee: Optional[int] = None

    @property
    def src_safety_deposit(self) -> int:
        return self.deposits >> 128

    @property
    def dst_safety_deposit(self) -> int:
        return self.deposits & UINT128_MAX

    @property
    def fee(self) -> int:
        """Fee owed by the resolver, in fee-token units."""
        return (self.resolver_fee or 0) * ORDER_FEE_BASE_POINTS

    def is_whitelisted(self, taker: str, now: int) -> bool:
        """
        Check whether `taker` may fill at `now`.

        Entries are walked in order. The running allowed time starts at
        `allowed_time` and each entry that is not the taker pushes it back by
        the entry's delay. An empty whitelist lets anyone fill after
        `allowed_time`.
        """
        allowed = self.allowed_time
        if not self.whitelist:
            return now >= allowed
        suffix = address_suffix(taker)
        for entry in self.whitelist:
            if now < allowed:
                return False
            if entry.suffix == suffix:
                return True
            allowed += entry.delay
        return False

    # =========================================================================
    # Codec
    # =========================================================================

    def encode(self) -> bytes:
        if len(self.whitelist) > MAX_WHITELIST:
            raise ValueError(f"At most {MAX_WHITELIST} whitelist entries, got {len(self.whitelist)}")
        flags = len(self.whitelist) << WHITELIST_SHIFT
        if self.resolver_fee is not None:
            flags |= RESOLVER_FEE_FLAG

        data = bytes([flags])
        data += encode(ESCROW_ARGS_ABI, [
            to_bytes32(self.hashlock),
            self.dst_chain_id,
            to_address(self.dst_token),
            self.deposits,
            int(self.timelocks),
        ])
        if self.resolver_fee is not None:
            data += struct.pack(">I", self.resolver_fee)
        data += struct.pack(">I", self.allowed_time)
        for entry in self.whitelist:
            data += WHITELIST_ENTRY.pack(entry.suffix, entry.delay)
        return data

    @classmethod
    def decode(cls, data: bytes) -> "ExtraDataArgs":
        data = bytes(data)
        if len(data) < 1 + ESCROW_ARGS_SIZE + 4:
            raise InvalidExtraData(f"Extra data too short: {len(data)} bytes")

        flags = data[0]
        has_fee = bool(flags & RESOLVER_FEE_FLAG)
        count = flags >> WHITELIST_SHIFT

        try:
            hashlock, dst_chain_id, dst_token, deposits, timelocks = decode(
                ESCROW_ARGS_ABI, data[1:1 + ESCROW_ARGS_SIZE]
            )
        except DecodingError as e:
            raise InvalidExtraData(f"Bad escrow args: {e}") from e

        tail = data[1 + ESCROW_ARGS_SIZE:]
        expected = (4 if has_fee else 0) + 4 + count * WHITELIST_ENTRY.size
        if len(tail) != expected:
            raise InvalidExtraData(
                f"Tail is {len(tail)} bytes, flags 0x{flags:02x} require {expected}"
            )

        offset = 0
        resolver_fee = None
        if has_fee:
            (resolver_fee,) = struct.unpack_from(">I", tail, offset)
            offset += 4
        (allowed_time,) = struct.unpack_from(">I", tail, offset)
        offset += 4

        whitelist: List[WhitelistEntry] = []
        for _ in range(count):
            suffix, delay = WHITELIST_ENTRY.unpack_from(tail, offset)
            whitelist.append(WhitelistEntry(suffix, delay))
            offset += WHITELIST_ENTRY.size

        return cls(
            hashlock=bytes(hashlock),
            dst_chain_id=dst_chain_id,
            dst_token=to_address(dst_token),
            deposits=deposits,
            timelocks=Timelocks(timelocks),
            allowed_time=allowed_time,
            whitelist=tuple(whitelist),
            resolver_fee=resolver_fee,
        )
