"""
Order boundary.

Only what the escrow flow needs from a limit-order protocol: an order hash
and a fill that moves the maker asset to a target address and then calls
the order's post-fill hook inside the same transaction. Auctions, signatures
and taker-asset settlement are out of scope.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from eth_abi import encode

from ..core import OrderError, ZERO_ADDRESS, keccak, to_address, short
from ..chains.ledger import CallContext, Contract, public

log = logging.getLogger(__name__)

ORDER_TYPEHASH = keccak(
    b"Order(uint256 salt,address maker,address receiver,address makerAsset,address takerAsset,"
    b"uint256 makingAmount,uint256 takingAmount,address postInteraction)"
)
DOMAIN_TYPEHASH = keccak(b"EIP712Domain(uint256 chainId,address verifyingContract)")


@dataclass(frozen=True)
class Order:
    """Maker order; `taker_asset` lives on the destination chain."""
    salt: int
    maker: str
    maker_asset: str
    taker_asset: str
    making_amount: int
    taking_amount: int
    receiver: str = ZERO_ADDRESS
    post_interaction: Optional[str] = None

    @property
    def recipient(self) -> str:
        """Address paid on the destination chain."""
        return self.maker if to_address(self.receiver) == ZERO_ADDRESS else to_address(self.receiver)

    def struct_hash(self) -> bytes:
        return keccak(encode(
            ["bytes32", "uint256", "address", "address", "address", "address", "uint256", "uint256", "address"],
            [
                ORDER_TYPEHASH,
                self.salt,
                to_address(self.maker),
                to_address(self.receiver),
                to_address(self.maker_asset),
                to_address(self.taker_asset),
                self.making_amount,
                self.taking_amount,
                to_address(self.post_interaction or ZERO_ADDRESS),
            ],
        ))

    def hash(self, chain_id: int, verifying_contract: str) -> bytes:
        """EIP-712 digest of the order for one protocol deployment."""
        domain = keccak(encode(
            ["bytes32", "uint256", "address"],
            [DOMAIN_TYPEHASH, chain_id, to_address(verifying_contract)],
        ))
        return keccak(b"\x19\x01" + domain + self.struct_hash())


class LimitOrderProtocol(Contract):
    """Minimal fill engine with partial-fill accounting."""

    def __init__(self, ctx: CallContext):
        super().__init__(ctx)
        self.storage["filled"] = {}

    def hash_order(self, order: Order) -> bytes:
        return order.hash(self.chain.chain_id, self.address)

    def remaining(self, order: Order) -> int:
        filled = self.storage["filled"].get(self.hash_order(order), 0)
        return order.making_amount - filled

    @public
    def fill_order(self, ctx: CallContext, order: Order, making_amount: int, target: str,
                   extra_data: bytes = b"") -> bytes:
        """
        Fill `making_amount` of `order`, sending the maker asset to `target`.

        Native value attached to the fill is forwarded to `target` first, so a
        resolver can fund an escrow's safety deposit in the same transaction.

        Returns:
            order hash
        """
        order_hash = self.hash_order(order)
        remaining = self.remaining(order)
        if making_amount <= 0 or making_amount > remaining:
            raise OrderError(f"Cannot fill {making_amount}, {remaining} of {order.making_amount} left")

        taking_amount = order.taking_amount * making_amount // order.making_amount
        self.storage["filled"][order_hash] = order.making_amount - remaining + making_amount

        target = to_address(target)
        if ctx.value:
            ctx.send_native(target, ctx.value)
        ctx.call(order.maker_asset, "transfer_from", order.maker, target, making_amount)

        if order.post_interaction:
            ctx.call(
                order.post_interaction, "post_interaction",
                order, b"", order_hash, ctx.sender,
                making_amount, taking_amount, remaining - making_amount, bytes(extra_data),
            )

        ctx.emit("OrderFilled", order_hash=order_hash, remaining=remaining - making_amount)
        log.info(f"Order 0x{order_hash.hex()[:16]}... filled {making_amount} by {short(ctx.sender)} "
                 f"({remaining - making_amount} left)")
        return order_hash
