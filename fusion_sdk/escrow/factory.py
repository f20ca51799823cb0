"""
Escrow factory.

Deploys one implementation per leg at construction and then a minimal-proxy
clone per swap at

    CREATE2(factory, keccak256(abi.encode(immutables)), keccak256(proxy init code))

so anyone can compute an escrow's address, and fund it, before it exists.

Source escrows are created from the limit-order protocol's post-fill hook,
after the maker asset and the resolver's safety deposit already sit at the
predicted address. Destination escrows are created directly by the resolver,
who attaches the safety deposit and lets the factory pull the amount.
"""

import logging
import os
from dataclasses import dataclass

from ..core import (
    DEFAULT_RESCUE_DELAY,
    ZERO_ADDRESS,
    Leg,
    AccessDenied,
    InsufficientEscrowBalance,
    InvalidCreationTime,
    ResolverNotWhitelisted,
    to_address,
    short,
)
from ..chains.ledger import CallContext, Contract, compute_create2_address, proxy_bytecode_hash, public
from ..chains.token import uni_balance_of
from .escrow import DESTINATION, Escrow, source_policy
from .extra_data import ExtraDataArgs
from .fee_bank import FeeBank
from .immutables import DstImmutablesComplement, Immutables
from .order import Order
from .timelocks import Stage

log = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class FactoryConfig:
    """Factory deployment parameters."""
    rescue_delay_src: int = DEFAULT_RESCUE_DELAY
    rescue_delay_dst: int = DEFAULT_RESCUE_DELAY

    # Optional source-leg windows
    src_public_withdrawal: bool = False
    src_public_cancellation: bool = True

    @classmethod
    def from_env(cls) -> "FactoryConfig":
        """Read FUSION_* overrides from the environment."""
        return cls(
            rescue_delay_src=int(os.environ.get("FUSION_RESCUE_DELAY_SRC", DEFAULT_RESCUE_DELAY)),
            rescue_delay_dst=int(os.environ.get("FUSION_RESCUE_DELAY_DST", DEFAULT_RESCUE_DELAY)),
            src_public_withdrawal=_env_bool("FUSION_SRC_PUBLIC_WITHDRAWAL", False),
            src_public_cancellation=_env_bool("FUSION_SRC_PUBLIC_CANCELLATION", True),
        )


class EscrowFactory(Contract):
    """
    Escrow factory for both legs.

    Immutables of the factory:
      - limit_order_protocol: only caller of post_interaction
      - escrow_src_implementation / escrow_dst_implementation: clone templates
      - fee_bank: resolver fee credit, charged on source creation
    """

    def __init__(self, ctx: CallContext, limit_order_protocol: str, fee_token: str,
                 config: FactoryConfig = None):
        super().__init__(ctx)
        self.config = config or FactoryConfig()
        self.limit_order_protocol = to_address(limit_order_protocol)

        src_policy = source_policy(
            public_withdrawal=self.config.src_public_withdrawal,
            public_cancellation=self.config.src_public_cancellation,
        )
        self.escrow_src_implementation = ctx.deploy(Escrow, src_policy, self.config.rescue_delay_src).address
        self.escrow_dst_implementation = ctx.deploy(Escrow, DESTINATION, self.config.rescue_delay_dst).address
        self.fee_bank = ctx.deploy(FeeBank, fee_token).address

        self._proxy_src_hash = proxy_bytecode_hash(self.escrow_src_implementation)
        self._proxy_dst_hash = proxy_bytecode_hash(self.escrow_dst_implementation)

        log.info(f"EscrowFactory at {short(self.address)}: src impl {short(self.escrow_src_implementation)}, "
                 f"dst impl {short(self.escrow_dst_implementation)}")

    # =========================================================================
    # Address Derivation
    # =========================================================================

    def address_of_escrow_src(self, immutables: Immutables) -> str:
        return compute_create2_address(self.address, immutables.hash(), self._proxy_src_hash)

    def address_of_escrow_dst(self, immutables: Immutables) -> str:
        return compute_create2_address(self.address, immutables.hash(), self._proxy_dst_hash)

    def address_of_escrow(self, immutables: Immutables, leg: Leg) -> str:
        if leg == Leg.SRC:
            return self.address_of_escrow_src(immutables)
        return self.address_of_escrow_dst(immutables)

    # =========================================================================
    # Destination Leg
    # =========================================================================

    @public
    def create_dst_escrow(self, ctx: CallContext, immutables: Immutables,
                          src_cancellation_timestamp: int) -> str:
        """
        Deploy and fund a destination escrow.

        Args:
            immutables: destination terms; deployed_at is overwritten with now
            src_cancellation_timestamp: when the source leg becomes cancellable

        Returns:
            escrow address
        """
        native = immutables.safety_deposit
        if immutables.token == ZERO_ADDRESS:
            native += immutables.amount
        if ctx.value != native:
            raise InsufficientEscrowBalance(f"Attached {ctx.value}, escrow needs {native} native")

        immutables = immutables.with_deployed_at(ctx.timestamp)
        dst_cancellation = immutables.timelocks.get(Stage.DST_CANCELLATION)
        if ctx.timestamp > src_cancellation_timestamp or dst_cancellation > src_cancellation_timestamp:
            raise InvalidCreationTime(
                f"Destination cancels at {dst_cancellation}, source cancels at {src_cancellation_timestamp} "
                f"(now {ctx.timestamp})"
            )

        escrow = ctx.clone_deterministic(self.escrow_dst_implementation, immutables.hash(), value=ctx.value)
        if immutables.token != ZERO_ADDRESS:
            ctx.call(immutables.token, "transfer_from", ctx.sender, escrow.address, immutables.amount)

        ctx.emit("DstEscrowCreated", escrow=escrow.address, hashlock=immutables.hashlock,
                 taker=immutables.taker, immutables=immutables)
        log.info(f"[dst] Escrow {short(escrow.address)} created by {short(ctx.sender)}, "
                 f"{immutables.amount} locked until {dst_cancellation}")
        return escrow.address

    # =========================================================================
    # Source Leg
    # =========================================================================

    @public
    def post_interaction(self, ctx: CallContext, order: Order, extension: bytes, order_hash: bytes,
                         taker: str, making_amount: int, taking_amount: int,
                         remaining_making_amount: int, extra_data: bytes) -> str:
        """
        Post-fill hook of the limit-order protocol; deploys the source escrow.

        The maker asset has already been sent to the predicted escrow address
        by the fill, and the resolver must have funded the safety deposit.

        Returns:
            escrow address
        """
        if ctx.sender != self.limit_order_protocol:
            raise AccessDenied(f"post_interaction only from {short(self.limit_order_protocol)}")

        args = ExtraDataArgs.decode(extra_data)
        taker = to_address(taker)

        if not args.is_whitelisted(taker, ctx.timestamp):
            raise ResolverNotWhitelisted(f"{short(taker)} may not fill at {ctx.timestamp}")
        if args.fee:
            ctx.call(self.fee_bank, "charge_fee", taker, args.fee)

        immutables = Immutables(
            order_hash=order_hash,
            hashlock=args.hashlock,
            maker=order.maker,
            taker=taker,
            token=order.maker_asset,
            amount=making_amount,
            safety_deposit=args.src_safety_deposit,
            timelocks=args.timelocks.with_deployed_at(ctx.timestamp),
        )
        complement = DstImmutablesComplement(
            maker=order.recipient,
            amount=taking_amount,
            token=args.dst_token,
            safety_deposit=args.dst_safety_deposit,
            chain_id=args.dst_chain_id,
        )

        escrow_address = self.address_of_escrow_src(immutables)
        self._check_funded(escrow_address, immutables)
        ctx.clone_deterministic(self.escrow_src_implementation, immutables.hash())

        ctx.emit("SrcEscrowCreated", escrow=escrow_address, immutables=immutables, dst_complement=complement)
        log.info(f"[src] Escrow {short(escrow_address)} created for order 0x{bytes(order_hash).hex()[:16]}..., "
                 f"{making_amount} locked, resolver {short(taker)}")
        return escrow_address

    def _check_funded(self, escrow_address: str, immutables: Immutables):
        native = uni_balance_of(self.chain, ZERO_ADDRESS, escrow_address)
        if immutables.token == ZERO_ADDRESS:
            if native < immutables.amount + immutables.safety_deposit:
                raise InsufficientEscrowBalance(
                    f"{short(escrow_address)} holds {native}, needs {immutables.amount + immutables.safety_deposit}"
                )
            return
        balance = uni_balance_of(self.chain, immutables.token, escrow_address)
        if native < immutables.safety_deposit or balance < immutables.amount:
            raise InsufficientEscrowBalance(
                f"{short(escrow_address)} holds {balance} token / {native} native, "
                f"needs {immutables.amount} / {immutables.safety_deposit}"
            )
