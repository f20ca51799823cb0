"""
Swap Executor for the fusion escrow SDK.

Orchestrates a two-chain swap between a maker and a resolver using one
escrow per chain. The executor holds the maker's secret and submits the
resolver's transactions.

Swap Flow:
1. Maker signs an order; executor generates secret/hashlock
2. Resolver fills the order on the source chain -> source escrow locked
3. Resolver creates the destination escrow with the taker asset
4. Executor checks both escrows and shares the secret with the resolver
5. Resolver withdraws on destination (maker is paid, secret goes public)
6. Resolver withdraws on source with the now public secret

Failure path: once the cancellation stages open, the resolver cancels the
destination escrow (refund to itself) and the source escrow (refund to the
maker); anyone may cancel the source after its public cancellation stage.
"""

import time
import uuid
import logging
from typing import Optional, Dict, List, Mapping, Union
from dataclasses import dataclass, field

from ..core import (
    SwapState, ZERO_ADDRESS, generate_secret, to_address, short,
    DEFAULT_SRC_TIMELOCKS, DEFAULT_DST_TIMELOCKS,
)
from ..chains.ledger import Chain
from ..chains.token import uni_balance_of
from ..escrow.escrow import DESTINATION, Settlement, source_policy
from ..escrow.extra_data import ExtraDataArgs, WhitelistEntry, pack_safety_deposits
from ..escrow.factory import EscrowFactory
from ..escrow.immutables import DstImmutablesComplement, Immutables
from ..escrow.order import Order
from ..escrow.timelocks import Stage, Timelocks, validate_leg_schedule, validate_timelock_cascade
from .watcher import SecretWatcher

log = logging.getLogger(__name__)


@dataclass
class SwapConfig:
    """Swap executor configuration."""
    # Stage offsets (seconds after each escrow's deployment)
    timelocks: Dict[str, int] = field(
        default_factory=lambda: {**DEFAULT_SRC_TIMELOCKS, **DEFAULT_DST_TIMELOCKS}
    )

    # Safety deposits (native units)
    src_safety_deposit: int = 10 ** 15
    dst_safety_deposit: int = 10 ** 15

    # Resolver fee units (x ORDER_FEE_BASE_POINTS), None = no fee
    resolver_fee: Optional[int] = None

    # Restrict fills to the chosen resolver
    whitelist_resolver: bool = True


@dataclass
class ActiveSwap:
    """Active swap state."""
    swap_id: str
    state: SwapState
    order: Order
    resolver: str

    # Hashlock
    secret: bytes
    hashlock: bytes
    extra_data: bytes

    # Source leg
    order_hash: Optional[bytes] = None
    src_immutables: Optional[Immutables] = None
    src_escrow: Optional[str] = None
    dst_complement: Optional[DstImmutablesComplement] = None

    # Destination leg
    dst_immutables: Optional[Immutables] = None
    dst_escrow: Optional[str] = None

    # Resolution
    secret_shared: bool = False
    src_settlement: Optional[Settlement] = None
    dst_settlement: Optional[Settlement] = None

    # Timing
    created_at: int = 0
    completed_at: Optional[int] = None
    error: Optional[str] = None


class SwapExecutor:
    """
    Executes two-leg escrow swaps between a source and a destination chain.
    """

    def __init__(self, src_chain: Chain, dst_chain: Chain, src_factory: str, dst_factory: str,
                 config: SwapConfig = None):
        self.src_chain = src_chain
        self.dst_chain = dst_chain
        self.src_factory: EscrowFactory = src_chain.contract(src_factory)
        self.dst_factory: EscrowFactory = dst_chain.contract(dst_factory)
        self.config = config or SwapConfig()

        self.watcher = SecretWatcher(dst_chain)

        # Active swaps
        self.swaps: Dict[str, ActiveSwap] = {}

    def get_swap(self, swap_id: str) -> ActiveSwap:
        swap = self.swaps.get(swap_id)
        if not swap:
            raise ValueError(f"Unknown swap: {swap_id}")
        return swap

    def get_active_swaps(self) -> List[ActiveSwap]:
        done = (SwapState.COMPLETED, SwapState.CANCELLED, SwapState.FAILED)
        return [s for s in self.swaps.values() if s.state not in done]

    def _set_state(self, swap: ActiveSwap, state: SwapState):
        log.info(f"Swap {swap.swap_id}: {swap.state.value} -> {state.value}")
        swap.state = state

    # =========================================================================
    # Setup
    # =========================================================================

    def create_swap(self, maker: str, maker_asset: str, making_amount: int,
                    taker_asset: str, taking_amount: int, resolver: str,
                    receiver: str = ZERO_ADDRESS,
                    timelocks: Mapping[Union[Stage, str], int] = None) -> ActiveSwap:
        """
        Create a swap: generate the secret, build the order and its hook payload.

        Args:
            maker: maker address on the source chain
            maker_asset: token locked on the source chain
            making_amount: amount of maker_asset
            taker_asset: token paid to the maker on the destination chain
            taking_amount: amount of taker_asset
            resolver: taker filling the order on both chains
            receiver: destination recipient, the maker if zero
            timelocks: stage offsets, defaults to SwapConfig.timelocks

        Returns:
            ActiveSwap in CREATED state
        """
        packed = Timelocks.pack(timelocks or self.config.timelocks)
        validate_leg_schedule(packed, source_policy(public_withdrawal=True, public_cancellation=True))
        validate_leg_schedule(packed, DESTINATION)
        validate_timelock_cascade(packed, packed)

        swap_id = f"swap_{uuid.uuid4().hex[:12]}"
        secret, hashlock = generate_secret()
        resolver = to_address(resolver)

        order = Order(
            salt=int.from_bytes(uuid.uuid4().bytes, "big"),
            maker=to_address(maker),
            maker_asset=to_address(maker_asset),
            taker_asset=to_address(taker_asset),
            making_amount=making_amount,
            taking_amount=taking_amount,
            receiver=to_address(receiver),
            post_interaction=self.src_factory.address,
        )

        extra = ExtraDataArgs(
            hashlock=hashlock,
            dst_chain_id=self.dst_chain.chain_id,
            dst_token=order.taker_asset,
            deposits=pack_safety_deposits(self.config.src_safety_deposit, self.config.dst_safety_deposit),
            timelocks=packed,
            allowed_time=self.src_chain.timestamp,
            whitelist=(WhitelistEntry.for_address(resolver),) if self.config.whitelist_resolver else (),
            resolver_fee=self.config.resolver_fee,
        )

        swap = ActiveSwap(
            swap_id=swap_id,
            state=SwapState.CREATED,
            order=order,
            resolver=resolver,
            secret=secret,
            hashlock=hashlock,
            extra_data=extra.encode(),
            created_at=int(time.time()),
        )
        self.swaps[swap_id] = swap
        log.info(f"Swap created: {swap_id}, {making_amount} {short(order.maker_asset)} -> "
                 f"{taking_amount} {short(order.taker_asset)}, resolver {short(resolver)}")
        return swap

    # =========================================================================
    # Locking
    # =========================================================================

    def predict_src_immutables(self, swap: ActiveSwap) -> Immutables:
        """Source immutables a fill at the current source timestamp would produce."""
        lop = self.src_chain.contract(self.src_factory.limit_order_protocol)
        extra = ExtraDataArgs.decode(swap.extra_data)
        return Immutables(
            order_hash=lop.hash_order(swap.order),
            hashlock=swap.hashlock,
            maker=swap.order.maker,
            taker=swap.resolver,
            token=swap.order.maker_asset,
            amount=swap.order.making_amount,
            safety_deposit=extra.src_safety_deposit,
            timelocks=extra.timelocks.with_deployed_at(self.src_chain.timestamp),
        )

    def lock_source(self, swap_id: str) -> str:
        """
        Resolver fills the order; the fill funds and deploys the source escrow.

        The maker must have approved the limit-order protocol for the maker asset.

        Returns:
            source escrow address
        """
        swap = self.get_swap(swap_id)
        if swap.state != SwapState.CREATED:
            raise ValueError(f"Swap {swap_id} not in CREATED state: {swap.state.value}")

        predicted = self.src_factory.address_of_escrow_src(self.predict_src_immutables(swap))
        try:
            swap.order_hash = self.src_chain.transact(
                swap.resolver, self.src_factory.limit_order_protocol, "fill_order",
                swap.order, swap.order.making_amount, predicted, swap.extra_data,
                value=self.config.src_safety_deposit,
            )
        except Exception as e:
            swap.error = str(e)
            log.error(f"Swap {swap_id}: source fill failed: {e}")
            raise

        created = self.src_chain.events(address=self.src_factory.address, name="SrcEscrowCreated")[-1]
        swap.src_escrow = created.args["escrow"]
        swap.src_immutables = created.args["immutables"]
        swap.dst_complement = created.args["dst_complement"]
        if swap.src_escrow != predicted:
            raise ValueError(f"Source escrow at {swap.src_escrow}, predicted {predicted}")

        self._set_state(swap, SwapState.SRC_LOCKED)
        return swap.src_escrow

    def lock_destination(self, swap_id: str) -> str:
        """
        Resolver deploys the destination escrow with the taker asset.

        Returns:
            destination escrow address
        """
        swap = self.get_swap(swap_id)
        if swap.state != SwapState.SRC_LOCKED:
            raise ValueError(f"Swap {swap_id} not in SRC_LOCKED state: {swap.state.value}")

        complement = swap.dst_complement
        if complement.chain_id != self.dst_chain.chain_id:
            raise ValueError(f"Order targets chain {complement.chain_id}, not {self.dst_chain.chain_id}")

        immutables = complement.to_immutables(swap.src_immutables, swap.resolver,
                                              swap.src_immutables.timelocks.with_deployed_at(0))
        src_cancellation = swap.src_immutables.timelocks.get(Stage.SRC_CANCELLATION)

        value = immutables.safety_deposit
        if immutables.token == ZERO_ADDRESS:
            value += immutables.amount
        else:
            self.dst_chain.transact(swap.resolver, immutables.token, "approve",
                                    self.dst_factory.address, immutables.amount)

        try:
            swap.dst_escrow = self.dst_chain.transact(
                swap.resolver, self.dst_factory.address, "create_dst_escrow",
                immutables, src_cancellation, value=value,
            )
        except Exception as e:
            swap.error = str(e)
            log.error(f"Swap {swap_id}: destination lock failed: {e}")
            raise

        swap.dst_immutables = immutables.with_deployed_at(self.dst_chain.timestamp)
        self._set_state(swap, SwapState.DST_LOCKED)
        return swap.dst_escrow

    # =========================================================================
    # Resolution
    # =========================================================================

    def verify_escrows(self, swap: ActiveSwap) -> bool:
        """Both escrows exist at their derived addresses and hold the agreed amounts."""
        if swap.src_immutables is None or swap.dst_immutables is None:
            return False
        if self.src_factory.address_of_escrow_src(swap.src_immutables) != swap.src_escrow:
            return False
        if self.dst_factory.address_of_escrow_dst(swap.dst_immutables) != swap.dst_escrow:
            return False
        if self.dst_chain.code_at(swap.dst_escrow) is None:
            return False

        src_funded = self._holds(self.src_chain, swap.src_escrow, swap.src_immutables)
        dst_funded = self._holds(self.dst_chain, swap.dst_escrow, swap.dst_immutables)
        if not (src_funded and dst_funded):
            log.warning(f"Swap {swap.swap_id}: escrows not funded (src={src_funded}, dst={dst_funded})")
        return src_funded and dst_funded

    def _holds(self, chain: Chain, escrow: str, immutables: Immutables) -> bool:
        native = chain.balance_of(escrow)
        if immutables.token == ZERO_ADDRESS:
            return native >= immutables.amount + immutables.safety_deposit
        balance = uni_balance_of(chain, immutables.token, escrow)
        return balance >= immutables.amount and native >= immutables.safety_deposit

    def share_secret(self, swap_id: str) -> bytes:
        """
        Maker side: release the secret once both escrows are verified.

        Returns:
            secret
        """
        swap = self.get_swap(swap_id)
        if swap.state != SwapState.DST_LOCKED:
            raise ValueError(f"Swap {swap_id} not in DST_LOCKED state: {swap.state.value}")
        if not self.verify_escrows(swap):
            raise ValueError(f"Swap {swap_id}: escrows failed verification, secret withheld")

        swap.secret_shared = True
        self._set_state(swap, SwapState.SECRET_SHARED)
        return swap.secret

    def withdraw_destination(self, swap_id: str, caller: str = None, public: bool = False) -> Settlement:
        """Pay the maker on the destination chain, revealing the secret."""
        swap = self.get_swap(swap_id)
        if swap.state != SwapState.SECRET_SHARED:
            raise ValueError(f"Swap {swap_id} not in SECRET_SHARED state: {swap.state.value}")

        method = "public_withdraw" if public else "withdraw"
        swap.dst_settlement = self.dst_chain.transact(
            caller or swap.resolver, swap.dst_escrow, method, swap.secret, swap.dst_immutables,
        )
        self._set_state(swap, SwapState.DST_WITHDRAWN)
        return swap.dst_settlement

    def withdraw_source(self, swap_id: str, caller: str = None, public: bool = False) -> Settlement:
        """Claim the source escrow with the secret revealed on the destination chain."""
        swap = self.get_swap(swap_id)
        if swap.state != SwapState.DST_WITHDRAWN:
            raise ValueError(f"Swap {swap_id} not in DST_WITHDRAWN state: {swap.state.value}")

        secret = self.watcher.find_secret(swap.dst_escrow, swap.hashlock)
        if secret is None:
            raise ValueError(f"Swap {swap_id}: secret not revealed on destination chain")

        method = "public_withdraw" if public else "withdraw"
        swap.src_settlement = self.src_chain.transact(
            caller or swap.resolver, swap.src_escrow, method, secret, swap.src_immutables,
        )
        swap.completed_at = int(time.time())
        self._set_state(swap, SwapState.COMPLETED)
        return swap.src_settlement

    # =========================================================================
    # Cancellation
    # =========================================================================

    def cancel_destination(self, swap_id: str) -> Settlement:
        """Resolver takes back the destination deposit after DST_CANCELLATION."""
        swap = self.get_swap(swap_id)
        if swap.dst_escrow is None:
            raise ValueError(f"Swap {swap_id} has no destination escrow")

        swap.dst_settlement = self.dst_chain.transact(
            swap.resolver, swap.dst_escrow, "cancel", swap.dst_immutables,
        )
        self._maybe_cancelled(swap)
        return swap.dst_settlement

    def cancel_source(self, swap_id: str, caller: str = None, public: bool = False) -> Settlement:
        """Return the maker asset after SRC_CANCELLATION (or SRC_PUBLIC_CANCELLATION if public)."""
        swap = self.get_swap(swap_id)
        if swap.src_escrow is None:
            raise ValueError(f"Swap {swap_id} has no source escrow")

        method = "public_cancel" if public else "cancel"
        swap.src_settlement = self.src_chain.transact(
            caller or swap.resolver, swap.src_escrow, method, swap.src_immutables,
        )
        self._maybe_cancelled(swap)
        return swap.src_settlement

    def _maybe_cancelled(self, swap: ActiveSwap):
        src_done = swap.src_settlement is not None and swap.src_settlement.action == "cancel"
        dst_done = swap.dst_escrow is None or (
            swap.dst_settlement is not None and swap.dst_settlement.action == "cancel"
        )
        if src_done and dst_done:
            self._set_state(swap, SwapState.CANCELLED)
