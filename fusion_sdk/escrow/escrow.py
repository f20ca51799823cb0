"""
Escrow state machine.

One Escrow class serves both legs of a swap. A LegPolicy says which timelock
stages gate which action and who receives the locked asset on success or
failure:

    Source leg (maker's asset, claimed by the resolver):
        withdraw        taker only   [SRC_WITHDRAWAL, SRC_CANCELLATION)       -> taker
        public_withdraw anyone       [SRC_PUBLIC_WITHDRAWAL, SRC_CANCELLATION) -> taker  (optional)
        cancel          taker only   [SRC_CANCELLATION, ...)                   -> maker
        public_cancel   anyone       [SRC_PUBLIC_CANCELLATION, ...)            -> maker  (optional)

    Destination leg (resolver's asset, claimed for the maker):
        withdraw        taker only   [DST_WITHDRAWAL, DST_CANCELLATION)        -> maker
        public_withdraw anyone       [DST_PUBLIC_WITHDRAWAL, DST_CANCELLATION) -> maker
        cancel          taker only   [DST_CANCELLATION, ...)                   -> taker

    Both legs:
        rescue_funds    taker only   [deployed_at + rescue_delay, ...)         -> taker

Nothing about the swap is stored on the instance. Every call supplies the
immutables, which are re-hashed and checked against the instance address.
The safety deposit (native asset) always goes to the caller of a
successful withdraw or cancel.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Type

from ..core import (
    Leg,
    InvalidImmutables,
    InvalidSecret,
    InvalidWithdrawalTime,
    InvalidCancellationTime,
    InvalidRescueTime,
    InvalidCaller,
    EscrowError,
    verify_secret,
    short,
)
from ..chains.ledger import (
    CallContext,
    Contract,
    compute_create2_address,
    proxy_bytecode_hash,
    public,
)
from ..chains.token import uni_balance_of, uni_transfer
from .immutables import Immutables
from .timelocks import Stage, Timelocks

log = logging.getLogger(__name__)


class Phase(Enum):
    """Window an escrow is in, derived from the clock and its timelocks."""
    FINALITY_LOCK = "finality_lock"                 # Nothing allowed yet
    PRIVATE_WITHDRAWAL = "private_withdrawal"       # Taker may withdraw with secret
    PUBLIC_WITHDRAWAL = "public_withdrawal"         # Anyone may withdraw with secret
    PRIVATE_CANCELLATION = "private_cancellation"   # Taker may cancel
    PUBLIC_CANCELLATION = "public_cancellation"     # Anyone may cancel


@dataclass(frozen=True)
class LegPolicy:
    """Role and window assignment for one leg."""
    leg: Leg
    withdrawal: Stage
    cancellation: Stage
    public_withdrawal: Optional[Stage] = None
    public_cancellation: Optional[Stage] = None
    pays_maker_on_withdrawal: bool = False

    def withdrawal_recipient(self, immutables: Immutables) -> str:
        return immutables.maker if self.pays_maker_on_withdrawal else immutables.taker

    def cancellation_recipient(self, immutables: Immutables) -> str:
        return immutables.taker if self.pays_maker_on_withdrawal else immutables.maker

    @property
    def stages(self) -> Tuple[Stage, ...]:
        """Stages used by this leg, in the order they open."""
        ordered = [self.withdrawal, self.public_withdrawal, self.cancellation, self.public_cancellation]
        return tuple(s for s in ordered if s is not None)

    def phase(self, now: int, timelocks: Timelocks) -> Phase:
        if now < timelocks.get(self.withdrawal):
            return Phase.FINALITY_LOCK
        if now < timelocks.get(self.cancellation):
            if self.public_withdrawal is not None and now >= timelocks.get(self.public_withdrawal):
                return Phase.PUBLIC_WITHDRAWAL
            return Phase.PRIVATE_WITHDRAWAL
        if self.public_cancellation is not None and now >= timelocks.get(self.public_cancellation):
            return Phase.PUBLIC_CANCELLATION
        return Phase.PRIVATE_CANCELLATION


def source_policy(public_withdrawal: bool = False, public_cancellation: bool = True) -> LegPolicy:
    """Source leg policy; the public stages are deployment options."""
    return LegPolicy(
        leg=Leg.SRC,
        withdrawal=Stage.SRC_WITHDRAWAL,
        cancellation=Stage.SRC_CANCELLATION,
        public_withdrawal=Stage.SRC_PUBLIC_WITHDRAWAL if public_withdrawal else None,
        public_cancellation=Stage.SRC_PUBLIC_CANCELLATION if public_cancellation else None,
        pays_maker_on_withdrawal=False,
    )


SOURCE = source_policy()

DESTINATION = LegPolicy(
    leg=Leg.DST,
    withdrawal=Stage.DST_WITHDRAWAL,
    cancellation=Stage.DST_CANCELLATION,
    public_withdrawal=Stage.DST_PUBLIC_WITHDRAWAL,
    public_cancellation=None,
    pays_maker_on_withdrawal=True,
)


@dataclass(frozen=True)
class Settlement:
    """Outcome of a withdraw or cancel call."""
    action: str
    recipient: str
    token: str
    amount: int
    caller: str
    safety_deposit: int
    already_settled: bool = False


class Escrow(Contract):
    """
    Escrow implementation; deployed once per leg by the factory and cloned
    per swap.

    Immutable per implementation (shared by every clone):
      - policy: LegPolicy of the leg
      - rescue_delay: seconds after deployment before rescue_funds opens
      - factory: deployer, part of the CREATE2 address
    """

    def __init__(self, ctx: CallContext, policy: LegPolicy, rescue_delay: int):
        super().__init__(ctx)
        self.policy = policy
        self.rescue_delay = rescue_delay
        self.factory = ctx.sender
        self.proxy_bytecode_hash = proxy_bytecode_hash(ctx.address)

    def __repr__(self) -> str:
        return f"Escrow({self.policy.leg.value} @ {short(self.address)})"

    # =========================================================================
    # Views
    # =========================================================================

    def phase(self, immutables: Immutables, now: int = None) -> Phase:
        now = self.chain.timestamp if now is None else now
        return self.policy.phase(now, immutables.timelocks)

    def rescue_start(self, immutables: Immutables) -> int:
        return immutables.timelocks.rescue_start(self.rescue_delay)

    def is_settled(self, immutables: Immutables) -> bool:
        return uni_balance_of(self.chain, immutables.token, self.address) == 0

    # =========================================================================
    # Actions
    # =========================================================================

    @public
    def withdraw(self, ctx: CallContext, secret: bytes, immutables: Immutables) -> Settlement:
        """Taker withdraws during the private window by revealing the secret."""
        self._validate_immutables(immutables)
        self._only_taker(ctx, immutables)
        self._only_after(immutables, self.policy.withdrawal, InvalidWithdrawalTime)
        self._only_before(immutables, self.policy.cancellation, InvalidWithdrawalTime)
        return self._withdraw_to(ctx, secret, self.policy.withdrawal_recipient(immutables), immutables)

    @public
    def public_withdraw(self, ctx: CallContext, secret: bytes, immutables: Immutables) -> Settlement:
        """Anyone completes the withdrawal; the asset still goes to the entitled party."""
        self._validate_immutables(immutables)
        if self.policy.public_withdrawal is None:
            raise InvalidWithdrawalTime(f"{self.policy.leg.value} escrow has no public withdrawal window")
        self._only_after(immutables, self.policy.public_withdrawal, InvalidWithdrawalTime)
        self._only_before(immutables, self.policy.cancellation, InvalidWithdrawalTime)
        return self._withdraw_to(ctx, secret, self.policy.withdrawal_recipient(immutables), immutables)

    @public
    def cancel(self, ctx: CallContext, immutables: Immutables) -> Settlement:
        """Taker returns the asset to its depositor once cancellation opens."""
        self._validate_immutables(immutables)
        self._only_taker(ctx, immutables)
        self._only_after(immutables, self.policy.cancellation, InvalidCancellationTime)
        return self._cancel(ctx, immutables)

    @public
    def public_cancel(self, ctx: CallContext, immutables: Immutables) -> Settlement:
        """Anyone cancels once the public cancellation stage opens."""
        self._validate_immutables(immutables)
        if self.policy.public_cancellation is None:
            raise InvalidCancellationTime(f"{self.policy.leg.value} escrow has no public cancellation window")
        self._only_after(immutables, self.policy.public_cancellation, InvalidCancellationTime)
        return self._cancel(ctx, immutables)

    @public
    def rescue_funds(self, ctx: CallContext, token: str, amount: int, immutables: Immutables):
        """Taker recovers any asset held by the instance after the rescue delay."""
        self._validate_immutables(immutables)
        self._only_taker(ctx, immutables)
        start = self.rescue_start(immutables)
        if ctx.timestamp < start:
            raise InvalidRescueTime(f"Rescue opens at {start}, now {ctx.timestamp}")
        uni_transfer(ctx, token, ctx.sender, amount)
        ctx.emit("FundsRescued", token=token, amount=amount)
        log.info(f"[{self.policy.leg.value}] Rescued {amount} of {short(token)} "
                 f"from {short(self.address)} to {short(ctx.sender)}")

    # =========================================================================
    # Internals
    # =========================================================================

    def _withdraw_to(self, ctx: CallContext, secret: bytes, recipient: str,
                     immutables: Immutables) -> Settlement:
        if not verify_secret(secret, immutables.hashlock):
            raise InvalidSecret(f"Secret does not match hashlock 0x{immutables.hashlock.hex()[:16]}...")

        if self.is_settled(immutables):
            log.warning(f"[{self.policy.leg.value}] Withdraw on drained escrow {short(self.address)}, nothing to do")
            return Settlement("withdraw", recipient, immutables.token, 0, ctx.sender, 0, already_settled=True)

        uni_transfer(ctx, immutables.token, recipient, immutables.amount)
        ctx.send_native(ctx.sender, immutables.safety_deposit)
        ctx.emit("Withdrawal", secret=bytes(secret))

        log.info(f"[{self.policy.leg.value}] Withdrawn {immutables.amount} to {short(recipient)}, "
                 f"deposit {immutables.safety_deposit} to {short(ctx.sender)}")
        return Settlement("withdraw", recipient, immutables.token, immutables.amount,
                          ctx.sender, immutables.safety_deposit)

    def _cancel(self, ctx: CallContext, immutables: Immutables) -> Settlement:
        recipient = self.policy.cancellation_recipient(immutables)

        if self.is_settled(immutables):
            log.warning(f"[{self.policy.leg.value}] Cancel on drained escrow {short(self.address)}, nothing to do")
            return Settlement("cancel", recipient, immutables.token, 0, ctx.sender, 0, already_settled=True)

        uni_transfer(ctx, immutables.token, recipient, immutables.amount)
        ctx.send_native(ctx.sender, immutables.safety_deposit)
        ctx.emit("EscrowCancelled")

        log.info(f"[{self.policy.leg.value}] Cancelled: {immutables.amount} back to {short(recipient)}, "
                 f"deposit {immutables.safety_deposit} to {short(ctx.sender)}")
        return Settlement("cancel", recipient, immutables.token, immutables.amount,
                          ctx.sender, immutables.safety_deposit)

    def _validate_immutables(self, immutables: Immutables):
        if not isinstance(immutables, Immutables):
            raise InvalidImmutables(f"Expected Immutables, got {type(immutables).__name__}")
        expected = compute_create2_address(self.factory, immutables.hash(), self.proxy_bytecode_hash)
        if expected != self.address:
            raise InvalidImmutables(f"Immutables resolve to {short(expected)}, not {short(self.address)}")

    def _only_taker(self, ctx: CallContext, immutables: Immutables):
        if ctx.sender != immutables.taker:
            raise InvalidCaller(f"{short(ctx.sender)} is not the taker {short(immutables.taker)}")

    def _only_after(self, immutables: Immutables, stage: Stage, error: Type[EscrowError]):
        start = immutables.timelocks.get(stage)
        if self.chain.timestamp < start:
            raise error(f"{stage.name} opens at {start}, now {self.chain.timestamp}")

    def _only_before(self, immutables: Immutables, stage: Stage, error: Type[EscrowError]):
        stop = immutables.timelocks.get(stage)
        if self.chain.timestamp >= stop:
            raise error(f"Window closed at {stop} ({stage.name}), now {self.chain.timestamp}")
