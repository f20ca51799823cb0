"""
Fungible token contract (ERC20 semantics) for the ledger.

The zero address stands for the chain's native asset; `uni_balance_of` and
`uni_transfer` treat both kinds uniformly.
"""

import logging
from typing import Dict

from ..core import (
    ZERO_ADDRESS,
    AccessDenied,
    InsufficientAllowance,
    InsufficientBalance,
    to_address,
    short,
)
from .ledger import CallContext, Chain, Contract, public

log = logging.getLogger(__name__)


class Token(Contract):
    """
    Minimal ERC20: balances, allowances, owner-only mint.
    """

    def __init__(self, ctx: CallContext, name: str, symbol: str, decimals: int = 18):
        super().__init__(ctx)
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.owner = ctx.sender
        self.storage.update({"balances": {}, "allowances": {}, "total_supply": 0})

    def __repr__(self) -> str:
        return f"Token({self.symbol} @ {short(self.address)})"

    # =========================================================================
    # Views
    # =========================================================================

    @property
    def total_supply(self) -> int:
        return self.storage["total_supply"]

    def balance_of(self, owner: str) -> int:
        return self.storage["balances"].get(to_address(owner), 0)

    def allowance(self, owner: str, spender: str) -> int:
        allowances: Dict[str, Dict[str, int]] = self.storage["allowances"]
        return allowances.get(to_address(owner), {}).get(to_address(spender), 0)

    # =========================================================================
    # Transactions
    # =========================================================================

    @public
    def mint(self, ctx: CallContext, to: str, amount: int) -> bool:
        if ctx.sender != self.owner:
            raise AccessDenied(f"Only {short(self.owner)} can mint {self.symbol}")
        to = to_address(to)
        balances = self.storage["balances"]
        balances[to] = balances.get(to, 0) + amount
        self.storage["total_supply"] += amount
        ctx.emit("Transfer", sender=ZERO_ADDRESS, to=to, amount=amount)
        return True

    @public
    def transfer(self, ctx: CallContext, to: str, amount: int) -> bool:
        self._move(ctx, ctx.sender, to, amount)
        return True

    @public
    def approve(self, ctx: CallContext, spender: str, amount: int) -> bool:
        allowances = self.storage["allowances"]
        allowances.setdefault(ctx.sender, {})[to_address(spender)] = amount
        ctx.emit("Approval", owner=ctx.sender, spender=to_address(spender), amount=amount)
        return True

    @public
    def transfer_from(self, ctx: CallContext, owner: str, to: str, amount: int) -> bool:
        owner = to_address(owner)
        allowed = self.allowance(owner, ctx.sender)
        if allowed < amount:
            raise InsufficientAllowance(
                f"{short(ctx.sender)} may spend {allowed} {self.symbol} of {short(owner)}, needs {amount}"
            )
        self.storage["allowances"].setdefault(owner, {})[ctx.sender] = allowed - amount
        self._move(ctx, owner, to, amount)
        return True

    def _move(self, ctx: CallContext, sender: str, to: str, amount: int):
        if amount < 0:
            raise ValueError(f"Negative transfer: {amount}")
        sender, to = to_address(sender), to_address(to)
        balances = self.storage["balances"]
        balance = balances.get(sender, 0)
        if balance < amount:
            raise InsufficientBalance(
                f"{short(sender)} has {balance} {self.symbol}, needs {amount}"
            )
        balances[sender] = balance - amount
        balances[to] = balances.get(to, 0) + amount
        ctx.emit("Transfer", sender=sender, to=to, amount=amount)


def uni_balance_of(chain: Chain, token: str, owner: str) -> int:
    """Balance of `owner` in `token`, native when token is the zero address."""
    if to_address(token) == ZERO_ADDRESS:
        return chain.balance_of(owner)
    return chain.contract(token).balance_of(owner)


def uni_transfer(ctx: CallContext, token: str, to: str, amount: int):
    """Send `amount` of `token` from the executing contract."""
    if to_address(token) == ZERO_ADDRESS:
        ctx.send_native(to, amount)
    else:
        ctx.call(token, "transfer", to, amount)
