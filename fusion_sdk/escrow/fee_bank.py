"""
Fee bank: resolvers pre-fund fee credit that the factory draws from on
every source escrow creation.
"""

import logging

from ..core import AccessDenied, InsufficientCredit, to_address, short
from ..chains.ledger import CallContext, Contract, public

log = logging.getLogger(__name__)


class FeeBank(Contract):
    """Fee-token credit per resolver, spendable only by its factory."""

    def __init__(self, ctx: CallContext, fee_token: str):
        super().__init__(ctx)
        self.fee_token = to_address(fee_token)
        self.factory = ctx.sender
        self.storage["credit"] = {}

    def available_credit(self, account: str) -> int:
        return self.storage["credit"].get(to_address(account), 0)

    @public
    def deposit(self, ctx: CallContext, amount: int) -> int:
        return self._deposit_for(ctx, ctx.sender, amount)

    @public
    def deposit_for(self, ctx: CallContext, account: str, amount: int) -> int:
        return self._deposit_for(ctx, to_address(account), amount)

    @public
    def withdraw(self, ctx: CallContext, amount: int) -> int:
        credit = self.available_credit(ctx.sender)
        if credit < amount:
            raise InsufficientCredit(f"{short(ctx.sender)} has {credit} credit, withdrawing {amount}")
        self.storage["credit"][ctx.sender] = credit - amount
        ctx.call(self.fee_token, "transfer", ctx.sender, amount)
        log.info(f"Fee bank: {short(ctx.sender)} withdrew {amount}")
        return credit - amount

    @public
    def charge_fee(self, ctx: CallContext, account: str, amount: int) -> int:
        if ctx.sender != self.factory:
            raise AccessDenied(f"Only the factory {short(self.factory)} can charge fees")
        account = to_address(account)
        credit = self.available_credit(account)
        if credit < amount:
            raise InsufficientCredit(f"{short(account)} has {credit} credit, fee is {amount}")
        self.storage["credit"][account] = credit - amount
        log.debug(f"Fee bank: charged {amount} to {short(account)}, {credit - amount} left")
        return credit - amount

    def _deposit_for(self, ctx: CallContext, account: str, amount: int) -> int:
        ctx.call(self.fee_token, "transfer_from", ctx.sender, self.address, amount)
        credit = self.available_credit(account) + amount
        self.storage["credit"][account] = credit
        log.info(f"Fee bank: {short(account)} credit now {credit}")
        return credit
