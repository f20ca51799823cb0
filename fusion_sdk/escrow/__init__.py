"""
Hash/time-locked escrow protocol.

- Timelocks: packed stage schedule of both legs
- Immutables: parameter set bound into each escrow's address
- Escrow: per-leg state machine (withdraw / cancel / rescue)
- EscrowFactory: deterministic deployment of escrow clones
"""

from .timelocks import Stage, Timelocks, validate_leg_schedule, validate_timelock_cascade
from .immutables import Immutables, DstImmutablesComplement
from .escrow import Escrow, LegPolicy, Phase, Settlement, SOURCE, DESTINATION, source_policy
from .extra_data import ExtraDataArgs, WhitelistEntry, pack_safety_deposits
from .fee_bank import FeeBank
from .order import Order, LimitOrderProtocol
from .factory import EscrowFactory, FactoryConfig

__all__ = [
    "Stage",
    "Timelocks",
    "validate_leg_schedule",
    "validate_timelock_cascade",
    "Immutables",
    "DstImmutablesComplement",
    "Escrow",
    "LegPolicy",
    "Phase",
    "Settlement",
    "SOURCE",
    "DESTINATION",
    "source_policy",
    "ExtraDataArgs",
    "WhitelistEntry",
    "pack_safety_deposits",
    "FeeBank",
    "Order",
    "LimitOrderProtocol",
    "EscrowFactory",
    "FactoryConfig",
]
