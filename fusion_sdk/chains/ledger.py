"""
In-memory ledger for the fusion escrow SDK.

Models the execution environment the escrow protocol relies on:
- Atomic all-or-nothing transactions (state snapshot, rollback on failure)
- A global monotonic block timestamp
- Deterministic contract addresses (CREATE and CREATE2, EVM formulas)
- An append-only event log

Contracts are plain Python objects. Their mutable state lives in ledger
storage so a failed transaction can be rolled back as a whole.
"""

import copy
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

import rlp

from ..core import (
    InsufficientBalance,
    DeploymentFailed,
    UnknownContract,
    keccak,
    to_address,
    address_bytes,
    short,
)

log = logging.getLogger(__name__)


# EIP-1167 minimal proxy creation code, split around the implementation address
PROXY_PREFIX = bytes.fromhex("3d602d80600a3d3981f3363d3d373d3d3d363d73")
PROXY_SUFFIX = bytes.fromhex("5af43d82803e903d91602b57fd5bf3")


def compute_create_address(deployer: str, nonce: int) -> str:
    """CREATE address: keccak256(rlp([deployer, nonce]))[12:]."""
    raw = keccak(rlp.encode([address_bytes(deployer), nonce]))
    return to_address(raw[12:])


def compute_create2_address(deployer: str, salt: bytes, init_code_hash: bytes) -> str:
    """CREATE2 address: keccak256(0xff ++ deployer ++ salt ++ keccak256(init_code))[12:]."""
    if len(salt) != 32 or len(init_code_hash) != 32:
        raise ValueError("salt and init code hash must be 32 bytes")
    raw = keccak(b"\xff" + address_bytes(deployer) + salt + init_code_hash)
    return to_address(raw[12:])


def proxy_init_code(implementation: str) -> bytes:
    """Creation code of a minimal proxy delegating to `implementation`."""
    return PROXY_PREFIX + address_bytes(implementation) + PROXY_SUFFIX


def proxy_bytecode_hash(implementation: str) -> bytes:
    return keccak(proxy_init_code(implementation))


def public(fn: Callable) -> Callable:
    """Mark a contract method as callable through a transaction."""
    fn.__public__ = True
    return fn


@dataclass
class ChainConfig:
    """Ledger configuration."""
    chain_id: int = 1
    name: str = "local"
    genesis_timestamp: int = 1_700_000_000
    native_symbol: str = "ETH"


@dataclass(frozen=True)
class Event:
    """Log entry emitted by a contract."""
    address: str
    name: str
    args: Dict[str, Any]
    timestamp: int
    tx_index: int


@dataclass
class LedgerState:
    """Everything a transaction may change."""
    native: Dict[str, int] = field(default_factory=dict)
    nonces: Dict[str, int] = field(default_factory=dict)
    storage: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    code: Dict[str, "Contract"] = field(default_factory=dict)
    events: List[Event] = field(default_factory=list)

    def snapshot(self) -> "LedgerState":
        # Contract objects are immutable once installed, only the mapping is copied
        return LedgerState(
            native=dict(self.native),
            nonces=dict(self.nonces),
            storage=copy.deepcopy(self.storage),
            code=dict(self.code),
            events=list(self.events),
        )


@dataclass
class CallContext:
    """Execution context of one contract frame (msg.sender, msg.value, this)."""
    chain: "Chain"
    sender: str
    address: str
    value: int = 0

    @property
    def timestamp(self) -> int:
        return self.chain.timestamp

    def call(self, target: str, method: str, *args, value: int = 0) -> Any:
        """Nested call with this contract as sender."""
        return self.chain._invoke(self.address, target, method, args, value)

    def send_native(self, to: str, amount: int):
        self.chain._move_native(self.address, to, amount)

    def deploy(self, contract_cls, *args, value: int = 0) -> "Contract":
        return self.chain._create(self.address, contract_cls, args, value)

    def clone_deterministic(self, implementation: str, salt: bytes, value: int = 0) -> "Contract":
        return self.chain._create2_clone(self.address, implementation, salt, value)

    def emit(self, name: str, **args):
        self.chain._emit(self.address, name, args)


class Contract:
    """
    Base class for ledger contracts.

    Constructed once per deployment with the deployment context.
    Attributes set in __init__ are immutable; mutable state goes to `storage`.
    """

    def __init__(self, ctx: CallContext):
        self.chain = ctx.chain
        self.address = ctx.address
        self.implementation: Optional[str] = None

    @property
    def storage(self) -> Dict[str, Any]:
        return self.chain.state.storage.setdefault(self.address, {})

    def clone_at(self, address: str) -> "Contract":
        """Proxy instance at `address` sharing this contract's code and immutables."""
        clone = copy.copy(self)
        clone.address = address
        clone.implementation = self.address
        return clone


class Chain:
    """
    Single ledger with its own clock.

    Two Chain instances model the two sides of a swap; they share nothing.
    """

    def __init__(self, config: ChainConfig = None):
        self.config = config or ChainConfig()
        self.state = LedgerState()
        self.timestamp = self.config.genesis_timestamp
        self.tx_count = 0

    @property
    def chain_id(self) -> int:
        return self.config.chain_id

    def __repr__(self) -> str:
        return f"Chain({self.config.name}, id={self.chain_id}, t={self.timestamp})"

    # =========================================================================
    # Clock
    # =========================================================================

    def warp(self, timestamp: int):
        """Set the timestamp of the next transactions."""
        if timestamp < self.timestamp:
            raise ValueError(f"Timestamp must not go backwards: {timestamp} < {self.timestamp}")
        self.timestamp = timestamp

    def advance(self, seconds: int):
        self.warp(self.timestamp + seconds)

    # =========================================================================
    # Native Balances
    # =========================================================================

    def balance_of(self, address: str) -> int:
        return self.state.native.get(to_address(address), 0)

    def fund(self, address: str, amount: int):
        """Faucet: credit native balance out of thin air."""
        address = to_address(address)
        self.state.native[address] = self.state.native.get(address, 0) + amount

    def _move_native(self, sender: str, to: str, amount: int):
        sender, to = to_address(sender), to_address(to)
        if amount < 0:
            raise ValueError(f"Negative native transfer: {amount}")
        balance = self.state.native.get(sender, 0)
        if balance < amount:
            raise InsufficientBalance(
                f"{short(sender)} has {balance} {self.config.native_symbol}, needs {amount}"
            )
        self.state.native[sender] = balance - amount
        self.state.native[to] = self.state.native.get(to, 0) + amount

    # =========================================================================
    # Code
    # =========================================================================

    def code_at(self, address: str) -> Optional[Contract]:
        return self.state.code.get(to_address(address))

    def contract(self, address: str) -> Contract:
        contract = self.code_at(address)
        if contract is None:
            raise UnknownContract(f"No contract at {address} on {self.config.name}")
        return contract

    # =========================================================================
    # Transactions
    # =========================================================================

    @contextmanager
    def _atomic(self, sender: str) -> Iterator[None]:
        snapshot = self.state.snapshot()
        sender = to_address(sender)
        self.state.nonces[sender] = self.state.nonces.get(sender, 0) + 1
        try:
            yield
        except Exception:
            self.state = snapshot
            raise
        self.tx_count += 1

    def transact(self, sender: str, target: str, method: str, *args, value: int = 0) -> Any:
        """
        Execute a public contract method as one atomic transaction.

        Any exception rolls back every effect of the call, including nested
        calls, value transfers and events, and is re-raised to the caller.
        """
        with self._atomic(sender):
            return self._invoke(sender, target, method, args, value)

    def send(self, sender: str, to: str, amount: int):
        """Plain native transfer transaction (works for addresses without code)."""
        with self._atomic(sender):
            self._move_native(sender, to, amount)

    def deploy(self, sender: str, contract_cls, *args, value: int = 0) -> Contract:
        """Deploy a contract from an externally owned account."""
        sender = to_address(sender)
        nonce = self.state.nonces.get(sender, 0)
        with self._atomic(sender):
            address = compute_create_address(sender, nonce)
            contract = self._install(sender, address, lambda ctx: contract_cls(ctx, *args), value)
        log.debug(f"Deployed {contract_cls.__name__} at {address} on {self.config.name}")
        return contract

    def _invoke(self, sender: str, target: str, method: str, args: tuple, value: int) -> Any:
        contract = self.contract(target)
        fn = getattr(contract, method, None)
        if fn is None or not getattr(fn, "__public__", False):
            raise UnknownContract(f"{type(contract).__name__} has no public method {method}")
        if value:
            self._move_native(sender, contract.address, value)
        ctx = CallContext(self, to_address(sender), contract.address, value)
        return fn(ctx, *args)

    def _create(self, deployer: str, contract_cls, args: tuple, value: int) -> Contract:
        nonce = self.state.nonces.get(deployer, 0)
        self.state.nonces[deployer] = nonce + 1
        address = compute_create_address(deployer, nonce)
        return self._install(deployer, address, lambda ctx: contract_cls(ctx, *args), value)

    def _create2_clone(self, deployer: str, implementation: str, salt: bytes, value: int) -> Contract:
        impl = self.contract(implementation)
        self.state.nonces[deployer] = self.state.nonces.get(deployer, 0) + 1
        address = compute_create2_address(deployer, salt, proxy_bytecode_hash(impl.address))
        return self._install(deployer, address, lambda ctx: impl.clone_at(ctx.address), value)

    def _install(self, deployer: str, address: str, build: Callable, value: int) -> Contract:
        if address in self.state.code:
            raise DeploymentFailed(f"Address {address} already has code")
        if value:
            self._move_native(deployer, address, value)
        contract = build(CallContext(self, to_address(deployer), address, value))
        self.state.code[address] = contract
        return contract

    # =========================================================================
    # Events
    # =========================================================================

    def _emit(self, address: str, name: str, args: Dict[str, Any]):
        self.state.events.append(Event(address, name, dict(args), self.timestamp, self.tx_count))

    def events(self, address: str = None, name: str = None) -> List[Event]:
        """Filter the event log by emitter and/or event name."""
        result = []
        for event in self.state.events:
            if address is not None and event.address != to_address(address):
                continue
            if name is not None and event.name != name:
                continue
            result.append(event)
        return result
