"""
Secret watcher.

The secret becomes public the moment a destination escrow is withdrawn:
the escrow logs it in its Withdrawal event. The watcher scans the event log
and returns the preimage of a given hashlock.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from ..core import verify_secret, short
from ..chains.ledger import Chain

log = logging.getLogger(__name__)


@dataclass
class WatcherConfig:
    """Watcher configuration."""
    event_name: str = "Withdrawal"


class SecretWatcher:
    """Extracts revealed secrets from escrow events on one chain."""

    def __init__(self, chain: Chain, config: WatcherConfig = None):
        self.chain = chain
        self.config = config or WatcherConfig()
        self._found: Dict[bytes, bytes] = {}

    def find_secret(self, escrow: str, hashlock: bytes) -> Optional[bytes]:
        """
        Find the secret revealed by `escrow` for `hashlock`.

        Args:
            escrow: escrow address
            hashlock: keccak256 of the expected secret

        Returns:
            secret bytes, or None if not revealed yet
        """
        hashlock = bytes(hashlock)
        if hashlock in self._found:
            return self._found[hashlock]

        for event in self.chain.events(address=escrow, name=self.config.event_name):
            secret = event.args.get("secret")
            if verify_secret(secret, hashlock):
                self._found[hashlock] = secret
                log.info(f"Secret for 0x{hashlock.hex()[:16]}... revealed by {short(escrow)} "
                         f"at {event.timestamp}")
                return secret

        log.debug(f"No secret yet from {short(escrow)}")
        return None

    def scan(self, escrows: Iterable[str], hashlock: bytes) -> Optional[bytes]:
        """First secret for `hashlock` revealed by any of `escrows`."""
        for escrow in escrows:
            secret = self.find_secret(escrow, hashlock)
            if secret is not None:
                return secret
        return None
