"""
Swap coordination for the fusion escrow SDK.

Orchestrates two-chain swaps across a source and a destination escrow.
"""

from .executor import SwapExecutor, SwapConfig, ActiveSwap
from .watcher import SecretWatcher, WatcherConfig

__all__ = ["SwapExecutor", "SwapConfig", "ActiveSwap", "SecretWatcher", "WatcherConfig"]
