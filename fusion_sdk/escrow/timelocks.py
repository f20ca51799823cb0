"""
Timelock codec.

One 256-bit word holds the deployment timestamp and the relative offset of
every stage of both legs:

    bits   0..31   deployed_at
    bits  32..63   SRC_WITHDRAWAL
    bits  64..95   SRC_PUBLIC_WITHDRAWAL
    bits  96..127  SRC_CANCELLATION
    bits 128..159  SRC_PUBLIC_CANCELLATION
    bits 160..191  DST_WITHDRAWAL
    bits 192..223  DST_PUBLIC_WITHDRAWAL
    bits 224..255  DST_CANCELLATION

The absolute deadline of a stage is deployed_at + offset(stage), so every
gate is a single comparison against the block timestamp.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Iterable, Mapping, Union

from ..core import UINT32_MAX

STAGE_BITS = 32


class Stage(IntEnum):
    """Timelock stages, in slot order."""
    SRC_WITHDRAWAL = 0
    SRC_PUBLIC_WITHDRAWAL = 1
    SRC_CANCELLATION = 2
    SRC_PUBLIC_CANCELLATION = 3
    DST_WITHDRAWAL = 4
    DST_PUBLIC_WITHDRAWAL = 5
    DST_CANCELLATION = 6

    @classmethod
    def parse(cls, value: Union["Stage", str, int]) -> "Stage":
        if isinstance(value, str):
            return cls[value.upper()]
        return cls(value)


def _check_u32(name: str, value: int):
    if not 0 <= value <= UINT32_MAX:
        raise ValueError(f"{name} does not fit in 32 bits: {value}")


@dataclass(frozen=True)
class Timelocks:
    """Packed timelock word."""
    value: int = 0

    def __post_init__(self):
        if not 0 <= self.value < 2 ** 256:
            raise ValueError(f"Timelocks word out of range: {self.value}")

    @classmethod
    def pack(cls, durations: Mapping[Union[Stage, str], int], deployed_at: int = 0) -> "Timelocks":
        """
        Pack stage offsets (seconds after deployment) and a deployment time.

        Args:
            durations: offset per stage; stages not given are 0
            deployed_at: unix timestamp, usually left 0 and stamped by the factory

        Returns:
            Timelocks
        """
        _check_u32("deployed_at", deployed_at)
        value = deployed_at
        for stage, offset in durations.items():
            stage = Stage.parse(stage)
            _check_u32(stage.name, offset)
            value |= offset << (STAGE_BITS * (stage + 1))
        return cls(value)

    def __int__(self) -> int:
        return self.value

    @property
    def deployed_at(self) -> int:
        return self.value & UINT32_MAX

    def with_deployed_at(self, timestamp: int) -> "Timelocks":
        _check_u32("deployed_at", timestamp)
        return Timelocks((self.value & ~UINT32_MAX) | timestamp)

    def offset(self, stage: Union[Stage, str]) -> int:
        stage = Stage.parse(stage)
        return (self.value >> (STAGE_BITS * (stage + 1))) & UINT32_MAX

    def get(self, stage: Union[Stage, str]) -> int:
        """Absolute timestamp at which `stage` starts."""
        return self.deployed_at + self.offset(stage)

    def rescue_start(self, rescue_delay: int) -> int:
        return self.deployed_at + rescue_delay

    def durations(self) -> Dict[Stage, int]:
        return {stage: self.offset(stage) for stage in Stage}

    def __repr__(self) -> str:
        offsets = ", ".join(f"{s.name.lower()}={self.offset(s)}" for s in Stage if self.offset(s))
        return f"Timelocks(deployed_at={self.deployed_at}, {offsets})"


def validate_leg_schedule(timelocks: Timelocks, stages: Iterable[Stage]) -> bool:
    """
    Check that a leg's stages open in timeline order.

    Args:
        timelocks: packed word
        stages: the leg's stages in the order they must open, or a LegPolicy

    Returns True if valid, raises ValueError if not.
    """
    stages = getattr(stages, "stages", stages)
    previous = None
    for stage in stages:
        if previous is not None and timelocks.offset(stage) < timelocks.offset(previous):
            raise ValueError(
                f"Stage {stage.name} opens at +{timelocks.offset(stage)}s, "
                f"before {previous.name} at +{timelocks.offset(previous)}s"
            )
        previous = stage
    return True


def validate_timelock_cascade(src: Timelocks, dst: Timelocks) -> bool:
    """
    Check cross-leg ordering for a swap whose legs start together.

    The destination leg must become cancellable strictly before the source
    leg, and its withdrawal must open before the source can be cancelled.

    Returns True if valid, raises ValueError if not.
    """
    dst_cancel = dst.offset(Stage.DST_CANCELLATION)
    src_cancel = src.offset(Stage.SRC_CANCELLATION)
    if not dst_cancel < src_cancel:
        raise ValueError(
            f"Timelock cascade violated: T_dst_cancel={dst_cancel}s, "
            f"T_src_cancel={src_cancel}s (must be T_dst_cancel < T_src_cancel)"
        )
    if dst.offset(Stage.DST_WITHDRAWAL) >= src_cancel:
        raise ValueError(
            f"Destination withdrawal opens at +{dst.offset(Stage.DST_WITHDRAWAL)}s, "
            f"after source cancellation at +{src_cancel}s"
        )
    return True
