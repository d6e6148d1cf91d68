"""Timelock schedule shared by both escrows of a swap.

Offsets are seconds relative to the escrow's deployment time. The schedule
packs into a single uint256, 32 bits per stage, stage ``i`` at bits
``[32*i, 32*i + 32)``:

    0 srcWithdrawal          4 dstWithdrawal
    1 srcPublicWithdrawal    5 dstPublicWithdrawal
    2 srcCancellation        6 dstCancellation
    3 srcPublicCancellation  7 deployedAt (absolute, set by the factory)
"""

from dataclasses import dataclass, replace
from typing import Optional

_UINT32 = (1 << 32) - 1

STAGES = (
    "src_withdrawal",
    "src_public_withdrawal",
    "src_cancellation",
    "src_public_cancellation",
    "dst_withdrawal",
    "dst_public_withdrawal",
    "dst_cancellation",
)


@dataclass(frozen=True)
class DstDeadlines:
    """Absolute destination-leg deadlines (unix seconds)."""

    withdrawal: int
    public_withdrawal: int
    cancellation: int


@dataclass(frozen=True)
class TimeLocks:
    """Relative timelock offsets for the source and destination legs.

    Raises ValueError on construction if a leg's stages do not strictly
    increase or a value does not fit in 32 bits.
    """

    src_withdrawal: int
    src_public_withdrawal: int
    src_cancellation: int
    src_public_cancellation: int
    dst_withdrawal: int
    dst_public_withdrawal: int
    dst_cancellation: int
    deployed_at: int = 0

    def __post_init__(self):
        for name in STAGES + ("deployed_at",):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 0 or value > _UINT32:
                raise ValueError(f"Timelock {name} out of range: {value!r}")

        src = (
            self.src_withdrawal,
            self.src_public_withdrawal,
            self.src_cancellation,
            self.src_public_cancellation,
        )
        dst = (self.dst_withdrawal, self.dst_public_withdrawal, self.dst_cancellation)
        if any(a >= b for a, b in zip(src, src[1:])):
            raise ValueError(f"Source timelocks must strictly increase: {src}")
        if any(a >= b for a, b in zip(dst, dst[1:])):
            raise ValueError(f"Destination timelocks must strictly increase: {dst}")

    def encode(self) -> int:
        """Pack into the uint256 word escrows store."""
        word = self.deployed_at << 224
        for i, name in enumerate(STAGES):
            word |= getattr(self, name) << (32 * i)
        return word

    @classmethod
    def decode(cls, word: int) -> "TimeLocks":
        values = {name: (word >> (32 * i)) & _UINT32 for i, name in enumerate(STAGES)}
        return cls(deployed_at=(word >> 224) & _UINT32, **values)

    def with_deployed_at(self, timestamp: int) -> "TimeLocks":
        return replace(self, deployed_at=int(timestamp))

    def dst_deadlines(self, deployed_at: Optional[int] = None) -> DstDeadlines:
        base = self.deployed_at if deployed_at is None else deployed_at
        return DstDeadlines(
            withdrawal=base + self.dst_withdrawal,
            public_withdrawal=base + self.dst_public_withdrawal,
            cancellation=base + self.dst_cancellation,
        )


# Protocol-wide schedule; not user-configurable
PROTOCOL_TIMELOCKS = TimeLocks(
    src_withdrawal=5,
    src_public_withdrawal=120,
    src_cancellation=121,
    src_public_cancellation=122,
    dst_withdrawal=10,
    dst_public_withdrawal=100,
    dst_cancellation=101,
)
