"""Hashlock and timelock codec shared by both legs."""

from fusionrelay.htlc.hashlock import Hashlock, normalize_secret
from fusionrelay.htlc.timelocks import PROTOCOL_TIMELOCKS, DstDeadlines, TimeLocks

__all__ = [
    "Hashlock",
    "normalize_secret",
    "TimeLocks",
    "DstDeadlines",
    "PROTOCOL_TIMELOCKS",
]
