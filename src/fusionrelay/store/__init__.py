"""Order store and swap order data model."""

from fusionrelay.store.models import (
    EvmSwapOrder,
    OrderStatus,
    SwapDirection,
    SwapOrder,
    UserIntent,
)
from fusionrelay.store.repository import OrderStore

__all__ = [
    "EvmSwapOrder",
    "OrderStatus",
    "OrderStore",
    "SwapDirection",
    "SwapOrder",
    "UserIntent",
]
