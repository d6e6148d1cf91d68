"""Order construction, extension encoding and EIP-712 hashing."""

from fusionrelay.orders.builder import BuiltOrder, OrderBuilder
from fusionrelay.orders.order import CrossChainOrder

__all__ = ["BuiltOrder", "CrossChainOrder", "OrderBuilder"]
