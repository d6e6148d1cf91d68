"""Utility modules for fusionrelay."""

from fusionrelay.utils.locks import LockTimeoutError, OrderExecutionLock, OrderLockRegistry

__all__ = ["LockTimeoutError", "OrderExecutionLock", "OrderLockRegistry"]
