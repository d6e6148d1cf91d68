"""Concurrency control utilities for order execution.

Provides per-order locking so that at most one execution of a given order
hash is in flight. Different orders never share a lock.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

logger = logging.getLogger(__name__)


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


class OrderLockRegistry:
    """Keyed registry of asyncio locks, one per order hash."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._registry_lock = asyncio.Lock()

    async def get_lock(self, key: str) -> asyncio.Lock:
        """Get or create the lock for a key.

        Args:
            key: Order hash (case-insensitive)

        Returns:
            asyncio.Lock for the key
        """
        key = key.lower()
        async with self._registry_lock:
            if key not in self._locks:
                self._locks[key] = asyncio.Lock()
            return self._locks[key]

    def clear(self) -> None:
        """Clear all locks (useful for testing)."""
        self._locks.clear()

    def __len__(self) -> int:
        return len(self._locks)


_default_registry: Optional[OrderLockRegistry] = None


def get_default_registry() -> OrderLockRegistry:
    """Get the process-wide lock registry."""
    global _default_registry
    if _default_registry is None:
        _default_registry = OrderLockRegistry()
    return _default_registry


class OrderExecutionLock:
    """Context manager for exclusive execution of one order.

    Example:
        async with OrderExecutionLock(registry, order_hash, operation="execute"):
            order = await store.get_by_hash(order_hash)
            ...
    """

    def __init__(
        self,
        registry: OrderLockRegistry,
        order_hash: str,
        timeout: Optional[float] = 30.0,
        operation: str = "execute",
    ):
        """Initialize the lock.

        Args:
            registry: Registry the lock is taken from
            order_hash: Order being executed
            timeout: Maximum time to wait for lock (None = wait forever)
            operation: Description of the operation for logging
        """
        self.registry = registry
        self.order_hash = order_hash
        self.timeout = timeout
        self.operation = operation
        self._lock: Optional[asyncio.Lock] = None
        self._acquired = False

    async def __aenter__(self) -> "OrderExecutionLock":
        """Acquire the lock."""
        self._lock = await self.registry.get_lock(self.order_hash)

        try:
            if self.timeout is not None:
                self._acquired = await asyncio.wait_for(
                    self._lock.acquire(),
                    timeout=self.timeout,
                )
            else:
                await self._lock.acquire()
                self._acquired = True

            logger.debug(f"Lock acquired for order {self.order_hash}: {self.operation}")
            return self

        except asyncio.TimeoutError:
            logger.warning(
                f"Lock timeout for order {self.order_hash} after {self.timeout}s: {self.operation}"
            )
            raise LockTimeoutError(
                f"Could not acquire lock for order {self.order_hash} within {self.timeout}s"
            )

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Release the lock."""
        if self._acquired and self._lock:
            self._lock.release()
            self._acquired = False
            logger.debug(f"Lock released for order {self.order_hash}: {self.operation}")
        return False


@asynccontextmanager
async def order_execution_lock(
    order_hash: str,
    timeout: Optional[float] = 30.0,
    operation: str = "execute",
    registry: Optional[OrderLockRegistry] = None,
):
    """Functional context manager for order locking.

    Example:
        async with order_execution_lock(order_hash, operation="reveal"):
            pass
    """
    async with OrderExecutionLock(
        registry if registry is not None else get_default_registry(),
        order_hash,
        timeout=timeout,
        operation=operation,
    ):
        yield
