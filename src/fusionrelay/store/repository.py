"""In-memory repository for swap orders."""

import logging
from dataclasses import replace
from datetime import timedelta
from typing import Optional

from fusionrelay.errors import ProtocolInvariantViolation
from fusionrelay.store.models import EvmSwapOrder, OrderStatus, SwapOrder, utcnow
from fusionrelay.utils.locks import OrderExecutionLock, OrderLockRegistry

logger = logging.getLogger(__name__)


class OrderStore:
    """Authoritative record of every order and its lifecycle state.

    Orders are keyed by lowercase order hash and additionally indexed by
    the lowercase user address. Updates replace the stored snapshot under a
    per-order lock; updating an unknown order returns None. Records are
    never deleted.
    """

    def __init__(self, registry: Optional[OrderLockRegistry] = None):
        # Own registry: callers may hold an execution lock on the same hash
        self._locks = registry if registry is not None else OrderLockRegistry()
        self._orders: dict[str, SwapOrder] = {}
        self._by_user: dict[str, list[str]] = {}

    # Create / read
    async def create(self, order: SwapOrder) -> SwapOrder:
        """Insert a new order. Raises ValueError if the hash already exists."""
        key = order.order_hash.lower()
        async with OrderExecutionLock(self._locks, key, timeout=None, operation="create"):
            if key in self._orders:
                raise ValueError(f"Order {order.order_hash} already exists")
            self._orders[key] = order
            user = order.user_intent.user_address.lower()
            self._by_user.setdefault(user, []).append(key)
        logger.info(f"Order created: {order.order_hash} ({order.direction.value})")
        return order

    async def get_by_hash(self, order_hash: str) -> Optional[SwapOrder]:
        return self._orders.get(order_hash.lower())

    async def get_evm_by_hash(self, order_hash: str) -> Optional[EvmSwapOrder]:
        """Get an order only if it carries an EVM limit order."""
        order = self._orders.get(order_hash.lower())
        return order if isinstance(order, EvmSwapOrder) else None

    async def get_by_user(self, user_address: str) -> list[SwapOrder]:
        """Get all orders of a user, newest first."""
        keys = self._by_user.get(user_address.lower(), [])
        return [self._orders[key] for key in reversed(keys)]

    def __len__(self) -> int:
        return len(self._orders)

    # Single-field updates
    async def add_signature(self, order_hash: str, signature: str) -> Optional[SwapOrder]:
        return await self._update(order_hash, signature=signature)

    async def add_secret(self, order_hash: str, secret: str) -> Optional[SwapOrder]:
        return await self._update(order_hash, secret=secret)

    async def add_escrow_src_tx_hash(self, order_hash: str, tx_hash: str) -> Optional[SwapOrder]:
        return await self._update(order_hash, escrow_src_tx_hash=tx_hash)

    async def add_escrow_dst_tx_hash(self, order_hash: str, tx_hash: str) -> Optional[SwapOrder]:
        return await self._update(order_hash, escrow_dst_tx_hash=tx_hash)

    async def add_escrow_src_withdraw_tx_hash(self, order_hash: str, tx_hash: str) -> Optional[SwapOrder]:
        return await self._update(order_hash, escrow_src_withdraw_tx_hash=tx_hash)

    async def add_escrow_dst_withdraw_tx_hash(self, order_hash: str, tx_hash: str) -> Optional[SwapOrder]:
        return await self._update(order_hash, escrow_dst_withdraw_tx_hash=tx_hash)

    async def add_evm_escrow_address(self, order_hash: str, address: str) -> Optional[SwapOrder]:
        return await self._update(order_hash, evm_escrow_address=address)

    async def add_cosmos_escrow_address(self, order_hash: str, address: str) -> Optional[SwapOrder]:
        return await self._update(order_hash, cosmos_escrow_address=address)

    async def add_deployed_at(self, order_hash: str, deployed_at: int) -> Optional[SwapOrder]:
        return await self._update(order_hash, deployed_at=int(deployed_at))

    # Status
    async def set_status(self, order_hash: str, status: OrderStatus) -> Optional[SwapOrder]:
        """Move an order to ``status``.

        Raises:
            ProtocolInvariantViolation: If the lifecycle forbids the move
        """
        return await self._update(order_hash, status=status)

    async def mark_executed(self, order_hash: str, status: OrderStatus) -> Optional[SwapOrder]:
        """Move an order to ``status`` and stamp ``executed_at``."""
        return await self._update(order_hash, status=status, executed_at=utcnow())

    async def mark_failed(self, order_hash: str, reason: str) -> Optional[SwapOrder]:
        """Record a failure. Already-failed orders keep their first reason."""
        key = order_hash.lower()
        current = self._orders.get(key)
        if current is not None and current.status == OrderStatus.FAILED:
            return current
        return await self._update(order_hash, status=OrderStatus.FAILED, failure_reason=reason)

    async def _update(self, order_hash: str, **changes) -> Optional[SwapOrder]:
        key = order_hash.lower()
        async with OrderExecutionLock(self._locks, key, timeout=None, operation="update"):
            current = self._orders.get(key)
            if current is None:
                logger.warning(f"Update on unknown order {order_hash}: {sorted(changes)}")
                return None

            status = changes.get("status")
            if status is not None and status != current.status:
                if not current.status.can_transition_to(status):
                    raise ProtocolInvariantViolation(
                        f"Illegal status transition {current.status.value} -> {status.value}",
                        details={"orderHash": current.order_hash},
                    )

            # Strictly monotonic even when two updates land in the same microsecond
            now = max(utcnow(), current.updated_at + timedelta(microseconds=1))
            updated = replace(current, updated_at=now, **changes)
            self._orders[key] = updated
            return updated
