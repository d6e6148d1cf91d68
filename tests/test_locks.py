"""Tests for the per-order execution locks."""

import asyncio

import pytest

from fusionrelay.services import SwapCoordinator
from fusionrelay.store import OrderStore
from fusionrelay.utils.locks import (
    LockTimeoutError,
    OrderExecutionLock,
    OrderLockRegistry,
    order_execution_lock,
)

ORDER_A = "0x" + "aa" * 32
ORDER_B = "0x" + "bb" * 32


class TestOrderLocks:
    """Tests for the concurrency locks module."""

    @pytest.fixture
    def registry(self):
        return OrderLockRegistry()

    @pytest.mark.asyncio
    async def test_get_lock_returns_same_instance(self, registry):
        lock1 = await registry.get_lock(ORDER_A)
        lock2 = await registry.get_lock(ORDER_A)

        assert lock1 is lock2
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_lock_key_is_case_insensitive(self, registry):
        lock1 = await registry.get_lock(ORDER_A)
        lock2 = await registry.get_lock(ORDER_A.upper().replace("0X", "0x"))

        assert lock1 is lock2

    @pytest.mark.asyncio
    async def test_different_orders_get_different_locks(self, registry):
        lock1 = await registry.get_lock(ORDER_A)
        lock2 = await registry.get_lock(ORDER_B)

        assert lock1 is not lock2

    @pytest.mark.asyncio
    async def test_context_manager_holds_and_releases(self, registry):
        async with OrderExecutionLock(registry, ORDER_A, operation="test"):
            lock = await registry.get_lock(ORDER_A)
            assert lock.locked()

        assert not lock.locked()

    @pytest.mark.asyncio
    async def test_lock_serializes_same_order(self, registry):
        results = []

        async def task(name, delay):
            async with OrderExecutionLock(registry, ORDER_A, timeout=10.0, operation=f"task_{name}"):
                results.append(f"{name}_start")
                await asyncio.sleep(delay)
                results.append(f"{name}_end")

        await asyncio.gather(task("A", 0.05), task("B", 0.05))

        assert results in [
            ["A_start", "A_end", "B_start", "B_end"],
            ["B_start", "B_end", "A_start", "A_end"],
        ]

    @pytest.mark.asyncio
    async def test_different_orders_run_concurrently(self, registry):
        results = []

        async def task(order_hash, name):
            async with OrderExecutionLock(registry, order_hash, timeout=10.0):
                results.append(f"{name}_start")
                await asyncio.sleep(0.05)
                results.append(f"{name}_end")

        await asyncio.gather(task(ORDER_A, "A"), task(ORDER_B, "B"))

        assert results[:2] == ["A_start", "B_start"]

    @pytest.mark.asyncio
    async def test_lock_timeout_raises_error(self, registry):
        async def hold_lock():
            async with OrderExecutionLock(registry, ORDER_A, timeout=5.0):
                await asyncio.sleep(0.5)

        hold_task = asyncio.create_task(hold_lock())
        await asyncio.sleep(0.05)

        with pytest.raises(LockTimeoutError):
            async with OrderExecutionLock(registry, ORDER_A, timeout=0.1):
                pass

        await hold_task

    @pytest.mark.asyncio
    async def test_functional_context_manager(self, registry):
        async with order_execution_lock(ORDER_A, operation="reveal", registry=registry):
            lock = await registry.get_lock(ORDER_A)
            assert lock.locked()

        assert not lock.locked()

    @pytest.mark.asyncio
    async def test_clear_drops_locks(self, registry):
        await registry.get_lock(ORDER_A)
        await registry.get_lock(ORDER_B)

        registry.clear()

        assert len(registry) == 0
        lock = await registry.get_lock(ORDER_A)
        assert not lock.locked()


class TestInjectedRegistry:
    """An injected registry is used even while it holds no locks."""

    def test_coordinator_keeps_empty_registry(self, cosmos_resolver):
        registry = OrderLockRegistry()
        coordinator = SwapCoordinator(
            store=OrderStore(), evm_resolvers={}, cosmos_resolver=cosmos_resolver, lock_registry=registry
        )
        assert coordinator.locks is registry

    def test_store_keeps_empty_registry(self):
        registry = OrderLockRegistry()
        assert OrderStore(registry)._locks is registry

    @pytest.mark.asyncio
    async def test_coordinator_locks_in_injected_registry(self, coordinator, built_evm_order):
        held = await coordinator.locks.get_lock(built_evm_order.order_hash)

        async with coordinator._exclusive(built_evm_order.order_hash, "execute"):
            assert held.locked()
        assert not held.locked()
