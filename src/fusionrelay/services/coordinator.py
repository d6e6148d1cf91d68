"""Swap coordinator.

Drives both directions of a swap over the order lifecycle:

    BUILT -> SIGNED -> SRC_DEPLOYED -> DST_DEPLOYED -> WITHDRAWN
                                                    \\-> FAILED

EVM -> Cosmos: the maker signs the limit order, the resolver fills it
(deploying the source escrow), then locks the destination funds in a Cosmos
HTLC whose expiry is anchored to the source deployment time.

Cosmos -> EVM: the user locks funds on Cosmos with their own wallet; on
confirmation the resolver deploys the destination escrow on the EVM chain.

Executions of one order are serialized by a per-order lock. Every chain
failure is logged, recorded on the order and re-raised as a single
``ExecutionFailedError``. Broadcast transactions are never rolled back.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

from fusionrelay.chains import ResolverConfig, asset_decimals
from fusionrelay.config import Settings
from fusionrelay.errors import (
    ExecutionFailedError,
    ExecutionInProgressError,
    OrderNotFoundError,
    ProtocolInvariantViolation,
    SwapError,
    UnsupportedChainError,
    ValidationError,
)
from fusionrelay.escrow import Immutables
from fusionrelay.htlc import PROTOCOL_TIMELOCKS, Hashlock, normalize_secret
from fusionrelay.orders import OrderBuilder
from fusionrelay.orders.builder import DST_SAFETY_DEPOSIT
from fusionrelay.resolvers import CosmosResolver, EvmResolver, HtlcParams
from fusionrelay.store import EvmSwapOrder, OrderStatus, OrderStore, SwapDirection, SwapOrder, UserIntent
from fusionrelay.utils.evm import parse_units
from fusionrelay.utils.locks import LockTimeoutError, OrderLockRegistry, order_execution_lock

logger = logging.getLogger(__name__)


class SwapCoordinator:
    """Orchestrates order building and both escrow legs."""

    def __init__(
        self,
        store: OrderStore,
        evm_resolvers: dict[int, EvmResolver],
        cosmos_resolver: Optional[CosmosResolver] = None,
        builder: Optional[OrderBuilder] = None,
        cosmos_chain_id: int = 999,
        cosmos_prefix: str = "osmo",
        dst_asset: str = "0xaf88d065e77c8cC2239327C5EDb3A432268e5831",
        lock_registry: Optional[OrderLockRegistry] = None,
        lock_timeout: Optional[float] = 300.0,
        default_dst_cancellation_delay: int = 600,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.evm_resolvers = dict(evm_resolvers)
        self.cosmos_resolver = cosmos_resolver
        self.cosmos_chain_id = cosmos_chain_id
        self.builder = builder or OrderBuilder(
            {chain_id: r.config for chain_id, r in self.evm_resolvers.items()},
            cosmos_chain_id=cosmos_chain_id,
            cosmos_prefix=cosmos_prefix,
            clock=clock,
        )
        self.dst_asset = dst_asset
        self.locks = lock_registry if lock_registry is not None else OrderLockRegistry()
        self.lock_timeout = lock_timeout
        self.default_dst_cancellation_delay = default_dst_cancellation_delay
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "SwapCoordinator":
        """Wire chain clients and resolvers from configuration.

        A leg whose signing material or contracts are not configured is
        left out; intents needing it fail with ``UnsupportedChainError``.
        """
        from fusionrelay.resolvers.cosmos_client import CosmpyWasmClient
        from fusionrelay.resolvers.evm_client import Web3Submitter

        evm_resolvers: dict[int, EvmResolver] = {}
        contracts = (settings.eth_resolver, settings.eth_escrow_factory, settings.eth_limit_order)
        if settings.has_evm_signer and all(contracts):
            submitter = Web3Submitter(
                settings.eth_rpc_url,
                settings.eth_private_key,
                settings.eth_chain_id,
                rpc_timeout=settings.rpc_timeout,
                confirmation_timeout=settings.confirmation_timeout,
            )
            config = ResolverConfig(
                chain_id=settings.eth_chain_id,
                resolver=settings.eth_resolver,
                escrow_factory=settings.eth_escrow_factory,
                limit_order=settings.eth_limit_order,
            )
            evm_resolvers[settings.eth_chain_id] = EvmResolver(submitter, config, settings.force_gas_limit)
        else:
            logger.warning("EVM resolver not configured: set ETH_PRIVATE_KEY and resolver contract addresses")

        cosmos_resolver = None
        if settings.has_cosmos_signer:
            gas_price, denom = settings.cosmos_gas_price_parts()
            client = CosmpyWasmClient(
                settings.cosmos_rpc_endpoint,
                settings.cosmos_chain_id,
                settings.cosmos_mnemonic,
                prefix=settings.cosmos_prefix,
                gas_price=gas_price,
                fee_denom=denom,
                rpc_timeout=settings.rpc_timeout,
                confirmation_timeout=settings.confirmation_timeout,
            )
            cosmos_resolver = CosmosResolver(
                client, settings.cosmos_escrow_factory_address, chain_id=settings.cosmos_chain_id
            )
        else:
            logger.warning("Cosmos resolver not configured: set COSMOS_MNEMONIC")

        logger.info(f"SwapCoordinator created: EVM chains {sorted(evm_resolvers)}")
        return cls(
            store=OrderStore(),
            evm_resolvers=evm_resolvers,
            cosmos_resolver=cosmos_resolver,
            cosmos_chain_id=settings.cosmos_chain_numeric_id,
            cosmos_prefix=settings.cosmos_prefix,
            dst_asset=settings.eth_dst_asset,
            lock_timeout=settings.execution_lock_timeout,
            default_dst_cancellation_delay=settings.default_dst_cancellation_delay,
        )

    # ======================
    # Lookups
    # ======================

    def supported_chains(self) -> list[int]:
        """EVM chain ids with a configured resolver."""
        return list(self.evm_resolvers)

    def get_resolver(self, chain_id: int) -> EvmResolver:
        resolver = self.evm_resolvers.get(chain_id)
        if resolver is None:
            raise UnsupportedChainError(chain_id)
        return resolver

    def _cosmos(self) -> CosmosResolver:
        if self.cosmos_resolver is None:
            raise UnsupportedChainError(self.cosmos_chain_id)
        return self.cosmos_resolver

    async def get_order(self, order_hash: str) -> SwapOrder:
        order = await self.store.get_by_hash(order_hash)
        if order is None:
            raise OrderNotFoundError(order_hash)
        return order

    async def get_orders_by_user(self, user_address: str) -> list[SwapOrder]:
        return await self.store.get_by_user(user_address)

    async def get_cosmos_htlc(self, order_hash: str) -> Any:
        """HTLC state of an order on the Cosmos escrow factory."""
        order = await self.get_order(order_hash)
        return await self._cosmos().get_htlc_by_order_hash(order.order_hash)

    async def get_cosmos_htlcs_by_maker(self, maker: str) -> Any:
        return await self._cosmos().get_htlcs_by_maker(maker)

    async def get_cosmos_factory_config(self) -> Any:
        return await self._cosmos().query_escrow_factory_config()

    # ======================
    # EVM -> Cosmos
    # ======================

    async def build_evm_to_cosmos(self, intent: UserIntent) -> EvmSwapOrder:
        """Build and record an order whose source leg is an EVM limit order."""
        if intent.dst_chain_id != self.cosmos_chain_id:
            raise UnsupportedChainError(intent.dst_chain_id)
        built = self.builder.build_evm_order(intent)
        order = EvmSwapOrder(
            order_hash=built.order_hash,
            user_intent=intent,
            direction=SwapDirection.EVM_TO_COSMOS,
            typed_data=built.typed_data,
            order=built.order,
        )
        return await self.store.create(order)

    async def execute_evm_to_cosmos(self, order_hash: str, signature: str) -> SwapOrder:
        """Deploy the source escrow, then the Cosmos HTLC.

        Safe to call repeatedly: steps already recorded on the order are
        skipped, so each escrow is deployed at most once.

        Raises:
            OrderNotFoundError: Unknown order, before any chain call
            ValidationError: Signature not produced by the intent's user
            ExecutionInProgressError: Another execution holds the order
            ExecutionFailedError: A leg failed; the order is marked failed
        """
        if await self.store.get_evm_by_hash(order_hash) is None:
            raise OrderNotFoundError(order_hash)

        async with self._exclusive(order_hash, "execute"):
            order = await self.store.get_evm_by_hash(order_hash)
            self._ensure_not_failed(order)
            if order.escrow_src_tx_hash and order.escrow_dst_tx_hash:
                logger.info(f"Order {order_hash} already executed")
                return order

            self.get_resolver(order.user_intent.src_chain_id)
            self._cosmos()

            order = await self._attach_signature(order, signature)
            try:
                if not order.escrow_src_tx_hash:
                    order = await self._deploy_source(order)
                if not order.escrow_dst_tx_hash:
                    order = await self._create_htlc(order)
            except Exception as e:
                await self._fail(order, e, "execute")
                raise ExecutionFailedError(order.order_hash) from e
            return order

    async def _attach_signature(self, order: EvmSwapOrder, signature: str) -> EvmSwapOrder:
        if order.signature:
            if order.signature.lower() != signature.lower():
                raise ValidationError(
                    "Order already carries a different signature", details={"orderHash": order.order_hash}
                )
            return order

        if self.builder.rehash(order.order).lower() != order.order_hash.lower():
            violation = ProtocolInvariantViolation(
                "Stored order no longer hashes to its key", details={"orderHash": order.order_hash}
            )
            await self._fail(order, violation, "execute")
            raise ExecutionFailedError(order.order_hash) from violation
        try:
            signer = self.builder.recover_maker(order.order, signature)
        except Exception as e:
            # eth-keys raises its own BadSignature for unrecoverable signatures
            raise ValidationError("Malformed signature", details={"orderHash": order.order_hash}) from e
        if signer.lower() != order.user_intent.user_address.lower():
            logger.warning(f"Signature for {order.order_hash} recovers to {signer}, not the maker")
            raise ValidationError("Signature not produced by the order maker", details={"orderHash": order.order_hash})

        await self.store.add_signature(order.order_hash, signature)
        return await self.store.set_status(order.order_hash, OrderStatus.SIGNED)

    async def _deploy_source(self, order: EvmSwapOrder) -> EvmSwapOrder:
        resolver = self.get_resolver(order.user_intent.src_chain_id)
        try:
            result = await resolver.deploy_source(order.order_hash, order.order, order.signature)
        except SwapError as e:
            await self._record_broadcast(order.order_hash, e, self.store.add_escrow_src_tx_hash)
            raise
        await self.store.add_escrow_src_tx_hash(order.order_hash, result.tx_hash)
        await self.store.add_evm_escrow_address(order.order_hash, result.escrow_address)
        await self.store.add_deployed_at(order.order_hash, result.deployed_at)
        return await self.store.set_status(order.order_hash, OrderStatus.SRC_DEPLOYED)

    async def _create_htlc(self, order: EvmSwapOrder) -> EvmSwapOrder:
        # The source deployment time anchors the destination timelock
        if order.deployed_at is None:
            raise ProtocolInvariantViolation(
                "Source escrow has no deployment time", details={"orderHash": order.order_hash}
            )
        intent = order.user_intent
        timelocks = order.order.escrow_params.timelocks
        params = HtlcParams(
            swap_hash=order.order_hash,
            maker=intent.receiver,
            amount=order.order.taking_amount,
            denom=intent.dst_chain_asset,
            hashlock=order.order.escrow_params.hashlock,
            timelock=timelocks.dst_deadlines(order.deployed_at).withdrawal,
        )
        cosmos = self._cosmos()
        tx_hash = await cosmos.create_htlc(params)
        await self.store.add_escrow_dst_tx_hash(order.order_hash, tx_hash)

        htlc_address = None
        try:
            htlc = await cosmos.get_htlc_by_order_hash(order.order_hash)
            htlc_address = htlc.get("htlc_address") if isinstance(htlc, dict) else None
        except SwapError as e:
            logger.warning(f"HTLC lookup for {order.order_hash} failed after creation in tx {tx_hash}: {e}")
        # The factory keys HTLCs by swap hash
        await self.store.add_cosmos_escrow_address(order.order_hash, htlc_address or order.order_hash)
        return await self.store.mark_executed(order.order_hash, OrderStatus.DST_DEPLOYED)

    # ======================
    # Cosmos -> EVM
    # ======================

    async def build_cosmos_to_evm(self, intent: UserIntent) -> SwapOrder:
        """Record an order whose source leg the user locks on Cosmos."""
        order_hash = self.builder.build_cosmos_order_hash(intent)
        order = SwapOrder(order_hash=order_hash, user_intent=intent, direction=SwapDirection.COSMOS_TO_EVM)
        return await self.store.create(order)

    async def confirm_cosmos_to_evm(
        self, order_hash: str, src_cancellation_timestamp: Optional[int] = None
    ) -> SwapOrder:
        """Deploy the destination escrow once the Cosmos lock is confirmed.

        ``src_cancellation_timestamp`` defaults to now plus the configured
        delay.
        """
        order = await self.get_order(order_hash)
        if order.direction != SwapDirection.COSMOS_TO_EVM:
            raise ValidationError("Order is not a Cosmos-sourced swap", details={"orderHash": order_hash})

        async with self._exclusive(order_hash, "confirm"):
            order = await self.get_order(order_hash)
            self._ensure_not_failed(order)
            if order.escrow_dst_tx_hash:
                logger.info(f"Order {order_hash} already has a destination escrow")
                return order

            resolver = self.get_resolver(order.user_intent.dst_chain_id)
            if order.status == OrderStatus.BUILT:
                order = await self.store.set_status(order_hash, OrderStatus.SRC_DEPLOYED)

            cancellation = src_cancellation_timestamp or int(self._clock()) + self.default_dst_cancellation_delay
            try:
                immutables = self._cosmos_to_evm_immutables(order, resolver)
                try:
                    result = await resolver.deploy_destination(immutables, cancellation)
                except SwapError as e:
                    await self._record_broadcast(order_hash, e, self.store.add_escrow_dst_tx_hash)
                    raise
            except Exception as e:
                await self._fail(order, e, "confirm")
                raise ExecutionFailedError(order.order_hash) from e

            await self.store.add_escrow_dst_tx_hash(order_hash, result.tx_hash)
            await self.store.add_evm_escrow_address(order_hash, result.escrow_address)
            await self.store.add_deployed_at(order_hash, result.deployed_at)
            return await self.store.mark_executed(order_hash, OrderStatus.DST_DEPLOYED)

    def _cosmos_to_evm_immutables(self, order: SwapOrder, resolver: EvmResolver) -> Immutables:
        intent = order.user_intent
        decimals = asset_decimals(intent.dst_chain_id, self.dst_asset)
        return Immutables(
            order_hash=order.order_hash,
            hashlock=Hashlock.from_hex(intent.hashlock),
            maker=intent.receiver,
            taker=resolver.resolver_address,
            token=self.dst_asset,
            amount=parse_units(intent.token_amount, decimals),
            safety_deposit=DST_SAFETY_DEPOSIT,
            timelocks=PROTOCOL_TIMELOCKS,
        )

    # ======================
    # Secret reveal
    # ======================

    async def reveal_secret(self, order_hash: str, secret: str) -> SwapOrder:
        """Withdraw the order's EVM escrow with the user's secret.

        The source escrow for EVM-sourced swaps, the destination escrow for
        Cosmos-sourced swaps, once both legs are locked. A failed withdrawal
        leaves the order as it was: the escrow still holds the funds and the
        call can be retried once its timelock opens.

        Raises:
            OrderNotFoundError: Unknown order
            ValidationError: Secret does not match the hashlock, or no
                escrow is deployed yet
            ExecutionFailedError: The withdrawal transaction failed
        """
        order = await self.get_order(order_hash)
        try:
            raw_secret = normalize_secret(secret)
        except ValueError as e:
            raise ValidationError("Secret must be 32 bytes of hex", details={"orderHash": order_hash}) from e
        if not Hashlock.from_hex(order.user_intent.hashlock).matches(raw_secret):
            raise ValidationError("Secret does not match the order hashlock", details={"orderHash": order_hash})

        async with self._exclusive(order_hash, "reveal"):
            order = await self.get_order(order_hash)
            if order.status == OrderStatus.WITHDRAWN:
                return order
            self._ensure_not_failed(order)

            # Both legs must be locked before the secret is used on either
            if order.direction == SwapDirection.EVM_TO_COSMOS:
                chain_id = order.user_intent.src_chain_id
            else:
                chain_id = order.user_intent.dst_chain_id
            deployed = order.evm_escrow_address and order.deployed_at is not None
            if order.status != OrderStatus.DST_DEPLOYED or not deployed:
                raise ValidationError("No escrow deployed to withdraw from", details={"orderHash": order_hash})

            resolver = self.get_resolver(chain_id)
            await self.store.add_secret(order_hash, "0x" + raw_secret.hex())
            if order.direction == SwapDirection.EVM_TO_COSMOS:
                immutables = order.order.to_src_immutables(order.order_hash, resolver.resolver_address)
                record = self.store.add_escrow_src_withdraw_tx_hash
            else:
                immutables = self._cosmos_to_evm_immutables(order, resolver)
                record = self.store.add_escrow_dst_withdraw_tx_hash
            immutables = immutables.with_deployed_at(order.deployed_at)

            try:
                tx_hash = await resolver.withdraw(order.evm_escrow_address, raw_secret, immutables)
            except SwapError as e:
                logger.error(f"Withdrawal failed for {order_hash} on chain {chain_id}: {e}")
                raise ExecutionFailedError(order_hash, "Failed to withdraw escrow") from e

            await record(order_hash, tx_hash)
            return await self.store.set_status(order_hash, OrderStatus.WITHDRAWN)

    # ======================
    # Helpers
    # ======================

    @asynccontextmanager
    async def _exclusive(self, order_hash: str, operation: str):
        try:
            async with order_execution_lock(
                order_hash, timeout=self.lock_timeout, operation=operation, registry=self.locks
            ):
                yield
        except LockTimeoutError as e:
            raise ExecutionInProgressError(order_hash) from e

    @staticmethod
    def _ensure_not_failed(order: SwapOrder) -> None:
        if order.status == OrderStatus.FAILED:
            raise ExecutionFailedError(order.order_hash, "Order already failed")

    @staticmethod
    async def _record_broadcast(order_hash: str, error: SwapError, record) -> None:
        """Keep the hash of a transaction that was broadcast before the leg failed."""
        tx_hash = error.details.get("txHash")
        if tx_hash:
            await record(order_hash, tx_hash)

    async def _fail(self, order: SwapOrder, error: Exception, operation: str) -> None:
        if order.direction == SwapDirection.EVM_TO_COSMOS:
            chain = order.user_intent.src_chain_id
        else:
            chain = order.user_intent.dst_chain_id
        logger.error(
            f"Failed to {operation} order {order.order_hash} (chain {chain}): {type(error).__name__}: {error}",
            exc_info=not isinstance(error, SwapError),
        )
        await self.store.mark_failed(order.order_hash, f"{type(error).__name__}: {error}")
