"""EVM leg: resolver contract calls and escrow address recovery.

Resolver contract surface:

    deploySrc(Immutables immutables, Order order, bytes32 r, bytes32 vs,
              uint256 amount, uint256 takerTraits, bytes args) payable
    deployDst(address[] targets, bytes[] callsData, Immutables dstImmutables,
              uint256 srcCancellationTimestamp) payable
    withdraw(address escrow, bytes32 secret, Immutables immutables,
             address[] targets, bytes[] callsData)

Escrow factory surface:

    event SrcEscrowCreated(Immutables srcImmutables)
    event DstEscrowCreated(address escrow)
    ESCROW_SRC_IMPLEMENTATION() -> address
    ESCROW_DST_IMPLEMENTATION() -> address
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional, Union

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, keccak, to_checksum_address

from fusionrelay.chains import ResolverConfig
from fusionrelay.errors import ChainSubmissionError, ProtocolInvariantViolation, SwapError
from fusionrelay.escrow import IMMUTABLES_ABI, EscrowAddressResolver, Immutables
from fusionrelay.htlc import normalize_secret
from fusionrelay.orders.order import ORDER_ABI, CrossChainOrder
from fusionrelay.resolvers.base import DeployResult, EvmTransactionSubmitter, LogEntry
from fusionrelay.utils.evm import split_signature

logger = logging.getLogger(__name__)

DEPLOY_SRC_SIGNATURE = f"deploySrc({IMMUTABLES_ABI},{ORDER_ABI},bytes32,bytes32,uint256,uint256,bytes)"
DEPLOY_DST_SIGNATURE = f"deployDst(address[],bytes[],{IMMUTABLES_ABI},uint256)"
WITHDRAW_SIGNATURE = f"withdraw(address,bytes32,{IMMUTABLES_ABI},address[],bytes[])"

SRC_ESCROW_CREATED_TOPIC = keccak(text=f"SrcEscrowCreated({IMMUTABLES_ABI})")
DST_ESCROW_CREATED_TOPIC = keccak(text="DstEscrowCreated(address)")

ESCROW_SRC_IMPLEMENTATION_SELECTOR = function_signature_to_4byte_selector("ESCROW_SRC_IMPLEMENTATION()")
ESCROW_DST_IMPLEMENTATION_SELECTOR = function_signature_to_4byte_selector("ESCROW_DST_IMPLEMENTATION()")


def _calldata(signature: str, types: list[str], args: list) -> bytes:
    return function_signature_to_4byte_selector(signature) + encode(types, args)


def encode_deploy_src(
    immutables: Immutables,
    order: CrossChainOrder,
    signature: Union[str, bytes],
    amount: int,
) -> bytes:
    """Calldata filling ``order`` through the resolver, deploying the source escrow."""
    r, vs = split_signature(signature)
    traits, args = order.taker_traits().encode()
    return _calldata(
        DEPLOY_SRC_SIGNATURE,
        [IMMUTABLES_ABI, ORDER_ABI, "bytes32", "bytes32", "uint256", "uint256", "bytes"],
        [immutables.to_abi_tuple(), order.to_abi_tuple(), r, vs, amount, traits, args],
    )


def encode_deploy_dst(immutables: Immutables, src_cancellation_timestamp: int) -> bytes:
    return _calldata(
        DEPLOY_DST_SIGNATURE,
        ["address[]", "bytes[]", IMMUTABLES_ABI, "uint256"],
        [[], [], immutables.to_abi_tuple(), src_cancellation_timestamp],
    )


def encode_withdraw(escrow: str, secret: bytes, immutables: Immutables) -> bytes:
    return _calldata(
        WITHDRAW_SIGNATURE,
        ["address", "bytes32", IMMUTABLES_ABI, "address[]", "bytes[]"],
        [to_checksum_address(escrow), secret, immutables.to_abi_tuple(), [], []],
    )


def decode_src_escrow_created(log: LogEntry) -> Immutables:
    (values,) = decode([IMMUTABLES_ABI], log.data)
    return Immutables.from_abi_tuple(values)


def decode_dst_escrow_created(log: LogEntry) -> str:
    (escrow,) = decode(["address"], log.data)
    return to_checksum_address(escrow)


class EvmResolver:
    """Drives the resolver contract on one EVM chain.

    Each operation is one round trip: submit, wait for one confirmation,
    read the mined block's logs. Nothing is retried here.
    """

    def __init__(
        self,
        submitter: EvmTransactionSubmitter,
        config: ResolverConfig,
        force_gas_limit: Optional[int] = None,
    ):
        self.submitter = submitter
        self.config = config
        self.force_gas_limit = force_gas_limit
        self.addresses = EscrowAddressResolver(config.escrow_factory)
        self._src_implementation: Optional[str] = None
        self._dst_implementation: Optional[str] = None
        logger.info(f"EvmResolver initialized for chain {config.chain_id}")

    @property
    def chain_id(self) -> int:
        return self.config.chain_id

    @property
    def resolver_address(self) -> str:
        return self.config.resolver

    @property
    def escrow_factory(self) -> str:
        return self.config.escrow_factory

    @property
    def limit_order(self) -> str:
        return self.config.limit_order

    # ======================
    # Deployments
    # ======================

    async def deploy_source(
        self,
        order_hash: str,
        order: CrossChainOrder,
        signature: str,
        amount: Optional[int] = None,
    ) -> DeployResult:
        """Fill ``order`` and deploy its source escrow.

        The escrow address is derived from the immutables this resolver
        submitted, with ``deployedAt`` set to the block time, and must
        match the address derived from the emitted ``SrcEscrowCreated``.

        Raises:
            ChainSubmissionError: Submission failed or reverted
            ProtocolInvariantViolation: Missing event or address mismatch
        """
        fill_amount = order.making_amount if amount is None else amount
        immutables = order.to_src_immutables(order_hash, self.resolver_address, fill_amount)
        data = encode_deploy_src(immutables, order, signature, fill_amount)
        value = order.escrow_params.src_safety_deposit
        logger.debug(f"deploySrc calldata for {order_hash}: to={self.resolver_address} value={value} data=0x{data.hex()}")

        logger.info(f"Deploying source escrow for {order_hash} on chain {self.chain_id}")
        receipt = await self.submitter.submit(self.resolver_address, data, value, gas=self.force_gas_limit)

        async with self._after_broadcast(order_hash, receipt.tx_hash):
            logs = await self.submitter.get_logs(receipt.block_hash, self.escrow_factory, SRC_ESCROW_CREATED_TOPIC)
            emitted = self._find_src_event(logs, order_hash)
            if emitted is None:
                raise self._missing_event("SrcEscrowCreated", order_hash, receipt.tx_hash)

            implementation = await self.get_source_implementation()
            expected = immutables.with_deployed_at(receipt.block_timestamp)
            escrow = self.addresses.resolve_source(emitted, expected, implementation)
        logger.info(
            f"Source escrow {escrow} deployed for {order_hash} on chain {self.chain_id}: tx {receipt.tx_hash}"
        )
        return DeployResult(tx_hash=receipt.tx_hash, escrow_address=escrow, deployed_at=receipt.block_timestamp)

    async def deploy_destination(self, immutables: Immutables, src_cancellation_timestamp: int) -> DeployResult:
        """Deploy a destination escrow funded by the resolver.

        Raises:
            ChainSubmissionError: Submission failed or reverted
            ProtocolInvariantViolation: Missing event or address mismatch
        """
        data = encode_deploy_dst(immutables, src_cancellation_timestamp)
        value = immutables.safety_deposit
        logger.debug(
            f"deployDst calldata for {immutables.order_hash}: to={self.resolver_address} "
            f"value={value} srcCancellation={src_cancellation_timestamp} data=0x{data.hex()}"
        )

        logger.info(f"Deploying destination escrow for {immutables.order_hash} on chain {self.chain_id}")
        receipt = await self.submitter.submit(self.resolver_address, data, value, gas=self.force_gas_limit)

        async with self._after_broadcast(immutables.order_hash, receipt.tx_hash):
            logs = await self.submitter.get_logs(receipt.block_hash, self.escrow_factory, DST_ESCROW_CREATED_TOPIC)
            if not logs:
                raise self._missing_event("DstEscrowCreated", immutables.order_hash, receipt.tx_hash)

            implementation = await self.get_destination_implementation()
            expected = immutables.with_deployed_at(receipt.block_timestamp)
            computed = self.addresses.address_for(expected, implementation)
            reported = [decode_dst_escrow_created(log) for log in logs]
            match = next((addr for addr in reported if addr.lower() == computed.lower()), reported[0])
            escrow = self.addresses.resolve_destination(match, expected, implementation)
        logger.info(
            f"Destination escrow {escrow} deployed for {immutables.order_hash} "
            f"on chain {self.chain_id}: tx {receipt.tx_hash}"
        )
        return DeployResult(tx_hash=receipt.tx_hash, escrow_address=escrow, deployed_at=receipt.block_timestamp)

    async def withdraw(self, escrow: str, secret: Union[str, bytes], immutables: Immutables) -> str:
        """Withdraw from an escrow by revealing the secret.

        The escrow enforces its own timelocks; an early call reverts.
        """
        data = encode_withdraw(escrow, normalize_secret(secret), immutables)
        logger.info(f"Withdrawing escrow {escrow} for {immutables.order_hash} on chain {self.chain_id}")
        receipt = await self.submitter.submit(self.resolver_address, data)
        logger.info(f"Withdrew escrow {escrow} for {immutables.order_hash}: tx {receipt.tx_hash}")
        return receipt.tx_hash

    # ======================
    # Factory reads
    # ======================

    async def get_source_implementation(self) -> str:
        if self._src_implementation is None:
            self._src_implementation = await self._read_address(ESCROW_SRC_IMPLEMENTATION_SELECTOR)
        return self._src_implementation

    async def get_destination_implementation(self) -> str:
        if self._dst_implementation is None:
            self._dst_implementation = await self._read_address(ESCROW_DST_IMPLEMENTATION_SELECTOR)
        return self._dst_implementation

    async def _read_address(self, selector: bytes) -> str:
        raw = await self.submitter.call(self.escrow_factory, selector)
        if len(raw) < 32:
            raise ChainSubmissionError(
                f"Malformed implementation address from factory {self.escrow_factory}",
                chain_id=self.chain_id,
                retryable=False,
            )
        (address,) = decode(["address"], raw[:32])
        return to_checksum_address(address)

    # ======================
    # Helpers
    # ======================

    @staticmethod
    def _find_src_event(logs: list[LogEntry], order_hash: str) -> Optional[Immutables]:
        """The ``SrcEscrowCreated`` of this order among a block's logs."""
        for log in logs:
            emitted = decode_src_escrow_created(log)
            if emitted.order_hash.lower() == order_hash.lower():
                return emitted
        return None

    @asynccontextmanager
    async def _after_broadcast(self, order_hash: str, tx_hash: str):
        """Failures once a transaction is mined carry its hash."""
        try:
            yield
        except SwapError as e:
            raise e.attach_tx_hash(tx_hash)
        except Exception as e:
            logger.error(f"Could not read escrow of {order_hash} from tx {tx_hash} on chain {self.chain_id}: {e}")
            raise ProtocolInvariantViolation(
                "Escrow creation could not be read back",
                details={"orderHash": order_hash, "txHash": tx_hash, "chainId": self.chain_id},
            ) from e

    def _missing_event(self, event: str, order_hash: str, tx_hash: str) -> ProtocolInvariantViolation:
        logger.error(f"No {event} for {order_hash} in block of tx {tx_hash} on chain {self.chain_id}")
        return ProtocolInvariantViolation(
            f"{event} event missing after confirmed transaction",
            details={"orderHash": order_hash, "txHash": tx_hash, "chainId": self.chain_id},
        )
