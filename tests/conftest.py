"""Pytest configuration and fixtures.

Chain access is replaced by in-memory fakes: ``FakeEvmChain`` decodes the
resolver calldata and emits factory events the way the contracts do, and
``FakeCosmosClient`` keeps HTLCs in a dict keyed by swap hash.
"""

import asyncio
import os
from dataclasses import replace
from typing import Any, Optional

import pytest
import pytest_asyncio
from eth_abi import decode, encode
from eth_account import Account
from eth_utils import function_signature_to_4byte_selector, keccak, to_checksum_address

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "true"
os.environ["ETH_PRIVATE_KEY"] = ""
os.environ["COSMOS_MNEMONIC"] = ""

from fusionrelay.chains import ResolverConfig
from fusionrelay.config import get_settings
from fusionrelay.errors import ChainSubmissionError
from fusionrelay.escrow import IMMUTABLES_ABI, Immutables, compute_escrow_address
from fusionrelay.htlc import Hashlock
from fusionrelay.orders import typed_data
from fusionrelay.orders.order import ORDER_ABI
from fusionrelay.resolvers import CosmosResolver, EvmResolver
from fusionrelay.resolvers.base import CosmosWasmClient, EvmTransactionSubmitter, LogEntry, TxReceipt
from fusionrelay.resolvers.evm import (
    DEPLOY_DST_SIGNATURE,
    DEPLOY_SRC_SIGNATURE,
    DST_ESCROW_CREATED_TOPIC,
    ESCROW_DST_IMPLEMENTATION_SELECTOR,
    ESCROW_SRC_IMPLEMENTATION_SELECTOR,
    SRC_ESCROW_CREATED_TOPIC,
    WITHDRAW_SIGNATURE,
)
from fusionrelay.services import SwapCoordinator
from fusionrelay.store import OrderStore, UserIntent
from fusionrelay.utils.cosmos import bech32_address
from fusionrelay.utils.evm import int_to_address

get_settings.cache_clear()

ARBITRUM = 42161
COSMOS = 999
NOW = 1_700_000_000

WETH = "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1"
USDC = "0xaf88d065e77c8cC2239327C5EDb3A432268e5831"

RESOLVER = to_checksum_address("0x" + "11" * 20)
ESCROW_FACTORY = to_checksum_address("0x" + "22" * 20)
LIMIT_ORDER = to_checksum_address("0x" + "33" * 20)
SRC_IMPLEMENTATION = to_checksum_address("0x" + "44" * 20)
DST_IMPLEMENTATION = to_checksum_address("0x" + "55" * 20)
RESOLVER_EOA = to_checksum_address("0x" + "66" * 20)

MAKER_KEY = "0x" + "a1" * 32
OTHER_KEY = "0x" + "b2" * 32
SECRET = bytes(range(1, 33))

DEPLOY_SRC_SELECTOR = function_signature_to_4byte_selector(DEPLOY_SRC_SIGNATURE)
DEPLOY_DST_SELECTOR = function_signature_to_4byte_selector(DEPLOY_DST_SIGNATURE)
WITHDRAW_SELECTOR = function_signature_to_4byte_selector(WITHDRAW_SIGNATURE)


class FakeEvmChain(EvmTransactionSubmitter):
    """In-memory EVM chain hosting the resolver and escrow factory.

    Knobs:
        emit_src_event: Emit ``SrcEscrowCreated`` on deploySrc
        emit_dst_event: Emit ``DstEscrowCreated`` on deployDst
        tamper_src_amount: Added to the amount in emitted source immutables
        revert_next: Revert the next submission with this reason
        fail_logs: Fail the next log lookup after a mined transaction
    """

    def __init__(self, chain_id: int = ARBITRUM, start_time: int = NOW):
        self.chain_id = chain_id
        self.timestamp = start_time
        self.transactions: list[dict[str, Any]] = []
        self.calls: list[bytes] = []
        self.escrows: dict[str, str] = {}
        self._logs: dict[str, list[LogEntry]] = {}
        self.emit_src_event = True
        self.emit_dst_event = True
        self.tamper_src_amount = 0
        self.revert_next: Optional[str] = None
        self.fail_logs = False

    @property
    def address(self) -> str:
        return RESOLVER_EOA

    def selectors(self) -> list[bytes]:
        return [tx["data"][:4] for tx in self.transactions]

    async def submit(self, to: str, data: bytes, value: int = 0, gas: Optional[int] = None) -> TxReceipt:
        # Let concurrent callers interleave
        await asyncio.sleep(0)
        self.timestamp += 12
        n = len(self.transactions) + 1
        tx_hash = "0x" + keccak(text=f"tx-{self.chain_id}-{n}").hex()
        block_hash = "0x" + keccak(text=f"block-{self.chain_id}-{n}").hex()
        self.transactions.append({"to": to, "data": data, "value": value, "gas": gas, "hash": tx_hash})

        if self.revert_next is not None:
            reason, self.revert_next = self.revert_next, None
            raise ChainSubmissionError(
                f"Transaction {tx_hash} reverted: {reason}",
                chain_id=self.chain_id,
                revert_reason=reason,
                retryable=False,
                tx_hash=tx_hash,
            )

        selector, args = data[:4], data[4:]
        logs: list[LogEntry] = []
        if selector == DEPLOY_SRC_SELECTOR:
            values = decode(
                [IMMUTABLES_ABI, ORDER_ABI, "bytes32", "bytes32", "uint256", "uint256", "bytes"], args
            )
            immutables = Immutables.from_abi_tuple(values[0]).with_deployed_at(self.timestamp)
            self.escrows[compute_escrow_address(ESCROW_FACTORY, immutables, SRC_IMPLEMENTATION)] = "src"
            if self.emit_src_event:
                emitted = immutables
                if self.tamper_src_amount:
                    emitted = replace(immutables, amount=immutables.amount + self.tamper_src_amount)
                logs.append(
                    LogEntry(
                        address=ESCROW_FACTORY,
                        topics=[SRC_ESCROW_CREATED_TOPIC],
                        data=encode([IMMUTABLES_ABI], [emitted.to_abi_tuple()]),
                    )
                )
        elif selector == DEPLOY_DST_SELECTOR:
            values = decode(["address[]", "bytes[]", IMMUTABLES_ABI, "uint256"], args)
            immutables = Immutables.from_abi_tuple(values[2]).with_deployed_at(self.timestamp)
            escrow = compute_escrow_address(ESCROW_FACTORY, immutables, DST_IMPLEMENTATION)
            self.escrows[escrow] = "dst"
            if self.emit_dst_event:
                logs.append(
                    LogEntry(
                        address=ESCROW_FACTORY,
                        topics=[DST_ESCROW_CREATED_TOPIC],
                        data=encode(["address"], [escrow]),
                    )
                )
        elif selector == WITHDRAW_SELECTOR:
            values = decode(["address", "bytes32", IMMUTABLES_ABI, "address[]", "bytes[]"], args)
            escrow, secret = to_checksum_address(values[0]), values[1]
            immutables = Immutables.from_abi_tuple(values[2])
            kind = self.escrows.get(escrow)
            implementation = SRC_IMPLEMENTATION if kind == "src" else DST_IMPLEMENTATION
            if kind is None or compute_escrow_address(ESCROW_FACTORY, immutables, implementation) != escrow:
                raise ChainSubmissionError(
                    f"Transaction {tx_hash} reverted: InvalidImmutables()",
                    chain_id=self.chain_id,
                    revert_reason="InvalidImmutables()",
                    retryable=False,
                    tx_hash=tx_hash,
                )
            if not immutables.hashlock.matches(secret):
                raise ChainSubmissionError(
                    f"Transaction {tx_hash} reverted: InvalidSecret()",
                    chain_id=self.chain_id,
                    revert_reason="InvalidSecret()",
                    retryable=False,
                    tx_hash=tx_hash,
                )

        self._logs[block_hash] = logs
        return TxReceipt(tx_hash=tx_hash, block_hash=block_hash, block_number=n, block_timestamp=self.timestamp)

    async def get_logs(self, block_hash: str, address: str, topic: bytes) -> list[LogEntry]:
        if self.fail_logs:
            self.fail_logs = False
            raise ChainSubmissionError("RPC timeout after 30s: get logs", chain_id=self.chain_id)
        return [
            log
            for log in self._logs.get(block_hash, [])
            if log.address.lower() == address.lower() and log.topics and log.topics[0] == topic
        ]

    async def call(self, to: str, data: bytes) -> bytes:
        self.calls.append(data)
        if data[:4] == ESCROW_SRC_IMPLEMENTATION_SELECTOR:
            return encode(["address"], [SRC_IMPLEMENTATION])
        if data[:4] == ESCROW_DST_IMPLEMENTATION_SELECTOR:
            return encode(["address"], [DST_IMPLEMENTATION])
        return b""


class FakeCosmosClient(CosmosWasmClient):
    """In-memory escrow factory contract on a Cosmos chain."""

    def __init__(self, prefix: str = "osmo"):
        self.prefix = prefix
        self.executed: list[tuple[str, dict]] = []
        self.queries: list[dict] = []
        self.htlcs: dict[str, dict] = {}
        self.fail_next = False
        self.fail_queries = False

    @property
    def address(self) -> str:
        return bech32_address(self.prefix, bytes([7]) * 20)

    async def execute(self, contract: str, msg: dict[str, Any], funds: Optional[str] = None) -> str:
        await asyncio.sleep(0)
        if self.fail_next:
            self.fail_next = False
            raise ChainSubmissionError("Cosmos node unavailable", chain_id="osmo-test-5")
        self.executed.append((contract, msg))
        if "CreateHTLC" in msg:
            body = msg["CreateHTLC"]
            self.htlcs[body["swap_hash"]] = dict(
                body, htlc_address=bech32_address(self.prefix, keccak(text=body["swap_hash"])), claimed=False
            )
        return keccak(text=f"cosmos-tx-{len(self.executed)}").hex().upper()

    async def query_contract_smart(self, contract: str, query: dict[str, Any]) -> Any:
        self.queries.append(query)
        if self.fail_queries:
            raise ChainSubmissionError("Cosmos query timed out after 30s", chain_id="osmo-test-5")
        if "GetHTLC" in query:
            return self.htlcs.get(query["GetHTLC"]["swap_hash"])
        if "GetHTLCsByMaker" in query:
            maker = query["GetHTLCsByMaker"]["maker"]
            return {"htlcs": [h for h in self.htlcs.values() if h["maker"] == maker]}
        if "GetConfig" in query:
            return {"admin": self.address, "htlc_code_id": 7}
        raise ValueError(f"Unknown query: {query}")


# ======================
# Fixtures
# ======================


@pytest.fixture
def resolver_config() -> ResolverConfig:
    return ResolverConfig(
        chain_id=ARBITRUM,
        resolver=RESOLVER,
        escrow_factory=ESCROW_FACTORY,
        limit_order=LIMIT_ORDER,
    )


@pytest.fixture
def evm_chain() -> FakeEvmChain:
    return FakeEvmChain()


@pytest.fixture
def cosmos_client() -> FakeCosmosClient:
    return FakeCosmosClient()


@pytest.fixture
def cosmos_factory() -> str:
    return bech32_address("osmo", bytes([9]) * 32)


@pytest.fixture
def evm_resolver(evm_chain, resolver_config) -> EvmResolver:
    return EvmResolver(evm_chain, resolver_config)


@pytest.fixture
def cosmos_resolver(cosmos_client, cosmos_factory) -> CosmosResolver:
    return CosmosResolver(cosmos_client, cosmos_factory, chain_id="osmo-test-5")


@pytest.fixture
def coordinator(evm_resolver, cosmos_resolver) -> SwapCoordinator:
    return SwapCoordinator(
        store=OrderStore(),
        evm_resolvers={ARBITRUM: evm_resolver},
        cosmos_resolver=cosmos_resolver,
        cosmos_chain_id=COSMOS,
        dst_asset=USDC,
        lock_timeout=5.0,
        clock=lambda: NOW,
    )


@pytest.fixture
def maker():
    return Account.from_key(MAKER_KEY)


@pytest.fixture
def osmo_receiver() -> str:
    return bech32_address("osmo", bytes(range(20)))


@pytest.fixture
def secret() -> bytes:
    return SECRET


@pytest.fixture
def hashlock() -> str:
    return Hashlock.for_secret(SECRET).to_hex()


@pytest.fixture
def evm_intent(maker, osmo_receiver, hashlock) -> UserIntent:
    """1 WETH on Arbitrum for 1 OSMO."""
    return UserIntent(
        src_chain_id=ARBITRUM,
        dst_chain_id=COSMOS,
        user_address=maker.address,
        receiver=osmo_receiver,
        token_amount="1",
        src_chain_asset=WETH,
        dst_chain_asset="uosmo",
        hashlock=hashlock,
    )


@pytest.fixture
def cosmos_intent(maker, osmo_receiver, hashlock) -> UserIntent:
    """1.5 OSMO for 1.5 USDC on Arbitrum."""
    return UserIntent(
        src_chain_id=COSMOS,
        dst_chain_id=ARBITRUM,
        user_address=osmo_receiver,
        receiver=maker.address,
        token_amount="1.5",
        src_chain_asset="uosmo",
        dst_chain_asset=USDC,
        hashlock=hashlock,
    )


def sign_order(order, private_key: str = MAKER_KEY) -> str:
    """Sign a built EVM order the way a wallet does."""
    message = typed_data.signable_message(order.order.src_chain_id, LIMIT_ORDER, order.order.build())
    signed = Account.sign_message(message, private_key)
    return "0x" + bytes(signed.signature).hex()


@pytest.fixture
def sign():
    return sign_order


@pytest_asyncio.fixture
async def built_evm_order(coordinator, evm_intent):
    return await coordinator.build_evm_to_cosmos(evm_intent)


def wallet_typed_data(payload: dict) -> dict:
    """Typed data with uint256 strings turned back into ints for eth-account."""
    uint_fields = {f["name"] for f in payload["types"]["Order"] if f["type"] == "uint256"}
    message = {k: int(v) if k in uint_fields else v for k, v in payload["message"].items()}
    return dict(payload, message=message)


@pytest.fixture
def to_wallet_typed_data():
    return wallet_typed_data


@pytest.fixture
def escrow_for():
    """Address the factory deploys for ``immutables`` (src or dst implementation)."""

    def _escrow_for(immutables: Immutables, leg: str = "src") -> str:
        implementation = SRC_IMPLEMENTATION if leg == "src" else DST_IMPLEMENTATION
        return compute_escrow_address(ESCROW_FACTORY, immutables, implementation)

    return _escrow_for


@pytest.fixture
def addresses():
    """Contract addresses of the fake deployment."""
    return {
        "resolver": RESOLVER,
        "escrow_factory": ESCROW_FACTORY,
        "limit_order": LIMIT_ORDER,
        "src_implementation": SRC_IMPLEMENTATION,
        "dst_implementation": DST_IMPLEMENTATION,
        "weth": WETH,
        "usdc": USDC,
        "zero": int_to_address(0),
    }
