"""Chain client interfaces the resolvers are written against.

Concrete clients wrap web3 (EVM) and cosmpy (Cosmos); tests substitute
in-memory fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class TxReceipt:
    """A mined transaction together with its block's timestamp."""

    tx_hash: str
    block_hash: str
    block_number: int
    block_timestamp: int


@dataclass(frozen=True)
class LogEntry:
    address: str
    topics: list[bytes] = field(default_factory=list)
    data: bytes = b""


@dataclass(frozen=True)
class DeployResult:
    """Outcome of an escrow deployment."""

    tx_hash: str
    escrow_address: str
    deployed_at: int


class EvmTransactionSubmitter(ABC):
    """Signs, submits and reads on one EVM chain."""

    chain_id: int

    @property
    @abstractmethod
    def address(self) -> str:
        """Address transactions are sent from."""

    @abstractmethod
    async def submit(self, to: str, data: bytes, value: int = 0, gas: Optional[int] = None) -> TxReceipt:
        """Submit a transaction and wait for one confirmation.

        Raises:
            ChainSubmissionError: On RPC failure, timeout, revert or a
                receipt/block that cannot be fetched
        """

    @abstractmethod
    async def get_logs(self, block_hash: str, address: str, topic: bytes) -> list[LogEntry]:
        """Logs of one block emitted by ``address`` with first topic ``topic``."""

    @abstractmethod
    async def call(self, to: str, data: bytes) -> bytes:
        """Read-only call against the latest block."""


class CosmosWasmClient(ABC):
    """Signing CosmWasm client for one Cosmos chain."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Bech32 address of the signing account."""

    @abstractmethod
    async def execute(self, contract: str, msg: dict[str, Any], funds: Optional[str] = None) -> str:
        """Execute a contract message; returns the transaction hash."""

    @abstractmethod
    async def query_contract_smart(self, contract: str, query: dict[str, Any]) -> Any:
        """Smart query; returns the decoded JSON response."""
