"""Per-chain resolvers driving escrow deployment on each leg."""

from fusionrelay.resolvers.base import (
    CosmosWasmClient,
    DeployResult,
    EvmTransactionSubmitter,
    LogEntry,
    TxReceipt,
)
from fusionrelay.resolvers.cosmos import CosmosResolver, HtlcParams
from fusionrelay.resolvers.evm import EvmResolver

__all__ = [
    "CosmosResolver",
    "CosmosWasmClient",
    "DeployResult",
    "EvmResolver",
    "EvmTransactionSubmitter",
    "HtlcParams",
    "LogEntry",
    "TxReceipt",
]
