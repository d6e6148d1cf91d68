"""Escrow immutables and deterministic address derivation."""

from fusionrelay.escrow.address import (
    EscrowAddressResolver,
    compute_escrow_address,
    create2_address,
    proxy_bytecode_hash,
)
from fusionrelay.escrow.immutables import IMMUTABLES_ABI, Immutables

__all__ = [
    "EscrowAddressResolver",
    "Immutables",
    "IMMUTABLES_ABI",
    "compute_escrow_address",
    "create2_address",
    "proxy_bytecode_hash",
]
