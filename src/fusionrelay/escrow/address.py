"""Deterministic escrow address derivation.

Escrows are EIP-1167 minimal proxies cloned by the factory with
``CREATE2``, using the immutables hash as salt:

    initCode = 3d602d80600a3d3981f3363d3d373d3d3d363d73 || impl(20) || 5af43d82803e903d91602b57fd5bf3
    address  = keccak256(0xff || factory(20) || immutablesHash(32) || keccak256(initCode))[12:]

An address read from an event log is only accepted once it matches the
address recomputed here from the immutables this relayer expects.
"""

import logging
from typing import Optional

from eth_utils import keccak, to_checksum_address

from fusionrelay.errors import ProtocolInvariantViolation
from fusionrelay.escrow.immutables import Immutables
from fusionrelay.utils.evm import address_bytes

logger = logging.getLogger(__name__)

PROXY_PREFIX = bytes.fromhex("3d602d80600a3d3981f3363d3d373d3d3d363d73")
PROXY_SUFFIX = bytes.fromhex("5af43d82803e903d91602b57fd5bf3")


def proxy_bytecode_hash(implementation: str) -> bytes:
    """keccak256 of the minimal-proxy init code pointing at ``implementation``."""
    return keccak(PROXY_PREFIX + address_bytes(implementation) + PROXY_SUFFIX)


def create2_address(deployer: str, salt: bytes, init_code_hash: bytes) -> str:
    if len(salt) != 32 or len(init_code_hash) != 32:
        raise ValueError("CREATE2 salt and init code hash must be 32 bytes")
    digest = keccak(b"\xff" + address_bytes(deployer) + salt + init_code_hash)
    return to_checksum_address(digest[12:])


def compute_escrow_address(factory: str, immutables: Immutables, implementation: str) -> str:
    """Address of the escrow the factory deploys for ``immutables``."""
    return create2_address(factory, immutables.hash(), proxy_bytecode_hash(implementation))


class EscrowAddressResolver:
    """Recovers escrow addresses for one factory and cross-checks them."""

    def __init__(self, escrow_factory: str):
        self.escrow_factory = to_checksum_address(escrow_factory)

    def address_for(self, immutables: Immutables, implementation: str) -> str:
        return compute_escrow_address(self.escrow_factory, immutables, implementation)

    def resolve_source(
        self,
        emitted: Immutables,
        expected: Immutables,
        implementation: str,
    ) -> str:
        """Address of a source escrow recovered from a ``SrcEscrowCreated`` event.

        ``expected`` are the immutables this relayer submitted, with
        ``deployedAt`` set to the block timestamp. The address derived from
        the emitted immutables must equal the one derived from ``expected``.
        """
        emitted_address = self.address_for(emitted, implementation)
        expected_address = self.address_for(expected, implementation)
        return self.reconcile(emitted_address, expected_address, expected.order_hash, "source")

    def resolve_destination(
        self,
        reported: str,
        expected: Immutables,
        implementation: str,
    ) -> str:
        """Check the address a ``DstEscrowCreated`` event reports."""
        expected_address = self.address_for(expected, implementation)
        return self.reconcile(reported, expected_address, expected.order_hash, "destination")

    @staticmethod
    def reconcile(
        reported: Optional[str],
        computed: str,
        order_hash: str,
        leg: str,
    ) -> str:
        """Return ``computed`` if ``reported`` agrees with it, else raise."""
        if reported is None or reported.lower() != computed.lower():
            logger.error(
                f"Escrow address mismatch for order {order_hash} ({leg}): "
                f"reported={reported} computed={computed}"
            )
            raise ProtocolInvariantViolation(
                f"{leg.capitalize()} escrow address does not match its immutables",
                details={"orderHash": order_hash, "reported": reported, "computed": computed},
            )
        return to_checksum_address(computed)
