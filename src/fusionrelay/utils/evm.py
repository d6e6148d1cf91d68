"""EVM word and unit helpers."""

from decimal import Decimal, InvalidOperation
from typing import Union

from eth_utils import is_address, to_bytes, to_checksum_address

_UINT160 = (1 << 160) - 1


def is_evm_address(value: str) -> bool:
    """Check for a 0x-prefixed 20-byte hex address (checksum not enforced)."""
    return isinstance(value, str) and value.startswith("0x") and is_address(value)


def address_to_int(address: str) -> int:
    return int(address, 16)


def int_to_address(value: int) -> str:
    """Convert a uint256 word holding an address back to checksum form."""
    if value < 0 or value > _UINT160:
        raise ValueError(f"Value does not fit in an address: {value}")
    return to_checksum_address(value.to_bytes(20, "big"))


def address_bytes(address: str) -> bytes:
    return bytes.fromhex(address[2:].rjust(40, "0"))


def parse_units(amount: Union[str, Decimal, int], decimals: int) -> int:
    """Convert a decimal amount string into integer base units.

    Rejects non-positive amounts and amounts with more fractional digits
    than the token supports.
    """
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValueError(f"Invalid amount: {amount!r}")
    if not value.is_finite() or value <= 0:
        raise ValueError(f"Amount must be positive: {amount!r}")
    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {amount} has more than {decimals} decimals")
    return int(scaled)


def split_signature(signature: Union[str, bytes]) -> tuple[bytes, bytes]:
    """Split a 65-byte signature into its compact ``(r, vs)`` form (EIP-2098).

    ``vs`` is ``s`` with the y-parity in its top bit.
    """
    raw = to_bytes(hexstr=signature) if isinstance(signature, str) else bytes(signature)
    if len(raw) == 64:
        return raw[:32], raw[32:]
    if len(raw) != 65:
        raise ValueError(f"Signature must be 64 or 65 bytes, got {len(raw)}")
    r, s, v = raw[:32], raw[32:64], raw[64]
    if v in (27, 28):
        v -= 27
    if v not in (0, 1):
        raise ValueError(f"Invalid signature recovery id: {raw[64]}")
    vs = int.from_bytes(s, "big") | (v << 255)
    return r, vs.to_bytes(32, "big")
