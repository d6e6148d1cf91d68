"""Cosmos address helpers."""

from bip_utils import Bech32Decoder, Bech32Encoder
from bip_utils.bech32 import Bech32ChecksumError


def is_bech32_address(address: str, prefix: str) -> bool:
    """Check for a valid bech32 account address with the given prefix."""
    if not isinstance(address, str) or not address.startswith(prefix + "1"):
        return False
    try:
        data = Bech32Decoder.Decode(prefix, address)
    except (Bech32ChecksumError, ValueError):
        return False
    # 20-byte account keys, 32-byte contract addresses
    return len(data) in (20, 32)


def bech32_address(prefix: str, data: bytes) -> str:
    """Encode raw account bytes with a chain prefix."""
    return Bech32Encoder.Encode(prefix, data)
