"""Hashlock encoding for both legs.

A hashlock is a 32-byte digest of a secret only the user knows. The EVM leg
carries it as a ``bytes32`` word, the Cosmos escrow factory expects the raw
bytes (``Vec<u8>``, serialized as a JSON array of integers).
"""

import re
from dataclasses import dataclass
from typing import Union

from eth_utils import keccak

_HEX32 = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


@dataclass(frozen=True)
class Hashlock:
    """A 32-byte secret hash."""

    digest: bytes

    def __post_init__(self):
        if not isinstance(self.digest, (bytes, bytearray)) or len(self.digest) != 32:
            raise ValueError("Hashlock must be exactly 32 bytes")
        object.__setattr__(self, "digest", bytes(self.digest))

    @classmethod
    def from_hex(cls, value: str) -> "Hashlock":
        """Parse a 0x-prefixed (or bare) 64-char hex digest."""
        if not isinstance(value, str) or not _HEX32.match(value):
            raise ValueError(f"Invalid hashlock: {value!r}")
        return cls(bytes.fromhex(value[2:] if value.startswith("0x") else value))

    @classmethod
    def from_bytes(cls, value: Union[bytes, bytearray, list[int]]) -> "Hashlock":
        """Decode from raw bytes or the Cosmos integer-array form."""
        return cls(bytes(value))

    @classmethod
    def for_secret(cls, secret: Union[bytes, str]) -> "Hashlock":
        """Hashlock of a single-fill secret (keccak256, as the EVM escrow checks it)."""
        return cls(keccak(_secret_bytes(secret)))

    def matches(self, secret: Union[bytes, str]) -> bool:
        return keccak(_secret_bytes(secret)) == self.digest

    def to_hex(self) -> str:
        return "0x" + self.digest.hex()

    def to_int(self) -> int:
        return int.from_bytes(self.digest, "big")

    def to_cosmos_binary(self) -> list[int]:
        """Raw bytes as the wasm contract schema expects them."""
        return list(self.digest)

    def __str__(self) -> str:
        return self.to_hex()


def _secret_bytes(secret: Union[bytes, str]) -> bytes:
    if isinstance(secret, (bytes, bytearray)):
        return bytes(secret)
    if not _HEX32.match(secret):
        raise ValueError("Secret must be a 32-byte hex string")
    return bytes.fromhex(secret[2:] if secret.startswith("0x") else secret)


def normalize_secret(secret: Union[bytes, str]) -> bytes:
    """Decode a 32-byte secret given as hex or raw bytes."""
    raw = _secret_bytes(secret)
    if len(raw) != 32:
        raise ValueError("Secret must be 32 bytes")
    return raw
