"""Immutables bound into an escrow at deployment."""

from dataclasses import dataclass, replace

from eth_abi import encode
from eth_utils import keccak, to_checksum_address

from fusionrelay.htlc import Hashlock, TimeLocks
from fusionrelay.utils.evm import address_to_int, int_to_address

IMMUTABLES_ABI = "(bytes32,bytes32,uint256,uint256,uint256,uint256,uint256,uint256)"
IMMUTABLES_WORDS = ["bytes32", "bytes32", "uint256", "uint256", "uint256", "uint256", "uint256", "uint256"]


@dataclass(frozen=True)
class Immutables:
    """Frozen parameter set of one escrow.

    Source and destination escrows of a swap share ``order_hash`` and
    ``hashlock``; parties, asset and amounts are independent per leg.
    """

    order_hash: str
    hashlock: Hashlock
    maker: str
    taker: str
    token: str
    amount: int
    safety_deposit: int
    timelocks: TimeLocks

    def __post_init__(self):
        for name in ("maker", "taker", "token"):
            object.__setattr__(self, name, to_checksum_address(getattr(self, name)))

    def to_abi_tuple(self) -> tuple:
        """Tuple in the ``(bytes32,bytes32,uint256 x6)`` ABI layout."""
        return (
            bytes.fromhex(self.order_hash[2:]),
            self.hashlock.digest,
            address_to_int(self.maker),
            address_to_int(self.taker),
            address_to_int(self.token),
            self.amount,
            self.safety_deposit,
            self.timelocks.encode(),
        )

    @classmethod
    def from_abi_tuple(cls, values) -> "Immutables":
        order_hash, hashlock, maker, taker, token, amount, safety_deposit, timelocks = values
        return cls(
            order_hash="0x" + bytes(order_hash).hex(),
            hashlock=Hashlock.from_bytes(hashlock),
            maker=int_to_address(maker),
            taker=int_to_address(taker),
            token=int_to_address(token),
            amount=int(amount),
            safety_deposit=int(safety_deposit),
            timelocks=TimeLocks.decode(int(timelocks)),
        )

    def hash(self) -> bytes:
        """keccak256 over the eight ABI words; the CREATE2 salt of the escrow."""
        return keccak(encode(IMMUTABLES_WORDS, list(self.to_abi_tuple())))

    def with_deployed_at(self, timestamp: int) -> "Immutables":
        return replace(self, timelocks=self.timelocks.with_deployed_at(timestamp))

    def to_dict(self) -> dict:
        return {
            "orderHash": self.order_hash,
            "hashlock": self.hashlock.to_hex(),
            "maker": self.maker,
            "taker": self.taker,
            "token": self.token,
            "amount": str(self.amount),
            "safetyDeposit": str(self.safety_deposit),
            "timelocks": str(self.timelocks.encode()),
        }
