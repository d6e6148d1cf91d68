"""Swap order data model.

A ``SwapOrder`` is an immutable snapshot: the store replaces the record on
every update, so a snapshot handed out earlier never changes under its
holder.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SwapDirection(str, Enum):
    """Which chain holds the source leg."""

    EVM_TO_COSMOS = "evm_to_cosmos"
    COSMOS_TO_EVM = "cosmos_to_evm"


class OrderStatus(str, Enum):
    """Lifecycle state of a swap order."""

    BUILT = "built"
    SIGNED = "signed"
    SRC_DEPLOYED = "src_deployed"
    DST_DEPLOYED = "dst_deployed"
    WITHDRAWN = "withdrawn"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.WITHDRAWN, OrderStatus.FAILED)

    def can_transition_to(self, target: "OrderStatus") -> bool:
        return target in _TRANSITIONS[self]


# BUILT -> SRC_DEPLOYED is the Cosmos->EVM confirmation: the source leg is
# signed and locked by the user's own wallet outside this relayer.
_TRANSITIONS: dict[OrderStatus, frozenset] = {
    OrderStatus.BUILT: frozenset({OrderStatus.SIGNED, OrderStatus.SRC_DEPLOYED, OrderStatus.FAILED}),
    OrderStatus.SIGNED: frozenset({OrderStatus.SRC_DEPLOYED, OrderStatus.FAILED}),
    OrderStatus.SRC_DEPLOYED: frozenset(
        {OrderStatus.DST_DEPLOYED, OrderStatus.WITHDRAWN, OrderStatus.FAILED}
    ),
    OrderStatus.DST_DEPLOYED: frozenset({OrderStatus.WITHDRAWN, OrderStatus.FAILED}),
    OrderStatus.WITHDRAWN: frozenset(),
    OrderStatus.FAILED: frozenset(),
}


@dataclass(frozen=True)
class UserIntent:
    """What the user asked for. Never mutated after the order is built."""

    src_chain_id: int
    dst_chain_id: int
    user_address: str
    receiver: str
    token_amount: str
    src_chain_asset: str
    dst_chain_asset: str
    hashlock: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserIntent":
        """Build from the camelCase JSON shape clients send."""
        return cls(
            src_chain_id=int(data["srcChainId"]),
            dst_chain_id=int(data["dstChainId"]),
            user_address=data["userAddress"],
            receiver=data["receiver"],
            token_amount=str(data["tokenAmount"]),
            src_chain_asset=data["srcChainAsset"],
            dst_chain_asset=data["dstChainAsset"],
            hashlock=data["hashLock"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "srcChainId": self.src_chain_id,
            "dstChainId": self.dst_chain_id,
            "userAddress": self.user_address,
            "receiver": self.receiver,
            "tokenAmount": self.token_amount,
            "srcChainAsset": self.src_chain_asset,
            "dstChainAsset": self.dst_chain_asset,
            "hashLock": self.hashlock,
        }


@dataclass(frozen=True)
class SwapOrder:
    """Lifecycle record of one swap, keyed by its order hash."""

    order_hash: str
    user_intent: UserIntent
    direction: SwapDirection
    status: OrderStatus = OrderStatus.BUILT
    signature: Optional[str] = None
    secret: Optional[str] = None
    escrow_src_tx_hash: Optional[str] = None
    escrow_dst_tx_hash: Optional[str] = None
    escrow_src_withdraw_tx_hash: Optional[str] = None
    escrow_dst_withdraw_tx_hash: Optional[str] = None
    evm_escrow_address: Optional[str] = None
    cosmos_escrow_address: Optional[str] = None
    deployed_at: Optional[int] = None
    failure_reason: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    executed_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses. The secret is never included."""
        return {
            "orderHash": self.order_hash,
            "userIntent": self.user_intent.to_dict(),
            "direction": self.direction.value,
            "status": self.status.value,
            "signature": self.signature,
            "escrowSrcTxHash": self.escrow_src_tx_hash,
            "escrowDstTxHash": self.escrow_dst_tx_hash,
            "escrowSrcWithdrawTxHash": self.escrow_src_withdraw_tx_hash,
            "escrowDstWithdrawTxHash": self.escrow_dst_withdraw_tx_hash,
            "evmEscrowAddress": self.evm_escrow_address,
            "cosmosEscrowAddress": self.cosmos_escrow_address,
            "deployedAt": self.deployed_at,
            "failureReason": self.failure_reason,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "executedAt": self.executed_at.isoformat() if self.executed_at else None,
        }


@dataclass(frozen=True)
class EvmSwapOrder(SwapOrder):
    """Swap order whose source leg is a limit order on an EVM chain.

    ``typed_data`` is the payload the maker signs; ``order`` is the order
    object needed to rebuild the fill and the escrow immutables.
    """

    typed_data: dict[str, Any] = field(default_factory=dict)
    order: Any = None

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["typedData"] = self.typed_data
        return data
