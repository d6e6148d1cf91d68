"""Request and response contracts for the swap API.

Field names follow the camelCase JSON clients send; Python attributes stay
snake_case.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fusionrelay.store import UserIntent


class UserIntentRequest(BaseModel):
    """Swap intent as submitted by a client."""

    model_config = ConfigDict(populate_by_name=True)

    src_chain_id: int = Field(..., alias="srcChainId", description="Source chain id")
    dst_chain_id: int = Field(..., alias="dstChainId", description="Destination chain id")
    user_address: str = Field(..., alias="userAddress", min_length=1, description="Maker address on the source chain")
    receiver: str = Field(..., min_length=1, description="Receiver address on the destination chain")
    token_amount: str = Field(..., alias="tokenAmount", description="Amount as a decimal string")
    src_chain_asset: str = Field(..., alias="srcChainAsset", min_length=1, description="Source asset")
    dst_chain_asset: str = Field(..., alias="dstChainAsset", min_length=1, description="Destination asset")
    hash_lock: str = Field(..., alias="hashLock", description="keccak256 of the user's secret, 0x-prefixed")

    @field_validator("token_amount", mode="before")
    @classmethod
    def amount_as_string(cls, v: Any) -> str:
        """Accept numbers but keep the decimal string form."""
        if isinstance(v, bool) or not isinstance(v, (str, int, float)):
            raise ValueError("tokenAmount must be a decimal string")
        return str(v)

    def to_intent(self) -> UserIntent:
        return UserIntent(
            src_chain_id=self.src_chain_id,
            dst_chain_id=self.dst_chain_id,
            user_address=self.user_address,
            receiver=self.receiver,
            token_amount=self.token_amount,
            src_chain_asset=self.src_chain_asset,
            dst_chain_asset=self.dst_chain_asset,
            hashlock=self.hash_lock,
        )


class ExecuteSwapRequest(BaseModel):
    """Maker signature for a built EVM-sourced order."""

    model_config = ConfigDict(populate_by_name=True)

    order_hash: str = Field(..., alias="orderHash", min_length=66, max_length=66)
    signature: str = Field(..., min_length=130, max_length=132, description="65-byte signature, hex")


class ConfirmSwapRequest(BaseModel):
    """Confirmation that the user's Cosmos lock is in place."""

    model_config = ConfigDict(populate_by_name=True)

    order_hash: str = Field(..., alias="orderHash", min_length=66, max_length=66)
    src_cancellation_timestamp: Optional[int] = Field(
        None, alias="srcCancellationTimestamp", gt=0, description="Unix seconds; defaults to now + delay"
    )


class RevealSecretRequest(BaseModel):
    """Secret whose keccak256 is the order's hashlock."""

    model_config = ConfigDict(populate_by_name=True)

    order_hash: str = Field(..., alias="orderHash", min_length=66, max_length=66)
    secret: str = Field(..., min_length=64, max_length=66)


class ApiResponse(BaseModel):
    """Envelope of every swap API response."""

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    code: Optional[str] = None
