"""Error taxonomy for order construction and cross-chain execution.

Every error carries a machine-readable ``code`` and a ``details`` dict so the
API layer can surface a stable shape while the cause stays in the logs.
"""

from typing import Any, Optional


class SwapError(Exception):
    """Base class for all relayer errors."""

    code = "SWAP_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}

    def attach_tx_hash(self, tx_hash: str) -> "SwapError":
        """Record the broadcast transaction this error followed, unless one is set."""
        if not self.details.get("txHash"):
            self.details["txHash"] = tx_hash
        return self


class ValidationError(SwapError):
    """Malformed intent field, signature or secret. Never retried."""

    code = "VALIDATION_ERROR"


class OrderNotFoundError(SwapError):
    """Lookup or update against an unknown order hash."""

    code = "ORDER_NOT_FOUND"

    def __init__(self, order_hash: str):
        super().__init__("Order not found", details={"orderHash": order_hash})
        self.order_hash = order_hash


class BuildFailedError(ValidationError):
    """An intent could not be turned into an order."""

    code = "RELAYER_BUILD_FAILED"


class UnsupportedChainError(BuildFailedError):
    """No resolver is configured for the requested chain id."""

    code = "UNSUPPORTED_CHAIN"

    def __init__(self, chain_id: int):
        super().__init__(f"No resolver for chain {chain_id}", details={"chainId": chain_id})
        self.chain_id = chain_id


class ChainSubmissionError(SwapError):
    """RPC failure, transaction revert or missing receipt/block.

    ``retryable`` is True for transport failures and timeouts, False for
    reverts: a revert will revert again with the same inputs.
    """

    code = "CHAIN_ERROR"

    def __init__(
        self,
        message: str,
        chain_id: Optional[Any] = None,
        revert_reason: Optional[str] = None,
        retryable: bool = True,
        tx_hash: Optional[str] = None,
    ):
        super().__init__(
            message,
            details={
                "chainId": chain_id,
                "revertReason": revert_reason,
                "retryable": retryable,
                "txHash": tx_hash,
            },
        )
        self.chain_id = chain_id
        self.revert_reason = revert_reason
        self.retryable = retryable
        self.tx_hash = tx_hash

    def attach_tx_hash(self, tx_hash: str) -> "ChainSubmissionError":
        super().attach_tx_hash(tx_hash)
        self.tx_hash = self.details["txHash"]
        return self


class ProtocolInvariantViolation(SwapError):
    """On-chain state disagrees with what a confirmed transaction must have produced."""

    code = "PROTOCOL_INVARIANT_VIOLATION"


class ExecutionInProgressError(SwapError):
    """Another execution holds the order's lock."""

    code = "EXECUTION_IN_PROGRESS"

    def __init__(self, order_hash: str):
        super().__init__("Order execution already in progress", details={"orderHash": order_hash})
        self.order_hash = order_hash


class ExecutionFailedError(SwapError):
    """Coarse failure surfaced to callers once a leg has failed.

    The underlying cause is kept on ``__cause__`` and in the logs, not in
    the message.
    """

    code = "RELAYER_EXECUTE_FAILED"

    def __init__(self, order_hash: str, message: str = "Failed to execute swap order"):
        super().__init__(message, details={"orderHash": order_hash})
        self.order_hash = order_hash
