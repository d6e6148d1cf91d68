"""web3-backed transaction submitter."""

import asyncio
import logging
from typing import Any, Awaitable, Optional, TypeVar

from eth_account import Account
from eth_utils import to_checksum_address
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import BlockNotFound, ContractLogicError, TimeExhausted

from fusionrelay.errors import ChainSubmissionError
from fusionrelay.resolvers.base import EvmTransactionSubmitter, LogEntry, TxReceipt

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Web3Submitter(EvmTransactionSubmitter):
    """Signs locally with the resolver key and submits over JSON-RPC.

    Every RPC round trip is bounded by ``rpc_timeout``; waiting for the
    receipt is bounded by ``confirmation_timeout``. Both surface as
    retryable ``ChainSubmissionError``.
    """

    def __init__(
        self,
        rpc_url: str,
        private_key: str,
        chain_id: int,
        rpc_timeout: float = 30.0,
        confirmation_timeout: float = 180.0,
    ):
        self.chain_id = chain_id
        self.rpc_timeout = rpc_timeout
        self.confirmation_timeout = confirmation_timeout
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._account = Account.from_key(private_key)
        # Nonces are assigned in submission order
        self._send_lock = asyncio.Lock()

    @property
    def address(self) -> str:
        return self._account.address

    async def _rpc(self, awaitable: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.rpc_timeout)
        except asyncio.TimeoutError as e:
            raise ChainSubmissionError(
                f"RPC timeout after {self.rpc_timeout}s: {what}", chain_id=self.chain_id
            ) from e

    async def submit(self, to: str, data: bytes, value: int = 0, gas: Optional[int] = None) -> TxReceipt:
        tx: dict[str, Any] = {
            "from": self.address,
            "to": to_checksum_address(to),
            "data": data,
            "value": value,
            "chainId": self.chain_id,
        }

        try:
            async with self._send_lock:
                tx["nonce"] = await self._rpc(
                    self.w3.eth.get_transaction_count(self.address, "pending"), "nonce"
                )
                tx["gasPrice"] = await self._rpc(self.w3.eth.gas_price, "gas price")
                tx["gas"] = gas or await self._rpc(self.w3.eth.estimate_gas(tx), "estimate gas")
                signed = self._account.sign_transaction(tx)
                tx_hash = await self._rpc(self.w3.eth.send_raw_transaction(signed.raw_transaction), "send")
        except ContractLogicError as e:
            raise ChainSubmissionError(
                f"Transaction to {to} would revert", chain_id=self.chain_id,
                revert_reason=e.message, retryable=False,
            ) from e
        except ChainSubmissionError:
            raise
        except Exception as e:
            raise ChainSubmissionError(f"RPC failure submitting to {to}: {e}", chain_id=self.chain_id) from e

        tx_hex = "0x" + bytes(tx_hash).hex()
        logger.info(f"Submitted tx {tx_hex} on chain {self.chain_id} to {to}")

        try:
            return await self._confirm(tx, tx_hash, tx_hex)
        except ChainSubmissionError as e:
            raise e.attach_tx_hash(tx_hex)
        except Exception as e:
            raise ChainSubmissionError(
                f"RPC failure confirming {tx_hex}: {e}", chain_id=self.chain_id, tx_hash=tx_hex
            ) from e

    async def _confirm(self, tx: dict, tx_hash: Any, tx_hex: str) -> TxReceipt:
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.confirmation_timeout
            )
        except TimeExhausted as e:
            raise ChainSubmissionError(
                f"No receipt within {self.confirmation_timeout}s", chain_id=self.chain_id, tx_hash=tx_hex
            ) from e

        if receipt is None or not receipt.get("blockHash"):
            raise ChainSubmissionError(
                "Confirmed transaction has no receipt or block hash",
                chain_id=self.chain_id, retryable=False, tx_hash=tx_hex,
            )

        if receipt["status"] == 0:
            reason = await self._revert_reason(tx, receipt["blockNumber"])
            raise ChainSubmissionError(
                "Transaction reverted", chain_id=self.chain_id,
                revert_reason=reason, retryable=False, tx_hash=tx_hex,
            )

        try:
            block = await self._rpc(self.w3.eth.get_block(receipt["blockHash"]), "get block")
        except BlockNotFound as e:
            raise ChainSubmissionError(
                "Block of confirmed transaction not found",
                chain_id=self.chain_id, retryable=False, tx_hash=tx_hex,
            ) from e

        block_hash = "0x" + bytes(receipt["blockHash"]).hex()
        logger.info(f"Tx {tx_hex} mined in block {receipt['blockNumber']} on chain {self.chain_id}")
        return TxReceipt(
            tx_hash=tx_hex,
            block_hash=block_hash,
            block_number=int(receipt["blockNumber"]),
            block_timestamp=int(block["timestamp"]),
        )

    async def _revert_reason(self, tx: dict, block_number: int) -> Optional[str]:
        """Replay a reverted transaction to read its revert reason."""
        replay = {k: v for k, v in tx.items() if k in ("from", "to", "data", "value")}
        try:
            await self._rpc(self.w3.eth.call(replay, block_number), "replay")
        except ContractLogicError as e:
            return e.message
        except Exception as e:
            logger.warning(f"Could not replay reverted tx on chain {self.chain_id}: {e}")
        return None

    async def get_logs(self, block_hash: str, address: str, topic: bytes) -> list[LogEntry]:
        logs = await self._rpc(
            self.w3.eth.get_logs(
                {
                    "blockHash": block_hash,
                    "address": to_checksum_address(address),
                    "topics": ["0x" + topic.hex()],
                }
            ),
            "get logs",
        )
        return [
            LogEntry(
                address=log["address"],
                topics=[bytes(t) for t in log["topics"]],
                data=bytes(log["data"]),
            )
            for log in logs
        ]

    async def call(self, to: str, data: bytes) -> bytes:
        result = await self._rpc(self.w3.eth.call({"to": to_checksum_address(to), "data": data}), "call")
        return bytes(result)
