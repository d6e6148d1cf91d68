"""Cosmos leg: HTLC escrow factory messages.

Factory contract surface:

    execute CreateHTLC{swap_hash, maker, amount, denom, hashlock, timelock}
    query   GetHTLC{swap_hash}
    query   GetHTLCsByMaker{maker}
    query   GetConfig{}

``hashlock`` is ``Vec<u8>`` on the contract side and travels as a JSON array
of byte values; ``amount`` is a ``Uint128`` string; ``timelock`` is an
absolute unix time in seconds.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from fusionrelay.errors import ChainSubmissionError
from fusionrelay.htlc import Hashlock
from fusionrelay.resolvers.base import CosmosWasmClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HtlcParams:
    """Arguments of a ``CreateHTLC`` message."""

    swap_hash: str
    maker: str
    amount: int
    denom: str
    hashlock: Hashlock
    timelock: int

    def to_msg(self) -> dict[str, Any]:
        return {
            "CreateHTLC": {
                "swap_hash": self.swap_hash,
                "maker": self.maker,
                "amount": str(self.amount),
                "denom": self.denom,
                "hashlock": self.hashlock.to_cosmos_binary(),
                "timelock": self.timelock,
            }
        }


class CosmosResolver:
    """Creates and queries HTLCs through the escrow factory contract."""

    def __init__(self, client: CosmosWasmClient, escrow_factory: Optional[str], chain_id: Any = None):
        self.client = client
        self.escrow_factory = escrow_factory
        self.chain_id = chain_id

    @property
    def address(self) -> str:
        return self.client.address

    def _factory(self) -> str:
        if not self.escrow_factory:
            raise ChainSubmissionError(
                "Cosmos escrow factory address is not configured", chain_id=self.chain_id, retryable=False
            )
        return self.escrow_factory

    async def create_htlc(self, params: HtlcParams) -> str:
        """Lock funds in a new HTLC. Returns the transaction hash."""
        factory = self._factory()
        logger.info(
            f"Creating HTLC for {params.swap_hash} on {self.chain_id}: "
            f"{params.amount}{params.denom} maker={params.maker} timelock={params.timelock}"
        )
        tx_hash = await self.client.execute(factory, params.to_msg())
        logger.info(f"HTLC created for {params.swap_hash}: tx {tx_hash}")
        return tx_hash

    async def get_htlc_by_order_hash(self, order_hash: str) -> Any:
        return await self.client.query_contract_smart(self._factory(), {"GetHTLC": {"swap_hash": order_hash}})

    async def get_htlcs_by_maker(self, maker: str) -> Any:
        return await self.client.query_contract_smart(self._factory(), {"GetHTLCsByMaker": {"maker": maker}})

    async def query_escrow_factory_config(self) -> Any:
        return await self.client.query_contract_smart(self._factory(), {"GetConfig": {}})
