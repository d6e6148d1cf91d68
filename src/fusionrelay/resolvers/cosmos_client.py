"""cosmpy-backed CosmWasm client.

cosmpy is synchronous; calls run in a worker thread and are bounded by the
configured timeouts.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Callable, Optional, TypeVar

from bip_utils import Bip39SeedGenerator, Bip44, Bip44Changes, Bip44Coins
from cosmpy.aerial.client import LedgerClient, NetworkConfig
from cosmpy.aerial.contract import LedgerContract
from cosmpy.aerial.wallet import LocalWallet
from cosmpy.crypto.address import Address
from cosmpy.crypto.keypairs import PrivateKey

from fusionrelay.errors import ChainSubmissionError
from fusionrelay.resolvers.base import CosmosWasmClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


def derive_private_key(mnemonic: str, account: int = 0, index: int = 0) -> bytes:
    """secp256k1 key at m/44'/118'/account'/0/index."""
    seed = Bip39SeedGenerator(mnemonic).Generate()
    bip44 = Bip44.FromSeed(seed, Bip44Coins.COSMOS)
    node = bip44.Purpose().Coin().Account(account).Change(Bip44Changes.CHAIN_EXT).AddressIndex(index)
    return node.PrivateKey().Raw().ToBytes()


class CosmpyWasmClient(CosmosWasmClient):
    """Signing client for one Cosmos chain, keyed from a mnemonic."""

    def __init__(
        self,
        rpc_endpoint: str,
        chain_id: str,
        mnemonic: str,
        prefix: str = "osmo",
        gas_price: Decimal = Decimal("0.025"),
        fee_denom: str = "uosmo",
        rpc_timeout: float = 30.0,
        confirmation_timeout: float = 180.0,
    ):
        self.chain_id = chain_id
        self.rpc_timeout = rpc_timeout
        self.confirmation_timeout = confirmation_timeout
        config = NetworkConfig(
            chain_id=chain_id,
            url=rpc_endpoint,
            fee_minimum_gas_price=float(gas_price),
            fee_denomination=fee_denom,
            staking_denomination=fee_denom,
        )
        self._client = LedgerClient(config)
        self._wallet = LocalWallet(PrivateKey(derive_private_key(mnemonic)), prefix=prefix)
        logger.info(f"Cosmos client initialized: address={self.address} rpc={rpc_endpoint}")

    @property
    def address(self) -> str:
        return str(self._wallet.address())

    def _contract(self, address: str) -> LedgerContract:
        return LedgerContract(None, self._client, Address(address))

    async def _run(self, fn: Callable[[], T], timeout: float, what: str) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ChainSubmissionError(f"Cosmos {what} timed out after {timeout}s", chain_id=self.chain_id) from e
        except ChainSubmissionError:
            raise
        except Exception as e:
            raise ChainSubmissionError(f"Cosmos {what} failed: {e}", chain_id=self.chain_id) from e

    async def execute(self, contract: str, msg: dict[str, Any], funds: Optional[str] = None) -> str:
        def _execute() -> str:
            tx = self._contract(contract).execute(msg, self._wallet, funds=funds)
            tx.wait_to_complete()
            return tx.tx_hash

        tx_hash = await self._run(_execute, self.confirmation_timeout, "execute")
        logger.info(f"Cosmos tx {tx_hash} executed against {contract}")
        return tx_hash

    async def query_contract_smart(self, contract: str, query: dict[str, Any]) -> Any:
        return await self._run(lambda: self._contract(contract).query(query), self.rpc_timeout, "query")
