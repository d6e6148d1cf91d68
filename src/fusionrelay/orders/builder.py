"""Turns user intents into signable orders.

EVM-sourced intents become a cross-chain limit order plus the EIP-712
payload the maker signs. Cosmos-sourced intents carry no EVM order; they
only get an order hash to key the swap by.
"""

import json
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Optional

from eth_utils import keccak

from fusionrelay.chains import (
    COSMOS_DECIMALS,
    NON_EVM_ASSET_SENTINEL,
    ResolverConfig,
    asset_decimals,
    is_evm_chain,
)
from fusionrelay.errors import BuildFailedError, UnsupportedChainError
from fusionrelay.htlc import PROTOCOL_TIMELOCKS, Hashlock
from fusionrelay.orders import typed_data
from fusionrelay.orders.extension import (
    AuctionDetails,
    EscrowParams,
    MakerTraits,
    WhitelistEntry,
    build_escrow_extension,
    salt_with_extension,
)
from fusionrelay.orders.order import CrossChainOrder
from fusionrelay.store.models import UserIntent
from fusionrelay.utils.cosmos import is_bech32_address
from fusionrelay.utils.evm import is_evm_address, parse_units

logger = logging.getLogger(__name__)

# 0.000001 ether
SRC_SAFETY_DEPOSIT = 10**12
# 0.000001 of a 6-decimal token
DST_SAFETY_DEPOSIT = 1

AUCTION_DURATION = 120
# Seconds the order stays fillable after the auction ends
ORDER_EXPIRATION_DELAY = 12


@dataclass(frozen=True)
class BuiltOrder:
    order_hash: str
    typed_data: dict
    order: CrossChainOrder


class OrderBuilder:
    """Builds orders for the resolvers it knows about.

    Args:
        resolvers: Resolver deployments by EVM chain id
        cosmos_chain_id: Numeric id intents use for the Cosmos chain
        cosmos_prefix: Bech32 prefix of Cosmos addresses
        clock: Source of the current unix time
        randbits: Source of random salt and nonce bits
    """

    def __init__(
        self,
        resolvers: dict[int, ResolverConfig],
        cosmos_chain_id: int = 999,
        cosmos_prefix: str = "osmo",
        clock: Callable[[], float] = time.time,
        randbits: Callable[[int], int] = secrets.randbits,
    ):
        self.resolvers = dict(resolvers)
        self.cosmos_chain_id = cosmos_chain_id
        self.cosmos_prefix = cosmos_prefix
        self._clock = clock
        self._randbits = randbits

    def resolver_for(self, chain_id: int) -> ResolverConfig:
        resolver = self.resolvers.get(chain_id)
        if resolver is None:
            raise UnsupportedChainError(chain_id)
        return resolver

    # ======================
    # EVM source
    # ======================

    def build_evm_order(self, intent: UserIntent) -> BuiltOrder:
        """Build the limit order for an EVM-sourced intent.

        Raises:
            UnsupportedChainError: No resolver on the source chain
            BuildFailedError: A malformed field in the intent
        """
        resolver = self.resolver_for(intent.src_chain_id)
        hashlock = self._parse_hashlock(intent.hashlock)
        self._require_evm("userAddress", intent.user_address)
        self._require_evm("srcChainAsset", intent.src_chain_asset)

        if is_evm_chain(intent.dst_chain_id):
            self._require_evm("receiver", intent.receiver)
            self._require_evm("dstChainAsset", intent.dst_chain_asset)
            receiver = intent.receiver
            taker_asset = intent.dst_chain_asset
            taking_decimals = asset_decimals(intent.dst_chain_id, intent.dst_chain_asset)
        elif intent.dst_chain_id == self.cosmos_chain_id:
            self._require_cosmos("receiver", intent.receiver)
            if not intent.dst_chain_asset:
                raise BuildFailedError("Missing destination denom", details={"field": "dstChainAsset"})
            # The real receiver stays in the intent for the Cosmos leg
            receiver = resolver.resolver
            taker_asset = NON_EVM_ASSET_SENTINEL
            taking_decimals = COSMOS_DECIMALS
        else:
            raise UnsupportedChainError(intent.dst_chain_id)

        making_amount = self._parse_amount(
            intent.token_amount, asset_decimals(intent.src_chain_id, intent.src_chain_asset)
        )
        taking_amount = self._parse_amount(intent.token_amount, taking_decimals)

        escrow_params = EscrowParams(
            hashlock=hashlock,
            dst_chain_id=intent.dst_chain_id,
            dst_token=taker_asset,
            src_safety_deposit=SRC_SAFETY_DEPOSIT,
            dst_safety_deposit=DST_SAFETY_DEPOSIT,
            timelocks=PROTOCOL_TIMELOCKS,
        )
        auction = AuctionDetails(start_time=int(self._clock()), duration=AUCTION_DURATION)
        extension = build_escrow_extension(
            escrow_factory=resolver.escrow_factory,
            auction=auction,
            whitelist=[WhitelistEntry(address=resolver.resolver, allow_from=0)],
            resolving_start_time=0,
            escrow_params=escrow_params,
        )
        maker_traits = MakerTraits(
            expiration=auction.end_time + ORDER_EXPIRATION_DELAY,
            nonce=self._randbits(40),
            allow_partial_fills=False,
            allow_multiple_fills=False,
            has_extension=True,
            post_interaction=True,
        )

        order = CrossChainOrder(
            src_chain_id=intent.src_chain_id,
            salt=salt_with_extension(self._randbits(96), extension),
            maker=intent.user_address,
            receiver=receiver,
            maker_asset=intent.src_chain_asset,
            taker_asset=taker_asset,
            making_amount=making_amount,
            taking_amount=taking_amount,
            maker_traits=maker_traits.encode(),
            escrow_factory=resolver.escrow_factory,
            extension=extension,
            escrow_params=escrow_params,
            auction=auction,
        )

        message = order.build()
        payload = typed_data.build_typed_data(intent.src_chain_id, resolver.limit_order, message)
        order_hash = typed_data.order_hash(intent.src_chain_id, resolver.limit_order, message)
        logger.info(
            f"Built order {order_hash}: chain {intent.src_chain_id} -> {intent.dst_chain_id}, "
            f"making={making_amount} taking={taking_amount}"
        )
        return BuiltOrder(order_hash=order_hash, typed_data=payload, order=order)

    def rehash(self, order: CrossChainOrder) -> str:
        """Recompute the order hash from the order's own fields."""
        resolver = self.resolver_for(order.src_chain_id)
        return typed_data.order_hash(order.src_chain_id, resolver.limit_order, order.build())

    def recover_maker(self, order: CrossChainOrder, signature: str) -> str:
        resolver = self.resolver_for(order.src_chain_id)
        return typed_data.recover_signer(order.src_chain_id, resolver.limit_order, order.build(), signature)

    # ======================
    # Cosmos source
    # ======================

    def build_cosmos_order_hash(self, intent: UserIntent, nonce: Optional[str] = None) -> str:
        """Order hash for a Cosmos-sourced intent.

        keccak256 over the canonical JSON of the intent plus a random
        nonce, so identical intents still get distinct orders.

        Raises:
            UnsupportedChainError: No resolver on the destination chain
            BuildFailedError: A malformed field in the intent
        """
        if intent.src_chain_id != self.cosmos_chain_id:
            raise UnsupportedChainError(intent.src_chain_id)
        self.resolver_for(intent.dst_chain_id)
        self._parse_hashlock(intent.hashlock)
        self._require_cosmos("userAddress", intent.user_address)
        self._require_evm("receiver", intent.receiver)
        if not intent.src_chain_asset:
            raise BuildFailedError("Missing source denom", details={"field": "srcChainAsset"})
        self._parse_amount(intent.token_amount, COSMOS_DECIMALS)

        payload = dict(intent.to_dict(), nonce=nonce or secrets.token_hex(16))
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        order_hash = "0x" + keccak(text=canonical).hex()
        logger.info(f"Built Cosmos-sourced order {order_hash}: -> chain {intent.dst_chain_id}")
        return order_hash

    # ======================
    # Validation
    # ======================

    @staticmethod
    def _require_evm(name: str, value: str) -> None:
        if not is_evm_address(value):
            raise BuildFailedError(f"Invalid EVM address in {name}", details={"field": name, "value": value})

    def _require_cosmos(self, name: str, value: str) -> None:
        if not is_bech32_address(value, self.cosmos_prefix):
            raise BuildFailedError(
                f"Invalid {self.cosmos_prefix} address in {name}", details={"field": name, "value": value}
            )

    @staticmethod
    def _parse_hashlock(value: str) -> Hashlock:
        try:
            return Hashlock.from_hex(value)
        except ValueError as e:
            raise BuildFailedError(str(e), details={"field": "hashLock"}) from e

    @staticmethod
    def _parse_amount(value: str, decimals: int) -> int:
        try:
            return parse_units(value, decimals)
        except ValueError as e:
            raise BuildFailedError(str(e), details={"field": "tokenAmount"}) from e
