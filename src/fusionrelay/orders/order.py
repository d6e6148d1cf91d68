"""Cross-chain limit order."""

from dataclasses import dataclass
from typing import Optional

from eth_utils import to_checksum_address

from fusionrelay.escrow import Immutables
from fusionrelay.orders.extension import AuctionDetails, EscrowParams, Extension, TakerTraits
from fusionrelay.utils.evm import address_to_int

ORDER_ABI = "(uint256,uint256,uint256,uint256,uint256,uint256,uint256,uint256)"


@dataclass(frozen=True)
class CrossChainOrder:
    """A Limit Order Protocol v4 order whose fill deploys a source escrow.

    The eight struct fields are what the maker signs. ``extension`` routes
    the fill to the escrow factory and carries ``escrow_params``; its hash
    is bound into the low 160 bits of ``salt``.
    """

    src_chain_id: int
    salt: int
    maker: str
    receiver: str
    maker_asset: str
    taker_asset: str
    making_amount: int
    taking_amount: int
    maker_traits: int
    escrow_factory: str
    extension: Extension
    escrow_params: EscrowParams
    auction: AuctionDetails

    def __post_init__(self):
        for name in ("maker", "receiver", "maker_asset", "taker_asset", "escrow_factory"):
            object.__setattr__(self, name, to_checksum_address(getattr(self, name)))

    @property
    def dst_chain_id(self) -> int:
        return self.escrow_params.dst_chain_id

    def build(self) -> dict:
        """Struct fields keyed as in the EIP-712 ``Order`` type."""
        return {
            "salt": self.salt,
            "maker": self.maker,
            "receiver": self.receiver,
            "makerAsset": self.maker_asset,
            "takerAsset": self.taker_asset,
            "makingAmount": self.making_amount,
            "takingAmount": self.taking_amount,
            "makerTraits": self.maker_traits,
        }

    def to_abi_tuple(self) -> tuple:
        """The order as the resolver contract takes it: eight uint256 words."""
        return (
            self.salt,
            address_to_int(self.maker),
            address_to_int(self.receiver),
            address_to_int(self.maker_asset),
            address_to_int(self.taker_asset),
            self.making_amount,
            self.taking_amount,
            self.maker_traits,
        )

    def to_src_immutables(self, order_hash: str, taker: str, amount: Optional[int] = None) -> Immutables:
        """Immutables of the source escrow a fill by ``taker`` deploys.

        ``deployedAt`` is zero here; the factory sets it to the block time.
        """
        return Immutables(
            order_hash=order_hash,
            hashlock=self.escrow_params.hashlock,
            maker=self.maker,
            taker=taker,
            token=self.maker_asset,
            amount=self.making_amount if amount is None else amount,
            safety_deposit=self.escrow_params.src_safety_deposit,
            timelocks=self.escrow_params.timelocks,
        )

    def taker_traits(self) -> TakerTraits:
        """Full fill in maker-amount mode, threshold at the taking amount."""
        return TakerTraits(
            extension=self.extension.encode(),
            maker_amount_mode=True,
            threshold=self.taking_amount,
        )

    def to_dict(self) -> dict:
        data = {key: str(value) if isinstance(value, int) else value for key, value in self.build().items()}
        data.update(
            {
                "srcChainId": self.src_chain_id,
                "dstChainId": self.dst_chain_id,
                "escrowFactory": self.escrow_factory,
                "extension": "0x" + self.extension.encode().hex(),
                "hashLock": self.escrow_params.hashlock.to_hex(),
                "srcSafetyDeposit": str(self.escrow_params.src_safety_deposit),
                "dstSafetyDeposit": str(self.escrow_params.dst_safety_deposit),
                "timeLocks": str(self.escrow_params.timelocks.encode()),
                "auctionStartTime": self.auction.start_time,
                "auctionDuration": self.auction.duration,
            }
        )
        return data
