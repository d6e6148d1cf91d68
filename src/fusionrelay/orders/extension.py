"""Byte encodings for limit-order extensions, auctions and traits.

Layouts follow Limit Order Protocol v4 and the cross-chain escrow
extension; every integer is big-endian.
"""

from dataclasses import dataclass
from typing import Optional

from eth_utils import keccak

from fusionrelay.htlc import Hashlock, TimeLocks
from fusionrelay.utils.evm import address_bytes

_UINT24 = (1 << 24) - 1
_UINT40 = (1 << 40) - 1
_UINT128 = (1 << 128) - 1
_UINT160 = (1 << 160) - 1


def _pack(value: int, size: int) -> bytes:
    if value < 0 or value >= 1 << (8 * size):
        raise ValueError(f"Value {value} does not fit in {size} bytes")
    return value.to_bytes(size, "big")


@dataclass(frozen=True)
class AuctionPoint:
    coefficient: int
    delay: int


@dataclass(frozen=True)
class AuctionDetails:
    """Dutch auction curve of a cross-chain order.

    Encoding:
        gasBumpEstimate u24 | gasPriceEstimate u32 | startTime u32 |
        duration u24 | initialRateBump u24 | (coefficient u24 | delay u16)*
    """

    start_time: int
    duration: int
    initial_rate_bump: int = 0
    points: tuple[AuctionPoint, ...] = ()
    gas_bump_estimate: int = 0
    gas_price_estimate: int = 0

    def encode(self) -> bytes:
        out = (
            _pack(self.gas_bump_estimate, 3)
            + _pack(self.gas_price_estimate, 4)
            + _pack(self.start_time, 4)
            + _pack(self.duration, 3)
            + _pack(self.initial_rate_bump, 3)
        )
        for point in self.points:
            out += _pack(point.coefficient, 3) + _pack(point.delay, 2)
        return out

    @property
    def end_time(self) -> int:
        return self.start_time + self.duration


@dataclass(frozen=True)
class WhitelistEntry:
    address: str
    allow_from: int = 0


def encode_whitelist(resolving_start_time: int, whitelist: list[WhitelistEntry]) -> bytes:
    """Settlement post-interaction data.

    Layout: resolvingStartTime u32 | (addressLow80 | allowFromDelay u16)* |
    flags u8, where ``flags >> 3`` is the whitelist length. Entries are
    delay-encoded relative to the previous entry's ``allow_from``.
    """
    if len(whitelist) > 31:
        raise ValueError("Whitelist supports at most 31 resolvers")
    out = _pack(resolving_start_time, 4)
    previous = resolving_start_time
    for entry in sorted(whitelist, key=lambda e: e.allow_from):
        allow_from = max(entry.allow_from, resolving_start_time)
        out += address_bytes(entry.address)[-10:] + _pack(allow_from - previous, 2)
        previous = allow_from
    return out + _pack(len(whitelist) << 3, 1)


@dataclass(frozen=True)
class EscrowParams:
    """Escrow arguments appended to the factory post-interaction."""

    hashlock: Hashlock
    dst_chain_id: int
    dst_token: str
    src_safety_deposit: int
    dst_safety_deposit: int
    timelocks: TimeLocks

    def encode(self) -> bytes:
        """hashlock(32) | dstChainId(32) | dstToken(32) | deposits(32) | timelocks(32).

        ``deposits`` packs the source deposit in the high 128 bits and the
        destination deposit in the low 128 bits, as the factory unpacks it.
        """
        if self.src_safety_deposit > _UINT128 or self.dst_safety_deposit > _UINT128:
            raise ValueError("Safety deposit does not fit in 128 bits")
        deposits = (self.src_safety_deposit << 128) | self.dst_safety_deposit
        return (
            self.hashlock.digest
            + _pack(self.dst_chain_id, 32)
            + _pack(int(self.dst_token, 16), 32)
            + _pack(deposits, 32)
            + _pack(self.timelocks.encode(), 32)
        )


# Field order of the extension offsets table
EXTENSION_FIELDS = (
    "maker_asset_suffix",
    "taker_asset_suffix",
    "making_amount_data",
    "taking_amount_data",
    "predicate",
    "maker_permit",
    "pre_interaction",
    "post_interaction",
)


@dataclass(frozen=True)
class Extension:
    """Limit-order extension.

    Encoding: a 32-byte offsets word holding the cumulative end offset of
    each field (32 bits per field, field ``i`` at bits ``[32*i, 32*i+32)``),
    followed by the fields in ``EXTENSION_FIELDS`` order and ``custom_data``.
    An extension with no fields encodes to empty bytes.
    """

    maker_asset_suffix: bytes = b""
    taker_asset_suffix: bytes = b""
    making_amount_data: bytes = b""
    taking_amount_data: bytes = b""
    predicate: bytes = b""
    maker_permit: bytes = b""
    pre_interaction: bytes = b""
    post_interaction: bytes = b""
    custom_data: bytes = b""

    def encode(self) -> bytes:
        parts = [getattr(self, name) for name in EXTENSION_FIELDS]
        body = b"".join(parts)
        if not body and not self.custom_data:
            return b""
        offsets = 0
        end = 0
        for i, part in enumerate(parts):
            end += len(part)
            offsets |= end << (32 * i)
        return _pack(offsets, 32) + body + self.custom_data

    def hash(self) -> bytes:
        return keccak(self.encode())

    @property
    def is_empty(self) -> bool:
        return self.encode() == b""


def build_escrow_extension(
    escrow_factory: str,
    auction: AuctionDetails,
    whitelist: list[WhitelistEntry],
    resolving_start_time: int,
    escrow_params: EscrowParams,
) -> Extension:
    """Extension routing amount calculation and post-interaction to the escrow factory."""
    factory = address_bytes(escrow_factory)
    auction_data = factory + auction.encode()
    post_interaction = factory + encode_whitelist(resolving_start_time, whitelist) + escrow_params.encode()
    return Extension(
        making_amount_data=auction_data,
        taking_amount_data=auction_data,
        post_interaction=post_interaction,
    )


# Maker traits flags (bit positions)
NO_PARTIAL_FILLS_FLAG = 255
ALLOW_MULTIPLE_FILLS_FLAG = 254
PRE_INTERACTION_CALL_FLAG = 252
POST_INTERACTION_CALL_FLAG = 251
NEED_CHECK_EPOCH_MANAGER_FLAG = 250
HAS_EXTENSION_FLAG = 249


@dataclass
class MakerTraits:
    """Maker traits word.

    Low 80 bits: allowed sender suffix; bits 80..120: expiration;
    bits 120..160: nonce or epoch; bits 160..200: series; high bits: flags.
    """

    allowed_sender: int = 0
    expiration: int = 0
    nonce: int = 0
    series: int = 0
    allow_partial_fills: bool = True
    allow_multiple_fills: bool = True
    has_extension: bool = False
    pre_interaction: bool = False
    post_interaction: bool = False

    def encode(self) -> int:
        if self.nonce > _UINT40 or self.expiration > _UINT40 or self.series > _UINT40:
            raise ValueError("Maker traits nonce, expiration and series are 40-bit fields")
        word = (
            (self.allowed_sender & ((1 << 80) - 1))
            | (self.expiration << 80)
            | (self.nonce << 120)
            | (self.series << 160)
        )
        if not self.allow_partial_fills:
            word |= 1 << NO_PARTIAL_FILLS_FLAG
        if self.allow_multiple_fills:
            word |= 1 << ALLOW_MULTIPLE_FILLS_FLAG
        if self.pre_interaction:
            word |= 1 << PRE_INTERACTION_CALL_FLAG
        if self.post_interaction:
            word |= 1 << POST_INTERACTION_CALL_FLAG
        if self.has_extension:
            word |= 1 << HAS_EXTENSION_FLAG
        return word


# Taker traits flags and fields
MAKER_AMOUNT_FLAG = 255
ARGS_HAS_TARGET_FLAG = 251
ARGS_EXTENSION_LENGTH_OFFSET = 224
ARGS_INTERACTION_LENGTH_OFFSET = 200
AMOUNT_THRESHOLD_MASK = (1 << 185) - 1


@dataclass
class TakerTraits:
    """Taker traits for a fill: flags and threshold in one word, plus args bytes."""

    extension: bytes = b""
    interaction: bytes = b""
    target: Optional[str] = None
    maker_amount_mode: bool = False
    threshold: int = 0

    def encode(self) -> tuple[int, bytes]:
        """Return ``(traits, args)``; args = target? | extension | interaction."""
        if self.threshold > AMOUNT_THRESHOLD_MASK:
            raise ValueError("Amount threshold does not fit in 185 bits")
        if len(self.extension) > _UINT24 or len(self.interaction) > _UINT24:
            raise ValueError("Taker args too long")
        traits = self.threshold
        traits |= len(self.extension) << ARGS_EXTENSION_LENGTH_OFFSET
        traits |= len(self.interaction) << ARGS_INTERACTION_LENGTH_OFFSET
        if self.maker_amount_mode:
            traits |= 1 << MAKER_AMOUNT_FLAG
        args = b""
        if self.target:
            traits |= 1 << ARGS_HAS_TARGET_FLAG
            args += address_bytes(self.target)
        args += self.extension + self.interaction
        return traits, args


def salt_with_extension(random_part: int, extension: Extension) -> int:
    """Order salt: random high 96 bits, low 160 bits bound to the extension hash."""
    if extension.is_empty:
        return random_part
    ext_bits = int.from_bytes(extension.hash(), "big") & _UINT160
    return ((random_part & ((1 << 96) - 1)) << 160) | ext_bits
