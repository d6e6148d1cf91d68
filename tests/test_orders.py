"""Tests for order building and EIP-712 hashing."""

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data

from fusionrelay.chains import NON_EVM_ASSET_SENTINEL, ResolverConfig
from fusionrelay.errors import BuildFailedError, UnsupportedChainError, ValidationError
from fusionrelay.orders import OrderBuilder, typed_data
from fusionrelay.orders.builder import AUCTION_DURATION, ORDER_EXPIRATION_DELAY, SRC_SAFETY_DEPOSIT
from fusionrelay.store import UserIntent

from conftest import ARBITRUM, COSMOS, LIMIT_ORDER, MAKER_KEY, NOW, OTHER_KEY, RESOLVER, USDC, WETH

BASE = 8453
BASE_USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"


@pytest.fixture
def builder(resolver_config):
    return OrderBuilder({ARBITRUM: resolver_config}, clock=lambda: NOW, randbits=lambda n: 7)


def with_fields(intent: UserIntent, **changes) -> UserIntent:
    data = intent.to_dict()
    data.update(changes)
    return UserIntent.from_dict(data)


class TestEvmToCosmosOrder:
    """EVM-sourced orders towards a Cosmos receiver."""

    def test_non_evm_taker_asset_and_resolver_receiver(self, builder, evm_intent):
        built = builder.build_evm_order(evm_intent)
        message = built.typed_data["message"]

        assert message["takerAsset"].lower() == NON_EVM_ASSET_SENTINEL.lower()
        assert message["receiver"] == RESOLVER
        assert message["maker"] == evm_intent.user_address
        assert message["makerAsset"] == WETH

    def test_amounts_use_asset_decimals(self, builder, evm_intent):
        built = builder.build_evm_order(evm_intent)

        assert built.order.making_amount == 10**18
        assert built.order.taking_amount == 10**6
        assert built.typed_data["message"]["makingAmount"] == str(10**18)

    def test_six_decimal_source_asset(self, builder, evm_intent):
        built = builder.build_evm_order(with_fields(evm_intent, srcChainAsset=USDC, tokenAmount="2.5"))
        assert built.order.making_amount == 2_500_000

    def test_typed_data_shape(self, builder, evm_intent):
        payload = builder.build_evm_order(evm_intent).typed_data

        assert payload["primaryType"] == "Order"
        assert set(payload["types"]) == {"EIP712Domain", "Order"}
        assert payload["domain"] == {
            "name": "1inch Limit Order Protocol",
            "version": "4",
            "chainId": ARBITRUM,
            "verifyingContract": LIMIT_ORDER,
        }
        assert all(isinstance(v, str) for v in payload["message"].values())

    def test_hash_matches_wallet_digest(self, builder, evm_intent, to_wallet_typed_data):
        built = builder.build_evm_order(evm_intent)
        full_message = to_wallet_typed_data(built.typed_data)

        encoded = encode_typed_data(full_message=full_message)
        assert encoded.header == typed_data.domain_separator(ARBITRUM, LIMIT_ORDER)
        assert encoded.body == typed_data.hash_order(built.order.build())

        signed = Account.sign_typed_data(MAKER_KEY, full_message=full_message)
        assert "0x" + bytes(signed.message_hash).hex() == built.order_hash

    def test_wallet_signature_recovers_maker(self, builder, evm_intent, to_wallet_typed_data, maker):
        built = builder.build_evm_order(evm_intent)
        signed = Account.sign_typed_data(MAKER_KEY, full_message=to_wallet_typed_data(built.typed_data))

        assert builder.recover_maker(built.order, "0x" + bytes(signed.signature).hex()) == maker.address

    def test_other_signer_recovered(self, builder, evm_intent, to_wallet_typed_data, maker):
        built = builder.build_evm_order(evm_intent)
        signed = Account.sign_typed_data(OTHER_KEY, full_message=to_wallet_typed_data(built.typed_data))

        assert builder.recover_maker(built.order, signed.signature) != maker.address

    def test_deterministic_for_fixed_inputs(self, resolver_config, evm_intent):
        first = OrderBuilder({ARBITRUM: resolver_config}, clock=lambda: NOW, randbits=lambda n: 7)
        second = OrderBuilder({ARBITRUM: resolver_config}, clock=lambda: NOW, randbits=lambda n: 7)

        assert first.build_evm_order(evm_intent).order_hash == second.build_evm_order(evm_intent).order_hash
        assert first.build_evm_order(evm_intent).order_hash == first.rehash(first.build_evm_order(evm_intent).order)

    def test_random_salt_gives_distinct_hashes(self, resolver_config, evm_intent):
        builder = OrderBuilder({ARBITRUM: resolver_config}, clock=lambda: NOW)
        assert builder.build_evm_order(evm_intent).order_hash != builder.build_evm_order(evm_intent).order_hash

    def test_auction_and_traits(self, builder, evm_intent):
        order = builder.build_evm_order(evm_intent).order

        assert order.auction.start_time == NOW
        assert order.auction.duration == AUCTION_DURATION
        expiration = (order.maker_traits >> 80) & ((1 << 40) - 1)
        assert expiration == NOW + AUCTION_DURATION + ORDER_EXPIRATION_DELAY
        assert (order.maker_traits >> 120) & ((1 << 40) - 1) == 7
        assert order.salt & ((1 << 160) - 1) == int.from_bytes(order.extension.hash(), "big") & ((1 << 160) - 1)

    def test_escrow_params(self, builder, evm_intent, hashlock):
        order = builder.build_evm_order(evm_intent).order

        assert order.escrow_params.hashlock.to_hex() == hashlock
        assert order.escrow_params.dst_chain_id == COSMOS
        assert order.escrow_params.src_safety_deposit == SRC_SAFETY_DEPOSIT
        assert order.dst_chain_id == COSMOS

    def test_src_immutables(self, builder, evm_intent):
        built = builder.build_evm_order(evm_intent)
        immutables = built.order.to_src_immutables(built.order_hash, RESOLVER)

        assert immutables.maker == evm_intent.user_address
        assert immutables.taker == RESOLVER
        assert immutables.token == WETH
        assert immutables.amount == 10**18
        assert immutables.timelocks.deployed_at == 0

    def test_to_dict(self, builder, evm_intent):
        data = builder.build_evm_order(evm_intent).order.to_dict()

        assert data["srcChainId"] == ARBITRUM
        assert data["dstChainId"] == COSMOS
        assert data["makingAmount"] == str(10**18)
        assert data["extension"].startswith("0x")


class TestEvmToEvmOrder:
    """EVM destinations keep the user's receiver and asset."""

    def test_receiver_and_asset_kept(self, builder, evm_intent, maker):
        intent = with_fields(evm_intent, dstChainId=BASE, receiver=maker.address, dstChainAsset=BASE_USDC)
        built = builder.build_evm_order(intent)

        assert built.order.receiver == maker.address
        assert built.order.taker_asset == BASE_USDC
        assert built.order.taking_amount == 10**6

    def test_evm_destination_requires_evm_receiver(self, builder, evm_intent):
        intent = with_fields(evm_intent, dstChainId=BASE, dstChainAsset=BASE_USDC)

        with pytest.raises(BuildFailedError) as exc_info:
            builder.build_evm_order(intent)
        assert exc_info.value.details["field"] == "receiver"


class TestBuildFailures:
    """Malformed intents never produce an order."""

    def test_invalid_hashlock(self, builder, evm_intent):
        with pytest.raises(BuildFailedError) as exc_info:
            builder.build_evm_order(with_fields(evm_intent, hashLock="0x1234"))
        assert exc_info.value.details["field"] == "hashLock"
        assert exc_info.value.code == "RELAYER_BUILD_FAILED"

    def test_invalid_cosmos_receiver(self, builder, evm_intent):
        with pytest.raises(BuildFailedError) as exc_info:
            builder.build_evm_order(with_fields(evm_intent, receiver="osmo1notanaddress"))
        assert exc_info.value.details["field"] == "receiver"

    def test_invalid_user_address(self, builder, evm_intent):
        with pytest.raises(BuildFailedError) as exc_info:
            builder.build_evm_order(with_fields(evm_intent, userAddress="0x1234"))
        assert exc_info.value.details["field"] == "userAddress"

    def test_amount_finer_than_destination_decimals(self, builder, evm_intent):
        with pytest.raises(BuildFailedError) as exc_info:
            builder.build_evm_order(with_fields(evm_intent, tokenAmount="0.0000001"))
        assert exc_info.value.details["field"] == "tokenAmount"

    @pytest.mark.parametrize("amount", ["0", "-3", "ten"])
    def test_non_positive_or_garbage_amount(self, builder, evm_intent, amount):
        with pytest.raises(BuildFailedError):
            builder.build_evm_order(with_fields(evm_intent, tokenAmount=amount))

    def test_unsupported_source_chain(self, builder, evm_intent):
        with pytest.raises(UnsupportedChainError) as exc_info:
            builder.build_evm_order(with_fields(evm_intent, srcChainId=1))
        assert exc_info.value.chain_id == 1

    def test_unsupported_destination_chain(self, builder, evm_intent):
        with pytest.raises(UnsupportedChainError):
            builder.build_evm_order(with_fields(evm_intent, dstChainId=12345))

    def test_build_errors_are_validation_errors(self):
        assert issubclass(BuildFailedError, ValidationError)
        assert issubclass(UnsupportedChainError, BuildFailedError)


class TestCosmosOrderHash:
    """Cosmos-sourced intents only get an order hash."""

    def test_hash_is_deterministic_for_a_nonce(self, builder, cosmos_intent):
        first = builder.build_cosmos_order_hash(cosmos_intent, nonce="abc")

        assert first == builder.build_cosmos_order_hash(cosmos_intent, nonce="abc")
        assert first != builder.build_cosmos_order_hash(cosmos_intent, nonce="abd")
        assert first.startswith("0x") and len(first) == 66

    def test_identical_intents_get_distinct_hashes(self, builder, cosmos_intent):
        assert builder.build_cosmos_order_hash(cosmos_intent) != builder.build_cosmos_order_hash(cosmos_intent)

    def test_receiver_must_be_evm(self, builder, cosmos_intent, osmo_receiver):
        with pytest.raises(BuildFailedError) as exc_info:
            builder.build_cosmos_order_hash(with_fields(cosmos_intent, receiver=osmo_receiver))
        assert exc_info.value.details["field"] == "receiver"

    def test_user_must_be_bech32(self, builder, cosmos_intent, maker):
        with pytest.raises(BuildFailedError) as exc_info:
            builder.build_cosmos_order_hash(with_fields(cosmos_intent, userAddress=maker.address))
        assert exc_info.value.details["field"] == "userAddress"

    def test_destination_needs_resolver(self, builder, cosmos_intent):
        with pytest.raises(UnsupportedChainError):
            builder.build_cosmos_order_hash(with_fields(cosmos_intent, dstChainId=BASE))

    def test_source_must_be_cosmos(self, builder, cosmos_intent):
        with pytest.raises(UnsupportedChainError):
            builder.build_cosmos_order_hash(with_fields(cosmos_intent, srcChainId=ARBITRUM))


class TestTypedDataHashing:
    """Tests for the EIP-712 primitives."""

    def test_order_type_string(self):
        assert typed_data.encode_type("Order", typed_data.ORDER_FIELDS) == (
            "Order(uint256 salt,address maker,address receiver,address makerAsset,"
            "address takerAsset,uint256 makingAmount,uint256 takingAmount,uint256 makerTraits)"
        )

    def test_domain_depends_on_chain_and_contract(self):
        base = typed_data.domain_separator(ARBITRUM, LIMIT_ORDER)

        assert base != typed_data.domain_separator(BASE, LIMIT_ORDER)
        assert base != typed_data.domain_separator(ARBITRUM, RESOLVER)

    def test_resolver_config_lookup(self, builder):
        assert isinstance(builder.resolver_for(ARBITRUM), ResolverConfig)
        with pytest.raises(UnsupportedChainError):
            builder.resolver_for(BASE)
