"""EIP-712 hashing for limit orders.

    digest          = keccak256(0x19 0x01 || domainSeparator || hashStruct(order))
    domainSeparator = hashStruct(EIP712Domain{name, version, chainId, verifyingContract})
    hashStruct(s)   = keccak256(typeHash || encodeData(s))

All values in ``encodeData`` are 32-byte words: ``uint256`` and ``address``
left-padded, ``string`` replaced by its keccak256.
"""

from typing import Any, Mapping, Union

from eth_abi import encode
from eth_account import Account
from eth_account.messages import SignableMessage
from eth_utils import keccak, to_checksum_address

DOMAIN_NAME = "1inch Limit Order Protocol"
DOMAIN_VERSION = "4"

EIP712_DOMAIN_FIELDS = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

ORDER_FIELDS = [
    {"name": "salt", "type": "uint256"},
    {"name": "maker", "type": "address"},
    {"name": "receiver", "type": "address"},
    {"name": "makerAsset", "type": "address"},
    {"name": "takerAsset", "type": "address"},
    {"name": "makingAmount", "type": "uint256"},
    {"name": "takingAmount", "type": "uint256"},
    {"name": "makerTraits", "type": "uint256"},
]


def encode_type(primary_type: str, fields: list[dict]) -> str:
    """``Order(uint256 salt,address maker,...)``."""
    members = ",".join(f"{f['type']} {f['name']}" for f in fields)
    return f"{primary_type}({members})"


def type_hash(primary_type: str, fields: list[dict]) -> bytes:
    return keccak(text=encode_type(primary_type, fields))


ORDER_TYPE_HASH = type_hash("Order", ORDER_FIELDS)
DOMAIN_TYPE_HASH = type_hash("EIP712Domain", EIP712_DOMAIN_FIELDS)


def _encode_value(field_type: str, value: Any) -> tuple[str, Any]:
    if field_type == "string":
        return "bytes32", keccak(text=value)
    if field_type == "address":
        return "address", to_checksum_address(value)
    if field_type == "uint256":
        return "uint256", int(value)
    raise ValueError(f"Unsupported EIP-712 field type: {field_type}")


def hash_struct(primary_type: str, fields: list[dict], message: Mapping[str, Any]) -> bytes:
    types = ["bytes32"]
    values: list[Any] = [type_hash(primary_type, fields)]
    for f in fields:
        abi_type, value = _encode_value(f["type"], message[f["name"]])
        types.append(abi_type)
        values.append(value)
    return keccak(encode(types, values))


def hash_order(message: Mapping[str, Any]) -> bytes:
    return hash_struct("Order", ORDER_FIELDS, message)


def build_domain(chain_id: int, verifying_contract: str) -> dict:
    return {
        "name": DOMAIN_NAME,
        "version": DOMAIN_VERSION,
        "chainId": chain_id,
        "verifyingContract": to_checksum_address(verifying_contract),
    }


def domain_separator(chain_id: int, verifying_contract: str) -> bytes:
    return hash_struct("EIP712Domain", EIP712_DOMAIN_FIELDS, build_domain(chain_id, verifying_contract))


def typed_data_hash(separator: bytes, struct_hash: bytes) -> bytes:
    return keccak(b"\x19\x01" + separator + struct_hash)


def order_hash(chain_id: int, verifying_contract: str, message: Mapping[str, Any]) -> str:
    """Canonical order hash, 0x-prefixed."""
    digest = typed_data_hash(domain_separator(chain_id, verifying_contract), hash_order(message))
    return "0x" + digest.hex()


def build_typed_data(chain_id: int, verifying_contract: str, message: Mapping[str, Any]) -> dict:
    """JSON payload a wallet signs with ``eth_signTypedData_v4``.

    uint256 values are rendered as decimal strings.
    """
    rendered = {}
    for f in ORDER_FIELDS:
        value = message[f["name"]]
        rendered[f["name"]] = str(int(value)) if f["type"] == "uint256" else to_checksum_address(value)
    return {
        "types": {"EIP712Domain": EIP712_DOMAIN_FIELDS, "Order": ORDER_FIELDS},
        "primaryType": "Order",
        "domain": build_domain(chain_id, verifying_contract),
        "message": rendered,
    }


def signable_message(chain_id: int, verifying_contract: str, message: Mapping[str, Any]) -> SignableMessage:
    """EIP-191 version 0x01 envelope over the order digest parts."""
    return SignableMessage(
        version=b"\x01",
        header=domain_separator(chain_id, verifying_contract),
        body=hash_order(message),
    )


def recover_signer(
    chain_id: int,
    verifying_contract: str,
    message: Mapping[str, Any],
    signature: Union[str, bytes],
) -> str:
    """Address that produced ``signature`` over the order."""
    return Account.recover_message(
        signable_message(chain_id, verifying_contract, message),
        signature=signature,
    )
