"""
Payment contract ABI — selectors, argument encoders and result decoders.

Only the functions the key-management core reads or writes are described;
everything else on the contract is out of scope.
"""
from typing import Union

from eth_abi import decode, encode
from eth_utils import keccak

from ..exceptions import ErrorCode, ValidationError
from ..validation import normalize_address, require_length

AddressLike = Union[str, bytes]


def function_selector(signature: str) -> bytes:
    """First four bytes of keccak256 over a canonical function signature."""
    return keccak(text=signature)[:4]


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------

REGISTER_USERNAME = "RegisterUsername(bytes32,bytes32,bytes)"
REGISTER_META_KEYS = "registerMetaKeys(bytes,bytes)"
SEND_TO_STEALTH = "sendToStealth(address,uint256,bytes)"
CLAIM_FROM_STEALTH = "claimFromStealth(address,bytes)"
GET_STEALTH_PAYMENT = "getStealthPayment(address)"
GET_META_KEYS = "getMetaKeys(address)"
GET_USERNAME_HASH = "getUsernameHash(address)"
IS_USERNAME_HASH_AVAILABLE = "isUsernameHashAvailable(bytes32)"

STEALTH_PAYMENT_SENT = "StealthPaymentSent(address,address,uint256,bytes32)"
STEALTH_PAYMENT_SENT_TOPIC = keccak(text=STEALTH_PAYMENT_SENT)

USERNAME_REGISTERED = "UsernameRegistered(bytes32,address,bytes32)"
USERNAME_REGISTERED_TOPIC = keccak(text=USERNAME_REGISTERED)

EMPTY_USERNAME_HASH = bytes(32)

SEND_TO_STEALTH_SELECTOR = function_selector(SEND_TO_STEALTH)
SEND_TO_STEALTH_TYPES = ["address", "uint256", "bytes"]

# Selectors of every contract function, used to tell "a call to the payment
# contract that is not a send" from "not a call to the payment contract".
CONTRACT_SELECTORS = {
    function_selector(sig): sig
    for sig in (
        REGISTER_USERNAME,
        REGISTER_META_KEYS,
        SEND_TO_STEALTH,
        CLAIM_FROM_STEALTH,
        GET_STEALTH_PAYMENT,
        GET_META_KEYS,
        GET_USERNAME_HASH,
        IS_USERNAME_HASH_AVAILABLE,
    )
}


def _address(value: AddressLike) -> str:
    return normalize_address(value)


# ---------------------------------------------------------------------------
# Write calls
# ---------------------------------------------------------------------------

def encode_register_username(
    username_hash: bytes, commitment: bytes, proof: bytes
) -> bytes:
    require_length(username_hash, 32, "username hash")
    require_length(commitment, 32, "commitment")
    return function_selector(REGISTER_USERNAME) + encode(
        ["bytes32", "bytes32", "bytes"],
        [bytes(username_hash), bytes(commitment), bytes(proof)],
    )


def encode_register_meta_keys(viewing_pub: bytes, spending_pub: bytes) -> bytes:
    return function_selector(REGISTER_META_KEYS) + encode(
        ["bytes", "bytes"], [bytes(viewing_pub), bytes(spending_pub)],
    )


def encode_send_to_stealth(
    stealth_address: AddressLike, amount: int, ephemeral_public_key: bytes
) -> bytes:
    """Calldata for ``sendToStealth(stealthAddress, amount, ephemeralPubkey)``.

    Raises:
        ValidationError: INVALID_AMOUNT for non-positive amounts.
    """
    if not isinstance(amount, int) or amount <= 0:
        raise ValidationError(
            f"Amount must be a positive integer, got {amount!r}",
            ErrorCode.INVALID_AMOUNT,
        )
    return SEND_TO_STEALTH_SELECTOR + encode(
        SEND_TO_STEALTH_TYPES,
        [_address(stealth_address), amount, bytes(ephemeral_public_key)],
    )


def encode_claim_from_stealth(stealth_address: AddressLike, proof: bytes) -> bytes:
    return function_selector(CLAIM_FROM_STEALTH) + encode(
        ["address", "bytes"], [_address(stealth_address), bytes(proof)],
    )


def decode_send_to_stealth(data: bytes) -> tuple[str, int, bytes]:
    """Decode ``sendToStealth`` calldata into (stealth address, amount, ephemeral key).

    Raises:
        ValueError: ``data`` is not a ``sendToStealth`` call.
        eth_abi.exceptions.DecodingError: The arguments are malformed.
    """
    if bytes(data[:4]) != SEND_TO_STEALTH_SELECTOR:
        raise ValueError("not a sendToStealth call")
    stealth_address, amount, ephemeral = decode(SEND_TO_STEALTH_TYPES, bytes(data[4:]))
    return stealth_address.lower(), amount, ephemeral


# ---------------------------------------------------------------------------
# Read calls
# ---------------------------------------------------------------------------

def encode_get_stealth_payment(stealth_address: AddressLike) -> bytes:
    return function_selector(GET_STEALTH_PAYMENT) + encode(
        ["address"], [_address(stealth_address)]
    )


def decode_get_stealth_payment(data: bytes) -> tuple[int, bool, str, int]:
    """Returns (amount, claimed, sender, timestamp)."""
    amount, claimed, sender, timestamp = decode(
        ["uint256", "bool", "address", "uint256"], bytes(data)
    )
    return amount, claimed, sender.lower(), timestamp


def encode_get_meta_keys(account: AddressLike) -> bytes:
    return function_selector(GET_META_KEYS) + encode(["address"], [_address(account)])


def decode_get_meta_keys(data: bytes) -> tuple[bytes, bytes, bool]:
    """Returns (viewing pub, spending pub, registered)."""
    return tuple(decode(["bytes", "bytes", "bool"], bytes(data)))


def encode_get_username_hash(account: AddressLike) -> bytes:
    return function_selector(GET_USERNAME_HASH) + encode(
        ["address"], [_address(account)]
    )


def decode_get_username_hash(data: bytes) -> bytes:
    (username_hash,) = decode(["bytes32"], bytes(data))
    return username_hash


def encode_is_username_hash_available(username_hash: bytes) -> bytes:
    require_length(username_hash, 32, "username hash")
    return function_selector(IS_USERNAME_HASH_AVAILABLE) + encode(
        ["bytes32"], [bytes(username_hash)]
    )


def decode_bool(data: bytes) -> bool:
    (value,) = decode(["bool"], bytes(data))
    return value


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

def topic_to_address(topic: bytes) -> str:
    """Indexed address topics are left-padded to 32 bytes."""
    require_length(topic, 32, "topic")
    return "0x" + bytes(topic[12:]).hex()


def decode_stealth_payment_data(data: bytes) -> tuple[int, bytes]:
    """Non-indexed fields of ``StealthPaymentSent``: (amount, ephemeral key hash)."""
    amount, ephemeral_hash = decode(["uint256", "bytes32"], bytes(data))
    return amount, ephemeral_hash


def decode_username_registered_data(data: bytes) -> bytes:
    """Non-indexed field of ``UsernameRegistered``: the commitment."""
    (commitment,) = decode(["bytes32"], bytes(data))
    return commitment
