"""
Wallet signers — the "something you have" factor of key derivation.

The key manager only needs one capability from a wallet: a deterministic
signature over a fixed message. ``LocalSigner`` provides it for a local
secp256k1 key using EIP-191 personal-sign and RFC 6979 nonces, so the same
key and message always produce the same 65-byte signature.
"""
from abc import ABC, abstractmethod

from coincurve import PrivateKey, PublicKey
from eth_utils import keccak

from ..exceptions import CryptoError, ErrorCode
from ..stealth.curve import load_private_key, public_key_to_address

_EIP191_PREFIX = b"\x19Ethereum Signed Message:\n"


def personal_message_hash(message: str) -> bytes:
    """EIP-191 hash of a text message."""
    data = message.encode("utf-8")
    return keccak(_EIP191_PREFIX + str(len(data)).encode("ascii") + data)


class WalletSigner(ABC):
    """A wallet able to sign the key-derivation message."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Lower-case 0x address identifying the account."""

    @abstractmethod
    async def sign_message(self, message: str) -> str:
        """Return a 0x-prefixed hex signature over ``message``."""


class LocalSigner(WalletSigner):
    """Signer backed by an in-process secp256k1 private key."""

    def __init__(self, private_key: bytes):
        self._key = load_private_key(private_key)
        self._address = "0x" + public_key_to_address(self._key.public_key).hex()

    @classmethod
    def generate(cls) -> "LocalSigner":
        return cls(PrivateKey().secret)

    @property
    def address(self) -> str:
        return self._address

    async def sign_message(self, message: str) -> str:
        signature = self._key.sign_recoverable(
            personal_message_hash(message), hasher=None,
        )
        # libsecp256k1 returns recid 0/1; Ethereum wallets use v = 27/28
        return "0x" + signature[:64].hex() + f"{signature[64] + 27:02x}"


def recover_signer(message: str, signature: str) -> str:
    """Recover the address that produced an EIP-191 signature.

    Raises:
        CryptoError: WALLET_SIGNATURE_FAILED for malformed signatures.
    """
    try:
        raw = bytes.fromhex(signature[2:] if signature.startswith("0x") else signature)
        if len(raw) != 65:
            raise ValueError("signature must be 65 bytes")
        v = raw[64] - 27 if raw[64] >= 27 else raw[64]
        public = PublicKey.from_signature_and_message(
            raw[:64] + bytes([v]), personal_message_hash(message), hasher=None,
        )
    except ValueError as err:
        raise CryptoError(
            f"Cannot recover signer: {err}", ErrorCode.WALLET_SIGNATURE_FAILED
        ) from err
    return "0x" + public_key_to_address(public).hex()
