"""
Key Vault Crypto — authenticated encryption of the derived key set.

Record layout:
- Key set → orjson → AEAD(unlock key, nonce 12B, AAD) → ciphertext ‖ tag 16B
- AAD = orjson({account, auth, cipher, user, version}) with sorted keys, so a
  record cannot be replayed under another account context.
- Salts (master-key and unlock) are stored in clear next to the ciphertext.

Security Note:
    Never log plaintext or ciphertext values. The serialized plaintext is an
    immutable ``bytes`` object for the duration of one encrypt/decrypt call;
    this is an accepted limitation of the Python runtime.
"""
import base64
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from ..exceptions import CryptoError, ErrorCode, StorageError
from .types import KeySet

logger = logging.getLogger("ninja.vault")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16
KEY_LENGTH = 32
RECORD_VERSION = 1

_CIPHERS = {
    "aesgcm": AESGCM,
    "chacha20": ChaCha20Poly1305,
}

_BYTES_FIELDS = ("ciphertext", "nonce", "tag", "salt", "unlock_salt")


def _get_cipher_cls(backend: str) -> type:
    try:
        return _CIPHERS[backend.lower()]
    except KeyError:
        raise CryptoError(
            f"Unsupported cipher backend: {backend}", ErrorCode.ENCRYPTION_FAILED
        ) from None


def _b64(data: bytes) -> str:
    return base64.b64encode(bytes(data)).decode("ascii")


def _unb64(data: str) -> bytes:
    return base64.b64decode(data.encode("ascii"), validate=True)


@dataclass
class VaultRecord:
    """Persisted, encrypted key set of one account."""
    ciphertext: bytes
    nonce: bytes
    tag: bytes
    salt: bytes  # master-key salt
    unlock_salt: bytes
    account_id: str
    user_identifier: str
    auth_method: str
    version: int = RECORD_VERSION
    cipher: str = "aesgcm"
    created_at: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self) -> dict[str, Any]:
        """Text-safe form: byte fields become base64 strings."""
        return {
            "ciphertext": _b64(self.ciphertext),
            "nonce": _b64(self.nonce),
            "tag": _b64(self.tag),
            "salt": _b64(self.salt),
            "unlockSalt": _b64(self.unlock_salt),
            "accountId": self.account_id,
            "userIdentifier": self.user_identifier,
            "authMethod": self.auth_method,
            "version": self.version,
            "cipher": self.cipher,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VaultRecord":
        """Rebuild a record from ``to_dict`` output.

        Raises:
            StorageError: STORAGE_CORRUPTED for missing or malformed fields.
        """
        try:
            return cls(
                ciphertext=_unb64(data["ciphertext"]),
                nonce=_unb64(data["nonce"]),
                tag=_unb64(data["tag"]),
                salt=_unb64(data["salt"]),
                unlock_salt=_unb64(data["unlockSalt"]),
                account_id=str(data["accountId"]),
                user_identifier=str(data["userIdentifier"]),
                auth_method=str(data["authMethod"]),
                version=int(data.get("version", RECORD_VERSION)),
                cipher=str(data.get("cipher", "aesgcm")),
                created_at=int(data.get("createdAt", 0)),
            )
        except (KeyError, TypeError, ValueError) as err:
            raise StorageError(
                f"Malformed vault record: {err}", ErrorCode.STORAGE_CORRUPTED
            ) from err

    def to_json(self) -> bytes:
        return orjson.dumps(self.to_dict())

    @classmethod
    def from_json(cls, data: bytes) -> "VaultRecord":
        try:
            parsed = orjson.loads(data)
        except orjson.JSONDecodeError as err:
            raise StorageError(
                f"Malformed vault record: {err}", ErrorCode.STORAGE_CORRUPTED
            ) from err
        if not isinstance(parsed, dict):
            raise StorageError(
                "Malformed vault record", ErrorCode.STORAGE_CORRUPTED
            )
        return cls.from_dict(parsed)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def serialize_key_set(keys: KeySet) -> bytes:
    """Serialize every component of a key set for encryption."""
    return orjson.dumps({
        "masterKey": _b64(keys.master_key),
        "storageEncryptionKey": _b64(keys.storage_encryption_key),
        "metaViewingPriv": _b64(keys.meta_viewing_priv),
        "metaViewingPub": _b64(keys.meta_viewing_pub),
        "metaSpendingPriv": _b64(keys.meta_spending_priv),
        "metaSpendingPub": _b64(keys.meta_spending_pub),
    })


def deserialize_key_set(data: bytes) -> KeySet:
    parsed = orjson.loads(data)
    return KeySet(
        master_key=bytearray(_unb64(parsed["masterKey"])),
        storage_encryption_key=bytearray(_unb64(parsed["storageEncryptionKey"])),
        meta_viewing_priv=bytearray(_unb64(parsed["metaViewingPriv"])),
        meta_viewing_pub=_unb64(parsed["metaViewingPub"]),
        meta_spending_priv=bytearray(_unb64(parsed["metaSpendingPriv"])),
        meta_spending_pub=_unb64(parsed["metaSpendingPub"]),
    )


def associated_data(
    account_id: str,
    user_identifier: str,
    auth_method: str,
    version: int = RECORD_VERSION,
    cipher: str = "aesgcm",
) -> bytes:
    """Build the AAD binding a ciphertext to its account context."""
    return orjson.dumps(
        {
            "account": account_id.lower(),
            "user": user_identifier,
            "auth": auth_method,
            "version": version,
            "cipher": cipher,
        },
        option=orjson.OPT_SORT_KEYS,
    )


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------

def encrypt_key_set(
    keys: KeySet,
    unlock_key: bytes,
    account_id: str,
    user_identifier: str,
    auth_method: str,
    salt: bytes,
    unlock_salt: bytes,
    cipher_backend: str = "aesgcm",
) -> VaultRecord:
    """Encrypt a key set under the unlock key.

    Args:
        keys: Key set to protect.
        unlock_key: 32-byte key from ``derive_unlock_key``.
        account_id: Wallet address owning the record.
        user_identifier: User identifier bound into the AAD.
        auth_method: Authentication method bound into the AAD.
        salt: Master-key salt (stored in clear).
        unlock_salt: Unlock-key salt (stored in clear).
        cipher_backend: "aesgcm" or "chacha20".

    Returns:
        VaultRecord ready to persist.
    """
    if unlock_key is None or len(unlock_key) != KEY_LENGTH:
        raise CryptoError(
            "Unlock key must be 32 bytes", ErrorCode.ENCRYPTION_FAILED
        )
    backend = cipher_backend.lower()
    cipher = _get_cipher_cls(backend)(bytes(unlock_key))
    nonce = os.urandom(NONCE_SIZE)
    aad = associated_data(account_id, user_identifier, auth_method, cipher=backend)
    sealed = cipher.encrypt(nonce, serialize_key_set(keys), aad)
    logger.debug("Encrypted key set for account=%s", account_id.lower())
    return VaultRecord(
        ciphertext=sealed[:-TAG_SIZE],
        nonce=nonce,
        tag=sealed[-TAG_SIZE:],
        salt=bytes(salt),
        unlock_salt=bytes(unlock_salt),
        account_id=account_id.lower(),
        user_identifier=user_identifier,
        auth_method=auth_method,
        cipher=backend,
    )


def decrypt_key_set(
    record: VaultRecord,
    unlock_key: bytes,
    account_id: Optional[str] = None,
) -> KeySet:
    """Verify and decrypt a vault record.

    When ``account_id`` is given the AAD is built from it instead of the
    record's own field, so a record stored under another account fails.

    Raises:
        CryptoError: DECRYPTION_FAILED on any mismatch. The message does not
            say whether the key, the tag or the AAD was wrong.
    """
    try:
        if len(record.nonce) != NONCE_SIZE or len(record.tag) != TAG_SIZE:
            raise ValueError("malformed nonce or tag")
        cipher = _get_cipher_cls(record.cipher)(bytes(unlock_key))
        aad = associated_data(
            account_id if account_id is not None else record.account_id,
            record.user_identifier,
            record.auth_method,
            version=record.version,
            cipher=record.cipher.lower(),
        )
        plaintext = cipher.decrypt(record.nonce, record.ciphertext + record.tag, aad)
        return deserialize_key_set(plaintext)
    except (InvalidTag, CryptoError, KeyError, TypeError, ValueError) as err:
        raise CryptoError(
            "Failed to decrypt keys", ErrorCode.DECRYPTION_FAILED
        ) from err
