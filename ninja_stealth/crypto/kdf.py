"""
Key Derivation — Argon2id password hashing and HKDF key hierarchy.

Derivation flow:
- Password + salt → Argon2id → password hash (32B)
- Wallet signature over a fixed message → 65B (something you have)
- HKDF(password hash ‖ signature, "NinjaRupiah-master-salt-v1") → master key
- HKDF(master key, "NinjaRupiah-subkey-salt-v1", "<purpose>") → sub-keys
- Password + unlock salt → Argon2id → HKDF("NinjaRupiah-unlock-salt-v1")
  → unlock key, which only ever encrypts/decrypts the stored key set

Every HKDF salt is the Keccak-256 digest of a versioned label, so no two
derivations in the system can share a salt/info pair.

Security Note:
    Never log passwords, hashes, signatures or derived keys.
"""
import asyncio
import logging
import secrets
from functools import partial
from typing import Any, Optional

from argon2.exceptions import Argon2Error
from argon2.low_level import Type, hash_secret_raw
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from eth_utils import keccak

from ..conf import Argon2Config
from ..exceptions import CryptoError, ErrorCode
from .secure import secure_buffer, zeroize

logger = logging.getLogger("ninja.kdf")

KEY_LENGTH = 32
MIN_SALT_LENGTH = 16
MAX_SUBKEY_LENGTH = 255
MAX_HKDF_LENGTH = 255 * 32  # RFC 5869 limit for SHA-256
SIGNATURE_LENGTH = 65  # r ‖ s ‖ v

# Domain separation labels
MASTER_SALT_LABEL = b"NinjaRupiah-master-salt-v1"
MASTER_INFO = b"master-key-v1"
SUBKEY_SALT_LABEL = b"NinjaRupiah-subkey-salt-v1"
SUBKEY_INFO_PREFIX = "NinjaRupiah-v1: "
UNLOCK_SALT_LABEL = b"NinjaRupiah-unlock-salt-v1"
UNLOCK_INFO = b"NinjaRupiah-v1: unlock-key"

# Sub-key purposes
PURPOSE_STORAGE = "storage-encryption"
PURPOSE_META_VIEWING = "meta-viewing-key"
PURPOSE_META_SPENDING = "meta-spending-key"

SIGNATURE_MESSAGE_TEMPLATE = (
    "NinjaRupiah - Secure Key Derivation\n"
    "\n"
    "This signature is used to derive your private keys.\n"
    "It combines with your password to create your:\n"
    "- Viewing key (to receive payments)\n"
    "- Spending key (to send payments)\n"
    "\n"
    "This signature does NOT authorize any transaction.\n"
    "Your keys are stored locally and never leave your device.\n"
    "\n"
    "User: {user}\n"
    "Version: v1.0"
)

DEFAULT_ARGON2_CONFIG = Argon2Config()


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def _argon2id(password: bytes, salt: bytes, config: Argon2Config) -> bytes:
    return hash_secret_raw(
        secret=password,
        salt=salt,
        time_cost=config.time_cost,
        memory_cost=config.memory_cost,
        parallelism=config.parallelism,
        hash_len=config.hash_length,
        type=Type.ID,
    )


async def hash_password(
    password: str,
    salt: bytes,
    config: Optional[Argon2Config] = None,
) -> bytearray:
    """Hash a password with Argon2id.

    The hash runs in the default executor so the event loop keeps serving
    other work while the (deliberately slow) computation is in progress.

    Args:
        password: User password, must not be empty.
        salt: Random salt of at least 16 bytes.
        config: Argon2 cost parameters (defaults to 64 MiB / 3 / 4).

    Returns:
        Password hash as a ``bytearray`` the caller is expected to zero.

    Raises:
        CryptoError: ARGON2_INVALID_SALT, ARGON2_INVALID_PASSWORD or
            ARGON2_DERIVATION_FAILED.
    """
    if salt is None or len(salt) < MIN_SALT_LENGTH:
        raise CryptoError(
            f"Salt must be at least {MIN_SALT_LENGTH} bytes",
            ErrorCode.ARGON2_INVALID_SALT,
        )
    if not password:
        raise CryptoError(
            "Password cannot be empty", ErrorCode.ARGON2_INVALID_PASSWORD
        )
    config = config or DEFAULT_ARGON2_CONFIG
    loop = asyncio.get_running_loop()
    try:
        digest = await loop.run_in_executor(
            None,
            partial(_argon2id, password.encode("utf-8"), bytes(salt), config),
        )
    except Argon2Error as err:
        raise CryptoError(
            f"Failed to derive password hash: {err}",
            ErrorCode.ARGON2_DERIVATION_FAILED,
        ) from err
    return bytearray(digest)


# ---------------------------------------------------------------------------
# HKDF
# ---------------------------------------------------------------------------

def derive_key(
    input_key_material: bytes,
    length: int,
    salt: Optional[bytes] = None,
    info: Optional[bytes] = None,
) -> bytes:
    """HKDF-SHA256 extract-and-expand.

    Raises:
        CryptoError: HKDF_INVALID_LENGTH or HKDF_INVALID_IKM.
    """
    if length <= 0 or length > MAX_HKDF_LENGTH:
        raise CryptoError(
            "Invalid key length for HKDF", ErrorCode.HKDF_INVALID_LENGTH
        )
    if not input_key_material:
        raise CryptoError(
            "Input key material cannot be empty", ErrorCode.HKDF_INVALID_IKM
        )
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        info=info,
    )
    return hkdf.derive(bytes(input_key_material))


def derive_master_key(password_hash: bytes, wallet_signature: bytes) -> bytearray:
    """Combine the password hash and the wallet signature into the master key.

    Deterministic: the same (hash, signature) pair always yields the same key.

    Args:
        password_hash: 32-byte Argon2id output.
        wallet_signature: 65-byte deterministic wallet signature.

    Returns:
        32-byte master key.
    """
    with secure_buffer(bytes(password_hash) + bytes(wallet_signature)) as ikm:
        master = derive_key(
            ikm, KEY_LENGTH, salt=keccak(MASTER_SALT_LABEL), info=MASTER_INFO,
        )
    return bytearray(master)


def derive_sub_key(master_key: bytes, purpose: str, length: int = KEY_LENGTH) -> bytearray:
    """Derive a purpose-bound key from the master key.

    Raises:
        CryptoError: INVALID_MASTER_KEY or INVALID_KEY_LENGTH.
    """
    if master_key is None or len(master_key) != KEY_LENGTH:
        raise CryptoError(
            "Master key must be 32 bytes", ErrorCode.INVALID_MASTER_KEY
        )
    if length <= 0 or length > MAX_SUBKEY_LENGTH:
        raise CryptoError(
            "Output length must be between 1 and 255 bytes",
            ErrorCode.INVALID_KEY_LENGTH,
        )
    info = f"{SUBKEY_INFO_PREFIX}{purpose}".encode("utf-8")
    return bytearray(
        derive_key(master_key, length, salt=keccak(SUBKEY_SALT_LABEL), info=info)
    )


def derive_storage_encryption_key(master_key: bytes) -> bytearray:
    """Key for encrypting user data at rest."""
    return derive_sub_key(master_key, PURPOSE_STORAGE)


def derive_meta_viewing_key(master_key: bytes) -> bytearray:
    """Private meta-viewing key, used to detect incoming stealth payments."""
    return derive_sub_key(master_key, PURPOSE_META_VIEWING)


def derive_meta_spending_key(master_key: bytes) -> bytearray:
    """Private meta-spending key, used to spend stealth payments."""
    return derive_sub_key(master_key, PURPOSE_META_SPENDING)


async def derive_unlock_key(
    password: str,
    unlock_salt: bytes,
    config: Optional[Argon2Config] = None,
) -> bytearray:
    """Derive the vault unlock key from the password alone.

    Uses a salt distinct from the master-key path; the wallet signature is
    never an input, so unlocking never needs the wallet.
    """
    password_hash = await hash_password(password, unlock_salt, config)
    try:
        unlock_key = derive_key(
            password_hash,
            KEY_LENGTH,
            salt=keccak(UNLOCK_SALT_LABEL),
            info=UNLOCK_INFO,
        )
    finally:
        zeroize(password_hash)
    return bytearray(unlock_key)


def generate_salt(length: int = MIN_SALT_LENGTH) -> bytes:
    """Generate a random salt for Argon2.

    Raises:
        CryptoError: INVALID_SALT_LENGTH below 16 bytes.
    """
    if length < MIN_SALT_LENGTH:
        raise CryptoError(
            f"Salt length must be at least {MIN_SALT_LENGTH} bytes",
            ErrorCode.INVALID_SALT_LENGTH,
        )
    return secrets.token_bytes(length)


# ---------------------------------------------------------------------------
# Wallet signature
# ---------------------------------------------------------------------------

def build_signature_message(user_identifier: str) -> str:
    """Return the fixed message the wallet signs for key derivation."""
    return SIGNATURE_MESSAGE_TEMPLATE.format(user=user_identifier)


async def derive_wallet_signature(signer: Any, user_identifier: str) -> bytearray:
    """Ask the wallet for its deterministic signature over the key message.

    Args:
        signer: Object exposing ``async sign_message(message) -> "0x..."``.
        user_identifier: Email, handle, phone or address of the user.

    Returns:
        65-byte signature.

    Raises:
        CryptoError: WALLET_SIGNATURE_FAILED.
    """
    message = build_signature_message(user_identifier)
    logger.debug("Requesting wallet signature for key derivation")
    try:
        signature = await signer.sign_message(message)
        raw = signature[2:] if signature.startswith(("0x", "0X")) else signature
        sig_bytes = bytearray.fromhex(raw)
    except CryptoError:
        raise
    except Exception as err:
        raise CryptoError(
            f"Failed to derive wallet signature: {err}",
            ErrorCode.WALLET_SIGNATURE_FAILED,
        ) from err
    if len(sig_bytes) != SIGNATURE_LENGTH:
        zeroize(sig_bytes)
        raise CryptoError(
            f"Wallet signature must be {SIGNATURE_LENGTH} bytes",
            ErrorCode.WALLET_SIGNATURE_FAILED,
        )
    return sig_bytes
