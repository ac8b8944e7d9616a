"""
Key set derivation — two-factor master key and purpose-bound sub-keys.

Runs once, at initialization: the wallet is asked for its signature only
here. Every intermediate secret (password hash, signature) is zeroed before
the function returns, on success and on failure.
"""
import logging
from typing import Any, Optional

from ..conf import Argon2Config
from ..crypto import kdf
from ..crypto.secure import is_all_zero, zeroize
from ..stealth.curve import (
    PRIVATE_KEY_SIZE,
    PUBLIC_KEY_COMPRESSED_SIZE,
    is_valid_private_key,
    private_to_public,
)
from .types import KeySet, PublicKeys, PRIVATE_FIELDS

logger = logging.getLogger("ninja.keys")


async def derive_keys(
    password: str,
    signer: Any,
    user_identifier: str,
    config: Optional[Argon2Config] = None,
    salt: Optional[bytes] = None,
    salt_length: int = kdf.MIN_SALT_LENGTH,
) -> tuple[KeySet, bytes]:
    """Derive the full key set from password + wallet signature.

    Args:
        password: User password.
        signer: Wallet exposing ``async sign_message``.
        user_identifier: Identifier embedded in the signed message.
        config: Argon2 cost parameters.
        salt: Master-key salt; a fresh one is generated when omitted.
        salt_length: Length of a freshly generated salt.

    Returns:
        Tuple of (KeySet, master-key salt).
    """
    salt = salt or kdf.generate_salt(salt_length)
    password_hash = await kdf.hash_password(password, salt, config)
    signature = None
    secrets_held: list[bytearray] = []
    try:
        signature = await kdf.derive_wallet_signature(signer, user_identifier)
        master_key = kdf.derive_master_key(password_hash, signature)
        secrets_held.append(master_key)
        storage_key = kdf.derive_storage_encryption_key(master_key)
        secrets_held.append(storage_key)
        viewing_priv = kdf.derive_meta_viewing_key(master_key)
        secrets_held.append(viewing_priv)
        spending_priv = kdf.derive_meta_spending_key(master_key)
        secrets_held.append(spending_priv)
        keys = KeySet(
            master_key=master_key,
            storage_encryption_key=storage_key,
            meta_viewing_priv=viewing_priv,
            meta_viewing_pub=_public_or_empty(viewing_priv),
            meta_spending_priv=spending_priv,
            meta_spending_pub=_public_or_empty(spending_priv),
        )
    except BaseException:
        for buf in secrets_held:
            zeroize(buf)
        raise
    finally:
        zeroize(password_hash)
        if signature is not None:
            zeroize(signature)
    logger.debug("Derived key set for user=%s", user_identifier)
    return keys, salt


def _public_or_empty(private_key: bytes) -> bytes:
    # an out-of-range scalar leaves the public key empty so validate_keys fails
    if not is_valid_private_key(private_key):
        return b""
    return private_to_public(private_key)


def validate_keys(keys: Optional[KeySet]) -> bool:
    """Check lengths, non-zero secrets and public/private consistency."""
    if keys is None:
        return False
    for name in PRIVATE_FIELDS:
        value = getattr(keys, name)
        if len(value) != PRIVATE_KEY_SIZE or is_all_zero(value):
            return False
    pairs = (
        (keys.meta_viewing_priv, keys.meta_viewing_pub),
        (keys.meta_spending_priv, keys.meta_spending_pub),
    )
    for private, public in pairs:
        if len(public) != PUBLIC_KEY_COMPRESSED_SIZE:
            return False
        if not is_valid_private_key(private):
            return False
        if private_to_public(private) != bytes(public):
            return False
    return True


def zero_keys(keys: KeySet) -> None:
    keys.zero()


def export_public_keys(keys: KeySet) -> PublicKeys:
    return keys.public_keys()
