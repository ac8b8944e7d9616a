"""Primitive crypto layer — Argon2id, HKDF and secure buffer helpers."""

from .kdf import (
    hash_password,
    derive_key,
    derive_master_key,
    derive_sub_key,
    derive_storage_encryption_key,
    derive_meta_viewing_key,
    derive_meta_spending_key,
    derive_unlock_key,
    derive_wallet_signature,
    build_signature_message,
    generate_salt,
)
from .secure import zeroize, secure_buffer, constant_time_equal, is_all_zero

__all__ = [
    "hash_password",
    "derive_key",
    "derive_master_key",
    "derive_sub_key",
    "derive_storage_encryption_key",
    "derive_meta_viewing_key",
    "derive_meta_spending_key",
    "derive_unlock_key",
    "derive_wallet_signature",
    "build_signature_message",
    "generate_salt",
    "zeroize",
    "secure_buffer",
    "constant_time_equal",
    "is_all_zero",
]
