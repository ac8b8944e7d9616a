"""Key management — derivation, vault encryption, storage and lifecycle."""

from .types import AuthMethod, KeySet, KeyManagerState, KeyStatus, PublicKeys
from .signer import WalletSigner, LocalSigner, recover_signer
from .derivation import derive_keys, validate_keys, zero_keys, export_public_keys
from .vault import VaultRecord, encrypt_key_set, decrypt_key_set
from .storage import KeyStore, MemoryKeyStore, RedisKeyStore, SQLKeyStore
from .manager import KeyManager

__all__ = [
    "AuthMethod",
    "KeySet",
    "KeyManagerState",
    "KeyStatus",
    "PublicKeys",
    "WalletSigner",
    "LocalSigner",
    "recover_signer",
    "derive_keys",
    "validate_keys",
    "zero_keys",
    "export_public_keys",
    "VaultRecord",
    "encrypt_key_set",
    "decrypt_key_set",
    "KeyStore",
    "MemoryKeyStore",
    "RedisKeyStore",
    "SQLKeyStore",
    "KeyManager",
]
