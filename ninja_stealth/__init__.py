"""NinjaStealth — stealth payment key management.

Security Note (Threat Model):
    Private keys live decrypted in process memory while the key manager is
    unlocked. ``lock()`` zeroes the buffers it owns, but copies made by the
    interpreter or by third-party libraries cannot be reached. Protecting
    against a memory dump of a running process is out of scope.
"""

from .version import __title__, __version__, __author__, __license__
from .conf import Settings, Argon2Config, VaultConfig, ScannerConfig
from .exceptions import (
    ErrorCode,
    StealthError,
    CryptoError,
    KeyManagementError,
    AuthError,
    StorageError,
    ValidationError,
    LedgerError,
    ProofError,
)
from .keys import KeyManager, KeySet, PublicKeys, LocalSigner, MemoryKeyStore
from .stealth import generate_stealth_payment, check_stealth_payment
from .discovery import PaymentScanner, extract_ephemeral_key

__all__ = [
    "__title__",
    "__version__",
    "__author__",
    "__license__",
    "Settings",
    "Argon2Config",
    "VaultConfig",
    "ScannerConfig",
    "ErrorCode",
    "StealthError",
    "CryptoError",
    "KeyManagementError",
    "AuthError",
    "StorageError",
    "ValidationError",
    "LedgerError",
    "ProofError",
    "KeyManager",
    "KeySet",
    "PublicKeys",
    "LocalSigner",
    "MemoryKeyStore",
    "generate_stealth_payment",
    "check_stealth_payment",
    "PaymentScanner",
    "extract_ephemeral_key",
]
