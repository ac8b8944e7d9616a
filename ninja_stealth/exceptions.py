"""
Error taxonomy for key management, vault storage and stealth payments.

Every error carries an ``ErrorCode`` so callers can branch on the kind of
failure without parsing messages. Primitive library exceptions are wrapped
into these classes at module boundaries and never leak past the KeyManager.
"""
from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Stable error codes."""

    # Password hashing / key derivation
    ARGON2_INVALID_SALT = "ARGON2_INVALID_SALT"
    ARGON2_INVALID_PASSWORD = "ARGON2_INVALID_PASSWORD"
    ARGON2_DERIVATION_FAILED = "ARGON2_DERIVATION_FAILED"
    HKDF_INVALID_LENGTH = "HKDF_INVALID_LENGTH"
    HKDF_INVALID_IKM = "HKDF_INVALID_IKM"
    HKDF_DERIVATION_FAILED = "HKDF_DERIVATION_FAILED"
    INVALID_MASTER_KEY = "INVALID_MASTER_KEY"
    INVALID_KEY_LENGTH = "INVALID_KEY_LENGTH"
    INVALID_SALT_LENGTH = "INVALID_SALT_LENGTH"
    WALLET_SIGNATURE_FAILED = "WALLET_SIGNATURE_FAILED"
    DECRYPTION_FAILED = "DECRYPTION_FAILED"
    ENCRYPTION_FAILED = "ENCRYPTION_FAILED"
    INVALID_EPHEMERAL_KEY = "INVALID_EPHEMERAL_KEY"
    INVALID_PUBLIC_KEY = "INVALID_PUBLIC_KEY"
    INVALID_PRIVATE_KEY = "INVALID_PRIVATE_KEY"
    # Key manager
    KEY_ALREADY_EXISTS = "KEY_ALREADY_EXISTS"
    KEY_NOT_INITIALIZED = "KEY_NOT_INITIALIZED"
    KEY_LOCKED = "KEY_LOCKED"
    KEY_INVALID = "KEY_INVALID"
    KEY_DERIVATION_FAILED = "KEY_DERIVATION_FAILED"
    KEY_UPDATE_FAILED = "KEY_UPDATE_FAILED"
    # Authentication
    AUTH_INVALID_PASSWORD = "AUTH_INVALID_PASSWORD"
    # Storage
    STORAGE_READ_FAILED = "STORAGE_READ_FAILED"
    STORAGE_WRITE_FAILED = "STORAGE_WRITE_FAILED"
    STORAGE_DELETE_FAILED = "STORAGE_DELETE_FAILED"
    STORAGE_CORRUPTED = "STORAGE_CORRUPTED"
    # Caller input
    INVALID_ADDRESS = "INVALID_ADDRESS"
    INVALID_HEX = "INVALID_HEX"
    INVALID_LENGTH = "INVALID_LENGTH"
    INVALID_USERNAME = "INVALID_USERNAME"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_AUTH_METHOD = "INVALID_AUTH_METHOD"
    # Ledger / proofs
    RPC_REQUEST_FAILED = "RPC_REQUEST_FAILED"
    RPC_INVALID_RESPONSE = "RPC_INVALID_RESPONSE"
    RECIPIENT_NOT_REGISTERED = "RECIPIENT_NOT_REGISTERED"
    USERNAME_NOT_FOUND = "USERNAME_NOT_FOUND"
    PROOF_GENERATION_FAILED = "PROOF_GENERATION_FAILED"


class StealthError(Exception):
    """Base exception for all ninja_stealth errors."""

    default_code = ErrorCode.KEY_INVALID

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"


class CryptoError(StealthError):
    """Bad salt/password/key input or a failing primitive."""
    default_code = ErrorCode.ARGON2_DERIVATION_FAILED


class KeyManagementError(StealthError):
    """Key lifecycle errors: already exists, not initialized, locked, invalid."""
    default_code = ErrorCode.KEY_INVALID


class AuthError(StealthError):
    """Invalid password. Decryption failures on unlock are reported as this."""
    default_code = ErrorCode.AUTH_INVALID_PASSWORD


class StorageError(StealthError):
    """Persistence read/write/delete failure."""
    default_code = ErrorCode.STORAGE_READ_FAILED


class ValidationError(StealthError):
    """Malformed address, hex or length supplied by a caller."""
    default_code = ErrorCode.INVALID_LENGTH


class LedgerError(StealthError):
    """Ledger RPC transport or response failure."""
    default_code = ErrorCode.RPC_REQUEST_FAILED


class ProofError(StealthError):
    """Proof public value computation or encoding failure."""
    default_code = ErrorCode.PROOF_GENERATION_FAILED
