"""
Key Storage — persistence of vault records keyed by account identifier.

Backends:
- ``MemoryKeyStore`` — process-local dict, for tests and ephemeral use
- ``RedisKeyStore`` — any async Redis client (``get``/``set``/``delete``/``exists``)
- ``SQLKeyStore`` — asyncpg-compatible pool, one active row per account

Records are stored as their text-safe JSON form (base64 byte fields).
``save`` overwrites; rejecting a second initialization is the key manager's job.

Security Note:
    Records contain only ciphertext and salts. Never log record contents,
    only account identifiers and operations.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from ..exceptions import ErrorCode, StorageError
from .vault import VaultRecord

logger = logging.getLogger("ninja.vault")


def normalize_account(account_id: str) -> str:
    if not account_id:
        raise StorageError(
            "Account identifier cannot be empty", ErrorCode.STORAGE_READ_FAILED
        )
    return account_id.lower()


class KeyStore(ABC):
    """Async persistence boundary for vault records."""

    @abstractmethod
    async def exists(self, account_id: str) -> bool:
        """Return True if a record is stored for ``account_id``."""

    @abstractmethod
    async def save(self, record: VaultRecord) -> None:
        """Store ``record``, replacing any previous one for its account."""

    @abstractmethod
    async def load(self, account_id: str) -> Optional[VaultRecord]:
        """Return the record for ``account_id`` or None."""

    @abstractmethod
    async def delete(self, account_id: str) -> None:
        """Remove the record for ``account_id``; no-op when absent."""


class MemoryKeyStore(KeyStore):
    """In-process store holding records in their serialized form."""

    def __init__(self):
        self._records: dict[str, bytes] = {}

    async def exists(self, account_id: str) -> bool:
        return normalize_account(account_id) in self._records

    async def save(self, record: VaultRecord) -> None:
        self._records[normalize_account(record.account_id)] = record.to_json()
        logger.debug("Key store save: account=%s", record.account_id)

    async def load(self, account_id: str) -> Optional[VaultRecord]:
        data = self._records.get(normalize_account(account_id))
        if data is None:
            return None
        return VaultRecord.from_json(data)

    async def delete(self, account_id: str) -> None:
        self._records.pop(normalize_account(account_id), None)
        logger.debug("Key store delete: account=%s", account_id)


class RedisKeyStore(KeyStore):
    """Store backed by an async Redis client."""

    def __init__(self, redis: Any, prefix: str = "ninja:keys"):
        self._redis = redis
        self._prefix = prefix

    def _redis_key(self, account_id: str) -> str:
        """Build Redis key."""
        return f"{self._prefix}:{normalize_account(account_id)}"

    async def exists(self, account_id: str) -> bool:
        key = self._redis_key(account_id)
        try:
            return bool(await self._redis.exists(key))
        except Exception as err:
            raise StorageError(
                f"Failed to check keys: {err}", ErrorCode.STORAGE_READ_FAILED
            ) from err

    async def save(self, record: VaultRecord) -> None:
        key = self._redis_key(record.account_id)
        try:
            await self._redis.set(key, record.to_json())
        except Exception as err:
            raise StorageError(
                f"Failed to save keys: {err}", ErrorCode.STORAGE_WRITE_FAILED
            ) from err
        logger.debug("Key store save: account=%s", record.account_id)

    async def load(self, account_id: str) -> Optional[VaultRecord]:
        key = self._redis_key(account_id)
        try:
            data = await self._redis.get(key)
        except Exception as err:
            raise StorageError(
                f"Failed to load keys: {err}", ErrorCode.STORAGE_READ_FAILED
            ) from err
        if data is None:
            return None
        return VaultRecord.from_json(data)

    async def delete(self, account_id: str) -> None:
        key = self._redis_key(account_id)
        try:
            await self._redis.delete(key)
        except Exception as err:
            raise StorageError(
                f"Failed to delete keys: {err}", ErrorCode.STORAGE_DELETE_FAILED
            ) from err
        logger.debug("Key store delete: account=%s", account_id)


# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_UPSERT_RECORD = """
INSERT INTO auth.stealth_key_vault (account_id, record, record_version)
VALUES ($1, $2, $3)
ON CONFLICT (account_id) WHERE deleted_at IS NULL
DO UPDATE SET record = EXCLUDED.record,
             record_version = EXCLUDED.record_version,
             updated_at = NOW()
"""

_SELECT_RECORD = """
SELECT record
FROM auth.stealth_key_vault
WHERE account_id = $1 AND deleted_at IS NULL
"""

_EXISTS_RECORD = """
SELECT 1
FROM auth.stealth_key_vault
WHERE account_id = $1 AND deleted_at IS NULL
"""

_SOFT_DELETE_RECORD = """
UPDATE auth.stealth_key_vault
SET deleted_at = NOW()
WHERE account_id = $1 AND deleted_at IS NULL
"""


class SQLKeyStore(KeyStore):
    """Store backed by an asyncpg-compatible connection pool.

    Deleted records are soft-deleted so the table keeps an audit trail.
    """

    def __init__(self, db_pool: Any):
        self._db = db_pool

    async def exists(self, account_id: str) -> bool:
        account = normalize_account(account_id)
        try:
            async with self._db.acquire() as conn:
                row = await conn.fetchval(_EXISTS_RECORD, account)
        except Exception as err:
            raise StorageError(
                f"Failed to check keys: {err}", ErrorCode.STORAGE_READ_FAILED
            ) from err
        return row is not None

    async def save(self, record: VaultRecord) -> None:
        account = normalize_account(record.account_id)
        try:
            async with self._db.acquire() as conn:
                await conn.execute(
                    _UPSERT_RECORD,
                    account, record.to_json().decode("utf-8"), record.version,
                )
        except Exception as err:
            raise StorageError(
                f"Failed to save keys: {err}", ErrorCode.STORAGE_WRITE_FAILED
            ) from err
        logger.debug("Key store save: account=%s", account)

    async def load(self, account_id: str) -> Optional[VaultRecord]:
        account = normalize_account(account_id)
        try:
            async with self._db.acquire() as conn:
                data = await conn.fetchval(_SELECT_RECORD, account)
        except Exception as err:
            raise StorageError(
                f"Failed to load keys: {err}", ErrorCode.STORAGE_READ_FAILED
            ) from err
        if data is None:
            return None
        if isinstance(data, str):
            data = data.encode("utf-8")
        return VaultRecord.from_json(data)

    async def delete(self, account_id: str) -> None:
        account = normalize_account(account_id)
        try:
            async with self._db.acquire() as conn:
                await conn.execute(_SOFT_DELETE_RECORD, account)
        except Exception as err:
            raise StorageError(
                f"Failed to delete keys: {err}", ErrorCode.STORAGE_DELETE_FAILED
            ) from err
        logger.debug("Key store delete: account=%s", account)
