"""
KeyManager — lifecycle of the derived key set.

States and transitions:
- ``initialize`` Uninitialized → Unlocked (password + wallet signature)
- ``unlock``     Locked → Unlocked (password only)
- ``lock``       any → Locked (private keys zeroed in place)
- ``update_password`` re-encrypts the same keys under a new password

All transitions run under a single ``asyncio.Lock`` so an ``unlock`` cannot
race a ``lock`` on the same instance. Any failure inside ``initialize`` or
``unlock`` (cancellation included) wipes key material and leaves the
manager Locked before the error propagates.

The manager is a plain object owned by the caller; create one per process
and pass it where it is needed.

Security Note:
    Unlock failures are reported as "Invalid password" whatever the cause
    (wrong password, tampered record, corrupted record) so the error cannot
    be used as an oracle. Never log passwords or key material.
"""
import asyncio
import logging
from dataclasses import replace
from typing import Any, Optional, Union

from ..conf import Argon2Config, VaultConfig
from ..crypto.kdf import derive_unlock_key, generate_salt
from ..crypto.secure import zeroize
from ..exceptions import (
    AuthError,
    ErrorCode,
    KeyManagementError,
    StealthError,
    StorageError,
)
from .derivation import derive_keys, export_public_keys, validate_keys
from .storage import KeyStore
from .types import AuthMethod, KeyManagerState, KeySet, KeyStatus, PublicKeys
from .vault import VaultRecord, encrypt_key_set, decrypt_key_set

logger = logging.getLogger("ninja.keys")


class KeyManager:
    """Manages the stealth key set of one account at a time.

    Example::

        manager = KeyManager(MemoryKeyStore())
        await manager.initialize(password, signer, "alice@example.com", "email")
        await manager.lock()
        await manager.unlock(password, signer.address)
        keys = manager.get_keys()
    """

    def __init__(
        self,
        store: KeyStore,
        argon2: Optional[Argon2Config] = None,
        vault: Optional[VaultConfig] = None,
    ):
        self._store = store
        self._argon2 = argon2
        self._vault = vault or VaultConfig()
        self._mutex = asyncio.Lock()
        self._state = KeyManagerState()

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _wipe(self) -> None:
        """Zero held keys and move to Locked, keeping identifiers."""
        if self._state.keys is not None:
            self._state.keys.zero()
        self._state = replace(self._state, is_unlocked=False, keys=None)

    def _set_unlocked(
        self,
        keys: KeySet,
        account_id: str,
        user_identifier: str,
        auth_method: str,
    ) -> None:
        if self._state.keys is not None and self._state.keys is not keys:
            self._state.keys.zero()
        self._state = KeyManagerState(
            is_initialized=True,
            is_unlocked=True,
            account_id=account_id,
            user_identifier=user_identifier,
            auth_method=auth_method,
            keys=keys,
        )

    @property
    def state(self) -> KeyManagerState:
        """Copy of the current state, without key material."""
        return replace(self._state, keys=None)

    @property
    def status(self) -> KeyStatus:
        if self._state.is_unlocked:
            return KeyStatus.UNLOCKED
        if self._state.is_initialized:
            return KeyStatus.LOCKED
        return KeyStatus.UNINITIALIZED

    def is_initialized(self) -> bool:
        return self._state.is_initialized

    def is_unlocked(self) -> bool:
        return self._state.is_unlocked

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def initialize(
        self,
        password: str,
        signer: Any,
        user_identifier: str,
        auth_method: Union[AuthMethod, str],
    ) -> PublicKeys:
        """First-time setup: derive, encrypt, persist and unlock the keys.

        Args:
            password: User password.
            signer: Wallet with ``address`` and ``async sign_message``.
            user_identifier: Email, handle or address of the user.
            auth_method: Authentication method tag.

        Returns:
            The meta public keys to register on the ledger.

        Raises:
            KeyManagementError: KEY_ALREADY_EXISTS, KEY_INVALID or
                KEY_DERIVATION_FAILED.
            CryptoError: Invalid password input or wallet signature failure.
            StorageError: The record could not be persisted.
            ValidationError: INVALID_AUTH_METHOD for an unknown tag.
        """
        auth = AuthMethod.parse(auth_method).value
        async with self._mutex:
            keys = None
            account_id = None
            try:
                account_id = str(signer.address).lower()
                if await self._store.exists(account_id):
                    raise KeyManagementError(
                        "Keys already initialized for this wallet",
                        ErrorCode.KEY_ALREADY_EXISTS,
                    )
                keys, salt = await derive_keys(
                    password,
                    signer,
                    user_identifier,
                    self._argon2,
                    salt_length=self._vault.salt_length,
                )
                if not validate_keys(keys):
                    raise KeyManagementError(
                        "Derived keys are invalid", ErrorCode.KEY_INVALID
                    )
                unlock_salt = generate_salt(self._vault.salt_length)
                unlock_key = await derive_unlock_key(
                    password, unlock_salt, self._argon2,
                )
                try:
                    record = encrypt_key_set(
                        keys,
                        unlock_key,
                        account_id,
                        user_identifier,
                        auth,
                        salt,
                        unlock_salt,
                        cipher_backend=self._vault.cipher_backend,
                    )
                finally:
                    zeroize(unlock_key)
                await self._store.save(record)
                self._set_unlocked(keys, account_id, user_identifier, auth)
            except BaseException as err:
                if keys is not None and keys is not self._state.keys:
                    keys.zero()
                self._wipe()
                logger.warning(
                    "Key initialization failed for account=%s", account_id,
                )
                if isinstance(err, StealthError) or not isinstance(err, Exception):
                    raise
                raise KeyManagementError(
                    f"Failed to initialize keys: {err}",
                    ErrorCode.KEY_DERIVATION_FAILED,
                ) from err
        logger.info("Keys initialized for account=%s", account_id)
        return export_public_keys(keys)

    async def unlock(self, password: str, account_id: str) -> None:
        """Decrypt the stored keys with the password alone.

        Raises:
            KeyManagementError: KEY_NOT_INITIALIZED if nothing is stored.
            AuthError: AUTH_INVALID_PASSWORD for any other unlock failure.
            StorageError: The store could not be read.
        """
        async with self._mutex:
            await self._unlock(password, account_id)

    async def _unlock(self, password: str, account_id: str) -> VaultRecord:
        account = (account_id or "").lower()
        keys = None
        try:
            record = await self._store.load(account)
            if record is None:
                raise KeyManagementError(
                    "No keys found for this wallet",
                    ErrorCode.KEY_NOT_INITIALIZED,
                )
            unlock_key = await derive_unlock_key(
                password, record.unlock_salt, self._argon2,
            )
            try:
                keys = decrypt_key_set(record, unlock_key, account)
            finally:
                zeroize(unlock_key)
            if not validate_keys(keys):
                raise KeyManagementError(
                    "Decrypted keys are invalid", ErrorCode.KEY_INVALID
                )
            self._set_unlocked(
                keys, account, record.user_identifier, record.auth_method,
            )
            logger.info("Keys unlocked for account=%s", account)
            return record
        except BaseException as err:
            if keys is not None and keys is not self._state.keys:
                keys.zero()
            self._wipe()
            if not isinstance(err, Exception):
                raise
            if isinstance(err, KeyManagementError) and err.code == ErrorCode.KEY_NOT_INITIALIZED:
                raise
            if isinstance(err, StorageError) and err.code != ErrorCode.STORAGE_CORRUPTED:
                raise
            logger.warning("Unlock failed for account=%s", account)
            raise AuthError(
                "Invalid password", ErrorCode.AUTH_INVALID_PASSWORD
            ) from None

    async def lock(self) -> None:
        """Zero every private key byte and move to Locked. Idempotent."""
        async with self._mutex:
            self._wipe()
        logger.debug("Keys locked for account=%s", self._state.account_id)

    async def update_password(self, old_password: str, new_password: str) -> None:
        """Re-encrypt the existing keys under a new password.

        The master key and its salt are unchanged; only the unlock salt and
        the unlock key are replaced.

        Raises:
            KeyManagementError: KEY_NOT_INITIALIZED or KEY_UPDATE_FAILED.
            AuthError: ``old_password`` is wrong; storage is not modified.
        """
        async with self._mutex:
            account = self._state.account_id
            if not account:
                raise KeyManagementError(
                    "No wallet address in state", ErrorCode.KEY_NOT_INITIALIZED
                )
            record = await self._unlock(old_password, account)
            keys = self._state.keys
            try:
                unlock_salt = generate_salt(self._vault.salt_length)
                unlock_key = await derive_unlock_key(
                    new_password, unlock_salt, self._argon2,
                )
                try:
                    updated = encrypt_key_set(
                        keys,
                        unlock_key,
                        account,
                        record.user_identifier,
                        record.auth_method,
                        record.salt,
                        unlock_salt,
                        cipher_backend=self._vault.cipher_backend,
                    )
                finally:
                    zeroize(unlock_key)
                await self._store.save(updated)
            except StealthError:
                raise
            except Exception as err:
                raise KeyManagementError(
                    f"Failed to update password: {err}",
                    ErrorCode.KEY_UPDATE_FAILED,
                ) from err
        logger.info("Password updated for account=%s", account)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_keys(self) -> KeySet:
        """Return the in-memory key set.

        Raises:
            KeyManagementError: KEY_LOCKED unless Unlocked.
        """
        if not self._state.is_unlocked or self._state.keys is None:
            raise KeyManagementError("Keys are locked", ErrorCode.KEY_LOCKED)
        return self._state.keys

    def get_public_keys(self) -> PublicKeys:
        """Meta public keys for on-chain registration."""
        return export_public_keys(self.get_keys())

    async def keys_exist(self, account_id: str) -> bool:
        return await self._store.exists(account_id)

    async def delete_keys(self, account_id: str) -> None:
        """Permanently delete the stored keys of ``account_id``.

        If that account is the one held by this manager, its keys are wiped
        and the manager returns to Uninitialized.
        """
        async with self._mutex:
            await self._store.delete(account_id)
            if self._state.account_id == account_id.lower():
                self._wipe()
                self._state = KeyManagerState()
        logger.info("Keys deleted for account=%s", account_id.lower())
