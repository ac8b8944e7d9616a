"""Shared fixtures: fast Argon2 parameters, deterministic signers, key sets."""
import asyncio

import pytest

from ninja_stealth.conf import Argon2Config
from ninja_stealth.crypto import kdf
from ninja_stealth.exceptions import ErrorCode, LedgerError
from ninja_stealth.keys import KeyManager, KeySet, LocalSigner, MemoryKeyStore
from ninja_stealth.ledger.base import (
    LedgerClient,
    MetaKeys,
    PaymentStatus,
    UsernameRegistration,
)
from ninja_stealth.stealth.curve import private_to_public

PASSWORD = "Correct1!Password"
CONTRACT = "0x3c2d3963500945e6596f7ebead989bd927597251"


def make_key_set(seed: int) -> KeySet:
    """Build a valid key set from a deterministic master key."""
    master = bytearray(seed.to_bytes(32, "big"))
    viewing = kdf.derive_meta_viewing_key(master)
    spending = kdf.derive_meta_spending_key(master)
    return KeySet(
        master_key=master,
        storage_encryption_key=kdf.derive_storage_encryption_key(master),
        meta_viewing_priv=viewing,
        meta_viewing_pub=private_to_public(viewing),
        meta_spending_priv=spending,
        meta_spending_pub=private_to_public(spending),
    )


class FailingSigner:
    """Wallet that refuses to sign."""
    address = "0x000000000000000000000000000000000000dead"

    async def sign_message(self, message: str) -> str:
        raise RuntimeError("user rejected the request")


class StaticKeyManager:
    """Read-only key source for the scanner."""

    def __init__(self, keys=None):
        self.keys = keys

    def is_unlocked(self) -> bool:
        return self.keys is not None

    def get_keys(self) -> KeySet:
        return self.keys


class FakeLedger(LedgerClient):
    """In-memory ledger keyed by transaction hash."""

    def __init__(self, head=1000):
        self.head = head
        self.logs = []
        self.inputs = {}
        self.timestamps = {}
        self.statuses = {}
        self.meta = {}
        self.username_hashes = {}
        self.registrations = []
        self.requested_from = None
        self.calls = 0
        # when set, get_transaction_input waits on it
        self.input_gate: asyncio.Event | None = None
        self.input_requested = asyncio.Event()

    def register_username(self, username_hash, user, block_number, log_index=0):
        self.username_hashes[user] = username_hash
        self.registrations.append(UsernameRegistration(
            username_hash=username_hash,
            user=user,
            commitment=bytes(32),
            block_number=block_number,
            log_index=log_index,
        ))

    def add(self, log, payload=None, timestamp=0, claimed=False):
        self.logs.append(log)
        if payload is not None:
            self.inputs[log.transaction_hash] = payload
        self.timestamps[log.block_number] = timestamp
        self.statuses[log.stealth_address] = PaymentStatus(
            amount=log.amount, claimed=claimed, sender=log.sender, timestamp=timestamp,
        )

    async def get_block_number(self):
        self.calls += 1
        return self.head

    async def get_stealth_payment_logs(self, contract_address, from_block, to_block=None):
        self.calls += 1
        self.requested_from = from_block
        return list(self.logs)

    async def get_transaction_input(self, transaction_hash):
        self.input_requested.set()
        if self.input_gate is not None:
            await self.input_gate.wait()
        if transaction_hash not in self.inputs:
            raise LedgerError("transaction not found", ErrorCode.RPC_INVALID_RESPONSE)
        return self.inputs[transaction_hash]

    async def get_block_timestamp(self, block_number):
        return self.timestamps[block_number]

    async def get_stealth_payment(self, contract_address, stealth_address):
        return self.statuses[stealth_address]

    async def get_meta_keys(self, contract_address, account):
        return self.meta.get(account, MetaKeys(b"", b"", False))

    async def get_username_hash(self, contract_address, account):
        return self.username_hashes.get(account, bytes(32))

    async def is_username_hash_available(self, contract_address, username_hash):
        return username_hash not in self.username_hashes.values()

    async def get_username_registrations(
        self, contract_address, username_hash, from_block, to_block=None
    ):
        self.requested_from = from_block
        return [
            r for r in self.registrations
            if r.username_hash == username_hash and r.block_number >= from_block
        ]


@pytest.fixture
def argon2_config():
    """Cheap Argon2 parameters so the suite stays fast."""
    return Argon2Config(memory_cost=1024, time_cost=1, parallelism=1)


@pytest.fixture
def signer():
    return LocalSigner(bytes([0x11]) * 32)


@pytest.fixture
def other_signer():
    return LocalSigner(bytes([0x22]) * 32)


@pytest.fixture
def store():
    return MemoryKeyStore()


@pytest.fixture
def manager(store, argon2_config):
    return KeyManager(store, argon2=argon2_config)


@pytest.fixture
def key_set():
    return make_key_set(0xA11CE)
