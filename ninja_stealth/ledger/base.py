"""
Ledger boundary — the chain reads payment discovery and username lookup need.

Implementations: ``JsonRpcLedger`` (aiohttp JSON-RPC). Tests provide their
own in-memory ledger.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..proofs import hash_username
from .contract import EMPTY_USERNAME_HASH

# Blocks searched backwards for a username registration
USERNAME_LOOKBACK_BLOCKS = 100_000


@dataclass(frozen=True)
class PaymentLog:
    """One decoded ``StealthPaymentSent`` event."""
    stealth_address: str
    sender: str
    amount: int
    ephemeral_pubkey_hash: bytes
    block_number: int
    transaction_hash: str
    log_index: int


@dataclass(frozen=True)
class PaymentStatus:
    """Payment state as stored by the contract."""
    amount: int
    claimed: bool
    sender: str
    timestamp: int


@dataclass(frozen=True)
class MetaKeys:
    viewing_pub: bytes
    spending_pub: bytes
    registered: bool


@dataclass(frozen=True)
class UsernameRegistration:
    """One decoded ``UsernameRegistered`` event."""
    username_hash: bytes
    user: str
    commitment: bytes
    block_number: int
    log_index: int


class LedgerClient(ABC):
    """Async read access to the payment contract and its chain."""

    @abstractmethod
    async def get_block_number(self) -> int:
        """Current chain head."""

    @abstractmethod
    async def get_stealth_payment_logs(
        self, contract_address: str, from_block: int, to_block: Optional[int] = None
    ) -> list[PaymentLog]:
        """``StealthPaymentSent`` events emitted in [from_block, to_block]."""

    @abstractmethod
    async def get_transaction_input(self, transaction_hash: str) -> bytes:
        """Raw call payload of a transaction."""

    @abstractmethod
    async def get_block_timestamp(self, block_number: int) -> int:
        """Unix timestamp of a block."""

    @abstractmethod
    async def get_stealth_payment(
        self, contract_address: str, stealth_address: str
    ) -> PaymentStatus:
        """Contract view of one stealth payment."""

    @abstractmethod
    async def get_meta_keys(self, contract_address: str, account: str) -> MetaKeys:
        """Meta public keys registered by ``account``."""

    @abstractmethod
    async def get_username_hash(self, contract_address: str, account: str) -> bytes:
        """Username hash registered by ``account``; 32 zero bytes when none."""

    @abstractmethod
    async def is_username_hash_available(
        self, contract_address: str, username_hash: bytes
    ) -> bool:
        """True if nobody has registered ``username_hash`` yet."""

    @abstractmethod
    async def get_username_registrations(
        self,
        contract_address: str,
        username_hash: bytes,
        from_block: int,
        to_block: Optional[int] = None,
    ) -> list[UsernameRegistration]:
        """``UsernameRegistered`` events for one username hash, in chain order."""

    async def has_username(self, contract_address: str, account: str) -> bool:
        username_hash = await self.get_username_hash(contract_address, account)
        return bytes(username_hash) != EMPTY_USERNAME_HASH

    async def resolve_username(
        self,
        contract_address: str,
        username: str,
        lookback: int = USERNAME_LOOKBACK_BLOCKS,
    ) -> Optional[str]:
        """Address that most recently registered ``username``, or None.

        The chain only stores username hashes, so the owner is found through
        the registration events of the last ``lookback`` blocks.
        """
        head = await self.get_block_number()
        registrations = await self.get_username_registrations(
            contract_address, hash_username(username), max(head - lookback, 0),
        )
        if not registrations:
            return None
        latest = max(registrations, key=lambda r: (r.block_number, r.log_index))
        return latest.user
