"""
Transaction builders — stealth sends, username and meta-key registration, claims.

Recipients are given either as a 0x address or as ``@username``. Usernames
are resolved through the latest ``UsernameRegistered`` event, since the
contract only stores username hashes.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from ..exceptions import ErrorCode, LedgerError
from ..keys.types import PublicKeys
from ..ledger.base import LedgerClient
from ..ledger.contract import (
    encode_claim_from_stealth,
    encode_register_meta_keys,
    encode_register_username,
    encode_send_to_stealth,
)
from ..proofs import (
    UsernameProof,
    encode_claiming_proof,
    ephemeral_pubkey_hash,
    generate_username_proof,
    hash_username,
)
from ..stealth.address import StealthPayment, generate_stealth_payment
from ..validation import normalize_address, validate_username

logger = logging.getLogger("ninja.stealth")


@dataclass(frozen=True)
class PreparedPayment:
    payment: StealthPayment
    calldata: bytes
    amount: int
    recipient: str


@dataclass(frozen=True)
class PreparedRegistration:
    proof: UsernameProof
    calldata: bytes


@dataclass(frozen=True)
class UsernameStatus:
    """What the chain says about an account's username.

    ``username`` is only set when a candidate was supplied and its hash
    matches the registered one.
    """
    has_username: bool
    username_hash: bytes
    username: Optional[str] = None


def _is_address(recipient: str) -> bool:
    return recipient.startswith("0x") and len(recipient) == 42


async def resolve_recipient(
    ledger: LedgerClient, contract_address: str, recipient: str
) -> str:
    """Turn ``0x…`` or ``@username`` into a lower-case address.

    Raises:
        LedgerError: USERNAME_NOT_FOUND when no registration exists.
        ValidationError: Malformed address or username.
    """
    recipient = recipient.strip()
    if _is_address(recipient):
        return normalize_address(recipient)
    username = validate_username(recipient[1:] if recipient.startswith("@") else recipient)
    address = await ledger.resolve_username(normalize_address(contract_address), username)
    if address is None:
        raise LedgerError(
            f'Username "@{username}" not found', ErrorCode.USERNAME_NOT_FOUND
        )
    logger.debug("Resolved @%s to %s", username, address)
    return normalize_address(address)


async def prepare_stealth_payment(
    ledger: LedgerClient,
    contract_address: str,
    recipient: str,
    amount: int,
) -> PreparedPayment:
    """Generate a one-time address for ``recipient`` and the matching calldata.

    Raises:
        LedgerError: RECIPIENT_NOT_REGISTERED if the recipient has no meta
            keys, USERNAME_NOT_FOUND for an unknown ``@username``.
        ValidationError: Malformed recipient or non-positive amount.
    """
    contract_address = normalize_address(contract_address)
    recipient = await resolve_recipient(ledger, contract_address, recipient)
    meta = await ledger.get_meta_keys(contract_address, recipient)
    if not meta.registered:
        raise LedgerError(
            f"Recipient {recipient} has not registered meta keys",
            ErrorCode.RECIPIENT_NOT_REGISTERED,
        )
    payment = generate_stealth_payment(meta.viewing_pub, meta.spending_pub)
    calldata = encode_send_to_stealth(
        payment.stealth_address, amount, payment.ephemeral_public_key,
    )
    logger.debug("Prepared stealth payment to %s", payment.stealth_address_hex)
    return PreparedPayment(
        payment=payment, calldata=calldata, amount=amount, recipient=recipient,
    )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

async def is_username_available(
    ledger: LedgerClient, contract_address: str, username: str
) -> bool:
    validate_username(username)
    return await ledger.is_username_hash_available(
        normalize_address(contract_address), hash_username(username),
    )


async def lookup_username(
    ledger: LedgerClient,
    contract_address: str,
    account: str,
    candidate: Optional[str] = None,
) -> UsernameStatus:
    """Check whether ``account`` registered a username.

    Args:
        candidate: Locally remembered username; returned only if it hashes
            to the registered value.
    """
    username_hash = bytes(await ledger.get_username_hash(
        normalize_address(contract_address), normalize_address(account),
    ))
    if username_hash == bytes(32):
        return UsernameStatus(has_username=False, username_hash=username_hash)
    username = None
    if candidate is not None and hash_username(candidate) == username_hash:
        username = candidate
    return UsernameStatus(
        has_username=True, username_hash=username_hash, username=username,
    )


def prepare_username_registration(
    username: str, wallet: str, secret: Optional[bytes] = None
) -> PreparedRegistration:
    """Proof and ``RegisterUsername`` calldata for ``username``."""
    proof = generate_username_proof(username, wallet, secret)
    calldata = encode_register_username(
        proof.username_hash, proof.commitment, proof.encode_for_contract(),
    )
    return PreparedRegistration(proof=proof, calldata=calldata)


def prepare_meta_keys_registration(public_keys: PublicKeys) -> bytes:
    return encode_register_meta_keys(
        public_keys.meta_viewing_pub, public_keys.meta_spending_pub,
    )


def prepare_claim(
    stealth_address: str, ephemeral_public_key: bytes, claimer: str
) -> bytes:
    """``claimFromStealth`` calldata moving a payment to ``claimer``."""
    proof = encode_claiming_proof(
        stealth_address, ephemeral_pubkey_hash(ephemeral_public_key), claimer,
    )
    return encode_claim_from_stealth(stealth_address, proof)
