"""
Proof boundary — public values for username registration and claiming.

Proof generation itself is mocked: the verifier deployed next to the
payment contract accepts any proof bytes and only re-derives the public
values. The public values computed here must match what the contract
computes, byte for byte.

Formats:
- commitment     = keccak256(abi.encode(bytes32 usernameHash, address account, bytes32 secret))
- public values  = abi.encode(bytes32 usernameHash, bytes32 commitment)
- claim values   = abi.encode(address stealth, bytes32 ephemeralHash, address claimer)
- contract proof = abi.encode(bytes32 vkey, bytes publicValues, bytes proof)
"""
import logging
import os
from dataclasses import dataclass
from typing import Optional

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak

from .exceptions import ErrorCode, ProofError
from .validation import normalize_address, require_length, validate_username

logger = logging.getLogger("ninja.proofs")

MOCK_VKEY = bytes(31) + b"\x01"
MOCK_USERNAME_PROOF = bytes.fromhex("1234567890abcdef")
MOCK_CLAIMING_PROOF = bytes.fromhex("abcdef1234567890")


@dataclass(frozen=True)
class UsernameProof:
    public_values: bytes
    vkey: bytes
    proof: bytes
    commitment: bytes
    username_hash: bytes

    def encode_for_contract(self) -> bytes:
        return encode_proof_for_contract(self.vkey, self.public_values, self.proof)


def hash_username(username: str) -> bytes:
    """keccak256 of the UTF-8 username, as the contract computes it."""
    return keccak(text=username)


def compute_commitment(username_hash: bytes, account: str, secret: bytes) -> bytes:
    require_length(username_hash, 32, "username hash")
    require_length(secret, 32, "secret")
    return keccak(encode(
        ["bytes32", "address", "bytes32"],
        [bytes(username_hash), normalize_address(account), bytes(secret)],
    ))


def generate_username_proof(
    username: str, wallet: str, secret: Optional[bytes] = None
) -> UsernameProof:
    """Build a (mock) username registration proof.

    Args:
        username: Username to register; validated first.
        wallet: Registering account.
        secret: 32-byte commitment secret; random when omitted.
    """
    validate_username(username)
    secret = secret if secret is not None else os.urandom(32)
    username_hash = hash_username(username)
    commitment = compute_commitment(username_hash, wallet, secret)
    public_values = encode(["bytes32", "bytes32"], [username_hash, commitment])
    logger.debug("Generated username proof for account=%s", normalize_address(wallet))
    return UsernameProof(
        public_values=public_values,
        vkey=MOCK_VKEY,
        proof=MOCK_USERNAME_PROOF,
        commitment=commitment,
        username_hash=username_hash,
    )


def _public_values_pair(public_values: bytes) -> tuple[bytes, bytes]:
    try:
        return tuple(decode(["bytes32", "bytes32"], bytes(public_values)))
    except DecodingError as err:
        raise ProofError(
            "Malformed public values", ErrorCode.PROOF_GENERATION_FAILED
        ) from err


def extract_username_hash(public_values: bytes) -> bytes:
    return _public_values_pair(public_values)[0]


def extract_commitment(public_values: bytes) -> bytes:
    return _public_values_pair(public_values)[1]


def encode_proof_for_contract(vkey: bytes, public_values: bytes, proof: bytes) -> bytes:
    require_length(vkey, 32, "vkey")
    return encode(
        ["bytes32", "bytes", "bytes"], [bytes(vkey), bytes(public_values), bytes(proof)]
    )


def ephemeral_pubkey_hash(ephemeral_public_key: bytes) -> bytes:
    return keccak(bytes(ephemeral_public_key))


def encode_claiming_proof(
    stealth_address: str, ephemeral_hash: bytes, claimer: str
) -> bytes:
    """Encoded (mock) proof that ``claimer`` may claim ``stealth_address``."""
    require_length(ephemeral_hash, 32, "ephemeral pubkey hash")
    public_values = encode(
        ["address", "bytes32", "address"],
        [
            normalize_address(stealth_address),
            bytes(ephemeral_hash),
            normalize_address(claimer),
        ],
    )
    return encode_proof_for_contract(MOCK_VKEY, public_values, MOCK_CLAIMING_PROOF)
