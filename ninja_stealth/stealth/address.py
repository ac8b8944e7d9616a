"""
Stealth Addresses — dual-key ECDH scheme over secp256k1.

Sender (knows the recipient's meta public keys V and S):
    r  ← random scalar, R = r·G             (published)
    h  = H(r·V)
    P  = S + h·G,  address = addr(P)        (payment destination)

Recipient (holds v and s, with V = v·G, S = s·G):
    h' = H(v·R)          (v·R = v·r·G = r·V)
    P' = S + h'·G, match when addr(P') == address
    d  = s + h' mod n    (d·G == P', spends the payment)

Security Note:
    ``check_stealth_payment`` does the same work whether or not the address
    matches, and compares addresses in constant time.
"""
import logging
import secrets
from dataclasses import dataclass, field
from typing import Optional

from coincurve import PrivateKey

from ..crypto.secure import constant_time_equal, secure_buffer
from ..exceptions import ErrorCode, ValidationError
from .curve import (
    ADDRESS_SIZE,
    SECP256K1_ORDER,
    PRIVATE_KEY_SIZE,
    hash_to_scalar,
    load_ephemeral_key,
    load_private_key,
    load_public_key,
    public_key_to_address,
)

logger = logging.getLogger("ninja.stealth")


@dataclass(frozen=True)
class StealthPayment:
    """Output of ``generate_stealth_payment``."""
    stealth_address: bytes
    ephemeral_public_key: bytes

    @property
    def stealth_address_hex(self) -> str:
        return "0x" + self.stealth_address.hex()

    @property
    def ephemeral_public_key_hex(self) -> str:
        return "0x" + self.ephemeral_public_key.hex()


@dataclass
class StealthCheckResult:
    """Outcome of scanning one (ephemeral key, address) pair."""
    is_for_me: bool
    derived_address: bytes
    stealth_private_key: Optional[bytes] = field(default=None, repr=False)


def _random_scalar() -> bytes:
    return (secrets.randbelow(SECP256K1_ORDER - 1) + 1).to_bytes(
        PRIVATE_KEY_SIZE, "big"
    )


def generate_stealth_payment(
    meta_viewing_pub: bytes,
    meta_spending_pub: bytes,
) -> StealthPayment:
    """Generate a one-time address for the owner of the given meta keys.

    Args:
        meta_viewing_pub: Recipient's public viewing key (33 or 65 bytes).
        meta_spending_pub: Recipient's public spending key (33 or 65 bytes).

    Returns:
        StealthPayment with the 20-byte address and the 33-byte ephemeral key.

    Raises:
        CryptoError: INVALID_PUBLIC_KEY when a meta key is not on the curve.
    """
    viewing = load_public_key(meta_viewing_pub)
    spending = load_public_key(meta_spending_pub)

    with secure_buffer(_random_scalar()) as r:
        ephemeral = PrivateKey(bytes(r))
        shared = viewing.multiply(bytes(r))
    h = hash_to_scalar(shared)
    stealth_point = spending.add(h)

    return StealthPayment(
        stealth_address=public_key_to_address(stealth_point),
        ephemeral_public_key=ephemeral.public_key.format(compressed=True),
    )


def check_stealth_payment(
    ephemeral_public_key: bytes,
    meta_viewing_priv: bytes,
    meta_spending_pub: bytes,
    stealth_address: bytes,
    meta_spending_priv: Optional[bytes] = None,
) -> StealthCheckResult:
    """Test whether ``stealth_address`` was generated for these keys.

    When ``meta_spending_priv`` is given, the spendable private key is
    computed on every call and returned only on a match.

    Raises:
        CryptoError: INVALID_EPHEMERAL_KEY, INVALID_PUBLIC_KEY or
            INVALID_PRIVATE_KEY.
    """
    if stealth_address is None or len(stealth_address) != ADDRESS_SIZE:
        raise ValidationError(
            "Stealth address must be 20 bytes", ErrorCode.INVALID_LENGTH
        )
    ephemeral = load_ephemeral_key(ephemeral_public_key)
    spending = load_public_key(meta_spending_pub)
    load_private_key(meta_viewing_priv)

    shared = ephemeral.multiply(bytes(meta_viewing_priv))
    h = hash_to_scalar(shared)
    derived_address = public_key_to_address(spending.add(h))
    is_for_me = constant_time_equal(derived_address, stealth_address)

    stealth_key = None
    if meta_spending_priv is not None:
        stealth_key = load_private_key(meta_spending_priv).add(h).secret
        if not is_for_me:
            stealth_key = None

    return StealthCheckResult(
        is_for_me=is_for_me,
        derived_address=derived_address,
        stealth_private_key=stealth_key,
    )


def compute_stealth_private_key(
    ephemeral_public_key: bytes,
    meta_viewing_priv: bytes,
    meta_spending_priv: bytes,
) -> bytes:
    """Compute d = s + H(v·R) mod n, the private key of a stealth address."""
    ephemeral = load_ephemeral_key(ephemeral_public_key)
    load_private_key(meta_viewing_priv)
    h = hash_to_scalar(ephemeral.multiply(bytes(meta_viewing_priv)))
    return load_private_key(meta_spending_priv).add(h).secret


def stealth_address_of(private_key: bytes) -> bytes:
    """Address controlled by a stealth private key."""
    return public_key_to_address(load_private_key(private_key).public_key)
