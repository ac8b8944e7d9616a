"""Stealth Address Engine — one-time addresses and payment matching."""

from .address import (
    StealthPayment,
    StealthCheckResult,
    generate_stealth_payment,
    check_stealth_payment,
    compute_stealth_private_key,
    stealth_address_of,
)
from .curve import (
    SECP256K1_ORDER,
    load_public_key,
    load_ephemeral_key,
    private_to_public,
    public_key_to_address,
)

__all__ = [
    "StealthPayment",
    "StealthCheckResult",
    "generate_stealth_payment",
    "check_stealth_payment",
    "compute_stealth_private_key",
    "stealth_address_of",
    "SECP256K1_ORDER",
    "load_public_key",
    "load_ephemeral_key",
    "private_to_public",
    "public_key_to_address",
]
