"""
secp256k1 helpers built on coincurve (libsecp256k1).

Public keys travel as 33-byte compressed points; 65-byte uncompressed
points are accepted on input. Addresses follow the Ethereum format:
the last 20 bytes of Keccak-256 over the uncompressed X ‖ Y coordinates.
"""
from coincurve import PrivateKey, PublicKey
from eth_utils import keccak

from ..crypto.secure import is_all_zero
from ..exceptions import CryptoError, ErrorCode

SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

PRIVATE_KEY_SIZE = 32
PUBLIC_KEY_COMPRESSED_SIZE = 33
PUBLIC_KEY_UNCOMPRESSED_SIZE = 65
ADDRESS_SIZE = 20


def _parse_point(data: bytes) -> PublicKey:
    if len(data) not in (PUBLIC_KEY_COMPRESSED_SIZE, PUBLIC_KEY_UNCOMPRESSED_SIZE):
        raise ValueError(f"unexpected point length {len(data)}")
    if is_all_zero(data):
        raise ValueError("identity point")
    return PublicKey(bytes(data))


def load_public_key(data: bytes) -> PublicKey:
    """Parse a meta public key, rejecting anything not on the curve.

    Raises:
        CryptoError: INVALID_PUBLIC_KEY.
    """
    try:
        return _parse_point(data)
    except (TypeError, ValueError) as err:
        raise CryptoError(
            f"Invalid public key: {err}", ErrorCode.INVALID_PUBLIC_KEY
        ) from err


def load_ephemeral_key(data: bytes) -> PublicKey:
    """Parse an ephemeral public key published with a payment.

    Raises:
        CryptoError: INVALID_EPHEMERAL_KEY for zero, identity or off-curve input.
    """
    try:
        return _parse_point(data)
    except (TypeError, ValueError) as err:
        raise CryptoError(
            f"Invalid ephemeral key: {err}", ErrorCode.INVALID_EPHEMERAL_KEY
        ) from err


def load_private_key(data: bytes) -> PrivateKey:
    """Parse a 32-byte scalar in [1, n-1].

    Raises:
        CryptoError: INVALID_PRIVATE_KEY.
    """
    if data is None or len(data) != PRIVATE_KEY_SIZE or is_all_zero(data):
        raise CryptoError("Invalid private key", ErrorCode.INVALID_PRIVATE_KEY)
    try:
        return PrivateKey(bytes(data))
    except ValueError as err:
        raise CryptoError(
            "Invalid private key", ErrorCode.INVALID_PRIVATE_KEY
        ) from err


def is_valid_private_key(data: bytes) -> bool:
    if data is None or len(data) != PRIVATE_KEY_SIZE:
        return False
    value = int.from_bytes(bytes(data), "big")
    return 0 < value < SECP256K1_ORDER


def private_to_public(private_key: bytes, compressed: bool = True) -> bytes:
    """Return the public point for a private scalar."""
    return load_private_key(private_key).public_key.format(compressed=compressed)


def public_key_to_address(public_key) -> bytes:
    """Derive the 20-byte address of a public point."""
    if not isinstance(public_key, PublicKey):
        public_key = load_public_key(public_key)
    uncompressed = public_key.format(compressed=False)
    return keccak(uncompressed[1:])[-ADDRESS_SIZE:]


def hash_to_scalar(point: PublicKey) -> bytes:
    """Hash a shared point to a 32-byte scalar in [1, n-1]."""
    digest = int.from_bytes(keccak(point.format(compressed=True)), "big")
    scalar = digest % SECP256K1_ORDER
    if scalar == 0:
        raise CryptoError("Shared secret hashed to zero", ErrorCode.KEY_INVALID)
    return scalar.to_bytes(PRIVATE_KEY_SIZE, "big")
