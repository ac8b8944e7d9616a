"""Input validation for caller-supplied passwords, usernames, addresses and hex."""
import re
from dataclasses import dataclass, field
from typing import Union

from .exceptions import ErrorCode, ValidationError

MIN_PASSWORD_LENGTH = 12
MIN_USERNAME_LENGTH = 1
MAX_USERNAME_LENGTH = 32

USERNAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._-]*[a-z0-9]$")
_SINGLE_CHAR_USERNAME = re.compile(r"^[a-z0-9]$")
_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")
_HEX_PATTERN = re.compile(r"^[0-9a-fA-F]*$")
_SPECIAL_CHARS = re.compile(r"[^A-Za-z0-9]")


@dataclass
class PasswordValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


def validate_password(password: str) -> PasswordValidationResult:
    """Check a password against the strength policy.

    Policy: at least 12 characters with an upper-case letter, a lower-case
    letter, a digit and a special character. All violations are reported.
    """
    errors = []
    password = password or ""
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain an uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain a lowercase letter")
    if not re.search(r"[0-9]", password):
        errors.append("Password must contain a number")
    if not _SPECIAL_CHARS.search(password):
        errors.append("Password must contain a special character")
    return PasswordValidationResult(is_valid=not errors, errors=errors)


def validate_username(username: str) -> str:
    """Return ``username`` if it is a valid registry name.

    Raises:
        ValidationError: INVALID_USERNAME.
    """
    if not username or not (MIN_USERNAME_LENGTH <= len(username) <= MAX_USERNAME_LENGTH):
        raise ValidationError(
            f"Username must be {MIN_USERNAME_LENGTH}-{MAX_USERNAME_LENGTH} characters",
            ErrorCode.INVALID_USERNAME,
        )
    if not (USERNAME_PATTERN.match(username) or _SINGLE_CHAR_USERNAME.match(username)):
        raise ValidationError(
            "Username may only contain a-z, 0-9, '.', '_' and '-', "
            "and must start and end with a letter or digit",
            ErrorCode.INVALID_USERNAME,
        )
    return username


def normalize_address(address: Union[str, bytes]) -> str:
    """Return a lower-case 0x address.

    Raises:
        ValidationError: INVALID_ADDRESS.
    """
    if isinstance(address, (bytes, bytearray)):
        if len(address) != 20:
            raise ValidationError(
                f"Address must be 20 bytes, got {len(address)}",
                ErrorCode.INVALID_ADDRESS,
            )
        return "0x" + bytes(address).hex()
    if not isinstance(address, str) or not _ADDRESS_PATTERN.match(address):
        raise ValidationError(
            f"Invalid address: {address!r}", ErrorCode.INVALID_ADDRESS
        )
    return address.lower()


def hex_to_bytes(value: str) -> bytes:
    """Decode hex with or without a 0x prefix.

    Raises:
        ValidationError: INVALID_HEX for odd length or non-hex characters.
    """
    if not isinstance(value, str):
        raise ValidationError("Hex value must be a string", ErrorCode.INVALID_HEX)
    digits = value[2:] if value[:2].lower() == "0x" else value
    if len(digits) % 2 or not _HEX_PATTERN.match(digits):
        raise ValidationError(f"Invalid hex string: {value!r}", ErrorCode.INVALID_HEX)
    return bytes.fromhex(digits)


def bytes_to_hex(data: bytes) -> str:
    return "0x" + bytes(data).hex()


def require_length(data: bytes, expected: int, name: str = "bytes") -> bytes:
    """Raise ValidationError unless ``data`` is exactly ``expected`` bytes."""
    if data is None or len(data) != expected:
        got = "None" if data is None else len(data)
        raise ValidationError(
            f"Invalid {name} length: expected {expected}, got {got}",
            ErrorCode.INVALID_LENGTH,
        )
    return data
