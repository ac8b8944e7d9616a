"""Key set, public key and key manager state types."""
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Optional

from ..crypto.secure import zeroize
from ..exceptions import ErrorCode, ValidationError


class AuthMethod(str, Enum):
    """How the user authenticated with the wallet provider."""
    EMAIL = "email"
    GOOGLE = "google"
    TWITTER = "twitter"
    DISCORD = "discord"
    GITHUB = "github"
    APPLE = "apple"
    PHONE = "phone"
    TELEGRAM = "telegram"
    FARCASTER = "farcaster"
    WALLET = "wallet"

    @classmethod
    def parse(cls, value) -> "AuthMethod":
        """Accept a member or its tag, case-insensitively."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValidationError(
                f"Unknown authentication method: {value!r}",
                ErrorCode.INVALID_AUTH_METHOD,
            ) from None


# Names of the KeySet fields holding secrets
PRIVATE_FIELDS = (
    "master_key",
    "storage_encryption_key",
    "meta_viewing_priv",
    "meta_spending_priv",
)


@dataclass(frozen=True)
class PublicKeys:
    """Meta public keys, safe to publish on the ledger."""
    meta_viewing_pub: bytes
    meta_spending_pub: bytes

    def to_hex(self) -> dict[str, str]:
        return {
            "metaViewingPub": "0x" + self.meta_viewing_pub.hex(),
            "metaSpendingPub": "0x" + self.meta_spending_pub.hex(),
        }


@dataclass(eq=False)
class KeySet:
    """All keys derived for one account.

    Private components are ``bytearray`` so ``zero()`` can wipe them in place.
    """
    master_key: bytearray = field(repr=False)
    storage_encryption_key: bytearray = field(repr=False)
    meta_viewing_priv: bytearray = field(repr=False)
    meta_viewing_pub: bytes
    meta_spending_priv: bytearray = field(repr=False)
    meta_spending_pub: bytes

    def __post_init__(self):
        for name in PRIVATE_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, bytearray):
                setattr(self, name, bytearray(value))
        self.meta_viewing_pub = bytes(self.meta_viewing_pub)
        self.meta_spending_pub = bytes(self.meta_spending_pub)

    def private_components(self) -> list[bytearray]:
        return [getattr(self, name) for name in PRIVATE_FIELDS]

    def public_keys(self) -> PublicKeys:
        return PublicKeys(
            meta_viewing_pub=self.meta_viewing_pub,
            meta_spending_pub=self.meta_spending_pub,
        )

    def zero(self) -> None:
        """Overwrite every private key byte with zeros."""
        for buf in self.private_components():
            zeroize(buf)

    def equals(self, other: "KeySet") -> bool:
        """Byte-for-byte comparison of every field."""
        return all(
            bytes(getattr(self, f.name)) == bytes(getattr(other, f.name))
            for f in fields(self)
        )


@dataclass
class KeyManagerState:
    """Snapshot of the key manager."""
    is_initialized: bool = False
    is_unlocked: bool = False
    account_id: Optional[str] = None
    user_identifier: Optional[str] = None
    auth_method: Optional[str] = None
    keys: Optional[KeySet] = field(default=None, repr=False)


class KeyStatus(str, Enum):
    """States of the key manager."""
    UNINITIALIZED = "uninitialized"
    LOCKED = "locked"
    UNLOCKED = "unlocked"
