"""Payment Discovery Pipeline — calldata unwrapping, wallet scanning and transaction builders."""

from .calldata import (
    DirectCall,
    SingleForward,
    BatchForward,
    UserOperations,
    ForwardedCall,
    Found,
    NotFound,
    classify,
    extract_ephemeral_key,
)
from .scanner import (
    PaymentScanner,
    StealthTransaction,
    PaymentStats,
    ScanResult,
    format_units,
)
from .payments import (
    PreparedPayment,
    PreparedRegistration,
    UsernameStatus,
    is_username_available,
    lookup_username,
    prepare_claim,
    prepare_meta_keys_registration,
    prepare_stealth_payment,
    prepare_username_registration,
    resolve_recipient,
)

__all__ = [
    "DirectCall",
    "SingleForward",
    "BatchForward",
    "UserOperations",
    "ForwardedCall",
    "Found",
    "NotFound",
    "classify",
    "extract_ephemeral_key",
    "PaymentScanner",
    "StealthTransaction",
    "PaymentStats",
    "ScanResult",
    "format_units",
    "PreparedPayment",
    "prepare_stealth_payment",
    "PreparedRegistration",
    "UsernameStatus",
    "is_username_available",
    "lookup_username",
    "prepare_claim",
    "prepare_meta_keys_registration",
    "prepare_username_registration",
    "resolve_recipient",
]
