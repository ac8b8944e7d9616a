"""Ledger boundary — payment contract ABI and chain access."""

from .base import (
    LedgerClient,
    MetaKeys,
    PaymentLog,
    PaymentStatus,
    UsernameRegistration,
)
from .rpc import JsonRpcLedger

__all__ = [
    "LedgerClient",
    "PaymentLog",
    "PaymentStatus",
    "MetaKeys",
    "UsernameRegistration",
    "JsonRpcLedger",
]
