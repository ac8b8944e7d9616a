"""
Tests for the payment scanner.

Tests cover:
- Received payments found through direct and wrapped calldata
- Sent payments classified without a stealth check
- Ordering, stats and token formatting
- Locked keys, failing logs and the scanned block range
- Cancellation wipes the scan's key copy only
"""
import asyncio
from contextlib import contextmanager

import pytest
from eth_abi import encode

from ninja_stealth.conf import ScannerConfig
from ninja_stealth.crypto.secure import is_all_zero, secure_buffer
from ninja_stealth.discovery import scanner as scanner_module
from ninja_stealth.discovery.calldata import EXECUTE_BATCH_SELECTOR
from ninja_stealth.discovery.scanner import (
    PaymentScanner,
    PaymentStats,
    format_units,
)
from ninja_stealth.exceptions import LedgerError
from ninja_stealth.keys import KeyStatus
from ninja_stealth.ledger.base import PaymentLog
from ninja_stealth.ledger.contract import encode_send_to_stealth
from ninja_stealth.stealth import generate_stealth_payment

from .conftest import PASSWORD, CONTRACT, FakeLedger, StaticKeyManager, make_key_set

WALLET = "0x" + "a1" * 20
STRANGER = "0x" + "b2" * 20


def _payment_to(keys, amount, tx_hash, block, sender=STRANGER, log_index=0, wrap=False):
    payment = generate_stealth_payment(keys.meta_viewing_pub, keys.meta_spending_pub)
    payload = encode_send_to_stealth(payment.stealth_address, amount, payment.ephemeral_public_key)
    if wrap:
        payload = EXECUTE_BATCH_SELECTOR + encode(
            ["(address,uint256,bytes)[]"], [[(CONTRACT, 0, payload)]]
        )
    log = PaymentLog(
        stealth_address=payment.stealth_address_hex,
        sender=sender,
        amount=amount,
        ephemeral_pubkey_hash=bytes(32),
        block_number=block,
        transaction_hash=tx_hash,
        log_index=log_index,
    )
    return log, payload


@pytest.fixture
def my_keys():
    return make_key_set(0xBEEF)


@pytest.fixture
def ledger(my_keys):
    ledger = FakeLedger()
    someone = make_key_set(0xCAFE)

    log, payload = _payment_to(my_keys, 1_500_000, "0x01", block=10)
    ledger.add(log, payload, timestamp=100)
    log, payload = _payment_to(my_keys, 2_000_000, "0x02", block=30, wrap=True)
    ledger.add(log, payload, timestamp=300, claimed=True)
    log, payload = _payment_to(someone, 9_000_000, "0x03", block=20)
    ledger.add(log, payload, timestamp=200)
    # sent by the scanning wallet; no payload needed
    log, _ = _payment_to(someone, 250_000, "0x04", block=5, sender=WALLET)
    ledger.add(log, None, timestamp=50)
    # payload missing: fetching it fails and the log is skipped
    log, _ = _payment_to(my_keys, 7_000_000, "0x05", block=40)
    ledger.add(log, None, timestamp=400)
    return ledger


class TestScan:
    """Tests for PaymentScanner.scan."""

    async def test_finds_payments(self, ledger, my_keys):
        scanner = PaymentScanner(ledger, StaticKeyManager(my_keys), CONTRACT)
        result = await scanner.scan(WALLET)

        assert not result.keys_locked
        assert [tx.tx_hash for tx in result.transactions] == ["0x02", "0x01", "0x04"]
        assert [tx.type for tx in result.transactions] == ["received", "received", "sent"]
        assert [tx.status for tx in result.transactions] == ["claimed", "completed", "completed"]

    async def test_transaction_fields(self, ledger, my_keys):
        scanner = PaymentScanner(ledger, StaticKeyManager(my_keys), CONTRACT)
        result = await scanner.scan(WALLET)
        received, sent = result.transactions[1], result.transactions[2]
        assert received.id == "0x01-0"
        assert received.amount == "1.5"
        assert received.raw_amount == 1_500_000
        assert received.timestamp == 100
        assert len(received.ephemeral_pubkey) == 2 + 66
        assert sent.id == "0x04-0-sent"
        assert sent.ephemeral_pubkey == "0x"

    async def test_stats(self, ledger, my_keys):
        scanner = PaymentScanner(ledger, StaticKeyManager(my_keys), CONTRACT)
        stats = (await scanner.scan(WALLET)).stats
        assert stats == PaymentStats(
            total_transactions=3,
            total_received="3.5",
            total_sent="0.25",
            total_claimed="2",
            total_unclaimed="1.5",
        )

    async def test_locked_keys(self, ledger):
        scanner = PaymentScanner(ledger, StaticKeyManager(None), CONTRACT)
        result = await scanner.scan(WALLET)
        assert result.keys_locked
        assert result.transactions == []
        assert ledger.calls == 0

    async def test_block_range(self, my_keys):
        ledger = FakeLedger(head=150_000)
        scanner = PaymentScanner(ledger, StaticKeyManager(my_keys), CONTRACT)
        await scanner.scan(WALLET)
        assert ledger.requested_from == 51_000

    async def test_block_range_floor(self, my_keys):
        ledger = FakeLedger(head=10)
        scanner = PaymentScanner(
            ledger, StaticKeyManager(my_keys), CONTRACT, ScannerConfig(block_range=500),
        )
        await scanner.scan(WALLET)
        assert ledger.requested_from == 0

    async def test_ties_ordered_by_hash_and_index(self, my_keys):
        ledger = FakeLedger()
        for tx_hash, index in (("0x0b", 1), ("0x0a", 2), ("0x0b", 0)):
            log, payload = _payment_to(my_keys, 1, tx_hash, block=1, log_index=index)
            ledger.add(log, payload, timestamp=77)
        # the two 0x0b logs share one payload; only its own address matches
        scanner = PaymentScanner(ledger, StaticKeyManager(my_keys), CONTRACT)
        result = await scanner.scan(WALLET)
        keys = [(tx.tx_hash, tx.log_index) for tx in result.transactions]
        assert keys == [("0x0a", 2), ("0x0b", 0)]

    async def test_keys_untouched(self, ledger, my_keys):
        """Scanning only reads the key set."""
        before = bytes(my_keys.meta_viewing_priv)
        scanner = PaymentScanner(ledger, StaticKeyManager(my_keys), CONTRACT)
        await scanner.scan(WALLET)
        assert bytes(my_keys.meta_viewing_priv) == before
        assert not is_all_zero(my_keys.meta_viewing_priv)

    async def test_ledger_failure_propagates(self, my_keys):
        class DownLedger(FakeLedger):
            async def get_block_number(self):
                raise LedgerError("node down")

        scanner = PaymentScanner(DownLedger(), StaticKeyManager(my_keys), CONTRACT)
        with pytest.raises(LedgerError):
            await scanner.scan(WALLET)

    async def test_cancelled_scan(self, ledger, manager, signer, monkeypatch):
        """Abandoning a scan wipes its key copy and leaves the manager alone."""
        await manager.initialize(PASSWORD, signer, "alice@example.com", "email")
        keys = manager.get_keys()
        before = bytes(keys.meta_viewing_priv)

        copies = []

        @contextmanager
        def recording_buffer(data):
            with secure_buffer(data) as buf:
                copies.append(buf)
                yield buf

        monkeypatch.setattr(scanner_module, "secure_buffer", recording_buffer)
        ledger.input_gate = asyncio.Event()
        scanner = PaymentScanner(ledger, manager, CONTRACT)
        task = asyncio.create_task(scanner.scan(WALLET))
        await ledger.input_requested.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert is_all_zero(copies[0])
        assert manager.status == KeyStatus.UNLOCKED
        assert manager.get_keys() is keys
        assert bytes(keys.meta_viewing_priv) == before
        assert not is_all_zero(keys.meta_viewing_priv)


class TestFormatUnits:
    """Tests for token amount formatting."""

    @pytest.mark.parametrize("value,decimals,expected", [
        (0, 6, "0"),
        (1_500_000, 6, "1.5"),
        (1, 6, "0.000001"),
        (2_000_000, 6, "2"),
        (123, 0, "123"),
    ])
    def test_format(self, value, decimals, expected):
        assert format_units(value, decimals) == expected
