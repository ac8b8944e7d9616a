"""
Payment Scanner — find the stealth payments that belong to a wallet.

Flow:
1. Fetch ``StealthPaymentSent`` logs for the last ``block_range`` blocks.
2. Logs whose sender is the scanning wallet are classified ``sent``.
3. For every other log, fetch the transaction payload, unwrap it to the
   ephemeral key and run the stealth check with the wallet's keys.
4. Matches are enriched with block timestamp and on-chain claim status.

Per-log work runs concurrently under a semaphore; the result order depends
only on timestamps. A log that fails to process is logged and skipped.

Security Note:
    The scanner never mutates the key manager. It copies the viewing key
    into a scoped buffer that is zeroed when the scan ends, including on
    cancellation.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ..conf import ScannerConfig
from ..crypto.secure import secure_buffer
from ..ledger.base import LedgerClient, PaymentLog
from ..stealth.address import check_stealth_payment
from ..validation import hex_to_bytes, normalize_address
from .calldata import NotFound, extract_ephemeral_key

logger = logging.getLogger("ninja.scanner")

SENT = "sent"
RECEIVED = "received"
COMPLETED = "completed"
CLAIMED = "claimed"


def format_units(value: int, decimals: int) -> str:
    """Render an integer token amount as a decimal string ("1.5", "0")."""
    sign = "-" if value < 0 else ""
    value = abs(value)
    if decimals == 0:
        return f"{sign}{value}"
    whole, fraction = divmod(value, 10 ** decimals)
    fraction_str = str(fraction).rjust(decimals, "0").rstrip("0")
    if fraction_str:
        return f"{sign}{whole}.{fraction_str}"
    return f"{sign}{whole}"


@dataclass(frozen=True)
class StealthTransaction:
    """A payment sent or received by the scanning wallet."""
    id: str
    type: str
    stealth_address: str
    amount: str
    raw_amount: int
    timestamp: int
    status: str
    sender: str
    tx_hash: str
    log_index: int
    ephemeral_pubkey: str


@dataclass
class PaymentStats:
    total_transactions: int = 0
    total_received: str = "0"
    total_sent: str = "0"
    total_claimed: str = "0"
    total_unclaimed: str = "0"

    @classmethod
    def from_transactions(
        cls, transactions: list[StealthTransaction], decimals: int
    ) -> "PaymentStats":
        received = sent = claimed = unclaimed = 0
        for tx in transactions:
            if tx.type == SENT:
                sent += tx.raw_amount
                continue
            received += tx.raw_amount
            if tx.status == CLAIMED:
                claimed += tx.raw_amount
            else:
                unclaimed += tx.raw_amount
        return cls(
            total_transactions=len(transactions),
            total_received=format_units(received, decimals),
            total_sent=format_units(sent, decimals),
            total_claimed=format_units(claimed, decimals),
            total_unclaimed=format_units(unclaimed, decimals),
        )


@dataclass
class ScanResult:
    transactions: list[StealthTransaction] = field(default_factory=list)
    stats: PaymentStats = field(default_factory=PaymentStats)
    keys_locked: bool = False


class PaymentScanner:
    """Scans the payment contract for a wallet's stealth payments.

    Args:
        ledger: Chain access.
        key_manager: Source of the wallet's keys (``is_unlocked``/``get_keys``).
        contract_address: Payment contract address.
        config: Block range, concurrency and token decimals.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        key_manager: Any,
        contract_address: str,
        config: Optional[ScannerConfig] = None,
    ):
        self._ledger = ledger
        self._keys = key_manager
        self._contract = normalize_address(contract_address)
        self.config = config or ScannerConfig()

    async def scan(self, wallet_address: str) -> ScanResult:
        """Return the payments sent and received by ``wallet_address``.

        A locked key manager yields an empty result with ``keys_locked``
        set; ledger failures before per-log processing propagate as
        ``LedgerError``.
        """
        wallet = normalize_address(wallet_address)
        if not self._keys.is_unlocked():
            logger.info("Scan skipped for %s: keys are locked", wallet)
            return ScanResult(keys_locked=True)

        keys = self._keys.get_keys()
        spending_pub = bytes(keys.meta_spending_pub)
        with secure_buffer(keys.meta_viewing_priv) as viewing_priv:
            head = await self._ledger.get_block_number()
            from_block = max(head - self.config.block_range, 0)
            logger.debug("Scanning blocks %s..%s", from_block, head)
            logs = await self._ledger.get_stealth_payment_logs(
                self._contract, from_block,
            )
            logger.info("Found %d StealthPaymentSent events", len(logs))

            semaphore = asyncio.Semaphore(self.config.max_concurrency)
            results = await asyncio.gather(*(
                self._process_log(semaphore, log, wallet, viewing_priv, spending_pub)
                for log in logs
            ))

        transactions = sorted(
            (tx for tx in results if tx is not None),
            key=lambda tx: (-tx.timestamp, tx.tx_hash, tx.log_index),
        )
        logger.info("Found %d payments for %s", len(transactions), wallet)
        return ScanResult(
            transactions=transactions,
            stats=PaymentStats.from_transactions(
                transactions, self.config.token_decimals
            ),
        )

    async def _process_log(
        self,
        semaphore: asyncio.Semaphore,
        log: PaymentLog,
        wallet: str,
        viewing_priv: bytearray,
        spending_pub: bytes,
    ) -> Optional[StealthTransaction]:
        async with semaphore:
            try:
                if log.sender.lower() == wallet:
                    return await self._build(log, SENT, "0x")

                payload = await self._ledger.get_transaction_input(log.transaction_hash)
                found = extract_ephemeral_key(payload, self._contract)
                if isinstance(found, NotFound):
                    logger.debug(
                        "Skipping tx %s: %s", log.transaction_hash, found.reason,
                    )
                    return None
                result = check_stealth_payment(
                    found.ephemeral_public_key,
                    viewing_priv,
                    spending_pub,
                    hex_to_bytes(log.stealth_address),
                )
                if not result.is_for_me:
                    return None
                return await self._build(
                    log, RECEIVED, "0x" + found.ephemeral_public_key.hex(),
                )
            except Exception as err:
                logger.warning(
                    "Error processing log %s-%s: %s",
                    log.transaction_hash, log.log_index, err,
                )
                return None

    async def _build(
        self, log: PaymentLog, kind: str, ephemeral_hex: str
    ) -> StealthTransaction:
        timestamp, status = await asyncio.gather(
            self._ledger.get_block_timestamp(log.block_number),
            self._ledger.get_stealth_payment(self._contract, log.stealth_address),
        )
        tx_id = f"{log.transaction_hash}-{log.log_index}"
        if kind == SENT:
            tx_id += "-sent"
        return StealthTransaction(
            id=tx_id,
            type=kind,
            stealth_address=log.stealth_address.lower(),
            amount=format_units(log.amount, self.config.token_decimals),
            raw_amount=log.amount,
            timestamp=timestamp,
            status=CLAIMED if status.claimed else COMPLETED,
            sender=log.sender.lower(),
            tx_hash=log.transaction_hash,
            log_index=log.log_index,
            ephemeral_pubkey=ephemeral_hex,
        )
