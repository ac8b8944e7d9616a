"""
JSON-RPC ledger client over aiohttp.

Speaks plain Ethereum JSON-RPC 2.0 (``eth_blockNumber``, ``eth_getLogs``,
``eth_getTransactionByHash``, ``eth_getBlockByNumber``, ``eth_call``).
Transport failures, RPC error objects and malformed responses are raised
as ``LedgerError``.
"""
import asyncio
import itertools
import logging
from typing import Any, Optional

import aiohttp
import orjson
from eth_abi.exceptions import DecodingError

from ..exceptions import ErrorCode, LedgerError, ValidationError
from ..validation import hex_to_bytes, normalize_address
from . import contract
from .base import (
    LedgerClient,
    MetaKeys,
    PaymentLog,
    PaymentStatus,
    UsernameRegistration,
)

logger = logging.getLogger("ninja.ledger")


def _to_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    return int(value, 16)


def _hex_block(value: Optional[int]) -> str:
    return "latest" if value is None else hex(value)


class JsonRpcLedger(LedgerClient):
    """Ledger client backed by an Ethereum JSON-RPC endpoint.

    Args:
        url: Endpoint URL.
        session: Optional shared ``aiohttp.ClientSession``; when omitted a
            session is created lazily and closed by ``close()``.
        timeout: Total request timeout in seconds.
    """

    def __init__(
        self,
        url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
    ):
        self.url = url
        self._session = session
        self._owns_session = session is None
        self._timeout = timeout
        self._ids = itertools.count(1)

    async def __aenter__(self) -> "JsonRpcLedger":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def request(self, method: str, params: Optional[list] = None) -> Any:
        """Perform one JSON-RPC call and return its ``result``."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        try:
            async with self._get_session().post(
                self.url,
                data=orjson.dumps(payload),
                headers={"Content-Type": "application/json"},
            ) as resp:
                if resp.status != 200:
                    raise LedgerError(
                        f"{method} failed with HTTP {resp.status}",
                        ErrorCode.RPC_REQUEST_FAILED,
                    )
                body = await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as err:
            raise LedgerError(
                f"{method} request failed: {err}", ErrorCode.RPC_REQUEST_FAILED
            ) from err
        try:
            data = orjson.loads(body)
        except orjson.JSONDecodeError as err:
            raise LedgerError(
                f"{method} returned invalid JSON", ErrorCode.RPC_INVALID_RESPONSE
            ) from err
        if not isinstance(data, dict):
            raise LedgerError(
                f"{method} returned a non-object response",
                ErrorCode.RPC_INVALID_RESPONSE,
            )
        if data.get("error"):
            error = data["error"]
            message = error.get("message", "rpc error") if isinstance(error, dict) else str(error)
            raise LedgerError(
                f"{method} failed: {message}",
                ErrorCode.RPC_REQUEST_FAILED,
                details=error,
            )
        if "result" not in data:
            raise LedgerError(
                f"{method} response has no result", ErrorCode.RPC_INVALID_RESPONSE
            )
        return data["result"]

    async def _call(self, to: str, data: bytes) -> bytes:
        result = await self.request(
            "eth_call", [{"to": to, "data": "0x" + data.hex()}, "latest"]
        )
        return self._hex_result("eth_call", result)

    @staticmethod
    def _hex_result(method: str, value: Any) -> bytes:
        try:
            return hex_to_bytes(value)
        except ValidationError as err:
            raise LedgerError(
                f"{method} returned malformed hex", ErrorCode.RPC_INVALID_RESPONSE
            ) from err

    # ------------------------------------------------------------------
    # LedgerClient
    # ------------------------------------------------------------------

    async def get_block_number(self) -> int:
        result = await self.request("eth_blockNumber")
        try:
            return _to_int(result)
        except (TypeError, ValueError) as err:
            raise LedgerError(
                "eth_blockNumber returned a non-integer", ErrorCode.RPC_INVALID_RESPONSE
            ) from err

    async def get_stealth_payment_logs(
        self, contract_address: str, from_block: int, to_block: Optional[int] = None
    ) -> list[PaymentLog]:
        params = {
            "address": normalize_address(contract_address),
            "topics": ["0x" + contract.STEALTH_PAYMENT_SENT_TOPIC.hex()],
            "fromBlock": hex(from_block),
            "toBlock": _hex_block(to_block),
        }
        raw_logs = await self.request("eth_getLogs", [params])
        if not isinstance(raw_logs, list):
            raise LedgerError(
                "eth_getLogs returned a non-list", ErrorCode.RPC_INVALID_RESPONSE
            )
        logs = []
        for raw in raw_logs:
            try:
                topics = [hex_to_bytes(t) for t in raw["topics"]]
                amount, ephemeral_hash = contract.decode_stealth_payment_data(
                    hex_to_bytes(raw["data"])
                )
                logs.append(PaymentLog(
                    stealth_address=contract.topic_to_address(topics[1]),
                    sender=contract.topic_to_address(topics[2]),
                    amount=amount,
                    ephemeral_pubkey_hash=ephemeral_hash,
                    block_number=_to_int(raw["blockNumber"]),
                    transaction_hash=raw["transactionHash"].lower(),
                    log_index=_to_int(raw.get("logIndex", 0)),
                ))
            except (KeyError, IndexError, TypeError, ValueError, DecodingError, ValidationError) as err:
                logger.warning("Skipping malformed log entry: %s", err)
        logger.debug(
            "Fetched %d StealthPaymentSent logs from block %s", len(logs), from_block,
        )
        return logs

    async def get_transaction_input(self, transaction_hash: str) -> bytes:
        tx = await self.request("eth_getTransactionByHash", [transaction_hash])
        if not isinstance(tx, dict) or "input" not in tx:
            raise LedgerError(
                f"Transaction {transaction_hash} not found",
                ErrorCode.RPC_INVALID_RESPONSE,
            )
        return self._hex_result("eth_getTransactionByHash", tx["input"])

    async def get_block_timestamp(self, block_number: int) -> int:
        block = await self.request("eth_getBlockByNumber", [hex(block_number), False])
        if not isinstance(block, dict) or "timestamp" not in block:
            raise LedgerError(
                f"Block {block_number} not found", ErrorCode.RPC_INVALID_RESPONSE
            )
        return _to_int(block["timestamp"])

    async def get_stealth_payment(
        self, contract_address: str, stealth_address: str
    ) -> PaymentStatus:
        data = await self._call(
            normalize_address(contract_address),
            contract.encode_get_stealth_payment(stealth_address),
        )
        try:
            amount, claimed, sender, timestamp = contract.decode_get_stealth_payment(data)
        except DecodingError as err:
            raise LedgerError(
                "getStealthPayment returned malformed data",
                ErrorCode.RPC_INVALID_RESPONSE,
            ) from err
        return PaymentStatus(
            amount=amount, claimed=claimed, sender=sender, timestamp=timestamp,
        )

    async def get_meta_keys(self, contract_address: str, account: str) -> MetaKeys:
        data = await self._call(
            normalize_address(contract_address), contract.encode_get_meta_keys(account),
        )
        try:
            viewing, spending, registered = contract.decode_get_meta_keys(data)
        except DecodingError as err:
            raise LedgerError(
                "getMetaKeys returned malformed data", ErrorCode.RPC_INVALID_RESPONSE
            ) from err
        return MetaKeys(
            viewing_pub=viewing, spending_pub=spending, registered=registered,
        )

    async def get_username_hash(self, contract_address: str, account: str) -> bytes:
        data = await self._call(
            normalize_address(contract_address),
            contract.encode_get_username_hash(account),
        )
        try:
            return contract.decode_get_username_hash(data)
        except DecodingError as err:
            raise LedgerError(
                "getUsernameHash returned malformed data",
                ErrorCode.RPC_INVALID_RESPONSE,
            ) from err

    async def is_username_hash_available(
        self, contract_address: str, username_hash: bytes
    ) -> bool:
        data = await self._call(
            normalize_address(contract_address),
            contract.encode_is_username_hash_available(username_hash),
        )
        try:
            return contract.decode_bool(data)
        except DecodingError as err:
            raise LedgerError(
                "isUsernameHashAvailable returned malformed data",
                ErrorCode.RPC_INVALID_RESPONSE,
            ) from err

    async def get_username_registrations(
        self,
        contract_address: str,
        username_hash: bytes,
        from_block: int,
        to_block: Optional[int] = None,
    ) -> list[UsernameRegistration]:
        params = {
            "address": normalize_address(contract_address),
            "topics": [
                "0x" + contract.USERNAME_REGISTERED_TOPIC.hex(),
                "0x" + bytes(username_hash).hex(),
            ],
            "fromBlock": hex(from_block),
            "toBlock": _hex_block(to_block),
        }
        raw_logs = await self.request("eth_getLogs", [params])
        if not isinstance(raw_logs, list):
            raise LedgerError(
                "eth_getLogs returned a non-list", ErrorCode.RPC_INVALID_RESPONSE
            )
        registrations = []
        for raw in raw_logs:
            try:
                topics = [hex_to_bytes(t) for t in raw["topics"]]
                registrations.append(UsernameRegistration(
                    username_hash=topics[1],
                    user=contract.topic_to_address(topics[2]),
                    commitment=contract.decode_username_registered_data(
                        hex_to_bytes(raw["data"])
                    ),
                    block_number=_to_int(raw["blockNumber"]),
                    log_index=_to_int(raw.get("logIndex", 0)),
                ))
            except (KeyError, IndexError, TypeError, ValueError, DecodingError, ValidationError) as err:
                logger.warning("Skipping malformed log entry: %s", err)
        return registrations
