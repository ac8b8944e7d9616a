"""
Tests for the JSON-RPC ledger client.

Tests cover:
- Request payloads and result parsing
- Log decoding for StealthPaymentSent
- eth_call decoding for payment status and meta keys
- Transport, RPC and malformed-response errors
"""
import aiohttp
import orjson
import pytest
from eth_abi import encode

from ninja_stealth.exceptions import ErrorCode, LedgerError
from ninja_stealth.ledger import JsonRpcLedger
from ninja_stealth.ledger.contract import (
    STEALTH_PAYMENT_SENT_TOPIC,
    USERNAME_REGISTERED_TOPIC,
    function_selector,
)
from ninja_stealth.proofs import hash_username

from .conftest import CONTRACT

STEALTH = "0x" + "42" * 20
SENDER = "0x" + "07" * 20


# --- Fakes ---

class FakeResponse:
    def __init__(self, body, status=200):
        self.body = body
        self.status = status

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def read(self):
        return self.body


class FakeSession:
    """Replays canned JSON-RPC responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def post(self, url, data=None, headers=None):
        self.requests.append(orjson.loads(data))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self):
        pass


def rpc_result(result):
    return FakeResponse(orjson.dumps({"jsonrpc": "2.0", "id": 1, "result": result}))


def _topic(address):
    return "0x" + bytes(12).hex() + address[2:]


# --- Tests ---

class TestRequest:
    """Tests for the JSON-RPC envelope."""

    async def test_block_number(self):
        session = FakeSession(rpc_result("0x1b4"))
        ledger = JsonRpcLedger("http://node", session=session)
        assert await ledger.get_block_number() == 436
        request = session.requests[0]
        assert request["method"] == "eth_blockNumber"
        assert request["jsonrpc"] == "2.0"

    async def test_request_ids_increase(self):
        session = FakeSession(rpc_result("0x1"), rpc_result("0x2"))
        ledger = JsonRpcLedger("http://node", session=session)
        await ledger.get_block_number()
        await ledger.get_block_number()
        assert session.requests[1]["id"] > session.requests[0]["id"]

    async def test_rpc_error(self):
        body = orjson.dumps({"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "limit exceeded"}})
        ledger = JsonRpcLedger("http://node", session=FakeSession(FakeResponse(body)))
        with pytest.raises(LedgerError) as exc:
            await ledger.get_block_number()
        assert exc.value.code == ErrorCode.RPC_REQUEST_FAILED
        assert "limit exceeded" in exc.value.message

    async def test_http_error(self):
        ledger = JsonRpcLedger("http://node", session=FakeSession(FakeResponse(b"", status=502)))
        with pytest.raises(LedgerError) as exc:
            await ledger.get_block_number()
        assert exc.value.code == ErrorCode.RPC_REQUEST_FAILED

    async def test_transport_error(self):
        session = FakeSession(aiohttp.ClientConnectionError("refused"))
        ledger = JsonRpcLedger("http://node", session=session)
        with pytest.raises(LedgerError) as exc:
            await ledger.get_block_number()
        assert exc.value.code == ErrorCode.RPC_REQUEST_FAILED

    @pytest.mark.parametrize("body", [b"not json", b"[]", b'{"jsonrpc": "2.0", "id": 1}'])
    async def test_malformed_response(self, body):
        ledger = JsonRpcLedger("http://node", session=FakeSession(FakeResponse(body)))
        with pytest.raises(LedgerError) as exc:
            await ledger.get_block_number()
        assert exc.value.code == ErrorCode.RPC_INVALID_RESPONSE

    async def test_shared_session_not_closed(self):
        session = FakeSession()
        async with JsonRpcLedger("http://node", session=session) as ledger:
            assert ledger.url == "http://node"


class TestLedgerReads:
    """Tests for the LedgerClient operations."""

    async def test_payment_logs(self):
        raw_log = {
            "address": CONTRACT,
            "topics": [
                "0x" + STEALTH_PAYMENT_SENT_TOPIC.hex(),
                _topic(STEALTH),
                _topic(SENDER),
            ],
            "data": "0x" + encode(["uint256", "bytes32"], [1_500_000, b"\xee" * 32]).hex(),
            "blockNumber": "0x10",
            "transactionHash": "0xABCD",
            "logIndex": "0x2",
        }
        broken = dict(raw_log, topics=raw_log["topics"][:1])
        session = FakeSession(rpc_result([raw_log, broken]))
        ledger = JsonRpcLedger("http://node", session=session)

        logs = await ledger.get_stealth_payment_logs(CONTRACT, 100)

        assert len(logs) == 1
        log = logs[0]
        assert log.stealth_address == STEALTH
        assert log.sender == SENDER
        assert log.amount == 1_500_000
        assert log.ephemeral_pubkey_hash == b"\xee" * 32
        assert (log.block_number, log.transaction_hash, log.log_index) == (16, "0xabcd", 2)
        params = session.requests[0]["params"][0]
        assert params["fromBlock"] == "0x64"
        assert params["toBlock"] == "latest"

    async def test_transaction_input(self):
        session = FakeSession(rpc_result({"hash": "0x01", "input": "0xdeadbeef"}))
        ledger = JsonRpcLedger("http://node", session=session)
        assert await ledger.get_transaction_input("0x01") == bytes.fromhex("deadbeef")

    async def test_missing_transaction(self):
        ledger = JsonRpcLedger("http://node", session=FakeSession(rpc_result(None)))
        with pytest.raises(LedgerError) as exc:
            await ledger.get_transaction_input("0x01")
        assert exc.value.code == ErrorCode.RPC_INVALID_RESPONSE

    async def test_block_timestamp(self):
        session = FakeSession(rpc_result({"number": "0x10", "timestamp": "0x6553f100"}))
        ledger = JsonRpcLedger("http://node", session=session)
        assert await ledger.get_block_timestamp(16) == 0x6553F100
        assert session.requests[0]["params"] == ["0x10", False]

    async def test_stealth_payment(self):
        data = encode(["uint256", "bool", "address", "uint256"], [42, True, SENDER, 1700000000])
        session = FakeSession(rpc_result("0x" + data.hex()))
        ledger = JsonRpcLedger("http://node", session=session)
        status = await ledger.get_stealth_payment(CONTRACT, STEALTH)
        assert (status.amount, status.claimed, status.sender, status.timestamp) == (
            42, True, SENDER, 1700000000,
        )
        call = session.requests[0]["params"][0]
        assert call["to"] == CONTRACT

    async def test_meta_keys(self):
        data = encode(["bytes", "bytes", "bool"], [b"\x02" * 33, b"\x03" * 33, True])
        ledger = JsonRpcLedger("http://node", session=FakeSession(rpc_result("0x" + data.hex())))
        meta = await ledger.get_meta_keys(CONTRACT, SENDER)
        assert meta.registered
        assert meta.viewing_pub == b"\x02" * 33

    async def test_malformed_call_result(self):
        ledger = JsonRpcLedger("http://node", session=FakeSession(rpc_result("0x1234")))
        with pytest.raises(LedgerError) as exc:
            await ledger.get_stealth_payment(CONTRACT, STEALTH)
        assert exc.value.code == ErrorCode.RPC_INVALID_RESPONSE


class TestUsernameReads:
    """Tests for username hash reads and registration logs."""

    async def test_username_hash(self):
        username_hash = hash_username("alice")
        data = encode(["bytes32"], [username_hash])
        session = FakeSession(rpc_result("0x" + data.hex()))
        ledger = JsonRpcLedger("http://node", session=session)
        assert await ledger.get_username_hash(CONTRACT, SENDER) == username_hash
        call_data = bytes.fromhex(session.requests[0]["params"][0]["data"][2:])
        assert call_data[:4] == function_selector("getUsernameHash(address)")

    async def test_has_username(self):
        empty = encode(["bytes32"], [bytes(32)])
        ledger = JsonRpcLedger("http://node", session=FakeSession(rpc_result("0x" + empty.hex())))
        assert not await ledger.has_username(CONTRACT, SENDER)

    async def test_username_availability(self):
        data = encode(["bool"], [False])
        session = FakeSession(rpc_result("0x" + data.hex()))
        ledger = JsonRpcLedger("http://node", session=session)
        assert not await ledger.is_username_hash_available(CONTRACT, hash_username("alice"))

    async def test_resolve_username(self):
        username_hash = hash_username("alice")

        def registration(user, block):
            return {
                "topics": [
                    "0x" + USERNAME_REGISTERED_TOPIC.hex(),
                    "0x" + username_hash.hex(),
                    _topic(user),
                ],
                "data": "0x" + encode(["bytes32"], [b"\x01" * 32]).hex(),
                "blockNumber": hex(block),
                "logIndex": "0x0",
            }

        newer = "0x" + "e5" * 20
        session = FakeSession(
            rpc_result(hex(150_000)),
            rpc_result([registration(STEALTH, 60_000), registration(newer, 120_000)]),
        )
        ledger = JsonRpcLedger("http://node", session=session)

        assert await ledger.resolve_username(CONTRACT, "alice") == newer
        params = session.requests[1]["params"][0]
        assert params["topics"][1] == "0x" + username_hash.hex()
        assert params["fromBlock"] == hex(50_000)

    async def test_unknown_username(self):
        session = FakeSession(rpc_result("0x10"), rpc_result([]))
        ledger = JsonRpcLedger("http://node", session=session)
        assert await ledger.resolve_username(CONTRACT, "nobody") is None
