"""Tests for transaction builders and recipient resolution."""
import pytest
from eth_abi import decode

from ninja_stealth.discovery import (
    extract_ephemeral_key,
    is_username_available,
    lookup_username,
    prepare_claim,
    prepare_meta_keys_registration,
    prepare_stealth_payment,
    prepare_username_registration,
    resolve_recipient,
)
from ninja_stealth.exceptions import ErrorCode, LedgerError, ValidationError
from ninja_stealth.ledger.base import MetaKeys
from ninja_stealth.ledger.contract import decode_send_to_stealth, function_selector
from ninja_stealth.proofs import ephemeral_pubkey_hash, hash_username
from ninja_stealth.stealth import check_stealth_payment

from .conftest import CONTRACT, FakeLedger, make_key_set

RECIPIENT = "0x" + "c3" * 20


@pytest.fixture
def recipient_keys():
    return make_key_set(0xD00D)


@pytest.fixture
def ledger(recipient_keys):
    ledger = FakeLedger()
    ledger.meta[RECIPIENT] = MetaKeys(
        viewing_pub=recipient_keys.meta_viewing_pub,
        spending_pub=recipient_keys.meta_spending_pub,
        registered=True,
    )
    return ledger


class TestPrepareStealthPayment:
    """Tests for prepare_stealth_payment."""

    async def test_recipient_can_detect(self, ledger, recipient_keys):
        """The calldata round-trips through discovery to the recipient."""
        prepared = await prepare_stealth_payment(ledger, CONTRACT, RECIPIENT, 5_000_000)
        stealth, amount, ephemeral = decode_send_to_stealth(prepared.calldata)
        assert amount == 5_000_000
        assert stealth == prepared.payment.stealth_address_hex

        found = extract_ephemeral_key(prepared.calldata, CONTRACT)
        result = check_stealth_payment(
            found.ephemeral_public_key,
            recipient_keys.meta_viewing_priv,
            recipient_keys.meta_spending_pub,
            prepared.payment.stealth_address,
        )
        assert result.is_for_me

    async def test_unregistered_recipient(self, ledger):
        with pytest.raises(LedgerError) as exc:
            await prepare_stealth_payment(ledger, CONTRACT, "0x" + "d4" * 20, 1)
        assert exc.value.code == ErrorCode.RECIPIENT_NOT_REGISTERED

    async def test_invalid_amount(self, ledger):
        with pytest.raises(ValidationError) as exc:
            await prepare_stealth_payment(ledger, CONTRACT, RECIPIENT, 0)
        assert exc.value.code == ErrorCode.INVALID_AMOUNT

    async def test_invalid_recipient(self, ledger):
        with pytest.raises(ValidationError):
            await prepare_stealth_payment(ledger, CONTRACT, "@_alice", 1)

    @pytest.mark.parametrize("recipient", ["@alice", "alice"])
    async def test_username_recipient(self, ledger, recipient):
        ledger.register_username(hash_username("alice"), RECIPIENT, block_number=900)
        prepared = await prepare_stealth_payment(ledger, CONTRACT, recipient, 1)
        assert prepared.recipient == RECIPIENT

    async def test_unknown_username(self, ledger):
        with pytest.raises(LedgerError) as exc:
            await prepare_stealth_payment(ledger, CONTRACT, "@alice", 1)
        assert exc.value.code == ErrorCode.USERNAME_NOT_FOUND


class TestResolveRecipient:
    """Tests for recipient resolution."""

    async def test_address_passthrough(self, ledger):
        assert await resolve_recipient(ledger, CONTRACT, "0x" + "C3" * 20) == RECIPIENT

    async def test_latest_registration_wins(self, ledger):
        newer = "0x" + "e5" * 20
        ledger.register_username(hash_username("alice"), RECIPIENT, block_number=800)
        ledger.register_username(hash_username("alice"), newer, block_number=950)
        assert await resolve_recipient(ledger, CONTRACT, "@alice") == newer

    async def test_lookback_window(self, ledger):
        """Registrations older than the lookback window are not searched."""
        ledger.head = 200_000
        ledger.register_username(hash_username("alice"), RECIPIENT, block_number=10)
        with pytest.raises(LedgerError):
            await resolve_recipient(ledger, CONTRACT, "@alice")
        assert ledger.requested_from == 100_000


class TestUsernames:
    """Tests for username availability and lookup."""

    async def test_availability(self, ledger):
        assert await is_username_available(ledger, CONTRACT, "alice")
        ledger.register_username(hash_username("alice"), RECIPIENT, block_number=1)
        assert not await is_username_available(ledger, CONTRACT, "alice")

    async def test_lookup_without_username(self, ledger):
        status = await lookup_username(ledger, CONTRACT, RECIPIENT)
        assert not status.has_username
        assert status.username is None

    async def test_lookup_verifies_candidate(self, ledger):
        ledger.register_username(hash_username("alice"), RECIPIENT, block_number=1)
        assert (await lookup_username(ledger, CONTRACT, RECIPIENT, "alice")).username == "alice"
        status = await lookup_username(ledger, CONTRACT, RECIPIENT, "mallory")
        assert status.has_username
        assert status.username is None


class TestRegistrationCalldata:
    """Tests for registration and claim calldata."""

    def test_username_registration(self):
        prepared = prepare_username_registration("alice", RECIPIENT, bytes([7]) * 32)
        assert prepared.calldata[:4] == function_selector("RegisterUsername(bytes32,bytes32,bytes)")
        username_hash, commitment, proof = decode(
            ["bytes32", "bytes32", "bytes"], prepared.calldata[4:]
        )
        assert username_hash == hash_username("alice")
        assert commitment == prepared.proof.commitment
        assert proof == prepared.proof.encode_for_contract()

    def test_meta_keys_registration(self, recipient_keys):
        calldata = prepare_meta_keys_registration(recipient_keys.public_keys())
        assert calldata[:4] == function_selector("registerMetaKeys(bytes,bytes)")
        viewing, spending = decode(["bytes", "bytes"], calldata[4:])
        assert viewing == recipient_keys.meta_viewing_pub
        assert spending == recipient_keys.meta_spending_pub

    def test_claim(self):
        stealth = "0x" + "42" * 20
        ephemeral = b"\x02" + bytes([9]) * 32
        calldata = prepare_claim(stealth, ephemeral, RECIPIENT)
        assert calldata[:4] == function_selector("claimFromStealth(address,bytes)")
        address, proof = decode(["address", "bytes"], calldata[4:])
        assert address.lower() == stealth
        _, public_values, _ = decode(["bytes32", "bytes", "bytes"], proof)
        _, ephemeral_hash, claimer = decode(["address", "bytes32", "address"], public_values)
        assert ephemeral_hash == ephemeral_pubkey_hash(ephemeral)
        assert claimer.lower() == RECIPIENT

    def test_claim_rejects_bad_address(self):
        with pytest.raises(ValidationError):
            prepare_claim("0x1234", b"\x02" * 33, RECIPIENT)
