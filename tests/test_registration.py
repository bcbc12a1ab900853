"""Tests for the payment-gated registration state machine."""
import asyncio
import json

import pytest

from app.didweb.exceptions import (
    DuplicateIdentifierError,
    EncodingError,
    GatewayError,
    InvalidDocumentError,
    InvalidDomainError,
    MalformedIdentifierError,
    NoAssertionMethodError,
    UnknownNonceError,
)
from app.didweb.registration import Registrar, RegistrationState, new_nonce
from tests.conftest import DOMAIN, make_key, make_service


DID = f"did:web:{DOMAIN}:alice"


@pytest.fixture
def registrar(did_store, reg_store, gateway) -> Registrar:
    return Registrar(
        domain=DOMAIN,
        dids=did_store,
        pending=reg_store,
        gateway=gateway,
        webhook_base_url=f"https://{DOMAIN}/",
        amount=69,
    )


class TestRequestRegistration:
    @pytest.mark.asyncio
    async def test_issues_invoice(self, registrar, gateway, reg_store):
        invoice = await registrar.request_registration(f"{DOMAIN}:alice", [make_key()], [])

        assert invoice == "lnbc69n1test1"
        issued = gateway.invoices[0]
        assert issued["amount"] == 69
        assert issued["memo"] == f"Register {DID}"
        nonce = gateway.last_nonce()
        assert issued["webhook"] == f"https://{DOMAIN}/paid/{nonce}"
        assert len(nonce) == 128
        int(nonce, 16)

        pending = json.loads(reg_store.get(nonce))
        assert pending["id"] == DID
        record = json.loads(reg_store.get(DID))
        assert record["payment_request"] == invoice
        assert registrar.state(f"{DOMAIN}:alice") == RegistrationState.INVOICE_PENDING

    @pytest.mark.asyncio
    @pytest.mark.parametrize("identifier", [
        "alice",
        "other.com:alice",
        f"did:web:{DOMAIN}:alice",
        f"{DOMAIN}:",
    ])
    async def test_rejects_foreign_or_bare_identifier(self, registrar, gateway, identifier):
        with pytest.raises(InvalidDomainError) as exc_info:
            await registrar.request_registration(identifier, [make_key()], [])
        assert exc_info.value.status_code == 400
        assert gateway.invoices == []

    @pytest.mark.asyncio
    async def test_rejects_bad_escape(self, registrar):
        with pytest.raises(EncodingError):
            await registrar.request_registration(f"{DOMAIN}:bad%zz", [make_key()], [])

    @pytest.mark.asyncio
    async def test_rejects_control_character(self, registrar, gateway, did_store):
        with pytest.raises(MalformedIdentifierError):
            await registrar.request_registration(f"{DOMAIN}:a%0Ab", [make_key()], [])
        assert gateway.invoices == []
        assert not did_store.exists(f"{DOMAIN}:ab")

    @pytest.mark.asyncio
    async def test_rejects_duplicate(self, registrar, gateway):
        await registrar.request_registration(f"{DOMAIN}:alice", [make_key()], [])
        await registrar.confirm_payment(gateway.last_nonce())

        with pytest.raises(DuplicateIdentifierError):
            await registrar.request_registration(f"{DOMAIN}:alice", [make_key()], [])
        assert len(gateway.invoices) == 1

    @pytest.mark.asyncio
    async def test_requires_assertion_method(self, registrar, gateway, reg_store):
        with pytest.raises(NoAssertionMethodError):
            await registrar.request_registration(
                f"{DOMAIN}:alice", [make_key(purposes=("authentication",))], []
            )
        assert gateway.invoices == []
        assert reg_store.get(DID) == b""
        assert registrar.state(f"{DOMAIN}:alice") is None

    @pytest.mark.asyncio
    async def test_duplicate_service_rejected(self, registrar):
        with pytest.raises(InvalidDocumentError):
            await registrar.request_registration(
                f"{DOMAIN}:alice", [make_key()], [make_service(), make_service()]
            )

    @pytest.mark.asyncio
    async def test_same_document_returns_same_invoice(self, registrar, gateway):
        first = await registrar.request_registration(f"{DOMAIN}:alice", [make_key()], [])
        second = await registrar.request_registration(f"{DOMAIN}:alice", [make_key()], [])

        assert first == second
        assert len(gateway.invoices) == 1
        assert gateway.validations == [first]

    @pytest.mark.asyncio
    async def test_changed_document_gets_new_invoice(self, registrar, gateway):
        first = await registrar.request_registration(f"{DOMAIN}:alice", [make_key()], [])
        second = await registrar.request_registration(f"{DOMAIN}:alice", [make_key("key-2")], [])

        assert first != second
        assert len(gateway.invoices) == 2

    @pytest.mark.asyncio
    async def test_stale_invoice_replaced(self, registrar, gateway):
        first = await registrar.request_registration(f"{DOMAIN}:alice", [make_key()], [])
        gateway.revoke(first)

        second = await registrar.request_registration(f"{DOMAIN}:alice", [make_key()], [])

        assert second != first
        assert len(gateway.invoices) == 2

    @pytest.mark.asyncio
    async def test_gateway_failure_stores_nothing(self, registrar, gateway, reg_store):
        gateway.fail_with = GatewayError("down")
        with pytest.raises(GatewayError):
            await registrar.request_registration(f"{DOMAIN}:alice", [make_key()], [])
        assert reg_store.get(DID) == b""


class TestConfirmPayment:
    @pytest.mark.asyncio
    async def test_finalizes(self, registrar, gateway, reg_store, did_store):
        await registrar.request_registration(f"{DOMAIN}:alice", [make_key()], [])
        nonce = gateway.last_nonce()

        doc = await registrar.confirm_payment(nonce)

        assert doc.id == DID
        assert did_store.resolve(f"{DOMAIN}:alice").id == DID
        assert reg_store.get(nonce) == b""
        assert reg_store.get(DID) == b""
        assert registrar.state(f"{DOMAIN}:alice") == RegistrationState.FINALIZED

    @pytest.mark.asyncio
    async def test_unknown_nonce(self, registrar):
        with pytest.raises(UnknownNonceError) as exc_info:
            await registrar.confirm_payment(new_nonce())
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    @pytest.mark.parametrize("nonce", ["", "abc", "Z" * 128, "../etc/passwd"])
    async def test_malformed_nonce(self, registrar, nonce):
        with pytest.raises(UnknownNonceError):
            await registrar.confirm_payment(nonce)

    @pytest.mark.asyncio
    async def test_consumed_nonce_is_unknown(self, registrar, gateway):
        await registrar.request_registration(f"{DOMAIN}:alice", [make_key()], [])
        nonce = gateway.last_nonce()
        await registrar.confirm_payment(nonce)

        with pytest.raises(UnknownNonceError):
            await registrar.confirm_payment(nonce)

    @pytest.mark.asyncio
    async def test_concurrent_confirmations_finalize_once(self, registrar, gateway):
        await registrar.request_registration(f"{DOMAIN}:alice", [make_key()], [])
        nonce = gateway.last_nonce()

        results = await asyncio.gather(
            *(registrar.confirm_payment(nonce) for _ in range(10)),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 9
        assert all(isinstance(f, UnknownNonceError) for f in failures)

    @pytest.mark.asyncio
    async def test_second_paid_invoice_does_not_overwrite(self, registrar, gateway, did_store):
        await registrar.request_registration(f"{DOMAIN}:alice", [make_key()], [])
        first_nonce = gateway.last_nonce()
        await registrar.request_registration(f"{DOMAIN}:alice", [make_key("key-2")], [])
        second_nonce = gateway.last_nonce()

        await registrar.confirm_payment(second_nonce)
        with pytest.raises(DuplicateIdentifierError):
            await registrar.confirm_payment(first_nonce)

        assert did_store.resolve(f"{DOMAIN}:alice").verification_method[0].fragment == "key-2"
