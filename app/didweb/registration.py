"""Payment-gated registration of did:web identifiers.

Lifecycle of one registration:

    REQUESTED -> INVOICE_PENDING -> PAID -> FINALIZED
        \\-> REJECTED (duplicate, foreign domain, no assertion method)

request_registration() stores two records in the registration bucket:
the candidate document under a random nonce, and the invoice under the
full DID. confirm_payment() pops the nonce record, which is the single
point that decides which webhook delivery finalizes the document.
"""

import json
import logging
import re
import secrets
from enum import Enum
from typing import Any, List, Optional

from app.core.config import NONCE_BYTES, REGISTRATION_AMOUNT_SATS

from .codec import DID_METHOD_PREFIX, parse
from .document import DIDDocument, Service, document_from_props
from .exceptions import (
    DIDWebError,
    DuplicateIdentifierError,
    InvalidDomainError,
    StoreError,
    UnknownNonceError,
)
from .gateway import LNbitsGateway
from .storage import DIDStore, SQLStore

log = logging.getLogger(__name__)

_NONCE_PATTERN = re.compile(rf"^[0-9a-f]{{{NONCE_BYTES * 2}}}$")


class RegistrationState(str, Enum):
    REQUESTED = "REQUESTED"
    INVOICE_PENDING = "INVOICE_PENDING"
    PAID = "PAID"
    FINALIZED = "FINALIZED"
    REJECTED = "REJECTED"


def new_nonce() -> str:
    return secrets.token_hex(NONCE_BYTES)


def _short(nonce: str) -> str:
    return nonce[:8]


class Registrar:
    """Registration state machine for one domain.

    Attributes:
        domain: Domain whose identifiers may be registered.
        dids: Finalized documents.
        pending: Nonce and invoice records.
        gateway: Payment gateway used for invoices.
        webhook_base_url: Public base URL LNbits calls back on payment.
        amount: Invoice amount in satoshis.
    """

    def __init__(
        self,
        domain: str,
        dids: DIDStore,
        pending: SQLStore,
        gateway: LNbitsGateway,
        webhook_base_url: str,
        amount: int = REGISTRATION_AMOUNT_SATS,
    ):
        self.domain = domain
        self.dids = dids
        self.pending = pending
        self.gateway = gateway
        self.webhook_base_url = webhook_base_url.rstrip("/")
        self.amount = amount

    def _reject(self, identifier: str, error: DIDWebError) -> DIDWebError:
        log.info(f"Registration {RegistrationState.REJECTED.value} for {identifier}: {error.code}")
        return error

    def _check_identifier(self, identifier: str) -> str:
        """Validate a ``domain:name`` identifier and return its full DID."""
        parts = identifier.split(":")
        if len(parts) < 2 or parts[0] != self.domain:
            raise self._reject(identifier, InvalidDomainError(
                f"id must be in the form {self.domain}:sally, "
                f"where sally is the name you're registering"
            ))

        url = parse(DID_METHOD_PREFIX + identifier)
        if not url.parts:
            raise self._reject(identifier, InvalidDomainError(
                f"id must be in the form {self.domain}:sally, "
                f"where sally is the name you're registering"
            ))
        return url.did()

    def _load_invoice(self, did: str) -> Optional[dict]:
        raw = self.pending.get(did)
        if not raw:
            return None
        try:
            record = json.loads(raw)
        except ValueError:
            log.warning(f"Discarding unreadable invoice record for {did}")
            return None
        if not isinstance(record, dict) or "payment_request" not in record:
            return None
        return record

    async def request_registration(
        self,
        identifier: str,
        keys: List[Any],
        services: List[Service],
    ) -> str:
        """Start or resume a registration and return its invoice.

        Args:
            identifier: ``<domain>:<name>[:<name>...]``.
            keys: Key inputs (verification method plus purposes).
            services: Services to publish in the document.

        Returns:
            The payment request string to pay.

        Raises:
            InvalidDomainError: Identifier is not under this domain.
            MalformedIdentifierError, EncodingError: Identifier is invalid.
            DuplicateIdentifierError: Identifier is already registered.
            NoAssertionMethodError: No key has the assertionMethod purpose.
            InvalidDocumentError: Keys or services are inconsistent.
            GatewayError: Invoice could not be created.
            StoreError: Records could not be written.
        """
        log.debug(f"Registration {RegistrationState.REQUESTED.value} for {identifier}")
        did = self._check_identifier(identifier)

        if self.dids.exists(parse(did).id()):
            raise self._reject(identifier, DuplicateIdentifierError())

        try:
            document = document_from_props(identifier, keys, services)
        except DIDWebError as e:
            raise self._reject(identifier, e)
        digest = document.digest()

        record = self._load_invoice(did)
        if record is not None:
            if record.get("document_digest") == digest:
                if await self.gateway.validate_payment_request(record["payment_request"]):
                    log.info(f"Returning existing invoice for {did}")
                    return record["payment_request"]
                log.info(f"Stored invoice for {did} failed validation, issuing a new one")
            else:
                log.info(f"Document for {did} changed, issuing a new invoice")

        nonce = new_nonce()
        invoice = await self.gateway.create_invoice(
            amount=self.amount,
            memo=f"Register {did}",
            webhook=f"{self.webhook_base_url}/paid/{nonce}",
        )

        self.pending.set(nonce, document.to_json().encode("utf-8"))
        self.pending.set(did, json.dumps({
            "payment_request": invoice.payment_request,
            "payment_hash": invoice.payment_hash,
            "document_digest": digest,
        }).encode("utf-8"))

        log.info(
            f"Registration {RegistrationState.INVOICE_PENDING.value} for {did} "
            f"nonce={_short(nonce)} payment_hash={invoice.payment_hash[:8]}"
        )
        return invoice.payment_request

    async def confirm_payment(self, nonce: str) -> DIDDocument:
        """Finalize the registration a paid invoice belongs to.

        The nonce record is removed before anything else happens, so each
        nonce finalizes at most once however often the webhook fires.

        Raises:
            UnknownNonceError: Nonce never existed or was already used.
            DuplicateIdentifierError: Identifier was finalized meanwhile.
            StoreError: The pending record is corrupt or a write failed.
        """
        if not _NONCE_PATTERN.match(nonce):
            log.warning("Payment confirmation with malformed nonce")
            raise UnknownNonceError()

        raw = self.pending.pop(nonce)
        if not raw:
            log.warning(f"Payment confirmation for unknown nonce={_short(nonce)}")
            raise UnknownNonceError()
        log.info(f"Registration {RegistrationState.PAID.value} nonce={_short(nonce)}")

        try:
            document = DIDDocument.from_json(raw)
        except DIDWebError as e:
            raise StoreError(f"pending registration nonce={_short(nonce)} is corrupt: {e.message}")

        key = parse(document.id).id()
        if self.dids.exists(key):
            log.warning(f"Paid registration for {document.id} already finalized")
            raise DuplicateIdentifierError()

        self.dids.register(document)
        self.pending.delete(document.id)
        log.info(f"Registration {RegistrationState.FINALIZED.value} for {document.id}")
        return document

    def state(self, identifier: str) -> Optional[RegistrationState]:
        """Observable state of a ``domain:name`` identifier, if any."""
        url = parse(DID_METHOD_PREFIX + identifier)
        if self.dids.exists(url.id()):
            return RegistrationState.FINALIZED
        if self._load_invoice(url.did()) is not None:
            return RegistrationState.INVOICE_PENDING
        return None
