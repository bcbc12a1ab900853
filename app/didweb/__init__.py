"""did:web identifiers, resolution and payment-gated registration."""

from .exceptions import (
    ErrorCode,
    ERROR_HTTP_STATUS,
    DIDWebError,
    MalformedIdentifierError,
    EncodingError,
    NotAWellKnownPathError,
    DIDNotFoundError,
    UpstreamError,
    InvalidDocumentError,
    DocumentIdentifierMismatchError,
    DuplicateIdentifierError,
    NoAssertionMethodError,
    InvalidDomainError,
    UnknownNonceError,
    GatewayError,
    StoreError,
)
from .codec import DIDWebURL, parse, parse_path
from .document import DIDDocument, DIDDocumentBuilder, Service, VerificationMethod, document_from_props
from .resolver import resolve
from .storage import DIDStore, SQLStore, open_engine
from .gateway import Invoice, LNbitsGateway
from .broker import PaymentBroker, payment_events
from .registration import Registrar, RegistrationState

__all__ = [
    # Exceptions
    "ErrorCode",
    "ERROR_HTTP_STATUS",
    "DIDWebError",
    "MalformedIdentifierError",
    "EncodingError",
    "NotAWellKnownPathError",
    "DIDNotFoundError",
    "UpstreamError",
    "InvalidDocumentError",
    "DocumentIdentifierMismatchError",
    "DuplicateIdentifierError",
    "NoAssertionMethodError",
    "InvalidDomainError",
    "UnknownNonceError",
    "GatewayError",
    "StoreError",
    # Codec
    "DIDWebURL",
    "parse",
    "parse_path",
    # Documents
    "DIDDocument",
    "DIDDocumentBuilder",
    "Service",
    "VerificationMethod",
    "document_from_props",
    "resolve",
    # Storage
    "DIDStore",
    "SQLStore",
    "open_engine",
    # Payments
    "Invoice",
    "LNbitsGateway",
    "PaymentBroker",
    "payment_events",
    "Registrar",
    "RegistrationState",
]
