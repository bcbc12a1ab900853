"""did:web exceptions mapped to stable error codes and HTTP statuses.

Codec and validation failures are client errors (4xx). Gateway and store
failures are server errors (5xx) whose detail is logged but not necessarily
shown to the client.
"""

from typing import Dict, Optional


class ErrorCode:
    """Error code registry."""
    # Codec layer
    MALFORMED_IDENTIFIER = "MALFORMED_IDENTIFIER"
    ENCODING_ERROR = "ENCODING_ERROR"
    NOT_A_WELL_KNOWN_PATH = "NOT_A_WELL_KNOWN_PATH"

    # Resolution layer
    DID_NOT_FOUND = "DID_NOT_FOUND"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    INVALID_DOCUMENT = "INVALID_DOCUMENT"
    DOCUMENT_ID_MISMATCH = "DOCUMENT_ID_MISMATCH"

    # Registration layer
    DUPLICATE_IDENTIFIER = "DUPLICATE_IDENTIFIER"
    NO_ASSERTION_METHOD = "NO_ASSERTION_METHOD"
    INVALID_DOMAIN = "INVALID_DOMAIN"
    UNKNOWN_NONCE = "UNKNOWN_NONCE"

    # Infrastructure
    GATEWAY_ERROR = "GATEWAY_ERROR"
    STORE_ERROR = "STORE_ERROR"


ERROR_HTTP_STATUS: Dict[str, int] = {
    ErrorCode.MALFORMED_IDENTIFIER: 400,
    ErrorCode.ENCODING_ERROR: 400,
    ErrorCode.NOT_A_WELL_KNOWN_PATH: 404,
    ErrorCode.DID_NOT_FOUND: 404,
    ErrorCode.UPSTREAM_ERROR: 404,
    ErrorCode.INVALID_DOCUMENT: 400,
    ErrorCode.DOCUMENT_ID_MISMATCH: 404,
    ErrorCode.DUPLICATE_IDENTIFIER: 400,
    ErrorCode.NO_ASSERTION_METHOD: 400,
    ErrorCode.INVALID_DOMAIN: 400,
    ErrorCode.UNKNOWN_NONCE: 401,
    ErrorCode.GATEWAY_ERROR: 500,
    ErrorCode.STORE_ERROR: 500,
}


class DIDWebError(Exception):
    """Base exception for did:web operations.

    Carries an error code that maps to an HTTP status via ERROR_HTTP_STATUS.
    """

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return ERROR_HTTP_STATUS.get(self.code, 500)


class MalformedIdentifierError(DIDWebError):
    """Identifier is not of the form did:web:<host>[:<path>...]."""

    def __init__(
        self,
        message: str = "invalid did, must be in format did:web:example.org:john",
    ):
        super().__init__(ErrorCode.MALFORMED_IDENTIFIER, message)


class EncodingError(DIDWebError):
    """A path segment is not valid percent-encoding."""

    def __init__(self, message: str = "invalid unescape of path part"):
        super().__init__(ErrorCode.ENCODING_ERROR, message)


class NotAWellKnownPathError(DIDWebError):
    """Request path does not name a did.json document."""

    def __init__(self, message: str = "not found"):
        super().__init__(ErrorCode.NOT_A_WELL_KNOWN_PATH, message)


class DIDNotFoundError(DIDWebError):
    def __init__(self, message: str = "not found"):
        super().__init__(ErrorCode.DID_NOT_FOUND, message)


class UpstreamError(DIDWebError):
    """Remote host answered with something other than 200 or 404.

    Also used when the remote host cannot be reached at all, in which case
    ``status`` is None.
    """

    def __init__(self, message: str = "upstream error", status: Optional[int] = None):
        self.status = status
        super().__init__(ErrorCode.UPSTREAM_ERROR, message)


class InvalidDocumentError(DIDWebError):
    def __init__(self, message: str = "invalid did document"):
        super().__init__(ErrorCode.INVALID_DOCUMENT, message)


class DocumentIdentifierMismatchError(DIDWebError):
    """Fetched document's id differs from the identifier that was resolved."""

    def __init__(self, message: str = "mismatched document id"):
        super().__init__(ErrorCode.DOCUMENT_ID_MISMATCH, message)


class DuplicateIdentifierError(DIDWebError):
    def __init__(self, message: str = "did exists"):
        super().__init__(ErrorCode.DUPLICATE_IDENTIFIER, message)


class NoAssertionMethodError(DIDWebError):
    def __init__(
        self,
        message: str = "did document must have at least one assertion verification method",
    ):
        super().__init__(ErrorCode.NO_ASSERTION_METHOD, message)


class InvalidDomainError(DIDWebError):
    def __init__(self, message: str = "invalid domain"):
        super().__init__(ErrorCode.INVALID_DOMAIN, message)


class UnknownNonceError(DIDWebError):
    """Webhook nonce was never issued or has already been consumed.

    Both cases are reported identically; the caller learns nothing about
    which nonces exist.
    """

    def __init__(self, message: str = "unauthorized"):
        super().__init__(ErrorCode.UNKNOWN_NONCE, message)


class GatewayError(DIDWebError):
    """Payment API unreachable or returned an unexpected status."""

    def __init__(self, message: str = "payment gateway error"):
        super().__init__(ErrorCode.GATEWAY_ERROR, message)


class StoreError(DIDWebError):
    def __init__(self, message: str = "storage error"):
        super().__init__(ErrorCode.STORE_ERROR, message)
