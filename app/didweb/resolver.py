"""Remote did:web resolution over HTTPS.

Resolution is a single GET of the identifier's document URL followed by an
identity check of the returned document. Nothing is retried; callers decide
on retry policy.
"""

import logging
from typing import Optional

import httpx

from app.core.config import RESOLVE_TIMEOUT_SECONDS

from .codec import parse
from .document import DIDDocument
from .exceptions import (
    DIDNotFoundError,
    DocumentIdentifierMismatchError,
    UpstreamError,
)

log = logging.getLogger(__name__)


async def _fetch(client: httpx.AsyncClient, url: str) -> httpx.Response:
    try:
        return await client.get(url, headers={"Accept": "application/json"})
    except httpx.TimeoutException:
        raise UpstreamError(f"timeout fetching {url}")
    except httpx.RequestError as e:
        raise UpstreamError(f"network error fetching {url}: {e}")


async def resolve(
    identifier: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = RESOLVE_TIMEOUT_SECONDS,
) -> DIDDocument:
    """Fetch and verify the DID document for a did:web identifier.

    Args:
        identifier: Full identifier, e.g. ``did:web:example.com:alice``.
        client: Optional shared client. A short-lived client is created
            when omitted.
        timeout: Request timeout for the short-lived client.

    Returns:
        The resolved DIDDocument.

    Raises:
        MalformedIdentifierError, EncodingError: Invalid identifier.
        DIDNotFoundError: Upstream returned 404.
        UpstreamError: Any other non-200 status or a network failure.
        InvalidDocumentError: Body is not a DID document.
        DocumentIdentifierMismatchError: Document id differs from identifier.
    """
    url = parse(identifier).url()
    log.debug(f"Resolving {identifier} via {url}")

    if client is not None:
        response = await _fetch(client, url)
    else:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as owned:
            response = await _fetch(owned, url)

    if response.status_code == 404:
        raise DIDNotFoundError(f"{identifier} not found at {url}")
    if response.status_code != 200:
        raise UpstreamError(
            f"unexpected status {response.status_code} from {url}",
            status=response.status_code,
        )

    document = DIDDocument.from_json(response.content)
    if document.id.lower() != identifier.lower():
        raise DocumentIdentifierMismatchError(
            f"document id {document.id!r} does not match {identifier!r}"
        )

    log.info(f"Resolved {identifier}")
    return document
