"""Resolution endpoints: ``/resolve/{id}``, nostr.json and well-known paths.

Resolution failures of any kind answer 404 ``not found``; only an
unparseable identifier is a 400.
"""

import logging
from typing import Optional
from urllib.parse import quote_plus

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from app.api.deps import get_services, raw_path_param
from app.api.models import ERROR_RESPONSES, NostrNamesResponse
from app.didweb.codec import DID_METHOD_PREFIX, parse, parse_path
from app.didweb.exceptions import DIDWebError, DIDNotFoundError, MalformedIdentifierError
from app.didweb.nostr import lookup_names
from app.didweb.resolver import resolve as resolve_remote

log = logging.getLogger(__name__)
router = APIRouter(tags=["resolution"], responses=ERROR_RESPONSES)

# Registered after every other router so it only sees leftover GETs
well_known_router = APIRouter(tags=["resolution"], responses=ERROR_RESPONSES)


def _document_response(document) -> JSONResponse:
    return JSONResponse(content=document.to_dict())


@router.get("/resolve/{identifier}")
async def resolve(identifier: str, request: Request) -> JSONResponse:
    """Resolve a did:web identifier.

    Identifiers under this server's domain come from the local store;
    anything else is fetched from its own host.
    """
    services = get_services(request)
    identifier = raw_path_param(request, "/resolve/", identifier)
    if not identifier:
        raise MalformedIdentifierError("invalid id")
    if not identifier.startswith(DID_METHOD_PREFIX):
        identifier = DID_METHOD_PREFIX + identifier

    try:
        url = parse(identifier)
    except DIDWebError as e:
        log.info(f"Rejected identifier {identifier!r}: {e.code}")
        raise MalformedIdentifierError("invalid id")

    try:
        if url.raw_host.lower() == services.settings.domain.lower():
            document = services.dids.resolve(url.id())
        else:
            document = await resolve_remote(url.did(), timeout=services.settings.resolve_timeout)
    except DIDWebError as e:
        log.info(f"Could not resolve {url.did()}: {e.code} {e.message}")
        raise DIDNotFoundError()

    return _document_response(document)


@router.get("/.well-known/nostr.json", response_model=NostrNamesResponse)
async def nostr_json(request: Request, name: Optional[str] = None) -> NostrNamesResponse:
    """NIP-05 lookup of ``name`` under this server's domain."""
    services = get_services(request)
    return NostrNamesResponse(**lookup_names(services.dids, services.settings.domain, name))


@well_known_router.get("/{path:path}")
async def well_known(path: str, request: Request) -> JSONResponse:
    """Serve ``<path>/did.json`` and ``/.well-known/did.json`` for the request host."""
    services = get_services(request)
    host = request.headers.get("host", services.settings.domain)
    raw = raw_path_param(request, "/", path)
    try:
        url = parse_path(f"{quote_plus(host)}/{raw}")
        document = services.dids.resolve(url.id())
    except DIDWebError as e:
        log.debug(f"No document at {host}/{raw}: {e.code}")
        raise DIDNotFoundError()
    return _document_response(document)
