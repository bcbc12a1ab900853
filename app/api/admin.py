"""Admin and service endpoints: delete, health and version."""

import hmac
import logging
import os

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from app.api.deps import get_services, raw_path_param
from app.api.models import ERROR_RESPONSES, HealthResponse
from app.didweb.codec import DID_METHOD_PREFIX, parse
from app.didweb.exceptions import DIDWebError, MalformedIdentifierError

log = logging.getLogger(__name__)
router = APIRouter(tags=["admin"], responses=ERROR_RESPONSES)

API_KEY_HEADER = "X-Api-Key"


def _authorized(request: Request, expected: str) -> bool:
    supplied = request.headers.get(API_KEY_HEADER, "")
    if not expected or not supplied:
        return False
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


@router.delete("/delete/{identifier}")
async def delete(identifier: str, request: Request):
    """Remove a finalized document.

    Requires the X-Api-Key header to match DIDWEB_ADMIN_API_KEY. Deleting
    an unknown identifier succeeds.
    """
    services = get_services(request)
    if not _authorized(request, services.settings.admin_api_key):
        log.warning("Rejected delete request with missing or invalid API key")
        return JSONResponse(status_code=401, content={"error": "unauthorized"})

    identifier = raw_path_param(request, "/delete/", identifier)
    if not identifier.startswith(DID_METHOD_PREFIX):
        identifier = DID_METHOD_PREFIX + identifier
    try:
        url = parse(identifier)
    except DIDWebError:
        raise MalformedIdentifierError("invalid id")

    services.dids.delete(url.id())
    return {"deleted": url.did()}


@router.get("/health", response_model=HealthResponse)
@router.get("/healthz", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    services = get_services(request)
    return HealthResponse(ok=True, subscribers=services.broker.subscriber_count())


@router.get("/version")
def version():
    # GIT_SHA is injected at deploy time
    return {"git_sha": os.getenv("GIT_SHA", "unknown")}
