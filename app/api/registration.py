"""Registration, payment webhook and payment notification endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Request
from fastapi.responses import StreamingResponse

from app.api.deps import get_services, raw_path_param
from app.api.models import ERROR_RESPONSES, PayInfo, RegisterRequest
from app.core.config import PAID_MESSAGE
from app.didweb.broker import payment_events
from app.didweb.codec import DID_METHOD_PREFIX, parse

log = logging.getLogger(__name__)
router = APIRouter(tags=["registration"], responses=ERROR_RESPONSES)


@router.post("/register")
async def register(req: RegisterRequest, request: Request) -> str:
    """Request registration of ``<domain>:<name>``.

    Returns the invoice to pay. Repeating the request with the same
    document before payment returns the same invoice.
    """
    services = get_services(request)
    return await services.registrar.request_registration(req.id, req.keys, req.services)


@router.post("/paid/{nonce}")
async def paid(nonce: str, request: Request, info: Optional[PayInfo] = Body(None)) -> str:
    """LNbits webhook: the invoice for ``nonce`` has been paid."""
    services = get_services(request)
    if info is not None and info.payment_hash:
        log.info(f"Payment webhook payment_hash={info.payment_hash[:8]} amount={info.amount}")

    document = await services.registrar.confirm_payment(nonce)
    services.broker.broadcast_payment(document.id)
    return "ok"


def _canonical_did(identifier: str) -> str:
    if not identifier.startswith(DID_METHOD_PREFIX):
        identifier = DID_METHOD_PREFIX + identifier
    return parse(identifier).did()


@router.get("/payment/{identifier}")
async def wait_for_payment(identifier: str, request: Request) -> StreamingResponse:
    """Stream ``data: paid`` once the identifier's registration finalizes.

    Accepts the full DID or ``<domain>:<name>``. If the identifier is
    already finalized the event is sent immediately.
    """
    services = get_services(request)
    did = _canonical_did(raw_path_param(request, "/payment/", identifier))

    queue, unsubscribe = services.broker.subscribe(did)
    try:
        if services.dids.exists(parse(did).id()):
            queue.put_nowait(PAID_MESSAGE)
    except Exception:
        unsubscribe()
        raise
    log.info(f"Connected and waiting for payment on {did}")

    return StreamingResponse(
        payment_events(queue, unsubscribe, services.settings.sse_keepalive),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )
