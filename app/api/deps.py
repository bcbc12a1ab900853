"""Request-scoped access to application services."""

from fastapi import Request

from app.core.services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def raw_path_param(request: Request, prefix: str, fallback: str) -> str:
    """Undecoded remainder of the request path after ``prefix``.

    Starlette decodes ``%3A`` and friends before routing; identifiers must
    reach the codec with their escapes intact. Falls back to the decoded
    path parameter when the raw path is unavailable.
    """
    raw = request.scope.get("raw_path")
    if not raw:
        return fallback
    path = raw.decode("latin-1").split("?", 1)[0]
    if not path.startswith(prefix):
        return fallback
    return path[len(prefix):]
