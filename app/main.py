"""did:web resolver and registrar FastAPI application."""
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api import admin, registration, resolution
from app.core.config import ServerSettings
from app.core.services import Services, build_services
from app.didweb.exceptions import DIDWebError
from app.logging_config import configure_logging

log = logging.getLogger("didweb")

GENERIC_SERVER_ERROR = "internal error"


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(
    settings: Optional[ServerSettings] = None,
    services: Optional[Services] = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Server settings; read from the environment when omitted.
        services: Prebuilt services. When given, the lifespan neither builds
            nor closes them.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("Starting did:web server...")
        owned = app.state.services is None
        try:
            if owned:
                app.state.services = build_services(settings or ServerSettings.from_env())
            await app.state.services.start()
            log.info(f"did:web server started for {app.state.services.settings.domain}")
        except Exception as e:
            log.error(f"Failed to start services: {e}")
            raise

        yield

        log.info("Shutting down did:web server...")
        if owned:
            await app.state.services.close()
            app.state.services = None
        else:
            await app.state.services.broker.stop()
        log.info("did:web server stopped")

    app = FastAPI(
        title="did:web server",
        version="0.1.0",
        description="did:web resolver and payment-gated registrar",
        lifespan=lifespan,
    )
    app.state.services = services

    cors_origins = (services.settings if services else settings or ServerSettings()).cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_methods=["POST", "GET", "OPTIONS", "PUT", "DELETE"],
        allow_headers=[
            "Accept", "Content-Type", "Content-Length", "Accept-Encoding",
            "X-CSRF-Token", "Authorization", "X-Api-Key",
        ],
    )

    @app.middleware("http")
    async def req_log(request: Request, call_next):
        start = time.time()
        route = request.url.path
        remote = request.client.host if request.client else "-"
        resp = await call_next(request)
        duration_ms = int((time.time() - start) * 1000)
        log.info(f"request_complete status={resp.status_code} duration_ms={duration_ms}",
                 extra={"request_id": "-", "route": route, "remote_addr": remote})
        return resp

    @app.exception_handler(DIDWebError)
    async def didweb_error_handler(request: Request, exc: DIDWebError):
        status = exc.status_code
        if status >= 500:
            log.error(f"{exc.code} on {request.url.path}: {exc.message}")
            current = request.app.state.services
            expose = current.settings.expose_error_detail if current else False
            return _error_response(status, exc.message if expose else GENERIC_SERVER_ERROR)
        return _error_response(status, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        log.info(f"Invalid request body on {request.url.path}: {len(exc.errors())} errors")
        return _error_response(400, "invalid request")

    app.include_router(registration.router)
    app.include_router(resolution.router)
    app.include_router(admin.router)
    app.include_router(resolution.well_known_router)
    return app


def _default_app() -> FastAPI:
    configure_logging()
    return create_app()


app = _default_app()
