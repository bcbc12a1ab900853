"""
did:web server configuration constants.

Constants are organized into:
- NORMATIVE: Fixed by the did:web method, cannot be changed
- CONFIGURABLE: Defaults that deployments may override (env vars)
- OPERATIONAL: Deployment-specific settings (env vars)

ServerSettings snapshots the environment at call time so the CLI and tests
can build a configuration without touching module globals.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

# =============================================================================
# NORMATIVE CONSTANTS (fixed by the did:web method)
# =============================================================================

# Documents are only ever fetched over HTTPS
DID_WEB_SCHEME: str = "https"

# Payload sent to payment subscribers once an identifier is finalized
PAID_MESSAGE: str = "paid"

# Random bytes per registration nonce (hex-encoded to 128 chars)
NONCE_BYTES: int = 64

# =============================================================================
# CONFIGURABLE DEFAULTS (may be overridden per deployment)
# =============================================================================

# Invoice amount in satoshis
REGISTRATION_AMOUNT_SATS: int = int(os.getenv("DIDWEB_REGISTRATION_AMOUNT", "69"))

# Outbound resolution of foreign did:web documents
RESOLVE_TIMEOUT_SECONDS: float = float(os.getenv("DIDWEB_RESOLVE_TIMEOUT", "10.0"))

# Payment gateway calls (invoice creation and validation)
GATEWAY_TIMEOUT_SECONDS: float = float(os.getenv("DIDWEB_GATEWAY_TIMEOUT", "10.0"))

# Buffered payloads per payment subscriber before delivery is dropped
BROKER_QUEUE_SIZE: int = int(os.getenv("DIDWEB_BROKER_QUEUE_SIZE", "16"))

# Interval between SSE keep-alive comments on an idle payment stream
SSE_KEEPALIVE_SECONDS: float = float(os.getenv("DIDWEB_SSE_KEEPALIVE", "15.0"))

# Include internal error text in 5xx bodies (never enable in production)
EXPOSE_ERROR_DETAIL: bool = os.getenv("DIDWEB_EXPOSE_ERROR_DETAIL", "false").lower() == "true"

# =============================================================================
# OPERATIONAL SETTINGS (deployment-specific, via environment variables)
# =============================================================================

DEFAULT_STORAGE_DIR: str = os.path.join("~", ".did-web", "storage")

LNBITS_API_HOST: str = os.getenv("LNBITS_API_HOST", "legend.lnbits.com")

HTTP_HOST: str = os.getenv("DIDWEB_HOST", "0.0.0.0")
HTTP_PORT: int = int(os.getenv("DIDWEB_PORT", "8080"))


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default).lower()).lower() == "true"


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass
class ServerSettings:
    """Runtime settings for one server instance.

    Attributes:
        domain: Domain whose identifiers this server issues.
        lnbits_api_key: Invoice key of the receiving LNbits wallet.
        storage_dir: Directory holding dids.db.
        database_url: Explicit SQLAlchemy URL; overrides storage_dir.
        public_url: Base URL embedded in payment webhooks.
        admin_api_key: Key for admin endpoints; empty disables them.
    """

    domain: str = ""
    lnbits_api_key: str = ""
    lnbits_api_host: str = LNBITS_API_HOST
    storage_dir: str = DEFAULT_STORAGE_DIR
    database_url: Optional[str] = None
    public_url: Optional[str] = None
    registration_amount: int = REGISTRATION_AMOUNT_SATS
    resolve_timeout: float = RESOLVE_TIMEOUT_SECONDS
    gateway_timeout: float = GATEWAY_TIMEOUT_SECONDS
    broker_queue_size: int = BROKER_QUEUE_SIZE
    sse_keepalive: float = SSE_KEEPALIVE_SECONDS
    admin_api_key: str = ""
    expose_error_detail: bool = EXPOSE_ERROR_DETAIL
    host: str = HTTP_HOST
    port: int = HTTP_PORT
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "ServerSettings":
        return cls(
            domain=os.getenv("DIDWEB_DOMAIN", ""),
            lnbits_api_key=os.getenv("LNBITS_API_KEY", ""),
            lnbits_api_host=os.getenv("LNBITS_API_HOST", LNBITS_API_HOST),
            storage_dir=os.getenv("DIDWEB_STORAGE_DIR", DEFAULT_STORAGE_DIR),
            database_url=os.getenv("DIDWEB_DATABASE_URL") or None,
            public_url=os.getenv("DIDWEB_PUBLIC_URL") or None,
            registration_amount=_env_int("DIDWEB_REGISTRATION_AMOUNT", REGISTRATION_AMOUNT_SATS),
            resolve_timeout=_env_float("DIDWEB_RESOLVE_TIMEOUT", RESOLVE_TIMEOUT_SECONDS),
            gateway_timeout=_env_float("DIDWEB_GATEWAY_TIMEOUT", GATEWAY_TIMEOUT_SECONDS),
            broker_queue_size=_env_int("DIDWEB_BROKER_QUEUE_SIZE", BROKER_QUEUE_SIZE),
            sse_keepalive=_env_float("DIDWEB_SSE_KEEPALIVE", SSE_KEEPALIVE_SECONDS),
            admin_api_key=os.getenv("DIDWEB_ADMIN_API_KEY", ""),
            expose_error_detail=_env_bool("DIDWEB_EXPOSE_ERROR_DETAIL", EXPOSE_ERROR_DETAIL),
            host=os.getenv("DIDWEB_HOST", HTTP_HOST),
            port=_env_int("DIDWEB_PORT", HTTP_PORT),
        )

    @property
    def webhook_base_url(self) -> str:
        base = self.public_url or f"{DID_WEB_SCHEME}://{self.domain}"
        return base.rstrip("/")

    def validate(self) -> None:
        """Reject settings the server cannot start with.

        Raises:
            ValueError: Missing domain or payment gateway key.
        """
        if not self.domain:
            raise ValueError("invalid domain: DIDWEB_DOMAIN or --domain is required")
        if ":" in self.domain or "/" in self.domain:
            raise ValueError(f"invalid domain: {self.domain!r}")
        if not self.lnbits_api_key:
            raise ValueError("LNBITS_API_KEY or --api-key is required")
