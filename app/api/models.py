"""API models for the did:web server.

Pydantic models for API requests and responses.
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.didweb.document import Service, VerificationMethod


# =============================================================================
# Request Models
# =============================================================================


class KeyInput(BaseModel):
    """A key to publish and the relationships it serves."""

    model_config = ConfigDict(populate_by_name=True)

    purposes: list[str] = Field(default_factory=list, description="Relationship names, e.g. assertionMethod")
    verification_method: VerificationMethod = Field(..., alias="verificationMethod")


class RegisterRequest(BaseModel):
    """Request to register a did:web identifier under this server's domain."""

    id: str = Field(..., description="Identifier in the form <domain>:<name>")
    keys: list[KeyInput] = Field(default_factory=list)
    services: list[Service] = Field(default_factory=list)


class PayInfo(BaseModel):
    """Payment webhook body sent by LNbits."""

    model_config = ConfigDict(extra="allow")

    payment_hash: Optional[str] = None
    amount: Optional[int] = None


# =============================================================================
# Response Models
# =============================================================================


class ErrorResponse(BaseModel):
    error: str


class NostrNamesResponse(BaseModel):
    names: dict[str, str] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    ok: bool
    subscribers: int = 0


ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Malformed identifier or request"},
    401: {"model": ErrorResponse, "description": "Unknown nonce or bad API key"},
    404: {"model": ErrorResponse, "description": "Identifier not found"},
    500: {"model": ErrorResponse, "description": "Store or payment gateway failure"},
}
