"""DID document model and builder.

Documents serialize with the W3C DID Core JSON member names
(``@context``, ``verificationMethod``, ``assertionMethod``, ...).
Relationships registered through the builder are ``#fragment`` references
into the verification method list.
"""

import hashlib
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .codec import DID_METHOD_PREFIX, parse
from .exceptions import InvalidDocumentError, NoAssertionMethodError

log = logging.getLogger(__name__)

DID_CONTEXT = "https://www.w3.org/ns/did/v1"


class VerificationMethod(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    type: str
    controller: str = ""
    public_key_multibase: Optional[str] = Field(default=None, alias="publicKeyMultibase")
    public_key_jwk: Optional[Dict[str, Any]] = Field(default=None, alias="publicKeyJwk")
    public_key_base58: Optional[str] = Field(default=None, alias="publicKeyBase58")
    blockchain_account_id: Optional[str] = Field(default=None, alias="blockchainAccountId")

    @property
    def fragment(self) -> str:
        """Fragment part of the id, without the leading '#'."""
        return self.id.rsplit("#", 1)[-1]


class Service(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    type: Union[str, List[str]]
    service_endpoint: Any = Field(alias="serviceEndpoint")


# Resolved documents may embed verification methods in relationships
Relationship = Union[str, VerificationMethod]


class DIDDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    context: Any = Field(default_factory=lambda: [DID_CONTEXT], alias="@context")
    id: str
    also_known_as: Optional[List[str]] = Field(default=None, alias="alsoKnownAs")
    controller: Optional[Union[str, List[str]]] = None
    verification_method: List[VerificationMethod] = Field(
        default_factory=list, alias="verificationMethod"
    )
    authentication: List[Relationship] = Field(default_factory=list)
    assertion_method: List[Relationship] = Field(default_factory=list, alias="assertionMethod")
    key_agreement: List[Relationship] = Field(default_factory=list, alias="keyAgreement")
    capability_invocation: List[Relationship] = Field(
        default_factory=list, alias="capabilityInvocation"
    )
    capability_delegation: List[Relationship] = Field(
        default_factory=list, alias="capabilityDelegation"
    )
    service: List[Service] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def digest(self) -> str:
        """SHA-256 hex digest of the serialized document."""
        return hashlib.sha256(self.to_json().encode("utf-8")).hexdigest()

    @classmethod
    def from_json(cls, data: Union[str, bytes]) -> "DIDDocument":
        """Decode a serialized document.

        Raises:
            InvalidDocumentError: If the data is not a valid DID document.
        """
        try:
            return cls.model_validate_json(data)
        except ValidationError as e:
            raise InvalidDocumentError(f"could not decode document body: {e.error_count()} errors")


class DIDDocumentBuilder:
    """Incrementally assemble a DIDDocument.

    Verification methods are re-identified under the document's DID and
    controlled by it. Relationship and service additions validate their
    input before touching the document.
    """

    def __init__(self, did: str):
        self.document = DIDDocument(id=did)

    def _has_method(self, reference: str) -> bool:
        fragment = reference.lstrip("#")
        return any(vm.fragment == fragment for vm in self.document.verification_method)

    def _add_reference(self, relationship: List[Relationship], reference: str) -> None:
        if not reference.startswith("#") or len(reference) < 2:
            raise InvalidDocumentError(f"invalid verification method reference: {reference}")
        if not self._has_method(reference):
            raise InvalidDocumentError(f"unknown verification method: {reference}")
        if reference not in relationship:
            relationship.append(reference)

    def add_verification_method(self, method: VerificationMethod) -> None:
        fragment = method.fragment
        if not fragment:
            raise InvalidDocumentError("verification method id is required")
        if self._has_method(fragment):
            raise InvalidDocumentError(f"duplicate verification method: {fragment}")
        method = method.model_copy(
            update={"id": f"{self.document.id}#{fragment}", "controller": self.document.id}
        )
        self.document.verification_method.append(method)

    def add_authentication_method(self, reference: str) -> None:
        self._add_reference(self.document.authentication, reference)

    def add_assertion_method(self, reference: str) -> None:
        self._add_reference(self.document.assertion_method, reference)

    def add_capability_delegation(self, reference: str) -> None:
        self._add_reference(self.document.capability_delegation, reference)

    def add_capability_invocation(self, reference: str) -> None:
        self._add_reference(self.document.capability_invocation, reference)

    def add_key_agreement(self, reference: str) -> None:
        self._add_reference(self.document.key_agreement, reference)

    def add_service(self, service: Service) -> None:
        if not service.id:
            raise InvalidDocumentError("service id is required")
        if any(existing.id == service.id for existing in self.document.service):
            raise InvalidDocumentError(f"duplicate service: {service.id}")
        self.document.service.append(service)

    def build(self) -> DIDDocument:
        return self.document


def _purpose_handlers(builder: DIDDocumentBuilder) -> Dict[str, Callable[[str], None]]:
    return {
        "authentication": builder.add_authentication_method,
        "assertionmethod": builder.add_assertion_method,
        "capabilitydelegation": builder.add_capability_delegation,
        "capabilityinvocation": builder.add_capability_invocation,
        "keyagreement": builder.add_key_agreement,
    }


def document_from_props(
    identifier: str,
    keys: List[Any],
    services: List[Service],
) -> DIDDocument:
    """Build a registration candidate document.

    Args:
        identifier: Method-specific id, e.g. ``example.com:alice``.
        keys: Items with ``verification_method`` and ``purposes`` attributes.
            Purposes match case-insensitively; unknown names are ignored.
        services: Service endpoints to publish.

    Returns:
        The assembled DIDDocument.

    Raises:
        MalformedIdentifierError, EncodingError: Invalid identifier.
        InvalidDocumentError: Duplicate or dangling methods/services.
        NoAssertionMethodError: No key was registered for assertionMethod.
    """
    did = parse(DID_METHOD_PREFIX + identifier).did()
    builder = DIDDocumentBuilder(did)
    handlers = _purpose_handlers(builder)

    for key in keys:
        builder.add_verification_method(key.verification_method)
        reference = "#" + key.verification_method.fragment
        for purpose in key.purposes:
            handler = handlers.get(purpose.lower())
            if handler is None:
                log.debug(f"Ignoring unknown key purpose {purpose!r} for {did}")
                continue
            handler(reference)

    if not builder.document.assertion_method:
        raise NoAssertionMethodError()

    for service in services:
        builder.add_service(service)

    return builder.build()
