"""Pytest fixtures for did:web server tests."""
from typing import AsyncGenerator, Optional

import pytest
from httpx import AsyncClient, ASGITransport

from app.api.models import KeyInput
from app.core.config import ServerSettings
from app.core.services import Services, build_services
from app.didweb.document import Service, VerificationMethod
from app.didweb.gateway import Invoice
from app.didweb.storage import DID_BUCKET, REG_BUCKET, DIDStore, SQLStore, open_engine
from app.main import create_app


DOMAIN = "example.com"
TEST_LNBITS_KEY = "test-lnbits-key"
TEST_ADMIN_KEY = "test-admin-key-12345"


class FakeGateway:
    """In-memory stand-in for LNbitsGateway.

    Issued payment requests stay valid until ``revoke`` is called.
    """

    def __init__(self):
        self.invoices: list[dict] = []
        self.valid: set[str] = set()
        self.validations: list[str] = []
        self.fail_with: Optional[Exception] = None

    async def create_invoice(self, amount: int, memo: str, webhook: Optional[str] = None) -> Invoice:
        if self.fail_with is not None:
            raise self.fail_with
        n = len(self.invoices) + 1
        invoice = Invoice(payment_hash=f"{n:064x}", payment_request=f"lnbc{amount}n1test{n}")
        self.invoices.append({"amount": amount, "memo": memo, "webhook": webhook, "invoice": invoice})
        self.valid.add(invoice.payment_request)
        return invoice

    async def validate_payment_request(self, payment_request: str) -> bool:
        self.validations.append(payment_request)
        return payment_request in self.valid

    def revoke(self, payment_request: str) -> None:
        self.valid.discard(payment_request)

    def last_nonce(self) -> str:
        return self.invoices[-1]["webhook"].rsplit("/", 1)[-1]


def make_key(fragment: str = "key-1", purposes=("assertionMethod",), **extra) -> KeyInput:
    fields = {"publicKeyMultibase": "zH3C2AVvLMv6gmMNam3uVAjZpfkcJCwDwnZn6z3wXmqPV"}
    fields.update(extra)
    return KeyInput(
        purposes=list(purposes),
        verificationMethod=VerificationMethod(id=fragment, type="Ed25519VerificationKey2020", **fields),
    )


def make_service(fragment: str = "#linkeddomains") -> Service:
    return Service(id=fragment, type="LinkedDomains", serviceEndpoint="https://example.com/")


def register_body(identifier: str = f"{DOMAIN}:alice", keys=None, services=None) -> dict:
    keys = keys if keys is not None else [make_key()]
    services = services if services is not None else []
    return {
        "id": identifier,
        "keys": [k.model_dump(by_alias=True, exclude_none=True) for k in keys],
        "services": [s.model_dump(by_alias=True, exclude_none=True) for s in services],
    }


# =============================================================================
# Storage Fixtures
# =============================================================================

@pytest.fixture
def engine():
    engine = open_engine(url="sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture
def did_store(engine) -> DIDStore:
    return DIDStore(SQLStore(engine, DID_BUCKET))


@pytest.fixture
def reg_store(engine) -> SQLStore:
    return SQLStore(engine, REG_BUCKET)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


# =============================================================================
# Application Fixtures
# =============================================================================

@pytest.fixture
def settings() -> ServerSettings:
    return ServerSettings(
        domain=DOMAIN,
        lnbits_api_key=TEST_LNBITS_KEY,
        database_url="sqlite://",
        public_url=f"https://{DOMAIN}",
        admin_api_key=TEST_ADMIN_KEY,
        sse_keepalive=0.05,
    )


@pytest.fixture
async def services(settings, gateway) -> AsyncGenerator[Services, None]:
    services = build_services(settings, gateway=gateway)
    await services.start()
    yield services
    await services.close()


@pytest.fixture
async def client(settings, services) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(settings=settings, services=services)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=f"http://{DOMAIN}") as client:
        yield client


@pytest.fixture
def admin_headers() -> dict:
    return {"X-Api-Key": TEST_ADMIN_KEY}
