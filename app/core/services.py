"""Composition root: builds the long-lived services from settings.

One Services instance is created per application and stored on
``app.state.services``. Handlers reach it through app.api.deps.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine

from app.core.config import ServerSettings
from app.didweb.broker import PaymentBroker
from app.didweb.gateway import LNbitsGateway
from app.didweb.registration import Registrar
from app.didweb.storage import DID_BUCKET, REG_BUCKET, DIDStore, SQLStore, open_engine

log = logging.getLogger(__name__)


@dataclass
class Services:
    settings: ServerSettings
    engine: Engine
    dids: DIDStore
    registrar: Registrar
    broker: PaymentBroker
    gateway: LNbitsGateway

    async def start(self) -> None:
        self.broker.start()

    async def close(self) -> None:
        await self.broker.stop()
        self.engine.dispose()
        log.info("Services closed")


def build_services(
    settings: ServerSettings,
    gateway: Optional[LNbitsGateway] = None,
) -> Services:
    """Open the store and wire the registrar, gateway and broker.

    Raises:
        ValueError: Settings are incomplete.
        StoreError: The database cannot be opened.
    """
    settings.validate()

    engine = open_engine(url=settings.database_url, storage_dir=settings.storage_dir)
    dids = DIDStore(SQLStore(engine, DID_BUCKET))
    pending = SQLStore(engine, REG_BUCKET)

    if gateway is None:
        gateway = LNbitsGateway(
            api_key=settings.lnbits_api_key,
            api_host=settings.lnbits_api_host,
            timeout=settings.gateway_timeout,
        )

    registrar = Registrar(
        domain=settings.domain,
        dids=dids,
        pending=pending,
        gateway=gateway,
        webhook_base_url=settings.webhook_base_url,
        amount=settings.registration_amount,
    )

    log.info(f"Services built for domain {settings.domain}")
    return Services(
        settings=settings,
        engine=engine,
        dids=dids,
        registrar=registrar,
        broker=PaymentBroker(queue_size=settings.broker_queue_size),
        gateway=gateway,
    )
