"""Key/value persistence for DID documents and pending registrations.

One SQLAlchemy table holds every bucket. Missing keys read back as empty
bytes rather than raising, so callers test ``if not value``.

Buckets:
- ``did``: finalized documents keyed by method-specific id
- ``reg``: pending registrations keyed by nonce hex, and invoice records
  keyed by full DID
"""

import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import Column, LargeBinary, String, create_engine, delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .codec import parse
from .document import DIDDocument
from .exceptions import DIDNotFoundError, StoreError

log = logging.getLogger(__name__)

DATABASE_FILENAME = "dids.db"
DID_BUCKET = "did"
REG_BUCKET = "reg"


class Base(DeclarativeBase):
    pass


class Entry(Base):
    __tablename__ = "entries"

    bucket = Column(String(16), primary_key=True)
    key = Column(String(512), primary_key=True)
    value = Column(LargeBinary, nullable=False)

    def __repr__(self) -> str:
        return f"<Entry(bucket={self.bucket!r}, key={self.key!r})>"


def database_url(storage_dir: str) -> str:
    return f"sqlite:///{Path(storage_dir).expanduser() / DATABASE_FILENAME}"


def open_engine(url: Optional[str] = None, storage_dir: Optional[str] = None) -> Engine:
    """Create the engine and tables.

    Args:
        url: SQLAlchemy URL. Takes precedence over storage_dir.
        storage_dir: Directory for the SQLite file, created if missing.

    Raises:
        StoreError: If the database cannot be opened or initialized.
    """
    if url is None:
        if storage_dir is None:
            raise StoreError("either a database url or a storage directory is required")
        try:
            Path(storage_dir).expanduser().mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"could not create storage directory {storage_dir}: {e}")
        url = database_url(storage_dir)

    if url.startswith("sqlite"):
        engine_kwargs = {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    else:
        engine_kwargs = {"pool_pre_ping": True}

    try:
        engine = create_engine(url, **engine_kwargs)
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        raise StoreError(f"could not open database: {e}")

    log.info(f"Opened store at {url.split('@')[-1]}")
    return engine


class SQLStore:
    """Bucketed key/value store.

    Each operation runs in its own transaction. Single-key operations are
    atomic; nothing spans keys.
    """

    def __init__(self, engine: Engine, bucket: str):
        self.bucket = bucket
        self._sessions = sessionmaker(bind=engine, autoflush=False)

    def _session(self) -> Session:
        return self._sessions()

    def get(self, key: str) -> bytes:
        try:
            with self._session() as session:
                value = session.scalar(
                    select(Entry.value).where(Entry.bucket == self.bucket, Entry.key == key)
                )
        except SQLAlchemyError as e:
            raise StoreError(f"get {self.bucket}/{key[:32]} failed: {e}")
        return value or b""

    def set(self, key: str, value: bytes) -> None:
        try:
            with self._session() as session, session.begin():
                session.merge(Entry(bucket=self.bucket, key=key, value=value))
        except SQLAlchemyError as e:
            raise StoreError(f"set {self.bucket}/{key[:32]} failed: {e}")

    def delete(self, key: str) -> None:
        try:
            with self._session() as session, session.begin():
                session.execute(
                    delete(Entry).where(Entry.bucket == self.bucket, Entry.key == key)
                )
        except SQLAlchemyError as e:
            raise StoreError(f"delete {self.bucket}/{key[:32]} failed: {e}")

    def pop(self, key: str) -> bytes:
        """Read and delete a key.

        Only the caller whose delete removes the row receives the value;
        concurrent callers for the same key get empty bytes.
        """
        try:
            with self._session() as session, session.begin():
                value = session.scalar(
                    select(Entry.value).where(Entry.bucket == self.bucket, Entry.key == key)
                )
                if not value:
                    return b""
                result = session.execute(
                    delete(Entry).where(Entry.bucket == self.bucket, Entry.key == key)
                )
                if result.rowcount != 1:
                    return b""
        except SQLAlchemyError as e:
            raise StoreError(f"pop {self.bucket}/{key[:32]} failed: {e}")
        return value


class DIDStore:
    """Finalized DID documents, keyed by method-specific id."""

    def __init__(self, store: SQLStore):
        self.store = store

    def register(self, document: DIDDocument) -> None:
        key = parse(document.id).id()
        self.store.set(key, document.to_json().encode("utf-8"))
        log.info(f"Stored document for {document.id}")

    def resolve(self, identifier: str) -> DIDDocument:
        """Look up a document by method-specific id (``host[:seg...]``).

        Raises:
            DIDNotFoundError: Nothing is stored under the id.
        """
        value = self.store.get(identifier)
        if not value:
            raise DIDNotFoundError(f"did:web:{identifier} not found")
        return DIDDocument.from_json(value)

    def exists(self, identifier: str) -> bool:
        return bool(self.store.get(identifier))

    def delete(self, identifier: str) -> None:
        self.store.delete(identifier)
        log.info(f"Deleted document for did:web:{identifier}")
