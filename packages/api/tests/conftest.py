# This project was developed with assistance from AI tools.
"""Shared fixtures -- a throwaway SQLite database per test plus fake adapters.

Each test gets its own file-backed aiosqlite database built from
``Base.metadata``. The engine emits its own ``BEGIN`` so savepoints behave
the way services expect. Storage, mail and rate limiting singletons are
swapped for in-process fakes before every test.
"""

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import db.models  # noqa: F401 -- registers tables on Base.metadata
from db.database import Base
from src.core.errors import StorageError
from src.services import mailer as mailer_mod
from src.services import notification  # noqa: F401 -- registers job handlers
from src.services import rate_limit as rate_limit_mod
from src.services import storage as storage_mod
from src.services.mailer import DeliveryResult
from src.services.rate_limit import MemoryCounterStore, RateLimiter
from src.services.storage import StorageService

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeStorage:
    """In-memory object store with a switch to simulate outages."""

    build_object_key = staticmethod(StorageService.build_object_key)

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail = False

    async def upload_file(self, file_data: bytes, object_key: str, content_type: str) -> str:
        if self.fail:
            raise StorageError(f"put_object failed for {object_key}: connection reset")
        self.objects[object_key] = file_data
        return object_key

    async def download_file(self, object_key: str) -> bytes:
        return self.objects[object_key]

    async def delete_file(self, object_key: str) -> None:
        self.objects.pop(object_key, None)
        self.deleted.append(object_key)


class FakeMailer:
    """Records sends; flip ``fail`` to simulate a transport error."""

    def __init__(self):
        self.sent: list[tuple[str, str, dict]] = []
        self.fail = False

    async def send(self, template, recipient: str, variables: dict) -> DeliveryResult:
        if self.fail:
            return DeliveryResult(success=False, error="550 mailbox unavailable")
        self.sent.append((template.name, recipient, variables))
        return DeliveryResult(success=True, message_id=f"fake-{len(self.sent)}")


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'casework.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Singletons
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def fake_mailer():
    return FakeMailer()


@pytest.fixture
def rate_limiter():
    return RateLimiter(MemoryCounterStore())


@pytest.fixture(autouse=True)
def _install_fakes(monkeypatch, fake_storage, fake_mailer, rate_limiter):
    """Point the module singletons at the fakes for the duration of a test."""
    monkeypatch.setattr(storage_mod, "_service", fake_storage)
    monkeypatch.setattr(mailer_mod, "_mailer", fake_mailer)
    monkeypatch.setattr(rate_limit_mod, "_limiter", rate_limiter)
