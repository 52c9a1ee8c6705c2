"""Async test fixtures for inventory import tests using SQLite.

The database is a file under tmp_path rather than ``:memory:`` because
the import engine opens one session per concurrent row.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from inventory.database import get_db, get_session_factory
from inventory.models import Base
from inventory.models.location import Location
from inventory.sync.directory import CachedDirectory, DirectoryService, DirectoryUser, get_directory
from inventory.sync.progress import ProgressStore


class FakeDirectory(DirectoryService):
    """In-memory directory keyed by account or display name."""

    def __init__(self, users: dict[str, DirectoryUser] | None = None):
        self.users = users or {}
        self.calls: list[tuple[str, list[str]]] = []

    async def resolve_by_sam_account(self, names):
        self.calls.append(("sam", list(names)))
        return {n: self.users.get(n) for n in names}

    async def resolve_by_display_name(self, names):
        self.calls.append(("display", list(names)))
        return {n: self.users.get(n) for n in names}


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'inventory_test.db'}",
        echo=False,
        connect_args={"timeout": 30},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_directory():
    return FakeDirectory({
        "jdoe": DirectoryUser(id="aad-jdoe", display_name="Jane Doe", office_location="Calgary"),
        "Sam Smith": DirectoryUser(id="aad-ssmith", display_name="Sam Smith", office_location="YVR"),
    })


@pytest.fixture
def progress():
    return ProgressStore(retention_seconds=60)


@pytest_asyncio.fixture
async def calgary(db: AsyncSession):
    loc = Location(city="Calgary", province="Alberta", country="Canada")
    db.add(loc)
    await db.commit()
    await db.refresh(loc)
    return loc


@pytest_asyncio.fixture
async def vancouver(db: AsyncSession):
    loc = Location(city="Vancouver", province="British Columbia", country="Canada")
    db.add(loc)
    await db.commit()
    await db.refresh(loc)
    return loc


@pytest_asyncio.fixture
async def client(session_factory, fake_directory):
    """HTTPX async test client against the import app."""
    from inventory.app import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_directory] = lambda: CachedDirectory(fake_directory)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
