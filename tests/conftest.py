"""Shared pytest fixtures for all test suites."""

import os
import uuid
from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from backend.app.config import Settings
from backend.app.db.context import RequestContext
from backend.app.db.inmemory import InMemoryBlobStore, InMemoryDocumentStore
from backend.app.db.models import Base
from backend.app.docs.embedder import HashingEmbedder
from backend.app.docs.extractor import RawExtraction
from backend.app.models.docs import PageText

OWNER_A = uuid.UUID("00000000-0000-0000-0000-00000000000a")
OWNER_B = uuid.UUID("00000000-0000-0000-0000-00000000000b")


class FakeExtractor:
    """TextExtractor returning canned pages, recording calls."""

    def __init__(self, pages: list[PageText], metadata: dict[str, str] | None = None) -> None:
        self.pages = pages
        self.metadata = metadata or {}
        self.calls = 0

    def extract(self, data: bytes) -> RawExtraction:
        self.calls += 1
        return RawExtraction(pages=list(self.pages), metadata=dict(self.metadata))


class FakeRecognizer:
    """PageRecognizer returning canned text per page, recording requested pages."""

    def __init__(self, texts: dict[int, str] | None = None, error: Exception | None = None) -> None:
        self.texts = texts or {}
        self.error = error
        self.requested: list[int] = []

    def recognize(self, data: bytes, page_number: int) -> str:
        self.requested.append(page_number)
        if self.error is not None:
            raise self.error
        return self.texts.get(page_number, "")


def make_page(
    page_number: int, text: str, *, density: float = 0.01, needs_fallback: bool = False
) -> PageText:
    return PageText(
        page_number=page_number,
        text=text,
        text_density=density,
        needs_fallback=needs_fallback,
    )


@pytest.fixture
def page_factory() -> Callable[..., PageText]:
    """Build PageText objects: ``page_factory(1, "text", needs_fallback=True)``."""
    return make_page


@pytest.fixture
def extractor_factory() -> type[FakeExtractor]:
    return FakeExtractor


@pytest.fixture
def recognizer_factory() -> type[FakeRecognizer]:
    return FakeRecognizer


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(owner_id=OWNER_A)


@pytest.fixture
def other_ctx() -> RequestContext:
    return RequestContext(owner_id=OWNER_B)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Small, fast settings; never reads a real API key."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        openai_api_key=None,
        redis_url=None,
        storage_dir=str(tmp_path / "blobs"),
        embedding_dimensions=64,
        chunk_size=1000,
        chunk_overlap=200,
        ocr_timeout_seconds=2.0,
    )


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def blobs() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def embedder() -> HashingEmbedder:
    return HashingEmbedder(dimensions=64)


@pytest_asyncio.fixture
async def sqlite_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Async SQLite engine sharing one in-memory database across sessions."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def sqlite_session(sqlite_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSession(sqlite_engine) as session:
        yield session


@pytest_asyncio.fixture
async def postgres_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine for PostgreSQL integration tests.

    Requires DATABASE_URL to be set to a real PostgreSQL connection string
    with the pgvector extension available. Tests using this fixture should be
    marked with @pytest.mark.postgres.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set - skipping postgres test")

    if not database_url.startswith(("postgresql://", "postgresql+asyncpg://")):
        pytest.skip(f"DATABASE_URL is not PostgreSQL: {database_url}")

    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(database_url, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.exec_driver_sql("CREATE EXTENSION IF NOT EXISTS vector")
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def postgres_session(postgres_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSession(postgres_engine) as session:
        yield session
        await session.rollback()
