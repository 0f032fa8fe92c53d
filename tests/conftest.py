"""
Pytest Configuration and Fixtures

Shared fixtures for the offline test suite: an in-memory SQLite database
with the ORM schema, a temporary object store, a deterministic embedding
backend and a mocked generation service.
"""

import os

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Test environment defaults: MUST be set before any app imports.
#
# 1. Load .env first so that local credentials are available.
# 2. setdefault fills in anything still missing (CI runners, fresh clones
#    without a .env file) so that pydantic Settings validation doesn't crash.
# ---------------------------------------------------------------------------
load_dotenv()  # .env → os.environ (no-op if file is missing)

_test_env = {
    "POSTGRES_USER": "rag",
    "POSTGRES_PASSWORD": "rag_password",
    "POSTGRES_HOST": "localhost",
    "POSTGRES_PORT": "5432",
    "POSTGRES_DB": "rag_db",
    "EMBEDDING_DIMENSION": "384",
}
for _key, _value in _test_env.items():
    os.environ.setdefault(_key, _value)

# ---------------------------------------------------------------------------
# Imports (safe now that env vars are set)
# ---------------------------------------------------------------------------
import hashlib  # noqa: E402
import uuid  # noqa: E402
from collections.abc import AsyncGenerator  # noqa: E402
from pathlib import Path  # noqa: E402
from typing import Any  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.models import EMBEDDING_DIMENSION  # noqa: E402
from app.models.base import Base  # noqa: E402
from app.services.embeddings import EmbeddingClient  # noqa: E402
from app.services.llm import LLMService  # noqa: E402
from app.services.storage import LocalObjectStorage  # noqa: E402

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


def text_vector(text: str, dimension: int = EMBEDDING_DIMENSION) -> list[float]:
    """Deterministic pseudo-embedding derived from a hash of ``text``."""
    digest = hashlib.sha256(text.encode()).digest()
    return [digest[i % len(digest)] / 255.0 for i in range(dimension)]


class FakeEmbeddingClient(EmbeddingClient):
    """
    Offline embedding backend.

    Returns ``text_vector(text)`` for every input and records each call.
    ``fail_on`` maps an input text to the exception raised for it.
    ``width`` overrides the length of the returned vectors, so a backend
    that disagrees with its declared dimension can be simulated.
    """

    def __init__(
        self,
        dimension: int = EMBEDDING_DIMENSION,
        fail_on: dict[str, Exception] | None = None,
        width: int | None = None,
    ) -> None:
        super().__init__(dimension)
        self.calls: list[Any] = []
        self.fail_on = fail_on or {}
        self.width = dimension if width is None else width

    async def _fetch(self, inputs: str | list[str]) -> Any:
        self.calls.append(inputs)
        if isinstance(inputs, str):
            if inputs in self.fail_on:
                raise self.fail_on[inputs]
            return text_vector(inputs, self.width)
        return [text_vector(t, self.width) for t in inputs]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine with all tables created."""
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as sess:
        yield sess
        await sess.rollback()


@pytest.fixture
def storage(tmp_path: Path) -> LocalObjectStorage:
    """Object store rooted in a per-test temporary directory."""
    return LocalObjectStorage(root=tmp_path / "uploads")


@pytest.fixture
def embedder() -> FakeEmbeddingClient:
    return FakeEmbeddingClient()


@pytest.fixture
def owner_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def other_owner_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def vector_for():
    """The pseudo-embedding function used by ``FakeEmbeddingClient``."""
    return text_vector


@pytest.fixture
def llm() -> AsyncMock:
    """Generation service mock; ``generate`` answers with a fixed text."""
    service = AsyncMock(spec=LLMService)
    service.generate.return_value = "Use a password manager and enable MFA."
    return service


@pytest.fixture
def make_embedder():
    """Factory for embedding fakes with a custom dimension or failures."""
    return FakeEmbeddingClient
