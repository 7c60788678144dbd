"""Shared fixtures: a file-backed SQLite store and no-wait retry policies."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from dionysus.common.embedding_service import EmbeddingService
from dionysus.common.retry import RetryExecutor
from dionysus.common.schemas.models import CommitRecord
from dionysus.common.store import Store


BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _make_record(hash, message, minutes=0, author="Ada"):
    return CommitRecord(
        hash=hash,
        message=message,
        author_name=author,
        author_avatar_url=f"https://avatars.example.com/{author.lower()}.png",
        date=BASE_TIME + timedelta(minutes=minutes),
    )


@pytest.fixture
def make_record():
    return _make_record


@pytest.fixture
async def store(tmp_path):
    s = Store(f"sqlite+aiosqlite:///{tmp_path / 'dionysus-test.sqlite3'}")
    await s.open()
    yield s
    await s.close()


@pytest.fixture
async def project(store):
    return await store.create_project("Demo", repo_url="https://github.com/acme/demo")


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def executor(sleep):
    return RetryExecutor(max_retries=3, delay_seconds=2.0, sleep=sleep)


@pytest.fixture
def llm():
    client = Mock()
    client.is_available = True
    client.generate.return_value = "Generated text."
    return client


@pytest.fixture
def unit_embedding():
    """Every text embeds to the same unit vector."""
    return EmbeddingService(embedder=lambda texts: [[1.0, 0.0] for _ in texts])
