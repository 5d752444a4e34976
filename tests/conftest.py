"""Shared test fixtures."""

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any, TypeVar

import pytest

from tuneshelf.config import DatabaseSettings
from tuneshelf.domain.entities import MediaFormat
from tuneshelf.infrastructure.integrations.ffprobe_prober import reset_ffprobe_lookup
from tuneshelf.infrastructure.persistence.database import Database

T = TypeVar("T")


@pytest.fixture(autouse=True)
def _fresh_ffprobe_lookup() -> Any:
    """Every test starts without a cached ffprobe lookup."""
    reset_ffprobe_lookup()
    yield
    reset_ffprobe_lookup()


@pytest.fixture
def prior_format() -> MediaFormat:
    return MediaFormat(
        id="song-1",
        itag=251,
        mime_type="audio/webm",
        codecs="opus",
        bitrate=128000,
        sample_rate=48000,
        content_length=1234,
        loudness_db=-7.5,
        playback_url="https://example.invalid/stream",
    )


@pytest.fixture
async def database() -> AsyncIterator[Database]:
    """In-memory SQLite database with all tables created."""
    db = Database(DatabaseSettings(url="sqlite+aiosqlite:///:memory:"))
    await db.create_tables()
    yield db
    await db.close()


async def next_matching(
    stream: AsyncIterator[T], predicate: Callable[[T], bool], timeout: float = 2.0
) -> T:
    """Pull values from ``stream`` until one satisfies ``predicate``."""

    async def pull() -> T:
        async for value in stream:
            if predicate(value):
                return value
        raise AssertionError("stream ended before a matching value arrived")

    return await asyncio.wait_for(pull(), timeout)


@pytest.fixture
def until() -> Callable[..., Any]:
    """Fixture form of next_matching for tests that observe streams."""
    return next_matching
