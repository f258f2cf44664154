"""Shared fixtures for librus_ics tests."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import pytest

from librus_ics.core.http_client import close_all_clients
from librus_ics.core.request_queue import RequestQueue
from librus_ics.core.session_token import SessionToken
from librus_ics.core.upstream_session import UpstreamSession
from librus_ics.domain.fragment_cache import ArtifactCache, WeekFragmentCache
from librus_ics.domain.lesson_fetcher import LessonFetcher
from tests.fixtures.librus_data import FakeEncoder, FakeGateway


def pytest_configure(config: Any) -> None:
    """Register markers used across the suite."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Tests spanning several components")
    config.addinivalue_line("markers", "fast: Tests that finish in well under a second")
    config.addinivalue_line("markers", "smoke: Basic smoke tests")


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def fake_encoder() -> FakeEncoder:
    return FakeEncoder()


@pytest.fixture
def upstream_session(fake_gateway: FakeGateway) -> UpstreamSession:
    """Session over the fake gateway with no throttling and no backoff."""
    queue = RequestQueue(delay_seconds=0)
    token = SessionToken(fake_gateway)
    return UpstreamSession(queue, token, retry_backoff_seconds=0)


@pytest.fixture
def lesson_fetcher(
    upstream_session: UpstreamSession, fake_gateway: FakeGateway, fake_encoder: FakeEncoder
) -> LessonFetcher:
    """Fetcher over fresh caches; "Religia" is excluded."""
    return LessonFetcher(
        upstream_session,
        fake_gateway,
        WeekFragmentCache(),
        ArtifactCache(),
        fake_encoder,
        excluded_subjects=("Religia",),
    )


@pytest.fixture(autouse=True)
async def cleanup_shared_http_clients() -> AsyncIterator[None]:
    """Close shared httpx clients created during a test."""
    yield
    await close_all_clients()
