"""Integration tests for the HTTP routes wired through the real object graph."""

import asyncio
import datetime
from unittest.mock import AsyncMock

import pytest
from aiohttp.test_utils import TestClient, TestServer

from librus_ics.api.routes.feed_routes import NOT_READY_MESSAGE
from librus_ics.api.server import _make_app
from librus_ics.core.dependencies import DependencyContainer
from librus_ics.core.exceptions import UpstreamError
from tests.fixtures.librus_data import FakeEncoder, FakeGateway

pytestmark = pytest.mark.integration

NOW = datetime.datetime(2024, 10, 16, 10, 0)

TEST_CONFIG = {
    "login": "12345u",
    "password": "secret",
    "queue_delay_seconds": 0,
    "auth_retry_backoff_seconds": 0,
}


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def deps(gateway):
    return DependencyContainer.build_dependencies(
        TEST_CONFIG, gateway=gateway, encoder=FakeEncoder(), time_provider=lambda: NOW
    )


@pytest.fixture
async def client(deps):
    async with TestClient(TestServer(_make_app(deps))) as client:
        yield client
    await deps.queue.close()


async def test_lessons_when_cold_then_near_refresh_on_demand(client, gateway) -> None:
    resp = await client.get("/lessons")

    assert resp.status == 200
    assert resp.content_type == "text/calendar"
    body = await resp.text()
    assert "2024-10-14-08:00@lessons.librus" in body
    assert len(gateway.timetable_calls()) == 3


async def test_lessons_when_compiled_then_served_without_upstream(client, gateway, deps) -> None:
    await deps.scheduler.refresh_near()
    calls_before = len(gateway.calls)

    resp = await client.get("/lessons")

    assert resp.status == 200
    assert len(gateway.calls) == calls_before


async def test_lessons_when_concurrent_cold_requests_then_single_near_batch(client, gateway) -> None:
    responses = await asyncio.gather(*(client.get("/lessons") for _ in range(3)))

    assert [r.status for r in responses] == [200, 200, 200]
    assert len(gateway.timetable_calls()) == 3


async def test_lessons_when_startup_running_then_served_after_near_weeks(client, gateway, deps) -> None:
    gateway.timetable_delay = 0.01
    startup = asyncio.create_task(deps.scheduler.startup())
    await asyncio.sleep(0)

    resp = await client.get("/lessons")

    assert resp.status == 200
    assert "2024-10-14-08:00@lessons.librus" in await resp.text()
    assert not startup.done()
    await startup
    assert len(gateway.timetable_calls()) == 44


async def test_lessons_when_upstream_unavailable_then_503_with_retry_after(client, gateway) -> None:
    gateway.auth_results = [False]

    resp = await client.get("/lessons")

    assert resp.status == 503
    assert resp.headers["Retry-After"] == "30"
    assert await resp.text() == NOT_READY_MESSAGE


async def test_lessons_when_refresh_crashes_then_500(client, deps) -> None:
    deps.scheduler.ensure_lessons = AsyncMock(side_effect=RuntimeError("bug"))

    resp = await client.get("/lessons")

    assert resp.status == 500
    assert await resp.text() == "Failed to fetch lessons"


async def test_events_and_calendar_alias_when_requested_then_identical_documents(client, gateway) -> None:
    events = await client.get("/events")
    calendar = await client.get("/calendar")

    assert events.status == calendar.status == 200
    assert events.content_type == "text/calendar"
    body = await events.read()
    assert body == await calendar.read()
    assert b"100@events.librus|Zadanie - Fizyka" in body
    # Second request was served from cache
    assert sum(1 for name, _ in gateway.calls if name == "homeworks") == 1


async def test_events_when_upstream_fails_and_nothing_cached_then_500(client, gateway) -> None:
    gateway.events_error = UpstreamError("HTTP 503")

    resp = await client.get("/events")

    assert resp.status == 500
    assert await resp.text() == "Failed to fetch events"


async def test_health_when_nothing_refreshed_then_degraded(client) -> None:
    resp = await client.get("/api/health")

    assert resp.status == 503
    data = await resp.json()
    assert data["status"] == "degraded"
    assert data["data_status"]["lessons_artifact_age_s"] is None
    assert data["upstream_status"]["session_valid"] is False


async def test_health_when_refreshed_then_ok(client, deps) -> None:
    await deps.scheduler.refresh_near()

    resp = await client.get("/api/health")

    assert resp.status == 200
    data = await resp.json()
    assert data["status"] == "ok"
    assert data["data_status"]["fragment_count"] == 3
    assert data["data_status"]["last_batch"] == "near"
    assert data["upstream_status"]["session_valid"] is True
    assert data["background_tasks"][0]["name"] == "refresh_scheduler"


async def test_request_id_when_client_sends_one_then_echoed(client) -> None:
    resp = await client.get("/api/health", headers={"X-Request-ID": "abc-123"})

    assert resp.headers["X-Request-ID"] == "abc-123"


async def test_request_id_when_absent_then_generated(client) -> None:
    resp = await client.get("/api/health")

    assert resp.headers["X-Request-ID"]
