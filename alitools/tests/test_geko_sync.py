"""
GEKO API sync tests - HTTP is served by httpx.MockTransport, imports go to the
per-test SQLite database.
"""
import httpx
import pytest
from sqlalchemy import select

from alitools.api import geko_sync as geko_sync_api
from alitools.models import Product, SyncHealth
from alitools.services import geko_sync
from alitools.services.geko_sync import GekoSyncScheduler, fetch_feed, run_url_sync
from alitools.utils.exceptions import FeedFetchError, FeedParseError

FEED_URL = "https://api.geko.example.com/export/products.xml"


def mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def serve(content: bytes, status_code: int = 200):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status_code, content=content, headers={"Content-Type": "application/xml"})

    return handler, seen


async def health_rows(db_session):
    return (await db_session.execute(select(SyncHealth).order_by(SyncHealth.id))).scalars().all()


# ===================== FETCH =====================


async def test_fetch_feed(feed_path):
    handler, seen = serve(feed_path.read_bytes())
    async with mock_client(handler) as client:
        content = await fetch_feed(FEED_URL, client=client)

    assert content == feed_path.read_bytes()
    assert str(seen[0].url) == FEED_URL
    assert "application/xml" in seen[0].headers["accept"]


async def test_fetch_feed_http_error():
    handler, _ = serve(b"maintenance", status_code=503)
    async with mock_client(handler) as client:
        with pytest.raises(FeedFetchError, match="503"):
            await fetch_feed(FEED_URL, client=client)


async def test_fetch_feed_connection_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with mock_client(handler) as client:
        with pytest.raises(FeedFetchError) as exc_info:
            await fetch_feed(FEED_URL, client=client)
    assert exc_info.value.url == FEED_URL


# ===================== MANUAL SYNC =====================


async def test_url_sync_imports_feed(feed_path, session_factory, db_session):
    handler, _ = serve(feed_path.read_bytes())
    async with mock_client(handler) as client:
        result = await run_url_sync(FEED_URL, session_factory=session_factory, client=client)

    assert result["success"] is True
    assert result["stats"]["base"]["products"] == 3
    assert result["stats"]["prices_images"]["prices"] == 5
    assert len((await db_session.execute(select(Product))).scalars().all()) == 3

    records = await health_rows(db_session)
    assert [r.sync_type for r in records] == ["manual:base", "manual:stocks", "manual:prices_images"]
    assert all(r.source == FEED_URL for r in records)


async def test_url_sync_fetch_failure_recorded(session_factory, db_session):
    handler, _ = serve(b"", status_code=404)
    async with mock_client(handler) as client:
        with pytest.raises(FeedFetchError):
            await run_url_sync(FEED_URL, session_factory=session_factory, client=client)

    [record] = await health_rows(db_session)
    assert record.sync_type == "manual:fetch"
    assert record.status == "failed"
    assert record.error_details["errors"][0]["type"] == "API_FETCH"


async def test_url_sync_broken_xml_recorded(session_factory, db_session):
    handler, _ = serve(b"<geko><products>")
    async with mock_client(handler) as client:
        with pytest.raises(FeedParseError):
            await run_url_sync(FEED_URL, session_factory=session_factory, client=client)

    [record] = await health_rows(db_session)
    assert record.sync_type == "manual:read"
    assert record.status == "failed"
    assert record.request_size_bytes == len(b"<geko><products>")


# ===================== SCHEDULER =====================


async def test_scheduler_start_and_stop(scheduler, session_factory):
    await scheduler.start(FEED_URL, 15, session_factory=session_factory)

    status = scheduler.status()
    assert status["is_running"] is True
    assert status["url"] == FEED_URL
    assert status["interval_minutes"] == 15

    assert await scheduler.stop() is True
    assert scheduler.status()["is_running"] is False
    assert await scheduler.stop() is False


async def test_scheduler_restart_replaces_schedule(scheduler, session_factory):
    await scheduler.start(FEED_URL, 15, session_factory=session_factory)
    await scheduler.start("https://mirror.example.com/feed.xml", 60, session_factory=session_factory)

    status = scheduler.status()
    assert status["url"] == "https://mirror.example.com/feed.xml"
    assert status["interval_minutes"] == 60


async def test_scheduler_rejects_zero_interval(scheduler):
    with pytest.raises(ValueError):
        await scheduler.start(FEED_URL, 0)
    assert scheduler.is_running is False


async def test_scheduled_run(feed_path, session_factory, db_session):
    handler, _ = serve(feed_path.read_bytes())
    scheduler = GekoSyncScheduler(client_factory=lambda: mock_client(handler))
    scheduler.url = FEED_URL
    scheduler.session_factory = session_factory

    result = await scheduler.run_once()

    assert result["stats"]["base"]["products"] == 3
    assert scheduler.runs == 1
    assert scheduler.last_status == "success"
    records = await health_rows(db_session)
    assert records[0].sync_type == "scheduled:base"


async def test_failed_scheduled_run_is_remembered(session_factory):
    handler, _ = serve(b"", status_code=500)
    scheduler = GekoSyncScheduler(client_factory=lambda: mock_client(handler))
    scheduler.url = FEED_URL
    scheduler.session_factory = session_factory

    with pytest.raises(FeedFetchError):
        await scheduler.run_once()

    assert scheduler.last_status == "failed"
    assert "500" in scheduler.last_error


# ===================== API =====================


async def test_manual_sync_route(client, feed_path, monkeypatch):
    async def fake_fetch(url, client=None):
        assert url == FEED_URL
        return feed_path.read_bytes()

    monkeypatch.setattr(geko_sync, "fetch_feed", fake_fetch)

    r = await client.post("/api/v1/geko/manual-sync", json={"apiUrl": FEED_URL})
    assert r.status_code == 200
    assert r.json()["success"] is True
    assert r.json()["stats"]["base"]["products"] == 3

    r = await client.get("/api/v1/imports/history")
    assert {h["sync_type"] for h in r.json()} == {"manual:base", "manual:stocks", "manual:prices_images"}


async def test_manual_sync_uses_configured_url(client, feed_path, monkeypatch):
    requested = []

    async def fake_fetch(url, client=None):
        requested.append(url)
        return feed_path.read_bytes()

    monkeypatch.setattr(geko_sync, "fetch_feed", fake_fetch)
    monkeypatch.setattr(geko_sync_api.settings, "GEKO_API_URL", FEED_URL)

    r = await client.post("/api/v1/geko/manual-sync")
    assert r.status_code == 200
    assert requested == [FEED_URL]


async def test_manual_sync_without_url(client, monkeypatch):
    monkeypatch.setattr(geko_sync_api.settings, "GEKO_API_URL", None)

    r = await client.post("/api/v1/geko/manual-sync", json={})
    assert r.status_code == 400


async def test_manual_sync_fetch_failure(client, monkeypatch):
    async def failing_fetch(url, client=None):
        raise FeedFetchError(url, "timed out")

    monkeypatch.setattr(geko_sync, "fetch_feed", failing_fetch)

    r = await client.post("/api/v1/geko/manual-sync", json={"apiUrl": FEED_URL})
    assert r.status_code == 502

    r = await client.get("/api/v1/imports/history")
    assert r.json()[0]["sync_type"] == "manual:fetch"
    assert r.json()[0]["status"] == "failed"


async def test_manual_sync_broken_feed(client, monkeypatch):
    async def broken_fetch(url, client=None):
        return b"<geko><products>"

    monkeypatch.setattr(geko_sync, "fetch_feed", broken_fetch)

    r = await client.post("/api/v1/geko/manual-sync", json={"apiUrl": FEED_URL})
    assert r.status_code == 422


async def test_schedule_routes(client, monkeypatch):
    monkeypatch.setattr(geko_sync_api.settings, "GEKO_SYNC_INTERVAL_MINUTES", 45)

    r = await client.get("/api/v1/geko/sync-status")
    assert r.status_code == 200
    assert r.json()["is_running"] is False

    r = await client.post("/api/v1/geko/start-sync", json={"apiUrl": FEED_URL})
    assert r.status_code == 200
    assert r.json()["is_running"] is True
    assert r.json()["interval_minutes"] == 45

    r = await client.get("/api/v1/geko/sync-status")
    assert r.json()["url"] == FEED_URL

    r = await client.post("/api/v1/geko/stop-sync")
    assert r.json()["stopped"] is True

    r = await client.post("/api/v1/geko/stop-sync")
    assert r.json()["stopped"] is False

    r = await client.get("/api/v1/geko/sync-status")
    assert r.json()["is_running"] is False


async def test_start_sync_validates_interval(client):
    r = await client.post("/api/v1/geko/start-sync", json={"apiUrl": FEED_URL, "intervalMinutes": 0})
    assert r.status_code == 422
