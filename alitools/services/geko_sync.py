"""
GEKO API sync - downloads the feed over HTTP and runs it through the import
pipeline, either on demand or on a fixed interval in the background.
"""
import asyncio
import contextlib
import logging
import time
from datetime import datetime
from typing import Any, Callable, Optional

import httpx

from alitools.config import get_settings
from alitools.services.catalog_importer import resolve_session_factory, run_pipeline
from alitools.services.sync_health import SyncHealthTracker
from alitools.utils.exceptions import FeedFetchError

settings = get_settings()
logger = logging.getLogger(__name__)

FEED_HEADERS = {"Accept": "application/xml, text/xml"}


async def fetch_feed(url: str, client: Optional[httpx.AsyncClient] = None) -> bytes:
    """GET the feed at `url`. Transport errors and non-2xx answers raise FeedFetchError."""
    logger.info(f"Fetching XML data from {url}")
    try:
        if client is None:
            async with httpx.AsyncClient(
                timeout=settings.GEKO_FETCH_TIMEOUT_SECONDS, follow_redirects=True
            ) as own_client:
                response = await own_client.get(url, headers=FEED_HEADERS)
        else:
            response = await client.get(url, headers=FEED_HEADERS)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise FeedFetchError(url, str(e) or type(e).__name__) from e

    logger.info(f"Fetched {len(response.content) / (1024 * 1024):.2f} MB from {url}")
    return response.content


async def run_url_sync(
    url: str,
    session_factory=None,
    sync_type: str = "manual",
    client: Optional[httpx.AsyncClient] = None,
) -> dict[str, Any]:
    """Fetch the feed at `url` and import it with all stages.

    A failed download is recorded in sync health as `<sync_type>:fetch`;
    read and stage failures are recorded by the pipeline. Errors re-raise.
    """
    started = time.monotonic()
    tracker = SyncHealthTracker(sync_type=f"{sync_type}:fetch", source=url).start()
    try:
        content = await fetch_feed(url, client=client)
    except FeedFetchError as e:
        logger.error(str(e))
        tracker.record_error("API_FETCH", str(e))
        await tracker.finish(resolve_session_factory(session_factory), status="failed")
        raise

    results = await run_pipeline(url, session_factory=session_factory, sync_type=sync_type, content=content)
    duration = round(time.monotonic() - started, 3)
    logger.info(f"GEKO {sync_type} sync from {url} completed in {duration:.2f}s")
    return {
        "success": True,
        "duration": duration,
        "stats": {result.stage: result.counts for result in results},
        "skipped": {result.stage: result.skipped for result in results if result.skipped},
    }


class GekoSyncScheduler:
    """Runs `run_url_sync` every `interval_minutes` on the event loop.

    Starting while a schedule is active replaces it.
    """

    def __init__(self, client_factory: Optional[Callable[[], httpx.AsyncClient]] = None):
        self._client_factory = client_factory
        self._task: Optional[asyncio.Task] = None
        self.url: Optional[str] = None
        self.interval_minutes: Optional[int] = None
        self.session_factory = None
        self.started_at: Optional[datetime] = None
        self.runs = 0
        self.last_run_at: Optional[datetime] = None
        self.last_status: Optional[str] = None
        self.last_error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, url: str, interval_minutes: int, session_factory=None) -> None:
        if interval_minutes < 1:
            raise ValueError("interval_minutes must be at least 1")
        if self.is_running:
            logger.info("Stopping the current GEKO sync schedule before starting a new one")
            await self.stop()

        self.url = url
        self.interval_minutes = interval_minutes
        self.session_factory = session_factory
        self.started_at = datetime.utcnow()
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Scheduled GEKO API sync every {interval_minutes} min from {url}")

    async def stop(self) -> bool:
        """Cancel the schedule. Returns False when nothing was running."""
        if not self.is_running:
            self._task = None
            return False
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Stopped scheduled GEKO API sync")
        return True

    async def run_once(self) -> dict[str, Any]:
        self.runs += 1
        self.last_run_at = datetime.utcnow()
        client = self._client_factory() if self._client_factory else None
        try:
            result = await run_url_sync(self.url, self.session_factory, sync_type="scheduled", client=client)
        except Exception as e:
            self.last_status = "failed"
            self.last_error = str(e)
            raise
        finally:
            if client is not None:
                await client.aclose()
        self.last_status = "success"
        self.last_error = None
        return result

    async def _loop(self) -> None:
        interval = self.interval_minutes * 60
        while True:
            await asyncio.sleep(interval)
            try:
                result = await self.run_once()
                logger.info(f"Scheduled GEKO sync result: {result['stats']}")
            except Exception as e:
                logger.error(f"Scheduled GEKO sync error: {e}")

    def status(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "url": self.url if self.is_running else None,
            "interval_minutes": self.interval_minutes if self.is_running else None,
            "started_at": self.started_at if self.is_running else None,
            "runs": self.runs,
            "last_run_at": self.last_run_at,
            "last_status": self.last_status,
            "last_error": self.last_error,
        }


sync_scheduler = GekoSyncScheduler()
