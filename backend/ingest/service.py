"""
Feed poller.

Runs the silent background poll on a fixed interval and offers the explicit
operator-triggered fetch. Silent failures keep the last good data; explicit
failures clear live data and raise.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from shared.config import Settings, get_settings
from shared.errors import FeedFetchError
from shared.models.domain import FeedSnapshot
from shared.models.enums import FetchMode
from shared.utils.logging import get_logger
from shared.utils.metrics import FEED_POLLS

from ingest.feed.client import LiveScoringClient

logger = get_logger(__name__)

SnapshotHandler = Callable[[FeedSnapshot], Awaitable[None]]
ClearHandler = Callable[[], Awaitable[None]]


class FeedPoller:
    """
    Polls one match on the live-scoring feed.

    Background polling only runs while live data is present, i.e. after a
    successful fetch and until an explicit fetch fails.
    """

    def __init__(
        self,
        client: LiveScoringClient,
        on_snapshot: SnapshotHandler,
        on_clear: Optional[ClearHandler] = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._client = client
        self._on_snapshot = on_snapshot
        self._on_clear = on_clear
        self._interval_s = settings.poll_interval_s
        self._match_id = settings.feed_match_id
        self._client_id = settings.feed_client_id
        self._has_data = False
        self._last_error: Optional[str] = None
        self._shutdown = asyncio.Event()

    @property
    def match_id(self) -> str:
        return self._match_id

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def has_data(self) -> bool:
        return self._has_data

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def configure(self, match_id: Optional[str] = None, client_id: Optional[str] = None) -> None:
        if match_id is not None:
            self._match_id = match_id.strip()
        if client_id is not None:
            self._client_id = client_id.strip()

    async def fetch_explicit(self) -> FeedSnapshot:
        """
        Operator-triggered fetch.

        Raises:
            FeedFetchError: After live data has been cleared.
        """
        try:
            snapshot = await self._client.fetch(self._match_id, self._client_id)
        except FeedFetchError as exc:
            FEED_POLLS.labels(mode=FetchMode.EXPLICIT.value, status="error").inc()
            self._has_data = False
            self._last_error = str(exc)
            logger.warning("feed_fetch_failed", error=str(exc), status=exc.status_code)
            if self._on_clear is not None:
                await self._on_clear()
            raise
        FEED_POLLS.labels(mode=FetchMode.EXPLICIT.value, status="ok").inc()
        self._has_data = True
        self._last_error = None
        await self._on_snapshot(snapshot)
        return snapshot

    async def poll_once(self) -> Optional[FeedSnapshot]:
        """Silent fetch; returns None and keeps stale data on any feed failure."""
        if not self._match_id or not self._client_id:
            return None
        try:
            snapshot = await self._client.fetch(self._match_id, self._client_id)
        except FeedFetchError as exc:
            FEED_POLLS.labels(mode=FetchMode.SILENT.value, status="error").inc()
            logger.debug("silent_poll_failed", error=str(exc), status=exc.status_code)
            return None
        FEED_POLLS.labels(mode=FetchMode.SILENT.value, status="ok").inc()
        self._has_data = True
        await self._on_snapshot(snapshot)
        return snapshot

    async def run(self) -> None:
        """Background loop; returns after request_shutdown()."""
        logger.info("feed_poller_started", interval_s=self._interval_s, match_id=self._match_id)
        while not self._shutdown.is_set():
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=self._interval_s)
                break
            except asyncio.TimeoutError:
                pass
            if not self._has_data:
                continue
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("feed_poll_handler_error", error=str(exc), exc_info=True)
        logger.info("feed_poller_stopped")

    def request_shutdown(self) -> None:
        self._shutdown.set()
