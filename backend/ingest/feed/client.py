"""
Live-scoring feed client.

Wraps RetryingHTTPClient and turns the feed's JSON envelope into a
FeedSnapshot; every failure surfaces as FeedFetchError.
"""
from __future__ import annotations

import json
from typing import Any

import httpx

from shared.config import Settings, get_settings
from shared.errors import FeedFetchError
from shared.models.domain import FeedSnapshot
from shared.utils.http_client import RetryingHTTPClient
from shared.utils.logging import get_logger
from shared.utils.metrics import FEED_LATENCY, atrack_latency

from ingest.feed.extract import extract_match_id, extract_observers, extract_teams

logger = get_logger(__name__)


class LiveScoringClient:
    """Fetches one match's live scoring from `GET {base}/api/live-scoring`."""

    def __init__(
        self,
        settings: Settings | None = None,
        http: RetryingHTTPClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._http = http or RetryingHTTPClient(
            "feed",
            base_url=self._settings.feed_base_url,
            timeout_s=self._settings.feed_request_timeout_s,
            max_retries=self._settings.feed_max_retries,
        )

    async def start(self) -> None:
        if not self._http.started:
            await self._http.start()

    async def close(self) -> None:
        await self._http.close()

    async def fetch(self, match_id: str, client_id: str) -> FeedSnapshot:
        """
        Fetch and unwrap the feed.

        Raises:
            FeedFetchError: Missing ids, transport failure, non-2xx status
            (message taken from the body's `error` field when present) or a
            body that is not JSON.
        """
        if not match_id or not client_id:
            raise FeedFetchError("Please enter both Match ID and Client ID")

        params = {"matchid": match_id, "clientid": client_id}
        try:
            async with atrack_latency(FEED_LATENCY):
                resp = await self._http.get(self._settings.feed_path, params=params)
        except httpx.HTTPError as exc:
            raise FeedFetchError(f"Feed request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise FeedFetchError(_error_message(resp), status_code=resp.status_code)

        try:
            body: Any = resp.json()
        except json.JSONDecodeError as exc:
            raise FeedFetchError("Feed returned a non-JSON body", status_code=resp.status_code) from exc

        snapshot = FeedSnapshot(
            match_id=extract_match_id(body, default=match_id),
            teams=extract_teams(body),
            observers=extract_observers(body),
        )
        logger.debug("feed_fetched", match_id=snapshot.match_id, teams=len(snapshot.teams))
        return snapshot


def _error_message(resp: httpx.Response) -> str:
    fallback = f"API Error: {resp.status_code} {resp.reason_phrase}".strip()
    try:
        body = resp.json()
    except json.JSONDecodeError:
        return fallback
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return fallback
