"""Transition-in/out signals for the broadcast switcher (vMix API shape)."""
from __future__ import annotations

import httpx

from shared.config import Settings, get_settings
from shared.models.enums import TransitionSignal
from shared.utils.http_client import RetryingHTTPClient
from shared.utils.logging import get_logger
from shared.utils.metrics import TRANSITION_SIGNALS

logger = get_logger(__name__)


class TransitionClient:
    """
    Sends `GET {transition_url}?Function=TransitionIn|TransitionOut&Input=...`.
    Does nothing when no URL is configured; failures are logged, never raised.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        http: RetryingHTTPClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._url = self._settings.transition_url.strip()
        self._input = self._settings.transition_input
        self._http = http or RetryingHTTPClient(
            "transition",
            timeout_s=self._settings.transition_timeout_s,
            max_retries=1,
        )

    @property
    def enabled(self) -> bool:
        return bool(self._url)

    async def start(self) -> None:
        if self.enabled and not self._http.started:
            await self._http.start()

    async def close(self) -> None:
        await self._http.close()

    async def send(self, signal: TransitionSignal) -> None:
        if not self.enabled:
            return
        if not self._http.started:
            await self._http.start()
        params = {"Function": signal.value, "Input": self._input}
        try:
            resp = await self._http.get(self._url, params=params)
        except httpx.HTTPError as exc:
            TRANSITION_SIGNALS.labels(function=signal.value, status="error").inc()
            logger.warning("transition_signal_error", function=signal.value, error=str(exc))
            return
        status = "ok" if resp.is_success else str(resp.status_code)
        TRANSITION_SIGNALS.labels(function=signal.value, status=status).inc()
        if resp.is_success:
            logger.debug("transition_signal_sent", function=signal.value)
        else:
            logger.warning("transition_signal_rejected", function=signal.value, status=resp.status_code)
