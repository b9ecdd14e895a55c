"""
Overlay service entrypoint.

Owns the engine state and wires the feed poller, the elimination sequencer
and the broadcast sinks onto one asyncio loop. Every state change goes
through a command in overlay.state; the service persists the session and
schedules a debounced snapshot export afterwards.
"""
from __future__ import annotations

import asyncio
import signal
from datetime import datetime
from typing import Any, Optional, Sequence

from shared.config import Settings, get_settings
from shared.errors import MatchValidationError, PayloadImportError
from shared.models.domain import (
    ConfigurationTransfer,
    FeedSnapshot,
    GroupStandings,
    ImagePaths,
    StandingRow,
    WriteStatus,
)
from shared.models.enums import TournamentFormat, WriteState
from shared.utils.health_server import start_health_server
from shared.utils.logging import bind_match_context, get_logger, setup_logging
from shared.utils.metrics import LIVE_TEAMS, MATCH_SAVES, start_metrics_server
from shared.utils.redis_manager import MemoryStore, RedisManager, SessionStore

from broadcast.elimination import EliminationSequencer
from broadcast.snapshot import render_snapshot
from broadcast.transitions import TransitionClient
from broadcast.writer import SnapshotWriter
from ingest.feed.client import LiveScoringClient
from ingest.feed.extract import spectated_team
from ingest.service import FeedPoller
from overlay import state as commands
from overlay import transfer
from overlay.state import EngineState
from standings.ledger import is_winner

logger = get_logger(__name__)

# Retry connection on startup (e.g. Redis not ready yet in Docker)
CONNECT_RETRY_ATTEMPTS = 10
CONNECT_RETRY_BASE_DELAY_S = 2.0


async def _connect_with_retry(connect_fn, name: str) -> None:
    """Call async connect_fn(); retry with exponential backoff on failure."""
    for attempt in range(1, CONNECT_RETRY_ATTEMPTS + 1):
        try:
            await connect_fn()
            return
        except Exception as exc:
            if attempt == CONNECT_RETRY_ATTEMPTS:
                raise
            delay = CONNECT_RETRY_BASE_DELAY_S * (2 ** (attempt - 1))
            logger.warning(
                "connect_retry",
                name=name,
                attempt=attempt,
                max_attempts=CONNECT_RETRY_ATTEMPTS,
                delay_s=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)


def image_paths_from_settings(settings: Settings) -> ImagePaths:
    return ImagePaths(
        logo_folder=settings.logo_folder,
        hp_folder=settings.hp_folder,
        portrait_folder=settings.portrait_folder,
        zone_in_image=settings.zone_in_image,
        zone_out_image=settings.zone_out_image,
        spectator_highlight_image=settings.spectator_highlight_image,
    )


def build_store(settings: Settings) -> SessionStore:
    return RedisManager(settings) if settings.redis_enabled else MemoryStore()


class OverlayService:
    """One operator session: state, feed, reveal sequence and broadcast output."""

    def __init__(
        self,
        settings: Settings | None = None,
        store: Optional[SessionStore] = None,
        client: Optional[LiveScoringClient] = None,
        transitions: Optional[TransitionClient] = None,
        sequencer: Optional[EliminationSequencer] = None,
        writer: Optional[SnapshotWriter] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store
        self._client = client or LiveScoringClient(self._settings)
        self._transitions = transitions or TransitionClient(self._settings)
        self.sequencer = sequencer or EliminationSequencer(
            settle_s=self._settings.elimination_settle_s,
            hold_s=self._settings.elimination_hold_s,
            cooldown_s=self._settings.elimination_cooldown_s,
            send_signal=self._transitions.send,
        )
        self.writer = writer or SnapshotWriter(
            self._settings.snapshot_path, store=store, debounce_s=self._settings.export_debounce_s
        )
        self.poller = FeedPoller(self._client, self._on_feed, self._on_clear, self._settings)
        self._state = EngineState(image_paths=image_paths_from_settings(self._settings))
        self._poll_task: Optional[asyncio.Task] = None
        self._shutdown = asyncio.Event()
        self.sequencer.add_listener(self.request_export)

    # ── Read side ───────────────────────────────────────────────────────
    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def spectated_team(self) -> Optional[str]:
        if self._state.feed is None:
            return None
        return spectated_team(self._state.feed.observers, self._settings.observer_id)

    def snapshot(self) -> list[dict[str, Any]]:
        return render_snapshot(
            self._state.teams,
            commands.previous_table(self._state),
            self._state.cumulative,
            self.sequencer.spotlight_entry,
            self._state.image_paths,
            spectated_team=self.spectated_team,
            min_slots=self._settings.min_display_slots,
        )

    def overall_standings(self) -> list[StandingRow]:
        return commands.overall(self._state)

    def group_standings(self) -> list[GroupStandings]:
        return commands.grouped(self._state)

    def export_configuration(self) -> ConfigurationTransfer:
        return transfer.export_configuration(self._state)

    def health_status(self) -> dict[str, Any]:
        return {
            "live_data": self._state.has_live_data,
            "sequencer": self.sequencer.phase.value,
            "write_state": self.writer.status.state.value,
        }

    # ── Sinks ───────────────────────────────────────────────────────────
    def request_export(self) -> None:
        """Schedule a debounced snapshot write when there is something to show."""
        if not self._state.teams:
            return
        if not self.writer.target and self._store is None:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self.writer.schedule(self.snapshot)

    async def write_snapshot(self) -> WriteStatus:
        """Immediate write, bypassing the debounce."""
        if not self._state.teams:
            return WriteStatus(state=WriteState.ERROR, message="No data available to write", target=self.writer.target)
        return await self.writer.write(self.snapshot())

    async def persist(self) -> None:
        """Save the session blob; failures are logged and never undo state."""
        if self._store is None:
            return
        try:
            await self._store.save_session(self.export_configuration().model_dump_json())
        except Exception as exc:
            logger.warning("session_persist_failed", error=str(exc))

    async def restore(self) -> None:
        if self._store is None:
            return
        try:
            data = await self._store.load_session()
        except Exception as exc:
            logger.warning("session_load_failed", error=str(exc))
            return
        if not data:
            return
        try:
            self._state = transfer.import_configuration(self._state, data)
        except PayloadImportError as exc:
            logger.warning("session_restore_failed", error=str(exc))
            return
        self._bind_labels()
        logger.info("session_restored", history=len(self._state.history))

    def _bind_labels(self) -> None:
        bind_match_context(self._state.active_group, self._state.active_round, self._state.active_match)

    async def _commit(self, new_state: EngineState) -> EngineState:
        self._state = new_state
        await self.persist()
        self.request_export()
        return new_state

    # ── Feed ────────────────────────────────────────────────────────────
    async def _on_feed(self, feed: FeedSnapshot) -> None:
        self._state = commands.apply_feed(self._state, feed)
        LIVE_TEAMS.set(len(self._state.teams))
        self.sequencer.observe(self._state.teams, feed.match_id)
        if any(is_winner(t.raw) for t in self._state.teams if not t.team.is_manual):
            self.sequencer.declare_winner()
        self.request_export()

    async def _on_clear(self) -> None:
        self._state = commands.clear_live(self._state)
        LIVE_TEAMS.set(0)

    async def fetch(self, match_id: Optional[str] = None, client_id: Optional[str] = None) -> FeedSnapshot:
        """
        Explicit fetch.

        Raises:
            FeedFetchError: Live data has been cleared.
        """
        self.poller.configure(match_id, client_id)
        return await self.poller.fetch_explicit()

    # ── Commands ────────────────────────────────────────────────────────
    async def save(self, now: Optional[datetime] = None) -> EngineState:
        """
        Raises:
            MatchValidationError: State is left untouched.
        """
        try:
            new_state = commands.save(self._state, now)
        except MatchValidationError as exc:
            MATCH_SAVES.labels(status="rejected").inc()
            logger.warning("match_save_rejected", reason=exc.reason, error=str(exc))
            raise
        MATCH_SAVES.labels(status="ok").inc()
        return await self._commit(new_state)

    async def next_match(self) -> EngineState:
        new_state = commands.next_match(self._state)
        self.sequencer.reset(self.sequencer.context_id)
        await self._commit(new_state)
        self._bind_labels()
        return new_state

    async def set_overrides(
        self,
        overrides: Optional[dict[str, str]] = None,
        short_overrides: Optional[dict[str, str]] = None,
    ) -> EngineState:
        return await self._commit(commands.set_overrides(self._state, overrides, short_overrides))

    async def set_manual_slots(self, slots: str | Sequence[str]) -> EngineState:
        return await self._commit(commands.set_manual_slots(self._state, slots))

    async def configure_groups(
        self,
        fmt: Optional[TournamentFormat] = None,
        round_robin: Any = None,
        group_order: Optional[Sequence[str]] = None,
    ) -> EngineState:
        return await self._commit(commands.configure_groups(self._state, fmt, round_robin, group_order))

    async def set_labels(
        self,
        group: Optional[str] = None,
        round_label: Optional[str] = None,
        match_label: Optional[str] = None,
    ) -> EngineState:
        new_state = await self._commit(commands.set_labels(self._state, group, round_label, match_label))
        self._bind_labels()
        return new_state

    async def set_image_paths(self, images: ImagePaths) -> EngineState:
        return await self._commit(commands.set_image_paths(self._state, images))

    async def import_configuration(self, payload: Any) -> EngineState:
        """
        Raises:
            PayloadImportError: State is left untouched.
        """
        new_state = transfer.import_configuration(self._state, payload)
        await self._commit(new_state)
        self._bind_labels()
        return new_state

    async def import_match_summary(self, payload: Any) -> EngineState:
        """
        Raises:
            PayloadImportError: State is left untouched.
        """
        return await self._commit(transfer.import_match_summary(self._state, payload))

    # ── Lifecycle ───────────────────────────────────────────────────────
    async def start(self, initial_fetch: bool = True) -> None:
        if isinstance(self._store, RedisManager):
            await _connect_with_retry(self._store.connect, "Redis")
        await self._client.start()
        await self._transitions.start()
        await self.restore()
        self._bind_labels()

        if initial_fetch and self.poller.match_id and self.poller.client_id:
            try:
                await self.poller.fetch_explicit()
            except Exception as exc:
                logger.warning("initial_fetch_failed", error=str(exc))

        self._poll_task = asyncio.create_task(self.poller.run())
        logger.info("overlay_service_started", match_id=self.poller.match_id)

    async def stop(self) -> None:
        self.poller.request_shutdown()
        if self._poll_task is not None:
            self._poll_task.cancel()
            await asyncio.gather(self._poll_task, return_exceptions=True)
            self._poll_task = None
        await self.sequencer.aclose()
        await self.writer.aclose()
        await self._client.close()
        await self._transitions.close()
        if self._store is not None:
            await self._store.disconnect()
        logger.info("overlay_service_stopped")

    def request_shutdown(self) -> None:
        self._shutdown.set()

    async def wait_closed(self) -> None:
        await self._shutdown.wait()


async def main() -> None:
    """Headless overlay entrypoint: poll, sequence and write without the API."""
    settings = get_settings()
    setup_logging("overlay")
    start_metrics_server("overlay")

    service = OverlayService(settings, store=build_store(settings))
    start_health_server("overlay", service.health_status)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, service.request_shutdown)
        except (ValueError, OSError, RuntimeError) as exc:
            logger.warning("signal_handler_unavailable", signal=sig, error=str(exc))

    await service.start()
    try:
        await service.wait_closed()
    finally:
        await service.stop()


if __name__ == "__main__":
    asyncio.run(main())
