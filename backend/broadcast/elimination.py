"""
Elimination reveal sequencer.

Detects the Active -> Eliminated edge for every team once per feed context and
plays the resulting entries one at a time:

    current -> settle -> transition-in -> hold -> transition-out
        -> rank 2: freeze (entry stays current, nothing further is consumed)
        -> else:   cooldown -> clear current -> next entry

Every suspension point is a task in `_tasks`, so `declare_winner()` can stop
the whole reveal synchronously by cancelling that one set.
"""
from __future__ import annotations

import asyncio
from collections import deque
from typing import Awaitable, Callable, Optional, Sequence

from shared.models.domain import EliminationEntry, LiveTeam
from shared.models.enums import SequencerPhase, TransitionSignal
from shared.utils.logging import get_logger
from shared.utils.metrics import ELIMINATION_QUEUE, ELIMINATIONS
from standings.fields import ELIMINATED_FIELDS, first_flag

logger = get_logger(__name__)

RUNNER_UP_RANK = 2

Listener = Callable[[], None]
SignalSender = Callable[[TransitionSignal], Awaitable[None]]


def is_eliminated(live: LiveTeam) -> bool:
    return bool(first_flag(live.raw, ELIMINATED_FIELDS))


class EliminationSequencer:
    """Single-slot reveal queue for eliminated teams."""

    def __init__(
        self,
        settle_s: float = 0.3,
        hold_s: float = 5.0,
        cooldown_s: float = 0.5,
        send_signal: Optional[SignalSender] = None,
    ) -> None:
        self._settle_s = settle_s
        self._hold_s = hold_s
        self._cooldown_s = cooldown_s
        self._send_signal = send_signal

        self._context_id: Optional[str] = None
        self._entries: dict[str, EliminationEntry] = {}
        self._queue: deque[EliminationEntry] = deque()
        self._current: Optional[EliminationEntry] = None
        self._last_rank2: Optional[EliminationEntry] = None
        self._phase = SequencerPhase.IDLE
        self._winner_declared = False

        self._tasks: set[asyncio.Task] = set()
        self._consumer: Optional[asyncio.Task] = None
        self._listeners: list[Listener] = []

    # ── Read side ───────────────────────────────────────────────────────
    @property
    def context_id(self) -> Optional[str]:
        return self._context_id

    @property
    def current(self) -> Optional[EliminationEntry]:
        return self._current

    @property
    def last_rank2(self) -> Optional[EliminationEntry]:
        return self._last_rank2

    @property
    def spotlight_entry(self) -> Optional[EliminationEntry]:
        """Entry the broadcast spotlight shows: current, else the retained runner-up."""
        return self._current or self._last_rank2

    @property
    def phase(self) -> SequencerPhase:
        return self._phase

    @property
    def winner_declared(self) -> bool:
        return self._winner_declared

    @property
    def queue(self) -> tuple[EliminationEntry, ...]:
        return tuple(self._queue)

    @property
    def entries(self) -> list[EliminationEntry]:
        """All entries of this context in elimination order."""
        return list(self._entries.values())

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as exc:
                logger.error("elimination_listener_failed", error=str(exc), exc_info=True)

    # ── Write side ──────────────────────────────────────────────────────
    def observe(self, teams: Sequence[LiveTeam], context_id: str) -> list[EliminationEntry]:
        """
        Feed one tick of resolved teams into the sequencer.

        A change of `context_id` resets everything first. Each newly eliminated
        team gets rank = teams still standing at that moment; a team that would
        rank below 2 is the winner and gets no entry.

        Returns:
            Entries created by this tick, in elimination order.
        """
        if context_id != self._context_id:
            if self._context_id is not None:
                logger.info("elimination_context_changed", previous=self._context_id, current=context_id)
            self.reset(context_id)
        if self._winner_declared:
            return []

        feed_teams = [t for t in teams if not t.team.is_manual]
        total = len(feed_teams)
        remaining = total - sum(1 for t in feed_teams if t.team.key in self._entries)

        created: list[EliminationEntry] = []
        for live in feed_teams:
            if live.team.key in self._entries or not is_eliminated(live):
                continue
            if remaining < RUNNER_UP_RANK:
                break
            entry = EliminationEntry(
                team_key=live.team.key,
                elimination_rank=remaining,
                total_teams_at_elimination=total,
                team_snapshot=live.model_copy(deep=True),
            )
            remaining -= 1
            self._entries[entry.team_key] = entry
            if entry.elimination_rank == RUNNER_UP_RANK:
                self._last_rank2 = entry
            created.append(entry)
            ELIMINATIONS.inc()
            logger.info(
                "team_eliminated",
                team_key=entry.team_key,
                rank=entry.elimination_rank,
                total=total,
            )

        if created:
            self._queue.extend(created)
            ELIMINATION_QUEUE.set(len(self._queue))
            self._ensure_consumer()
        return created

    def declare_winner(self) -> None:
        """
        Stop the reveal: flush the queue, cancel every timer, clear current.

        The retained runner-up entry survives until the next reset. Calling
        this again is a no-op.
        """
        if self._winner_declared:
            return
        self._winner_declared = True
        self._cancel_tasks()
        self._queue.clear()
        ELIMINATION_QUEUE.set(0)
        self._current = None
        self._phase = SequencerPhase.HALTED
        logger.info(
            "winner_declared",
            retained=self._last_rank2.team_key if self._last_rank2 else None,
        )
        self._notify()

    def reset(self, context_id: Optional[str] = None) -> None:
        """Drop all elimination state; used on a new feed match or Next Match."""
        self._cancel_tasks()
        self._context_id = context_id
        self._entries.clear()
        self._queue.clear()
        ELIMINATION_QUEUE.set(0)
        self._current = None
        self._last_rank2 = None
        self._winner_declared = False
        self._phase = SequencerPhase.IDLE
        self._notify()

    async def drain(self) -> None:
        """Wait until the consumer finishes, freezes or is cancelled."""
        consumer = self._consumer
        if consumer is not None:
            await asyncio.gather(consumer, return_exceptions=True)

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        self._cancel_tasks()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ── Consumer ────────────────────────────────────────────────────────
    def _track(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _cancel_tasks(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._consumer = None

    def _ensure_consumer(self) -> None:
        if self._consumer is not None and not self._consumer.done():
            return
        if self._phase in (SequencerPhase.FROZEN, SequencerPhase.HALTED):
            return
        self._consumer = self._track(self._consume())

    async def _sleep(self, delay: float) -> None:
        await self._track(asyncio.sleep(delay))

    async def _signal(self, signal: TransitionSignal) -> None:
        if self._send_signal is None:
            return
        try:
            await self._send_signal(signal)
        except Exception as exc:
            logger.warning("transition_signal_failed", function=signal.value, error=str(exc))

    def _set_current(self, entry: Optional[EliminationEntry]) -> None:
        self._current = entry
        self._notify()

    async def _consume(self) -> None:
        while self._queue:
            entry = self._queue.popleft()
            ELIMINATION_QUEUE.set(len(self._queue))
            self._phase = SequencerPhase.SETTLING
            self._set_current(entry)
            await self._sleep(self._settle_s)

            await self._signal(TransitionSignal.IN)
            self._phase = SequencerPhase.HOLDING
            await self._sleep(self._hold_s)
            await self._signal(TransitionSignal.OUT)

            if entry.elimination_rank == RUNNER_UP_RANK:
                self._last_rank2 = entry
                self._phase = SequencerPhase.FROZEN
                logger.info("elimination_sequence_frozen", team_key=entry.team_key)
                return

            self._phase = SequencerPhase.COOLDOWN
            await self._sleep(self._cooldown_s)
            self._set_current(None)
        self._phase = SequencerPhase.IDLE
