"""
Unit tests for the elimination reveal sequencer.

Delays are zero (or long, where a test needs to interrupt a hold), so every
test runs on the real event loop without wall-clock waits.

Run: pytest backend/tests/test_elimination.py -v
"""
from __future__ import annotations

import asyncio
from typing import Callable, Optional
from unittest.mock import AsyncMock

import pytest

from broadcast.elimination import EliminationSequencer
from shared.models.domain import LiveTeam
from shared.models.enums import SequencerPhase, TransitionSignal
from standings.resolver import resolve, resolve_manual

TEAMS = ("A", "B", "C", "D")


def _tick(eliminated: set[str], names: tuple[str, ...] = TEAMS) -> list[LiveTeam]:
    return [
        LiveTeam(
            team=resolve({"team_name": name}, i),
            raw={"team_name": name, "is_eliminated": name in eliminated, "kill_count": i},
        )
        for i, name in enumerate(names)
    ]


async def _until(predicate: Callable[[], bool], spins: int = 200) -> None:
    for _ in range(spins):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture
def signal() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def sequencer(signal: AsyncMock) -> EliminationSequencer:
    return EliminationSequencer(settle_s=0, hold_s=0, cooldown_s=0, send_signal=signal)


# ── Rank assignment ─────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_scenario_c_b_d_ranks_and_freeze(sequencer: EliminationSequencer, signal: AsyncMock) -> None:
    sequencer.reset("match-1")
    currents: list[Optional[str]] = []
    sequencer.add_listener(lambda: currents.append(sequencer.current.team_key if sequencer.current else None))

    sequencer.observe(_tick({"C"}), "match-1")
    await sequencer.drain()
    sequencer.observe(_tick({"C", "B"}), "match-1")
    await sequencer.drain()
    sequencer.observe(_tick({"C", "B", "D"}), "match-1")
    await sequencer.drain()

    ranks = {e.team_key: e.elimination_rank for e in sequencer.entries}
    assert ranks == {"c": 4, "b": 3, "d": 2}
    assert "a" not in ranks
    assert sequencer.phase == SequencerPhase.FROZEN
    assert sequencer.current is not None and sequencer.current.team_key == "d"
    assert sequencer.last_rank2 is not None and sequencer.last_rank2.team_key == "d"
    assert currents == ["c", None, "b", None, "d"]
    assert [c.args[0] for c in signal.await_args_list] == [TransitionSignal.IN, TransitionSignal.OUT] * 3

    sequencer.declare_winner()
    assert sequencer.current is None
    assert sequencer.spotlight_entry is not None
    assert sequencer.spotlight_entry.team_key == "d"


@pytest.mark.asyncio
async def test_ranks_cover_n_down_to_two_strictly_decreasing(sequencer: EliminationSequencer) -> None:
    names = tuple(f"T{i}" for i in range(6))
    order = ["T3", "T0", "T5", "T1", "T4"]
    out: set[str] = set()
    for name in order:
        out.add(name)
        sequencer.observe(_tick(out, names), "m")
    ranks = [e.elimination_rank for e in sequencer.entries]
    assert ranks == [6, 5, 4, 3, 2]
    await sequencer.aclose()


@pytest.mark.asyncio
async def test_each_team_transitions_once(sequencer: EliminationSequencer) -> None:
    first = sequencer.observe(_tick({"C"}), "m")
    again = sequencer.observe(_tick({"C"}), "m")
    assert len(first) == 1
    assert again == []
    await sequencer.aclose()


@pytest.mark.asyncio
async def test_same_tick_eliminations_follow_feed_order(sequencer: EliminationSequencer) -> None:
    created = sequencer.observe(_tick({"B", "D"}), "m")
    assert [(e.team_key, e.elimination_rank) for e in created] == [("b", 4), ("d", 3)]
    await sequencer.aclose()


@pytest.mark.asyncio
async def test_last_team_standing_never_gets_an_entry(sequencer: EliminationSequencer) -> None:
    created = sequencer.observe(_tick(set(TEAMS)), "m")
    assert [e.elimination_rank for e in created] == [4, 3, 2]
    assert "d" not in {e.team_key for e in created}
    await sequencer.aclose()


@pytest.mark.asyncio
async def test_manual_slots_are_not_counted(sequencer: EliminationSequencer) -> None:
    teams = _tick({"A"}, ("A", "B")) + [LiveTeam(team=resolve_manual("Wolves", 3))]
    created = sequencer.observe(teams, "m")
    assert [e.elimination_rank for e in created] == [2]
    await sequencer.aclose()


@pytest.mark.asyncio
async def test_snapshot_is_a_frozen_copy(sequencer: EliminationSequencer) -> None:
    teams = _tick({"C"})
    entry = sequencer.observe(teams, "m")[0]
    teams[2].raw["kill_count"] = 99
    assert entry.team_snapshot.raw["kill_count"] == 2
    await sequencer.aclose()


# ── Interrupts and resets ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_declare_winner_cancels_hold_and_flushes_queue(signal: AsyncMock) -> None:
    sequencer = EliminationSequencer(settle_s=0, hold_s=30, cooldown_s=0, send_signal=signal)
    sequencer.observe(_tick({"C", "B"}), "m")
    await _until(lambda: sequencer.phase == SequencerPhase.HOLDING)
    assert len(sequencer.queue) == 1

    sequencer.declare_winner()
    sequencer.declare_winner()

    assert sequencer.current is None
    assert sequencer.queue == ()
    assert sequencer.pending_tasks == 0
    assert sequencer.phase == SequencerPhase.HALTED
    await asyncio.sleep(0)
    assert [c.args[0] for c in signal.await_args_list] == [TransitionSignal.IN]


@pytest.mark.asyncio
async def test_no_new_entries_after_winner_until_reset(sequencer: EliminationSequencer) -> None:
    sequencer.reset("m")
    sequencer.declare_winner()
    assert sequencer.observe(_tick({"C"}), "m") == []

    sequencer.reset("m")
    assert len(sequencer.observe(_tick({"C"}), "m")) == 1
    await sequencer.aclose()


@pytest.mark.asyncio
async def test_context_change_resets_everything(sequencer: EliminationSequencer) -> None:
    sequencer.observe(_tick({"A", "B", "C"}), "m1")
    await sequencer.drain()
    assert sequencer.last_rank2 is not None

    created = sequencer.observe(_tick({"C"}), "m2")
    assert sequencer.last_rank2 is None
    assert [e.elimination_rank for e in created] == [4]
    assert [e.team_key for e in sequencer.entries] == ["c"]
    await sequencer.aclose()


@pytest.mark.asyncio
async def test_signal_failure_does_not_stop_the_reveal() -> None:
    failing = AsyncMock(side_effect=RuntimeError("switcher offline"))
    sequencer = EliminationSequencer(settle_s=0, hold_s=0, cooldown_s=0, send_signal=failing)
    sequencer.observe(_tick({"C"}), "m")
    await sequencer.drain()
    assert sequencer.phase == SequencerPhase.IDLE
    assert sequencer.current is None
