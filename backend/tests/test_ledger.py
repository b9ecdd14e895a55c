"""
Unit tests for the score ledger: per-match points, the history fold, Save
and Next Match.

Run: pytest backend/tests/test_ledger.py -v
"""
from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone

import pytest

from shared.errors import MatchValidationError
from shared.models.domain import CumulativeEntry, LiveTeam, MatchHistoryEntry, MatchSummary
from standings.ledger import (
    build_match_summary,
    calculate_team_points,
    composite_key,
    increment_match_label,
    is_winner,
    previous_totals,
    recalculate_cumulative_from_history,
    reset_match_counters,
    save_match,
    upsert_history,
)
from standings.resolver import resolve, resolve_manual

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _live(raw: dict, index: int = 0) -> LiveTeam:
    return LiveTeam(team=resolve(raw, index), raw=raw)


def _entry(group: str, match: str, minutes: int, *results: tuple[str, float, bool]) -> MatchHistoryEntry:
    return MatchHistoryEntry(
        composite_key=composite_key(group, "R1", match),
        group=group,
        round="R1",
        match=match,
        saved_at=T0 + timedelta(minutes=minutes),
        teams=[
            MatchSummary(team_key=key, team_name=key.title(), kill_points=total / 2,
                         placement_points=total / 2, total_points=total, is_winner=won)
            for key, total, won in results
        ],
    )


# ── calculate_team_points ───────────────────────────────────────────────

def test_placement_backfilled_from_total() -> None:
    points = calculate_team_points({"kill_count": 5, "total_points": 12})
    assert points.kill_points == 5
    assert points.placement_points == 7
    assert points.total_points == 12


def test_backfill_never_goes_negative() -> None:
    points = calculate_team_points({"kill_count": 9, "total_points": 4})
    assert points.placement_points == 0
    assert points.total_points == 4


def test_total_is_kills_plus_placement_without_explicit_total() -> None:
    points = calculate_team_points({"kills": "3", "ranking_score": 6})
    assert points.total_points == 9


def test_kills_summed_from_players_without_team_field() -> None:
    raw = {"player_stats": [{"kills": 2}, {"kills": 1}, {"name": "no kills"}]}
    assert calculate_team_points(raw).kill_points == 3


def test_explicit_placement_is_not_overwritten() -> None:
    points = calculate_team_points({"kill_count": 2, "placementPoints": 5, "points": 10})
    assert points.placement_points == 5
    assert points.total_points == 10


# ── is_winner ───────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "raw, expected",
    [
        ({"booyah": True}, True),
        ({"is_winner": "true"}, True),
        ({"booyah": False, "rank": 1}, False),
        ({"rank": "1"}, True),
        ({"final_rank": 1.0}, True),
        ({"rank": 2, "placement": 3}, False),
        ({}, False),
    ],
)
def test_is_winner(raw: dict, expected: bool) -> None:
    assert is_winner(raw) is expected


def test_build_match_summary_skips_manual_teams() -> None:
    teams = [_live({"team_name": "Alpha", "kill_count": 3, "booyah": True}),
             LiveTeam(team=resolve_manual("Wolves", 2))]
    summaries = build_match_summary(teams)
    assert [s.team_key for s in summaries] == ["alpha"]
    assert summaries[0].is_winner


# ── History fold ────────────────────────────────────────────────────────

def test_fold_accumulates_in_saved_order() -> None:
    history = [
        _entry("Group A", "M2", 10, ("alpha", 5, False)),
        _entry("Group A", "M1", 0, ("alpha", 10, True)),
    ]
    table = recalculate_cumulative_from_history(history, group="Group A")
    alpha = table["alpha"]
    assert alpha.matches == 2
    assert alpha.total_points == 15
    assert alpha.previous_total_points == 10
    assert alpha.last_match_points == 5
    assert alpha.win_count == 1
    assert alpha.last_match_at == T0 + timedelta(minutes=10)


def test_fold_is_idempotent_and_order_independent() -> None:
    history = [
        _entry("Group A", "M1", 0, ("alpha", 10, True), ("bravo", 4, False)),
        _entry("Group A", "M2", 5, ("alpha", 3, False), ("bravo", 12, True)),
        _entry("Group A", "M3", 5, ("bravo", 1, False), ("charlie", 7, True)),
    ]
    expected = recalculate_cumulative_from_history(history, group="Group A")
    assert recalculate_cumulative_from_history(history, group="Group A") == expected
    for permutation in itertools.permutations(history):
        assert recalculate_cumulative_from_history(list(permutation), group="Group A") == expected


def test_fold_never_merges_groups() -> None:
    history = [
        _entry("Group A", "M1", 0, ("alpha", 10, True)),
        _entry("Group B", "M1", 1, ("alpha", 99, True)),
    ]
    assert recalculate_cumulative_from_history(history, group="Group A")["alpha"].total_points == 10
    assert recalculate_cumulative_from_history(history, group="Group B")["alpha"].total_points == 99


def test_fold_seeds_from_baseline_without_mutating_it() -> None:
    baseline = {"alpha": CumulativeEntry(team_key="alpha", matches=3, total_points=40)}
    history = [_entry("Group A", "M4", 0, ("alpha", 6, False))]
    table = recalculate_cumulative_from_history(history, group="Group A", baseline=baseline)
    assert table["alpha"].total_points == 46
    assert table["alpha"].matches == 4
    assert baseline["alpha"].total_points == 40


def test_totals_are_monotonic_as_history_grows() -> None:
    history: list[MatchHistoryEntry] = []
    last = 0.0
    for i, points in enumerate((5, 0, 12, 3)):
        history = upsert_history(history, _entry("Group A", f"M{i}", i, ("alpha", points, False)))
        total = recalculate_cumulative_from_history(history, group="Group A")["alpha"].total_points
        assert total >= last
        last = total


def test_previous_totals_exclude_the_live_match() -> None:
    history = [
        _entry("Group A", "M1", 0, ("alpha", 10, True)),
        _entry("Group A", "M2", 1, ("alpha", 4, False)),
    ]
    previous = previous_totals(history, "Group A", composite_key("Group A", "R1", "M2"))
    assert previous["alpha"].total_points == 10


# ── Save ────────────────────────────────────────────────────────────────

@pytest.fixture
def decided_match() -> list[LiveTeam]:
    return [
        _live({"team_name": "Alpha", "kill_count": 5, "total_points": 12, "booyah": True}, 0),
        _live({"team_name": "Bravo", "kill_count": 2, "total_points": 4}, 1),
    ]


def test_save_rejects_empty_round_label(decided_match: list[LiveTeam]) -> None:
    history = [_entry("Group A", "M1", 0, ("alpha", 10, True))]
    snapshot = list(history)
    with pytest.raises(MatchValidationError) as exc_info:
        save_match(history, "Group A", "", "M2", decided_match, T0)
    assert exc_info.value.reason == "empty_label"
    assert history == snapshot


def test_save_rejects_match_without_winner() -> None:
    teams = [_live({"team_name": "Alpha", "kill_count": 1})]
    with pytest.raises(MatchValidationError) as exc_info:
        save_match([], "Group A", "R1", "M1", teams, T0)
    assert exc_info.value.reason == "no_winner"


def test_save_rejects_when_only_manual_teams() -> None:
    with pytest.raises(MatchValidationError) as exc_info:
        save_match([], "Group A", "R1", "M1", [LiveTeam(team=resolve_manual("Wolves", 1))], T0)
    assert exc_info.value.reason == "no_teams"


def test_resave_updates_in_place(decided_match: list[LiveTeam]) -> None:
    history, table = save_match([], "Group A", "R1", "M1", decided_match, T0)
    history, table = save_match(history, "Group A", "R1", "M1", decided_match, T0 + timedelta(minutes=1))
    assert len(history) == 1
    assert table["alpha"].matches == 1
    assert table["alpha"].total_points == 12
    assert table["alpha"].placement_points == 7


# ── Next Match ──────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "label, expected",
    [("M09", "M10"), ("Match 1", "Match 2"), ("M99", "M100"), ("Final", "Final2"), ("7", "8")],
)
def test_increment_match_label(label: str, expected: str) -> None:
    assert increment_match_label(label) == expected


def test_reset_match_counters_heals_and_zeroes() -> None:
    raw = {
        "team_name": "Alpha",
        "kill_count": 6,
        "total_points": 20,
        "booyah": True,
        "rank": 1,
        "player_stats": [
            {"kills": 3, "player_state": 2, "hp_info": {"current_hp": 10, "total_hp": 200}},
            {"kills": 3, "hp_info": {"current_hp": 0}},
        ],
    }
    reset = reset_match_counters(raw)
    assert reset["kill_count"] == 0
    assert reset["total_points"] == 0
    assert reset["booyah"] is False
    assert "rank" not in reset
    assert reset["player_stats"][0] == {"kills": 0, "player_state": 1, "hp_info": {"current_hp": 200, "total_hp": 200}}
    assert reset["player_stats"][1]["hp_info"]["current_hp"] == 200
    assert raw["kill_count"] == 6
