"""
Unit tests for the group/format engine: config normalization, group lookup
and both standings views.

Run: pytest backend/tests/test_groups.py -v
"""
from __future__ import annotations

import pytest

from shared.models.domain import CumulativeEntry, LiveTeam, StandingRow
from shared.models.enums import TournamentFormat
from standings.groups import (
    assign_groups,
    build_group_lookup,
    build_standing_rows,
    group_standings,
    normalize_round_robin_config,
    overall_standings,
    resolve_group_for_team,
    standings_for_format,
    suggestions_from_groups,
)
from standings.resolver import resolve, resolve_manual


def _row(key: str, combined: float, kills: float = 0, group: str | None = None) -> StandingRow:
    return StandingRow(team_key=key, name=key.title(), group_key=group, combined_total=combined, kill_points=kills)


@pytest.fixture
def config():
    return normalize_round_robin_config(
        {
            "groupCount": 3,
            "teamsPerGroup": 3,
            "groups": [
                {"name": "Alpha Pool", "teams": [{"shortName": "ALP", "fullName": "Alpha Esports"}, "BRV"]},
                {"teams": [{"short_name": "CHR", "full_name": "Charlie"}]},
                {"name": "Closed", "enabled": False, "teams": ["DLT"]},
            ],
        }
    )


# ── Config normalization ────────────────────────────────────────────────

def test_normalize_defaults() -> None:
    cfg = normalize_round_robin_config(None)
    assert cfg.group_count == 3
    assert cfg.teams_per_group == 2
    assert [g.name for g in cfg.groups] == ["Group A", "Group B", "Group C"]
    assert all(g.enabled and len(g.team_slots) == 2 for g in cfg.groups)


@pytest.mark.parametrize("requested, expected", [(0, 1), (-4, 1), (40, 26), ("5", 5), ("abc", 3)])
def test_normalize_clamps_group_count(requested, expected: int) -> None:
    assert normalize_round_robin_config({"group_count": requested}).group_count == expected


def test_normalize_pads_and_truncates_slots(config) -> None:
    assert config.groups[0].name == "Alpha Pool"
    assert config.groups[1].name == "Group B"
    assert [len(g.team_slots) for g in config.groups] == [3, 3, 3]
    assert config.groups[0].team_slots[1].short_name == "BRV"
    assert config.groups[0].team_slots[2].is_empty

    shrunk = normalize_round_robin_config({"teams_per_group": 1, "groups": config.groups})
    assert [len(g.team_slots) for g in shrunk.groups] == [1, 1, 1]
    assert shrunk.groups[2].enabled is False


# ── Lookup ──────────────────────────────────────────────────────────────

def test_lookup_indexes_short_and_full_names_of_enabled_groups(config) -> None:
    lookup = build_group_lookup(config)
    assert lookup["alp"] == "Alpha Pool"
    assert lookup["alpha esports"] == "Alpha Pool"
    assert lookup["chr"] == "Group B"
    assert "dlt" not in lookup


def test_resolve_group_first_candidate_wins(config) -> None:
    assert resolve_group_for_team(["Unknown", " CHARLIE ", "ALP"], config) == "Group B"
    assert resolve_group_for_team(["nobody"], config) is None


def test_suggestions_map_full_name_to_short(config) -> None:
    assert suggestions_from_groups(config) == {"alpha esports": "ALP", "charlie": "CHR"}


def test_assign_groups_skips_manual(config) -> None:
    teams = [
        LiveTeam(team=resolve({"team_name": "Alpha Esports"}, 0)),
        LiveTeam(team=resolve_manual("CHR", 2)),
    ]
    assigned = assign_groups(teams, config)
    assert assigned[0].team.group_key == "Alpha Pool"
    assert assigned[1].team.group_key is None


# ── Standings ───────────────────────────────────────────────────────────

def test_competition_ranking_shares_ties() -> None:
    ranked = overall_standings([_row("a", 10, 2), _row("b", 20), _row("c", 10, 2), _row("d", 5)])
    assert [(r.team_key, r.rank) for r in ranked] == [("b", 1), ("a", 2), ("c", 2), ("d", 4)]


def test_kills_then_name_break_ties() -> None:
    ranked = overall_standings([_row("zeta", 10, 1), _row("beta", 10, 1), _row("alpha", 10, 5)])
    assert [r.team_key for r in ranked] == ["alpha", "beta", "zeta"]
    assert [r.rank for r in ranked] == [1, 2, 2]


def test_standing_rows_combine_previous_and_live() -> None:
    live = [
        LiveTeam(team=resolve({"team_name": "Alpha"}, 0), raw={"kill_count": 2, "total_points": 6}),
        LiveTeam(team=resolve_manual("Wolves", 2)),
    ]
    previous = {"alpha": CumulativeEntry(team_key="alpha", total_points=30, kill_points=10)}
    rows = build_standing_rows(live, previous)
    assert len(rows) == 1
    assert rows[0].previous_total == 30
    assert rows[0].current_total == 6
    assert rows[0].combined_total == 36
    assert rows[0].combined_total >= rows[0].previous_total
    assert rows[0].kill_points == 12


def test_group_standings_pad_to_capacity(config) -> None:
    rows = [
        _row("charlie", 30, group="Group B"),
        _row("alpha", 20, group="Alpha Pool"),
        _row("bravo", 25, group="Alpha Pool"),
        _row("ghost", 50, group=None),
    ]
    result = group_standings(rows, config)

    assert [g.group_key for g in result] == ["Group B", "Alpha Pool"]
    for standings in result:
        actual = sum(1 for r in rows if r.group_key == standings.group_key)
        assert len(standings.rows) == max(actual, standings.capacity)
    alpha_pool = result[1]
    assert [(r.team_key, r.rank) for r in alpha_pool.rows[:2]] == [("bravo", 1), ("alpha", 2)]
    assert alpha_pool.rows[2].is_placeholder


def test_group_standings_explicit_order(config) -> None:
    rows = [_row("charlie", 30, group="Group B")]
    result = group_standings(rows, config, explicit_order=["Alpha Pool", "Closed", "Missing"])
    assert [g.group_key for g in result] == ["Alpha Pool", "Group B"]
    assert all(r.is_placeholder for r in result[0].rows)


def test_linear_format_is_single_ladder(config) -> None:
    rows = [_row("a", 1), _row("b", 2, group="Group B")]
    result = standings_for_format(TournamentFormat.LINEAR, rows, config, "Day 1")
    assert len(result) == 1
    assert result[0].group_key == "Day 1"
    assert [r.team_key for r in result[0].rows] == ["b", "a"]
