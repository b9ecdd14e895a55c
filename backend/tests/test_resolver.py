"""
Unit tests for team identity resolution.

Run: pytest backend/tests/test_resolver.py -v
"""
from __future__ import annotations

from standings.resolver import base_name, parse_manual_slots, resolve, resolve_all, resolve_manual


# ── base_name ───────────────────────────────────────────────────────────

def test_base_name_prefers_original_over_display() -> None:
    raw = {"original_team_name": "Team Alpha ", "team_name": "ALPHA-renamed"}
    assert base_name(raw, 0) == "Team Alpha"


def test_base_name_falls_back_to_display_name() -> None:
    assert base_name({"teamName": "Bravo"}, 0) == "Bravo"


def test_base_name_synthesizes_from_team_id() -> None:
    assert base_name({"team_id": 7}, 0) == "Team 7"


def test_base_name_synthesizes_from_index_without_id() -> None:
    assert base_name({"team_name": "  "}, 4) == "Team 5"


# ── resolve ─────────────────────────────────────────────────────────────

def test_key_is_stable_when_display_name_changes() -> None:
    first = resolve({"original_team_name": "Alpha", "team_name": "Alpha"}, 0)
    second = resolve({"original_team_name": "Alpha", "team_name": "ALPHA ESPORTS"}, 0)
    assert first.key == second.key == "alpha"


def test_override_changes_full_name_but_not_key() -> None:
    team = resolve({"team_name": "Alpha"}, 0, overrides={"alpha": "  Alpha Esports "})
    assert team.key == "alpha"
    assert team.full_name == "Alpha Esports"


def test_blank_override_is_ignored() -> None:
    team = resolve({"team_name": "Alpha"}, 0, overrides={"alpha": "   "})
    assert team.full_name == "Alpha"


def test_short_name_precedence() -> None:
    raw = {"team_name": "Alpha", "short_name": "ALP"}
    assert resolve(raw, 0, short_overrides={"alpha": "AX"}).short_name == "AX"
    assert resolve(raw, 0, suggestions={"alpha": "SUG"}).short_name == "ALP"
    assert resolve({"team_name": "Alpha"}, 0, suggestions={"alpha": "SUG"}).short_name == "SUG"
    assert resolve({"team_name": "Alpha"}, 0).short_name == "Alpha"


# ── manual slots ────────────────────────────────────────────────────────

def test_parse_manual_slots_drops_blank_lines() -> None:
    assert parse_manual_slots("Team 1\r\n\n  Team 2 \n") == ["Team 1", "Team 2"]


def test_manual_team_is_keyed_by_position() -> None:
    team = resolve_manual("Wolves", 3)
    assert team.key == "manual-3"
    assert team.is_manual
    assert team.slot == 3


def test_resolve_all_without_manual_slots_keeps_feed_order() -> None:
    teams = resolve_all([{"team_name": "B"}, {"team_name": "A"}])
    assert [t.team.key for t in teams] == ["b", "a"]
    assert all(not t.team.is_manual for t in teams)


def test_resolve_all_matches_manual_slots_by_team_id() -> None:
    feed = [
        {"team_id": 2, "team_name": "Feed Two", "kill_count": 4},
        {"team_id": 1, "team_name": "Feed One"},
    ]
    teams = resolve_all(feed, ["Wolves", "Lions", "Bears"])

    assert [t.team.full_name for t in teams] == ["Wolves", "Lions", "Bears"]
    assert teams[0].team.key == "feed one"
    assert teams[1].team.key == "feed two"
    assert teams[1].raw["kill_count"] == 4
    assert teams[2].team.is_manual
    assert teams[2].team.key == "manual-3"


def test_explicit_override_beats_manual_slot_name() -> None:
    teams = resolve_all(
        [{"team_id": 1, "team_name": "Feed One"}],
        ["Wolves"],
        overrides={"feed one": "Override"},
    )
    assert teams[0].team.full_name == "Override"
