"""
Score ledger.

Per-match points are derived from the raw feed record; cumulative standings
are never patched incrementally. Every table is the result of folding the
sorted match-history log, so recomputing from the same history always gives
the same table regardless of the order the log was stored in.
"""
from __future__ import annotations

import copy
import re
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Sequence

from shared.errors import MatchValidationError
from shared.models.domain import (
    CumulativeEntry,
    CumulativeTable,
    LiveTeam,
    MatchHistoryEntry,
    MatchSummary,
    TeamPoints,
)
from shared.models.enums import PlayerState
from shared.utils.logging import get_logger
from standings.fields import (
    ELIMINATED_FIELDS,
    KILL_COUNT_FIELDS,
    PLACEMENT_FIELDS,
    PLAYER_KILL_FIELDS,
    RANK_FIELDS,
    TOTAL_POINTS_FIELDS,
    WIN_FLAG_FIELDS,
    as_number,
    first_flag,
    first_number,
    players_of,
)

logger = get_logger(__name__)

COMPOSITE_SEPARATOR = "::"
DEFAULT_FULL_HP = 200
_LABEL_SUFFIX = re.compile(r"^(.*?)(\d+)$")


# ── Per-match points ────────────────────────────────────────────────────

def kill_points_of(raw: Mapping[str, Any]) -> float:
    """Explicit team kill count, else the sum of player kills."""
    explicit = first_number(raw, KILL_COUNT_FIELDS)
    if explicit is not None:
        return explicit
    return sum(first_number(p, PLAYER_KILL_FIELDS) or 0 for p in players_of(raw))


def calculate_team_points(raw: Mapping[str, Any]) -> TeamPoints:
    """
    Derive kill/placement/total points for one team in the current match.

    When the feed reports a total but no placement score, the placement part
    is backfilled from the total so that kills are not counted twice.
    """
    kill_points = kill_points_of(raw)
    placement_points = first_number(raw, PLACEMENT_FIELDS) or 0
    explicit_total = first_number(raw, TOTAL_POINTS_FIELDS)

    if explicit_total is None:
        total_points = kill_points + placement_points
    else:
        total_points = explicit_total
        if not placement_points:
            placement_points = max(0.0, explicit_total - kill_points)

    return TeamPoints(
        kill_points=kill_points,
        placement_points=placement_points,
        total_points=total_points,
    )


def is_winner(raw: Mapping[str, Any]) -> bool:
    """Explicit booyah flag if the feed sends one, else any rank field equal to 1."""
    flag = first_flag(raw, WIN_FLAG_FIELDS)
    if flag is not None:
        return flag
    return any(as_number(raw.get(name)) == 1 for name in RANK_FIELDS)


def build_match_summary(teams: Sequence[LiveTeam]) -> list[MatchSummary]:
    """Summaries for every resolved feed team; manual slots are skipped."""
    summaries: list[MatchSummary] = []
    seen: set[str] = set()
    for live in teams:
        if live.team.is_manual:
            continue
        if live.team.key in seen:
            logger.warning("duplicate_team_key_in_match", team_key=live.team.key)
            continue
        seen.add(live.team.key)
        points = calculate_team_points(live.raw)
        summaries.append(
            MatchSummary(
                team_key=live.team.key,
                team_name=live.team.full_name,
                kill_points=points.kill_points,
                placement_points=points.placement_points,
                total_points=points.total_points,
                is_winner=is_winner(live.raw),
                group_key=live.team.group_key,
            )
        )
    return summaries


# ── History log ─────────────────────────────────────────────────────────

def composite_key(group: str, round_label: str, match_label: str) -> str:
    return COMPOSITE_SEPARATOR.join((group.strip(), round_label.strip(), match_label.strip()))


def sort_history(history: Iterable[MatchHistoryEntry]) -> list[MatchHistoryEntry]:
    """Ascending by saved_at; composite key breaks timestamp ties."""
    return sorted(history, key=lambda e: (e.saved_at, e.composite_key))


def upsert_history(
    history: Sequence[MatchHistoryEntry], entry: MatchHistoryEntry
) -> list[MatchHistoryEntry]:
    """Replace the entry with the same composite key in place, else append; re-sort."""
    updated = list(history)
    for i, existing in enumerate(updated):
        if existing.composite_key == entry.composite_key:
            updated[i] = entry
            break
    else:
        updated.append(entry)
    return sort_history(updated)


def recalculate_cumulative_from_history(
    history: Iterable[MatchHistoryEntry],
    group: Optional[str] = None,
    baseline: Optional[Mapping[str, CumulativeEntry]] = None,
) -> CumulativeTable:
    """
    Fold the history log into a cumulative table.

    Args:
        history: Match history in any order.
        group: Only fold entries of this group; None folds everything.
        baseline: Imported starting table; copied, never mutated.

    Returns:
        Fresh table keyed by team key.
    """
    table: CumulativeTable = {
        key: entry.model_copy() for key, entry in (baseline or {}).items()
    }
    for entry in sort_history(history):
        if group is not None and entry.group != group:
            continue
        for summary in entry.teams:
            current = table.get(summary.team_key) or CumulativeEntry(
                team_key=summary.team_key, team_name=summary.team_name
            )
            table[summary.team_key] = current.model_copy(
                update={
                    "team_name": summary.team_name or current.team_name,
                    "matches": current.matches + 1,
                    "kill_points": current.kill_points + summary.kill_points,
                    "placement_points": current.placement_points + summary.placement_points,
                    "previous_total_points": current.total_points,
                    "total_points": current.total_points + summary.total_points,
                    "last_match_points": summary.total_points,
                    "win_count": current.win_count + (1 if summary.is_winner else 0),
                    "last_match_at": entry.saved_at,
                }
            )
    return table


def previous_totals(
    history: Iterable[MatchHistoryEntry],
    group: str,
    live_composite_key: str,
    baseline: Optional[Mapping[str, CumulativeEntry]] = None,
) -> CumulativeTable:
    """Cumulative table for a group as it stood before the live match."""
    return recalculate_cumulative_from_history(
        (e for e in history if e.composite_key != live_composite_key),
        group=group,
        baseline=baseline,
    )


# ── Save / next match ───────────────────────────────────────────────────

def validate_save(
    group: str, round_label: str, match_label: str, teams: Sequence[LiveTeam]
) -> None:
    """Raise MatchValidationError unless the match is labelled and decided."""
    for field_name, label in (("group", group), ("round", round_label), ("match", match_label)):
        if not label or not label.strip():
            raise MatchValidationError("empty_label", f"{field_name} label must not be empty")
    feed_teams = [t for t in teams if not t.team.is_manual]
    if not feed_teams:
        raise MatchValidationError("no_teams", "no resolved teams to save")
    if not any(is_winner(t.raw) for t in feed_teams):
        raise MatchValidationError("no_winner", "match has no winner yet")


def save_match(
    history: Sequence[MatchHistoryEntry],
    group: str,
    round_label: str,
    match_label: str,
    teams: Sequence[LiveTeam],
    saved_at: datetime,
    baseline: Optional[Mapping[str, CumulativeEntry]] = None,
) -> tuple[list[MatchHistoryEntry], CumulativeTable]:
    """
    Record the current match and rebuild the group's table.

    Returns:
        (new sorted history, recomputed cumulative table for the group).
        The inputs are left untouched when validation fails.
    """
    validate_save(group, round_label, match_label, teams)
    group = group.strip()
    entry = MatchHistoryEntry(
        composite_key=composite_key(group, round_label, match_label),
        group=group,
        round=round_label.strip(),
        match=match_label.strip(),
        saved_at=saved_at,
        teams=build_match_summary(teams),
    )
    new_history = upsert_history(history, entry)
    table = recalculate_cumulative_from_history(new_history, group=group, baseline=baseline)
    logger.info(
        "match_saved",
        composite_key=entry.composite_key,
        teams=len(entry.teams),
        history_size=len(new_history),
    )
    return new_history, table


def increment_match_label(label: str) -> str:
    """`M09` -> `M10`, `Match 1` -> `Match 2`; no numeric suffix appends 2."""
    match = _LABEL_SUFFIX.match(label)
    if not match:
        return f"{label}2"
    prefix, digits = match.groups()
    return f"{prefix}{str(int(digits) + 1).zfill(len(digits))}"


def has_match_activity(raw: Mapping[str, Any], entry: Optional[CumulativeEntry]) -> bool:
    if entry is not None and entry.matches > 0:
        return True
    points = calculate_team_points(raw)
    return points.total_points > 0 or points.kill_points > 0


def reset_match_counters(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Copy of a feed record with per-match counters zeroed and players healed."""
    record = copy.deepcopy(dict(raw))
    for name in (*KILL_COUNT_FIELDS, *PLACEMENT_FIELDS, *TOTAL_POINTS_FIELDS):
        if name in record:
            record[name] = 0
    for name in (*WIN_FLAG_FIELDS, *ELIMINATED_FIELDS):
        if name in record:
            record[name] = False
    for name in RANK_FIELDS:
        record.pop(name, None)

    for player in players_of(record):
        for name in PLAYER_KILL_FIELDS:
            if name in player:
                player[name] = 0
        hp_info = player.get("hp_info")
        if isinstance(hp_info, dict):
            hp_info["current_hp"] = as_number(hp_info.get("total_hp")) or DEFAULT_FULL_HP
        if player.get("player_state") in (PlayerState.KNOCKED.value, PlayerState.DEAD.value):
            player["player_state"] = PlayerState.ALIVE.value
    return record
