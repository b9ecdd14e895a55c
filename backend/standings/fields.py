"""
Feed field candidates.

Feeds populate different, overlapping subsets of synonymous fields. Each
logical field has exactly one ordered candidate list here; every lookup in the
engine goes through `first_present` / `first_number` / `first_text` so the
precedence is defined in one place.
"""
from __future__ import annotations

import math
from typing import Any, Iterable, Mapping, Optional

ORIGINAL_NAME_FIELDS: tuple[str, ...] = ("original_team_name", "originalTeamName", "original_name")
DISPLAY_NAME_FIELDS: tuple[str, ...] = ("team_name", "teamName", "name", "display_name")
TEAM_ID_FIELDS: tuple[str, ...] = ("team_id", "teamId", "id")
SHORT_NAME_FIELDS: tuple[str, ...] = ("short_name", "shortName", "team_short_name", "tag")

KILL_COUNT_FIELDS: tuple[str, ...] = ("kill_count", "kills", "team_kills", "killCount")
PLACEMENT_FIELDS: tuple[str, ...] = (
    "placement_points",
    "placementPoints",
    "position_points",
    "rank_points",
    "ranking_score",
)
TOTAL_POINTS_FIELDS: tuple[str, ...] = ("total_points", "totalPoints", "points")
WIN_FLAG_FIELDS: tuple[str, ...] = ("booyah", "is_booyah", "is_winner", "winner")
RANK_FIELDS: tuple[str, ...] = ("rank", "placement", "position", "team_rank", "final_rank")
ELIMINATED_FIELDS: tuple[str, ...] = ("is_eliminated", "eliminated", "isEliminated", "team_eliminated")
ELIMINATED_BY_FIELDS: tuple[str, ...] = (
    "eliminated_by_team_name",
    "eliminated_by",
    "killer_team_name",
)
WIN_RATE_FIELDS: tuple[str, ...] = ("win_rate", "winRate")

PLAYER_LIST_FIELDS: tuple[str, ...] = ("player_stats", "players")
PLAYER_KILL_FIELDS: tuple[str, ...] = ("kills", "kill_count")
PLAYER_NAME_FIELDS: tuple[str, ...] = ("player_name", "name", "nickname", "username")

OBSERVER_LIST_FIELDS: tuple[str, ...] = ("observer_stats", "observers")
OBSERVED_TEAM_FIELDS: tuple[str, ...] = ("observed_team_name", "team_name", "observing_team")


def first_present(record: Mapping[str, Any], candidates: Iterable[str]) -> Optional[Any]:
    """Return the first candidate value that is not None."""
    for name in candidates:
        value = record.get(name)
        if value is not None:
            return value
    return None


def as_number(value: Any) -> Optional[float]:
    """Coerce feed values ("12", 12, 12.5) to float; None when not numeric."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def round_half_up(value: float) -> int:
    """Nearest integer with halves rounded up (12.5 -> 13), unlike banker's `round`."""
    return math.floor(value + 0.5)


def first_number(record: Mapping[str, Any], candidates: Iterable[str]) -> Optional[float]:
    """Return the first candidate that holds a numeric value."""
    for name in candidates:
        number = as_number(record.get(name))
        if number is not None:
            return number
    return None


def first_text(record: Mapping[str, Any], candidates: Iterable[str]) -> str:
    """Return the first candidate that is a non-empty string once trimmed."""
    for name in candidates:
        value = record.get(name)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


def as_flag(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def first_flag(record: Mapping[str, Any], candidates: Iterable[str]) -> Optional[bool]:
    for name in candidates:
        flag = as_flag(record.get(name))
        if flag is not None:
            return flag
    return None


def players_of(record: Mapping[str, Any]) -> list[dict[str, Any]]:
    players = first_present(record, PLAYER_LIST_FIELDS)
    if not isinstance(players, list):
        return []
    return [p for p in players if isinstance(p, dict)]


def normalize_name(value: Any) -> str:
    """Lookup key for team names: trimmed and lower-cased."""
    if value is None:
        return ""
    return str(value).strip().lower()
