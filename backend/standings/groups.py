"""
Group/format engine.

Round-robin configuration normalization, team → group lookup, and the two
standings views (overall and group-wise). Standings rows are built from the
live resolved teams plus the active group's previous cumulative table.
"""
from __future__ import annotations

import string
from typing import Any, Iterable, Mapping, Optional, Sequence

from shared.models.domain import (
    CumulativeEntry,
    GroupConfig,
    GroupSlot,
    GroupStandings,
    LiveTeam,
    RoundRobinConfig,
    StandingRow,
)
from shared.models.enums import TournamentFormat
from shared.utils.logging import get_logger
from standings.fields import as_number, normalize_name
from standings.ledger import calculate_team_points

logger = get_logger(__name__)

MAX_GROUPS = len(string.ascii_uppercase)
DEFAULT_GROUP_COUNT = 3
DEFAULT_TEAMS_PER_GROUP = 2
PLACEHOLDER_KEY_PREFIX = "placeholder-"


# ── Configuration ───────────────────────────────────────────────────────

def default_group_name(index: int) -> str:
    return f"Group {string.ascii_uppercase[index]}"


def _bounded_int(value: Any, default: int, low: int, high: Optional[int] = None) -> int:
    number = as_number(value)
    if number is None:
        return default
    result = max(low, int(number))
    return min(result, high) if high is not None else result


def _normalize_slot(value: Any) -> GroupSlot:
    if isinstance(value, GroupSlot):
        return value
    if isinstance(value, str):
        return GroupSlot(short_name=value.strip())
    if isinstance(value, Mapping):
        short = value.get("short_name", value.get("shortName", value.get("name"))) or ""
        full = value.get("full_name", value.get("fullName")) or ""
        return GroupSlot(short_name=str(short).strip(), full_name=str(full).strip())
    return GroupSlot()


def normalize_round_robin_config(raw: Any) -> RoundRobinConfig:
    """
    Coerce a loosely-shaped config (dict, model or None) into a complete one.

    Group count is clamped to 1..26 and teams per group to >= 1. Every group is
    padded or truncated to exactly `teams_per_group` slots; missing names
    default to "Group A", "Group B", ...; `enabled` defaults to True.
    """
    if isinstance(raw, RoundRobinConfig):
        raw = raw.model_dump()
    raw = raw if isinstance(raw, Mapping) else {}

    group_count = _bounded_int(
        raw.get("group_count", raw.get("groupCount")), DEFAULT_GROUP_COUNT, 1, MAX_GROUPS
    )
    teams_per_group = _bounded_int(
        raw.get("teams_per_group", raw.get("teamsPerGroup")), DEFAULT_TEAMS_PER_GROUP, 1
    )
    raw_groups = raw.get("groups")
    raw_groups = raw_groups if isinstance(raw_groups, list) else []

    groups: list[GroupConfig] = []
    for i in range(group_count):
        source = raw_groups[i] if i < len(raw_groups) else {}
        if isinstance(source, GroupConfig):
            source = source.model_dump()
        source = source if isinstance(source, Mapping) else {}

        name = str(source.get("name") or "").strip() or default_group_name(i)
        enabled = source.get("enabled")
        slots_raw = source.get("team_slots", source.get("teamSlots", source.get("teams")))
        slots = [_normalize_slot(s) for s in (slots_raw if isinstance(slots_raw, list) else [])]
        slots = slots[:teams_per_group] + [
            GroupSlot() for _ in range(teams_per_group - len(slots))
        ]
        groups.append(
            GroupConfig(
                name=name,
                enabled=enabled if isinstance(enabled, bool) else True,
                slot_capacity=teams_per_group,
                team_slots=slots,
            )
        )

    return RoundRobinConfig(
        group_count=group_count, teams_per_group=teams_per_group, groups=groups
    )


def enabled_groups(config: RoundRobinConfig) -> list[GroupConfig]:
    return [g for g in config.groups if g.enabled]


def build_group_lookup(config: RoundRobinConfig) -> dict[str, str]:
    """Normalized slot name (short and full) -> group name; first group wins."""
    lookup: dict[str, str] = {}
    for group in enabled_groups(config):
        for slot in group.team_slots:
            for name in (slot.short_name, slot.full_name):
                key = normalize_name(name)
                if key and key not in lookup:
                    lookup[key] = group.name
    return lookup


def resolve_group_for_team(
    candidate_names: Iterable[str], config: RoundRobinConfig | Mapping[str, str]
) -> Optional[str]:
    """First candidate (after normalization) found in the enabled groups' slots."""
    lookup = build_group_lookup(config) if isinstance(config, RoundRobinConfig) else config
    for candidate in candidate_names:
        group = lookup.get(normalize_name(candidate))
        if group:
            return group
    return None


def suggestions_from_groups(config: RoundRobinConfig) -> dict[str, str]:
    """Short-name suggestions keyed by normalized full name, from group slots."""
    suggestions: dict[str, str] = {}
    for group in enabled_groups(config):
        for slot in group.team_slots:
            key = normalize_name(slot.full_name)
            if key and slot.short_name.strip():
                suggestions.setdefault(key, slot.short_name.strip())
    return suggestions


def assign_groups(teams: Sequence[LiveTeam], config: RoundRobinConfig) -> list[LiveTeam]:
    """Attach group keys to resolved feed teams; manual slots stay ungrouped."""
    lookup = build_group_lookup(config)
    assigned: list[LiveTeam] = []
    for live in teams:
        if live.team.is_manual:
            assigned.append(live)
            continue
        group = resolve_group_for_team(
            (live.team.key, live.team.full_name, live.team.short_name), lookup
        )
        assigned.append(
            live.model_copy(update={"team": live.team.model_copy(update={"group_key": group})})
        )
    return assigned


# ── Standings ───────────────────────────────────────────────────────────

def build_standing_rows(
    teams: Sequence[LiveTeam], previous: Mapping[str, CumulativeEntry]
) -> list[StandingRow]:
    """One unranked row per non-manual team: previous total plus the live match."""
    rows: list[StandingRow] = []
    for live in teams:
        if live.team.is_manual:
            continue
        points = calculate_team_points(live.raw)
        prior = previous.get(live.team.key)
        previous_total = prior.total_points if prior else 0
        rows.append(
            StandingRow(
                team_key=live.team.key,
                name=live.team.full_name,
                short_name=live.team.short_name,
                group_key=live.team.group_key,
                previous_total=previous_total,
                current_total=points.total_points,
                combined_total=previous_total + points.total_points,
                kill_points=(prior.kill_points if prior else 0) + points.kill_points,
            )
        )
    return rows


def _sort_key(row: StandingRow) -> tuple[float, float, str]:
    return (-row.combined_total, -row.kill_points, row.name.casefold())


def rank_rows(rows: Iterable[StandingRow]) -> list[StandingRow]:
    """Sort by (combined desc, kills desc, name asc) with competition ranks (1, 1, 3)."""
    ordered = sorted(rows, key=_sort_key)
    ranked: list[StandingRow] = []
    previous_key: Optional[tuple[float, float]] = None
    rank = 0
    for position, row in enumerate(ordered, start=1):
        tie_key = (row.combined_total, row.kill_points)
        if tie_key != previous_key:
            rank = position
            previous_key = tie_key
        ranked.append(row.model_copy(update={"rank": rank}))
    return ranked


def overall_standings(rows: Iterable[StandingRow]) -> list[StandingRow]:
    return rank_rows(row for row in rows if not row.is_placeholder)


def placeholder_row(group_key: str, index: int) -> StandingRow:
    return StandingRow(
        team_key=f"{PLACEHOLDER_KEY_PREFIX}{normalize_name(group_key)}-{index}",
        name="",
        group_key=group_key,
        is_placeholder=True,
    )


def discovery_order(ranked: Sequence[StandingRow], config: RoundRobinConfig) -> list[str]:
    """Groups in order of first appearance among ranked teams, then the rest in config order."""
    enabled = [g.name for g in enabled_groups(config)]
    order: list[str] = []
    for row in ranked:
        if row.group_key in enabled and row.group_key not in order:
            order.append(row.group_key)
    order.extend(name for name in enabled if name not in order)
    return order


def group_standings(
    rows: Sequence[StandingRow],
    config: RoundRobinConfig,
    explicit_order: Optional[Sequence[str]] = None,
) -> list[GroupStandings]:
    """
    Rank each enabled group independently and pad it to its capacity.

    An explicit order lists group names to show first; enabled groups it
    omits follow in discovery order. Names of disabled or unknown groups in
    the explicit order are ignored.
    """
    ranked = overall_standings(rows)
    discovered = discovery_order(ranked, config)
    if explicit_order:
        order = [name for name in explicit_order if name in discovered]
        order.extend(name for name in discovered if name not in order)
    else:
        order = discovered

    capacities = {g.name: g.slot_capacity for g in enabled_groups(config)}
    result: list[GroupStandings] = []
    for name in order:
        members = rank_rows(row for row in ranked if row.group_key == name)
        capacity = capacities.get(name, 0)
        padding = [placeholder_row(name, i) for i in range(len(members), capacity)]
        result.append(GroupStandings(group_key=name, capacity=capacity, rows=members + padding))

    ungrouped = [row.team_key for row in ranked if row.group_key not in capacities]
    if ungrouped:
        logger.debug("teams_without_group", count=len(ungrouped), team_keys=ungrouped)
    return result


def linear_standings(rows: Sequence[StandingRow], ladder: str) -> list[GroupStandings]:
    """Linear format: one ladder keyed by the active group label."""
    ranked = overall_standings(rows)
    return [GroupStandings(group_key=ladder, capacity=len(ranked), rows=ranked)]


def standings_for_format(
    fmt: TournamentFormat,
    rows: Sequence[StandingRow],
    config: RoundRobinConfig,
    active_group: str,
    explicit_order: Optional[Sequence[str]] = None,
) -> list[GroupStandings]:
    if fmt == TournamentFormat.ROUND_ROBIN:
        return group_standings(rows, config, explicit_order)
    return linear_standings(rows, active_group)
