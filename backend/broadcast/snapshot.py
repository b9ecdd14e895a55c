"""
Broadcast snapshot assembly.

Pure composition of resolved teams, ledger tables, the elimination spotlight
and asset folders into the flat key/value object the switcher binds to. Key
names and key order are fixed for a given slot count.
"""
from __future__ import annotations

import re
from typing import Any, Mapping, Optional, Sequence

from shared.models.domain import (
    CumulativeEntry,
    EliminationEntry,
    EliminationSpotlight,
    ImagePaths,
    LiveTeam,
    SnapshotSlot,
)
from shared.models.enums import PlayerState
from shared.utils.metrics import SNAPSHOT_RENDER, track_latency
from standings.fields import (
    ELIMINATED_BY_FIELDS,
    PLAYER_NAME_FIELDS,
    WIN_RATE_FIELDS,
    as_number,
    first_present,
    first_text,
    normalize_name,
    players_of,
    round_half_up,
)
from standings.groups import build_standing_rows, overall_standings
from standings.ledger import kill_points_of

PLAYERS_PER_SLOT = 4
MAX_HP = 200
ASSET_EXTENSION = ".png"
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")
_TRAILING_SEPARATORS = re.compile(r"[\\/]+$")


# ── Asset paths ─────────────────────────────────────────────────────────

def sanitize_stem(name: str) -> str:
    return _NON_ALNUM.sub("", name).lower()


def join_asset(base: str, stem: str) -> str:
    """`base` + separator + `stem.png`; backslash if the base uses one. Empty base -> ""."""
    base = _TRAILING_SEPARATORS.sub("", base.strip()) if base else ""
    if not base:
        return ""
    separator = "\\" if "\\" in base else "/"
    return f"{base}{separator}{stem}{ASSET_EXTENSION}"


def logo_path(folder: str, team_name: str) -> str:
    return join_asset(folder, sanitize_stem(team_name))


def player_hp(player: Mapping[str, Any]) -> int:
    hp_info = player.get("hp_info")
    current = as_number(hp_info.get("current_hp")) if isinstance(hp_info, Mapping) else None
    if current is None:
        return 0
    return max(0, min(MAX_HP, round_half_up(current)))


def health_image(folder: str, player: Mapping[str, Any]) -> str:
    """HP image path; the value is negated while the player is knocked."""
    hp = player_hp(player)
    if player.get("player_state") == PlayerState.KNOCKED.value:
        hp = -hp
    return join_asset(folder, str(hp))


def zone_image(images: ImagePaths, raw: Mapping[str, Any]) -> str:
    outside = any(p.get("is_in_safe_zone") is False for p in players_of(raw))
    return (images.zone_out_image if outside else images.zone_in_image).strip()


def _pad(values: list[str]) -> list[str]:
    return (values + [""] * PLAYERS_PER_SLOT)[:PLAYERS_PER_SLOT]


def health_images(folder: str, raw: Mapping[str, Any]) -> list[str]:
    return _pad([health_image(folder, p) for p in players_of(raw)[:PLAYERS_PER_SLOT]])


def portraits(folder: str, raw: Mapping[str, Any]) -> list[str]:
    paths: list[str] = []
    for player in players_of(raw)[:PLAYERS_PER_SLOT]:
        name = first_text(player, PLAYER_NAME_FIELDS)
        paths.append(join_asset(folder, sanitize_stem(name)) if name else "")
    return _pad(paths)


def format_win_rate(raw: Mapping[str, Any], entry: Optional[CumulativeEntry]) -> str:
    """Ledger win share when the team has matches, else the feed's value, else 0%."""
    if entry is not None and entry.matches > 0:
        return f"{round_half_up(entry.win_count / entry.matches * 100)}%"
    value = first_present(raw, WIN_RATE_FIELDS)
    if isinstance(value, str) and value.strip().endswith("%"):
        return value.strip()
    number = as_number(value)
    return f"{round_half_up(number)}%" if number is not None else "0%"


# ── Slots ───────────────────────────────────────────────────────────────

def _matches_team(live: LiveTeam, name: str) -> bool:
    key = normalize_name(name)
    return bool(key) and key in (
        live.team.key,
        normalize_name(live.team.full_name),
        normalize_name(live.team.short_name),
    )


def _slot_for(
    position: int,
    live: LiveTeam,
    rank: Optional[int],
    combined_total: Optional[float],
    cumulative: Mapping[str, CumulativeEntry],
    images: ImagePaths,
    spectated_team: Optional[str],
) -> SnapshotSlot:
    is_feed_team = not live.team.is_manual
    return SnapshotSlot(
        position=position,
        short_name=live.team.short_name,
        full_name=live.team.full_name,
        rank_label=f"#{rank}" if rank is not None else "",
        logo_path=logo_path(images.logo_folder, live.team.full_name),
        kill_count=round_half_up(kill_points_of(live.raw)) if is_feed_team else "",
        rounded_cumulative_total=round_half_up(combined_total) if combined_total is not None else "",
        zone_image=zone_image(images, live.raw) if is_feed_team else "",
        win_rate=format_win_rate(live.raw, cumulative.get(live.team.key)) if is_feed_team else "",
        health_images=health_images(images.hp_folder, live.raw),
        spectator_highlight=(
            images.spectator_highlight_image
            if spectated_team and _matches_team(live, spectated_team)
            else ""
        ),
    )


def build_slots(
    teams: Sequence[LiveTeam],
    previous: Mapping[str, CumulativeEntry],
    cumulative: Mapping[str, CumulativeEntry],
    images: ImagePaths,
    spectated_team: Optional[str] = None,
    min_slots: int = 12,
) -> list[SnapshotSlot]:
    """
    Ordered slots: ranked feed teams, then unranked name duplicates, then
    manual slots, then blank padding.

    Args:
        teams: Resolved teams of the current tick.
        previous: Active group's table excluding the live match.
        cumulative: Active group's full table, used for win rates.
        images: Asset folders.
        spectated_team: Name the configured observer is watching.
        min_slots: Minimum slot count so the layout width never changes.
    """
    by_key: dict[str, LiveTeam] = {}
    duplicates: list[LiveTeam] = []
    for live in teams:
        if live.team.is_manual:
            continue
        if live.team.key in by_key:
            duplicates.append(live)
        else:
            by_key[live.team.key] = live

    slots: list[SnapshotSlot] = []
    for row in overall_standings(build_standing_rows(list(by_key.values()), previous)):
        slots.append(
            _slot_for(
                len(slots) + 1,
                by_key[row.team_key],
                row.rank,
                row.combined_total,
                cumulative,
                images,
                spectated_team,
            )
        )

    # Same base name as a ranked team: shown unranked since the ledger keys by name.
    for live in duplicates:
        slots.append(_slot_for(len(slots) + 1, live, None, None, cumulative, images, spectated_team))

    manual = sorted((t for t in teams if t.team.is_manual), key=lambda t: t.team.slot or 0)
    for live in manual:
        slots.append(_slot_for(len(slots) + 1, live, None, None, cumulative, images, spectated_team))

    while len(slots) < min_slots:
        slots.append(SnapshotSlot(position=len(slots) + 1))
    return slots


def build_spotlight(
    entry: Optional[EliminationEntry],
    teams: Sequence[LiveTeam],
    images: ImagePaths,
) -> EliminationSpotlight:
    """Spotlight block for the given elimination entry; blank when None."""
    if entry is None:
        return EliminationSpotlight()
    snapshot = entry.team_snapshot
    eliminated_by = first_text(snapshot.raw, ELIMINATED_BY_FIELDS)
    if eliminated_by:
        killer = next((t for t in teams if _matches_team(t, eliminated_by)), None)
        if killer is not None:
            eliminated_by = killer.team.full_name
    return EliminationSpotlight(
        team_name=snapshot.team.full_name,
        rank=entry.elimination_rank,
        kill_count=round_half_up(kill_points_of(snapshot.raw)),
        logo_path=logo_path(images.logo_folder, snapshot.team.full_name),
        eliminated_by=eliminated_by,
        portraits=portraits(images.portrait_folder, snapshot.raw),
    )


# ── Flat output ─────────────────────────────────────────────────────────

def flatten(slots: Sequence[SnapshotSlot], spotlight: EliminationSpotlight) -> dict[str, Any]:
    """Flat object in fixed key order: each slot field across all slots, then the spotlight."""
    data: dict[str, Any] = {}
    for slot in slots:
        data[f"Team{slot.position}"] = slot.short_name
    for slot in slots:
        data[f"TeamFull{slot.position}"] = slot.full_name
    for slot in slots:
        data[f"Rank{slot.position}"] = slot.rank_label
    for slot in slots:
        data[f"Logo{slot.position}"] = slot.logo_path
    for slot in slots:
        data[f"FIN{slot.position}"] = slot.kill_count
    for slot in slots:
        data[f"PTS{slot.position}"] = slot.rounded_cumulative_total
    for slot in slots:
        data[f"ZONE{slot.position}"] = slot.zone_image
    for slot in slots:
        data[f"WINRATE{slot.position}"] = slot.win_rate
    for slot in slots:
        for i, path in enumerate(slot.health_images, start=1):
            data[f"T{slot.position}P{i}"] = path
    for slot in slots:
        data[f"SPEC{slot.position}"] = slot.spectator_highlight

    data["ElimTeam"] = spotlight.team_name
    data["ElimRank"] = spotlight.rank
    data["ElimKills"] = spotlight.kill_count
    data["ElimLogo"] = spotlight.logo_path
    data["ElimBy"] = spotlight.eliminated_by
    for i, path in enumerate(spotlight.portraits, start=1):
        data[f"ElimP{i}"] = path
    return data


def render_snapshot(
    teams: Sequence[LiveTeam],
    previous: Mapping[str, CumulativeEntry],
    cumulative: Mapping[str, CumulativeEntry],
    spotlight_entry: Optional[EliminationEntry],
    images: ImagePaths,
    spectated_team: Optional[str] = None,
    min_slots: int = 12,
) -> list[dict[str, Any]]:
    """Single-element array holding the flat broadcast object."""
    with track_latency(SNAPSHOT_RENDER):
        slots = build_slots(teams, previous, cumulative, images, spectated_team, min_slots)
        spotlight = build_spotlight(spotlight_entry, teams, images)
        return [flatten(slots, spotlight)]
