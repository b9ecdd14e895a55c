"""
Team identity resolution.

Turns raw feed records plus operator overrides into CanonicalTeam. The key is
derived from the feed's base name only, so renaming a team through an
override never moves its ledger entries.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from shared.models.domain import CanonicalTeam, LiveTeam
from standings.fields import (
    DISPLAY_NAME_FIELDS,
    ORIGINAL_NAME_FIELDS,
    SHORT_NAME_FIELDS,
    TEAM_ID_FIELDS,
    as_number,
    first_present,
    first_text,
    normalize_name,
)

MANUAL_KEY_PREFIX = "manual-"


def base_name(raw: Mapping[str, Any], index: int) -> str:
    """Original name, then display name, then a synthesized "Team {id}"."""
    name = first_text(raw, ORIGINAL_NAME_FIELDS) or first_text(raw, DISPLAY_NAME_FIELDS)
    if name:
        return name
    team_id = first_present(raw, TEAM_ID_FIELDS)
    if team_id is None or str(team_id).strip() == "":
        team_id = index + 1
    return f"Team {team_id}"


def manual_key(position: int) -> str:
    return f"{MANUAL_KEY_PREFIX}{position}"


def _lookup(table: Optional[Mapping[str, str]], key: str) -> str:
    if not table:
        return ""
    value = table.get(key)
    return value.strip() if isinstance(value, str) else ""


def resolve(
    raw: Mapping[str, Any],
    index: int,
    overrides: Optional[Mapping[str, str]] = None,
    short_overrides: Optional[Mapping[str, str]] = None,
    suggestions: Optional[Mapping[str, str]] = None,
) -> CanonicalTeam:
    """
    Resolve one feed record into a canonical identity.

    Args:
        raw: Feed record.
        index: Zero-based position of the record in the feed.
        overrides: Full-name overrides keyed by normalized key.
        short_overrides: Short-name overrides keyed by normalized key.
        suggestions: Short names supplied out-of-band, keyed by normalized key.

    Returns:
        CanonicalTeam with no group attached.
    """
    base = base_name(raw, index)
    key = normalize_name(base)
    full_name = _lookup(overrides, key) or base
    short_name = (
        _lookup(short_overrides, key)
        or first_text(raw, SHORT_NAME_FIELDS)
        or _lookup(suggestions, key)
        or full_name
    )
    return CanonicalTeam(key=key, full_name=full_name, short_name=short_name)


def resolve_manual(
    name: str,
    position: int,
    short_overrides: Optional[Mapping[str, str]] = None,
) -> CanonicalTeam:
    """Operator-entered slot with no feed record; keyed by its position."""
    key = manual_key(position)
    full_name = name.strip() or f"Team {position}"
    return CanonicalTeam(
        key=key,
        full_name=full_name,
        short_name=_lookup(short_overrides, key) or full_name,
        slot=position,
        is_manual=True,
    )


def parse_manual_slots(text: str) -> list[str]:
    """One team name per line; blank lines are dropped."""
    return [line.strip() for line in text.replace("\r\n", "\n").split("\n") if line.strip()]


def _feed_team_id(raw: Mapping[str, Any]) -> Optional[int]:
    number = as_number(first_present(raw, TEAM_ID_FIELDS))
    return int(number) if number is not None and number.is_integer() else None


def resolve_all(
    feed_teams: Sequence[Mapping[str, Any]],
    manual_slots: Sequence[str] = (),
    overrides: Optional[Mapping[str, str]] = None,
    short_overrides: Optional[Mapping[str, str]] = None,
    suggestions: Optional[Mapping[str, str]] = None,
) -> list[LiveTeam]:
    """
    Resolve a whole feed tick.

    Without manual slots every feed record is resolved in feed order. With
    manual slots the operator's list decides the lineup: slot N takes the feed
    record whose team id is N (the operator's name becomes that team's full
    name unless an explicit override exists), otherwise it becomes a manual
    placeholder.
    """
    if not manual_slots:
        return [
            LiveTeam(team=resolve(raw, i, overrides, short_overrides, suggestions), raw=dict(raw))
            for i, raw in enumerate(feed_teams)
        ]

    by_id: dict[int, tuple[int, Mapping[str, Any]]] = {}
    for i, raw in enumerate(feed_teams):
        team_id = _feed_team_id(raw)
        if team_id is not None and team_id not in by_id:
            by_id[team_id] = (i, raw)

    resolved: list[LiveTeam] = []
    for position, name in enumerate(manual_slots, start=1):
        match = by_id.get(position)
        if match is None:
            resolved.append(LiveTeam(team=resolve_manual(name, position, short_overrides)))
            continue
        index, raw = match
        key = normalize_name(base_name(raw, index))
        slot_overrides = {key: name, **(overrides or {})}
        team = resolve(raw, index, slot_overrides, short_overrides, suggestions)
        resolved.append(LiveTeam(team=team.model_copy(update={"slot": position}), raw=dict(raw)))
    return resolved
