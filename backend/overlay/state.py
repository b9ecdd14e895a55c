"""
Overlay engine state and commands.

`EngineState` is one explicit value holding everything the operator session
owns. Commands are plain functions `(state, ...) -> state`; none of them
mutates its input, so a failed command leaves the caller's state as it was.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Sequence

from pydantic import Field

from shared.models.domain import (
    CumulativeTable,
    DomainModel,
    FeedSnapshot,
    GroupStandings,
    ImagePaths,
    LiveTeam,
    MatchHistoryEntry,
    RoundRobinConfig,
    StandingRow,
    utcnow,
)
from shared.models.enums import TournamentFormat
from shared.utils.logging import get_logger
from standings import ledger
from standings.fields import normalize_name
from standings.groups import (
    assign_groups,
    build_standing_rows,
    normalize_round_robin_config,
    overall_standings,
    standings_for_format,
    suggestions_from_groups,
)
from standings.resolver import base_name, parse_manual_slots, resolve_all

logger = get_logger(__name__)

DEFAULT_GROUP = "Group A"
DEFAULT_ROUND = "Round 1"
DEFAULT_MATCH = "Match 1"


class EngineState(DomainModel):
    format: TournamentFormat = TournamentFormat.LINEAR
    round_robin: RoundRobinConfig = Field(default_factory=lambda: normalize_round_robin_config(None))
    group_order: list[str] = Field(default_factory=list)

    active_group: str = DEFAULT_GROUP
    active_round: str = DEFAULT_ROUND
    active_match: str = DEFAULT_MATCH

    overrides: dict[str, str] = Field(default_factory=dict)
    short_overrides: dict[str, str] = Field(default_factory=dict)
    manual_slots: list[str] = Field(default_factory=list)

    history: list[MatchHistoryEntry] = Field(default_factory=list)
    baselines: dict[str, CumulativeTable] = Field(default_factory=dict)
    cumulative: CumulativeTable = Field(default_factory=dict)

    feed: Optional[FeedSnapshot] = None
    teams: list[LiveTeam] = Field(default_factory=list)
    image_paths: ImagePaths = Field(default_factory=ImagePaths)

    @property
    def live_composite_key(self) -> str:
        return ledger.composite_key(self.active_group, self.active_round, self.active_match)

    @property
    def has_live_data(self) -> bool:
        return self.feed is not None


# ── Derived views ───────────────────────────────────────────────────────

def previous_table(state: EngineState) -> CumulativeTable:
    """Active group's totals before the live match."""
    return ledger.previous_totals(
        state.history,
        state.active_group,
        state.live_composite_key,
        baseline=state.baselines.get(state.active_group),
    )


def standing_rows(state: EngineState) -> list[StandingRow]:
    return build_standing_rows(state.teams, previous_table(state))


def overall(state: EngineState) -> list[StandingRow]:
    return overall_standings(standing_rows(state))


def grouped(state: EngineState) -> list[GroupStandings]:
    return standings_for_format(
        state.format,
        standing_rows(state),
        state.round_robin,
        state.active_group,
        state.group_order or None,
    )


def rebuild_cumulative(state: EngineState) -> EngineState:
    """Recompute the active group's table from history; never merged across groups."""
    table = ledger.recalculate_cumulative_from_history(
        state.history,
        group=state.active_group,
        baseline=state.baselines.get(state.active_group),
    )
    return state.model_copy(update={"cumulative": table})


# ── Feed ────────────────────────────────────────────────────────────────

def _resolve(state: EngineState, feed_teams: Sequence[dict[str, Any]]) -> list[LiveTeam]:
    round_robin = state.format == TournamentFormat.ROUND_ROBIN
    suggestions = suggestions_from_groups(state.round_robin) if round_robin else None
    teams = resolve_all(
        feed_teams,
        state.manual_slots,
        state.overrides,
        state.short_overrides,
        suggestions,
    )
    return assign_groups(teams, state.round_robin) if round_robin else teams


def apply_feed(state: EngineState, snapshot: FeedSnapshot) -> EngineState:
    return state.model_copy(update={"feed": snapshot, "teams": _resolve(state, snapshot.teams)})


def re_resolve(state: EngineState) -> EngineState:
    """Re-run identity resolution on the current feed after an override change."""
    if state.feed is None:
        return state.model_copy(update={"teams": []})
    return state.model_copy(update={"teams": _resolve(state, state.feed.teams)})


def clear_live(state: EngineState) -> EngineState:
    return state.model_copy(update={"feed": None, "teams": []})


# ── Operator configuration ──────────────────────────────────────────────

def _clean_names(values: dict[str, str]) -> dict[str, str]:
    cleaned: dict[str, str] = {}
    for key, value in values.items():
        norm = normalize_name(key)
        text = value.strip() if isinstance(value, str) else ""
        if norm and text:
            cleaned[norm] = text
    return cleaned


def set_overrides(
    state: EngineState,
    overrides: Optional[dict[str, str]] = None,
    short_overrides: Optional[dict[str, str]] = None,
) -> EngineState:
    """Replace the override tables given; keys are normalized, blank values dropped."""
    update: dict[str, Any] = {}
    if overrides is not None:
        update["overrides"] = _clean_names(overrides)
    if short_overrides is not None:
        update["short_overrides"] = _clean_names(short_overrides)
    return re_resolve(state.model_copy(update=update))


def set_manual_slots(state: EngineState, slots: str | Sequence[str]) -> EngineState:
    names = parse_manual_slots(slots) if isinstance(slots, str) else [s.strip() for s in slots if s.strip()]
    return re_resolve(state.model_copy(update={"manual_slots": names}))


def configure_groups(
    state: EngineState,
    fmt: Optional[TournamentFormat] = None,
    round_robin: Any = None,
    group_order: Optional[Sequence[str]] = None,
) -> EngineState:
    update: dict[str, Any] = {}
    if fmt is not None:
        update["format"] = fmt
    if round_robin is not None:
        update["round_robin"] = normalize_round_robin_config(round_robin)
    if group_order is not None:
        update["group_order"] = [name.strip() for name in group_order if name.strip()]
    return re_resolve(state.model_copy(update=update))


def set_image_paths(state: EngineState, images: ImagePaths) -> EngineState:
    return state.model_copy(update={"image_paths": images})


def switch_group(state: EngineState, group: str) -> EngineState:
    """Change the active group and rebuild its standings from stored history."""
    group = group.strip()
    if not group or group == state.active_group:
        return state
    logger.info("active_group_switched", previous=state.active_group, current=group)
    return rebuild_cumulative(state.model_copy(update={"active_group": group}))


def set_labels(
    state: EngineState,
    group: Optional[str] = None,
    round_label: Optional[str] = None,
    match_label: Optional[str] = None,
) -> EngineState:
    update: dict[str, Any] = {}
    if round_label is not None:
        update["active_round"] = round_label
    if match_label is not None:
        update["active_match"] = match_label
    state = state.model_copy(update=update)
    return switch_group(state, group) if group is not None else state


# ── Ledger commands ─────────────────────────────────────────────────────

def save(state: EngineState, now: Optional[datetime] = None) -> EngineState:
    """
    Save the live match under the active labels.

    Raises:
        MatchValidationError: Empty label, no resolved teams or no winner.
    """
    history, table = ledger.save_match(
        state.history,
        state.active_group,
        state.active_round,
        state.active_match,
        state.teams,
        saved_at=now or utcnow(),
        baseline=state.baselines.get(state.active_group.strip()),
    )
    return state.model_copy(update={"history": history, "cumulative": table})


def next_match(state: EngineState) -> EngineState:
    """Reset per-match counters of active feed teams and advance the match label."""
    update: dict[str, Any] = {"active_match": ledger.increment_match_label(state.active_match)}
    if state.feed is not None:
        reset_teams = []
        for index, raw in enumerate(state.feed.teams):
            key = normalize_name(base_name(raw, index))
            if ledger.has_match_activity(raw, state.cumulative.get(key)):
                raw = ledger.reset_match_counters(raw)
            reset_teams.append(raw)
        update["feed"] = state.feed.model_copy(update={"teams": reset_teams})
    logger.info("next_match", previous=state.active_match, current=update["active_match"])
    return re_resolve(state.model_copy(update=update))
