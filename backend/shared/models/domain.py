"""
Pydantic v2 domain models shared across the overlay engine.
These are the canonical internal/wire representations; raw feed records stay
plain dicts until the resolver turns them into CanonicalTeam.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.models.enums import TournamentFormat, WriteState


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# ── Team identity ───────────────────────────────────────────────────────
class CanonicalTeam(DomainModel):
    """Resolved identity of a team for one feed tick."""
    key: str
    full_name: str
    short_name: str
    group_key: Optional[str] = None
    slot: Optional[int] = None
    is_manual: bool = False


class LiveTeam(DomainModel):
    """A resolved team paired with the raw feed record it came from."""
    team: CanonicalTeam
    raw: dict[str, Any] = Field(default_factory=dict)


class ObserverRecord(DomainModel):
    observer_id: str
    observed_team_name: str


class FeedSnapshot(DomainModel):
    """One successful poll of the live-scoring feed."""
    match_id: str
    teams: list[dict[str, Any]] = Field(default_factory=list)
    observers: list[ObserverRecord] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=utcnow)


# ── Ledger ──────────────────────────────────────────────────────────────
class TeamPoints(DomainModel):
    kill_points: float = 0
    placement_points: float = 0
    total_points: float = 0


class MatchSummary(DomainModel):
    """One team's result in one saved match."""
    team_key: str
    team_name: str
    kill_points: float = 0
    placement_points: float = 0
    total_points: float = 0
    is_winner: bool = False
    group_key: Optional[str] = None


class MatchHistoryEntry(DomainModel):
    composite_key: str
    group: str
    round: str
    match: str
    saved_at: datetime = Field(default_factory=utcnow)
    teams: list[MatchSummary] = Field(default_factory=list)


class CumulativeEntry(DomainModel):
    """Running totals for one team inside one group."""
    team_key: str
    team_name: str = ""
    matches: int = 0
    kill_points: float = 0
    placement_points: float = 0
    total_points: float = 0
    previous_total_points: float = 0
    last_match_points: float = 0
    win_count: int = 0
    last_match_at: Optional[datetime] = None


CumulativeTable = dict[str, CumulativeEntry]


# ── Groups ──────────────────────────────────────────────────────────────
class GroupSlot(DomainModel):
    short_name: str = ""
    full_name: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.short_name.strip() or self.full_name.strip())


class GroupConfig(DomainModel):
    name: str
    enabled: bool = True
    slot_capacity: int = 0
    team_slots: list[GroupSlot] = Field(default_factory=list)


class RoundRobinConfig(DomainModel):
    group_count: int = 3
    teams_per_group: int = 2
    groups: list[GroupConfig] = Field(default_factory=list)


class StandingRow(DomainModel):
    team_key: str
    name: str
    short_name: str = ""
    group_key: Optional[str] = None
    rank: Optional[int] = None
    previous_total: float = 0
    current_total: float = 0
    combined_total: float = 0
    kill_points: float = 0
    is_placeholder: bool = False


class GroupStandings(DomainModel):
    group_key: str
    capacity: int = 0
    rows: list[StandingRow] = Field(default_factory=list)


# ── Elimination ─────────────────────────────────────────────────────────
class EliminationEntry(DomainModel):
    """Created once when a team is first seen eliminated; never mutated."""
    model_config = ConfigDict(frozen=True)

    team_key: str
    elimination_rank: int
    total_teams_at_elimination: int
    eliminated_at: datetime = Field(default_factory=utcnow)
    team_snapshot: LiveTeam


# ── Snapshot ────────────────────────────────────────────────────────────
class ImagePaths(DomainModel):
    logo_folder: str = ""
    hp_folder: str = ""
    portrait_folder: str = ""
    zone_in_image: str = ""
    zone_out_image: str = ""
    spectator_highlight_image: str = ""


class SnapshotSlot(DomainModel):
    position: int
    short_name: str = ""
    full_name: str = ""
    rank_label: str = ""
    logo_path: str = ""
    kill_count: int | str = ""
    rounded_cumulative_total: int | str = ""
    zone_image: str = ""
    win_rate: str = ""
    health_images: list[str] = Field(default_factory=lambda: ["", "", "", ""])
    spectator_highlight: str = ""


class EliminationSpotlight(DomainModel):
    team_name: str = ""
    rank: int | str = ""
    kill_count: int | str = ""
    logo_path: str = ""
    eliminated_by: str = ""
    portraits: list[str] = Field(default_factory=lambda: ["", "", "", ""])


class WriteStatus(DomainModel):
    state: WriteState = WriteState.IDLE
    message: str = ""
    target: str = ""
    updated_at: datetime = Field(default_factory=utcnow)


# ── Transfer payloads ───────────────────────────────────────────────────
class ConfigurationTransfer(DomainModel):
    """Whole-session export blob; imported as a unit."""
    version: int = 1
    exported_at: datetime = Field(default_factory=utcnow)
    format: TournamentFormat = TournamentFormat.LINEAR
    round_robin: RoundRobinConfig = Field(default_factory=RoundRobinConfig)
    group_order: list[str] = Field(default_factory=list)
    active_group: str = ""
    active_round: str = ""
    active_match: str = ""
    overrides: dict[str, str] = Field(default_factory=dict)
    short_overrides: dict[str, str] = Field(default_factory=dict)
    manual_slots: list[str] = Field(default_factory=list)
    history: list[MatchHistoryEntry] = Field(default_factory=list)
    cumulative: dict[str, CumulativeTable] = Field(default_factory=dict)
    baselines: dict[str, CumulativeTable] = Field(default_factory=dict)
    image_paths: ImagePaths = Field(default_factory=ImagePaths)


class MatchSummaryImport(DomainModel):
    """History log and/or a precomputed cumulative table keyed by group."""
    history: list[MatchHistoryEntry] = Field(default_factory=list)
    cumulative: dict[str, CumulativeTable] = Field(default_factory=dict)
