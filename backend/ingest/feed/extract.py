"""
Payload extraction for the live-scoring feed.

The feed wraps its team list in one of several shapes; everything downstream
only ever sees a flat list of team dicts and a list of observer records.
"""
from __future__ import annotations

from typing import Any, Optional

from shared.models.domain import ObserverRecord
from standings.fields import OBSERVED_TEAM_FIELDS, OBSERVER_LIST_FIELDS, first_present, first_text

MATCH_ID_FIELDS = ("match_id", "matchId", "id")


def match_record(data: Any) -> Optional[dict[str, Any]]:
    """
    Locate the dict that carries `team_stats`.

    Accepts `[{team_stats}]`, `{team_stats}`, `{match_stats: [{team_stats}]}`
    and `{match_stats: {team_stats}}`.
    """
    if isinstance(data, list):
        first = data[0] if data else None
        return first if isinstance(first, dict) and isinstance(first.get("team_stats"), list) else None
    if not isinstance(data, dict):
        return None
    if isinstance(data.get("team_stats"), list):
        return data
    if "match_stats" in data:
        return match_record(data["match_stats"])
    return None


def extract_teams(data: Any) -> list[dict[str, Any]]:
    match = match_record(data)
    if match is None:
        return []
    return [team for team in match["team_stats"] if isinstance(team, dict)]


def extract_observers(data: Any) -> list[ObserverRecord]:
    """Observer -> observed team records from the match object or the envelope."""
    sources = [match_record(data), data.get("match_stats") if isinstance(data, dict) else None, data]
    for source in sources:
        if not isinstance(source, dict):
            continue
        observers = first_present(source, OBSERVER_LIST_FIELDS)
        if isinstance(observers, list):
            return [
                ObserverRecord(
                    observer_id=str(obs.get("observer_id", "")).strip(),
                    observed_team_name=first_text(obs, OBSERVED_TEAM_FIELDS),
                )
                for obs in observers
                if isinstance(obs, dict)
            ]
    return []


def extract_match_id(data: Any, default: str = "") -> str:
    match = match_record(data)
    if match is not None:
        value = first_present(match, MATCH_ID_FIELDS)
        if value is not None and str(value).strip():
            return str(value).strip()
    return default


def spectated_team(observers: list[ObserverRecord], observer_id: str) -> Optional[str]:
    """Team watched by `observer_id`, else by the first observer that watches anyone."""
    wanted = observer_id.strip()
    if wanted:
        for obs in observers:
            if obs.observer_id == wanted and obs.observed_team_name:
                return obs.observed_team_name
        return None
    return next((obs.observed_team_name for obs in observers if obs.observed_team_name), None)
