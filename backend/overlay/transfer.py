"""
Configuration transfer and match-summary import.

Exports and imports are whole-session units. Imported cumulative tables are
never trusted verbatim: the ledger is always rebuilt by folding history, and
a table only survives as the fold baseline for a group that has no history.
"""
from __future__ import annotations

import json
from typing import Any, Mapping

from pydantic import ValidationError

from shared.errors import PayloadImportError
from shared.models.domain import (
    ConfigurationTransfer,
    CumulativeTable,
    MatchHistoryEntry,
    MatchSummaryImport,
    utcnow,
)
from shared.utils.logging import get_logger
from standings import ledger
from standings.groups import normalize_round_robin_config

from overlay.state import EngineState, rebuild_cumulative, re_resolve

logger = get_logger(__name__)

TRANSFER_VERSION = 1
_ENTRY_MARKERS = ("team_key", "total_points", "matches")


def export_configuration(state: EngineState) -> ConfigurationTransfer:
    groups = {entry.group for entry in state.history} | {state.active_group}
    cumulative = {
        group: ledger.recalculate_cumulative_from_history(
            state.history, group=group, baseline=state.baselines.get(group)
        )
        for group in sorted(groups)
    }
    return ConfigurationTransfer(
        version=TRANSFER_VERSION,
        exported_at=utcnow(),
        format=state.format,
        round_robin=state.round_robin,
        group_order=state.group_order,
        active_group=state.active_group,
        active_round=state.active_round,
        active_match=state.active_match,
        overrides=state.overrides,
        short_overrides=state.short_overrides,
        manual_slots=state.manual_slots,
        history=state.history,
        cumulative=cumulative,
        baselines=state.baselines,
        image_paths=state.image_paths,
    )


def _load(payload: Any) -> Any:
    if isinstance(payload, (bytes, str)):
        try:
            return json.loads(payload)
        except json.JSONDecodeError as exc:
            raise PayloadImportError(f"Payload is not valid JSON: {exc.msg}") from exc
    return payload


def _coerce_history(raw: Any) -> Any:
    """Fill a missing composite key from the entry's labels."""
    if not isinstance(raw, list):
        return raw
    entries = []
    for item in raw:
        if isinstance(item, Mapping) and not item.get("composite_key"):
            item = {
                **item,
                "composite_key": ledger.composite_key(
                    str(item.get("group", "")), str(item.get("round", "")), str(item.get("match", ""))
                ),
            }
        entries.append(item)
    return entries


def _coerce_tables(raw: Any, default_group: str) -> Any:
    """A flat team table (not keyed by group) belongs to the active group."""
    if not isinstance(raw, Mapping) or not raw:
        return raw
    first = next(iter(raw.values()))
    if isinstance(first, Mapping) and any(marker in first for marker in _ENTRY_MARKERS):
        return {default_group: raw}
    return raw


def _baselines_for(
    tables: Mapping[str, CumulativeTable], history: list[MatchHistoryEntry]
) -> dict[str, CumulativeTable]:
    groups_with_history = {entry.group for entry in history}
    return {group: table for group, table in tables.items() if group not in groups_with_history}


def import_configuration(state: EngineState, payload: Any) -> EngineState:
    """
    Replace the session with an exported blob; live feed data is kept.

    Raises:
        PayloadImportError: Payload is not JSON or does not validate.
    """
    data = _load(payload)
    if not isinstance(data, Mapping):
        raise PayloadImportError("Configuration payload must be a JSON object")
    data = {
        **data,
        "history": _coerce_history(data.get("history", [])),
        "round_robin": normalize_round_robin_config(
            data.get("round_robin", data.get("roundRobinConfig"))
        ).model_dump(),
    }
    try:
        blob = ConfigurationTransfer.model_validate(data)
    except ValidationError as exc:
        raise PayloadImportError(f"Invalid configuration payload: {exc.error_count()} error(s)") from exc

    history = ledger.sort_history(blob.history)
    baselines = {**_baselines_for(blob.cumulative, history), **blob.baselines}
    new_state = state.model_copy(
        update={
            "format": blob.format,
            "round_robin": blob.round_robin,
            "group_order": blob.group_order,
            "active_group": blob.active_group or state.active_group,
            "active_round": blob.active_round or state.active_round,
            "active_match": blob.active_match or state.active_match,
            "overrides": blob.overrides,
            "short_overrides": blob.short_overrides,
            "manual_slots": blob.manual_slots,
            "history": history,
            "baselines": baselines,
            "image_paths": blob.image_paths,
        }
    )
    logger.info(
        "configuration_imported",
        version=blob.version,
        history=len(history),
        baselines=len(baselines),
    )
    return re_resolve(rebuild_cumulative(new_state))


def import_match_summary(state: EngineState, payload: Any) -> EngineState:
    """
    Merge a history log and/or cumulative tables into the ledger.

    History entries are upserted by composite key; tables only seed groups
    that end up with no history.

    Raises:
        PayloadImportError: Malformed or empty payload.
    """
    data = _load(payload)
    if isinstance(data, list):
        data = {"history": data}
    if not isinstance(data, Mapping):
        raise PayloadImportError("Match summary payload must be a JSON object or array")
    data = {
        "history": _coerce_history(data.get("history", [])),
        "cumulative": _coerce_tables(data.get("cumulative", {}), state.active_group),
    }
    try:
        summary = MatchSummaryImport.model_validate(data)
    except ValidationError as exc:
        raise PayloadImportError(f"Invalid match summary payload: {exc.error_count()} error(s)") from exc
    if not summary.history and not summary.cumulative:
        raise PayloadImportError("Match summary payload has neither history nor cumulative data")

    history = list(state.history)
    for entry in summary.history:
        history = ledger.upsert_history(history, entry)
    baselines = {**state.baselines, **_baselines_for(summary.cumulative, history)}

    logger.info(
        "match_summary_imported",
        entries=len(summary.history),
        tables=len(summary.cumulative),
        history=len(history),
    )
    return rebuild_cumulative(state.model_copy(update={"history": history, "baselines": baselines}))
