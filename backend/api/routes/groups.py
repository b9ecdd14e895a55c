"""
Tournament format and group endpoints.

GET /v1/groups        Format, round-robin config, explicit order and active labels.
PUT /v1/groups        Replace format / round-robin config / explicit group order.
PUT /v1/groups/active Switch the active group and/or set round and match labels.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends

from shared.models.domain import DomainModel
from shared.models.enums import TournamentFormat
from overlay.service import OverlayService
from overlay.state import EngineState

from api.dependencies import get_overlay

router = APIRouter(prefix="/v1/groups", tags=["groups"])


class GroupsRequest(DomainModel):
    format: Optional[TournamentFormat] = None
    round_robin: Optional[dict[str, Any]] = None
    group_order: Optional[list[str]] = None


class ActiveLabelsRequest(DomainModel):
    group: Optional[str] = None
    round: Optional[str] = None
    match: Optional[str] = None


def _describe(state: EngineState) -> dict[str, Any]:
    return {
        "format": state.format.value,
        "round_robin": state.round_robin.model_dump(),
        "group_order": state.group_order,
        "active_group": state.active_group,
        "active_round": state.active_round,
        "active_match": state.active_match,
    }


@router.get("")
async def get_groups(overlay: OverlayService = Depends(get_overlay)) -> dict[str, Any]:
    return _describe(overlay.state)


@router.put("")
async def put_groups(
    body: GroupsRequest,
    overlay: OverlayService = Depends(get_overlay),
) -> dict[str, Any]:
    state = await overlay.configure_groups(body.format, body.round_robin, body.group_order)
    return _describe(state)


@router.put("/active")
async def put_active(
    body: ActiveLabelsRequest,
    overlay: OverlayService = Depends(get_overlay),
) -> dict[str, Any]:
    """Switching group rebuilds that group's standings from stored history."""
    state = await overlay.set_labels(body.group, body.round, body.match)
    return _describe(state)
