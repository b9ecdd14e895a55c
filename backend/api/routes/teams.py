"""
Team identity endpoints.

GET /v1/teams           Resolved live teams with their canonical keys.
PUT /v1/teams/overrides Replace full-name and/or short-name overrides.
PUT /v1/teams/manual    Replace the operator's team-name list (one slot per line).
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends

from shared.models.domain import CanonicalTeam, DomainModel
from overlay.service import OverlayService

from api.dependencies import get_overlay

router = APIRouter(prefix="/v1/teams", tags=["teams"])


class OverridesRequest(DomainModel):
    overrides: Optional[dict[str, str]] = None
    short_overrides: Optional[dict[str, str]] = None


class ManualSlotsRequest(DomainModel):
    names: list[str] | str


@router.get("")
async def list_teams(overlay: OverlayService = Depends(get_overlay)) -> list[CanonicalTeam]:
    return [live.team for live in overlay.state.teams]


@router.put("/overrides")
async def put_overrides(
    body: OverridesRequest,
    overlay: OverlayService = Depends(get_overlay),
) -> dict[str, Any]:
    state = await overlay.set_overrides(body.overrides, body.short_overrides)
    return {"overrides": state.overrides, "short_overrides": state.short_overrides}


@router.put("/manual")
async def put_manual_slots(
    body: ManualSlotsRequest,
    overlay: OverlayService = Depends(get_overlay),
) -> dict[str, list[str]]:
    state = await overlay.set_manual_slots(body.names)
    return {"manual_slots": state.manual_slots}
