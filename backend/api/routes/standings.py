"""
Standings endpoints.

GET /v1/standings        Overall ranking of the live teams.
GET /v1/standings/groups Group-wise (or linear ladder) standings, padded to capacity.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from shared.models.domain import GroupStandings, StandingRow
from overlay.service import OverlayService

from api.dependencies import get_overlay

router = APIRouter(prefix="/v1/standings", tags=["standings"])


@router.get("")
async def overall_standings(overlay: OverlayService = Depends(get_overlay)) -> list[StandingRow]:
    return overlay.overall_standings()


@router.get("/groups")
async def group_standings(overlay: OverlayService = Depends(get_overlay)) -> list[GroupStandings]:
    return overlay.group_standings()
