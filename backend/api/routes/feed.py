"""
Feed endpoints.

POST /v1/feed/fetch Explicit fetch; failures clear live data and return 502.
GET  /v1/feed       Poller status and the live team list.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends

from shared.models.domain import DomainModel
from overlay.service import OverlayService

from api.dependencies import get_overlay

router = APIRouter(prefix="/v1/feed", tags=["feed"])


class FetchRequest(DomainModel):
    match_id: Optional[str] = None
    client_id: Optional[str] = None


@router.post("/fetch")
async def fetch_feed(
    body: FetchRequest | None = None,
    overlay: OverlayService = Depends(get_overlay),
) -> dict[str, Any]:
    body = body or FetchRequest()
    snapshot = await overlay.fetch(body.match_id, body.client_id)
    return {
        "match_id": snapshot.match_id,
        "teams": len(overlay.state.teams),
        "fetched_at": snapshot.fetched_at.isoformat(),
    }


@router.get("")
async def feed_status(overlay: OverlayService = Depends(get_overlay)) -> dict[str, Any]:
    state = overlay.state
    return {
        "match_id": overlay.poller.match_id,
        "has_data": state.has_live_data,
        "last_error": overlay.poller.last_error,
        "spectated_team": overlay.spectated_team,
        "teams": [live.team.model_dump() for live in state.teams],
    }
