"""
Match ledger endpoints.

POST /v1/matches/save    Save the live match under the active labels.
POST /v1/matches/next    Reset per-match counters and advance the match label.
GET  /v1/matches/history Saved match history, oldest first.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from shared.models.domain import MatchHistoryEntry
from overlay.service import OverlayService

from api.dependencies import get_overlay

router = APIRouter(prefix="/v1/matches", tags=["matches"])


def _labels(overlay: OverlayService) -> dict[str, str]:
    state = overlay.state
    return {"group": state.active_group, "round": state.active_round, "match": state.active_match}


@router.post("/save")
async def save_match(overlay: OverlayService = Depends(get_overlay)) -> dict[str, Any]:
    """Rejected with 422 when a label is empty, no team is resolved or nobody has won."""
    state = await overlay.save()
    return {
        "composite_key": state.live_composite_key,
        "history_size": len(state.history),
        "cumulative": [entry.model_dump(mode="json") for entry in state.cumulative.values()],
    }


@router.post("/next")
async def next_match(overlay: OverlayService = Depends(get_overlay)) -> dict[str, str]:
    await overlay.next_match()
    return _labels(overlay)


@router.get("/history")
async def match_history(overlay: OverlayService = Depends(get_overlay)) -> list[MatchHistoryEntry]:
    return overlay.state.history
