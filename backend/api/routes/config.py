"""
Session transfer endpoints.

GET  /v1/config/export  Whole-session blob.
POST /v1/config/import  Replace the session with an exported blob (400 on malformed input).
PUT  /v1/config/images  Asset folders used by the snapshot.
POST /v1/history/import Merge a match history log and/or cumulative tables.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from shared.models.domain import ConfigurationTransfer, ImagePaths
from overlay.service import OverlayService

from api.dependencies import get_overlay

router = APIRouter(tags=["config"])


@router.get("/v1/config/export")
async def export_config(overlay: OverlayService = Depends(get_overlay)) -> ConfigurationTransfer:
    return overlay.export_configuration()


@router.post("/v1/config/import")
async def import_config(
    payload: Any = Body(...),
    overlay: OverlayService = Depends(get_overlay),
) -> dict[str, Any]:
    state = await overlay.import_configuration(payload)
    return {
        "history_size": len(state.history),
        "active_group": state.active_group,
        "active_round": state.active_round,
        "active_match": state.active_match,
    }


@router.put("/v1/config/images")
async def put_images(
    body: ImagePaths,
    overlay: OverlayService = Depends(get_overlay),
) -> ImagePaths:
    state = await overlay.set_image_paths(body)
    return state.image_paths


@router.post("/v1/history/import")
async def import_history(
    payload: Any = Body(...),
    overlay: OverlayService = Depends(get_overlay),
) -> dict[str, Any]:
    state = await overlay.import_match_summary(payload)
    return {
        "history_size": len(state.history),
        "baselines": sorted(state.baselines),
        "cumulative": [entry.model_dump(mode="json") for entry in state.cumulative.values()],
    }
