"""
Broadcast snapshot endpoints.

GET  /v1/snapshot        Current snapshot, same shape as the written file.
POST /v1/snapshot/write  Write now, bypassing the debounce.
GET  /v1/snapshot/status Outcome of the most recent write.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from shared.models.domain import WriteStatus
from overlay.service import OverlayService

from api.dependencies import get_overlay

router = APIRouter(prefix="/v1/snapshot", tags=["snapshot"])


@router.get("")
async def get_snapshot(overlay: OverlayService = Depends(get_overlay)) -> list[dict[str, Any]]:
    return overlay.snapshot()


@router.post("/write")
async def write_snapshot(overlay: OverlayService = Depends(get_overlay)) -> WriteStatus:
    return await overlay.write_snapshot()


@router.get("/status")
async def write_status(overlay: OverlayService = Depends(get_overlay)) -> WriteStatus:
    return overlay.writer.status
