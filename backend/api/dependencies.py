"""
Dependency injection for the API service.
Provides the overlay service and settings to route handlers.
"""
from __future__ import annotations

from overlay.service import OverlayService

# Module-level singleton, initialized at startup
_overlay: OverlayService | None = None


def init_dependencies(overlay: OverlayService | None) -> None:
    """Initialize the module-level singleton. Called once at startup."""
    global _overlay
    _overlay = overlay


def get_overlay() -> OverlayService:
    """FastAPI dependency: returns the running OverlayService."""
    if _overlay is None:
        raise RuntimeError("OverlayService not initialized; call init_dependencies first")
    return _overlay
