"""
FastAPI application factory for the Booyah Board control API.

Creates the app with:
- REST routes (feed, matches, standings, teams, groups, config, snapshot)
- Middleware stack
- Health check endpoint
- Lifespan management: the overlay service (poller, sequencer, writer)
  runs inside the API process
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI

from shared.config import get_settings
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import start_metrics_server

from api.dependencies import get_overlay, init_dependencies
from api.middleware import setup_middleware
from api.routes.config import router as config_router
from api.routes.feed import router as feed_router
from api.routes.groups import router as groups_router
from api.routes.matches import router as matches_router
from api.routes.snapshot import router as snapshot_router
from api.routes.standings import router as standings_router
from api.routes.teams import router as teams_router
from overlay.service import OverlayService, build_store

logger = get_logger(__name__)


@asynccontextmanager
async def _noop_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """No-op lifespan for testing; the test wires its own OverlayService."""
    yield


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Starts the overlay service (Redis session restore, initial fetch, poller)
    and stops it on shutdown.
    """
    settings = get_settings()
    setup_logging("api")
    start_metrics_server("api")

    overlay = OverlayService(settings, store=build_store(settings))
    init_dependencies(overlay)
    await overlay.start()

    logger.info("api_service_started", host=settings.api_host, port=settings.api_port)

    yield

    await overlay.stop()
    init_dependencies(None)
    logger.info("api_service_stopped")


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application. Set use_lifespan=False for testing."""
    app = FastAPI(
        title="Booyah Board API",
        description="Live battle-royale standings and broadcast overlay control",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else _noop_lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Middleware
    setup_middleware(app)

    # REST routes
    app.include_router(feed_router)
    app.include_router(matches_router)
    app.include_router(standings_router)
    app.include_router(teams_router)
    app.include_router(groups_router)
    app.include_router(config_router)
    app.include_router(snapshot_router)

    # Health check
    @app.get("/health", tags=["system"])
    async def health() -> dict[str, Any]:
        try:
            overlay = get_overlay()
        except RuntimeError:
            return {"status": "ok", "service": "api", "overlay": False}
        return {"status": "ok", "service": "api", "overlay": True, **overlay.health_status()}

    return app


app = create_app()
