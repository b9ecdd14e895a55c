"""
Lightweight metrics collection for the Booyah Board overlay.
Wraps prometheus_client with async-safe patterns.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager, contextmanager
from typing import AsyncIterator, Iterator

from prometheus_client import Counter, Gauge, Histogram, Info, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
FEED_POLLS = Counter(
    "bb_feed_polls_total",
    "Total live-scoring feed fetches",
    ["mode", "status"],
)
SNAPSHOT_WRITES = Counter(
    "bb_snapshot_writes_total",
    "Total broadcast snapshot writes",
    ["sink", "status"],
)
ELIMINATIONS = Counter(
    "bb_eliminations_total",
    "Elimination entries created by the sequencer",
)
TRANSITION_SIGNALS = Counter(
    "bb_transition_signals_total",
    "Transition signals sent to the broadcast switcher",
    ["function", "status"],
)
MATCH_SAVES = Counter(
    "bb_match_saves_total",
    "Save attempts against the score ledger",
    ["status"],
)

# ── Histograms ──────────────────────────────────────────────────────────
FEED_LATENCY = Histogram(
    "bb_feed_latency_seconds",
    "Feed request latency in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
SNAPSHOT_RENDER = Histogram(
    "bb_snapshot_render_seconds",
    "Time to assemble one broadcast snapshot",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
)

# ── Gauges ──────────────────────────────────────────────────────────────
LIVE_TEAMS = Gauge(
    "bb_live_teams",
    "Resolved teams in the most recent feed tick",
)
ELIMINATION_QUEUE = Gauge(
    "bb_elimination_queue_depth",
    "Entries waiting for their elimination reveal",
)

# ── Info ────────────────────────────────────────────────────────────────
SERVICE_INFO = Info("bb_service", "Service build information")


@contextmanager
def track_latency(histogram: Histogram, **labels: str) -> Iterator[None]:
    """Context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        (histogram.labels(**labels) if labels else histogram).observe(elapsed)


@asynccontextmanager
async def atrack_latency(histogram: Histogram, **labels: str) -> AsyncIterator[None]:
    """Async context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        (histogram.labels(**labels) if labels else histogram).observe(elapsed)


def start_metrics_server(service_name: str, port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    SERVICE_INFO.info({"service": service_name, "environment": settings.environment.value})
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
