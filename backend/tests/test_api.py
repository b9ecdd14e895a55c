"""API route tests. The overlay service runs against an in-memory store and a mocked feed client."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from api.dependencies import init_dependencies
from ingest.feed.client import LiveScoringClient
from overlay.service import OverlayService
from shared.config import Settings
from shared.errors import FeedFetchError
from shared.models.domain import FeedSnapshot
from shared.utils.health_server import start_health_server
from shared.utils.redis_manager import MemoryStore

FEED_TEAMS = [
    {"team_id": 1, "team_name": "Alpha", "kill_count": 6, "total_points": 18, "booyah": True},
    {"team_id": 2, "team_name": "Bravo", "kill_count": 1, "total_points": 3},
]


@pytest.fixture
def feed_client() -> MagicMock:
    client = MagicMock(spec=LiveScoringClient)
    client.fetch = AsyncMock(return_value=FeedSnapshot(match_id="m-1", teams=FEED_TEAMS))
    return client


@pytest.fixture
def client(feed_client: MagicMock) -> TestClient:
    """Test client with lifespan disabled; the overlay is wired by hand."""
    settings = Settings(export_debounce_s=0, elimination_hold_s=0, elimination_settle_s=0, elimination_cooldown_s=0)
    init_dependencies(OverlayService(settings, store=MemoryStore(), client=feed_client))
    app = create_app(use_lifespan=False)
    with TestClient(app) as c:
        yield c
    init_dependencies(None)


def _fetch(client: TestClient):
    return client.post("/v1/feed/fetch", json={"match_id": "m-1", "client_id": "c-1"})


def test_health_returns_ok(client: TestClient) -> None:
    """GET /health returns 200, status ok and the overlay summary."""
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data.get("status") == "ok"
    assert data.get("service") == "api"
    assert data.get("overlay") is True
    assert data.get("live_data") is False


def test_health_without_overlay() -> None:
    init_dependencies(None)
    with TestClient(create_app(use_lifespan=False)) as c:
        r = c.get("/health")
    assert r.headers.get("content-type", "").startswith("application/json")
    assert r.json()["overlay"] is False


def test_fetch_resolves_teams(client: TestClient) -> None:
    r = _fetch(client)
    assert r.status_code == 200
    assert r.json()["teams"] == 2

    teams = client.get("/v1/teams").json()
    assert [t["key"] for t in teams] == ["alpha", "bravo"]


def test_fetch_failure_is_502_and_clears(client: TestClient, feed_client: MagicMock) -> None:
    _fetch(client)
    feed_client.fetch.side_effect = FeedFetchError("Match not found", status_code=404)

    r = _fetch(client)
    assert r.status_code == 502
    assert r.json() == {"error": "feed_error", "message": "Match not found", "upstream_status": 404}
    status = client.get("/v1/feed").json()
    assert status["has_data"] is False
    assert status["teams"] == []


def test_save_without_teams_is_422(client: TestClient) -> None:
    r = client.post("/v1/matches/save")
    assert r.status_code == 422
    body = r.json()
    assert body["error"] == "validation_error"
    assert body["reason"] == "no_teams"


def test_save_and_next_match(client: TestClient) -> None:
    _fetch(client)
    r = client.post("/v1/matches/save")
    assert r.status_code == 200
    assert r.json()["composite_key"] == "Group A::Round 1::Match 1"

    assert client.get("/v1/matches/history").json()[0]["match"] == "Match 1"
    labels = client.post("/v1/matches/next").json()
    assert labels == {"group": "Group A", "round": "Round 1", "match": "Match 2"}

    standings = client.get("/v1/standings").json()
    alpha = next(row for row in standings if row["team_key"] == "alpha")
    assert alpha["rank"] == 1
    assert alpha["combined_total"] == 18


def test_snapshot_has_flat_layout(client: TestClient) -> None:
    _fetch(client)
    payload = client.get("/v1/snapshot").json()
    assert len(payload) == 1
    assert payload[0]["TeamFull1"] == "Alpha"
    assert payload[0]["Rank1"] == "#1"
    assert "TeamFull12" in payload[0]


def test_write_snapshot_without_data(client: TestClient) -> None:
    r = client.post("/v1/snapshot/write")
    assert r.status_code == 200
    assert r.json()["message"] == "No data available to write"


def test_manual_slots_accept_text(client: TestClient) -> None:
    r = client.put("/v1/teams/manual", json={"names": "Wolves\n\nLions\n"})
    assert r.json() == {"manual_slots": ["Wolves", "Lions"]}


def test_history_import_rejects_malformed_payload(client: TestClient) -> None:
    r = client.post("/v1/history/import", json="{not json")
    assert r.status_code == 400
    assert r.json()["error"] == "import_error"

    r = client.post("/v1/history/import", json={})
    assert r.status_code == 400


def test_config_round_trip(client: TestClient) -> None:
    client.put("/v1/groups/active", json={"round": "Round 3", "match": "M5"})
    blob = client.get("/v1/config/export").json()

    client.put("/v1/groups/active", json={"round": "Round 9"})
    r = client.post("/v1/config/import", json=blob)
    assert r.status_code == 200
    assert r.json()["active_round"] == "Round 3"
    assert r.json()["active_match"] == "M5"


def test_headless_health_server(monkeypatch: pytest.MonkeyPatch) -> None:
    """The headless runner's health endpoint merges live status into the body."""
    monkeypatch.delenv("PORT", raising=False)
    assert start_health_server("overlay") is None

    monkeypatch.setenv("PORT", "0")
    server = start_health_server("overlay", lambda: {"live_data": True})
    assert server is not None
    try:
        port = server.server_address[1]
        r = httpx.get(f"http://127.0.0.1:{port}/health")
        assert r.json() == {"status": "ok", "service": "overlay", "live_data": True}
        assert httpx.get(f"http://127.0.0.1:{port}/other").status_code == 404
    finally:
        server.shutdown()
        server.server_close()
