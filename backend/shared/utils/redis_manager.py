"""
Session persistence and snapshot publication.

`RedisManager` keeps the exported session blob (ledger, history, overrides,
group config) and the latest broadcast snapshot in Redis. `MemoryStore`
offers the same interface for tests and for running without Redis.
"""
from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Key namespaces ──────────────────────────────────────────────────────
SESSION_KEY = "bb:session:{instance}"
SNAPSHOT_KEY = "bb:snapshot:{instance}"
SNAPSHOT_CHANNEL = "bb:snapshot:{instance}:updates"


def _fmt(template: str, **kwargs: Any) -> str:
    return template.format(**kwargs)


class RedisManager:
    """Manages the async Redis connection pool and typed session helpers."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._instance = self._settings.instance_id or "default"
        self._pool: Optional[Redis] = None

    async def connect(self) -> None:
        """Initialize the connection pool."""
        self._pool = aioredis.from_url(
            self._settings.redis_url_str,
            max_connections=self._settings.redis_max_connections,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
            retry_on_timeout=True,
        )
        await self._pool.ping()
        logger.info("redis_connected", url=self._settings.redis_url_str)

    async def disconnect(self) -> None:
        """Graceful shutdown."""
        if self._pool:
            await self._pool.aclose()
            self._pool = None
            logger.info("redis_disconnected")

    @property
    def client(self) -> Redis:
        if self._pool is None:
            raise RuntimeError("RedisManager not connected. Call connect() first.")
        return self._pool

    # ── Session ─────────────────────────────────────────────────────────
    async def save_session(self, data: str) -> None:
        await self.client.set(_fmt(SESSION_KEY, instance=self._instance), data)

    async def load_session(self) -> Optional[str]:
        return await self.client.get(_fmt(SESSION_KEY, instance=self._instance))

    # ── Snapshot ────────────────────────────────────────────────────────
    async def publish_snapshot(self, data: str, ttl_s: int = 3600) -> int:
        """Store the latest snapshot and notify subscribers. Returns receiver count."""
        pipe = self.client.pipeline(transaction=True)
        pipe.set(_fmt(SNAPSHOT_KEY, instance=self._instance), data, ex=ttl_s)
        pipe.publish(_fmt(SNAPSHOT_CHANNEL, instance=self._instance), data)
        results = await pipe.execute()
        return int(results[1])

    async def get_snapshot(self) -> Optional[str]:
        return await self.client.get(_fmt(SNAPSHOT_KEY, instance=self._instance))


class MemoryStore:
    """In-process stand-in for RedisManager with the same session/snapshot API."""

    def __init__(self) -> None:
        self._session: Optional[str] = None
        self._snapshot: Optional[str] = None
        self.published: list[str] = []

    async def connect(self) -> None:
        return None

    async def disconnect(self) -> None:
        return None

    async def save_session(self, data: str) -> None:
        self._session = data

    async def load_session(self) -> Optional[str]:
        return self._session

    async def publish_snapshot(self, data: str, ttl_s: int = 3600) -> int:
        self._snapshot = data
        self.published.append(data)
        return 0

    async def get_snapshot(self) -> Optional[str]:
        return self._snapshot


SessionStore = RedisManager | MemoryStore
