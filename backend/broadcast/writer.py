"""
Debounced broadcast snapshot writer.

Every trigger cancels the pending write and schedules a new one after the
debounce delay, so a burst of state changes produces a single write. Writes
are fire-and-forget: failures end up in `status`, never in the caller.
"""
from __future__ import annotations

import asyncio
import contextlib
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional

from shared.errors import SnapshotWriteError
from shared.models.domain import WriteStatus
from shared.models.enums import WriteState
from shared.utils.logging import get_logger
from shared.utils.metrics import SNAPSHOT_WRITES
from shared.utils.redis_manager import SessionStore

logger = get_logger(__name__)

DEFAULT_FILE_NAME = "data.json"

Renderer = Callable[[], list[dict[str, Any]]]


def resolve_target(path: str) -> str:
    """A folder (or anything not ending in .json) gets `data.json` appended."""
    path = path.strip()
    if not path:
        return ""
    candidate = Path(path)
    if path.endswith(("/", "\\")) or candidate.is_dir() or candidate.suffix.lower() != ".json":
        return str(candidate / DEFAULT_FILE_NAME)
    return str(candidate)


def _write_file(target: str, text: str) -> None:
    """Atomic replace so the switcher never reads a half-written file."""
    directory = os.path.dirname(target) or "."
    tmp_path: Optional[str] = None
    try:
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".snapshot-", suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp_path, target)
        tmp_path = None
    except OSError as exc:
        raise SnapshotWriteError(f"Failed to write {target}: {exc.strerror or exc}") from exc
    finally:
        if tmp_path is not None:
            with contextlib.suppress(OSError):
                os.unlink(tmp_path)


class SnapshotWriter:
    """Writes the snapshot to a JSON file and publishes it to the session store."""

    def __init__(
        self,
        path: str = "",
        store: Optional[SessionStore] = None,
        debounce_s: float = 0.1,
    ) -> None:
        self._target = resolve_target(path)
        self._store = store
        self._debounce_s = debounce_s
        self._pending: Optional[asyncio.Task] = None
        self._status = WriteStatus(target=self._target)

    @property
    def target(self) -> str:
        return self._target

    @property
    def status(self) -> WriteStatus:
        return self._status

    @property
    def has_pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def set_path(self, path: str) -> None:
        self._target = resolve_target(path)
        self._status = self._status.model_copy(update={"target": self._target})

    def schedule(self, render: Renderer) -> None:
        """Debounced write; `render` is called when the delay elapses, not now."""
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._status = WriteStatus(state=WriteState.PENDING, target=self._target)
        self._pending = asyncio.ensure_future(self._delayed(render))

    async def _delayed(self, render: Renderer) -> None:
        await asyncio.sleep(self._debounce_s)
        try:
            payload = render()
        except Exception as exc:
            SNAPSHOT_WRITES.labels(sink="render", status="error").inc()
            logger.exception("snapshot_render_failed", target=self._target)
            self._status = WriteStatus(
                state=WriteState.ERROR, message=f"Failed to render snapshot: {exc}", target=self._target
            )
            return
        await self.write(payload)

    async def flush(self) -> None:
        """Wait for the pending debounced write, if any."""
        if self._pending is not None:
            await asyncio.gather(self._pending, return_exceptions=True)

    async def aclose(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
            await asyncio.gather(self._pending, return_exceptions=True)
        self._pending = None

    async def write(self, payload: list[dict[str, Any]]) -> WriteStatus:
        """Write immediately to every configured sink and record the outcome."""
        text = json.dumps(payload, indent=2, ensure_ascii=False)
        errors: list[str] = []
        written: list[str] = []

        if self._target:
            try:
                await asyncio.to_thread(_write_file, self._target, text)
                SNAPSHOT_WRITES.labels(sink="file", status="ok").inc()
                written.append(self._target)
            except SnapshotWriteError as exc:
                SNAPSHOT_WRITES.labels(sink="file", status="error").inc()
                logger.warning("snapshot_file_write_failed", target=self._target, error=str(exc))
                errors.append(str(exc))

        if self._store is not None:
            try:
                await self._store.publish_snapshot(text)
                SNAPSHOT_WRITES.labels(sink="redis", status="ok").inc()
                written.append("redis")
            except Exception as exc:
                SNAPSHOT_WRITES.labels(sink="redis", status="error").inc()
                logger.warning("snapshot_publish_failed", error=str(exc))
                errors.append(f"Failed to publish snapshot: {exc}")

        if errors:
            self._status = WriteStatus(state=WriteState.ERROR, message="; ".join(errors), target=self._target)
        elif written:
            self._status = WriteStatus(
                state=WriteState.SUCCESS,
                message=f"JSON written to {', '.join(written)}",
                target=self._target,
            )
        else:
            self._status = WriteStatus(
                state=WriteState.ERROR, message="Please enter a file path", target=self._target
            )
        return self._status
