"""
Minimal HTTP server for the headless overlay runner.
Serves GET /health on PORT with a live status body (feed data present,
sequencer phase, last write state) so container healthchecks can see more
than "process is up". Runs in a daemon thread; no-op when PORT is not set.
"""
from __future__ import annotations

import json
import os
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Optional

from shared.utils.logging import get_logger

logger = get_logger(__name__)

StatusProvider = Callable[[], dict[str, Any]]


def _port_from_env() -> Optional[int]:
    port_str = os.environ.get("PORT")
    if not port_str:
        return None
    try:
        return int(port_str)
    except ValueError:
        logger.warning("health_server_bad_port", port=port_str)
        return None


def start_health_server(service_name: str, status: Optional[StatusProvider] = None) -> Optional[ThreadingHTTPServer]:
    """
    Start a daemon thread that answers GET /health.

    The body is `{"status": "ok", "service": ...}` merged with whatever
    `status()` returns at request time. Returns the server, or None when PORT
    is unset.
    """
    port = _port_from_env()
    if port is None:
        return None

    class Handler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:
            if self.path.rstrip("/") != "/health":
                self.send_response(404)
                self.end_headers()
                return
            payload: dict[str, Any] = {"status": "ok", "service": service_name}
            if status is not None:
                try:
                    payload.update(status())
                except Exception as exc:
                    payload = {"status": "degraded", "service": service_name, "error": str(exc)}
            body = json.dumps(payload).encode("utf-8")
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format: str, *args: object) -> None:
            pass  # request logging goes through structlog elsewhere

    server = ThreadingHTTPServer(("0.0.0.0", port), Handler)
    threading.Thread(target=server.serve_forever, name=f"{service_name}-health", daemon=True).start()
    logger.info("health_server_started", service=service_name, port=port)
    return server
