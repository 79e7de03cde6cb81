"""HTTP access log middleware -- emits structured METRIC lines.

Captures every non-skipped HTTP request/response cycle with method, path,
status code, wall time, client address, request ID, and error detail on
4xx/5xx responses.

Writes to the ``pluffy.access`` logger, which ``app.logging_setup`` can
route to its own rotating file (propagate=False keeps the main log clean).
"""

from __future__ import annotations

import json
import logging
import time

from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger("pluffy.access")

_SKIP_PREFIXES = frozenset({"/health", "/ws", "/static", "/favicon.ico"})


class AccessLogMiddleware:
    """ASGI middleware that logs every HTTP request as a structured METRIC line."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path: str = scope.get("path", "")
        if any(path.startswith(p) for p in _SKIP_PREFIXES):
            await self.app(scope, receive, send)
            return

        method: str = scope.get("method", "?")
        state: dict = scope.get("state", {})
        request_id: str = state.get("request_id", "-")
        client = _client_address(scope)
        t0 = time.perf_counter()
        status_code = 0
        error_detail = ""

        async def send_wrapper(message: dict) -> None:
            nonlocal status_code, error_detail
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
            elif message["type"] == "http.response.body" and status_code >= 400:
                error_detail = _error_detail(message.get("body", b"")) or error_detail
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            # Unhandled exception before response was sent -- treat as 500.
            if status_code == 0:
                status_code = 500
            raise
        finally:
            wall_ms = (time.perf_counter() - t0) * 1000
            _emit(method, path, status_code, wall_ms, client, request_id, error_detail)


def _client_address(scope: Scope) -> str:
    client = scope.get("client")
    if not client:
        return "-"
    return str(client[0])


def _error_detail(body_bytes: bytes) -> str:
    """Pull ``detail`` (or ``error``) out of a JSON error body."""
    if not body_bytes:
        return ""
    try:
        body = json.loads(body_bytes)
    except ValueError:
        return ""
    if not isinstance(body, dict):
        return ""
    return str(body.get("detail", body.get("error", "")))[:200]


def _emit(
    method: str,
    path: str,
    status_code: int,
    wall_ms: float,
    client: str,
    request_id: str,
    error_detail: str,
) -> None:
    """Emit a structured METRIC line for the HTTP request."""
    parts = [
        "METRIC | type=http_request",
        f"method={method}",
        f"path={path}",
        f"status={status_code}",
        f"wall_ms={wall_ms:.0f}",
        f"client={client}",
        f"req_id={request_id}",
    ]
    if error_detail:
        # Pipes would break the METRIC field format
        parts.append(f"error={error_detail.replace('|', '/')}")
    line = " | ".join(parts)

    if status_code >= 500:
        logger.error(line)
    elif status_code >= 400:
        logger.warning(line)
    else:
        logger.info(line)
