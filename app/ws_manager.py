"""WebSocket connection manager for live project updates."""

import asyncio
import json
import logging

logger = logging.getLogger(__name__)

# Heartbeat interval (seconds) -- ping all connections periodically
HEARTBEAT_INTERVAL = 30

# Maximum connections per project before oldest is evicted
MAX_CONNECTIONS_PER_PROJECT = 5

# Maximum inbound message size (bytes)
MAX_MESSAGE_SIZE = 4096


class ConnectionManager:
    """Manages active WebSocket connections keyed by project_id."""

    def __init__(self) -> None:
        self._connections: dict[str, list] = {}  # project_id -> list of websockets
        self._lock = asyncio.Lock()
        self._heartbeat_task: asyncio.Task | None = None

    # ── lifecycle ─────────────────────────────────────────────

    async def start_heartbeat(self) -> None:
        """Start the background heartbeat loop (call from lifespan startup)."""
        if self._heartbeat_task is None:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    async def stop_heartbeat(self) -> None:
        """Cancel the heartbeat task (call from lifespan shutdown)."""
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None

    # ── connection management ─────────────────────────────────

    async def connect(self, project_id: str, websocket) -> None:  # noqa: ANN001
        """Register a WebSocket subscribed to a project.

        At MAX_CONNECTIONS_PER_PROJECT the oldest subscriber is closed and
        dropped.
        """
        async with self._lock:
            conns = self._connections.setdefault(project_id, [])
            while len(conns) >= MAX_CONNECTIONS_PER_PROJECT:
                oldest = conns.pop(0)
                try:
                    await oldest.close(code=1008, reason="Connection limit reached")
                except Exception:
                    logger.debug("Evicted socket for %s was already closed", project_id)
            conns.append(websocket)

    def connection_count(self, project_id: str) -> int:
        """Return the number of subscribers for a project (lock-free)."""
        return len(self._connections.get(project_id, []))

    async def disconnect(self, project_id: str, websocket) -> None:  # noqa: ANN001
        async with self._lock:
            conns = self._connections.get(project_id, [])
            if websocket in conns:
                conns.remove(websocket)
            if not conns:
                self._connections.pop(project_id, None)

    async def send_to_project(self, project_id: str, data: dict) -> None:
        """Send a JSON message to every subscriber of a project."""
        async with self._lock:
            conns = list(self._connections.get(project_id, []))
        message = json.dumps(data, default=str)
        dead = []
        for ws in conns:
            try:
                await asyncio.wait_for(ws.send_text(message), timeout=5.0)
            except Exception:
                dead.append(ws)
        if dead:
            await self._prune(project_id, dead)

    async def broadcast_project_event(
        self, project_id: str, event_type: str, payload: dict,
    ) -> None:
        """Push a ``{"type", "payload"}`` event to a project's subscribers."""
        await self.send_to_project(project_id, {"type": event_type, "payload": payload})

    async def _prune(self, project_id: str, dead: list) -> None:
        async with self._lock:
            conns = self._connections.get(project_id, [])
            for ws in dead:
                if ws in conns:
                    conns.remove(ws)
            if not conns:
                self._connections.pop(project_id, None)

    # ── heartbeat ─────────────────────────────────────────────

    async def _heartbeat_loop(self) -> None:
        """Ping every connection periodically and prune dead ones."""
        while True:
            await asyncio.sleep(HEARTBEAT_INTERVAL)
            try:
                await self._ping_all()
            except Exception:
                logger.exception("Heartbeat sweep error")

    async def _ping_all(self) -> None:
        async with self._lock:
            snapshot = {pid: list(conns) for pid, conns in self._connections.items()}

        for pid, conns in snapshot.items():
            dead: list = []
            for ws in conns:
                try:
                    await ws.send_json({"type": "ping"})
                except Exception:
                    dead.append(ws)
            if dead:
                await self._prune(pid, dead)


manager = ConnectionManager()
