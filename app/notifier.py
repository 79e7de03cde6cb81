"""Project event bridge between the job worker and WebSocket subscribers.

The worker may live in another process, so events travel through
Postgres ``NOTIFY`` on a single channel.  The API process holds one
dedicated listening connection and forwards each notification to the
:class:`~app.ws_manager.ConnectionManager`.
"""

import asyncio
import json
import logging

import asyncpg

logger = logging.getLogger(__name__)

CHANNEL = "pluffy_project_events"


class ProjectEventPublisher:
    """Publishes project events with ``pg_notify``."""

    def __init__(self, pool) -> None:  # noqa: ANN001
        self._pool = pool

    async def publish(self, project_id: str, event_type: str, payload: dict) -> None:
        message = json.dumps(
            {"project_id": project_id, "type": event_type, "payload": payload},
            default=str,
        )
        await self._pool.execute("SELECT pg_notify($1, $2)", CHANNEL, message)


class ProjectEventListener:
    """Listens on :data:`CHANNEL` and forwards events to a connection manager."""

    def __init__(self, dsn: str, manager) -> None:  # noqa: ANN001
        self._dsn = dsn
        self._manager = manager
        self._conn: asyncpg.Connection | None = None
        self._tasks: set[asyncio.Task] = set()

    async def start(self) -> None:
        self._conn = await asyncpg.connect(self._dsn)
        await self._conn.add_listener(CHANNEL, self._on_notify)
        logger.info("Listening for project events on %s", CHANNEL)

    async def stop(self) -> None:
        if self._conn is None:
            return
        try:
            await self._conn.remove_listener(CHANNEL, self._on_notify)
        finally:
            await self._conn.close()
            self._conn = None
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _on_notify(self, connection, pid, channel, payload) -> None:  # noqa: ANN001
        try:
            event = json.loads(payload)
        except ValueError:
            logger.warning("Dropping malformed project event: %s", payload[:200])
            return
        task = asyncio.get_running_loop().create_task(self.dispatch(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def dispatch(self, event: dict) -> None:
        """Forward one decoded event to the project's subscribers."""
        project_id = event.get("project_id")
        event_type = event.get("type")
        if not project_id or not event_type:
            logger.warning("Project event missing project_id/type: %s", event)
            return
        try:
            await self._manager.broadcast_project_event(
                project_id, event_type, event.get("payload") or {},
            )
        except Exception:
            logger.exception("Failed to forward %s for project %s", event_type, project_id)
