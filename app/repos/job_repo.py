"""Job repository -- the durable event queue backed by the job_events table.

Events are rows.  Workers claim them with ``FOR UPDATE SKIP LOCKED`` so
any number of worker processes can poll the same table without handing
one event to two workers at once.  A claimed event carries a lease
(``locked_at``); if the worker dies, ``release_stale`` puts it back.
"""

import logging
from uuid import UUID

logger = logging.getLogger(__name__)

_EVENT_COLUMNS = """
    id, name, data, status, attempts, max_attempts, available_at,
    locked_at, last_error, created_at, completed_at
"""


class JobQueue:
    """Postgres-backed event queue.  Delivery is at-least-once."""

    def __init__(self, pool) -> None:  # noqa: ANN001
        self._pool = pool

    async def send(self, name: str, data: dict, *, max_attempts: int) -> dict:
        """Enqueue one event.  Returns the stored row."""
        row = await self._pool.fetchrow(
            f"""
            INSERT INTO job_events (name, data, max_attempts)
            VALUES ($1, $2::jsonb, $3)
            RETURNING {_EVENT_COLUMNS}
            """,
            name,
            data,
            max_attempts,
        )
        return dict(row)

    async def claim(self, names: list[str]) -> dict | None:
        """Lease the oldest due event with one of *names*, or None if idle.

        Increments ``attempts``; the returned dict reflects the new count.
        """
        row = await self._pool.fetchrow(
            f"""
            UPDATE job_events
               SET status    = 'running',
                   attempts  = attempts + 1,
                   locked_at = now()
             WHERE id = (
                   SELECT id FROM job_events
                    WHERE status = 'pending'
                      AND name = ANY($1::text[])
                      AND available_at <= now()
                    ORDER BY available_at, created_at
                    FOR UPDATE SKIP LOCKED
                    LIMIT 1
             )
            RETURNING {_EVENT_COLUMNS}
            """,
            names,
        )
        return dict(row) if row else None

    async def complete(self, event_id: UUID, result: object = None) -> None:
        """Mark an event done and store the handler's return value."""
        await self._pool.execute(
            """
            UPDATE job_events
               SET status = 'completed', result = $2::jsonb,
                   completed_at = now(), locked_at = NULL
             WHERE id = $1
            """,
            event_id,
            result,
        )

    async def retry(self, event_id: UUID, error: str, delay_seconds: float) -> None:
        """Put a failed event back in the queue after *delay_seconds*."""
        await self._pool.execute(
            """
            UPDATE job_events
               SET status = 'pending', last_error = $2, locked_at = NULL,
                   available_at = now() + make_interval(secs => $3)
             WHERE id = $1
            """,
            event_id,
            error,
            float(delay_seconds),
        )

    async def fail(self, event_id: UUID, error: str) -> None:
        """Mark an event permanently failed (no more attempts)."""
        await self._pool.execute(
            """
            UPDATE job_events
               SET status = 'failed', last_error = $2,
                   completed_at = now(), locked_at = NULL
             WHERE id = $1
            """,
            event_id,
            error,
        )

    async def release_stale(self, lease_seconds: int) -> int:
        """Return events whose lease expired to the queue.

        Called on worker startup and periodically from the poll loop, so a
        crashed or cancelled worker never strands an event in ``running``.
        Returns the number of events released.
        """
        result = await self._pool.execute(
            """
            UPDATE job_events
               SET status = 'pending', locked_at = NULL,
                   last_error = COALESCE(last_error, 'lease expired')
             WHERE status = 'running'
               AND locked_at < now() - make_interval(secs => $1)
            """,
            float(lease_seconds),
        )
        # asyncpg returns e.g. "UPDATE 3"
        try:
            return int(result.split()[-1])
        except (ValueError, IndexError, AttributeError):
            return 0

    async def get(self, event_id: UUID) -> dict | None:
        """Fetch one event by id."""
        row = await self._pool.fetchrow(
            f"SELECT {_EVENT_COLUMNS}, result FROM job_events WHERE id = $1",
            event_id,
        )
        return dict(row) if row else None
