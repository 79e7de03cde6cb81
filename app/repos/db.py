"""Database connection pool management.

Provides an asyncpg pool wrapper that retries an operation when the
underlying TCP connection was dropped (idle-connection reapers, database
restarts).  JSON/JSONB columns are decoded to Python objects on every
connection, so repositories pass and receive plain dicts.
"""

import asyncio
import json
import logging
from typing import Any

import asyncpg

from app.config import settings

logger = logging.getLogger(__name__)

# Exceptions that mean "the connection died -- retry with a fresh one"
_RETRY_EXCEPTIONS = (
    asyncpg.ConnectionDoesNotExistError,
    asyncpg.InterfaceError,
    ConnectionResetError,
    OSError,
)

_MAX_RETRIES = 4


async def _init_connection(conn: asyncpg.Connection) -> None:
    """Per-connection setup: transparent JSON codecs."""
    for typename in ("json", "jsonb"):
        await conn.set_type_codec(
            typename,
            encoder=lambda v: json.dumps(v, default=str),
            decoder=json.loads,
            schema="pg_catalog",
        )


class ResilientPool:
    """Thin wrapper around :class:`asyncpg.Pool` that retries on dead connections.

    The four shorthand query methods are wrapped.  Everything else
    (``acquire``, ``close``...) is proxied straight through, so the object
    can be used wherever an ``asyncpg.Pool`` is expected.
    """

    __slots__ = ("_pool",)

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    # ── proxied methods with retry ────────────────────────────

    async def fetch(self, query: str, *args: Any, **kw: Any) -> list:
        return await self._retry(self._pool.fetch, query, *args, **kw)

    async def fetchrow(self, query: str, *args: Any, **kw: Any):
        return await self._retry(self._pool.fetchrow, query, *args, **kw)

    async def fetchval(self, query: str, *args: Any, **kw: Any):
        return await self._retry(self._pool.fetchval, query, *args, **kw)

    async def execute(self, query: str, *args: Any, **kw: Any) -> str:
        return await self._retry(self._pool.execute, query, *args, **kw)

    # ── retry engine ──────────────────────────────────────────

    @staticmethod
    async def _retry(func, *args: Any, **kw: Any):
        last_exc: Exception | None = None
        for attempt in range(_MAX_RETRIES + 1):
            try:
                return await func(*args, **kw)
            except _RETRY_EXCEPTIONS as exc:
                last_exc = exc
                if attempt < _MAX_RETRIES:
                    wait = min(0.5 * (2 ** attempt), 10.0)
                    logger.warning(
                        "DB connection lost (attempt %d/%d): %s -- retrying in %.1fs",
                        attempt + 1, _MAX_RETRIES + 1, exc, wait,
                    )
                    await asyncio.sleep(wait)
                else:
                    _invalidate_pool()
                    raise
        raise last_exc  # type: ignore[misc]  # unreachable but keeps mypy happy

    # ── transparent proxy for everything else ─────────────────

    def __getattr__(self, name: str):
        return getattr(self._pool, name)


_pool: asyncpg.Pool | None = None
_pool_loop: asyncio.AbstractEventLoop | None = None
_wrapper: ResilientPool | None = None


def _invalidate_pool() -> None:
    """Forget the current pool so the next get_pool() call recreates it."""
    global _pool, _wrapper
    _pool = None
    _wrapper = None


async def get_pool() -> ResilientPool:
    """Get or create the process-wide connection pool.

    Only entry points (API lifespan, worker main) call this; everything
    below them receives the pool as an argument.  If the running event
    loop changed since the pool was created, the stale pool is discarded.
    """
    global _pool, _pool_loop, _wrapper
    loop = asyncio.get_running_loop()
    if _pool is not None and _pool_loop is not loop:
        _pool.terminate()
        _pool = None
        _wrapper = None
    if _pool is None:
        _pool = await asyncio.wait_for(
            asyncpg.create_pool(
                dsn=settings.DATABASE_URL,
                min_size=2,
                max_size=10,
                command_timeout=60,
                max_inactive_connection_lifetime=300.0,
                init=_init_connection,
                server_settings={
                    "statement_timeout": "30000",
                    "idle_in_transaction_session_timeout": "60000",
                },
            ),
            timeout=20,
        )
        _pool_loop = loop
        _wrapper = ResilientPool(_pool)
    return _wrapper  # type: ignore[return-value]


async def close_pool() -> None:
    """Close the database connection pool."""
    global _pool, _pool_loop, _wrapper
    if _pool is not None:
        await _pool.close()
        _pool = None
        _pool_loop = None
        _wrapper = None
