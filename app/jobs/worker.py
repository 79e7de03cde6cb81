"""Job worker -- claims queued events and runs their registered functions.

Runs in its own execution context (``python -m app.jobs``, or as a task
inside the API process when ``RUN_WORKER_IN_PROCESS`` is set).  It shares
nothing with the request path except the queue table.

Retry policy lives here, not in the handlers: a handler that raises is
rescheduled with exponential backoff until the event's ``max_attempts``
is used up, then the event is marked failed and the function's
``on_failure`` hook runs once.
"""

import asyncio
import logging
from typing import Any

from app.config import settings
from app.jobs.client import JobClient
from app.jobs.events import JobEvent

logger = logging.getLogger(__name__)

# Release expired leases every N poll cycles.
_STALE_SWEEP_EVERY = 60


def compute_retry_delay(attempt: int, base: float, cap: float) -> float:
    """Seconds to wait before redelivering after failed *attempt* (1-based)."""
    return min(base * (2 ** (attempt - 1)), cap)


def _error_text(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"[:2000]


def _log_task_error(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Job task crashed: %s", task.get_name(), exc_info=exc)


class JobWorker:
    """Poll loop with bounded concurrency over one :class:`JobClient`."""

    def __init__(
        self,
        client: JobClient,
        *,
        concurrency: int = 4,
        poll_interval: float = 1.0,
        lease_seconds: int = 600,
        retry_base_seconds: float = 2.0,
        retry_max_seconds: float = 300.0,
    ) -> None:
        self._client = client
        self._queue = client.queue
        self._concurrency = concurrency
        self._poll_interval = poll_interval
        self._lease_seconds = lease_seconds
        self._retry_base = retry_base_seconds
        self._retry_max = retry_max_seconds
        self._stop = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()

    # ── lifecycle ─────────────────────────────────────────────

    async def run(self) -> None:
        """Poll until :meth:`stop` is called."""
        names = self._client.event_names
        if not names:
            logger.warning("Job worker started with no registered functions")
            return
        released = await self._queue.release_stale(self._lease_seconds)
        if released:
            logger.warning("Released %d event(s) with expired leases", released)
        logger.info(
            "Job worker polling %s (concurrency=%d)", ", ".join(names), self._concurrency,
        )

        slots = asyncio.Semaphore(self._concurrency)
        cycles = 0
        while not self._stop.is_set():
            cycles += 1
            if cycles % _STALE_SWEEP_EVERY == 0:
                await self._queue.release_stale(self._lease_seconds)

            await slots.acquire()
            if self._stop.is_set():
                slots.release()
                break
            try:
                row = await self._queue.claim(names)
            except Exception:
                slots.release()
                logger.exception("Failed to claim job event")
                await self._idle()
                continue

            if row is None:
                slots.release()
                await self._idle()
                continue

            task = asyncio.create_task(self.execute(JobEvent.from_row(row)))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            task.add_done_callback(_log_task_error)
            task.add_done_callback(lambda _t: slots.release())

    async def stop(self) -> None:
        """Stop polling and cancel in-flight executions.

        Cancelled events stay ``running`` until their lease expires and are
        then redelivered; nothing partial is persisted for them.
        """
        self._stop.set()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Job worker stopped")

    async def run_once(self) -> bool:
        """Claim and execute a single event inline.  Returns False when idle."""
        row = await self._queue.claim(self._client.event_names)
        if row is None:
            return False
        await self.execute(JobEvent.from_row(row))
        return True

    async def _idle(self) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self._poll_interval)
        except asyncio.TimeoutError:
            pass

    # ── execution ─────────────────────────────────────────────

    async def execute(self, event: JobEvent) -> Any:
        """Run the handler for *event* and record the outcome on the queue."""
        fn = self._client.get_function(event.name)
        if fn is None:
            logger.error("No job function for event %s (%s)", event.name, event.id)
            await self._queue.fail(event.id, f"No function registered for {event.name}")
            return None

        logger.info(
            "Running %s for event %s (attempt %d/%d)",
            fn.id, event.id, event.attempt, event.max_attempts,
        )
        try:
            result = await fn.handler(event)
        except asyncio.CancelledError:
            logger.warning("Event %s cancelled mid-run; lease will expire", event.id)
            raise
        except Exception as exc:
            await self._handle_failure(fn, event, exc)
            return None

        try:
            await self._queue.complete(event.id, result)
        except Exception:
            logger.exception(
                "Could not mark event %s completed; it is redelivered once its lease expires",
                event.id,
            )
            return result
        logger.info("Completed %s for event %s", fn.id, event.id)
        return result

    async def _handle_failure(self, fn, event: JobEvent, exc: Exception) -> None:  # noqa: ANN001
        retryable = getattr(exc, "retryable", True)
        if retryable and not event.is_last_attempt:
            delay = compute_retry_delay(event.attempt, self._retry_base, self._retry_max)
            logger.warning(
                "%s failed for event %s (attempt %d/%d), retrying in %.1fs: %s",
                fn.id, event.id, event.attempt, event.max_attempts, delay, exc,
            )
            try:
                await self._queue.retry(event.id, _error_text(exc), delay)
            except Exception:
                logger.exception("Could not reschedule event %s", event.id)
            return

        logger.error(
            "%s failed permanently for event %s after %d attempt(s)",
            fn.id, event.id, event.attempt, exc_info=exc,
        )
        try:
            await self._queue.fail(event.id, _error_text(exc))
        except Exception:
            logger.exception("Could not mark event %s failed", event.id)
        if fn.on_failure is None:
            return
        try:
            await fn.on_failure(event, exc)
        except Exception:
            logger.exception("on_failure hook for %s raised (event %s)", fn.id, event.id)


def create_worker(client: JobClient) -> JobWorker:
    """Build a worker tuned from ``JOB_*`` settings."""
    return JobWorker(
        client,
        concurrency=settings.JOB_CONCURRENCY,
        poll_interval=settings.JOB_POLL_INTERVAL,
        lease_seconds=settings.JOB_LEASE_SECONDS,
        retry_base_seconds=settings.JOB_RETRY_BASE_SECONDS,
        retry_max_seconds=settings.JOB_RETRY_MAX_SECONDS,
    )
