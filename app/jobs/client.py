"""Job client -- sends events and holds the registry of job functions.

The producer side only needs ``send``.  The worker side asks the client
which function handles an event name.  One client is constructed per
process and passed to whoever needs it.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from app.jobs.events import JobEvent

logger = logging.getLogger(__name__)

Handler = Callable[[JobEvent], Awaitable[Any]]
FailureHandler = Callable[[JobEvent, BaseException], Awaitable[None]]


@dataclass(frozen=True)
class JobFunction:
    """A registered handler for one event name."""

    id: str
    event: str
    handler: Handler
    on_failure: FailureHandler | None = None


class JobClient:
    """Entry point for enqueueing events and registering job functions."""

    def __init__(self, queue, *, max_attempts: int) -> None:  # noqa: ANN001
        self._queue = queue
        self._max_attempts = max_attempts
        self._functions: dict[str, JobFunction] = {}

    @property
    def queue(self):  # noqa: ANN201
        return self._queue

    async def send(self, name: str, data: dict) -> dict:
        """Durably enqueue one event.  Returns the stored event row."""
        row = await self._queue.send(name, data, max_attempts=self._max_attempts)
        logger.info("Enqueued %s event %s", name, row.get("id"))
        return row

    def function(
        self,
        fn_id: str,
        *,
        event: str,
        on_failure: FailureHandler | None = None,
    ) -> Callable[[Handler], Handler]:
        """Register the decorated coroutine as the handler for *event*.

        One handler per event name; registering a second raises.
        """

        def decorator(handler: Handler) -> Handler:
            self.register(JobFunction(fn_id, event, handler, on_failure))
            return handler

        return decorator

    def register(self, fn: JobFunction) -> None:
        if fn.event in self._functions:
            raise ValueError(f"A job function is already registered for {fn.event!r}")
        self._functions[fn.event] = fn

    def get_function(self, event_name: str) -> JobFunction | None:
        return self._functions.get(event_name)

    @property
    def event_names(self) -> list[str]:
        return sorted(self._functions)
