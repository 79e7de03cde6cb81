"""Job event contracts shared by the producer and the consumer.

Changing an event name or its payload shape is a breaking change for
events already sitting in the queue.
"""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

CODE_AGENT_RUN = "code-agent/run"


@dataclass(frozen=True)
class JobEvent:
    """An event as seen by a handler.

    ``attempt`` is 1 on first delivery and grows with each retry.
    """

    name: str
    data: dict[str, Any]
    id: UUID | None = None
    attempt: int = 1
    max_attempts: int = 1

    @classmethod
    def from_row(cls, row: dict) -> "JobEvent":
        return cls(
            name=row["name"],
            data=row["data"] or {},
            id=row["id"],
            attempt=row["attempts"],
            max_attempts=row["max_attempts"],
        )

    @property
    def is_last_attempt(self) -> bool:
        return self.attempt >= self.max_attempts


class CodeAgentRunData(BaseModel):
    """Payload of a ``code-agent/run`` event: ``{"value", "projectId"}``.

    ``value`` is required but deliberately untyped; the consumer turns
    whatever arrives into prompt text.
    """

    model_config = ConfigDict(populate_by_name=True)

    value: Any
    project_id: UUID = Field(..., alias="projectId")

    def to_event_data(self) -> dict:
        return {"value": self.value, "projectId": str(self.project_id)}
