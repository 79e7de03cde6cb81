"""Project service -- accepts generation requests and hands them to the job queue.

``submit`` is the producer half of the pipeline: persist the project and
its USER message, then enqueue one ``code-agent/run`` event that points
at it.  The write is awaited before the enqueue so a worker can never see
an event whose project does not exist yet.
"""

import logging
from uuid import UUID

from coolname import generate_slug

from app.errors import NotFoundError, ValidationError
from app.jobs.events import CODE_AGENT_RUN, CodeAgentRunData

logger = logging.getLogger(__name__)

MAX_VALUE_LENGTH = 10_000


def validate_value(value: object) -> str:
    """Check a submission against the input bounds.  Returns it unchanged.

    Raises ValidationError naming the broken constraint.
    """
    if not isinstance(value, str):
        raise ValidationError("Message must be a string", constraint="type")
    if len(value) < 1:
        raise ValidationError("Message is required", constraint="min_length")
    if len(value) > MAX_VALUE_LENGTH:
        raise ValidationError("Message is too long", constraint="max_length")
    return value


def generate_project_name() -> str:
    """Random two-word kebab-case name, e.g. ``"brave-otter"``."""
    return generate_slug(2)


async def submit(value: object, *, projects, jobs) -> dict:  # noqa: ANN001
    """Create a project for *value* and enqueue its agent run.

    Identical submissions are not deduplicated: each call creates a new
    project and a new event.

    Returns the created project dict (with its single USER message).
    """
    text = validate_value(value)
    project = await projects.create_project_with_message(generate_project_name(), text)
    payload = CodeAgentRunData(value=text, project_id=project["id"]).to_event_data()
    try:
        await jobs.send(CODE_AGENT_RUN, payload)
    except Exception:
        logger.exception(
            "Project %s persisted but %s enqueue failed", project["id"], CODE_AGENT_RUN,
        )
        raise
    logger.info("Project %s (%s) submitted", project["id"], project["name"])
    return project


async def get_project(project_id: UUID, *, projects) -> dict:  # noqa: ANN001
    """Fetch one project.  Raises NotFoundError."""
    project = await projects.get_project(project_id)
    if project is None:
        raise NotFoundError("Project not found")
    return project


async def list_projects(*, projects) -> list[dict]:  # noqa: ANN001
    """All projects, most recently updated first."""
    return await projects.list_projects()


async def list_messages(project_id: UUID, *, projects) -> list[dict]:  # noqa: ANN001
    """A project's message log, oldest first.  Raises NotFoundError."""
    await get_project(project_id, projects=projects)
    return await projects.list_messages(project_id)
