"""Agent runner -- the job function behind ``code-agent/run`` events.

For every event: build the code agent, send it one formatted instruction,
and write what it produced back onto the originating project as an AGENT
message with a fragment.  Failures are raised as JobExecutionError so the
job worker can retry; once retries run out, an AGENT/ERROR message is
appended so the project does not sit in "loading" forever.
"""

import json
import logging
from collections.abc import Callable
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from app.clients.agent_client import Agent, ModelConfig, create_agent
from app.config import get_agent_model, get_provider_api_key, settings
from app.errors import JobExecutionError
from app.explorer.tree import normalize_files
from app.jobs.client import JobClient
from app.jobs.events import CODE_AGENT_RUN, CodeAgentRunData, JobEvent

logger = logging.getLogger(__name__)

CODE_AGENT_NAME = "code-agent"
PROMPT_PREFIX = "Write the following snippets for : "
FAILURE_MESSAGE = "Something went wrong while generating this fragment. Please try again."

CODE_AGENT_SYSTEM_PROMPT = """\
You are an expert Next.js developer. You write readable, maintainable code.
You write simple Next.js & React snippets.

Reply with ONE JSON object and nothing else:
  {
    "title": "<short name for what you built>",
    "summary": "<one or two sentences for the user>",
    "files": { "<relative/path.tsx>": "<full file content>", ... }
  }
- Paths are relative, use forward slashes, and are unique.
- Every file holds its complete content.
"""

AgentFactory = Callable[..., Agent]


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


def prompt_text(value: Any) -> str:
    """Textual form of an event value.

    Strings pass through verbatim.  Anything else becomes its JSON text:
    ``None`` -> ``"null"``, ``True`` -> ``"true"``, ``42`` -> ``"42"``,
    ``{"a": 1}`` -> ``'{"a":1}'``.
    """
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def format_prompt(value: Any) -> str:
    return PROMPT_PREFIX + prompt_text(value)


def default_model_config() -> ModelConfig:
    """Backend for the code agent, read from settings at call time."""
    return ModelConfig(
        provider=settings.LLM_PROVIDER,
        model=get_agent_model(),
        api_key=get_provider_api_key(),
        max_tokens=settings.AGENT_MAX_TOKENS,
    )


# ---------------------------------------------------------------------------
# Output -> fragment
# ---------------------------------------------------------------------------


def fragment_from_output(output: Any) -> dict:
    """Pull ``files`` / ``url`` / ``title`` / message text out of an agent output.

    Outputs that are not a mapping (or carry no files) still produce a
    message; its fragment just has an empty file collection.
    """
    if isinstance(output, dict):
        raw_files = output.get("files")
        files = normalize_files(raw_files) if isinstance(raw_files, dict) else {}
        url = output.get("url") or output.get("sandbox_url")
        title = str(output.get("title") or "Fragment")
        summary = str(output.get("summary") or "")
        return {
            "files": files,
            "sandbox_url": url if isinstance(url, str) and url else None,
            "title": title,
            "content": summary or title,
        }
    return {
        "files": {},
        "sandbox_url": None,
        "title": "Fragment",
        "content": "" if output is None else str(output),
    }


# ---------------------------------------------------------------------------
# Job function
# ---------------------------------------------------------------------------


def _parse_payload(event: JobEvent) -> CodeAgentRunData:
    if "value" not in event.data:
        raise JobExecutionError(
            f"{CODE_AGENT_RUN} event {event.id} has no 'value'", retryable=False,
        )
    try:
        return CodeAgentRunData.model_validate(event.data)
    except PydanticValidationError as exc:
        raise JobExecutionError(
            f"Malformed {CODE_AGENT_RUN} payload: {exc}", retryable=False,
        ) from exc


async def _publish(notifier, project_id: UUID, event_type: str, payload: dict) -> None:  # noqa: ANN001
    """Best-effort subscriber notification; the result is already persisted."""
    if notifier is None:
        return
    try:
        await notifier.publish(str(project_id), event_type, payload)
    except Exception:
        logger.warning("Could not notify subscribers of project %s", project_id, exc_info=True)


async def run_code_agent(
    event: JobEvent,
    *,
    projects,  # noqa: ANN001
    agent_factory: AgentFactory = create_agent,
    model: ModelConfig | None = None,
    notifier=None,  # noqa: ANN001
) -> dict:
    """Run the code agent for one event and persist its fragment.

    Returns ``{"output": <agent output>}`` as the job result.  An event that
    already has a message (a redelivery after the result was written)
    skips the agent entirely and returns ``{"output": None, "message_id"}``.
    """
    payload = _parse_payload(event)

    if event.id is not None:
        try:
            existing = await projects.get_message_for_event(event.id)
        except Exception as exc:
            raise JobExecutionError(f"Looking up earlier result failed: {exc}") from exc
        if existing is not None:
            logger.info(
                "Event %s already has message %s; skipping agent run",
                event.id, existing["id"],
            )
            return {"output": None, "message_id": str(existing["id"])}

    try:
        agent = agent_factory(
            name=CODE_AGENT_NAME,
            system=CODE_AGENT_SYSTEM_PROMPT,
            model=model or default_model_config(),
        )
    except Exception as exc:
        raise JobExecutionError(f"Could not create {CODE_AGENT_NAME}: {exc}") from exc

    try:
        result = await agent.run(format_prompt(payload.value))
    except Exception as exc:
        raise JobExecutionError(f"{CODE_AGENT_NAME} run failed: {exc}") from exc

    output = result.output
    fragment = fragment_from_output(output)
    try:
        message = await projects.create_agent_result(
            payload.project_id,
            content=fragment["content"],
            files=fragment["files"],
            sandbox_url=fragment["sandbox_url"],
            title=fragment["title"],
            job_event_id=event.id,
        )
    except Exception as exc:
        raise JobExecutionError(f"Persisting agent result failed: {exc}") from exc

    if message is None:
        logger.info(
            "Event %s already has a result for project %s; skipping duplicate",
            event.id, payload.project_id,
        )
    else:
        logger.info(
            "Project %s: fragment with %d file(s) saved",
            payload.project_id, len(fragment["files"]),
        )
        await _publish(notifier, payload.project_id, "fragment_ready", {
            "message_id": str(message["id"]),
            "sandbox_url": fragment["sandbox_url"],
        })
    return {"output": output}


async def record_code_agent_failure(
    event: JobEvent,
    error: BaseException,
    *,
    projects,  # noqa: ANN001
    notifier=None,  # noqa: ANN001
) -> None:
    """Append an AGENT/ERROR message once an event has exhausted its retries."""
    raw_id = event.data.get("projectId")
    try:
        project_id = UUID(str(raw_id))
    except ValueError:
        logger.error("Failed %s event %s has no usable projectId", CODE_AGENT_RUN, event.id)
        return
    message = await projects.create_agent_error(
        project_id, content=FAILURE_MESSAGE, job_event_id=event.id,
    )
    if message is not None:
        await _publish(notifier, project_id, "job_failed", {
            "message_id": str(message["id"]),
            "error": str(error)[:500],
        })


def register_code_agent(
    client: JobClient,
    *,
    projects,  # noqa: ANN001
    agent_factory: AgentFactory = create_agent,
    model: ModelConfig | None = None,
    notifier=None,  # noqa: ANN001
) -> None:
    """Bind the code-agent job function to *client* with its collaborators."""

    async def _on_failure(event: JobEvent, error: BaseException) -> None:
        await record_code_agent_failure(event, error, projects=projects, notifier=notifier)

    @client.function(CODE_AGENT_NAME, event=CODE_AGENT_RUN, on_failure=_on_failure)
    async def code_agent(event: JobEvent) -> dict:
        return await run_code_agent(
            event,
            projects=projects,
            agent_factory=agent_factory,
            model=model,
            notifier=notifier,
        )
