"""Agent client -- the "run a prompt, get structured output" capability.

An agent is anything with ``async run(prompt) -> AgentResult``.  The
production variant, :class:`LLMAgent`, sends one user turn to a chat model
and parses the reply into a file collection.  Tests swap in a stub.

No database access, no business logic, no HTTP framework imports.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol

from app.clients import llm_client

logger = logging.getLogger(__name__)

_CODEBLOCK_RE = re.compile(r"^```(?:json)?\s*\n(.*?)\n?```\s*$", re.DOTALL)


# ---------------------------------------------------------------------------
# Capability
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AgentResult:
    """What an agent run hands back.  ``output`` shape is agent-defined."""

    output: Any
    usage: dict | None = None


class Agent(Protocol):
    name: str

    async def run(self, prompt: str) -> AgentResult: ...


@dataclass(frozen=True)
class ModelConfig:
    """Which backend an agent talks to."""

    provider: str
    model: str
    api_key: str
    max_tokens: int = 8192


# ---------------------------------------------------------------------------
# LLM-backed agent
# ---------------------------------------------------------------------------


class LLMAgent:
    """Single-turn agent over :func:`llm_client.chat`."""

    def __init__(self, *, name: str, system: str, model: ModelConfig) -> None:
        self.name = name
        self.system = system
        self.model = model

    async def run(self, prompt: str) -> AgentResult:
        """Send *prompt* as one user turn and parse the reply.

        Raises ValueError if the reply holds no usable file collection.
        """
        response = await llm_client.chat(
            api_key=self.model.api_key,
            model=self.model.model,
            system_prompt=self.system,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=self.model.max_tokens,
            provider=self.model.provider,
        )
        usage = response.get("usage")
        logger.info(
            "Agent %s replied (%s in / %s out tokens)",
            self.name,
            (usage or {}).get("input_tokens", "?"),
            (usage or {}).get("output_tokens", "?"),
        )
        return AgentResult(output=parse_agent_output(response["text"]), usage=usage)


def create_agent(*, name: str, system: str, model: ModelConfig) -> LLMAgent:
    """Construct the production agent.  Fails fast on missing credentials."""
    if not model.api_key:
        raise ValueError(f"No API key configured for provider {model.provider!r}")
    if not model.model:
        raise ValueError("No model configured for the agent")
    return LLMAgent(name=name, system=system, model=model)


# ---------------------------------------------------------------------------
# Output parsing
# ---------------------------------------------------------------------------


def _strip_codeblock(text: str) -> str:
    """Remove an optional ```json ... ``` wrapper and any prose around the object.

    Models sometimes open with a sentence before the JSON.  After stripping
    fences, fall back to the outermost ``{...}`` found by brace counting.
    """
    text = text.strip()
    m = _CODEBLOCK_RE.match(text)
    if m:
        return m.group(1).strip()
    if text.startswith("{"):
        return text

    start = text.find("{")
    if start == -1:
        return text
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return text[start:]


def _coerce_files(raw: Any) -> dict[str, str]:
    """Accept ``{"path": "content"}`` or ``[{"path", "content"}]``."""
    if isinstance(raw, dict):
        return {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in raw.items()}
    if isinstance(raw, list):
        files: dict[str, str] = {}
        for item in raw:
            if isinstance(item, dict) and isinstance(item.get("path"), str):
                files[item["path"]] = str(item.get("content") or "")
        return files
    return {}


def parse_agent_output(raw: str) -> dict:
    """Parse a model reply into ``{"files", "url", "title", "summary"}``.

    ``url`` is None unless the reply names one.  Raises ValueError when the
    reply is not JSON or carries no files.
    """
    text = _strip_codeblock(raw)
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError) as exc:
        logger.warning("Agent reply is not JSON: %s", raw[:200])
        raise ValueError(f"Agent reply is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ValueError("Agent reply must be a JSON object")

    files = _coerce_files(parsed.get("files"))
    if not files:
        raise ValueError("Agent reply contains no files")

    url = parsed.get("url") or parsed.get("sandbox_url") or None
    return {
        "files": files,
        "url": url if isinstance(url, str) else None,
        "title": str(parsed.get("title") or "Fragment"),
        "summary": str(parsed.get("summary") or ""),
    }
