"""Shared test fixtures -- in-memory stand-ins for the database and the agent.

Provides:
- ``set_test_config`` -- autouse fixture that patches common settings
- ``FakeProjectRepo`` / ``FakeJobQueue`` -- behave like the asyncpg repos
- ``StubAgent`` / ``StubAgentFactory`` -- deterministic code agent
- ``FakeClipboard`` / ``FakeClock`` / ``FakeNotifier``
- ``api_client`` -- TestClient with the repos swapped for fakes
"""

import itertools
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_job_client, get_projects
from app.clients.agent_client import AgentResult, ModelConfig
from app.jobs.client import JobClient
from app.main import app
from app.repos.project_repo import MessageRole, MessageType


def pytest_configure(config):
    """Register custom markers.

    Tests that need a real PostgreSQL should be decorated with
    ``@pytest.mark.integration`` and skipped with ``-m 'not integration'``.
    """
    config.addinivalue_line(
        "markers",
        "integration: tests requiring external services (database, LLM provider)",
    )


# ---------------------------------------------------------------------------
# Canonical test identifiers
# ---------------------------------------------------------------------------

PROJECT_ID = UUID("44444444-4444-4444-4444-444444444444")
EVENT_ID = UUID("55555555-5555-5555-5555-555555555555")
EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)

TEST_MODEL = ModelConfig(provider="anthropic", model="test-model", api_key="test-key")

# ---------------------------------------------------------------------------
# Environment patching
# ---------------------------------------------------------------------------

_SETTINGS_PATCHES: dict[str, object] = {
    "app.config.settings.DATABASE_URL": "",
    "app.config.settings.FRONTEND_URL": "http://localhost:3000",
    "app.config.settings.LLM_PROVIDER": "anthropic",
    "app.config.settings.ANTHROPIC_API_KEY": "test-key",
    "app.config.settings.OPENAI_API_KEY": "",
    "app.config.settings.AGENT_MODEL": "test-model",
    "app.config.settings.JOB_MAX_ATTEMPTS": 3,
}


@pytest.fixture(autouse=True)
def set_test_config(monkeypatch):
    """Patch common application settings for a safe test environment."""
    for target, value in _SETTINGS_PATCHES.items():
        monkeypatch.setattr(target, value)


# ---------------------------------------------------------------------------
# Persistence fakes
# ---------------------------------------------------------------------------


class FakeProjectRepo:
    """In-memory ProjectRepo.

    Timestamps advance one second per write so ordering by ``created_at``
    is deterministic.  A ``job_event_id`` is accepted once, like the
    UNIQUE column it stands in for.
    """

    def __init__(self) -> None:
        self.projects: dict[UUID, dict] = {}
        self.messages: list[dict] = []
        self._ticks = itertools.count()
        self._event_ids: set[UUID] = set()

    def _now(self) -> datetime:
        return EPOCH + timedelta(seconds=next(self._ticks))

    def _append(
        self,
        project_id: UUID,
        content: str,
        role: MessageRole,
        type_: MessageType,
        *,
        job_event_id: UUID | None = None,
        fragment: dict | None = None,
    ) -> dict:
        if project_id not in self.projects:
            raise LookupError(f"project {project_id} does not exist")
        now = self._now()
        message = {
            "id": uuid4(),
            "project_id": project_id,
            "content": content,
            "role": role.value,
            "type": type_.value,
            "job_event_id": job_event_id,
            "created_at": now,
            "updated_at": now,
            "fragment": fragment,
        }
        self.messages.append(message)
        return message

    def _claim_event_id(self, job_event_id: UUID | None) -> bool:
        if job_event_id is None:
            return True
        if job_event_id in self._event_ids:
            return False
        self._event_ids.add(job_event_id)
        return True

    async def create_project_with_message(self, name: str, content: str) -> dict:
        now = self._now()
        project = {"id": uuid4(), "name": name, "created_at": now, "updated_at": now}
        self.projects[project["id"]] = project
        message = self._append(project["id"], content, MessageRole.USER, MessageType.RESULT)
        return {**project, "messages": [dict(message)]}

    async def get_project(self, project_id: UUID) -> dict | None:
        project = self.projects.get(project_id)
        return dict(project) if project else None

    async def list_projects(self) -> list[dict]:
        ordered = sorted(self.projects.values(), key=lambda p: p["updated_at"], reverse=True)
        return [dict(p) for p in ordered]

    async def list_messages(self, project_id: UUID) -> list[dict]:
        found = [m for m in self.messages if m["project_id"] == project_id]
        return [dict(m) for m in sorted(found, key=lambda m: m["created_at"])]

    async def get_message_for_event(self, job_event_id: UUID) -> dict | None:
        for message in self.messages:
            if message["job_event_id"] == job_event_id:
                return dict(message)
        return None

    async def create_agent_result(
        self,
        project_id: UUID,
        *,
        content: str,
        files: dict[str, str],
        sandbox_url: str | None,
        title: str,
        job_event_id: UUID | None = None,
    ) -> dict | None:
        if not self._claim_event_id(job_event_id):
            return None
        fragment = {"id": uuid4(), "sandbox_url": sandbox_url, "title": title, "files": dict(files)}
        message = self._append(
            project_id, content, MessageRole.AGENT, MessageType.RESULT,
            job_event_id=job_event_id, fragment=fragment,
        )
        self.projects[project_id]["updated_at"] = message["created_at"]
        return dict(message)

    async def create_agent_error(
        self,
        project_id: UUID,
        *,
        content: str,
        job_event_id: UUID | None = None,
    ) -> dict | None:
        if not self._claim_event_id(job_event_id):
            return None
        message = self._append(
            project_id, content, MessageRole.AGENT, MessageType.ERROR,
            job_event_id=job_event_id,
        )
        self.projects[project_id]["updated_at"] = message["created_at"]
        return dict(message)

    def agent_messages(self, project_id: UUID) -> list[dict]:
        return [
            m for m in self.messages
            if m["project_id"] == project_id and m["role"] == MessageRole.AGENT.value
        ]


class FakeJobQueue:
    """In-memory JobQueue.  Retries are claimable immediately."""

    def __init__(self) -> None:
        self.events: list[dict] = []

    def _find(self, event_id: UUID) -> dict:
        for row in self.events:
            if row["id"] == event_id:
                return row
        raise KeyError(event_id)

    async def send(self, name: str, data: dict, *, max_attempts: int) -> dict:
        row = {
            "id": uuid4(),
            "name": name,
            "data": data,
            "status": "pending",
            "attempts": 0,
            "max_attempts": max_attempts,
            "last_error": None,
            "result": None,
            "retry_delay": None,
        }
        self.events.append(row)
        return dict(row)

    async def claim(self, names: list[str]) -> dict | None:
        for row in self.events:
            if row["status"] == "pending" and row["name"] in names:
                row["status"] = "running"
                row["attempts"] += 1
                return dict(row)
        return None

    async def complete(self, event_id: UUID, result: object = None) -> None:
        row = self._find(event_id)
        row["status"] = "completed"
        row["result"] = result

    async def retry(self, event_id: UUID, error: str, delay_seconds: float) -> None:
        row = self._find(event_id)
        row["status"] = "pending"
        row["last_error"] = error
        row["retry_delay"] = delay_seconds

    async def fail(self, event_id: UUID, error: str) -> None:
        row = self._find(event_id)
        row["status"] = "failed"
        row["last_error"] = error

    async def release_stale(self, lease_seconds: int) -> int:
        return 0

    async def get(self, event_id: UUID) -> dict | None:
        try:
            return dict(self._find(event_id))
        except KeyError:
            return None


# ---------------------------------------------------------------------------
# Agent / UI fakes
# ---------------------------------------------------------------------------


class StubAgent:
    """Deterministic agent: returns *output* (or raises *error*) and records prompts."""

    def __init__(self, output: object = None, *, error: Exception | None = None) -> None:
        self.name = "code-agent"
        self.output = output
        self.error = error
        self.prompts: list[str] = []

    async def run(self, prompt: str) -> AgentResult:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return AgentResult(output=self.output)


class StubAgentFactory:
    """Agent factory that hands out one StubAgent and records how it was built."""

    def __init__(self, agent: StubAgent) -> None:
        self.agent = agent
        self.calls: list[dict] = []

    def __call__(self, *, name: str, system: str, model: ModelConfig) -> StubAgent:
        self.calls.append({"name": name, "system": system, "model": model})
        return self.agent


class FakeClipboard:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.writes: list[str] = []

    def write_text(self, text: str) -> None:
        if self.fail:
            raise OSError("clipboard unavailable")
        self.writes.append(text)


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeNotifier:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.published: list[tuple[str, str, dict]] = []

    async def publish(self, project_id: str, event_type: str, payload: dict) -> None:
        if self.fail:
            raise ConnectionError("notify channel down")
        self.published.append((project_id, event_type, payload))


SAMPLE_OUTPUT = {
    "files": {"index.ts": "export {};\n", "lib/util.ts": "export const x = 1;\n"},
    "url": "https://sandbox.example/abc",
    "title": "Todo app",
    "summary": "A small todo app.",
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def projects() -> FakeProjectRepo:
    return FakeProjectRepo()


@pytest.fixture
def queue() -> FakeJobQueue:
    return FakeJobQueue()


@pytest.fixture
def job_client(queue: FakeJobQueue) -> JobClient:
    return JobClient(queue, max_attempts=3)


@pytest.fixture
def api_client(projects: FakeProjectRepo, job_client: JobClient):
    """TestClient over the real app with the repos swapped for fakes.

    Not used as a context manager, so the lifespan (database pool, worker)
    never runs.
    """
    app.dependency_overrides[get_projects] = lambda: projects
    app.dependency_overrides[get_job_client] = lambda: job_client
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
