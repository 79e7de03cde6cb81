"""End-to-end: submit a request, run the worker, render the result."""

import pytest

from app.jobs.events import CODE_AGENT_RUN
from app.jobs.worker import create_worker
from app.services import project_service
from app.services.agent_runner import register_code_agent
from app.services.result_presenter import present
from tests.conftest import (
    SAMPLE_OUTPUT,
    TEST_MODEL,
    FakeNotifier,
    StubAgent,
    StubAgentFactory,
)


@pytest.mark.asyncio
async def test_submit_run_and_present(projects, queue, job_client):
    project = await project_service.submit("todo app", projects=projects, jobs=job_client)
    pid = project["id"]

    messages = await projects.list_messages(pid)
    assert [(m["role"], m["content"]) for m in messages] == [("USER", "todo app")]
    assert queue.events[0]["name"] == CODE_AGENT_RUN
    assert queue.events[0]["data"] == {"value": "todo app", "projectId": str(pid)}
    assert present(project, messages)["state"] == "loading"

    agent = StubAgent(SAMPLE_OUTPUT)
    notifier = FakeNotifier()
    register_code_agent(
        job_client,
        projects=projects,
        agent_factory=StubAgentFactory(agent),
        model=TEST_MODEL,
        notifier=notifier,
    )
    assert await create_worker(job_client).run_once() is True

    assert agent.prompts == ["Write the following snippets for : todo app"]
    assert queue.events[0]["status"] == "completed"

    agent_messages = projects.agent_messages(pid)
    assert len(agent_messages) == 1
    assert agent_messages[0]["fragment"]["files"] == SAMPLE_OUTPUT["files"]
    assert notifier.published[0][1] == "fragment_ready"

    view = present(project, await projects.list_messages(pid))
    assert view["state"] == "ready"
    assert view["preview"]["sandbox_url"] == SAMPLE_OUTPUT["url"]
    assert [item["name"] for item in view["explorer"]["tree"]] == ["index.ts", "lib"]
    assert view["explorer"]["selected_path"] == "index.ts"


@pytest.mark.asyncio
async def test_agent_failure_ends_in_error_view(projects, queue, job_client, monkeypatch):
    monkeypatch.setattr("app.config.settings.JOB_RETRY_BASE_SECONDS", 0.0)
    project = await project_service.submit("todo app", projects=projects, jobs=job_client)

    register_code_agent(
        job_client,
        projects=projects,
        agent_factory=StubAgentFactory(StubAgent(error=RuntimeError("model down"))),
        model=TEST_MODEL,
    )
    worker = create_worker(job_client)
    while await worker.run_once():
        pass

    assert queue.events[0]["status"] == "failed"
    assert queue.events[0]["attempts"] == 3
    view = present(project, await projects.list_messages(project["id"]))
    assert view["state"] == "error"
