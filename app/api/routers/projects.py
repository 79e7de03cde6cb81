"""Projects router -- submit generation requests and read their results."""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from app.api.deps import get_job_client, get_projects
from app.jobs.client import JobClient
from app.repos.project_repo import ProjectRepo
from app.services import project_service
from app.services.result_presenter import present

router = APIRouter(prefix="/projects", tags=["projects"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SubmitRequest(BaseModel):
    """Request body for a new generation request.

    ``value`` is checked by the service (1..10000 characters) so the
    error names the broken constraint.
    """

    value: Any = Field(..., description="What the code agent should build")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_project(
    body: SubmitRequest,
    projects: ProjectRepo = Depends(get_projects),
    jobs: JobClient = Depends(get_job_client),
) -> dict:
    """Persist a project with the USER message and enqueue the agent run."""
    return await project_service.submit(body.value, projects=projects, jobs=jobs)


@router.get("")
async def list_projects(projects: ProjectRepo = Depends(get_projects)) -> dict:
    """All projects, most recently updated first."""
    items = await project_service.list_projects(projects=projects)
    return {"items": items}


@router.get("/{project_id}")
async def get_project(
    project_id: UUID,
    projects: ProjectRepo = Depends(get_projects),
) -> dict:
    return await project_service.get_project(project_id, projects=projects)


@router.get("/{project_id}/messages")
async def list_messages(
    project_id: UUID,
    projects: ProjectRepo = Depends(get_projects),
) -> dict:
    """The project's message log, oldest first, fragments inlined."""
    items = await project_service.list_messages(project_id, projects=projects)
    return {"items": items}


@router.get("/{project_id}/view")
async def view_project(
    project_id: UUID,
    file: str | None = Query(None, max_length=1000, description="Path to select"),
    compact: bool = Query(False, description="Collapse single-child folders"),
    projects: ProjectRepo = Depends(get_projects),
) -> dict:
    """Rendered result: loading status, error, or preview plus explorer.

    Clients poll this (or wait for a WebSocket event) until ``state`` is
    no longer ``loading``.
    """
    project = await project_service.get_project(project_id, projects=projects)
    messages = await projects.list_messages(project_id)
    return present(project, messages, selected=file, compact=compact)
