"""Request dependencies -- hand routers the per-process collaborators.

The lifespan builds the repository and job client once and parks them on
``app.state``; routers ask for them here so tests can swap in fakes via
``app.dependency_overrides``.
"""

from fastapi import Request

from app.jobs.client import JobClient
from app.repos.project_repo import ProjectRepo


def get_projects(request: Request) -> ProjectRepo:
    """The process-wide :class:`ProjectRepo`."""
    return request.app.state.projects


def get_job_client(request: Request) -> JobClient:
    """The process-wide :class:`JobClient` (producer side)."""
    return request.app.state.jobs
