"""Pluffy -- FastAPI application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routers.health import router as health_router
from app.api.routers.projects import router as projects_router
from app.api.routers.ws import router as ws_router
from app.clients import llm_client
from app.config import VERSION, settings
from app.jobs.client import JobClient
from app.jobs.worker import create_worker
from app.logging_setup import configure_logging
from app.middleware import RequestIDMiddleware
from app.middleware.access_log import AccessLogMiddleware
from app.middleware.exception_handler import setup_exception_handlers
from app.notifier import ProjectEventListener, ProjectEventPublisher
from app.repos.db import close_pool, get_pool
from app.repos.job_repo import JobQueue
from app.repos.project_repo import ProjectRepo
from app.services.agent_runner import register_code_agent
from app.ws_manager import manager as ws_manager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Application lifespan: startup and shutdown hooks."""
    configure_logging()

    pool = await get_pool()
    logger.info("Database pool initialised.")
    projects = ProjectRepo(pool)
    jobs = JobClient(JobQueue(pool), max_attempts=settings.JOB_MAX_ATTEMPTS)
    application.state.pool = pool
    application.state.projects = projects
    application.state.jobs = jobs

    listener: ProjectEventListener | None = ProjectEventListener(
        settings.DATABASE_URL, ws_manager,
    )
    try:
        await listener.start()
    except Exception as exc:
        # Clients can still poll /projects/{id}/view
        logger.warning("Project event listener unavailable (%s); push updates disabled", exc)
        listener = None

    worker = None
    worker_task: asyncio.Task | None = None
    if settings.RUN_WORKER_IN_PROCESS:
        register_code_agent(jobs, projects=projects, notifier=ProjectEventPublisher(pool))
        worker = create_worker(jobs)
        worker_task = asyncio.create_task(worker.run())
        logger.info("Job worker running in-process")

    await ws_manager.start_heartbeat()
    yield
    # Shutdown order: stop consuming jobs before the HTTP client and pool
    # they depend on go away.
    await ws_manager.stop_heartbeat()
    if worker is not None:
        await worker.stop()
        worker_task.cancel()
        await asyncio.gather(worker_task, return_exceptions=True)
    if listener is not None:
        await listener.stop()
    await llm_client.close_client()
    await close_pool()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="Pluffy",
        version=VERSION,
        description="Natural-language requests in, runnable code fragments out",
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    setup_exception_handlers(application)

    # Added first = innermost: the access log sees the request ID.
    application.add_middleware(AccessLogMiddleware)
    application.add_middleware(RequestIDMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )

    application.include_router(health_router)
    application.include_router(projects_router)
    application.include_router(ws_router)
    return application


app = create_app()
