"""Standalone job worker: ``python -m app.jobs``.

Consumes ``code-agent/run`` events until interrupted.  Runs alongside any
number of API processes; they share nothing but the database.
"""

import argparse
import asyncio
import logging
import signal

from app.clients import llm_client
from app.config import settings
from app.jobs.client import JobClient
from app.jobs.worker import create_worker
from app.logging_setup import configure_logging
from app.notifier import ProjectEventPublisher
from app.repos.db import close_pool, get_pool
from app.repos.job_repo import JobQueue
from app.repos.project_repo import ProjectRepo
from app.services.agent_runner import register_code_agent

logger = logging.getLogger("app.jobs")


async def _run(*, once: bool) -> None:
    pool = await get_pool()
    projects = ProjectRepo(pool)
    client = JobClient(JobQueue(pool), max_attempts=settings.JOB_MAX_ATTEMPTS)
    register_code_agent(client, projects=projects, notifier=ProjectEventPublisher(pool))
    worker = create_worker(client)

    try:
        if once:
            handled = await worker.run_once()
            logger.info("Handled one event" if handled else "Queue is empty")
            return

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, lambda: asyncio.ensure_future(worker.stop()))
            except NotImplementedError:
                # Windows event loops: Ctrl+C surfaces as KeyboardInterrupt
                pass
        await worker.run()
    finally:
        await llm_client.close_client()
        await close_pool()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="python -m app.jobs", description="Pluffy job worker")
    parser.add_argument(
        "--once", action="store_true", help="claim and run a single event, then exit",
    )
    args = parser.parse_args(argv)

    configure_logging()
    try:
        asyncio.run(_run(once=args.once))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
