"""Baseline -- projects, messages, fragments and the job event queue.

Revision ID: 0001_baseline
Revises: None
Create Date: 2026-10-19

Idempotent (IF NOT EXISTS everywhere) so it is safe to re-run against a
database that already has the tables.
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_baseline"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # -- projects / messages / fragments --------------------------------------
    op.execute("""
        CREATE TABLE IF NOT EXISTS projects (
            id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name            VARCHAR(255) NOT NULL,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at      TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_projects_updated_at ON projects(updated_at DESC)"
    )

    op.execute("""
        CREATE TABLE IF NOT EXISTS job_events (
            id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name            VARCHAR(255) NOT NULL,
            data            JSONB NOT NULL DEFAULT '{}'::jsonb,
            status          VARCHAR(20) NOT NULL DEFAULT 'pending'
                            CHECK (status IN ('pending', 'running', 'completed', 'failed')),
            attempts        INTEGER NOT NULL DEFAULT 0,
            max_attempts    INTEGER NOT NULL DEFAULT 4,
            available_at    TIMESTAMPTZ NOT NULL DEFAULT now(),
            locked_at       TIMESTAMPTZ,
            last_error      TEXT,
            result          JSONB,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT now(),
            completed_at    TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_job_events_due
            ON job_events(name, available_at)
            WHERE status = 'pending'
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_job_events_running
            ON job_events(locked_at)
            WHERE status = 'running'
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS messages (
            id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            project_id      UUID NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            content         TEXT NOT NULL,
            role            VARCHAR(10) NOT NULL CHECK (role IN ('USER', 'AGENT')),
            type            VARCHAR(20) NOT NULL DEFAULT 'RESULT',
            job_event_id    UUID UNIQUE REFERENCES job_events(id) ON DELETE SET NULL,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp(),
            updated_at      TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp()
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_messages_project_created "
        "ON messages(project_id, created_at)"
    )

    op.execute("""
        CREATE TABLE IF NOT EXISTS fragments (
            id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            message_id      UUID NOT NULL UNIQUE REFERENCES messages(id) ON DELETE CASCADE,
            sandbox_url     TEXT,
            title           VARCHAR(255) NOT NULL DEFAULT 'Fragment',
            files           JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS fragments")
    op.execute("DROP TABLE IF EXISTS messages")
    op.execute("DROP TABLE IF EXISTS job_events")
    op.execute("DROP TABLE IF EXISTS projects")
