"""Project repository -- database reads and writes for projects, messages and fragments."""

from enum import Enum
from uuid import UUID

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class MessageRole(str, Enum):
    USER = "USER"
    AGENT = "AGENT"


class MessageType(str, Enum):
    RESULT = "RESULT"
    ERROR = "ERROR"
    PROGRESS = "PROGRESS"


_PROJECT_COLUMNS = "id, name, created_at, updated_at"

_MESSAGE_SELECT = """
    SELECT m.id, m.project_id, m.content, m.role, m.type, m.job_event_id,
           m.created_at, m.updated_at,
           f.id AS fragment_id, f.sandbox_url, f.title, f.files
    FROM messages m
    LEFT JOIN fragments f ON f.message_id = m.id
"""


class ProjectRepo:
    """Persistence for projects and their message log.

    Takes the connection pool explicitly; one instance per process.
    """

    def __init__(self, pool) -> None:  # noqa: ANN001
        self._pool = pool

    # -- projects -----------------------------------------------------------

    async def create_project_with_message(self, name: str, content: str) -> dict:
        """Insert a project and its initiating USER message in one transaction.

        Returns the project row as a dict with a ``messages`` list holding
        the single USER message.
        """
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                project = await conn.fetchrow(
                    f"""
                    INSERT INTO projects (name)
                    VALUES ($1)
                    RETURNING {_PROJECT_COLUMNS}
                    """,
                    name,
                )
                message = await conn.fetchrow(
                    """
                    INSERT INTO messages (project_id, content, role, type)
                    VALUES ($1, $2, $3, $4)
                    RETURNING id, project_id, content, role, type, job_event_id,
                              created_at, updated_at
                    """,
                    project["id"],
                    content,
                    MessageRole.USER.value,
                    MessageType.RESULT.value,
                )
        result = dict(project)
        result["messages"] = [_message_to_dict(message)]
        return result

    async def get_project(self, project_id: UUID) -> dict | None:
        """Fetch a project by primary key. Returns None if not found."""
        row = await self._pool.fetchrow(
            f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE id = $1",
            project_id,
        )
        return dict(row) if row else None

    async def list_projects(self) -> list[dict]:
        """Fetch all projects, most recently updated first."""
        rows = await self._pool.fetch(
            f"SELECT {_PROJECT_COLUMNS} FROM projects ORDER BY updated_at DESC"
        )
        return [dict(r) for r in rows]

    # -- messages -----------------------------------------------------------

    async def list_messages(self, project_id: UUID) -> list[dict]:
        """Fetch a project's messages oldest first, each with its fragment (if any)."""
        rows = await self._pool.fetch(
            _MESSAGE_SELECT + " WHERE m.project_id = $1 ORDER BY m.created_at ASC, m.id ASC",
            project_id,
        )
        return [_message_to_dict(r) for r in rows]

    async def get_message_for_event(self, job_event_id: UUID) -> dict | None:
        """Fetch the message already written for a job event, if any."""
        row = await self._pool.fetchrow(
            _MESSAGE_SELECT + " WHERE m.job_event_id = $1",
            job_event_id,
        )
        return _message_to_dict(row) if row else None

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
        """Append an AGENT/RESULT message carrying a fragment.

        At most one message is stored per ``job_event_id``; a redelivered
        event finds the earlier row and gets None back instead of a second
        result.
        """
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                message = await conn.fetchrow(
                    """
                    INSERT INTO messages (project_id, content, role, type, job_event_id)
                    VALUES ($1, $2, $3, $4, $5)
                    ON CONFLICT (job_event_id) DO NOTHING
                    RETURNING id, project_id, content, role, type, job_event_id,
                              created_at, updated_at
                    """,
                    project_id,
                    content,
                    MessageRole.AGENT.value,
                    MessageType.RESULT.value,
                    job_event_id,
                )
                if message is None:
                    return None
                fragment = await conn.fetchrow(
                    """
                    INSERT INTO fragments (message_id, sandbox_url, title, files)
                    VALUES ($1, $2, $3, $4::jsonb)
                    RETURNING id, sandbox_url, title, files
                    """,
                    message["id"],
                    sandbox_url,
                    title,
                    files,
                )
                await conn.execute(
                    "UPDATE projects SET updated_at = now() WHERE id = $1",
                    project_id,
                )
        result = _message_to_dict(message)
        result["fragment"] = {
            "id": fragment["id"],
            "sandbox_url": fragment["sandbox_url"],
            "title": fragment["title"],
            "files": fragment["files"] or {},
        }
        return result

    async def create_agent_error(
        self,
        project_id: UUID,
        *,
        content: str,
        job_event_id: UUID | None = None,
    ) -> dict | None:
        """Append an AGENT/ERROR message (terminal job failure)."""
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    """
                    INSERT INTO messages (project_id, content, role, type, job_event_id)
                    VALUES ($1, $2, $3, $4, $5)
                    ON CONFLICT (job_event_id) DO NOTHING
                    RETURNING id, project_id, content, role, type, job_event_id,
                              created_at, updated_at
                    """,
                    project_id,
                    content,
                    MessageRole.AGENT.value,
                    MessageType.ERROR.value,
                    job_event_id,
                )
                if row is None:
                    return None
                await conn.execute(
                    "UPDATE projects SET updated_at = now() WHERE id = $1",
                    project_id,
                )
        return _message_to_dict(row)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _message_to_dict(row) -> dict:  # noqa: ANN001
    """Convert a message row (optionally joined with its fragment) to a dict."""
    d = {
        "id": row["id"],
        "project_id": row["project_id"],
        "content": row["content"],
        "role": row["role"],
        "type": row["type"],
        "job_event_id": row["job_event_id"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "fragment": None,
    }
    keys = row.keys()
    if "fragment_id" in keys and row["fragment_id"] is not None:
        d["fragment"] = {
            "id": row["fragment_id"],
            "sandbox_url": row["sandbox_url"],
            "title": row["title"],
            "files": row["files"] or {},
        }
    return d
