"""Result presenter -- turns a project's message log into a renderable view.

Three states:

* ``loading``: no AGENT message yet.  A status line rotates every
  ``LOADING_ROTATE_SECONDS`` so the client has something to show.
* ``error``: the latest AGENT message is an ERROR (the job gave up).
* ``ready``: the latest AGENT message carries a fragment; the view holds
  the preview (sandbox URL) and the file explorer.

When duplicate AGENT messages exist the latest by ``created_at`` wins.
"""

import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone

from app.explorer.file_explorer import Clipboard, CopyFlag, FileExplorer, copy_best_effort
from app.repos.project_repo import MessageRole, MessageType

logger = logging.getLogger(__name__)

LOADING_ROTATE_SECONDS = 3

LOADING_MESSAGES = (
    "Thinking...",
    "Loading...",
    "Generating...",
    "Analyzing the request...",
    "Building your website...",
    "Crafting components...",
    "Optimizing layout...",
    "Adding final touches...",
    "Almost ready...",
)


def loading_status(elapsed_seconds: float) -> str:
    """Status line to show *elapsed_seconds* after the request was made."""
    step = max(int(elapsed_seconds // LOADING_ROTATE_SECONDS), 0)
    return LOADING_MESSAGES[step % len(LOADING_MESSAGES)]


def latest_agent_message(messages: list[dict]) -> dict | None:
    """Newest AGENT message by creation time, or None."""
    agent = [m for m in messages if m["role"] == MessageRole.AGENT.value]
    if not agent:
        return None
    return max(agent, key=lambda m: m["created_at"])


class FragmentWeb:
    """Preview pane state for one fragment.

    ``refresh`` changes the iframe key so the client remounts the frame;
    the fragment itself is not fetched again.
    """

    def __init__(
        self,
        sandbox_url: str | None,
        *,
        title: str = "Fragment",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sandbox_url = sandbox_url or None
        self.title = title
        self.iframe_key = 0
        self._copied = CopyFlag(clock)

    @property
    def can_copy(self) -> bool:
        return self.sandbox_url is not None

    @property
    def can_open(self) -> bool:
        return self.sandbox_url is not None

    @property
    def copied(self) -> bool:
        return bool(self._copied)

    def refresh(self) -> int:
        self.iframe_key += 1
        return self.iframe_key

    def copy_url(self, clipboard: Clipboard | None) -> bool:
        """Copy the sandbox URL.  Returns False (no-op) when there is none."""
        if self.sandbox_url is None:
            return False
        copy_best_effort(clipboard, self.sandbox_url, what="sandbox URL")
        self._copied.set()
        return True

    def to_view(self) -> dict:
        return {
            "sandbox_url": self.sandbox_url,
            "title": self.title,
            "iframe_key": self.iframe_key,
            "can_copy": self.can_copy,
            "can_open": self.can_open,
            "copied": self.copied,
        }


def _elapsed(project: dict, now: datetime | None) -> float:
    started = project.get("created_at")
    if started is None:
        return 0.0
    now = now or datetime.now(timezone.utc)
    return max((now - started).total_seconds(), 0.0)


def present(
    project: dict,
    messages: list[dict],
    *,
    selected: str | None = None,
    compact: bool = False,
    now: datetime | None = None,
) -> dict:
    """Build the view for *project* from its *messages*.

    *selected* picks a file in the explorer; unknown paths are ignored
    and the default (first file) stays selected.  *compact* collapses
    single-child directory chains in the explorer tree.
    """
    base = {"project_id": str(project["id"]), "name": project["name"]}
    message = latest_agent_message(messages)

    if message is None:
        return {
            **base,
            "state": "loading",
            "status": loading_status(_elapsed(project, now)),
        }

    if message["type"] == MessageType.ERROR.value or message.get("fragment") is None:
        return {
            **base,
            "state": "error",
            "message_id": str(message["id"]),
            "error": message["content"],
        }

    fragment = message["fragment"]
    web = FragmentWeb(fragment.get("sandbox_url"), title=fragment.get("title") or "Fragment")
    explorer = FileExplorer(fragment.get("files") or {})
    if selected is not None:
        explorer.select(selected)

    return {
        **base,
        "state": "ready",
        "message_id": str(message["id"]),
        "content": message["content"],
        "preview": web.to_view(),
        "explorer": explorer.to_view(compact=compact),
    }
