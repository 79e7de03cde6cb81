"""File explorer view state -- selection and copy over one file collection.

The explorer owns the "currently selected file" for a fragment.  The tree
is derived from the collection and memoized against the collection object
itself: handing the explorer the same mapping again is free, a new
mapping rebuilds the tree and re-validates the selection.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Protocol

from app.explorer.tree import (
    TreeItem,
    breadcrumbs,
    build_tree,
    compact_tree,
    language_from_extension,
    tree_to_dict,
)

logger = logging.getLogger(__name__)

# How long the "copied" indicator stays on after a copy.
COPY_RESET_SECONDS = 2.0


class Clipboard(Protocol):
    """Anything that can take text for the user's clipboard."""

    def write_text(self, text: str) -> None: ...


class CopyFlag:
    """A boolean that turns itself off ``COPY_RESET_SECONDS`` after being set.

    Only drives an icon swap / disabled button; nothing depends on it for
    correctness.
    """

    __slots__ = ("_clock", "_set_at", "_duration")

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        duration: float = COPY_RESET_SECONDS,
    ) -> None:
        self._clock = clock
        self._duration = duration
        self._set_at: float | None = None

    def set(self) -> None:
        self._set_at = self._clock()

    def __bool__(self) -> bool:
        if self._set_at is None:
            return False
        if self._clock() - self._set_at >= self._duration:
            self._set_at = None
            return False
        return True


def copy_best_effort(clipboard: Clipboard | None, text: str, *, what: str) -> None:
    """Write *text* to *clipboard*, logging instead of raising on failure."""
    if clipboard is None:
        logger.warning("No clipboard available, %s not copied", what)
        return
    try:
        clipboard.write_text(text)
    except Exception as exc:
        logger.warning("Clipboard write failed for %s: %s", what, exc)


class FileExplorer:
    """Selection state over a fragment's file collection."""

    def __init__(
        self,
        files: Mapping[str, str],
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._files: Mapping[str, str] = files
        self._tree: tuple[TreeItem, ...] | None = None
        self._tree_source: Mapping[str, str] | None = None
        self._copied = CopyFlag(clock)
        self.selected_path: str | None = next(iter(files), None)

    # -- collection ---------------------------------------------------------

    @property
    def files(self) -> Mapping[str, str]:
        return self._files

    def set_files(self, files: Mapping[str, str]) -> None:
        """Swap in a new collection and re-validate the selection.

        The current selection survives if the path still exists; otherwise
        it falls back to the first file (or None for an empty collection).
        """
        if files is self._files:
            return
        self._files = files
        if self.selected_path not in files:
            self.selected_path = next(iter(files), None)

    @property
    def tree(self) -> tuple[TreeItem, ...]:
        """The ordered tree, rebuilt only when the collection object changes."""
        if self._tree is None or self._tree_source is not self._files:
            self._tree = build_tree(self._files)
            self._tree_source = self._files
        return self._tree

    # -- selection ----------------------------------------------------------

    def select(self, path: str) -> None:
        """Select *path* if it is in the collection; otherwise do nothing.

        Stale callbacks from a tree built over an older collection land
        here with paths that no longer exist, so this is not an error.
        """
        if path in self._files:
            self.selected_path = path

    def get_selected_content(self) -> str | None:
        """Content of the selected file, or None when nothing is selected."""
        if self.selected_path is None:
            return None
        return self._files.get(self.selected_path)

    # -- copy ---------------------------------------------------------------

    @property
    def copied(self) -> bool:
        return bool(self._copied)

    def copy_selected(self, clipboard: Clipboard | None) -> bool:
        """Copy the selected file's content.  Fire-and-forget.

        Returns False when nothing is selected.  Clipboard failures are
        logged and otherwise ignored; the copied flag is still raised.
        """
        content = self.get_selected_content()
        if content is None:
            return False
        copy_best_effort(clipboard, content, what=self.selected_path or "file")
        self._copied.set()
        return True

    # -- view ---------------------------------------------------------------

    def to_view(self, *, compact: bool = False) -> dict:
        """JSON-ready snapshot of the explorer for rendering.

        With *compact*, single-child directory chains are shown as one
        ``a/b`` node.
        """
        path = self.selected_path
        tree = compact_tree(self.tree) if compact else self.tree
        return {
            "tree": tree_to_dict(tree),
            "selected_path": path,
            "breadcrumbs": [
                {"label": c.label, "current": c.current, "ellipsis": c.ellipsis}
                for c in breadcrumbs(path)
            ] if path else [],
            "language": language_from_extension(path) if path else None,
            "content": self.get_selected_content(),
            "copied": self.copied,
        }
