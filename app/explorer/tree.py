"""File tree -- turns a flat ``{path: content}`` mapping into an ordered tree.

Agents return files as a flat mapping with no directory entries; folders
are implied by ``/`` separators.  ``build_tree`` works in two phases:

1. accumulate every path into a nested dict keyed by segment;
2. freeze that dict into an ordered tuple of ``FileLeaf`` /
   ``DirectoryNode`` items.

Nothing here touches I/O.  The output is immutable, so a tree can be
handed to any number of renderers without defensive copies.
"""

from __future__ import annotations

import posixpath
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Union

ELLIPSIS = "..."
MAX_BREADCRUMB_SEGMENTS = 4

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileLeaf:
    """A file in the tree.  ``path`` is the full key into the file collection."""

    name: str
    path: str


@dataclass(frozen=True)
class DirectoryNode:
    """A directory and its ordered children."""

    name: str
    children: tuple[TreeItem, ...]


TreeItem = Union[FileLeaf, DirectoryNode]


@dataclass(frozen=True)
class Crumb:
    """One rendered breadcrumb segment."""

    label: str
    current: bool = False
    ellipsis: bool = False


# ---------------------------------------------------------------------------
# Path normalization
# ---------------------------------------------------------------------------


def normalize_path(path: str) -> str | None:
    """Return *path* as a clean relative ``a/b/c`` key, or None if unusable.

    Backslashes become ``/``; leading ``./`` and ``/`` are dropped; empty
    and ``.`` segments collapse.  Paths that escape the root (``..``) or
    end up empty are rejected.
    """
    if not isinstance(path, str) or not path.strip():
        return None
    cleaned = posixpath.normpath(path.strip().replace("\\", "/")).lstrip("/")
    if cleaned in ("", ".") or cleaned == ".." or cleaned.startswith("../"):
        return None
    return cleaned


def normalize_files(files: Mapping[str, str]) -> dict[str, str]:
    """Normalize every key of *files*, dropping unusable paths.

    Keys that collide after normalization keep the last value.
    """
    out: dict[str, str] = {}
    for raw_path, content in files.items():
        path = normalize_path(raw_path)
        if path is None:
            continue
        out[path] = content if isinstance(content, str) else str(content)
    return out


# ---------------------------------------------------------------------------
# Tree construction
# ---------------------------------------------------------------------------


def _accumulate(paths: list[str]) -> dict:
    """Phase one: nest every path into a dict keyed by segment.

    Directory segments map to sub-dicts; the file segment maps to the full
    path string.  The same full path twice simply overwrites itself.
    """
    root: dict = {}
    for path in paths:
        *dirs, filename = path.split("/")
        node = root
        for segment in dirs:
            child = node.get(segment)
            if not isinstance(child, dict):
                # A file and a directory with the same name: directory wins.
                child = {}
                node[segment] = child
            node = child
        if isinstance(node.get(filename), dict):
            continue
        node[filename] = path
    return root


def _freeze(node: dict) -> tuple[TreeItem, ...]:
    """Phase two: convert the nested dict into ordered, immutable items."""
    items: list[TreeItem] = []
    for name in sorted(node):
        value = node[name]
        if isinstance(value, dict):
            items.append(DirectoryNode(name=name, children=_freeze(value)))
        else:
            items.append(FileLeaf(name=name, path=value))
    return tuple(items)


def build_tree(files: Mapping[str, str]) -> tuple[TreeItem, ...]:
    """Build an ordered tree from a flat file collection.

    Entries at every level are sorted by segment name; directories and
    files are interleaved (no directories-first rule).  Input key order
    does not affect the output.
    """
    return _freeze(_accumulate(list(files)))


def iter_file_paths(tree: tuple[TreeItem, ...]) -> Iterator[str]:
    """Yield the full path of every file leaf, depth first."""
    for item in tree:
        if isinstance(item, DirectoryNode):
            yield from iter_file_paths(item.children)
        else:
            yield item.path


def compact_tree(tree: tuple[TreeItem, ...]) -> tuple[TreeItem, ...]:
    """Collapse single-child directory chains into one ``a/b`` node.

    A directory whose only child is another directory is merged with it.
    The input is left untouched; a new tree is returned.
    """
    out: list[TreeItem] = []
    for item in tree:
        if isinstance(item, FileLeaf):
            out.append(item)
            continue
        name, children = item.name, item.children
        while len(children) == 1 and isinstance(children[0], DirectoryNode):
            name = f"{name}/{children[0].name}"
            children = children[0].children
        out.append(DirectoryNode(name=name, children=compact_tree(children)))
    return tuple(out)


def tree_to_dict(tree: tuple[TreeItem, ...]) -> list[dict]:
    """Serialize a tree to JSON-ready dicts."""
    out: list[dict] = []
    for item in tree:
        if isinstance(item, DirectoryNode):
            out.append({
                "type": "directory",
                "name": item.name,
                "children": tree_to_dict(item.children),
            })
        else:
            out.append({"type": "file", "name": item.name, "path": item.path})
    return out


# ---------------------------------------------------------------------------
# Breadcrumbs
# ---------------------------------------------------------------------------


def breadcrumbs(path: str, max_segments: int = MAX_BREADCRUMB_SEGMENTS) -> list[Crumb]:
    """Render *path* as breadcrumb segments.

    Up to *max_segments* segments are shown in full with the last marked
    current.  Longer paths show the first segment, an ellipsis, and the
    last segment; the elided middle is not expandable.
    """
    segments = path.split("/")
    if len(segments) <= max_segments:
        last = len(segments) - 1
        return [Crumb(label=s, current=i == last) for i, s in enumerate(segments)]
    return [
        Crumb(label=segments[0]),
        Crumb(label=ELLIPSIS, ellipsis=True),
        Crumb(label=segments[-1], current=True),
    ]


def language_from_extension(filename: str) -> str:
    """Highlighting hint for *filename*: its lowercase extension.

    A name without a dot is its own hint (``Makefile`` -> ``"makefile"``);
    a trailing dot leaves nothing, which falls back to ``"text"``.
    """
    base = filename.rsplit("/", 1)[-1]
    return base.rsplit(".", 1)[-1].lower() or "text"
