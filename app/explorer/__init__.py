"""File tree and file explorer view state for generated fragments."""

from app.explorer.file_explorer import FileExplorer
from app.explorer.tree import (
    DirectoryNode,
    FileLeaf,
    breadcrumbs,
    build_tree,
    iter_file_paths,
)

__all__ = [
    "DirectoryNode",
    "FileExplorer",
    "FileLeaf",
    "breadcrumbs",
    "build_tree",
    "iter_file_paths",
]
