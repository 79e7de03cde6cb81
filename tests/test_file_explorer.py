"""Tests for the file explorer view state."""

import logging

from app.explorer.file_explorer import COPY_RESET_SECONDS, FileExplorer
from tests.conftest import FakeClipboard, FakeClock

FILES = {"index.ts": "export {};", "lib/util.ts": "export const x = 1;"}


def test_initial_selection_is_first_key():
    explorer = FileExplorer({"b.ts": "b", "a.ts": "a"})
    assert explorer.selected_path == "b.ts"


def test_empty_collection_selects_nothing():
    explorer = FileExplorer({})
    assert explorer.selected_path is None
    assert explorer.get_selected_content() is None
    assert explorer.tree == ()


def test_select_existing_path():
    explorer = FileExplorer(FILES)
    explorer.select("lib/util.ts")
    assert explorer.selected_path == "lib/util.ts"
    assert explorer.get_selected_content() == "export const x = 1;"


def test_select_absent_path_is_noop():
    explorer = FileExplorer(FILES)
    explorer.select("lib/util.ts")
    explorer.select("lib/missing.ts")
    assert explorer.selected_path == "lib/util.ts"


def test_select_directory_path_is_noop():
    explorer = FileExplorer(FILES)
    explorer.select("lib")
    assert explorer.selected_path == "index.ts"


# ---------------------------------------------------------------------------
# Collection changes
# ---------------------------------------------------------------------------


def test_set_files_keeps_surviving_selection():
    explorer = FileExplorer(FILES)
    explorer.select("lib/util.ts")
    explorer.set_files({"lib/util.ts": "v2", "other.ts": ""})
    assert explorer.selected_path == "lib/util.ts"
    assert explorer.get_selected_content() == "v2"


def test_set_files_resets_stale_selection():
    explorer = FileExplorer(FILES)
    explorer.select("lib/util.ts")
    explorer.set_files({"app.ts": "", "b.ts": ""})
    assert explorer.selected_path == "app.ts"


def test_set_files_empty_clears_selection():
    explorer = FileExplorer(FILES)
    explorer.set_files({})
    assert explorer.selected_path is None


def test_tree_memoized_per_collection():
    explorer = FileExplorer(FILES)
    first = explorer.tree
    assert explorer.tree is first

    explorer.set_files({"z.ts": ""})
    rebuilt = explorer.tree
    assert rebuilt is not first
    assert [item.name for item in rebuilt] == ["z.ts"]


# ---------------------------------------------------------------------------
# Copy
# ---------------------------------------------------------------------------


def test_copy_selected_writes_content_and_sets_flag():
    clock = FakeClock()
    clipboard = FakeClipboard()
    explorer = FileExplorer(FILES, clock=clock)

    assert explorer.copy_selected(clipboard) is True
    assert clipboard.writes == ["export {};"]
    assert explorer.copied is True


def test_copied_flag_resets_after_two_seconds():
    clock = FakeClock()
    explorer = FileExplorer(FILES, clock=clock)
    explorer.copy_selected(FakeClipboard())

    clock.advance(COPY_RESET_SECONDS - 0.5)
    assert explorer.copied is True
    clock.advance(0.5)
    assert explorer.copied is False


def test_clipboard_failure_is_logged_not_raised(caplog):
    explorer = FileExplorer(FILES, clock=FakeClock())
    with caplog.at_level(logging.WARNING, logger="app.explorer.file_explorer"):
        assert explorer.copy_selected(FakeClipboard(fail=True)) is True
    assert explorer.copied is True
    assert any("Clipboard write failed" in r.message for r in caplog.records)


def test_copy_without_clipboard_is_logged(caplog):
    explorer = FileExplorer(FILES, clock=FakeClock())
    with caplog.at_level(logging.WARNING, logger="app.explorer.file_explorer"):
        explorer.copy_selected(None)
    assert any("No clipboard" in r.message for r in caplog.records)


def test_copy_with_nothing_selected():
    clipboard = FakeClipboard()
    explorer = FileExplorer({})
    assert explorer.copy_selected(clipboard) is False
    assert clipboard.writes == []
    assert explorer.copied is False


# ---------------------------------------------------------------------------
# View
# ---------------------------------------------------------------------------


def test_to_view():
    explorer = FileExplorer(FILES)
    explorer.select("lib/util.ts")
    view = explorer.to_view()
    assert view["selected_path"] == "lib/util.ts"
    assert view["content"] == "export const x = 1;"
    assert view["language"] == "ts"
    assert [c["label"] for c in view["breadcrumbs"]] == ["lib", "util.ts"]
    assert [item["name"] for item in view["tree"]] == ["index.ts", "lib"]
    assert view["copied"] is False


def test_to_view_empty():
    view = FileExplorer({}).to_view()
    assert view["selected_path"] is None
    assert view["breadcrumbs"] == []
    assert view["language"] is None
    assert view["tree"] == []


def test_to_view_compact_collapses_single_child_folders():
    explorer = FileExplorer({"src/app/page.tsx": "", "src/app/layout.tsx": "", "README.md": ""})
    plain = explorer.to_view()
    compact = explorer.to_view(compact=True)
    assert [item["name"] for item in plain["tree"]] == ["README.md", "src"]
    assert [item["name"] for item in compact["tree"]] == ["README.md", "src/app"]
    assert [c["name"] for c in compact["tree"][1]["children"]] == ["layout.tsx", "page.tsx"]
    # selection is unaffected by how the tree is drawn
    assert compact["selected_path"] == plain["selected_path"] == "src/app/page.tsx"
