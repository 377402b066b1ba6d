"""
Tests for DirectoryWatcher.

Requires Python 3.11+.
"""

import asyncio
import os
import shutil
from pathlib import Path

import pytest

from utils.errors import ObserverStoppedError, WatchError, WatchSetupError
from watcher.debouncer import Debouncer
from watcher.file_watcher import DirectoryWatcher, default_watch_error_classifier, walk_tree


async def _stop(task: asyncio.Task) -> None:
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(task, timeout=10.0)


class TestWalkTree:
    """Test cases for walk_tree."""

    def test_collects_files_and_directories(self, source_tree: Path):
        paths = walk_tree(source_tree)

        assert source_tree in paths
        assert source_tree / "go.mod" in paths
        assert source_tree / "java" in paths
        assert source_tree / "java" / "gazelle" in paths
        assert source_tree / "java" / "gazelle" / "resolve.go" in paths

    def test_skips_symlinks(self, source_tree: Path, tmp_path: Path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "secret.txt").write_text("x")
        os.symlink(outside, source_tree / "linked_dir")
        os.symlink(source_tree / "go.mod", source_tree / "linked_file")

        paths = walk_tree(source_tree)

        assert source_tree / "linked_dir" not in paths
        assert source_tree / "linked_file" not in paths
        assert not any("secret.txt" in str(p) for p in paths)

    def test_missing_root_raises(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            walk_tree(tmp_path / "missing")


class TestDirectoryWatcher:
    """Test cases for DirectoryWatcher."""

    async def test_initial_watch_set(self, source_tree: Path):
        watcher = DirectoryWatcher(source_tree, Debouncer(delay_ms=50))
        task = asyncio.create_task(watcher.watch())
        await asyncio.wait_for(watcher.wait_started(), timeout=5.0)

        assert source_tree in watcher.watched_paths
        assert source_tree / "java" / "gazelle" in watcher.watched_paths
        assert source_tree / "java" / "gazelle" / "lang.go" in watcher.watched_paths
        assert source_tree / ".git" / "HEAD" in watcher.watched_paths

        await _stop(task)

    async def test_missing_root_is_fatal(self, tmp_path: Path):
        watcher = DirectoryWatcher(tmp_path / "missing", Debouncer(delay_ms=50))

        with pytest.raises(WatchSetupError):
            await watcher.watch()

    async def test_file_change_triggers_debouncer(self, source_tree: Path, wait_for):
        debouncer = Debouncer(delay_ms=50)
        watcher = DirectoryWatcher(source_tree, debouncer)
        task = asyncio.create_task(watcher.watch())
        await asyncio.wait_for(watcher.wait_started(), timeout=5.0)
        assert not debouncer.pending

        (source_tree / "java" / "gazelle" / "lang.go").write_text("package gazelle // edited\n")

        assert await wait_for(lambda: debouncer.pending)
        await _stop(task)

    async def test_large_tree(self, tmp_path: Path, wait_for):
        root = tmp_path / "big"
        for i in range(200):
            (root / f"pkg{i:03d}" / "internal").mkdir(parents=True)
        debouncer = Debouncer(delay_ms=50)
        watcher = DirectoryWatcher(root, debouncer)
        task = asyncio.create_task(watcher.watch())
        await asyncio.wait_for(watcher.wait_started(), timeout=10.0)

        assert len(watcher.watched_paths) == 401

        (root / "pkg199" / "internal" / "main.go").write_text("package internal\n")
        assert await wait_for(lambda: debouncer.pending)

        await _stop(task)

    async def test_new_directory_is_watched(self, source_tree: Path, wait_for):
        debouncer = Debouncer(delay_ms=50)
        watcher = DirectoryWatcher(source_tree, debouncer)
        task = asyncio.create_task(watcher.watch())
        await asyncio.wait_for(watcher.wait_started(), timeout=5.0)

        new_dir = source_tree / "kotlin"
        new_dir.mkdir()
        assert await wait_for(lambda: new_dir in watcher.watched_paths)

        new_file = new_dir / "lang.kt"
        new_file.write_text("package kotlin\n")
        assert await wait_for(lambda: new_file in watcher.watched_paths)
        assert debouncer.pending

        await _stop(task)

    async def test_cancel_with_events_queued(self, source_tree: Path):
        watcher = DirectoryWatcher(source_tree, Debouncer(delay_ms=50))
        task = asyncio.create_task(watcher.watch())
        await asyncio.wait_for(watcher.wait_started(), timeout=5.0)

        for i in range(50):
            (source_tree / f"file{i}.txt").write_text(str(i))
        await asyncio.sleep(0.05)

        await _stop(task)

    async def test_reconcile_adds_and_removes(self, source_tree: Path):
        watcher = DirectoryWatcher(source_tree, Debouncer(delay_ms=50))
        task = asyncio.create_task(watcher.watch())
        await asyncio.wait_for(watcher.wait_started(), timeout=5.0)

        shutil.rmtree(source_tree / "java")
        (source_tree / "README.md").write_text("# rules_jvm\n")

        _, removed = await asyncio.to_thread(watcher.reconcile)

        assert source_tree / "java" in removed
        assert source_tree / "java" / "gazelle" / "lang.go" in removed
        assert source_tree / "java" not in watcher.watched_paths
        assert source_tree / "README.md" in watcher.watched_paths
        assert source_tree in watcher.watched_paths

        await _stop(task)

    def test_reconcile_without_watch(self, source_tree: Path):
        watcher = DirectoryWatcher(source_tree, Debouncer(delay_ms=50))

        added, removed = watcher.reconcile()

        assert source_tree / "go.mod" in added
        assert removed == set()
        assert watcher.reconcile() == (set(), set())

    def test_reconcile_error_logged_by_default(self, tmp_path: Path):
        watcher = DirectoryWatcher(tmp_path / "missing", Debouncer(delay_ms=50))

        assert watcher.reconcile() == (set(), set())

    def test_reconcile_error_fatal_when_classified(self, tmp_path: Path):
        watcher = DirectoryWatcher(
            tmp_path / "missing",
            Debouncer(delay_ms=50),
            classify_error=lambda error: error,
        )

        with pytest.raises(WatchError):
            watcher.reconcile()


class TestDefaultClassifier:
    """Test cases for default_watch_error_classifier."""

    def test_observer_stopped_is_fatal(self):
        error = ObserverStoppedError("gone")
        assert default_watch_error_classifier(error) is error

    def test_other_errors_continue(self):
        assert default_watch_error_classifier(WatchError("transient")) is None
        assert default_watch_error_classifier(OSError("transient")) is None
