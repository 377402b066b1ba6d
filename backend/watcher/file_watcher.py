"""
LocalRepo Directory Watcher.

Cross-platform directory monitoring using watchdog.
Requires Python 3.11+.
"""

import asyncio
import os
import threading
from collections.abc import Callable
from pathlib import Path

from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver
from watchdog.events import (
    DirCreatedEvent,
    DirMovedEvent,
    FileCreatedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)

from utils.config import get_settings
from utils.errors import ObserverStoppedError, WatchError, WatchSetupError
from utils.logger import LoggerMixin
from watcher.debouncer import Debouncer


ErrorClassifier = Callable[[Exception], Exception | None]

# Access-only notifications. Reading files while building an archive
# produces these, so relaying them would rebuild forever.
_READ_ONLY_EVENTS = frozenset({"opened", "closed_no_write"})


def default_watch_error_classifier(error: Exception) -> Exception | None:
    """Fatal when the observer itself died, log-and-continue otherwise."""
    if isinstance(error, ObserverStoppedError):
        return error
    return None


def walk_tree(root: Path) -> set[Path]:
    """
    Collect root plus every regular file and directory beneath it.

    Symbolic links are skipped and never followed.

    Raises:
        OSError: If any directory cannot be listed
    """
    found: set[Path] = {root}
    stack = [root]
    while stack:
        directory = stack.pop()
        with os.scandir(directory) as entries:
            for entry in entries:
                if entry.is_symlink():
                    continue
                path = Path(entry.path)
                if entry.is_dir(follow_symlinks=False):
                    found.add(path)
                    stack.append(path)
                elif entry.is_file(follow_symlinks=False):
                    found.add(path)
    return found


class RelayHandler(FileSystemEventHandler, LoggerMixin):
    """
    Hands every watchdog event over to the asyncio loop.

    Runs on observer threads, so it only enqueues.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        queue: "asyncio.Queue[FileSystemEvent]",
    ) -> None:
        super().__init__()
        self._loop = loop
        self._queue = queue

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Forward the event to the relay loop."""
        if event.event_type in _READ_ONLY_EVENTS:
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        except RuntimeError:
            # Loop closed during shutdown
            pass


class DirectoryWatcher(LoggerMixin):
    """
    Watches a directory tree and triggers a Debouncer on every mutation.

    The root holds a single recursive native watch. Alongside it the
    watcher keeps an explicit watch set of every file and directory under
    the root, grown from creation events and reconciled against the tree
    on demand.
    """

    def __init__(
        self,
        root_path: Path,
        debouncer: Debouncer,
        classify_error: ErrorClassifier = default_watch_error_classifier,
        join_timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> None:
        """
        Initialize the directory watcher.

        Args:
            root_path: Root directory to watch
            debouncer: Debouncer triggered for every notification
            classify_error: Returns the exception to raise for a fatal
                asynchronous error, or None to log and continue
            join_timeout: Seconds to wait for the observer on shutdown
            poll_interval: Seconds between observer liveness checks
        """
        settings = get_settings()

        self._root_path = root_path.absolute()
        self._debouncer = debouncer
        self._classify_error = classify_error
        self._join_timeout = join_timeout or settings.watcher.observer_join_timeout
        self._poll_interval = poll_interval or settings.watcher.relay_poll_interval

        self._lock = threading.Lock()
        self._watch_set: set[Path] = set()
        self._observer: BaseObserver | None = None
        self._started = asyncio.Event()

    @property
    def root_path(self) -> Path:
        return self._root_path

    @property
    def watched_paths(self) -> frozenset[Path]:
        """Snapshot of every path currently in the watch set."""
        with self._lock:
            return frozenset(self._watch_set)

    async def wait_started(self) -> None:
        """Wait until the initial watch set is established."""
        await self._started.wait()

    async def watch(self) -> None:
        """
        Establish the watch set and relay notifications until cancelled.

        Raises:
            WatchSetupError: If the initial walk or observer start fails
            Exception: Whatever the classifier returns for a fatal error
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[FileSystemEvent] = asyncio.Queue()

        try:
            paths = await asyncio.to_thread(walk_tree, self._root_path)
        except OSError as e:
            raise WatchSetupError(f"error walking {self._root_path}: {e}") from e

        observer = Observer()
        try:
            observer.schedule(RelayHandler(loop, queue), str(self._root_path), recursive=True)
            observer.start()
        except OSError as e:
            self._shutdown_observer(observer)
            raise WatchSetupError(f"error adding {self._root_path} to watch set: {e}") from e

        with self._lock:
            self._watch_set = paths
            self._observer = observer

        self.log.info(
            "directory_watcher_started",
            path=str(self._root_path),
            watched_paths=len(paths),
        )
        self._started.set()

        try:
            await self._relay(queue, observer)
        finally:
            await asyncio.to_thread(self._shutdown_observer, observer)
            self.log.info("directory_watcher_stopped")

    async def _relay(
        self,
        queue: "asyncio.Queue[FileSystemEvent]",
        observer: BaseObserver,
    ) -> None:
        while True:
            try:
                async with asyncio.timeout(self._poll_interval):
                    event = await queue.get()
            except TimeoutError:
                if not observer.is_alive():
                    self._handle_error(ObserverStoppedError("file watcher observer stopped"))
                continue

            self.log.debug("watch_event", event_type=event.event_type, path=str(event.src_path))
            if isinstance(event, (DirCreatedEvent, FileCreatedEvent)):
                self._add_path(Path(os.fsdecode(event.src_path)))
            elif isinstance(event, (DirMovedEvent, FileMovedEvent)):
                self._add_path(Path(os.fsdecode(event.dest_path)))
            self._debouncer.trigger()

    def _handle_error(self, error: Exception) -> None:
        fatal = self._classify_error(error)
        if fatal is not None:
            raise fatal
        self.log.error("file_watcher_error", error=str(error))

    def _add_path(self, path: Path) -> None:
        """Grow the watch set from a creation or move. Best effort."""
        if path.is_symlink():
            return
        try:
            paths = walk_tree(path) if path.is_dir() else {path}
        except OSError as e:
            self._handle_error(WatchError(f"error watching new directory {path}: {e}"))
            return
        with self._lock:
            added = paths - self._watch_set
            self._watch_set |= added
        if added:
            self.log.debug("watch_set_grew", path=str(path), added=len(added))

    def reconcile(self) -> tuple[set[Path], set[Path]]:
        """
        Bring the watch set in line with the tree on disk.

        Returns:
            Tuple of (added, removed) paths

        Raises:
            Exception: Whatever the classifier returns for a fatal error
        """
        try:
            current = walk_tree(self._root_path)
        except OSError as e:
            self._handle_error(WatchError(f"error reconciling watch set: {e}"))
            return set(), set()

        with self._lock:
            added = current - self._watch_set
            removed = self._watch_set - current
            self._watch_set = current

        if added or removed:
            self.log.info("watch_set_reconciled", added=len(added), removed=len(removed))
        return added, removed

    def _shutdown_observer(self, observer: BaseObserver) -> None:
        observer.stop()
        if observer.is_alive():
            observer.join(timeout=self._join_timeout)
        with self._lock:
            self._observer = None
