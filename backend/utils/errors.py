"""
LocalRepo Error Types.

Exception hierarchy shared by the watcher, archive builder,
declaration patcher and publisher.
Requires Python 3.11+.
"""

from pathlib import Path


class LocalRepoError(Exception):
    """Base class for all LocalRepo errors."""


class ConfigurationError(LocalRepoError):
    """A required parameter is missing or invalid, or the target declaration is absent."""


class WatchError(LocalRepoError, OSError):
    """A failure observing the watched directory tree."""


class WatchSetupError(WatchError):
    """The initial watch set could not be established."""


class ObserverStoppedError(WatchError):
    """The native observer thread exited while the watch was still active."""


class ArchiveBuildError(LocalRepoError):
    """Packaging the directory failed; no archive was produced."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class DocumentParseError(LocalRepoError):
    """The configuration document is not syntactically valid."""

    def __init__(self, message: str, filename: str, line: int, column: int) -> None:
        super().__init__(f"{filename}:{line}:{column}: {message}")
        self.filename = filename
        self.line = line
        self.column = column


class PersistError(LocalRepoError):
    """Reading or writing the configuration document failed."""
