"""
LocalRepo Publisher State.

The single owned cell holding the current archive.
Requires Python 3.11+.
"""

import threading

from archive.builder import Archive


class ArchiveCell:
    """
    Holds the current Archive.

    Readers get either None (nothing built yet) or a complete Archive.
    The lock only guards the reference exchange; archives themselves are
    immutable.
    """

    def __init__(self, archive: Archive | None = None) -> None:
        self._lock = threading.Lock()
        self._archive = archive

    def get(self) -> Archive | None:
        """Get the current archive, if any."""
        with self._lock:
            return self._archive

    def swap(self, archive: Archive) -> Archive | None:
        """
        Publish a new archive.

        Returns:
            The archive it replaced, or None
        """
        with self._lock:
            previous, self._archive = self._archive, archive
        return previous

    @property
    def content_hash(self) -> str | None:
        """Hash of the current archive, or None."""
        archive = self.get()
        return archive.content_hash if archive else None
