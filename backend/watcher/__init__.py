"""
LocalRepo Watcher Package.

Directory monitoring and trigger debouncing.
Requires Python 3.11+.
"""

from watcher.debouncer import Debouncer
from watcher.file_watcher import DirectoryWatcher, default_watch_error_classifier

__all__ = ["DirectoryWatcher", "Debouncer", "default_watch_error_classifier"]
