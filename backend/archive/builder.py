"""
LocalRepo Archive Builder.

Deterministic, content-addressed zip archives of a directory tree.
Requires Python 3.11+.
"""

import hashlib
import io
import os
import time
import zipfile
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from archive.ignore_rules import IgnoreRuleSet
from utils.config import get_settings
from utils.errors import ArchiveBuildError
from utils.logger import LoggerMixin


# Earliest timestamp the zip format can represent. Every member gets it so
# the archive bytes never depend on filesystem metadata.
FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)
FILE_MODE = 0o100644
UNIX_SYSTEM = 3


@dataclass(frozen=True)
class Archive:
    """An immutable zip archive of a directory and its SHA-256 digest."""

    content_hash: str
    data: bytes = field(repr=False)
    source_directory: Path
    file_count: int = 0

    @property
    def size(self) -> int:
        """Archive size in bytes."""
        return len(self.data)

    @property
    def filename(self) -> str:
        """Download filename embedding the content hash."""
        return f"repo-{self.content_hash}.zip"


def compute_hash(data: bytes) -> str:
    """
    Compute the SHA-256 digest of archive bytes.

    Args:
        data: Serialized archive

    Returns:
        SHA-256 hash as hex string
    """
    return hashlib.sha256(data).hexdigest()


class ArchiveBuilder(LoggerMixin):
    """
    Packages a directory into a deterministic zip archive.

    Files are visited in pre-order with directory entries sorted by name.
    Only relative paths and file contents reach the archive, so identical
    trees always produce identical bytes and therefore identical hashes.
    """

    def __init__(
        self,
        root_path: Path,
        ignore_file: str | None = None,
        builtin_patterns: Sequence[str] | None = None,
        compress_level: int | None = None,
    ) -> None:
        """
        Initialize the archive builder.

        Args:
            root_path: Directory to archive
            ignore_file: Name of the ignore file inside root_path
            builtin_patterns: Patterns appended after the ignore file's
            compress_level: Deflate level, 0-9
        """
        settings = get_settings()

        self._root_path = root_path
        self._ignore_file = ignore_file or settings.archive.ignore_file
        self._builtin_patterns = list(
            settings.archive.builtin_ignore_patterns
            if builtin_patterns is None
            else builtin_patterns
        )
        self._compress_level = (
            settings.archive.compress_level if compress_level is None else compress_level
        )

    @property
    def root_path(self) -> Path:
        return self._root_path

    def load_ignore_rules(self) -> IgnoreRuleSet:
        """Load the ignore file plus built-in patterns."""
        return IgnoreRuleSet.load(self._root_path, self._ignore_file, self._builtin_patterns)

    def collect_files(self, rules: IgnoreRuleSet) -> list[tuple[str, Path]]:
        """
        List archivable files in deterministic pre-order.

        Symbolic links are skipped, ignored directories are pruned.

        Returns:
            List of (relative POSIX path, absolute path) tuples

        Raises:
            OSError: If a directory cannot be listed
        """
        files: list[tuple[str, Path]] = []

        def visit(directory: Path, prefix: str) -> None:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
            for entry in entries:
                if entry.is_symlink():
                    continue
                relative = f"{prefix}{entry.name}"
                if entry.is_dir(follow_symlinks=False):
                    if not rules.is_ignored(relative, is_dir=True):
                        visit(Path(entry.path), f"{relative}/")
                elif entry.is_file(follow_symlinks=False):
                    if not rules.is_ignored(relative, is_dir=False):
                        files.append((relative, Path(entry.path)))

        visit(self._root_path, "")
        return files

    def build(self) -> Archive:
        """
        Build a fresh archive of the directory.

        Returns:
            The new Archive

        Raises:
            ArchiveBuildError: On any read or traversal failure
        """
        start_time = time.perf_counter()

        try:
            rules = self.load_ignore_rules()
        except (OSError, UnicodeError) as e:
            raise ArchiveBuildError(
                f"error reading ignore file {self._ignore_file!r}: {e}",
                path=self._root_path / self._ignore_file,
            ) from e

        try:
            files = self.collect_files(rules)
        except OSError as e:
            raise ArchiveBuildError(
                f"error walking {self._root_path}: {e}", path=self._root_path
            ) from e

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for relative, path in files:
                try:
                    content = path.read_bytes()
                except OSError as e:
                    raise ArchiveBuildError(f"error reading {path}: {e}", path=path) from e
                try:
                    zf.writestr(
                        self._member_info(relative),
                        content,
                        compresslevel=self._compress_level,
                    )
                except UnicodeError as e:
                    # zip member names must be valid UTF-8
                    raise ArchiveBuildError(
                        f"cannot archive {path!r}: name is not valid UTF-8", path=path
                    ) from e

        data = buffer.getvalue()
        archive = Archive(
            content_hash=compute_hash(data),
            data=data,
            source_directory=self._root_path,
            file_count=len(files),
        )

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        self.log.info(
            "archive_built",
            path=str(self._root_path),
            sha256=archive.content_hash,
            files=archive.file_count,
            size=archive.size,
            elapsed_ms=round(elapsed_ms, 2),
        )
        return archive

    def _member_info(self, relative: str) -> zipfile.ZipInfo:
        info = zipfile.ZipInfo(relative, date_time=FIXED_DATE_TIME)
        info.compress_type = zipfile.ZIP_DEFLATED
        info.create_system = UNIX_SYSTEM
        info.external_attr = FILE_MODE << 16
        return info
