"""
LocalRepo Publishing Pipeline.

Wires the directory watcher, debouncer, archive builder and
declaration patcher together, and serves the result over HTTP.
Requires Python 3.11+.
"""

import asyncio
import os
import stat
import tempfile
from pathlib import Path

import uvicorn

from archive.builder import Archive, ArchiveBuilder
from buildfile.document import StarlarkParser
from buildfile.patcher import DeclarationPatcher
from publisher.state import ArchiveCell
from utils.config import Settings
from utils.errors import ArchiveBuildError, ConfigurationError, PersistError
from utils.logger import LoggerMixin
from watcher.debouncer import Debouncer
from watcher.file_watcher import (
    DirectoryWatcher,
    ErrorClassifier,
    default_watch_error_classifier,
)


def write_atomic(path: Path, content: bytes) -> None:
    """
    Replace a file's content in a single rename.

    Keeps the existing file's permission bits.

    Raises:
        OSError: If the temporary file cannot be written or renamed
    """
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        mode = 0o664

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class Publisher(LoggerMixin):
    """
    Republishes a directory every time it changes.

    Each debounced batch builds a new archive, publishes it to the
    archive cell, and points the configured declaration at its URL.
    """

    def __init__(
        self,
        input_dir: Path,
        module_file: Path,
        import_path: str,
        address: str,
        host: str = "localhost",
        port: int = 8673,
        debounce_delay_ms: int = 500,
        cell: ArchiveCell | None = None,
        builder: ArchiveBuilder | None = None,
        patcher: DeclarationPatcher | None = None,
        classify_error: ErrorClassifier = default_watch_error_classifier,
    ) -> None:
        """
        Initialize the publisher.

        Args:
            input_dir: Directory to watch and archive
            module_file: Build file containing the declaration to patch
            import_path: Key of the declaration to patch
            address: host:port written into published URLs
            host: Interface the HTTP server binds
            port: Port the HTTP server binds
            debounce_delay_ms: Quiet window before rebuilding
            cell: Archive cell shared with the HTTP app
            builder: Archive builder for input_dir
            patcher: Declaration patcher
            classify_error: Classifier for asynchronous watch errors
        """
        self._input_dir = input_dir
        self._module_file = module_file
        self._import_path = import_path
        self._address = address
        self._host = host
        self._port = port

        self._cell = cell or ArchiveCell()
        self._builder = builder or ArchiveBuilder(input_dir)
        self._patcher = patcher or DeclarationPatcher()
        self._parser = StarlarkParser()
        self._debouncer = Debouncer(delay_ms=debounce_delay_ms)
        self._watcher = DirectoryWatcher(input_dir, self._debouncer, classify_error)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Publisher":
        """
        Create a publisher from application settings.

        Raises:
            ConfigurationError: If a required setting is missing
        """
        options = settings.publisher
        missing = [
            flag
            for flag, value in (
                ("--input", options.input_dir),
                ("--module_file", options.module_file),
                ("--import_path", options.import_path),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"must pass non-empty {', '.join(missing)}")

        return cls(
            input_dir=options.input_dir,
            module_file=options.module_file,
            import_path=options.import_path,
            address=settings.server.address,
            host=settings.server.host,
            port=settings.server.port,
            debounce_delay_ms=settings.watcher.debounce_delay_ms,
        )

    @property
    def cell(self) -> ArchiveCell:
        return self._cell

    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer

    @property
    def watcher(self) -> DirectoryWatcher:
        return self._watcher

    def archive_url(self, content_hash: str) -> str:
        """URL under which an archive with this hash is served."""
        return f"http://{self._address}/by-sha256/{content_hash}.zip"

    def check_startup(self) -> None:
        """
        Validate inputs before the pipeline starts.

        Raises:
            ConfigurationError: If the input directory is missing, the
                build file is unreadable, or it has no matching declaration
            DocumentParseError: If the build file is malformed
        """
        if not self._input_dir.is_dir():
            raise ConfigurationError(f"input directory {self._input_dir} does not exist")
        try:
            document = self._parser.parse_file(self._module_file)
        except OSError as e:
            raise ConfigurationError(f"failed to read {self._module_file}: {e}") from e
        if not self._patcher.match(document, self._import_path):
            raise ConfigurationError(
                f"no declaration with key {self._import_path!r} in {self._module_file}"
            )

    async def publish_once(self) -> Archive | None:
        """
        Rebuild, publish and persist once.

        Build failures are logged and the previous archive stays current.

        Returns:
            The new archive, or None if the build failed

        Raises:
            PersistError: If the build file cannot be read or written
            DocumentParseError: If the build file is malformed
        """
        await asyncio.to_thread(self._watcher.reconcile)

        try:
            archive = await asyncio.to_thread(self._builder.build)
        except ArchiveBuildError as e:
            self.log.error("archive_build_failed", error=str(e), path=str(e.path))
            return None

        previous = self._cell.swap(archive)
        if previous is not None and previous.content_hash == archive.content_hash:
            self.log.debug("archive_unchanged", sha256=archive.content_hash)

        await asyncio.to_thread(self.patch_and_persist, archive)
        return archive

    def patch_and_persist(self, archive: Archive) -> bool:
        """
        Point the declaration at archive and write the build file.

        Nothing is written when the file already references archive.

        Returns:
            True if the declaration matched, False otherwise

        Raises:
            PersistError: If the build file cannot be read or written
            DocumentParseError: If the build file is malformed
        """
        try:
            document = self._parser.parse_file(self._module_file)
        except OSError as e:
            raise PersistError(f"failed to read build file at {self._module_file}: {e}") from e
        content = document.source
        updated = self._patcher.update(
            document,
            self._import_path,
            {
                "sha256": archive.content_hash,
                "urls": [self.archive_url(archive.content_hash)],
            },
        )
        if not updated:
            self.log.warning(
                "declaration_not_found",
                key=self._import_path,
                path=str(self._module_file),
            )
            return False

        new_content = document.format()
        if new_content == content:
            self.log.debug("build_file_unchanged", sha256=archive.content_hash)
            return True

        try:
            write_atomic(self._module_file, new_content)
        except OSError as e:
            raise PersistError(
                f"error writing updated build file {self._module_file}: {e}"
            ) from e

        self.log.info(
            "build_file_written",
            path=str(self._module_file),
            sha256=archive.content_hash,
        )
        return True

    async def serve(self) -> None:
        """Serve the archive cell over HTTP until cancelled."""
        # Imported here to avoid circular imports
        from api.main import create_app

        config = uvicorn.Config(
            create_app(self._cell),
            host=self._host,
            port=self._port,
            log_level="warning",
            access_log=False,
        )
        server = uvicorn.Server(config)
        self.log.info("http_server_listening", url=f"http://{self._host}:{self._port}")
        try:
            await server.serve()
        except asyncio.CancelledError:
            server.should_exit = True
            raise

    async def run(self, serve: bool = True) -> None:
        """
        Run the watcher, publisher and HTTP server until one fails.

        The first failure cancels the other units and is re-raised.

        Raises:
            ConfigurationError: If startup validation fails
            Exception: The first fatal error from any unit
        """
        self.check_startup()
        self.log.info(
            "publisher_starting",
            input_dir=str(self._input_dir),
            module_file=str(self._module_file),
            import_path=self._import_path,
        )

        try:
            async with asyncio.TaskGroup() as tg:
                tg.create_task(self._watcher.watch(), name="watcher")
                tg.create_task(self._debouncer.listen(self.publish_once), name="publisher")
                if serve:
                    tg.create_task(self.serve(), name="http")
                # Build the first archive without waiting for a change
                self._debouncer.trigger()
        except ExceptionGroup as group:
            first = group.exceptions[0]
            self.log.error("publisher_failed", error=str(first), error_type=type(first).__name__)
            raise first
