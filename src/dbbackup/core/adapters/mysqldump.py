from __future__ import annotations

import gzip
import logging
import os
import shlex
import shutil
import subprocess
import tempfile
import threading
from pathlib import Path
from typing import IO, Sequence

from dbbackup.core.backups import BackupOutcome, FailureStage
from dbbackup.core.jobs import ConnectionParams

logger = logging.getLogger(__name__)


class MysqldumpExecutor:
    """Backup executor that streams ``mysqldump`` output through gzip."""

    _PASSWORD_ENV = "MYSQL_PWD"
    _CHUNK_SIZE = 1024 * 1024
    _STDERR_TAIL_CHARS = 2000

    DEFAULT_OPTIONS: tuple[str, ...] = (
        "--single-transaction",
        "--routines",
        "--triggers",
        "--events",
    )

    def __init__(
        self,
        binary: str = "mysqldump",
        options: Sequence[str] = DEFAULT_OPTIONS,
        compresslevel: int = 6,
    ):
        """Create an executor using the given ``mysqldump`` binary and options."""
        self.binary = binary
        self.options = tuple(options)
        self.compresslevel = compresslevel

    def build_command(self, database: str, connection: ConnectionParams) -> list[str]:
        """Return the dump command line. The password is never part of it."""
        return [
            self.binary,
            "-h",
            connection.host,
            "-P",
            connection.port,
            "-u",
            connection.user,
            *self.options,
            database,
        ]

    def build_env(self, connection: ConnectionParams) -> dict[str, str]:
        """Return the dump process environment, carrying the password if any."""
        env = dict(os.environ)
        env.pop(self._PASSWORD_ENV, None)
        if connection.password:
            env[self._PASSWORD_ENV] = connection.password
        return env

    def _stderr_tail(self, stream: IO[bytes]) -> str:
        """Return the last part of the captured stderr as text."""
        stream.seek(0)
        text = stream.read().decode("utf-8", errors="replace").strip()
        if len(text) > self._STDERR_TAIL_CHARS:
            text = "..." + text[-self._STDERR_TAIL_CHARS :]
        return text

    def execute(
        self,
        database: str,
        connection: ConnectionParams,
        destination: Path,
        *,
        timeout: float | None = None,
    ) -> BackupOutcome:
        """
        Dump ``database`` and write the gzip-compressed stream to ``destination``.

        The dump runs once. Dump failures, compression failures and timeouts
        are returned as failed outcomes; a partially written artifact is left
        in place.
        """
        command = self.build_command(database, connection)
        logger.debug("Running %s", " ".join(shlex.quote(part) for part in command))

        with tempfile.TemporaryFile() as stderr_file:
            try:
                proc = subprocess.Popen(
                    command,
                    stdout=subprocess.PIPE,
                    stderr=stderr_file,
                    env=self.build_env(connection),
                )
            except OSError as exc:
                return BackupOutcome.failure(
                    database,
                    destination,
                    FailureStage.DUMP,
                    f"cannot start {self.binary}: {exc}",
                )

            timed_out = threading.Event()

            def _kill_on_timeout() -> None:
                timed_out.set()
                proc.kill()

            timer = None
            if timeout is not None:
                timer = threading.Timer(timeout, _kill_on_timeout)
                timer.daemon = True
                timer.start()

            compress_error: OSError | None = None
            try:
                try:
                    with gzip.open(destination, "wb", compresslevel=self.compresslevel) as fh:
                        shutil.copyfileobj(proc.stdout, fh, self._CHUNK_SIZE)
                except OSError as exc:
                    compress_error = exc
                    proc.kill()
                finally:
                    proc.stdout.close()
                returncode = proc.wait()
            finally:
                if timer is not None:
                    timer.cancel()

            stderr = self._stderr_tail(stderr_file)

        if timed_out.is_set() and returncode != 0:
            return BackupOutcome.failure(
                database,
                destination,
                FailureStage.TIMEOUT,
                f"dump did not finish within {timeout:g}s and was killed",
                exit_status=returncode,
            )

        if compress_error is not None:
            return BackupOutcome.failure(
                database,
                destination,
                FailureStage.COMPRESS,
                f"cannot write {destination}: {compress_error}",
                exit_status=returncode,
            )

        if returncode != 0:
            return BackupOutcome.failure(
                database,
                destination,
                FailureStage.DUMP,
                stderr or f"{self.binary} exited with status {returncode}",
                exit_status=returncode,
            )

        return BackupOutcome.success(database, destination)
