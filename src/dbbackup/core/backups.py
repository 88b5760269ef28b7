"""Backup outcome model and executor interface.

A backup executor turns one database into one compressed artifact. It never
raises for ordinary backup failures; it returns a ``BackupOutcome`` carrying
the failing stage and its cause so the job runner can record the failure and
move on to the next database.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from dbbackup.core.jobs import ConnectionParams


class FailureStage(str, Enum):
    """
    Stage at which a database backup failed.

    Values:
        DUMP: The dump process could not start or exited non-zero.
        COMPRESS: The dump output could not be compressed or written.
        TIMEOUT: The per-database timeout expired and the dump was killed.
        EXECUTOR: The executor raised an unexpected exception.
    """

    DUMP = "dump"
    COMPRESS = "compress"
    TIMEOUT = "timeout"
    EXECUTOR = "executor"


@dataclass(frozen=True)
class BackupOutcome:
    """
    Result of backing up a single database.

    Attributes:
        database: Database name.
        path: Destination artifact path.
        ok: True if the artifact was written successfully.
        stage: Failing stage, or None on success.
        exit_status: Exit status of the dump process, when known.
        cause: Human-readable failure cause, or None on success.
    """

    database: str
    path: Path
    ok: bool
    stage: FailureStage | None = None
    exit_status: int | None = None
    cause: str | None = None

    @classmethod
    def success(cls, database: str, path: Path) -> BackupOutcome:
        return cls(database=database, path=path, ok=True)

    @classmethod
    def failure(
        cls,
        database: str,
        path: Path,
        stage: FailureStage,
        cause: str,
        *,
        exit_status: int | None = None,
    ) -> BackupOutcome:
        return cls(
            database=database,
            path=path,
            ok=False,
            stage=stage,
            exit_status=exit_status,
            cause=cause,
        )

    def describe(self) -> str:
        """Return a one-line description of the failure (empty on success)."""
        if self.ok:
            return ""
        parts = [self.stage.value if self.stage else "unknown"]
        if self.exit_status is not None:
            parts.append(f"exit status {self.exit_status}")
        if self.cause:
            parts.append(self.cause)
        return ": ".join(parts)


class BackupExecutor(Protocol):
    """Interface for producing one compressed backup artifact per database."""

    def execute(
        self,
        database: str,
        connection: ConnectionParams,
        destination: Path,
        *,
        timeout: float | None = None,
    ) -> BackupOutcome:
        """Back up ``database`` into ``destination`` and report the outcome."""
        ...
