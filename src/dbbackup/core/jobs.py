"""Core job domain models.

This module defines the immutable job descriptor built from a configuration
unit, the connection parameters it carries and the optional retention label
of a run. It is intentionally free of CLI concerns (output, prompts, exit
codes) and of filesystem access, so it can be reused by different frontends
(CLI, automation, tests).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

DEFAULT_MYSQL_PORT = "3306"


class RetentionPolicy(str, Enum):
    """
    Retention label of a run.

    The label is only embedded in the output subdirectory name so that
    external tooling can tell daily, weekly, monthly and yearly sets apart.
    It does not influence which artifacts are deleted; that is controlled
    by the job's ``keep_days``.
    """

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass(frozen=True)
class ConnectionParams:
    """
    Connection settings shared by every database of a job.

    Attributes:
        host: Hostname or IP address of the MySQL server.
        port: Port of the MySQL server, kept as an opaque string.
        user: Account used to connect.
        password: Password of the account. Excluded from ``repr`` so it
                  never leaks into logs.
    """

    host: str
    port: str = DEFAULT_MYSQL_PORT
    user: str = ""
    password: str = field(default="", repr=False)


@dataclass(frozen=True)
class JobDescriptor:
    """
    Represents one configured backup job.

    Attributes:
        name: Job name, derived from the configuration file name.
        databases: Ordered database names. Duplicates are allowed and are
                   backed up independently.
        connection: Connection parameters for all databases of the job.
        backup_dir: Output root directory. It must exist when the job runs.
        subdir_prefix: Prefix of the per-run output subdirectory.
        keep_days: Artifacts older than this many whole days are deleted
                   before a new run writes anything.
        source: Configuration file the descriptor was loaded from, if any.
    """

    name: str
    databases: tuple[str, ...]
    connection: ConnectionParams
    backup_dir: Path
    subdir_prefix: str
    keep_days: int
    source: Path | None = None

    def __post_init__(self) -> None:
        if not self.databases:
            raise ValueError(f"Job {self.name!r} must name at least one database")
        if self.keep_days < 0:
            raise ValueError(f"Job {self.name!r} keep_days must be >= 0")

    def qualified(self, database: str) -> str:
        """Return the ``<job>.<database>`` identifier used in reports."""
        return f"{self.name}.{database}"
