"""Naming rules for backup subdirectories and artifacts."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from dbbackup.core.jobs import RetentionPolicy

ARTIFACT_SUFFIX = ".sql.gz"
TIMESTAMP_FORMAT = "%Y-%m-%d_%H%M%S"


def format_timestamp(moment: datetime) -> str:
    """Render a timestamp as ``YYYY-MM-DD_HHMMSS``."""
    return moment.strftime(TIMESTAMP_FORMAT)


def subdir_name(prefix: str, timestamp: str, policy: RetentionPolicy | None = None) -> str:
    """Return ``<prefix>_<timestamp>`` with an optional ``_<policy>`` suffix."""
    name = f"{prefix}_{timestamp}"
    if policy is not None:
        name = f"{name}_{policy.value}"
    return name


def artifact_name(database: str, timestamp: str) -> str:
    """Return ``<database>.<timestamp>.sql.gz``."""
    return f"{database}.{timestamp}{ARTIFACT_SUFFIX}"


def artifact_path(subdir: Path, database: str, timestamp: str) -> Path:
    """Return the full artifact path for a database inside a run subdirectory."""
    return subdir / artifact_name(database, timestamp)


def is_artifact(path: Path) -> bool:
    """Return True if a file name follows the artifact naming convention."""
    return path.name.endswith(ARTIFACT_SUFFIX)
