"""Retention sweep for backup artifacts.

Expired artifacts are removed from a job's output directory before the job
writes anything new, so an artifact created by a run can never be deleted by
that same run. Age is measured in whole days, like ``find -mtime +N``: an
artifact is expired when ``floor(age / 1 day) > keep_days``.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path

from dbbackup.core.errors import RetentionError
from dbbackup.core.naming import is_artifact

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class SweepError:
    """A single path the sweep could not inspect or delete."""

    path: Path
    error: str


@dataclass
class SweepResult:
    """Result of sweeping one output directory."""

    directory: Path
    keep_days: int
    deleted: list[Path] = field(default_factory=list)
    errors: list[SweepError] = field(default_factory=list)
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return not self.errors


def age_in_days(mtime: float, now: float) -> int:
    """Return the age of a file in whole days (negative ages count as 0)."""
    return max(int((now - mtime) // SECONDS_PER_DAY), 0)


def is_expired(mtime: float, keep_days: int, now: float) -> bool:
    """Return True if a file modified at ``mtime`` is older than ``keep_days`` whole days."""
    return age_in_days(mtime, now) > keep_days


def sweep(
    directory: Path,
    keep_days: int,
    *,
    now: float | None = None,
    dry_run: bool = False,
) -> SweepResult:
    """
    Delete expired backup artifacts below ``directory``.

    The directory is walked recursively without following symlinks. Only
    regular files named ``*.sql.gz`` are considered; everything else is left
    alone. Deletion is best-effort: a file that cannot be inspected or
    removed is recorded in ``SweepResult.errors`` and the sweep continues.

    Args:
        directory: Output root of a job.
        keep_days: Retention threshold in days (>= 0).
        now: Reference time as a POSIX timestamp. Defaults to the current time.
        dry_run: Report expired files without deleting them.

    Returns:
        A SweepResult listing deleted (or, in dry-run, deletable) paths and errors.

    Raises:
        RetentionError: If ``directory`` does not exist or is not a directory.
        ValueError: If ``keep_days`` is negative.
    """
    if keep_days < 0:
        raise ValueError("keep_days must be >= 0")
    if not directory.is_dir():
        raise RetentionError(f"Backup directory {directory} not found.")

    reference = time.time() if now is None else now
    result = SweepResult(directory=directory, keep_days=keep_days, dry_run=dry_run)

    def _on_walk_error(exc: OSError) -> None:
        path = Path(exc.filename) if exc.filename else directory
        logger.warning("Cannot scan %s: %s", path, exc.strerror or exc)
        result.errors.append(SweepError(path=path, error=str(exc)))

    for root, _dirs, files in os.walk(directory, onerror=_on_walk_error):
        for filename in sorted(files):
            path = Path(root) / filename
            if not is_artifact(path):
                continue

            try:
                if path.is_symlink() or not path.is_file():
                    continue
                mtime = path.stat().st_mtime
            except OSError as exc:
                logger.warning("Cannot stat %s: %s", path, exc)
                result.errors.append(SweepError(path=path, error=str(exc)))
                continue

            if not is_expired(mtime, keep_days, reference):
                continue

            if dry_run:
                logger.info("Would delete expired artifact %s", path)
                result.deleted.append(path)
                continue

            try:
                path.unlink()
            except OSError as exc:
                logger.warning("Failed to delete %s: %s", path, exc)
                result.errors.append(SweepError(path=path, error=str(exc)))
                continue

            logger.info("Deleted expired artifact %s", path)
            result.deleted.append(path)

    return result
