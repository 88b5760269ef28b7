"""Progress reporting for the CLI."""

from __future__ import annotations

from pathlib import Path

from rich.markup import escape

from dbbackup.cli.common.output import out, truncate
from dbbackup.core.backups import BackupOutcome
from dbbackup.core.errors import JobAbortedError
from dbbackup.core.jobs import JobDescriptor
from dbbackup.core.retention import SweepResult
from dbbackup.core.runs import JobResult

_MAX_CAUSE_WIDTH = 120


def _last_line(text: str) -> str:
    """Return the last non-empty line of a multi-line cause (where mysqldump puts the error)."""
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return lines[-1] if lines else ""


def _outcome_detail(outcome: BackupOutcome) -> str | None:
    """Render a short failure detail for the per-database line."""
    if outcome.ok:
        return None
    return truncate(_last_line(outcome.describe()), _MAX_CAUSE_WIDTH)


class ConsoleReporter:
    """Prints job progress the way an operator reads it in a cron mail."""

    def __init__(self, *, dry_run: bool = False):
        self.dry_run = dry_run

    def job_started(self, job: JobDescriptor) -> None:
        source = job.source or job.name
        out.header(f"Processing config file: {source}")

    def sweep_finished(self, job: JobDescriptor, result: SweepResult) -> None:
        verb = "Would delete" if result.dry_run else "Deleted"
        if result.deleted:
            out.info(
                f"{verb} {len(result.deleted)} backup(s) older than {result.keep_days} day(s)"
            )
            if result.dry_run:
                for path in result.deleted:
                    out.print(f"  [meta]{escape(str(path))}[/]")
        for error in result.errors:
            out.warn(f"{job.name}: retention could not remove {error.path}: {error.error}")

    def database_started(self, job: JobDescriptor, database: str, destination: Path) -> None:
        if self.dry_run:
            out.info(f"Database: {database} -> {destination}")

    def database_finished(self, job: JobDescriptor, outcome: BackupOutcome) -> None:
        out.database_line(outcome.database, outcome.ok, _outcome_detail(outcome))

    def job_finished(self, result: JobResult) -> None:
        if result.dry_run:
            out.warn(f"Dry-run: nothing written for {result.job.name}")
            return
        out.print(escape(f"Backups of {result.job.name} completed to: {result.context.subdir}"))

    def job_aborted(self, job: JobDescriptor, error: JobAbortedError) -> None:
        out.error(f"{job.name}: {error.reason}")
