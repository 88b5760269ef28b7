"""Core job run execution and aggregation logic.

This module drives backup jobs through their lifecycle::

    Validating -> Sweeping -> BackingUp(1..N) -> Completed

and aggregates per-database failures across all jobs of a run. The
functionality here is infrastructure-agnostic: dumping goes through a
``BackupExecutor`` and progress is reported through a ``RunReporter``, so the
same logic serves the CLI and the tests. Execution is sequential by default;
the BackingUp phase of a job may use a bounded thread pool, and a failing
database never cancels its siblings.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, Protocol

from dbbackup.core.backups import BackupExecutor, BackupOutcome, FailureStage
from dbbackup.core.errors import JobAbortedError, RetentionError
from dbbackup.core.jobs import JobDescriptor, RetentionPolicy
from dbbackup.core.naming import artifact_path, format_timestamp, subdir_name
from dbbackup.core.retention import SweepResult, sweep

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunContext:
    """
    Per-job state captured when the job starts backing up.

    Attributes:
        timestamp: Formatted timestamp shared by the subdirectory and every
                   artifact of the job.
        subdir: Output subdirectory of this run of the job.
        policy: Optional retention label of the run.
    """

    timestamp: str
    subdir: Path
    policy: RetentionPolicy | None = None

    def destination(self, database: str) -> Path:
        """Return the artifact path of a database in this run."""
        return artifact_path(self.subdir, database, self.timestamp)


@dataclass(frozen=True)
class FailureRecord:
    """A failed database backup, qualified by its job."""

    job: str
    database: str
    stage: FailureStage | None
    cause: str | None = None

    @property
    def qualified_name(self) -> str:
        return f"{self.job}.{self.database}"


@dataclass(frozen=True)
class JobAbort:
    """A job that was abandoned before backing anything up."""

    job: str
    reason: str


@dataclass
class JobResult:
    """Result of running one job to completion."""

    job: JobDescriptor
    context: RunContext
    sweep: SweepResult
    outcomes: list[BackupOutcome] = field(default_factory=list)
    dry_run: bool = False

    @property
    def failed(self) -> list[BackupOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def ok(self) -> bool:
        return not self.failed


class RunSummary:
    """
    Append-only accumulator of job results and failures for a run.

    Appends are guarded by a lock so results may be recorded from worker
    threads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._failures: list[FailureRecord] = []
        self._aborted: list[JobAbort] = []
        self._results: list[JobResult] = []

    def record_result(self, result: JobResult) -> None:
        """Record a completed job and a FailureRecord for each failed database."""
        failures = [
            FailureRecord(
                job=result.job.name,
                database=outcome.database,
                stage=outcome.stage,
                cause=outcome.describe(),
            )
            for outcome in result.outcomes
            if not outcome.ok
        ]
        with self._lock:
            self._results.append(result)
            self._failures.extend(failures)

    def record_abort(self, job: str, reason: str) -> None:
        """Record a job that could not run."""
        with self._lock:
            self._aborted.append(JobAbort(job=job, reason=reason))

    @property
    def failures(self) -> list[FailureRecord]:
        with self._lock:
            return list(self._failures)

    @property
    def aborted(self) -> list[JobAbort]:
        with self._lock:
            return list(self._aborted)

    @property
    def results(self) -> list[JobResult]:
        with self._lock:
            return list(self._results)

    @property
    def qualified_failures(self) -> list[str]:
        """Return ``<job>.<database>`` for every failed backup, in run order."""
        return [f.qualified_name for f in self.failures]

    @property
    def ok(self) -> bool:
        """True if every job ran and every database backup succeeded."""
        return not self.failures and not self.aborted


class RunReporter(Protocol):
    """Receives progress events from the job runner."""

    def job_started(self, job: JobDescriptor) -> None: ...

    def sweep_finished(self, job: JobDescriptor, result: SweepResult) -> None: ...

    def database_started(self, job: JobDescriptor, database: str, destination: Path) -> None: ...

    def database_finished(self, job: JobDescriptor, outcome: BackupOutcome) -> None: ...

    def job_finished(self, result: JobResult) -> None: ...

    def job_aborted(self, job: JobDescriptor, error: JobAbortedError) -> None: ...


class NullReporter:
    """Reporter that ignores every event."""

    def job_started(self, job: JobDescriptor) -> None:
        pass

    def sweep_finished(self, job: JobDescriptor, result: SweepResult) -> None:
        pass

    def database_started(self, job: JobDescriptor, database: str, destination: Path) -> None:
        pass

    def database_finished(self, job: JobDescriptor, outcome: BackupOutcome) -> None:
        pass

    def job_finished(self, result: JobResult) -> None:
        pass

    def job_aborted(self, job: JobDescriptor, error: JobAbortedError) -> None:
        pass


class _SerializedReporter:
    """Wraps a reporter so that calls from worker threads do not interleave."""

    def __init__(self, reporter: RunReporter):
        self._reporter = reporter
        self._lock = threading.Lock()

    def database_started(self, job: JobDescriptor, database: str, destination: Path) -> None:
        with self._lock:
            self._reporter.database_started(job, database, destination)

    def database_finished(self, job: JobDescriptor, outcome: BackupOutcome) -> None:
        with self._lock:
            self._reporter.database_finished(job, outcome)


def build_context(
    job: JobDescriptor,
    policy: RetentionPolicy | None = None,
    *,
    now: datetime | None = None,
) -> RunContext:
    """Capture the run timestamp of a job and resolve its output subdirectory."""
    timestamp = format_timestamp(now or datetime.now())
    subdir = job.backup_dir / subdir_name(job.subdir_prefix, timestamp, policy)
    return RunContext(timestamp=timestamp, subdir=subdir, policy=policy)


def backup_database(
    executor: BackupExecutor,
    job: JobDescriptor,
    database: str,
    destination: Path,
    *,
    timeout: float | None = None,
) -> BackupOutcome:
    """
    Back up one database, converting unexpected executor errors into a failed outcome.

    This is the isolation boundary of a job: whatever happens to one
    database is returned as a value and never propagates to its siblings.
    """
    try:
        return executor.execute(database, job.connection, destination, timeout=timeout)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Executor error for %s", job.qualified(database))
        return BackupOutcome.failure(database, destination, FailureStage.EXECUTOR, str(exc))


def run_job(
    job: JobDescriptor,
    executor: BackupExecutor,
    *,
    policy: RetentionPolicy | None = None,
    reporter: RunReporter | None = None,
    parallel: int = 1,
    timeout: float | None = None,
    dry_run: bool = False,
    now: datetime | None = None,
) -> JobResult:
    """
    Run one backup job.

    The job's output directory is validated first. The retention sweep then
    runs once, before the run subdirectory or any artifact exists. Finally
    every database is backed up in the order given; failures are recorded
    in the returned outcomes and never stop the remaining databases.

    Args:
        job: Job descriptor to run.
        executor: Backup executor used for every database.
        policy: Optional retention label appended to the subdirectory name.
        reporter: Receives progress events. Defaults to NullReporter.
        parallel: Maximum number of databases backed up concurrently.
        timeout: Optional per-database timeout in seconds.
        dry_run: Report what would be deleted and written without touching
                 anything.
        now: Reference time for the sweep and the run timestamp.

    Returns:
        A JobResult with the sweep result and one outcome per database, in
        the job's database order.

    Raises:
        JobAbortedError: If the job's output directory does not exist.
        ValueError: If ``parallel`` is lower than 1.
    """
    if parallel < 1:
        raise ValueError("parallel must be >= 1")

    reporter = reporter or NullReporter()
    reporter.job_started(job)

    # Validating
    if not job.backup_dir.is_dir():
        raise JobAbortedError(job.name, f"backup directory {job.backup_dir} not found")

    # Sweeping
    try:
        sweep_result = sweep(
            job.backup_dir,
            job.keep_days,
            now=now.timestamp() if now else None,
            dry_run=dry_run,
        )
    except RetentionError as exc:
        raise JobAbortedError(job.name, str(exc)) from exc
    logger.info(
        "Job %s: %d expired artifact(s) %s, %d error(s)",
        job.name,
        len(sweep_result.deleted),
        "to delete" if dry_run else "deleted",
        len(sweep_result.errors),
    )
    reporter.sweep_finished(job, sweep_result)

    # BackingUp
    context = build_context(job, policy, now=now)
    result = JobResult(job=job, context=context, sweep=sweep_result, dry_run=dry_run)

    if dry_run:
        for database in job.databases:
            reporter.database_started(job, database, context.destination(database))
        reporter.job_finished(result)
        return result

    try:
        context.subdir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise JobAbortedError(job.name, f"cannot create {context.subdir}: {exc}") from exc

    serialized = _SerializedReporter(reporter)

    def _backup(database: str) -> BackupOutcome:
        destination = context.destination(database)
        serialized.database_started(job, database, destination)
        outcome = backup_database(executor, job, database, destination, timeout=timeout)
        if outcome.ok:
            logger.info("Backed up %s to %s", job.qualified(database), destination)
        else:
            logger.error("Backup of %s failed: %s", job.qualified(database), outcome.describe())
        serialized.database_finished(job, outcome)
        return outcome

    if parallel == 1 or len(job.databases) == 1:
        result.outcomes = [_backup(database) for database in job.databases]
    else:
        with ThreadPoolExecutor(max_workers=min(parallel, len(job.databases))) as pool:
            futures = [pool.submit(_backup, database) for database in job.databases]
            result.outcomes = [f.result() for f in futures]

    # Completed
    reporter.job_finished(result)
    return result


def run_all(
    jobs: Iterable[JobDescriptor],
    executor: BackupExecutor,
    *,
    keep_going: bool = False,
    policy: RetentionPolicy | None = None,
    reporter: RunReporter | None = None,
    parallel: int = 1,
    timeout: float | None = None,
    dry_run: bool = False,
    now: datetime | None = None,
) -> RunSummary:
    """
    Run every job in order and aggregate the results.

    A job whose output directory is missing is recorded as aborted. By
    default the run stops at that point; with ``keep_going`` the remaining
    jobs still run.

    Returns:
        The RunSummary of the whole run.
    """
    reporter = reporter or NullReporter()
    summary = RunSummary()

    for job in jobs:
        try:
            result = run_job(
                job,
                executor,
                policy=policy,
                reporter=reporter,
                parallel=parallel,
                timeout=timeout,
                dry_run=dry_run,
                now=now,
            )
        except JobAbortedError as exc:
            logger.error("%s", exc)
            summary.record_abort(job.name, exc.reason)
            reporter.job_aborted(job, exc)
            if not keep_going:
                break
            continue

        summary.record_result(result)

    return summary
