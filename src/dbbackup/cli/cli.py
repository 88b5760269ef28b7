"""CLI application for MySQL database backups."""

from pathlib import Path

import typer
from rich.markup import escape

from dbbackup.cli.common.exits import ExitCode, exit_code_for, exit_from_exc
from dbbackup.cli.common.options import (
    ConfigDirOpt,
    DryRunOpt,
    JobArg,
    KeepGoingOpt,
    MysqldumpOpt,
    ParallelOpt,
    RetentionOpt,
    TimeoutOpt,
    VerboseOpt,
)
from dbbackup.cli.common.output import configure_logging, out
from dbbackup.cli.common.progress import ConsoleReporter
from dbbackup.core.adapters.mysqldump import MysqldumpExecutor
from dbbackup.core.config import discover_jobs
from dbbackup.core.errors import ConfigError
from dbbackup.core.jobs import RetentionPolicy
from dbbackup.core.runs import RunSummary, run_all

app = typer.Typer(
    help=(
        "db-backup - back up the MySQL databases listed in every *.cfg job "
        "configuration, deleting backups older than each job's KEEP_BACKUPS_DAYS first."
    ),
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _report(summary: RunSummary, *, verbose: int, dry_run: bool) -> None:
    """Print the final tally of the run."""
    failures = summary.failures
    aborted = summary.aborted

    if aborted:
        out.header(f"{len(aborted)} job(s) could not run:")
        for abort in aborted:
            out.print(escape(f"{abort.job}: {abort.reason}"))

    if failures:
        out.header(f"{len(failures)} backups failed:")
        for name in summary.qualified_failures:
            out.print(escape(name))
        if verbose:
            out.failures_table(failures)
    elif not aborted and not dry_run:
        out.header("All database backups completed successfully.")


@app.command()
def backup(
    job: str | None = JobArg,
    config_dir: Path = ConfigDirOpt,
    retention: RetentionPolicy | None = RetentionOpt,
    parallel: int = ParallelOpt,
    timeout: float | None = TimeoutOpt,
    keep_going: bool = KeepGoingOpt,
    dry_run: bool = DryRunOpt,
    mysqldump: str = MysqldumpOpt,
    verbose: int = VerboseOpt,
):
    """
    Create a backup of all databases of every job (or of JOB only).

    Each job is configured by <config-dir>/<name>.cfg. Backups are written to
    <BACKUP_DIR>/<BACKUP_SUBDIR_PREFIX>_<timestamp>[_<retention>]/ as
    <database>.<timestamp>.sql.gz.

    Exit codes: 0 all backups succeeded, 1 some backups failed, 2 invalid
    options or configuration, 3 a job could not run.
    """
    configure_logging(verbose)

    try:
        jobs = discover_jobs(config_dir, job)
    except ConfigError as exc:
        exit_from_exc(exc, message=f"Error: {exc}", code=ExitCode.USAGE)

    if dry_run:
        out.jobs_table(jobs, title="Selected jobs")

    summary = run_all(
        jobs,
        MysqldumpExecutor(binary=mysqldump),
        keep_going=keep_going,
        policy=retention,
        reporter=ConsoleReporter(dry_run=dry_run),
        parallel=parallel,
        timeout=timeout,
        dry_run=dry_run,
    )

    _report(summary, verbose=verbose, dry_run=dry_run)
    raise typer.Exit(int(exit_code_for(summary)))


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
