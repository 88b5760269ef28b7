"""Common CLI options for the CLI."""

from pathlib import Path

import typer

DEFAULT_CONFIG_DIR = Path("/etc/db-backup")


def _positive_timeout(value: float | None) -> float | None:
    if value is not None and value <= 0:
        raise typer.BadParameter("must be greater than 0")
    return value


JobArg = typer.Argument(
    None,
    help="Name of the job to run (<config-dir>/<JOB>.cfg). Runs every *.cfg when omitted.",
    show_default=False,
)

ConfigDirOpt = typer.Option(
    DEFAULT_CONFIG_DIR,
    "--config-dir",
    "-c",
    envvar="DB_BACKUP_CONFIG_DIR",
    file_okay=False,
    help="Directory containing job configurations",
)

RetentionOpt = typer.Option(
    None,
    "--retention",
    "-r",
    case_sensitive=False,
    help="Retention policy label, used as a suffix of the backup subdirectory name",
    show_default=False,
)

ParallelOpt = typer.Option(
    1,
    "--parallel",
    "-n",
    min=1,
    help="Number of databases of a job to back up in parallel",
)

TimeoutOpt = typer.Option(
    None,
    "--timeout",
    callback=_positive_timeout,
    help="Per-database timeout in seconds (no timeout when omitted)",
    show_default=False,
)

KeepGoingOpt = typer.Option(
    False,
    "--keep-going",
    help="Continue with the remaining jobs when a job cannot run",
)

DryRunOpt = typer.Option(
    False,
    "--dry-run",
    help="Show what would be deleted and backed up, but don't change anything",
)

MysqldumpOpt = typer.Option(
    "mysqldump",
    "--mysqldump",
    envvar="DB_BACKUP_MYSQLDUMP",
    help="Path of the mysqldump binary",
)

VerboseOpt = typer.Option(
    0,
    "--verbose",
    "-v",
    count=True,
    help="Increase log verbosity (-v info, -vv debug)",
)
