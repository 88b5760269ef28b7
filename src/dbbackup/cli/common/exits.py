"""Exit handling utilities for the CLI."""

from enum import IntEnum
from typing import NoReturn

import typer

from dbbackup.cli.common.output import out
from dbbackup.core.runs import RunSummary


class ExitCode(IntEnum):
    """
    Process exit codes.

    Values:
        OK: Every job ran and every database backup succeeded.
        BACKUPS_FAILED: The run completed but one or more database backups failed.
        USAGE: Pre-run error (bad option, missing or malformed job config).
        JOB_ABORTED: At least one job could not run (missing output directory).
    """

    OK = 0
    BACKUPS_FAILED = 1
    USAGE = 2
    JOB_ABORTED = 3


def exit_code_for(summary: RunSummary) -> ExitCode:
    """Map a run summary to the process exit code. Aborted jobs win over failed backups."""
    if summary.aborted:
        return ExitCode.JOB_ABORTED
    if summary.failures:
        return ExitCode.BACKUPS_FAILED
    return ExitCode.OK


def exit_from_exc(exc: Exception, *, message: str, code: int = ExitCode.USAGE) -> NoReturn:
    """
    Helper function to print an error message and exit with a given code.

    Exists to satisfy pylint W0707 and to standardize error exits.
    """
    out.error(message)
    raise typer.Exit(int(code)) from exc
