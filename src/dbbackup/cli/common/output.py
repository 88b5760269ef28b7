"""Output formatting utilities for the CLI."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

_THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
    }
)

console = Console(theme=_THEME, highlight=False)
err_console = Console(theme=_THEME, stderr=True, highlight=False)

_LOG_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)

_MAX_TABLE_CAUSE_WIDTH = 500


def truncate(text: str, max_len: int) -> str:
    """Return text capped at max_len characters using an ASCII ellipsis."""
    if max_len <= 3 or len(text) <= max_len:
        return text[:max_len]
    return f"{text[: max_len - 3]}..."


def configure_logging(verbosity: int = 0) -> None:
    """
    Route library logging to stderr through Rich.

    ``verbosity`` 0 shows warnings and errors, 1 adds info, 2 or more adds debug.
    """
    level = _LOG_LEVELS[min(max(verbosity, 0), len(_LOG_LEVELS) - 1)]
    handler = RichHandler(console=err_console, show_path=verbosity >= 2, markup=False)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    root = logging.getLogger("dbbackup")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages and tables."""

    def info(self, msg: str) -> None:
        """Print an info message."""
        console.print(f"[title]›[/] {escape(msg)}")

    def warn(self, msg: str) -> None:
        """Print a warning message."""
        console.print(f"[warn]⚠[/] {escape(msg)}")

    def error(self, msg: str) -> None:
        """Print an error message to stderr."""
        err_console.print(f"[err]✗[/] {escape(msg)}")

    def header(self, title: str) -> None:
        """Print a header message."""
        console.print()
        console.print(f"[title]{escape(title)}[/]")

    def print(self, msg: str) -> None:
        """Print a raw Rich-formatted message to the console."""
        console.print(msg)

    def database_line(self, database: str, ok: bool, detail: str | None = None) -> None:
        """Print the pass/fail line of one database backup."""
        status = "[ok]done[/]" if ok else "[err]failed[/]"
        line = f"  Database: {escape(database)} ... {status}"
        if detail:
            line += f" [meta]({escape(detail)})[/]"
        console.print(line)

    def jobs_table(self, jobs: Iterable[Any], title: str = "Jobs") -> None:
        """
        Expects objects with .name .databases .backup_dir .keep_days
        (like dbbackup.core.jobs.JobDescriptor)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Job", style="ok", no_wrap=True)
        t.add_column("Databases")
        t.add_column("Backup dir", style="meta")
        t.add_column("Keep days", justify="right")

        for j in jobs:
            t.add_row(
                escape(j.name),
                escape(", ".join(j.databases)),
                escape(str(j.backup_dir)),
                str(j.keep_days),
            )

        console.print(t)

    def failures_table(self, failures: Iterable[Any], title: str = "Failed backups") -> None:
        """
        Expects objects with .qualified_name .stage .cause
        (e.g. dbbackup.core.runs.FailureRecord)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Backup", style="err", no_wrap=True)
        t.add_column("Stage", style="meta")
        t.add_column("Cause", overflow="fold")

        for f in failures:
            stage = getattr(f.stage, "value", f.stage) or ""
            cause = truncate(f.cause or "", _MAX_TABLE_CAUSE_WIDTH)
            t.add_row(escape(f.qualified_name), escape(str(stage)), escape(cause))

        console.print(t)


out = Out()
