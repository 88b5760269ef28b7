"""Exception hierarchy for the backup engine.

Errors raised here describe conditions that stop a whole job or a whole run.
Per-database failures are never raised; they are returned as
``BackupOutcome`` values so that one database cannot abort its siblings.
"""


class BackupToolError(Exception):
    """Base class for errors raised by the backup engine."""


class ConfigError(BackupToolError):
    """Raised when job configuration cannot be found or parsed."""


class RetentionError(BackupToolError):
    """Raised when a retention sweep cannot run at all."""


class JobAbortedError(BackupToolError):
    """Raised when a job cannot run (for example its output directory is missing)."""

    def __init__(self, job: str, reason: str):
        super().__init__(f"Job {job!r} aborted: {reason}")
        self.job = job
        self.reason = reason
