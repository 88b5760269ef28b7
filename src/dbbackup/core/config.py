"""Job descriptor source.

Job configuration lives in ``<config-dir>/<name>.cfg`` files written as
shell-style ``KEY=VALUE`` assignments::

    # /etc/db-backup/shop.cfg
    DB_NAMES=(orders customers "audit log")
    DB_HOST=db.internal
    DB_PORT=3306
    DB_USER=backup
    DB_PASSWORD='s3cr3t'
    BACKUP_DIR=/var/backups/mysql
    BACKUP_SUBDIR_PREFIX=shop
    KEEP_BACKUPS_DAYS=14

The files are tokenized with :mod:`shlex` and never executed: there is no
variable expansion, command substitution or conditional logic. As in the
shell, an unquoted ``#`` starts a comment only at the beginning of a word,
so ``DB_PASSWORD=p#ss`` keeps its ``#``. Unknown keys
and malformed lines are rejected so that a typo cannot silently change what
gets backed up.
"""

from __future__ import annotations

import logging
import re
import shlex
from pathlib import Path

from dbbackup.core.errors import ConfigError
from dbbackup.core.jobs import DEFAULT_MYSQL_PORT, ConnectionParams, JobDescriptor

logger = logging.getLogger(__name__)

CONFIG_SUFFIX = ".cfg"

REQUIRED_KEYS = frozenset(
    {"DB_NAMES", "DB_HOST", "DB_USER", "BACKUP_DIR", "KEEP_BACKUPS_DAYS"}
)
OPTIONAL_KEYS = frozenset({"DB_PORT", "DB_PASSWORD", "BACKUP_SUBDIR_PREFIX"})
KNOWN_KEYS = REQUIRED_KEYS | OPTIONAL_KEYS

_ASSIGNMENT_RE = re.compile(r"^(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)=(.*)$")
_JOB_NAME_RE = re.compile(r"^[^/\\]+$")


def job_name_for(path: Path) -> str:
    """Return the job name of a config file: its file name up to the first dot."""
    return path.name.split(".", 1)[0]


def _strip_comment(raw: str) -> str:
    """Drop a trailing comment: an unquoted ``#`` at the start of a word."""
    quote = None
    escaped = False
    for i, ch in enumerate(raw):
        if escaped:
            escaped = False
        elif quote:
            if ch == quote:
                quote = None
            elif ch == "\\" and quote == '"':
                escaped = True
        elif ch == "\\":
            escaped = True
        elif ch in "'\"":
            quote = ch
        elif ch == "#" and i > 0 and raw[i - 1] in " \t()":
            return raw[:i]
    return raw


def _tokenize(raw: str, where: str) -> list[str]:
    """Split a raw value using shell quoting rules, keeping ``(`` and ``)`` apart."""
    lexer = shlex.shlex(_strip_comment(raw), posix=True, punctuation_chars="()")
    lexer.whitespace_split = True
    lexer.commenters = ""
    try:
        return list(lexer)
    except ValueError as exc:
        raise ConfigError(f"{where}: {exc}") from exc


def _parse_value(key: str, raw: str, where: str) -> str | list[str]:
    """Turn the right-hand side of an assignment into a scalar or a list."""
    tokens = _tokenize(raw, where)

    if tokens and tokens[0] == "(":
        if key != "DB_NAMES":
            raise ConfigError(f"{where}: {key} does not accept an array value")
        if tokens[-1] != ")" or "(" in tokens[1:] or ")" in tokens[1:-1]:
            raise ConfigError(f"{where}: malformed array for {key}")
        return tokens[1:-1]

    if "(" in tokens or ")" in tokens:
        raise ConfigError(f"{where}: unexpected parenthesis in {key}")

    if key == "DB_NAMES":
        return [name for token in tokens for name in token.split()]

    if len(tokens) > 1:
        raise ConfigError(f"{where}: {key} expects a single value (quote it if it contains spaces)")
    return tokens[0] if tokens else ""


def parse_assignments(text: str, *, source: str = "<config>") -> dict[str, str | list[str]]:
    """
    Parse the ``KEY=VALUE`` lines of a config unit.

    Blank lines and ``#`` comments are ignored, a leading ``export`` is
    accepted. Every other line must be an assignment to a known key, and
    each key may be assigned only once.

    Args:
        text: Content of the config file.
        source: Name used in error messages.

    Returns:
        Mapping of key to value. ``DB_NAMES`` is always a list.

    Raises:
        ConfigError: On malformed lines, unknown or duplicate keys.
    """
    values: dict[str, str | list[str]] = {}

    for lineno, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        where = f"{source}:{lineno}"
        match = _ASSIGNMENT_RE.match(stripped)
        if not match:
            raise ConfigError(f"{where}: expected KEY=VALUE, got {stripped!r}")

        key, raw = match.group(1), match.group(2)
        if key not in KNOWN_KEYS:
            raise ConfigError(f"{where}: unknown key {key}")
        if key in values:
            raise ConfigError(f"{where}: duplicate key {key}")

        values[key] = _parse_value(key, raw, where)

    return values


def _parse_int(value: str, key: str, source: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigError(f"{source}: {key} must be an integer, got {value!r}") from exc


def build_descriptor(
    name: str,
    values: dict[str, str | list[str]],
    *,
    source: Path | None = None,
) -> JobDescriptor:
    """
    Validate parsed values and build a JobDescriptor.

    Raises:
        ConfigError: If required keys are missing or values are invalid.
    """
    where = str(source) if source else name

    missing = sorted(REQUIRED_KEYS - values.keys())
    if missing:
        raise ConfigError(f"{where}: missing required key(s): {', '.join(missing)}")

    databases = values["DB_NAMES"]
    if not isinstance(databases, list) or not databases:
        raise ConfigError(f"{where}: DB_NAMES must list at least one database")

    keep_days = _parse_int(str(values["KEEP_BACKUPS_DAYS"]), "KEEP_BACKUPS_DAYS", where)
    if keep_days < 0:
        raise ConfigError(f"{where}: KEEP_BACKUPS_DAYS must be >= 0, got {keep_days}")

    port = str(values.get("DB_PORT") or DEFAULT_MYSQL_PORT)
    if not port.isdigit():
        raise ConfigError(f"{where}: DB_PORT must be numeric, got {port!r}")

    backup_dir = str(values["BACKUP_DIR"])
    if not backup_dir:
        raise ConfigError(f"{where}: BACKUP_DIR must not be empty")

    host = str(values["DB_HOST"])
    if not host:
        raise ConfigError(f"{where}: DB_HOST must not be empty")

    return JobDescriptor(
        name=name,
        databases=tuple(databases),
        connection=ConnectionParams(
            host=host,
            port=port,
            user=str(values["DB_USER"]),
            password=str(values.get("DB_PASSWORD", "")),
        ),
        backup_dir=Path(backup_dir).expanduser(),
        subdir_prefix=str(values.get("BACKUP_SUBDIR_PREFIX") or name),
        keep_days=keep_days,
        source=source,
    )


def load_job(path: Path) -> JobDescriptor:
    """
    Load a single job descriptor from a ``.cfg`` file.

    Raises:
        ConfigError: If the file cannot be read or is invalid.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc

    values = parse_assignments(text, source=str(path))
    job = build_descriptor(job_name_for(path), values, source=path)
    logger.debug("Loaded job %s from %s (%d database(s))", job.name, path, len(job.databases))
    return job


def discover_jobs(config_dir: Path, name: str | None = None) -> list[JobDescriptor]:
    """
    Load job descriptors from a configuration directory.

    All descriptors are loaded and validated up front, so a broken config
    unit stops the run before any job executes.

    Args:
        config_dir: Directory containing ``*.cfg`` files.
        name: Optional job name. When given only ``<config_dir>/<name>.cfg``
              is loaded.

    Returns:
        Descriptors sorted by config file name.

    Raises:
        ConfigError: If the directory or the requested config is missing,
                     no config files exist, or any file is invalid.
    """
    if not config_dir.is_dir():
        raise ConfigError(f"Config directory {config_dir} not found.")

    if name is not None:
        if not _JOB_NAME_RE.match(name):
            raise ConfigError(f"Invalid job name: {name!r}")
        path = config_dir / f"{name}{CONFIG_SUFFIX}"
        if not path.is_file():
            raise ConfigError(f"Config file {path} not found.")
        return [load_job(path)]

    paths = sorted(p for p in config_dir.glob(f"*{CONFIG_SUFFIX}") if p.is_file())
    if not paths:
        raise ConfigError(f"No {CONFIG_SUFFIX} files found in {config_dir}.")

    jobs: list[JobDescriptor] = []
    seen: dict[str, Path] = {}
    for path in paths:
        job = load_job(path)
        if job.name in seen:
            raise ConfigError(
                f"Config files {seen[job.name]} and {path} both define job {job.name!r}"
            )
        seen[job.name] = path
        jobs.append(job)

    return jobs
