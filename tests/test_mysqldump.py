import gzip
import sys
from pathlib import Path

from dbbackup.core.adapters.mysqldump import MysqldumpExecutor
from dbbackup.core.backups import FailureStage
from dbbackup.core.jobs import ConnectionParams

CONNECTION = ConnectionParams(host="db.internal", port="3307", user="backup", password="s3cr3t")


class _PythonDumpExecutor(MysqldumpExecutor):
    """Runs a Python snippet in place of mysqldump."""

    def __init__(self, script: str):
        super().__init__()
        self.script = script

    def build_command(self, database, connection):
        return [sys.executable, "-c", self.script, database]


def test_build_command_matches_mysqldump_options():
    command = MysqldumpExecutor().build_command("shop", CONNECTION)

    assert command == [
        "mysqldump",
        "-h",
        "db.internal",
        "-P",
        "3307",
        "-u",
        "backup",
        "--single-transaction",
        "--routines",
        "--triggers",
        "--events",
        "shop",
    ]
    assert "s3cr3t" not in " ".join(command)


def test_build_env_passes_password_via_environment(monkeypatch):
    monkeypatch.setenv("MYSQL_PWD", "inherited")
    executor = MysqldumpExecutor()

    assert executor.build_env(CONNECTION)["MYSQL_PWD"] == "s3cr3t"
    assert "MYSQL_PWD" not in executor.build_env(ConnectionParams(host="h", user="u"))


def test_execute_writes_gzip_artifact(tmp_path: Path):
    script = (
        "import os, sys; "
        "sys.stdout.write('-- dump of ' + sys.argv[1] + ' pwd=' + os.environ['MYSQL_PWD'])"
    )
    destination = tmp_path / "shop.2024-03-09_070502.sql.gz"

    outcome = _PythonDumpExecutor(script).execute("shop", CONNECTION, destination)

    assert outcome.ok is True
    assert outcome.path == destination
    assert outcome.describe() == ""
    with gzip.open(destination, "rt") as fh:
        assert fh.read() == "-- dump of shop pwd=s3cr3t"


def test_execute_reports_dump_exit_status_and_stderr(tmp_path: Path):
    script = (
        "import sys; "
        "sys.stderr.write(\"mysqldump: Got error: 1049: Unknown database 'nope'\\n\"); "
        "sys.exit(2)"
    )
    destination = tmp_path / "nope.sql.gz"

    outcome = _PythonDumpExecutor(script).execute("nope", CONNECTION, destination)

    assert outcome.ok is False
    assert outcome.stage == FailureStage.DUMP
    assert outcome.exit_status == 2
    assert "Unknown database" in outcome.cause
    assert "exit status 2" in outcome.describe()
    # partial artifacts are left in place
    assert destination.exists()


def test_execute_reports_missing_binary(tmp_path: Path):
    executor = MysqldumpExecutor(binary=str(tmp_path / "no-such-mysqldump"))

    outcome = executor.execute("shop", CONNECTION, tmp_path / "shop.sql.gz")

    assert outcome.ok is False
    assert outcome.stage == FailureStage.DUMP
    assert "cannot start" in outcome.cause


def test_execute_reports_compression_failure(tmp_path: Path):
    script = "import sys; sys.stdout.write('data' * 1000)"
    destination = tmp_path / "missing-dir" / "shop.sql.gz"

    outcome = _PythonDumpExecutor(script).execute("shop", CONNECTION, destination)

    assert outcome.ok is False
    assert outcome.stage == FailureStage.COMPRESS
    assert "cannot write" in outcome.cause


def test_execute_kills_dump_on_timeout(tmp_path: Path):
    script = "import time; time.sleep(30)"

    outcome = _PythonDumpExecutor(script).execute(
        "slow", CONNECTION, tmp_path / "slow.sql.gz", timeout=0.5
    )

    assert outcome.ok is False
    assert outcome.stage == FailureStage.TIMEOUT
    assert "0.5s" in outcome.cause


def test_execute_within_timeout_succeeds(tmp_path: Path):
    script = "import time, sys; time.sleep(0.2); sys.stdout.write('ok')"
    destination = tmp_path / "db.sql.gz"

    outcome = _PythonDumpExecutor(script).execute("db", CONNECTION, destination, timeout=10)

    assert outcome.ok is True
    with gzip.open(destination, "rt") as fh:
        assert fh.read() == "ok"


class _LateTimer:
    """Timer that only fires when cancelled, after the dump already finished."""

    def __init__(self, interval, function):
        self.function = function
        self.daemon = False

    def start(self):
        pass

    def cancel(self):
        self.function()


def test_timer_firing_after_a_clean_exit_is_not_a_timeout(tmp_path: Path, monkeypatch):
    monkeypatch.setattr("dbbackup.core.adapters.mysqldump.threading.Timer", _LateTimer)
    destination = tmp_path / "db.sql.gz"

    outcome = _PythonDumpExecutor("import sys; sys.stdout.write('ok')").execute(
        "db", CONNECTION, destination, timeout=10
    )

    assert outcome.ok is True
    with gzip.open(destination, "rt") as fh:
        assert fh.read() == "ok"
