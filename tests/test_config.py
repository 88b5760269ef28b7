from pathlib import Path

import pytest

from dbbackup.core.config import discover_jobs, job_name_for, load_job, parse_assignments
from dbbackup.core.errors import ConfigError

VALID = """\
# nightly shop backup
DB_NAMES=(orders customers "audit log")
DB_HOST=db.internal
DB_PORT=3307
DB_USER=backup
DB_PASSWORD='p@ss word'
BACKUP_DIR=/var/backups/mysql
BACKUP_SUBDIR_PREFIX=shop
KEEP_BACKUPS_DAYS=14
"""

MINIMAL = """\
DB_NAMES="a b"
DB_HOST=localhost
DB_USER=root
BACKUP_DIR=/srv/backups
KEEP_BACKUPS_DAYS=7
"""


def test_load_job_parses_all_fields(write_config):
    path = write_config("shop", VALID)

    job = load_job(path)

    assert job.name == "shop"
    assert job.databases == ("orders", "customers", "audit log")
    assert job.connection.host == "db.internal"
    assert job.connection.port == "3307"
    assert job.connection.user == "backup"
    assert job.connection.password == "p@ss word"
    assert job.backup_dir == Path("/var/backups/mysql")
    assert job.subdir_prefix == "shop"
    assert job.keep_days == 14
    assert job.source == path


def test_load_job_applies_defaults(write_config):
    job = load_job(write_config("mini", MINIMAL))

    assert job.databases == ("a", "b")
    assert job.connection.port == "3306"
    assert job.connection.password == ""
    assert job.subdir_prefix == "mini"


def test_password_is_not_in_repr(write_config):
    job = load_job(write_config("shop", VALID))

    assert "p@ss word" not in repr(job)


def test_duplicate_databases_are_kept_in_order(write_config):
    job = load_job(write_config("dup", MINIMAL.replace('"a b"', "(a b a)")))

    assert job.databases == ("a", "b", "a")


def test_export_prefix_and_trailing_comments_are_accepted():
    values = parse_assignments("export DB_HOST=db1  # primary\nDB_NAMES=(x) # one\n")

    assert values == {"DB_HOST": "db1", "DB_NAMES": ["x"]}


def test_hash_inside_a_word_is_not_a_comment():
    values = parse_assignments(
        "DB_PASSWORD=p#ss # the password\n"
        "DB_NAMES=(a#1 b) # two databases\n"
        "DB_HOST=#primary\n"
        "DB_USER='#quoted' #comment\n"
    )

    assert values == {
        "DB_PASSWORD": "p#ss",
        "DB_NAMES": ["a#1", "b"],
        "DB_HOST": "#primary",
        "DB_USER": "#quoted",
    }


def test_values_are_not_expanded_or_executed():
    values = parse_assignments("DB_PASSWORD='$(rm -rf /)'\nDB_USER=$USER\n")

    assert values["DB_PASSWORD"] == "$(rm -rf /)"
    assert values["DB_USER"] == "$USER"


@pytest.mark.parametrize(
    "text, message",
    [
        ("DB_NAME=a\n", "unknown key DB_NAME"),
        ("DB_HOST=a\nDB_HOST=b\n", "duplicate key DB_HOST"),
        ("echo hello\n", "expected KEY=VALUE"),
        ("DB_HOST=(a b)\n", "does not accept an array"),
        ("DB_NAMES=(a b\n", "malformed array"),
        ("DB_HOST=a b\n", "single value"),
        ("DB_HOST='unterminated\n", "No closing quotation"),
    ],
)
def test_parse_assignments_rejects_malformed_input(text: str, message: str):
    with pytest.raises(ConfigError, match=message):
        parse_assignments(text)


@pytest.mark.parametrize(
    "old, new, message",
    [
        ("KEEP_BACKUPS_DAYS=7", "KEEP_BACKUPS_DAYS=seven", "must be an integer"),
        ("KEEP_BACKUPS_DAYS=7", "KEEP_BACKUPS_DAYS=-1", "must be >= 0"),
        ('DB_NAMES="a b"', "DB_NAMES=()", "at least one database"),
        ("DB_HOST=localhost\n", "", "missing required key"),
        ("DB_USER=root", "DB_USER=root\nDB_PORT=abc", "DB_PORT must be numeric"),
    ],
)
def test_load_job_rejects_invalid_values(write_config, old: str, new: str, message: str):
    path = write_config("bad", MINIMAL.replace(old, new))

    with pytest.raises(ConfigError, match=message):
        load_job(path)


def test_job_name_is_file_name_up_to_first_dot():
    assert job_name_for(Path("/etc/db-backup/shop.cfg")) == "shop"
    assert job_name_for(Path("/etc/db-backup/shop.eu.cfg")) == "shop"


def test_discover_jobs_loads_all_cfg_files_sorted(write_config):
    write_config("zeta", MINIMAL)
    write_config("alpha", MINIMAL)
    (write_config.config_dir / "notes.txt").write_text("ignored")

    jobs = discover_jobs(write_config.config_dir)

    assert [j.name for j in jobs] == ["alpha", "zeta"]


def test_discover_jobs_single_name(write_config):
    write_config("alpha", MINIMAL)
    write_config("beta", "this is not valid")

    jobs = discover_jobs(write_config.config_dir, "alpha")

    assert [j.name for j in jobs] == ["alpha"]


def test_discover_jobs_missing_named_config(write_config):
    write_config("alpha", MINIMAL)

    with pytest.raises(ConfigError, match="not found"):
        discover_jobs(write_config.config_dir, "missing")


def test_discover_jobs_rejects_path_like_names(write_config):
    with pytest.raises(ConfigError, match="Invalid job name"):
        discover_jobs(write_config.config_dir, "../etc/passwd")


def test_discover_jobs_fails_before_running_anything_on_one_bad_file(write_config):
    write_config("alpha", MINIMAL)
    write_config("beta", "DB_HOST=x\n")

    with pytest.raises(ConfigError, match="beta.cfg"):
        discover_jobs(write_config.config_dir)


def test_discover_jobs_empty_or_missing_directory(tmp_path: Path, write_config):
    with pytest.raises(ConfigError, match="No .cfg files"):
        discover_jobs(write_config.config_dir)

    with pytest.raises(ConfigError, match="not found"):
        discover_jobs(tmp_path / "nope")


def test_discover_jobs_rejects_duplicate_job_names(write_config):
    write_config("shop", MINIMAL)
    write_config("shop.eu", MINIMAL)

    with pytest.raises(ConfigError, match="both define job 'shop'"):
        discover_jobs(write_config.config_dir)
