from __future__ import annotations

import os
import sys
import time
from pathlib import Path

import pytest

# Ensure tests always import the local src tree, not an older installed wheel.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

DAY = 86400


def age_file(path: Path, days: float, *, now: float | None = None) -> Path:
    """Create ``path`` (if needed) and set its mtime to ``days`` days before ``now``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        path.write_bytes(b"old backup")
    stamp = (now if now is not None else time.time()) - days * DAY
    os.utime(path, (stamp, stamp))
    return path


@pytest.fixture
def write_config(tmp_path: Path):
    """Write a ``<name>.cfg`` job file into a config directory and return its path."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    def _write(name: str, body: str) -> Path:
        path = config_dir / f"{name}.cfg"
        path.write_text(body)
        return path

    _write.config_dir = config_dir
    return _write
