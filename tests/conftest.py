from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest
from helpers import RecordingSink


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def write_script(tmp_path: Path):
    """Create an executable shell script and return its path."""
    if os.name == "nt":
        pytest.skip("shell scripts require a POSIX platform")

    def _write(name: str, body: str, directory: Path | None = None) -> Path:
        target_dir = directory or tmp_path
        target_dir.mkdir(parents=True, exist_ok=True)
        script = target_dir / name
        script.write_text(f"#!/bin/sh\n{body}\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return _write
