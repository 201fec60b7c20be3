"""Shared test fixtures."""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import pytest

from drawing_batch.config import BatchSettings, EngineSettings, Settings

FAKE_ENGINE_ARGUMENTS: tuple[str, ...] = (
    "-m",
    "drawing_batch.batch.engine.fake_engine",
    "{document}",
    "{script}",
)


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch):
    """Keep DRAWING_BATCH_* variables of the host out of the tests."""
    for name in list(os.environ):
        if name.startswith("DRAWING_BATCH_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def fake_settings(tmp_path) -> Settings:
    """Settings that drive the fake engine through the current interpreter."""
    return Settings(
        engine=EngineSettings(
            executable=Path(sys.executable),
            arguments=FAKE_ENGINE_ARGUMENTS,
            command="ProcessWithJsonBatch",
        ),
        batch=BatchSettings(
            max_parallel=2,
            job_timeout_seconds=30.0,
            kill_wait_seconds=5.0,
            release_grace_seconds=0.0,
            temp_script_dir=tmp_path / "scripts",
            timestamped_output=False,
            mode="validation",
        ),
    )


def write_drawing(folder: Path, name: str, **behavior) -> Path:
    """Create a fake drawing whose content tells the fake engine what to do."""
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / f"{name}.dwg"
    path.write_text(json.dumps(behavior), "utf-8")
    return path


@pytest.fixture()
def input_dir(tmp_path) -> Path:
    folder = tmp_path / "input"
    folder.mkdir()
    return folder


@pytest.fixture()
def make_drawing(input_dir):
    def _make(name: str, **behavior) -> Path:
        return write_drawing(input_dir, name, **behavior)

    return _make
