from __future__ import annotations

import json
from pathlib import Path

import allure
import pytest

from drawing_batch.config import (
    DEFAULT_COMMAND,
    BatchSettings,
    EngineSettings,
    Settings,
    SettingsError,
)

pytestmark = [
    allure.epic("Batch Orchestration"),
    allure.feature("Configuration"),
]


def test_from_env_defaults() -> None:
    settings = Settings.from_env()

    assert settings.engine.command == DEFAULT_COMMAND
    assert settings.engine.arguments == ("{document}", "{script}")
    assert settings.batch.max_parallel == 4
    assert settings.batch.job_timeout_seconds == 360.0
    assert settings.batch.kill_wait_seconds == 10.0
    assert settings.batch.release_grace_seconds == 0.5
    assert settings.batch.mode == "auto"
    assert settings.batch.timestamped_output is True
    settings.validate()


def test_from_env_applies_overrides(monkeypatch) -> None:
    monkeypatch.setenv("DRAWING_BATCH_MAX_PARALLEL", "8")
    monkeypatch.setenv("DRAWING_BATCH_JOB_TIMEOUT_SECONDS", "12.5")
    monkeypatch.setenv("DRAWING_BATCH_ENGINE_ARGUMENTS", "/i;{document};/s;{script}")
    monkeypatch.setenv("DRAWING_BATCH_LOAD_DEPENDENCIES", "C:/plugins/a.dll, C:/plugins/b.dll")
    monkeypatch.setenv("DRAWING_BATCH_MODE", " Artifact ")
    monkeypatch.setenv("DRAWING_BATCH_TIMESTAMPED_OUTPUT", "off")

    settings = Settings.from_env()

    assert settings.batch.max_parallel == 8
    assert settings.batch.job_timeout_seconds == 12.5
    assert settings.engine.arguments == ("/i", "{document}", "/s", "{script}")
    assert settings.engine.load_dependencies == (
        Path("C:/plugins/a.dll"),
        Path("C:/plugins/b.dll"),
    )
    assert settings.batch.mode == "artifact"
    assert settings.batch.timestamped_output is False


def test_from_env_rejects_invalid_numbers(monkeypatch) -> None:
    monkeypatch.setenv("DRAWING_BATCH_MAX_PARALLEL", "many")

    with pytest.raises(SettingsError, match="DRAWING_BATCH_MAX_PARALLEL"):
        Settings.from_env()


def test_from_env_rejects_invalid_boolean(monkeypatch) -> None:
    monkeypatch.setenv("DRAWING_BATCH_VERBOSE", "maybe")

    with pytest.raises(SettingsError, match="DRAWING_BATCH_VERBOSE"):
        Settings.from_env()


def test_from_file_reads_processor_section(tmp_path) -> None:
    path = tmp_path / "appsettings.json"
    path.write_text(
        json.dumps(
            {
                "BatchProcessorSettings": {
                    "AutoCADPath": "C:/acad/accoreconsole.exe",
                    "DllsToLoad": ["C:/plugins/UIPlugin.dll"],
                    "MainCommand": "GenerateScrutinyReportBatch",
                    "AvailableCommands": ["ProcessWithJsonBatch", "GenerateScrutinyReportBatch"],
                    "MaxParallelProcesses": 6,
                    "TempScriptFolder": str(tmp_path / "scripts"),
                    "EnableVerboseLogging": True,
                },
            },
        ),
        "utf-8",
    )

    settings = Settings.from_file(path)

    assert settings.engine.executable == Path("C:/acad/accoreconsole.exe")
    assert settings.engine.load_dependencies == (Path("C:/plugins/UIPlugin.dll"),)
    assert settings.engine.command == "GenerateScrutinyReportBatch"
    assert len(settings.engine.available_commands) == 2
    assert settings.batch.max_parallel == 6
    assert settings.batch.temp_script_dir == tmp_path / "scripts"
    assert settings.batch.verbose is True


def test_from_env_layers_environment_over_settings_file(tmp_path, monkeypatch) -> None:
    path = tmp_path / "appsettings.json"
    path.write_text(json.dumps({"BatchProcessorSettings": {"MaxParallelProcesses": 6}}), "utf-8")
    monkeypatch.setenv("DRAWING_BATCH_SETTINGS_PATH", str(path))
    monkeypatch.setenv("DRAWING_BATCH_MAX_PARALLEL", "3")

    assert Settings.from_env().batch.max_parallel == 3


def test_from_file_missing_file(tmp_path) -> None:
    with pytest.raises(SettingsError, match="not found"):
        Settings.from_file(tmp_path / "missing.json")


def test_from_file_rejects_non_object(tmp_path) -> None:
    path = tmp_path / "appsettings.json"
    path.write_text("[1, 2]", "utf-8")

    with pytest.raises(SettingsError, match="Expected JSON object"):
        Settings.from_file(path)


@pytest.mark.parametrize(
    ("section", "message"),
    [
        ({"MaxParallelProcesses": "four"}, "MaxParallelProcesses"),
        ({"MaxParallelProcesses": None}, "MaxParallelProcesses"),
        ({"JobTimeoutSeconds": "soon"}, "JobTimeoutSeconds"),
        ({"JobTimeoutSeconds": [600]}, "JobTimeoutSeconds"),
    ],
)
def test_from_file_rejects_non_numeric_values(tmp_path, section, message) -> None:
    path = tmp_path / "appsettings.json"
    path.write_text(json.dumps({"BatchProcessorSettings": section}), "utf-8")

    with pytest.raises(SettingsError, match=message):
        Settings.from_file(path)


@pytest.mark.parametrize(
    ("settings", "message"),
    [
        (Settings(batch=BatchSettings(max_parallel=0)), "MAX_PARALLEL"),
        (Settings(batch=BatchSettings(job_timeout_seconds=0)), "TIMEOUT"),
        (Settings(batch=BatchSettings(mode="strict")), "Unsupported mode"),
        (Settings(batch=BatchSettings(artifact_extension="json")), "start with a dot"),
        (Settings(engine=EngineSettings(command="  ")), "must not be empty"),
        (Settings(engine=EngineSettings(arguments=("{document}",))), "placeholder"),
        (
            Settings(engine=EngineSettings(arguments=("{document}", "{script}", "{output}"))),
            "Unsupported engine argument placeholder",
        ),
    ],
)
def test_validate_rejects_unusable_settings(settings: Settings, message: str) -> None:
    with pytest.raises(SettingsError, match=message):
        settings.validate()
