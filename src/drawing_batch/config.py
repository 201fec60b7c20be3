"""Runtime configuration for the batch orchestrator."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_ENGINE_PATH = Path(r"C:\Program Files\Autodesk\AutoCAD 2025\accoreconsole.exe")
DEFAULT_ENGINE_ARGUMENTS: tuple[str, ...] = ("{document}", "{script}")
DEFAULT_COMMAND = "ProcessWithJsonBatch"
SUPPORTED_MODES = ("auto", "validation", "artifact")


class SettingsError(ValueError):
    """Invalid or unreadable configuration."""


@dataclass(slots=True)
class EngineSettings:
    """External engine executable and what it loads."""

    executable: Path = DEFAULT_ENGINE_PATH
    arguments: tuple[str, ...] = DEFAULT_ENGINE_ARGUMENTS
    load_dependencies: tuple[Path, ...] = ()
    command: str = DEFAULT_COMMAND
    available_commands: tuple[str, ...] = ()


@dataclass(slots=True)
class BatchSettings:
    """Dispatcher, deadline and classification tunables."""

    max_parallel: int = 4
    job_timeout_seconds: float = 360.0
    kill_wait_seconds: float = 10.0
    release_grace_seconds: float = 0.5
    input_pattern: str = "*.dwg"
    artifact_extension: str = ".json"
    mode: str = "auto"
    temp_script_dir: Path | None = None
    timestamped_output: bool = True
    verbose: bool = False


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    engine: EngineSettings = field(default_factory=EngineSettings)
    batch: BatchSettings = field(default_factory=BatchSettings)

    @classmethod
    def from_env(cls, settings_path: Path | None = None) -> Settings:
        """Load settings from an optional JSON file, then apply environment overrides.

        The JSON file uses the ``BatchProcessorSettings`` section layout of the
        legacy ``appsettings.json`` so existing deployments keep working.
        """

        path = settings_path
        if path is None:
            raw_path = os.getenv("DRAWING_BATCH_SETTINGS_PATH", "").strip()
            path = Path(raw_path) if raw_path else None
        base = cls.from_file(path) if path is not None else cls()
        engine = base.engine
        batch = base.batch

        return cls(
            engine=EngineSettings(
                executable=Path(os.getenv("DRAWING_BATCH_ENGINE_PATH", str(engine.executable))),
                arguments=_env_tuple("DRAWING_BATCH_ENGINE_ARGUMENTS", engine.arguments),
                load_dependencies=tuple(
                    Path(value)
                    for value in _env_tuple(
                        "DRAWING_BATCH_LOAD_DEPENDENCIES",
                        tuple(str(item) for item in engine.load_dependencies),
                    )
                ),
                command=os.getenv("DRAWING_BATCH_COMMAND", engine.command),
                available_commands=_env_tuple(
                    "DRAWING_BATCH_AVAILABLE_COMMANDS",
                    engine.available_commands,
                ),
            ),
            batch=BatchSettings(
                max_parallel=_env_int("DRAWING_BATCH_MAX_PARALLEL", batch.max_parallel),
                job_timeout_seconds=_env_float(
                    "DRAWING_BATCH_JOB_TIMEOUT_SECONDS",
                    batch.job_timeout_seconds,
                ),
                kill_wait_seconds=_env_float(
                    "DRAWING_BATCH_KILL_WAIT_SECONDS",
                    batch.kill_wait_seconds,
                ),
                release_grace_seconds=_env_float(
                    "DRAWING_BATCH_RELEASE_GRACE_SECONDS",
                    batch.release_grace_seconds,
                ),
                input_pattern=os.getenv("DRAWING_BATCH_INPUT_PATTERN", batch.input_pattern),
                artifact_extension=os.getenv(
                    "DRAWING_BATCH_ARTIFACT_EXTENSION",
                    batch.artifact_extension,
                ),
                mode=os.getenv("DRAWING_BATCH_MODE", batch.mode).strip().lower(),
                temp_script_dir=_env_path("DRAWING_BATCH_TEMP_SCRIPT_DIR", batch.temp_script_dir),
                timestamped_output=_env_bool(
                    "DRAWING_BATCH_TIMESTAMPED_OUTPUT",
                    default=batch.timestamped_output,
                ),
                verbose=_env_bool("DRAWING_BATCH_VERBOSE", default=batch.verbose),
            ),
        )

    @classmethod
    def from_file(cls, path: Path) -> Settings:
        """Read the ``BatchProcessorSettings`` section of a JSON settings file."""

        try:
            document = json.loads(path.read_text("utf-8"))
        except FileNotFoundError as error:
            raise SettingsError(f"Settings file not found: {path}") from error
        except (OSError, json.JSONDecodeError) as error:
            raise SettingsError(f"Could not read settings file {path}: {error}") from error
        if not isinstance(document, dict):
            raise SettingsError(f"Expected JSON object in {path}")

        section: dict[str, Any] = document.get("BatchProcessorSettings", document)
        defaults_engine = EngineSettings()
        defaults_batch = BatchSettings()
        temp_dir = str(section.get("TempScriptFolder") or "").strip()
        return cls(
            engine=EngineSettings(
                executable=Path(section.get("AutoCADPath") or defaults_engine.executable),
                arguments=tuple(section.get("EngineArguments") or defaults_engine.arguments),
                load_dependencies=tuple(Path(item) for item in section.get("DllsToLoad") or ()),
                command=str(section.get("MainCommand") or defaults_engine.command),
                available_commands=tuple(section.get("AvailableCommands") or ()),
            ),
            batch=BatchSettings(
                max_parallel=_section_int(
                    section, "MaxParallelProcesses", defaults_batch.max_parallel,
                ),
                job_timeout_seconds=_section_float(
                    section, "JobTimeoutSeconds", defaults_batch.job_timeout_seconds,
                ),
                temp_script_dir=Path(temp_dir) if temp_dir else None,
                verbose=bool(section.get("EnableVerboseLogging", defaults_batch.verbose)),
            ),
        )

    def validate(self) -> None:
        """Raise SettingsError if values cannot drive a batch run."""

        if self.batch.max_parallel <= 0:
            raise SettingsError("DRAWING_BATCH_MAX_PARALLEL must be a positive integer.")
        if self.batch.job_timeout_seconds <= 0:
            raise SettingsError("DRAWING_BATCH_JOB_TIMEOUT_SECONDS must be > 0.")
        if self.batch.kill_wait_seconds < 0:
            raise SettingsError("DRAWING_BATCH_KILL_WAIT_SECONDS must be >= 0.")
        if self.batch.release_grace_seconds < 0:
            raise SettingsError("DRAWING_BATCH_RELEASE_GRACE_SECONDS must be >= 0.")
        if self.batch.mode not in SUPPORTED_MODES:
            raise SettingsError(
                f"Unsupported mode {self.batch.mode!r}. Expected one of: "
                + ", ".join(SUPPORTED_MODES),
            )
        if not self.batch.artifact_extension.startswith("."):
            raise SettingsError(
                "DRAWING_BATCH_ARTIFACT_EXTENSION must start with a dot, "
                f"got {self.batch.artifact_extension!r}.",
            )
        if not self.engine.command.strip():
            raise SettingsError("Engine command must not be empty.")
        if not any("{script}" in argument for argument in self.engine.arguments):
            raise SettingsError("Engine arguments must include a {script} placeholder.")
        for argument in self.engine.arguments:
            try:
                argument.format(document="", script="")
            except (KeyError, IndexError, ValueError) as error:
                raise SettingsError(
                    f"Unsupported engine argument placeholder in {argument!r}: {error}",
                ) from error


def _env_tuple(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    separator = ";" if ";" in raw else ","
    return tuple(part.strip() for part in raw.split(separator) if part.strip())


def _env_path(name: str, default: Path | None) -> Path | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    raw = raw.strip()
    return Path(raw) if raw else None


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as error:
        raise SettingsError(f"Invalid integer value for {name}: {raw!r}") from error


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as error:
        raise SettingsError(f"Invalid number value for {name}: {raw!r}") from error


def _section_int(section: dict[str, Any], key: str, default: int) -> int:
    raw = section.get(key, default)
    try:
        return int(raw)
    except (TypeError, ValueError) as error:
        raise SettingsError(f"Invalid integer value for {key}: {raw!r}") from error


def _section_float(section: dict[str, Any], key: str, default: float) -> float:
    raw = section.get(key, default)
    try:
        return float(raw)
    except (TypeError, ValueError) as error:
        raise SettingsError(f"Invalid number value for {key}: {raw!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise SettingsError(f"Invalid boolean value for {name}: {value!r}")
