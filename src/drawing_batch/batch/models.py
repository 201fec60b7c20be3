"""Domain models for batch jobs, invocations and results."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

UNKNOWN_EXIT_CODE = -1


class JobState(str, Enum):
    """Lifecycle states of one job inside a run."""

    PENDING = "pending"
    BUILDING = "building"
    RUNNING = "running"
    CLASSIFYING = "classifying"
    FINISHED = "finished"


class JobCategory(str, Enum):
    """Three-way outcome split used by the run summary."""

    SUCCESS = "success"
    FAILED_PROCESSED = "failed_processed"
    NON_PROCESSED = "non_processed"


class FailureReason(str, Enum):
    """Why a job did not end in success."""

    CONFIG_UNAVAILABLE = "config_unavailable"
    SPAWN_FAILURE = "spawn_failure"
    COMMAND_NOT_FOUND = "command_not_found"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    ARTIFACT_MISSING = "artifact_missing"
    VALIDATION_ISSUES_RECORDED = "validation_issues_recorded"
    UNEXPECTED_PIPELINE_EXCEPTION = "unexpected_pipeline_exception"


class JobMode(str, Enum):
    """How the expected artifact maps to success."""

    ARTIFACT = "artifact"
    VALIDATION = "validation"


class OutputMarker(str, Enum):
    """Failure markers recognized in engine output lines."""

    DEPENDENCY_LOAD_FAILURE = "dependency_load_failure"
    COMMAND_NOT_FOUND = "command_not_found"


@dataclass(slots=True, frozen=True)
class JobResult:
    """Immutable outcome of one dispatched job."""

    job_name: str
    source_path: Path
    category: JobCategory
    reason: FailureReason | None
    message: str
    duration_seconds: float
    exit_code: int | None
    dependency_load_failed: bool = False
    marker_lines: tuple[str, ...] = ()
    artifact_path: Path | None = None

    @property
    def succeeded(self) -> bool:
        return self.category is JobCategory.SUCCESS

    @property
    def was_processed(self) -> bool:
        """True when the engine ran the intended operation, whatever its verdict."""

        return self.category is not JobCategory.NON_PROCESSED


@dataclass(slots=True)
class Job:
    """One unit of work: a single input drawing."""

    name: str
    source_path: Path
    index: int
    payload: dict[str, Any] | None = None
    state: JobState = JobState.PENDING
    result: JobResult | None = None


@dataclass(slots=True)
class Invocation:
    """Generated control script plus the parameter bundle for one job."""

    job_name: str
    document_path: Path
    script_path: Path
    parameter_file_path: Path
    config_file_path: Path
    output_folder: Path
    expected_artifact_path: Path
    environment: dict[str, str]
    script_variables: dict[str, str]

    @property
    def generated_files(self) -> tuple[Path, ...]:
        return (self.script_path, self.parameter_file_path, self.config_file_path)

    def dispose(self) -> None:
        """Delete generated files; failures are logged, never raised."""

        for path in self.generated_files:
            try:
                path.unlink(missing_ok=True)
            except OSError:
                logger.debug("Could not delete %s for %s", path, self.job_name, exc_info=True)


@dataclass(slots=True)
class BatchRun:
    """State of one batch run across all workers."""

    run_stamp: str
    started_at: datetime
    input_dir: Path
    output_root: Path
    output_folder: Path
    jobs: list[Job]
    mode: JobMode = JobMode.VALIDATION
    results: list[JobResult] = field(default_factory=list)
    dispatched: int = 0
    cancelled: bool = False
    finished_at: datetime | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def mark_dispatched(self) -> None:
        with self._lock:
            self.dispatched += 1

    def record(self, result: JobResult) -> int:
        """Append a result and return the number of completed jobs."""

        with self._lock:
            self.results.append(result)
            return len(self.results)

    def snapshot_results(self) -> list[JobResult]:
        with self._lock:
            return list(self.results)
