"""Deterministic job outcome classification."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from drawing_batch.batch.engine.base import EngineRunResult
from drawing_batch.batch.models import FailureReason, JobCategory, JobMode, OutputMarker

OUTCOME_CLASSIFIER_VERSION = 1

REPORT_COMMAND_NAMES: tuple[str, ...] = ("generatescrutinyreportbatch",)
REPORT_EXTENSIONS: tuple[str, ...] = (".pdf", ".docx", ".doc", ".xlsx", ".xls", ".json", ".txt")


@dataclass(slots=True, frozen=True)
class OutcomeClassification:
    """Category, reason and operator message for one job."""

    category: JobCategory
    reason: FailureReason | None
    message: str
    dependency_load_failed: bool = False


def resolve_mode(setting: str, command: str) -> JobMode:
    """Map the configured mode to a concrete one.

    ``auto`` treats report-generating commands as artifact mode and every
    other command as validation mode, where the artifact is an issue log.
    """

    normalized = setting.strip().lower()
    if normalized == JobMode.ARTIFACT.value:
        return JobMode.ARTIFACT
    if normalized == JobMode.VALIDATION.value:
        return JobMode.VALIDATION
    if normalized != "auto":
        raise ValueError(f"Unsupported mode: {setting!r}")

    lowered = command.lower()
    if any(name in lowered for name in REPORT_COMMAND_NAMES):
        return JobMode.ARTIFACT
    if "generate" in lowered and "report" in lowered:
        return JobMode.ARTIFACT
    return JobMode.VALIDATION


def probe_artifact(
    output_folder: Path,
    job_name: str,
    *,
    mode: JobMode,
    extension: str,
) -> Path | None:
    """Return the artifact produced for ``job_name`` or None.

    Validation mode only looks at the exact expected file. Artifact mode also
    accepts report formats and, last, a file of any extension whose stem is
    the job name. Files of other jobs (``Plan-2.json`` for ``Plan``) never match.
    """

    expected = output_folder / f"{job_name}{extension}"
    if expected.is_file():
        return expected
    if mode is JobMode.VALIDATION or not output_folder.is_dir():
        return None

    for candidate_extension in REPORT_EXTENSIONS:
        candidate = output_folder / f"{job_name}{candidate_extension}"
        if candidate.is_file():
            return candidate
    matches = sorted(
        path
        for path in output_folder.iterdir()
        if path.is_file() and path.stem.lower() == job_name.lower()
    )
    return matches[0] if matches else None


def classify_outcome(
    *,
    execution: EngineRunResult | None,
    mode: JobMode,
    artifact_exists: bool,
    config_unavailable: bool = False,
) -> OutcomeClassification:
    """Classify one job; the first matching rule wins."""

    if config_unavailable or execution is None:
        return OutcomeClassification(
            category=JobCategory.NON_PROCESSED,
            reason=FailureReason.CONFIG_UNAVAILABLE,
            message="No configuration available (not in parameter source and no base config)",
        )

    dependency_failed = OutputMarker.DEPENDENCY_LOAD_FAILURE in execution.markers

    if execution.spawn_error is not None:
        return OutcomeClassification(
            category=JobCategory.NON_PROCESSED,
            reason=FailureReason.SPAWN_FAILURE,
            message=execution.spawn_error,
            dependency_load_failed=dependency_failed,
        )
    if OutputMarker.COMMAND_NOT_FOUND in execution.markers:
        return OutcomeClassification(
            category=JobCategory.NON_PROCESSED,
            reason=FailureReason.COMMAND_NOT_FOUND,
            message="Command not found: engine did not recognize the batch command "
            "(plugin may not have loaded)",
            dependency_load_failed=dependency_failed,
        )
    if execution.timed_out:
        return OutcomeClassification(
            category=JobCategory.NON_PROCESSED,
            reason=FailureReason.TIMEOUT,
            message=f"Timeout: engine did not exit within the deadline "
            f"({execution.duration_seconds:.1f}s elapsed)",
            dependency_load_failed=dependency_failed,
        )
    if execution.cancelled:
        return OutcomeClassification(
            category=JobCategory.NON_PROCESSED,
            reason=FailureReason.CANCELLED,
            message="Cancelled before the engine finished",
            dependency_load_failed=dependency_failed,
        )

    if mode is JobMode.ARTIFACT:
        if artifact_exists:
            return OutcomeClassification(
                category=JobCategory.SUCCESS,
                reason=None,
                message="Artifact produced",
                dependency_load_failed=dependency_failed,
            )
        return OutcomeClassification(
            category=JobCategory.FAILED_PROCESSED,
            reason=FailureReason.ARTIFACT_MISSING,
            message=f"Engine ran (exit code {execution.exit_code}) but produced no artifact",
            dependency_load_failed=dependency_failed,
        )

    # Validation mode: the artifact is an issue log, so its absence is success.
    if artifact_exists:
        return OutcomeClassification(
            category=JobCategory.FAILED_PROCESSED,
            reason=FailureReason.VALIDATION_ISSUES_RECORDED,
            message="Validation issues recorded in the output file",
            dependency_load_failed=dependency_failed,
        )
    return OutcomeClassification(
        category=JobCategory.SUCCESS,
        reason=None,
        message="No validation issues recorded",
        dependency_load_failed=dependency_failed,
    )
