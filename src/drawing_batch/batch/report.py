"""Run summary: counts, per-job durations and failure breakdown."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from drawing_batch.batch.models import BatchRun, JobCategory, JobMode, JobResult
from drawing_batch.batch.progress import (
    JobFinished,
    JobStarted,
    ProgressEvent,
    RunFinished,
    RunStarted,
)


@dataclass(slots=True)
class JobTiming:
    job_name: str
    category: JobCategory
    duration_seconds: float


@dataclass(slots=True)
class BatchSummary:
    """Aggregated outcome of one run."""

    run_stamp: str
    mode: JobMode
    output_folder: Path
    discovered: int
    dispatched: int
    total: int
    success: int
    failed_processed: int
    non_processed: int
    cancelled: bool
    duration_seconds: float
    timings: list[JobTiming] = field(default_factory=list)
    non_processed_reasons: dict[str, str] = field(default_factory=dict)
    failed_processed_files: list[Path] = field(default_factory=list)
    dependency_load_failures: list[str] = field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        return self.total == self.discovered and self.success == self.total

    def to_payload(self) -> dict[str, Any]:
        return {
            "run_stamp": self.run_stamp,
            "mode": self.mode.value,
            "output_folder": str(self.output_folder),
            "discovered": self.discovered,
            "dispatched": self.dispatched,
            "total": self.total,
            "success": self.success,
            "failed_processed": self.failed_processed,
            "non_processed": self.non_processed,
            "cancelled": self.cancelled,
            "duration_seconds": round(self.duration_seconds, 3),
            "jobs": [
                {
                    "name": timing.job_name,
                    "category": timing.category.value,
                    "duration_seconds": round(timing.duration_seconds, 3),
                }
                for timing in self.timings
            ],
            "non_processed_reasons": dict(self.non_processed_reasons),
            "failed_processed_files": [str(path) for path in self.failed_processed_files],
            "dependency_load_failures": list(self.dependency_load_failures),
        }


def build_summary(run: BatchRun) -> BatchSummary:
    """Aggregate results; per-job entries follow discovery order, not completion order."""

    results = run.snapshot_results()
    by_name: dict[str, JobResult] = {result.job_name: result for result in results}
    ordered = [by_name[job.name] for job in run.jobs if job.name in by_name]

    finished_at = run.finished_at or run.started_at
    summary = BatchSummary(
        run_stamp=run.run_stamp,
        mode=run.mode,
        output_folder=run.output_folder,
        discovered=len(run.jobs),
        dispatched=run.dispatched,
        total=len(results),
        success=sum(1 for result in results if result.category is JobCategory.SUCCESS),
        failed_processed=sum(
            1 for result in results if result.category is JobCategory.FAILED_PROCESSED
        ),
        non_processed=sum(
            1 for result in results if result.category is JobCategory.NON_PROCESSED
        ),
        cancelled=run.cancelled,
        duration_seconds=max(0.0, (finished_at - run.started_at).total_seconds()),
    )
    for result in ordered:
        summary.timings.append(
            JobTiming(
                job_name=result.job_name,
                category=result.category,
                duration_seconds=result.duration_seconds,
            ),
        )
        if result.category is JobCategory.NON_PROCESSED:
            summary.non_processed_reasons[result.job_name] = result.message
        elif result.category is JobCategory.FAILED_PROCESSED:
            summary.failed_processed_files.append(result.source_path)
        if result.dependency_load_failed:
            summary.dependency_load_failures.append(result.job_name)
    return summary


def render_summary_lines(summary: BatchSummary) -> list[str]:
    """Human-readable summary for the terminal."""

    lines = [
        f"Batch {summary.run_stamp} ({summary.mode.value} mode)"
        f"{' - cancelled' if summary.cancelled else ''}",
        f"Output folder: {summary.output_folder}",
        f"Total: {summary.total}/{summary.discovered}  Success: {summary.success}  "
        f"Failed (processed): {summary.failed_processed}  "
        f"Not processed: {summary.non_processed}",
        f"Wall time: {_format_duration(summary.duration_seconds)}",
    ]
    if summary.mode is JobMode.VALIDATION and summary.failed_processed:
        lines.append(
            "Note: in validation mode a produced output file means issues were recorded.",
        )
    if summary.dependency_load_failures:
        lines.append(
            "WARNING: plugin load failed for: " + ", ".join(summary.dependency_load_failures),
        )
    if summary.timings:
        lines.append("")
        lines.append("Per-job times:")
        lines.extend(
            f"  {timing.job_name}: {_format_duration(timing.duration_seconds)} "
            f"[{timing.category.value}]"
            for timing in summary.timings
        )
    if summary.failed_processed_files:
        lines.append("")
        lines.append("Failed (processed):")
        lines.extend(f"  {path}" for path in summary.failed_processed_files)
    if summary.non_processed_reasons:
        lines.append("")
        lines.append("Not processed:")
        lines.extend(
            f"  {name}: {reason}" for name, reason in summary.non_processed_reasons.items()
        )
    return lines


def render_progress_line(event: ProgressEvent) -> str:
    if isinstance(event, RunStarted):
        return (
            f"Processing {event.total} file(s) with up to {event.max_parallel} "
            f"parallel engine(s) -> {event.output_folder}"
        )
    if isinstance(event, JobStarted):
        return f"[{event.index + 1}/{event.total}] {event.job_name}: started"
    if isinstance(event, JobFinished):
        result = event.result
        status = result.category.value
        if result.reason is not None:
            status = f"{status} ({result.reason.value})"
        return (
            f"[{event.completed}/{event.total}] {result.job_name}: {status} "
            f"in {_format_duration(result.duration_seconds)}"
        )
    if isinstance(event, RunFinished):
        suffix = " (cancelled)" if event.cancelled else ""
        return (
            f"Finished {event.completed}/{event.total} file(s) "
            f"in {_format_duration(event.duration_seconds)}{suffix}"
        )
    raise TypeError(f"Unknown progress event: {event!r}")


def write_summary_json(path: Path, summary: BatchSummary) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary.to_payload(), indent=2, ensure_ascii=False), "utf-8")


def _format_duration(seconds: float) -> str:
    if seconds < 60:  # noqa: PLR2004
        return f"{seconds:.1f}s"
    minutes, remainder = divmod(int(round(seconds)), 60)
    return f"{minutes}m {remainder:02d}s"
