from __future__ import annotations

import json
from datetime import datetime, timedelta
from pathlib import Path

import allure
import pytest

from drawing_batch.batch.models import (
    BatchRun,
    FailureReason,
    Job,
    JobCategory,
    JobMode,
    JobResult,
)
from drawing_batch.batch.progress import JobFinished, JobStarted, RunFinished, RunStarted
from drawing_batch.batch.report import (
    build_summary,
    render_progress_line,
    render_summary_lines,
    write_summary_json,
)

pytestmark = [
    allure.epic("Batch Orchestration"),
    allure.feature("Run Summary"),
]


def _result(name: str, category: JobCategory, reason=None, **kwargs) -> JobResult:
    values = {
        "job_name": name,
        "source_path": Path(f"/in/{name}.dwg"),
        "category": category,
        "reason": reason,
        "message": kwargs.pop("message", category.value),
        "duration_seconds": kwargs.pop("duration_seconds", 1.5),
        "exit_code": 0,
    }
    values.update(kwargs)
    return JobResult(**values)


def _run() -> BatchRun:
    started = datetime(2025, 1, 1, 12, 0, 0)
    jobs = [Job(name=name, source_path=Path(f"/in/{name}.dwg"), index=i) for i, name in enumerate("abcd")]
    run = BatchRun(
        run_stamp="20250101_120000_000",
        started_at=started,
        input_dir=Path("/in"),
        output_root=Path("/out"),
        output_folder=Path("/out/20250101_120000_000"),
        jobs=jobs,
        mode=JobMode.VALIDATION,
        finished_at=started + timedelta(seconds=95),
    )
    # Completion order differs from discovery order.
    for result in (
        _result("c", JobCategory.NON_PROCESSED, FailureReason.TIMEOUT, message="Timeout: 360s"),
        _result("a", JobCategory.SUCCESS, dependency_load_failed=True),
        _result("b", JobCategory.FAILED_PROCESSED, FailureReason.VALIDATION_ISSUES_RECORDED),
        _result("d", JobCategory.SUCCESS, duration_seconds=75.0),
    ):
        run.mark_dispatched()
        run.record(result)
    return run


def test_build_summary_counts_and_orders_by_discovery() -> None:
    summary = build_summary(_run())

    assert (summary.total, summary.success, summary.failed_processed, summary.non_processed) == (
        4,
        2,
        1,
        1,
    )
    assert summary.discovered == summary.dispatched == 4
    assert [timing.job_name for timing in summary.timings] == ["a", "b", "c", "d"]
    assert summary.non_processed_reasons == {"c": "Timeout: 360s"}
    assert summary.failed_processed_files == [Path("/in/b.dwg")]
    assert summary.dependency_load_failures == ["a"]
    assert summary.duration_seconds == 95.0
    assert not summary.all_succeeded


def test_render_summary_lines_mentions_every_section() -> None:
    lines = render_summary_lines(build_summary(_run()))
    text = "\n".join(lines)

    assert "Total: 4/4  Success: 2  Failed (processed): 1  Not processed: 1" in text
    assert "validation mode" in text
    assert "issues were recorded" in text
    assert "WARNING: plugin load failed for: a" in text
    assert "  d: 1m 15s [success]" in lines
    assert "  c: Timeout: 360s" in lines
    assert f"  {Path('/in/b.dwg')}" in lines
    assert "Wall time: 1m 35s" in text


def test_write_summary_json(tmp_path) -> None:
    path = tmp_path / "reports" / "summary.json"

    write_summary_json(path, build_summary(_run()))

    payload = json.loads(path.read_text("utf-8"))
    assert payload["success"] == 2
    assert payload["mode"] == "validation"
    assert [job["name"] for job in payload["jobs"]] == ["a", "b", "c", "d"]
    assert payload["non_processed_reasons"] == {"c": "Timeout: 360s"}
    assert payload["dependency_load_failures"] == ["a"]


def test_summary_of_cancelled_run_is_not_all_succeeded() -> None:
    run = _run()
    run.jobs.append(Job(name="e", source_path=Path("/in/e.dwg"), index=4))
    run.cancelled = True

    summary = build_summary(run)

    assert summary.discovered == 5
    assert summary.total == 4
    assert "cancelled" in render_summary_lines(summary)[0]


@pytest.mark.parametrize(
    ("event", "expected"),
    [
        (
            RunStarted(total=3, max_parallel=2, output_folder=Path("/out")),
            f"Processing 3 file(s) with up to 2 parallel engine(s) -> {Path('/out')}",
        ),
        (JobStarted(job_name="a", index=0, total=3), "[1/3] a: started"),
        (
            JobFinished(
                result=_result("b", JobCategory.NON_PROCESSED, FailureReason.TIMEOUT),
                completed=2,
                total=3,
            ),
            "[2/3] b: non_processed (timeout) in 1.5s",
        ),
        (
            RunFinished(completed=3, total=3, cancelled=True, duration_seconds=4.0),
            "Finished 3/3 file(s) in 4.0s (cancelled)",
        ),
    ],
)
def test_render_progress_line(event, expected: str) -> None:
    assert render_progress_line(event) == expected
