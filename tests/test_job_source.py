from __future__ import annotations

import allure
import pytest

from drawing_batch.batch.job_source import EnumerationError, discover_jobs

pytestmark = [
    allure.epic("Batch Orchestration"),
    allure.feature("Job Discovery"),
]


def test_discover_jobs_lists_matching_files_in_sorted_order(tmp_path) -> None:
    for name in ("b.dwg", "A.DWG", "c.dwg", "notes.txt"):
        (tmp_path / name).write_text("", "utf-8")
    (tmp_path / "nested.dwg").mkdir()

    jobs = discover_jobs(tmp_path)

    assert [job.name for job in jobs] == ["A", "b", "c"]
    assert [job.index for job in jobs] == [0, 1, 2]
    assert jobs[0].source_path == tmp_path / "A.DWG"
    assert all(job.payload is None and job.result is None for job in jobs)


def test_discover_jobs_is_not_recursive(tmp_path) -> None:
    (tmp_path / "top.dwg").write_text("", "utf-8")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "deep.dwg").write_text("", "utf-8")

    assert [job.name for job in discover_jobs(tmp_path)] == ["top"]


def test_discover_jobs_suffixes_repeated_stems(tmp_path) -> None:
    (tmp_path / "plan.dwg").write_text("", "utf-8")
    (tmp_path / "plan.dxf").write_text("", "utf-8")

    jobs = discover_jobs(tmp_path, pattern="plan.*")

    assert [job.name for job in jobs] == ["plan", "plan~2"]


def test_discover_jobs_empty_folder(tmp_path) -> None:
    assert discover_jobs(tmp_path) == []


def test_discover_jobs_missing_folder(tmp_path) -> None:
    missing = tmp_path / "missing"

    with pytest.raises(EnumerationError, match="not found") as caught:
        discover_jobs(missing)
    assert caught.value.directory == missing


def test_discover_jobs_rejects_file_path(tmp_path) -> None:
    path = tmp_path / "file.dwg"
    path.write_text("", "utf-8")

    with pytest.raises(EnumerationError, match="not a folder"):
        discover_jobs(path)
