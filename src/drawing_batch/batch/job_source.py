"""Input discovery: one job per matching file in a directory."""

from __future__ import annotations

import fnmatch
from pathlib import Path

from drawing_batch.batch.models import Job


class EnumerationError(RuntimeError):
    """Input directory cannot be enumerated; aborts the run before dispatch."""

    def __init__(self, message: str, *, directory: Path) -> None:
        super().__init__(message)
        self.directory = directory


def discover_jobs(directory: Path, pattern: str = "*.dwg") -> list[Job]:
    """List matching files (non-recursive) as jobs in discovery order.

    Matching is case-insensitive so ``*.dwg`` also picks up ``PLAN.DWG``.
    Job names are file stems; a stem that repeats (ignoring case) gets a
    ``~N`` suffix so per-job file names stay unique within the run.
    """

    if not directory.exists():
        raise EnumerationError(f"Input folder not found: {directory}", directory=directory)
    if not directory.is_dir():
        raise EnumerationError(f"Input path is not a folder: {directory}", directory=directory)

    try:
        entries = sorted(directory.iterdir(), key=lambda entry: entry.name.lower())
    except OSError as error:
        raise EnumerationError(
            f"Could not list input folder {directory}: {error}",
            directory=directory,
        ) from error

    lowered_pattern = pattern.lower()
    jobs: list[Job] = []
    seen: dict[str, int] = {}
    for entry in entries:
        if not entry.is_file():
            continue
        if not fnmatch.fnmatchcase(entry.name.lower(), lowered_pattern):
            continue
        name = _unique_name(entry.stem, seen)
        jobs.append(Job(name=name, source_path=entry, index=len(jobs)))
    return jobs


def _unique_name(stem: str, seen: dict[str, int]) -> str:
    key = stem.lower()
    count = seen.get(key, 0) + 1
    seen[key] = count
    if count == 1:
        return stem
    candidate = f"{stem}~{count}"
    seen[candidate.lower()] = 1
    return candidate
