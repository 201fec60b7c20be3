"""Progress events emitted by the dispatcher while a run is in flight."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, TypeAlias

from drawing_batch.batch.models import JobResult

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RunStarted:
    total: int
    max_parallel: int
    output_folder: Path


@dataclass(slots=True, frozen=True)
class JobStarted:
    job_name: str
    index: int
    total: int


@dataclass(slots=True, frozen=True)
class JobFinished:
    result: JobResult
    completed: int
    total: int


@dataclass(slots=True, frozen=True)
class RunFinished:
    completed: int
    total: int
    cancelled: bool
    duration_seconds: float


ProgressEvent: TypeAlias = RunStarted | JobStarted | JobFinished | RunFinished


class Progress(Protocol):
    """Receives events from worker threads; implementations must be thread-safe."""

    def emit(self, event: ProgressEvent) -> None:
        """Handle one progress event."""


class NullProgress:
    """Drops every event."""

    def emit(self, event: ProgressEvent) -> None:
        del event


class LoggingProgress:
    """Writes events to the module logger."""

    def emit(self, event: ProgressEvent) -> None:
        if isinstance(event, RunStarted):
            logger.info(
                "Run started: %d job(s), %d worker(s), output %s",
                event.total,
                event.max_parallel,
                event.output_folder,
            )
        elif isinstance(event, JobStarted):
            logger.info("[%d/%d] Starting %s", event.index + 1, event.total, event.job_name)
        elif isinstance(event, JobFinished):
            logger.info(
                "[%d/%d] %s: %s",
                event.completed,
                event.total,
                event.result.job_name,
                event.result.category.value,
            )
        else:
            logger.info(
                "Run finished: %d/%d job(s) in %.1fs%s",
                event.completed,
                event.total,
                event.duration_seconds,
                " (cancelled)" if event.cancelled else "",
            )


class CallbackProgress:
    """Serializes events from all workers into one callback."""

    def __init__(self, callback: Callable[[ProgressEvent], None]) -> None:
        self._callback = callback
        self._lock = threading.Lock()

    def emit(self, event: ProgressEvent) -> None:
        with self._lock:
            self._callback(event)
