"""Engine runner interface for batch job execution."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Protocol

from drawing_batch.batch.models import UNKNOWN_EXIT_CODE, OutputMarker


@dataclass(slots=True)
class EngineRunRequest:
    """Inputs required to run the engine once for one job."""

    job_name: str
    argv: list[str]
    environment: dict[str, str]
    timeout_seconds: float
    command: str = ""
    cancel_event: threading.Event | None = None


@dataclass(slots=True)
class EngineRunResult:
    """What happened to one engine process.

    ``exit_code`` is only meaningful when ``exited`` is true; otherwise it is
    ``UNKNOWN_EXIT_CODE``.
    """

    exit_code: int
    exited: bool
    timed_out: bool
    cancelled: bool
    stdout: str
    stderr: str
    duration_seconds: float
    pid: int | None = None
    spawn_error: str | None = None
    markers: frozenset[OutputMarker] = field(default_factory=frozenset)
    marker_lines: tuple[str, ...] = ()

    @property
    def spawned(self) -> bool:
        return self.spawn_error is None and self.pid is not None

    @classmethod
    def not_spawned(
        cls,
        *,
        spawn_error: str | None,
        cancelled: bool = False,
    ) -> EngineRunResult:
        return cls(
            exit_code=UNKNOWN_EXIT_CODE,
            exited=False,
            timed_out=False,
            cancelled=cancelled,
            stdout="",
            stderr="",
            duration_seconds=0.0,
            spawn_error=spawn_error,
        )


class EngineRunner(Protocol):
    """Protocol implemented by engine process runners."""

    def run(self, request: EngineRunRequest) -> EngineRunResult:
        """Run the engine for one job and return execution metadata."""
