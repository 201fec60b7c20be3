"""Bounded-parallel dispatch of batch jobs."""

from __future__ import annotations

import contextlib
import logging
import shutil
import signal
import tempfile
import threading
import time
from collections import deque
from collections.abc import Iterator, Mapping
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Any

from drawing_batch.batch.classifier import (
    OutcomeClassification,
    classify_outcome,
    probe_artifact,
    resolve_mode,
)
from drawing_batch.batch.engine.base import EngineRunner, EngineRunRequest, EngineRunResult
from drawing_batch.batch.engine.process import ProcessLifecycleManager
from drawing_batch.batch.invocation import ConfigUnavailable, InvocationBuilder
from drawing_batch.batch.job_source import discover_jobs
from drawing_batch.batch.models import (
    BatchRun,
    FailureReason,
    Invocation,
    Job,
    JobCategory,
    JobMode,
    JobResult,
    JobState,
)
from drawing_batch.batch.progress import (
    JobFinished,
    JobStarted,
    LoggingProgress,
    Progress,
    ProgressEvent,
    RunFinished,
    RunStarted,
)
from drawing_batch.batch.resolver import ParameterResolver
from drawing_batch.config import Settings

logger = logging.getLogger(__name__)


class PrerequisiteMissing(RuntimeError):
    """Engine executable or a load-time dependency does not exist."""

    def __init__(self, missing: list[Path]) -> None:
        super().__init__(
            "Missing prerequisites: " + ", ".join(str(path) for path in missing),
        )
        self.missing = tuple(missing)


class BatchDispatcher:
    """Runs every job of an input folder through the engine, N at a time."""

    def __init__(  # noqa: PLR0913
        self,
        settings: Settings,
        resolver: ParameterResolver,
        *,
        fallback_template: Mapping[str, Any] | None = None,
        runner: EngineRunner | None = None,
        progress: Progress | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.settings = settings
        self.resolver = resolver
        self.fallback_template = fallback_template
        self.runner: EngineRunner = runner or ProcessLifecycleManager(
            kill_wait_seconds=settings.batch.kill_wait_seconds,
            release_grace_seconds=settings.batch.release_grace_seconds,
        )
        self.progress: Progress = progress or LoggingProgress()
        self._cancel_event = cancel_event or threading.Event()
        self._queue_lock = threading.Lock()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Stop taking new jobs and terminate the ones in flight."""

        if not self._cancel_event.is_set():
            logger.warning("Cancellation requested; stopping dispatch")
        self._cancel_event.set()

    def preflight(self) -> None:
        """Raise PrerequisiteMissing unless the engine and its plugins exist."""

        missing: list[Path] = []
        executable = self.settings.engine.executable
        if not executable.is_file() and shutil.which(str(executable)) is None:
            missing.append(executable)
        missing.extend(
            dependency
            for dependency in self.settings.engine.load_dependencies
            if not dependency.is_file()
        )
        if missing:
            raise PrerequisiteMissing(missing)
        available = self.settings.engine.available_commands
        if available and self.settings.engine.command not in available:
            logger.warning(
                "Command %s is not among the configured commands: %s",
                self.settings.engine.command,
                ", ".join(available),
            )

    def run(self, input_dir: Path, output_root: Path) -> BatchRun:
        """Process every job found in ``input_dir``; fatal errors raise before dispatch."""

        self.settings.validate()
        jobs = discover_jobs(input_dir, self.settings.batch.input_pattern)
        self.preflight()

        started_at = datetime.now()
        run_stamp = started_at.strftime("%Y%m%d_%H%M%S_%f")[:-3]
        output_folder = output_root / run_stamp if self.settings.batch.timestamped_output else output_root
        output_folder.mkdir(parents=True, exist_ok=True)
        temp_dir = self.settings.batch.temp_script_dir or Path(tempfile.gettempdir()) / "drawing_batch"

        mode = resolve_mode(self.settings.batch.mode, self.settings.engine.command)
        if mode is JobMode.VALIDATION:
            logger.info(
                "Validation mode: a %s file in the output folder means issues were recorded",
                self.settings.batch.artifact_extension,
            )

        run = BatchRun(
            run_stamp=run_stamp,
            started_at=started_at,
            input_dir=input_dir,
            output_root=output_root,
            output_folder=output_folder,
            jobs=jobs,
            mode=mode,
        )
        builder = InvocationBuilder(
            engine=self.settings.engine,
            temp_dir=temp_dir,
            output_folder=output_folder,
            run_stamp=run_stamp,
            artifact_extension=self.settings.batch.artifact_extension,
            fallback_template=self.fallback_template,
        )

        total = len(jobs)
        workers = min(self.settings.batch.max_parallel, total)
        self._emit(
            RunStarted(
                total=total,
                max_parallel=self.settings.batch.max_parallel,
                output_folder=output_folder,
            ),
        )
        clock_start = time.monotonic()
        queue: deque[Job] = deque(jobs)
        if workers > 0:
            with ThreadPoolExecutor(
                max_workers=workers,
                thread_name_prefix="drawing-batch",
            ) as pool:
                futures = [
                    pool.submit(self._work, queue, run=run, builder=builder, total=total)
                    for _ in range(workers)
                ]
                for future in futures:
                    future.result()

        run.cancelled = self._cancel_event.is_set()
        run.finished_at = datetime.now()
        self._emit(
            RunFinished(
                completed=len(run.results),
                total=total,
                cancelled=run.cancelled,
                duration_seconds=time.monotonic() - clock_start,
            ),
        )
        return run

    @contextlib.contextmanager
    def install_signal_handlers(self) -> Iterator[None]:
        """Map SIGINT/SIGTERM to ``cancel`` while the block runs."""

        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            logger.warning("Received %s", name)
            self.cancel()

        installed = False
        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
            installed = True
        except ValueError:
            # Signal handlers can only be installed in main thread.
            pass
        try:
            yield
        finally:
            if installed:
                signal.signal(signal.SIGINT, original_sigint)
                signal.signal(signal.SIGTERM, original_sigterm)

    def _work(
        self,
        queue: deque[Job],
        *,
        run: BatchRun,
        builder: InvocationBuilder,
        total: int,
    ) -> None:
        while not self._cancel_event.is_set():
            with self._queue_lock:
                if not queue:
                    return
                job = queue.popleft()
            run.mark_dispatched()
            self._emit(JobStarted(job_name=job.name, index=job.index, total=total))

            result = self._run_job(job, builder=builder, mode=run.mode)
            job.result = result
            job.state = JobState.FINISHED
            completed = run.record(result)
            _log_result(result)
            self._emit(JobFinished(result=result, completed=completed, total=total))

    def _run_job(self, job: Job, *, builder: InvocationBuilder, mode: JobMode) -> JobResult:
        started = time.monotonic()
        invocation: Invocation | None = None
        try:
            job.state = JobState.BUILDING
            job.payload = self.resolver.resolve(job.name, job.source_path)
            try:
                invocation = builder.build(job, job.payload)
            except ConfigUnavailable as error:
                logger.warning("[%s] %s", job.name, error)
                classification = classify_outcome(
                    execution=None,
                    mode=mode,
                    artifact_exists=False,
                    config_unavailable=True,
                )
                return _job_result(job, classification, started=started, execution=None)

            job.state = JobState.RUNNING
            execution = self.runner.run(
                EngineRunRequest(
                    job_name=job.name,
                    argv=builder.engine_argv(invocation),
                    environment=invocation.environment,
                    timeout_seconds=self.settings.batch.job_timeout_seconds,
                    command=self.settings.engine.command,
                    cancel_event=self._cancel_event,
                ),
            )

            job.state = JobState.CLASSIFYING
            artifact = probe_artifact(
                invocation.output_folder,
                job.name,
                mode=mode,
                extension=self.settings.batch.artifact_extension,
            )
            classification = classify_outcome(
                execution=execution,
                mode=mode,
                artifact_exists=artifact is not None,
            )
            return _job_result(
                job,
                classification,
                started=started,
                execution=execution,
                artifact_path=artifact,
            )
        except Exception as error:  # noqa: BLE001
            logger.exception("[%s] Unexpected error in job pipeline", job.name)
            return JobResult(
                job_name=job.name,
                source_path=job.source_path,
                category=JobCategory.NON_PROCESSED,
                reason=FailureReason.UNEXPECTED_PIPELINE_EXCEPTION,
                message=f"Unexpected error: {error}",
                duration_seconds=time.monotonic() - started,
                exit_code=None,
            )
        finally:
            if invocation is not None:
                invocation.dispose()

    def _emit(self, event: ProgressEvent) -> None:
        try:
            self.progress.emit(event)
        except Exception:  # noqa: BLE001
            logger.exception("Progress handler failed for %s", type(event).__name__)


def _job_result(
    job: Job,
    classification: OutcomeClassification,
    *,
    started: float,
    execution: EngineRunResult | None,
    artifact_path: Path | None = None,
) -> JobResult:
    spawned = execution is not None and execution.spawned
    return JobResult(
        job_name=job.name,
        source_path=job.source_path,
        category=classification.category,
        reason=classification.reason,
        message=classification.message,
        duration_seconds=time.monotonic() - started,
        exit_code=execution.exit_code if spawned and execution is not None else None,
        dependency_load_failed=classification.dependency_load_failed,
        marker_lines=execution.marker_lines if execution is not None else (),
        artifact_path=artifact_path,
    )


def _log_result(result: JobResult) -> None:
    if result.category is JobCategory.SUCCESS:
        logger.info("[%s] Success (%.1fs): %s", result.job_name, result.duration_seconds, result.message)
    else:
        logger.warning(
            "[%s] %s/%s (%.1fs): %s",
            result.job_name,
            result.category.value,
            result.reason.value if result.reason else "-",
            result.duration_seconds,
            result.message,
        )
    if result.dependency_load_failed:
        logger.warning("[%s] Plugin load failure detected in engine output", result.job_name)
