"""Subprocess lifecycle for one engine invocation.

Spawn, stream capture, deadline and cancellation handling, process-tree
kill and disposal. Every path out of ``ProcessLifecycleManager.run`` goes
through ``_release`` so no process, reader thread or pipe outlives the job.
"""

from __future__ import annotations

import contextlib
import logging
import os
import signal
import subprocess
import threading
import time
from collections.abc import Callable
from typing import IO

import psutil

from drawing_batch.batch.engine.base import EngineRunRequest, EngineRunResult
from drawing_batch.batch.markers import classify_output_line
from drawing_batch.batch.models import UNKNOWN_EXIT_CODE, OutputMarker

logger = logging.getLogger(__name__)

LineClassifier = Callable[..., OutputMarker | None]


class ProcessLifecycleManager:
    """Runs one engine process to completion or forced termination."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        kill_wait_seconds: float = 10.0,
        release_grace_seconds: float = 0.5,
        poll_interval_seconds: float = 0.1,
        reader_join_seconds: float = 2.0,
        output_encoding: str = "utf-8",
        line_classifier: LineClassifier = classify_output_line,
    ) -> None:
        self.kill_wait_seconds = kill_wait_seconds
        self.release_grace_seconds = release_grace_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.reader_join_seconds = reader_join_seconds
        self.output_encoding = output_encoding
        self.line_classifier = line_classifier

    def run(self, request: EngineRunRequest) -> EngineRunResult:
        cancel_event = request.cancel_event
        if cancel_event is not None and cancel_event.is_set():
            logger.info("[%s] Cancelled before spawn", request.job_name)
            return EngineRunResult.not_spawned(spawn_error=None, cancelled=True)

        env = os.environ.copy()
        env.update(request.environment)
        try:
            process = subprocess.Popen(  # noqa: S603
                request.argv,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding=self.output_encoding,
                errors="replace",
                bufsize=1,
                **_session_kwargs(),
            )
        except OSError as error:
            logger.warning("[%s] Engine failed to start: %s", request.job_name, error)
            return EngineRunResult.not_spawned(
                spawn_error=f"Engine failed to start ({request.argv[0]}): {error}",
            )

        handle = ProcessHandle(
            process,
            job_name=request.job_name,
            command=request.command,
            line_classifier=self.line_classifier,
        )
        handle.start_capture()
        logger.info("[%s] Engine started (pid=%d)", request.job_name, handle.pid)

        timed_out = False
        cancelled = False
        try:
            timed_out, cancelled = self._wait(handle, request)
            if timed_out:
                logger.warning(
                    "[%s] Timed out after %.1fs, killing process tree",
                    request.job_name,
                    request.timeout_seconds,
                )
            elif cancelled:
                logger.warning("[%s] Cancellation requested, killing process tree", request.job_name)
            if timed_out or cancelled:
                handle.kill_tree(wait_seconds=self.kill_wait_seconds)
        finally:
            self._release(handle)

        return handle.to_result(timed_out=timed_out, cancelled=cancelled)

    def _wait(self, handle: ProcessHandle, request: EngineRunRequest) -> tuple[bool, bool]:
        cancel_event = request.cancel_event
        deadline = handle.started_at + request.timeout_seconds
        while True:
            if handle.poll() is not None:
                return False, False
            if cancel_event is not None and cancel_event.is_set():
                return False, True
            now = time.monotonic()
            if now >= deadline:
                return True, False
            handle.refresh_descendants()
            pause = min(self.poll_interval_seconds, max(0.0, deadline - now))
            if cancel_event is not None:
                cancel_event.wait(pause)
            else:
                time.sleep(pause)

    def _release(self, handle: ProcessHandle) -> None:
        if handle.poll() is None:
            handle.kill_tree(wait_seconds=self.kill_wait_seconds)
        handle.sweep_descendants(wait_seconds=self.kill_wait_seconds)
        if not handle.confirm_exit(wait_seconds=self.kill_wait_seconds):
            logger.warning(
                "[%s] Process %d still reported alive after kill; continuing",
                handle.job_name,
                handle.pid,
            )
        handle.drain(join_seconds=self.reader_join_seconds)
        # Lets the OS release handles and file locks before the next job starts.
        time.sleep(self.release_grace_seconds)
        handle.dispose()


class ProcessHandle:
    """Live engine process with its captured output and detected markers."""

    def __init__(
        self,
        process: subprocess.Popen[str],
        *,
        job_name: str,
        command: str,
        line_classifier: LineClassifier,
    ) -> None:
        self.process: subprocess.Popen[str] | None = process
        self.pid = process.pid
        self.job_name = job_name
        self.command = command
        self.started_at = time.monotonic()
        self.finished_at: float | None = None
        self.exit_code = UNKNOWN_EXIT_CODE
        self.exited = False
        self.stdout_lines: list[str] = []
        self.stderr_lines: list[str] = []
        self.markers: set[OutputMarker] = set()
        self.marker_lines: list[str] = []
        self._line_classifier = line_classifier
        self._lock = threading.Lock()
        self._capture_cancelled = threading.Event()
        self._descendants: dict[int, psutil.Process] = {}
        self._readers: list[tuple[threading.Thread, IO[str]]] = []

    def start_capture(self) -> None:
        process = self._require_process()
        for stream, is_stderr in ((process.stdout, False), (process.stderr, True)):
            if stream is None:
                continue
            thread = threading.Thread(
                target=self._read_stream,
                args=(stream, is_stderr),
                daemon=True,
                name=f"engine-{'stderr' if is_stderr else 'stdout'}-{self.job_name}",
            )
            thread.start()
            self._readers.append((thread, stream))

    def _read_stream(self, stream: IO[str], is_stderr: bool) -> None:
        try:
            for raw_line in stream:
                if self._capture_cancelled.is_set():
                    break
                self._on_line(raw_line, is_stderr=is_stderr)
        except (OSError, ValueError):
            logger.debug("[%s] Output reader stopped", self.job_name, exc_info=True)

    def _on_line(self, raw_line: str, *, is_stderr: bool) -> None:
        line = raw_line.replace("\x00", "").rstrip("\r\n")
        if not line.strip():
            return
        marker = self._line_classifier(line, command=self.command)
        with self._lock:
            (self.stderr_lines if is_stderr else self.stdout_lines).append(line)
            if marker is not None:
                self.markers.add(marker)
                self.marker_lines.append(line.strip())
        if marker is not None:
            logger.warning("[%s] %s: %s", self.job_name, marker.value, line.strip())
        else:
            logger.debug("[%s] %s%s", self.job_name, "stderr: " if is_stderr else "", line)

    def poll(self) -> int | None:
        if self.process is None:
            return self.exit_code
        return self.process.poll()

    def refresh_descendants(self) -> None:
        """Remember descendants so they can still be killed once orphaned."""

        try:
            children = psutil.Process(self.pid).children(recursive=True)
        except psutil.Error:
            return
        for child in children:
            self._descendants.setdefault(child.pid, child)

    def kill_tree(self, *, wait_seconds: float) -> bool:
        """Kill the process and every descendant; True if the parent is confirmed gone."""

        process = self._require_process()
        self.refresh_descendants()
        _kill_process_group(self.pid)
        with contextlib.suppress(OSError):
            process.kill()
        self._kill_descendants(wait_seconds=wait_seconds)
        return self.confirm_exit(wait_seconds=wait_seconds)

    def sweep_descendants(self, *, wait_seconds: float) -> None:
        """Kill descendants left behind after the parent exited on its own."""

        _kill_process_group(self.pid)
        self._kill_descendants(wait_seconds=wait_seconds)

    def _kill_descendants(self, *, wait_seconds: float) -> None:
        targets = [child for child in self._descendants.values() if is_process_alive(child)]
        for child in targets:
            with contextlib.suppress(psutil.Error):
                child.kill()
        alive = _wait_gone(targets, timeout=wait_seconds)
        for child in alive:
            logger.warning(
                "[%s] Descendant process %d still alive after kill",
                self.job_name,
                child.pid,
            )

    def confirm_exit(self, *, wait_seconds: float) -> bool:
        if self.exited:
            return True
        process = self._require_process()
        try:
            returncode = process.wait(timeout=wait_seconds)
        except subprocess.TimeoutExpired:
            return False
        self.exited = True
        self.exit_code = returncode if returncode is not None else UNKNOWN_EXIT_CODE
        self.finished_at = time.monotonic()
        return True

    def drain(self, *, join_seconds: float) -> None:
        """Stop output readers and close the pipes they were reading."""

        self._capture_cancelled.set()
        for thread, stream in self._readers:
            thread.join(timeout=join_seconds)
            if thread.is_alive():
                # A surviving writer still holds the pipe open; leave the daemon thread.
                logger.warning("[%s] Output reader %s did not drain", self.job_name, thread.name)
                continue
            with contextlib.suppress(OSError):
                stream.close()
        self._readers.clear()

    def dispose(self) -> None:
        if self.finished_at is None:
            self.finished_at = time.monotonic()
        self._descendants.clear()
        self.process = None

    def to_result(self, *, timed_out: bool, cancelled: bool) -> EngineRunResult:
        with self._lock:
            stdout = "\n".join(self.stdout_lines)
            stderr = "\n".join(self.stderr_lines)
            markers = frozenset(self.markers)
            marker_lines = tuple(self.marker_lines)
        finished_at = self.finished_at if self.finished_at is not None else time.monotonic()
        return EngineRunResult(
            exit_code=self.exit_code if self.exited else UNKNOWN_EXIT_CODE,
            exited=self.exited,
            timed_out=timed_out,
            cancelled=cancelled,
            stdout=stdout,
            stderr=stderr,
            duration_seconds=max(0.0, finished_at - self.started_at),
            pid=self.pid,
            markers=markers,
            marker_lines=marker_lines,
        )

    def _require_process(self) -> subprocess.Popen[str]:
        if self.process is None:
            raise RuntimeError(f"Process handle for {self.job_name} was already disposed.")
        return self.process


def is_process_alive(process: psutil.Process | int) -> bool:
    """True if the process exists and is not a zombie."""

    try:
        target = process if isinstance(process, psutil.Process) else psutil.Process(process)
        return target.is_running() and target.status() != psutil.STATUS_ZOMBIE
    except psutil.Error:
        return False


def _wait_gone(processes: list[psutil.Process], *, timeout: float) -> list[psutil.Process]:
    deadline = time.monotonic() + timeout
    alive = [process for process in processes if is_process_alive(process)]
    while alive and time.monotonic() < deadline:
        time.sleep(0.05)
        alive = [process for process in alive if is_process_alive(process)]
    return alive


def _kill_process_group(pid: int) -> None:
    if os.name == "nt":
        return
    with contextlib.suppress(ProcessLookupError, PermissionError):
        os.killpg(pid, signal.SIGKILL)


def _session_kwargs() -> dict[str, object]:
    if os.name == "nt":
        return {
            "creationflags": subprocess.CREATE_NEW_PROCESS_GROUP | subprocess.CREATE_NO_WINDOW,
        }
    return {"start_new_session": True}
