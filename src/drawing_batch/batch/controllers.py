"""Controllers for batch CLI commands."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from drawing_batch.batch.dispatcher import BatchDispatcher
from drawing_batch.batch.job_source import discover_jobs
from drawing_batch.batch.progress import CallbackProgress, LoggingProgress, Progress
from drawing_batch.batch.report import (
    BatchSummary,
    build_summary,
    render_progress_line,
    render_summary_lines,
    write_summary_json,
)
from drawing_batch.batch.resolver import (
    CsvParameterResolver,
    ParameterResolver,
    TemplateParameterResolver,
    load_template,
)
from drawing_batch.config import Settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunBatchCommand:
    """CLI input for one batch run."""

    input_dir: Path
    output_dir: Path
    settings_path: Path | None = None
    config_json: Path | None = None
    csv_path: Path | None = None
    engine_path: Path | None = None
    max_parallel: int | None = None
    command: str | None = None
    mode: str | None = None
    timeout_seconds: float | None = None
    summary_json: Path | None = None


@dataclass(slots=True)
class CheckCsvCommand:
    """CLI input for CSV coverage check."""

    input_dir: Path
    csv_path: Path
    settings_path: Path | None = None


@dataclass(slots=True)
class BatchCommandResult:
    lines: list[str]
    success: bool
    summary: BatchSummary | None = None


class BatchCliController:
    """Builds settings and collaborators from CLI input and runs them."""

    def __init__(self, echo: Callable[[str], None] | None = None) -> None:
        self._echo = echo

    def run_batch(self, command: RunBatchCommand) -> BatchCommandResult:
        settings = _apply_overrides(Settings.from_env(command.settings_path), command)
        if settings.batch.verbose:
            logging.getLogger("drawing_batch").setLevel(logging.DEBUG)
        template = load_template(command.config_json)
        resolver: ParameterResolver
        if command.csv_path is not None:
            resolver = CsvParameterResolver.from_csv(command.csv_path, template=template)
        else:
            resolver = TemplateParameterResolver(template)

        dispatcher = BatchDispatcher(
            settings,
            resolver,
            fallback_template=template,
            progress=self._progress(),
        )
        with dispatcher.install_signal_handlers():
            run = dispatcher.run(command.input_dir, command.output_dir)

        summary = build_summary(run)
        lines = render_summary_lines(summary)
        if command.summary_json is not None:
            write_summary_json(command.summary_json, summary)
            lines.append(f"Summary written to {command.summary_json}")
        return BatchCommandResult(
            lines=lines,
            success=summary.all_succeeded and not summary.cancelled,
            summary=summary,
        )

    def check_csv(self, command: CheckCsvCommand) -> BatchCommandResult:
        """Report drawings of ``input_dir`` that have no CSV row."""

        settings = Settings.from_env(command.settings_path)
        jobs = discover_jobs(command.input_dir, settings.batch.input_pattern)
        resolver = CsvParameterResolver.from_csv(command.csv_path)
        missing = resolver.missing_jobs(jobs)

        lines = [f"CSV rows found for {len(jobs) - len(missing)}/{len(jobs)} drawing(s)"]
        if missing:
            lines.append("Missing from CSV:")
            lines.extend(f"  {job.source_path.name}" for job in missing)
        return BatchCommandResult(lines=lines, success=not missing)

    def _progress(self) -> Progress:
        echo = self._echo
        if echo is None:
            return LoggingProgress()
        return CallbackProgress(lambda event: echo(render_progress_line(event)))


def _apply_overrides(settings: Settings, command: RunBatchCommand) -> Settings:
    if command.engine_path is not None:
        settings.engine.executable = command.engine_path
    if command.command is not None:
        settings.engine.command = command.command
    if command.max_parallel is not None:
        settings.batch.max_parallel = command.max_parallel
    if command.mode is not None:
        settings.batch.mode = command.mode.lower()
    if command.timeout_seconds is not None:
        settings.batch.job_timeout_seconds = command.timeout_seconds
    logger.debug("Effective settings: %s", settings)
    return settings
