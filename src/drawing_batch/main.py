"""CLI entrypoint for drawing-batch."""

import logging
from pathlib import Path

import rich_click as click

from drawing_batch import __version__
from drawing_batch.batch.controllers import BatchCliController, CheckCsvCommand, RunBatchCommand
from drawing_batch.batch.dispatcher import PrerequisiteMissing
from drawing_batch.batch.job_source import EnumerationError
from drawing_batch.batch.resolver import ResolverError
from drawing_batch.config import SUPPORTED_MODES, SettingsError

click.rich_click.USE_MARKDOWN = True
BATCH_CONTROLLER = BatchCliController(echo=click.echo)
FATAL_ERRORS = (EnumerationError, PrerequisiteMissing, ResolverError, SettingsError)


@click.group()
@click.version_option(version=__version__, prog_name="drawing-batch")
def drawing_batch() -> None:
    """Run a headless CAD engine over every drawing in a folder."""


@drawing_batch.command("run")
@click.argument("input_dir", type=click.Path(path_type=Path, file_okay=False))
@click.argument("output_dir", type=click.Path(path_type=Path, file_okay=False))
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="JSON settings file (`BatchProcessorSettings` section). "
    "Defaults to DRAWING_BATCH_SETTINGS_PATH.",
)
@click.option(
    "--config-json",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Base configuration passed to every drawing.",
)
@click.option(
    "--csv",
    "csv_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Per-drawing parameters, one row per drawing, merged over `--config-json`.",
)
@click.option(
    "--engine",
    "engine_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Engine executable (accoreconsole.exe).",
)
@click.option(
    "--parallel",
    "max_parallel",
    type=click.IntRange(min=1, max=64),
    default=None,
    help="Maximum concurrent engine processes.",
)
@click.option("--command", default=None, help="Engine command to run for each drawing.")
@click.option(
    "--mode",
    type=click.Choice(SUPPORTED_MODES, case_sensitive=False),
    default=None,
    help="How the output file maps to success. `auto` picks from the command name.",
)
@click.option(
    "--timeout",
    "timeout_seconds",
    type=click.FloatRange(min=1),
    default=None,
    help="Per-drawing deadline in seconds.",
)
@click.option(
    "--summary-json",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Also write the run summary as JSON.",
)
@click.option("--verbose", is_flag=True, default=False, help="Debug logging, engine output included.")
def batch_run(  # noqa: PLR0913
    input_dir: Path,
    output_dir: Path,
    settings_path: Path | None,
    config_json: Path | None,
    csv_path: Path | None,
    engine_path: Path | None,
    max_parallel: int | None,
    command: str | None,
    mode: str | None,
    timeout_seconds: float | None,
    summary_json: Path | None,
    verbose: bool,
) -> None:
    """Process every drawing of INPUT_DIR and write results under OUTPUT_DIR."""

    _configure_logging(verbose=verbose)
    try:
        result = BATCH_CONTROLLER.run_batch(
            RunBatchCommand(
                input_dir=input_dir,
                output_dir=output_dir,
                settings_path=settings_path,
                config_json=config_json,
                csv_path=csv_path,
                engine_path=engine_path,
                max_parallel=max_parallel,
                command=command,
                mode=mode,
                timeout_seconds=timeout_seconds,
                summary_json=summary_json,
            ),
        )
    except FATAL_ERRORS as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Not every drawing succeeded.")


@drawing_batch.command("check-csv")
@click.argument("input_dir", type=click.Path(path_type=Path, file_okay=False))
@click.option(
    "--csv",
    "csv_path",
    type=click.Path(path_type=Path, dir_okay=False),
    required=True,
    help="CSV file to check.",
)
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="JSON settings file.",
)
def check_csv(input_dir: Path, csv_path: Path, settings_path: Path | None) -> None:
    """List drawings of INPUT_DIR without a row in the CSV."""

    try:
        result = BATCH_CONTROLLER.check_csv(
            CheckCsvCommand(input_dir=input_dir, csv_path=csv_path, settings_path=settings_path),
        )
    except FATAL_ERRORS as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Some drawings have no CSV row.")


def _configure_logging(*, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    drawing_batch()
