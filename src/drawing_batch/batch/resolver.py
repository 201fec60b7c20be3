"""Per-job configuration payload resolution."""

from __future__ import annotations

import copy
import csv
import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Protocol

from drawing_batch.batch.contracts import load_json
from drawing_batch.batch.models import Job

logger = logging.getLogger(__name__)

FILENAME_COLUMNS: tuple[str, ...] = ("filename", "file", "drawing")


class ParameterResolver(Protocol):
    """Maps a job identity to its configuration payload.

    Implementations must be side-effect-free and safe to call from several
    worker threads at once. ``None`` means no configuration for this job.
    """

    def resolve(self, job_name: str, source_path: Path) -> dict[str, Any] | None:
        """Return the job's configuration document or None."""


class ResolverError(ValueError):
    """Parameter source cannot be loaded."""


def load_template(path: Path | None) -> dict[str, Any] | None:
    """Load a base configuration template; a missing path means no template."""

    if path is None:
        return None
    try:
        return load_json(path)
    except FileNotFoundError as error:
        raise ResolverError(f"Config template not found: {path}") from error
    except (OSError, TypeError, json.JSONDecodeError) as error:
        raise ResolverError(f"Could not load config template {path}: {error}") from error


class TemplateParameterResolver:
    """Every job receives a copy of the same template (or nothing)."""

    def __init__(self, template: Mapping[str, Any] | None = None) -> None:
        self._template = dict(template) if template is not None else None

    @property
    def template(self) -> dict[str, Any] | None:
        return copy.deepcopy(self._template)

    def resolve(self, job_name: str, source_path: Path) -> dict[str, Any] | None:
        del job_name, source_path
        return copy.deepcopy(self._template)


class CsvParameterResolver:
    """CSV rows keyed by drawing file name, merged over an optional template.

    Rows are looked up by full file name first, then by stem, ignoring case.
    Empty cells are skipped, ``true``/``false`` become booleans and cells
    written as ``[...]`` are parsed as JSON lists. ``column_aliases`` renames
    CSV headers to payload keys.
    """

    def __init__(
        self,
        rows: Mapping[str, Mapping[str, str]],
        *,
        template: Mapping[str, Any] | None = None,
        column_aliases: Mapping[str, str] | None = None,
        filename_column: str | None = None,
    ) -> None:
        self._rows = {key.lower(): dict(value) for key, value in rows.items()}
        self._template = dict(template) if template is not None else None
        self._aliases = {key.lower(): value for key, value in (column_aliases or {}).items()}
        self._filename_column = filename_column

    @classmethod
    def from_csv(
        cls,
        csv_path: Path,
        *,
        template: Mapping[str, Any] | None = None,
        column_aliases: Mapping[str, str] | None = None,
    ) -> CsvParameterResolver:
        """Parse a CSV file with a header row and one row per drawing."""

        try:
            with csv_path.open(newline="", encoding="utf-8-sig") as handle:
                reader = csv.reader(handle, skipinitialspace=True)
                header = next(reader, None)
                body = [row for row in reader if any(cell.strip() for cell in row)]
        except FileNotFoundError as error:
            raise ResolverError(f"CSV file not found: {csv_path}") from error
        except (OSError, csv.Error, UnicodeDecodeError) as error:
            raise ResolverError(f"Could not read CSV file {csv_path}: {error}") from error

        if header is None or not body:
            raise ResolverError(
                f"CSV file must have a header row and at least one data row: {csv_path}",
            )

        columns = [column.strip() for column in header]
        filename_index = _filename_column_index(columns)
        rows: dict[str, dict[str, str]] = {}
        loaded = 0
        for values in body:
            if filename_index >= len(values) or not values[filename_index].strip():
                continue
            filename = values[filename_index].strip()
            row = {
                column: value.strip()
                for column, value in zip(columns, values, strict=False)
            }
            rows[filename] = row
            rows.setdefault(Path(filename).stem, row)
            loaded += 1

        logger.info("Loaded %d drawing configurations from %s", loaded, csv_path)
        return cls(
            rows,
            template=template,
            column_aliases=column_aliases,
            filename_column=columns[filename_index],
        )

    def has_row(self, source_path: Path) -> bool:
        return self._find_row(source_path) is not None

    def missing_jobs(self, jobs: Iterable[Job]) -> list[Job]:
        """Jobs whose drawing has no CSV row."""

        return [job for job in jobs if not self.has_row(job.source_path)]

    def resolve(self, job_name: str, source_path: Path) -> dict[str, Any] | None:
        row = self._find_row(source_path)
        if row is None:
            logger.debug("No CSV parameters for %s", job_name)
            return None

        payload: dict[str, Any] = copy.deepcopy(self._template) if self._template else {}
        for column, raw in row.items():
            if column == self._filename_column or not raw:
                continue
            payload[self._aliases.get(column.lower(), column)] = _convert_cell(raw)
        return payload

    def _find_row(self, source_path: Path) -> dict[str, str] | None:
        row = self._rows.get(source_path.name.lower())
        if row is None:
            row = self._rows.get(source_path.stem.lower())
        return row


def _filename_column_index(columns: list[str]) -> int:
    for index, column in enumerate(columns):
        if column.lower() in FILENAME_COLUMNS:
            return index
    logger.warning("No Filename column found in CSV, using first column")
    return 0


def _convert_cell(raw: str) -> Any:
    lowered = raw.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if raw.startswith("[") and raw.endswith("]"):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return [part.strip().strip('"') for part in raw[1:-1].split(",") if part.strip()]
        if isinstance(parsed, list):
            return parsed
    return raw
