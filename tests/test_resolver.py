from __future__ import annotations

from pathlib import Path

import allure
import pytest

from drawing_batch.batch.models import Job
from drawing_batch.batch.resolver import (
    CsvParameterResolver,
    ResolverError,
    TemplateParameterResolver,
    load_template,
)

pytestmark = [
    allure.epic("Batch Orchestration"),
    allure.feature("Parameter Resolution"),
]


def _write_csv(path: Path, text: str) -> Path:
    path.write_text(text, "utf-8")
    return path


def test_template_resolver_returns_independent_copies() -> None:
    resolver = TemplateParameterResolver({"Layers": ["A-WALL"], "Scale": 100})

    first = resolver.resolve("one", Path("one.dwg"))
    assert first is not None
    first["Layers"].append("A-DOOR")

    assert resolver.resolve("two", Path("two.dwg")) == {"Layers": ["A-WALL"], "Scale": 100}


def test_template_resolver_without_template_returns_none() -> None:
    assert TemplateParameterResolver().resolve("one", Path("one.dwg")) is None


def test_csv_resolver_merges_row_over_template(tmp_path) -> None:
    csv_path = _write_csv(
        tmp_path / "params.csv",
        "Filename,PlotArea,IsCorner,Layers,Remarks\n"
        'Site-01.dwg,250.5,TRUE,"[""A-WALL"", ""A-DOOR""]",\n',
    )
    resolver = CsvParameterResolver.from_csv(
        csv_path,
        template={"IsCorner": False, "Authority": "BDA"},
    )

    payload = resolver.resolve("Site-01", Path("/in/site-01.DWG"))

    assert payload == {
        "IsCorner": True,
        "Authority": "BDA",
        "PlotArea": "250.5",
        "Layers": ["A-WALL", "A-DOOR"],
    }


def test_csv_resolver_matches_by_stem_and_applies_aliases(tmp_path) -> None:
    csv_path = _write_csv(
        tmp_path / "params.csv",
        'Drawing,Plot Area,Zones\nsite-02,120,"[R1, C2]"\n',
    )
    resolver = CsvParameterResolver.from_csv(
        csv_path,
        column_aliases={"plot area": "PlotArea"},
    )

    assert resolver.resolve("site-02", Path("site-02.dwg")) == {
        "PlotArea": "120",
        "Zones": ["R1", "C2"],
    }


def test_csv_resolver_without_filename_column_uses_first_column(tmp_path) -> None:
    csv_path = _write_csv(tmp_path / "params.csv", "Name,Scale\nplan.dwg,50\n")

    resolver = CsvParameterResolver.from_csv(csv_path)

    assert resolver.resolve("plan", Path("plan.dwg")) == {"Scale": "50"}


def test_csv_resolver_miss_returns_none_and_lists_missing_jobs(tmp_path) -> None:
    csv_path = _write_csv(tmp_path / "params.csv", "File,Scale\nplan.dwg,50\n")
    resolver = CsvParameterResolver.from_csv(csv_path, template={"Scale": "1"})
    jobs = [
        Job(name="plan", source_path=Path("plan.dwg"), index=0),
        Job(name="other", source_path=Path("other.dwg"), index=1),
    ]

    assert resolver.resolve("other", Path("other.dwg")) is None
    assert [job.name for job in resolver.missing_jobs(jobs)] == ["other"]


def test_csv_resolver_rejects_header_only_file(tmp_path) -> None:
    csv_path = _write_csv(tmp_path / "params.csv", "Filename,Scale\n")

    with pytest.raises(ResolverError, match="at least one data row"):
        CsvParameterResolver.from_csv(csv_path)


def test_csv_resolver_missing_file(tmp_path) -> None:
    with pytest.raises(ResolverError, match="not found"):
        CsvParameterResolver.from_csv(tmp_path / "missing.csv")


def test_load_template(tmp_path) -> None:
    path = tmp_path / "base.json"
    path.write_text('{"Authority": "BDA"}', "utf-8")

    assert load_template(None) is None
    assert load_template(path) == {"Authority": "BDA"}


def test_load_template_rejects_invalid_json(tmp_path) -> None:
    path = tmp_path / "base.json"
    path.write_text("{not json", "utf-8")

    with pytest.raises(ResolverError, match="Could not load"):
        load_template(path)
