from __future__ import annotations

import allure
import pytest

from drawing_batch.batch.markers import MARKER_HEURISTIC_VERSION, classify_output_line
from drawing_batch.batch.models import OutputMarker

pytestmark = [
    allure.epic("Batch Orchestration"),
    allure.feature("Output Markers"),
]


def test_marker_heuristic_version_is_stable() -> None:
    assert MARKER_HEURISTIC_VERSION == 1


@pytest.mark.parametrize(
    "line",
    [
        'Unknown command "PROCESSWITHJSONBATCH".  Press F1 for help.',
        "Command not found",
        "ProcessWithJsonBatch is not recognized as a command",
        "Error: ProcessWithJsonBatch not found",
    ],
)
def test_command_not_found_lines(line: str) -> None:
    assert classify_output_line(line, command="ProcessWithJsonBatch") is OutputMarker.COMMAND_NOT_FOUND


@pytest.mark.parametrize(
    "line",
    [
        "NETLOAD failed: C:\\plugins\\UIPlugin.dll",
        "Cannot load assembly UIPlugin, Version=1.0.0.0",
        "Assembly load exception: file not found",
    ],
)
def test_dependency_load_failure_lines(line: str) -> None:
    assert classify_output_line(line) is OutputMarker.DEPENDENCY_LOAD_FAILURE


@pytest.mark.parametrize(
    "line",
    [
        "",
        "   ",
        "[Loading] UIPlugin.dll",
        "NETLOAD completed",
        "Regenerating model.",
        "Layer A-WALL not found",
    ],
)
def test_ordinary_lines_carry_no_marker(line: str) -> None:
    assert classify_output_line(line, command="ProcessWithJsonBatch") is None


def test_not_found_without_command_name_is_not_command_marker() -> None:
    assert classify_output_line("Block REF1 not found", command="RunReport") is None
