"""Line-level failure markers in engine output.

Best-effort keyword matching over free text printed by the engine. Kept
behind ``classify_output_line`` so the heuristic can change without touching
the process lifecycle code.
"""

from __future__ import annotations

from drawing_batch.batch.models import OutputMarker

MARKER_HEURISTIC_VERSION = 1

_COMMAND_NOT_FOUND_PATTERNS: tuple[str, ...] = (
    "unknown command",
    "command not found",
)
_DEPENDENCY_CONTEXT_PATTERNS: tuple[str, ...] = (
    "netload",
    "assembly",
)
_DEPENDENCY_ERROR_PATTERNS: tuple[str, ...] = (
    "error",
    "failed",
    "cannot",
    "unable",
    "not found",
    "exception",
    "could not",
)


def classify_output_line(line: str, *, command: str = "") -> OutputMarker | None:
    """Return the failure marker a single output line carries, if any."""

    text = line.strip().lower()
    if not text:
        return None

    command_text = command.strip().lower()
    if _first_match(text, _COMMAND_NOT_FOUND_PATTERNS) is not None:
        return OutputMarker.COMMAND_NOT_FOUND
    if "not recognized" in text and ("command" in text or (command_text and command_text in text)):
        return OutputMarker.COMMAND_NOT_FOUND
    if command_text and "not found" in text and command_text in text:
        return OutputMarker.COMMAND_NOT_FOUND

    if (
        _first_match(text, _DEPENDENCY_CONTEXT_PATTERNS) is not None
        and _first_match(text, _DEPENDENCY_ERROR_PATTERNS) is not None
    ):
        return OutputMarker.DEPENDENCY_LOAD_FAILURE
    return None


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
