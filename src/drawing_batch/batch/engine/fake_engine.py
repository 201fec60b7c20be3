"""Local stand-in for the CAD engine, used by integration tests.

Invoked as ``python -m drawing_batch.batch.engine.fake_engine DOCUMENT SCRIPT``.
The "drawing" document is a JSON object describing how to behave:

- ``stdout`` / ``stderr``: lines to print;
- ``unknown_command``: print the engine's unknown-command message for the
  command found in the script;
- ``spawn_child``: start a long-sleeping child and write its pid to
  ``DOCUMENT.child_pid``;
- ``sleep_seconds`` / ``hang``: delay or never exit;
- ``write_artifact``: write the expected artifact, reading the target from
  the channel named by ``channel`` (``env``, ``script`` or ``sidecar``);
- ``artifact_suffix``: write ``{name}{suffix}`` instead of the expected file;
- ``record_parameters``: dump all three parameter channels to
  ``DOCUMENT.seen.json``;
- ``exit_code``: process exit status.
"""

from __future__ import annotations

import argparse
import json
import os
import re
import subprocess
import sys
import time
from pathlib import Path
from typing import Any

_SETQ_PATTERN = re.compile(r'^\(setq (\w+) "((?:[^"\\]|\\.)*)"\)$')
_COMPLETION_MARKER = "[Command execution completed"


def main(argv: list[str] | None = None) -> int:
    """Behave as the document asks and return its exit code."""

    parser = argparse.ArgumentParser()
    parser.add_argument("document")
    parser.add_argument("script")
    args = parser.parse_args(argv)

    document = Path(args.document)
    behavior = _read_behavior(document)
    script_variables, command = _parse_script(Path(args.script))
    print(f"[fake-engine] opened {document.name}", flush=True)

    for line in behavior.get("stdout", []):
        print(line, flush=True)
    for line in behavior.get("stderr", []):
        print(line, file=sys.stderr, flush=True)
    if behavior.get("unknown_command"):
        print(f'Unknown command "{command.upper()}".  Press F1 for help.', flush=True)

    if behavior.get("spawn_child"):
        child = subprocess.Popen(  # noqa: S603
            [sys.executable, "-c", "import time; time.sleep(600)"],
        )
        Path(f"{document}.child_pid").write_text(str(child.pid), "utf-8")

    if behavior.get("record_parameters"):
        sidecar_path = os.environ.get("BATCH_PARAM_FILE", "")
        seen = {
            "environment": {
                key: os.environ.get(key, "")
                for key in (
                    "INPUT_JSON_PATH",
                    "INPUT_JSON_CONTENT",
                    "OUTPUT_FOLDER",
                    "OUTPUT_FILENAME",
                    "OUTPUT_FILE_PATH",
                    "TIMESTAMP",
                    "DRAWING_NAME",
                    "BATCH_PARAM_FILE",
                )
            },
            "script": script_variables,
            "sidecar": json.loads(Path(sidecar_path).read_text("utf-8")) if sidecar_path else {},
            "command": command,
        }
        Path(f"{document}.seen.json").write_text(json.dumps(seen, indent=2), "utf-8")

    time.sleep(float(behavior.get("sleep_seconds", 0)))
    while behavior.get("hang"):
        time.sleep(1)

    if behavior.get("write_artifact") or behavior.get("artifact_suffix"):
        target = _artifact_target(str(behavior.get("channel", "env")), script_variables)
        suffix = behavior.get("artifact_suffix")
        if suffix:
            target = target.with_name(f"{os.environ['DRAWING_NAME']}{suffix}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps({"drawing": os.environ.get("DRAWING_NAME", "")}), "utf-8")

    print("[fake-engine] done", flush=True)
    return int(behavior.get("exit_code", 0))


def _read_behavior(document: Path) -> dict[str, Any]:
    try:
        payload = json.loads(document.read_text("utf-8"))
    except (OSError, ValueError):
        return {}
    return payload if isinstance(payload, dict) else {}


def _parse_script(script: Path) -> tuple[dict[str, str], str]:
    variables: dict[str, str] = {}
    command = ""
    previous = ""
    for raw_line in script.read_text("utf-8").splitlines():
        line = raw_line.strip()
        match = _SETQ_PATTERN.match(line)
        if match:
            variables[match.group(1)] = match.group(2).replace('\\"', '"').replace("\\\\", "\\")
        if _COMPLETION_MARKER in line:
            command = previous
        previous = line
    return variables, command


def _artifact_target(channel: str, script_variables: dict[str, str]) -> Path:
    if channel == "script":
        return Path(script_variables["BATCH_OUTPUT_FOLDER"]) / script_variables[
            "BATCH_OUTPUT_FILENAME"
        ]
    if channel == "sidecar":
        sidecar = json.loads(Path(script_variables["BATCH_PARAM_FILE"]).read_text("utf-8"))
        return Path(sidecar["OutputFilePath"])
    return Path(os.environ["OUTPUT_FOLDER"]) / os.environ["OUTPUT_FILENAME"]


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
