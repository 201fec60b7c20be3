"""File-based contracts exchanged with the engine and the reporter."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass(slots=True)
class SidecarParameters:
    """Parameter file handed to the engine's command implementation.

    Keys keep the PascalCase names the engine plugin already reads.
    """

    input_json_path: str
    input_drawing_path: str
    output_folder: str
    output_file_name: str
    output_file_path: str
    drawing_name: str
    timestamp: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "InputJsonPath": self.input_json_path,
            "InputDrawingPath": self.input_drawing_path,
            "OutputFolder": self.output_folder,
            "OutputFileName": self.output_file_name,
            "OutputFilePath": self.output_file_path,
            "DrawingName": self.drawing_name,
            "Timestamp": self.timestamp,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> SidecarParameters:
        return cls(
            input_json_path=str(payload["InputJsonPath"]),
            input_drawing_path=str(payload["InputDrawingPath"]),
            output_folder=str(payload["OutputFolder"]),
            output_file_name=str(payload["OutputFileName"]),
            output_file_path=str(payload["OutputFilePath"]),
            drawing_name=str(payload["DrawingName"]),
            timestamp=str(payload["Timestamp"]),
        )


def write_json(path: Path, payload: dict[str, Any]) -> None:
    """Persist JSON payload using deterministic formatting."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True), "utf-8")


def load_json(path: Path) -> dict[str, Any]:
    """Load JSON document and validate top-level object type."""

    payload = json.loads(path.read_text("utf-8"))
    if not isinstance(payload, dict):
        raise TypeError(f"Expected JSON object in {path}")
    return payload


def write_sidecar(path: Path, parameters: SidecarParameters) -> None:
    write_json(path, parameters.to_payload())


def read_sidecar(path: Path) -> SidecarParameters:
    return SidecarParameters.from_payload(load_json(path))
