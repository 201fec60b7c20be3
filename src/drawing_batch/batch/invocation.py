"""Control-script and parameter-bundle generation for one job."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from drawing_batch.batch.contracts import SidecarParameters, write_json, write_sidecar
from drawing_batch.batch.models import Invocation, Job
from drawing_batch.config import EngineSettings

logger = logging.getLogger(__name__)

# Windows caps a single environment block at 32767 characters.
MAX_INLINE_CONFIG_CHARS = 30_000
EXIT_DIRECTIVE = "_EXIT"
FALLBACK_EXIT_DIRECTIVE = "QUIT"


class ConfigUnavailable(RuntimeError):
    """No configuration payload and no fallback template for a job."""

    def __init__(self, job_name: str) -> None:
        super().__init__(
            f"No configuration available for {job_name} "
            "(not in parameter source and no base config)",
        )
        self.job_name = job_name


class InvocationBuilder:
    """Writes per-job scripts and parameter files into a shared temp folder.

    File names embed the run stamp and the job name, so concurrent jobs of
    one run never collide. The expected artifact path depends only on the
    output folder and the job name.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        engine: EngineSettings,
        temp_dir: Path,
        output_folder: Path,
        run_stamp: str,
        artifact_extension: str = ".json",
        fallback_template: Mapping[str, Any] | None = None,
    ) -> None:
        self.engine = engine
        self.temp_dir = temp_dir
        self.output_folder = output_folder
        self.run_stamp = run_stamp
        self.artifact_extension = artifact_extension
        self.fallback_template = dict(fallback_template) if fallback_template is not None else None

    def expected_artifact_path(self, job_name: str) -> Path:
        return self.output_folder / f"{job_name}{self.artifact_extension}"

    def build(self, job: Job, payload: Mapping[str, Any] | None) -> Invocation:
        """Materialize script, sidecar and config files for ``job``.

        Raises ConfigUnavailable before touching the filesystem when there is
        neither a payload nor a fallback template.
        """

        config = dict(payload) if payload is not None else self.fallback_template
        if config is None:
            raise ConfigUnavailable(job.name)

        self.temp_dir.mkdir(parents=True, exist_ok=True)
        stem = f"{self.run_stamp}_{job.name}"
        script_path = self.temp_dir / f"batch_{stem}.scr"
        parameter_file_path = self.temp_dir / f"params_{stem}.json"
        config_file_path = self.temp_dir / f"config_{stem}.json"
        artifact_path = self.expected_artifact_path(job.name)
        output_file_name = artifact_path.name

        write_json(config_file_path, config)
        write_sidecar(
            parameter_file_path,
            SidecarParameters(
                input_json_path=str(config_file_path),
                input_drawing_path=str(job.source_path),
                output_folder=str(self.output_folder),
                output_file_name=output_file_name,
                output_file_path=str(artifact_path),
                drawing_name=job.name,
                timestamp=self.run_stamp,
            ),
        )

        config_content = json.dumps(config, ensure_ascii=False)
        if len(config_content) > MAX_INLINE_CONFIG_CHARS:
            logger.debug(
                "Config for %s is %d chars, passing by path only",
                job.name,
                len(config_content),
            )
            config_content = ""

        environment = {
            "INPUT_JSON_PATH": str(config_file_path),
            "INPUT_JSON_CONTENT": config_content,
            "OUTPUT_FOLDER": str(self.output_folder),
            "OUTPUT_FILENAME": output_file_name,
            "OUTPUT_FILE_PATH": str(artifact_path),
            "TIMESTAMP": self.run_stamp,
            "DRAWING_NAME": job.name,
            "BATCH_PARAM_FILE": str(parameter_file_path),
        }
        script_variables = {
            "BATCH_INPUT_JSON": str(config_file_path),
            "BATCH_OUTPUT_FOLDER": str(self.output_folder),
            "BATCH_DRAWING_NAME": job.name,
            "BATCH_OUTPUT_FILENAME": output_file_name,
            "BATCH_PARAM_FILE": str(parameter_file_path),
        }
        script_path.write_text(
            render_script(
                load_dependencies=self.engine.load_dependencies,
                variables=script_variables,
                command=self.engine.command,
            ),
            "utf-8",
        )
        logger.debug("Wrote script %s and parameters %s", script_path, parameter_file_path)

        return Invocation(
            job_name=job.name,
            document_path=job.source_path,
            script_path=script_path,
            parameter_file_path=parameter_file_path,
            config_file_path=config_file_path,
            output_folder=self.output_folder,
            expected_artifact_path=artifact_path,
            environment=environment,
            script_variables=script_variables,
        )

    def engine_argv(self, invocation: Invocation) -> list[str]:
        return render_engine_argv(
            executable=self.engine.executable,
            arguments=self.engine.arguments,
            document=invocation.document_path,
            script=invocation.script_path,
        )


def render_engine_argv(
    *,
    executable: Path,
    arguments: Sequence[str],
    document: Path,
    script: Path,
) -> list[str]:
    """Expand ``{document}``/``{script}`` placeholders into an argv list."""

    return [
        str(executable),
        *(argument.format(document=str(document), script=str(script)) for argument in arguments),
    ]


def render_script(
    *,
    load_dependencies: Sequence[Path],
    variables: Mapping[str, str],
    command: str,
) -> str:
    """Build the engine script: load plugins, set variables, run, then exit."""

    lines: list[str] = []
    for dependency in load_dependencies:
        escaped = _lisp_escape(str(dependency))
        lines.append(f'(princ "\\n[Loading] {_lisp_escape(dependency.name)}\\n")')
        lines.append(f'(princ "[Loading] Path: {escaped}\\n")')
        lines.append(f'NETLOAD "{escaped}"')
    lines.append('(princ "\\n[Loading] Waiting for plugins to initialize...\\n")')
    lines.append('(command "_.DELAY" "500" "")')
    for name, value in variables.items():
        lines.append(f'(setq {name} "{_lisp_escape(value)}")')
    lines.append(command)
    lines.append('(princ "\\n[Command execution completed - preparing to exit...]\\n")')
    lines.append('(command "_.DELAY" "100" "")')
    lines.append(EXIT_DIRECTIVE)
    lines.append(FALLBACK_EXIT_DIRECTIVE)
    return "\n".join(lines) + "\n"


def _lisp_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')
