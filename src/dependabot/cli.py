"""Runs update jobs with the dependabot CLI and reconciles their output.

The CLI is run once per update, to completion, with a ``job.yaml`` input;
its ``scenario.yaml`` output lists the events the reconciler applies.
See https://github.com/dependabot/cli/blob/main/internal/model/scenario.go
"""

import asyncio
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .events import parse_scenario_outputs
from .exceptions import DependabotCliError
from .models import ReconciliationResult, UpdateOperation
from .reconciler import OutputReconciler

logger = logging.getLogger(__name__)

CLI_TOOL_LATEST = "github.com/dependabot/cli/cmd/dependabot@latest"
COLLECTOR_IMAGE_NAME = (
    "ghcr.io/open-telemetry/opentelemetry-collector-releases/"
    "opentelemetry-collector-contrib"
)
PROXY_IMAGE_NAME = (
    "ghcr.io/github/dependabot-update-job-proxy/dependabot-update-job-proxy"
)
UPDATER_IMAGE_NAME = "ghcr.io/dependabot/dependabot-updater-{package-ecosystem}"


@dataclass
class DependabotCliOptions:
    """Per-run options passed through to the CLI."""

    source_provider: str | None = "azure"
    source_local_path: str | None = None
    azure_devops_access_token: str | None = None
    github_access_token: str | None = None
    collector_image: str | None = None
    collector_config_path: str | None = None
    proxy_image: str | None = None
    updater_image: str | None = None
    flamegraph: bool = False


def get_docker_image_url(image: str | None, default_image_name: str) -> str:
    """Expand a bare tag into the default image; full image URLs pass through."""
    if image and "." in image and "/" in image:
        return image
    return f"{default_image_name}:{image or 'latest'}"


def write_job_config_file(path: Path, operation: UpdateOperation) -> None:
    """Write the ``{job, credentials}`` input document."""
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(
            {"job": operation.job, "credentials": operation.credentials},
            f,
            sort_keys=False,
        )


def read_job_scenario_output_file(path: Path) -> list[Any]:
    """Read the ``output`` records of a scenario document.

    Raises:
        DependabotCliError: If the document is not a mapping
    """
    content = path.read_text(encoding="utf-8")
    if not content.strip():
        return []

    try:
        scenario = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise DependabotCliError(f"Invalid scenario file '{path}': {e}") from e
    if not isinstance(scenario, dict):
        raise DependabotCliError(f"Invalid scenario object in '{path}'")
    return scenario.get("output") or []


class DependabotCli:
    """Wrapper for running update jobs with the dependabot CLI."""

    def __init__(
        self,
        tool_image: str | None = None,
        jobs_path: str | Path | None = None,
        debug: bool = False,
    ):
        """Initialize CLI wrapper.

        Args:
            tool_image: Go package to install the CLI from; forces an install
            jobs_path: Directory for job inputs and outputs
            debug: Log job documents
        """
        self.tool_image = tool_image
        self.jobs_path = Path(jobs_path or Path(tempfile.gettempdir()) / "dependabot-jobs")
        self.debug = debug
        self._tool_path: str | None = None

    async def _exec(
        self, executable: str, args: list[str], env: dict[str, str] | None = None
    ) -> int:
        logger.debug(f"Running {executable} {' '.join(args)}")
        try:
            process = await asyncio.create_subprocess_exec(
                executable, *args, env=env
            )
        except OSError as e:
            raise DependabotCliError(f"Failed to start '{executable}': {e}") from e
        return await process.wait()

    async def get_tool_path(self) -> str:
        """Find the CLI on PATH, installing it with ``go install`` if missing.

        An explicitly configured tool image is always installed.
        """
        if not self.tool_image:
            self._tool_path = self._tool_path or shutil.which("dependabot")
            if self._tool_path:
                return self._tool_path
            logger.debug("Dependabot CLI was not found; attempting to install it")

        go = shutil.which("go")
        if not go:
            raise DependabotCliError(
                "Dependabot CLI is not installed and Go is not available to install it"
            )

        logger.info("Installing Dependabot CLI")
        exit_code = await self._exec(go, ["install", self.tool_image or CLI_TOOL_LATEST])
        if exit_code != 0:
            raise DependabotCliError(
                "Failed to install Dependabot CLI", exit_code=exit_code
            )

        # go/bin is not always on PATH
        gopath = os.getenv("GOPATH")
        go_bin_path = Path(gopath) / "bin" if gopath else Path.home() / "go" / "bin"
        self._tool_path = shutil.which("dependabot") or str(go_bin_path / "dependabot")
        return self._tool_path

    def _build_arguments(
        self,
        operation: UpdateOperation,
        input_path: Path,
        output_path: Path,
        options: DependabotCliOptions,
    ) -> list[str]:
        # https://github.com/dependabot/cli/blob/main/cmd/dependabot/internal/cmd/update.go
        args = ["update", "--file", str(input_path), "--output", str(output_path)]
        if options.source_provider:
            args += ["--provider", options.source_provider]
        if options.source_local_path and Path(options.source_local_path).exists():
            args += ["--local", options.source_local_path]
        if options.collector_image:
            args += [
                "--collector-image",
                get_docker_image_url(options.collector_image, COLLECTOR_IMAGE_NAME),
            ]
        if options.collector_config_path and Path(options.collector_config_path).exists():
            args += ["--collector-config", options.collector_config_path]
        if options.proxy_image:
            args += [
                "--proxy-image",
                get_docker_image_url(options.proxy_image, PROXY_IMAGE_NAME),
            ]
        if options.updater_image:
            template = get_docker_image_url(options.updater_image, UPDATER_IMAGE_NAME)
            args += [
                "--updater-image",
                template.replace(
                    "{package-ecosystem}", operation.config.package_ecosystem
                ),
            ]
        if options.flamegraph:
            args.append("--flamegraph")
        return args

    @staticmethod
    def _build_environment(
        operation: UpdateOperation, options: DependabotCliOptions
    ) -> dict[str, str]:
        env = dict(os.environ)
        env["DEPENDABOT_JOB_ID"] = operation.job_id.replace("-", "_")
        if options.github_access_token:
            env["LOCAL_GITHUB_ACCESS_TOKEN"] = options.github_access_token
        if options.azure_devops_access_token:
            env["LOCAL_AZURE_ACCESS_TOKEN"] = options.azure_devops_access_token
        return env

    async def update(
        self,
        operation: UpdateOperation,
        reconciler: OutputReconciler,
        options: DependabotCliOptions | None = None,
    ) -> list[ReconciliationResult] | None:
        """Run one update job and reconcile its output.

        Args:
            operation: The update to run
            reconciler: Reconciler holding this update's pull request snapshot
            options: CLI options

        Returns:
            One result per output event, or None if the job produced no output

        Raises:
            DependabotCliError: If the CLI cannot be installed or its output
                cannot be read
        """
        options = options or DependabotCliOptions()
        logger.info(f"Running job '{operation.job_id}'")

        tool_path = await self.get_tool_path()

        job_path = self.jobs_path / operation.job_id
        job_path.mkdir(parents=True, exist_ok=True)
        input_path = job_path / "job.yaml"
        output_path = job_path / "scenario.yaml"

        write_job_config_file(input_path, operation)
        if self.debug:
            logger.debug(f"Job: {operation.job}")

        if not output_path.exists() or output_path.stat().st_size == 0:
            logger.info(f"Processing job from '{input_path}'")
            exit_code = await self._exec(
                tool_path,
                self._build_arguments(operation, input_path, output_path, options),
                env=self._build_environment(operation, options),
            )
            if exit_code != 0:
                logger.error(f"Dependabot failed with exit code {exit_code}")

        flamegraph_path = Path.cwd() / "flamegraph.html"
        if options.flamegraph and flamegraph_path.exists():
            report_path = Path.cwd() / f"dependabot-{operation.job_id}-flamegraph.html"
            flamegraph_path.rename(report_path)
            logger.info(f"Flame graph report written to '{report_path}'")

        if not output_path.exists():
            return None

        outputs = read_job_scenario_output_file(output_path)
        if not outputs:
            return None

        logger.info(f"Processing {len(outputs)} job output(s) from '{output_path}'")
        results = await reconciler.process_all(parse_scenario_outputs(outputs))
        return results or None

    def cleanup(self) -> None:
        """Remove the jobs directory and its contents."""
        if self.jobs_path.exists():
            shutil.rmtree(self.jobs_path, ignore_errors=True)
