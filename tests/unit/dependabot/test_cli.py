"""
Unit tests for the dependabot CLI runner.

Why: The runner is the boundary to an external process; it must pass the
     right arguments, environment and job file, and hand every output record
     to the reconciler.

What: Tests DependabotCli.update, tool installation, scenario reading,
      image URL expansion and cleanup.

How: Mocks asyncio.create_subprocess_exec and shutil.which; the fake process
     writes the scenario file the real tool would write.
"""

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import yaml

from src.dependabot.cli import (
    CLI_TOOL_LATEST,
    DependabotCli,
    DependabotCliOptions,
    get_docker_image_url,
    read_job_scenario_output_file,
)
from src.dependabot.exceptions import DependabotCliError
from src.dependabot.models import ReconciliationResult

SCENARIO = {
    "input": {"job": {}},
    "output": [
        {"type": "mark_as_processed", "expect": {"data": {"base-commit-sha": "abc"}}},
        {"type": "increment_metric", "expect": {"data": {"metric": "x"}}},
    ],
}


def make_process(exit_code: int = 0) -> MagicMock:
    """Create a finished process mock."""
    process = MagicMock()
    process.wait = AsyncMock(return_value=exit_code)
    return process


class TestHelpers:
    """Test module level helpers."""

    @pytest.mark.parametrize(
        "image,expected",
        [
            (None, "ghcr.io/example/image:latest"),
            ("v2.0", "ghcr.io/example/image:v2.0"),
            ("contoso.azurecr.io/updater:1", "contoso.azurecr.io/updater:1"),
        ],
    )
    def test_get_docker_image_url(self, image: str | None, expected: str) -> None:
        """Test tags expand to the default image and full URLs pass through."""
        assert get_docker_image_url(image, "ghcr.io/example/image") == expected

    def test_read_scenario(self, tmp_path: Path) -> None:
        """Test the output list is read from the scenario."""
        path = tmp_path / "scenario.yaml"
        path.write_text(yaml.safe_dump(SCENARIO))

        assert read_job_scenario_output_file(path) == SCENARIO["output"]

    def test_read_empty_scenario(self, tmp_path: Path) -> None:
        """Test an empty scenario has no outputs."""
        path = tmp_path / "scenario.yaml"
        path.write_text("")

        assert read_job_scenario_output_file(path) == []

    def test_read_invalid_scenario(self, tmp_path: Path) -> None:
        """Test a scenario that is not a mapping is rejected."""
        path = tmp_path / "scenario.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(DependabotCliError):
            read_job_scenario_output_file(path)


class TestDependabotCli:
    """Test DependabotCli runs."""

    @pytest.fixture
    def cli(self, tmp_path: Path) -> DependabotCli:
        """CLI wrapper writing jobs under a temporary directory."""
        return DependabotCli(jobs_path=tmp_path / "jobs")

    @pytest.fixture
    def reconciler(self) -> MagicMock:
        """Reconciler accepting every event."""
        reconciler = MagicMock()

        async def process_all(events: Any) -> list[ReconciliationResult]:
            return [
                ReconciliationResult(success=True, output=event.to_output())
                for event in events
            ]

        reconciler.process_all = AsyncMock(side_effect=process_all)
        return reconciler

    @pytest.mark.asyncio
    async def test_update_runs_tool_and_reconciles(
        self, cli: DependabotCli, reconciler: MagicMock, update_operation, tmp_path
    ) -> None:
        """Test the job is written, the tool run and its output reconciled."""
        calls: list[dict[str, Any]] = []

        async def fake_exec(executable: str, *args: str, env: Any = None) -> Any:
            calls.append({"executable": executable, "args": list(args), "env": env})
            output = Path(args[args.index("--output") + 1])
            output.write_text(yaml.safe_dump(SCENARIO))
            return make_process()

        options = DependabotCliOptions(
            source_local_path=str(tmp_path),
            azure_devops_access_token="ado-token",
            github_access_token="gh-token",
            collector_config_path=str(tmp_path / "missing.yaml"),
            proxy_image="contoso.azurecr.io/proxy:1",
            updater_image="v2.0",
            flamegraph=True,
        )

        with (
            patch("src.dependabot.cli.shutil.which", return_value="/usr/bin/dependabot"),
            patch(
                "src.dependabot.cli.asyncio.create_subprocess_exec",
                side_effect=fake_exec,
            ),
        ):
            results = await cli.update(update_operation, reconciler, options)

        assert results is not None
        assert [r.type for r in results] == ["mark_as_processed", "increment_metric"]

        job_path = tmp_path / "jobs" / update_operation.job_id
        job_document = yaml.safe_load((job_path / "job.yaml").read_text())
        assert job_document["job"]["id"] == update_operation.job_id
        assert job_document["credentials"] == []

        call = calls[0]
        assert call["executable"] == "/usr/bin/dependabot"
        args = call["args"]
        assert args[:5] == [
            "update",
            "--file",
            str(job_path / "job.yaml"),
            "--output",
            str(job_path / "scenario.yaml"),
        ]
        assert args[args.index("--provider") + 1] == "azure"
        assert args[args.index("--local") + 1] == str(tmp_path)
        assert "--collector-config" not in args
        assert "--collector-image" not in args
        assert args[args.index("--proxy-image") + 1] == "contoso.azurecr.io/proxy:1"
        assert (
            args[args.index("--updater-image") + 1]
            == "ghcr.io/dependabot/dependabot-updater-npm:v2.0"
        )
        assert "--flamegraph" in args
        assert call["env"]["DEPENDABOT_JOB_ID"] == "update_0_npm_6f1b2c3d4e"
        assert call["env"]["LOCAL_AZURE_ACCESS_TOKEN"] == "ado-token"
        assert call["env"]["LOCAL_GITHUB_ACCESS_TOKEN"] == "gh-token"

    @pytest.mark.asyncio
    async def test_existing_scenario_skips_tool(
        self, cli: DependabotCli, reconciler: MagicMock, update_operation
    ) -> None:
        """Test a non-empty scenario from a previous run is reused."""
        job_path = cli.jobs_path / update_operation.job_id
        job_path.mkdir(parents=True)
        (job_path / "scenario.yaml").write_text(yaml.safe_dump(SCENARIO))
        exec_mock = AsyncMock()

        with (
            patch("src.dependabot.cli.shutil.which", return_value="/usr/bin/dependabot"),
            patch("src.dependabot.cli.asyncio.create_subprocess_exec", exec_mock),
        ):
            results = await cli.update(update_operation, reconciler)

        exec_mock.assert_not_awaited()
        assert results is not None
        assert len(results) == 2

    @pytest.mark.asyncio
    async def test_no_output(
        self, cli: DependabotCli, reconciler: MagicMock, update_operation
    ) -> None:
        """Test a run that writes no scenario returns None."""
        with (
            patch("src.dependabot.cli.shutil.which", return_value="/usr/bin/dependabot"),
            patch(
                "src.dependabot.cli.asyncio.create_subprocess_exec",
                AsyncMock(return_value=make_process(exit_code=1)),
            ),
        ):
            results = await cli.update(update_operation, reconciler)

        assert results is None
        reconciler.process_all.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_installs_tool_when_missing(
        self, cli: DependabotCli, tmp_path: Path
    ) -> None:
        """Test the tool is installed with go and found in GOPATH."""

        def which(name: str) -> str | None:
            return "/usr/local/go/bin/go" if name == "go" else None

        exec_mock = AsyncMock(return_value=make_process())
        with (
            patch("src.dependabot.cli.shutil.which", side_effect=which),
            patch("src.dependabot.cli.asyncio.create_subprocess_exec", exec_mock),
            patch.dict("os.environ", {"GOPATH": str(tmp_path / "go")}),
        ):
            tool_path = await cli.get_tool_path()

        assert tool_path == str(tmp_path / "go" / "bin" / "dependabot")
        exec_mock.assert_awaited_once()
        assert exec_mock.call_args.args[:3] == (
            "/usr/local/go/bin/go",
            "install",
            CLI_TOOL_LATEST,
        )

    @pytest.mark.asyncio
    async def test_install_requires_go(self, cli: DependabotCli) -> None:
        """Test a missing tool without go is an error."""
        with patch("src.dependabot.cli.shutil.which", return_value=None):
            with pytest.raises(DependabotCliError):
                await cli.get_tool_path()

    @pytest.mark.asyncio
    async def test_failed_install(self, cli: DependabotCli) -> None:
        """Test a failing go install is reported with its exit code."""

        def which(name: str) -> str | None:
            return "/usr/local/go/bin/go" if name == "go" else None

        with (
            patch("src.dependabot.cli.shutil.which", side_effect=which),
            patch(
                "src.dependabot.cli.asyncio.create_subprocess_exec",
                AsyncMock(return_value=make_process(exit_code=2)),
            ),
        ):
            with pytest.raises(DependabotCliError) as exc_info:
                await cli.get_tool_path()

        assert exc_info.value.exit_code == 2

    def test_cleanup(self, cli: DependabotCli) -> None:
        """Test cleanup removes the jobs directory."""
        (cli.jobs_path / "job").mkdir(parents=True)

        cli.cleanup()

        assert not cli.jobs_path.exists()
