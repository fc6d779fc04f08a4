"""
Tests for CLI functionality.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from fargatestack import __version__
from fargatestack.cli import cli
from fargatestack.models import (
    CommandResult,
    DeploymentError,
    DestroyError,
    MissingConfigError,
    StackOperationResult,
)

from .conftest import TEST_ENVIRONMENT
from .fakes import write_file

TOKEN = "pul-0123456789abcdef0123456789abcdef"


@pytest.fixture
def cli_env(isolated_test_env, temp_workspace):
    """Environment for CLI invocations, keeping work files in the temp workspace."""
    return {
        "FARGATESTACK_WORK_DIR": str(temp_workspace / "work"),
        "FARGATESTACK_ESC_ENVIRONMENT": TEST_ENVIRONMENT,
        "PULUMI_ACCESS_TOKEN": TOKEN,
    }


@pytest.fixture
def source_dir(temp_workspace):
    write_file(temp_workspace / "infra" / "ecr" / "Pulumi.yaml", "name: ecr\n")
    return str(temp_workspace / "infra")


@pytest.fixture
def orchestrator():
    with patch("fargatestack.cli.DeploymentOrchestrator") as mock_class:
        yield mock_class.return_value


def invoke(args, env):
    runner = CliRunner()
    return runner.invoke(cli, args, env=env)


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_cli_help(self):
        result = CliRunner().invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "Fargatestack: ship a documentation site" in result.output
        for command in ["up-ecr", "up-fargate", "build", "deploy", "destroy", "destroy-legacy", "legacy-up", "version"]:
            assert command in result.output

    def test_config_show(self, cli_env):
        result = invoke(["config-show"], cli_env)

        assert result.exit_code == 0
        assert "Current Fargatestack Configuration" in result.output
        assert "Container Runtime   : docker" in result.output
        assert f"ESC Environment     : {TEST_ENVIRONMENT}" in result.output
        assert "Stacks            : ecr, fargate" in result.output
        assert "Legacy Stack      : dev" in result.output

    def test_config_show_without_target(self, cli_env):
        del cli_env["FARGATESTACK_ESC_ENVIRONMENT"]

        result = invoke(["config-show"], cli_env)

        assert result.exit_code == 0
        assert "No deployment target" in result.output

    def test_config_show_project_target(self, cli_env, temp_workspace):
        write_file(
            temp_workspace / ".fargatestack.yml",
            "target: prod\n"
            "targets:\n"
            "  prod:\n"
            "    esc_environment: acme/aws-ecs-demo/prod\n"
            "    fargate_stack: web\n",
        )

        result = invoke(["config-show"], cli_env)

        assert "ESC Environment     : acme/aws-ecs-demo/prod" in result.output
        assert "Stacks            : ecr, web" in result.output


class TestOperationCommands:
    """Test commands that drive the orchestrator."""

    def test_up_ecr(self, cli_env, source_dir, orchestrator):
        orchestrator.up_ecr = AsyncMock(return_value="repo-7f3a1c")

        result = invoke(["up-ecr", source_dir], cli_env)

        assert result.exit_code == 0, result.output
        assert "✅ Repository: repo-7f3a1c" in result.output
        source, token = orchestrator.up_ecr.call_args.args
        assert str(source.path) == source_dir
        assert token.get_secret_value() == TOKEN

    def test_up_fargate_with_image_ref(self, cli_env, source_dir, orchestrator):
        orchestrator.up_fargate = AsyncMock(return_value="http://lb.example.com")

        result = invoke(["up-fargate", source_dir, "--image-ref", "repo:v1"], cli_env)

        assert result.exit_code == 0, result.output
        assert "✅ URL: http://lb.example.com" in result.output
        assert orchestrator.up_fargate.call_args.kwargs["image_ref"] == "repo:v1"

    def test_token_required(self, cli_env, source_dir):
        del cli_env["PULUMI_ACCESS_TOKEN"]

        result = invoke(["up-ecr", source_dir], cli_env)

        assert result.exit_code == 2
        assert "--token" in result.output

    def test_source_must_exist(self, cli_env, temp_workspace):
        result = invoke(["deploy", str(temp_workspace / "missing")], cli_env)

        assert result.exit_code == 2

    def test_missing_environment(self, cli_env, source_dir):
        del cli_env["FARGATESTACK_ESC_ENVIRONMENT"]

        result = invoke(["up-ecr", source_dir], cli_env)

        assert result.exit_code == 1
        assert "No ESC environment configured" in result.output

    def test_deploy(self, cli_env, source_dir, orchestrator):
        orchestrator.deploy = AsyncMock(return_value="http://lb.example.com")

        result = invoke(["deploy", source_dir], cli_env)

        assert result.exit_code == 0, result.output
        assert "✅ Deployed: http://lb.example.com" in result.output

    def test_deploy_failure_names_step(self, cli_env, source_dir, orchestrator):
        orchestrator.deploy = AsyncMock(
            side_effect=DeploymentError("read-config", MissingConfigError(TEST_ENVIRONMENT, "ecrTag"))
        )

        result = invoke(["deploy", source_dir], cli_env)

        assert result.exit_code == 1
        assert "❌ Deployment failed" in result.output
        assert "read-config" in result.output
        assert "ecrTag" in result.output

    def test_timeout(self, cli_env, source_dir, orchestrator):
        async def slow(*args, **kwargs):
            await asyncio.sleep(5)

        orchestrator.deploy = AsyncMock(side_effect=slow)

        result = invoke(["--timeout", "0.05", "deploy", source_dir], cli_env)

        assert result.exit_code == 1
        assert "timed out" in result.output

    def test_destroy(self, cli_env, source_dir, orchestrator):
        orchestrator.destroy = AsyncMock(return_value="ecr-ok\nfargate-ok\n")

        result = invoke(["destroy", source_dir, "--parallel"], cli_env)

        assert result.exit_code == 0, result.output
        assert "ecr-ok" in result.output
        assert "✅ Stacks destroyed" in result.output
        assert orchestrator.destroy.call_args.kwargs["parallel"] is True

    def test_destroy_partial_failure(self, cli_env, source_dir, orchestrator):
        orchestrator.destroy = AsyncMock(
            side_effect=DestroyError(
                [
                    StackOperationResult("ecr", output="ecr-ok\n"),
                    StackOperationResult("fargate", error=RuntimeError("stack is locked")),
                ]
            )
        )

        result = invoke(["destroy", source_dir], cli_env)

        assert result.exit_code == 1
        assert "ecr-ok" in result.output
        assert "❌ fargate: stack is locked" in result.output

    def test_destroy_legacy(self, cli_env, source_dir, orchestrator):
        orchestrator.destroy_legacy = AsyncMock(return_value="dev-ok\n")

        result = invoke(["destroy-legacy", source_dir], cli_env)

        assert result.exit_code == 0, result.output
        assert "✅ Legacy stack destroyed" in result.output

    def test_legacy_up(self, cli_env, source_dir, orchestrator):
        orchestrator.run_legacy = AsyncMock(return_value="http://legacy.example.com")

        result = invoke(["legacy-up", source_dir], cli_env)

        assert result.exit_code == 0, result.output
        assert "✅ URL: http://legacy.example.com" in result.output


class TestVersion:
    """Test the version command."""

    @patch("fargatestack.cli.run_command", new_callable=AsyncMock)
    def test_version_shows_package_and_runtime(self, mock_run, cli_env):
        mock_run.return_value = CommandResult(
            command=["docker", "--version"], exit_code=0, stdout="Docker version 27.0.3, build 7d4bcd8\n"
        )

        result = invoke(["version"], cli_env)

        assert result.exit_code == 0, result.output
        assert f"Fargatestack version: {__version__}" in result.output
        assert "Container runtime: Docker version 27.0.3" in result.output
        assert mock_run.call_args.args[0] == ["docker", "--version"]

    @patch("fargatestack.cli.run_command", new_callable=AsyncMock)
    def test_version_without_runtime(self, mock_run, cli_env):
        mock_run.side_effect = FileNotFoundError("docker")

        result = invoke(["version"], cli_env)

        assert result.exit_code == 0
        assert f"Fargatestack version: {__version__}" in result.output
        assert "Container runtime: docker not found" in result.output
