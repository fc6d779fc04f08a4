"""
Pytest configuration and fixtures for Fargatestack tests.

Provides common fixtures and test utilities across all test modules.
"""

import os
import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest
from pydantic import SecretStr

from fargatestack.config import DeploymentTarget, FargatestackConfig
from fargatestack.logging_config import SubprocessLogHandler
from fargatestack.models import SourceBundle

from .fakes import CallLog, FakeEscStore, FakeImageBuilder, FakeProvisioner, FakePusher

TEST_ENVIRONMENT = "acme/aws-ecs-demo/test"


@pytest.fixture(scope="session")
def test_logs_dir() -> Generator[str, None, None]:
    """
    Create temporary directory for test logs that persists for the session.

    Yields:
        Path to temporary logs directory
    """
    temp_dir = tempfile.mkdtemp(prefix="fargatestack_test_logs_")
    logs_dir = Path(temp_dir) / "logs"
    (logs_dir / "commands").mkdir(parents=True)

    yield str(logs_dir)

    shutil.rmtree(temp_dir)


@pytest.fixture
def temp_workspace() -> Generator[Path, None, None]:
    """
    Create temporary workspace directory for test files.

    Yields:
        Path to temporary workspace
    """
    temp_dir = tempfile.mkdtemp(prefix="fargatestack_workspace_")
    workspace = Path(temp_dir)

    yield workspace

    shutil.rmtree(temp_dir)


@pytest.fixture
def isolated_test_env(test_logs_dir: str, temp_workspace: Path) -> Generator[dict[str, str], None, None]:
    """
    Create isolated test environment with clean environment variables.

    Yields:
        Dictionary of original environment variables
    """
    original_env = os.environ.copy()

    for key in list(os.environ.keys()):
        if key.startswith("FARGATESTACK_") or key == "PULUMI_ACCESS_TOKEN":
            del os.environ[key]

    os.environ.update(
        {
            "FARGATESTACK_LOG_DIR": test_logs_dir,
            "FARGATESTACK_PROJECT_CONFIG_FILE": str(temp_workspace / ".fargatestack.yml"),
        }
    )

    yield original_env

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def test_config(isolated_test_env: dict[str, str], temp_workspace: Path) -> FargatestackConfig:
    """
    Create test configuration with safe defaults.

    Returns:
        Test configuration instance
    """
    return FargatestackConfig(
        log_level="DEBUG",
        verbose=True,
        log_dir=os.environ["FARGATESTACK_LOG_DIR"],
        esc_environment=TEST_ENVIRONMENT,
        work_dir=str(temp_workspace / "work"),
        project_config_file=str(temp_workspace / ".fargatestack.yml"),
    )


@pytest.fixture
def deployment_target(test_config: FargatestackConfig) -> DeploymentTarget:
    return test_config.resolve_target()


@pytest.fixture
def token() -> SecretStr:
    return SecretStr("pul-0123456789abcdef0123456789abcdef")


@pytest.fixture
def quiet_log_handler() -> SubprocessLogHandler:
    """Command log handler that writes no files."""
    return SubprocessLogHandler("test", None)


@pytest.fixture
def source_bundle(temp_workspace: Path) -> SourceBundle:
    """Source tree with one directory per stack."""
    root = temp_workspace / "infra"
    for stack in ("ecr", "fargate"):
        (root / stack).mkdir(parents=True)
        (root / stack / "Pulumi.yaml").write_text(f"name: {stack}\nruntime: python\n")
    return SourceBundle.from_path(root)


@pytest.fixture
def call_log() -> CallLog:
    return CallLog()


@pytest.fixture
def esc_store(call_log: CallLog) -> FakeEscStore:
    return FakeEscStore(
        call_log,
        values={"ecrTag": "v1.2.3", "awsRegion": "us-west-2", "awsAcctId": "123456789012"},
        secrets={
            "AWS_ACCESS_KEY_ID": "ASIAEXAMPLEKEY123456",
            "AWS_SECRET_ACCESS_KEY": "secret-access-key",
            "AWS_SESSION_TOKEN": "session-token",
        },
    )


@pytest.fixture
def provisioner(call_log: CallLog) -> FakeProvisioner:
    return FakeProvisioner(
        call_log,
        outputs={
            ("ecr", "repo"): "  repo-7f3a1c\n",
            ("fargate", "url"): "http://loadbalancer-123.us-west-2.elb.amazonaws.com\n",
            ("dev", "url"): " http://legacy.example.com \n",
        },
        destroy_outputs={"ecr": "ecr-ok", "fargate": "fargate-ok", "dev": "dev-ok"},
    )


@pytest.fixture
def image_builder(call_log: CallLog) -> FakeImageBuilder:
    return FakeImageBuilder(call_log)


@pytest.fixture
def pusher(call_log: CallLog) -> FakePusher:
    return FakePusher(call_log)


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "subprocess: marks tests that spawn real processes")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers automatically."""
    for item in items:
        if "process" in item.nodeid:
            item.add_marker(pytest.mark.subprocess)

        if any(keyword in item.nodeid for keyword in ["slow", "timeout"]):
            item.add_marker(pytest.mark.slow)
