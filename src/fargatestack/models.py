"""
Data models for Fargatestack deployment operations

Defines the value types passed between the orchestrator and its
collaborators, result classes for external commands, and the error
hierarchy raised by every deployment operation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union


# Config store keys written by the pipeline
ECR_REPO_KEY = "ecrRepo"
URL_KEY = "url"
IMAGE_REF_KEY = "imageRef"

# Config store keys the deploy operation expects to be present
ECR_TAG_KEY = "ecrTag"
AWS_REGION_KEY = "awsRegion"
AWS_ACCOUNT_ID_KEY = "awsAcctId"

# Secret environment variables exposed by the opened environment
AWS_ACCESS_KEY_VAR = "AWS_ACCESS_KEY_ID"
AWS_SECRET_KEY_VAR = "AWS_SECRET_ACCESS_KEY"
AWS_SESSION_TOKEN_VAR = "AWS_SESSION_TOKEN"


@dataclass(frozen=True)
class SourceBundle:
    """Immutable reference to a directory of infrastructure source."""

    path: Path

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", Path(self.path))

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "SourceBundle":
        return cls(Path(path))

    def directory(self, name: str) -> "SourceBundle":
        """Return the bundle scoped to a sub-directory (one per stack)."""
        return SourceBundle(self.path / name)

    def exists(self) -> bool:
        return self.path.is_dir()

    def __str__(self) -> str:
        return str(self.path)


@dataclass(frozen=True)
class AwsCredentials:
    """Short-lived AWS credentials resolved from the config store."""

    access_key: str
    secret_key: str
    session_token: str
    region: str

    def __repr__(self) -> str:
        return (
            f"AwsCredentials(access_key='{self.access_key[:4]}***', "
            f"secret_key='***', session_token='***', region='{self.region}')"
        )


class BuildStatus(Enum):
    """Status values for image builds."""

    PENDING = "pending"
    BUILDING = "building"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class BuiltImage:
    """A container image built locally but not yet pushed."""

    tag: str
    base_image: str
    platform: str
    web_root: str
    exposed_ports: List[int] = field(default_factory=list)
    build_time: float = 0.0
    status: BuildStatus = BuildStatus.SUCCESS

    @property
    def success(self) -> bool:
        return self.status == BuildStatus.SUCCESS


@dataclass
class CommandResult:
    """Result of one external command."""

    command: List[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def get_summary(self) -> str:
        """Get a summary string for the command result."""
        status = "✅ SUCCESS" if self.success else "❌ FAILED"
        return f"{status}: {self.command[0]} ({self.duration:.1f}s)"


@dataclass
class StackOperationResult:
    """Outcome of tearing down a single stack."""

    stack: str
    output: str = ""
    error: Optional[BaseException] = None

    @property
    def success(self) -> bool:
        return self.error is None


class FargatestackError(Exception):
    """Base class for deployment pipeline errors."""


class ConfigurationError(FargatestackError):
    """Local configuration is missing or invalid."""


class CommandError(FargatestackError):
    """An external command exited with a non-zero status."""

    def __init__(self, command: List[str], exit_code: int, stderr: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(
            f"Command '{' '.join(command[:3])}' failed with exit code {exit_code}: {detail}"
        )


class MissingConfigError(FargatestackError):
    """A required key is absent from the config store."""

    def __init__(self, environment: str, key: str):
        self.environment = environment
        self.key = key
        super().__init__(f"Config value '{key}' not found in environment '{environment}'")


class MissingOutputError(FargatestackError):
    """A stack output is absent after a reported-successful apply."""

    def __init__(self, stack: str, key: str):
        self.stack = stack
        self.key = key
        super().__init__(f"Stack '{stack}' did not export output '{key}'")


class DeploymentError(FargatestackError):
    """A deploy step failed; the original error is chained as __cause__."""

    def __init__(self, step: str, error: BaseException):
        self.step = step
        self.error = error
        super().__init__(f"Deploy step '{step}' failed: {error}")


class DestroyError(FargatestackError):
    """One or more stack teardowns failed."""

    def __init__(self, results: List[StackOperationResult]):
        self.results = results
        failed = [r for r in results if not r.success]
        details = "; ".join(f"{r.stack}: {r.error}" for r in failed)
        super().__init__(f"Failed to destroy {len(failed)} stack(s): {details}")

    @property
    def partial_output(self) -> str:
        return "".join(r.output for r in self.results if r.success)

    def failures(self) -> Dict[str, BaseException]:
        return {r.stack: r.error for r in self.results if r.error is not None}
