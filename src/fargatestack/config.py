"""
Configuration management for Fargatestack

Handles configuration loading from environment variables, .env files,
an optional YAML project file and command-line arguments using Pydantic
settings.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import ConfigurationError

logger = logging.getLogger(__name__)


class TargetConfig(BaseModel):
    """Per-target overrides for a named deployment target."""

    esc_environment: str = Field(..., description="Pulumi ESC environment (org/project/env)")
    ecr_stack: Optional[str] = Field(None, description="Stack name for the ECR repository")
    fargate_stack: Optional[str] = Field(None, description="Stack name for the Fargate service")
    legacy_stack: Optional[str] = Field(None, description="Stack name for the all-in-one stack")
    description: Optional[str] = Field(None, description="Target description")


class ProjectConfig(BaseModel):
    """Project-level configuration listing named deployment targets."""

    target: str = Field(..., description="Currently selected target")
    targets: Dict[str, TargetConfig] = Field(..., description="Target configurations")

    @field_validator("targets")
    @classmethod
    def validate_targets(cls, v):
        """Ensure at least one target is defined."""
        if not v:
            raise ValueError("At least one target must be defined")
        return v

    def model_post_init(self, __context) -> None:
        """Ensure the selected target exists."""
        if self.target not in self.targets:
            raise ValueError(f"Selected target '{self.target}' not found in targets")


class DeploymentTarget(BaseModel):
    """Resolved deployment target handed to the orchestrator."""

    esc_environment: str
    ecr_stack: str = "ecr"
    fargate_stack: str = "fargate"
    legacy_stack: str = "dev"

    @property
    def split_stacks(self) -> list[str]:
        """Stacks torn down by the split destroy, in order."""
        return [self.ecr_stack, self.fargate_stack]


class FargatestackConfig(BaseSettings):
    """
    Main configuration class for Fargatestack.

    Configuration is loaded from:
    1. Environment variables (highest priority)
    2. .env file
    3. Default values (lowest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="FARGATESTACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_dir: str = Field(
        default="logs",
        description="Directory for log files",
    )
    verbose: bool = Field(
        default=False,
        description="Enable verbose console output",
    )

    # Tool configuration
    container_runtime: str = Field(
        default="docker",
        description="Container runtime (podman or docker)",
    )
    pulumi_bin: str = Field(default="pulumi", description="Pulumi CLI executable")
    esc_bin: str = Field(default="esc", description="Pulumi ESC CLI executable")
    git_bin: str = Field(default="git", description="git executable")

    # Deployment target
    esc_environment: Optional[str] = Field(
        default=None,
        description="Pulumi ESC environment holding config and AWS credentials",
    )
    ecr_stack: str = Field(default="ecr", description="Stack name for the ECR repository")
    fargate_stack: str = Field(default="fargate", description="Stack name for the Fargate service")
    legacy_stack: str = Field(default="dev", description="Stack name for the all-in-one stack")
    project_config_file: str = Field(
        default=".fargatestack.yml",
        description="Path to project configuration file with named targets",
    )

    # Image build configuration
    docs_repo_url: str = Field(
        default="https://github.com/dagger/dagger",
        description="Git repository holding the documentation site",
    )
    docs_branch: str = Field(default="main", description="Branch to build")
    docs_dir: str = Field(default="docs", description="Docusaurus directory inside the repository")
    node_image: str = Field(default="node:20", description="Image used to run the Docusaurus build")
    docs_build_command: str = Field(
        default="npm ci && npm run build",
        description="Shell command producing the static site in <docs_dir>/build",
    )
    base_image: str = Field(default="nginx", description="Base image serving the built site")
    image_platform: str = Field(default="linux/amd64", description="Target image platform")
    web_root: str = Field(default="/usr/share/nginx/html", description="Web root inside the image")
    exposed_port: int = Field(default=80, description="Port exposed by the image")
    image_name: str = Field(default="fargatestack/docs", description="Local image name")
    work_dir: str = Field(default=".fargatestack", description="Scratch directory for builds")

    # Execution
    operation_timeout: Optional[float] = Field(
        default=None,
        description="Deadline in seconds for a whole operation (unbounded if unset)",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @field_validator("container_runtime")
    @classmethod
    def validate_container_runtime(cls, v: str) -> str:
        """Validate container runtime is supported."""
        valid_runtimes = ["podman", "docker"]
        if v.lower() not in valid_runtimes:
            raise ValueError(
                f"container_runtime must be one of: {', '.join(valid_runtimes)}"
            )
        return v.lower()

    @field_validator("exposed_port")
    @classmethod
    def validate_exposed_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError("exposed_port must be between 1 and 65535")
        return v

    @field_validator("operation_timeout")
    @classmethod
    def validate_operation_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("operation_timeout must be positive")
        return v

    def get_log_dir_path(self) -> Path:
        """Get log directory as Path object."""
        return Path(self.log_dir)

    def get_work_dir_path(self) -> Path:
        """Get build scratch directory as Path object."""
        return Path(self.work_dir)

    def create_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        log_path = self.get_log_dir_path()
        log_path.mkdir(parents=True, exist_ok=True)
        (log_path / "commands").mkdir(exist_ok=True)

    def load_project_config(self) -> Optional[ProjectConfig]:
        """Load project configuration from .fargatestack.yml file."""
        config_path = Path(self.project_config_file)

        if not config_path.exists():
            logger.debug(f"Project config file not found: {config_path}")
            return None

        try:
            with open(config_path, "r") as f:
                config_data = yaml.safe_load(f)

            if not config_data:
                logger.warning(f"Empty project config file: {config_path}")
                return None

            return ProjectConfig(**config_data)

        except Exception as e:
            logger.error(f"Failed to load project config from {config_path}: {e}")
            raise ConfigurationError(f"Invalid project configuration: {e}") from e

    def save_project_config(self, project_config: ProjectConfig) -> None:
        """Save project configuration to .fargatestack.yml file."""
        config_path = Path(self.project_config_file)
        config_data = project_config.model_dump(exclude_none=True)

        with open(config_path, "w") as f:
            yaml.safe_dump(config_data, f, default_flow_style=False, sort_keys=True)

        logger.info(f"Saved project config to {config_path}")

    def resolve_target(self, name: Optional[str] = None) -> DeploymentTarget:
        """
        Resolve the deployment target for an operation.

        Args:
            name: Named target from the project file; the file's selected
                target is used when omitted

        Returns:
            DeploymentTarget with project-file overrides applied

        Raises:
            ConfigurationError: If no ESC environment can be determined or
                the named target does not exist
        """
        fields = {
            "esc_environment": self.esc_environment,
            "ecr_stack": self.ecr_stack,
            "fargate_stack": self.fargate_stack,
            "legacy_stack": self.legacy_stack,
        }

        project_config = self.load_project_config()
        if project_config is not None:
            target_name = name or project_config.target
            if target_name not in project_config.targets:
                available = ", ".join(project_config.targets.keys())
                raise ConfigurationError(
                    f"Target '{target_name}' not found. Available targets: {available}"
                )
            overrides = project_config.targets[target_name].model_dump(
                exclude_none=True, exclude={"description"}
            )
            fields.update(overrides)
            logger.debug(f"Using deployment target '{target_name}'")
        elif name:
            raise ConfigurationError(
                f"Target '{name}' requested but no project configuration found at "
                f"{self.project_config_file}"
            )

        if not fields["esc_environment"]:
            raise ConfigurationError(
                "No ESC environment configured. Set FARGATESTACK_ESC_ENVIRONMENT "
                f"or define a target in {self.project_config_file}."
            )

        return DeploymentTarget(**fields)


def load_config(
    config_file: Optional[str] = None,
    cli_overrides: Optional[dict] = None,
) -> FargatestackConfig:
    """
    Load configuration with optional env file and CLI overrides.

    Args:
        config_file: Optional .env style configuration file path
        cli_overrides: CLI argument overrides

    Returns:
        Loaded configuration
    """
    if config_file and Path(config_file).exists():
        config = FargatestackConfig(_env_file=config_file)
    else:
        config = FargatestackConfig()

    if cli_overrides:
        config_data = config.model_dump()
        config_data.update(cli_overrides)
        config = FargatestackConfig(**config_data)

    config.create_directories()

    return config


def get_default_config() -> FargatestackConfig:
    """
    Get default configuration for development/testing.

    Returns:
        Default configuration instance
    """
    return FargatestackConfig(
        log_level="DEBUG",
        verbose=True,
        esc_environment=os.environ.get("FARGATESTACK_ESC_ENVIRONMENT", "dev/aws-ecs-demo"),
    )
