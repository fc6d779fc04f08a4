"""
Stack provisioning through the Pulumi CLI.

Applies, reads outputs from and destroys one stack per call. When an ESC
environment is attached every command runs under ``esc run`` so the stack
receives the environment's AWS credentials and configuration.
"""

import logging
from typing import Dict, List, Optional

from pydantic import SecretStr

from .config import FargatestackConfig
from .logging_config import SubprocessLogHandler, mask_sensitive_data
from .models import CommandError, ConfigurationError, MissingOutputError, SourceBundle
from .process import run_command

logger = logging.getLogger(__name__)


class StackProvisioner:
    """
    Runs Pulumi operations against stacks in a source bundle.

    Mirrors the lifecycle of a single stack: select (creating it when
    needed), apply, read outputs, destroy.
    """

    def __init__(
        self,
        config: FargatestackConfig,
        token: SecretStr,
        esc_environment: Optional[str] = None,
        with_docker: bool = False,
        log_handler: Optional[SubprocessLogHandler] = None,
    ):
        self.config = config
        self._token = token
        self.esc_environment = esc_environment
        self.with_docker = with_docker
        self.log_handler = log_handler or SubprocessLogHandler("pulumi", config.log_dir)

    def _env(self) -> Dict[str, str]:
        return {
            "PULUMI_ACCESS_TOKEN": self._token.get_secret_value(),
            "PULUMI_SKIP_UPDATE_CHECK": "true",
        }

    def _pulumi(self, *args: str) -> List[str]:
        cmd = [self.config.pulumi_bin, *args, "--non-interactive"]
        if self.esc_environment:
            return [self.config.esc_bin, "run", self.esc_environment, "--", *cmd]
        return cmd

    async def _run(self, source: SourceBundle, *args: str):
        return await run_command(
            self._pulumi(*args),
            cwd=source.path,
            env=self._env(),
            log_handler=self.log_handler,
        )

    async def _ensure_container_engine(self) -> None:
        """Fail early when the stack needs a local container engine that is not reachable."""
        cmd = [self.config.container_runtime, "info"]
        result = await run_command(cmd, log_handler=self.log_handler, check=False)
        if not result.success:
            raise ConfigurationError(
                f"Stack requires a running {self.config.container_runtime} engine: "
                f"{mask_sensitive_data(result.stderr.strip()) or 'not reachable'}"
            )

    async def select_stack(self, source: SourceBundle, stack: str) -> None:
        await self._run(source, "stack", "select", stack, "--create")

    async def up(self, source: SourceBundle, stack: str) -> None:
        """Apply the stack, raising CommandError when the update fails."""
        if self.with_docker:
            await self._ensure_container_engine()

        logger.info(f"Applying stack '{stack}' from {source}")
        await self.select_stack(source, stack)
        result = await self._run(
            source, "up", "--stack", stack, "--yes", "--skip-preview"
        )
        logger.info(f"Stack '{stack}' applied in {result.duration:.1f}s")

    async def output(self, source: SourceBundle, key: str, stack: str) -> str:
        """
        Read a stack output.

        Raises:
            MissingOutputError: If the stack does not export the output
        """
        try:
            result = await self._run(source, "stack", "output", key, "--stack", stack)
        except CommandError as e:
            if "does not have output" in e.stderr:
                raise MissingOutputError(stack, key) from e
            raise

        if not result.stdout.strip():
            raise MissingOutputError(stack, key)
        return result.stdout

    async def set_config(self, source: SourceBundle, key: str, value: str, stack: str) -> None:
        """Set a stack configuration value."""
        await self.select_stack(source, stack)
        await self._run(source, "config", "set", key, value, "--stack", stack)

    async def destroy(self, source: SourceBundle, stack: str) -> str:
        """Destroy every resource in the stack and return the command output."""
        logger.info(f"Destroying stack '{stack}' from {source}")
        result = await self._run(
            source, "destroy", "--stack", stack, "--yes", "--skip-preview"
        )
        logger.info(f"Stack '{stack}' destroyed in {result.duration:.1f}s")
        return result.stdout
