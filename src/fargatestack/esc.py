"""
Config and secrets store backed by Pulumi ESC.

Plain config values are kept under the environment's ``pulumiConfig``
block so the Pulumi stacks that import the environment see them as stack
configuration. Secrets are read from the ``environmentVariables`` of the
opened environment.
"""

import json
import logging
from typing import Any, Dict, Optional

from pydantic import SecretStr

from .config import FargatestackConfig
from .logging_config import SubprocessLogHandler, mask_sensitive_data
from .models import CommandError, MissingConfigError
from .process import run_command

logger = logging.getLogger(__name__)

CONFIG_NAMESPACE = "pulumiConfig"


class EscSession:
    """Resolved view of an opened ESC environment."""

    def __init__(self, environment: str, values: Dict[str, Any]):
        self.environment = environment
        self._values = values

    @property
    def environment_variables(self) -> Dict[str, str]:
        return self._values.get("environmentVariables") or {}

    def get_secret_env_var(self, name: str) -> str:
        """Return a resolved environment variable, failing if it is absent."""
        value = self.environment_variables.get(name)
        if value is None or str(value) == "":
            raise MissingConfigError(self.environment, name)
        return str(value)

    def __repr__(self) -> str:
        return f"EscSession(environment='{self.environment}', variables={sorted(self.environment_variables)})"


class EscClient:
    """Reads and writes config values in one ESC environment."""

    def __init__(
        self,
        config: FargatestackConfig,
        environment: str,
        token: SecretStr,
        log_handler: Optional[SubprocessLogHandler] = None,
    ):
        self.config = config
        self.environment = environment
        self._token = token
        self.log_handler = log_handler or SubprocessLogHandler("esc", config.log_dir)

    def _env(self) -> Dict[str, str]:
        return {"PULUMI_ACCESS_TOKEN": self._token.get_secret_value()}

    async def set_config(self, key: str, value: str) -> None:
        """Store a config value, replacing any previous one."""
        cmd = [
            self.config.esc_bin, "env", "set", self.environment,
            f"{CONFIG_NAMESPACE}.{key}", value,
        ]
        logger.info(f"Setting config '{key}' in {self.environment}")
        await run_command(cmd, env=self._env(), log_handler=self.log_handler)

    async def get_config(self, key: str) -> str:
        """
        Read a config value.

        Raises:
            MissingConfigError: If the key is absent or empty
            CommandError: If the esc CLI fails
        """
        cmd = [
            self.config.esc_bin, "env", "get", self.environment,
            f"{CONFIG_NAMESPACE}.{key}", "--value", "string",
        ]
        result = await run_command(
            cmd, env=self._env(), log_handler=self.log_handler, check=False
        )
        if not result.success:
            if "not found" in result.stderr.lower():
                raise MissingConfigError(self.environment, key)
            raise CommandError(result.command, result.exit_code, mask_sensitive_data(result.stderr))
        value = result.stdout.strip()
        if not value or value == "null":
            raise MissingConfigError(self.environment, key)
        logger.debug(f"Read config '{key}' from {self.environment}")
        return value

    async def open(self) -> EscSession:
        """Open the environment, resolving secrets and dynamic credentials."""
        cmd = [self.config.esc_bin, "env", "open", self.environment, "--format", "json"]
        logger.info(f"Opening environment {self.environment}")
        # Resolved secrets must not reach the command log
        result = await run_command(cmd, env=self._env(), log_handler=None)
        try:
            values = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise MissingConfigError(self.environment, "environmentVariables") from e
        return EscSession(self.environment, values)
