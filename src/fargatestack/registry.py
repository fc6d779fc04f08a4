"""Push built images to Amazon ECR."""

import asyncio
import base64
import logging
from typing import List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import FargatestackConfig
from .logging_config import SubprocessLogHandler
from .models import AwsCredentials, BuiltImage, FargatestackError
from .process import run_command

logger = logging.getLogger(__name__)


class RegistryAuthError(FargatestackError):
    """ECR refused to issue a registry login."""


def registry_host(account_id: str, region: str) -> str:
    return f"{account_id}.dkr.ecr.{region}.amazonaws.com"


class EcrPusher:
    """
    Pushes a local image to an ECR repository using explicit credentials.

    The registry login token is fetched with boto3 and handed to the
    container runtime on stdin.
    """

    def __init__(
        self,
        config: FargatestackConfig,
        credentials: AwsCredentials,
        log_handler: Optional[SubprocessLogHandler] = None,
    ):
        self.config = config
        self.credentials = credentials
        self.container_runtime = config.container_runtime
        self.log_handler = log_handler or SubprocessLogHandler("registry_push", config.log_dir)

    def _client(self):
        return boto3.client(
            "ecr",
            region_name=self.credentials.region,
            aws_access_key_id=self.credentials.access_key,
            aws_secret_access_key=self.credentials.secret_key,
            aws_session_token=self.credentials.session_token,
        )

    def get_login_password(self, account_id: str) -> str:
        """Fetch a registry password for the account."""
        try:
            response = self._client().get_authorization_token(registryIds=[account_id])
        except (BotoCoreError, ClientError) as e:
            raise RegistryAuthError(f"Failed to get ECR authorization token: {e}") from e

        auth_data = response.get("authorizationData") or []
        if not auth_data:
            raise RegistryAuthError(f"ECR returned no authorization data for account {account_id}")

        decoded = base64.b64decode(auth_data[0]["authorizationToken"]).decode("utf-8")
        _, _, password = decoded.partition(":")
        return password

    async def login(self, account_id: str) -> str:
        """Log the container runtime into the account's registry."""
        host = registry_host(account_id, self.credentials.region)
        # Token fetch runs off the event loop
        password = await asyncio.to_thread(self.get_login_password, account_id)
        await run_command(
            [self.container_runtime, "login", "--username", "AWS", "--password-stdin", host],
            input_text=password,
            log_handler=self.log_handler,
        )
        logger.info(f"Logged in to {host}")
        return host

    async def push(
        self,
        image: BuiltImage,
        account_id: str,
        repository: str,
        tags: List[str],
    ) -> List[str]:
        """
        Push an image under each tag.

        Args:
            image: Locally built image
            account_id: AWS account owning the registry
            repository: ECR repository name
            tags: Tags to push

        Returns:
            Image references, one per tag, in tag order
        """
        if not tags:
            raise ValueError("At least one tag is required to push an image")

        host = await self.login(account_id)
        references = []
        for tag in tags:
            reference = f"{host}/{repository}:{tag}"
            await run_command(
                [self.container_runtime, "tag", image.tag, reference],
                log_handler=self.log_handler,
            )
            await run_command(
                [self.container_runtime, "push", reference],
                log_handler=self.log_handler,
            )
            logger.info(f"Pushed {reference}")
            references.append(reference)

        return references
