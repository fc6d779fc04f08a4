"""
Deployment orchestration for the ECR + Fargate pipeline.

Coordinates the config store, the stack provisioner, the image builder
and the registry pusher:
- ECR repository provisioning
- documentation image build and push
- Fargate service provisioning
- teardown of the split stacks and of the legacy all-in-one stack
"""

import asyncio
import logging
from contextlib import contextmanager
from typing import Awaitable, Callable, Iterator, List, Optional, TypeVar

from pydantic import SecretStr

from .builder import ImageBuilder
from .config import DeploymentTarget, FargatestackConfig
from .esc import EscClient
from .models import (
    AWS_ACCESS_KEY_VAR,
    AWS_ACCOUNT_ID_KEY,
    AWS_REGION_KEY,
    AWS_SECRET_KEY_VAR,
    AWS_SESSION_TOKEN_VAR,
    ECR_REPO_KEY,
    ECR_TAG_KEY,
    IMAGE_REF_KEY,
    URL_KEY,
    AwsCredentials,
    BuiltImage,
    DeploymentError,
    DestroyError,
    SourceBundle,
    StackOperationResult,
)
from .provisioner import StackProvisioner
from .registry import EcrPusher

logger = logging.getLogger(__name__)

T = TypeVar("T")

REPO_OUTPUT = "repo"
URL_OUTPUT = "url"
IMAGE_REF_STACK_CONFIG = "imageRef"

# Sub-directories of the source bundle holding each stack program
ECR_SOURCE_DIR = "ecr"
FARGATE_SOURCE_DIR = "fargate"


async def run_with_timeout(operation: Awaitable[T], timeout: Optional[float]) -> T:
    """Await an operation under an optional deadline; expiry cancels the in-flight call."""
    if timeout is None:
        return await operation
    return await asyncio.wait_for(operation, timeout)


@contextmanager
def deploy_step(name: str) -> Iterator[None]:
    """Tag any failure inside the block with the deploy step name."""
    logger.info(f"Deploy step: {name}")
    try:
        yield
    except DeploymentError:
        raise
    except Exception as e:
        logger.error(f"Deploy step '{name}' failed: {e}")
        raise DeploymentError(name, e) from e


class DeploymentOrchestrator:
    """Orchestrates provisioning, build, push and teardown for one deployment target."""

    def __init__(
        self,
        config: FargatestackConfig,
        target: DeploymentTarget,
        esc_factory: Optional[Callable[[str, SecretStr], EscClient]] = None,
        provisioner_factory: Optional[Callable[..., StackProvisioner]] = None,
        builder: Optional[ImageBuilder] = None,
        pusher_factory: Optional[Callable[[AwsCredentials], EcrPusher]] = None,
    ):
        """Initialize orchestrator; collaborators default to the CLI-backed implementations."""
        self.config = config
        self.target = target
        self._esc_factory = esc_factory or (
            lambda environment, token: EscClient(config, environment, token)
        )
        self._provisioner_factory = provisioner_factory or (
            lambda token, esc_environment=None, with_docker=False: StackProvisioner(
                config, token, esc_environment=esc_environment, with_docker=with_docker
            )
        )
        self._builder = builder
        self._pusher_factory = pusher_factory or (
            lambda credentials: EcrPusher(config, credentials)
        )

    @property
    def environment(self) -> str:
        return self.target.esc_environment

    @property
    def builder(self) -> ImageBuilder:
        if self._builder is None:
            self._builder = ImageBuilder(self.config)
        return self._builder

    def _config_store(self, token: SecretStr) -> EscClient:
        return self._esc_factory(self.environment, token)

    def _provisioner(self, token: SecretStr, with_docker: bool = False) -> StackProvisioner:
        return self._provisioner_factory(
            token, esc_environment=self.environment, with_docker=with_docker
        )

    async def _up_and_record(
        self,
        source: SourceBundle,
        token: SecretStr,
        stack: str,
        output_key: str,
        config_key: str,
        image_ref: Optional[str] = None,
    ) -> str:
        store = self._config_store(token)
        provisioner = self._provisioner(token)

        if image_ref is not None:
            await provisioner.set_config(source, IMAGE_REF_STACK_CONFIG, image_ref, stack)

        await provisioner.up(source, stack)
        value = (await provisioner.output(source, output_key, stack)).strip()
        await store.set_config(config_key, value)
        logger.info(f"Stack '{stack}' output {output_key}={value}")
        return value

    async def up_ecr(self, source: SourceBundle, token: SecretStr) -> str:
        """
        Apply the ECR stack and record the repository name.

        Returns:
            Repository name, also stored under the ``ecrRepo`` config key
        """
        return await self._up_and_record(
            source, token, self.target.ecr_stack, REPO_OUTPUT, ECR_REPO_KEY
        )

    async def up_fargate(
        self,
        source: SourceBundle,
        token: SecretStr,
        image_ref: Optional[str] = None,
    ) -> str:
        """
        Apply the Fargate stack and record the service URL.

        Args:
            source: Fargate stack sources
            token: Pulumi access token
            image_ref: Image to run; written to the stack config before the
                update when given, otherwise the stack reads ``imageRef``
                from the environment

        Returns:
            Service URL, also stored under the ``url`` config key
        """
        return await self._up_and_record(
            source, token, self.target.fargate_stack, URL_OUTPUT, URL_KEY, image_ref=image_ref
        )

    async def build(self) -> BuiltImage:
        """Build the documentation site image (not pushed)."""
        return await self.builder.build_docs_image()

    async def deploy(self, source: SourceBundle, token: SecretStr) -> str:
        """
        Provision the registry, build and push the image, then provision hosting.

        Args:
            source: Bundle holding one sub-directory per stack
            token: Pulumi access token

        Returns:
            URL of the deployed service

        Raises:
            DeploymentError: Tagged with the step that failed
        """
        logger.info(f"Deploying to environment {self.environment}")
        store = self._config_store(token)

        with deploy_step("read-config"):
            ecr_tag = await store.get_config(ECR_TAG_KEY)
            aws_region = await store.get_config(AWS_REGION_KEY)
            aws_account_id = await store.get_config(AWS_ACCOUNT_ID_KEY)

        with deploy_step("open-secrets"):
            session = await store.open()
            credentials = AwsCredentials(
                access_key=session.get_secret_env_var(AWS_ACCESS_KEY_VAR),
                secret_key=session.get_secret_env_var(AWS_SECRET_KEY_VAR),
                session_token=session.get_secret_env_var(AWS_SESSION_TOKEN_VAR),
                region=aws_region,
            )

        with deploy_step("up-ecr"):
            repository = await self.up_ecr(
                source.directory(ECR_SOURCE_DIR), token
            )

        with deploy_step("build"):
            image = await self.build()

        with deploy_step("push"):
            pusher = self._pusher_factory(credentials)
            references = await pusher.push(image, aws_account_id, repository, [ecr_tag])
            image_ref = references[0]

        with deploy_step("store-image-ref"):
            await store.set_config(IMAGE_REF_KEY, image_ref)

        with deploy_step("up-fargate"):
            url = await self.up_fargate(
                source.directory(FARGATE_SOURCE_DIR), token, image_ref=image_ref
            )

        logger.info(f"Deployment complete: {url}")
        return url

    async def _destroy_stack(
        self, provisioner: StackProvisioner, source: SourceBundle, stack: str
    ) -> StackOperationResult:
        try:
            output = await provisioner.destroy(source, stack)
        except Exception as e:
            logger.error(f"Failed to destroy stack '{stack}': {e}")
            return StackOperationResult(stack=stack, error=e)
        return StackOperationResult(stack=stack, output=output)

    async def destroy(
        self, source: SourceBundle, token: SecretStr, parallel: bool = False
    ) -> str:
        """
        Tear down the ECR and Fargate stacks.

        Sequential by default and stops at the first failure. With
        ``parallel`` every teardown runs concurrently; outputs are still
        joined in stack order and any failure raises DestroyError after all
        teardowns finished.

        Returns:
            Concatenated destroy output, in stack order
        """
        layout = list(zip((ECR_SOURCE_DIR, FARGATE_SOURCE_DIR), self.target.split_stacks))
        provisioner = self._provisioner(token)

        if not parallel:
            output = ""
            for directory, stack in layout:
                output += await provisioner.destroy(source.directory(directory), stack)
            return output

        results: List[StackOperationResult] = await asyncio.gather(
            *(self._destroy_stack(provisioner, source.directory(d), s) for d, s in layout)
        )
        if not all(r.success for r in results):
            raise DestroyError(results)
        return "".join(r.output for r in results)

    async def destroy_legacy(self, source: SourceBundle, token: SecretStr) -> str:
        """Tear down the legacy all-in-one stack."""
        provisioner = self._provisioner(token)
        return await provisioner.destroy(source, self.target.legacy_stack)

    async def run_legacy(self, source: SourceBundle, token: SecretStr) -> str:
        """
        Apply the legacy all-in-one stack, which builds its image with a
        local container engine, and return its URL.
        """
        stack = self.target.legacy_stack
        provisioner = self._provisioner(token, with_docker=True)
        await provisioner.up(source, stack)
        return (await provisioner.output(source, URL_OUTPUT, stack)).strip()
