"""
Container image building for the documentation site

Fetches the documentation sources, runs the Docusaurus build inside a
Node container and assembles an nginx image serving the result. The image
itself is described by an ImageSpec and rendered into a Containerfile so
the same spec always produces the same build instructions.
"""

import dataclasses
import logging
import shutil
from pathlib import Path
from typing import Optional, Tuple

from .config import FargatestackConfig
from .logging_config import SubprocessLogHandler
from .models import BuildStatus, BuiltImage
from .process import run_command

logger = logging.getLogger(__name__)

CONTAINERFILE_NAME = "Containerfile"


@dataclasses.dataclass(frozen=True)
class ImageSpec:
    """
    Declarative description of an image: base, platform, layered
    directories and exposed ports.

    Every ``with_*`` method returns a new spec.
    """

    base_image: str
    platform: str
    directories: Tuple[Tuple[str, Path], ...] = ()
    exposed_ports: Tuple[int, ...] = ()

    @classmethod
    def from_base(cls, image: str, platform: str = "linux/amd64") -> "ImageSpec":
        return cls(base_image=image, platform=platform)

    def with_directory(self, path: str, content: Path) -> "ImageSpec":
        """Copy the host directory ``content`` to ``path`` inside the image."""
        return dataclasses.replace(
            self, directories=self.directories + ((path, Path(content)),)
        )

    def with_exposed_port(self, port: int) -> "ImageSpec":
        if port in self.exposed_ports:
            return self
        return dataclasses.replace(self, exposed_ports=self.exposed_ports + (port,))

    def layer_name(self, index: int) -> str:
        return f"layer{index}"

    def render_containerfile(self) -> str:
        """Render the build instructions for this spec."""
        lines = [f"FROM --platform={self.platform} {self.base_image}"]
        for index, (path, _) in enumerate(self.directories):
            target = path.rstrip("/") + "/"
            lines.append(f"COPY {self.layer_name(index)}/ {target}")
        for port in self.exposed_ports:
            lines.append(f"EXPOSE {port}")
        return "\n".join(lines) + "\n"


class ImageBuilder:
    """
    Builds the documentation site image with the configured container runtime.
    """

    def __init__(
        self,
        config: FargatestackConfig,
        log_handler: Optional[SubprocessLogHandler] = None,
    ):
        """Initialize image builder with configuration."""
        self.config = config
        self.log_handler = log_handler or SubprocessLogHandler(
            "image_build", config.log_dir
        )
        self.container_runtime = config.container_runtime
        self.work_dir = config.get_work_dir_path()

    async def fetch_source(self) -> Path:
        """
        Shallow-clone the documentation repository at the configured branch.

        Returns:
            Path to the checked-out tree
        """
        target = self.work_dir / "source"
        if target.exists():
            shutil.rmtree(target)
        target.parent.mkdir(parents=True, exist_ok=True)

        logger.info(
            f"Fetching {self.config.docs_repo_url} ({self.config.docs_branch})"
        )
        await run_command(
            [
                self.config.git_bin, "clone",
                "--depth", "1",
                "--branch", self.config.docs_branch,
                self.config.docs_repo_url,
                str(target),
            ],
            log_handler=self.log_handler,
        )

        revision = await run_command(
            [self.config.git_bin, "rev-parse", "HEAD"],
            cwd=target,
            log_handler=self.log_handler,
        )
        logger.info(f"Checked out revision {revision.stdout.strip()}")
        return target

    async def build_site(self, source_dir: Path) -> Path:
        """
        Run the Docusaurus build for the docs directory inside a Node container.

        Returns:
            Path to the built static site
        """
        docs_path = f"/src/{self.config.docs_dir.strip('/')}"
        cmd = [
            self.container_runtime, "run", "--rm",
            "-v", f"{Path(source_dir).absolute()}:/src",
            "-w", docs_path,
            self.config.node_image,
            "sh", "-c", self.config.docs_build_command,
        ]

        logger.info(f"Building documentation site in {docs_path}")
        await run_command(cmd, log_handler=self.log_handler)

        site_dir = Path(source_dir) / self.config.docs_dir / "build"
        if not site_dir.is_dir():
            raise FileNotFoundError(f"Site build produced no output at {site_dir}")
        return site_dir

    def prepare_context(self, spec: ImageSpec) -> Path:
        """Lay out a build context holding the Containerfile and one directory per layer."""
        context = self.work_dir / "context"
        if context.exists():
            shutil.rmtree(context)
        context.mkdir(parents=True)

        for index, (_, content) in enumerate(spec.directories):
            if not content.is_dir():
                raise FileNotFoundError(f"Image content directory not found: {content}")
            shutil.copytree(content, context / spec.layer_name(index))

        (context / CONTAINERFILE_NAME).write_text(spec.render_containerfile())
        return context

    async def build_image(self, spec: ImageSpec, tag: str) -> BuiltImage:
        """
        Build an image from a spec.

        Args:
            spec: Image description
            tag: Local tag for the built image

        Returns:
            BuiltImage describing the local image
        """
        context = self.prepare_context(spec)
        cmd = [
            self.container_runtime, "build",
            "--platform", spec.platform,
            "-t", tag,
            "-f", str(context / CONTAINERFILE_NAME),
            str(context),
        ]

        logger.info(f"Building container image: {tag}")
        result = await run_command(cmd, log_handler=self.log_handler)
        logger.info(f"Successfully built {tag} in {result.duration:.1f}s")

        web_root = spec.directories[0][0] if spec.directories else ""
        return BuiltImage(
            tag=tag,
            base_image=spec.base_image,
            platform=spec.platform,
            web_root=web_root,
            exposed_ports=list(spec.exposed_ports),
            build_time=result.duration,
            status=BuildStatus.SUCCESS,
        )

    def docs_image_spec(self, site_dir: Path) -> ImageSpec:
        """The image serving the built site."""
        return (
            ImageSpec.from_base(self.config.base_image, self.config.image_platform)
            .with_directory(self.config.web_root, site_dir)
            .with_exposed_port(self.config.exposed_port)
        )

    async def build_docs_image(self) -> BuiltImage:
        """Fetch, build and package the documentation site."""
        source_dir = await self.fetch_source()
        site_dir = await self.build_site(source_dir)
        return await self.build_image(
            self.docs_image_spec(site_dir), f"{self.config.image_name}:latest"
        )

