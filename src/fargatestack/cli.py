"""
Command-line interface for Fargatestack

Provides commands to provision the ECR and Fargate stacks, build the
documentation image, run the full deployment and tear everything down.
"""

import asyncio
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional

import click
from pydantic import SecretStr

from . import __version__
from .builder import ImageBuilder
from .config import FargatestackConfig, load_config
from .logging_config import setup_logging
from .models import DestroyError, FargatestackError, SourceBundle
from .orchestrator import DeploymentOrchestrator, run_with_timeout
from .process import run_command

source_argument = click.argument(
    "source",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
token_option = click.option(
    "--token",
    envvar="PULUMI_ACCESS_TOKEN",
    required=True,
    help="Pulumi access token (defaults to $PULUMI_ACCESS_TOKEN)",
)


@click.group()
@click.option(
    "--config-file",
    type=click.Path(exists=True, path_type=Path),
    help="Path to .env style configuration file",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Set logging level",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output",
)
@click.option(
    "--log-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Directory for log files",
)
@click.option(
    "--target",
    default=None,
    help="Named deployment target from the project configuration file",
)
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Deadline in seconds for the whole operation",
)
@click.version_option(package_name="fargatestack")
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: Optional[Path],
    log_level: Optional[str],
    verbose: bool,
    log_dir: Optional[Path],
    target: Optional[str],
    timeout: Optional[float],
) -> None:
    """
    Fargatestack: ship a documentation site to ECS Fargate

    Provision an ECR repository and a Fargate service with Pulumi, build
    the site image and push it in between.
    """
    overrides = {
        "log_level": log_level.upper() if log_level else None,
        "verbose": verbose or None,
        "log_dir": str(log_dir) if log_dir else None,
        "operation_timeout": timeout,
    }
    config = load_config(
        config_file=str(config_file) if config_file else None,
        cli_overrides={k: v for k, v in overrides.items() if v is not None},
    )

    setup_logging(
        log_dir=config.log_dir,
        verbose=config.verbose,
        log_level=config.log_level,
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["target"] = target


def _orchestrator(ctx: click.Context) -> DeploymentOrchestrator:
    config: FargatestackConfig = ctx.obj["config"]
    target = config.resolve_target(ctx.obj.get("target"))
    return DeploymentOrchestrator(config, target)


def _run(ctx: click.Context, label: str, operation: Callable[[], Awaitable]):
    """Run a coroutine under the configured deadline, exiting 1 on failure."""
    config: FargatestackConfig = ctx.obj["config"]
    try:
        return asyncio.run(run_with_timeout(operation(), config.operation_timeout))
    except DestroyError:
        raise
    except asyncio.TimeoutError:
        click.echo(
            f"❌ {label} timed out after {config.operation_timeout:.0f}s", err=True
        )
        sys.exit(1)
    except Exception as e:
        click.echo(f"❌ {label} failed: {e}", err=True)
        sys.exit(1)


@cli.command("up-ecr")
@source_argument
@token_option
@click.pass_context
def up_ecr(ctx: click.Context, source: Path, token: str) -> None:
    """Provision the ECR repository stack in SOURCE."""
    click.echo("🚀 Provisioning ECR repository...")
    repo = _run(
        ctx,
        "ECR provisioning",
        lambda: _orchestrator(ctx).up_ecr(SourceBundle.from_path(source), SecretStr(token)),
    )
    click.echo(f"✅ Repository: {repo}")


@cli.command("up-fargate")
@source_argument
@token_option
@click.option("--image-ref", default=None, help="Image to run (defaults to imageRef in the environment)")
@click.pass_context
def up_fargate(ctx: click.Context, source: Path, token: str, image_ref: Optional[str]) -> None:
    """Provision the Fargate service stack in SOURCE."""
    click.echo("🚀 Provisioning Fargate service...")
    url = _run(
        ctx,
        "Fargate provisioning",
        lambda: _orchestrator(ctx).up_fargate(
            SourceBundle.from_path(source), SecretStr(token), image_ref=image_ref
        ),
    )
    click.echo(f"✅ URL: {url}")


@cli.command()
@click.pass_context
def build(ctx: click.Context) -> None:
    """Build the documentation site image (no deployment target needed)."""
    config: FargatestackConfig = ctx.obj["config"]
    click.echo(f"🔨 Building {config.docs_repo_url} ({config.docs_branch})...")
    image = _run(ctx, "Build", lambda: ImageBuilder(config).build_docs_image())
    click.echo(
        f"✅ Built {image.tag} ({image.platform}, ports {image.exposed_ports}) "
        f"in {image.build_time:.1f}s"
    )


@cli.command()
@source_argument
@token_option
@click.pass_context
def deploy(ctx: click.Context, source: Path, token: str) -> None:
    """Provision ECR, build and push the image, then provision Fargate."""
    click.echo("🚀 Deploying...")
    url = _run(
        ctx,
        "Deployment",
        lambda: _orchestrator(ctx).deploy(SourceBundle.from_path(source), SecretStr(token)),
    )
    click.echo(f"✅ Deployed: {url}")


@cli.command()
@source_argument
@token_option
@click.option("--parallel", is_flag=True, help="Destroy the stacks concurrently")
@click.pass_context
def destroy(ctx: click.Context, source: Path, token: str, parallel: bool) -> None:
    """Tear down the ECR and Fargate stacks in SOURCE."""
    click.echo("🛑 Destroying ECR and Fargate stacks...")
    try:
        output = _run(
            ctx,
            "Destroy",
            lambda: _orchestrator(ctx).destroy(
                SourceBundle.from_path(source), SecretStr(token), parallel=parallel
            ),
        )
    except DestroyError as e:
        if e.partial_output:
            click.echo(e.partial_output)
        for stack, error in e.failures().items():
            click.echo(f"❌ {stack}: {error}", err=True)
        sys.exit(1)
    click.echo(output)
    click.echo("✅ Stacks destroyed")


@cli.command("destroy-legacy")
@source_argument
@token_option
@click.pass_context
def destroy_legacy(ctx: click.Context, source: Path, token: str) -> None:
    """Tear down the legacy all-in-one stack in SOURCE."""
    click.echo("🛑 Destroying legacy stack...")
    output = _run(
        ctx,
        "Legacy destroy",
        lambda: _orchestrator(ctx).destroy_legacy(SourceBundle.from_path(source), SecretStr(token)),
    )
    click.echo(output)
    click.echo("✅ Legacy stack destroyed")


@cli.command("legacy-up")
@source_argument
@token_option
@click.pass_context
def legacy_up(ctx: click.Context, source: Path, token: str) -> None:
    """Apply the legacy all-in-one stack in SOURCE (needs a local container engine)."""
    click.echo("🚀 Applying legacy stack...")
    url = _run(
        ctx,
        "Legacy deployment",
        lambda: _orchestrator(ctx).run_legacy(SourceBundle.from_path(source), SecretStr(token)),
    )
    click.echo(f"✅ URL: {url}")


@cli.command("config-show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Display current configuration."""
    config: FargatestackConfig = ctx.obj["config"]

    click.echo("Current Fargatestack Configuration:")
    click.echo("=" * 40)
    click.echo(f"Log Level           : {config.log_level}")
    click.echo(f"Log Dir             : {config.log_dir}")
    click.echo(f"Verbose             : {config.verbose}")
    click.echo(f"Container Runtime   : {config.container_runtime}")
    click.echo(f"Docs Repository     : {config.docs_repo_url} ({config.docs_branch})")
    click.echo(f"Image               : {config.base_image} on {config.image_platform}")
    click.echo(f"Project Config File : {config.project_config_file}")

    try:
        target = config.resolve_target(ctx.obj.get("target"))
    except FargatestackError as e:
        click.echo(f"\n⚠️  No deployment target: {e}")
        return

    click.echo(f"\nESC Environment     : {target.esc_environment}")
    click.echo(f"  Stacks            : {', '.join(target.split_stacks)}")
    click.echo(f"  Legacy Stack      : {target.legacy_stack}")


@cli.command()
@click.pass_context
def version(ctx: click.Context) -> None:
    """Display version information."""
    click.echo(f"Fargatestack version: {__version__}")

    config: FargatestackConfig = ctx.obj["config"]
    try:
        result = asyncio.run(run_command([config.container_runtime, "--version"], check=False))
    except OSError:
        click.echo(f"Container runtime: {config.container_runtime} not found")
        return
    if result.success:
        runtime_info = result.stdout.strip().split("\n")[0]
        click.echo(f"Container runtime: {runtime_info}")


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
