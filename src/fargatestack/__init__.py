"""
Fargatestack: ship a documentation site to ECS Fargate

Chains Pulumi stacks, Pulumi ESC and a container runtime to provision an
ECR repository, build and push an nginx image, and run it on Fargate.
"""

__version__ = "0.1.0"
__author__ = "Fargatestack Contributors"
__email__ = "noreply@fargatestack.org"

from .config import FargatestackConfig
from .logging_config import setup_logging
from .orchestrator import DeploymentOrchestrator

__all__ = [
    "DeploymentOrchestrator",
    "FargatestackConfig",
    "setup_logging",
]
