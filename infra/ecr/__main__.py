"""ECR repository for the documentation site image."""

import pulumi
import pulumi_awsx as awsx

# Emptied on destroy so teardown does not fail on pushed images
repository = awsx.ecr.Repository("repo", force_delete=True)

pulumi.export("repo", repository.repository.apply(lambda repo: repo.name))
