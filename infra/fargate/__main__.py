"""ECS Fargate service running the documentation site image behind an ALB."""

import pulumi
import pulumi_aws as aws
import pulumi_awsx as awsx

# Set by the deploy pipeline, either in stack config or through the ESC environment
config = pulumi.Config()
image_ref = config.require("imageRef")

cluster = aws.ecs.Cluster("cluster")

loadbalancer = awsx.lb.ApplicationLoadBalancer("loadbalancer")

service = awsx.ecs.FargateService(
    "service",
    cluster=cluster.arn,
    assign_public_ip=True,
    task_definition_args=awsx.ecs.FargateServiceTaskDefinitionArgs(
        container=awsx.ecs.TaskDefinitionContainerDefinitionArgs(
            name="service-container",
            image=image_ref,
            cpu=128,
            memory=512,
            essential=True,
            port_mappings=[
                awsx.ecs.TaskDefinitionPortMappingArgs(
                    container_port=80,
                    target_group=loadbalancer.default_target_group,
                )
            ],
        ),
    ),
)

pulumi.export("url", pulumi.Output.concat("http://", loadbalancer.load_balancer.dns_name))
