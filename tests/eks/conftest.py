"""
Fixtures for the CDK stack tests.

aws-cdk-lib runs on a Node.js process, so the whole directory is skipped
when no ``node`` binary is available.
"""

import copy
import shutil
from types import SimpleNamespace

import pytest

if shutil.which("node") is None:
    collect_ignore_glob = ["test_*.py"]

ACCOUNT = "123456789012"
REGION = "us-east-1"

BASE_CONFIG = {
    "global": {
        "account": ACCOUNT,
        "region": REGION,
        "common_prefix": "selfhosted",
        "env": "test",
        "tags": {
            "owner": "platform-team",
            "project": "selfhosted-service",
            "env": "test",
            "contact": "platform-team@example.com",
        },
    },
    "iam": {},
    "networking": {"cluster_name": "selfhosted-eks"},
    "cluster": {},
    "cluster_services": {},
    "state_policies": {},
    "database": {},
    "insights": {},
    "esc": {},
    "service": {
        "license_key_secret_name": "selfhosted/license-key",
        "hosted_zone_domain_name": "example.com",
        "hosted_zone_domain_subdomain": "selfhosted",
        "image_tag": "20240701-1234-signed",
        "encryption_key_secret_name": "selfhosted/encryption-key",
    },
}


@pytest.fixture
def eks_config() -> dict:
    """Return a fresh copy of a minimal EKS configuration."""
    return copy.deepcopy(BASE_CONFIG)


@pytest.fixture
def aws_env():
    import aws_cdk as cdk
    return cdk.Environment(account=ACCOUNT, region=REGION)


@pytest.fixture
def shared(aws_env):
    """
    An app with a stack holding what the service-level stacks consume: a VPC,
    node and load balancer security groups, and an imported cluster.
    """
    import aws_cdk as cdk
    from aws_cdk import aws_ec2 as ec2
    from aws_cdk import aws_eks as eks
    from aws_cdk.lambda_layer_kubectl_v30 import KubectlV30Layer

    app = cdk.App()
    stack = cdk.Stack(app, "shared", env=aws_env)
    vpc = ec2.Vpc(stack, "Vpc")
    cluster = eks.Cluster.from_cluster_attributes(
        stack, "Cluster",
        cluster_name="selfhosted-eks",
        kubectl_role_arn=f"arn:aws:iam::{ACCOUNT}:role/selfhosted-kubectl",
        kubectl_layer=KubectlV30Layer(stack, "KubectlLayer"),
    )
    return SimpleNamespace(
        app=app,
        vpc=vpc,
        cluster=cluster,
        node_security_group=ec2.SecurityGroup(stack, "NodeSg", vpc=vpc),
        alb_security_group=ec2.SecurityGroup(stack, "AlbSg", vpc=vpc),
    )


def render(value) -> str:
    """Flatten an Fn::Join into text, with a placeholder for each token."""
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and "Fn::Join" in value:
        separator, parts = value["Fn::Join"]
        return separator.join(render(part) for part in parts)
    return "<token>"


@pytest.fixture
def manifest_text():
    """Return a function giving the JSON of every Kubernetes manifest in a template."""
    def text(template) -> str:
        resources = template.find_resources("Custom::AWSCDK-EKS-KubernetesResource")
        return "\n".join(render(resource["Properties"]["Manifest"]) for resource in resources.values())
    return text
