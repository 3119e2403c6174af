"""Tests for the EKS cluster stack."""

import aws_cdk as cdk
import pytest
from aws_cdk.assertions import Match, Template
from aws_cdk.lambda_layer_kubectl_v30 import KubectlV30Layer
from aws_cdk.lambda_layer_kubectl_v31 import KubectlV31Layer

from selfhosted.config import ConfigError
from selfhosted.eks.cluster_stack import (
    CLUSTER_DEFAULTS,
    PULUMI_NODE_TAINT_KEY,
    ClusterStack,
    kubectl_layer_for,
    node_group_settings,
)
from selfhosted.eks.iam_stack import IamStack
from selfhosted.eks.networking_stack import NetworkingStack


def synth_cluster(config, env):
    app = cdk.App()
    iam_stack = IamStack(app, "iam", config=config, env=env)
    net_stack = NetworkingStack(app, "net", config=config, env=env)
    stack = ClusterStack(
        app, "cluster", config=config, env=env,
        vpc=net_stack.vpc,
        public_subnets=net_stack.public_subnets,
        private_subnets=net_stack.private_subnets,
        cluster_name=net_stack.cluster_name,
        service_role=iam_stack.eks_service_role,
        instance_role=iam_stack.eks_instance_role,
    )
    return stack, Template.from_stack(stack)


class TestNodeGroupSettings:
    """Tests for node group defaults."""

    def test_defaults(self):
        assert node_group_settings({}, "pulumi_node_group") == CLUSTER_DEFAULTS["pulumi_node_group"]

    def test_partial_override(self):
        cs = {"standard_node_group": {"instance_type": "m5.large", "max": None}}

        settings = node_group_settings(cs, "standard_node_group")

        assert settings["instance_type"] == "m5.large"
        assert settings["max"] == 5
        assert settings["desired"] == 2


class TestClusterStack:
    """Tests for the synthesized cluster."""

    def test_two_node_groups(self, eks_config, aws_env):
        stack, template = synth_cluster(eks_config, aws_env)

        template.resource_count_is("AWS::EKS::Nodegroup", 2)
        template.has_resource_properties("AWS::EKS::Nodegroup", {
            "NodegroupName": "selfhosted-test-standard",
            "ScalingConfig": {"DesiredSize": 2, "MinSize": 2, "MaxSize": 5},
        })
        assert stack.node_group_instance_type == "t3.xlarge"

    def test_service_node_group_tainted(self, eks_config, aws_env):
        _, template = synth_cluster(eks_config, aws_env)

        template.has_resource_properties("AWS::EKS::Nodegroup", {
            "NodegroupName": "selfhosted-test-pulumi",
            "Taints": [{"Effect": "NO_SCHEDULE", "Key": PULUMI_NODE_TAINT_KEY, "Value": "true"}],
        })

    def test_imds_launch_template(self, eks_config, aws_env):
        _, template = synth_cluster(eks_config, aws_env)

        template.has_resource_properties("AWS::EC2::LaunchTemplate", {
            "LaunchTemplateData": Match.object_like({
                "MetadataOptions": Match.object_like({"HttpTokens": "required", "HttpPutResponseHopLimit": 2}),
            }),
        })

    def test_adopted_roles(self, eks_config, aws_env):
        """Test roles imported by the IAM stack can back the node groups."""
        eks_config["iam"] = {
            "eks_service_role_name": "existing-eks-service",
            "eks_instance_role_name": "existing-eks-instance",
            "instance_profile_name": "existing-profile",
            "database_monitoring_role_arn": "arn:aws:iam::123456789012:role/existing-monitoring",
        }

        _, template = synth_cluster(eks_config, aws_env)

        template.resource_count_is("AWS::EKS::Nodegroup", 2)

    def test_unsupported_version_rejected(self, eks_config, aws_env):
        eks_config["cluster"] = {"version": "1.27"}

        with pytest.raises(ConfigError, match=r"Unsupported cluster version \[1.27\]"):
            synth_cluster(eks_config, aws_env)


class TestKubectlLayer:
    """Tests for matching the kubectl layer to the cluster version."""

    def test_default_version(self):
        assert kubectl_layer_for(CLUSTER_DEFAULTS["version"]) is KubectlV30Layer

    def test_newer_version(self):
        assert kubectl_layer_for("1.31") is KubectlV31Layer

    def test_unknown_version(self):
        with pytest.raises(ConfigError):
            kubectl_layer_for("1.3")
