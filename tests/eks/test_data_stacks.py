"""Tests for the bucket, database and search stacks."""

import aws_cdk as cdk
import pytest
from aws_cdk import aws_ec2 as ec2
from aws_cdk.assertions import Template

from selfhosted.config import IncompleteGroupError
from selfhosted.eks.database_stack import DatabaseStack
from selfhosted.eks.esc_stack import EscStack
from selfhosted.eks.rds_database import instance_type_of
from selfhosted.eks.resource_search import validate_network_configuration
from selfhosted.eks.state_policies_stack import STATE_BUCKETS, StatePoliciesStack


class TestStatePoliciesStack:
    """Tests for the state buckets."""

    def test_creates_every_bucket(self, eks_config, aws_env):
        stack = StatePoliciesStack(cdk.App(), "state", config=eks_config, env=aws_env)
        template = Template.from_stack(stack)

        template.resource_count_is("AWS::S3::Bucket", len(STATE_BUCKETS))
        assert set(stack.bucket_names) == set(STATE_BUCKETS)

    def test_adopts_named_bucket(self, eks_config, aws_env):
        eks_config["state_policies"] = {"checkpoints_bucket_name": "existing-checkpoints"}

        stack = StatePoliciesStack(cdk.App(), "state", config=eks_config, env=aws_env)
        template = Template.from_stack(stack)

        template.resource_count_is("AWS::S3::Bucket", len(STATE_BUCKETS) - 1)
        assert stack.bucket_names["checkpoints_bucket_name"] == "existing-checkpoints"


class TestEscStack:
    """Tests for the ESC bucket."""

    def test_creates_bucket(self, eks_config, aws_env):
        stack = EscStack(cdk.App(), "esc", config=eks_config, env=aws_env)
        Template.from_stack(stack).resource_count_is("AWS::S3::Bucket", 1)

    def test_adopts_bucket(self, eks_config, aws_env):
        eks_config["esc"] = {"bucket_name": "existing-esc"}

        stack = EscStack(cdk.App(), "esc", config=eks_config, env=aws_env)

        Template.from_stack(stack).resource_count_is("AWS::S3::Bucket", 0)
        assert stack.bucket_name == "existing-esc"


class TestDatabaseStack:
    """Tests for the Aurora cluster or an adopted connection."""

    def synth(self, config, env):
        app = cdk.App()
        network = cdk.Stack(app, "network", env=env)
        vpc = ec2.Vpc(network, "Vpc")
        security_group = ec2.SecurityGroup(network, "NodeSg", vpc=vpc)
        stack = DatabaseStack(
            app, "db", config=config, env=env,
            vpc=vpc,
            private_subnets=vpc.private_subnets,
            node_security_group=security_group,
            monitoring_role_arn="arn:aws:iam::123456789012:role/monitoring",
        )
        return stack, Template.from_stack(stack)

    def test_creates_cluster(self, eks_config, aws_env):
        _, template = self.synth(eks_config, aws_env)

        template.resource_count_is("AWS::RDS::DBCluster", 1)
        template.resource_count_is("AWS::RDS::DBInstance", 2)
        template.has_resource_properties("AWS::RDS::DBCluster", {"DatabaseName": "pulumi"})

    def test_adopts_connection(self, eks_config, aws_env):
        eks_config["database"] = {
            "db_host": "db.example.internal",
            "db_port": 3306,
            "db_username": "pulumi",
            "db_password_secret_name": "existing/db-password",
        }

        stack, template = self.synth(eks_config, aws_env)

        template.resource_count_is("AWS::RDS::DBCluster", 0)
        assert stack.db_conn.host == "db.example.internal"
        assert stack.db_conn.port == "3306"

    def test_partial_connection_rejected(self, eks_config, aws_env):
        eks_config["database"] = {"db_host": "db.example.internal"}

        with pytest.raises(IncompleteGroupError):
            self.synth(eks_config, aws_env)


class TestHelpers:
    """Tests for small validation helpers."""

    def test_instance_type_prefix_stripped(self):
        assert instance_type_of("db.r5.large").to_string() == "r5.large"
        assert instance_type_of("r6g.xlarge").to_string() == "r6g.xlarge"

    @pytest.mark.parametrize("subnets,instances", [(1, 1), (2, 3), (3, 3)])
    def test_search_network_valid(self, subnets, instances):
        validate_network_configuration(subnets, instances)

    def test_search_more_subnets_than_instances(self):
        with pytest.raises(ValueError, match="number of subnets must be less than or equal to the number of instances"):
            validate_network_configuration(3, 2)
