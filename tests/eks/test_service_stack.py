"""Tests for the service stack and the encryption service construct."""

from types import SimpleNamespace

import aws_cdk as cdk
import pytest
from aws_cdk.assertions import Annotations, Match, Template

from selfhosted.config import ConfigError, IncompleteGroupError
from selfhosted.eks.database_stack import DbConn
from selfhosted.eks.encryption_service import EncryptionService
from selfhosted.eks.insights_stack import InsightsStack
from selfhosted.eks.service_stack import ServiceStack
from selfhosted.eks.state_policies_stack import STATE_BUCKETS

SMTP_WARNING = "Missing one or more SMTP settings"


def in_cluster_search():
    return SimpleNamespace(
        namespace="pulumi-service",
        endpoint="https://opensearch-cluster-master:9200",
        user="admin",
        password=cdk.SecretValue.unsafe_plain_text("search-password"),
    )


def synth_service(config, env, shared, search=None):
    stack = ServiceStack(
        shared.app, "service", config=config, env=env,
        cluster=shared.cluster,
        db_conn=DbConn(
            host="db.selfhosted.internal",
            port="3306",
            username="pulumi",
            password=cdk.SecretValue.unsafe_plain_text("db-password"),
        ),
        search=search or in_cluster_search(),
        state_bucket_names={key: f"selfhosted-{suffix}" for key, suffix in STATE_BUCKETS.items()},
        esc_bucket_name="selfhosted-esc",
        alb_security_group=shared.alb_security_group,
        node_group_instance_type="t3.xlarge",
    )
    return stack, Template.from_stack(stack)


class TestServiceStack:
    """Tests for the service workloads."""

    def test_reuses_search_namespace(self, eks_config, aws_env, shared, manifest_text):
        _, template = synth_service(eks_config, aws_env, shared)

        text = manifest_text(template)
        assert '"kind":"Namespace"' not in text
        assert '"namespace":"pulumi-service"' in text

    def test_creates_own_namespace(self, eks_config, aws_env, shared, manifest_text):
        eks_config["service"]["namespace"] = "pulumi-apps"

        _, template = synth_service(eks_config, aws_env, shared)

        text = manifest_text(template)
        assert '"kind":"Namespace"' in text
        assert '"namespace":"pulumi-apps"' in text

    def test_workloads(self, eks_config, aws_env, shared, manifest_text):
        _, template = synth_service(eks_config, aws_env, shared)

        text = manifest_text(template)
        assert text.count('"kind":"Deployment"') == 2
        assert text.count('"kind":"PodDisruptionBudget"') == 2
        assert '"minAvailable":"66%"' in text
        assert '"image":"pulumi/service:20240701-1234-signed"' in text
        assert '"image":"pulumi/migrations:20240701-1234-signed"' in text

    def test_certificate_and_dns(self, eks_config, aws_env, shared):
        stack, template = synth_service(eks_config, aws_env, shared)

        template.has_resource_properties("AWS::CertificateManager::Certificate", {
            "DomainName": "*.selfhosted.example.com",
        })
        template.resource_count_is("AWS::Route53::RecordSet", 2)
        template.has_resource_properties("AWS::Route53::RecordSet", {"Type": "CNAME"})
        assert stack.service_url == "https://api.selfhosted.example.com"
        assert stack.console_url == "https://app.selfhosted.example.com"

    def test_smtp_warning(self, eks_config, aws_env, shared):
        stack, _ = synth_service(eks_config, aws_env, shared)

        Annotations.from_stack(stack).has_warning("*", Match.string_like_regexp(SMTP_WARNING))

    def test_smtp_configured(self, eks_config, aws_env, shared, manifest_text):
        eks_config["service"].update({
            "smtp_server": "smtp.example.com:587",
            "smtp_username": "mailer",
            "smtp_password_secret_name": "selfhosted/smtp-password",
            "smtp_generic_sender": "noreply@example.com",
        })

        stack, template = synth_service(eks_config, aws_env, shared)

        Annotations.from_stack(stack).has_no_warning("*", Match.string_like_regexp(SMTP_WARNING))
        assert '"name":"SMTP_SERVER"' in manifest_text(template)

    def test_github_oauth(self, eks_config, aws_env, shared, manifest_text):
        eks_config["service"].update({
            "github_oauth_endpoint": "https://github.com",
            "github_oauth_id": "client-id",
            "github_oauth_secret_name": "selfhosted/github-oauth",
        })

        _, template = synth_service(eks_config, aws_env, shared)

        text = manifest_text(template)
        assert '"name":"github-conn"' in text
        assert text.count('"name":"GITHUB_OAUTH_ID"') == 2

    def test_partial_github_oauth_rejected(self, eks_config, aws_env, shared):
        eks_config["service"]["github_oauth_id"] = "client-id"

        with pytest.raises(IncompleteGroupError):
            synth_service(eks_config, aws_env, shared)

    def test_kms_key(self, eks_config, aws_env, shared, manifest_text):
        del eks_config["service"]["encryption_key_secret_name"]
        eks_config["service"]["aws_kms_key_arn"] = "arn:aws:kms:us-east-1:123456789012:key/abc"

        _, template = synth_service(eks_config, aws_env, shared)

        text = manifest_text(template)
        assert '"name":"PULUMI_KMS_KEY"' in text
        assert "pulumilocalkeys" not in text

    def test_no_encryption_rejected(self, eks_config, aws_env, shared):
        del eks_config["service"]["encryption_key_secret_name"]

        with pytest.raises(ConfigError, match="Either an AWS KMS key ARN or a local encryption key"):
            synth_service(eks_config, aws_env, shared)

    def test_managed_search_namespace(self, eks_config, aws_env, shared, manifest_text):
        """Test the service deploys into the namespace the insights stack declares."""
        eks_config["insights"] = {"deploy_open_search_domain": True, "instance_count": 3}
        insights = InsightsStack(
            shared.app, "insights", config=eks_config, env=aws_env,
            cluster=shared.cluster,
            vpc=shared.vpc,
            private_subnets=shared.vpc.private_subnets,
            node_security_group=shared.node_security_group,
        )

        _, template = synth_service(eks_config, aws_env, shared, search=insights)

        assert '"namespace":"pulumi-service"' in manifest_text(template)
        assert '"kind":"Namespace"' in manifest_text(Template.from_stack(insights))


class TestEncryptionService:
    """Tests for the KMS and local key branches."""

    def test_kms_key(self, aws_env, shared):
        stack = cdk.Stack(shared.app, "encryption", env=aws_env)

        service = EncryptionService(
            stack, "Encryption",
            cluster=shared.cluster,
            namespace="pulumi-service",
            aws_kms_key_arn="arn:aws:kms:us-east-1:123456789012:key/abc",
        )

        assert service.env == {"name": "PULUMI_KMS_KEY", "value": "arn:aws:kms:us-east-1:123456789012:key/abc"}
        assert service.manifest is None
        assert service.volumes == []
        assert service.volume_mounts == []

    def test_local_key(self, aws_env, shared, manifest_text):
        stack = cdk.Stack(shared.app, "encryption", env=aws_env)

        service = EncryptionService(
            stack, "Encryption",
            cluster=shared.cluster,
            namespace="pulumi-service",
            encryption_key="0123456789abcdef0123456789abcdef",
        )

        assert service.env == {"name": "PULUMI_LOCAL_KEYS", "value": "/encryptionservice/pulumilocalkeys"}
        assert service.volume_mounts == [{"name": "encryptionservice", "mountPath": "/encryptionservice", "readOnly": True}]
        assert service.volumes[0]["secret"] == {"secretName": "pulumilocalkeys"}
        assert '"name":"pulumilocalkeys"' in manifest_text(Template.from_stack(stack))

    def test_no_key_rejected(self, aws_env, shared):
        stack = cdk.Stack(shared.app, "encryption", env=aws_env)

        with pytest.raises(ConfigError):
            EncryptionService(stack, "Encryption", cluster=shared.cluster, namespace="pulumi-service")
