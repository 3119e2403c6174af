import aws_cdk as cdk

from aws_cdk import(
    aws_ec2 as ec2,
    aws_logs as logs,
    aws_opensearchservice as opensearch,
    aws_secretsmanager as secretsmanager,
)
from constructs import Construct

ENGINE_VERSION = "2.13"
MASTER_USER_NAME = "admin"


def validate_network_configuration(subnet_count: int, instance_count: int) -> None:
    """Every subnet needs at least one data node to live in."""
    if subnet_count > instance_count:
        raise ValueError("number of subnets must be less than or equal to the number of instances")


class ResourceSearch(Construct):
    """Managed OpenSearch domain reachable from the cluster nodes."""

    def __init__(self, scope: Construct, construct_id: str, *,
                 domain_name: str,
                 vpc: ec2.IVpc,
                 subnets: list,
                 security_group: ec2.ISecurityGroup,
                 instance_type: str = "t3.medium.search",
                 instance_count: int = 2,
                 dedicated_master_count: int = 0,
                 volume_size: int = 10) -> None:
        super().__init__(scope, construct_id)

        subnets = list(subnets)
        validate_network_configuration(len(subnets), instance_count)

        self.password_secret = secretsmanager.Secret(
            self, "MasterUserPassword",
            description = f"{domain_name} master user password",
            generate_secret_string = secretsmanager.SecretStringGenerator(
                password_length = 16,
                exclude_characters = "\"'\\/@",
                require_each_included_type = True,
            ),
        )

        log_group = logs.LogGroup(
            self, "DomainLogs",
            log_group_name = f"/aws/opensearch/{domain_name}",
            retention = logs.RetentionDays.ONE_MONTH,
            removal_policy = cdk.RemovalPolicy.DESTROY
        )

        zone_awareness = None
        if len(subnets) > 1:
            zone_awareness = opensearch.ZoneAwarenessConfig(
                enabled = True,
                availability_zone_count = min(len(subnets), 3),
            )

        self.domain = opensearch.Domain(
            self, "Domain",
            domain_name = domain_name,
            version = opensearch.EngineVersion.open_search(ENGINE_VERSION),
            capacity = opensearch.CapacityConfig(
                data_nodes = instance_count,
                data_node_instance_type = instance_type,
                master_nodes = dedicated_master_count or None,
                master_node_instance_type = instance_type if dedicated_master_count else None,
                multi_az_with_standby_enabled = False,
            ),
            zone_awareness = zone_awareness,
            ebs = opensearch.EbsOptions(
                volume_size = volume_size,
                volume_type = ec2.EbsDeviceVolumeType.GP2,
            ),
            vpc = vpc,
            vpc_subnets = [ec2.SubnetSelection(subnets=subnets)],
            security_groups = [security_group],
            encryption_at_rest = opensearch.EncryptionAtRestOptions(enabled=True),
            node_to_node_encryption = True,
            enforce_https = True,
            tls_security_policy = opensearch.TLSSecurityPolicy.TLS_1_2,
            fine_grained_access_control = opensearch.AdvancedSecurityOptions(
                master_user_name = MASTER_USER_NAME,
                master_user_password = self.password_secret.secret_value,
            ),
            logging = opensearch.LoggingOptions(
                slow_index_log_enabled = True,
                slow_index_log_group = log_group,
                slow_search_log_enabled = True,
                slow_search_log_group = log_group,
                app_log_enabled = True,
                app_log_group = log_group,
                audit_log_enabled = True,
                audit_log_group = log_group,
            ),
            removal_policy = cdk.RemovalPolicy.DESTROY,
        )

        self.endpoint = f"https://{self.domain.domain_endpoint}"
        self.user = MASTER_USER_NAME
        self.password = self.password_secret.secret_value
