import aws_cdk as cdk

from aws_cdk import(
    aws_ec2 as ec2,
    aws_iam as iam,
    aws_rds as rds,
)
from constructs import Construct

ENGINE_VERSION = "8.0.mysql_aurora.3.07.1"
DATABASE_NAME = "pulumi"
MASTER_USERNAME = "pulumi"

# Slow and general query logging, written to files picked up by RDS
INSTANCE_PARAMETERS = {
    "slow_query_log": "1",
    "long_query_time": "4.9",
    "log_queries_not_using_indexes": "1",
    "general_log": "1",
    "log_output": "FILE",
}


def instance_type_of(db_instance_type: str) -> ec2.InstanceType:
    """db.r5.large -> r5.large"""
    return ec2.InstanceType(db_instance_type[3:] if db_instance_type.startswith("db.") else db_instance_type)


class RdsDatabase(Construct):
    """Aurora MySQL cluster with a generated master secret.

    ``replicas`` counts every instance in the cluster: one writer plus
    ``replicas - 1`` readers.
    """

    def __init__(self, scope: Construct, construct_id: str, *,
                 name_prefix: str,
                 vpc: ec2.IVpc,
                 subnets: list,
                 security_group: ec2.ISecurityGroup,
                 monitoring_role_arn: str,
                 replicas: int = 2,
                 instance_type: str = "db.r5.large") -> None:
        super().__init__(scope, construct_id)

        if replicas < 1:
            raise ValueError("database replicas must be at least 1")

        engine = rds.DatabaseClusterEngine.aurora_mysql(
            version = rds.AuroraMysqlEngineVersion.of(ENGINE_VERSION, "8.0")
        )

        parameter_group = rds.ParameterGroup(
            self, "InstanceParameters",
            engine = engine,
            description = f"{name_prefix} aurora-mysql8.0 instance parameters",
            parameters = INSTANCE_PARAMETERS,
        )

        readers = [
            rds.ClusterInstance.provisioned(
                f"reader{i}",
                instance_type = instance_type_of(instance_type),
                parameter_group = parameter_group,
            )
            for i in range(1, replicas)
        ]

        self.cluster = rds.DatabaseCluster(
            self, "Cluster",
            cluster_identifier = f"{name_prefix}-db",
            engine = engine,
            default_database_name = DATABASE_NAME,
            credentials = rds.Credentials.from_generated_secret(
                MASTER_USERNAME,
                secret_name = f"{name_prefix}-db-master",
                exclude_characters = " %+~`#$&*()|[]{}:;<>?!'/@\"\\,.^=-",
            ),
            writer = rds.ClusterInstance.provisioned(
                "writer",
                instance_type = instance_type_of(instance_type),
                parameter_group = parameter_group,
            ),
            readers = readers,
            vpc = vpc,
            vpc_subnets = ec2.SubnetSelection(subnets=list(subnets)),
            security_groups = [security_group],
            storage_encrypted = True,
            backup = rds.BackupProps(retention=cdk.Duration.days(7)),
            copy_tags_to_snapshot = True,
            monitoring_interval = cdk.Duration.seconds(5),
            monitoring_role = iam.Role.from_role_arn(self, "MonitoringRole", monitoring_role_arn),
            removal_policy = cdk.RemovalPolicy.SNAPSHOT,
        )

        self.host = self.cluster.cluster_endpoint.hostname
        self.port = cdk.Token.as_string(self.cluster.cluster_endpoint.port)
        self.username = MASTER_USERNAME
        self.password = self.cluster.secret.secret_value_from_json("password")
