import aws_cdk as cdk

from aws_cdk import(
    aws_ec2 as ec2,
    aws_secretsmanager as secretsmanager
)

from dataclasses import dataclass

from selfhosted import byo
from selfhosted.eks.rds_database import RdsDatabase


@dataclass
class DbConn:
    host: str
    port: str
    username: str
    password: cdk.SecretValue


class DatabaseStack(cdk.Stack):

    CONNECTION_KEYS = ["db_host", "db_port", "db_username", "db_password_secret_name"]

    def __init__(self, scope: cdk.App, construct_id: str, config: dict,
                 vpc: ec2.IVpc,
                 private_subnets: list,
                 node_security_group: ec2.ISecurityGroup,
                 monitoring_role_arn: str,
                 **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        cg = config["global"]
        cs = config.get("database") or {}

        #####################################################
        ##### TAGS ##########################################
        #####################################################

        cdk.Tags.of(self).add("Owner", cg["tags"]["owner"])
        cdk.Tags.of(self).add("Project", cg["tags"]["project"])
        cdk.Tags.of(self).add("Environment", cg["tags"]["env"])
        cdk.Tags.of(self).add("PrimaryContact", cg["tags"]["contact"])


        #####################################################
        ##### AURORA MYSQL ##################################
        #####################################################

        database = byo.resolve(
            cs, self.CONNECTION_KEYS,
            lambda: RdsDatabase(
                self, "RDS_Aurora",
                name_prefix = f"{cg['common_prefix']}-{cg['env']}",
                vpc = vpc,
                subnets = private_subnets,
                security_group = node_security_group,
                monitoring_role_arn = monitoring_role_arn,
                replicas = int(cs.get("replicas", 2)),
                instance_type = cs.get("instance_type", "db.r5.large"),
            ),
            "database",
        )

        self.db_conn = database.pick(self._existing_connection, self._created_connection)

        cdk.CfnOutput(self, "DbHost", value=self.db_conn.host)
        cdk.CfnOutput(self, "DbPort", value=self.db_conn.port)
        cdk.CfnOutput(self, "DbUsername", value=self.db_conn.username)

    def _existing_connection(self, values) -> DbConn:
        secret = secretsmanager.Secret.from_secret_name_v2(
            self, "Secret_DB_Password",
            secret_name=values["db_password_secret_name"]
        )
        return DbConn(
            host = values["db_host"],
            port = str(values["db_port"]),
            username = values["db_username"],
            password = secret.secret_value,
        )

    def _created_connection(self, db: RdsDatabase) -> DbConn:
        return DbConn(host=db.host, port=db.port, username=db.username, password=db.password)
