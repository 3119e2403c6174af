"""Base GCP infrastructure: network, buckets, storage service account, Cloud SQL."""

import pulumi
import pulumi_gcp as gcp
import pulumi_random as random

DEFAULT_COMMON_NAME = "pulumiselfhosted"
DEFAULT_DB_INSTANCE_TYPE = "db-g1-small"
DEFAULT_DB_USER = "pulumiadmin"

# output prefix -> bucket suffix
BUCKETS = {
    "checkpoint": "checkpoints",
    "checkpointV2": "checkpoints-v2",
    "policy": "policypacks",
    "esc": "esc",
}


def service_account_id(prefix: str) -> str:
    """GCP account ids are 6-30 lowercase characters and can't end with a dash"""
    return f"{prefix}-sa".lower()[:30].rstrip("-")


class Network(pulumi.ComponentResource):

    def __init__(self, name: str, labels: dict, opts: pulumi.ResourceOptions = None):
        super().__init__("selfhosted:gcp:Network", name, None, opts)

        vnet = gcp.compute.Network(
            f"{name}-network",
            auto_create_subnetworks=True,
            routing_mode="REGIONAL",
            opts=pulumi.ResourceOptions(parent=self),
        )

        private_ips = gcp.compute.GlobalAddress(
            f"{name}-private-ips",
            purpose="VPC_PEERING",
            address_type="INTERNAL",
            prefix_length=16,
            network=vnet.id,
            labels=labels,
            opts=pulumi.ResourceOptions(parent=self),
        )

        connection = gcp.servicenetworking.Connection(
            f"{name}-private-conn",
            network=vnet.id,
            service="servicenetworking.googleapis.com",
            reserved_peering_ranges=[private_ips.name],
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.network_name = vnet.name
        # Not handed out until the peering connection exists
        self.network_id = pulumi.Output.all(vnet.id, connection.id).apply(lambda args: args[0])

        self.register_outputs({"network_name": self.network_name, "network_id": self.network_id})


class Storage(pulumi.ComponentResource):

    def __init__(self, name: str, labels: dict, opts: pulumi.ResourceOptions = None):
        super().__init__("selfhosted:gcp:Storage", name, None, opts)

        self.buckets = {
            key: gcp.storage.Bucket(
                f"{name}-{suffix}",
                location="US",
                uniform_bucket_level_access=True,
                labels=labels,
                opts=pulumi.ResourceOptions(parent=self, protect=True),
            )
            for key, suffix in BUCKETS.items()
        }

        self.register_outputs({f"{key}_bucket": bucket.name for key, bucket in self.buckets.items()})


class ServiceAccount(pulumi.ComponentResource):
    """Account the API uses to reach the buckets through the S3 interop API."""

    def __init__(self, name: str, buckets: list, opts: pulumi.ResourceOptions = None):
        super().__init__("selfhosted:gcp:ServiceAccount", name, None, opts)

        account = gcp.serviceaccount.Account(
            f"{name}-sa",
            account_id=service_account_id(name),
            display_name="Service account for the self-hosted API",
            opts=pulumi.ResourceOptions(parent=self, protect=True),
        )

        for i, bucket in enumerate(buckets):
            gcp.storage.BucketIAMMember(
                f"{name}-sa-bucket-iam-{i}",
                bucket=bucket.name,
                role="roles/storage.objectAdmin",
                member=account.email.apply(lambda email: f"serviceAccount:{email}"),
                opts=pulumi.ResourceOptions(parent=account),
            )

        key = gcp.storage.HmacKey(
            f"{name}-sa-hmac",
            service_account_email=account.email,
            opts=pulumi.ResourceOptions(parent=self, additional_secret_outputs=["secret"]),
        )

        self.name = account.name
        self.access_key_id = key.access_id
        self.secret_access_key = key.secret

        self.register_outputs({"name": self.name, "access_key_id": self.access_key_id})


class Database(pulumi.ComponentResource):
    """Cloud SQL for MySQL reachable only over the private network."""

    def __init__(self, name: str, network_id: pulumi.Input[str], instance_type: str, user: str,
                 labels: dict, opts: pulumi.ResourceOptions = None):
        super().__init__("selfhosted:gcp:Database", name, None, opts)

        password = random.RandomPassword(
            f"{name}-password",
            length=20,
            lower=True,
            upper=True,
            special=True,
            override_special="_-",
            opts=pulumi.ResourceOptions(parent=self, additional_secret_outputs=["result"]),
        ).result

        instance = gcp.sql.DatabaseInstance(
            f"{name}-db",
            database_version="MYSQL_8_0",
            settings=gcp.sql.DatabaseInstanceSettingsArgs(
                tier=instance_type,
                user_labels=labels,
                ip_configuration=gcp.sql.DatabaseInstanceSettingsIpConfigurationArgs(
                    ipv4_enabled=False,
                    private_network=network_id,
                ),
                backup_configuration=gcp.sql.DatabaseInstanceSettingsBackupConfigurationArgs(
                    enabled=True,
                    binary_log_enabled=True,
                ),
            ),
            deletion_protection=True,
            opts=pulumi.ResourceOptions(parent=self, protect=True),
        )

        db_user = gcp.sql.User(
            f"{name}-dbuser",
            instance=instance.name,
            name=user,
            password=password,
            opts=pulumi.ResourceOptions(parent=instance, protect=True),
        )

        gcp.sql.Database(
            f"{name}-mysql",
            instance=instance.name,
            name="pulumi",
            opts=pulumi.ResourceOptions(parent=instance, protect=True),
        )

        self.host = instance.private_ip_address
        self.connection_string = instance.private_ip_address
        self.login = db_user.name
        self.password = password
        self.server_name = instance.name

        self.register_outputs({"host": self.host, "server_name": self.server_name})


def program():
    config = pulumi.Config()

    common_name = config.get("commonName") or DEFAULT_COMMON_NAME
    prefix = f"{common_name}-{pulumi.get_stack()}"
    labels = {"project": pulumi.get_project().lower(), "stack": pulumi.get_stack().lower()}

    network = Network(prefix, labels)
    storage = Storage(prefix, labels)
    account = ServiceAccount(prefix, [storage.buckets[key] for key in ("checkpoint", "checkpointV2", "policy", "esc")])
    database = Database(
        prefix,
        network_id=network.network_id,
        instance_type=config.get("dbInstanceType") or DEFAULT_DB_INSTANCE_TYPE,
        user=config.get("dbUser") or DEFAULT_DB_USER,
        labels=labels,
    )

    for key, bucket in storage.buckets.items():
        pulumi.export(f"{key}BucketId", bucket.id)
        pulumi.export(f"{key}BucketName", bucket.name)
    pulumi.export("serviceAccountName", account.name)
    pulumi.export("serviceAccountAccessKeyId", account.access_key_id)
    pulumi.export("serviceAccountSecretAccessKey", pulumi.Output.secret(account.secret_access_key))
    pulumi.export("dbServerName", database.server_name)
    pulumi.export("dbLogin", database.login)
    pulumi.export("dbPassword", pulumi.Output.secret(database.password))
    pulumi.export("dbConnectionString", database.connection_string)
    pulumi.export("dbHost", database.host)
    pulumi.export("networkName", network.network_name)
