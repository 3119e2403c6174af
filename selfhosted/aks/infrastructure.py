"""Base Azure infrastructure: identity, network, storage, MySQL and Key Vault."""

import pulumi
import pulumi_azuread as azuread
import pulumi_random as random
from pulumi_azure_native import authorization, dbformysql, keyvault, network, resources, storage

from selfhosted import byo

DEFAULT_COMMON_NAME = "pulumiselfhosted"
DB_ADMIN_LOGIN = "pulumiadmin"
DB_VERSION = "8.0.21"
DB_SKU = "Standard_D2ads_v5"

# output prefix -> container name
CONTAINERS = {
    "checkpoint": "pulumicheckpoints",
    "checkpointV2": "pulumicheckpoints-v2",
    "policy": "pulumipolicypacks",
    "esc": "pulumiesc",
}

KEY_PERMISSIONS = [
    "Get", "List", "Update", "Create", "Import", "Delete", "Recover", "Backup",
    "Restore", "Decrypt", "Encrypt", "UnwrapKey", "WrapKey", "Verify", "Sign", "Purge",
]
SECRET_PERMISSIONS = ["Get", "List", "Set", "Delete", "Recover", "Backup", "Restore", "Purge"]


def key_version(vault_uri: str, key_name: str, key_uri_with_version: str) -> str:
    """Trailing version segment of a versioned key URI"""
    return key_uri_with_version.replace(f"{vault_uri}/keys/{key_name}/", "")


class ActiveDirectoryApplication(pulumi.ComponentResource):
    """Application and service principal the cluster and the API run as."""

    def __init__(self, name: str, opts: pulumi.ResourceOptions = None):
        super().__init__("selfhosted:azure:ActiveDirectoryApplication", name, None, opts)

        client_config = authorization.get_client_config_output()

        application = azuread.Application(
            f"{name}-app-server",
            display_name=f"{name}-app-server",
            opts=pulumi.ResourceOptions(parent=self),
        )

        principal = azuread.ServicePrincipal(
            f"{name}-sp-server",
            client_id=application.client_id,
            opts=pulumi.ResourceOptions(parent=application),
        )

        admin_group = azuread.Group(
            f"{name}-ad-admingroup",
            display_name=f"{name}-ad-admingroup",
            security_enabled=True,
            members=[client_config.object_id, principal.object_id],
            opts=pulumi.ResourceOptions(parent=self),
        )

        password = azuread.ServicePrincipalPassword(
            f"{name}-sppwd-server",
            service_principal_id=principal.id,
            end_date="2099-01-01T00:00:00Z",
            opts=pulumi.ResourceOptions(parent=principal, additional_secret_outputs=["value"]),
        )

        self.group_id = admin_group.object_id
        self.application_id = application.client_id
        self.application_secret = password.value
        self.principal_object_id = principal.object_id
        self.tenant_id = client_config.tenant_id
        self.subscription_id = client_config.subscription_id

        self.register_outputs({
            "group_id": self.group_id,
            "application_id": self.application_id,
            "principal_object_id": self.principal_object_id,
        })


class Network(pulumi.ComponentResource):

    def __init__(self, name: str, resource_group_name: pulumi.Input[str], network_cidr: str,
                 db_subnet_cidr: str, aks_subnet_cidr: str, tags: dict,
                 opts: pulumi.ResourceOptions = None):
        super().__init__("selfhosted:azure:Network", name, None, opts)

        vnet = network.VirtualNetwork(
            f"{name}-vnet",
            resource_group_name=resource_group_name,
            address_space=network.AddressSpaceArgs(address_prefixes=[network_cidr]),
            tags=tags,
            # Subnets are managed as their own resources
            opts=pulumi.ResourceOptions(parent=self, ignore_changes=["subnets", "etags"]),
        )

        db_subnet = network.Subnet(
            f"{name}-db-snet",
            resource_group_name=resource_group_name,
            virtual_network_name=vnet.name,
            address_prefix=db_subnet_cidr,
            delegations=[network.DelegationArgs(
                name="mysqlflexibleserver",
                service_name="Microsoft.DBforMySQL/flexibleServers",
            )],
            opts=pulumi.ResourceOptions(parent=vnet),
        )

        aks_subnet = network.Subnet(
            f"{name}-aks-snet",
            resource_group_name=resource_group_name,
            virtual_network_name=vnet.name,
            address_prefix=aks_subnet_cidr,
            service_endpoints=[network.ServiceEndpointPropertiesFormatArgs(service="Microsoft.Sql")],
            opts=pulumi.ResourceOptions(parent=vnet, depends_on=[db_subnet]),
        )

        self.db_subnet_id = db_subnet.id
        self.aks_subnet_id = aks_subnet.id

        self.register_outputs({"db_subnet_id": self.db_subnet_id, "aks_subnet_id": self.aks_subnet_id})


class Storage(pulumi.ComponentResource):

    def __init__(self, name: str, resource_group_name: pulumi.Input[str], tags: dict,
                 opts: pulumi.ResourceOptions = None):
        super().__init__("selfhosted:azure:Storage", name, None, opts)

        # Short name: account names are global and capped at 24 characters
        account = storage.StorageAccount(
            "pulumi",
            resource_group_name=resource_group_name,
            sku=storage.SkuArgs(name=storage.SkuName.STANDARD_LRS),
            kind=storage.Kind.STORAGE_V2,
            tags=tags,
            opts=pulumi.ResourceOptions(parent=self, protect=True),
        )

        self.containers = {
            key: storage.BlobContainer(
                container,
                resource_group_name=resource_group_name,
                account_name=account.name,
                opts=pulumi.ResourceOptions(parent=account, protect=True),
            )
            for key, container in CONTAINERS.items()
        }

        keys = storage.list_storage_account_keys_output(
            resource_group_name=resource_group_name,
            account_name=account.name,
        )

        self.account_id = account.id
        self.account_name = account.name
        self.primary_key = pulumi.Output.secret(keys.apply(lambda result: result.keys[0].value))

        self.register_outputs({"account_name": self.account_name})


class Database(pulumi.ComponentResource):
    """MySQL flexible server injected into the delegated subnet."""

    def __init__(self, name: str, resource_group_name: pulumi.Input[str], subnet_id: pulumi.Input[str],
                 tags: dict, opts: pulumi.ResourceOptions = None):
        super().__init__("selfhosted:azure:Database", name, None, opts)

        password = random.RandomPassword(
            f"{name}-dbpassword",
            length=20,
            lower=True,
            upper=True,
            special=True,
            opts=pulumi.ResourceOptions(parent=self, additional_secret_outputs=["result"]),
        ).result

        server = dbformysql.Server(
            f"{name}-mysql",
            resource_group_name=resource_group_name,
            administrator_login=DB_ADMIN_LOGIN,
            administrator_login_password=password,
            create_mode="Default",
            network=dbformysql.NetworkArgs(delegated_subnet_resource_id=subnet_id),
            storage=dbformysql.StorageArgs(storage_size_gb=50, auto_grow="Enabled"),
            version=DB_VERSION,
            sku=dbformysql.SkuArgs(name=DB_SKU, tier="GeneralPurpose"),
            tags=tags,
            opts=pulumi.ResourceOptions(parent=self, protect=True),
        )

        # Migrations create functions while binary logging is on
        for setting, value in (("log_bin_trust_function_creators", "ON"), ("require_secure_transport", "OFF")):
            dbformysql.Configuration(
                f"{name}-{setting.replace('_', '-')}",
                resource_group_name=resource_group_name,
                server_name=server.name,
                configuration_name=setting,
                source="user-override",
                value=value,
                opts=pulumi.ResourceOptions(parent=server),
            )

        dbformysql.Database(
            f"{name}-mysql-db",
            database_name="pulumi",
            resource_group_name=resource_group_name,
            server_name=server.name,
            opts=pulumi.ResourceOptions(parent=server, protect=True),
        )

        self.connection_string = server.fully_qualified_domain_name
        self.login = server.administrator_login
        self.password = password
        self.server_name = server.name

        self.register_outputs({"connection_string": self.connection_string, "server_name": self.server_name})


class KeyStorage(pulumi.ComponentResource):
    """Key Vault and the RSA key the API encrypts secrets with."""

    def __init__(self, name: str, resource_group_name: pulumi.Input[str], object_id: pulumi.Input[str],
                 tenant_id: pulumi.Input[str], tags: dict, opts: pulumi.ResourceOptions = None):
        super().__init__("selfhosted:azure:KeyStorage", name, None, opts)

        vault = keyvault.Vault(
            "pulumivault",
            resource_group_name=resource_group_name,
            properties=keyvault.VaultPropertiesArgs(
                access_policies=[keyvault.AccessPolicyEntryArgs(
                    object_id=object_id,
                    tenant_id=tenant_id,
                    permissions=keyvault.PermissionsArgs(keys=KEY_PERMISSIONS, secrets=SECRET_PERMISSIONS),
                )],
                enabled_for_deployment=True,
                enabled_for_disk_encryption=True,
                enabled_for_template_deployment=True,
                sku=keyvault.SkuArgs(family=keyvault.SkuFamily.A, name=keyvault.SkuName.STANDARD),
                tenant_id=tenant_id,
                enable_soft_delete=True,
            ),
            tags=tags,
            opts=pulumi.ResourceOptions(parent=self, protect=True),
        )

        key = keyvault.Key(
            f"{name}-key",
            resource_group_name=resource_group_name,
            vault_name=vault.name,
            properties=keyvault.KeyPropertiesArgs(kty=keyvault.JsonWebKeyType.RSA),
            tags=tags,
            opts=pulumi.ResourceOptions(parent=vault),
        )

        self.vault_uri = pulumi.Output.concat("https://", vault.name, ".vault.azure.net")
        self.key_name = key.name
        self.key_version = pulumi.Output.all(self.vault_uri, key.name, key.key_uri_with_version).apply(
            lambda args: key_version(*args)
        )

        self.register_outputs({"vault_uri": self.vault_uri, "key_name": self.key_name})


def program():
    config = pulumi.Config()

    common_name = config.get("commonName") or DEFAULT_COMMON_NAME
    prefix = f"{common_name}-{pulumi.get_stack()}"
    tags = {"project": pulumi.get_project(), "stack": pulumi.get_stack()}

    resource_group = byo.resolve_one(
        config.get("resourceGroupName"),
        lambda: resources.ResourceGroup(
            f"{prefix}-rg",
            resource_group_name=f"{prefix}-rg" if config.get_bool("disableAutoNaming") else None,
            tags=tags,
            opts=pulumi.ResourceOptions(protect=True),
        ),
    )
    resource_group_name = resource_group.pick(lambda values: values["value"], lambda created: created.name)

    ad = ActiveDirectoryApplication(prefix)
    vnet = Network(
        prefix,
        resource_group_name=resource_group_name,
        network_cidr=config.require("networkCidr"),
        db_subnet_cidr=config.require("dbSubnetCidr"),
        aks_subnet_cidr=config.require("aksSubnetCidr"),
        tags=tags,
    )
    blobs = Storage(prefix, resource_group_name=resource_group_name, tags=tags)
    database = Database(prefix, resource_group_name=resource_group_name, subnet_id=vnet.db_subnet_id, tags=tags)
    keys = KeyStorage(
        prefix,
        resource_group_name=resource_group_name,
        object_id=ad.principal_object_id,
        tenant_id=ad.tenant_id,
        tags=tags,
    )

    pulumi.export("resourceGroupName", resource_group_name)
    pulumi.export("adGroupId", ad.group_id)
    pulumi.export("adApplicationId", ad.application_id)
    pulumi.export("adApplicationSecret", pulumi.Output.secret(ad.application_secret))
    pulumi.export("tenantId", ad.tenant_id)
    pulumi.export("subscriptionId", ad.subscription_id)
    pulumi.export("networkSubnetId", vnet.aks_subnet_id)
    pulumi.export("storageAccountId", blobs.account_id)
    pulumi.export("storageAccountName", blobs.account_name)
    pulumi.export("storagePrimaryKey", blobs.primary_key)
    for key, container in blobs.containers.items():
        pulumi.export(f"{key}BlobId", container.id)
        pulumi.export(f"{key}BlobName", container.name)
    pulumi.export("dbServerName", database.server_name)
    pulumi.export("dbLogin", database.login)
    pulumi.export("dbPassword", pulumi.Output.secret(database.password))
    pulumi.export("dbConnectionString", database.connection_string)
    pulumi.export("keyvaultUri", keys.vault_uri)
    pulumi.export("keyvaultKeyName", keys.key_name)
    pulumi.export("keyvaultKeyVersion", keys.key_version)
