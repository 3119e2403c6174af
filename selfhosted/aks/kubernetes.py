"""AKS cluster with ingress and the search backend."""

import base64

import pulumi
import pulumi_kubernetes as k8s
import pulumi_random as random
import pulumi_tls as tls
from pulumi_azure_native import containerservice

from selfhosted.components import NginxIngress, OpenSearch
from selfhosted.components.opensearch import ADMIN_USER, IN_CLUSTER_ENDPOINT

DEFAULT_COMMON_NAME = "pulumi-selfhosted"
DEFAULT_KUBERNETES_VERSION = "1.30"
DEFAULT_NODE_VM_SIZE = "Standard_DS3_v2"
APPS_NAMESPACE = "pulumi-selfhosted-apps"


def decode_kubeconfig(credentials) -> str:
    return base64.b64decode(credentials.kubeconfigs[0].value).decode()


class KubernetesCluster(pulumi.ComponentResource):

    def __init__(self, name: str, resource_group_name: pulumi.Input[str], subnet_id: pulumi.Input[str],
                 application_id: pulumi.Input[str], application_secret: pulumi.Input[str],
                 admin_group_id: pulumi.Input[str], kubernetes_version: str, node_count: int,
                 node_vm_size: str, tags: dict, opts: pulumi.ResourceOptions = None):
        super().__init__("selfhosted:azure:KubernetesCluster", name, None, opts)

        ssh_key = tls.PrivateKey(
            f"{name}-sshKey",
            algorithm="RSA",
            rsa_bits=4096,
            opts=pulumi.ResourceOptions(parent=self, additional_secret_outputs=["public_key_openssh"]),
        )

        # Short name, see https://aka.ms/aks-naming-rules
        cluster = containerservice.ManagedCluster(
            f"{name}-aks",
            resource_group_name=resource_group_name,
            service_principal_profile=containerservice.ManagedClusterServicePrincipalProfileArgs(
                client_id=application_id,
                secret=application_secret,
            ),
            enable_rbac=True,
            aad_profile=containerservice.ManagedClusterAADProfileArgs(
                managed=True,
                admin_group_object_ids=[admin_group_id],
            ),
            agent_pool_profiles=[containerservice.ManagedClusterAgentPoolProfileArgs(
                count=node_count,
                mode="System",
                name="agentpool",
                os_disk_size_gb=30,
                os_type="Linux",
                type="VirtualMachineScaleSets",
                vm_size=node_vm_size,
                vnet_subnet_id=subnet_id,
            )],
            dns_prefix=name,
            linux_profile=containerservice.ContainerServiceLinuxProfileArgs(
                admin_username="adminpulumi",
                ssh=containerservice.ContainerServiceSshConfigurationArgs(
                    public_keys=[containerservice.ContainerServiceSshPublicKeyArgs(key_data=ssh_key.public_key_openssh)],
                ),
            ),
            kubernetes_version=kubernetes_version,
            node_resource_group=f"{name}-aks-nodes-rg",
            tags=tags,
            opts=pulumi.ResourceOptions(parent=self, protect=True),
        )

        credentials = containerservice.list_managed_cluster_admin_credentials_output(
            resource_group_name=resource_group_name,
            resource_name=cluster.name,
        )

        self.name = cluster.name
        self.kubeconfig = credentials.apply(decode_kubeconfig)

        self.register_outputs({"name": self.name})


def program():
    config = pulumi.Config()

    common_name = config.get("commonName") or DEFAULT_COMMON_NAME
    prefix = f"{common_name}-{pulumi.get_stack()}"
    tags = {"project": pulumi.get_project(), "stack": pulumi.get_stack()}

    infrastructure = pulumi.StackReference(config.require("infrastructureStack"))

    cluster = KubernetesCluster(
        prefix,
        resource_group_name=infrastructure.require_output("resourceGroupName"),
        subnet_id=infrastructure.require_output("networkSubnetId"),
        application_id=infrastructure.require_output("adApplicationId"),
        application_secret=infrastructure.require_output("adApplicationSecret"),
        admin_group_id=infrastructure.require_output("adGroupId"),
        kubernetes_version=config.get("kubernetesVersion") or DEFAULT_KUBERNETES_VERSION,
        node_count=config.get_int("nodeCount") or 2,
        node_vm_size=config.get("nodeVmSize") or DEFAULT_NODE_VM_SIZE,
        tags=tags,
    )

    secret_kubeconfig = pulumi.Output.secret(cluster.kubeconfig)
    provider = k8s.Provider(
        "k8s-provider",
        kubeconfig=secret_kubeconfig,
        opts=pulumi.ResourceOptions(depends_on=[cluster]),
    )

    ingress = NginxIngress("pulumi-selfhosted", provider=provider, opts=pulumi.ResourceOptions(depends_on=[cluster]))

    apps_namespace = k8s.core.v1.Namespace(
        APPS_NAMESPACE,
        metadata=k8s.meta.v1.ObjectMetaArgs(name=APPS_NAMESPACE),
        opts=pulumi.ResourceOptions(provider=provider),
    )

    search_password = random.RandomPassword(
        "initialSearchAdminPassword",
        length=20,
        opts=pulumi.ResourceOptions(additional_secret_outputs=["result"]),
    )

    OpenSearch(
        "pulumi-selfhosted",
        namespace=apps_namespace.metadata.name,
        initial_admin_password=search_password.result,
        sysctl_init=True,
        provider=provider,
        opts=pulumi.ResourceOptions(depends_on=[cluster]),
    )

    pulumi.export("kubeconfig", secret_kubeconfig)
    pulumi.export("clusterName", cluster.name)
    pulumi.export("ingressNamespace", ingress.namespace)
    pulumi.export("ingressServiceIp", ingress.service_ip)
    pulumi.export("appNamespace", apps_namespace.metadata.name)
    pulumi.export("openSearchEndpoint", IN_CLUSTER_ENDPOINT)
    pulumi.export("openSearchUsername", ADMIN_USER)
    pulumi.export("openSearchPassword", pulumi.Output.secret(search_password.result))
