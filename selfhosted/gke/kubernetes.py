"""GKE Autopilot cluster with ingress and the search backend."""

import pulumi
import pulumi_gcp as gcp
import pulumi_kubernetes as k8s
import pulumi_random as random

from selfhosted.components import NginxIngress, OpenSearch
from selfhosted.components.opensearch import ADMIN_USER, IN_CLUSTER_ENDPOINT

DEFAULT_COMMON_NAME = "pulumiselfhosted"
DEFAULT_CLUSTER_VERSION = "1.30"
APPS_NAMESPACE = "pulumi-selfhosted-apps"


def kubeconfig(name: str, endpoint: str, ca_certificate: str) -> str:
    """Kubeconfig that authenticates through gke-gcloud-auth-plugin"""
    return f"""apiVersion: v1
clusters:
- cluster:
    certificate-authority-data: {ca_certificate}
    server: https://{endpoint}
  name: {name}
contexts:
- context:
    cluster: {name}
    user: {name}
  name: {name}
current-context: {name}
kind: Config
preferences: {{}}
users:
- name: {name}
  user:
    exec:
      apiVersion: client.authentication.k8s.io/v1beta1
      command: gke-gcloud-auth-plugin
      installHint: Install gke-gcloud-auth-plugin for use with kubectl by following
        https://cloud.google.com/kubernetes-engine/docs/how-to/cluster-access-for-kubectl#install_plugin
      provideClusterInfo: true
"""


class KubernetesCluster(pulumi.ComponentResource):

    def __init__(self, name: str, region: str, network_name: pulumi.Input[str], cluster_version: str,
                 labels: dict, opts: pulumi.ResourceOptions = None):
        super().__init__("selfhosted:gcp:KubernetesCluster", name, None, opts)

        cluster = gcp.container.Cluster(
            f"{name}-gke",
            location=region,
            network=network_name,
            enable_autopilot=True,
            min_master_version=cluster_version,
            ip_allocation_policy=gcp.container.ClusterIpAllocationPolicyArgs(),
            resource_labels=labels,
            deletion_protection=False,
            opts=pulumi.ResourceOptions(parent=self, protect=True),
        )

        context = pulumi.Output.concat(gcp.config.project or "", "_", region, "_", cluster.name)
        self.name = cluster.name
        self.kubeconfig = pulumi.Output.all(context, cluster.endpoint, cluster.master_auth.cluster_ca_certificate).apply(
            lambda args: kubeconfig(*args)
        )

        self.register_outputs({"name": self.name})


def program():
    config = pulumi.Config()

    common_name = config.get("commonName") or DEFAULT_COMMON_NAME
    prefix = f"{common_name}-{pulumi.get_stack()}"
    labels = {"project": pulumi.get_project().lower(), "stack": pulumi.get_stack().lower()}
    region = gcp.config.region or config.require("region")

    infrastructure = pulumi.StackReference(config.require("infrastructureStack"))

    cluster = KubernetesCluster(
        prefix,
        region=region,
        network_name=infrastructure.require_output("networkName"),
        cluster_version=config.get("clusterVersion") or DEFAULT_CLUSTER_VERSION,
        labels=labels,
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

    # Autopilot rejects the chart's privileged sysctl init container
    OpenSearch(
        "pulumi-selfhosted",
        namespace=apps_namespace.metadata.name,
        initial_admin_password=search_password.result,
        service_account=config.get("serviceAccountName") or "default",
        sysctl_init=False,
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
