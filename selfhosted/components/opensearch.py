import pulumi
import pulumi_kubernetes as k8s

CHART_REPO = "https://opensearch-project.github.io/helm-charts/"
CHART_VERSION = "2.24.1"
APP_VERSION = "2.14.0"

IN_CLUSTER_ENDPOINT = "https://opensearch-cluster-master:9200"
ADMIN_USER = "admin"


def max_map_count_setter_spec() -> k8s.apps.v1.DaemonSetSpecArgs:
    """Privileged init container that raises vm.max_map_count on every node"""
    labels = {"name": "max-map-count-setter"}
    return k8s.apps.v1.DaemonSetSpecArgs(
        selector=k8s.meta.v1.LabelSelectorArgs(match_labels=labels),
        template=k8s.core.v1.PodTemplateSpecArgs(
            metadata=k8s.meta.v1.ObjectMetaArgs(labels=labels),
            spec=k8s.core.v1.PodSpecArgs(
                init_containers=[k8s.core.v1.ContainerArgs(
                    name="max-map-count-setter",
                    image="docker.io/bash:5.2.21",
                    resources=k8s.core.v1.ResourceRequirementsArgs(limits={"cpu": "100m", "memory": "32Mi"}),
                    security_context=k8s.core.v1.SecurityContextArgs(privileged=True, run_as_user=0),
                    command=["/usr/local/bin/bash", "-e", "-c", "echo 262144 > /proc/sys/vm/max_map_count"],
                )],
                containers=[k8s.core.v1.ContainerArgs(
                    name="sleep",
                    image="docker.io/bash:5.2.21",
                    command=["sleep", "infinity"],
                )],
            ),
        ),
    )


def chart_values(initial_admin_password, service_account, sysctl_init: bool, replicas: int = 3) -> dict:
    return {
        "roles": ["master", "ingest", "data", "remote_cluster_client"],
        "replicas": replicas,
        "image": {"tag": APP_VERSION},
        "opensearchJavaOpts": "-Xmx1024M -Xms1024M",
        "persistence": {"enabled": False},
        "resources": {
            "requests": {"memory": "2Gi", "cpu": "1000m"},
            "limits": {"memory": "2Gi", "cpu": "1000m"},
        },
        "sysctlInit": {"enabled": sysctl_init},
        "extraEnvs": [{"name": "OPENSEARCH_INITIAL_ADMIN_PASSWORD", "value": initial_admin_password}],
        "rbac": {"serviceAccountName": service_account, "automountServiceAccountToken": True},
        "serviceAccountName": service_account,
    }


class OpenSearch(pulumi.ComponentResource):
    """OpenSearch chart installed next to the service.

    Clusters that forbid the chart's own sysctl init container (GKE
    Autopilot) get a separate DaemonSet that sets ``vm.max_map_count`` and
    the chart waits for it.
    """

    def __init__(self, name: str, namespace: pulumi.Input[str], initial_admin_password: pulumi.Input[str],
                 provider: k8s.Provider, service_account: pulumi.Input[str] = "default",
                 sysctl_init: bool = False, opts: pulumi.ResourceOptions = None):
        super().__init__("selfhosted:kubernetes:OpenSearch", name, None, opts)

        depends_on = []
        if not sysctl_init:
            setter = k8s.apps.v1.DaemonSet(
                f"{name}-max-map-count-setter",
                metadata=k8s.meta.v1.ObjectMetaArgs(
                    name="max-map-count-setter",
                    namespace=namespace,
                    labels={"k8s-app": "max-map-count-setter"},
                ),
                spec=max_map_count_setter_spec(),
                opts=pulumi.ResourceOptions(provider=provider, parent=self),
            )
            depends_on.append(setter)

        k8s.helm.v3.Release(
            f"{name}-opensearch",
            k8s.helm.v3.ReleaseArgs(
                name="opensearch",
                chart="opensearch",
                version=CHART_VERSION,
                namespace=namespace,
                repository_opts=k8s.helm.v3.RepositoryOptsArgs(repo=CHART_REPO),
                values=chart_values(initial_admin_password, service_account, sysctl_init),
            ),
            opts=pulumi.ResourceOptions(provider=provider, parent=self, depends_on=depends_on),
        )

        self.namespace = pulumi.Output.from_input(namespace)
        self.endpoint = pulumi.Output.from_input(IN_CLUSTER_ENDPOINT)
        self.user = pulumi.Output.from_input(ADMIN_USER)

        self.register_outputs({
            "namespace": self.namespace,
            "endpoint": self.endpoint,
        })
