import pulumi
import pulumi_kubernetes as k8s

CHART_REPO = "https://kubernetes.github.io/ingress-nginx"
CHART_VERSION = "4.7.1"


class NginxIngress(pulumi.ComponentResource):
    """ingress-nginx controller in its own ``<name>-ingress`` namespace.

    Exposes the namespace name and the external IP of the controller's
    LoadBalancer service.
    """

    def __init__(self, name: str, provider: k8s.Provider, replicas: int = 2,
                 opts: pulumi.ResourceOptions = None):
        super().__init__("selfhosted:kubernetes:NginxIngress", name, None, opts)

        child_opts = pulumi.ResourceOptions(provider=provider, parent=self)

        namespace = k8s.core.v1.Namespace(
            f"{name}-namespace",
            metadata=k8s.meta.v1.ObjectMetaArgs(name=f"{name}-ingress"),
            opts=child_opts,
        )

        release = k8s.helm.v3.Release(
            f"{name}-ingress",
            k8s.helm.v3.ReleaseArgs(
                name=f"{name}-ingress",
                chart="ingress-nginx",
                version=CHART_VERSION,
                namespace=namespace.metadata.name,
                repository_opts=k8s.helm.v3.RepositoryOptsArgs(repo=CHART_REPO),
                values={"controller": {"replicaCount": replicas}},
            ),
            opts=pulumi.ResourceOptions(provider=provider, parent=namespace),
        )

        controller = k8s.core.v1.Service.get(
            f"{name}-ingress-controller",
            pulumi.Output.concat(release.status.namespace, "/", release.status.name, "-ingress-nginx-controller"),
            opts=pulumi.ResourceOptions(provider=provider, parent=self, depends_on=[release]),
        )

        self.namespace = namespace.metadata.name
        self.service_ip = controller.status.apply(lambda status: status.load_balancer.ingress[0].ip)

        self.register_outputs({
            "namespace": self.namespace,
            "service_ip": self.service_ip,
        })
