import aws_cdk as cdk

from aws_cdk import(
    aws_ec2 as ec2,
    aws_eks as eks,
    aws_secretsmanager as secretsmanager
)

from selfhosted.config import flag
from selfhosted.eks.resource_search import ResourceSearch

OPENSEARCH_CHART_VERSION = "2.24.1"
OPENSEARCH_APP_VERSION = "2.14.0"
OPENSEARCH_IN_CLUSTER_ENDPOINT = "https://opensearch-cluster-master:9200"
DEFAULT_NAMESPACE = "pulumi-service"


class InsightsStack(cdk.Stack):
    """Search backend for resource insights.

    A managed OpenSearch domain when ``deploy_open_search_domain`` is set,
    otherwise the OpenSearch chart inside the service namespace.
    """

    def __init__(self, scope: cdk.App, construct_id: str, config: dict,
                 cluster: eks.ICluster,
                 vpc: ec2.IVpc,
                 private_subnets: list,
                 node_security_group: ec2.ISecurityGroup,
                 **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        cg = config["global"]
        cs = config.get("insights") or {}

        self.namespace = cs.get("namespace", DEFAULT_NAMESPACE)

        #####################################################
        ##### TAGS ##########################################
        #####################################################

        cdk.Tags.of(self).add("Owner", cg["tags"]["owner"])
        cdk.Tags.of(self).add("Project", cg["tags"]["project"])
        cdk.Tags.of(self).add("Environment", cg["tags"]["env"])
        cdk.Tags.of(self).add("PrimaryContact", cg["tags"]["contact"])


        #####################################################
        ##### NAMESPACE #####################################
        #####################################################

        # Shared with the service stack, which deploys into it
        self.namespace_manifest = eks.KubernetesManifest(
            self, "Service_Namespace",
            cluster = cluster,
            manifest = [{"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": self.namespace}}],
            overwrite = True,
        )


        #####################################################
        ##### OPENSEARCH ####################################
        #####################################################

        if flag(cs.get("deploy_open_search_domain")):
            search = ResourceSearch(
                self, "ResourceSearch",
                domain_name = f"{cg['common_prefix']}-{cg['env']}-search",
                vpc = vpc,
                subnets = private_subnets,
                security_group = node_security_group,
                instance_type = cs.get("instance_type", "t3.medium.search"),
                instance_count = int(cs.get("instance_count", 2)),
                dedicated_master_count = int(cs.get("dedicated_master_count", 0)),
            )
            self.endpoint = search.endpoint
            self.user = search.user
            self.password = search.password
        else:
            self._deploy_in_cluster(cg, cs, cluster)

        cdk.CfnOutput(self, "OpenSearchEndpoint", value=self.endpoint)
        cdk.CfnOutput(self, "OpenSearchUser", value=self.user)
        cdk.CfnOutput(self, "OpenSearchNamespace", value=self.namespace)

    def _deploy_in_cluster(self, cg, cs, cluster):
        password_secret = secretsmanager.Secret(
            self, "Secret_OpenSearch_Admin",
            secret_name = f"{cg['common_prefix']}-{cg['env']}-opensearch-admin",
            generate_secret_string = secretsmanager.SecretStringGenerator(
                password_length = 20,
                exclude_characters = "\"'\\/@$`",
                require_each_included_type = True,
            ),
        )

        chart = eks.HelmChart(
            self, "OpenSearch_Chart",
            cluster = cluster,
            chart = "opensearch",
            repository = "https://opensearch-project.github.io/helm-charts/",
            version = OPENSEARCH_CHART_VERSION,
            namespace = self.namespace,
            release = "opensearch",
            values = {
                "replicas": int(cs.get("replicas", 3)),
                "image": {"tag": OPENSEARCH_APP_VERSION},
                "persistence": {"enabled": False},
                "resources": {"requests": {"memory": "2Gi", "cpu": "1000m"}},
                "extraEnvs": [{
                    "name": "OPENSEARCH_INITIAL_ADMIN_PASSWORD",
                    "value": password_secret.secret_value.unsafe_unwrap(),
                }],
            },
        )
        chart.node.add_dependency(self.namespace_manifest)

        self.endpoint = OPENSEARCH_IN_CLUSTER_ENDPOINT
        self.user = "admin"
        self.password = password_secret.secret_value
