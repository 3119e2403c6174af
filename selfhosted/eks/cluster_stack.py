import aws_cdk as cdk

from aws_cdk import(
    aws_ec2 as ec2,
    aws_eks as eks,
    aws_iam as iam,
)
from aws_cdk.lambda_layer_kubectl_v29 import KubectlV29Layer
from aws_cdk.lambda_layer_kubectl_v30 import KubectlV30Layer
from aws_cdk.lambda_layer_kubectl_v31 import KubectlV31Layer

from selfhosted.config import ConfigError

PULUMI_NODE_TAINT_KEY = "self-hosted-pulumi"

CLUSTER_DEFAULTS = {
    "version": "1.30",
    "http_tokens": "required",
    "http_put_response_hop_limit": 2,
    "standard_node_group": {"instance_type": "t3.xlarge", "desired": 2, "min": 2, "max": 5},
    "pulumi_node_group": {"instance_type": "t3.xlarge", "desired": 3, "min": 3, "max": 5},
}


# cluster version -> kubectl layer of the same minor version
KUBECTL_LAYERS = {
    "1.29": KubectlV29Layer,
    "1.30": KubectlV30Layer,
    "1.31": KubectlV31Layer,
}


def kubectl_layer_for(version: str):
    if version not in KUBECTL_LAYERS:
        raise ConfigError(
            f"Unsupported cluster version [{version}], expected one of {', '.join(KUBECTL_LAYERS)}"
        )
    return KUBECTL_LAYERS[version]


def node_group_settings(cs: dict, name: str) -> dict:
    """Node group sizing with per-field fallbacks to the defaults"""
    settings = dict(CLUSTER_DEFAULTS[name])
    settings.update({k: v for k, v in (cs.get(name) or {}).items() if v is not None})
    return settings


class ClusterStack(cdk.Stack):

    def __init__(self, scope: cdk.App, construct_id: str, config: dict,
                 vpc: ec2.IVpc,
                 public_subnets: list,
                 private_subnets: list,
                 cluster_name: str,
                 service_role: iam.IRole,
                 instance_role: iam.IRole,
                 sso_role_arn: str = None,
                 **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        cg = config["global"]
        cs = config.get("cluster") or {}

        standard = node_group_settings(cs, "standard_node_group")
        pulumi = node_group_settings(cs, "pulumi_node_group")
        version = str(cs.get("version", CLUSTER_DEFAULTS["version"]))
        kubectl_layer = kubectl_layer_for(version)

        #####################################################
        ##### TAGS ##########################################
        #####################################################

        cdk.Tags.of(self).add("Owner", cg["tags"]["owner"])
        cdk.Tags.of(self).add("Project", cg["tags"]["project"])
        cdk.Tags.of(self).add("Environment", cg["tags"]["env"])
        cdk.Tags.of(self).add("PrimaryContact", cg["tags"]["contact"])


        #####################################################
        ##### EKS CLUSTER ###################################
        #####################################################

        # Re-imported so the aws-auth mapping only references this stack
        service_role = iam.Role.from_role_arn(self, "Role_EKS_Service", service_role.role_arn, mutable=False)
        instance_role = iam.Role.from_role_arn(self, "Role_EKS_Instance", instance_role.role_arn, mutable=False)

        self.cluster = eks.Cluster(
            self, "EKS_Cluster",
            cluster_name = cluster_name,
            version = eks.KubernetesVersion.of(version),
            role = service_role,
            vpc = vpc,
            vpc_subnets = [ec2.SubnetSelection(subnets=list(public_subnets) + list(private_subnets))],
            default_capacity = 0,
            kubectl_layer = kubectl_layer(self, "KubectlLayer"),
            authentication_mode = eks.AuthenticationMode.API_AND_CONFIG_MAP,
            endpoint_access = eks.EndpointAccess.PUBLIC_AND_PRIVATE,
            cluster_logging = [
                eks.ClusterLoggingTypes.API,
                eks.ClusterLoggingTypes.AUDIT,
                eks.ClusterLoggingTypes.AUTHENTICATOR,
                eks.ClusterLoggingTypes.CONTROLLER_MANAGER,
                eks.ClusterLoggingTypes.SCHEDULER,
            ],
        )
        self.cluster_security_group = self.cluster.cluster_security_group

        if sso_role_arn:
            self.cluster.grant_access(
                "SsoAdminAccess", sso_role_arn,
                [eks.AccessPolicy.from_access_policy_name(
                    "AmazonEKSClusterAdminPolicy",
                    access_scope_type=eks.AccessScopeType.CLUSTER
                )]
            )


        #####################################################
        ##### NODE GROUPS ###################################
        #####################################################

        # IMDS settings shared by both node groups
        http_tokens = str(cs.get("http_tokens", CLUSTER_DEFAULTS["http_tokens"])).lower()
        launch_template = ec2.LaunchTemplate(
            self, "NodeLaunchTemplate",
            launch_template_name = f"{cg['common_prefix']}-{cg['env']}-node-lt",
            http_tokens = ec2.LaunchTemplateHttpTokens.REQUIRED if http_tokens == "required" else ec2.LaunchTemplateHttpTokens.OPTIONAL,
            http_put_response_hop_limit = int(cs.get("http_put_response_hop_limit", CLUSTER_DEFAULTS["http_put_response_hop_limit"])),
        )
        launch_template_spec = eks.LaunchTemplateSpec(
            id = launch_template.launch_template_id,
            version = launch_template.latest_version_number,
        )

        self.cluster.add_nodegroup_capacity(
            "Standard_NodeGroup",
            nodegroup_name = f"{cg['common_prefix']}-{cg['env']}-standard",
            node_role = instance_role,
            instance_types = [ec2.InstanceType(standard["instance_type"])],
            desired_size = standard["desired"],
            min_size = standard["min"],
            max_size = standard["max"],
            subnets = ec2.SubnetSelection(subnets=list(private_subnets)),
            launch_template_spec = launch_template_spec,
        )

        # Reserved for the service workloads, which tolerate the taint
        self.cluster.add_nodegroup_capacity(
            "Pulumi_NodeGroup",
            nodegroup_name = f"{cg['common_prefix']}-{cg['env']}-pulumi",
            node_role = instance_role,
            instance_types = [ec2.InstanceType(pulumi["instance_type"])],
            desired_size = pulumi["desired"],
            min_size = pulumi["min"],
            max_size = pulumi["max"],
            subnets = ec2.SubnetSelection(subnets=list(private_subnets)),
            launch_template_spec = launch_template_spec,
            taints = [eks.TaintSpec(
                effect = eks.TaintEffect.NO_SCHEDULE,
                key = PULUMI_NODE_TAINT_KEY,
                value = "true",
            )],
        )
        self.node_group_instance_type = pulumi["instance_type"]

        cdk.CfnOutput(self, "ClusterName", value=self.cluster.cluster_name)
        cdk.CfnOutput(self, "NodeSecurityGroupId", value=self.cluster.cluster_security_group_id)
        cdk.CfnOutput(self, "NodeGroupInstanceType", value=self.node_group_instance_type)
        cdk.CfnOutput(self, "KubeconfigCommand",
            value=f"aws eks update-kubeconfig --name {cluster_name} --region {self.region}")
