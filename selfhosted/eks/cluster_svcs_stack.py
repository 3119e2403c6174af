import aws_cdk as cdk

from aws_cdk import(
    aws_ec2 as ec2,
    aws_eks as eks,
)

ALB_CONTROLLER_CHART_VERSION = "1.8.1"


class ClusterServicesStack(cdk.Stack):
    """Cluster add-ons the service depends on: CoreDNS and the ALB controller."""

    def __init__(self, scope: cdk.App, construct_id: str, config: dict,
                 cluster: eks.ICluster,
                 vpc: ec2.IVpc,
                 node_security_group: ec2.ISecurityGroup,
                 **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        cg = config["global"]
        cs = config.get("cluster_services") or {}

        #####################################################
        ##### TAGS ##########################################
        #####################################################

        cdk.Tags.of(self).add("Owner", cg["tags"]["owner"])
        cdk.Tags.of(self).add("Project", cg["tags"]["project"])
        cdk.Tags.of(self).add("Environment", cg["tags"]["env"])
        cdk.Tags.of(self).add("PrimaryContact", cg["tags"]["contact"])


        #####################################################
        ##### ADDONS ########################################
        #####################################################

        coredns = eks.CfnAddon(
            self, "CoreDNS_Addon",
            addon_name = "coredns",
            cluster_name = cluster.cluster_name,
            resolve_conflicts = "OVERWRITE",
        )
        if cs.get("coredns_version"):
            coredns.addon_version = cs["coredns_version"]


        #####################################################
        ##### ALB ###########################################
        #####################################################

        self.alb_security_group = ec2.SecurityGroup(
            self, "SG_ALB",
            security_group_name = f"{cg['common_prefix']}-{cg['env']}-alb-sg",
            vpc = vpc,
            description = "SG for the service load balancers",
            allow_all_outbound = True
        )

        self.alb_security_group.add_ingress_rule(
            peer=ec2.Peer.any_ipv4(),
            connection=ec2.Port.tcp(80),
            description="Allow HTTP traffic"
        )
        self.alb_security_group.add_ingress_rule(
            peer=ec2.Peer.any_ipv4(),
            connection=ec2.Port.tcp(443),
            description="Allow HTTPS traffic"
        )

        # Nodes accept everything coming from the load balancers
        ec2.CfnSecurityGroupIngress(
            self, "SG_Node_From_ALB",
            group_id = node_security_group.security_group_id,
            source_security_group_id = self.alb_security_group.security_group_id,
            ip_protocol = "-1",
            description = "Allow traffic from the service load balancers"
        )

        # Permissions come from the node instance role
        eks.HelmChart(
            self, "ALB_Controller",
            cluster = cluster,
            chart = "aws-load-balancer-controller",
            repository = "https://aws.github.io/eks-charts",
            version = cs.get("alb_controller_version", ALB_CONTROLLER_CHART_VERSION),
            namespace = "kube-system",
            release = "aws-load-balancer-controller",
            values = {
                "clusterName": cluster.cluster_name,
                "vpcId": vpc.vpc_id,
                "region": self.region,
            },
        )

        cdk.CfnOutput(self, "AlbSecurityGroupId", value=self.alb_security_group.security_group_id)
