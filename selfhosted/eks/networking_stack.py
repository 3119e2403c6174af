import aws_cdk as cdk

from aws_cdk import(
    aws_ec2 as ec2
)

from selfhosted import byo
from selfhosted.config import require


class NetworkingStack(cdk.Stack):

    NETWORK_KEYS = ["vpc_id", "public_subnet_ids", "private_subnet_ids"]

    def __init__(self, scope: cdk.App, construct_id: str, config: dict, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        cg = config["global"]
        cs = config["networking"]

        require(cs, ["cluster_name"], "networking")
        self.cluster_name = cs["cluster_name"]

        #####################################################
        ##### TAGS ##########################################
        #####################################################

        cdk.Tags.of(self).add("Owner", cg["tags"]["owner"])
        cdk.Tags.of(self).add("Project", cg["tags"]["project"])
        cdk.Tags.of(self).add("Environment", cg["tags"]["env"])
        cdk.Tags.of(self).add("PrimaryContact", cg["tags"]["contact"])


        #####################################################
        ##### VPC ###########################################
        #####################################################

        network = byo.resolve(cs, self.NETWORK_KEYS, lambda: self._create_vpc(cg, cs), "networking")

        self.vpc, self.public_subnets, self.private_subnets = network.pick(
            self._import_vpc,
            lambda vpc: (vpc, vpc.public_subnets, vpc.private_subnets),
        )

        cdk.CfnOutput(self, "VpcId", value=self.vpc.vpc_id)
        cdk.CfnOutput(self, "ClusterName", value=self.cluster_name)
        cdk.CfnOutput(self, "PublicSubnetIds", value=",".join(s.subnet_id for s in self.public_subnets))
        cdk.CfnOutput(self, "PrivateSubnetIds", value=",".join(s.subnet_id for s in self.private_subnets))

    def _import_vpc(self, values):
        vpc = ec2.Vpc.from_lookup(self, "VPC", vpc_id=values["vpc_id"])
        public_subnets = [
            ec2.Subnet.from_subnet_id(self, f"PublicSubnet{i}", subnet_id)
            for i, subnet_id in enumerate(values["public_subnet_ids"], start=1)
        ]
        private_subnets = [
            ec2.Subnet.from_subnet_id(self, f"PrivateSubnet{i}", subnet_id)
            for i, subnet_id in enumerate(values["private_subnet_ids"], start=1)
        ]
        return vpc, public_subnets, private_subnets

    def _create_vpc(self, cg, cs):
        prefix = f"{cg['common_prefix']}-{cg['env']}"

        ### VPC + Subnets (public for load balancers, private for nodes)
        vpc = ec2.Vpc(
            self, "VPC",
            vpc_name = f"{prefix}-vpc",
            ip_addresses = ec2.IpAddresses.cidr(cs.get("vpc_cidr", "10.0.0.0/16")),
            max_azs = cs.get("az_count", 3),
            nat_gateways = cs.get("nat_gateways", 1),
            subnet_configuration = [
                ec2.SubnetConfiguration(
                    name = f"{prefix}-public",
                    subnet_type = ec2.SubnetType.PUBLIC,
                    cidr_mask = cs.get("public_subnet_prefix", 20)
                ),
                ec2.SubnetConfiguration(
                    name = f"{prefix}-private",
                    subnet_type = ec2.SubnetType.PRIVATE_WITH_EGRESS,
                    cidr_mask = cs.get("private_subnet_prefix", 19)
                ),
            ]
        )

        # Load balancer discovery tags
        for subnet in vpc.public_subnets:
            cdk.Tags.of(subnet).add("kubernetes.io/role/elb", "1")
            cdk.Tags.of(subnet).add(f"kubernetes.io/cluster/{self.cluster_name}", "shared")
        for subnet in vpc.private_subnets:
            cdk.Tags.of(subnet).add("kubernetes.io/role/internal-elb", "1")

        return vpc
