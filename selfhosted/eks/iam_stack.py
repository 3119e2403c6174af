import aws_cdk as cdk

from aws_cdk import(
    aws_iam as iam,
)

import json
import os

from selfhosted import byo

POLICY_DOCS_DIR = os.path.join(os.path.dirname(__file__), "policy_docs")


def attach_policy_doc(scope, file, role):
    """Add a policy to a role, providing a json file name"""

    with open(os.path.join(POLICY_DOCS_DIR, f"{file}.json"), 'r') as policy_file:
        data = policy_file.read()
        policy_dict = json.loads(data)

    # To CamelCase
    id_prefix = "".join([part.capitalize() for part in file.split('_')])

    role.attach_inline_policy(iam.Policy(scope, f"{id_prefix}Permissions",
        document = iam.PolicyDocument.from_json(policy_dict),
    ))


class IamStack(cdk.Stack):
    """Roles used by the cluster, its nodes and database monitoring.

    Either all four of the role settings are given and adopted, or none are
    and the stack creates them.
    """

    ROLE_KEYS = [
        "eks_service_role_name",
        "eks_instance_role_name",
        "instance_profile_name",
        "database_monitoring_role_arn",
    ]

    def __init__(self, scope: cdk.App, construct_id: str, config: dict, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        cg = config["global"]
        cs = config.get("iam") or {}

        #####################################################
        ##### TAGS ##########################################
        #####################################################

        cdk.Tags.of(self).add("Owner", cg["tags"]["owner"])
        cdk.Tags.of(self).add("Project", cg["tags"]["project"])
        cdk.Tags.of(self).add("Environment", cg["tags"]["env"])
        cdk.Tags.of(self).add("PrimaryContact", cg["tags"]["contact"])


        #####################################################
        ##### ROLES #########################################
        #####################################################

        roles = byo.resolve(cs, self.ROLE_KEYS, lambda: self._create_roles(cg), "iam")

        self.eks_service_role, self.eks_instance_role, self.instance_profile_name, self.database_monitoring_role_arn = roles.pick(
            self._import_roles,
            lambda created: created,
        )
        self.sso_role_arn = cs.get("sso_role_arn")

        cdk.CfnOutput(self, "EksServiceRoleArn", value=self.eks_service_role.role_arn)
        cdk.CfnOutput(self, "EksInstanceRoleArn", value=self.eks_instance_role.role_arn)
        cdk.CfnOutput(self, "InstanceProfileName", value=self.instance_profile_name)
        cdk.CfnOutput(self, "DatabaseMonitoringRoleArn", value=self.database_monitoring_role_arn)

    def _import_roles(self, values):
        service_role = iam.Role.from_role_name(self, "Role_EKS_Service", role_name=values["eks_service_role_name"])
        instance_role = iam.Role.from_role_name(self, "Role_EKS_Instance", role_name=values["eks_instance_role_name"])
        return service_role, instance_role, values["instance_profile_name"], values["database_monitoring_role_arn"]

    def _create_roles(self, cg):
        prefix = f"{cg['common_prefix']}-{cg['env']}"

        # Control plane
        service_role = iam.Role(
            self, "Role_EKS_Service",
            role_name = f"{prefix}-eks-service-role",
            assumed_by = iam.ServicePrincipal("eks.amazonaws.com"),
            managed_policies = [
                iam.ManagedPolicy.from_aws_managed_policy_name("AmazonEKSClusterPolicy"),
            ],
            description = "Role for the EKS control plane"
        )

        # Worker nodes
        instance_role = iam.Role(
            self, "Role_EKS_Instance",
            role_name = f"{prefix}-eks-instance-role",
            assumed_by = iam.ServicePrincipal("ec2.amazonaws.com"),
            managed_policies = [
                iam.ManagedPolicy.from_aws_managed_policy_name("AmazonEC2ContainerRegistryReadOnly"),
                iam.ManagedPolicy.from_aws_managed_policy_name("AmazonEKSWorkerNodePolicy"),
                iam.ManagedPolicy.from_aws_managed_policy_name("AmazonEKS_CNI_Policy"),
                iam.ManagedPolicy.from_aws_managed_policy_name("AmazonS3FullAccess"),
            ],
            description = "Role for the EKS worker nodes"
        )
        attach_policy_doc(self, "alb_controller", instance_role)
        attach_policy_doc(self, "opensearch_access", instance_role)

        instance_profile = iam.InstanceProfile(
            self, "InstanceProfile_EKS",
            instance_profile_name = f"{prefix}-eks-instance-profile",
            role = instance_role
        )

        monitoring_role = iam.Role(
            self, "Role_DB_Monitoring",
            role_name = f"{prefix}-db-monitoring-role",
            assumed_by = iam.ServicePrincipal("monitoring.rds.amazonaws.com"),
            managed_policies = [
                iam.ManagedPolicy.from_aws_managed_policy_name("service-role/AmazonRDSEnhancedMonitoringRole"),
            ],
            description = "Role for RDS enhanced monitoring"
        )

        return service_role, instance_role, instance_profile.instance_profile_name, monitoring_role.role_arn
