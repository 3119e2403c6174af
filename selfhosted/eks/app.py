import aws_cdk as cdk

from selfhosted.eks.iam_stack import IamStack
from selfhosted.eks.networking_stack import NetworkingStack
from selfhosted.eks.cluster_stack import ClusterStack
from selfhosted.eks.cluster_svcs_stack import ClusterServicesStack
from selfhosted.eks.state_policies_stack import StatePoliciesStack
from selfhosted.eks.database_stack import DatabaseStack
from selfhosted.eks.insights_stack import InsightsStack
from selfhosted.eks.esc_stack import EscStack
from selfhosted.eks.service_stack import ServiceStack


def build_app(app: cdk.App, config: dict) -> dict:
    """Instantiate every stack and wire outputs into the stacks that consume them"""
    account       = config['global'].get('account')
    region        = config['global'].get('region')
    common_prefix = config['global']['common_prefix']
    env           = config['global']['env']

    aws_env = cdk.Environment(account=account, region=region)

    iam_stack = IamStack(app, f"{common_prefix}-{env}-iam-stack", config=config, env=aws_env)
    net_stack = NetworkingStack(app, f"{common_prefix}-{env}-networking-stack", config=config, env=aws_env)

    cluster_stack = ClusterStack(
        app, f"{common_prefix}-{env}-cluster-stack", config=config, env=aws_env,
        vpc=net_stack.vpc,
        public_subnets=net_stack.public_subnets,
        private_subnets=net_stack.private_subnets,
        cluster_name=net_stack.cluster_name,
        service_role=iam_stack.eks_service_role,
        instance_role=iam_stack.eks_instance_role,
        sso_role_arn=iam_stack.sso_role_arn,
    )
    cluster_stack.add_dependency(iam_stack)
    cluster_stack.add_dependency(net_stack)

    svcs_stack = ClusterServicesStack(
        app, f"{common_prefix}-{env}-cluster-services-stack", config=config, env=aws_env,
        cluster=cluster_stack.cluster,
        vpc=net_stack.vpc,
        node_security_group=cluster_stack.cluster_security_group,
    )
    svcs_stack.add_dependency(cluster_stack)

    state_stack = StatePoliciesStack(app, f"{common_prefix}-{env}-state-policies-stack", config=config, env=aws_env)

    db_stack = DatabaseStack(
        app, f"{common_prefix}-{env}-database-stack", config=config, env=aws_env,
        vpc=net_stack.vpc,
        private_subnets=net_stack.private_subnets,
        node_security_group=cluster_stack.cluster_security_group,
        monitoring_role_arn=iam_stack.database_monitoring_role_arn,
    )
    db_stack.add_dependency(cluster_stack)

    insights_stack = InsightsStack(
        app, f"{common_prefix}-{env}-insights-stack", config=config, env=aws_env,
        cluster=cluster_stack.cluster,
        vpc=net_stack.vpc,
        private_subnets=net_stack.private_subnets,
        node_security_group=cluster_stack.cluster_security_group,
    )
    insights_stack.add_dependency(svcs_stack)

    esc_stack = EscStack(app, f"{common_prefix}-{env}-esc-stack", config=config, env=aws_env)

    service_stack = ServiceStack(
        app, f"{common_prefix}-{env}-service-stack", config=config, env=aws_env,
        cluster=cluster_stack.cluster,
        db_conn=db_stack.db_conn,
        search=insights_stack,
        state_bucket_names=state_stack.bucket_names,
        esc_bucket_name=esc_stack.bucket_name,
        alb_security_group=svcs_stack.alb_security_group,
        node_group_instance_type=cluster_stack.node_group_instance_type,
    )
    for stack in (svcs_stack, state_stack, db_stack, insights_stack, esc_stack):
        service_stack.add_dependency(stack)

    return {
        "iam": iam_stack,
        "networking": net_stack,
        "cluster": cluster_stack,
        "cluster_services": svcs_stack,
        "state_policies": state_stack,
        "database": db_stack,
        "insights": insights_stack,
        "esc": esc_stack,
        "service": service_stack,
    }
