import aws_cdk as cdk

from aws_cdk import(
    aws_certificatemanager as acm,
    aws_ec2 as ec2,
    aws_eks as eks,
    aws_route53 as route53,
    aws_secretsmanager as secretsmanager
)

from selfhosted.config import flag, group, require
from selfhosted.eks import manifests
from selfhosted.eks.database_stack import DbConn
from selfhosted.eks.encryption_service import EncryptionService, check_encryption_settings

API_NAME = "pulumi-api"
CONSOLE_NAME = "pulumi-console"
API_PORT = 8080
CONSOLE_PORT = 3000

API_RESOURCES = {"requests": {"cpu": "2048m", "memory": "1024Mi"}}
CONSOLE_RESOURCES = {"requests": {"cpu": "512m", "memory": "512Mi"}}
MIGRATION_RESOURCES = {"requests": {"cpu": "128m", "memory": "128Mi"}}

# Test keys; they always pass verification
DEFAULT_RECAPTCHA_SITE_KEY = "6LeIxAcTAAAAAJcZVRqyHh71UMIEGNQ_MXjiZKhI"
DEFAULT_RECAPTCHA_SECRET_KEY = "6LeIxAcTAAAAAGG-vFI1TnRWxMZNFuojJ4WifJWe"

SMTP_KEYS = ["smtp_server", "smtp_username", "smtp_password_secret_name", "smtp_generic_sender"]
GITHUB_KEYS = ["github_oauth_endpoint", "github_oauth_id", "github_oauth_secret_name"]


def email_login_env(cs: dict) -> tuple:
    """Env for the email login switches; only "true" is ever set"""
    api = {
        "PULUMI_DISABLE_EMAIL_LOGIN": "true" if flag(cs.get("api_disable_email_login")) else None,
        "PULUMI_DISABLE_EMAIL_SIGNUP": "true" if flag(cs.get("api_disable_email_signup")) else None,
    }
    console = {
        "PULUMI_HIDE_EMAIL_LOGIN": "true" if flag(cs.get("console_hide_email_login")) else None,
        "PULUMI_HIDE_EMAIL_SIGNUP": "true" if flag(cs.get("console_hide_email_signup")) else None,
    }
    return api, console


class ServiceStack(cdk.Stack):
    """API and console workloads, their secrets, certificates and DNS."""

    def __init__(self, scope: cdk.App, construct_id: str, config: dict,
                 cluster: eks.ICluster,
                 db_conn: DbConn,
                 search,
                 state_bucket_names: dict,
                 esc_bucket_name: str,
                 alb_security_group: ec2.ISecurityGroup,
                 node_group_instance_type: str,
                 **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        cg = config["global"]
        cs = config.get("service") or {}

        require(cs, ["license_key_secret_name", "hosted_zone_domain_name", "hosted_zone_domain_subdomain", "image_tag"], "service")
        smtp = group(cs, SMTP_KEYS, "service.smtp")
        github = group(cs, GITHUB_KEYS, "service.github")
        check_encryption_settings(cs.get("aws_kms_key_arn"), cs.get("encryption_key_secret_name"))

        namespace = cs.get("namespace", search.namespace)
        domain = f"{cs['hosted_zone_domain_subdomain']}.{cs['hosted_zone_domain_name']}"
        api_domain = f"api.{domain}"
        console_domain = f"app.{domain}"
        image_tag = cs["image_tag"]

        #####################################################
        ##### TAGS ##########################################
        #####################################################

        cdk.Tags.of(self).add("Owner", cg["tags"]["owner"])
        cdk.Tags.of(self).add("Project", cg["tags"]["project"])
        cdk.Tags.of(self).add("Environment", cg["tags"]["env"])
        cdk.Tags.of(self).add("PrimaryContact", cg["tags"]["contact"])


        #####################################################
        ##### K8S SECRETS ###################################
        #####################################################

        license_key = secretsmanager.Secret.from_secret_name_v2(
            self, "Secret_License_Key", secret_name=cs["license_key_secret_name"]
        ).secret_value.unsafe_unwrap()

        base_objects = []
        # Insights always creates its own namespace
        if namespace != search.namespace:
            base_objects.append({"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": namespace}})

        base_objects += [
            {"apiVersion": "v1", "kind": "ServiceAccount", "metadata": {"name": API_NAME, "namespace": namespace}},
            manifests.secret("license-key", namespace, {"key": license_key}),
            manifests.secret("aurora-db-conn", namespace, {
                "host": db_conn.host,
                "endpoint": f"{db_conn.host}:{db_conn.port}",
                "username": db_conn.username,
                "password": db_conn.password.unsafe_unwrap(),
            }),
            manifests.secret("recaptcha", namespace, {
                "siteKey": cs.get("recaptcha_site_key") or DEFAULT_RECAPTCHA_SITE_KEY,
                "secretKey": cs.get("recaptcha_secret_key") or DEFAULT_RECAPTCHA_SECRET_KEY,
            }),
            manifests.secret("opensearch-secrets", namespace, {
                "openSearchUser": search.user,
                "openSearchPassword": search.password.unsafe_unwrap(),
            }),
        ]

        api_env = [
            {"name": "AWS_REGION", "value": self.region},
            manifests.env_from_secret("PULUMI_LICENSE_KEY", "license-key", "key"),
            {"name": "PULUMI_ENTERPRISE", "value": "true"},
            {"name": "PULUMI_API_DOMAIN", "value": api_domain},
            {"name": "PULUMI_CONSOLE_DOMAIN", "value": console_domain},
            manifests.env_from_secret("PULUMI_DATABASE_ENDPOINT", "aurora-db-conn", "endpoint"),
            manifests.env_from_secret("MYSQL_ROOT_USERNAME", "aurora-db-conn", "username"),
            manifests.env_from_secret("MYSQL_ROOT_PASSWORD", "aurora-db-conn", "password"),
            {"name": "PULUMI_DATABASE_NAME", "value": "pulumi"},
            {"name": "PULUMI_CHECKPOINT_BLOB_STORAGE_ENDPOINT", "value": f"s3://{state_bucket_names['checkpoints_bucket_name']}"},
            {"name": "PULUMI_CHECKPOINT_BLOB_STORAGE_ENDPOINT_V2", "value": f"s3://{state_bucket_names['checkpoints_v2_bucket_name']}"},
            {"name": "PULUMI_POLICY_PACK_BLOB_STORAGE_ENDPOINT", "value": f"s3://{state_bucket_names['policy_packs_bucket_name']}"},
            {"name": "PULUMI_ENGINE_EVENTS_BLOB_STORAGE_ENDPOINT", "value": f"s3://{state_bucket_names['events_bucket_name']}"},
            {"name": "PULUMI_ENGINE_EVENTS_BLOB_STORAGE_ENDPOINT_V2", "value": f"s3://{state_bucket_names['events_v2_bucket_name']}"},
            {"name": "PULUMI_SERVICE_METADATA_BLOB_STORAGE_ENDPOINT", "value": f"s3://{esc_bucket_name}"},
            manifests.env_from_secret("RECAPTCHA_SECRET_KEY", "recaptcha", "secretKey"),
            manifests.env_from_secret("LOGIN_RECAPTCHA_SECRET_KEY", "recaptcha", "secretKey"),
            manifests.env_from_secret("PULUMI_SEARCH_PASSWORD", "opensearch-secrets", "openSearchPassword"),
            {"name": "PULUMI_SEARCH_USER", "value": search.user},
            {"name": "PULUMI_SEARCH_DOMAIN", "value": search.endpoint},
        ]
        console_env = [
            {"name": "PULUMI_CONSOLE_DOMAIN", "value": console_domain},
            {"name": "PULUMI_HOMEPAGE_DOMAIN", "value": console_domain},
            {"name": "PULUMI_API", "value": f"https://{api_domain}"},
            {"name": "PULUMI_API_INTERNAL_ENDPOINT", "value": f"http://{API_NAME}:{API_PORT}"},
            {"name": "SAML_SSO_ENABLED", "value": "true" if flag(cs.get("saml_sso_enabled")) else "false"},
            manifests.env_from_secret("RECAPTCHA_SITE_KEY", "recaptcha", "siteKey"),
            manifests.env_from_secret("LOGIN_RECAPTCHA_SITE_KEY", "recaptcha", "siteKey"),
        ]

        if smtp:
            smtp_password = secretsmanager.Secret.from_secret_name_v2(
                self, "Secret_SMTP_Password", secret_name=smtp["smtp_password_secret_name"]
            ).secret_value.unsafe_unwrap()
            base_objects.append(manifests.secret("smtp-conn", namespace, {
                "server": smtp["smtp_server"],
                "username": smtp["smtp_username"],
                "password": smtp_password,
                "genericsender": smtp["smtp_generic_sender"],
            }))
            api_env += [
                manifests.env_from_secret("SMTP_SERVER", "smtp-conn", "server"),
                manifests.env_from_secret("SMTP_USERNAME", "smtp-conn", "username"),
                manifests.env_from_secret("SMTP_PASSWORD", "smtp-conn", "password"),
                manifests.env_from_secret("SMTP_GENERIC_SENDER", "smtp-conn", "genericsender"),
            ]
        else:
            cdk.Annotations.of(self).add_warning("Missing one or more SMTP settings. The service will launch without email enabled.")

        # Certificate pair kept in Secrets Manager as {"pubkey": ..., "privatekey": ...}
        if cs.get("saml_sso_secret_name"):
            saml = secretsmanager.Secret.from_secret_name_v2(
                self, "Secret_SAML_SSO", secret_name=cs["saml_sso_secret_name"]
            )
            base_objects.append(manifests.secret("saml-sso", namespace, {
                "pubkey": saml.secret_value_from_json("pubkey").unsafe_unwrap(),
                "privatekey": saml.secret_value_from_json("privatekey").unsafe_unwrap(),
            }))
            api_env += [
                manifests.env_from_secret("SAML_CERTIFICATE_PUBLIC_KEY", "saml-sso", "pubkey"),
                manifests.env_from_secret("SAML_CERTIFICATE_PRIVATE_KEY", "saml-sso", "privatekey"),
            ]

        if github:
            github_secret = secretsmanager.Secret.from_secret_name_v2(
                self, "Secret_GitHub_OAuth", secret_name=github["github_oauth_secret_name"]
            ).secret_value.unsafe_unwrap()
            base_objects.append(manifests.secret("github-conn", namespace, {
                "github_oauth_endpoint": github["github_oauth_endpoint"],
                "github_oauth_id": github["github_oauth_id"],
                "github_oauth_secret": github_secret,
            }))
            github_env = [
                manifests.env_from_secret("GITHUB_OAUTH_ENDPOINT", "github-conn", "github_oauth_endpoint"),
                manifests.env_from_secret("GITHUB_OAUTH_ID", "github-conn", "github_oauth_id"),
                manifests.env_from_secret("GITHUB_OAUTH_SECRET", "github-conn", "github_oauth_secret"),
            ]
            api_env += github_env
            console_env += github_env

        api_email, console_email = email_login_env(cs)
        api_env += manifests.env_list(api_email)
        console_env += manifests.env_list(console_email)

        base_manifest = eks.KubernetesManifest(
            self, "Service_Base",
            cluster = cluster,
            manifest = base_objects,
            overwrite = True,
        )


        #####################################################
        ##### ENCRYPTION ####################################
        #####################################################

        encryption_key = None
        if not cs.get("aws_kms_key_arn"):
            encryption_key = secretsmanager.Secret.from_secret_name_v2(
                self, "Secret_Encryption_Key", secret_name=cs["encryption_key_secret_name"]
            ).secret_value.unsafe_unwrap()

        encryption = EncryptionService(
            self, "EncryptionService",
            cluster = cluster,
            namespace = namespace,
            aws_kms_key_arn = cs.get("aws_kms_key_arn"),
            encryption_key = encryption_key,
        )
        if encryption.manifest is not None:
            encryption.manifest.node.add_dependency(base_manifest)
        api_env.append(encryption.env)


        #####################################################
        ##### DEPLOYMENTS ###################################
        #####################################################

        api_labels = {"app": API_NAME}
        console_labels = {"app": CONSOLE_NAME}

        api_pod = {
            **manifests.scheduling(node_group_instance_type, api_labels),
            "serviceAccountName": API_NAME,
            "initContainers": [{
                "name": "migration",
                "image": f"pulumi/migrations:{image_tag}",
                "env": [
                    manifests.env_from_secret("PULUMI_DATABASE_ENDPOINT", "aurora-db-conn", "endpoint"),
                    manifests.env_from_secret("MYSQL_ROOT_USERNAME", "aurora-db-conn", "username"),
                    manifests.env_from_secret("MYSQL_ROOT_PASSWORD", "aurora-db-conn", "password"),
                    manifests.env_from_secret("PULUMI_DATABASE_PING_ENDPOINT", "aurora-db-conn", "host"),
                ],
                "resources": MIGRATION_RESOURCES,
            }],
            "containers": [{
                "name": "api",
                "image": f"pulumi/service:{image_tag}",
                "ports": [{"name": "api", "containerPort": API_PORT}],
                "env": api_env,
                "volumeMounts": encryption.volume_mounts,
                "resources": API_RESOURCES,
            }],
            "volumes": encryption.volumes,
        }

        console_pod = {
            **manifests.scheduling(node_group_instance_type, console_labels),
            "containers": [{
                "name": "console",
                "image": f"pulumi/console:{image_tag}",
                "ports": [{"name": "console", "containerPort": CONSOLE_PORT}],
                "env": console_env,
                "resources": CONSOLE_RESOURCES,
            }],
        }

        workloads = eks.KubernetesManifest(
            self, "Service_Workloads",
            cluster = cluster,
            manifest = [
                manifests.deployment(API_NAME, namespace, api_labels, int(cs.get("api_replicas", 2)), api_pod),
                manifests.service(API_NAME, namespace, api_labels, "api", API_PORT),
                manifests.pod_disruption_budget(API_NAME, namespace, api_labels),
                manifests.deployment(CONSOLE_NAME, namespace, console_labels, int(cs.get("console_replicas", 2)), console_pod),
                manifests.service(CONSOLE_NAME, namespace, console_labels, "console", CONSOLE_PORT),
                manifests.pod_disruption_budget(CONSOLE_NAME, namespace, console_labels),
            ],
            overwrite = True,
        )
        workloads.node.add_dependency(base_manifest)
        if encryption.manifest is not None:
            workloads.node.add_dependency(encryption.manifest)


        #####################################################
        ##### CERTIFICATE + INGRESS #########################
        #####################################################

        zone = route53.HostedZone.from_lookup(self, "HostedZone", domain_name=cs["hosted_zone_domain_name"])

        certificate = acm.Certificate(
            self, "WildcardCertificate",
            domain_name = f"*.{domain}",
            subject_alternative_names = [domain],
            validation = acm.CertificateValidation.from_dns(zone),
        )

        alb_tags = f"Project={cg['tags']['project']},Owner={cg['tags']['owner']}"
        ingresses = eks.KubernetesManifest(
            self, "Service_Ingresses",
            cluster = cluster,
            manifest = [
                manifests.alb_ingress(API_NAME, namespace, api_domain, API_NAME, "api",
                    certificate.certificate_arn, alb_security_group.security_group_id, alb_tags,
                    health_check_path="/api/status"),
                manifests.alb_ingress(CONSOLE_NAME, namespace, console_domain, CONSOLE_NAME, "console",
                    certificate.certificate_arn, alb_security_group.security_group_id, alb_tags),
            ],
            overwrite = True,
        )
        ingresses.node.add_dependency(workloads)


        #####################################################
        ##### DNS ###########################################
        #####################################################

        for name, record_domain in ((API_NAME, api_domain), (CONSOLE_NAME, console_domain)):
            # To CamelCase
            id_prefix = "".join([part.capitalize() for part in name.split('-')])

            hostname = eks.KubernetesObjectValue(
                self, f"{id_prefix}_LoadBalancer",
                cluster = cluster,
                object_type = "ingress",
                object_name = name,
                object_namespace = namespace,
                json_path = ".status.loadBalancer.ingress[0].hostname",
                timeout = cdk.Duration.minutes(10),
            )
            hostname.node.add_dependency(ingresses)

            route53.CnameRecord(
                self, f"{id_prefix}_DnsRecord",
                zone = zone,
                record_name = record_domain,
                domain_name = hostname.value,
                ttl = cdk.Duration.minutes(5),
            )

        self.service_url = f"https://{api_domain}"
        self.console_url = f"https://{console_domain}"

        cdk.CfnOutput(self, "ServiceUrl", value=self.service_url)
        cdk.CfnOutput(self, "ConsoleUrl", value=self.console_url)
