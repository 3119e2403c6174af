from typing import List, Optional

import pulumi
import pulumi_kubernetes as k8s

from selfhosted.components.secrets import SecretsCollection, SsoCertificate, env_from_secret
from selfhosted.config import ConfigError

API_NAME = "pulumi-api"
CONSOLE_NAME = "pulumi-console"
API_PORT = 8080
CONSOLE_PORT = 3000
SERVICE_PORT = 80

API_RESOURCES = {"cpu": "2048m", "memory": "1024Mi"}
CONSOLE_RESOURCES = {"cpu": "1024m", "memory": "512Mi"}
MIGRATION_RESOURCES = {"cpu": "128m", "memory": "128Mi"}


def validate_domains(api_domain: str, console_domain: str) -> None:
    if not api_domain.startswith("api."):
        raise ConfigError("Configuration value [apiDomain] must start with [api.].")
    if not console_domain.startswith("app."):
        raise ConfigError("Configuration value [consoleDomain] must start with [app.].")


def ingress_annotations(allow_list: Optional[str] = None) -> dict:
    annotations = {
        "nginx.ingress.kubernetes.io/ssl-redirect": "true",
        "nginx.ingress.kubernetes.io/proxy-body-size": "50m",
    }
    if allow_list:
        annotations["nginx.ingress.kubernetes.io/whitelist-source-range"] = allow_list
    return annotations


def email_login_env(api_disable_login=False, api_disable_signup=False,
                    console_hide_login=False, console_hide_signup=False):
    """Switches are only ever set to "true"; false leaves the variable out"""
    api = [
        k8s.core.v1.EnvVarArgs(name=name, value="true")
        for name, enabled in (("PULUMI_DISABLE_EMAIL_LOGIN", api_disable_login),
                              ("PULUMI_DISABLE_EMAIL_SIGNUP", api_disable_signup))
        if enabled
    ]
    console = [
        k8s.core.v1.EnvVarArgs(name=name, value="true")
        for name, enabled in (("PULUMI_HIDE_EMAIL_LOGIN", console_hide_login),
                              ("PULUMI_HIDE_EMAIL_SIGNUP", console_hide_signup))
        if enabled
    ]
    return api, console


def _requests(values: dict) -> k8s.core.v1.ResourceRequirementsArgs:
    return k8s.core.v1.ResourceRequirementsArgs(requests=values)


class PulumiService(pulumi.ComponentResource):
    """API and console deployments behind a single nginx ingress.

    Cloud specific settings (blob storage endpoints, key management) arrive
    as ``extra_api_env``, ``api_volumes`` and ``api_volume_mounts``.
    """

    def __init__(self, name: str, *,
                 namespace: pulumi.Input[str],
                 image_tag: str,
                 api_domain: str,
                 console_domain: str,
                 secrets: SecretsCollection,
                 sso: SsoCertificate,
                 provider: k8s.Provider,
                 extra_api_env: List[k8s.core.v1.EnvVarArgs] = None,
                 extra_console_env: List[k8s.core.v1.EnvVarArgs] = None,
                 api_volumes: List[k8s.core.v1.VolumeArgs] = None,
                 api_volume_mounts: List[k8s.core.v1.VolumeMountArgs] = None,
                 api_replicas: int = 1,
                 console_replicas: int = 1,
                 saml_sso_enabled: bool = False,
                 ingress_allow_list: Optional[str] = None,
                 opts: pulumi.ResourceOptions = None):
        super().__init__("selfhosted:kubernetes:PulumiService", name, None, opts)

        child_opts = pulumi.ResourceOptions(provider=provider, parent=self)
        api_labels = {"app": API_NAME}
        console_labels = {"app": CONSOLE_NAME}

        db = secrets.db_conn
        api_env = [
            env_from_secret("PULUMI_LICENSE_KEY", secrets.license_key, "key"),
            env_from_secret("PULUMI_DATABASE_ENDPOINT", db, "connectionString"),
            env_from_secret("PULUMI_DATABASE_USER_NAME", db, "username"),
            env_from_secret("PULUMI_DATABASE_USER_PASSWORD", db, "password"),
            env_from_secret("SAML_CERTIFICATE_PUBLIC_KEY", sso.saml_sso_secret, "pubkey"),
            env_from_secret("SAML_CERTIFICATE_PRIVATE_KEY", sso.saml_sso_secret, "privatekey"),
            env_from_secret("SMTP_SERVER", secrets.smtp, "server"),
            env_from_secret("SMTP_USERNAME", secrets.smtp, "username"),
            env_from_secret("SMTP_PASSWORD", secrets.smtp, "password"),
            env_from_secret("SMTP_GENERIC_SENDER", secrets.smtp, "fromaddress"),
            env_from_secret("RECAPTCHA_SECRET_KEY", secrets.recaptcha, "secretKey"),
            env_from_secret("LOGIN_RECAPTCHA_SECRET_KEY", secrets.recaptcha, "secretKey"),
            env_from_secret("PULUMI_SEARCH_PASSWORD", secrets.search, "password"),
            env_from_secret("PULUMI_SEARCH_USER", secrets.search, "username"),
            env_from_secret("PULUMI_SEARCH_DOMAIN", secrets.search, "endpoint"),
            k8s.core.v1.EnvVarArgs(name="PULUMI_ENTERPRISE", value="true"),
            k8s.core.v1.EnvVarArgs(name="PULUMI_API_DOMAIN", value=api_domain),
            k8s.core.v1.EnvVarArgs(name="PULUMI_CONSOLE_DOMAIN", value=console_domain),
            k8s.core.v1.EnvVarArgs(name="PULUMI_DATABASE_NAME", value="pulumi"),
        ]
        if secrets.storage is not None:
            api_env += [
                env_from_secret("AWS_ACCESS_KEY_ID", secrets.storage, "accessKeyId"),
                env_from_secret("AWS_SECRET_ACCESS_KEY", secrets.storage, "secretAccessKey"),
            ]
        api_env += extra_api_env or []

        self.api_deployment = k8s.apps.v1.Deployment(
            f"{name}-{API_NAME}",
            metadata=k8s.meta.v1.ObjectMetaArgs(namespace=namespace, name=f"{API_NAME}-deployment"),
            spec=k8s.apps.v1.DeploymentSpecArgs(
                selector=k8s.meta.v1.LabelSelectorArgs(match_labels=api_labels),
                replicas=api_replicas,
                template=k8s.core.v1.PodTemplateSpecArgs(
                    metadata=k8s.meta.v1.ObjectMetaArgs(labels=api_labels),
                    spec=k8s.core.v1.PodSpecArgs(
                        init_containers=[k8s.core.v1.ContainerArgs(
                            name="pulumi-migration",
                            image=f"pulumi/migrations:{image_tag}",
                            resources=_requests(MIGRATION_RESOURCES),
                            env=[
                                env_from_secret("PULUMI_DATABASE_ENDPOINT", db, "connectionString"),
                                env_from_secret("MYSQL_ROOT_USERNAME", db, "username"),
                                env_from_secret("MYSQL_ROOT_PASSWORD", db, "password"),
                                env_from_secret("PULUMI_DATABASE_PING_ENDPOINT", db, "host"),
                                k8s.core.v1.EnvVarArgs(name="RUN_MIGRATIONS_EXTERNALLY", value="true"),
                            ],
                        )],
                        volumes=api_volumes or [],
                        containers=[k8s.core.v1.ContainerArgs(
                            name=API_NAME,
                            image=f"pulumi/service:{image_tag}",
                            resources=_requests(API_RESOURCES),
                            ports=[k8s.core.v1.ContainerPortArgs(container_port=API_PORT, name="http")],
                            volume_mounts=api_volume_mounts or [],
                            env=api_env,
                        )],
                    ),
                ),
            ),
            opts=child_opts,
        )

        self.api_service = k8s.core.v1.Service(
            f"{name}-{API_NAME}",
            metadata=k8s.meta.v1.ObjectMetaArgs(namespace=namespace, name=f"{API_NAME}-service"),
            spec=k8s.core.v1.ServiceSpecArgs(
                ports=[k8s.core.v1.ServicePortArgs(port=SERVICE_PORT, target_port=API_PORT, name="http-port")],
                selector=api_labels,
            ),
            opts=pulumi.ResourceOptions(provider=provider, parent=self.api_deployment),
        )

        console_env = [
            k8s.core.v1.EnvVarArgs(name="PULUMI_CONSOLE_DOMAIN", value=console_domain),
            k8s.core.v1.EnvVarArgs(name="PULUMI_HOMEPAGE_DOMAIN", value=console_domain),
            k8s.core.v1.EnvVarArgs(name="SAML_SSO_ENABLED", value="true" if saml_sso_enabled else "false"),
            k8s.core.v1.EnvVarArgs(name="PULUMI_API", value=f"https://{api_domain}"),
            k8s.core.v1.EnvVarArgs(
                name="PULUMI_API_INTERNAL_ENDPOINT",
                value=pulumi.Output.concat("http://", self.api_service.metadata.name, ".", namespace, ":", str(SERVICE_PORT)),
            ),
            env_from_secret("RECAPTCHA_SITE_KEY", secrets.recaptcha, "siteKey"),
            env_from_secret("LOGIN_RECAPTCHA_SITE_KEY", secrets.recaptcha, "siteKey"),
        ] + (extra_console_env or [])

        self.console_deployment = k8s.apps.v1.Deployment(
            f"{name}-{CONSOLE_NAME}",
            metadata=k8s.meta.v1.ObjectMetaArgs(namespace=namespace, name=f"{CONSOLE_NAME}-deployment"),
            spec=k8s.apps.v1.DeploymentSpecArgs(
                selector=k8s.meta.v1.LabelSelectorArgs(match_labels=console_labels),
                replicas=console_replicas,
                template=k8s.core.v1.PodTemplateSpecArgs(
                    metadata=k8s.meta.v1.ObjectMetaArgs(labels=console_labels),
                    spec=k8s.core.v1.PodSpecArgs(
                        containers=[k8s.core.v1.ContainerArgs(
                            name=CONSOLE_NAME,
                            image=f"pulumi/console:{image_tag}",
                            resources=_requests(CONSOLE_RESOURCES),
                            ports=[k8s.core.v1.ContainerPortArgs(container_port=CONSOLE_PORT, name="http")],
                            env=console_env,
                        )],
                    ),
                ),
            ),
            opts=child_opts,
        )

        self.console_service = k8s.core.v1.Service(
            f"{name}-{CONSOLE_NAME}",
            metadata=k8s.meta.v1.ObjectMetaArgs(namespace=namespace, name=f"{CONSOLE_NAME}-service"),
            spec=k8s.core.v1.ServiceSpecArgs(
                ports=[k8s.core.v1.ServicePortArgs(port=SERVICE_PORT, target_port=CONSOLE_PORT, name="http-port")],
                selector=console_labels,
            ),
            opts=pulumi.ResourceOptions(provider=provider, parent=self.console_deployment),
        )

        def rule(host, service):
            return k8s.networking.v1.IngressRuleArgs(
                host=host,
                http=k8s.networking.v1.HTTPIngressRuleValueArgs(paths=[
                    k8s.networking.v1.HTTPIngressPathArgs(
                        path="/",
                        path_type="Prefix",
                        backend=k8s.networking.v1.IngressBackendArgs(
                            service=k8s.networking.v1.IngressServiceBackendArgs(
                                name=service.metadata.name,
                                port=k8s.networking.v1.ServiceBackendPortArgs(number=SERVICE_PORT),
                            ),
                        ),
                    ),
                ]),
            )

        self.ingress = k8s.networking.v1.Ingress(
            f"{name}-ingress",
            metadata=k8s.meta.v1.ObjectMetaArgs(
                name="pulumi-service-ingress",
                namespace=namespace,
                annotations=ingress_annotations(ingress_allow_list),
            ),
            spec=k8s.networking.v1.IngressSpecArgs(
                ingress_class_name="nginx",
                tls=[
                    k8s.networking.v1.IngressTLSArgs(hosts=[console_domain], secret_name=secrets.console_certificate.metadata.name),
                    k8s.networking.v1.IngressTLSArgs(hosts=[api_domain], secret_name=secrets.api_certificate.metadata.name),
                ],
                rules=[rule(api_domain, self.api_service), rule(console_domain, self.console_service)],
            ),
            opts=pulumi.ResourceOptions(provider=provider, parent=self,
                                        depends_on=[self.api_service, self.console_service]),
        )

        self.api_url = f"https://{api_domain}"
        self.console_url = f"https://{console_domain}"

        self.register_outputs({
            "api_url": self.api_url,
            "console_url": self.console_url,
        })
