"""Self-hosted service on GKE, storing blobs in GCS through the S3 interop API."""

import pulumi
import pulumi_kubernetes as k8s

from selfhosted.components import (
    DatabaseValues,
    EncryptionService,
    PulumiService,
    SecretsCollection,
    SecretValues,
    SmtpValues,
    SsoCertificate,
    validate_domains,
)
from selfhosted.components.pulumi_service import email_login_env
from selfhosted.components.secrets import (
    DEFAULT_RECAPTCHA_SECRET_KEY,
    DEFAULT_RECAPTCHA_SITE_KEY,
    DEFAULT_SMTP_FROM_ADDRESS,
)
from selfhosted.config import flag

COMMON_NAME = "pulumi-selfhosted"

# endpoint env var -> infrastructure output
BLOB_ENDPOINTS = {
    "PULUMI_POLICY_PACK_BLOB_STORAGE_ENDPOINT": "policyBucketName",
    "PULUMI_CHECKPOINT_BLOB_STORAGE_ENDPOINT": "checkpointBucketName",
    "PULUMI_CHECKPOINT_BLOB_STORAGE_ENDPOINT_V2": "checkpointV2BucketName",
    "PULUMI_SERVICE_METADATA_BLOB_STORAGE_ENDPOINT": "escBucketName",
}


def gcs_endpoint(bucket_name: pulumi.Input[str]) -> pulumi.Output[str]:
    return pulumi.Output.concat("s3://", bucket_name, "?endpoint=storage.googleapis.com:443&s3ForcePathStyle=true")


def program():
    config = pulumi.Config()

    api_domain = config.require("apiDomain")
    console_domain = config.require("consoleDomain")
    validate_domains(api_domain, console_domain)

    infrastructure = pulumi.StackReference(config.require("infrastructureStack"))
    cluster = pulumi.StackReference(config.require("kubernetesStack"))

    if not config.get("smtpServer"):
        pulumi.log.warn("SMTP is not configured, the service will launch without email enabled.")

    namespace = cluster.require_output("appNamespace")
    provider = k8s.Provider("k8s-provider", kubeconfig=cluster.require_output("kubeconfig"))

    secrets = SecretsCollection(
        f"{COMMON_NAME}-secrets",
        common_name=COMMON_NAME,
        namespace=namespace,
        provider=provider,
        values=SecretValues(
            license_key=config.require_secret("licenseKey"),
            api_tls_key=config.require_secret("apiTlsKey"),
            api_tls_cert=config.require_secret("apiTlsCert"),
            console_tls_key=config.require_secret("consoleTlsKey"),
            console_tls_cert=config.require_secret("consoleTlsCert"),
            database=DatabaseValues(
                host=infrastructure.require_output("dbHost"),
                connection_string=infrastructure.require_output("dbConnectionString"),
                login=infrastructure.require_output("dbLogin"),
                password=infrastructure.require_output("dbPassword"),
            ),
            storage_access_key_id=infrastructure.require_output("serviceAccountAccessKeyId"),
            storage_secret_access_key=infrastructure.require_output("serviceAccountSecretAccessKey"),
            search_endpoint=cluster.require_output("openSearchEndpoint"),
            search_user=cluster.require_output("openSearchUsername"),
            search_password=cluster.require_output("openSearchPassword"),
            smtp=SmtpValues(
                server=config.get("smtpServer") or "",
                username=config.get("smtpUsername") or "",
                password=config.get_secret("smtpPassword") or "",
                from_address=config.get("smtpFromAddress") or DEFAULT_SMTP_FROM_ADDRESS,
            ),
            recaptcha_site_key=config.get("recaptchaSiteKey") or DEFAULT_RECAPTCHA_SITE_KEY,
            recaptcha_secret_key=config.get_secret("recaptchaSecretKey") or DEFAULT_RECAPTCHA_SECRET_KEY,
        ),
    )

    sso = SsoCertificate(f"{COMMON_NAME}-sso-certificate", api_domain=api_domain, namespace=namespace, provider=provider)

    if config.get_secret("encryptionKey") is None:
        pulumi.log.info("No encryptionKey configured, a random local key will be generated.")
    encryption = EncryptionService(
        f"{COMMON_NAME}-local-key",
        common_name=COMMON_NAME,
        namespace=namespace,
        provider=provider,
        encryption_key=config.get_secret("encryptionKey"),
    )

    storage_env = [
        k8s.core.v1.EnvVarArgs(name=env_name, value=gcs_endpoint(infrastructure.require_output(output)))
        for env_name, output in BLOB_ENDPOINTS.items()
    ]
    # Required by the S3 client, any region works against GCS
    storage_env.append(k8s.core.v1.EnvVarArgs(name="AWS_REGION", value="us-east-1"))

    api_email_env, console_email_env = email_login_env(
        api_disable_login=flag(config.get("apiDisableEmailLogin")),
        api_disable_signup=flag(config.get("apiDisableEmailSignup")),
        console_hide_login=flag(config.get("consoleHideEmailLogin")),
        console_hide_signup=flag(config.get("consoleHideEmailSignup")),
    )

    service = PulumiService(
        COMMON_NAME,
        namespace=namespace,
        image_tag=config.require("imageTag"),
        api_domain=api_domain,
        console_domain=console_domain,
        secrets=secrets,
        sso=sso,
        provider=provider,
        extra_api_env=[encryption.env] + storage_env + api_email_env,
        extra_console_env=console_email_env,
        api_volumes=[encryption.volume],
        api_volume_mounts=[encryption.volume_mount],
        api_replicas=config.get_int("apiReplicas") or 1,
        console_replicas=config.get_int("consoleReplicas") or 1,
        saml_sso_enabled=flag(config.get("samlSsoEnabled")),
        ingress_allow_list=config.get("ingressAllowList"),
    )

    pulumi.export("consoleUrl", service.console_url)
    pulumi.export("apiUrl", service.api_url)
    pulumi.export("namespace", namespace)
