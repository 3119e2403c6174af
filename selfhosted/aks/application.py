"""Self-hosted service on AKS, storing blobs in Azure Storage and keys in Key Vault."""

import pulumi
import pulumi_kubernetes as k8s

from selfhosted.components import (
    DatabaseValues,
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

BLOB_ENDPOINTS = {
    "PULUMI_POLICY_PACK_BLOB_STORAGE_ENDPOINT": "policyBlobName",
    "PULUMI_CHECKPOINT_BLOB_STORAGE_ENDPOINT": "checkpointBlobName",
    "PULUMI_CHECKPOINT_BLOB_STORAGE_ENDPOINT_V2": "checkpointV2BlobName",
    "PULUMI_SERVICE_METADATA_BLOB_STORAGE_ENDPOINT": "escBlobName",
}

# env var -> infrastructure output
AZURE_ENV = {
    "AZURE_CLIENT_ID": "adApplicationId",
    "AZURE_CLIENT_SECRET": "adApplicationSecret",
    "AZURE_TENANT_ID": "tenantId",
    "AZURE_SUBSCRIPTION_ID": "subscriptionId",
    "AZURE_STORAGE_ACCOUNT": "storageAccountName",
    "AZURE_STORAGE_KEY": "storagePrimaryKey",
    "PULUMI_AZURE_KV_URI": "keyvaultUri",
    "PULUMI_AZURE_KV_KEY_NAME": "keyvaultKeyName",
    "PULUMI_AZURE_KV_KEY_VERSION": "keyvaultKeyVersion",
}


def azure_env(infrastructure: pulumi.StackReference) -> list:
    env = [
        k8s.core.v1.EnvVarArgs(name=name, value=infrastructure.require_output(output))
        for name, output in AZURE_ENV.items()
    ]
    env += [
        k8s.core.v1.EnvVarArgs(
            name=name,
            value=pulumi.Output.concat("azblob://", infrastructure.require_output(output)),
        )
        for name, output in BLOB_ENDPOINTS.items()
    ]
    return env


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
                host=infrastructure.require_output("dbConnectionString"),
                connection_string=infrastructure.require_output("dbConnectionString"),
                login=infrastructure.require_output("dbLogin"),
                password=infrastructure.require_output("dbPassword"),
            ),
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
        extra_api_env=azure_env(infrastructure) + api_email_env,
        extra_console_env=console_email_env,
        api_replicas=config.get_int("apiReplicas") or 1,
        console_replicas=config.get_int("consoleReplicas") or 1,
        saml_sso_enabled=flag(config.get("samlSsoEnabled")),
        ingress_allow_list=config.get("ingressAllowList"),
    )

    pulumi.export("consoleUrl", service.console_url)
    pulumi.export("apiUrl", service.api_url)
    pulumi.export("namespace", namespace)
