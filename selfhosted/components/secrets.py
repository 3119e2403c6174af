import base64
import datetime
from dataclasses import dataclass, field
from typing import Optional

import pulumi
import pulumi_kubernetes as k8s
import pulumi_tls as tls

DEFAULT_RECAPTCHA_SITE_KEY = "6LeIxAcTAAAAAJcZVRqyHh71UMIEGNQ_MXjiZKhI"
DEFAULT_RECAPTCHA_SECRET_KEY = "6LeIxAcTAAAAAGG-vFI1TnRWxMZNFuojJ4WifJWe"
DEFAULT_SMTP_FROM_ADDRESS = "message@pulumi.com"


def env_from_secret(env_name: str, secret: k8s.core.v1.Secret, key: str) -> k8s.core.v1.EnvVarArgs:
    return k8s.core.v1.EnvVarArgs(
        name=env_name,
        value_from=k8s.core.v1.EnvVarSourceArgs(
            secret_key_ref=k8s.core.v1.SecretKeySelectorArgs(name=secret.metadata.name, key=key),
        ),
    )


def b64(value: pulumi.Input[str]) -> pulumi.Output[str]:
    return pulumi.Output.from_input(value).apply(lambda v: base64.b64encode(v.encode()).decode())


@dataclass
class DatabaseValues:
    host: pulumi.Input[str]
    connection_string: pulumi.Input[str]
    login: pulumi.Input[str]
    password: pulumi.Input[str]
    server_name: Optional[pulumi.Input[str]] = None


@dataclass
class SmtpValues:
    server: pulumi.Input[str] = ""
    username: pulumi.Input[str] = ""
    password: pulumi.Input[str] = ""
    from_address: pulumi.Input[str] = DEFAULT_SMTP_FROM_ADDRESS


@dataclass
class SecretValues:
    license_key: pulumi.Input[str]
    api_tls_key: pulumi.Input[str]
    api_tls_cert: pulumi.Input[str]
    console_tls_key: pulumi.Input[str]
    console_tls_cert: pulumi.Input[str]
    database: DatabaseValues
    search_endpoint: pulumi.Input[str]
    search_user: pulumi.Input[str]
    search_password: pulumi.Input[str]
    storage_access_key_id: Optional[pulumi.Input[str]] = None
    storage_secret_access_key: Optional[pulumi.Input[str]] = None
    smtp: SmtpValues = field(default_factory=SmtpValues)
    recaptcha_site_key: pulumi.Input[str] = DEFAULT_RECAPTCHA_SITE_KEY
    recaptcha_secret_key: pulumi.Input[str] = DEFAULT_RECAPTCHA_SECRET_KEY


class SecretsCollection(pulumi.ComponentResource):
    """Every Kubernetes Secret the API and console read their settings from."""

    def __init__(self, name: str, common_name: str, namespace: pulumi.Input[str],
                 values: SecretValues, provider: k8s.Provider, opts: pulumi.ResourceOptions = None):
        super().__init__("selfhosted:kubernetes:SecretsCollection", name, None, opts)

        def make(suffix, string_data=None, data=None):
            return k8s.core.v1.Secret(
                f"{common_name}-{suffix}",
                metadata=k8s.meta.v1.ObjectMetaArgs(namespace=namespace),
                string_data=string_data,
                data=data,
                opts=pulumi.ResourceOptions(provider=provider, parent=self),
            )

        self.license_key = make("license-key", {"key": values.license_key})
        self.api_certificate = make("api-tls", data={
            "tls.key": b64(values.api_tls_key),
            "tls.crt": b64(values.api_tls_cert),
        })
        self.console_certificate = make("console-tls", data={
            "tls.key": b64(values.console_tls_key),
            "tls.crt": b64(values.console_tls_cert),
        })

        db = values.database
        username = db.login
        if db.server_name is not None:
            username = pulumi.Output.concat(db.login, "@", db.server_name)
        self.db_conn = make("mysql-db-conn", {
            "host": db.host,
            "connectionString": db.connection_string,
            "username": username,
            "password": db.password,
        })

        self.storage = None
        if values.storage_access_key_id is not None:
            self.storage = make("storage-secret", {
                "accessKeyId": values.storage_access_key_id,
                "secretAccessKey": values.storage_secret_access_key,
            })

        self.smtp = make("smtp-secret", {
            "server": values.smtp.server,
            "username": values.smtp.username,
            "password": values.smtp.password,
            "fromaddress": values.smtp.from_address,
        })
        self.recaptcha = make("recaptcha-secret", {
            "secretKey": values.recaptcha_secret_key,
            "siteKey": values.recaptcha_site_key,
        })
        self.search = make("opensearch-secret", {
            "endpoint": values.search_endpoint,
            "username": values.search_user,
            "password": values.search_password,
        })

        self.register_outputs({
            "license_key": self.license_key.metadata.name,
            "db_conn": self.db_conn.metadata.name,
        })


class SsoCertificate(pulumi.ComponentResource):
    """Self-signed signing certificate for SAML SSO.

    Resource names carry the current year so a new key pair is issued every
    year, before the 400 day validity runs out.
    """

    def __init__(self, name: str, api_domain: pulumi.Input[str], namespace: pulumi.Input[str],
                 provider: k8s.Provider, opts: pulumi.ResourceOptions = None):
        super().__init__("selfhosted:kubernetes:SsoCertificate", name, None, opts)

        year = datetime.date.today().year

        private_key = tls.PrivateKey(
            f"{name}-sso-key-{year}",
            algorithm="RSA",
            rsa_bits=2048,
            opts=pulumi.ResourceOptions(parent=self),
        )
        certificate = tls.SelfSignedCert(
            f"{name}-sso-cert-{year}",
            allowed_uses=["cert_signing"],
            private_key_pem=private_key.private_key_pem,
            subject=tls.SelfSignedCertSubjectArgs(common_name=api_domain),
            validity_period_hours=400 * 24,
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.saml_sso_secret = k8s.core.v1.Secret(
            f"{name}-saml-sso",
            metadata=k8s.meta.v1.ObjectMetaArgs(namespace=namespace),
            string_data={
                "pubkey": certificate.cert_pem,
                "privatekey": private_key.private_key_pem,
            },
            opts=pulumi.ResourceOptions(provider=provider, parent=self),
        )

        self.register_outputs({"saml_sso_secret": self.saml_sso_secret.metadata.name})
