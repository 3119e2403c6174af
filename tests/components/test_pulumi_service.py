"""Unit tests for the service component and its helpers."""

import pulumi_kubernetes as k8s
import pytest

from selfhosted.components import (
    DatabaseValues,
    PulumiService,
    SecretsCollection,
    SecretValues,
    SsoCertificate,
    validate_domains,
)
from selfhosted.components.pulumi_service import email_login_env, ingress_annotations
from selfhosted.config import ConfigError


def secret_values(**overrides) -> SecretValues:
    values = dict(
        license_key="license",
        api_tls_key="api-key",
        api_tls_cert="api-cert",
        console_tls_key="console-key",
        console_tls_cert="console-cert",
        database=DatabaseValues(host="db", connection_string="db:3306", login="admin", password="pw"),
        search_endpoint="https://search:9200",
        search_user="admin",
        search_password="search-pw",
    )
    values.update(overrides)
    return SecretValues(**values)


class TestValidateDomains:
    """Tests for domain prefix checks."""

    def test_valid(self):
        validate_domains("api.example.com", "app.example.com")

    def test_bad_api_domain(self):
        with pytest.raises(ConfigError, match=r"\[apiDomain\] must start with \[api\.\]"):
            validate_domains("service.example.com", "app.example.com")

    def test_bad_console_domain(self):
        with pytest.raises(ConfigError, match=r"\[consoleDomain\] must start with \[app\.\]"):
            validate_domains("api.example.com", "console.example.com")


class TestIngressAnnotations:
    """Tests for nginx ingress annotations."""

    def test_defaults(self):
        annotations = ingress_annotations()

        assert annotations["nginx.ingress.kubernetes.io/ssl-redirect"] == "true"
        assert annotations["nginx.ingress.kubernetes.io/proxy-body-size"] == "50m"
        assert "nginx.ingress.kubernetes.io/whitelist-source-range" not in annotations

    def test_allow_list(self):
        annotations = ingress_annotations("10.0.0.0/8,192.168.0.0/16")
        assert annotations["nginx.ingress.kubernetes.io/whitelist-source-range"] == "10.0.0.0/8,192.168.0.0/16"


class TestEmailLoginEnv:
    """Tests for email login switches."""

    def test_nothing_enabled(self):
        assert email_login_env() == ([], [])

    def test_only_enabled_switches_emitted(self):
        api, console = email_login_env(api_disable_signup=True, console_hide_login=True)

        assert [(e.name, e.value) for e in api] == [("PULUMI_DISABLE_EMAIL_SIGNUP", "true")]
        assert [(e.name, e.value) for e in console] == [("PULUMI_HIDE_EMAIL_LOGIN", "true")]


class TestSecretsCollection:
    """Tests for the Kubernetes secrets the service reads."""

    def test_without_storage_credentials(self, mocks, run_pulumi):
        def program():
            provider = k8s.Provider("provider", kubeconfig="{}")
            secrets = SecretsCollection("s", common_name="ps", namespace="apps", values=secret_values(), provider=provider)
            assert secrets.storage is None

        run_pulumi(program)

        assert mocks.types().count("kubernetes:core/v1:Secret") == 7

    def test_with_storage_credentials(self, mocks, run_pulumi):
        def program():
            provider = k8s.Provider("provider", kubeconfig="{}")
            values = secret_values(storage_access_key_id="AKID", storage_secret_access_key="SECRET")
            secrets = SecretsCollection("s", common_name="ps", namespace="apps", values=values, provider=provider)
            assert secrets.storage is not None

        run_pulumi(program)

        assert mocks.types().count("kubernetes:core/v1:Secret") == 8


class TestSsoCertificate:
    """Tests for the SAML signing certificate."""

    def test_key_and_certificate(self, mocks, run_pulumi):
        def program():
            provider = k8s.Provider("provider", kubeconfig="{}")
            SsoCertificate("sso", api_domain="api.example.com", namespace="apps", provider=provider)

        run_pulumi(program)

        key = next(r for r in mocks.resources if r.typ == "tls:index/privateKey:PrivateKey")
        cert = next(r for r in mocks.resources if r.typ == "tls:index/selfSignedCert:SelfSignedCert")
        assert key.inputs["rsaBits"] == 2048
        assert cert.inputs["validityPeriodHours"] == 400 * 24


class TestPulumiService:
    """Tests for the API and console workloads."""

    def test_workloads_and_ingress(self, mocks, run_pulumi):
        def program():
            provider = k8s.Provider("provider", kubeconfig="{}")
            secrets = SecretsCollection("s", common_name="ps", namespace="apps", values=secret_values(), provider=provider)
            sso = SsoCertificate("sso", api_domain="api.example.com", namespace="apps", provider=provider)
            service = PulumiService(
                "ps",
                namespace="apps",
                image_tag="20240701",
                api_domain="api.example.com",
                console_domain="app.example.com",
                secrets=secrets,
                sso=sso,
                provider=provider,
                ingress_allow_list="10.0.0.0/8",
            )
            assert service.api_url == "https://api.example.com"
            assert service.console_url == "https://app.example.com"

        run_pulumi(program)

        types = mocks.types()
        assert types.count("kubernetes:apps/v1:Deployment") == 2
        assert types.count("kubernetes:core/v1:Service") == 2
        ingress = next(r for r in mocks.resources if r.typ == "kubernetes:networking.k8s.io/v1:Ingress")
        annotations = ingress.inputs["metadata"]["annotations"]
        assert annotations["nginx.ingress.kubernetes.io/whitelist-source-range"] == "10.0.0.0/8"
