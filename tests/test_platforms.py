"""Unit tests for GKE and AKS helpers that need no cloud calls."""

import base64
from types import SimpleNamespace

from selfhosted.aks.application import AZURE_ENV, BLOB_ENDPOINTS as AKS_BLOB_ENDPOINTS
from selfhosted.aks.infrastructure import CONTAINERS, key_version
from selfhosted.aks.kubernetes import decode_kubeconfig
from selfhosted.gke.application import BLOB_ENDPOINTS as GKE_BLOB_ENDPOINTS
from selfhosted.gke.infrastructure import BUCKETS, service_account_id
from selfhosted.gke.kubernetes import kubeconfig


class TestGke:
    """Tests for GKE helpers."""

    def test_service_account_id_short_name(self):
        assert service_account_id("pulumiselfhosted-dev") == "pulumiselfhosted-dev-sa"

    def test_service_account_id_truncated(self):
        account_id = service_account_id("pulumiselfhosted-production-east")

        assert len(account_id) <= 30
        assert not account_id.endswith("-")

    def test_service_account_id_lowercase(self):
        assert service_account_id("PulumiSelfHosted-Dev") == "pulumiselfhosted-dev-sa"

    def test_kubeconfig_uses_auth_plugin(self):
        config = kubeconfig("proj_us-east1_cluster", "34.1.2.3", "Q0E=")

        assert "server: https://34.1.2.3" in config
        assert "certificate-authority-data: Q0E=" in config
        assert "command: gke-gcloud-auth-plugin" in config
        assert "current-context: proj_us-east1_cluster" in config

    def test_every_bucket_has_an_endpoint(self):
        outputs = {f"{key}BucketName" for key in BUCKETS}
        assert set(GKE_BLOB_ENDPOINTS.values()) == outputs


class TestAks:
    """Tests for AKS helpers."""

    def test_key_version(self):
        uri = "https://pulumivault1234.vault.azure.net"
        versioned = f"{uri}/keys/selfhosted-key/0123abcd"

        assert key_version(uri, "selfhosted-key", versioned) == "0123abcd"

    def test_decode_kubeconfig(self):
        encoded = base64.b64encode(b"apiVersion: v1\n").decode()
        credentials = SimpleNamespace(kubeconfigs=[SimpleNamespace(value=encoded)])

        assert decode_kubeconfig(credentials) == "apiVersion: v1\n"

    def test_every_container_has_an_endpoint(self):
        outputs = {f"{key}BlobName" for key in CONTAINERS}
        assert set(AKS_BLOB_ENDPOINTS.values()) == outputs

    def test_key_vault_settings_passed(self):
        assert {"PULUMI_AZURE_KV_URI", "PULUMI_AZURE_KV_KEY_NAME", "PULUMI_AZURE_KV_KEY_VERSION"} <= set(AZURE_ENV)
