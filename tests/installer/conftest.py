import pytest


@pytest.fixture
def installer_config(tmp_path) -> dict:
    """Return a minimal valid GKE installer configuration."""
    license_file = tmp_path / "license.txt"
    license_file.write_text("license-key-value\n")
    return {
        "platform": "gke",
        "organization": "acme",
        "licenseFilePath": str(license_file),
        "imageTag": "20240701-1234",
        "apiDomain": "api.example.com",
        "consoleDomain": "app.example.com",
        "gcp": {"project": "acme-project", "region": "us-east1"},
        "infrastructure": {"stackName": "dev", "dbInstanceType": "db-n1-standard-1"},
        "kubernetes": {"stackName": "dev-k8s"},
        "application": {"stackName": "dev-app", "apiReplicas": 2},
    }
