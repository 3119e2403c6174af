"""
Pulumi components shared by the GKE and AKS programs.

- **NginxIngress**: ingress-nginx controller and its external IP.
- **OpenSearch**: in-cluster search backend.
- **SecretsCollection** / **SsoCertificate**: Kubernetes secrets for the service.
- **EncryptionService**: local key file mounted into the API.
- **PulumiService**: API and console deployments, services and ingress.
"""

from selfhosted.components.encryption_service import EncryptionService
from selfhosted.components.nginx_ingress import NginxIngress
from selfhosted.components.opensearch import OpenSearch
from selfhosted.components.pulumi_service import PulumiService, validate_domains
from selfhosted.components.secrets import (
    DatabaseValues,
    SecretsCollection,
    SecretValues,
    SmtpValues,
    SsoCertificate,
    env_from_secret,
)

__all__ = [
    "DatabaseValues",
    "EncryptionService",
    "NginxIngress",
    "OpenSearch",
    "PulumiService",
    "SecretValues",
    "SecretsCollection",
    "SmtpValues",
    "SsoCertificate",
    "env_from_secret",
    "validate_domains",
]
