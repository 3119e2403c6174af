from aws_cdk import(
    aws_eks as eks,
)
from constructs import Construct

from selfhosted.config import ConfigError
from selfhosted.eks import manifests

VOLUME_NAME = "encryptionservice"
SECRET_NAME = "pulumilocalkeys"


def check_encryption_settings(aws_kms_key_arn, encryption_key) -> None:
    if not aws_kms_key_arn and not encryption_key:
        raise ConfigError("Either an AWS KMS key ARN or a local encryption key must be provided.")


class EncryptionService(Construct):
    """Key material the API uses to encrypt stack secrets.

    A KMS key ARN is passed straight through as ``PULUMI_KMS_KEY``. Without
    one, the local key is stored in a Secret and mounted read-only into the
    API pod, with ``PULUMI_LOCAL_KEYS`` pointing at the file.
    """

    def __init__(self, scope: Construct, construct_id: str, *,
                 cluster: eks.ICluster,
                 namespace: str,
                 aws_kms_key_arn: str = None,
                 encryption_key=None) -> None:
        super().__init__(scope, construct_id)

        check_encryption_settings(aws_kms_key_arn, encryption_key)

        self.manifest = None
        if aws_kms_key_arn:
            self.env = {"name": "PULUMI_KMS_KEY", "value": aws_kms_key_arn}
            self.volumes = []
            self.volume_mounts = []
            return

        self.env = {"name": "PULUMI_LOCAL_KEYS", "value": f"/{VOLUME_NAME}/{SECRET_NAME}"}
        self.manifest = eks.KubernetesManifest(
            self, "LocalKeys",
            cluster = cluster,
            manifest = [manifests.secret(SECRET_NAME, namespace, {SECRET_NAME: encryption_key})],
            overwrite = True,
        )
        self.volumes = [{"name": VOLUME_NAME, "secret": {"secretName": SECRET_NAME}}]
        self.volume_mounts = [{"name": VOLUME_NAME, "mountPath": f"/{VOLUME_NAME}", "readOnly": True}]
