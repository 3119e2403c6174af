import pulumi
import pulumi_kubernetes as k8s
import pulumi_random as random

from selfhosted import byo

VOLUME_NAME = "encryptionservice"
SECRET_NAME = "pulumilocalkeys"
LOCAL_KEYS_PATH = f"/{VOLUME_NAME}/{SECRET_NAME}"


class EncryptionService(pulumi.ComponentResource):
    """Local key file the API encrypts stack secrets with.

    The key comes from ``encryption_key`` when given, otherwise a random
    32 character key is generated and kept in state. Either way it is stored
    in a Secret and mounted read-only into the API pod.
    """

    def __init__(self, name: str, common_name: str, namespace: pulumi.Input[str],
                 provider: k8s.Provider, encryption_key: pulumi.Input[str] = None,
                 opts: pulumi.ResourceOptions = None):
        super().__init__("selfhosted:kubernetes:EncryptionService", name, None, opts)

        key = byo.resolve_one(
            encryption_key,
            lambda: random.RandomString(
                f"{common_name}-encryption-key",
                length=32,
                special=False,
                opts=pulumi.ResourceOptions(parent=self, additional_secret_outputs=["result"]),
            ),
        )
        key_value = key.pick(lambda values: pulumi.Output.secret(values["value"]), lambda created: created.result)

        k8s.core.v1.Secret(
            f"{common_name}-local-keys",
            metadata=k8s.meta.v1.ObjectMetaArgs(namespace=namespace, name=SECRET_NAME),
            string_data={SECRET_NAME: key_value},
            opts=pulumi.ResourceOptions(provider=provider, parent=self),
        )

        self.env = k8s.core.v1.EnvVarArgs(name="PULUMI_LOCAL_KEYS", value=LOCAL_KEYS_PATH)
        self.volume = k8s.core.v1.VolumeArgs(
            name=VOLUME_NAME,
            secret=k8s.core.v1.SecretVolumeSourceArgs(secret_name=SECRET_NAME),
        )
        self.volume_mount = k8s.core.v1.VolumeMountArgs(
            name=VOLUME_NAME,
            mount_path=f"/{VOLUME_NAME}",
            read_only=True,
        )

        self.register_outputs({"local_keys_path": LOCAL_KEYS_PATH})
