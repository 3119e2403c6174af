"""
Pulumi runtime mocks shared by the component tests.

Every registered resource is recorded in ``MOCKS.resources`` so tests can
check what a component declared.
"""

import pulumi
import pytest


class SelfHostedMocks(pulumi.runtime.Mocks):

    def __init__(self):
        self.resources = []

    def new_resource(self, args: pulumi.runtime.MockResourceArgs):
        self.resources.append(args)
        outputs = dict(args.inputs)
        if args.typ == "kubernetes:helm.sh/v3:Release":
            outputs["status"] = {"name": args.inputs.get("name", args.name), "namespace": "pulumi-selfhosted-ingress"}
        if args.typ == "kubernetes:core/v1:Service":
            outputs["status"] = {"loadBalancer": {"ingress": [{"ip": "203.0.113.10"}]}}
        if args.typ == "random:index/randomString:RandomString":
            outputs["result"] = "r" * int(args.inputs.get("length", 32))
        if args.typ == "tls:index/privateKey:PrivateKey":
            outputs["privateKeyPem"] = "PRIVATE KEY"
        if args.typ == "tls:index/selfSignedCert:SelfSignedCert":
            outputs["certPem"] = "CERTIFICATE"
        return [f"{args.name}_id", outputs]

    def call(self, args: pulumi.runtime.MockCallArgs):
        return {}

    def types(self):
        return [resource.typ for resource in self.resources]


def run(fn):
    """Run fn inside the mocked runtime and wait for every registration."""
    pulumi.runtime.test(fn)()


MOCKS = SelfHostedMocks()
pulumi.runtime.set_mocks(MOCKS, preview=False)


@pytest.fixture(autouse=True)
def reset_resources():
    MOCKS.resources.clear()
    yield


@pytest.fixture
def mocks() -> SelfHostedMocks:
    return MOCKS



@pytest.fixture
def run_pulumi():
    return run
