import aws_cdk as cdk

from aws_cdk import(
    aws_s3 as s3
)

from selfhosted import byo

# config key -> bucket suffix
STATE_BUCKETS = {
    "checkpoints_bucket_name": "checkpoints",
    "checkpoints_v2_bucket_name": "checkpoints-v2",
    "policy_packs_bucket_name": "policypacks",
    "events_bucket_name": "events",
    "events_v2_bucket_name": "events-v2",
}


class StatePoliciesStack(cdk.Stack):
    """Buckets holding checkpoints, policy packs and engine events."""

    def __init__(self, scope: cdk.App, construct_id: str, config: dict, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        cg = config["global"]
        cs = config.get("state_policies") or {}

        #####################################################
        ##### TAGS ##########################################
        #####################################################

        cdk.Tags.of(self).add("Owner", cg["tags"]["owner"])
        cdk.Tags.of(self).add("Project", cg["tags"]["project"])
        cdk.Tags.of(self).add("Environment", cg["tags"]["env"])
        cdk.Tags.of(self).add("PrimaryContact", cg["tags"]["contact"])


        #####################################################
        ##### S3 State Buckets ##############################
        #####################################################

        self.bucket_names = {}
        for key, suffix in STATE_BUCKETS.items():
            bucket = byo.resolve_one(cs.get(key), lambda suffix=suffix: self._create_bucket(suffix))
            self.bucket_names[key] = bucket.pick(
                lambda values: values["value"],
                lambda created: created.bucket_name,
            )

            # To CamelCase
            output_id = "".join([part.capitalize() for part in key.split('_')])
            cdk.CfnOutput(self, output_id, value=self.bucket_names[key])

    def _create_bucket(self, suffix):
        construct_id = "".join([part.capitalize() for part in suffix.split('-')]) + "Bucket"
        return s3.Bucket(self, construct_id,
            removal_policy = cdk.RemovalPolicy.RETAIN,
            encryption = s3.BucketEncryption.S3_MANAGED,
            block_public_access = s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl = True,
        )
