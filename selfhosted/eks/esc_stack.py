import aws_cdk as cdk

from aws_cdk import(
    aws_s3 as s3
)

from selfhosted import byo


class EscStack(cdk.Stack):

    def __init__(self, scope: cdk.App, construct_id: str, config: dict, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        cg = config["global"]
        cs = config.get("esc") or {}

        #####################################################
        ##### TAGS ##########################################
        #####################################################

        cdk.Tags.of(self).add("Owner", cg["tags"]["owner"])
        cdk.Tags.of(self).add("Project", cg["tags"]["project"])
        cdk.Tags.of(self).add("Environment", cg["tags"]["env"])
        cdk.Tags.of(self).add("PrimaryContact", cg["tags"]["contact"])


        #####################################################
        ##### S3 ESC Bucket #################################
        #####################################################

        bucket = byo.resolve_one(
            cs.get("bucket_name"),
            lambda: s3.Bucket(self, "EscBucket",
                removal_policy = cdk.RemovalPolicy.RETAIN,
                encryption = s3.BucketEncryption.S3_MANAGED,
                block_public_access = s3.BlockPublicAccess.BLOCK_ALL,
                enforce_ssl = True,
            ),
        )
        self.bucket_name = bucket.pick(lambda values: values["value"], lambda created: created.bucket_name)

        cdk.CfnOutput(self, "EscBucketName", value=self.bucket_name)
