"""
Static website on AWS: buckets, origin access identity, certificate,
CloudFront distribution, Route 53 aliases and content upload.

This component declares the website blueprint (see ``components.blueprint``)
and runs the planner over it with an ``AwsBackend`` whose resources are
parented to the component. The planner fixes the declaration order and
threads live attributes between nodes; the Pulumi engine then creates,
updates or leaves each resource alone based on its own state.

If any node fails to declare, the whole program fails with the rendered
plan so the failing node and the dependents it blocked are visible in the
update output.
"""

import pulumi

from components.aws import AwsBackend
from components.blueprint import build_blueprint
from planner import Planner

ID: str = "staticsite:aws:StaticWebsite"


class StaticWebsite(pulumi.ComponentResource):
    """
    Every resource of the site, declared through the planner.

    Resources: two Storage buckets (site, logs), an origin access identity
    with its bucket policy, an ACM certificate with DNS validation, a
    CloudFront distribution with a redirect function and response headers
    policy, four alias records and a synced folder of the site contents.
    """

    def __init__(
        self,
        name: str,
        domain_name: str,
        site_contents_path: str = "./site-contents",
        log_expiration_days: int = 180,
        price_class: str = "PriceClass_100",
        retain_buckets: bool = True,
    ):
        """
        Declare the website and plan it into Pulumi resources.

        Args:
            name: Pulumi resource name; prefix of every child resource.
            domain_name: Apex domain served by the site. A Route 53 hosted
                zone for it must already exist.
            site_contents_path: Directory uploaded to the site bucket.
            log_expiration_days: Retention of access logs in the log bucket.
            price_class: CloudFront price class.
            retain_buckets: Keep buckets when the stack is destroyed.

        Outputs (set on self, registered for the component):
            cloudfront_domain_name: Distribution hostname.
            cloudfront_url: HTTPS URL of the distribution.
            site_bucket_name: Name of the content bucket.
            certificate_arn: ARN of the validated certificate.
            cache_invalidation_command: AWS CLI command clearing the
                distribution cache after new content is uploaded.
        """
        super().__init__(ID, name)

        blueprint = build_blueprint(
            domain_name=domain_name,
            site_contents_path=site_contents_path,
            log_expiration_days=log_expiration_days,
            price_class=price_class,
            retain_buckets=retain_buckets,
        )

        # Single worker: Pulumi registers resources on this thread's event loop.
        backend = AwsBackend(name, parent=self)
        report = Planner(backend, max_workers=1).plan(blueprint.graph)

        for line in report.render().splitlines():
            pulumi.log.info(line, resource=self)
        if not report.ok:
            for failure in report.failures:
                pulumi.log.error(str(failure), resource=self)
            raise pulumi.RunError(f"static website plan failed:\n{report.render()}")

        self.cloudfront_domain_name: pulumi.Output[str] = report.attribute("dist", "domain_name")
        self.cloudfront_url: pulumi.Output[str] = pulumi.Output.concat(
            "https://", self.cloudfront_domain_name
        )
        self.site_bucket_name: pulumi.Output[str] = report.attribute("site", "bucket")
        self.certificate_arn: pulumi.Output[str] = report.attribute("cert", "arn")
        self.cache_invalidation_command: pulumi.Output[str] = report.attribute(
            "deploy", "invalidation_command"
        )
        self.register_outputs(
            {
                "cloudfront_domain_name": self.cloudfront_domain_name,
                "cloudfront_url": self.cloudfront_url,
                "site_bucket_name": self.site_bucket_name,
                "certificate_arn": self.certificate_arn,
                "cache_invalidation_command": self.cache_invalidation_command,
            }
        )
