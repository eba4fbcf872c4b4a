"""
Static website - Pulumi entrypoint.

Builds one StaticWebsite component from Pulumi config. The component plans
two stack groups over a shared resource graph:

- **StaticWebsiteStack**: log bucket, private site bucket and the CloudFront
  origin access identity. Exports bucket and identity attributes.
- **CloudFrontDistributionStack**: ACM certificate, CloudFront distribution,
  apex/www A and AAAA alias records and the content upload. Imports the
  exports above, so it is planned after the first group.

Stack exports: cloudfront_url, cloudfront_domain, site_bucket_name,
certificate_arn, cache_invalidation_command.
"""

import pulumi

from components import StaticWebsite
from config import StackConfig


def _component_name(project_name: str, environment: str, prefix: str) -> str:
    return f"{prefix}-{project_name}-{environment}"


def main():
    """
    Build the website component and export stack outputs.

    Reads config (domain_name, site_contents_path, log_expiration_days,
    price_class, retain_buckets), declares the website and exports the
    distribution URL and hostname, the content bucket and the certificate.
    """
    config = StackConfig.from_pulumi_config(pulumi.Config())

    website = StaticWebsite(
        name=_component_name(config.project_name, config.environment, "site"),
        domain_name=config.domain_name,
        site_contents_path=config.site_contents_path,
        log_expiration_days=config.log_expiration_days,
        price_class=config.price_class,
        retain_buckets=config.retain_buckets,
    )

    for output_name, value in [
        ("cloudfront_url", website.cloudfront_url),
        ("cloudfront_domain", website.cloudfront_domain_name),
        ("site_bucket_name", website.site_bucket_name),
        ("certificate_arn", website.certificate_arn),
        ("cache_invalidation_command", website.cache_invalidation_command),
    ]:
        pulumi.export(output_name, value)


if __name__ == "__main__":
    main()
