"""
Static website infrastructure components.

The website is declared once as a planner graph and materialized through
Pulumi. Use from the Pulumi entrypoint (e.g. __main__.py) with config:

- **build_blueprint**: the resource graph (two stack groups) as plain data;
  plan it with any ProvisioningBackend, e.g. InMemoryBackend for a dry run.
- **AwsBackend**: ProvisioningBackend declaring pulumi_aws resources and
  returning their outputs as live attributes.
- **StaticWebsite**: ComponentResource that plans the blueprint with
  AwsBackend and exposes cloudfront_domain_name, cloudfront_url,
  site_bucket_name and certificate_arn.
"""

from components.aws import LIVE_ATTRIBUTES, AwsBackend
from components.blueprint import WebsiteBlueprint, build_blueprint
from components.website import StaticWebsite

__all__ = [
    "LIVE_ATTRIBUTES",
    "AwsBackend",
    "StaticWebsite",
    "WebsiteBlueprint",
    "build_blueprint",
]
