"""
Static website resource graph.

Declares the site as two stack groups sharing one DependencyGraph:

- **StaticWebsiteStack**: log bucket, site bucket and the CloudFront origin
  access identity. Exports the bucket and identity attributes the CDN needs.
- **CloudFrontDistributionStack**: ACM certificate, CloudFront distribution,
  apex/www A and AAAA alias records and the content deployment. Depends on
  StaticWebsiteStack and reads its exports.

The blueprint is plain data: it never touches Pulumi, so it can be planned
against any ProvisioningBackend (``InMemoryBackend`` for a dry run,
``AwsBackend`` inside a Pulumi program).
"""

from dataclasses import dataclass

from components._helpers import log_bucket_name, www_domain
from planner import DependencyGraph, ResourceKind, ResourceNode, StackGroup

WEBSITE_GROUP = "StaticWebsiteStack"
DISTRIBUTION_GROUP = "CloudFrontDistributionStack"

# Security headers applied to /index.html responses.
SECURITY_HEADERS: dict[str, object] = {
    "content_type_options": True,
    "frame_option": "DENY",
    "referrer_policy": "origin",
    "strict_transport_security_seconds": 31536000,
    "include_subdomains": True,
    "xss_protection": True,
}


@dataclass
class WebsiteBlueprint:
    """The declared graph and its two groups."""

    graph: DependencyGraph
    website: StackGroup
    distribution: StackGroup


def build_blueprint(
    domain_name: str,
    site_contents_path: str = "./site-contents",
    log_expiration_days: int = 180,
    price_class: str = "PriceClass_100",
    retain_buckets: bool = True,
) -> WebsiteBlueprint:
    """
    Declare every resource of the static website.

    Args:
        domain_name: Apex domain; also the site bucket name and the hosted
            zone the records and certificate validation go into.
        site_contents_path: Local directory uploaded to the site bucket.
        log_expiration_days: Days after which access logs expire.
        price_class: CloudFront price class.
        retain_buckets: Keep buckets and uploaded objects when the stack is
            destroyed.

    Returns:
        WebsiteBlueprint holding the graph and the two groups.
    """
    graph = DependencyGraph()
    website = StackGroup(WEBSITE_GROUP, graph)
    distribution = StackGroup(DISTRIBUTION_GROUP, graph)
    www = www_domain(domain_name)

    # Log bucket: CloudFront standard logging needs ACLs, hence ObjectWriter.
    website.add(
        ResourceNode(
            id="logs",
            kind=ResourceKind.STORAGE,
            params={
                "bucket_name": log_bucket_name(domain_name),
                "encryption": "AES256",
                "object_ownership": "ObjectWriter",
                "expiration_days": log_expiration_days,
                "retain_on_delete": retain_buckets,
            },
        )
    )

    # Site bucket: private, encrypted, server access logs into the log bucket.
    website.add(
        ResourceNode(
            id="site",
            kind=ResourceKind.STORAGE,
            params={
                "bucket_name": domain_name,
                "block_public_access": True,
                "encryption": "AES256",
                "index_document": "index.html",
                "error_document": "error.html",
                "access_logs_bucket": website.attr("logs", "bucket"),
                "access_logs_bucket_arn": website.attr("logs", "arn"),
                "access_logs_prefix": "website-logs/",
                "retain_on_delete": retain_buckets,
            },
        )
    )

    # Identity CloudFront uses to read the site bucket; its bucket policy
    # also denies non-TLS requests.
    website.add(
        ResourceNode(
            id="oai",
            kind=ResourceKind.ACCESS_IDENTITY,
            params={
                "comment": "Allows CloudFront to reach the website bucket",
                "bucket": website.attr("site", "bucket"),
                "bucket_arn": website.attr("site", "arn"),
                "enforce_ssl": True,
            },
        )
    )

    website.export("SiteBucketName", "site", "bucket")
    website.export("SiteBucketArn", "site", "arn")
    website.export("SiteBucketDomain", "site", "regional_domain_name")
    website.export("LogBucketDomain", "logs", "domain_name")
    website.export("OriginAccessIdentityPath", "oai", "path")

    distribution.add_dependency(website)

    distribution.add(
        ResourceNode(
            id="cert",
            kind=ResourceKind.CERTIFICATE,
            params={
                "domain_name": domain_name,
                "subject_alternative_names": [www],
                "zone_name": domain_name,
            },
        )
    )

    distribution.add(
        ResourceNode(
            id="dist",
            kind=ResourceKind.CDN_DISTRIBUTION,
            params={
                "comment": domain_name,
                "aliases": [domain_name, www],
                "certificate_arn": distribution.attr("cert", "arn"),
                "origin_domain_name": distribution.import_ref(website, "SiteBucketDomain"),
                "origin_access_identity": distribution.import_ref(
                    website, "OriginAccessIdentityPath"
                ),
                "log_bucket_domain_name": distribution.import_ref(website, "LogBucketDomain"),
                "log_prefix": "cloudfront/",
                "default_root_object": "index.html",
                "minimum_protocol_version": "TLSv1.2_2021",
                "http_version": "http2and3",
                "price_class": price_class,
                "error_responses": [
                    {"error_code": 404, "response_code": 404, "page_path": "/404.html", "ttl": 86400},
                ],
                "redirect_host": www,
                "canonical_host": domain_name,
                "headers_policy_path": "/index.html",
                "security_headers": SECURITY_HEADERS,
            },
        )
    )

    # Apex and www, IPv4 and IPv6, all aliased to the distribution.
    for record_id, record_name, record_type in (
        ("a", domain_name, "A"),
        ("aaaa", domain_name, "AAAA"),
        ("www-a", www, "A"),
        ("www-aaaa", www, "AAAA"),
    ):
        distribution.add(
            ResourceNode(
                id=record_id,
                kind=ResourceKind.DNS_RECORD,
                params={
                    "zone_name": domain_name,
                    "record_name": record_name,
                    "record_type": record_type,
                    "alias_name": distribution.attr("dist", "domain_name"),
                    "alias_zone_id": distribution.attr("dist", "hosted_zone_id"),
                },
            )
        )

    # Upload after the distribution exists so the first request finds content;
    # the distribution id feeds the cache invalidation command.
    distribution.add(
        ResourceNode(
            id="deploy",
            kind=ResourceKind.DEPLOYMENT,
            params={
                "source_path": site_contents_path,
                "bucket": distribution.import_ref(website, "SiteBucketName"),
                "acl": "bucket-owner-full-control",
                "distribution_id": distribution.attr("dist", "id"),
                "invalidation_paths": "/*",
                "retain_on_delete": True,
            },
        )
    )

    return WebsiteBlueprint(graph=graph, website=website, distribution=distribution)
