"""
Pure helpers for DNS names, bucket policies and CloudFront snippets. Testable
without the Pulumi runtime.

Used by the website blueprint (www_domain, log_bucket_name, fqdn) and the AWS
backend (bucket_read_policy, log_delivery_policy, redirect_function_code,
invalidation_command, resource_name). No Pulumi types; all functions accept
and return plain Python types.
"""

import json
import re


def ensure_trailing_dot(
    domain: str,
) -> str:
    """
    Return domain with a single trailing dot for DNS FQDN.

    Route 53 reports record names fully qualified with a trailing dot.
    Idempotent if already present.
    """
    return domain if domain.endswith(".") else f"{domain}."


def fqdn(
    domain: str,
    subdomain: str,
) -> str:
    """
    Build FQDN like 'www.example.com.' from domain and subdomain.

    Args:
        domain: Base domain (e.g. "example.com"); trailing dot is ensured.
        subdomain: Leading label (e.g. "www").

    Returns:
        FQDN with trailing dot (e.g. "www.example.com.").
    """
    base = ensure_trailing_dot(domain)
    return f"{subdomain}.{base}" if not base.startswith(f"{subdomain}.") else base


def www_domain(
    domain: str,
) -> str:
    """Return 'www.<domain>' without a trailing dot."""
    return fqdn(domain, "www").rstrip(".")


def log_bucket_name(
    domain: str,
) -> str:
    """Name of the access-log bucket for a site, e.g. 'logs.example.com'."""
    return f"logs.{domain.rstrip('.')}"


def resource_name(
    *parts: str,
) -> str:
    """
    Join parts into a Pulumi logical name.

    Characters outside ``[A-Za-z0-9._-]`` become '-', so object keys such as
    'css/site.css' can be embedded in a resource name.
    """
    joined = "-".join(part for part in parts if part)
    return re.sub(r"[^A-Za-z0-9._-]+", "-", joined).strip("-")


def bucket_read_policy(
    bucket_arn: str,
    principal_arn: str,
    enforce_ssl: bool = True,
) -> str:
    """
    Bucket policy JSON granting a CloudFront identity read access.

    Args:
        bucket_arn: ARN of the bucket (e.g. "arn:aws:s3:::example.com").
        principal_arn: IAM ARN of the origin access identity.
        enforce_ssl: If True, also deny every request not made over TLS.

    Returns:
        Policy document serialized as JSON.
    """
    statements = [
        {
            "Sid": "AllowCloudFrontRead",
            "Effect": "Allow",
            "Principal": {"AWS": principal_arn},
            "Action": "s3:GetObject",
            "Resource": f"{bucket_arn}/*",
        }
    ]
    if enforce_ssl:
        statements.append(
            {
                "Sid": "DenyInsecureTransport",
                "Effect": "Deny",
                "Principal": "*",
                "Action": "s3:*",
                "Resource": [bucket_arn, f"{bucket_arn}/*"],
                "Condition": {"Bool": {"aws:SecureTransport": "false"}},
            }
        )
    return json.dumps({"Version": "2012-10-17", "Statement": statements})


def redirect_function_code(
    source_host: str,
    target_host: str,
) -> str:
    """
    CloudFront Function source redirecting one host to another (HTTP 301).

    Requests for ``source_host`` are answered with a permanent redirect to
    ``https://<target_host><uri>``; any other request passes through.
    """
    return (
        "function handler(event) {\n"
        "  var request = event.request;\n"
        f"  if (request.headers.host && request.headers.host.value === '{source_host}') {{\n"
        "    return {\n"
        "      statusCode: 301,\n"
        "      statusDescription: 'Moved Permanently',\n"
        f"      headers: {{ location: {{ value: 'https://{target_host}' + request.uri }} }},\n"
        "    };\n"
        "  }\n"
        "  return request;\n"
        "}\n"
    )


def log_delivery_policy(
    log_bucket_arn: str,
    source_bucket_arn: str,
    prefix: str = "",
) -> str:
    """
    Bucket policy JSON letting S3 server access logging write into a bucket.

    Args:
        log_bucket_arn: ARN of the bucket receiving the logs.
        source_bucket_arn: ARN of the bucket whose requests are logged; only
            deliveries for it are allowed.
        prefix: Key prefix the logs are written under.

    Returns:
        Policy document serialized as JSON.
    """
    statement = {
        "Sid": "S3ServerAccessLogsPolicy",
        "Effect": "Allow",
        "Principal": {"Service": "logging.s3.amazonaws.com"},
        "Action": "s3:PutObject",
        "Resource": f"{log_bucket_arn}/{prefix}*",
        "Condition": {"ArnLike": {"aws:SourceArn": source_bucket_arn}},
    }
    return json.dumps({"Version": "2012-10-17", "Statement": [statement]})


def invalidation_command(
    distribution_id: str,
    paths: str = "/*",
) -> str:
    """AWS CLI command clearing the distribution cache for ``paths``."""
    return f"aws cloudfront create-invalidation --distribution-id {distribution_id} --paths '{paths}'"
