"""
AWS provisioning backend: maps planner resource kinds to pulumi_aws resources.

Each ``materialize`` call declares the Pulumi resources for one node and
returns its live attributes as ``Output`` values; the planner threads those
into the params of dependent nodes, so Pulumi sees the same dependency edges
the planner ordered by. Buckets stay private: Block Public Access is applied
by default and CloudFront reads through an origin access identity whose
bucket policy also denies non-TLS requests.

The Pulumi engine diffs declared resources against its own state, so
``diff`` always reports Changed and every node is declared on every run.
"""

from pathlib import Path
from typing import Any, Callable, Mapping

import pulumi
import pulumi_aws as aws
import pulumi_synced_folder as synced_folder

from components._helpers import (
    bucket_read_policy,
    invalidation_command,
    log_delivery_policy,
    redirect_function_code,
    resource_name,
)
from planner import ChangeStatus, NodeRecord, ProvisioningBackend, ResourceKind

# Applied when a Storage node has block_public_access (the default). Used by
# tests and callers to assert on secure defaults.
S3_BLOCK_PUBLIC_ACCESS: dict[str, bool] = {
    "block_public_acls": True,
    "block_public_policy": True,
    "ignore_public_acls": True,
    "restrict_public_buckets": True,
}

# Managed-CachingOptimized cache policy.
CACHING_OPTIMIZED_POLICY_ID = "658327ea-f89d-4fab-a63d-7e88639e58f6"

# ACM certificates used by CloudFront must live in us-east-1.
CERTIFICATE_REGION = "us-east-1"

# Attributes each kind reports from materialize. Also handed to
# InMemoryBackend so dry runs expose the same names.
LIVE_ATTRIBUTES: dict[ResourceKind, tuple[str, ...]] = {
    ResourceKind.STORAGE: ("id", "bucket", "arn", "domain_name", "regional_domain_name"),
    ResourceKind.ACCESS_IDENTITY: ("id", "iam_arn", "path"),
    ResourceKind.CERTIFICATE: ("arn", "domain_name"),
    ResourceKind.CDN_DISTRIBUTION: ("id", "arn", "domain_name", "hosted_zone_id"),
    ResourceKind.DNS_RECORD: ("fqdn", "name"),
    ResourceKind.DEPLOYMENT: ("bucket", "invalidation_command"),
}


class AwsBackend(ProvisioningBackend):
    """
    ProvisioningBackend declaring pulumi_aws resources.

    Args:
        name: Prefix for every Pulumi logical name (node ids are appended).
        parent: Optional parent resource, e.g. the StaticWebsite component,
            so Pulumi groups the children and orders their deletion.
    """

    def __init__(
        self,
        name: str,
        parent: pulumi.Resource | None = None,
    ):
        self.name = name
        self._parent = parent
        self._zones: dict[str, Any] = {}
        self._certificate_provider: aws.Provider | None = None
        self._builders: dict[ResourceKind, Callable[[str, Mapping[str, Any]], dict[str, Any]]] = {
            ResourceKind.STORAGE: self._storage,
            ResourceKind.ACCESS_IDENTITY: self._access_identity,
            ResourceKind.CERTIFICATE: self._certificate,
            ResourceKind.CDN_DISTRIBUTION: self._distribution,
            ResourceKind.DNS_RECORD: self._dns_record,
            ResourceKind.DEPLOYMENT: self._deployment,
        }

    def materialize(
        self,
        kind: ResourceKind,
        params: Mapping[str, Any],
        node_id: str,
    ) -> dict[str, Any]:
        try:
            builder = self._builders[kind]
        except KeyError:
            raise ValueError(f"unsupported resource kind: {kind}") from None
        return builder(resource_name(self.name, node_id), params)

    def diff(self, kind: ResourceKind, params: Mapping[str, Any], previous: NodeRecord) -> ChangeStatus:
        return ChangeStatus.CHANGED

    def _opts(self, params: Mapping[str, Any] | None = None, **kwargs) -> pulumi.ResourceOptions:
        # retain_on_delete mirrors a RETAIN removal policy: destroy drops the
        # resource from state but leaves it in the account.
        retain = bool((params or {}).get("retain_on_delete", False))
        return pulumi.ResourceOptions(parent=self._parent, retain_on_delete=retain, **kwargs)

    def _zone(self, zone_name: str):
        # One lookup per hosted zone, shared by certificate validation and records.
        if zone_name not in self._zones:
            self._zones[zone_name] = aws.route53.get_zone_output(name=zone_name)
        return self._zones[zone_name]

    def _us_east_1(self) -> aws.Provider:
        if self._certificate_provider is None:
            self._certificate_provider = aws.Provider(
                resource_name=f"{self.name}-{CERTIFICATE_REGION}",
                region=CERTIFICATE_REGION,
                opts=pulumi.ResourceOptions(parent=self._parent),
            )
        return self._certificate_provider

    def _storage(self, name: str, params: Mapping[str, Any]) -> dict[str, Any]:
        opts = self._opts(params)
        bucket = aws.s3.BucketV2(
            resource_name=name,
            bucket=params.get("bucket_name"),
            force_destroy=params.get("force_destroy", False),
            opts=opts,
        )

        if params.get("block_public_access", True):
            aws.s3.BucketPublicAccessBlock(
                resource_name=f"{name}-block-public",
                bucket=bucket.id,
                opts=opts,
                **S3_BLOCK_PUBLIC_ACCESS,
            )

        if params.get("encryption"):
            default = aws.s3.BucketServerSideEncryptionConfigurationV2RuleApplyServerSideEncryptionByDefaultArgs(
                sse_algorithm=params["encryption"],
            )
            aws.s3.BucketServerSideEncryptionConfigurationV2(
                resource_name=f"{name}-encryption",
                bucket=bucket.id,
                rules=[
                    aws.s3.BucketServerSideEncryptionConfigurationV2RuleArgs(
                        apply_server_side_encryption_by_default=default,
                    )
                ],
                opts=opts,
            )

        # CloudFront standard logging writes with ACLs; needs ObjectWriter.
        if params.get("object_ownership"):
            aws.s3.BucketOwnershipControls(
                resource_name=f"{name}-ownership",
                bucket=bucket.id,
                rule=aws.s3.BucketOwnershipControlsRuleArgs(
                    object_ownership=params["object_ownership"],
                ),
                opts=opts,
            )

        if params.get("expiration_days"):
            aws.s3.BucketLifecycleConfigurationV2(
                resource_name=f"{name}-lifecycle",
                bucket=bucket.id,
                rules=[
                    aws.s3.BucketLifecycleConfigurationV2RuleArgs(
                        id="expire-objects",
                        status="Enabled",
                        expiration=aws.s3.BucketLifecycleConfigurationV2RuleExpirationArgs(
                            days=params["expiration_days"],
                        ),
                    )
                ],
                opts=opts,
            )

        if params.get("access_logs_bucket"):
            prefix = params.get("access_logs_prefix", "")
            aws.s3.BucketLoggingV2(
                resource_name=f"{name}-logging",
                bucket=bucket.id,
                target_bucket=params["access_logs_bucket"],
                target_prefix=prefix,
                opts=opts,
            )
            # S3 delivers server access logs only if the target bucket allows it.
            if params.get("access_logs_bucket_arn"):
                delivery = pulumi.Output.all(params["access_logs_bucket_arn"], bucket.arn).apply(
                    lambda args: log_delivery_policy(args[0], args[1], prefix)
                )
                aws.s3.BucketPolicy(
                    resource_name=f"{name}-log-delivery",
                    bucket=params["access_logs_bucket"],
                    policy=delivery,
                    opts=opts,
                )

        if params.get("index_document"):
            error_document = None
            if params.get("error_document"):
                error_document = aws.s3.BucketWebsiteConfigurationV2ErrorDocumentArgs(
                    key=params["error_document"],
                )
            aws.s3.BucketWebsiteConfigurationV2(
                resource_name=f"{name}-website",
                bucket=bucket.id,
                index_document=aws.s3.BucketWebsiteConfigurationV2IndexDocumentArgs(
                    suffix=params["index_document"],
                ),
                error_document=error_document,
                opts=opts,
            )

        return {
            "id": bucket.id,
            "bucket": bucket.bucket,
            "arn": bucket.arn,
            "domain_name": bucket.bucket_domain_name,
            "regional_domain_name": bucket.bucket_regional_domain_name,
        }

    def _access_identity(self, name: str, params: Mapping[str, Any]) -> dict[str, Any]:
        identity = aws.cloudfront.OriginAccessIdentity(
            resource_name=name,
            comment=params.get("comment"),
            opts=self._opts(params),
        )

        # One policy per bucket: read for the identity plus the SSL guard.
        enforce_ssl = bool(params.get("enforce_ssl", True))
        policy = pulumi.Output.all(params["bucket_arn"], identity.iam_arn).apply(
            lambda args: bucket_read_policy(args[0], args[1], enforce_ssl=enforce_ssl)
        )
        aws.s3.BucketPolicy(
            resource_name=f"{name}-policy",
            bucket=params["bucket"],
            policy=policy,
            opts=self._opts(params),
        )

        return {
            "id": identity.id,
            "iam_arn": identity.iam_arn,
            "path": identity.cloudfront_access_identity_path,
        }

    def _certificate(self, name: str, params: Mapping[str, Any]) -> dict[str, Any]:
        provider = self._us_east_1()
        zone = self._zone(params["zone_name"])
        domains = [params["domain_name"], *params.get("subject_alternative_names", [])]

        certificate = aws.acm.Certificate(
            resource_name=name,
            domain_name=domains[0],
            subject_alternative_names=domains[1:],
            validation_method="DNS",
            opts=self._opts(params, provider=provider),
        )

        # One validation record per domain on the certificate.
        records = []
        for index in range(len(domains)):
            option = certificate.domain_validation_options.apply(
                lambda options, i=index: options[i]
            )
            records.append(
                aws.route53.Record(
                    resource_name=f"{name}-validation-{index}",
                    name=option.resource_record_name,
                    type=option.resource_record_type,
                    records=[option.resource_record_value],
                    zone_id=zone.zone_id,
                    ttl=60,
                    allow_overwrite=True,
                    opts=self._opts(),
                )
            )

        validation = aws.acm.CertificateValidation(
            resource_name=f"{name}-validation",
            certificate_arn=certificate.arn,
            validation_record_fqdns=[record.fqdn for record in records],
            opts=self._opts(provider=provider),
        )

        return {
            "arn": validation.certificate_arn,
            "domain_name": certificate.domain_name,
        }

    def _distribution(self, name: str, params: Mapping[str, Any]) -> dict[str, Any]:
        opts = self._opts(params)
        origin_id = "s3-origin"

        headers = params.get("security_headers", {})
        security_headers = aws.cloudfront.ResponseHeadersPolicySecurityHeadersConfigArgs(
            content_type_options=aws.cloudfront.ResponseHeadersPolicySecurityHeadersConfigContentTypeOptionsArgs(
                override=bool(headers.get("content_type_options", True)),
            ),
            frame_options=aws.cloudfront.ResponseHeadersPolicySecurityHeadersConfigFrameOptionsArgs(
                frame_option=headers.get("frame_option", "DENY"),
                override=True,
            ),
            referrer_policy=aws.cloudfront.ResponseHeadersPolicySecurityHeadersConfigReferrerPolicyArgs(
                referrer_policy=headers.get("referrer_policy", "origin"),
                override=True,
            ),
            strict_transport_security=aws.cloudfront.ResponseHeadersPolicySecurityHeadersConfigStrictTransportSecurityArgs(
                access_control_max_age_sec=headers.get("strict_transport_security_seconds", 31536000),
                include_subdomains=headers.get("include_subdomains", True),
                override=True,
            ),
            xss_protection=aws.cloudfront.ResponseHeadersPolicySecurityHeadersConfigXssProtectionArgs(
                protection=headers.get("xss_protection", True),
                mode_block=True,
                override=True,
            ),
        )
        headers_policy = aws.cloudfront.ResponseHeadersPolicy(
            resource_name=f"{name}-headers",
            name=f"{name}-hosting-policy",
            comment=f"{params.get('comment', name)} response headers policy",
            security_headers_config=security_headers,
            opts=opts,
        )

        # Viewer-request function sending www.<domain> to the apex.
        function_associations = []
        ordered_function_associations = []
        if params.get("redirect_host"):
            redirect = aws.cloudfront.Function(
                resource_name=f"{name}-redirect",
                name=f"{name}-redirect",
                runtime="cloudfront-js-2.0",
                code=redirect_function_code(params["redirect_host"], params["canonical_host"]),
                publish=True,
                opts=opts,
            )
            function_associations.append(
                aws.cloudfront.DistributionDefaultCacheBehaviorFunctionAssociationArgs(
                    event_type="viewer-request",
                    function_arn=redirect.arn,
                )
            )
            ordered_function_associations.append(
                aws.cloudfront.DistributionOrderedCacheBehaviorFunctionAssociationArgs(
                    event_type="viewer-request",
                    function_arn=redirect.arn,
                )
            )

        origins = [
            aws.cloudfront.DistributionOriginArgs(
                domain_name=params["origin_domain_name"],
                origin_id=origin_id,
                s3_origin_config=aws.cloudfront.DistributionOriginS3OriginConfigArgs(
                    origin_access_identity=params["origin_access_identity"],
                ),
            )
        ]

        default_cache_behavior = aws.cloudfront.DistributionDefaultCacheBehaviorArgs(
            target_origin_id=origin_id,
            viewer_protocol_policy="redirect-to-https",
            allowed_methods=["GET", "HEAD", "OPTIONS"],
            cached_methods=["GET", "HEAD", "OPTIONS"],
            compress=True,
            cache_policy_id=CACHING_OPTIMIZED_POLICY_ID,
            function_associations=function_associations,
        )

        ordered_cache_behaviors = []
        if params.get("headers_policy_path"):
            ordered_cache_behaviors.append(
                aws.cloudfront.DistributionOrderedCacheBehaviorArgs(
                    path_pattern=params["headers_policy_path"],
                    target_origin_id=origin_id,
                    viewer_protocol_policy="redirect-to-https",
                    allowed_methods=["GET", "HEAD"],
                    cached_methods=["GET", "HEAD"],
                    compress=True,
                    cache_policy_id=CACHING_OPTIMIZED_POLICY_ID,
                    response_headers_policy_id=headers_policy.id,
                    function_associations=ordered_function_associations,
                )
            )

        custom_error_responses = [
            aws.cloudfront.DistributionCustomErrorResponseArgs(
                error_code=response["error_code"],
                response_code=response["response_code"],
                response_page_path=response["page_path"],
                error_caching_min_ttl=response.get("ttl"),
            )
            for response in params.get("error_responses", [])
        ]

        logging_config = None
        if params.get("log_bucket_domain_name"):
            logging_config = aws.cloudfront.DistributionLoggingConfigArgs(
                bucket=params["log_bucket_domain_name"],
                include_cookies=False,
                prefix=params.get("log_prefix", ""),
            )

        restrictions = aws.cloudfront.DistributionRestrictionsArgs(
            geo_restriction=aws.cloudfront.DistributionRestrictionsGeoRestrictionArgs(
                restriction_type="none",
            ),
        )

        viewer_certificate = aws.cloudfront.DistributionViewerCertificateArgs(
            acm_certificate_arn=params["certificate_arn"],
            ssl_support_method="sni-only",
            minimum_protocol_version=params.get("minimum_protocol_version", "TLSv1.2_2021"),
        )

        distribution = aws.cloudfront.Distribution(
            resource_name=name,
            enabled=True,
            comment=params.get("comment"),
            aliases=params.get("aliases", []),
            default_root_object=params.get("default_root_object"),
            http_version=params.get("http_version", "http2"),
            price_class=params.get("price_class", "PriceClass_100"),
            origins=origins,
            default_cache_behavior=default_cache_behavior,
            ordered_cache_behaviors=ordered_cache_behaviors,
            custom_error_responses=custom_error_responses,
            logging_config=logging_config,
            restrictions=restrictions,
            viewer_certificate=viewer_certificate,
            opts=opts,
        )

        return {
            "id": distribution.id,
            "arn": distribution.arn,
            "domain_name": distribution.domain_name,
            "hosted_zone_id": distribution.hosted_zone_id,
        }

    def _dns_record(self, name: str, params: Mapping[str, Any]) -> dict[str, Any]:
        zone = self._zone(params["zone_name"])
        record = aws.route53.Record(
            resource_name=name,
            zone_id=zone.zone_id,
            name=params["record_name"],
            type=params["record_type"],
            aliases=[
                aws.route53.RecordAliasArgs(
                    name=params["alias_name"],
                    zone_id=params["alias_zone_id"],
                    evaluate_target_health=False,
                )
            ],
            opts=self._opts(params),
        )
        return {"fqdn": record.fqdn, "name": record.name}

    def _deployment(self, name: str, params: Mapping[str, Any]) -> dict[str, Any]:
        root = Path(params["source_path"])
        if not root.is_dir():
            raise FileNotFoundError(f"site contents directory not found: {root}")

        # Objects missing from the folder are deleted from the bucket.
        synced_folder.S3BucketFolder(
            resource_name=name,
            path=str(root),
            bucket_name=params["bucket"],
            acl=params.get("acl", "bucket-owner-full-control"),
            managed_objects=True,
            opts=self._opts(params),
        )

        # pulumi-aws has no invalidation resource; the command is exported
        # for the operator to run after content changes.
        command = None
        if params.get("distribution_id") is not None:
            command = pulumi.Output.from_input(params["distribution_id"]).apply(
                lambda distribution_id: invalidation_command(
                    distribution_id, params.get("invalidation_paths", "/*")
                )
            )

        return {"bucket": params["bucket"], "invalidation_command": command}
