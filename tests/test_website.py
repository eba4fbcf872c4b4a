"""Tests for the StaticWebsite component against Pulumi mocks"""

from collections import Counter

import pulumi
import pytest

from components import StaticWebsite


class WebsiteMocks(pulumi.runtime.Mocks):
    """Fabricates provider outputs and records every declared resource type."""

    def __init__(self):
        self.types = []

    def new_resource(self, args: pulumi.runtime.MockResourceArgs):
        self.types.append(args.typ)
        outputs = dict(args.inputs)
        if args.typ == "aws:s3/bucketV2:BucketV2":
            bucket = args.inputs.get("bucket", args.name)
            outputs.update(
                bucket=bucket,
                arn=f"arn:aws:s3:::{bucket}",
                bucketDomainName=f"{bucket}.s3.amazonaws.com",
                bucketRegionalDomainName=f"{bucket}.s3.us-east-1.amazonaws.com",
            )
        elif args.typ == "aws:cloudfront/originAccessIdentity:OriginAccessIdentity":
            outputs.update(
                iamArn="arn:aws:iam::cloudfront:user/CloudFront Origin Access Identity E1OAI",
                cloudfrontAccessIdentityPath="origin-access-identity/cloudfront/E1OAI",
            )
        elif args.typ == "aws:acm/certificate:Certificate":
            domains = [args.inputs["domainName"], *args.inputs.get("subjectAlternativeNames", [])]
            outputs.update(
                arn="arn:aws:acm:us-east-1:123456789012:certificate/abc",
                domainValidationOptions=[
                    {
                        "domainName": domain,
                        "resourceRecordName": f"_x.{domain}.",
                        "resourceRecordType": "CNAME",
                        "resourceRecordValue": "_y.acm-validations.aws.",
                    }
                    for domain in domains
                ],
            )
        elif args.typ == "aws:cloudfront/distribution:Distribution":
            outputs.update(
                arn="arn:aws:cloudfront::123456789012:distribution/E2DIST",
                domainName="d111111abcdef8.cloudfront.net",
                hostedZoneId="Z2FDTNDATAQYW2",
            )
        elif args.typ == "aws:route53/record:Record":
            outputs.update(fqdn=args.inputs.get("name"))
        elif args.typ == "aws:cloudfront/function:Function":
            outputs.update(arn="arn:aws:cloudfront::123456789012:function/redirect")
        resource_id = "E2DIST" if args.typ == "aws:cloudfront/distribution:Distribution" else f"{args.name}-id"
        return [resource_id, outputs]

    def call(self, args: pulumi.runtime.MockCallArgs):
        if args.token == "aws:route53/getZone:getZone":
            return {"zoneId": "Z0EXAMPLE", "name": args.args.get("name")}
        return {}


@pytest.fixture
def mocks():
    mocks = WebsiteMocks()
    pulumi.runtime.set_mocks(mocks, preview=False)
    return mocks


@pytest.fixture
def contents(tmp_path):
    (tmp_path / "index.html").write_text("<h1>hello</h1>")
    (tmp_path / "404.html").write_text("<h1>not found</h1>")
    return tmp_path


class TestStaticWebsite:
    def test_registers_outputs(self, mocks, contents):
        @pulumi.runtime.test
        def declare():
            website = StaticWebsite("site-web-dev", "example.com", site_contents_path=str(contents))

            def check(args):
                url, domain, bucket, certificate, command = args
                assert url == "https://d111111abcdef8.cloudfront.net"
                assert domain == "d111111abcdef8.cloudfront.net"
                assert bucket == "example.com"
                assert certificate == "arn:aws:acm:us-east-1:123456789012:certificate/abc"
                assert command == (
                    "aws cloudfront create-invalidation --distribution-id E2DIST --paths '/*'"
                )

            return pulumi.Output.all(
                website.cloudfront_url,
                website.cloudfront_domain_name,
                website.site_bucket_name,
                website.certificate_arn,
                website.cache_invalidation_command,
            ).apply(check)

        declare()

    def test_declares_resources_per_kind(self, mocks, contents):
        @pulumi.runtime.test
        def declare():
            StaticWebsite("site-web-dev", "example.com", site_contents_path=str(contents))

        declare()
        counts = Counter(mocks.types)
        assert counts["aws:s3/bucketV2:BucketV2"] == 2
        # Read policy on the site bucket, log delivery policy on the log bucket.
        assert counts["aws:s3/bucketPolicy:BucketPolicy"] == 2
        assert counts["aws:s3/bucketLoggingV2:BucketLoggingV2"] == 1
        assert counts["aws:cloudfront/originAccessIdentity:OriginAccessIdentity"] == 1
        assert counts["aws:acm/certificate:Certificate"] == 1
        assert counts["aws:acm/certificateValidation:CertificateValidation"] == 1
        assert counts["aws:cloudfront/distribution:Distribution"] == 1
        # Two validation records and four aliases.
        assert counts["aws:route53/record:Record"] == 6

    def test_missing_contents_fail_the_program(self, mocks, tmp_path):
        @pulumi.runtime.test
        def declare():
            with pytest.raises(pulumi.RunError) as excinfo:
                StaticWebsite("site-web-dev", "example.com", site_contents_path=str(tmp_path / "missing"))
            assert "deploy" in str(excinfo.value)
            assert "site contents directory not found" in str(excinfo.value)

        declare()
