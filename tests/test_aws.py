"""Tests for the AWS backend that need no Pulumi engine"""

import pytest

from components.aws import LIVE_ATTRIBUTES, S3_BLOCK_PUBLIC_ACCESS, AwsBackend
from planner import ChangeStatus, NodeRecord, ResourceKind


class TestLiveAttributes:
    def test_every_kind_is_covered(self):
        assert set(LIVE_ATTRIBUTES) == set(ResourceKind)

    def test_blueprint_references_are_reported(self):
        assert "regional_domain_name" in LIVE_ATTRIBUTES[ResourceKind.STORAGE]
        assert "path" in LIVE_ATTRIBUTES[ResourceKind.ACCESS_IDENTITY]
        assert "hosted_zone_id" in LIVE_ATTRIBUTES[ResourceKind.CDN_DISTRIBUTION]


class TestAwsBackend:
    def test_block_public_access_is_complete(self):
        assert all(S3_BLOCK_PUBLIC_ACCESS.values())
        assert len(S3_BLOCK_PUBLIC_ACCESS) == 4

    def test_diff_defers_to_engine(self):
        backend = AwsBackend("site")
        previous = NodeRecord(ResourceKind.STORAGE, {"bucket_name": "example.com"}, {})
        status = backend.diff(ResourceKind.STORAGE, {"bucket_name": "example.com"}, previous)
        assert status is ChangeStatus.CHANGED

    def test_unsupported_kind(self):
        with pytest.raises(ValueError):
            AwsBackend("site").materialize("Queue", {}, "queue")

    def test_deployment_requires_existing_directory(self, tmp_path):
        backend = AwsBackend("site")
        with pytest.raises(FileNotFoundError):
            backend.materialize(
                ResourceKind.DEPLOYMENT,
                {"source_path": str(tmp_path / "missing"), "bucket": "example.com"},
                "deploy",
            )
