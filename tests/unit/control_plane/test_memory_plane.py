"""Unit tests for the in-memory control plane."""

from __future__ import annotations

import pytest

from shipyard.control_plane import InMemoryControlPlane, RecordedCall
from shipyard.state.models import ResourceKind
from shipyard.utils.errors import TransientError


class TestInMemoryControlPlane:
    def test_describe_unknown_is_absent(self) -> None:
        plane = InMemoryControlPlane()

        assert plane.describe(ResourceKind.CLUSTER, "my-ecs-cluster", {}) is None
        assert plane.calls == [RecordedCall("describe", ResourceKind.CLUSTER, "my-ecs-cluster")]

    def test_create_then_describe(self) -> None:
        plane = InMemoryControlPlane()

        created = plane.create(ResourceKind.REGISTRY, "repo", {"scan_on_push": True})

        assert created == {"scan_on_push": True, "arn": "arn:memory:registry/repo"}
        assert plane.describe(ResourceKind.REGISTRY, "repo", {}) == created

    def test_seeded_resources_are_copied(self) -> None:
        config = {"ingress": [{"port": 80}]}
        plane = InMemoryControlPlane()
        plane.seed(ResourceKind.SECURITY_GROUP, "sg", config)

        config["ingress"].append({"port": 443})
        observed = plane.describe(ResourceKind.SECURITY_GROUP, "sg", {})
        observed["ingress"].clear()

        assert plane.describe(ResourceKind.SECURITY_GROUP, "sg", {}) == {"ingress": [{"port": 80}]}

    def test_faults_are_raised_in_order(self) -> None:
        plane = InMemoryControlPlane()
        first, second = TransientError("slow down"), TransientError("still slow")
        plane.fail("create", "repo", first, second)

        with pytest.raises(TransientError) as exc_info:
            plane.create(ResourceKind.REGISTRY, "repo", {})
        assert exc_info.value is first

        with pytest.raises(TransientError) as exc_info:
            plane.create(ResourceKind.REGISTRY, "repo", {})
        assert exc_info.value is second

        plane.create(ResourceKind.REGISTRY, "repo", {})

        assert len(plane.calls_to("create")) == 3
        assert plane.calls_to("describe") == []

    def test_faults_are_scoped_to_operation_and_name(self) -> None:
        plane = InMemoryControlPlane()
        plane.fail("create", "repo", TransientError("slow down"))

        assert plane.describe(ResourceKind.REGISTRY, "repo", {}) is None
        plane.create(ResourceKind.REGISTRY, "other", {})

    def test_managed_view_is_identity(self) -> None:
        assert InMemoryControlPlane().managed_view(ResourceKind.ROLE, {"a": 1}) == {"a": 1}
