"""Unit tests for the plan executor."""

from __future__ import annotations

from shipyard.reconciler.executor import CancellationToken, PlanExecutor
from shipyard.state.models import ResourceKind, ResourceStatus, RunOutcome
from shipyard.utils.errors import (
    ErrorCategory,
    PermissionDeniedError,
    TransientError,
)

NETWORK = ResourceKind.NETWORK
REGISTRY = ResourceKind.REGISTRY
SECURITY_GROUP = ResourceKind.SECURITY_GROUP
SERVICE = ResourceKind.SERVICE


def _described(control_plane) -> list:
    return [call.name for call in control_plane.calls_to("describe")]


def _created(control_plane) -> list:
    return [call.name for call in control_plane.calls_to("create")]


class TestOrdering:
    def test_dependencies_are_visited_first(self, executor, control_plane, declare) -> None:
        plan = [
            declare(SERVICE, "web", depends_on=["web-sg"], cluster="main"),
            declare(SECURITY_GROUP, "web-sg", depends_on=["vpc"]),
            declare(NETWORK, "vpc", cidr_block="10.0.0.0/16"),
        ]

        report = executor.run(plan)

        assert report.names() == ["vpc", "web-sg", "web"]
        assert _described(control_plane) == ["vpc", "web-sg", "web"]
        assert _created(control_plane) == ["vpc", "web-sg", "web"]

    def test_each_declaration_is_visited_once(self, executor, control_plane, declare) -> None:
        plan = [
            declare(NETWORK, "vpc"),
            declare(SECURITY_GROUP, "a", depends_on=["vpc"]),
            declare(SECURITY_GROUP, "b", depends_on=["vpc"]),
            declare(SERVICE, "svc", depends_on=["a", "b"]),
        ]

        executor.run(plan)

        described = _described(control_plane)
        assert sorted(described) == ["a", "b", "svc", "vpc"]
        assert len(described) == len(set(described))

    def test_ties_are_broken_by_name(self, executor, control_plane, declare) -> None:
        plan = [
            declare(REGISTRY, "charlie"),
            declare(REGISTRY, "alpha"),
            declare(REGISTRY, "bravo"),
        ]

        report = executor.run(plan)

        assert report.names() == ["alpha", "bravo", "charlie"]
        assert _described(control_plane) == ["alpha", "bravo", "charlie"]

    def test_order_is_independent_of_input_order(self, control_plane, retry_strategy, declare) -> None:
        plan = [
            declare(NETWORK, "vpc"),
            declare(SECURITY_GROUP, "sg-b", depends_on=["vpc"]),
            declare(SECURITY_GROUP, "sg-a", depends_on=["vpc"]),
            declare(REGISTRY, "repo"),
        ]

        first = PlanExecutor(control_plane, retry_strategy).run(plan)
        second = PlanExecutor(control_plane, retry_strategy).run(list(reversed(plan)))

        assert first.names() == second.names() == ["repo", "vpc", "sg-a", "sg-b"]


class TestEndToEnd:
    def test_network_security_group_service(self, executor, control_plane, declare) -> None:
        plan = [
            declare(NETWORK, "main-vpc", cidr_block="10.0.0.0/16"),
            declare(SECURITY_GROUP, "web-sg", depends_on=["main-vpc"],
                    vpc_id="${main-vpc.arn}"),
            declare(SERVICE, "web", depends_on=["web-sg"],
                    cluster="main", security_groups=["${web-sg.arn}"]),
        ]

        report = executor.run(plan)

        assert report.outcome == RunOutcome.SUCCESS
        assert report.create_count == 3
        assert _created(control_plane) == ["main-vpc", "web-sg", "web"]
        assert control_plane.resources[(SECURITY_GROUP, "web-sg")]["vpc_id"] == "arn:memory:network/main-vpc"
        assert control_plane.resources[(SERVICE, "web")]["security_groups"] == [
            "arn:memory:securitygroup/web-sg"
        ]
        for name in ("main-vpc", "web-sg", "web"):
            assert report.state_for(name).created

    def test_second_run_creates_nothing(self, control_plane, retry_strategy, declare) -> None:
        plan = [
            declare(NETWORK, "main-vpc", cidr_block="10.0.0.0/16"),
            declare(SECURITY_GROUP, "web-sg", depends_on=["main-vpc"],
                    vpc_id="${main-vpc.arn}"),
            declare(SERVICE, "web", depends_on=["web-sg"], cluster="main"),
        ]

        first = PlanExecutor(control_plane, retry_strategy).run(plan)
        creates_after_first = len(control_plane.calls_to("create"))
        second = PlanExecutor(control_plane, retry_strategy).run(plan)

        assert first.outcome == RunOutcome.SUCCESS
        assert second.outcome == RunOutcome.SUCCESS
        assert second.create_count == 0
        assert len(control_plane.calls_to("create")) == creates_after_first
        assert all(entry.state.is_present() for entry in second.entries)

    def test_existing_resources_are_left_alone(self, executor, control_plane, declare) -> None:
        control_plane.seed(REGISTRY, "app", {"scan_on_push": True})

        report = executor.run([declare(REGISTRY, "app", scan_on_push=True)])

        assert report.outcome == RunOutcome.SUCCESS
        assert report.state_for("app").status == ResourceStatus.PRESENT
        assert not report.state_for("app").created
        assert _created(control_plane) == []

    def test_empty_plan_succeeds(self, executor, control_plane) -> None:
        report = executor.run([])

        assert report.outcome == RunOutcome.SUCCESS
        assert report.entries == ()
        assert control_plane.calls == []

    def test_account_context_is_referenceable(self, control_plane, retry_strategy, declare) -> None:
        executor = PlanExecutor(
            control_plane, retry_strategy,
            context={"account": {"id": "123456789012", "region": "us-east-2"}}
        )
        plan = [
            declare(ResourceKind.TASK_DEFINITION, "app",
                    image="${account.id}.dkr.ecr.${account.region}.amazonaws.com/app:latest"),
        ]

        report = executor.run(plan)

        assert report.outcome == RunOutcome.SUCCESS
        assert control_plane.resources[(ResourceKind.TASK_DEFINITION, "app")]["image"] == (
            "123456789012.dkr.ecr.us-east-2.amazonaws.com/app:latest"
        )


class TestInvalidPlans:
    def test_cycle_makes_no_calls(self, executor, control_plane, declare) -> None:
        plan = [
            declare(REGISTRY, "x", depends_on=["y"]),
            declare(REGISTRY, "y", depends_on=["x"]),
        ]

        report = executor.run(plan)

        assert report.outcome == RunOutcome.FAILED
        assert report.is_config_error()
        assert report.error.category == ErrorCategory.CONFIG
        assert "Circular dependency" in report.error.message
        assert control_plane.calls == []
        assert [entry.state.status for entry in report.entries] == [ResourceStatus.PENDING] * 2

    def test_unknown_dependency_makes_no_calls(self, executor, control_plane, declare) -> None:
        report = executor.run([declare(SECURITY_GROUP, "sg", depends_on=["missing-vpc"])])

        assert report.is_config_error()
        assert "missing-vpc" in report.error.message
        assert control_plane.calls == []

    def test_self_dependency_is_rejected(self, executor, control_plane, declare) -> None:
        report = executor.run([declare(REGISTRY, "loop", depends_on=["loop"])])

        assert report.is_config_error()
        assert control_plane.calls == []

    def test_duplicate_names_are_rejected(self, executor, control_plane, declare) -> None:
        plan = [declare(REGISTRY, "same"), declare(ResourceKind.CLUSTER, "same")]

        report = executor.run(plan)

        assert report.is_config_error()
        assert "Duplicate" in report.error.message
        assert control_plane.calls == []

    def test_reference_outside_depends_on_is_rejected(self, executor, control_plane, declare) -> None:
        plan = [
            declare(NETWORK, "vpc"),
            declare(SECURITY_GROUP, "sg", vpc_id="${vpc.vpc_id}"),
        ]

        report = executor.run(plan)

        assert report.is_config_error()
        assert "depends_on" in report.error.message
        assert control_plane.calls == []

    def test_invalid_plan_entries_are_sorted_by_name(self, executor, declare) -> None:
        plan = [
            declare(REGISTRY, "b", depends_on=["a"]),
            declare(REGISTRY, "a", depends_on=["b"]),
        ]

        report = executor.run(plan)

        assert report.names() == ["a", "b"]


class TestFailureContainment:
    def test_failure_blocks_only_dependents(self, executor, control_plane, declare) -> None:
        control_plane.fail("create", "x", PermissionDeniedError("AccessDenied: not allowed"))
        plan = [
            declare(REGISTRY, "x"),
            declare(ResourceKind.CLUSTER, "y", depends_on=["x"]),
            declare(ResourceKind.LOG_GROUP, "z"),
        ]

        report = executor.run(plan)

        assert report.state_for("x").status == ResourceStatus.FAILED
        assert report.state_for("x").last_error.category == ErrorCategory.PERMISSION
        assert report.state_for("y").status == ResourceStatus.FAILED
        assert report.state_for("y").last_error.category == ErrorCategory.DEPENDENCY
        assert report.state_for("z").status == ResourceStatus.PRESENT
        assert report.outcome == RunOutcome.PARTIAL
        assert "y" not in _described(control_plane)

    def test_transitive_dependents_are_blocked(self, executor, control_plane, declare) -> None:
        control_plane.fail("describe", "root", PermissionDeniedError("AccessDenied"))
        plan = [
            declare(NETWORK, "root"),
            declare(SECURITY_GROUP, "middle", depends_on=["root"]),
            declare(SERVICE, "leaf", depends_on=["middle"]),
        ]

        report = executor.run(plan)

        assert [entry.state.status for entry in report.entries] == [ResourceStatus.FAILED] * 3
        assert report.outcome == RunOutcome.FAILED
        assert _described(control_plane) == ["root"]

    def test_divergent_dependency_blocks_dependents(self, executor, control_plane, declare) -> None:
        control_plane.seed(NETWORK, "vpc", {"cidr_block": "172.31.0.0/16"})
        plan = [
            declare(NETWORK, "vpc", cidr_block="10.0.0.0/16"),
            declare(SECURITY_GROUP, "sg", depends_on=["vpc"]),
        ]

        report = executor.run(plan)

        assert report.state_for("vpc").status == ResourceStatus.DIVERGENT
        assert report.state_for("sg").status == ResourceStatus.FAILED
        assert report.state_for("sg").last_error.category == ErrorCategory.DEPENDENCY
        assert report.outcome == RunOutcome.PARTIAL

    def test_unexpected_exception_is_contained(self, executor, control_plane, declare) -> None:
        control_plane.fail("describe", "broken", RuntimeError("boom"))
        plan = [declare(REGISTRY, "broken"), declare(REGISTRY, "fine")]

        report = executor.run(plan)

        assert report.state_for("broken").status == ResourceStatus.FAILED
        assert report.state_for("broken").last_error.category == ErrorCategory.PROVIDER
        assert report.state_for("fine").status == ResourceStatus.PRESENT
        assert report.outcome == RunOutcome.PARTIAL

    def test_unknown_reference_field_fails_declaration(self, executor, control_plane, declare) -> None:
        plan = [
            declare(NETWORK, "vpc"),
            declare(SECURITY_GROUP, "sg", depends_on=["vpc"], vpc_id="${vpc.no_such_field}"),
        ]

        report = executor.run(plan)

        assert report.state_for("vpc").status == ResourceStatus.PRESENT
        assert report.state_for("sg").status == ResourceStatus.FAILED
        assert report.state_for("sg").last_error.category == ErrorCategory.CONFIG
        assert not report.is_config_error()
        assert "sg" not in _described(control_plane)


class TestDivergence:
    def test_divergent_resource_is_not_modified(self, executor, control_plane, declare) -> None:
        existing = {"ingress": [{"protocol": "tcp", "port": 22, "cidr": "0.0.0.0/0"}]}
        control_plane.seed(SECURITY_GROUP, "web-sg", existing)

        report = executor.run([
            declare(SECURITY_GROUP, "web-sg",
                    ingress=[{"protocol": "tcp", "port": 80, "cidr": "0.0.0.0/0"}]),
        ])

        state = report.state_for("web-sg")
        assert state.status == ResourceStatus.DIVERGENT
        assert state.divergent_fields == ("ingress",)
        assert state.observed_config == existing
        assert _created(control_plane) == []
        assert control_plane.resources[(SECURITY_GROUP, "web-sg")] == existing
        assert report.outcome == RunOutcome.PARTIAL


class TestRetries:
    def test_transient_describe_failures_are_retried(self, executor, control_plane, sleeps, declare) -> None:
        control_plane.fail("describe", "repo", TransientError("Throttling"), TransientError("Throttling"))

        report = executor.run([declare(REGISTRY, "repo")])

        assert report.outcome == RunOutcome.SUCCESS
        assert _described(control_plane) == ["repo"] * 3
        assert sleeps == [1.0, 2.0]

    def test_describe_retries_are_bounded(self, executor, control_plane, sleeps, declare) -> None:
        control_plane.fail("describe", "repo", *[TransientError("ServiceUnavailable")] * 5)

        report = executor.run([declare(REGISTRY, "repo")])

        state = report.state_for("repo")
        assert state.status == ResourceStatus.FAILED
        assert state.last_error.category == ErrorCategory.TRANSIENT
        assert len(control_plane.calls_to("describe")) == 3
        assert _created(control_plane) == []
        assert report.outcome == RunOutcome.FAILED

    def test_create_is_not_repeated_after_timeout(self, executor, control_plane, declare) -> None:
        control_plane.fail("create", "repo", TransientError("Read timed out"))

        report = executor.run([declare(REGISTRY, "repo")])

        assert report.state_for("repo").status == ResourceStatus.FAILED
        assert _created(control_plane) == ["repo"]

    def test_throttled_create_is_retried(self, executor, control_plane, declare) -> None:
        control_plane.fail("create", "repo", TransientError("Throttling: Rate exceeded", throttled=True))

        report = executor.run([declare(REGISTRY, "repo")])

        assert report.state_for("repo").status == ResourceStatus.PRESENT
        assert _created(control_plane) == ["repo", "repo"]


class TestCancellation:
    def test_cancel_leaves_remaining_pending(self, executor, control_plane, declare) -> None:
        token = CancellationToken()

        def cancel_after_first(declaration, state) -> None:
            if state is not None:
                token.cancel()

        plan = [declare(REGISTRY, "a"), declare(REGISTRY, "b"), declare(REGISTRY, "c")]

        report = executor.run(plan, cancel_token=token, progress_callback=cancel_after_first)

        assert report.cancelled
        assert report.outcome == RunOutcome.PARTIAL
        assert report.state_for("a").status == ResourceStatus.PRESENT
        assert report.state_for("b").status == ResourceStatus.PENDING
        assert report.state_for("c").status == ResourceStatus.PENDING
        assert _described(control_plane) == ["a"]

    def test_cancel_before_start(self, executor, control_plane, declare) -> None:
        token = CancellationToken()
        token.cancel()

        report = executor.run([declare(REGISTRY, "a")], cancel_token=token)

        assert report.cancelled
        assert report.outcome == RunOutcome.PARTIAL
        assert control_plane.calls == []


class TestProgress:
    def test_callback_sees_start_and_finish(self, executor, declare) -> None:
        events = []

        executor.run(
            [declare(REGISTRY, "a"), declare(REGISTRY, "b")],
            progress_callback=lambda declaration, state: events.append(
                (declaration.name, state.status if state else None)
            ),
        )

        assert events == [
            ("a", None), ("a", ResourceStatus.PRESENT),
            ("b", None), ("b", ResourceStatus.PRESENT),
        ]
