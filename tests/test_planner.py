"""Tests for the planner"""

import threading

import pytest

from planner import (
    Action,
    CycleDetected,
    DependencyGraph,
    InMemoryBackend,
    InvalidTransition,
    NodeState,
    OutputRef,
    Planner,
    ProvisioningFailure,
    ResourceKind,
    ResourceNode,
    StateTable,
    UnresolvedReference,
)


def build_graph(cert_domain="example.com"):
    graph = DependencyGraph()
    for resource in (
        ResourceNode("site", ResourceKind.STORAGE, {"bucket_name": "example.com"}),
        ResourceNode("oai", ResourceKind.ACCESS_IDENTITY, {"bucket": OutputRef("site", "id")}),
        ResourceNode("cert", ResourceKind.CERTIFICATE, {"domain_name": cert_domain}),
        ResourceNode(
            "dist",
            ResourceKind.CDN_DISTRIBUTION,
            {
                "origin": OutputRef("site", "id"),
                "identity": OutputRef("oai", "id"),
                "certificate_arn": OutputRef("cert", "arn"),
            },
        ),
        ResourceNode("a", ResourceKind.DNS_RECORD, {"alias": OutputRef("dist", "id")}),
        ResourceNode("aaaa", ResourceKind.DNS_RECORD, {"alias": OutputRef("dist", "id")}),
        ResourceNode("deploy", ResourceKind.DEPLOYMENT, depends_on=frozenset({"dist"})),
    ):
        graph.add_node(resource)
    return graph


def chains():
    # Two independent branches: A -> B and C -> D.
    graph = DependencyGraph()
    graph.add_node(ResourceNode("A", ResourceKind.STORAGE))
    graph.add_node(ResourceNode("B", ResourceKind.ACCESS_IDENTITY, depends_on=frozenset({"A"})))
    graph.add_node(ResourceNode("C", ResourceKind.CERTIFICATE))
    graph.add_node(ResourceNode("D", ResourceKind.DNS_RECORD, depends_on=frozenset({"C"})))
    return graph


class RecordingBackend(InMemoryBackend):
    """Records start/end events and runs an optional hook per node."""

    def __init__(self, hooks=None, **kwargs):
        super().__init__(**kwargs)
        self.hooks = hooks or {}
        self.events = []
        self._events_lock = threading.Lock()

    def _event(self, name, node_id):
        with self._events_lock:
            self.events.append((name, node_id))

    def materialize(self, kind, params, node_id):
        self._event("start", node_id)
        try:
            if node_id in self.hooks:
                self.hooks[node_id]()
            return super().materialize(kind, params, node_id)
        finally:
            self._event("end", node_id)


class TestSequentialPlan:
    def test_materializes_in_topological_order(self):
        graph = build_graph()
        backend = InMemoryBackend()
        report = Planner(backend).plan(graph)
        assert report.ok
        assert backend.materialized_ids == graph.topological_order()
        assert [entry.node_id for entry in report.entries] == graph.topological_order()

    def test_references_are_resolved_before_backend_call(self):
        backend = InMemoryBackend()
        Planner(backend).plan(build_graph())
        params = {node_id: call_params for node_id, _, call_params in backend.calls}
        assert params["dist"] == {
            "origin": "site.id",
            "identity": "oai.id",
            "certificate_arn": "cert.arn",
        }

    def test_report_records_live_attributes(self):
        report = Planner(InMemoryBackend()).plan(build_graph())
        assert report.attribute("cert", "arn") == "cert.arn"
        assert report.entry("site").action is Action.CREATE
        assert report.entry("site").previous_state is NodeState.PENDING
        assert report.entry("site").new_state is NodeState.MATERIALIZED

    def test_static_errors_abort_before_any_call(self):
        graph = build_graph()
        graph._successors["deploy"].add("site")
        graph._predecessors["site"].add("deploy")
        backend = InMemoryBackend()
        with pytest.raises(CycleDetected):
            Planner(backend).plan(graph)
        assert backend.calls == []

    def test_missing_attribute_is_fatal(self):
        graph = DependencyGraph()
        graph.add_node(ResourceNode("site", ResourceKind.STORAGE))
        graph.add_node(
            ResourceNode("oai", ResourceKind.ACCESS_IDENTITY, {"bucket": OutputRef("site", "bucket")})
        )
        backend = InMemoryBackend()
        with pytest.raises(UnresolvedReference):
            Planner(backend).plan(graph)
        assert backend.materialized_ids == ["site"]

    def test_rejects_zero_workers(self):
        with pytest.raises(ValueError):
            Planner(InMemoryBackend(), max_workers=0)


class TestFailures:
    def test_dependents_stay_pending_and_independent_nodes_finish(self):
        graph = build_graph()
        backend = InMemoryBackend(failures={"oai"})
        report = Planner(backend).plan(graph)

        assert not report.ok
        assert report.entry("oai").new_state is NodeState.FAILED
        for node_id in ("dist", "a", "aaaa", "deploy"):
            assert report.entry(node_id).new_state is NodeState.PENDING
            assert report.entry(node_id).blocked_by == ("oai",)
        for node_id in ("site", "cert"):
            assert report.entry(node_id).new_state is NodeState.MATERIALIZED
        assert "dist" not in backend.materialized_ids

    def test_failure_carries_node_kind_and_cause(self):
        report = Planner(InMemoryBackend(failures={"cert"})).plan(build_graph())
        [failure] = report.failures
        assert isinstance(failure, ProvisioningFailure)
        assert failure.node_id == "cert"
        assert failure.kind is ResourceKind.CERTIFICATE
        assert isinstance(failure.cause, RuntimeError)
        assert report.entry("cert").error is failure

    def test_failure_is_not_retried(self):
        backend = InMemoryBackend(failures={"cert"})
        Planner(backend).plan(build_graph())
        assert backend.materialized_ids.count("cert") == 1

    def test_already_materialized_nodes_are_kept(self):
        report = Planner(InMemoryBackend(failures={"dist"})).plan(build_graph())
        assert set(report.state) == {"site", "oai", "cert"}

    def test_render_names_failed_node_and_blocked_dependents(self):
        report = Planner(InMemoryBackend(failures={"dist"})).plan(build_graph())
        rendered = report.render()
        assert rendered.splitlines()[0] == (
            "Plan: 3 materialized, 0 unchanged, 1 failed, 3 pending, 0 cancelled"
        )
        assert "! dist (CDNDistribution): Pending -> Failed: simulated failure for dist" in rendered
        assert "- a (DNSRecord): Pending -> Pending (blocked by dist)" in rendered


class TestIdempotence:
    def test_unchanged_graph_makes_no_calls(self):
        backend = InMemoryBackend()
        planner = Planner(backend)
        first = planner.plan(build_graph())
        calls = len(backend.calls)

        second = planner.plan(build_graph(), previous_state=first.state)
        assert len(backend.calls) == calls
        assert second.ok
        assert all(entry.action is Action.NOOP for entry in second.entries)
        assert all(entry.previous_state is NodeState.MATERIALIZED for entry in second.entries)
        assert second.attribute("dist", "id") == "dist.id"

    def test_changed_params_rematerialize_node_and_dependents(self):
        backend = InMemoryBackend()
        planner = Planner(backend)
        first = planner.plan(build_graph())
        backend.calls.clear()

        second = planner.plan(build_graph(cert_domain="example.org"), previous_state=first.state)
        assert backend.materialized_ids == ["cert", "dist", "a", "aaaa", "deploy"]
        assert second.entry("cert").action is Action.UPDATE
        assert second.entry("site").action is Action.NOOP

    def test_failed_nodes_are_retried_on_next_run(self):
        planner = Planner(InMemoryBackend(failures={"oai"}))
        first = planner.plan(build_graph())

        backend = InMemoryBackend()
        second = Planner(backend).plan(build_graph(), previous_state=first.state)
        assert second.ok
        assert backend.materialized_ids == ["oai", "dist", "a", "aaaa", "deploy"]
        assert second.entry("oai").action is Action.CREATE

    def test_has_changed_without_previous_record(self):
        planner = Planner(InMemoryBackend())
        resource = ResourceNode("site", ResourceKind.STORAGE)
        assert planner.has_changed(resource, {}, None)


class TestConcurrency:
    def test_independent_branches_run_concurrently_in_order(self):
        barrier = threading.Barrier(2, timeout=5)
        backend = RecordingBackend(hooks={"A": barrier.wait, "C": barrier.wait})
        report = Planner(backend, max_workers=2).plan(chains())

        assert report.ok
        events = backend.events
        assert events.index(("end", "A")) < events.index(("start", "B"))
        assert events.index(("end", "C")) < events.index(("start", "D"))

    def test_failure_in_one_branch_does_not_stop_the_other(self):
        backend = RecordingBackend(failures={"A"})
        report = Planner(backend, max_workers=2).plan(chains())
        assert report.entry("A").new_state is NodeState.FAILED
        assert report.entry("B").new_state is NodeState.PENDING
        assert report.entry("D").new_state is NodeState.MATERIALIZED

    def test_concurrent_plan_is_idempotent(self):
        backend = InMemoryBackend()
        planner = Planner(backend, max_workers=4)
        first = planner.plan(build_graph())
        calls = len(backend.calls)
        planner.plan(build_graph(), previous_state=first.state)
        assert len(backend.calls) == calls


class TestCancellation:
    def test_not_started_nodes_are_cancelled(self):
        cancel = threading.Event()
        backend = RecordingBackend(hooks={"A": cancel.set})
        report = Planner(backend).plan(chains(), cancel_event=cancel)

        assert report.cancelled
        assert report.entry("A").new_state is NodeState.MATERIALIZED
        for node_id in ("B", "C", "D"):
            assert report.entry(node_id).new_state is NodeState.CANCELLED
        assert backend.materialized_ids == ["A"]

    def test_in_flight_calls_complete(self):
        cancel = threading.Event()
        barrier = threading.Barrier(2, timeout=5)

        # Both calls are in flight before the signal, and C outlives it.
        def meet_then_cancel():
            barrier.wait()
            cancel.set()

        def meet_then_wait_for_cancel():
            barrier.wait()
            cancel.wait(timeout=5)

        backend = RecordingBackend(hooks={"A": meet_then_cancel, "C": meet_then_wait_for_cancel})
        report = Planner(backend, max_workers=2).plan(chains(), cancel_event=cancel)

        assert report.entry("A").new_state is NodeState.MATERIALIZED
        assert report.entry("C").new_state is NodeState.MATERIALIZED
        assert report.entry("B").new_state is NodeState.CANCELLED
        assert report.entry("D").new_state is NodeState.CANCELLED

    def test_cancelled_before_start(self):
        cancel = threading.Event()
        cancel.set()
        backend = InMemoryBackend()
        report = Planner(backend).plan(chains(), cancel_event=cancel)
        assert backend.calls == []
        assert report.counts()["cancelled"] == 4


class TestStateTable:
    def test_failed_is_terminal(self):
        table = StateTable(["site"])
        table.transition("site", NodeState.MATERIALIZING)
        table.transition("site", NodeState.FAILED)
        with pytest.raises(InvalidTransition):
            table.transition("site", NodeState.MATERIALIZING)

    def test_cannot_fail_without_materializing(self):
        table = StateTable(["site"])
        with pytest.raises(InvalidTransition):
            table.transition("site", NodeState.FAILED)
