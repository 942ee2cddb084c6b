"""Tests for status assembly and persistence."""

from datetime import datetime, timezone

import pytest

from reconciler_protocols import Resource
from reconciler_core.exceptions import InvalidResourceError
from reconciler_core.reconcile.state import Reconciliation, ReconciliationState
from reconciler_core.reconcile.status import (
    NOT_READY,
    PAUSED,
    READY,
    ClusterStatus,
    Condition,
    ListenerAddress,
    ListenerStatus,
    StatusAssembler,
    persist_status,
    status_differs,
    warning,
)
from reconciler_core.store import InMemoryResourceStore

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
T1 = datetime(2024, 1, 1, 13, 0, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def make_state(generation: int = 3, previous: ClusterStatus | None = None) -> ReconciliationState:
    cluster = Resource(kind="Kafka", namespace="kafka", name="c", generation=generation)
    return ReconciliationState(
        reconciliation=Reconciliation("test", "Kafka", "kafka", "c"),
        cluster=cluster,
        now=T0,
        previous_status=previous,
    )


class TestStatusAssembler:
    """Tests for StatusAssembler."""

    def test_success_is_ready_with_observed_generation(self):
        status = StatusAssembler(Clock(T0)).assemble(make_state(generation=3))

        assert status.readiness.type == READY
        assert status.observed_generation == 3
        assert status.readiness.last_transition_time == "2024-01-01T12:00:00Z"

    def test_failure_reports_error_kind_and_message(self):
        error = InvalidResourceError("Storage of c-kafka cannot be changed as requested")

        status = StatusAssembler(Clock(T0)).assemble(make_state(generation=4), error)

        assert status.readiness.type == NOT_READY
        assert status.readiness.reason == "InvalidResourceError"
        assert status.readiness.message == "Storage of c-kafka cannot be changed as requested"
        assert status.observed_generation == 4

    def test_cluster_id_generated_once(self):
        assembler = StatusAssembler(Clock(T0))

        first = assembler.assemble(make_state())
        second = assembler.assemble(make_state(previous=first))

        assert first.cluster_id is not None
        assert len(first.cluster_id) == 22
        assert "=" not in first.cluster_id
        assert second.cluster_id == first.cluster_id

    def test_no_cluster_id_on_failure(self):
        status = StatusAssembler(Clock(T0)).assemble(make_state(), RuntimeError("boom"))

        assert status.cluster_id is None

    def test_warnings_precede_readiness(self):
        state = make_state()
        state.warnings = [warning("KafkaStorage", "A Kafka cluster with a single replica and ephemeral storage will lose topic messages after any restart or rolling update.")]

        status = StatusAssembler(Clock(T0)).assemble(state)

        assert [c.type for c in status.conditions] == ["Warning", READY]
        assert status.warnings[0].reason == "KafkaStorage"

    def test_listeners_are_reported(self):
        state = make_state()
        state.listeners = [
            ListenerStatus(
                name="plain",
                type="internal",
                addresses=[ListenerAddress(host="c-kafka-bootstrap.kafka.svc", port=9092)],
                bootstrap_servers="c-kafka-bootstrap.kafka.svc:9092",
            )
        ]

        status = StatusAssembler(Clock(T0)).assemble(state)

        assert status.to_dict()["listeners"] == [
            {
                "name": "plain",
                "type": "internal",
                "addresses": [{"host": "c-kafka-bootstrap.kafka.svc", "port": 9092}],
                "bootstrapServers": "c-kafka-bootstrap.kafka.svc:9092",
            }
        ]

    def test_unchanged_condition_keeps_transition_time(self):
        first = StatusAssembler(Clock(T0)).assemble(make_state())

        second = StatusAssembler(Clock(T1)).assemble(make_state(previous=first))

        assert second.readiness.last_transition_time == "2024-01-01T12:00:00Z"

    def test_changed_condition_gets_new_transition_time(self):
        first = StatusAssembler(Clock(T0)).assemble(make_state())

        second = StatusAssembler(Clock(T1)).assemble(make_state(previous=first), RuntimeError("x"))

        assert second.readiness.last_transition_time == "2024-01-01T13:00:00Z"

    def test_creating(self):
        cluster = Resource(kind="Kafka", namespace="kafka", name="c", generation=1)

        status = StatusAssembler(Clock(T0)).creating(cluster, "Kafka cluster is being deployed")

        assert status.readiness.type == NOT_READY
        assert status.readiness.reason == "Creating"
        assert status.readiness.message == "Kafka cluster is being deployed"
        assert status.observed_generation == 0

    def test_paused_keeps_previous_generation_and_id(self):
        previous = StatusAssembler(Clock(T0)).assemble(make_state(generation=2))

        status = StatusAssembler(Clock(T1)).paused(previous)

        assert [c.type for c in status.conditions] == [PAUSED]
        assert status.observed_generation == 2
        assert status.cluster_id == previous.cluster_id

    def test_paused_without_history(self):
        status = StatusAssembler(Clock(T0)).paused(None)

        assert status.observed_generation == 0
        assert status.cluster_id is None


class TestClusterStatus:
    """Tests for the ClusterStatus model."""

    def test_wire_format_is_camel_case(self):
        status = ClusterStatus(
            conditions=[Condition(type=READY, last_transition_time="2024-01-01T12:00:00Z")],
            cluster_id="abc",
            observed_generation=5,
        )

        assert status.to_dict() == {
            "conditions": [
                {"type": "Ready", "status": "True", "lastTransitionTime": "2024-01-01T12:00:00Z"}
            ],
            "clusterId": "abc",
            "observedGeneration": 5,
        }

    def test_from_dict(self):
        status = ClusterStatus.from_dict({"observedGeneration": 2, "conditions": [{"type": "NotReady"}]})

        assert status.observed_generation == 2
        assert status.readiness.type == NOT_READY
        assert ClusterStatus.from_dict(None) is None
        assert ClusterStatus.from_dict({}) is None

    def test_status_differs_ignores_transition_times(self):
        a = ClusterStatus(conditions=[Condition(type=READY, last_transition_time="t0")])
        b = ClusterStatus(conditions=[Condition(type=READY, last_transition_time="t1")])
        c = ClusterStatus(conditions=[Condition(type=NOT_READY, last_transition_time="t0")])

        assert not status_differs(a, b)
        assert status_differs(a, c)
        assert status_differs(None, a)


class TestPersistStatus:
    """Tests for persist_status()."""

    @pytest.fixture
    def store(self):
        store = InMemoryResourceStore()
        store.put(Resource(kind="Kafka", namespace="kafka", name="c", generation=1))
        return store

    @pytest.mark.asyncio
    async def test_writes_changed_status(self, store):
        cluster = store.peek("Kafka", "kafka", "c")
        status = StatusAssembler(Clock(T0)).assemble(make_state())

        assert await persist_status(store, cluster, status)
        assert store.peek("Kafka", "kafka", "c").status["conditions"][0]["type"] == READY
        assert store.count("update_status", "Kafka") == 1

    @pytest.mark.asyncio
    async def test_skips_unchanged_status(self, store):
        cluster = store.peek("Kafka", "kafka", "c")
        first = StatusAssembler(Clock(T0)).assemble(make_state())
        await persist_status(store, cluster, first)

        second = StatusAssembler(Clock(T1)).assemble(make_state(previous=first))

        assert not await persist_status(store, cluster, second)
        assert store.count("update_status", "Kafka") == 1

    @pytest.mark.asyncio
    async def test_missing_resource_is_skipped(self):
        store = InMemoryResourceStore()
        cluster = Resource(kind="Kafka", namespace="kafka", name="gone")

        assert not await persist_status(store, cluster, ClusterStatus())
        assert store.operations == []
