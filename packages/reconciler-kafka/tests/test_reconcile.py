"""
End-to-end reconciliation of Kafka resources against the in-memory store.

These tests verify that Reconciler with KafkaCluster:
- Deploys a new cluster and reports Ready with listeners and a cluster id
- Does nothing on a second pass over an unchanged resource
- Finishes a partially rolled ensemble
- Scales ZooKeeper one member at a time and brokers in one batch
- Resumes a broker scale-down that failed part way
- Restarts manually rolled brokers again once their new config is written
- Rejects disallowed storage changes before touching anything
- Honours the pause annotation
"""

import copy

import pytest

from reconciler_protocols import Resource
from reconciler_core import annotations
from reconciler_core.ca import CertificateAuthorityManager, IdentityIssuer, X509IdentitySigner
from reconciler_core.ca.secrets import ANNO_FORCE_RENEW
from reconciler_core.config import OperatorSettings
from reconciler_core.exceptions import OperationTimeoutError
from reconciler_core.reconcile import Reconciler, Reconciliation
from reconciler_core.store import InMemoryResourceStore
from reconciler_kafka.cluster import KafkaCluster
from reconciler_kafka.zookeeper import QUORUM_KEY, parse_quorum_config

NAMESPACE = "kafka"
KEY_SIZE = 1024

SPEC = {
    "kafka": {
        "version": "3.5.1",
        "replicas": 3,
        "listeners": [{"name": "plain", "port": 9092, "type": "internal", "tls": False}],
        "config": {"default.replication.factor": 3, "min.insync.replicas": 2},
        "storage": {"type": "persistent-claim", "size": "100Gi", "deleteClaim": True},
    },
    "zookeeper": {
        "replicas": 3,
        "storage": {"type": "persistent-claim", "size": "10Gi"},
    },
}


def pods(store: InMemoryResourceStore, prefix: str) -> list[str]:
    return sorted(
        name for (kind, _, name) in store._objects if kind == "Pod" and name.startswith(f"{prefix}-")
    )


def quorum_members(store: InMemoryResourceStore) -> list[str]:
    config_map = store.peek("ConfigMap", NAMESPACE, "my-cluster-zookeeper-quorum")
    return sorted(parse_quorum_config(config_map.data[QUORUM_KEY].decode("utf-8")))


def trigger() -> Reconciliation:
    return Reconciliation("test", "Kafka", NAMESPACE, "my-cluster")


class FailingDeleteStore(InMemoryResourceStore):
    """In-memory store whose first delete of each listed (kind, name) raises."""

    def __init__(self, failures: dict[tuple[str, str], Exception]) -> None:
        super().__init__()
        self.failures = dict(failures)

    async def delete(self, kind: str, namespace: str, name: str) -> bool:
        error = self.failures.pop((kind, name), None)
        if error is not None:
            raise error
        return await super().delete(kind, namespace, name)


def seeded(store: InMemoryResourceStore) -> InMemoryResourceStore:
    store.put(Resource(kind="Kafka", namespace=NAMESPACE, name="my-cluster", spec=copy.deepcopy(SPEC)))
    return store


def make_reconciler(store: InMemoryResourceStore) -> Reconciler:
    settings = OperatorSettings(readiness_timeout_seconds=1.0, readiness_poll_seconds=0.01)
    return Reconciler(
        store,
        KafkaCluster(),
        settings=settings,
        ca_manager=CertificateAuthorityManager(key_size=KEY_SIZE),
        issuer=IdentityIssuer(X509IdentitySigner(key_size=KEY_SIZE)),
    )


@pytest.fixture
def store():
    return seeded(InMemoryResourceStore())


@pytest.fixture
def reconciler(store):
    return make_reconciler(store)


def edit_spec(store: InMemoryResourceStore, ensemble: str, **changes) -> None:
    kafka = store.peek("Kafka", NAMESPACE, "my-cluster")
    kafka.spec[ensemble].update(changes)
    kafka.generation += 1


class TestFirstDeploy:
    """A new Kafka resource is deployed in one pass."""

    @pytest.mark.asyncio
    async def test_deploys_and_reports_ready(self, store, reconciler):
        result = await reconciler.reconcile(trigger())

        assert result.succeeded, result.error
        assert pods(store, "my-cluster-zookeeper") == [
            "my-cluster-zookeeper-0",
            "my-cluster-zookeeper-1",
            "my-cluster-zookeeper-2",
        ]
        assert pods(store, "my-cluster-kafka") == ["my-cluster-kafka-0", "my-cluster-kafka-1", "my-cluster-kafka-2"]

        status = store.peek("Kafka", NAMESPACE, "my-cluster").status
        assert status["conditions"][-1]["type"] == "Ready"
        assert status["observedGeneration"] == 1
        assert status["clusterId"]
        assert status["listeners"][0]["bootstrapServers"] == "my-cluster-kafka-bootstrap.kafka.svc:9092"

    @pytest.mark.asyncio
    async def test_creating_status_precedes_final_status(self, store, reconciler):
        await reconciler.reconcile(trigger())

        assert store.count("update_status", "Kafka") == 2

    @pytest.mark.asyncio
    async def test_writes_cas_certificates_and_config(self, store, reconciler):
        await reconciler.reconcile(trigger())

        for name in (
            "my-cluster-cluster-ca-cert",
            "my-cluster-cluster-ca",
            "my-cluster-clients-ca-cert",
            "my-cluster-clients-ca",
        ):
            assert store.peek("Secret", NAMESPACE, name) is not None
        brokers = store.peek("Secret", NAMESPACE, "my-cluster-kafka-brokers")
        assert "my-cluster-kafka-2.crt" in brokers.data
        assert "my-cluster-zookeeper-0.key" in store.peek("Secret", NAMESPACE, "my-cluster-zookeeper-nodes").data
        server_config = store.peek("ConfigMap", NAMESPACE, "my-cluster-kafka-1").data["server.config"]
        assert server_config.startswith(b"broker.id=1\n")
        assert quorum_members(store) == ["server.1", "server.2", "server.3"]

    @pytest.mark.asyncio
    async def test_pods_carry_revision_and_generations(self, store, reconciler):
        await reconciler.reconcile(trigger())

        broker = store.peek("Pod", NAMESPACE, "my-cluster-kafka-0")
        zookeeper = store.peek("Pod", NAMESPACE, "my-cluster-zookeeper-0")
        descriptor = store.peek("StrimziPodSet", NAMESPACE, "my-cluster-kafka")
        assert broker.annotations[annotations.REVISION] == descriptor.spec["revision"]
        assert broker.annotations[annotations.CLUSTER_CA_CERT_GENERATION] == "0"
        assert broker.annotations[annotations.CLIENTS_CA_CERT_GENERATION] == "0"
        assert annotations.CLIENTS_CA_CERT_GENERATION not in zookeeper.annotations

    @pytest.mark.asyncio
    async def test_zookeeper_is_reconciled_before_brokers(self, store, reconciler):
        await reconciler.reconcile(trigger())

        created = [name for verb, kind, name in store.operations if verb == "create" and kind == "Pod"]
        assert created.index("my-cluster-zookeeper-2") < created.index("my-cluster-kafka-0")

    @pytest.mark.asyncio
    async def test_missing_resource_is_a_no_op(self, store, reconciler):
        result = await reconciler.reconcile(Reconciliation("test", "Kafka", NAMESPACE, "other"))

        assert result.succeeded
        assert result.status is None
        assert store.operations == []


class TestSteadyState:
    """Reconciling an unchanged resource again."""

    @pytest.mark.asyncio
    async def test_second_pass_changes_nothing(self, store, reconciler):
        await reconciler.reconcile(trigger())
        status_writes = store.count("update_status", "Kafka")

        result = await reconciler.reconcile(trigger())

        assert result.succeeded, result.error
        assert store.count("delete") == 0
        assert store.count("update", "Secret") == 0
        assert store.count("update", "ConfigMap") == 0
        assert store.count("update_status", "Kafka") == status_writes

    @pytest.mark.asyncio
    async def test_second_pass_creates_nothing(self, store, reconciler):
        await reconciler.reconcile(trigger())
        creates = store.count("create")

        await reconciler.reconcile(trigger())

        assert store.count("create") == creates

    @pytest.mark.asyncio
    async def test_cluster_id_is_kept(self, store, reconciler):
        first = await reconciler.reconcile(trigger())

        second = await reconciler.reconcile(trigger())

        assert second.status.cluster_id == first.status.cluster_id


class TestRolling:
    """Rolling updates driven by revisions and CA generations."""

    @pytest.mark.asyncio
    async def test_partially_rolled_brokers_finish_rolling(self, store, reconciler):
        await reconciler.reconcile(trigger())
        edit_spec(store, "kafka", replicas=5)
        await reconciler.reconcile(trigger())
        for index in (3, 4):
            pod = store.peek("Pod", NAMESPACE, f"my-cluster-kafka-{index}")
            pod.annotations[annotations.REVISION] = "stale"
        deletes = store.count("delete", "Pod")

        result = await reconciler.reconcile(trigger())

        assert result.succeeded, result.error
        assert store.count("delete", "Pod") - deletes == 2
        rolled = [name for verb, kind, name in store.operations if verb == "delete" and kind == "Pod"]
        assert rolled == ["my-cluster-kafka-3", "my-cluster-kafka-4"]

    @pytest.mark.asyncio
    async def test_config_change_rolls_every_broker_only(self, store, reconciler):
        await reconciler.reconcile(trigger())
        kafka = store.peek("Kafka", NAMESPACE, "my-cluster")
        kafka.spec["kafka"]["config"]["num.partitions"] = 6

        await reconciler.reconcile(trigger())

        deleted = [name for verb, kind, name in store.operations if verb == "delete" and kind == "Pod"]
        assert deleted == ["my-cluster-kafka-0", "my-cluster-kafka-1", "my-cluster-kafka-2"]

    @pytest.mark.asyncio
    async def test_forced_cluster_ca_renewal_rolls_everything(self, store, reconciler):
        await reconciler.reconcile(trigger())
        store.peek("Secret", NAMESPACE, "my-cluster-cluster-ca-cert").annotations[ANNO_FORCE_RENEW] = "true"

        result = await reconciler.reconcile(trigger())

        assert result.succeeded, result.error
        assert store.count("delete", "Pod") == 6
        broker = store.peek("Pod", NAMESPACE, "my-cluster-kafka-0")
        assert broker.annotations[annotations.CLUSTER_CA_CERT_GENERATION] == "1"
        cert_secret = store.peek("Secret", NAMESPACE, "my-cluster-cluster-ca-cert")
        assert ANNO_FORCE_RENEW not in cert_secret.annotations

    @pytest.mark.asyncio
    async def test_manual_rolling_update_annotation_on_pod(self, store, reconciler):
        await reconciler.reconcile(trigger())
        pod = store.peek("Pod", NAMESPACE, "my-cluster-zookeeper-1")
        pod.annotations[annotations.MANUAL_ROLLING_UPDATE] = "true"

        await reconciler.reconcile(trigger())

        deleted = [name for verb, kind, name in store.operations if verb == "delete" and kind == "Pod"]
        assert deleted == ["my-cluster-zookeeper-1"]
        assert annotations.MANUAL_ROLLING_UPDATE not in store.peek("Pod", NAMESPACE, "my-cluster-zookeeper-1").annotations

    @pytest.mark.asyncio
    async def test_delete_pod_and_claim_annotation(self, store, reconciler):
        await reconciler.reconcile(trigger())
        pod = store.peek("Pod", NAMESPACE, "my-cluster-zookeeper-2")
        pod.annotations[annotations.DELETE_POD_AND_PVC] = "true"

        await reconciler.reconcile(trigger())

        deleted = [(kind, name) for verb, kind, name in store.operations if verb == "delete"]
        assert ("PersistentVolumeClaim", "data-my-cluster-zookeeper-2") in deleted
        assert ("Pod", "my-cluster-zookeeper-2") in deleted
        assert store.peek("PersistentVolumeClaim", NAMESPACE, "data-my-cluster-zookeeper-2") is not None
        assert store.peek("Pod", NAMESPACE, "my-cluster-zookeeper-2") is not None

    @pytest.mark.asyncio
    async def test_manual_rolling_update_annotation_on_descriptor(self, store, reconciler):
        await reconciler.reconcile(trigger())
        descriptor = store.peek("StrimziPodSet", NAMESPACE, "my-cluster-kafka")
        descriptor.annotations[annotations.MANUAL_ROLLING_UPDATE] = "true"

        result = await reconciler.reconcile(trigger())

        assert result.succeeded, result.error
        deleted = [name for verb, kind, name in store.operations if verb == "delete" and kind == "Pod"]
        assert deleted == ["my-cluster-kafka-0", "my-cluster-kafka-1", "my-cluster-kafka-2"]
        descriptor = store.peek("StrimziPodSet", NAMESPACE, "my-cluster-kafka")
        assert annotations.MANUAL_ROLLING_UPDATE not in descriptor.annotations

    @pytest.mark.asyncio
    async def test_manual_roll_with_config_change_restarts_on_new_config(self, store, reconciler):
        await reconciler.reconcile(trigger())
        kafka = store.peek("Kafka", NAMESPACE, "my-cluster")
        kafka.spec["kafka"]["config"]["num.partitions"] = 6
        descriptor = store.peek("StrimziPodSet", NAMESPACE, "my-cluster-kafka")
        descriptor.annotations[annotations.MANUAL_ROLLING_UPDATE] = "true"
        start = len(store.operations)

        result = await reconciler.reconcile(trigger())

        assert result.succeeded, result.error
        ops = store.operations[start:]
        reconfigured = ops.index(("update", "ConfigMap", "my-cluster-kafka-0"))
        revision = store.peek("StrimziPodSet", NAMESPACE, "my-cluster-kafka").spec["revision"]
        for index in range(3):
            name = f"my-cluster-kafka-{index}"
            last_create = max(i for i, op in enumerate(ops) if op == ("create", "Pod", name))
            assert last_create > reconfigured
            assert store.peek("Pod", NAMESPACE, name).annotations[annotations.REVISION] == revision

    @pytest.mark.asyncio
    async def test_added_jbod_volume_rolls_each_broker_once(self, store, reconciler):
        volume = {"type": "persistent-claim", "id": 0, "size": "100Gi", "deleteClaim": True}
        edit_spec(store, "kafka", storage={"type": "jbod", "volumes": [volume]})
        await reconciler.reconcile(trigger())
        added = {"type": "persistent-claim", "id": 1, "size": "100Gi", "deleteClaim": True}
        edit_spec(store, "kafka", storage={"type": "jbod", "volumes": [volume, added]})

        result = await reconciler.reconcile(trigger())

        assert result.succeeded, result.error
        deleted = [name for verb, kind, name in store.operations if verb == "delete" and kind == "Pod"]
        assert deleted == ["my-cluster-kafka-0", "my-cluster-kafka-1", "my-cluster-kafka-2"]
        for index in range(3):
            claim = store.peek("PersistentVolumeClaim", NAMESPACE, f"data-1-my-cluster-kafka-{index}")
            assert claim is not None


class TestScaling:
    """Scaling ZooKeeper and brokers."""

    @pytest.mark.asyncio
    async def test_zookeeper_scales_up_one_member_at_a_time(self, store, reconciler):
        await reconciler.reconcile(trigger())
        edit_spec(store, "zookeeper", replicas=5)

        result = await reconciler.reconcile(trigger())

        assert result.succeeded, result.error
        assert quorum_members(store) == ["server.1", "server.2", "server.3", "server.4", "server.5"]
        quorum_writes = [op for op in store.operations if op[1:] == ("ConfigMap", "my-cluster-zookeeper-quorum")]
        assert [verb for verb, _, _ in quorum_writes] == ["create", "update", "update"]
        descriptor_writes = [
            op for op in store.operations if op == ("update", "StrimziPodSet", "my-cluster-zookeeper")
        ]
        assert len(descriptor_writes) >= 3

    @pytest.mark.asyncio
    async def test_zookeeper_scales_down_shrinking_quorum_first(self, store, reconciler):
        await reconciler.reconcile(trigger())
        edit_spec(store, "zookeeper", replicas=1)

        result = await reconciler.reconcile(trigger())

        assert result.succeeded, result.error
        assert pods(store, "my-cluster-zookeeper") == ["my-cluster-zookeeper-0"]
        assert quorum_members(store) == ["server.1"]
        ops = store.operations
        shrink = ops.index(("update", "ConfigMap", "my-cluster-zookeeper-quorum"))
        assert shrink < ops.index(("delete", "Pod", "my-cluster-zookeeper-2"))
        assert store.peek("StrimziPodSet", NAMESPACE, "my-cluster-zookeeper").spec["replicas"] == 1

    @pytest.mark.asyncio
    async def test_broker_scale_down_cleans_up(self, store, reconciler):
        await reconciler.reconcile(trigger())
        edit_spec(store, "kafka", replicas=1)

        result = await reconciler.reconcile(trigger())

        assert result.succeeded, result.error
        assert pods(store, "my-cluster-kafka") == ["my-cluster-kafka-0"]
        assert store.peek("ConfigMap", NAMESPACE, "my-cluster-kafka-1") is None
        assert store.peek("ConfigMap", NAMESPACE, "my-cluster-kafka-0") is not None
        assert store.peek("PersistentVolumeClaim", NAMESPACE, "data-my-cluster-kafka-2") is None
        assert sorted(store.peek("Secret", NAMESPACE, "my-cluster-kafka-brokers").data) == [
            "my-cluster-kafka-0.crt",
            "my-cluster-kafka-0.key",
        ]

    @pytest.mark.asyncio
    async def test_broker_scale_up(self, store, reconciler):
        await reconciler.reconcile(trigger())
        edit_spec(store, "kafka", replicas=4)

        result = await reconciler.reconcile(trigger())

        assert result.succeeded, result.error
        assert pods(store, "my-cluster-kafka")[-1] == "my-cluster-kafka-3"
        assert "my-cluster-kafka-3.crt" in store.peek("Secret", NAMESPACE, "my-cluster-kafka-brokers").data
        assert store.count("delete", "Pod") == 0

    @pytest.mark.asyncio
    async def test_interrupted_broker_scale_down_is_resumed(self):
        store = seeded(
            FailingDeleteStore(
                {("Pod", "my-cluster-kafka-3"): OperationTimeoutError("Deletion of Pod my-cluster-kafka-3", 1.0)}
            )
        )
        reconciler = make_reconciler(store)
        edit_spec(store, "kafka", replicas=5)
        await reconciler.reconcile(trigger())
        edit_spec(store, "kafka", replicas=3)

        first = await reconciler.reconcile(trigger())

        assert not first.succeeded
        assert isinstance(first.error, OperationTimeoutError)
        assert pods(store, "my-cluster-kafka")[-1] == "my-cluster-kafka-3"
        assert store.peek("StrimziPodSet", NAMESPACE, "my-cluster-kafka").spec["replicas"] == 5

        second = await reconciler.reconcile(trigger())

        assert second.succeeded, second.error
        assert pods(store, "my-cluster-kafka") == ["my-cluster-kafka-0", "my-cluster-kafka-1", "my-cluster-kafka-2"]
        assert store.peek("StrimziPodSet", NAMESPACE, "my-cluster-kafka").spec["replicas"] == 3
        assert store.peek("ConfigMap", NAMESPACE, "my-cluster-kafka-3") is None
        assert store.peek("PersistentVolumeClaim", NAMESPACE, "data-my-cluster-kafka-3") is None

    @pytest.mark.asyncio
    async def test_leftover_broker_pod_is_removed(self, store, reconciler):
        await reconciler.reconcile(trigger())
        template = store.peek("Pod", NAMESPACE, "my-cluster-kafka-2")
        store.put(
            Resource(
                kind="Pod",
                namespace=NAMESPACE,
                name="my-cluster-kafka-3",
                labels=dict(template.labels),
                annotations=dict(template.annotations),
                spec=copy.deepcopy(template.spec),
            )
        )

        result = await reconciler.reconcile(trigger())

        assert result.succeeded, result.error
        assert pods(store, "my-cluster-kafka") == ["my-cluster-kafka-0", "my-cluster-kafka-1", "my-cluster-kafka-2"]
        assert ("delete", "Pod", "my-cluster-kafka-3") in store.operations


class TestConfigCleanup:
    """Config resources that no longer belong to any instance."""

    @pytest.mark.asyncio
    async def test_legacy_shared_config_is_deleted(self, store, reconciler):
        await reconciler.reconcile(trigger())
        store.put(Resource(kind="ConfigMap", namespace=NAMESPACE, name="my-cluster-kafka-config"))

        result = await reconciler.reconcile(trigger())

        assert result.succeeded, result.error
        assert store.peek("ConfigMap", NAMESPACE, "my-cluster-kafka-config") is None
        assert ("delete", "ConfigMap", "my-cluster-kafka-config") in store.operations
        assert store.peek("ConfigMap", NAMESPACE, "my-cluster-kafka-0") is not None


class TestFailures:
    """Invalid changes and paused resources."""

    @pytest.mark.asyncio
    async def test_storage_shrink_is_rejected_without_changes(self, store, reconciler):
        await reconciler.reconcile(trigger())
        edit_spec(store, "kafka", storage={"type": "persistent-claim", "size": "50Gi"})
        writes = len(store.operations)

        result = await reconciler.reconcile(trigger())

        assert not result.succeeded
        assert result.completed_phases == ["CAs"]
        readiness = store.peek("Kafka", NAMESPACE, "my-cluster").status["conditions"][-1]
        assert readiness["type"] == "NotReady"
        assert readiness["reason"] == "InvalidResourceError"
        assert readiness["message"].startswith("Storage of my-cluster-kafka cannot be changed as requested")
        assert [op for op in store.operations[writes:] if op[0] != "update_status"] == []
        assert store.peek("Kafka", NAMESPACE, "my-cluster").status["observedGeneration"] == 2

    @pytest.mark.asyncio
    async def test_storage_growth_resizes_claims(self, store, reconciler):
        await reconciler.reconcile(trigger())
        edit_spec(store, "kafka", storage={"type": "persistent-claim", "size": "200Gi", "deleteClaim": True})

        result = await reconciler.reconcile(trigger())

        assert result.succeeded, result.error
        claim = store.peek("PersistentVolumeClaim", NAMESPACE, "data-my-cluster-kafka-0")
        assert claim.spec["resources"] == {"requests": {"storage": "200Gi"}}
        assert store.count("delete", "Pod") == 0

    @pytest.mark.asyncio
    async def test_invalid_spec_reports_not_ready(self, store, reconciler):
        edit_spec(store, "kafka", replicas=0)

        result = await reconciler.reconcile(trigger())

        assert not result.succeeded
        status = store.peek("Kafka", NAMESPACE, "my-cluster").status
        assert status["conditions"][-1]["reason"] == "InvalidResourceError"
        assert "clusterId" not in status
        assert pods(store, "my-cluster-kafka") == []

    @pytest.mark.asyncio
    async def test_paused_resource_is_left_alone(self, store, reconciler):
        await reconciler.reconcile(trigger())
        kafka = store.peek("Kafka", NAMESPACE, "my-cluster")
        kafka.annotations[annotations.PAUSE_RECONCILIATION] = "true"
        kafka.spec["kafka"]["replicas"] = 5
        kafka.generation += 1
        writes = len(store.operations)

        result = await reconciler.reconcile(trigger())

        assert result.succeeded and result.paused
        assert store.operations[writes:] == [("update_status", "Kafka", "my-cluster")]
        status = store.peek("Kafka", NAMESPACE, "my-cluster").status
        assert [c["type"] for c in status["conditions"]] == ["ReconciliationPaused"]
        assert status["observedGeneration"] == 1

    @pytest.mark.asyncio
    async def test_warnings_are_reported(self, store, reconciler):
        edit_spec(store, "kafka", config={})

        result = await reconciler.reconcile(trigger())

        assert result.succeeded, result.error
        reasons = [c.reason for c in result.status.warnings]
        assert reasons == ["KafkaDefaultReplicationFactor", "KafkaMinInsyncReplicas"]

    @pytest.mark.asyncio
    async def test_failure_status_keeps_listeners(self):
        store = seeded(FailingDeleteStore({("ConfigMap", "my-cluster-kafka-config"): RuntimeError("boom")}))
        reconciler = make_reconciler(store)

        result = await reconciler.reconcile(trigger())

        assert not result.succeeded
        status = store.peek("Kafka", NAMESPACE, "my-cluster").status
        assert status["conditions"][-1]["type"] == "NotReady"
        assert status["conditions"][-1]["reason"] == "RuntimeError"
        assert status["listeners"][0]["bootstrapServers"] == "my-cluster-kafka-bootstrap.kafka.svc:9092"
