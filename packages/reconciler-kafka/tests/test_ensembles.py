"""Tests for the ZooKeeper and broker ensemble capabilities."""

from unittest.mock import AsyncMock

import pytest

from reconciler_protocols import EnsembleDescriptor, Resource
from reconciler_core.exceptions import InvalidResourceError
from reconciler_core.reconcile import BROKER, COORDINATION, EnsembleCapability
from reconciler_core.store import InMemoryResourceStore
from reconciler_kafka.brokers import SERVER_CONFIG_KEY, SKIP_SCALE_DOWN_CHECK, BrokerEnsemble
from reconciler_kafka.zookeeper import (
    QUORUM_KEY,
    CoordinationEnsemble,
    generate_quorum_config,
    parse_quorum_config,
    quorum_config_differs,
    quorum_config_lines,
)

ZOOKEEPER = EnsembleDescriptor(name="c-zookeeper", role=COORDINATION, replicas=3, revision="r")
BROKERS = EnsembleDescriptor(
    name="c-kafka",
    role=BROKER,
    replicas=3,
    revision="r",
    config={"zookeeper.connect": "c-zookeeper-client:2181", "auto.create.topics.enable": "false"},
    listeners=[
        {"name": "plain", "port": 9092, "type": "internal", "tls": False},
        {"name": "internal", "port": 9094, "type": "cluster-ip", "tls": False},
        {"name": "external", "port": 9095, "type": "loadbalancer", "tls": True},
    ],
)


class TestQuorumConfig:
    """Tests for the quorum configuration helpers."""

    def test_generate(self):
        servers = generate_quorum_config(2, lambda i: f"zk-{i}")

        assert servers == {
            "server.1": "zk-0:2888:3888:participant;127.0.0.1:12181",
            "server.2": "zk-1:2888:3888:participant;127.0.0.1:12181",
        }

    def test_parse_keeps_server_lines(self):
        text = "\n".join(
            [
                "# dynamic config",
                "server.1=zk-0:2888:3888:participant;127.0.0.1:12181",
                "version=100000000",
                "  server.2=zk-1:2888:3888:participant;127.0.0.1:12181  ",
            ]
        )

        assert parse_quorum_config(text) == generate_quorum_config(2, lambda i: f"zk-{i}")

    def test_lines_round_trip(self):
        servers = generate_quorum_config(3, lambda i: f"zk-{i}")

        assert parse_quorum_config("\n".join(quorum_config_lines(servers))) == servers

    def test_differs(self):
        two = generate_quorum_config(2, lambda i: f"zk-{i}")
        three = generate_quorum_config(3, lambda i: f"zk-{i}")

        assert quorum_config_differs(two, three)
        assert not quorum_config_differs(three, dict(three))


class TestCoordinationEnsemble:
    """Tests for CoordinationEnsemble."""

    @pytest.fixture
    def zookeeper(self):
        return CoordinationEnsemble()

    def test_satisfies_capability(self, zookeeper):
        assert isinstance(zookeeper, EnsembleCapability)
        assert zookeeper.role == COORDINATION
        assert zookeeper.sequential_scaling
        assert not zookeeper.trusts_clients_ca

    def test_identities(self, zookeeper):
        identities = zookeeper.identities(ZOOKEEPER, "kafka", 2)

        assert [i.name for i in identities] == ["c-zookeeper-0", "c-zookeeper-1"]
        assert identities[1].dns_names == [
            "c-zookeeper-1.c-zookeeper-nodes.kafka.svc",
            "c-zookeeper-1.c-zookeeper-nodes.kafka.svc.cluster.local",
            "c-zookeeper-client",
            "c-zookeeper-client.kafka",
            "c-zookeeper-client.kafka.svc",
            "c-zookeeper-client.kafka.svc.cluster.local",
        ]

    def test_service_names(self, zookeeper):
        assert zookeeper.headless_service(ZOOKEEPER) == "c-zookeeper-nodes"
        assert zookeeper.shared_services(ZOOKEEPER) == ["c-zookeeper-client"]
        assert zookeeper.instance_address(ZOOKEEPER, "kafka", 2) == "c-zookeeper-2.c-zookeeper-nodes.kafka.svc"

    def test_no_instance_config_or_listeners(self, zookeeper):
        assert zookeeper.instance_config(ZOOKEEPER, 0) is None
        assert zookeeper.listener_statuses(Resource(kind="Kafka", namespace="kafka", name="c"), ZOOKEEPER) == []
        assert zookeeper.certificate_secret_name("c") == "c-zookeeper-nodes"

    @pytest.mark.asyncio
    async def test_membership_change_writes_quorum(self, zookeeper):
        store = InMemoryResourceStore()

        await zookeeper.on_membership_change(store, "kafka", ZOOKEEPER, 2)

        config_map = store.peek("ConfigMap", "kafka", "c-zookeeper-quorum")
        assert config_map.labels == {"strimzi.io/cluster": "c", "strimzi.io/name": "c-zookeeper"}
        assert parse_quorum_config(config_map.data[QUORUM_KEY].decode("utf-8")) == {
            "server.1": "c-zookeeper-0.c-zookeeper-nodes.kafka.svc:2888:3888:participant;127.0.0.1:12181",
            "server.2": "c-zookeeper-1.c-zookeeper-nodes.kafka.svc:2888:3888:participant;127.0.0.1:12181",
        }

    @pytest.mark.asyncio
    async def test_unchanged_membership_is_not_rewritten(self, zookeeper):
        store = InMemoryResourceStore()
        await zookeeper.on_membership_change(store, "kafka", ZOOKEEPER, 3)

        await zookeeper.on_membership_change(store, "kafka", ZOOKEEPER, 3)
        await zookeeper.on_membership_change(store, "kafka", ZOOKEEPER, 2)

        assert store.count("create", "ConfigMap") == 1
        assert store.count("update", "ConfigMap") == 1
        servers = parse_quorum_config(
            store.peek("ConfigMap", "kafka", "c-zookeeper-quorum").data[QUORUM_KEY].decode("utf-8")
        )
        assert sorted(servers) == ["server.1", "server.2"]

    @pytest.mark.asyncio
    async def test_scale_down_check_is_a_no_op(self, zookeeper):
        await zookeeper.check_scale_down(InMemoryResourceStore(), "kafka", ZOOKEEPER, [1, 2])


class TestBrokerEnsemble:
    """Tests for BrokerEnsemble."""

    def test_satisfies_capability(self):
        brokers = BrokerEnsemble()

        assert isinstance(brokers, EnsembleCapability)
        assert brokers.trusts_clients_ca
        assert not brokers.sequential_scaling
        assert brokers.certificate_secret_name("c") == "c-kafka-brokers"

    def test_service_names(self):
        brokers = BrokerEnsemble()

        assert brokers.headless_service(BROKERS) == "c-kafka-brokers"
        assert brokers.shared_services(BROKERS) == ["c-kafka-bootstrap"]

    def test_identities_include_bootstrap(self):
        identity = BrokerEnsemble().identities(BROKERS, "kafka", 1)[0]

        assert identity.dns_names[:2] == [
            "c-kafka-0.c-kafka-brokers.kafka.svc",
            "c-kafka-0.c-kafka-brokers.kafka.svc.cluster.local",
        ]
        assert "c-kafka-bootstrap.kafka.svc" in identity.dns_names

    def test_instance_config(self):
        config = BrokerEnsemble().instance_config(BROKERS, 2)

        assert config == {
            SERVER_CONFIG_KEY: "broker.id=2\n"
            "auto.create.topics.enable=false\n"
            "zookeeper.connect=c-zookeeper-client:2181"
        }

    def test_listener_statuses(self):
        cluster = Resource(kind="Kafka", namespace="kafka", name="c")

        statuses = BrokerEnsemble().listener_statuses(cluster, BROKERS)

        assert [s.name for s in statuses] == ["plain", "internal", "external"]
        assert statuses[0].bootstrap_servers == "c-kafka-bootstrap.kafka.svc:9092"
        assert statuses[1].bootstrap_servers == "c-kafka-internal-bootstrap.kafka.svc:9094"
        assert statuses[2].addresses == []
        assert statuses[2].bootstrap_servers is None

    @pytest.mark.asyncio
    async def test_scale_down_without_inspector_is_allowed(self):
        await BrokerEnsemble().check_scale_down(InMemoryResourceStore(), "kafka", BROKERS, [2])

    @pytest.mark.asyncio
    async def test_scale_down_of_empty_brokers_is_allowed(self):
        inspector = AsyncMock()
        inspector.brokers_with_partitions.return_value = []

        await BrokerEnsemble(partition_inspector=inspector).check_scale_down(
            InMemoryResourceStore(), "kafka", BROKERS, [3, 4]
        )

        inspector.brokers_with_partitions.assert_awaited_once_with("kafka", BROKERS, [3, 4])

    @pytest.mark.asyncio
    async def test_scale_down_of_busy_brokers_is_refused(self):
        inspector = AsyncMock()
        inspector.brokers_with_partitions.return_value = [4]

        with pytest.raises(InvalidResourceError) as exc_info:
            await BrokerEnsemble(partition_inspector=inspector).check_scale_down(
                InMemoryResourceStore(), "kafka", BROKERS, [4, 3]
            )

        assert str(exc_info.value) == "Cannot scale down brokers [3, 4] because brokers [4] are not empty"

    @pytest.mark.asyncio
    async def test_skip_annotation_disables_the_check(self):
        store = InMemoryResourceStore()
        store.put(Resource(kind="Kafka", namespace="kafka", name="c", annotations={SKIP_SCALE_DOWN_CHECK: "true"}))
        inspector = AsyncMock()

        await BrokerEnsemble(partition_inspector=inspector).check_scale_down(store, "kafka", BROKERS, [2])

        inspector.brokers_with_partitions.assert_not_awaited()
