"""Tests for storage parsing, diffing and claim generation."""

import pytest

from reconciler_core.exceptions import InvalidResourceError
from reconciler_core.storage import (
    EphemeralStorage,
    JbodStorage,
    PersistentClaimStorage,
    diff_storage,
    generate_persistent_volume_claims,
    parse_quantity,
    parse_storage,
)
from reconciler_core.storage.claims import claim_name, claims_for_instance, deletes_claim
from reconciler_core.storage.types import JBOD_ID_REQUIRED, JBOD_ID_UNIQUE, dump_storage


def persistent(size="100Gi", **extra):
    return parse_storage({"type": "persistent-claim", "size": size, **extra})


def jbod(*volumes):
    return parse_storage({"type": "jbod", "volumes": list(volumes)})


def volume(volume_id, size="100Gi", **extra):
    return {"type": "persistent-claim", "id": volume_id, "size": size, **extra}


class TestParseStorage:
    """Tests for parse_storage() and parse_quantity()."""

    def test_parses_each_type(self):
        assert isinstance(parse_storage({"type": "ephemeral"}), EphemeralStorage)
        assert isinstance(persistent(), PersistentClaimStorage)
        assert isinstance(jbod(volume(0)), JbodStorage)

    def test_empty_storage_is_none(self):
        assert parse_storage(None) is None
        assert parse_storage({}) is None

    def test_camel_case_fields(self):
        storage = persistent(**{"class": "gp2", "deleteClaim": True})

        assert storage.storage_class == "gp2"
        assert storage.delete_claim is True

    def test_jbod_persistent_volume_requires_id(self):
        with pytest.raises(InvalidResourceError) as exc_info:
            jbod({"type": "persistent-claim", "size": "10Gi"})

        assert str(exc_info.value) == JBOD_ID_REQUIRED

    def test_jbod_volume_ids_must_be_unique(self):
        with pytest.raises(InvalidResourceError) as exc_info:
            jbod(volume(0), volume(0))

        assert str(exc_info.value) == JBOD_ID_UNIQUE

    def test_unknown_type_is_rejected(self):
        with pytest.raises(InvalidResourceError):
            parse_storage({"type": "tape"})

    def test_dump_round_trips_aliases(self):
        data = {"type": "persistent-claim", "size": "10Gi", "class": "gp2", "deleteClaim": False}

        assert dump_storage(parse_storage(data)) == {**data, "overrides": []}

    @pytest.mark.parametrize(
        "quantity,expected",
        [
            ("123", 123),
            ("1K", 1000),
            ("1Ki", 1024),
            ("100Gi", 100 * 1024**3),
            ("1.5G", 1_500_000_000),
        ],
    )
    def test_parse_quantity(self, quantity, expected):
        assert parse_quantity(quantity) == expected

    def test_parse_quantity_rejects_garbage(self):
        with pytest.raises(InvalidResourceError):
            parse_quantity("lots")


class TestDiffStorage:
    """Tests for diff_storage()."""

    def test_no_change_is_empty(self):
        result = diff_storage(persistent(), persistent(), 3, 3)

        assert result.is_empty
        assert result.is_allowed

    def test_first_deploy_is_empty(self):
        assert diff_storage(None, persistent(), 0, 3).is_empty

    def test_delete_claim_flag_is_ignored(self):
        result = diff_storage(persistent(deleteClaim=False), persistent(deleteClaim=True), 3, 3)

        assert result.is_empty

    def test_shrink_is_rejected(self):
        result = diff_storage(persistent("100Gi"), persistent("50Gi"), 3, 3)

        assert result.size_shrunk
        assert not result.is_allowed
        assert result.rejected_changes == ("size shrunk from 100Gi to 50Gi",)

    def test_grow_is_allowed_but_not_empty(self):
        result = diff_storage(persistent("100Gi"), persistent("200Gi"), 3, 3)

        assert result.size_grown
        assert not result.is_empty
        assert result.is_allowed

    def test_same_size_in_other_units_is_empty(self):
        result = diff_storage(persistent("1Gi"), persistent("1073741824"), 3, 3)

        assert not result.size_grown
        assert not result.size_shrunk
        assert result.is_empty

    def test_type_change_is_rejected(self):
        result = diff_storage(parse_storage({"type": "ephemeral"}), persistent(), 3, 3)

        assert result.type_changed
        assert not result.is_allowed

    def test_storage_class_change_is_rejected(self):
        result = diff_storage(persistent(**{"class": "gp2"}), persistent(**{"class": "io1"}), 3, 3)

        assert not result.is_allowed
        assert "storage class changed from gp2 to io1" in result.rejected_changes

    def test_selector_change_is_rejected(self):
        result = diff_storage(
            persistent(selector={"zone": "a"}), persistent(selector={"zone": "b"}), 3, 3
        )

        assert result.rejected_changes == ("selector changed",)

    def test_ephemeral_size_limit_change_is_rejected(self):
        result = diff_storage(
            parse_storage({"type": "ephemeral", "sizeLimit": "1Gi"}),
            parse_storage({"type": "ephemeral", "sizeLimit": "2Gi"}),
            3,
            3,
        )

        assert not result.is_allowed

    def test_jbod_volume_added_keeps_diff_empty(self):
        result = diff_storage(jbod(volume(0)), jbod(volume(0), volume(1)), 3, 3)

        assert result.volumes_added_or_removed
        assert result.is_empty
        assert result.is_allowed

    def test_jbod_volume_removed_keeps_diff_empty(self):
        result = diff_storage(jbod(volume(0), volume(1)), jbod(volume(0)), 3, 3)

        assert result.volumes_added_or_removed
        assert result.is_empty

    def test_jbod_volume_shrink_names_the_volume(self):
        result = diff_storage(jbod(volume(1, "100Gi")), jbod(volume(1, "10Gi")), 3, 3)

        assert result.rejected_changes == ("(volume ID: 1) size shrunk from 100Gi to 10Gi",)

    def test_jbod_volume_added_while_common_volume_shrinks(self):
        result = diff_storage(
            jbod(volume(0, "100Gi")), jbod(volume(0, "50Gi"), volume(1)), 3, 3
        )

        assert result.volumes_added_or_removed
        assert result.size_shrunk
        assert not result.is_empty
        assert result.rejected_changes == ("(volume ID: 0) size shrunk from 100Gi to 50Gi",)

    def test_jbod_volume_type_change_is_rejected(self):
        result = diff_storage(
            jbod(volume(0)), jbod({"type": "ephemeral", "id": 0}), 3, 3
        )

        assert result.type_changed
        assert not result.is_allowed


class TestOverrideChanges:
    """Overrides may only change for indices outside [0, min(current, desired))."""

    @pytest.mark.parametrize("index", range(5))
    def test_adding_override_while_scaling_up(self, index):
        current = persistent()
        desired = persistent(overrides=[{"broker": index, "class": "fast"}])

        result = diff_storage(current, desired, 3, 5)

        assert result.is_empty is (index >= 3)

    @pytest.mark.parametrize("index", range(5))
    def test_removing_override_while_scaling_down(self, index):
        current = persistent(overrides=[{"broker": index, "class": "fast"}])
        desired = persistent()

        result = diff_storage(current, desired, 5, 3)

        assert result.is_empty is (index >= 3)

    def test_unchanged_override_for_existing_instance(self):
        overrides = [{"broker": 0, "class": "fast"}]

        result = diff_storage(persistent(overrides=overrides), persistent(overrides=overrides), 3, 3)

        assert result.is_empty

    def test_rejected_override_is_described(self):
        result = diff_storage(persistent(), persistent(overrides=[{"broker": 1, "class": "fast"}]), 3, 3)

        assert result.rejected_changes == ("overrides changed for existing instances",)


class TestClaims:
    """Tests for generate_persistent_volume_claims()."""

    def test_single_claim_names(self):
        claims = generate_persistent_volume_claims(persistent(), "my-cluster-kafka", 3, "kafka")

        assert [c.name for c in claims] == [
            "data-my-cluster-kafka-0",
            "data-my-cluster-kafka-1",
            "data-my-cluster-kafka-2",
        ]

    def test_jbod_claims_ordered_by_volume_then_replica(self):
        claims = generate_persistent_volume_claims(
            jbod(volume(0), volume(1)), "my-cluster-kafka", 2, "kafka"
        )

        assert [c.name for c in claims] == [
            "data-0-my-cluster-kafka-0",
            "data-0-my-cluster-kafka-1",
            "data-1-my-cluster-kafka-0",
            "data-1-my-cluster-kafka-1",
        ]

    def test_ephemeral_yields_no_claims(self):
        assert generate_persistent_volume_claims(
            parse_storage({"type": "ephemeral"}), "my-cluster-kafka", 3, "kafka"
        ) == []

    def test_jbod_ephemeral_volumes_are_skipped(self):
        claims = generate_persistent_volume_claims(
            jbod({"type": "ephemeral", "id": 0}, volume(1)), "c-kafka", 1, "kafka"
        )

        assert [c.name for c in claims] == ["data-1-c-kafka-0"]

    def test_override_selects_storage_class(self):
        storage = persistent(**{"class": "gp2"}, overrides=[{"broker": 1, "class": "fast"}])

        claims = generate_persistent_volume_claims(storage, "c-kafka", 3, "kafka")

        assert [c.spec["storageClassName"] for c in claims] == ["gp2", "fast", "gp2"]

    def test_claim_spec_and_delete_annotation(self):
        claims = generate_persistent_volume_claims(
            persistent("10Gi", deleteClaim=True, selector={"zone": "a"}), "c-kafka", 1, "kafka",
            labels={"strimzi.io/cluster": "c"},
        )

        claim = claims[0]
        assert claim.kind == "PersistentVolumeClaim"
        assert claim.spec["resources"] == {"requests": {"storage": "10Gi"}}
        assert claim.spec["selector"] == {"matchLabels": {"zone": "a"}}
        assert claim.labels == {"strimzi.io/cluster": "c"}
        assert deletes_claim(claim)

    def test_claims_for_instance(self):
        claims = generate_persistent_volume_claims(
            jbod(volume(0), volume(1)), "c-kafka", 12, "kafka"
        )

        selected = claims_for_instance(claims, "c-kafka", 1)

        assert [c.name for c in selected] == ["data-0-c-kafka-1", "data-1-c-kafka-1"]

    def test_claim_name(self):
        assert claim_name("c-zookeeper", 2) == "data-c-zookeeper-2"
        assert claim_name("c-kafka", 2, 7) == "data-7-c-kafka-2"
