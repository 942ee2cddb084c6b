"""
Storage topology diff and validation.

diff_storage() compares the storage an ensemble currently runs with against
the storage the custom resource now asks for, and classifies the change:

- type change (ephemeral / persistent-claim / jbod): never allowed
- JBOD volume added or removed: allowed, requires the affected instances
  to roll so the new mount takes effect
- size increase: allowed (volume expansion)
- size decrease, storage class or selector change: not allowed
- per-instance overrides: allowed only for instance indices that do not
  exist both before and after this reconciliation

The override rule is the subtle one. While scaling from 3 to 5 replicas,
overrides for indices 3 and 4 may be added because those instances do not
exist yet; while scaling from 5 to 3, overrides for 3 and 4 may be removed
because those instances are about to go away. Indices 0..2 exist on both
sides and their overrides are frozen.
"""

import logging
from dataclasses import dataclass, field

from reconciler_core.storage.types import (
    EphemeralStorage,
    JbodStorage,
    PersistentClaimStorage,
)

logger = logging.getLogger(__name__)

StorageModel = EphemeralStorage | PersistentClaimStorage | JbodStorage


@dataclass(frozen=True)
class StorageDiffResult:
    """
    Classification of a storage change.

    Derived, never stored: recomputed every reconciliation from
    (current, desired, current_replicas, desired_replicas).

    Attributes:
        type_changed: Storage kind differs (for JBOD, also per volume).
        volumes_added_or_removed: A JBOD volume id exists on one side only.
        size_shrunk: A volume common to both sides got smaller.
        size_grown: A volume common to both sides got bigger.
        rejected_changes: Human-readable descriptions of every change that
            cannot be applied to running instances.
    """

    type_changed: bool = False
    volumes_added_or_removed: bool = False
    size_shrunk: bool = False
    size_grown: bool = False
    rejected_changes: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        """True when nothing but the deleteClaim flag or JBOD volume membership changed."""
        return not (self.type_changed or self.size_grown or self.rejected_changes)

    @property
    def is_allowed(self) -> bool:
        """True when the change can be rolled out (empty, or only volumes grew)."""
        return not self.type_changed and not self.rejected_changes


@dataclass
class _Accumulator:
    type_changed: bool = False
    volumes_added_or_removed: bool = False
    size_shrunk: bool = False
    size_grown: bool = False
    rejected: list[str] = field(default_factory=list)

    def result(self) -> StorageDiffResult:
        return StorageDiffResult(
            type_changed=self.type_changed,
            volumes_added_or_removed=self.volumes_added_or_removed,
            size_shrunk=self.size_shrunk,
            size_grown=self.size_grown,
            rejected_changes=tuple(self.rejected),
        )


def diff_storage(
    current: StorageModel | None,
    desired: StorageModel | None,
    current_replicas: int,
    desired_replicas: int,
) -> StorageDiffResult:
    """
    Diff two storage topologies.

    Args:
        current: Storage the ensemble currently runs with (None on first deploy).
        desired: Storage requested by the custom resource.
        current_replicas: Instances running before this reconciliation.
        desired_replicas: Instances requested after it.

    Returns:
        StorageDiffResult classifying the change.
    """
    acc = _Accumulator()

    if current is None or desired is None:
        return acc.result()

    if current.type != desired.type:
        logger.debug(f"Storage type changes from {current.type} to {desired.type}")
        acc.type_changed = True
        return acc.result()

    if isinstance(current, JbodStorage) and isinstance(desired, JbodStorage):
        volume_ids = {v.id for v in current.volumes} | {v.id for v in desired.volumes}
        for volume_id in sorted(volume_ids, key=lambda i: (i is None, i)):
            current_volume = current.volume(volume_id)
            desired_volume = desired.volume(volume_id)
            if (current_volume is None) != (desired_volume is None):
                acc.volumes_added_or_removed = True
                continue
            if current_volume.type != desired_volume.type:
                acc.type_changed = True
                continue
            _diff_volume(
                acc,
                current_volume,
                desired_volume,
                current_replicas,
                desired_replicas,
                f"(volume ID: {volume_id}) ",
            )
    else:
        _diff_volume(acc, current, desired, current_replicas, desired_replicas, "")

    return acc.result()


def _diff_volume(
    acc: _Accumulator,
    current: EphemeralStorage | PersistentClaimStorage,
    desired: EphemeralStorage | PersistentClaimStorage,
    current_replicas: int,
    desired_replicas: int,
    desc: str,
) -> None:
    if isinstance(current, EphemeralStorage) and isinstance(desired, EphemeralStorage):
        if current.size_limit != desired.size_limit:
            acc.rejected.append(
                f"{desc}size limit changed from {current.size_limit} to {desired.size_limit}"
            )
        return

    assert isinstance(current, PersistentClaimStorage)
    assert isinstance(desired, PersistentClaimStorage)

    if current.id != desired.id:
        acc.rejected.append(f"{desc}id changed from {current.id} to {desired.id}")

    if current.size_bytes > desired.size_bytes:
        acc.size_shrunk = True
        acc.rejected.append(f"{desc}size shrunk from {current.size} to {desired.size}")
    elif current.size_bytes < desired.size_bytes:
        acc.size_grown = True

    if current.storage_class != desired.storage_class:
        acc.rejected.append(
            f"{desc}storage class changed from {current.storage_class} to {desired.storage_class}"
        )

    if current.selector != desired.selector:
        acc.rejected.append(f"{desc}selector changed")

    if not is_override_change_allowed(current, desired, current_replicas, desired_replicas):
        acc.rejected.append(f"{desc}overrides changed for existing instances")


def is_override_change_allowed(
    current: PersistentClaimStorage,
    desired: PersistentClaimStorage,
    current_replicas: int,
    desired_replicas: int,
) -> bool:
    """
    Check that overrides only changed for instances outside the overlap.

    Only indices in [0, min(current_replicas, desired_replicas) - 1] exist
    both before and after this reconciliation; for those the override must
    be identical or absent on both sides.
    """
    current_overrides = current.overrides_by_index()
    desired_overrides = desired.overrides_by_index()

    existed_and_will_exist = min(current_replicas, desired_replicas)
    for index in range(existed_and_will_exist):
        if current_overrides.get(index) != desired_overrides.get(index):
            return False
    return True
