"""
Persistent volume claim generation.

Claims are named so that a restarted or recreated instance binds back to
the same volume:
- single persistent-claim storage: data-<ensemble>-<index>
- JBOD volume with id N: data-N-<ensemble>-<index>

Ephemeral storage, and ephemeral volumes inside JBOD, produce no claims.
"""

import re

from reconciler_protocols import Resource

from reconciler_core.exceptions import InvalidResourceError
from reconciler_core.storage.types import (
    JBOD_ID_REQUIRED,
    EphemeralStorage,
    JbodStorage,
    PersistentClaimStorage,
)

CLAIM_KIND = "PersistentVolumeClaim"
ANNO_DELETE_CLAIM = "strimzi.io/delete-claim"


def claim_name(ensemble_name: str, index: int, volume_id: int | None = None) -> str:
    if volume_id is None:
        return f"data-{ensemble_name}-{index}"
    return f"data-{volume_id}-{ensemble_name}-{index}"


def _claim(
    volume: PersistentClaimStorage,
    name: str,
    index: int,
    namespace: str,
    labels: dict[str, str],
) -> Resource:
    spec: dict = {
        "accessModes": ["ReadWriteOnce"],
        "resources": {"requests": {"storage": volume.size}},
    }
    storage_class = volume.storage_class_for(index)
    if storage_class is not None:
        spec["storageClassName"] = storage_class
    if volume.selector:
        spec["selector"] = {"matchLabels": dict(volume.selector)}
    return Resource(
        kind=CLAIM_KIND,
        namespace=namespace,
        name=name,
        annotations={ANNO_DELETE_CLAIM: str(volume.delete_claim).lower()},
        labels=dict(labels),
        spec=spec,
    )


def generate_persistent_volume_claims(
    storage: EphemeralStorage | PersistentClaimStorage | JbodStorage | None,
    ensemble_name: str,
    replicas: int,
    namespace: str,
    labels: dict[str, str] | None = None,
) -> list[Resource]:
    """
    Generate the claims an ensemble of ``replicas`` instances needs.

    JBOD claims are ordered by volume, then by instance index.

    Raises:
        InvalidResourceError: If a JBOD persistent volume has no id.
    """
    labels = labels or {}
    claims: list[Resource] = []

    if isinstance(storage, PersistentClaimStorage):
        for index in range(replicas):
            claims.append(
                _claim(storage, claim_name(ensemble_name, index), index, namespace, labels)
            )
    elif isinstance(storage, JbodStorage):
        for volume in storage.volumes:
            if not isinstance(volume, PersistentClaimStorage):
                continue
            if volume.id is None:
                raise InvalidResourceError(JBOD_ID_REQUIRED)
            for index in range(replicas):
                claims.append(
                    _claim(
                        volume,
                        claim_name(ensemble_name, index, volume.id),
                        index,
                        namespace,
                        labels,
                    )
                )

    return claims


def claims_for_instance(claims: list[Resource], ensemble_name: str, index: int) -> list[Resource]:
    """Select the claims that belong to instance ``index``."""
    pattern = re.compile(rf"^data-(?:[0-9]+-)?{re.escape(ensemble_name)}-{index}$")
    return [c for c in claims if pattern.match(c.name)]


def deletes_claim(claim: Resource) -> bool:
    return claim.annotations.get(ANNO_DELETE_CLAIM) == "true"
