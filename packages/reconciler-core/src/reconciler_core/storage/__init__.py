"""Storage topology models, diffing and claim generation."""

from reconciler_core.storage.claims import generate_persistent_volume_claims
from reconciler_core.storage.diff import StorageDiffResult, diff_storage
from reconciler_core.storage.types import (
    EphemeralStorage,
    JbodStorage,
    PersistentClaimOverride,
    PersistentClaimStorage,
    parse_quantity,
    parse_storage,
)

__all__ = [
    "EphemeralStorage",
    "JbodStorage",
    "PersistentClaimOverride",
    "PersistentClaimStorage",
    "StorageDiffResult",
    "diff_storage",
    "generate_persistent_volume_claims",
    "parse_quantity",
    "parse_storage",
]
