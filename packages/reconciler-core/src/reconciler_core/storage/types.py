"""
Storage topology models.

Storage is declared in the cluster custom resource as one of three kinds,
selected by the ``type`` field:
- ephemeral: emptyDir volume, lost on restart
- persistent-claim: one persistent volume claim per instance
- jbod: "just a bunch of disks", a list of ephemeral or persistent-claim
  volumes, each carrying a caller-assigned integer id

Per project patterns:
- Pydantic BaseModel for validation and serialization
- Field() with descriptions for documentation
- camelCase aliases so models round-trip the custom resource JSON
"""

import re
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    model_validator,
)
from pydantic.alias_generators import to_camel

from reconciler_core.exceptions import InvalidResourceError

JBOD_ID_REQUIRED = "The 'id' property is required for volumes in JBOD storage."
JBOD_ID_UNIQUE = "Volume IDs in JBOD storage must be unique."

_QUANTITY = re.compile(r"^([0-9]+(?:\.[0-9]+)?)([A-Za-z]*)$")

_SUFFIXES = {
    "": 1,
    "K": 1000,
    "k": 1000,
    "M": 1000**2,
    "G": 1000**3,
    "T": 1000**4,
    "P": 1000**5,
    "E": 1000**6,
    "Ki": 1024,
    "Mi": 1024**2,
    "Gi": 1024**3,
    "Ti": 1024**4,
    "Pi": 1024**5,
    "Ei": 1024**6,
}


def parse_quantity(quantity: str) -> int:
    """
    Convert a Kubernetes memory/storage quantity to bytes.

    Args:
        quantity: Quantity string such as "100Gi", "500M" or "123".

    Returns:
        Size in bytes.

    Raises:
        InvalidResourceError: If the quantity is not recognised.
    """
    match = _QUANTITY.match(quantity.strip())
    if match is None or match.group(2) not in _SUFFIXES:
        raise InvalidResourceError(f"Invalid storage quantity '{quantity}'")
    number, suffix = match.groups()
    return int(float(number) * _SUFFIXES[suffix])


class _StorageModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class PersistentClaimOverride(_StorageModel):
    """Per-instance storage class override."""

    broker: int = Field(description="Index of the instance the override applies to")
    storage_class: str | None = Field(
        default=None, alias="class", description="Storage class for this instance"
    )


class EphemeralStorage(_StorageModel):
    """Ephemeral (emptyDir) storage."""

    type: Literal["ephemeral"] = "ephemeral"
    id: int | None = Field(default=None, description="Volume id (JBOD only)")
    size_limit: str | None = Field(default=None, description="emptyDir size limit")


class PersistentClaimStorage(_StorageModel):
    """
    Persistent volume claim storage.

    One claim is created per instance. ``overrides`` pin a different
    storage class for specific instance indices.
    """

    type: Literal["persistent-claim"] = "persistent-claim"
    id: int | None = Field(default=None, description="Volume id (JBOD only)")
    size: str | None = Field(default=None, description="Requested size, e.g. 100Gi")
    storage_class: str | None = Field(default=None, alias="class")
    selector: dict[str, str] | None = None
    delete_claim: bool = Field(
        default=False, description="Delete the claim when the instance is removed"
    )
    overrides: list[PersistentClaimOverride] = Field(default_factory=list)

    @property
    def size_bytes(self) -> int:
        return parse_quantity(self.size) if self.size else 0

    def overrides_by_index(self) -> dict[int, PersistentClaimOverride]:
        # First override wins when an index is listed twice
        result: dict[int, PersistentClaimOverride] = {}
        for override in self.overrides:
            result.setdefault(override.broker, override)
        return result

    def storage_class_for(self, index: int) -> str | None:
        """Storage class for instance ``index``, honouring overrides."""
        override = self.overrides_by_index().get(index)
        if override is not None and override.storage_class is not None:
            return override.storage_class
        return self.storage_class


SingleVolumeStorage = Annotated[
    Union[EphemeralStorage, PersistentClaimStorage],
    Field(discriminator="type"),
]


class JbodStorage(_StorageModel):
    """Multiple independently tracked volumes per instance."""

    type: Literal["jbod"] = "jbod"
    volumes: list[SingleVolumeStorage] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_volume_ids(self) -> "JbodStorage":
        seen: set[int] = set()
        for volume in self.volumes:
            if isinstance(volume, PersistentClaimStorage) and volume.id is None:
                raise ValueError(JBOD_ID_REQUIRED)
            if volume.id is not None:
                if volume.id in seen:
                    raise ValueError(JBOD_ID_UNIQUE)
                seen.add(volume.id)
        return self

    def volume(self, volume_id: int) -> EphemeralStorage | PersistentClaimStorage | None:
        for volume in self.volumes:
            if volume.id == volume_id:
                return volume
        return None


Storage = Annotated[
    Union[EphemeralStorage, PersistentClaimStorage, JbodStorage],
    Field(discriminator="type"),
]

_STORAGE_ADAPTER: TypeAdapter[Any] = TypeAdapter(Storage)


def _validation_message(error: ValidationError) -> str:
    messages = []
    for detail in error.errors():
        original = detail.get("ctx", {}).get("error")
        messages.append(str(original) if original is not None else detail["msg"])
    return "; ".join(messages)


def parse_storage(data: dict[str, Any] | None) -> EphemeralStorage | PersistentClaimStorage | JbodStorage | None:
    """
    Parse a storage block from the custom resource.

    Returns:
        The storage model, or None when no storage is declared.

    Raises:
        InvalidResourceError: If the block fails validation. The message is
            the validator's own text so it can be surfaced verbatim.
    """
    if not data:
        return None
    try:
        return _STORAGE_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise InvalidResourceError(_validation_message(e)) from e


def dump_storage(storage: BaseModel | None) -> dict[str, Any]:
    """Serialize a storage model back to custom resource JSON."""
    if storage is None:
        return {}
    return storage.model_dump(by_alias=True, exclude_none=True)
