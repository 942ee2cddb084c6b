"""
Status assembly and persistence.

This module defines:
- Condition, ListenerAddress, ListenerStatus, ClusterStatus: pydantic
  models of the custom resource status (camelCase on the wire)
- StatusAssembler: Builds the status from the outcome of an attempt
- status_differs / persist_status: Write the status only when it changed

A status carries exactly one readiness condition (Ready, NotReady or
ReconciliationPaused), preceded by any Warning conditions.
"""

import base64
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from reconciler_protocols import Resource, ResourceStoreProtocol

from reconciler_core.reconcile.state import ReconciliationState

logger = logging.getLogger(__name__)

READY = "Ready"
NOT_READY = "NotReady"
PAUSED = "ReconciliationPaused"
WARNING = "Warning"

CREATING_REASON = "Creating"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_cluster_id() -> str:
    """Random 22 character URL-safe id, the format Kafka uses for cluster ids."""
    return base64.urlsafe_b64encode(uuid.uuid4().bytes).decode("ascii").rstrip("=")


class _StatusModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Condition(_StatusModel):
    type: str
    status: str = "True"
    reason: str | None = None
    message: str | None = None
    last_transition_time: str | None = None

    def same_as(self, other: "Condition") -> bool:
        """Equal apart from lastTransitionTime."""
        return (self.type, self.status, self.reason, self.message) == (
            other.type,
            other.status,
            other.reason,
            other.message,
        )


def warning(reason: str, message: str) -> Condition:
    return Condition(type=WARNING, reason=reason, message=message)


class ListenerAddress(_StatusModel):
    host: str
    port: int


class ListenerStatus(_StatusModel):
    name: str
    type: str | None = None
    addresses: list[ListenerAddress] = Field(default_factory=list)
    bootstrap_servers: str | None = None


class ClusterStatus(_StatusModel):
    conditions: list[Condition] = Field(default_factory=list)
    listeners: list[ListenerStatus] | None = None
    cluster_id: str | None = None
    observed_generation: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ClusterStatus | None":
        if not data:
            return None
        return cls.model_validate(data)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    def condition(self, type_: str) -> Condition | None:
        return next((c for c in self.conditions if c.type == type_), None)

    @property
    def readiness(self) -> Condition | None:
        return next(
            (c for c in self.conditions if c.type in (READY, NOT_READY, PAUSED)),
            None,
        )

    @property
    def warnings(self) -> list[Condition]:
        return [c for c in self.conditions if c.type == WARNING]


def status_differs(old: ClusterStatus | None, new: ClusterStatus) -> bool:
    """True if ``new`` differs from ``old`` in anything but transition times."""
    if old is None:
        return True
    exclude = {"conditions": {"__all__": {"last_transition_time"}}}
    return old.model_dump(exclude=exclude) != new.model_dump(exclude=exclude)


class StatusAssembler:
    """
    Builds the status written at the end of an attempt.

    Args:
        clock: Source of lastTransitionTime for changed conditions
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self.clock = clock

    def assemble(self, state: ReconciliationState, error: BaseException | None = None) -> ClusterStatus:
        """
        Status for a finished attempt.

        ``observed_generation`` is the generation that was attempted, even
        on failure. The cluster id is generated on the first successful
        attempt and carried over afterwards.
        """
        previous = state.previous_status
        conditions = list(state.warnings)
        if error is None:
            conditions.append(Condition(type=READY))
        else:
            conditions.append(
                Condition(type=NOT_READY, reason=type(error).__name__, message=str(error))
            )

        cluster_id = previous.cluster_id if previous is not None else None
        if cluster_id is None and error is None:
            cluster_id = new_cluster_id()

        status = ClusterStatus(
            conditions=conditions,
            listeners=list(state.listeners) or None,
            cluster_id=cluster_id,
            observed_generation=state.cluster.generation,
        )
        return self._stamp(previous, status)

    def creating(self, cluster: Resource, message: str) -> ClusterStatus:
        """Intermediate status of a resource that has never been reconciled."""
        status = ClusterStatus(
            conditions=[Condition(type=NOT_READY, reason=CREATING_REASON, message=message)],
        )
        return self._stamp(None, status)

    def paused(self, previous: ClusterStatus | None) -> ClusterStatus:
        """Status of a paused resource; the observed generation does not move."""
        status = ClusterStatus(
            conditions=[Condition(type=PAUSED)],
            listeners=previous.listeners if previous is not None else None,
            cluster_id=previous.cluster_id if previous is not None else None,
            observed_generation=previous.observed_generation if previous is not None else 0,
        )
        return self._stamp(previous, status)

    def _stamp(self, previous: ClusterStatus | None, status: ClusterStatus) -> ClusterStatus:
        now = self.clock().strftime("%Y-%m-%dT%H:%M:%SZ")
        old_conditions = previous.conditions if previous is not None else []
        for condition in status.conditions:
            match = next((c for c in old_conditions if c.same_as(condition)), None)
            if match is not None and match.last_transition_time:
                condition.last_transition_time = match.last_transition_time
            else:
                condition.last_transition_time = now
        return status


async def persist_status(store: ResourceStoreProtocol, cluster: Resource, status: ClusterStatus) -> bool:
    """
    Write ``status`` onto the stored custom resource if it changed.

    Returns:
        True if the status was written.
    """
    fresh = await store.get(cluster.kind, cluster.namespace, cluster.name)
    if fresh is None:
        logger.debug(f"{cluster.kind} {cluster.namespace}/{cluster.name} is gone, not updating status")
        return False
    if not status_differs(ClusterStatus.from_dict(fresh.status), status):
        return False
    fresh.status = status.to_dict()
    await store.update_status(fresh)
    return True
