"""
Store operations on ensemble instances.

InstanceOperations is the only place that creates, restarts and removes
pods, their claims and the ensemble descriptor. The scaling and rolling
phases compose these operations; they never talk to the store directly.

A restart is a delete, a wait until the old pod is gone, and a create.
The new pod is normally built from the desired template, so it carries
the desired revision and CA generations. Phases that run before the
desired template is applied rebuild it from the stored descriptor
instead, keeping the CA generations it ran with (see ``keep``).
"""

import logging
import re
from typing import Any

from reconciler_protocols import EnsembleDescriptor, InstanceRecord, Resource, ResourceStoreProtocol

from reconciler_core import annotations
from reconciler_core.readiness import POD_KIND, wait_for_deletion, wait_for_ready
from reconciler_core.reconcile.state import EnsembleState, ReconciliationState
from reconciler_core.restart import DesiredInstanceState
from reconciler_core.storage.claims import (
    CLAIM_KIND,
    claims_for_instance,
    deletes_claim,
    generate_persistent_volume_claims,
)
from reconciler_core.storage.types import parse_storage

logger = logging.getLogger(__name__)

DESCRIPTOR_KIND = "StrimziPodSet"


def ensemble_labels(cluster_name: str, ensemble_name: str) -> dict[str, str]:
    return {
        annotations.CLUSTER_LABEL: cluster_name,
        annotations.NAME_LABEL: ensemble_name,
    }


def pod_index(ensemble_name: str, pod_name: str) -> int | None:
    """Index encoded in a pod name, or None if the pod is not ours."""
    match = re.fullmatch(rf"{re.escape(ensemble_name)}-([0-9]+)", pod_name)
    return int(match.group(1)) if match else None


def descriptor_to_resource(
    descriptor: EnsembleDescriptor,
    namespace: str,
    cluster_name: str,
    replicas: int,
    resource: Resource | None = None,
) -> Resource:
    """Render a descriptor into its pod-set resource, at ``replicas`` instances."""
    resource = resource or Resource(kind=DESCRIPTOR_KIND, namespace=namespace, name=descriptor.name)
    resource.labels = {**resource.labels, **ensemble_labels(cluster_name, descriptor.name)}
    resource.annotations = {**resource.annotations, annotations.REVISION: descriptor.revision}
    resource.spec = {
        "role": descriptor.role,
        "replicas": replicas,
        "revision": descriptor.revision,
        "storage": descriptor.storage,
        "templateAnnotations": descriptor.template_annotations,
        "config": descriptor.config,
        "env": descriptor.env,
        "listeners": descriptor.listeners,
    }
    return resource


def descriptor_from_resource(resource: Resource) -> EnsembleDescriptor:
    spec = resource.spec
    return EnsembleDescriptor(
        name=resource.name,
        role=spec.get("role", ""),
        replicas=int(spec.get("replicas", 0)),
        revision=spec.get("revision") or resource.annotations.get(annotations.REVISION, ""),
        storage=spec.get("storage") or {},
        template_annotations=spec.get("templateAnnotations") or {},
        config=spec.get("config") or {},
        env=spec.get("env") or {},
        listeners=spec.get("listeners") or [],
    )


def pod_annotations(descriptor: EnsembleDescriptor, desired: DesiredInstanceState) -> dict[str, str]:
    anno = dict(descriptor.template_annotations)
    anno[annotations.REVISION] = desired.revision
    if desired.cluster_ca_cert_generation is not None:
        anno[annotations.CLUSTER_CA_CERT_GENERATION] = str(desired.cluster_ca_cert_generation)
    if desired.clients_ca_cert_generation is not None:
        anno[annotations.CLIENTS_CA_CERT_GENERATION] = str(desired.clients_ca_cert_generation)
    if desired.cluster_ca_key_generation is not None:
        anno[annotations.CLUSTER_CA_KEY_GENERATION] = str(desired.cluster_ca_key_generation)
    return anno


def recorded_instance_state(descriptor: EnsembleDescriptor, record: InstanceRecord) -> DesiredInstanceState:
    """The revision of ``descriptor`` with the CA generations ``record`` was started with."""
    return DesiredInstanceState(
        revision=descriptor.revision,
        cluster_ca_cert_generation=record.cluster_ca_cert_generation,
        clients_ca_cert_generation=record.clients_ca_cert_generation,
        cluster_ca_key_generation=record.cluster_ca_key_generation,
    )


class InstanceOperations:
    """
    Creates, restarts and removes instances of an ensemble.

    Args:
        store: Resource store
        readiness_timeout_seconds: Upper bound of every readiness and
            deletion wait
        readiness_poll_seconds: Poll interval of those waits
    """

    def __init__(
        self,
        store: ResourceStoreProtocol,
        readiness_timeout_seconds: float = 300.0,
        readiness_poll_seconds: float = 1.0,
    ) -> None:
        self.store = store
        self.readiness_timeout_seconds = readiness_timeout_seconds
        self.readiness_poll_seconds = readiness_poll_seconds

    async def list_pods(self, namespace: str, descriptor: EnsembleDescriptor) -> dict[int, Resource]:
        """Pods of the ensemble by index."""
        pods = await self.store.list(
            POD_KIND, namespace, labels={annotations.NAME_LABEL: descriptor.name}
        )
        by_index = {}
        for pod in pods:
            index = pod_index(descriptor.name, pod.name)
            if index is not None:
                by_index[index] = pod
        return dict(sorted(by_index.items()))

    async def write_descriptor(
        self,
        state: ReconciliationState,
        ensemble: EnsembleState,
        replicas: int,
    ) -> Resource:
        """Persist the desired descriptor at ``replicas`` instances."""
        stored = ensemble.descriptor_resource
        resource = descriptor_to_resource(
            ensemble.desired, state.namespace, state.cluster_name, replicas, stored
        )
        if stored is None:
            written = await self.store.create(resource)
        else:
            written = await self.store.update(resource)
        ensemble.descriptor_resource = written
        ensemble.current = descriptor_from_resource(written)
        return written

    def template(
        self,
        state: ReconciliationState,
        ensemble: EnsembleState,
        keep: InstanceRecord | None = None,
    ) -> tuple[EnsembleDescriptor, DesiredInstanceState]:
        """
        Descriptor and annotations a (re)created pod is built from.

        Without ``keep`` this is the desired template. With ``keep`` it is
        the stored descriptor and the CA generations of the pod ``keep``
        was taken from, so a pod restarted before the desired template is
        applied is still seen as stale by the Roll phase.
        """
        if keep is None or ensemble.current is None:
            return ensemble.desired, state.desired_instance_state(ensemble.role)
        return ensemble.current, recorded_instance_state(ensemble.current, keep)

    async def ensure_claims(
        self,
        state: ReconciliationState,
        ensemble: EnsembleState,
        index: int,
        descriptor: EnsembleDescriptor | None = None,
    ) -> list[Resource]:
        """Create the claims instance ``index`` needs and grow existing ones."""
        descriptor = descriptor or ensemble.desired
        wanted = claims_for_instance(
            generate_persistent_volume_claims(
                parse_storage(descriptor.storage),
                descriptor.name,
                index + 1,
                state.namespace,
                labels=ensemble_labels(state.cluster_name, descriptor.name),
            ),
            descriptor.name,
            index,
        )
        claims = []
        for claim in wanted:
            existing = await self.store.get(CLAIM_KIND, state.namespace, claim.name)
            if existing is None:
                logger.debug(f"{state.reconciliation}: creating claim {claim.name}")
                claims.append(await self.store.create(claim))
            elif existing.spec.get("resources") != claim.spec["resources"]:
                logger.info(f"{state.reconciliation}: resizing claim {claim.name}")
                existing.spec["resources"] = claim.spec["resources"]
                existing.annotations.update(claim.annotations)
                claims.append(await self.store.update(existing))
            else:
                claims.append(existing)
        return claims

    def build_pod(
        self,
        state: ReconciliationState,
        descriptor: EnsembleDescriptor,
        instance_state: DesiredInstanceState,
        index: int,
        claims: list[Resource],
    ) -> Resource:
        name = descriptor.instance_name(index)
        spec: dict[str, Any] = {"hostname": name}
        if descriptor.env:
            spec["env"] = [{"name": k, "value": v} for k, v in sorted(descriptor.env.items())]
        if claims:
            spec["volumes"] = [
                {"name": c.name, "persistentVolumeClaim": {"claimName": c.name}} for c in claims
            ]
        return Resource(
            kind=POD_KIND,
            namespace=state.namespace,
            name=name,
            annotations=pod_annotations(descriptor, instance_state),
            labels=ensemble_labels(state.cluster_name, descriptor.name),
            spec=spec,
        )

    async def create_instance(
        self,
        state: ReconciliationState,
        ensemble: EnsembleState,
        index: int,
        keep: InstanceRecord | None = None,
    ) -> Resource:
        """Create instance ``index`` (claims first) unless it already exists."""
        descriptor, instance_state = self.template(state, ensemble, keep)
        name = descriptor.instance_name(index)
        claims = await self.ensure_claims(state, ensemble, index, descriptor)
        existing = await self.store.get(POD_KIND, state.namespace, name)
        if existing is not None:
            return existing
        logger.info(f"{state.reconciliation}: creating pod {name}")
        return await self.store.create(self.build_pod(state, descriptor, instance_state, index, claims))

    async def restart_instance(
        self,
        state: ReconciliationState,
        ensemble: EnsembleState,
        index: int,
        reasons: list[str],
        keep: InstanceRecord | None = None,
    ) -> Resource:
        """Replace instance ``index`` with a pod built from ``template()``."""
        name = ensemble.desired.instance_name(index)
        logger.info(f"{state.reconciliation}: rolling pod {name} due to {reasons}")
        await self.delete_and_wait(state, POD_KIND, name)
        return await self.create_instance(state, ensemble, index, keep)

    async def remove_instance(
        self,
        state: ReconciliationState,
        ensemble: EnsembleState,
        index: int,
        delete_all_claims: bool = False,
    ) -> None:
        """
        Delete instance ``index``.

        Claims annotated with delete-claim go with it; every claim does when
        ``delete_all_claims`` is set.
        """
        descriptor = ensemble.desired
        name = descriptor.instance_name(index)
        logger.info(f"{state.reconciliation}: deleting pod {name}")
        await self.delete_and_wait(state, POD_KIND, name)

        claims = await self.store.list(
            CLAIM_KIND, state.namespace, labels={annotations.NAME_LABEL: descriptor.name}
        )
        for claim in claims_for_instance(claims, descriptor.name, index):
            if delete_all_claims or deletes_claim(claim):
                logger.info(f"{state.reconciliation}: deleting claim {claim.name}")
                await self.delete_and_wait(state, CLAIM_KIND, claim.name)

    async def delete_and_wait(self, state: ReconciliationState, kind: str, name: str) -> None:
        """Delete a resource and wait until it is gone."""
        if not await self.store.delete(kind, state.namespace, name):
            return
        await wait_for_deletion(
            self.store,
            kind,
            state.namespace,
            name,
            self.readiness_timeout_seconds,
            self.readiness_poll_seconds,
        )

    async def wait_ready(self, state: ReconciliationState, names: list[str]) -> None:
        if not names:
            return
        await wait_for_ready(
            self.store,
            state.namespace,
            names,
            self.readiness_timeout_seconds,
            self.readiness_poll_seconds,
        )
