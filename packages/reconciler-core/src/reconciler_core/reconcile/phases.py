"""
Pipeline phases.

Each phase is an async function ``(collaborators, state) -> state``; the
reconciler binds the collaborators (and, for per-ensemble phases, the
role) with functools.partial to get the ``(state) -> state`` shape the
driver runs.

Every phase decides what to do from observed state only, so running it
again after a crash or a failure does the remaining work and nothing
else.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable

from reconciler_protocols import IssuedIdentity, Resource, ResourceStoreProtocol

from reconciler_core import annotations
from reconciler_core.ca.issuer import IdentityIssuer, identities_from_secret, identities_to_secret
from reconciler_core.ca.manager import CertificateAuthorityManager
from reconciler_core.ca.secrets import (
    ANNO_CA_CERT_GENERATION,
    SECRET_KIND,
    ca_from_secrets,
    ca_to_secrets,
    cert_secret_name,
    key_secret_name,
)
from reconciler_core.ca.types import CLIENTS_CA, CLUSTER_CA, CertificateAuthority, RenewalType
from reconciler_core.exceptions import InvalidResourceError
from reconciler_core.reconcile.ensemble import BROKER, ClusterCapability
from reconciler_core.reconcile.instances import (
    DESCRIPTOR_KIND,
    InstanceOperations,
    descriptor_from_resource,
    ensemble_labels,
)
from reconciler_core.reconcile.rolling import RollingUpdateDriver
from reconciler_core.reconcile.scaler import SequentialEnsembleScaler
from reconciler_core.reconcile.state import EnsembleState, ReconciliationState
from reconciler_core.reconcile.status import StatusAssembler, persist_status
from reconciler_core.restart import MANUAL_ROLLING_UPDATE, instance_record
from reconciler_core.storage.diff import StorageDiffResult

logger = logging.getLogger(__name__)

CONFIG_MAP_KIND = "ConfigMap"


@dataclass
class Collaborators:
    """Everything the phases act through."""

    store: ResourceStoreProtocol
    cluster: ClusterCapability
    instances: InstanceOperations
    ca_manager: CertificateAuthorityManager
    issuer: IdentityIssuer
    assembler: StatusAssembler = field(default_factory=StatusAssembler)
    scaler: SequentialEnsembleScaler | None = None
    roller: RollingUpdateDriver | None = None

    def __post_init__(self) -> None:
        if self.scaler is None:
            self.scaler = SequentialEnsembleScaler(self.instances)
        if self.roller is None:
            self.roller = RollingUpdateDriver(self.instances)


async def _write(store: ResourceStoreProtocol, resource: Resource) -> Resource:
    if resource.resource_version is None:
        return await store.create(resource)
    return await store.update(resource)


def _ca_changed(existing: CertificateAuthority | None, ca: CertificateAuthority) -> bool:
    if existing is None or ca.renewal is not RenewalType.NOOP:
        return True
    return (
        existing.force_renew
        or existing.force_replace
        or existing.trusted_certificates != ca.trusted_certificates
    )


# Cluster-wide phases


async def reconcile_cas(deps: Collaborators, state: ReconciliationState) -> ReconciliationState:
    """Load, reconcile and persist the cluster CA and the clients CA."""
    store, ns, cluster = deps.store, state.namespace, state.cluster_name
    labels = {annotations.CLUSTER_LABEL: cluster}
    for ca_name in (CLUSTER_CA, CLIENTS_CA):
        settings = deps.cluster.ca_settings(state.cluster, ca_name)
        cert_secret = await store.get(SECRET_KIND, ns, cert_secret_name(cluster, ca_name))
        key_secret = await store.get(SECRET_KIND, ns, key_secret_name(cluster, ca_name))
        existing = ca_from_secrets(settings, cert_secret, key_secret)

        ca = deps.ca_manager.reconcile(existing, state.now, settings)
        if settings.generate_certificate_authority and _ca_changed(existing, ca):
            logger.info(
                f"{state.reconciliation}: {ca_name} {ca.renewal.value}, cert generation "
                f"{ca.cert_generation}, key generation {ca.key_generation}"
            )
            cert, key = ca_to_secrets(ca, cluster, ns, labels, cert_secret, key_secret)
            await _write(store, cert)
            await _write(store, key)

        if ca_name == CLUSTER_CA:
            state.cluster_ca = ca
        else:
            state.clients_ca = ca
    return state


async def describe(deps: Collaborators, state: ReconciliationState) -> ReconciliationState:
    """
    Read every ensemble as it is and build it as it should be.

    Raises:
        InvalidResourceError: If the custom resource is malformed or asks
            for a storage change that cannot be applied. Nothing has been
            mutated on any ensemble at that point.
    """
    state.warnings = deps.cluster.warnings(state.cluster)
    for capability in deps.cluster.ensembles:
        desired = capability.describe(state.cluster)
        stored = await deps.store.get(DESCRIPTOR_KIND, state.namespace, desired.name)
        ensemble = EnsembleState(capability=capability, desired=desired, descriptor_resource=stored)

        if stored is None:
            ensemble.current_replicas = desired.replicas
        else:
            ensemble.current = descriptor_from_resource(stored)
            ensemble.current_replicas = ensemble.current.replicas

        # Pods left behind by an interrupted scale-down still count
        pods = await deps.instances.list_pods(state.namespace, desired)
        if pods and max(pods) >= ensemble.current_replicas:
            logger.info(
                f"{state.reconciliation}: {desired.name} still has pod {desired.instance_name(max(pods))}, "
                f"resuming from {max(pods) + 1} replica(s)"
            )
            ensemble.current_replicas = max(pods) + 1

        if ensemble.current is not None:
            ensemble.storage_diff = capability.diff(ensemble.current, desired, ensemble.current_replicas)
            _check_storage_diff(desired.name, ensemble.storage_diff)

        logger.debug(
            f"{state.reconciliation}: {desired.name} has {ensemble.current_replicas} "
            f"replica(s), wants {desired.replicas}"
        )
        state.ensembles[capability.role] = ensemble
    return state


def _check_storage_diff(name: str, diff: StorageDiffResult) -> None:
    if diff.is_allowed:
        return
    problems = list(diff.rejected_changes)
    if diff.type_changed:
        problems.insert(0, "Changing the storage type is not supported")
    raise InvalidResourceError(
        f"Storage of {name} cannot be changed as requested: {'; '.join(problems)}"
    )


async def status(deps: Collaborators, state: ReconciliationState) -> ReconciliationState:
    """Assemble and persist the successful status."""
    state.status = deps.assembler.assemble(state)
    await persist_status(deps.store, state.cluster, state.status)
    return state


# Per-ensemble phases


async def manual_cleanup(deps: Collaborators, role: str, state: ReconciliationState) -> ReconciliationState:
    """
    Recreate pods annotated for deletion together with all their claims.

    Runs before the desired template is applied, so each pod comes back as
    it was and a later Roll still restarts it if it is stale.
    """
    ensemble = state.ensembles[role]
    pods = await deps.instances.list_pods(state.namespace, ensemble.desired)
    for index, pod in pods.items():
        if not annotations.is_true(pod.annotations, annotations.DELETE_POD_AND_PVC):
            continue
        logger.info(f"{state.reconciliation}: pod {pod.name} is annotated to be deleted with its claims")
        record = instance_record(pod, index)
        await deps.instances.remove_instance(state, ensemble, index, delete_all_claims=True)
        await deps.instances.create_instance(state, ensemble, index, keep=record)
        await deps.instances.wait_ready(state, [pod.name])
    return state


async def manual_roll(deps: Collaborators, role: str, state: ReconciliationState) -> ReconciliationState:
    """
    Roll every instance if the descriptor asks for it, then clear the marker.

    Pods are rebuilt from the stored descriptor: the new template is not
    applied yet, and the Roll phase restarts them again once it is.
    """
    ensemble = state.ensembles[role]
    stored = ensemble.descriptor_resource
    if stored is None or not annotations.is_true(stored.annotations, annotations.MANUAL_ROLLING_UPDATE):
        return state

    logger.info(f"{state.reconciliation}: {stored.name} is annotated for a manual rolling update")
    await deps.roller.roll(state, ensemble, lambda record: [MANUAL_ROLLING_UPDATE], keep_template=True)

    stored = await deps.store.get(DESCRIPTOR_KIND, state.namespace, stored.name)
    if stored is not None:
        stored.annotations.pop(annotations.MANUAL_ROLLING_UPDATE, None)
        ensemble.descriptor_resource = await deps.store.update(stored)
    return state


async def apply_spec(deps: Collaborators, role: str, state: ReconciliationState) -> ReconciliationState:
    """
    Issue identities and write the desired descriptor at the current size.

    Identities cover max(current, target) instances so that instances
    added by the scale-up phase already have certificates. Membership is
    declared for the current size, so a first deploy gets its quorum
    configuration here.
    """
    ensemble = state.ensembles[role]
    await _issue_identities(deps, state, ensemble)

    replicas = ensemble.current_replicas
    await deps.instances.write_descriptor(state, ensemble, replicas)
    pods = await deps.instances.list_pods(state.namespace, ensemble.desired)
    created = []
    for index in range(replicas):
        if index in pods:
            await deps.instances.ensure_claims(state, ensemble, index)
        else:
            pod = await deps.instances.create_instance(state, ensemble, index)
            created.append(pod.name)
    await deps.instances.wait_ready(state, created)
    await ensemble.capability.on_membership_change(
        deps.store, state.namespace, ensemble.desired, replicas
    )

    listeners = ensemble.capability.listener_statuses(state.cluster, ensemble.desired)
    if listeners:
        state.listeners = listeners
    return state


async def _issue_identities(deps: Collaborators, state: ReconciliationState, ensemble: EnsembleState) -> None:
    capability = ensemble.capability
    secret_name = capability.certificate_secret_name(state.cluster_name)
    secret = await deps.store.get(SECRET_KIND, state.namespace, secret_name)
    existing = identities_from_secret(secret)

    count = max(ensemble.current_replicas, ensemble.target_replicas)
    wanted = capability.identities(ensemble.desired, state.namespace, count)
    issued = deps.issuer.issue(state.cluster_ca, wanted, existing, state.now)
    ensemble.identities = issued

    if secret is not None and not _identities_changed(existing, issued, secret, state.cluster_ca):
        return
    logger.debug(f"{state.reconciliation}: writing {len(issued)} certificate(s) to {secret_name}")
    rendered = identities_to_secret(
        issued,
        state.cluster_ca,
        secret_name,
        state.namespace,
        labels=ensemble_labels(state.cluster_name, ensemble.desired.name),
        secret=secret,
    )
    await _write(deps.store, rendered)


def _identities_changed(
    existing: dict[str, IssuedIdentity],
    issued: dict[str, IssuedIdentity],
    secret: Resource,
    ca: CertificateAuthority,
) -> bool:
    if existing.keys() != issued.keys():
        return True
    if any(existing[name] is not issued[name] for name in issued):
        return True
    return secret.annotations.get(ANNO_CA_CERT_GENERATION) != str(ca.cert_generation)


async def scale_down(deps: Collaborators, role: str, state: ReconciliationState) -> ReconciliationState:
    await deps.scaler.scale_down(state, state.ensembles[role])
    return state


async def scale_up(deps: Collaborators, role: str, state: ReconciliationState) -> ReconciliationState:
    await deps.scaler.scale_up(state, state.ensembles[role])
    return state


async def roll(deps: Collaborators, role: str, state: ReconciliationState) -> ReconciliationState:
    """Restart every instance with a restart reason."""
    ensemble = state.ensembles[role]
    desired = state.desired_instance_state(role)
    await deps.roller.roll(
        state, ensemble, lambda record: ensemble.capability.needs_restart(record, desired)
    )
    return state


async def roll_for_volume_changes(
    deps: Collaborators, role: str, state: ReconciliationState
) -> ReconciliationState:
    """Roll every instance when JBOD volumes were added or removed."""
    ensemble = state.ensembles[role]
    if not ensemble.storage_diff.volumes_added_or_removed:
        return state
    desired = replace(state.desired_instance_state(role), volumes_changed=True)
    await deps.roller.roll(
        state, ensemble, lambda record: ensemble.capability.needs_restart(record, desired)
    )
    return state


async def reconfigure(deps: Collaborators, role: str, state: ReconciliationState) -> ReconciliationState:
    """Write one config resource per desired instance."""
    ensemble = state.ensembles[role]
    descriptor = ensemble.desired
    labels = ensemble_labels(state.cluster_name, descriptor.name)
    for index in range(ensemble.target_replicas):
        config = ensemble.capability.instance_config(descriptor, index)
        if config is None:
            continue
        name = descriptor.instance_name(index)
        data = {key: value.encode("utf-8") for key, value in config.items()}
        existing = await deps.store.get(CONFIG_MAP_KIND, state.namespace, name)
        if existing is None:
            await deps.store.create(
                Resource(kind=CONFIG_MAP_KIND, namespace=state.namespace, name=name, labels=labels, data=data)
            )
        elif existing.data != data:
            existing.data = data
            existing.labels = {**existing.labels, **labels}
            await deps.store.update(existing)
    return state


async def config_cleanup(deps: Collaborators, role: str, state: ReconciliationState) -> ReconciliationState:
    """Delete config resources of removed instances and the legacy shared one."""
    ensemble = state.ensembles[role]
    descriptor = ensemble.desired
    keep = set(descriptor.instance_names(ensemble.target_replicas))
    config_maps = await deps.store.list(
        CONFIG_MAP_KIND, state.namespace, labels={annotations.NAME_LABEL: descriptor.name}
    )
    for config_map in config_maps:
        if config_map.name not in keep:
            logger.debug(f"{state.reconciliation}: deleting config {config_map.name}")
            await deps.store.delete(CONFIG_MAP_KIND, state.namespace, config_map.name)
    await deps.store.delete(CONFIG_MAP_KIND, state.namespace, f"{descriptor.name}-config")
    return state


EnsemblePhaseFn = Callable[[Collaborators, str, ReconciliationState], Awaitable[ReconciliationState]]

COORDINATION_PHASES = [
    ("ManualCleanup", manual_cleanup),
    ("ManualRoll", manual_roll),
    ("ApplySpec", apply_spec),
    ("ScaleDown", scale_down),
    ("Roll", roll),
    ("ScaleUp", scale_up),
]

BROKER_PHASES = [
    ("ManualCleanup", manual_cleanup),
    ("ManualRoll", manual_roll),
    ("ScaleDown", scale_down),
    ("Reconfigure", reconfigure),
    ("ApplySpec", apply_spec),
    ("RollForVolumeChanges", roll_for_volume_changes),
    ("Roll", roll),
    ("ScaleUp", scale_up),
    ("ConfigCleanup", config_cleanup),
]


def ensemble_phases(role: str) -> list[tuple[str, EnsemblePhaseFn]]:
    return BROKER_PHASES if role == BROKER else COORDINATION_PHASES
