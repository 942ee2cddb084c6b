"""
Kafka custom resource Pydantic types.

This module provides Pydantic models for validating the spec of a Kafka
custom resource:
- KafkaClusterSpec: Broker ensemble (spec.kafka)
- ZookeeperClusterSpec: Coordination ensemble (spec.zookeeper)
- CertificateAuthoritySpec: spec.clusterCa / spec.clientsCa

Field names are snake_case in Python and camelCase on the wire. Unknown
fields are kept so that a newer custom resource still parses.

Storage blocks stay raw dicts here; they are validated by
reconciler_core.storage.parse_storage, which owns the JBOD rules.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from reconciler_core.ca.types import (
    DEFAULT_RENEWAL_DAYS,
    DEFAULT_VALIDITY_DAYS,
    CaSettings,
    ExpirationPolicy,
)
from reconciler_core.exceptions import InvalidResourceError

# =============================================================================
# Kafka versions
# =============================================================================
# Kafka version -> inter.broker.protocol.version / log.message.format.version

KAFKA_VERSIONS: dict[str, str] = {
    "3.4.0": "3.4",
    "3.4.1": "3.4",
    "3.5.0": "3.5",
    "3.5.1": "3.5",
}
DEFAULT_KAFKA_VERSION = "3.5.1"


def protocol_version(kafka_version: str) -> str:
    """
    Protocol (and message format) version of a Kafka version.

    Raises:
        InvalidResourceError: If the version is not supported.
    """
    try:
        return KAFKA_VERSIONS[kafka_version]
    except KeyError:
        raise InvalidResourceError(
            f"Unsupported Kafka.spec.kafka.version: {kafka_version}. "
            f"Supported versions are: {sorted(KAFKA_VERSIONS)}"
        ) from None


# =============================================================================
# Custom resource spec
# =============================================================================


class _KafkaModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


ListenerType = Literal["internal", "cluster-ip", "route", "loadbalancer", "nodeport", "ingress"]


class GenericListener(_KafkaModel):
    """One entry of spec.kafka.listeners."""

    name: str = Field(pattern=r"^[a-z0-9]{1,11}$")
    port: int = Field(ge=9092, le=65535)
    type: ListenerType = "internal"
    tls: bool = False


class JvmOptions(_KafkaModel):
    xms: str | None = Field(default=None, alias="-Xms")
    xmx: str | None = Field(default=None, alias="-Xmx")


class ResourceRequirements(_KafkaModel):
    limits: dict[str, str] = Field(default_factory=dict)
    requests: dict[str, str] = Field(default_factory=dict)

    @property
    def memory(self) -> str | None:
        """Memory limit, or the request when there is no limit."""
        return self.limits.get("memory") or self.requests.get("memory")


class _EnsembleSpec(_KafkaModel):
    replicas: int = Field(ge=1)
    storage: dict[str, Any]
    config: dict[str, Any] = Field(default_factory=dict)
    jvm_options: JvmOptions | None = None
    resources: ResourceRequirements | None = None
    template: dict[str, Any] = Field(default_factory=dict)

    @property
    def pod_annotations(self) -> dict[str, str]:
        pod = self.template.get("pod") or {}
        metadata = pod.get("metadata") or {}
        return {str(k): str(v) for k, v in (metadata.get("annotations") or {}).items()}


class KafkaClusterSpec(_EnsembleSpec):
    version: str = DEFAULT_KAFKA_VERSION
    listeners: list[GenericListener] = Field(default_factory=list)


class ZookeeperClusterSpec(_EnsembleSpec):
    pass


class CertificateAuthoritySpec(_KafkaModel):
    generate_certificate_authority: bool = True
    validity_days: int = Field(default=DEFAULT_VALIDITY_DAYS, ge=1)
    renewal_days: int = Field(default=DEFAULT_RENEWAL_DAYS, ge=1)
    certificate_expiration_policy: ExpirationPolicy = ExpirationPolicy.RENEW_CERTIFICATE

    def settings(self, name: str) -> CaSettings:
        return CaSettings(
            name=name,
            validity_days=self.validity_days,
            renewal_days=self.renewal_days,
            expiration_policy=self.certificate_expiration_policy,
            generate_certificate_authority=self.generate_certificate_authority,
        )


class KafkaSpec(_KafkaModel):
    kafka: KafkaClusterSpec
    zookeeper: ZookeeperClusterSpec
    cluster_ca: CertificateAuthoritySpec = Field(default_factory=CertificateAuthoritySpec)
    clients_ca: CertificateAuthoritySpec = Field(default_factory=CertificateAuthoritySpec)


def parse_kafka_spec(spec: dict[str, Any]) -> KafkaSpec:
    """
    Validate the spec of a Kafka custom resource.

    Raises:
        InvalidResourceError: With every validation problem, one per line
            prefixed by its location (e.g. "kafka.replicas: ...").
    """
    try:
        return KafkaSpec.model_validate(spec)
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        ]
        raise InvalidResourceError("Invalid Kafka spec: " + "; ".join(problems)) from e
