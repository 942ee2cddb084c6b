"""
Certificate authority value types.

This module defines:
- RenewalType: Outcome of one CA reconciliation
- ExpirationPolicy: What to do when the CA certificate nears expiry
- CaSettings: Per-CA configuration taken from the custom resource
- CertificateAuthority: Immutable CA value (key, cert, generations)

A CA is never mutated in place. The manager returns a new value for
every change, so whoever holds an old value keeps a consistent view.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from reconciler_core.ca import certs

INIT_GENERATION = 0
DEFAULT_VALIDITY_DAYS = 365
DEFAULT_RENEWAL_DAYS = 30

CLUSTER_CA = "cluster-ca"
CLIENTS_CA = "clients-ca"


class RenewalType(str, Enum):
    """
    Outcome of a CA reconciliation.

    Drives which generation counters move and whether instances that trust
    the CA must be rolled.
    """

    NOOP = "noop"
    """Existing CA is current."""

    CREATE = "create"
    """No CA existed; a new key and self-signed cert were generated."""

    RENEW_CERT = "renew-cert"
    """New cert signed by the existing key; cert generation bumped."""

    REPLACE_KEY = "replace-key"
    """New key and cert; both generations bumped."""


class ExpirationPolicy(str, Enum):
    """Action taken when the CA certificate enters its renewal window."""

    RENEW_CERTIFICATE = "renew-certificate"
    REPLACE_KEY = "replace-key"


@dataclass(frozen=True)
class CaSettings:
    """
    Configuration of one CA.

    Attributes:
        name: CA name ("cluster-ca" or "clients-ca"), also the subject CN prefix.
        validity_days: Lifetime of generated CA certificates.
        renewal_days: Days before expiry at which renewal starts.
        expiration_policy: Renew the cert or replace the key on expiry.
        generate_certificate_authority: False when the user supplies the CA.
    """

    name: str = CLUSTER_CA
    validity_days: int = DEFAULT_VALIDITY_DAYS
    renewal_days: int = DEFAULT_RENEWAL_DAYS
    expiration_policy: ExpirationPolicy = ExpirationPolicy.RENEW_CERTIFICATE
    generate_certificate_authority: bool = True


@dataclass(frozen=True)
class CertificateAuthority:
    """
    A self-signed key/cert pair used to sign instance identities.

    Invariants:
        cert_generation increments exactly once per renewal.
        key_generation increments exactly once per replacement, and a
        replacement always also increments cert_generation.

    Attributes:
        name: CA name ("cluster-ca" or "clients-ca").
        certificate: PEM-encoded current CA certificate (empty if missing).
        private_key: PEM-encoded CA private key.
        cert_generation: Bumped on every new certificate.
        key_generation: Bumped on every new key.
        renewal_days: Renewal window before expiry.
        validity_days: Lifetime of new certificates.
        force_renew: Operator asked for a new certificate.
        force_replace: Operator asked for a new key.
        expiration_policy: Action taken when the renewal window opens.
        trusted_certificates: Older CA certificates still trusted, keyed
            "ca-<notAfter>.crt", kept after a key replacement until expiry.
        renewal: What the last reconcile did.
    """

    name: str
    certificate: bytes
    private_key: bytes
    cert_generation: int = INIT_GENERATION
    key_generation: int = INIT_GENERATION
    renewal_days: int = DEFAULT_RENEWAL_DAYS
    validity_days: int = DEFAULT_VALIDITY_DAYS
    force_renew: bool = False
    force_replace: bool = False
    expiration_policy: ExpirationPolicy = ExpirationPolicy.RENEW_CERTIFICATE
    trusted_certificates: dict[str, bytes] = field(default_factory=dict)
    renewal: RenewalType = RenewalType.NOOP

    @property
    def not_after(self) -> datetime:
        return certs.not_after(self.certificate)

    @property
    def subject_common_name(self) -> str:
        return certs.common_name(self.certificate)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.not_after

    def renewal_due(self, now: datetime) -> bool:
        """True once ``now`` is inside the renewal window (or past expiry)."""
        return now > self.not_after - timedelta(days=self.renewal_days)

    @property
    def renewed(self) -> bool:
        """True if the last reconcile issued a new certificate."""
        return self.renewal in (RenewalType.RENEW_CERT, RenewalType.REPLACE_KEY)

    def trust_bundle(self) -> bytes:
        """Current certificate followed by every still-trusted older one."""
        parts = [self.certificate]
        parts.extend(self.trusted_certificates[k] for k in sorted(self.trusted_certificates))
        return b"".join(parts)
