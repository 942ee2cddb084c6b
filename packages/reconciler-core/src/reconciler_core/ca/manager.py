"""
Certificate authority lifecycle manager.

CertificateAuthorityManager.reconcile() decides, once per reconciliation,
whether a CA must be created, have its certificate renewed, or have its
key replaced, and returns the resulting CA value. It never writes
anything: persisting the returned value is the caller's job.

Decision order:
1. No CA, or no key: create (both generations stay as they were, 0 for a
   brand-new cluster)
2. force_replace: new key and cert, bump both generations
3. No certificate, force_renew, or inside the renewal window: new cert
   signed by the existing key, bump cert generation (or replace the key
   when the expiration policy says so)
4. Otherwise: no-op
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime

from reconciler_core.ca import certs
from reconciler_core.ca.types import (
    INIT_GENERATION,
    CaSettings,
    CertificateAuthority,
    ExpirationPolicy,
    RenewalType,
)
from reconciler_core.exceptions import InvalidResourceError

logger = logging.getLogger(__name__)

TRUSTED_CERT_FORMAT = "ca-%Y-%m-%dT%H-%M-%SZ.crt"


@dataclass
class CertificateAuthorityManager:
    """
    Creates, renews and replaces CAs.

    Attributes:
        key_size: RSA key size for generated CA keys.

    Example:
        manager = CertificateAuthorityManager()
        ca = manager.reconcile(None, now, CaSettings(name="cluster-ca"))
        assert ca.renewal is RenewalType.CREATE
        ca = manager.reconcile(replace(ca, force_renew=True), now)
        assert ca.cert_generation == 1
    """

    key_size: int = certs.DEFAULT_KEY_SIZE

    def reconcile(
        self,
        existing: CertificateAuthority | None,
        now: datetime,
        settings: CaSettings | None = None,
    ) -> CertificateAuthority:
        """
        Reconcile one CA.

        Args:
            existing: CA loaded from the store, or None if there is none.
            now: Current time (timezone-aware).
            settings: CA configuration from the custom resource. Defaults to
                the settings carried by ``existing``.

        Returns:
            The CA to persist. ``renewal`` records what happened; force flags
            are always cleared on the returned value.

        Raises:
            InvalidResourceError: If a user-managed CA is missing its key or
                certificate.
        """
        if settings is None:
            settings = (
                CaSettings(
                    name=existing.name,
                    validity_days=existing.validity_days,
                    renewal_days=existing.renewal_days,
                    expiration_policy=existing.expiration_policy,
                )
                if existing is not None
                else CaSettings()
            )

        if not settings.generate_certificate_authority:
            return self._check_user_managed(existing, now, settings)

        if existing is None or not existing.private_key:
            logger.debug(f"{settings.name}: CA key is missing, generating a new CA")
            return self._create(existing, now, settings)

        ca = replace(
            existing,
            name=settings.name,
            validity_days=settings.validity_days,
            renewal_days=settings.renewal_days,
            expiration_policy=settings.expiration_policy,
        )
        renewal = self._renewal_type(ca, now)

        if renewal is RenewalType.REPLACE_KEY:
            result = self._replace_key(ca, now)
        elif renewal is RenewalType.RENEW_CERT:
            result = self._renew_cert(ca, now)
        else:
            result = replace(ca, renewal=RenewalType.NOOP)
            logger.debug(f"{ca.name}: CA certificate is current, nothing to renew")

        result = self._remove_expired(result, now)
        return replace(result, force_renew=False, force_replace=False)

    def _renewal_type(self, ca: CertificateAuthority, now: datetime) -> RenewalType:
        if ca.force_replace:
            logger.info(f"{ca.name}: replacing CA key, forced by annotation")
            return RenewalType.REPLACE_KEY
        if not ca.certificate:
            logger.info(f"{ca.name}: CA certificate is missing, renewing it")
            return RenewalType.RENEW_CERT
        if ca.force_renew:
            logger.info(f"{ca.name}: renewing CA certificate, forced by annotation")
            return RenewalType.RENEW_CERT
        if ca.renewal_due(now):
            logger.info(
                f"{ca.name}: within renewal period for CA certificate "
                f"(expires on {ca.not_after.isoformat()})"
            )
            if ca.expiration_policy is ExpirationPolicy.REPLACE_KEY:
                return RenewalType.REPLACE_KEY
            return RenewalType.RENEW_CERT
        return RenewalType.NOOP

    def _create(
        self,
        existing: CertificateAuthority | None,
        now: datetime,
        settings: CaSettings,
    ) -> CertificateAuthority:
        cert_generation = existing.cert_generation if existing else INIT_GENERATION
        key_generation = existing.key_generation if existing else INIT_GENERATION
        private_key = certs.generate_private_key(self.key_size)
        certificate = certs.self_signed_ca_certificate(
            private_key,
            _subject(settings.name, key_generation),
            settings.validity_days,
            now,
        )
        return CertificateAuthority(
            name=settings.name,
            certificate=certificate,
            private_key=private_key,
            cert_generation=cert_generation,
            key_generation=key_generation,
            renewal_days=settings.renewal_days,
            validity_days=settings.validity_days,
            expiration_policy=settings.expiration_policy,
            renewal=RenewalType.CREATE,
        )

    def _renew_cert(self, ca: CertificateAuthority, now: datetime) -> CertificateAuthority:
        certificate = certs.self_signed_ca_certificate(
            ca.private_key,
            _subject(ca.name, ca.key_generation),
            ca.validity_days,
            now,
        )
        return replace(
            ca,
            certificate=certificate,
            cert_generation=ca.cert_generation + 1,
            renewal=RenewalType.RENEW_CERT,
        )

    def _replace_key(self, ca: CertificateAuthority, now: datetime) -> CertificateAuthority:
        trusted = dict(ca.trusted_certificates)
        if ca.certificate:
            # Instances keep trusting the old CA until they have rolled
            trusted[ca.not_after.strftime(TRUSTED_CERT_FORMAT)] = ca.certificate

        key_generation = ca.key_generation + 1
        private_key = certs.generate_private_key(self.key_size)
        certificate = certs.self_signed_ca_certificate(
            private_key,
            _subject(ca.name, key_generation),
            ca.validity_days,
            now,
        )
        return replace(
            ca,
            certificate=certificate,
            private_key=private_key,
            cert_generation=ca.cert_generation + 1,
            key_generation=key_generation,
            trusted_certificates=trusted,
            renewal=RenewalType.REPLACE_KEY,
        )

    def _remove_expired(self, ca: CertificateAuthority, now: datetime) -> CertificateAuthority:
        trusted = {
            name: pem
            for name, pem in ca.trusted_certificates.items()
            if certs.not_after(pem) > now
        }
        removed = len(ca.trusted_certificates) - len(trusted)
        if removed:
            logger.info(f"{ca.name}: removed {removed} expired CA certificate(s)")
            return replace(ca, trusted_certificates=trusted)
        return ca

    def _check_user_managed(
        self,
        existing: CertificateAuthority | None,
        now: datetime,
        settings: CaSettings,
    ) -> CertificateAuthority:
        if existing is None or not existing.private_key or not existing.certificate:
            raise InvalidResourceError(
                f"The {settings.name} certificate and private key need to be provided "
                f"when generateCertificateAuthority is false"
            )
        if existing.renewal_due(now):
            logger.warning(
                f"{settings.name}: the user-managed CA certificate expires on "
                f"{existing.not_after.isoformat()} and is not configured to renew "
                f"automatically. It needs to be replaced manually before that date."
            )
        return replace(
            existing,
            renewal_days=settings.renewal_days,
            validity_days=settings.validity_days,
            force_renew=False,
            force_replace=False,
            renewal=RenewalType.NOOP,
        )


def _subject(name: str, key_generation: int) -> str:
    # Distinct subjects let old and new CA certs coexist in a trust store
    return f"{name} v{key_generation}"
