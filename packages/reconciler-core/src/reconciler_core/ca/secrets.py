"""
Mapping between CertificateAuthority values and their backing secrets.

Each CA lives in two secrets:
- <cluster>-<ca>-cert: public certificate(s), safe to hand to clients
  data: ca.crt plus any retained "ca-<notAfter>.crt" entries
  annotations: strimzi.io/ca-cert-generation, strimzi.io/force-renew
- <cluster>-<ca>: private key
  data: ca.key
  annotations: strimzi.io/ca-key-generation, strimzi.io/force-replace
"""

from reconciler_protocols import Resource

from reconciler_core.ca.types import INIT_GENERATION, CaSettings, CertificateAuthority

SECRET_KIND = "Secret"

CA_CRT = "ca.crt"
CA_KEY = "ca.key"

ANNO_CA_CERT_GENERATION = "strimzi.io/ca-cert-generation"
ANNO_CA_KEY_GENERATION = "strimzi.io/ca-key-generation"
ANNO_FORCE_RENEW = "strimzi.io/force-renew"
ANNO_FORCE_REPLACE = "strimzi.io/force-replace"


def cert_secret_name(cluster: str, ca_name: str) -> str:
    return f"{cluster}-{ca_name}-cert"


def key_secret_name(cluster: str, ca_name: str) -> str:
    return f"{cluster}-{ca_name}"


def int_annotation(resource: Resource | None, name: str, default: int = INIT_GENERATION) -> int:
    if resource is None or name not in resource.annotations:
        return default
    return int(resource.annotations[name])


def bool_annotation(resource: Resource | None, name: str) -> bool:
    if resource is None:
        return False
    return resource.annotations.get(name, "false").lower() == "true"


def ca_from_secrets(
    settings: CaSettings,
    cert_secret: Resource | None,
    key_secret: Resource | None,
) -> CertificateAuthority | None:
    """
    Load a CA from its secrets.

    Returns:
        The CA, or None if neither secret exists. A CA whose key secret is
        missing comes back with an empty private_key so the manager
        regenerates it while keeping the recorded generations.
    """
    if cert_secret is None and key_secret is None:
        return None

    cert_data = cert_secret.data if cert_secret is not None else {}
    trusted = {
        name: pem
        for name, pem in cert_data.items()
        if name != CA_CRT and name.startswith("ca-") and name.endswith(".crt")
    }
    return CertificateAuthority(
        name=settings.name,
        certificate=cert_data.get(CA_CRT, b""),
        private_key=key_secret.data.get(CA_KEY, b"") if key_secret is not None else b"",
        cert_generation=int_annotation(cert_secret, ANNO_CA_CERT_GENERATION),
        key_generation=int_annotation(key_secret, ANNO_CA_KEY_GENERATION),
        renewal_days=settings.renewal_days,
        validity_days=settings.validity_days,
        force_renew=bool_annotation(cert_secret, ANNO_FORCE_RENEW),
        force_replace=bool_annotation(key_secret, ANNO_FORCE_REPLACE),
        expiration_policy=settings.expiration_policy,
        trusted_certificates=trusted,
    )


def ca_to_secrets(
    ca: CertificateAuthority,
    cluster: str,
    namespace: str,
    labels: dict[str, str] | None = None,
    cert_secret: Resource | None = None,
    key_secret: Resource | None = None,
) -> tuple[Resource, Resource]:
    """
    Render a CA into its (cert secret, key secret) pair.

    Existing secrets are updated in place so that their resource_version
    and unrelated annotations survive; force annotations are dropped.
    """
    labels = labels or {}

    cert = cert_secret or Resource(
        kind=SECRET_KIND, namespace=namespace, name=cert_secret_name(cluster, ca.name)
    )
    cert.labels = {**cert.labels, **labels}
    cert.annotations = {
        k: v for k, v in cert.annotations.items() if k != ANNO_FORCE_RENEW
    }
    cert.annotations[ANNO_CA_CERT_GENERATION] = str(ca.cert_generation)
    cert.data = {CA_CRT: ca.certificate, **ca.trusted_certificates}

    key = key_secret or Resource(
        kind=SECRET_KIND, namespace=namespace, name=key_secret_name(cluster, ca.name)
    )
    key.labels = {**key.labels, **labels}
    key.annotations = {
        k: v for k, v in key.annotations.items() if k != ANNO_FORCE_REPLACE
    }
    key.annotations[ANNO_CA_KEY_GENERATION] = str(ca.key_generation)
    key.data = {CA_KEY: ca.private_key}

    return cert, key
