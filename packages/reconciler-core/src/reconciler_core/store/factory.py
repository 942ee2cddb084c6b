"""
Factory for the resource store the operator runs against.

Builds the httpx client from OperatorSettings (API URL, service account
token, TLS verification) and wraps the store in per-call timeouts.
"""

from pathlib import Path

import httpx

from reconciler_core.config import OperatorSettings
from reconciler_core.store.kube import KubernetesResourceStore
from reconciler_core.store.timeouts import TimeoutResourceStore


def create_kube_http(settings: OperatorSettings) -> httpx.AsyncClient:
    """
    Create the httpx client for the Kubernetes API.

    The bearer token is read from ``settings.kube_token_path`` when that
    file exists; otherwise requests go out unauthenticated (kubectl proxy).
    """
    headers = {}
    token_path = Path(settings.kube_token_path)
    if token_path.is_file():
        headers["Authorization"] = f"Bearer {token_path.read_text().strip()}"
    return httpx.AsyncClient(
        base_url=settings.kube_api_url,
        headers=headers,
        verify=settings.kube_verify_tls,
        timeout=10.0,
    )


def create_store(
    settings: OperatorSettings,
    http: httpx.AsyncClient | None = None,
) -> TimeoutResourceStore:
    """
    Create the operator's resource store.

    Args:
        settings: Operator settings
        http: Optional pre-configured client. If None, one is built from
            the settings.

    Returns:
        A Kubernetes-backed store with every call bounded by
        ``settings.operation_timeout_seconds``.
    """
    if http is None:
        http = create_kube_http(settings)
    return TimeoutResourceStore(
        KubernetesResourceStore(http=http),
        timeout_seconds=settings.operation_timeout_seconds,
    )
