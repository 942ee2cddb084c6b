"""Environment-based configuration for the reconciler."""

from pydantic_settings import BaseSettings


class OperatorSettings(BaseSettings):
    """Reconciler operator configuration.

    All settings can be overridden via environment variables with
    RECONCILER_ prefix. For example:
        RECONCILER_NAMESPACE=kafka
        RECONCILER_MAX_WORKERS=8
    """

    # Watched namespace
    namespace: str = "default"

    # Periodic full resync
    reconciliation_interval_seconds: float = 120.0

    # Timeouts
    operation_timeout_seconds: float = 300.0
    readiness_timeout_seconds: float = 300.0
    readiness_poll_seconds: float = 1.0

    # Worker pool
    max_workers: int = 4

    # Retry of transient failures
    max_retry_attempts: int = 3
    retry_min_wait_seconds: float = 1.0
    retry_max_wait_seconds: float = 60.0

    # Kubernetes API
    kube_api_url: str = "https://kubernetes.default.svc"
    kube_token_path: str = "/var/run/secrets/kubernetes.io/serviceaccount/token"
    kube_verify_tls: bool = True

    model_config = {"env_prefix": "RECONCILER_"}
