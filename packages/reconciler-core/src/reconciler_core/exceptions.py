"""
Exception classes for the reconciliation engine.

The taxonomy follows how a failure should be handled:
- InvalidResourceError: Malformed desired state. Fail fast, before any
  mutation, and surface the message verbatim in the status.
- TransientError: Infrastructure hiccup (timeout, update conflict). Safe to
  retry because every phase is re-entrant.
- Anything else: Unexpected. Aborts the attempt; the status reason is the
  exception class name.

Per project patterns:
- Inherit from Exception for base exception type
- Store context data in attributes for error handling
- Include descriptive message with relevant details
"""


class InvalidResourceError(Exception):
    """
    Raised when the desired state cannot be reconciled as written.

    Examples: a JBOD volume without an id, a storage class change on an
    existing broker, a heap percentage out of range.
    """


class TransientError(Exception):
    """Base class for failures a later attempt is expected to get past."""


class ConflictError(TransientError):
    """
    Raised when an optimistic concurrency check fails.

    Attributes:
        key: (kind, namespace, name) of the resource
        expected_version: resource_version the writer held
    """

    def __init__(self, key: tuple[str, str, str], expected_version: str | None) -> None:
        self.key = key
        self.expected_version = expected_version
        kind, namespace, name = key
        super().__init__(
            f"Conflict updating {kind} {namespace}/{name}: "
            f"resource version {expected_version} is stale"
        )


class OperationTimeoutError(TransientError):
    """
    Raised when an external call or readiness wait exceeds its timeout.

    Attributes:
        operation: What was being waited on
        timeout_seconds: The timeout that elapsed
    """

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{operation} did not complete within {timeout_seconds:g}s")


class ResourceNotFoundError(Exception):
    """
    Raised when a write targets a resource that does not exist.

    Attributes:
        key: (kind, namespace, name) of the missing resource
    """

    def __init__(self, key: tuple[str, str, str]) -> None:
        self.key = key
        kind, namespace, name = key
        super().__init__(f"{kind} {namespace}/{name} not found")


class PhaseFailedError(Exception):
    """
    Raised by the pipeline driver when a phase fails.

    The original exception is chained as __cause__ and also kept on
    ``error`` so status assembly can report its kind and message.

    Attributes:
        phase: Name of the phase that failed
        error: The exception raised by the phase
    """

    def __init__(self, phase: str, error: Exception) -> None:
        self.phase = phase
        self.error = error
        super().__init__(f"Phase {phase} failed: {error}")
