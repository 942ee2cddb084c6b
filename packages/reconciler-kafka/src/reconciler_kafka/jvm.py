"""JVM heap options for broker and ZooKeeper containers."""

from reconciler_core.exceptions import InvalidResourceError

from reconciler_kafka.types import JvmOptions, ResourceRequirements

KAFKA_HEAP_OPTS = "KAFKA_HEAP_OPTS"
DYNAMIC_HEAP_PERCENTAGE = "STRIMZI_DYNAMIC_HEAP_PERCENTAGE"
DYNAMIC_HEAP_MAX = "STRIMZI_DYNAMIC_HEAP_MAX"

DEFAULT_JVM_XMS = "128M"


def heap_options(
    env: dict[str, str],
    dynamic_percentage: int,
    dynamic_max: int,
    jvm_options: JvmOptions | None,
    resources: ResourceRequirements | None,
) -> dict[str, str]:
    """
    Add the heap environment variables to ``env``.

    - Explicit -Xms/-Xmx go into KAFKA_HEAP_OPTS.
    - Without -Xmx but with a memory limit or request, the container sizes
      the heap itself from STRIMZI_DYNAMIC_HEAP_PERCENTAGE (and
      STRIMZI_DYNAMIC_HEAP_MAX when ``dynamic_max`` > 0).
    - With neither, KAFKA_HEAP_OPTS is -Xms128M.

    Raises:
        InvalidResourceError: If ``dynamic_percentage`` is not in (0, 100].
    """
    if dynamic_percentage <= 0 or dynamic_percentage > 100:
        raise InvalidResourceError(
            f"The Heap percentage {dynamic_percentage} is invalid. It has to be >0 and <=100."
        )

    xms = jvm_options.xms if jvm_options is not None else None
    xmx = jvm_options.xmx if jvm_options is not None else None
    memory = resources.memory if resources is not None else None

    heap = []
    if xms is not None:
        heap.append(f"-Xms{xms}")
    if xmx is not None:
        heap.append(f"-Xmx{xmx}")

    if xmx is None and memory is not None:
        env[DYNAMIC_HEAP_PERCENTAGE] = str(dynamic_percentage)
        if dynamic_max > 0:
            env[DYNAMIC_HEAP_MAX] = str(dynamic_max)
    elif not heap:
        heap.append(f"-Xms{DEFAULT_JVM_XMS}")

    if heap:
        env[KAFKA_HEAP_OPTS] = " ".join(heap)
    return env
