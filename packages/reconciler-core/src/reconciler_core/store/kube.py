"""
Kubernetes API resource store.

KubernetesResourceStore receives an injected httpx.AsyncClient with
base_url set to the API server and maps Resource values onto the REST
endpoints of the kinds the reconciler manages.

Status codes:
- 404 on get: None; on delete: False; on update: ResourceNotFoundError
- 409 on create or update: ConflictError (retryable)
- anything else non-2xx: httpx.HTTPStatusError

Secret data is base64 on the wire and bytes in Resource.data; config map
data is text on the wire.
"""

import base64
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import BaseModel, Field
from reconciler_protocols import Resource

from reconciler_core.exceptions import ConflictError, ResourceNotFoundError

KIND_PATHS: dict[str, tuple[str, str]] = {
    "Pod": ("/api/v1", "pods"),
    "Secret": ("/api/v1", "secrets"),
    "ConfigMap": ("/api/v1", "configmaps"),
    "PersistentVolumeClaim": ("/api/v1", "persistentvolumeclaims"),
    "StrimziPodSet": ("/apis/core.strimzi.io/v1beta2", "strimzipodsets"),
    "Kafka": ("/apis/kafka.strimzi.io/v1beta2", "kafkas"),
}

# Kinds whose payload is in "data" rather than "spec"
_DATA_KINDS = {"Secret", "ConfigMap"}


class KubeObjectMeta(BaseModel):
    name: str
    namespace: str = ""
    annotations: dict[str, str] = Field(default_factory=dict)
    labels: dict[str, str] = Field(default_factory=dict)
    generation: int = 1
    resourceVersion: str | None = None


class KubeObject(BaseModel):
    kind: str = ""
    metadata: KubeObjectMeta
    spec: dict[str, Any] = Field(default_factory=dict)
    data: dict[str, str] = Field(default_factory=dict)
    status: dict[str, Any] | None = None


class KubeObjectList(BaseModel):
    items: list[KubeObject] = Field(default_factory=list)


def _api_version(kind: str) -> str:
    prefix, _ = KIND_PATHS[kind]
    return prefix.removeprefix("/api/").removeprefix("/apis/")


def _collection_path(kind: str, namespace: str) -> str:
    if kind not in KIND_PATHS:
        raise ValueError(f"Unsupported kind: {kind}")
    prefix, plural = KIND_PATHS[kind]
    return f"{prefix}/namespaces/{namespace}/{plural}"


def _object_path(kind: str, namespace: str, name: str) -> str:
    return f"{_collection_path(kind, namespace)}/{name}"


def to_resource(kind: str, obj: KubeObject) -> Resource:
    if kind == "Secret":
        data = {k: base64.b64decode(v) for k, v in obj.data.items()}
    else:
        data = {k: v.encode("utf-8") for k, v in obj.data.items()}
    return Resource(
        kind=kind,
        namespace=obj.metadata.namespace,
        name=obj.metadata.name,
        annotations=obj.metadata.annotations,
        labels=obj.metadata.labels,
        spec=obj.spec,
        data=data,
        status=obj.status,
        generation=obj.metadata.generation,
        resource_version=obj.metadata.resourceVersion,
    )


def to_body(resource: Resource) -> dict[str, Any]:
    metadata: dict[str, Any] = {
        "name": resource.name,
        "namespace": resource.namespace,
        "annotations": resource.annotations,
        "labels": resource.labels,
    }
    if resource.resource_version is not None:
        metadata["resourceVersion"] = resource.resource_version
    body: dict[str, Any] = {
        "apiVersion": _api_version(resource.kind),
        "kind": resource.kind,
        "metadata": metadata,
    }
    if resource.kind == "Secret":
        body["data"] = {k: base64.b64encode(v).decode("ascii") for k, v in resource.data.items()}
    elif resource.kind in _DATA_KINDS:
        body["data"] = {k: v.decode("utf-8") for k, v in resource.data.items()}
    else:
        body["spec"] = resource.spec
    if resource.status is not None:
        body["status"] = resource.status
    return body


@dataclass
class KubernetesResourceStore:
    """
    ResourceStoreProtocol implementation over the Kubernetes REST API.

    Attributes:
        http: Pre-configured httpx.AsyncClient with base_url set to the API
            server and the bearer token in its headers.

    Example:
        async with httpx.AsyncClient(base_url=api_url, headers=headers) as http:
            store = KubernetesResourceStore(http=http)
            kafka = await store.get("Kafka", "kafka", "my-cluster")
    """

    http: httpx.AsyncClient

    async def get(self, kind: str, namespace: str, name: str) -> Resource | None:
        response = await self.http.get(_object_path(kind, namespace, name))
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return to_resource(kind, KubeObject.model_validate(response.json()))

    async def list(
        self,
        kind: str,
        namespace: str,
        labels: dict[str, str] | None = None,
    ) -> list[Resource]:
        params = {}
        if labels:
            params["labelSelector"] = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        response = await self.http.get(_collection_path(kind, namespace), params=params)
        response.raise_for_status()
        items = KubeObjectList.model_validate(response.json()).items
        return sorted((to_resource(kind, item) for item in items), key=lambda r: r.name)

    async def create(self, resource: Resource) -> Resource:
        response = await self.http.post(
            _collection_path(resource.kind, resource.namespace), json=to_body(resource)
        )
        if response.status_code == 409:
            raise ConflictError(resource.key, resource.resource_version)
        response.raise_for_status()
        return to_resource(resource.kind, KubeObject.model_validate(response.json()))

    async def update(self, resource: Resource) -> Resource:
        return await self._put(_object_path(*resource.key), resource)

    async def update_status(self, resource: Resource) -> Resource:
        return await self._put(f"{_object_path(*resource.key)}/status", resource)

    async def _put(self, path: str, resource: Resource) -> Resource:
        response = await self.http.put(path, json=to_body(resource))
        if response.status_code == 404:
            raise ResourceNotFoundError(resource.key)
        if response.status_code == 409:
            raise ConflictError(resource.key, resource.resource_version)
        response.raise_for_status()
        return to_resource(resource.kind, KubeObject.model_validate(response.json()))

    async def delete(self, kind: str, namespace: str, name: str) -> bool:
        response = await self.http.delete(_object_path(kind, namespace, name))
        if response.status_code == 404:
            return False
        response.raise_for_status()
        return True
