"""Object store backed by a Kubernetes API server through ``CustomObjectsApi``."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Type

from kubernetes import client
from kubernetes.client.rest import ApiException

from capi_provider.apis.objects import KubeObject
from capi_provider.apis.selectors import LabelSelector
from capi_provider.core.exceptions import AlreadyExistsError, ConflictError, NotFoundError, ProviderError
from capi_provider.core.logging import get_logger

from .base import K, describe

logger = get_logger(__name__)


class KubernetesObjectStore:
    """Typed CRUD over custom resources.

    Cluster-scoped kinds ignore the namespace argument. Listing a namespaced
    kind without a namespace lists across all namespaces.
    """

    def __init__(self, api_client: Optional[client.ApiClient] = None, request_timeout: Optional[float] = None) -> None:
        self.api = client.CustomObjectsApi(api_client)
        self.request_timeout = request_timeout

    def _call(self, verb: str, target: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        if self.request_timeout is not None:
            kwargs["_request_timeout"] = self.request_timeout
        try:
            return func(*args, **kwargs)
        except ApiException as exc:
            if exc.status == 404:
                raise NotFoundError(f"{target} not found", metadata={"verb": verb}) from exc
            if exc.status == 409:
                if verb == "create":
                    raise AlreadyExistsError(f"{target} already exists", metadata={"verb": verb}) from exc
                raise ConflictError(f"{verb} {target}: {exc.reason}", metadata={"verb": verb}) from exc
            raise ProviderError(
                f"{verb} {target} failed: {exc.status} {exc.reason}",
                code="api_error",
                metadata={"verb": verb, "status": exc.status},
            ) from exc

    def get(self, kind: Type[K], name: str, namespace: str = "") -> K:
        target = describe(kind, name, namespace)
        if kind.NAMESPACED:
            payload = self._call(
                "get", target, self.api.get_namespaced_custom_object,
                kind.GROUP, kind.VERSION, namespace, kind.PLURAL, name,
            )
        else:
            payload = self._call(
                "get", target, self.api.get_cluster_custom_object,
                kind.GROUP, kind.VERSION, kind.PLURAL, name,
            )
        return kind.from_dict(payload)

    def list(
        self,
        kind: Type[K],
        selector: Optional[LabelSelector] = None,
        namespace: Optional[str] = None,
    ) -> List[K]:
        kwargs: Dict[str, Any] = {}
        if selector is not None and not selector.is_empty():
            kwargs["label_selector"] = selector.render()
        target = f"{kind.KIND} list"
        if kind.NAMESPACED and namespace:
            payload = self._call(
                "list", target, self.api.list_namespaced_custom_object,
                kind.GROUP, kind.VERSION, namespace, kind.PLURAL, **kwargs,
            )
        else:
            payload = self._call(
                "list", target, self.api.list_cluster_custom_object,
                kind.GROUP, kind.VERSION, kind.PLURAL, **kwargs,
            )
        items = [kind.from_dict(item) for item in payload.get("items", [])]
        logger.debug("Listed objects", extra={"kind": kind.KIND, "count": len(items)})
        return items

    def create(self, obj: K) -> K:
        kind = type(obj)
        target = describe(kind, obj.name, obj.namespace)
        if kind.NAMESPACED:
            payload = self._call(
                "create", target, self.api.create_namespaced_custom_object,
                kind.GROUP, kind.VERSION, obj.namespace, kind.PLURAL, obj.to_dict(),
            )
        else:
            payload = self._call(
                "create", target, self.api.create_cluster_custom_object,
                kind.GROUP, kind.VERSION, kind.PLURAL, obj.to_dict(),
            )
        return self._refresh(obj, payload)

    def update(self, obj: K) -> K:
        kind = type(obj)
        target = describe(kind, obj.name, obj.namespace)
        if kind.NAMESPACED:
            payload = self._call(
                "update", target, self.api.replace_namespaced_custom_object,
                kind.GROUP, kind.VERSION, obj.namespace, kind.PLURAL, obj.name, obj.to_dict(),
            )
        else:
            payload = self._call(
                "update", target, self.api.replace_cluster_custom_object,
                kind.GROUP, kind.VERSION, kind.PLURAL, obj.name, obj.to_dict(),
            )
        return self._refresh(obj, payload)

    def update_status(self, obj: K) -> K:
        kind = type(obj)
        target = describe(kind, obj.name, obj.namespace)
        if kind.NAMESPACED:
            payload = self._call(
                "update status", target, self.api.replace_namespaced_custom_object_status,
                kind.GROUP, kind.VERSION, obj.namespace, kind.PLURAL, obj.name, obj.to_dict(),
            )
        else:
            payload = self._call(
                "update status", target, self.api.replace_cluster_custom_object_status,
                kind.GROUP, kind.VERSION, kind.PLURAL, obj.name, obj.to_dict(),
            )
        return self._refresh(obj, payload)

    def delete(self, obj: KubeObject) -> None:
        kind = type(obj)
        target = describe(kind, obj.name, obj.namespace)
        if kind.NAMESPACED:
            self._call(
                "delete", target, self.api.delete_namespaced_custom_object,
                kind.GROUP, kind.VERSION, obj.namespace, kind.PLURAL, obj.name,
            )
        else:
            self._call(
                "delete", target, self.api.delete_cluster_custom_object,
                kind.GROUP, kind.VERSION, kind.PLURAL, obj.name,
            )

    @staticmethod
    def _refresh(obj: K, payload: Dict[str, Any]) -> K:
        stored = type(obj).from_dict(payload)
        obj.metadata.resource_version = stored.metadata.resource_version
        obj.metadata.uid = stored.metadata.uid
        obj.metadata.creation_timestamp = stored.metadata.creation_timestamp
        obj.metadata.deletion_timestamp = stored.metadata.deletion_timestamp
        return stored
