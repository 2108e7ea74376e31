"""Thread-safe in-memory object store with API-server write semantics."""

from __future__ import annotations

import itertools
import threading
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple, Type

from capi_provider.apis.objects import KubeObject
from capi_provider.apis.selectors import LabelSelector
from capi_provider.core.exceptions import AlreadyExistsError, ConflictError, NotFoundError

from .base import K, describe

_Key = Tuple[Type[KubeObject], str, str]


class InMemoryObjectStore:
    """Stores deep copies keyed by kind, namespace and name.

    Listing returns objects in creation order. Deleting an object that
    carries finalizers only sets its deletion timestamp, like the API server.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._objects: Dict[_Key, KubeObject] = {}
        self._versions = itertools.count(1)

    def _key(self, kind: Type[KubeObject], name: str, namespace: str) -> _Key:
        return (kind, namespace if kind.NAMESPACED else "", name)

    def _next_version(self) -> str:
        return str(next(self._versions))

    def get(self, kind: Type[K], name: str, namespace: str = "") -> K:
        with self._lock:
            stored = self._objects.get(self._key(kind, name, namespace))
            if stored is None:
                raise NotFoundError(f"{describe(kind, name, namespace)} not found")
            return stored.deep_copy()  # type: ignore[return-value]

    def list(
        self,
        kind: Type[K],
        selector: Optional[LabelSelector] = None,
        namespace: Optional[str] = None,
    ) -> List[K]:
        with self._lock:
            items = []
            for (stored_kind, stored_ns, _), obj in self._objects.items():
                if stored_kind is not kind:
                    continue
                if namespace is not None and kind.NAMESPACED and stored_ns != namespace:
                    continue
                if selector is not None and not selector.matches(obj.metadata.labels):
                    continue
                items.append(obj.deep_copy())
            return items  # type: ignore[return-value]

    def create(self, obj: K) -> K:
        kind = type(obj)
        with self._lock:
            key = self._key(kind, obj.metadata.name, obj.metadata.namespace)
            if key in self._objects:
                raise AlreadyExistsError(f"{describe(kind, obj.name, obj.namespace)} already exists")
            stored = obj.deep_copy()
            stored.metadata.uid = stored.metadata.uid or str(uuid.uuid4())
            stored.metadata.resource_version = self._next_version()
            stored.metadata.creation_timestamp = stored.metadata.creation_timestamp or datetime.now(timezone.utc)
            self._objects[key] = stored
            self._refresh(obj, stored)
            return stored.deep_copy()

    def update(self, obj: K) -> K:
        kind = type(obj)
        with self._lock:
            key = self._key(kind, obj.metadata.name, obj.metadata.namespace)
            current = self._objects.get(key)
            if current is None:
                raise NotFoundError(f"{describe(kind, obj.name, obj.namespace)} not found")
            expected = obj.metadata.resource_version
            if expected and expected != current.metadata.resource_version:
                raise ConflictError(
                    f"{describe(kind, obj.name, obj.namespace)} has been modified; "
                    f"resource version {expected} is stale"
                )
            stored = obj.deep_copy()
            stored.metadata.uid = current.metadata.uid
            stored.metadata.creation_timestamp = current.metadata.creation_timestamp
            stored.metadata.deletion_timestamp = current.metadata.deletion_timestamp
            stored.metadata.resource_version = self._next_version()
            if stored.metadata.deletion_timestamp is not None and not stored.metadata.finalizers:
                del self._objects[key]
            else:
                self._objects[key] = stored
            self._refresh(obj, stored)
            return stored.deep_copy()

    def update_status(self, obj: K) -> K:
        return self.update(obj)

    def delete(self, obj: KubeObject) -> None:
        kind = type(obj)
        with self._lock:
            key = self._key(kind, obj.metadata.name, obj.metadata.namespace)
            current = self._objects.get(key)
            if current is None:
                raise NotFoundError(f"{describe(kind, obj.name, obj.namespace)} not found")
            if current.metadata.finalizers:
                if current.metadata.deletion_timestamp is None:
                    current.metadata.deletion_timestamp = datetime.now(timezone.utc)
                    current.metadata.resource_version = self._next_version()
                return
            del self._objects[key]

    @staticmethod
    def _refresh(obj: KubeObject, stored: KubeObject) -> None:
        obj.metadata.resource_version = stored.metadata.resource_version
        obj.metadata.uid = stored.metadata.uid
        obj.metadata.creation_timestamp = stored.metadata.creation_timestamp
        obj.metadata.deletion_timestamp = stored.metadata.deletion_timestamp
