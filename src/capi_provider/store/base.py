"""Interface of the networked object store the provider is built on."""

from __future__ import annotations

from typing import List, Optional, Protocol, Type, TypeVar

from capi_provider.apis.objects import KubeObject
from capi_provider.apis.selectors import LabelSelector

K = TypeVar("K", bound=KubeObject)


class ObjectStore(Protocol):
    """Typed CRUD with label selection and optimistic concurrency.

    ``update`` fails with :class:`~capi_provider.core.exceptions.ConflictError`
    when ``metadata.resourceVersion`` no longer matches the stored object, and
    refreshes the caller's object with the new version on success. Missing
    objects raise :class:`~capi_provider.core.exceptions.NotFoundError`.
    """

    def get(self, kind: Type[K], name: str, namespace: str = "") -> K: ...

    def list(
        self,
        kind: Type[K],
        selector: Optional[LabelSelector] = None,
        namespace: Optional[str] = None,
    ) -> List[K]: ...

    def create(self, obj: K) -> K: ...

    def update(self, obj: K) -> K: ...

    def update_status(self, obj: K) -> K: ...

    def delete(self, obj: KubeObject) -> None: ...


def describe(kind: Type[KubeObject], name: str, namespace: str = "") -> str:
    if kind.NAMESPACED and namespace:
        return f"{kind.KIND} {namespace}/{name}"
    return f"{kind.KIND} {name}"
