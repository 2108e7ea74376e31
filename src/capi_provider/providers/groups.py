"""Access to ScalableGroups (Cluster API MachineDeployments)."""

from __future__ import annotations

from typing import List, Optional

from capi_provider.apis.objects import ScalableGroup
from capi_provider.apis.selectors import LabelSelector
from capi_provider.core.exceptions import ProviderError, wrap_error
from capi_provider.store.base import ObjectStore


class GroupProvider:
    """Reads and writes scalable groups.

    ``list`` never restricts by membership label on its own; callers that need
    that pass it in the selector.
    """

    def __init__(self, store: ObjectStore) -> None:
        self.store = store

    def get(self, name: str, namespace: str) -> ScalableGroup:
        try:
            return self.store.get(ScalableGroup, name, namespace)
        except ProviderError as exc:
            raise wrap_error(exc, f"unable to get MachineDeployment {name} in namespace {namespace}") from exc

    def list(self, selector: Optional[LabelSelector] = None) -> List[ScalableGroup]:
        try:
            return self.store.list(ScalableGroup, selector=selector)
        except ProviderError as exc:
            raise wrap_error(exc, "unable to list MachineDeployments with selector") from exc

    def update(self, group: ScalableGroup) -> ScalableGroup:
        try:
            return self.store.update(group)
        except ProviderError as exc:
            raise wrap_error(exc, f"unable to update MachineDeployment {group.name!r}") from exc
