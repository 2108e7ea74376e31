"""Access to Units (Cluster API Machines) and their deletion marking."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from capi_provider.apis.objects import Unit
from capi_provider.apis.selectors import LabelSelector
from capi_provider.apis.wellknown import DELETE_MACHINE_ANNOTATION
from capi_provider.core.exceptions import InvalidInputError, ProviderError, wrap_error
from capi_provider.core.logging import get_logger
from capi_provider.store.base import ObjectStore

logger = get_logger(__name__)


class UnitProvider:
    def __init__(self, store: ObjectStore) -> None:
        self.store = store

    def get(self, name: str, namespace: str) -> Unit:
        try:
            return self.store.get(Unit, name, namespace)
        except ProviderError as exc:
            raise wrap_error(exc, f"unable to get Machine {name} in namespace {namespace}") from exc

    def get_by_external_id(self, provider_id: str) -> Optional[Unit]:
        """Return the unit whose ``spec.providerID`` equals ``provider_id``, or ``None``.

        Every unit is scanned, so the result may be a unit that is not a
        member of any node pool.
        """
        try:
            units = self.store.list(Unit)
        except ProviderError as exc:
            raise wrap_error(exc, "unable to list machines during Machine Provider Get request") from exc
        for unit in units:
            if unit.provider_id is not None and unit.provider_id == provider_id:
                return unit
        return None

    def list(self, selector: Optional[LabelSelector] = None, namespace: Optional[str] = None) -> List[Unit]:
        try:
            return self.store.list(Unit, selector=selector, namespace=namespace)
        except ProviderError as exc:
            raise wrap_error(exc, "unable to list Machines") from exc

    @staticmethod
    def is_deleting(unit: Optional[Unit]) -> bool:
        return unit is not None and unit.metadata.deletion_timestamp is not None

    def add_delete_annotation(self, unit: Unit) -> bool:
        """Mark ``unit`` as the one to remove on the next scale down.

        Returns ``True`` when the mark was written. An existing mark is kept as
        is, nothing is written and ``False`` is returned.
        """
        if unit is None:
            raise InvalidInputError("cannot add deletion annotation to Machine, nil value")
        if DELETE_MACHINE_ANNOTATION in unit.metadata.annotations:
            return False
        unit.metadata.annotations[DELETE_MACHINE_ANNOTATION] = str(datetime.now())
        try:
            self.store.update(unit)
        except ProviderError as exc:
            unit.metadata.annotations.pop(DELETE_MACHINE_ANNOTATION, None)
            raise wrap_error(exc, f"unable to add deletion annotation to Machine {unit.name!r}") from exc
        logger.debug("Added deletion annotation", extra={"machine": f"{unit.namespace}/{unit.name}"})
        return True

    def remove_delete_annotation(self, unit: Unit) -> None:
        if unit is None:
            raise InvalidInputError("cannot remove deletion annotation from Machine, nil value")
        if DELETE_MACHINE_ANNOTATION not in unit.metadata.annotations:
            return
        previous = unit.metadata.annotations.pop(DELETE_MACHINE_ANNOTATION)
        try:
            self.store.update(unit)
        except ProviderError as exc:
            unit.metadata.annotations[DELETE_MACHINE_ANNOTATION] = previous
            raise wrap_error(exc, f"unable to remove deletion annotation from Machine {unit.name!r}") from exc
        logger.debug("Removed deletion annotation", extra={"machine": f"{unit.namespace}/{unit.name}"})

    def update(self, unit: Unit) -> Unit:
        try:
            return self.store.update(unit)
        except ProviderError as exc:
            raise wrap_error(exc, f"unable to update Machine {unit.name!r}") from exc
