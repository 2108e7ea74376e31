"""Marks capacity classes ready."""

from __future__ import annotations

from dataclasses import dataclass

from capi_provider.apis.objects import CONDITION_READY, CapacityClass
from capi_provider.core.exceptions import ConflictError, NotFoundError
from capi_provider.core.logging import get_logger
from capi_provider.store.base import ObjectStore

logger = get_logger(__name__)

CONTROLLER_NAME = "nodeclass.status"


@dataclass(frozen=True)
class ReconcileResult:
    requeue: bool = False


class CapacityClassStatusController:
    """Sets ``Ready=True`` on every capacity class.

    Only a changed object is written; a write conflict asks for a requeue and
    a vanished object is ignored.
    """

    def __init__(self, store: ObjectStore) -> None:
        self.store = store

    def reconcile(self, capacity_class: CapacityClass) -> ReconcileResult:
        stored = capacity_class.deep_copy()

        ready = capacity_class.get_condition(CONDITION_READY)
        if ready is None or ready.status != "True":
            capacity_class.set_condition_true(CONDITION_READY)

        if capacity_class == stored:
            return ReconcileResult()

        try:
            self.store.update_status(capacity_class)
        except ConflictError:
            logger.debug("Conflict updating NodeClass status", extra={"node_class": capacity_class.name})
            return ReconcileResult(requeue=True)
        except NotFoundError:
            return ReconcileResult()

        logger.info("Marked NodeClass ready", extra={"node_class": capacity_class.name, "controller": CONTROLLER_NAME})
        return ReconcileResult()
