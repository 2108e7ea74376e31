"""State of one in-flight create: REQUESTED -> DISCOVERED -> BOUND.

An attempt starts once the replica increment is written. It is either bound
to a unit or rolled back; both are terminal.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from capi_provider.apis.objects import Unit
from capi_provider.apis.selectors import LabelSelector, does_not_exist, key_in
from capi_provider.apis.wellknown import DELETE_MACHINE_ANNOTATION, DEPLOYMENT_NAME_LABEL, NODE_POOL_MEMBER_LABEL
from capi_provider.core.exceptions import ProvisioningError
from capi_provider.core.polling import PollPolicy, poll_until
from capi_provider.providers.units import UnitProvider


class ProvisioningPhase(str, Enum):
    REQUESTED = "Requested"
    DISCOVERED = "Discovered"
    BOUND = "Bound"
    ROLLED_BACK = "RolledBack"


_TRANSITIONS: Dict[ProvisioningPhase, Tuple[ProvisioningPhase, ...]] = {
    ProvisioningPhase.REQUESTED: (ProvisioningPhase.DISCOVERED, ProvisioningPhase.ROLLED_BACK),
    ProvisioningPhase.DISCOVERED: (ProvisioningPhase.BOUND, ProvisioningPhase.ROLLED_BACK),
    ProvisioningPhase.BOUND: (),
    ProvisioningPhase.ROLLED_BACK: (),
}


def unclaimed_unit_selector(group_name: str) -> LabelSelector:
    """Units owned by ``group_name`` that no claim has taken yet."""
    return LabelSelector(
        match_expressions=[
            does_not_exist(NODE_POOL_MEMBER_LABEL),
            key_in(DEPLOYMENT_NAME_LABEL, group_name),
        ]
    )


@dataclass
class ProvisioningAttempt:
    claim_name: str
    group_name: str
    group_namespace: str
    original_replicas: int
    phase: ProvisioningPhase = ProvisioningPhase.REQUESTED
    unit: Optional[Unit] = None
    history: List[Tuple[ProvisioningPhase, datetime]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.history.append((self.phase, datetime.now(timezone.utc)))

    @property
    def group_key(self) -> str:
        return f"{self.group_namespace}/{self.group_name}"

    def _advance(self, phase: ProvisioningPhase) -> None:
        if phase not in _TRANSITIONS[self.phase]:
            raise ProvisioningError(
                f"invalid provisioning transition {self.phase.value} -> {phase.value} for NodeClaim {self.claim_name!r}"
            )
        self.phase = phase
        self.history.append((phase, datetime.now(timezone.utc)))

    def await_unit(
        self,
        units: UnitProvider,
        policy: PollPolicy,
        cancel: Optional[threading.Event] = None,
    ) -> Unit:
        """Poll for an unclaimed unit of the group; the first one listed wins.

        Units marked for deletion or already deleting are never picked.

        Raises ``PollTimeoutError`` or ``PollCancelledError`` from the poll, and
        any listing error unchanged.
        """
        selector = unclaimed_unit_selector(self.group_name)

        def find() -> Optional[Unit]:
            for candidate in units.list(selector, namespace=self.group_namespace):
                if units.is_deleting(candidate) or DELETE_MACHINE_ANNOTATION in candidate.metadata.annotations:
                    continue
                return candidate
            return None

        unit = poll_until(find, policy, cancel=cancel)
        self.discovered(unit)
        return unit

    def discovered(self, unit: Unit) -> None:
        self._advance(ProvisioningPhase.DISCOVERED)
        self.unit = unit

    def bound(self) -> None:
        self._advance(ProvisioningPhase.BOUND)

    def rolled_back(self) -> None:
        self._advance(ProvisioningPhase.ROLLED_BACK)
