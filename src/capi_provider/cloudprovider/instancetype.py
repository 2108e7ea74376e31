"""Instance types: the capacity a scalable group offers to a claim."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from capi_provider.apis.quantity import ResourceList, subtract
from capi_provider.scheduling.requirements import Requirements


@dataclass
class Offering:
    requirements: Requirements
    price: float = 0.0
    available: bool = True


@dataclass
class InstanceTypeOverhead:
    kube_reserved: ResourceList = field(default_factory=dict)
    system_reserved: ResourceList = field(default_factory=dict)
    eviction_threshold: ResourceList = field(default_factory=dict)


@dataclass
class InstanceType:
    """One scalable group seen as a schedulable instance type.

    ``group_name`` and ``group_namespace`` record where the type came from so
    the group can be found again when the type is selected.
    """

    name: str
    requirements: Requirements
    offerings: List[Offering]
    capacity: ResourceList
    overhead: InstanceTypeOverhead = field(default_factory=InstanceTypeOverhead)
    group_name: str = ""
    group_namespace: str = ""

    def allocatable(self) -> ResourceList:
        return subtract(
            self.capacity,
            self.overhead.kube_reserved,
            self.overhead.system_reserved,
            self.overhead.eviction_threshold,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "group": f"{self.group_namespace}/{self.group_name}",
            "requirements": sorted(repr(r) for r in self.requirements),
            "offerings": [
                {
                    "requirements": sorted(repr(r) for r in offering.requirements),
                    "price": offering.price,
                    "available": offering.available,
                }
                for offering in self.offerings
            ],
            "capacity": {name: str(amount) for name, amount in sorted(self.capacity.items())},
            "allocatable": {name: str(amount) for name, amount in sorted(self.allocatable().items())},
        }
