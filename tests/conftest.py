import itertools
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from capi_provider.apis import wellknown  # noqa: E402
from capi_provider.apis.objects import (  # noqa: E402
    CapacityClass,
    CapacityClassSpec,
    KubeObject,
    NodeClaim,
    NodeClaimSpec,
    NodeClassReference,
    NodeSelectorRequirement,
    ObjectMeta,
    ResourceRequirements,
    ScalableGroup,
    ScalableGroupSpec,
    TemplateMeta,
    Unit,
    UnitSpec,
    UnitTemplate,
)
from capi_provider.apis.quantity import Quantity  # noqa: E402
from capi_provider.apis.selectors import LabelSelector  # noqa: E402
from capi_provider.cloudprovider.provider import CloudProvider  # noqa: E402
from capi_provider.core.polling import PollPolicy  # noqa: E402
from capi_provider.providers.groups import GroupProvider  # noqa: E402
from capi_provider.providers.units import UnitProvider  # noqa: E402
from capi_provider.store.memory import InMemoryObjectStore  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "provisioning: marks create and delete protocol tests")
    config.addinivalue_line("markers", "slow: marks tests that wait on a poll timeout")


class SimulatedClusterStore(InMemoryObjectStore):
    """In-memory store that reacts to replica increments like the Cluster API controller.

    Each increment creates one Machine labelled with its owning deployment.
    Writes can be made to fail with :meth:`fail_update`.
    """

    def __init__(self) -> None:
        super().__init__()
        self.fulfill = True
        self.assign_provider_ids = True
        self._serial = itertools.count(1)
        self._failures: List[Dict] = []
        self.update_calls: List[KubeObject] = []

    def fail_update(
        self,
        kind,
        error: Exception,
        count: int = 1,
        match: Optional[Callable[[KubeObject], bool]] = None,
    ) -> None:
        self._failures.append({"kind": kind, "error": error, "count": count, "match": match})

    def _maybe_fail(self, obj: KubeObject) -> None:
        for rule in self._failures:
            if rule["count"] <= 0 or not isinstance(obj, rule["kind"]):
                continue
            if rule["match"] is not None and not rule["match"](obj):
                continue
            rule["count"] -= 1
            raise rule["error"]

    def update(self, obj):
        self.update_calls.append(obj.deep_copy())
        self._maybe_fail(obj)
        previous = self.get(type(obj), obj.name, obj.namespace) if isinstance(obj, ScalableGroup) else None
        stored = super().update(obj)
        if previous is not None and self.fulfill:
            added = (stored.replicas or 0) - (previous.replicas or 0)
            for _ in range(max(added, 0)):
                self._create_machine(stored)
        return stored

    def _create_machine(self, group: ScalableGroup) -> Unit:
        name = f"{group.name}-machine-{next(self._serial)}"
        unit = Unit(
            metadata=ObjectMeta(
                name=name,
                namespace=group.namespace,
                labels={wellknown.DEPLOYMENT_NAME_LABEL: group.name},
            ),
            spec=UnitSpec(
                cluster_name=group.spec.cluster_name,
                provider_id=f"clusterapi://{name}" if self.assign_provider_ids else None,
            ),
        )
        return self.create(unit)


class ObjectFactory:
    """Builds and stores the objects the provider works on."""

    def __init__(self, store: InMemoryObjectStore) -> None:
        self.store = store

    def group(
        self,
        name: str,
        replicas: Optional[int] = 1,
        namespace: str = "default",
        cpu: Optional[str] = "4",
        memory: Optional[str] = "16777220Ki",
        annotations: Optional[Dict[str, str]] = None,
        template_labels: Optional[Dict[str, str]] = None,
        labels: Optional[Dict[str, str]] = None,
    ) -> ScalableGroup:
        merged: Dict[str, str] = {}
        if cpu is not None:
            merged[wellknown.CPU_KEY] = cpu
        if memory is not None:
            merged[wellknown.MEMORY_KEY] = memory
        merged.update(annotations or {})
        group = ScalableGroup(
            metadata=ObjectMeta(name=name, namespace=namespace, labels=dict(labels or {}), annotations=merged),
            spec=ScalableGroupSpec(
                cluster_name="workload",
                replicas=replicas,
                template=UnitTemplate(metadata=TemplateMeta(labels=dict(template_labels or {}))),
            ),
        )
        return self.store.create(group)

    def unit(
        self,
        name: str,
        group: Optional[str] = None,
        namespace: str = "default",
        provider_id: Optional[str] = None,
        member: bool = False,
        annotations: Optional[Dict[str, str]] = None,
        finalizers: Optional[List[str]] = None,
    ) -> Unit:
        labels: Dict[str, str] = {}
        if group is not None:
            labels[wellknown.DEPLOYMENT_NAME_LABEL] = group
        if member:
            labels[wellknown.NODE_POOL_MEMBER_LABEL] = ""
        unit = Unit(
            metadata=ObjectMeta(
                name=name,
                namespace=namespace,
                labels=labels,
                annotations=dict(annotations or {}),
                finalizers=list(finalizers or []),
            ),
            spec=UnitSpec(cluster_name="workload", provider_id=provider_id),
        )
        return self.store.create(unit)

    def node_class(self, name: str = "default", selector: Optional[LabelSelector] = None) -> CapacityClass:
        return self.store.create(
            CapacityClass(metadata=ObjectMeta(name=name), spec=CapacityClassSpec(scalable_resource_selector=selector))
        )

    def claim(
        self,
        name: str = "claim-1",
        node_class: Optional[str] = "default",
        requirements: Optional[List[NodeSelectorRequirement]] = None,
        requests: Optional[Dict[str, str]] = None,
        annotations: Optional[Dict[str, str]] = None,
        provider_id: str = "",
        persist: bool = True,
    ) -> NodeClaim:
        claim = NodeClaim(
            metadata=ObjectMeta(name=name, annotations=dict(annotations or {})),
            spec=NodeClaimSpec(
                node_class_ref=NodeClassReference(name=node_class) if node_class is not None else None,
                requirements=list(requirements or []),
                resources=ResourceRequirements(
                    requests={key: Quantity.parse(value) for key, value in (requests or {}).items()}
                ),
            ),
        )
        claim.status.provider_id = provider_id
        if persist:
            self.store.create(claim)
        return claim


@pytest.fixture
def store() -> SimulatedClusterStore:
    return SimulatedClusterStore()


@pytest.fixture
def factory(store) -> ObjectFactory:
    return ObjectFactory(store)


@pytest.fixture
def fast_poll() -> PollPolicy:
    return PollPolicy(interval=0.01, timeout=0.05)


@pytest.fixture
def provider(store, fast_poll) -> CloudProvider:
    return CloudProvider(
        store=store,
        groups=GroupProvider(store),
        units=UnitProvider(store),
        poll_policy=fast_poll,
    )
