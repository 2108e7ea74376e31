"""Pydantic schemas for the resources the provider reads and writes.

The models mirror the Kubernetes JSON shape (camelCase aliases) and keep
unknown fields, so an object read from the API server can be written back
without dropping data this package does not model.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from .quantity import Quantity
from .selectors import LabelSelector
from .wellknown import CLUSTER_API_GROUP, KARPENTER_GROUP, PROVIDER_GROUP

K = TypeVar("K", bound="KubeObject")


class KubeModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class ObjectMeta(KubeModel):
    name: str = ""
    namespace: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    finalizers: List[str] = Field(default_factory=list)
    uid: Optional[str] = None
    resource_version: Optional[str] = Field(default=None, alias="resourceVersion")
    creation_timestamp: Optional[datetime] = Field(default=None, alias="creationTimestamp")
    deletion_timestamp: Optional[datetime] = Field(default=None, alias="deletionTimestamp")


class KubeObject(KubeModel):
    """Base for every persisted kind."""

    GROUP: ClassVar[str] = ""
    VERSION: ClassVar[str] = ""
    KIND: ClassVar[str] = ""
    PLURAL: ClassVar[str] = ""
    NAMESPACED: ClassVar[bool] = True

    api_version: str = Field(default="", alias="apiVersion")
    kind: str = ""
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)

    def model_post_init(self, __context: Any) -> None:
        if not self.api_version:
            self.api_version = f"{self.GROUP}/{self.VERSION}"
        if not self.kind:
            self.kind = self.KIND

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def labels(self) -> Dict[str, str]:
        return self.metadata.labels

    @property
    def annotations(self) -> Dict[str, str]:
        return self.metadata.annotations

    def key(self) -> Tuple[str, str]:
        return (self.metadata.namespace if self.NAMESPACED else "", self.metadata.name)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    @classmethod
    def from_dict(cls: Type[K], payload: Dict[str, Any]) -> K:
        return cls.model_validate(payload)

    def deep_copy(self: K) -> K:
        return self.model_copy(deep=True)


class TemplateMeta(KubeModel):
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)


class UnitTemplate(KubeModel):
    metadata: TemplateMeta = Field(default_factory=TemplateMeta)


class ScalableGroupSpec(KubeModel):
    cluster_name: str = Field(default="", alias="clusterName")
    # None means the group is not managed by a replica count
    replicas: Optional[int] = Field(default=None, ge=0)
    template: UnitTemplate = Field(default_factory=UnitTemplate)


class ScalableGroup(KubeObject):
    """A Cluster API MachineDeployment."""

    GROUP: ClassVar[str] = CLUSTER_API_GROUP
    VERSION: ClassVar[str] = "v1beta1"
    KIND: ClassVar[str] = "MachineDeployment"
    PLURAL: ClassVar[str] = "machinedeployments"

    spec: ScalableGroupSpec = Field(default_factory=ScalableGroupSpec)

    @property
    def replicas(self) -> Optional[int]:
        return self.spec.replicas


class UnitSpec(KubeModel):
    cluster_name: str = Field(default="", alias="clusterName")
    provider_id: Optional[str] = Field(default=None, alias="providerID")


class Unit(KubeObject):
    """A Cluster API Machine."""

    GROUP: ClassVar[str] = CLUSTER_API_GROUP
    VERSION: ClassVar[str] = "v1beta1"
    KIND: ClassVar[str] = "Machine"
    PLURAL: ClassVar[str] = "machines"

    spec: UnitSpec = Field(default_factory=UnitSpec)

    @property
    def provider_id(self) -> Optional[str]:
        return self.spec.provider_id


class NodeSelectorOperator(str, Enum):
    IN = "In"
    NOT_IN = "NotIn"
    EXISTS = "Exists"
    DOES_NOT_EXIST = "DoesNotExist"
    GT = "Gt"
    LT = "Lt"


class NodeSelectorRequirement(KubeModel):
    key: str
    operator: NodeSelectorOperator
    values: List[str] = Field(default_factory=list)
    min_values: Optional[int] = Field(default=None, alias="minValues", ge=1)


class NodeClassReference(KubeModel):
    group: str = PROVIDER_GROUP
    kind: str = "ClusterAPINodeClass"
    name: str = ""


class ResourceRequirements(KubeModel):
    requests: Dict[str, Quantity] = Field(default_factory=dict)


class NodeClaimSpec(KubeModel):
    node_class_ref: Optional[NodeClassReference] = Field(default=None, alias="nodeClassRef")
    requirements: List[NodeSelectorRequirement] = Field(default_factory=list)
    resources: ResourceRequirements = Field(default_factory=ResourceRequirements)


class NodeClaimStatus(KubeModel):
    provider_id: str = Field(default="", alias="providerID")
    capacity: Dict[str, Quantity] = Field(default_factory=dict)
    allocatable: Dict[str, Quantity] = Field(default_factory=dict)


class NodeClaim(KubeObject):
    GROUP: ClassVar[str] = KARPENTER_GROUP
    VERSION: ClassVar[str] = "v1"
    KIND: ClassVar[str] = "NodeClaim"
    PLURAL: ClassVar[str] = "nodeclaims"
    NAMESPACED: ClassVar[bool] = False

    spec: NodeClaimSpec = Field(default_factory=NodeClaimSpec)
    status: NodeClaimStatus = Field(default_factory=NodeClaimStatus)


class NodeClaimTemplateSpec(KubeModel):
    node_class_ref: Optional[NodeClassReference] = Field(default=None, alias="nodeClassRef")
    requirements: List[NodeSelectorRequirement] = Field(default_factory=list)


class NodeClaimTemplate(KubeModel):
    metadata: TemplateMeta = Field(default_factory=TemplateMeta)
    spec: NodeClaimTemplateSpec = Field(default_factory=NodeClaimTemplateSpec)


class NodePoolSpec(KubeModel):
    template: NodeClaimTemplate = Field(default_factory=NodeClaimTemplate)


class NodePool(KubeObject):
    GROUP: ClassVar[str] = KARPENTER_GROUP
    VERSION: ClassVar[str] = "v1"
    KIND: ClassVar[str] = "NodePool"
    PLURAL: ClassVar[str] = "nodepools"
    NAMESPACED: ClassVar[bool] = False

    spec: NodePoolSpec = Field(default_factory=NodePoolSpec)


CONDITION_READY = "Ready"


class Condition(KubeModel):
    type: str
    status: str = "Unknown"
    reason: str = ""
    message: str = ""
    last_transition_time: Optional[datetime] = Field(default=None, alias="lastTransitionTime")
    observed_generation: Optional[int] = Field(default=None, alias="observedGeneration")


class CapacityClassSpec(KubeModel):
    # None selects every scalable group
    scalable_resource_selector: Optional[LabelSelector] = Field(default=None, alias="scalableResourceSelector")


class CapacityClassStatus(KubeModel):
    conditions: List[Condition] = Field(default_factory=list)


class CapacityClass(KubeObject):
    """A ClusterAPINodeClass: selects the scalable groups eligible for its claims."""

    GROUP: ClassVar[str] = PROVIDER_GROUP
    VERSION: ClassVar[str] = "v1alpha1"
    KIND: ClassVar[str] = "ClusterAPINodeClass"
    PLURAL: ClassVar[str] = "clusterapinodeclasses"
    NAMESPACED: ClassVar[bool] = False

    spec: CapacityClassSpec = Field(default_factory=CapacityClassSpec)
    status: CapacityClassStatus = Field(default_factory=CapacityClassStatus)

    def get_condition(self, condition_type: str) -> Optional[Condition]:
        for condition in self.status.conditions:
            if condition.type == condition_type:
                return condition
        return None

    def set_condition_true(self, condition_type: str, reason: str = "") -> None:
        reason = reason or condition_type
        existing = self.get_condition(condition_type)
        if existing is None:
            self.status.conditions.append(
                Condition(
                    type=condition_type,
                    status="True",
                    reason=reason,
                    last_transition_time=datetime.now(timezone.utc),
                )
            )
            return
        if existing.status != "True":
            existing.status = "True"
            existing.reason = reason
            existing.message = ""
            existing.last_transition_time = datetime.now(timezone.utc)
