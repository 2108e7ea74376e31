"""Resource schemas, quantities and selectors."""

from .objects import (
    CONDITION_READY,
    CapacityClass,
    CapacityClassSpec,
    Condition,
    KubeObject,
    NodeClaim,
    NodeClaimSpec,
    NodeClaimStatus,
    NodeClassReference,
    NodePool,
    NodeSelectorOperator,
    NodeSelectorRequirement,
    ObjectMeta,
    ScalableGroup,
    ScalableGroupSpec,
    Unit,
    UnitSpec,
)
from .quantity import Quantity, ResourceList, parse_resource_list
from .selectors import LabelSelector, LabelSelectorRequirement, SelectorOperator

__all__ = [
    "CONDITION_READY",
    "CapacityClass",
    "CapacityClassSpec",
    "Condition",
    "KubeObject",
    "LabelSelector",
    "LabelSelectorRequirement",
    "NodeClaim",
    "NodeClaimSpec",
    "NodeClaimStatus",
    "NodeClassReference",
    "NodePool",
    "NodeSelectorOperator",
    "NodeSelectorRequirement",
    "ObjectMeta",
    "Quantity",
    "ResourceList",
    "ScalableGroup",
    "ScalableGroupSpec",
    "SelectorOperator",
    "Unit",
    "UnitSpec",
    "parse_resource_list",
]
