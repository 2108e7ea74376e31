"""Translate scalable group metadata into capacity, labels and requirements.

Everything here is a pure function of the group's current state, so a
retried create sees exactly the same instance types.
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional, Tuple

from capi_provider.apis import wellknown
from capi_provider.apis.objects import NodeSelectorOperator, ScalableGroup
from capi_provider.apis.quantity import (
    RESOURCE_CPU,
    RESOURCE_EPHEMERAL_STORAGE,
    RESOURCE_MEMORY,
    RESOURCE_PODS,
    Quantity,
    ResourceList,
)
from capi_provider.core.exceptions import QuantityParseError
from capi_provider.scheduling.requirements import Requirement, Requirements

from .instancetype import InstanceType, InstanceTypeOverhead, Offering
from .labels import managed_node_labels


def _parse(annotations: Mapping[str, str], key: str) -> Quantity:
    try:
        return Quantity.parse(annotations[key])
    except QuantityParseError as exc:
        raise exc.with_context(f"annotation {key}") from exc


def capacity_from_annotations(annotations: Optional[Mapping[str, str]]) -> ResourceList:
    """Read the scale-from-zero capacity annotations.

    A GPU count without a GPU type is ignored because the type names the
    resource. Malformed quantities raise :class:`QuantityParseError`.
    """
    capacity: ResourceList = {}
    if not annotations:
        return capacity

    if wellknown.CPU_KEY in annotations:
        capacity[RESOURCE_CPU] = _parse(annotations, wellknown.CPU_KEY)
    if wellknown.MEMORY_KEY in annotations:
        capacity[RESOURCE_MEMORY] = _parse(annotations, wellknown.MEMORY_KEY)
    if wellknown.GPU_COUNT_KEY in annotations:
        gpu_type = annotations.get(wellknown.GPU_TYPE_KEY)
        if gpu_type:
            capacity[gpu_type] = _parse(annotations, wellknown.GPU_COUNT_KEY)
    if wellknown.DISK_CAPACITY_KEY in annotations:
        capacity[RESOURCE_EPHEMERAL_STORAGE] = _parse(annotations, wellknown.DISK_CAPACITY_KEY)
    if wellknown.MAX_PODS_KEY in annotations:
        capacity[RESOURCE_PODS] = _parse(annotations, wellknown.MAX_PODS_KEY)
    return capacity


def labels_from_scale_from_zero_annotation(annotation: str) -> Dict[str, str]:
    """Parse ``k1=v1,k2=v2``.

    Segments without ``=`` or with an empty key are skipped rather than
    rejected; surrounding whitespace is stripped. Later keys win.
    """
    labels: Dict[str, str] = {}
    for segment in annotation.split(","):
        key, sep, value = segment.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        labels[key] = value.strip()
    return labels


def node_labels_from_group(group: ScalableGroup) -> Dict[str, str]:
    """Labels a node of ``group`` will carry.

    Template labels pass through the Cluster API propagation allow-list, then
    the scale-from-zero labels annotation overrides and extends them.
    """
    labels = managed_node_labels(group.spec.template.metadata.labels)
    annotation = group.metadata.annotations.get(wellknown.LABELS_KEY)
    if annotation is not None:
        labels.update(labels_from_scale_from_zero_annotation(annotation))
    return labels


def zone_from_labels(labels: Mapping[str, str]) -> str:
    return labels.get(wellknown.LABEL_TOPOLOGY_ZONE, "")


def requirements_from_group(group: ScalableGroup) -> Tuple[Dict[str, str], Requirements, Offering]:
    labels = node_labels_from_group(group)
    requirements = Requirements(
        *(Requirement.new(key, NodeSelectorOperator.IN, [value]) for key, value in sorted(labels.items()))
    )
    offering = Offering(
        requirements=Requirements(
            Requirement.new(wellknown.LABEL_TOPOLOGY_ZONE, NodeSelectorOperator.IN, [zone_from_labels(labels)]),
            Requirement.new(
                wellknown.CAPACITY_TYPE_LABEL_KEY, NodeSelectorOperator.IN, [wellknown.CAPACITY_TYPE_ON_DEMAND]
            ),
        ),
        price=0.0,
        available=True,
    )
    return labels, requirements, offering


def group_to_instance_type(group: ScalableGroup) -> InstanceType:
    labels, requirements, offering = requirements_from_group(group)
    # The name must match the instance-type label of the resulting node
    name = labels.get(wellknown.LABEL_INSTANCE_TYPE_STABLE) or group.name
    return InstanceType(
        name=name,
        requirements=requirements,
        offerings=[offering],
        capacity=capacity_from_annotations(group.metadata.annotations),
        overhead=InstanceTypeOverhead(),
        group_name=group.name,
        group_namespace=group.namespace,
    )
