import pytest

from capi_provider.apis import wellknown
from capi_provider.apis.objects import ObjectMeta, ScalableGroup, ScalableGroupSpec, TemplateMeta, UnitTemplate
from capi_provider.apis.quantity import Quantity
from capi_provider.cloudprovider.labels import LabelPolicy, is_propagated, managed_node_labels
from capi_provider.cloudprovider.translator import (
    capacity_from_annotations,
    group_to_instance_type,
    labels_from_scale_from_zero_annotation,
    node_labels_from_group,
    requirements_from_group,
)
from capi_provider.core.exceptions import QuantityParseError


def _group(name="md-1", annotations=None, template_labels=None):
    return ScalableGroup(
        metadata=ObjectMeta(name=name, namespace="capi", annotations=dict(annotations or {})),
        spec=ScalableGroupSpec(
            replicas=1,
            template=UnitTemplate(metadata=TemplateMeta(labels=dict(template_labels or {}))),
        ),
    )


def test_capacity_reads_back_encoded_quantities():
    capacity = capacity_from_annotations({wellknown.CPU_KEY: "4", wellknown.MEMORY_KEY: "16777220Ki"})
    assert set(capacity) == {"cpu", "memory"}
    assert str(capacity["cpu"]) == "4"
    assert str(capacity["memory"]) == "16777220Ki"
    assert capacity["memory"] == Quantity.parse("16777220Ki")


def test_capacity_includes_gpu_disk_and_pods():
    capacity = capacity_from_annotations(
        {
            wellknown.GPU_COUNT_KEY: "2",
            wellknown.GPU_TYPE_KEY: "nvidia.com/gpu",
            wellknown.DISK_CAPACITY_KEY: "100Gi",
            wellknown.MAX_PODS_KEY: "110",
        }
    )
    assert capacity == {
        "nvidia.com/gpu": Quantity.parse("2"),
        "ephemeral-storage": Quantity.parse("100Gi"),
        "pods": Quantity.parse("110"),
    }


def test_gpu_count_without_type_is_ignored():
    assert capacity_from_annotations({wellknown.GPU_COUNT_KEY: "1"}) == {}


def test_missing_annotations_give_empty_capacity():
    assert capacity_from_annotations(None) == {}
    assert capacity_from_annotations({"unrelated": "x"}) == {}


def test_malformed_quantity_is_fatal():
    with pytest.raises(QuantityParseError) as excinfo:
        capacity_from_annotations({wellknown.CPU_KEY: "four"})
    assert wellknown.CPU_KEY in str(excinfo.value)


@pytest.mark.parametrize(
    "annotation, expected",
    [
        ("a=1,b=2", {"a": "1", "b": "2"}),
        ("a=1,,broken,=nokey", {"a": "1"}),
        (" a = 1 , b=x=y ", {"a": "1", "b": "x=y"}),
        ("empty=", {"empty": ""}),
        ("", {}),
    ],
)
def test_scale_from_zero_label_parsing_skips_malformed_segments(annotation, expected):
    assert labels_from_scale_from_zero_annotation(annotation) == expected


@pytest.mark.parametrize(
    "key, propagated",
    [
        ("node-role.kubernetes.io/worker", True),
        ("node-restriction.kubernetes.io/a", True),
        ("team.node-restriction.kubernetes.io/a", True),
        ("node.cluster.x-k8s.io/pool", True),
        ("gpu.node.cluster.x-k8s.io/kind", True),
        ("sub.node-role.kubernetes.io/worker", False),
        ("my.special.label/b", False),
        ("plain", False),
    ],
)
def test_propagation_allow_list(key, propagated):
    assert is_propagated(key) is propagated


def test_label_propagation_and_annotation_override():
    group = _group(
        annotations={wellknown.LABELS_KEY: "topology.kubernetes.io/zone=east,size=big"},
        template_labels={"node-restriction.kubernetes.io/a": "2", "my.special.label/b": "bar"},
    )
    labels, requirements, _ = requirements_from_group(group)
    assert labels == {
        "node-restriction.kubernetes.io/a": "2",
        "topology.kubernetes.io/zone": "east",
        "size": "big",
    }
    assert requirements.keys() == {"node-restriction.kubernetes.io/a", "topology.kubernetes.io/zone", "size"}
    assert all(r.operator().value == "In" for r in requirements)


def test_annotation_labels_override_template_labels():
    group = _group(
        annotations={wellknown.LABELS_KEY: "node-role.kubernetes.io/worker=gpu"},
        template_labels={"node-role.kubernetes.io/worker": "cpu"},
    )
    assert node_labels_from_group(group) == {"node-role.kubernetes.io/worker": "gpu"}
    assert managed_node_labels({"other": "x"}) == {}


def test_offering_is_single_free_on_demand_offering():
    group = _group(annotations={wellknown.LABELS_KEY: "topology.kubernetes.io/zone=us-east-1a"})
    _, _, offering = requirements_from_group(group)
    assert offering.price == 0.0
    assert offering.available is True
    assert offering.requirements.get(wellknown.LABEL_TOPOLOGY_ZONE).values == {"us-east-1a"}
    assert offering.requirements.get(wellknown.CAPACITY_TYPE_LABEL_KEY).values == {"on-demand"}


def test_offering_zone_defaults_to_empty_string():
    _, _, offering = requirements_from_group(_group())
    assert offering.requirements.get(wellknown.LABEL_TOPOLOGY_ZONE).values == {""}


def test_translation_is_deterministic():
    group = _group(annotations={wellknown.LABELS_KEY: "b=2,a=1", wellknown.CPU_KEY: "2"})
    first = group_to_instance_type(group)
    second = group_to_instance_type(group.deep_copy())
    assert first.to_dict() == second.to_dict()


def test_instance_type_name_prefers_instance_type_label():
    named = group_to_instance_type(
        _group(annotations={wellknown.LABELS_KEY: "node.kubernetes.io/instance-type=m5.large"})
    )
    assert named.name == "m5.large"
    assert named.group_name == "md-1"
    assert named.group_namespace == "capi"
    assert group_to_instance_type(_group(name="fallback")).name == "fallback"


def test_allocatable_equals_capacity_without_overhead():
    instance_type = group_to_instance_type(
        _group(annotations={wellknown.CPU_KEY: "4", wellknown.MEMORY_KEY: "8Gi"})
    )
    assert instance_type.allocatable() == instance_type.capacity


def test_label_policy_is_immutable_and_extensible():
    policy = LabelPolicy.default()
    extended = policy.extend(well_known_labels=["example.com/rack"], restricted_label_domains=["example.com"])
    assert "example.com/rack" not in policy.well_known_labels
    assert "example.com/rack" in extended.well_known_labels
    assert extended.is_restricted("example.com/rack")
    assert policy.is_restricted("karpenter.cluster.x-k8s.io/anything")
    assert policy.is_restricted("kubernetes.io/hostname")
    assert not policy.is_restricted("node.kubernetes.io/instance-type")
    assert not policy.is_restricted("size")
    assert wellknown.INSTANCE_SIZE_LABEL_KEY in policy.well_known_labels
    assert policy.allow_undefined() is None
    assert policy.extend(strict_undefined_labels=True).allow_undefined() == policy.well_known_labels
