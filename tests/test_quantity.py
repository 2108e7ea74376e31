from decimal import Decimal

import pytest

from capi_provider.apis.objects import NodeClaimStatus
from capi_provider.apis.quantity import Quantity, parse_resource_list, subtract
from capi_provider.core.exceptions import QuantityParseError


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("4", Decimal(4)),
        ("500m", Decimal("0.5")),
        ("16Gi", Decimal(16 * 1024**3)),
        ("16777220Ki", Decimal(16777220 * 1024)),
        ("1e3", Decimal(1000)),
    ],
)
def test_parse_values(raw, expected):
    assert Quantity.parse(raw).value == expected


def test_text_is_preserved_and_comparison_is_numeric():
    quantity = Quantity.parse("1024Mi")
    assert str(quantity) == "1024Mi"
    assert quantity == Quantity.parse("1Gi")
    assert Quantity.parse("500m") < Quantity.parse("1")
    assert hash(quantity) == hash(Quantity.parse("1Gi"))


@pytest.mark.parametrize("raw", ["", "   ", "four", "12Qi"])
def test_malformed_quantities_raise(raw):
    with pytest.raises(QuantityParseError):
        Quantity.parse(raw)


def test_subtract_keeps_capacity_when_overhead_is_empty():
    capacity = parse_resource_list({"cpu": "4", "memory": "8Gi"})
    allocatable = subtract(capacity, {}, {"cpu": Quantity.parse("500m")})
    assert allocatable["memory"] is capacity["memory"]
    assert allocatable["cpu"] == Quantity.parse("3500m")


def test_pydantic_round_trip_uses_original_text():
    status = NodeClaimStatus.model_validate({"capacity": {"cpu": "4", "memory": "16777220Ki"}})
    assert status.capacity["cpu"] == Quantity.parse("4")
    dumped = status.model_dump(by_alias=True, mode="json")
    assert dumped["capacity"] == {"cpu": "4", "memory": "16777220Ki"}


def test_pydantic_rejects_bad_quantity():
    with pytest.raises(ValueError):
        NodeClaimStatus.model_validate({"capacity": {"cpu": "lots"}})
    with pytest.raises(ValueError):
        NodeClaimStatus.model_validate({"capacity": {"cpu": True}})
