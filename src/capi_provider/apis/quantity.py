"""Kubernetes resource quantities and resource lists."""

from __future__ import annotations

from decimal import Decimal
from functools import total_ordering
from typing import Any, Dict, Mapping, Union

from kubernetes.utils import parse_quantity
from pydantic_core import core_schema

from capi_provider.core.exceptions import QuantityParseError

# Well-known resource names
RESOURCE_CPU = "cpu"
RESOURCE_MEMORY = "memory"
RESOURCE_EPHEMERAL_STORAGE = "ephemeral-storage"
RESOURCE_PODS = "pods"


@total_ordering
class Quantity:
    """A parsed quantity that keeps the text it was parsed from.

    Comparison is numeric, so ``Quantity.parse("1Gi") == Quantity.parse("1024Mi")``.
    """

    __slots__ = ("_text", "_value")

    def __init__(self, text: str, value: Decimal) -> None:
        self._text = text
        self._value = value

    @classmethod
    def parse(cls, raw: Union[str, int, float, Decimal, "Quantity"]) -> "Quantity":
        if isinstance(raw, Quantity):
            return raw
        text = str(raw).strip()
        if not text:
            raise QuantityParseError(f"invalid quantity {raw!r}: empty value")
        try:
            value = parse_quantity(text)
        except ValueError as exc:
            raise QuantityParseError(f"invalid quantity {raw!r}: {exc}") from exc
        if not value.is_finite():
            raise QuantityParseError(f"invalid quantity {raw!r}: not a finite number")
        return cls(text, value)

    @classmethod
    def zero(cls) -> "Quantity":
        return cls("0", Decimal(0))

    @property
    def value(self) -> Decimal:
        return self._value

    def is_zero(self) -> bool:
        return self._value == 0

    def __sub__(self, other: "Quantity") -> "Quantity":
        if other.is_zero():
            return self
        value = self._value - other._value
        return Quantity(_format_decimal(value), value)

    def __add__(self, other: "Quantity") -> "Quantity":
        if other.is_zero():
            return self
        value = self._value + other._value
        return Quantity(_format_decimal(value), value)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Quantity):
            return self._value == other._value
        return NotImplemented

    def __lt__(self, other: "Quantity") -> bool:
        if isinstance(other, Quantity):
            return self._value < other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)

    def __str__(self) -> str:
        return self._text

    def __repr__(self) -> str:
        return f"Quantity({self._text!r})"

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls._validate,
            serialization=core_schema.plain_serializer_function_ser_schema(str),
        )

    @classmethod
    def _validate(cls, value: Any) -> "Quantity":
        if isinstance(value, bool):
            raise ValueError(f"invalid quantity {value!r}")
        try:
            return cls.parse(value)
        except QuantityParseError as exc:
            raise ValueError(str(exc)) from exc


def _format_decimal(value: Decimal) -> str:
    normalized = value.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, "f")


ResourceList = Dict[str, Quantity]


def parse_resource_list(raw: Mapping[str, Any]) -> ResourceList:
    return {name: Quantity.parse(value) for name, value in raw.items()}


def subtract(capacity: Mapping[str, Quantity], *overheads: Mapping[str, Quantity]) -> ResourceList:
    """Return ``capacity`` minus every overhead list, resource by resource."""
    result = dict(capacity)
    for overhead in overheads:
        for name, amount in overhead.items():
            if name in result:
                result[name] = result[name] - amount
    return result
