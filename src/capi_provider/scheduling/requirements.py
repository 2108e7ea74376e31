"""Node selector requirements and the compatibility check between claims and groups.

A requirement is a set of allowed values for one label key. ``In`` and
``DoesNotExist`` are concrete sets; ``NotIn``, ``Exists``, ``Gt`` and ``Lt``
are complements (everything except the listed values, optionally bounded).
"""

from __future__ import annotations

import sys
from typing import AbstractSet, Dict, FrozenSet, Iterable, Iterator, List, Optional

from capi_provider.apis.objects import NodeSelectorOperator, NodeSelectorRequirement
from capi_provider.core.exceptions import InvalidInputError

_UNBOUNDED = sys.maxsize
_NEGATIVE_OPERATORS = (NodeSelectorOperator.NOT_IN, NodeSelectorOperator.DOES_NOT_EXIST)


def _parse_bound(key: str, operator: NodeSelectorOperator, values: Iterable[str]) -> int:
    values = list(values)
    if len(values) != 1:
        raise InvalidInputError(f"requirement {key!r} with operator {operator.value} needs exactly one value")
    try:
        return int(values[0])
    except ValueError as exc:
        raise InvalidInputError(
            f"requirement {key!r} with operator {operator.value} needs an integer value, got {values[0]!r}"
        ) from exc


def _within(value: str, greater_than: Optional[int], less_than: Optional[int]) -> bool:
    if greater_than is None and less_than is None:
        return True
    try:
        number = int(value)
    except ValueError:
        return False
    if greater_than is not None and number <= greater_than:
        return False
    if less_than is not None and number >= less_than:
        return False
    return True


def _max_optional(a: Optional[int], b: Optional[int]) -> Optional[int]:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def _min_optional(a: Optional[int], b: Optional[int]) -> Optional[int]:
    if a is None:
        return b
    if b is None:
        return a
    return min(a, b)


class Requirement:
    __slots__ = ("key", "complement", "values", "greater_than", "less_than", "min_values")

    def __init__(
        self,
        key: str,
        complement: bool,
        values: AbstractSet[str] = frozenset(),
        greater_than: Optional[int] = None,
        less_than: Optional[int] = None,
        min_values: Optional[int] = None,
    ) -> None:
        self.key = key
        self.complement = complement
        self.values: FrozenSet[str] = frozenset(values)
        self.greater_than = greater_than
        self.less_than = less_than
        self.min_values = min_values

    @classmethod
    def new(
        cls,
        key: str,
        operator: NodeSelectorOperator,
        values: Iterable[str] = (),
        min_values: Optional[int] = None,
    ) -> "Requirement":
        operator = NodeSelectorOperator(operator)
        if operator is NodeSelectorOperator.IN:
            return cls(key, False, frozenset(values), min_values=min_values)
        if operator is NodeSelectorOperator.NOT_IN:
            return cls(key, True, frozenset(values), min_values=min_values)
        if operator is NodeSelectorOperator.EXISTS:
            return cls(key, True, min_values=min_values)
        if operator is NodeSelectorOperator.DOES_NOT_EXIST:
            return cls(key, False, min_values=min_values)
        if operator is NodeSelectorOperator.GT:
            return cls(key, True, greater_than=_parse_bound(key, operator, values), min_values=min_values)
        return cls(key, True, less_than=_parse_bound(key, operator, values), min_values=min_values)

    def operator(self) -> NodeSelectorOperator:
        if self.complement:
            if self.values:
                return NodeSelectorOperator.NOT_IN
            return NodeSelectorOperator.EXISTS
        if self.values:
            return NodeSelectorOperator.IN
        return NodeSelectorOperator.DOES_NOT_EXIST

    def size(self) -> int:
        if self.complement:
            return _UNBOUNDED - len(self.values)
        return len(self.values)

    def has(self, value: str) -> bool:
        if self.complement:
            return value not in self.values and _within(value, self.greater_than, self.less_than)
        return value in self.values and _within(value, self.greater_than, self.less_than)

    def any(self) -> str:
        """Return one allowed value, or "" when the set is a complement or empty."""
        if not self.complement and self.values:
            return sorted(self.values)[0]
        return ""

    def intersection(self, other: "Requirement") -> "Requirement":
        complement = self.complement and other.complement
        greater_than = _max_optional(self.greater_than, other.greater_than)
        less_than = _min_optional(self.less_than, other.less_than)
        min_values = _max_optional(self.min_values, other.min_values)
        if greater_than is not None and less_than is not None and greater_than >= less_than:
            return Requirement(self.key, False, min_values=min_values)

        if self.complement and other.complement:
            values = self.values | other.values
        elif self.complement:
            values = other.values - self.values
        elif other.complement:
            values = self.values - other.values
        else:
            values = self.values & other.values
        values = frozenset(v for v in values if _within(v, greater_than, less_than))

        if not complement:
            greater_than, less_than = None, None
        return Requirement(self.key, complement, values, greater_than, less_than, min_values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Requirement):
            return NotImplemented
        return (
            self.key == other.key
            and self.complement == other.complement
            and self.values == other.values
            and self.greater_than == other.greater_than
            and self.less_than == other.less_than
            and self.min_values == other.min_values
        )

    def __hash__(self) -> int:
        return hash((self.key, self.complement, self.values, self.greater_than, self.less_than, self.min_values))

    def __repr__(self) -> str:
        op = self.operator()
        if op in (NodeSelectorOperator.IN, NodeSelectorOperator.NOT_IN):
            shown = f"{self.key} {op.value} {sorted(self.values)}"
        else:
            shown = f"{self.key} {op.value}"
        if self.greater_than is not None:
            shown += f" >{self.greater_than}"
        if self.less_than is not None:
            shown += f" <{self.less_than}"
        if self.min_values is not None:
            shown += f" minValues={self.min_values}"
        return shown


class Requirements:
    """Requirements keyed by label; adding a key twice intersects the two."""

    def __init__(self, *requirements: Requirement) -> None:
        self._by_key: Dict[str, Requirement] = {}
        for requirement in requirements:
            self.add(requirement)

    @classmethod
    def from_node_selector(cls, requirements: Iterable[NodeSelectorRequirement]) -> "Requirements":
        return cls(
            *(Requirement.new(r.key, r.operator, r.values, r.min_values) for r in requirements)
        )

    def add(self, requirement: Requirement) -> None:
        existing = self._by_key.get(requirement.key)
        if existing is not None:
            requirement = existing.intersection(requirement)
        self._by_key[requirement.key] = requirement

    def get(self, key: str) -> Requirement:
        """Return the requirement for ``key``; undefined keys allow anything."""
        return self._by_key.get(key) or Requirement(key, True)

    def has(self, key: str) -> bool:
        return key in self._by_key

    def keys(self) -> FrozenSet[str]:
        return frozenset(self._by_key)

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    def __iter__(self) -> Iterator[Requirement]:
        return iter(self._by_key.values())

    def __len__(self) -> int:
        return len(self._by_key)

    def __repr__(self) -> str:
        return "Requirements(" + ", ".join(repr(r) for r in self._by_key.values()) + ")"

    def intersects(self, other: "Requirements") -> List[str]:
        """Reasons the two sets disagree on keys they both define."""
        reasons: List[str] = []
        for key in sorted(self.keys() & other.keys()):
            existing = self._by_key[key]
            incoming = other._by_key[key]
            joined = existing.intersection(incoming)
            if joined.size() == 0:
                if incoming.operator() in _NEGATIVE_OPERATORS and existing.operator() in _NEGATIVE_OPERATORS:
                    continue
                reasons.append(f"key {key}, {incoming!r} not in {existing!r}")
                continue
            for side in (existing, incoming):
                if side.min_values is not None and joined.size() < side.min_values:
                    reasons.append(
                        f"key {key}, minimum of {side.min_values} values required but only "
                        f"{joined.size()} satisfy {existing!r} and {incoming!r}"
                    )
                    break
        return reasons

    def compatible(self, other: "Requirements", allow_undefined: Optional[AbstractSet[str]] = None) -> List[str]:
        """Reasons ``other`` cannot satisfy these requirements; empty means compatible.

        With ``allow_undefined`` unset a key defined on only one side constrains
        nothing. When a set of well-known keys is passed, any other key that
        ``other`` defines must also be defined here, unless ``other`` only
        excludes values for it.
        """
        reasons: List[str] = []
        if allow_undefined is not None:
            for key in sorted(other.keys() - frozenset(allow_undefined)):
                if key in self or other._by_key[key].operator() in _NEGATIVE_OPERATORS:
                    continue
                reasons.append(f"label {key!r} does not have known values")
        reasons.extend(self.intersects(other))
        return reasons
