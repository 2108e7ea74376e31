"""Label selectors evaluated locally or rendered for the API server."""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SelectorOperator(str, Enum):
    IN = "In"
    NOT_IN = "NotIn"
    EXISTS = "Exists"
    DOES_NOT_EXIST = "DoesNotExist"


class LabelSelectorRequirement(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str
    operator: SelectorOperator
    values: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_values(self) -> "LabelSelectorRequirement":
        if self.operator in (SelectorOperator.IN, SelectorOperator.NOT_IN) and not self.values:
            raise ValueError(f"selector operator {self.operator.value} on {self.key!r} requires values")
        if self.operator in (SelectorOperator.EXISTS, SelectorOperator.DOES_NOT_EXIST) and self.values:
            raise ValueError(f"selector operator {self.operator.value} on {self.key!r} takes no values")
        return self

    def matches(self, labels: Mapping[str, str]) -> bool:
        present = self.key in labels
        if self.operator is SelectorOperator.IN:
            return present and labels[self.key] in self.values
        if self.operator is SelectorOperator.NOT_IN:
            return not present or labels[self.key] not in self.values
        if self.operator is SelectorOperator.EXISTS:
            return present
        return not present

    def render(self) -> str:
        if self.operator is SelectorOperator.EXISTS:
            return self.key
        if self.operator is SelectorOperator.DOES_NOT_EXIST:
            return f"!{self.key}"
        verb = "in" if self.operator is SelectorOperator.IN else "notin"
        return f"{self.key} {verb} ({','.join(sorted(self.values))})"


class LabelSelector(BaseModel):
    """Conjunction of ``matchLabels`` and ``matchExpressions``.

    An empty selector matches every object.
    """

    model_config = ConfigDict(populate_by_name=True)

    match_labels: Dict[str, str] = Field(default_factory=dict, alias="matchLabels")
    match_expressions: List[LabelSelectorRequirement] = Field(default_factory=list, alias="matchExpressions")

    def matches(self, labels: Optional[Mapping[str, str]]) -> bool:
        labels = labels or {}
        for key, value in self.match_labels.items():
            if labels.get(key) != value:
                return False
        return all(expr.matches(labels) for expr in self.match_expressions)

    def is_empty(self) -> bool:
        return not self.match_labels and not self.match_expressions

    def render(self) -> str:
        """Render as a Kubernetes label selector string."""
        parts = [f"{key}={value}" for key, value in sorted(self.match_labels.items())]
        parts.extend(expr.render() for expr in self.match_expressions)
        return ",".join(parts)


def exists(key: str) -> LabelSelectorRequirement:
    return LabelSelectorRequirement(key=key, operator=SelectorOperator.EXISTS)


def does_not_exist(key: str) -> LabelSelectorRequirement:
    return LabelSelectorRequirement(key=key, operator=SelectorOperator.DOES_NOT_EXIST)


def key_in(key: str, *values: str) -> LabelSelectorRequirement:
    return LabelSelectorRequirement(key=key, operator=SelectorOperator.IN, values=list(values))


def matches(selector: Optional[LabelSelector], labels: Optional[Mapping[str, str]]) -> bool:
    """``None`` selects everything."""
    return selector is None or selector.matches(labels)
