"""Label selectors as used by resource and namespace matching."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

IN = "In"
NOT_IN = "NotIn"
EXISTS = "Exists"
DOES_NOT_EXIST = "DoesNotExist"


class InvalidSelectorError(ValueError):
    """Raised when a label selector cannot be turned into a matcher."""


@dataclass
class LabelSelectorRequirement:
    """One expression of a label selector."""

    key: str
    operator: str
    values: list[str] = field(default_factory=list)

    def _validate(self) -> None:
        if not self.key:
            raise InvalidSelectorError("label selector key must not be empty")
        if self.operator in (IN, NOT_IN):
            if not self.values:
                raise InvalidSelectorError(
                    f"values must be non-empty for operator {self.operator!r}"
                )
        elif self.operator in (EXISTS, DOES_NOT_EXIST):
            if self.values:
                raise InvalidSelectorError(
                    f"values must be empty for operator {self.operator!r}"
                )
        else:
            raise InvalidSelectorError(f"{self.operator!r} is not a valid selector operator")

    def _matches(self, labels: Mapping[str, str]) -> bool:
        present = self.key in labels
        if self.operator == IN:
            return present and labels[self.key] in self.values
        if self.operator == NOT_IN:
            return not present or labels[self.key] not in self.values
        if self.operator == EXISTS:
            return present
        return not present


@dataclass
class LabelSelector:
    """Equality labels and set-based expressions, all of which must hold."""

    match_labels: dict[str, str] = field(default_factory=dict)
    match_expressions: list[LabelSelectorRequirement] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> LabelSelector:
        """Build a selector from its ``matchLabels``/``matchExpressions`` form."""
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise InvalidSelectorError("label selector must be a mapping")
        match_labels = data.get("matchLabels") or {}
        if not isinstance(match_labels, Mapping):
            raise InvalidSelectorError("matchLabels must be a mapping")
        expressions = data.get("matchExpressions") or []
        if not isinstance(expressions, list):
            raise InvalidSelectorError("matchExpressions must be a list")
        requirements = []
        for expression in expressions:
            if not isinstance(expression, Mapping):
                raise InvalidSelectorError("each match expression must be a mapping")
            requirements.append(
                LabelSelectorRequirement(
                    key=str(expression.get("key", "") or ""),
                    operator=str(expression.get("operator", "") or ""),
                    values=[str(value) for value in expression.get("values") or []],
                )
            )
        return cls(
            match_labels={str(key): str(value) for key, value in match_labels.items()},
            match_expressions=requirements,
        )

    def _requirements(self) -> list[LabelSelectorRequirement]:
        requirements = [
            LabelSelectorRequirement(key=key, operator=IN, values=[value])
            for key, value in self.match_labels.items()
        ]
        requirements.extend(self.match_expressions)
        for requirement in requirements:
            requirement._validate()
        return requirements

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        """Return True if ``labels`` satisfy every requirement.

        Raises InvalidSelectorError if the selector itself is malformed.
        """
        requirements = self._requirements()
        label_map = labels or {}
        return all(requirement._matches(label_map) for requirement in requirements)