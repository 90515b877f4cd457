"""
Label selector handling following the Kubernetes semantics of equality- and set-based requirements.
"""

from collections.abc import Mapping
from dataclasses import dataclass
import re

from gitopssets.errors import ConfigurationError
from gitopssets.resources import LabelSelector

_NAME = re.compile(r"^[A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?$")
_DNS_SUBDOMAIN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")

_OPERATORS = {
    "In": "in",
    "NotIn": "notin",
    "Exists": "exists",
    "DoesNotExist": "!",
}


@dataclass(frozen=True)
class Requirement:
    key: str
    operator: str
    """ One of `=`, `in`, `notin`, `exists` and `!`. """
    values: tuple[str, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        match self.operator:
            case "=" | "in":
                return self.key in labels and labels[self.key] in self.values
            case "notin":
                return self.key not in labels or labels[self.key] not in self.values
            case "exists":
                return self.key in labels
            case "!":
                return self.key not in labels
        raise AssertionError(self.operator)

    def __str__(self) -> str:
        match self.operator:
            case "=":
                return f"{self.key}={self.values[0]}"
            case "in" | "notin":
                return f"{self.key} {self.operator} ({','.join(self.values)})"
            case "exists":
                return self.key
            case "!":
                return f"!{self.key}"
        raise AssertionError(self.operator)


@dataclass(frozen=True)
class Selector:
    """
    A parsed label selector. The `nothing` selector matches no object at all and can not be expressed as a selector
    string; callers must skip the lookup instead.
    """

    requirements: tuple[Requirement, ...] = ()
    nothing: bool = False

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        if self.nothing:
            return False
        labels = labels or {}
        return all(req.matches(labels) for req in self.requirements)

    def __str__(self) -> str:
        assert not self.nothing, "the nothing-selector has no string representation"
        return ",".join(map(str, self.requirements))


def parse_label_selector(selector: LabelSelector | None) -> Selector:
    """
    Convert a `LabelSelector` into a `Selector`. A missing selector (`None`) selects nothing, while an empty
    `LabelSelector` selects everything.

    Raises:
        ConfigurationError: If a label key, value or operator is invalid.
    """

    if selector is None:
        return Selector(nothing=True)

    requirements: list[Requirement] = []
    for key, value in (selector.matchLabels or {}).items():
        _validate_key(key)
        _validate_value(key, value)
        requirements.append(Requirement(key, "=", (value,)))

    for expr in selector.matchExpressions or []:
        _validate_key(expr.key)
        if expr.operator not in _OPERATORS:
            raise ConfigurationError(f"{expr.operator!r} is not a valid label selector operator")
        operator = _OPERATORS[expr.operator]
        values = tuple(sorted(expr.values or []))
        if operator in ("in", "notin") and not values:
            raise ConfigurationError(f"values must be specified for operator {expr.operator!r} (key {expr.key!r})")
        if operator in ("exists", "!") and values:
            raise ConfigurationError(f"values must be empty for operator {expr.operator!r} (key {expr.key!r})")
        for value in values:
            _validate_value(expr.key, value)
        requirements.append(Requirement(expr.key, operator, values))

    requirements.sort(key=lambda req: req.key)
    return Selector(tuple(requirements))


def _validate_key(key: str) -> None:
    prefix, sep, name = key.rpartition("/")
    if sep and (not prefix or len(prefix) > 253 or not _DNS_SUBDOMAIN.match(prefix)):
        raise ConfigurationError(f"invalid label key {key!r}: prefix must be a DNS subdomain")
    if not name or len(name) > 63 or not _NAME.match(name):
        raise ConfigurationError(f"invalid label key {key!r}")


def _validate_value(key: str, value: str) -> None:
    if not isinstance(value, str) or len(value) > 63 or (value and not _NAME.match(value)):
        raise ConfigurationError(f"invalid label value {value!r} for key {key!r}")
