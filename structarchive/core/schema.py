# structarchive/core/schema.py
"""
Per-node-kind metadata contracts and the tree validator.

Contracts are fixed constants so they can be reviewed statically:

    project: name, contact, description, location, coordinate-system
    trial:   name, description
    sensor:  name, coordinate, orientation, description, unit, conversion

Validation never stops at the first problem: every violation of every node
is reported, tagged with the node path and the offending key.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Callable, Iterator

from .attributes import AttrType, attr_type
from .exceptions import InvalidTimeVector, ValidationCancelled
from .frame import placement_problem
from .kinds import TIME_DATASET, NodeKind, classify
from .timebase import SAMPLING_INTERVAL_KEY, START_TIME_KEY, TimeBaseResolver
from .tree import Container, Node

logger = logging.getLogger(__name__)


class ErrorCode(Enum):
    MISSING_ATTRIBUTE = "MissingAttribute"
    WRONG_TYPE = "WrongType"
    EMPTY_REQUIRED_VALUE = "EmptyRequiredValue"
    MISSING_TIME_BASIS = "MissingTimeBasis"
    AMBIGUOUS_TIME_BASIS = "AmbiguousTimeBasis"
    TIME_LENGTH_MISMATCH = "TimeLengthMismatch"
    INVALID_TIME_VECTOR = "InvalidTimeVector"


REQUIRED_ATTRIBUTES: Mapping[NodeKind, Mapping[str, AttrType]] = MappingProxyType({
    NodeKind.PROJECT: MappingProxyType({
        "name": AttrType.STRING,
        "contact": AttrType.STRING,
        "description": AttrType.STRING,
        "location": AttrType.STRING,
        "coordinate-system": AttrType.STRING,
    }),
    NodeKind.TRIAL: MappingProxyType({
        "name": AttrType.STRING,
        "description": AttrType.STRING,
    }),
    NodeKind.SENSOR: MappingProxyType({
        "name": AttrType.STRING,
        "coordinate": AttrType.VECTOR,
        "orientation": AttrType.VECTOR,
        "description": AttrType.STRING,
        "unit": AttrType.STRING,
        "conversion": AttrType.REAL,
    }),
})

# optional sensor keys that are type-checked when present
OPTIONAL_SENSOR_ATTRIBUTES: Mapping[str, tuple[AttrType, ...]] = MappingProxyType({
    START_TIME_KEY: (AttrType.REAL, AttrType.TIMESTAMP),
    SAMPLING_INTERVAL_KEY: (AttrType.REAL,),
})

_PLACEMENT_KEYS = ("coordinate", "orientation")


@dataclass(frozen=True, slots=True)
class ValidationError:
    """One archival defect (a record, not an exception)."""
    path: str
    key: str
    code: ErrorCode
    message: str = ""

    def __str__(self) -> str:
        return f"{self.path} [{self.key}] {self.code.value}: {self.message}"


def validate_node(node: Node) -> list[ValidationError]:
    """Check `node` against the contract of its kind and return all violations."""
    kind = classify(node)
    if kind is None:
        return []

    errors: list[ValidationError] = []
    path = node.path

    for key, expected in REQUIRED_ATTRIBUTES[kind].items():
        if key not in node.attrs:
            errors.append(ValidationError(
                path, key, ErrorCode.MISSING_ATTRIBUTE, f"required for {kind.value} nodes",
            ))
            continue

        value = node.attrs.get(key)
        found = attr_type(value)
        if found is not expected:
            errors.append(ValidationError(
                path, key, ErrorCode.WRONG_TYPE,
                f"expected {expected.value}, got {found.value}",
            ))
        elif expected is AttrType.STRING and not value.strip():  # type: ignore[union-attr]
            errors.append(ValidationError(
                path, key, ErrorCode.EMPTY_REQUIRED_VALUE, "must not be empty",
            ))
        elif kind is NodeKind.SENSOR and key in _PLACEMENT_KEYS:
            problem = placement_problem(value)
            if problem is not None:
                errors.append(ValidationError(path, key, ErrorCode.WRONG_TYPE, problem))

    if kind is NodeKind.SENSOR:
        for key, allowed in OPTIONAL_SENSOR_ATTRIBUTES.items():
            if key not in node.attrs:
                continue
            found = attr_type(node.attrs.get(key))
            if found not in allowed:
                names = " or ".join(t.value for t in allowed)
                errors.append(ValidationError(
                    path, key, ErrorCode.WRONG_TYPE, f"expected {names}, got {found.value}",
                ))

    return errors


def _time_base_errors(resolver: TimeBaseResolver, trial: Node) -> Iterator[ValidationError]:
    for issue in resolver.diagnose(trial.parts):
        path = issue.path or trial.path
        key = TIME_DATASET if isinstance(issue, InvalidTimeVector) else "time-basis"
        yield ValidationError(path, key, ErrorCode(type(issue).__name__), str(issue))


class ValidationReport(Mapping):
    """
    Read-only mapping from node path to the errors found at that node.

    Nodes without errors are absent, so a conforming tree gives an empty report.
    """

    def __init__(self, errors: Mapping[str, list[ValidationError]] | None = None) -> None:
        self._errors = {p: tuple(errs) for p, errs in (errors or {}).items() if errs}

    def __getitem__(self, path: str) -> tuple[ValidationError, ...]:
        return self._errors[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._errors)

    def __len__(self) -> int:
        return len(self._errors)

    @property
    def ok(self) -> bool:
        return not self._errors

    def issues(self) -> Iterator[ValidationError]:
        for errs in self._errors.values():
            yield from errs

    def summary(self) -> str:
        if self.ok:
            return "No validation errors."
        lines = [f"{sum(len(e) for e in self._errors.values())} validation error(s):"]
        lines += [f"  {err}" for err in self.issues()]
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"ValidationReport({self._errors!r})"


class SchemaValidator:
    """Walk a container and apply the per-kind contracts to every node."""

    def __init__(self, *, check_time_basis: bool = False) -> None:
        self.check_time_basis = check_time_basis

    def validate_node(self, node: Node) -> list[ValidationError]:
        return validate_node(node)

    def validate_tree(
        self,
        container: Container,
        *,
        should_cancel: Callable[[], bool] | None = None,
    ) -> ValidationReport:
        resolver = TimeBaseResolver(container) if self.check_time_basis else None
        errors: dict[str, list[ValidationError]] = {}

        for node in container.walk():
            if should_cancel is not None and should_cancel():
                raise ValidationCancelled(f"Validation cancelled before {node.path}")

            node_errors = validate_node(node)
            if node_errors:
                errors.setdefault(node.path, []).extend(node_errors)

            if resolver is not None and classify(node) is NodeKind.TRIAL:
                for err in _time_base_errors(resolver, node):
                    errors.setdefault(err.path, []).append(err)

        report = ValidationReport(errors)
        logger.debug("validated %s: %d node(s) with errors", container, len(report))
        return report


def validate_tree(
    container: Container,
    *,
    check_time_basis: bool = False,
    should_cancel: Callable[[], bool] | None = None,
) -> ValidationReport:
    return SchemaValidator(check_time_basis=check_time_basis).validate_tree(
        container, should_cancel=should_cancel
    )


__all__ = [
    "ErrorCode",
    "REQUIRED_ATTRIBUTES",
    "OPTIONAL_SENSOR_ATTRIBUTES",
    "ValidationError",
    "ValidationReport",
    "SchemaValidator",
    "validate_node",
    "validate_tree",
]
