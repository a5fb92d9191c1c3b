# structarchive/core/attributes.py
from __future__ import annotations

import numbers
from collections.abc import Sequence
from datetime import datetime
from enum import Enum
from typing import Callable, Iterator, Union

import numpy as np

from .exceptions import (
    MissingAttribute,
    ReservedAttributeKey,
    SealedContainer,
    UnsupportedAttributeType,
)

RESERVED_PREFIX = "structarchive:"

Vector = tuple[float, ...]
AttributeValue = Union[str, float, Vector, datetime]


class AttrType(Enum):
    """Closed set of attribute value types."""
    STRING = "string"
    REAL = "real"
    VECTOR = "vector"
    TIMESTAMP = "timestamp"


def _is_real(value: object) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return False
    return isinstance(value, numbers.Real)


def coerce_value(value: object) -> AttributeValue:
    """
    Normalize `value` into one of the closed attribute types.

    - str                         -> str
    - int / float / numpy reals   -> float
    - 1D non-empty real sequence  -> tuple[float, ...]
    - datetime                    -> datetime
    Anything else (bool, bytes, None, nested sequences, ...) is rejected,
    as are strings with embedded NUL characters.
    """
    if isinstance(value, str):
        if "\x00" in value:
            raise UnsupportedAttributeType("String attributes must not contain NUL characters.")
        return value
    if isinstance(value, datetime):
        return value
    if _is_real(value):
        return float(value)  # type: ignore[arg-type]
    if isinstance(value, np.ndarray) or (
        isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray))
    ):
        try:
            arr = np.asarray(value)
        except ValueError as e:
            raise UnsupportedAttributeType(f"Cannot store {value!r} as a vector.") from e
        if arr.ndim != 1 or arr.size == 0:
            raise UnsupportedAttributeType(
                f"Vector attributes must be 1D and non-empty, got shape {arr.shape}"
            )
        if arr.dtype.kind not in "iuf":
            if not all(_is_real(v) for v in value):  # type: ignore[union-attr]
                raise UnsupportedAttributeType("Vector attributes must contain real numbers.")
        return tuple(float(v) for v in arr)
    raise UnsupportedAttributeType(
        f"Unsupported attribute value type: {type(value).__name__}"
    )


def attr_type(value: AttributeValue) -> AttrType:
    """Return the AttrType of an already coerced value."""
    if isinstance(value, str):
        return AttrType.STRING
    if isinstance(value, datetime):
        return AttrType.TIMESTAMP
    if isinstance(value, tuple):
        return AttrType.VECTOR
    if isinstance(value, float):
        return AttrType.REAL
    raise UnsupportedAttributeType(f"Not an attribute value: {value!r}")


def check_key(key: object) -> str:
    if not isinstance(key, str) or not key or "\x00" in key:
        raise ReservedAttributeKey("Attribute keys must be non-empty strings without NUL characters.")
    if key.startswith(RESERVED_PREFIX):
        raise ReservedAttributeKey(f"Attribute key prefix {RESERVED_PREFIX!r} is reserved.")
    return key


class AttributeStore:
    """
    Typed key/value metadata attached to one node.

    Keys are unique (last write wins). Iteration is lexicographic by key so
    serialization and comparisons are reproducible. Writes are refused once
    the owning container is sealed.
    """

    __slots__ = ("_values", "_is_sealed")

    def __init__(self, is_sealed: Callable[[], bool] | None = None) -> None:
        self._values: dict[str, AttributeValue] = {}
        self._is_sealed = is_sealed or (lambda: False)

    # ---- mutation ----
    def set(self, key: str, value: object) -> None:
        if self._is_sealed():
            raise SealedContainer(f"Cannot set attribute {key!r}: container is sealed.")
        key = check_key(key)
        self._values[key] = coerce_value(value)

    def update(self, values: dict[str, object]) -> None:
        """Set several attributes; nothing is written if any key or value is invalid."""
        if self._is_sealed():
            raise SealedContainer("Cannot set attributes: container is sealed.")
        staged = {check_key(k): coerce_value(v) for k, v in values.items()}
        self._values.update(staged)

    def __setitem__(self, key: str, value: object) -> None:
        self.set(key, value)

    # ---- lookup ----
    def get(self, key: str) -> AttributeValue:
        try:
            return self._values[key]
        except KeyError as e:
            raise MissingAttribute(key) from e

    def __getitem__(self, key: str) -> AttributeValue:
        return self.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._values))

    def keys(self) -> list[str]:
        return sorted(self._values)

    def items(self) -> Iterator[tuple[str, AttributeValue]]:
        for key in sorted(self._values):
            yield key, self._values[key]

    def to_dict(self) -> dict[str, AttributeValue]:
        return dict(self.items())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AttributeStore):
            return NotImplemented
        return self._values == other._values

    def __repr__(self) -> str:
        return f"AttributeStore({self.to_dict()!r})"
