# structarchive/core/frame.py
"""
Project coordinate frame.

The project's ``coordinate-system`` attribute is an opaque description
(origin + axis convention). Sensor ``coordinate`` and ``orientation`` vectors
are expressed in the frame of their ancestor project; nothing here ever
transforms a vector between frames.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from .attributes import AttrType, attr_type
from .exceptions import MissingAttribute, ZeroVector
from .tree import Container, Group, Layout, Node

COORDINATE_SYSTEM_KEY = "coordinate-system"
PLACEMENT_KEYS = ("coordinate", "orientation")
VECTOR_LENGTH = 3


def project_of(node: Node) -> Group:
    """Return the project group that owns `node` (the root in single-project layout)."""
    container = node.container
    if container.layout is Layout.SINGLE_PROJECT:
        return container.root
    parts = node.parts
    if not parts:
        raise ValueError("The root of a multi-project container is not a project.")
    project = container.root[parts[0]]
    if not isinstance(project, Group):
        raise ValueError(f"{project.path} is a dataset, not a project.")
    return project


@dataclass(frozen=True, slots=True)
class CoordinateFrame:
    """Reference to the frame declared by one project."""
    project_path: str
    description: str

    @classmethod
    def of(cls, project: Group) -> "CoordinateFrame":
        value = project.attrs.get(COORDINATE_SYSTEM_KEY)
        if not isinstance(value, str):
            raise MissingAttribute(
                f"{project.path}: {COORDINATE_SYSTEM_KEY!r} must be a string"
            )
        return cls(project_path=project.path, description=value)

    @classmethod
    def for_node(cls, node: Node) -> "CoordinateFrame":
        return cls.of(project_of(node))

    @classmethod
    def for_container(cls, container: Container) -> "CoordinateFrame":
        return cls.of(project_of(container.root))


def placement_problem(value: object) -> str | None:
    """Describe why `value` is not a 3-element finite real vector, or return None."""
    try:
        kind = attr_type(value)  # type: ignore[arg-type]
    except TypeError:
        kind = None
    if kind is not AttrType.VECTOR:
        found = kind.value if kind is not None else type(value).__name__
        return f"expected a {VECTOR_LENGTH}-element real vector, got {found}"
    if len(value) != VECTOR_LENGTH:  # type: ignore[arg-type]
        return f"expected a {VECTOR_LENGTH}-element real vector, got length {len(value)}"  # type: ignore[arg-type]
    if not all(math.isfinite(v) for v in value):  # type: ignore[union-attr]
        return "vector contains non-finite components"
    return None


def normalize(vector: Sequence[float]) -> tuple[float, float, float]:
    """Return `vector` scaled to unit length. Never applied implicitly."""
    if len(vector) != VECTOR_LENGTH:
        raise ValueError(f"expected {VECTOR_LENGTH} components, got {len(vector)}")
    x, y, z = (float(v) for v in vector)
    norm = math.sqrt(x * x + y * y + z * z)
    if not math.isfinite(norm):
        raise ValueError(f"Cannot normalize non-finite vector {tuple(vector)!r}")
    if norm == 0.0:
        raise ZeroVector(f"Cannot normalize {tuple(vector)!r}")
    return (x / norm, y / norm, z / norm)
