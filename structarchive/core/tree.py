# structarchive/core/tree.py
from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, ItemsView, Iterable, Iterator, Union

import numpy as np

from .attributes import AttributeStore
from .config import DEFAULT_CONFIG, ArchiveConfig
from .exceptions import (
    AlreadyFinalized,
    DuplicateName,
    InvalidName,
    InvalidParent,
    NotFinalized,
    PathNotFound,
    SealedContainer,
)
from .samples import ArraySamples, SampleSource, check_dtype, check_slice

if TYPE_CHECKING:
    from .timebase import TimeBaseResolver

PathLike = Union[str, Iterable[str]]
NodePath = tuple[str, ...]


class Layout(Enum):
    """Where project nodes live in the tree."""
    SINGLE_PROJECT = "single-project"  # the root is the project
    MULTI_PROJECT = "multi-project"    # every direct child group of the root is a project


# ---- paths ----
def check_name(name: object) -> str:
    if not isinstance(name, str) or not name.strip():
        raise InvalidName("Node names must be non-empty strings.")
    if "/" in name or "\x00" in name or name in {".", ".."}:
        raise InvalidName(f"Invalid node name {name!r}")
    return name


def as_path(path: PathLike) -> NodePath:
    """
    Normalize a path into a tuple of names.

    "/", "" and () denote the root; "trial 1/A1" and "/trial 1/A1" are equivalent.
    """
    if isinstance(path, str):
        parts = tuple(p for p in path.split("/") if p)
    else:
        parts = tuple(path)
    for p in parts:
        check_name(p)
    return parts


def format_path(parts: NodePath) -> str:
    return "/" + "/".join(parts)


# ---- nodes ----
class Node:
    """Common part of Group and Dataset: identity, parent link and attributes."""

    __slots__ = ("_container", "_parent", "_name", "_attrs")

    def __init__(self, container: "Container", parent: "Group | None", name: str) -> None:
        self._container = container
        self._parent = parent
        self._name = name
        self._attrs = AttributeStore(is_sealed=lambda: container.sealed)

    @property
    def attrs(self) -> AttributeStore:
        return self._attrs

    @property
    def name(self) -> str:
        return self._name

    @property
    def parent(self) -> "Group | None":
        return self._parent

    @property
    def container(self) -> "Container":
        return self._container

    @property
    def parts(self) -> NodePath:
        parts: list[str] = []
        node: Node | None = self
        while node is not None and node._parent is not None:
            parts.append(node._name)
            node = node._parent
        return tuple(reversed(parts))

    @property
    def path(self) -> str:
        return format_path(self.parts)

    @property
    def depth(self) -> int:
        return len(self.parts)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.path!r})"


class Group(Node):
    """
    Named container node; children are exclusively owned and kept in insertion order.

    Dict-like read access: group["A1"], "A1" in group, group.items().
    """

    __slots__ = ("_children",)

    def __init__(self, container: "Container", parent: "Group | None", name: str) -> None:
        super().__init__(container, parent, name)
        self._children: dict[str, Node] = {}

    # ---- dict-like API ----
    def __len__(self) -> int:
        return len(self._children)

    def __iter__(self) -> Iterator[str]:
        return iter(self._children)

    def __contains__(self, name: object) -> bool:
        return name in self._children

    def __getitem__(self, name: str) -> Node:
        try:
            return self._children[name]
        except KeyError as e:
            raise PathNotFound(format_path(self.parts + (name,))) from e

    def get(self, name: str, default: Node | None = None) -> Node | None:
        return self._children.get(name, default)

    def keys(self) -> Iterable[str]:
        return self._children.keys()

    def items(self) -> ItemsView[str, Node]:
        return MappingProxyType(self._children).items()

    def values(self) -> Iterable[Node]:
        return self._children.values()

    def groups(self) -> Iterator["Group"]:
        return (n for n in self._children.values() if isinstance(n, Group))

    def datasets(self) -> Iterator["Dataset"]:
        return (n for n in self._children.values() if isinstance(n, Dataset))

    # ---- structural mutation (checks first, then commit) ----
    def _check_new_child(self, name: str) -> str:
        if self._container.sealed:
            raise SealedContainer(f"Cannot add {name!r} to {self.path}: container is sealed.")
        name = check_name(name)
        if name in self._children:
            raise DuplicateName(f"{format_path(self.parts + (name,))} already exists.")
        return name

    def add_group(self, name: str) -> "Group":
        name = self._check_new_child(name)
        group = Group(self._container, self, name)
        self._children[name] = group
        return group

    def add_dataset(self, name: str, dtype: Any = None) -> "Dataset":
        name = self._check_new_child(name)
        dt = check_dtype(dtype if dtype is not None else self._container.config.default_dtype)
        dataset = Dataset(self._container, self, name, dt)
        self._children[name] = dataset
        return dataset


class Dataset(Node):
    """
    Named leaf node holding a numeric sample array.

    Samples are written exactly once (finalize) and can then be read in
    row slices without materializing the whole array.
    """

    __slots__ = ("_dtype", "_samples")

    def __init__(
        self,
        container: "Container",
        parent: "Group | None",
        name: str,
        dtype: np.dtype,
    ) -> None:
        super().__init__(container, parent, name)
        self._dtype = dtype
        self._samples: SampleSource | None = None

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def is_finalized(self) -> bool:
        return self._samples is not None

    def _require_samples(self) -> SampleSource:
        if self._samples is None:
            raise NotFinalized(f"Dataset {self.path} has no samples yet.")
        return self._samples

    @property
    def shape(self) -> tuple[int, ...]:
        return tuple(self._require_samples().shape)

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def length(self) -> int:
        return int(self.shape[0])

    def finalize(self, values: Any) -> None:
        if self._container.sealed:
            raise SealedContainer(f"Cannot write samples to {self.path}: container is sealed.")
        if self._samples is not None:
            raise AlreadyFinalized(f"Dataset {self.path} is already finalized.")
        self._samples = ArraySamples(values, self._dtype)

    def attach(self, source: SampleSource) -> None:
        """Back this dataset with samples held by a persistence backend."""
        if self._container.sealed:
            raise SealedContainer(f"Cannot attach samples to {self.path}: container is sealed.")
        if self._samples is not None:
            raise AlreadyFinalized(f"Dataset {self.path} is already finalized.")
        if np.dtype(source.dtype) != self._dtype:
            raise TypeError(f"Source element type {source.dtype} != {self._dtype}")
        self._samples = source

    def get_slice(self, start: int, length: int) -> np.ndarray:
        samples = self._require_samples()
        check_slice(start, length, int(samples.shape[0]))
        return samples.read_rows(start, start + length)

    def read(self) -> np.ndarray:
        return self.get_slice(0, self.length)


# ---- container ----
class Container:
    """
    One measurement project (or a multi-project root) as a tree of nodes.

    A container is authored (groups, datasets, attributes, samples), then
    sealed. After sealing, every mutation raises SealedContainer.
    """

    def __init__(
        self,
        layout: Layout = Layout.SINGLE_PROJECT,
        config: ArchiveConfig | None = None,
    ) -> None:
        self.layout = Layout(layout)
        self.config = config or DEFAULT_CONFIG
        self._sealed = False
        self.root = Group(self, None, "")

    @property
    def sealed(self) -> bool:
        return self._sealed

    # ---- tree operations ----
    def resolve(self, path: PathLike) -> Node:
        parts = as_path(path)
        node: Node = self.root
        for i, name in enumerate(parts):
            if not isinstance(node, Group) or name not in node:
                raise PathNotFound(format_path(parts[: i + 1]))
            node = node[name]
        return node

    def _resolve_group(self, path: PathLike) -> Group:
        node = self.resolve(path)
        if not isinstance(node, Group):
            raise InvalidParent(f"{node.path} is a dataset and cannot have children.")
        return node

    def add_group(self, parent_path: PathLike, name: str) -> Group:
        return self._resolve_group(parent_path).add_group(name)

    def add_dataset(self, parent_path: PathLike, name: str, dtype: Any = None) -> Dataset:
        return self._resolve_group(parent_path).add_dataset(name, dtype)

    def children(self, path: PathLike = "/") -> ItemsView[str, Node]:
        """Lazy, restartable view of (name, node) pairs in insertion order."""
        node = self.resolve(path)
        if isinstance(node, Group):
            return node.items()
        return MappingProxyType({}).items()

    def set_attribute(self, path: PathLike, key: str, value: object) -> None:
        self.resolve(path).attrs.set(key, value)

    def get_attribute(self, path: PathLike, key: str) -> Any:
        return self.resolve(path).attrs.get(key)

    def walk(self) -> Iterator[Node]:
        """Depth-first, pre-order traversal visiting every node exactly once."""
        stack: list[Node] = [self.root]
        while stack:
            node = stack.pop()
            yield node
            if isinstance(node, Group):
                stack.extend(reversed(list(node.values())))

    def datasets(self) -> Iterator[Dataset]:
        return (n for n in self.walk() if isinstance(n, Dataset))

    # ---- lifecycle ----
    def seal(self) -> None:
        """Make the container immutable. Sealing twice is a no-op."""
        if self._sealed:
            return
        self.check_finalized()
        self._sealed = True

    def check_finalized(self) -> None:
        """Raise NotFinalized if any dataset has no samples yet."""
        for ds in self.datasets():
            if not ds.is_finalized:
                raise NotFinalized(f"Cannot seal: dataset {ds.path} has no samples.")

    def time_base(self) -> "TimeBaseResolver":
        from .timebase import TimeBaseResolver

        return TimeBaseResolver(self)

    def __repr__(self) -> str:
        state = "sealed" if self._sealed else "open"
        return f"Container(layout={self.layout.value}, {state}, {len(self.root)} children)"
