# structarchive/core/kinds.py
from __future__ import annotations

from enum import Enum
from typing import Iterator

from .tree import Dataset, Group, Layout, Node

TIME_DATASET = "time"


class NodeKind(Enum):
    PROJECT = "project"
    TRIAL = "trial"
    SENSOR = "sensor"


def _project_depth(node: Node) -> int:
    return 0 if node.container.layout is Layout.SINGLE_PROJECT else 1


def classify(node: Node) -> NodeKind | None:
    """
    Return the kind of `node` from its position in the tree.

    - project: the root (single-project) or a root child group (multi-project)
    - trial:   a group directly below a project
    - sensor:  a dataset directly below a trial, except the shared `time` vector
    Anything else carries no contract and returns None.
    """
    depth = node.depth - _project_depth(node)
    if isinstance(node, Group):
        if depth == 0:
            return NodeKind.PROJECT
        if depth == 1:
            return NodeKind.TRIAL
        return None
    if isinstance(node, Dataset) and depth == 2 and node.name != TIME_DATASET:
        return NodeKind.SENSOR
    return None


def sensors_of(trial: Group) -> Iterator[Dataset]:
    return (ds for ds in trial.datasets() if ds.name != TIME_DATASET)


def trials_of(container) -> Iterator[Group]:
    return (n for n in container.walk() if isinstance(n, Group) and classify(n) is NodeKind.TRIAL)
