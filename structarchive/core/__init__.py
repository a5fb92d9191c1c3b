# structarchive/core/__init__.py
"""
Core domain objects for structarchive.

This module defines the storage-agnostic measurement container:
- Container / Group / Dataset: the named node tree of one project
- AttributeStore: typed metadata attached to every node
- TimeBaseResolver: timestamps from a shared `time` vector or start/interval
- SchemaValidator: project / trial / sensor metadata contracts
- CoordinateFrame: the project frame sensor placements refer to

The core layer is independent from I/O and storage formats.
"""
import logging

from .attributes import AttributeStore, AttrType, AttributeValue, coerce_value, attr_type
from .config import ArchiveConfig, DEFAULT_CONFIG, configure_logging
from .tree import Container, Group, Dataset, Node, Layout, as_path, format_path
from .samples import SampleSource, ArraySamples
from .kinds import NodeKind, TIME_DATASET, classify
from .frame import CoordinateFrame, normalize, project_of
from .timebase import (
    TimeBaseResolver,
    TimeBasis,
    SharedTimeBasis,
    IntervalTimeBasis,
    SensorInterval,
    TimestampSequence,
)
from .schema import (
    REQUIRED_ATTRIBUTES,
    ErrorCode,
    SchemaValidator,
    ValidationError,
    ValidationReport,
    validate_node,
    validate_tree,
)
from .exceptions import (
    ArchiveError,
    StructuralError,
    DuplicateName,
    PathNotFound,
    InvalidParent,
    InvalidName,
    SealedContainer,
    AlreadyFinalized,
    NotFinalized,
    SchemaError,
    MissingAttribute,
    WrongType,
    EmptyRequiredValue,
    UnsupportedAttributeType,
    ReservedAttributeKey,
    TimeBaseError,
    MissingTimeBasis,
    AmbiguousTimeBasis,
    TimeLengthMismatch,
    InvalidTimeVector,
    BoundsError,
    OutOfBounds,
    FrameError,
    ZeroVector,
    ArchiveIOError,
    ArchiveNotFound,
    CorruptArchive,
    ArchivePermissionDenied,
    ArchiveExists,
    ValidationCancelled,
)

logging.getLogger("structarchive").addHandler(logging.NullHandler())


__all__ = [
    # tree
    "Container",
    "Group",
    "Dataset",
    "Node",
    "Layout",
    "as_path",
    "format_path",

    # attributes
    "AttributeStore",
    "AttrType",
    "AttributeValue",
    "coerce_value",
    "attr_type",

    # samples
    "SampleSource",
    "ArraySamples",

    # schema
    "NodeKind",
    "TIME_DATASET",
    "classify",
    "REQUIRED_ATTRIBUTES",
    "ErrorCode",
    "SchemaValidator",
    "ValidationError",
    "ValidationReport",
    "validate_node",
    "validate_tree",

    # frame / time
    "CoordinateFrame",
    "normalize",
    "project_of",
    "TimeBaseResolver",
    "TimeBasis",
    "SharedTimeBasis",
    "IntervalTimeBasis",
    "SensorInterval",
    "TimestampSequence",

    # config
    "ArchiveConfig",
    "DEFAULT_CONFIG",
    "configure_logging",

    # exceptions
    "ArchiveError",
    "StructuralError",
    "DuplicateName",
    "PathNotFound",
    "InvalidParent",
    "InvalidName",
    "SealedContainer",
    "AlreadyFinalized",
    "NotFinalized",
    "SchemaError",
    "MissingAttribute",
    "WrongType",
    "EmptyRequiredValue",
    "UnsupportedAttributeType",
    "ReservedAttributeKey",
    "TimeBaseError",
    "MissingTimeBasis",
    "AmbiguousTimeBasis",
    "TimeLengthMismatch",
    "InvalidTimeVector",
    "BoundsError",
    "OutOfBounds",
    "FrameError",
    "ZeroVector",
    "ArchiveIOError",
    "ArchiveNotFound",
    "CorruptArchive",
    "ArchivePermissionDenied",
    "ArchiveExists",
    "ValidationCancelled",
]
