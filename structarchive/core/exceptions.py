# structarchive/core/exceptions.py
from __future__ import annotations


class ArchiveError(Exception):
    """Base error for all structarchive exceptions."""


# ---- Structural errors (raised by the mutating call, never batched) ----
class StructuralError(ArchiveError):
    """Raised when a tree mutation would violate a structural invariant."""


class DuplicateName(StructuralError):
    """Raised when a child name already exists in the parent group."""


class PathNotFound(StructuralError, KeyError):
    """Raised when a path does not resolve to a node."""


class InvalidParent(StructuralError):
    """Raised when a child is added below a Dataset."""


class InvalidName(StructuralError, ValueError):
    """Raised when a node name is empty or contains a path separator."""


class SealedContainer(StructuralError):
    """Raised when a sealed (write-once) container is mutated."""


class AlreadyFinalized(StructuralError):
    """Raised when samples are written twice to the same dataset."""


class NotFinalized(StructuralError):
    """Raised when samples of a dataset are requested before they were written."""


# ---- Schema errors (collected by the validator, raised by direct lookups) ----
class SchemaError(ArchiveError):
    """Base error for metadata problems."""


class MissingAttribute(SchemaError, KeyError):
    """Raised when a requested attribute key is not present on a node."""


class WrongType(SchemaError, TypeError):
    """Raised when an attribute value has an unexpected type."""


class EmptyRequiredValue(SchemaError, ValueError):
    """Raised when a required string attribute is empty."""


class UnsupportedAttributeType(SchemaError, TypeError):
    """Raised when a value outside the closed attribute type set is stored."""


class ReservedAttributeKey(SchemaError, ValueError):
    """Raised when an attribute key is empty or uses the reserved prefix."""


# ---- Time base errors ----
class TimeBaseError(ArchiveError):
    """Base error for time base resolution problems."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class MissingTimeBasis(TimeBaseError):
    """Raised when a sensor dataset has no usable time information."""


class AmbiguousTimeBasis(TimeBaseError):
    """Raised when a sensor dataset has both a shared time vector and its own start/interval."""


class TimeLengthMismatch(TimeBaseError):
    """Raised when a sensor dataset length differs from the shared time vector."""


class InvalidTimeVector(TimeBaseError):
    """Raised when the shared time vector is not 1D, finite and non-decreasing."""


# ---- Bounds / geometry ----
class BoundsError(ArchiveError):
    """Base error for out-of-range sample access."""


class OutOfBounds(BoundsError, IndexError):
    """Raised when a slice request exceeds the dataset length."""


class FrameError(ArchiveError):
    """Base error for coordinate frame helpers."""


class ZeroVector(FrameError, ValueError):
    """Raised when a zero-length vector is normalized."""


# ---- Persistence backend ----
class ArchiveIOError(ArchiveError):
    """Base error for persistence backend failures."""


class ArchiveNotFound(ArchiveIOError, FileNotFoundError):
    """Raised when the archive locator does not exist."""


class CorruptArchive(ArchiveIOError):
    """Raised when the archive cannot be decoded into a container tree."""


class ArchivePermissionDenied(ArchiveIOError, PermissionError):
    """Raised when the backend refuses access to the archive."""


class ArchiveExists(ArchiveIOError, FileExistsError):
    """Raised when a new archive would overwrite an existing one."""


class ValidationCancelled(ArchiveError):
    """Raised when a tree validation is cancelled between node visits."""
