# structarchive/core/samples.py
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import numpy as np

from .exceptions import OutOfBounds


def check_dtype(dtype: Any) -> np.dtype:
    """Return `dtype` as a numpy dtype, rejecting non-numeric element types."""
    dt = np.dtype(dtype)
    if dt.kind not in "iuf":
        raise TypeError(f"Dataset element type must be integer or float, got {dt}")
    return dt


def check_slice(start: int, length: int, total: int) -> None:
    if start < 0 or length < 0:
        raise OutOfBounds(f"start and length must be non-negative, got {start}, {length}")
    if start + length > total:
        raise OutOfBounds(
            f"slice [{start}, {start + length}) exceeds dataset length {total}"
        )


@runtime_checkable
class SampleSource(Protocol):
    """Structural interface for the sample payload behind a Dataset node."""

    @property
    def dtype(self) -> np.dtype: ...

    @property
    def shape(self) -> tuple[int, ...]: ...

    def read_rows(self, start: int, stop: int) -> np.ndarray: ...


class ArraySamples:
    """In-memory payload: a private, read-only copy of the finalized values."""

    __slots__ = ("_array",)

    def __init__(self, values: Any, dtype: np.dtype) -> None:
        raw = np.asarray(values)
        if raw.dtype.kind not in "iuf" and raw.size > 0:
            raise TypeError(f"Samples must be numeric, got element type {raw.dtype}")
        # float data is never silently truncated into an integer dataset
        if raw.size > 0 and raw.dtype.kind == "f" and dtype.kind in "iu":
            raise TypeError(f"Cannot store {raw.dtype} samples in a {dtype} dataset")
        arr = raw.astype(dtype, copy=True)
        if arr.ndim not in (1, 2):
            raise ValueError(f"Samples must be 1D or 2D, got shape {arr.shape}")
        arr.flags.writeable = False
        self._array = arr

    @property
    def dtype(self) -> np.dtype:
        return self._array.dtype

    @property
    def shape(self) -> tuple[int, ...]:
        return self._array.shape

    def read_rows(self, start: int, stop: int) -> np.ndarray:
        return self._array[start:stop]

    def __repr__(self) -> str:
        return f"ArraySamples(shape={self.shape}, dtype={self.dtype})"
