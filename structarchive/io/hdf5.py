# structarchive/io/hdf5.py
"""
HDF5 persistence backend (h5py).

Layout of an archive file:

    /                      project attributes (root group)
    /<trial>/              trial attributes
    /<trial>/time          optional shared time vector
    /<trial>/<sensor>      sensor samples + sensor attributes

Strings, reals and vectors are stored as native HDF5 attributes. Timestamps
are stored as ISO 8601 strings; their keys are listed in the reserved
``structarchive:timestamps`` attribute of the same node so they round-trip as
datetimes. Plain HDF5 files written by other tools with the same layout can
be opened read-only.
"""
from __future__ import annotations

import logging
import os
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Union

import h5py
import numpy as np

from structarchive.core import (
    ArchiveConfig,
    ArchiveError,
    ArchiveExists,
    ArchiveIOError,
    ArchiveNotFound,
    ArchivePermissionDenied,
    Container,
    CorruptArchive,
    Dataset,
    Group,
    Layout,
    Node,
    UnsupportedAttributeType,
    coerce_value,
    validate_tree,
)
from structarchive.core.attributes import RESERVED_PREFIX

logger = logging.getLogger(__name__)

Locator = Union[str, "os.PathLike[str]"]

FORMAT_VERSION = "1.0"
FORMAT_ATTR = RESERVED_PREFIX + "format-version"
LAYOUT_ATTR = RESERVED_PREFIX + "layout"
TIMESTAMPS_ATTR = RESERVED_PREFIX + "timestamps"


class OpenMode(str, Enum):
    READ_ONLY = "r"
    READ_WRITE = "w"


class H5Samples:
    """Sample payload read row-wise from an open h5py.Dataset."""

    __slots__ = ("_dataset", "_name", "_dtype", "_shape")

    def __init__(self, dataset: h5py.Dataset) -> None:
        self._dataset = dataset
        self._name = dataset.name
        self._dtype = np.dtype(dataset.dtype)
        self._shape = tuple(int(n) for n in dataset.shape)

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def shape(self) -> tuple[int, ...]:
        return self._shape

    def read_rows(self, start: int, stop: int) -> np.ndarray:
        if not self._dataset.id.valid:
            raise ArchiveIOError(f"The archive holding {self._name} has been closed.")
        return self._dataset[start:stop]

    def __repr__(self) -> str:
        return f"H5Samples({self._name!r}, shape={self._shape}, dtype={self._dtype})"


# ---- opening ----
def _open_h5(locator: Locator, mode: OpenMode) -> h5py.File:
    path = Path(locator)
    try:
        if mode is OpenMode.READ_WRITE:
            if path.exists():
                raise ArchiveExists(f"Archive {path} already exists.")
            return h5py.File(path, "w-", track_order=True)
        return h5py.File(path, "r")
    except ArchiveIOError:
        raise
    except FileNotFoundError as e:
        raise ArchiveNotFound(f"Archive {path} not found.") from e
    except PermissionError as e:
        raise ArchivePermissionDenied(f"Access to {path} denied.") from e
    except FileExistsError as e:
        raise ArchiveExists(f"Archive {path} already exists.") from e
    except OSError as e:
        if mode is OpenMode.READ_ONLY and not path.exists():
            raise ArchiveNotFound(f"Archive {path} not found.") from e
        raise CorruptArchive(f"{path} is not a readable HDF5 archive: {e}") from e


# ---- attributes ----
def _as_str(raw: Any) -> str:
    if isinstance(raw, bytes):
        return raw.decode("utf-8")
    if isinstance(raw, np.ndarray) and raw.size == 1 and raw.dtype.kind in "OSU":
        return _as_str(raw.reshape(-1)[0])
    if isinstance(raw, str):
        return raw
    raise CorruptArchive(f"Expected a string attribute, got {type(raw).__name__}")


def _str_list(raw: Any) -> list[str]:
    if isinstance(raw, (str, bytes)):
        return [_as_str(raw)]
    return [_as_str(item) for item in np.asarray(raw).reshape(-1)]


def _decode_value(raw: Any, *, timestamp: bool) -> Any:
    if timestamp:
        return datetime.fromisoformat(_as_str(raw))
    if isinstance(raw, (bytes, str)):
        return _as_str(raw)
    if isinstance(raw, np.ndarray):
        if raw.ndim == 0:
            return _decode_value(raw[()], timestamp=False)
        if raw.dtype.kind in "OSU":
            return _as_str(raw)
    return coerce_value(raw)


def _read_attrs(h5obj: h5py.HLObject, node: Node) -> None:
    attrs = h5obj.attrs
    timestamp_keys = set(_str_list(attrs[TIMESTAMPS_ATTR])) if TIMESTAMPS_ATTR in attrs else set()
    values: dict[str, Any] = {}
    for key in attrs.keys():
        if key.startswith(RESERVED_PREFIX):
            continue
        try:
            values[key] = _decode_value(attrs[key], timestamp=key in timestamp_keys)
        except (UnsupportedAttributeType, ValueError, UnicodeDecodeError) as e:
            raise CorruptArchive(f"{h5obj.name}: cannot decode attribute {key!r}: {e}") from e
    node.attrs.update(values)


def _write_attrs(node: Node, attrs: h5py.AttributeManager) -> None:
    timestamp_keys: list[str] = []
    for key, value in node.attrs.items():
        if isinstance(value, datetime):
            attrs[key] = value.isoformat()
            timestamp_keys.append(key)
        elif isinstance(value, tuple):
            attrs[key] = np.asarray(value, dtype=np.float64)
        elif isinstance(value, float):
            attrs[key] = np.float64(value)
        else:
            attrs[key] = value
    if timestamp_keys:
        attrs[TIMESTAMPS_ATTR] = np.array(timestamp_keys, dtype=h5py.string_dtype())


# ---- tree ----
def _read_group(h5group: h5py.Group, group: Group) -> None:
    _read_attrs(h5group, group)
    for name in h5group.keys():
        obj = h5group.get(name)
        if obj is None:
            raise CorruptArchive(f"{h5group.name}/{name} is a dangling link.")
        if isinstance(obj, h5py.Group):
            _read_group(obj, group.add_group(name))
        elif isinstance(obj, h5py.Dataset):
            if obj.dtype.kind not in "iuf" or obj.ndim not in (1, 2):
                raise CorruptArchive(
                    f"{obj.name}: unsupported dataset (dtype {obj.dtype}, shape {obj.shape})"
                )
            dataset = group.add_dataset(name, obj.dtype)
            dataset.attach(H5Samples(obj))
            _read_attrs(obj, dataset)
        else:
            raise CorruptArchive(f"{h5group.name}/{name}: unsupported HDF5 object")


def _load(h5file: h5py.File, config: ArchiveConfig) -> Container:
    layout_raw = h5file.attrs.get(LAYOUT_ATTR, Layout.SINGLE_PROJECT.value)
    try:
        layout = Layout(_as_str(layout_raw))
    except ValueError as e:
        raise CorruptArchive(f"Unknown container layout {layout_raw!r}") from e

    container = Container(layout=layout, config=config)
    _read_group(h5file, container.root)
    container.seal()
    return container


def _write_dataset(h5group: h5py.Group, dataset: Dataset, config: ArchiveConfig) -> None:
    kwargs: dict[str, Any] = {}
    if config.compression and dataset.length > 0:
        kwargs["compression"] = config.compression
        if config.compression_opts is not None:
            kwargs["compression_opts"] = config.compression_opts

    h5ds = h5group.create_dataset(dataset.name, shape=dataset.shape, dtype=dataset.dtype, **kwargs)
    for a in range(0, dataset.length, config.chunk_size):
        n = min(config.chunk_size, dataset.length - a)
        h5ds[a:a + n] = dataset.get_slice(a, n)
    _write_attrs(dataset, h5ds.attrs)


def _write_group(h5group: h5py.Group, group: Group, config: ArchiveConfig) -> None:
    _write_attrs(group, h5group.attrs)
    for name, child in group.items():
        if isinstance(child, Group):
            _write_group(h5group.create_group(name, track_order=True), child, config)
        elif isinstance(child, Dataset):
            _write_dataset(h5group, child, config)


def _dump(container: Container, h5file: h5py.File, config: ArchiveConfig) -> None:
    report = validate_tree(container)
    if not report.ok:
        logger.warning(
            "Writing container with %d invalid node(s):\n%s", len(report), report.summary()
        )
    # the container is sealed only once everything is on disk
    container.check_finalized()
    _write_group(h5file, container.root, config)
    h5file.attrs[FORMAT_ATTR] = FORMAT_VERSION
    h5file.attrs[LAYOUT_ATTR] = container.layout.value
    h5file.flush()
    container.seal()


# ---- handles ----
class ArchiveHandle:
    """
    Scoped access to one archive.

    READ_ONLY handles expose a sealed container whose samples stay on disk
    until read. READ_WRITE handles expose an empty container for authoring;
    it is sealed and written on close(). Leaving a `with` block through an
    exception discards the partially created archive.
    """

    def __init__(
        self,
        locator: Locator,
        mode: OpenMode,
        h5file: h5py.File,
        container: Container,
        config: ArchiveConfig,
    ) -> None:
        self.locator = Path(locator)
        self.mode = mode
        self.config = config
        self._h5 = h5file
        self._container = container
        self._committed = mode is OpenMode.READ_ONLY
        self._closed = False

    @property
    def container(self) -> Container:
        if self._closed:
            raise ArchiveIOError(f"Archive {self.locator} is closed.")
        return self._container

    @property
    def closed(self) -> bool:
        return self._closed

    def commit(self) -> None:
        """Seal the container and write it (READ_WRITE only, once)."""
        if self._closed:
            raise ArchiveIOError(f"Archive {self.locator} is closed.")
        if self._committed:
            return
        _dump(self._container, self._h5, self.config)
        self._committed = True
        logger.info("committed archive %s", self.locator)

    def _release(self) -> None:
        if not self._closed:
            self._closed = True
            self._h5.close()

    def discard(self) -> None:
        """Release the handle; a new archive that was not committed is removed."""
        was_committed = self._committed
        self._release()
        if self.mode is OpenMode.READ_WRITE and not was_committed:
            self.locator.unlink(missing_ok=True)
            logger.warning("discarded uncommitted archive %s", self.locator)

    def close(self) -> None:
        """Commit pending writes and release the file (idempotent)."""
        if self._closed:
            return
        if not self._committed:
            try:
                self.commit()
            except BaseException:
                self.discard()
                raise
        self._release()

    def __enter__(self) -> "ArchiveHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.discard()
        else:
            self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"ArchiveHandle({str(self.locator)!r}, mode={self.mode.value}, {state})"


def open_container(
    locator: Locator,
    mode: OpenMode | str = OpenMode.READ_ONLY,
    *,
    layout: Layout = Layout.SINGLE_PROJECT,
    config: ArchiveConfig | None = None,
) -> ArchiveHandle:
    """Open an archive for reading ("r") or create a new one for authoring ("w")."""
    mode = OpenMode(mode)
    config = config or ArchiveConfig()
    h5file = _open_h5(locator, mode)

    if mode is OpenMode.READ_WRITE:
        logger.info("created archive %s", locator)
        return ArchiveHandle(locator, mode, h5file, Container(layout=layout, config=config), config)

    try:
        container = _load(h5file, config)
    except CorruptArchive:
        h5file.close()
        raise
    except (ArchiveError, OSError, KeyError, ValueError, TypeError, RecursionError) as e:
        h5file.close()
        raise CorruptArchive(f"Cannot load {locator}: {e}") from e

    logger.info("opened archive %s (%d top-level node(s))", locator, len(container.root))
    return ArchiveHandle(locator, mode, h5file, container, config)


def save_container(
    container: Container,
    locator: Locator,
    *,
    config: ArchiveConfig | None = None,
) -> None:
    """Seal an in-memory container and write it as a new archive."""
    config = config or container.config
    h5file = _open_h5(locator, OpenMode.READ_WRITE)
    handle = ArchiveHandle(locator, OpenMode.READ_WRITE, h5file, container, config)
    with handle:
        handle.commit()
