# structarchive/core/timebase.py
from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterator, Mapping, Union

import numpy as np

from .exceptions import (
    AmbiguousTimeBasis,
    InvalidTimeVector,
    MissingTimeBasis,
    PathNotFound,
    TimeBaseError,
    TimeLengthMismatch,
)
from .kinds import TIME_DATASET, NodeKind, classify, sensors_of
from .tree import Container, Dataset, Group, PathLike

logger = logging.getLogger(__name__)

START_TIME_KEY = "start-time"
SAMPLING_INTERVAL_KEY = "sampling-interval"
INTERVAL_KEYS = (START_TIME_KEY, SAMPLING_INTERVAL_KEY)


@dataclass(frozen=True, slots=True)
class SharedTimeBasis:
    """All sensors of a trial share the trial's `time` dataset."""
    trial_path: str
    time_path: str
    length: int
    sensor_lengths: Mapping[str, int] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class SensorInterval:
    start: float
    interval: float
    length: int


@dataclass(frozen=True, slots=True)
class IntervalTimeBasis:
    """Every sensor of a trial carries its own start-time and sampling-interval."""
    trial_path: str
    sensors: Mapping[str, SensorInterval] = field(default_factory=dict)


TimeBasis = Union[SharedTimeBasis, IntervalTimeBasis]


def to_seconds(value: object) -> float | None:
    """Return a start-time as seconds, or None if it is not usable."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, float) and math.isfinite(value):
        return value
    return None


def real_dtype(dtype: np.dtype) -> np.dtype:
    """Element type used for timestamp arithmetic of a dataset."""
    return dtype if dtype.kind == "f" else np.dtype(np.float64)


class TimestampSequence(Sequence):
    """
    Lazy, finite, restartable sequence of timestamps.

    Values are produced block-wise through `reader(start, stop)`, so iterating
    a long sensor never materializes more than one chunk at a time.
    """

    def __init__(
        self,
        length: int,
        dtype: np.dtype,
        reader: Callable[[int, int], np.ndarray],
        *,
        chunk_size: int = 65536,
    ) -> None:
        self._length = int(length)
        self._dtype = np.dtype(dtype)
        self._reader = reader
        self._chunk_size = chunk_size

    @classmethod
    def shared(cls, time: Dataset, *, chunk_size: int = 65536) -> "TimestampSequence":
        dt = real_dtype(time.dtype)
        return cls(
            time.length,
            dt,
            lambda a, b: np.asarray(time.get_slice(a, b - a), dtype=dt),
            chunk_size=chunk_size,
        )

    @classmethod
    def regular(
        cls,
        start: float,
        interval: float,
        length: int,
        dtype: np.dtype = np.dtype(np.float64),
        *,
        chunk_size: int = 65536,
    ) -> "TimestampSequence":
        dt = real_dtype(np.dtype(dtype))
        t0 = dt.type(start)
        step = dt.type(interval)

        def _reader(a: int, b: int) -> np.ndarray:
            # timestamp(i) = start + i * interval, in the dataset's real type
            return t0 + np.arange(a, b, dtype=dt) * step

        return cls(length, dt, _reader, chunk_size=chunk_size)

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    def __len__(self) -> int:
        return self._length

    def __getitem__(self, key):  # type: ignore[override]
        if isinstance(key, slice):
            idx = range(*key.indices(self._length))
            if len(idx) == 0:
                return np.empty(0, dtype=self._dtype)
            lo, hi = min(idx), max(idx) + 1
            block = self._reader(lo, hi)
            return block[np.asarray(idx) - lo]

        i = int(key)
        if i < 0:
            i += self._length
        if not 0 <= i < self._length:
            raise IndexError(f"timestamp index {key} out of range")
        return self._reader(i, i + 1)[0]

    def __iter__(self) -> Iterator:
        for a in range(0, self._length, self._chunk_size):
            b = min(a + self._chunk_size, self._length)
            yield from self._reader(a, b)

    def to_numpy(self) -> np.ndarray:
        return np.asarray(self._reader(0, self._length))

    def __repr__(self) -> str:
        return f"TimestampSequence(length={self._length}, dtype={self._dtype})"


class TimeBaseResolver:
    """
    Derive timestamps for the sensor datasets of a container.

    A trial either holds a shared `time` dataset, or every sensor carries
    `start-time` and `sampling-interval`. Mixing both for one sensor, or
    supplying neither, is an error.
    """

    def __init__(self, container: Container) -> None:
        self._container = container
        self._chunk_size = container.config.chunk_size

    # ---- helpers ----
    def _trial(self, trial_path: PathLike) -> Group:
        node = self._container.resolve(trial_path)
        if not isinstance(node, Group) or classify(node) is not NodeKind.TRIAL:
            raise PathNotFound(f"{node.path} is not a trial group")
        return node

    @staticmethod
    def _time_dataset(trial: Group) -> Dataset | None:
        node = trial.get(TIME_DATASET)
        return node if isinstance(node, Dataset) else None

    @staticmethod
    def _has_interval_attrs(sensor: Dataset) -> bool:
        return any(key in sensor.attrs for key in INTERVAL_KEYS)

    @staticmethod
    def _time_shape_problem(time: Dataset) -> TimeBaseError | None:
        if not time.is_finalized:
            return InvalidTimeVector(f"{time.path} has no samples", time.path)
        if time.ndim != 1:
            return InvalidTimeVector(f"{time.path} must be 1D, got shape {time.shape}", time.path)
        return None

    def _time_vector_problem(self, time: Dataset) -> TimeBaseError | None:
        problem = self._time_shape_problem(time)
        if problem is not None:
            return problem

        previous = None
        for a in range(0, time.length, self._chunk_size):
            block = time.get_slice(a, min(self._chunk_size, time.length - a))
            if not np.isfinite(block).all():
                return InvalidTimeVector(
                    f"{time.path} contains non-finite values (NaN/Inf).", time.path
                )
            if previous is not None and block.size and block[0] < previous:
                return InvalidTimeVector(f"{time.path} must be non-decreasing.", time.path)
            if np.any(np.diff(block) < 0):
                return InvalidTimeVector(f"{time.path} must be non-decreasing.", time.path)
            if block.size:
                previous = block[-1]
        return None

    @staticmethod
    def _interval_of(sensor: Dataset) -> SensorInterval:
        missing = [key for key in INTERVAL_KEYS if key not in sensor.attrs]
        if missing:
            raise MissingTimeBasis(
                f"{sensor.path} has no `time` sibling and lacks {', '.join(missing)}",
                sensor.path,
            )
        start = to_seconds(sensor.attrs.get(START_TIME_KEY))
        if start is None:
            raise MissingTimeBasis(
                f"{sensor.path}: {START_TIME_KEY} must be a finite real or a timestamp",
                sensor.path,
            )
        interval = sensor.attrs.get(SAMPLING_INTERVAL_KEY)
        if not isinstance(interval, float) or not math.isfinite(interval) or interval <= 0:
            raise MissingTimeBasis(
                f"{sensor.path}: {SAMPLING_INTERVAL_KEY} must be a positive finite real",
                sensor.path,
            )
        if not sensor.is_finalized:
            raise MissingTimeBasis(f"{sensor.path} has no samples", sensor.path)
        return SensorInterval(start=start, interval=interval, length=sensor.length)

    @staticmethod
    def _shared_problem(sensor: Dataset, time: Dataset) -> TimeBaseError | None:
        if TimeBaseResolver._has_interval_attrs(sensor):
            return AmbiguousTimeBasis(
                f"{sensor.path} has a `time` sibling and its own start-time/sampling-interval",
                sensor.path,
            )
        if not sensor.is_finalized:
            return TimeLengthMismatch(f"{sensor.path} has no samples", sensor.path)
        if time.is_finalized and sensor.length != time.length:
            return TimeLengthMismatch(
                f"{sensor.path} has {sensor.length} samples, {time.path} has {time.length}",
                sensor.path,
            )
        return None

    # ---- public API ----
    def diagnose(self, trial_path: PathLike) -> list[TimeBaseError]:
        """Return every time base problem of a trial (empty list when resolvable)."""
        trial = self._trial(trial_path)
        time = self._time_dataset(trial)
        issues: list[TimeBaseError] = []

        if time is not None:
            problem = self._time_vector_problem(time)
            if problem is not None:
                issues.append(problem)
            for sensor in sensors_of(trial):
                problem = self._shared_problem(sensor, time)
                if problem is not None:
                    issues.append(problem)
        else:
            for sensor in sensors_of(trial):
                try:
                    self._interval_of(sensor)
                except TimeBaseError as e:
                    issues.append(e)

        logger.debug("time base of %s: %d issue(s)", trial.path, len(issues))
        return issues

    def resolve_time_basis(self, trial_path: PathLike) -> TimeBasis:
        trial = self._trial(trial_path)
        issues = self.diagnose(trial.parts)
        if issues:
            raise issues[0]

        time = self._time_dataset(trial)
        if time is not None:
            return SharedTimeBasis(
                trial_path=trial.path,
                time_path=time.path,
                length=time.length,
                sensor_lengths={s.path: s.length for s in sensors_of(trial)},
            )
        return IntervalTimeBasis(
            trial_path=trial.path,
            sensors={s.path: self._interval_of(s) for s in sensors_of(trial)},
        )

    def timestamps(self, sensor_path: PathLike) -> TimestampSequence:
        sensor = self._container.resolve(sensor_path)
        if not isinstance(sensor, Dataset) or classify(sensor) is not NodeKind.SENSOR:
            raise PathNotFound(f"{sensor.path} is not a sensor dataset")
        trial = sensor.parent
        if trial is None:
            raise PathNotFound(f"{sensor.path} has no parent trial")

        time = self._time_dataset(trial)
        if time is not None:
            problem = self._time_shape_problem(time) or self._shared_problem(sensor, time)
            if problem is not None:
                raise problem
            return TimestampSequence.shared(time, chunk_size=self._chunk_size)

        regular = self._interval_of(sensor)
        return TimestampSequence.regular(
            regular.start,
            regular.interval,
            regular.length,
            sensor.dtype,
            chunk_size=self._chunk_size,
        )
