# structarchive/io/load.py
from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

from structarchive.io.mdf_reader import AsammdfReader, RawChannelInfo
from structarchive.core import (
    Container,
    DuplicateName,
    Group,
    MissingTimeBasis,
    TIME_DATASET,
)
from structarchive.core.timebase import SAMPLING_INTERVAL_KEY, START_TIME_KEY
from structarchive.core.tree import PathLike, check_name

logger = logging.getLogger(__name__)


def _importable(values: np.ndarray) -> bool:
    return values.dtype.kind in "iuf" and values.ndim in (1, 2)


def _shared_time(times: list[np.ndarray]) -> np.ndarray | None:
    if not times:
        return None
    first = times[0]
    if all(t.shape == first.shape and np.array_equal(t, first) for t in times[1:]):
        return first
    return None


def _uniform_interval(time: np.ndarray) -> float | None:
    """Sampling interval of a regularly sampled time vector, None otherwise."""
    if time.ndim != 1 or time.size < 2 or not np.isfinite(time).all():
        return None
    steps = np.diff(time.astype(np.float64))
    if steps[0] <= 0 or not np.allclose(steps, steps[0], rtol=1e-6, atol=0.0):
        return None
    return float(steps[0])


def import_mdf(
    container: Container,
    path: str,
    *,
    trial_name: str | None = None,
    parent_path: PathLike = "/",
) -> Group:
    """
    Import an MDF recording as one trial of `container`.

    One sensor dataset is created per numeric channel. If all channels share
    one time vector it is stored as the trial's `time` dataset; otherwise each
    channel must be uniformly sampled and gets start-time / sampling-interval.
    Only metadata present in the file is copied (name, unit, comment).
    """
    with AsammdfReader(path) as reader:
        loaded: list[tuple[RawChannelInfo, np.ndarray, np.ndarray]] = []
        for raw_ch in reader.list_channels():
            t, v = raw_ch.load()
            if not _importable(v):
                logger.info("%s: skipping non-numeric channel %r (%s)", path, raw_ch.name, v.dtype)
                continue
            loaded.append((raw_ch, t, v))

    # Decide everything before touching the container
    name = check_name(trial_name or Path(path).stem)
    for raw_ch, _, _ in loaded:
        check_name(raw_ch.name)
        if raw_ch.name == TIME_DATASET:
            raise DuplicateName(f"{path}: channel name {TIME_DATASET!r} is reserved for the trial time vector")

    time = _shared_time([t for _, t, _ in loaded])
    intervals: dict[str, tuple[float, float]] = {}
    if time is None:
        for raw_ch, t, _ in loaded:
            interval = _uniform_interval(t)
            if interval is None:
                raise MissingTimeBasis(
                    f"{path}: channel {raw_ch.name!r} has its own, non-uniform time vector"
                )
            intervals[raw_ch.name] = (float(t[0]), interval)

    trial = container.add_group(parent_path, name)
    if time is not None:
        trial.add_dataset(TIME_DATASET, np.float64).finalize(time.astype(np.float64))

    for raw_ch, _, values in loaded:
        sensor = trial.add_dataset(raw_ch.name, values.dtype)
        sensor.finalize(values)

        attrs: dict[str, object] = {"name": raw_ch.name}
        if raw_ch.unit:
            attrs["unit"] = raw_ch.unit
        if raw_ch.comment:
            attrs["description"] = raw_ch.comment
        if raw_ch.name in intervals:
            start, interval = intervals[raw_ch.name]
            attrs[START_TIME_KEY] = start
            attrs[SAMPLING_INTERVAL_KEY] = interval
        sensor.attrs.update(attrs)

    logger.info(
        "imported %d channel(s) from %s into %s (%s time base)",
        len(loaded), path, trial.path, "shared" if time is not None else "interval",
    )
    return trial
