from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List

from asammdf import MDF  # pivotal dependency for MDF file handling
import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class RawChannelInfo:
    """
    Metadata + lazy loader for one (non-master) MDF channel.

    Nothing is read from the file until `load()` is called.
    """

    name: str                  # "strain_A1", "accel_x", ...
    unit: str | None
    comment: str | None
    # Lazy loader: when called, reads ONLY this channel
    loader: Callable[[], tuple["np.ndarray", "np.ndarray"]]
    # -> (time, values)

    def load(self) -> tuple[np.ndarray, np.ndarray]:
        """Return (time, values) of this channel."""
        t, v = self.loader()
        return np.asarray(t), np.asarray(v)


def _text(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class AsammdfReader:
    """Channel index over an MDF file, backed by asammdf.MDF.

    Channels are indexed by name in file order; master (time) channels are
    skipped since every signal carries its own timestamps. When the same name
    appears in several groups, the first occurrence wins.
    """

    def __init__(self, path: str):
        self._path = str(path)
        self._mdf = MDF(self._path)
        self._index: dict[str, RawChannelInfo] = {}
        self._build_index()

    # ------------------------------------------------------------------
    # Index construction
    # ------------------------------------------------------------------
    def _is_master(self, group_index: int, channel_index: int, channel) -> bool:
        masters = getattr(self._mdf, "masters_db", {})
        if masters.get(group_index) == channel_index:
            return True
        # MDF4 master / virtual master channel types
        return str(self._mdf.version) >= "4.00" and getattr(channel, "channel_type", None) in (2, 3)

    def _build_index(self) -> None:
        for group_index, group in enumerate(self._mdf.groups):
            for channel_index, channel in enumerate(group.channels):
                if self._is_master(group_index, channel_index, channel):
                    continue
                if channel.name in self._index:
                    logger.debug(
                        "%s: duplicate channel %r in group %d ignored",
                        self._path, channel.name, group_index,
                    )
                    continue

                def make_loader(g_i: int = group_index, c_i: int = channel_index):
                    def _loader() -> tuple[np.ndarray, np.ndarray]:
                        sig = self._mdf.get(group=g_i, index=c_i)
                        # asammdf Signal interface: timestamps & samples
                        return sig.timestamps, sig.samples

                    return _loader

                self._index[channel.name] = RawChannelInfo(
                    name=channel.name,
                    unit=_text(getattr(channel, "unit", None)),
                    comment=_text(getattr(channel, "comment", None)),
                    loader=make_loader(),
                )

        logger.debug("%s: %d channel(s) indexed", self._path, len(self._index))

    # ------------------------------------------------------------------
    # Channel access
    # ------------------------------------------------------------------
    def list_channels(self) -> List[RawChannelInfo]:
        """List channels in file order (one entry per name)."""
        return list(self._index.values())

    def close(self) -> None:
        self._mdf.close()

    def __enter__(self) -> "AsammdfReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
