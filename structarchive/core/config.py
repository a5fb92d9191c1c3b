# structarchive/core/config.py
"""Runtime configuration for structarchive.

Defaults are usable as-is; ``ArchiveConfig.from_env()`` lets deployments
override them with ``STRUCTARCHIVE_*`` environment variables.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import numpy as np

ENV_PREFIX = "STRUCTARCHIVE_"

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True, slots=True)
class ArchiveConfig:
    """
    Settings shared by the container tree and the persistence backends.

    - default_dtype: element type used by add_dataset() when none is given
    - chunk_size: number of rows read per step when scanning large datasets
    - compression / compression_opts: HDF5 filter applied to written datasets
    - log_level: level used by configure_logging()
    """
    default_dtype: str = "float64"
    chunk_size: int = 65536
    compression: str | None = None
    compression_opts: int | None = None
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        dtype = np.dtype(self.default_dtype)
        if dtype.kind not in "iuf":
            raise ValueError(f"default_dtype must be numeric, got {self.default_dtype!r}")
        if not isinstance(self.chunk_size, int) or self.chunk_size <= 0:
            raise ValueError("chunk_size must be a positive integer.")
        if self.compression_opts is not None and self.compression is None:
            raise ValueError("compression_opts requires compression to be set.")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level {self.log_level!r}")

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "ArchiveConfig":
        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}

        if (value := env.get(ENV_PREFIX + "DEFAULT_DTYPE")):
            kwargs["default_dtype"] = value
        if (value := env.get(ENV_PREFIX + "CHUNK_SIZE")):
            kwargs["chunk_size"] = int(value)
        if (value := env.get(ENV_PREFIX + "COMPRESSION")):
            kwargs["compression"] = value
        if (value := env.get(ENV_PREFIX + "COMPRESSION_OPTS")):
            kwargs["compression_opts"] = int(value)
        if (value := env.get(ENV_PREFIX + "LOG_LEVEL")):
            kwargs["log_level"] = value

        return cls(**kwargs)  # type: ignore[arg-type]


DEFAULT_CONFIG = ArchiveConfig()


def configure_logging(config: ArchiveConfig | None = None) -> logging.Logger:
    """Attach a stream handler to the package logger (idempotent)."""
    config = config or DEFAULT_CONFIG
    logger = logging.getLogger("structarchive")
    logger.setLevel(config.log_level.upper())
    if not any(getattr(h, "_structarchive", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        handler._structarchive = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
