"""
Memory limits for per-pixel raster work.

Local RX and neighbour searches build one working array per row chunk. The
manager caps how many raster rows go into a chunk so that array stays
within a fraction of the memory psutil reports as available.
"""

import logging
from typing import Optional, Tuple

import numpy as np
import psutil

logger = logging.getLogger(__name__)

GB = 1024 ** 3


def get_available_memory() -> float:
    """Available system memory in GB."""
    available_gb = psutil.virtual_memory().available / GB
    logger.debug(f"Available memory: {available_gb:.1f} GB")
    return available_gb


def array_nbytes(shape: Tuple[int, ...], dtype=np.float64) -> int:
    """Bytes needed for an array of ``shape`` and ``dtype``."""
    return int(np.prod(shape, dtype=np.int64)) * np.dtype(dtype).itemsize


class MemoryManager:
    """
    Row-chunk sizing against a memory limit.

    Args:
        limit_gb: Memory limit in GB (a fraction of available memory if None)
        safety_factor: Fraction of available memory used when auto-detecting
    """

    def __init__(self, limit_gb: Optional[float] = None, safety_factor: float = 0.8):
        if limit_gb is None:
            limit_gb = get_available_memory() * safety_factor
        self.limit_gb = float(limit_gb)
        logger.debug(f"MemoryManager limit: {self.limit_gb:.2f} GB")

    @property
    def limit_bytes(self) -> int:
        return int(self.limit_gb * GB)

    def fits(self, shape: Tuple[int, ...], dtype=np.float64) -> bool:
        return array_nbytes(shape, dtype) < self.limit_bytes

    def rows_per_chunk(self, n_rows: int, row_shape: Tuple[int, ...],
                       dtype=np.float64) -> int:
        """
        Largest row count whose working array of shape (rows, *row_shape)
        uses at most half the limit. Always between 1 and ``n_rows``.
        """
        row_bytes = array_nbytes(tuple(row_shape), dtype)
        if row_bytes == 0:
            return max(1, n_rows)
        # Half the limit, the rest is headroom for temporaries
        rows = int(self.limit_bytes // (2 * row_bytes))
        return max(1, min(rows, n_rows))
