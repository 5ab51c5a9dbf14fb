"""
Row-partitioned execution of per-pixel work.

Per-pixel computations (local RX windows, neighbour searches) are
independent, so a raster is cut into contiguous row ranges that run either
in the calling process or on a process pool. Workers must be module-level
functions so they can be pickled; each is called as
``worker(start, end, *args)`` and its results are returned in row order.
"""

import os
import time
import logging
import concurrent.futures
from typing import Any, Callable, List, Optional, Sequence, Tuple

import numpy as np

from geomin_tools.utils.memory import MemoryManager

logger = logging.getLogger(__name__)


def resolve_workers(n_workers: Optional[int]) -> int:
    """Worker count; None or values < 1 mean all available CPUs."""
    if n_workers is None or n_workers < 1:
        return os.cpu_count() or 1
    return int(n_workers)


def plan_chunks(n_rows: int, n_workers: int, row_shape: Tuple[int, ...] = (),
                dtype=np.float64, memory: Optional[MemoryManager] = None) -> List[Tuple[int, int]]:
    """
    Split ``n_rows`` into contiguous (start, end) ranges.

    Aims for four chunks per worker, shrunk further if one chunk's working
    array of shape (rows, *row_shape) would not fit the memory budget.
    """
    if n_rows <= 0:
        return []
    chunk_rows = max(1, -(-n_rows // (n_workers * 4)))
    if row_shape:
        memory = memory or MemoryManager()
        chunk_rows = min(chunk_rows, memory.rows_per_chunk(n_rows, row_shape, dtype=dtype))
    return [(start, min(start + chunk_rows, n_rows)) for start in range(0, n_rows, chunk_rows)]


def map_row_chunks(worker: Callable, n_rows: int, args: Sequence[Any] = (),
                   n_workers: Optional[int] = 1, parallel: bool = True,
                   row_shape: Tuple[int, ...] = (),
                   description: str = "processing") -> List[Any]:
    """
    Run ``worker(start, end, *args)`` over row chunks.

    Args:
        worker: Module-level function
        n_rows: Number of rows to cover
        args: Extra positional arguments passed to every call
        n_workers: Process count (1 runs in the calling process)
        parallel: If False, always run sequentially
        row_shape: Per-row working-array shape for memory-bounded chunking
        description: Label used in log messages

    Returns:
        List of worker results ordered by chunk start
    """
    workers = resolve_workers(n_workers)
    chunks = plan_chunks(n_rows, workers, row_shape=row_shape)

    if not parallel or workers <= 1 or len(chunks) <= 1:
        return [worker(start, end, *args) for start, end in chunks]

    logger.info(f"{description}: {len(chunks)} chunks on {workers} parallel workers")
    start_time = time.time()
    results: List[Any] = [None] * len(chunks)

    with concurrent.futures.ProcessPoolExecutor(max_workers=workers) as executor:
        futures = {
            executor.submit(worker, start, end, *args): i
            for i, (start, end) in enumerate(chunks)
        }
        for future in concurrent.futures.as_completed(futures):
            results[futures[future]] = future.result()

    logger.debug(f"{description}: finished in {time.time() - start_time:.1f}s")
    return results
