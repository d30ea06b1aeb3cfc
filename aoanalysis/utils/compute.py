"""
Compute backend utilities.

Holds the process-wide numerical precision and the joblib worker count, and
provides the helpers used to fan per-mode work out over processes.
"""

from __future__ import annotations

import os
from typing import Any, Callable, Iterable, List, Optional

import numpy as np


PRECISIONS = {
    'float32': np.float32,
    'float64': np.float64,
}


# =============================================================================
# Backend State
# =============================================================================

class Backend:
    """
    Numerical backend: floating-point precision and parallelism settings.

    Computation objects read the dtype once at construction and carry it with
    them, so the precision survives being shipped to joblib workers.
    """

    def __init__(self):
        self.dtype = None
        self.precision = None
        self.n_jobs = 1
        self._initialized = False

    def init(self, precision: str = 'float64', n_jobs: Optional[int] = 1) -> 'Backend':
        """
        Initialize the backend.

        Args:
            precision: "float32" or "float64"
            n_jobs: joblib worker count (None or -1 uses every core)

        Returns:
            Self for chaining
        """
        if precision not in PRECISIONS:
            raise ValueError(f"Unknown precision: {precision}. Available: {list(PRECISIONS)}")

        self.precision = precision
        self.dtype = PRECISIONS[precision]
        self.n_jobs = n_jobs if n_jobs is not None else -1
        self._initialized = True
        return self

    def ensure_initialized(self):
        """Initialize with defaults if not already done."""
        if not self._initialized:
            self.init()


# Global singleton backend
_backend = Backend()


def init_backend(precision: str = 'float64', n_jobs: Optional[int] = 1) -> Backend:
    """Initialize the global backend."""
    return _backend.init(precision, n_jobs)


def get_backend() -> Backend:
    """Get the global backend instance."""
    _backend.ensure_initialized()
    return _backend


def get_dtype():
    """Get the active floating-point dtype."""
    _backend.ensure_initialized()
    return _backend.dtype


# =============================================================================
# Parallel Execution Utilities
# =============================================================================

def split_work(items: list, n_workers: int) -> list:
    """
    Split work items across workers evenly.

    Args:
        items: List of work items
        n_workers: Number of workers

    Returns:
        List of lists, one per worker
    """
    k, m = divmod(len(items), n_workers)
    return [items[i*k + min(i, m):(i+1)*k + min(i+1, m)] for i in range(n_workers)]


def resolve_n_jobs(n_jobs: Optional[int] = None) -> int:
    """Turn a joblib-style worker count into a concrete positive number."""
    if n_jobs is None:
        n_jobs = get_backend().n_jobs
    if n_jobs is None or n_jobs < 0:
        return get_cpu_count()
    return max(1, int(n_jobs))


def parallel_map(func: Callable, items: Iterable, n_jobs: Optional[int] = None) -> List[Any]:
    """
    Apply ``func`` to every item, in order, using joblib worker processes.

    Results come back in the order of ``items`` regardless of which worker
    finished first. A single job runs in-process.
    """
    items = list(items)
    n_jobs = resolve_n_jobs(n_jobs)
    if n_jobs == 1 or len(items) <= 1:
        return [func(item) for item in items]

    from joblib import Parallel, delayed
    return Parallel(n_jobs=min(n_jobs, len(items)))(delayed(func)(item) for item in items)


def get_cpu_count() -> int:
    """Get number of CPU cores."""
    return os.cpu_count() or 1
