"""
Utility modules.
"""

from .compute import (
    Backend,
    init_backend,
    get_backend,
    get_dtype,
    split_work,
    resolve_n_jobs,
    parallel_map,
    get_cpu_count,
)

from .logging import (
    get_logger,
    set_level,
    Timer,
    ProgressTracker,
)

__all__ = [
    'Backend',
    'init_backend',
    'get_backend',
    'get_dtype',
    'split_work',
    'resolve_n_jobs',
    'parallel_map',
    'get_cpu_count',
    'get_logger',
    'set_level',
    'Timer',
    'ProgressTracker',
]
