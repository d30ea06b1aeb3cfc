"""
Temporal PSD grid: per-mode storage and whole-system analysis.
"""

from .store import GridStore, save_array, load_array
from .coordinator import (
    GridCoordinator,
    GridTotals,
    ModeAnalysis,
    half_plane_modes,
    symmetric_map,
)

__all__ = [
    'GridStore',
    'save_array',
    'load_array',
    'GridCoordinator',
    'GridTotals',
    'ModeAnalysis',
    'half_plane_modes',
    'symmetric_map',
]
