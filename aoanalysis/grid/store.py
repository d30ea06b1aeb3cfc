"""
On-disk store of per-mode temporal PSD results.

One ``psd_<m>_<n>.npz`` file per mode holds every array of the
TemporalPSDResult unchanged, so reading a mode back gives bit-identical
arrays. A ``params.yaml`` file next to them records how the grid was built.
"""

from __future__ import annotations

import os
import re
from typing import Any, Dict, List, Tuple

import numpy as np
import yaml

from ..errors import PreconditionError
from ..physics.control import LinearPredictor, SingleIntegrator
from ..physics.temporal import TemporalPSDResult


_MODE_FILE = re.compile(r'^psd_(-?\d+)_(-?\d+)\.npz$')


# =============================================================================
# Array persistence
# =============================================================================

def save_array(path: str, array) -> str:
    """Write a numeric array (``.npy``); returns the path written."""
    if not path.endswith('.npy'):
        path = path + '.npy'
    os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
    np.save(path, np.asarray(array))
    return path


def load_array(path: str) -> np.ndarray:
    return np.load(path)


# =============================================================================
# Grid Store
# =============================================================================

class GridStore:
    """
    Directory of per-mode results.

    Args:
        grid_dir: Directory holding the grid (created on first write)
    """

    PARAMS_FILE = 'params.yaml'

    def __init__(self, grid_dir: str):
        if not grid_dir:
            raise PreconditionError("You must specify the grid directory (temporal.grid_dir)")
        self.grid_dir = str(grid_dir)

    def __repr__(self):
        return f"GridStore({self.grid_dir!r})"

    def path(self, m: int, n: int) -> str:
        return os.path.join(self.grid_dir, f'psd_{int(m)}_{int(n)}.npz')

    def exists(self, m: int, n: int) -> bool:
        return os.path.exists(self.path(m, n))

    def write(self, result: TemporalPSDResult) -> str:
        """Persist one mode; the file appears atomically."""
        os.makedirs(self.grid_dir, exist_ok=True)
        path = self.path(result.m, result.n)
        tmp = path + '.tmp'
        with open(tmp, 'wb') as f:
            np.savez(
                f,
                m=np.int64(result.m),
                n=np.int64(result.n),
                freq=result.freq,
                psd_ol=result.psd_ol,
                psd_noise=result.psd_noise,
                etf=result.etf,
                ntf=result.ntf,
                controller=np.array(result.controller.kind),
                gain=np.float64(result.controller.gain),
                coefficients=np.asarray(result.controller.coefficients, dtype=np.float64),
                variance=np.float64(result.variance),
                gain_ceiling=np.float64(result.gain_ceiling),
            )
        os.replace(tmp, path)
        return path

    def read(self, m: int, n: int) -> TemporalPSDResult:
        """Load one mode."""
        path = self.path(m, n)
        if not os.path.exists(path):
            raise FileNotFoundError(f"No PSD stored for mode ({m}, {n}) in {self.grid_dir}")

        with np.load(path) as data:
            kind = str(data['controller'])
            gain = float(data['gain'])
            if kind == SingleIntegrator.kind:
                controller = SingleIntegrator(gain)
            else:
                controller = LinearPredictor(tuple(data['coefficients']), gain)

            return TemporalPSDResult(
                m=int(data['m']),
                n=int(data['n']),
                freq=data['freq'],
                psd_ol=data['psd_ol'],
                psd_noise=data['psd_noise'],
                etf=data['etf'],
                ntf=data['ntf'],
                controller=controller,
                variance=float(data['variance']),
                gain_ceiling=float(data['gain_ceiling']),
            )

    def modes(self) -> List[Tuple[int, int]]:
        """Every stored mode, sorted by (m, n)."""
        if not os.path.isdir(self.grid_dir):
            return []
        found = []
        for name in os.listdir(self.grid_dir):
            match = _MODE_FILE.match(name)
            if match:
                found.append((int(match.group(1)), int(match.group(2))))
        return sorted(found)

    def write_params(self, params: Dict[str, Any]):
        os.makedirs(self.grid_dir, exist_ok=True)
        with open(os.path.join(self.grid_dir, self.PARAMS_FILE), 'w') as f:
            yaml.safe_dump(params, f, default_flow_style=False, sort_keys=False)

    def read_params(self) -> Dict[str, Any]:
        path = os.path.join(self.grid_dir, self.PARAMS_FILE)
        if not os.path.exists(path):
            raise PreconditionError(f"{path} not found; build the grid first")
        with open(path, 'r') as f:
            return yaml.safe_load(f) or {}

    def has_params(self) -> bool:
        return os.path.exists(os.path.join(self.grid_dir, self.PARAMS_FILE))

    def clear(self) -> int:
        """Delete every stored mode; returns how many were removed."""
        modes = self.modes()
        for m, n in modes:
            os.remove(self.path(m, n))
        return len(modes)
