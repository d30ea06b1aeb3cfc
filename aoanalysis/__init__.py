"""
aoanalysis: Fourier-mode performance analysis of adaptive optics systems
=========================================================================

Estimates the residual wavefront error of an AO system (measurement noise,
servo lag, fitting, scintillation and chromatic terms) mode by mode in the
spatial Fourier basis, and optimizes the closed loop of each mode from its
frozen-flow temporal PSD.

Package Structure
-----------------
- config: Dataclass configuration, model presets and override resolution
- physics: Atmosphere, spatial PSD, WFS, error budget, temporal PSD, control
- grid: Per-mode temporal PSD grid and its analysis
- routines: Table-producing analyses used by the command line
- utils: Numeric backend, joblib parallel map, logging

Quick Start
-----------
    from aoanalysis import Config

    cfg = Config.from_yaml('magaox.yaml')
    model = cfg.resolve().build_model()
    print(model.strehl())

Or run from command line:
    python -m aoanalysis error-budget --config magaox.yaml
"""

__version__ = '2.0.0'

# Re-export main interfaces
from .config import (
    Config,
    ResolvedConfig,
    load_config,
    save_config,
)
from .errors import AOAnalysisError, ConfigurationError, PreconditionError
from .physics import (
    AtmosphereProfile,
    AOSystemConfig,
    AOSystemModel,
    SpatialPSDModel,
    TemporalPSDEngine,
    WFSModel,
)
from .grid import GridCoordinator
from .utils.logging import get_logger

__all__ = [
    'Config',
    'ResolvedConfig',
    'load_config',
    'save_config',
    'AOAnalysisError',
    'ConfigurationError',
    'PreconditionError',
    'AtmosphereProfile',
    'AOSystemConfig',
    'AOSystemModel',
    'SpatialPSDModel',
    'TemporalPSDEngine',
    'WFSModel',
    'GridCoordinator',
    'get_logger',
]
