"""
Physical models of the AO analysis.

- atmosphere: layered turbulence profile
- spatial_psd: von Kármán spectrum, scintillation and chromatic components
- wfs: wavefront sensor noise sensitivities
- ao_system: Fourier-mode error budget and Strehl ratio
- control: integrator / linear-predictor transfer functions and gain optimization
- temporal: frozen-flow temporal PSDs of spatial modes
- lifetime: speckle lifetime sampler
"""

from .atmosphere import (
    AtmosphereLayer,
    AtmosphereProfile,
    create_single_layer_atmosphere,
)

from .spatial_psd import (
    PSDComponent,
    SpatialPSDModel,
    von_karman_psd,
)

from .wfs import (
    WFSType,
    WFSModel,
    register_wfs,
    list_wfs,
)

from .ao_system import (
    AOSystemConfig,
    AOSystemModel,
    ErrorBudget,
    air_refractivity,
    units_scale,
)

from .control import (
    SingleIntegrator,
    LinearPredictor,
    GainOptimizer,
    regularize_coefficients,
)

from .temporal import (
    TemporalPSDEngine,
    TemporalPSDResult,
    frequency_grid,
    psd_variance,
)

from .lifetime import (
    mode_lifetime,
    sample_lifetime,
)

__all__ = [
    'AtmosphereLayer',
    'AtmosphereProfile',
    'create_single_layer_atmosphere',
    'PSDComponent',
    'SpatialPSDModel',
    'von_karman_psd',
    'WFSType',
    'WFSModel',
    'register_wfs',
    'list_wfs',
    'AOSystemConfig',
    'AOSystemModel',
    'ErrorBudget',
    'air_refractivity',
    'units_scale',
    'SingleIntegrator',
    'LinearPredictor',
    'GainOptimizer',
    'regularize_coefficients',
    'TemporalPSDEngine',
    'TemporalPSDResult',
    'frequency_grid',
    'psd_variance',
    'mode_lifetime',
    'sample_lifetime',
]
