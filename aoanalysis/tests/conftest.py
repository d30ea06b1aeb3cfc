"""
Test configuration for aoanalysis.
"""

import pytest
import sys
import os

# Add package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))


@pytest.fixture
def backend():
    """Fixture providing compute backend."""
    from aoanalysis.utils.compute import init_backend
    return init_backend(precision='float64', n_jobs=1)


@pytest.fixture
def atmosphere():
    """Single layer, r0 = 15 cm at 0.5 µm, 10 m/s wind."""
    from aoanalysis.physics.atmosphere import create_single_layer_atmosphere
    return create_single_layer_atmosphere(r0=0.15, wind_speed=10.0, lam_0=0.5e-6)


@pytest.fixture
def layered_atmosphere():
    """Three layers with different heights, winds and directions."""
    from aoanalysis.physics.atmosphere import AtmosphereProfile
    return AtmosphereProfile.from_vectors(
        Cn2=[0.5, 0.3, 0.2],
        altitudes=[0.0, 5000.0, 12000.0],
        wind_speeds=[5.0, 15.0, 30.0],
        wind_directions=[0.0, 0.5, 2.0],
        r0=0.15,
    )


@pytest.fixture
def system_config():
    """8 m telescope with an ideal WFS on a magnitude 8 star."""
    from aoanalysis.physics.ao_system import AOSystemConfig
    from aoanalysis.physics.wfs import WFSModel
    return AOSystemConfig(
        D=8.0,
        d_min=0.25,
        tau_wfs=1e-3,
        min_tau_wfs=1e-3,
        delta_tau=0.0,
        fit_mn_max=20,
        star_mag=8.0,
        wfs=WFSModel(),
    )


@pytest.fixture
def model(backend, system_config, atmosphere):
    """AO system model of the canonical 8 m system."""
    from aoanalysis.physics.ao_system import AOSystemModel
    return AOSystemModel(system_config, atmosphere)


@pytest.fixture
def small_model(backend, atmosphere):
    """Coarse system for grid tests: 3 cycles/pupil, 1 kHz loop."""
    from aoanalysis.physics.ao_system import AOSystemConfig, AOSystemModel
    config = AOSystemConfig(
        D=8.0,
        d_min=8.0 / 4,
        tau_wfs=1e-3,
        min_tau_wfs=1e-3,
        delta_tau=0.0,
        fit_mn_max=3,
        star_mag=8.0,
    )
    return AOSystemModel(config, atmosphere)


@pytest.fixture
def grid_dir(tmp_path):
    """Temporary grid directory."""
    return str(tmp_path / 'grid')


@pytest.fixture
def e2e_config():
    """Canonical 8 m / single layer configuration on top of the default preset."""
    from aoanalysis.config import Config
    config = Config()
    for key, value in {
        'system.D': 8.0,
        'system.fit_mn_max': 20,
        'system.wfs': 'idealWFS',
        'system.star_mag': 8.0,
        'system.min_tau_wfs': 1e-3,
        'system.tau_wfs': 1e-3,
        'atmosphere.lam_0': 0.5e-6,
        'atmosphere.r_0': 0.15,
        'atmosphere.layer_Cn2': [1.0],
        'atmosphere.layer_z': [0.0],
        'atmosphere.layer_v_wind': [10.0],
        'atmosphere.layer_dir': [0.0],
        'temporal.dfreq': 0.1,
        'temporal.k_m': 1,
        'temporal.k_n': 0,
    }.items():
        config.set_option(key, value)
    return config
