"""
Centralized configuration system.

Options are grouped in dataclass sections and loaded from YAML or JSON. A
loaded ``Config`` only records what the user asked for: every option left
unset falls back to the named model preset. ``Config.resolve()`` turns it
into the immutable values the physics consumes, applying the overrides in a
fixed order (see ``resolve_atmosphere``).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, asdict, fields, replace
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..errors import ConfigurationError
from ..physics.atmosphere import AtmosphereProfile
from ..physics.ao_system import AOSystemConfig, AOSystemModel
from ..physics.spatial_psd import SpatialPSDModel
from ..physics.wfs import WFSModel
from ..utils.compute import PRECISIONS
from ..utils.logging import get_logger


logger = get_logger(__name__)


# =============================================================================
# Atmosphere Configuration
# =============================================================================

@dataclass
class AtmosphereConfig:
    """
    Turbulence overrides. ``None`` keeps the preset value.

    ``lam_0``, when positive, becomes the reference wavelength of r0 with the
    turbulence itself unchanged. Layer Cn2 values are then absolute at lam_0
    and r_0 is given at lam_0.
    """

    lam_0: float = 0.0
    r_0: Optional[float] = None
    L_0: Optional[float] = None

    # Per-layer vectors
    layer_Cn2: Optional[List[float]] = None
    layer_v_wind: Optional[List[float]] = None
    layer_dir: Optional[List[float]] = None   # radians
    layer_z: Optional[List[float]] = None     # meters

    # Mean rescales, applied last
    v_wind: Optional[float] = None
    z_mean: Optional[float] = None


# =============================================================================
# Spatial PSD Configuration
# =============================================================================

@dataclass
class PSDConfig:
    """Spatial PSD options."""

    sub_tip_tilt: Optional[bool] = None
    scintillation: Optional[bool] = None
    component: Optional[str] = None  # phase, amplitude, dispPhase, dispAmplitude


# =============================================================================
# AO System Configuration
# =============================================================================

@dataclass
class SystemConfig:
    """AO system overrides. ``None`` keeps the preset value."""

    wfs: Optional[str] = None  # idealWFS, unmodPyWFS, asympModPyWFS
    modulation_radius: Optional[float] = None

    # Aperture and deformable mirror
    D: Optional[float] = None
    d_min: Optional[float] = None
    optd: Optional[bool] = None
    optd_delta: Optional[float] = None

    # Wavefront sensor detector
    F0: Optional[float] = None
    lam_wfs: Optional[float] = None
    npix_wfs: Optional[float] = None
    ron_wfs: Optional[float] = None
    bin_npix: Optional[bool] = None
    Fbg: Optional[float] = None

    # Timing
    tau_wfs: Optional[float] = None
    min_tau_wfs: Optional[float] = None
    delta_tau: Optional[float] = None
    opt_tau: Optional[bool] = None

    # Science
    lam_sci: Optional[float] = None
    zeta: Optional[float] = None  # radians
    fit_mn_max: Optional[int] = None
    ncp_wfe: Optional[float] = None
    ncp_alpha: Optional[float] = None
    circular_limit: Optional[bool] = None

    # Guide star
    star_mag: Optional[float] = None
    star_mags: List[float] = field(default_factory=list)


# =============================================================================
# Temporal Analysis Configuration
# =============================================================================

@dataclass
class TemporalConfig:
    """Temporal PSD and grid options."""

    fmax: float = 0.0   # 0 = highest wind peak of the mode
    dfreq: float = 0.1  # Hz

    # Single-mode analysis
    k_m: int = 1
    k_n: int = 0

    # Grid
    grid_dir: str = ''
    sub_dir: str = ''
    lp_nc: int = 0

    # Speckle lifetimes
    uncontrolled_lifetimes: bool = False
    lifetime_trials: int = 0
    write_psds: bool = False

    n_jobs: Optional[int] = None  # None = auto-detect
    seed: int = 0

    def __post_init__(self):
        """Validate configuration."""
        assert self.lp_nc >= 0, "lp_nc must be non-negative"
        assert self.lifetime_trials >= 0, "lifetime_trials must be non-negative"


# =============================================================================
# Output Configuration
# =============================================================================

@dataclass
class OutputConfig:
    """Result formatting and setup dump."""

    wfe_units: str = 'rad'  # rad or nm
    mn_map: int = 50
    setup_out_file: str = 'aoanalysisSetup.yaml'
    dump_setup: bool = True


@dataclass
class ComputeConfig:
    """Numeric backend."""

    precision: str = 'float64'

    def __post_init__(self):
        if self.precision not in PRECISIONS:
            raise ConfigurationError(
                f"Unknown precision: {self.precision}. Available: {list(PRECISIONS.keys())}"
            )


# =============================================================================
# Resolved (immutable) settings
# =============================================================================

@dataclass(frozen=True)
class TemporalSettings:
    """Temporal options after resolution."""
    fmax: float = 0.0
    dfreq: float = 0.1
    k_m: int = 1
    k_n: int = 0
    grid_dir: str = ''
    sub_dir: str = ''
    lp_nc: int = 0
    uncontrolled_lifetimes: bool = False
    lifetime_trials: int = 0
    write_psds: bool = False
    n_jobs: Optional[int] = None
    seed: int = 0


@dataclass(frozen=True)
class ResolvedConfig:
    """
    Everything a routine needs, frozen.

    Attributes:
        model: Name of the preset the values started from
        atmosphere: Turbulence profile
        psd: Spatial PSD options
        system: AO system parameters at ``system.star_mag``
        temporal: Temporal analysis options
        output: Output options
        star_mags: Magnitude sweep; empty for a single magnitude
        precision: Numeric precision name
    """
    model: str
    atmosphere: AtmosphereProfile
    psd: SpatialPSDModel
    system: AOSystemConfig
    temporal: TemporalSettings
    output: OutputConfig
    star_mags: Tuple[float, ...] = ()
    precision: str = 'float64'

    def build_model(self, star_mag: Optional[float] = None) -> AOSystemModel:
        """AO system model, optionally at another guide star magnitude."""
        system = self.system if star_mag is None else self.system.with_star_mag(star_mag)
        return AOSystemModel(system, self.atmosphere, self.psd)

    def setup_summary(self, model: Optional[AOSystemModel] = None) -> Dict[str, Any]:
        """Plain dict describing the resolved system, including derived values."""
        model = model or self.build_model()
        atm = self.atmosphere
        lam_sci = self.system.lam_sci

        return {
            'model': self.model,
            'atmosphere': {
                'r_0': atm.r0,
                'lam_0': atm.lam_0,
                'r_0_sci': atm.r0_at_wavelength(lam_sci),
                'L_0': atm.L0,
                'v_wind': atm.v_wind,
                'z_mean': atm.z_mean,
                'tau_0': atm.coherence_time(lam_sci),
                'theta_0': atm.isoplanatic_angle(lam_sci),
                'layer_Cn2': [float(c) for c in atm.weights],
                'layer_z': [float(z) for z in atm.altitudes],
                'layer_v_wind': [float(v) for v in atm.wind_speeds],
                'layer_dir': [float(d) for d in atm.wind_directions],
            },
            'psd': {
                'sub_tip_tilt': self.psd.sub_tip_tilt,
                'scintillation': self.psd.scintillation,
                'component': self.psd.component.value,
            },
            'system': self.system.to_dict(),
            'derived': {
                'mn_con_max': self.system.mn_con_max,
                'd_opt': float(model.d_opt),
                'tau_opt': float(model.tau_opt),
                'strehl': float(model.strehl()),
            },
            'temporal': asdict(self.temporal),
            'star_mags': list(self.star_mags),
            'precision': self.precision,
        }

    def dump_setup(self, path: Optional[str] = None, model: Optional[AOSystemModel] = None) -> str:
        """Write the setup summary as YAML; returns the path written."""
        path = path or self.output.setup_out_file
        with open(path, 'w') as f:
            yaml.safe_dump(self.setup_summary(model), f, default_flow_style=False, sort_keys=False)
        logger.info(f"Setup written to {path}")
        return path


# =============================================================================
# Model Presets
# =============================================================================

# Las Campanas seven-layer profile (relative Cn2, altitude in m, wind in m/s)
_LCO_LAYERS = {
    'layer_Cn2': [0.42, 0.03, 0.06, 0.16, 0.11, 0.10, 0.12],
    'layer_z': [250.0, 500.0, 1000.0, 2000.0, 4000.0, 8000.0, 16000.0],
    'layer_v_wind': [10.0, 10.0, 20.0, 20.0, 25.0, 30.0, 25.0],
    'layer_dir': [0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0],
}

# Mauna Kea seven-layer profile
_MK_LAYERS = {
    'layer_Cn2': [0.646, 0.078, 0.119, 0.035, 0.025, 0.080, 0.017],
    'layer_z': [0.0, 500.0, 1000.0, 2000.0, 4000.0, 8000.0, 16000.0],
    'layer_v_wind': [6.6, 5.9, 5.1, 4.5, 5.1, 8.3, 12.0],
    'layer_dir': [0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0],
}

MODEL_PRESETS: Dict[str, Dict[str, Dict[str, Any]]] = {
    'Guyon2005': {
        'atmosphere': dict(r0=0.2, L0=25.0, lam_0=0.5e-6, **_MK_LAYERS),
        'psd': {'sub_tip_tilt': False, 'scintillation': False, 'component': 'phase'},
        'system': {
            'wfs': 'idealWFS',
            'D': 8.0,
            'd_min': 8.0 / 64,
            'optd': True,
            'F0': 7.6e11,
            'lam_wfs': 0.8e-6,
            'npix_wfs': 0,
            'ron_wfs': 0.0,
            'Fbg': 0.0,
            'tau_wfs': 1e-3,
            'min_tau_wfs': 1e-4,
            'delta_tau': 0.0,
            'opt_tau': True,
            'lam_sci': 1.6e-6,
            'fit_mn_max': 100,
        },
    },
    'MagAOX': {
        'atmosphere': dict(r0=0.16, L0=25.0, lam_0=0.5e-6, **_LCO_LAYERS),
        'psd': {'sub_tip_tilt': False, 'scintillation': True, 'component': 'phase'},
        'system': {
            'wfs': 'unmodPyWFS',
            'D': 6.5,
            'd_min': 6.5 / 48,
            'optd': False,
            'F0': 4.2e10,
            'lam_wfs': 0.791e-6,
            'npix_wfs': 9024,
            'ron_wfs': 0.57,
            'bin_npix': True,
            'Fbg': 0.22,
            'tau_wfs': 1.0 / 3622,
            'min_tau_wfs': 1.0 / 3622,
            'delta_tau': 0.5 / 3622,
            'opt_tau': True,
            'lam_sci': 0.656e-6,
            'fit_mn_max': 24,
        },
    },
    'GMagAOX': {
        'atmosphere': dict(r0=0.16, L0=25.0, lam_0=0.5e-6, **_LCO_LAYERS),
        'psd': {'sub_tip_tilt': False, 'scintillation': True, 'component': 'phase'},
        'system': {
            'wfs': 'unmodPyWFS',
            'D': 25.4,
            'd_min': 25.4 / 150,
            'optd': False,
            'F0': 4.2e10 * (25.4 / 6.5) ** 2,
            'lam_wfs': 0.8e-6,
            'npix_wfs': 70686,
            'ron_wfs': 0.57,
            'bin_npix': True,
            'Fbg': 0.22,
            'tau_wfs': 1.0 / 4000,
            'min_tau_wfs': 1.0 / 4000,
            'delta_tau': 0.5 / 4000,
            'opt_tau': True,
            'lam_sci': 0.8e-6,
            'fit_mn_max': 75,
        },
    },
}

DEFAULT_MODEL = 'MagAOX'


def list_models() -> List[str]:
    return list(MODEL_PRESETS.keys())


def get_preset(name: str) -> Dict[str, Dict[str, Any]]:
    """Raw preset values; unknown names are a configuration error."""
    if name not in MODEL_PRESETS:
        raise ConfigurationError(f"Unknown model: {name}. Available: {list_models()}")
    return MODEL_PRESETS[name]


def preset_atmosphere(name: str) -> AtmosphereProfile:
    values = get_preset(name)['atmosphere']
    return AtmosphereProfile.from_vectors(
        values['layer_Cn2'],
        values['layer_z'],
        values['layer_v_wind'],
        values['layer_dir'],
        r0=values['r0'],
        L0=values['L0'],
        lam_0=values['lam_0'],
    )


# =============================================================================
# Resolution
# =============================================================================

def resolve_atmosphere(base: AtmosphereProfile, cfg: AtmosphereConfig) -> AtmosphereProfile:
    """
    Apply the atmosphere overrides to a preset profile.

    Order: lam_0 → layer_Cn2 (absolute when lam_0 > 0) → r_0 → L_0 → layer winds →
    layer directions → layer heights → v_wind → z_mean. So r_0 wins over
    the strength implied by absolute Cn2, and the mean rescales act on the
    final layer vectors.
    """
    atm = base

    # A new layer count replaces the whole profile; every vector must then be given
    vectors = {
        'layer_Cn2': cfg.layer_Cn2,
        'layer_z': cfg.layer_z,
        'layer_v_wind': cfg.layer_v_wind,
        'layer_dir': cfg.layer_dir,
    }
    if any(v is not None and len(v) != atm.n_layers for v in vectors.values()):
        atm = AtmosphereProfile.from_vectors(
            cfg.layer_Cn2 if cfg.layer_Cn2 is not None else atm.weights,
            cfg.layer_z if cfg.layer_z is not None else atm.altitudes,
            cfg.layer_v_wind if cfg.layer_v_wind is not None else atm.wind_speeds,
            cfg.layer_dir if cfg.layer_dir is not None else atm.wind_directions,
            r0=atm.r0,
            L0=atm.L0,
            lam_0=atm.lam_0,
        )

    lam_0 = cfg.lam_0 or 0.0

    if lam_0 > 0:
        atm = atm.with_lam_0(lam_0)
    if cfg.layer_Cn2 is not None:
        atm = atm.with_layer_Cn2(cfg.layer_Cn2, lam_0)
    if cfg.r_0 is not None:
        atm = atm.with_r0(cfg.r_0, lam_0)
    if cfg.L_0 is not None:
        atm = atm.with_L0(cfg.L_0)
    if cfg.layer_v_wind is not None:
        atm = atm.with_layer_v_wind(cfg.layer_v_wind)
    if cfg.layer_dir is not None:
        atm = atm.with_layer_dir(cfg.layer_dir)
    if cfg.layer_z is not None:
        atm = atm.with_layer_z(cfg.layer_z)
    if cfg.v_wind is not None:
        atm = atm.with_v_wind(cfg.v_wind)
    if cfg.z_mean is not None:
        atm = atm.with_z_mean(cfg.z_mean)

    return atm


def _overrides(section) -> Dict[str, Any]:
    return {k: v for k, v in asdict(section).items() if v is not None}


def resolve_psd(base: Dict[str, Any], cfg: PSDConfig) -> SpatialPSDModel:
    values = dict(base)
    values.update(_overrides(cfg))
    return SpatialPSDModel(**values)


def resolve_system(base: Dict[str, Any], cfg: SystemConfig) -> AOSystemConfig:
    """Preset system values, overridden by every option set in ``cfg``."""
    values = dict(base)
    values.update(_overrides(cfg))
    values.pop('star_mags', None)

    wfs_kwargs = {}
    if 'modulation_radius' in values:
        wfs_kwargs['modulation_radius'] = values.pop('modulation_radius')
    wfs = WFSModel.from_name(values.pop('wfs', 'idealWFS'), **wfs_kwargs)

    return AOSystemConfig(wfs=wfs, **values)


# =============================================================================
# Master Configuration
# =============================================================================

_SECTIONS = {
    'atmosphere': AtmosphereConfig,
    'psd': PSDConfig,
    'system': SystemConfig,
    'temporal': TemporalConfig,
    'output': OutputConfig,
    'compute': ComputeConfig,
}


def _split_known(cls, data: Dict[str, Any], prefix: str) -> Tuple[Dict[str, Any], List[str]]:
    known = {f.name for f in fields(cls)}
    kept = {k: v for k, v in data.items() if k in known}
    unknown = [f'{prefix}.{k}' for k in data if k not in known]
    return kept, unknown


# Options whose values stay strings even when they look numeric
_STRING_OPTIONS = {'wfs', 'component', 'grid_dir', 'sub_dir', 'wfe_units', 'setup_out_file', 'precision'}


def _as_number(value: Any) -> Any:
    # YAML 1.1 reads exponent-only numbers such as 1e-3 as strings
    if isinstance(value, list):
        return [_as_number(v) for v in value]
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return value
    return value


def _parse_value(name: str, text: str) -> Any:
    """Parse a command-line option value as YAML."""
    if name in _STRING_OPTIONS or name == 'model':
        return text.strip()
    if not text.strip():
        return ''
    return _as_number(yaml.safe_load(text))


@dataclass
class Config:
    """Master configuration combining all sections."""

    # Preset the options start from
    model: str = DEFAULT_MODEL

    atmosphere: AtmosphereConfig = field(default_factory=AtmosphereConfig)
    psd: PSDConfig = field(default_factory=PSDConfig)
    system: SystemConfig = field(default_factory=SystemConfig)
    temporal: TemporalConfig = field(default_factory=TemporalConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    compute: ComputeConfig = field(default_factory=ComputeConfig)

    # Keys found in the input that match no option
    unknown_keys: List[str] = field(default_factory=list, repr=False)

    @classmethod
    def from_yaml(cls, path: str) -> 'Config':
        """Load configuration from YAML file."""
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_json(cls, path: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """
        Create config from a nested dictionary.

        Unrecognized keys are reported as warnings and kept in
        ``unknown_keys``; they never abort loading.
        """
        data = dict(data)
        unknown = []
        sections = {}
        for name, section_cls in _SECTIONS.items():
            section_data = data.pop(name, None) or {}
            kept, extra = _split_known(section_cls, section_data, name)
            kept = {k: v if k in _STRING_OPTIONS else _as_number(v) for k, v in kept.items()}
            sections[name] = section_cls(**kept)
            unknown.extend(extra)

        model = data.pop('model', None) or DEFAULT_MODEL
        data.pop('unknown_keys', None)
        unknown.extend(data.keys())

        for key in unknown:
            logger.warning(f"Unrecognized config key ignored: {key}")

        return cls(model=model, unknown_keys=unknown, **sections)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        d = asdict(self)
        d.pop('unknown_keys')
        return d

    def to_yaml(self, path: str):
        """Save configuration to YAML file."""
        with open(path, 'w') as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def to_json(self, path: str):
        """Save configuration to JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def set_option(self, key: str, value: Any) -> bool:
        """
        Set one option from a dotted ``section.name`` key.

        String values are parsed as YAML, so ``"[1, 2]"`` becomes a list and
        ``"1e-3"`` a float. Returns False (with a warning) for unknown keys.
        """
        section_name, _, name = key.partition('.')
        if isinstance(value, str):
            value = _parse_value(name or key, value)

        if key == 'model':
            self.model = value
            return True

        section = getattr(self, section_name, None) if section_name in _SECTIONS else None
        if section is None or name not in {f.name for f in fields(section)}:
            logger.warning(f"Unrecognized config key ignored: {key}")
            self.unknown_keys.append(key)
            return False

        setattr(self, section_name, replace(section, **{name: value}))
        return True

    def resolve(self) -> ResolvedConfig:
        """Freeze the configuration: preset first, then every explicit option."""
        preset = get_preset(self.model)

        atmosphere = resolve_atmosphere(preset_atmosphere(self.model), self.atmosphere)
        psd = resolve_psd(preset['psd'], self.psd)
        system = resolve_system(preset['system'], self.system)
        temporal = TemporalSettings(**asdict(self.temporal))

        units = self.output.wfe_units
        if units not in ('rad', 'nm'):
            raise ConfigurationError(f"Unknown wavefront error units: {units}. Available: ['rad', 'nm']")

        return ResolvedConfig(
            model=self.model,
            atmosphere=atmosphere,
            psd=psd,
            system=system,
            temporal=temporal,
            output=replace(self.output),
            star_mags=tuple(float(m) for m in self.system.star_mags),
            precision=self.compute.precision,
        )


# =============================================================================
# Convenience Functions
# =============================================================================

def load_config(path: str) -> Config:
    """Load configuration from file (auto-detects format)."""
    path = str(path)
    if path.endswith('.yaml') or path.endswith('.yml'):
        return Config.from_yaml(path)
    elif path.endswith('.json'):
        return Config.from_json(path)
    else:
        raise ConfigurationError(f"Unknown config format: {path}")


def save_config(config: Config, path: str):
    """Save configuration to file (auto-detects format)."""
    path = str(path)
    if path.endswith('.yaml') or path.endswith('.yml'):
        config.to_yaml(path)
    elif path.endswith('.json'):
        config.to_json(path)
    else:
        raise ConfigurationError(f"Unknown config format: {path}")


def get_default_config() -> Config:
    """Get default configuration."""
    return Config()


def apply_preset(config: Config, preset_name: str) -> Config:
    """Select a model preset; explicit options in ``config`` still win."""
    get_preset(preset_name)
    config.model = preset_name
    return config
