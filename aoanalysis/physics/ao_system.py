"""
Fourier-mode AO error budget.

Following Guyon (2005), the residual wavefront after correction is expanded
in spatial Fourier modes (m, n) of the aperture. Modes inside the actuator
cutoff D/(2d) are controlled; every other mode keeps its open-loop variance.
For each mode the model evaluates:

- C0  uncorrected phase (modes beyond the control radius)
- C1  uncorrected amplitude (scintillation, all modes)
- C2  residual phase of controlled modes: measurement noise + time delay
- C4  chromatic scintillation OPD (sensing and science wavelength differ)
- C6  chromatic index (refractivity of air differs between wavelengths)
- C7  dispersive anisoplanatism (sensing and science beams separate with
      altitude at non-zero zenith distance)

and sums them into the error budget. Strehl ratio follows from the Maréchal
approximation.

``AOSystemConfig`` is immutable; ``AOSystemModel`` only derives quantities
from it. A star-magnitude sweep builds one model per magnitude with
``with_star_mag``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace, asdict
from functools import cached_property
from typing import Callable, Dict, Optional, Tuple

import numpy as np

from ..errors import ConfigurationError, PreconditionError
from ..utils.compute import get_dtype
from ..utils.logging import get_logger
from .atmosphere import AtmosphereProfile
from .spatial_psd import (
    PSDComponent,
    SpatialPSDModel,
    VON_KARMAN_CONSTANT,
    mode_frequency,
)
from .wfs import WFSModel


logger = get_logger(__name__)

# Integration-time sweep covers this many multiples of the minimum
TAU_SWEEP_STEPS = 100

# Hard stop for the actuator-spacing sweep
MAX_SPACING_CANDIDATES = 10000


# =============================================================================
# Air Refractivity
# =============================================================================

def air_refractivity(wavelength: float) -> float:
    """
    Refractivity n - 1 of standard air (Edlén 1953 dispersion formula).

    Args:
        wavelength: Vacuum wavelength (meters)
    """
    sigma2 = (1e-6 / wavelength) ** 2  # inverse wavenumber squared in µm^-2
    return 1e-6 * (64.328 + 29498.1 / (146.0 - sigma2) + 255.4 / (41.0 - sigma2))


def units_scale(units: str, lam_sci: float) -> float:
    """
    Multiplier converting RMS wavefront error from radians to ``units``.

    Only a post-multiplication; variances are always computed in rad².
    """
    if units == 'rad':
        return 1.0
    if units == 'nm':
        return lam_sci / (2 * math.pi) / 1e-9
    raise ConfigurationError(f"Unknown wavefront error units: {units}. Available: ['rad', 'nm']")


# =============================================================================
# AO System Configuration
# =============================================================================

@dataclass(frozen=True)
class AOSystemConfig:
    """
    Adaptive optics system parameters.

    Attributes:
        D: Telescope diameter (meters)
        d_min: Minimum actuator spacing (meters)
        optd: Optimize the actuator spacing
        optd_delta: Fractional spacing step used by the optimization
        F0: Photon flux of a zeroth-magnitude star at the WFS (photons/s)
        lam_wfs: WFS wavelength (meters)
        npix_wfs: Number of WFS pixels at d_min
        ron_wfs: WFS readout noise (electrons/pixel)
        bin_npix: Scale the pixel count with the actuator spacing
        Fbg: Background flux per WFS pixel (photons/s)
        tau_wfs: Nominal WFS integration time (seconds)
        min_tau_wfs: Minimum integration time; sets the loop rate of the
            temporal analysis (seconds)
        delta_tau: Loop delay added to the integration time (seconds)
        opt_tau: Optimize the integration time
        lam_sci: Science wavelength (meters)
        zeta: Zenith distance (radians)
        fit_mn_max: Spatial frequency cutoff of the analysis (cycles/pupil)
        ncp_wfe: Non-common-path wavefront error variance (rad²)
        ncp_alpha: Power-law index of the NCP spectrum
        star_mag: Guide star magnitude
        circular_limit: Use a circular instead of a square mode domain
        wfs: Wavefront sensor
    """
    D: float = 6.5
    d_min: float = 6.5 / 48
    optd: bool = False
    optd_delta: float = 1.0
    F0: float = 4.2e10
    lam_wfs: float = 0.791e-6
    npix_wfs: float = 9024
    ron_wfs: float = 0.57
    bin_npix: bool = True
    Fbg: float = 0.22
    tau_wfs: float = 1.0 / 3622
    min_tau_wfs: float = 1.0 / 3622
    delta_tau: float = 0.5 / 3622
    opt_tau: bool = True
    lam_sci: float = 0.656e-6
    zeta: float = 0.0
    fit_mn_max: int = 24
    ncp_wfe: float = 0.0
    ncp_alpha: float = 2.0
    star_mag: float = 0.0
    circular_limit: bool = False
    wfs: WFSModel = field(default_factory=WFSModel)

    def __post_init__(self):
        """Validate physical parameters."""
        positive = ['D', 'd_min', 'optd_delta', 'F0', 'lam_wfs', 'lam_sci', 'tau_wfs']
        for name in positive:
            if not getattr(self, name) > 0:
                raise ConfigurationError(f"{name} must be positive, got {getattr(self, name)}")

        non_negative = ['npix_wfs', 'ron_wfs', 'Fbg', 'min_tau_wfs', 'delta_tau', 'ncp_wfe', 'fit_mn_max']
        for name in non_negative:
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be non-negative, got {getattr(self, name)}")

        if self.D / (2 * self.d_min) < 1:
            raise ConfigurationError(
                f"Actuator spacing d_min={self.d_min} controls no mode on a D={self.D} aperture"
            )
        if not 0 <= self.zeta < math.pi / 2:
            raise ConfigurationError(f"Zenith distance must be in [0, π/2) radians, got {self.zeta}")

        object.__setattr__(self, 'fit_mn_max', int(self.fit_mn_max))

    @property
    def sec_zeta(self) -> float:
        """Airmass."""
        return 1.0 / math.cos(self.zeta)

    @property
    def mn_con_max(self) -> float:
        """Control radius at the minimum actuator spacing (cycles/pupil)."""
        return self.D / (2 * self.d_min)

    def with_star_mag(self, star_mag: float) -> 'AOSystemConfig':
        return replace(self, star_mag=float(star_mag))

    def to_dict(self) -> Dict:
        d = asdict(self)
        d['wfs'] = self.wfs.name
        d['modulation_radius'] = self.wfs.modulation_radius
        return d


# =============================================================================
# Error Budget
# =============================================================================

@dataclass(frozen=True)
class ErrorBudget:
    """
    Residual variance contributions (rad² at the science wavelength).

    ``d`` and ``tau`` record the actuator spacing and integration time the
    budget was evaluated at.
    """
    measurement: float
    time_delay: float
    fitting: float
    ncp: float
    chromatic_scintillation_opd: float
    chromatic_index: float
    dispersive_anisoplanatism_opd: float
    d: float = 0.0
    tau: float = 0.0

    TERMS = (
        'measurement',
        'time_delay',
        'fitting',
        'ncp',
        'chromatic_scintillation_opd',
        'chromatic_index',
        'dispersive_anisoplanatism_opd',
    )

    @property
    def total(self) -> float:
        """Total residual variance (rad²)."""
        return float(sum(getattr(self, name) for name in self.TERMS))

    @property
    def strehl(self) -> float:
        """Maréchal approximation: S = exp(-σ²)."""
        return math.exp(-self.total)

    def as_dict(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in self.TERMS}

    def rms(self, scale: float = 1.0) -> Dict[str, float]:
        """Square roots of the variances, multiplied by ``scale``."""
        return {name: math.sqrt(value) * scale for name, value in self.as_dict().items()}


# =============================================================================
# Mode domain helpers
# =============================================================================

def mode_indices(mn_max: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Integer mode grid covering [-mn_max, mn_max]².

    Returns:
        (M, N) arrays indexed [m + mn_max, n + mn_max]
    """
    r = np.arange(-mn_max, mn_max + 1)
    M, N = np.meshgrid(r, r, indexing='ij')
    return M, N


def in_domain(m, n, limit: float, circular: bool = False):
    """Mask of modes inside the square or circular domain of radius ``limit``."""
    m = np.asarray(m)
    n = np.asarray(n)
    if circular:
        return m**2 + n**2 <= limit**2
    return (np.abs(m) <= limit) & (np.abs(n) <= limit)


# =============================================================================
# AO System Model
# =============================================================================

class AOSystemModel:
    """
    Error budget of an AO system observing through an atmosphere.

    Every per-mode method takes integer arrays (m, n) and returns an array of
    the same shape. Methods taking ``d`` or ``tau`` default to the optimized
    values (or the nominal ones when optimization is off).
    """

    def __init__(
        self,
        config: AOSystemConfig,
        atmosphere: AtmosphereProfile,
        psd: Optional[SpatialPSDModel] = None,
    ):
        self.config = config
        self.atmosphere = atmosphere
        self.psd = psd or SpatialPSDModel()

    def with_star_mag(self, star_mag: float) -> 'AOSystemModel':
        """Model for the same system observing a star of another magnitude."""
        return AOSystemModel(self.config.with_star_mag(star_mag), self.atmosphere, self.psd)

    def __repr__(self):
        return (f"AOSystemModel(D={self.config.D}, d_min={self.config.d_min}, "
                f"wfs={self.config.wfs.name}, star_mag={self.config.star_mag})")

    # -------------------------------------------------------------------------
    # Geometry
    # -------------------------------------------------------------------------

    @property
    def fit_mn_max(self) -> int:
        """Fitting cutoff; per-mode sums need it to be positive."""
        if self.config.fit_mn_max <= 0:
            raise PreconditionError("fit_mn_max must be > 0 to define the spatial frequency domain")
        return self.config.fit_mn_max

    def mn_con(self, d: Optional[float] = None) -> float:
        """Control radius D/(2d) in cycles/pupil."""
        d = self.d_opt if d is None else d
        return self.config.D / (2 * d)

    def controlled(self, m, n, d: Optional[float] = None):
        """Mask of modes corrected by the DM at actuator spacing ``d``."""
        m = np.asarray(m)
        n = np.asarray(n)
        inside = in_domain(m, n, self.mn_con(d), self.config.circular_limit)
        return inside & ((m != 0) | (n != 0))

    def in_fitting_domain(self, m, n):
        m = np.asarray(m)
        n = np.asarray(n)
        inside = in_domain(m, n, self.fit_mn_max, self.config.circular_limit)
        return inside & ((m != 0) | (n != 0))

    @cached_property
    def _fit_grid(self):
        M, N = mode_indices(self.fit_mn_max)
        return M, N, self.in_fitting_domain(M, N)

    def _operating_point(self, d: Optional[float], tau: Optional[float]) -> Tuple[float, float]:
        """Fill in the spacing and integration time a caller left unset."""
        if d is None:
            d = self.d_opt
        if tau is None:
            tau = self.tau_opt if d == self.d_opt else self.tau_for(d)
        return d, tau

    # -------------------------------------------------------------------------
    # Open-loop turbulence
    # -------------------------------------------------------------------------

    def variance(self, m, n, component: Optional[PSDComponent] = None):
        """Open-loop variance of mode(s) (m, n) for a PSD component."""
        cfg = self.config
        return self.psd.mode_variance(
            self.atmosphere, m, n, cfg.D, cfg.lam_sci, cfg.lam_wfs,
            cfg.sec_zeta, component,
        )

    # -------------------------------------------------------------------------
    # Wavefront sensing
    # -------------------------------------------------------------------------

    @property
    def photon_flux(self) -> float:
        """Guide star photon flux at the WFS, F0·10^(-0.4 mag) (photons/s)."""
        return self.config.F0 * 10 ** (-0.4 * self.config.star_mag)

    def npix(self, d: Optional[float] = None) -> float:
        """WFS pixel count, binned with the actuator spacing when enabled."""
        cfg = self.config
        if not cfg.bin_npix:
            return cfg.npix_wfs
        d = self.d_opt if d is None else d
        return cfg.npix_wfs * (cfg.d_min / d) ** 2

    def snr2(self, tau: float, d: Optional[float] = None) -> float:
        """
        Squared signal-to-noise ratio of one WFS frame.

        SNR² = (F τ)² / ((F + npix F_bg) τ + npix ron²)
        """
        cfg = self.config
        F = self.photon_flux
        npix = self.npix(d)
        signal = F * tau
        noise = (F + npix * cfg.Fbg) * tau + npix * cfg.ron_wfs**2
        if noise <= 0:
            return math.inf
        return signal**2 / noise

    def measurement_variance(self, m, n, tau: Optional[float] = None, d: Optional[float] = None):
        """Noise variance propagated into each controlled mode."""
        cfg = self.config
        d, tau = self._operating_point(d, tau)
        beta = cfg.wfs.beta_p(m, n)
        var = beta**2 / self.snr2(tau, d) * (cfg.lam_wfs / cfg.lam_sci) ** 2
        return np.where(self.controlled(m, n, d), var, 0.0)

    def time_delay_variance(self, m, n, tau: Optional[float] = None, d: Optional[float] = None):
        """
        Frozen-flow lag error of each controlled mode.

        min(var0, var0·(2π|k| v̄ (τ + Δτ))²)
        """
        cfg = self.config
        d, tau = self._operating_point(d, tau)
        var0 = self.variance(m, n, PSDComponent.PHASE)
        k = mode_frequency(m, n, cfg.D)
        lag = (2 * math.pi * k * self.atmosphere.v_wind * (tau + cfg.delta_tau)) ** 2
        return np.where(self.controlled(m, n, d), np.minimum(var0, var0 * lag), 0.0)

    def controlled_residual(self, m, n, tau: Optional[float] = None, d: Optional[float] = None):
        """
        Measurement and time-delay variance of each controlled mode, capped so
        their sum never exceeds the open-loop phase variance of the mode.

        When the cap applies both parts are scaled by the same factor.

        Returns:
            Tuple (measurement, time_delay) of per-mode variances.
        """
        d, tau = self._operating_point(d, tau)
        meas = self.measurement_variance(m, n, tau, d)
        lag = self.time_delay_variance(m, n, tau, d)
        var0 = self.variance(m, n, PSDComponent.PHASE)
        raw = meas + lag
        scale = np.where(raw > var0, var0 / np.where(raw > 0, raw, 1.0), 1.0)
        return meas * scale, lag * scale

    # -------------------------------------------------------------------------
    # Per-mode error terms
    # -------------------------------------------------------------------------

    def uncorrected_phase(self, m, n, d=None, tau=None):
        """C0: phase variance of modes the DM does not correct."""
        var0 = self.variance(m, n, PSDComponent.PHASE)
        return np.where(self.controlled(m, n, d), 0.0, var0)

    def uncorrected_amplitude(self, m, n, d=None, tau=None):
        """C1: amplitude variance (scintillation), never corrected."""
        return self.variance(m, n, PSDComponent.AMPLITUDE)

    def residual_phase(self, m, n, d=None, tau=None):
        """C2: measurement plus time-delay variance of controlled modes."""
        meas, lag = self.controlled_residual(m, n, tau, d)
        return meas + lag

    def chromatic_scintillation(self, m, n, d=None, tau=None):
        """C4: phase error from Fresnel propagation differing between wavelengths."""
        if not self.psd.scintillation:
            return np.zeros(np.broadcast(np.asarray(m), np.asarray(n)).shape)
        var = self.variance(m, n, PSDComponent.DISP_PHASE)
        return np.where(self.controlled(m, n, d), var, 0.0)

    @cached_property
    def chromatic_index_factor(self) -> float:
        """((n_sci - n_wfs) / (n_wfs - 1))²"""
        n_sci = air_refractivity(self.config.lam_sci)
        n_wfs = air_refractivity(self.config.lam_wfs)
        return ((n_sci - n_wfs) / n_wfs) ** 2

    def chromatic_index(self, m, n, d=None, tau=None):
        """C6: correction applied with the refractivity of the wrong wavelength."""
        var0 = self.variance(m, n, PSDComponent.PHASE)
        return np.where(self.controlled(m, n, d), var0 * self.chromatic_index_factor, 0.0)

    @cached_property
    def dispersion_angle(self) -> float:
        """Angular separation of sensing and science beams, (n_wfs - n_sci)·tan ζ."""
        cfg = self.config
        return (air_refractivity(cfg.lam_wfs) - air_refractivity(cfg.lam_sci)) * math.tan(cfg.zeta)

    def dispersive_anisoplanatism(self, m, n, d=None, tau=None):
        """
        C7: beams separated by atmospheric dispersion see different turbulence.

        var0·Σ w_i 2(1 - cos(2π (m/D) z_i secζ Δθ)), dispersion along the m axis
        """
        cfg = self.config
        var0 = self.variance(m, n, PSDComponent.PHASE)
        atm = self.atmosphere
        shift = atm.altitudes * cfg.sec_zeta * self.dispersion_angle
        kx = np.asarray(m, dtype=np.float64) / cfg.D
        factor = np.zeros(np.shape(kx))
        for w, s in zip(atm.weights, shift):
            factor = factor + w * 2 * (1 - np.cos(2 * math.pi * kx * s))
        return np.where(self.controlled(m, n, d), var0 * factor, 0.0)

    def ncp_variance(self, m, n, d=None, tau=None):
        """
        Non-common-path error distributed as |k|^(-ncp_alpha) over the
        fitting domain, normalized to ncp_wfe.
        """
        cfg = self.config
        m = np.asarray(m)
        n = np.asarray(n)
        if cfg.ncp_wfe == 0:
            return np.zeros(np.broadcast(m, n).shape)
        M, N, fit = self._fit_grid
        norm = np.sum(np.where(fit, self._ncp_shape(M, N), 0.0))
        values = cfg.ncp_wfe * self._ncp_shape(m, n) / norm
        return np.where(self.in_fitting_domain(m, n), values, 0.0)

    def _ncp_shape(self, m, n):
        r = np.maximum(np.sqrt(np.asarray(m, dtype=np.float64)**2 + np.asarray(n)**2), 1.0)
        return (r / self.config.D) ** (-self.config.ncp_alpha)

    TERMS: Dict[str, str] = {
        'uncorrected_phase': 'uncorrected_phase',
        'uncorrected_amplitude': 'uncorrected_amplitude',
        'residual_phase': 'residual_phase',
        'chromatic_scintillation': 'chromatic_scintillation',
        'chromatic_index': 'chromatic_index',
        'dispersive_anisoplanatism': 'dispersive_anisoplanatism',
    }

    def term(self, name: str) -> Callable:
        """Per-mode function of an error category."""
        if name not in self.TERMS:
            raise ConfigurationError(f"Unknown error term: {name}. Available: {list(self.TERMS)}")
        return getattr(self, self.TERMS[name])

    # -------------------------------------------------------------------------
    # Maps and series
    # -------------------------------------------------------------------------

    def term_map(self, name: str, mn_map: Optional[int] = None) -> np.ndarray:
        """
        2D map of an error category over [-mn_map, mn_map]².

        Indexed [m + mn_map, n + mn_map]; piston is zero.
        """
        mn_map = self.fit_mn_max if mn_map is None else int(mn_map)
        if mn_map <= 0:
            raise PreconditionError("mn_map must be > 0")
        M, N = mode_indices(mn_map)
        values = self.term(name)(M, N)
        values = np.where((M == 0) & (N == 0), 0.0, values)
        return np.asarray(values, dtype=get_dtype())

    def term_series(self, name: str) -> np.ndarray:
        """
        Per-radial-index series of an error category.

        Entry i is the sum over n of the mode (i, n), for i = 0 … fit_mn_max-1,
        restricted to the fitting domain.
        """
        F = self.fit_mn_max
        M, N, fit = self._fit_grid
        values = np.where(fit, self.term(name)(M, N), 0.0)
        return np.asarray(values[F:2 * F].sum(axis=1), dtype=get_dtype())

    # -------------------------------------------------------------------------
    # Totals
    # -------------------------------------------------------------------------

    def fitting_tail(self) -> float:
        """
        Analytic von Kármán variance beyond the fitting cutoff.

        ∫_K^∞ Φ(k) 2πk dk = (6π/5)·0.023 r0^(-5/3) (K² + L0^(-2))^(-5/6),
        with K the radius of the (equal-area) fitting domain.
        """
        cfg = self.config
        atm = self.atmosphere
        F = self.fit_mn_max
        if cfg.circular_limit:
            K = (F + 0.5) / cfg.D
        else:
            K = (2 * F + 1) / (cfg.D * math.sqrt(math.pi))
        scale = VON_KARMAN_CONSTANT * atm.r0 ** (-5/3) * cfg.sec_zeta * (atm.lam_0 / cfg.lam_sci) ** 2
        return 6 * math.pi / 5 * scale * (K**2 + atm.L0 ** (-2)) ** (-5/6)

    def _budget(self, d: float, tau: float) -> ErrorBudget:
        M, N, fit = self._fit_grid

        def total(values) -> float:
            return float(np.sum(np.where(fit, values, 0.0)))

        fitting = (total(self.uncorrected_phase(M, N, d))
                   + total(self.uncorrected_amplitude(M, N, d))
                   + self.fitting_tail())
        measurement, time_delay = self.controlled_residual(M, N, tau, d)
        return ErrorBudget(
            measurement=total(measurement),
            time_delay=total(time_delay),
            fitting=fitting,
            ncp=total(self.ncp_variance(M, N)),
            chromatic_scintillation_opd=total(self.chromatic_scintillation(M, N, d)),
            chromatic_index=total(self.chromatic_index(M, N, d)),
            dispersive_anisoplanatism_opd=total(self.dispersive_anisoplanatism(M, N, d)),
            d=d,
            tau=tau,
        )

    # -------------------------------------------------------------------------
    # Self-optimization
    # -------------------------------------------------------------------------

    def tau_candidates(self) -> np.ndarray:
        """Integer multiples of the minimum integration time."""
        cfg = self.config
        base = cfg.min_tau_wfs if cfg.min_tau_wfs > 0 else cfg.tau_wfs
        return base * np.arange(1, TAU_SWEEP_STEPS + 1)

    def tau_for(self, d: float) -> float:
        """Integration time used at actuator spacing ``d``."""
        cfg = self.config
        if not cfg.opt_tau:
            return cfg.tau_wfs

        M, N, fit = self._fit_grid
        controlled = fit & self.controlled(M, N, d)
        beta2 = np.where(controlled, cfg.wfs.beta_p(M, N) ** 2, 0.0)
        var0 = np.where(controlled, self.variance(M, N, PSDComponent.PHASE), 0.0)
        k = mode_frequency(M, N, cfg.D)
        v = self.atmosphere.v_wind

        taus = self.tau_candidates()
        costs = np.empty(len(taus))
        for i, tau in enumerate(taus):
            measurement = beta2 / self.snr2(tau, d) * (cfg.lam_wfs / cfg.lam_sci) ** 2
            lag = (2 * math.pi * k * v * (tau + cfg.delta_tau)) ** 2
            residual = measurement + np.minimum(var0, var0 * lag)
            costs[i] = np.sum(np.minimum(residual, var0))
        return float(taus[int(np.argmin(costs))])

    def spacing_candidates(self) -> np.ndarray:
        """d_j = d_min (1 + j/optd_delta) while at least one mode stays controlled."""
        cfg = self.config
        candidates = []
        for j in range(MAX_SPACING_CANDIDATES):
            d = cfg.d_min * (1 + j / cfg.optd_delta)
            if cfg.D / (2 * d) < 1:
                break
            candidates.append(d)
        return np.array(candidates)

    @cached_property
    def d_opt(self) -> float:
        """Actuator spacing minimizing the total variance (d_min when not optimizing)."""
        cfg = self.config
        if not cfg.optd:
            return cfg.d_min

        best_d, best_var = cfg.d_min, math.inf
        for d in self.spacing_candidates():
            var = self._budget(d, self.tau_for(d)).total
            if var < best_var:
                best_d, best_var = float(d), var
        logger.debug(f"Optimal actuator spacing {best_d:.4f} m (var {best_var:.4g} rad^2)")
        return best_d

    @cached_property
    def tau_opt(self) -> float:
        """Integration time used at the optimal spacing."""
        return self.tau_for(self.d_opt)

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    @cached_property
    def budget(self) -> ErrorBudget:
        """Error budget at the optimized (or nominal) spacing and integration time."""
        return self._budget(self.d_opt, self.tau_opt)

    def measurement_error(self) -> float:
        return self.budget.measurement

    def time_delay_error(self) -> float:
        return self.budget.time_delay

    def fitting_error(self) -> float:
        return self.budget.fitting

    def ncp_error(self) -> float:
        return self.budget.ncp

    def chromatic_scintillation_opd_error(self) -> float:
        return self.budget.chromatic_scintillation_opd

    def chromatic_index_error(self) -> float:
        return self.budget.chromatic_index

    def dispersive_anisoplanatism_opd_error(self) -> float:
        return self.budget.dispersive_anisoplanatism_opd

    def strehl(self) -> float:
        """Maréchal Strehl ratio at the science wavelength."""
        return self.budget.strehl
