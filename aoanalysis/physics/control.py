"""
Closed-loop controllers and gain optimization.

Discrete AO loop running at rate 1/T with total delay τ:

    H_wfs = (1 - e^{-sT}) / (sT)                 WFS integration
    H_del = e^{-sτ}                              loop delay
    H_con = Σ_j b_j z^{-j} / (1 - z^{-1})        controller, z = e^{sT}
    H_ol  = g · H_wfs · H_del · H_con

    ETF = |1 / (1 + H_ol)|²                      disturbance rejection
    NTF = |g H_del H_con / (1 + H_ol)|²          noise propagation

A single integrator is b = (1,). A linear predictor is a longer b, found from
the Yule-Walker equations of the regularized open-loop PSD and scaled to unit
DC gain, so the loop keeps integral action. The gain ceiling is the gain
margin at the first crossing of the negative real axis by the open-loop
Nyquist curve.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import ClassVar, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.linalg import LinAlgError, solve_toeplitz
from scipy.optimize import minimize_scalar

from ..utils.logging import get_logger


logger = get_logger(__name__)

# Points of the dense Nyquist-curve scan used for the stability ceiling
STABILITY_SCAN_POINTS = 8192

# Fraction of the ceiling kept as safety margin
GAIN_MARGIN = 1e-3

# Ceiling used when the Nyquist curve never crosses the negative real axis
MAX_GAIN = 10.0

# Coarse scan before the bounded refinement
GAIN_SCAN_POINTS = 50

# Regularization strengths tried by the linear-predictor search
REGULARIZATIONS = np.logspace(-3, 3, 13)

# High-frequency asymptote of a single mode's temporal PSD
TAIL_EXPONENT = -17.0 / 3.0


def power_law_tail(f_last: float, p_last: float, alpha: float = TAIL_EXPONENT) -> float:
    """Variance beyond the last bin: ∫_{f_N}^∞ P_N (f/f_N)^α df = P_N f_N / (-α - 1)."""
    if alpha >= -1 or not p_last > 0:
        return 0.0
    return float(p_last * f_last / (-alpha - 1))


# =============================================================================
# Controllers
# =============================================================================

@dataclass(frozen=True)
class SingleIntegrator:
    """Integrator controller: u_k = u_{k-1} + g·e_k."""
    gain: float = 0.0

    kind: ClassVar[str] = 'si'

    @property
    def coefficients(self) -> Tuple[float, ...]:
        return (1.0,)


@dataclass(frozen=True)
class LinearPredictor:
    """
    Linear-predictor controller.

    Attributes:
        coefficients: Taps b_j applied to the last measurements (Σ b_j = 1)
        gain: Loop gain
    """
    coefficients: Tuple[float, ...] = (1.0,)
    gain: float = 0.0

    kind: ClassVar[str] = 'lp'

    def __post_init__(self):
        object.__setattr__(self, 'coefficients', tuple(float(b) for b in self.coefficients))

    @property
    def n_coefficients(self) -> int:
        return len(self.coefficients)


ControllerModel = Union[SingleIntegrator, LinearPredictor]


def loop_delay(sample_period: float, delta_tau: float) -> float:
    """Total loop delay: one frame of integration plus the configured latency."""
    return sample_period + delta_tau


# =============================================================================
# Gain Optimizer
# =============================================================================

class GainOptimizer:
    """
    Transfer functions and minimum-variance gain for one controller.

    Args:
        freq: Uniform frequency grid (Hz), strictly positive
        sample_period: Loop sample period T (s)
        delay: Total loop delay τ (s)
        coefficients: Controller taps b_j
    """

    def __init__(
        self,
        freq,
        sample_period: float,
        delay: float,
        coefficients: Sequence[float] = (1.0,),
    ):
        self.freq = np.asarray(freq, dtype=np.float64)
        self.T = sample_period
        self.delay = delay
        self.coefficients = tuple(float(b) for b in coefficients)

        if len(self.freq) > 1:
            self.df = float(self.freq[1] - self.freq[0])
        else:
            self.df = float(self.freq[0])

        self._plant, self._noise_path = self._responses(self.freq)
        self._ceiling = None

    def _responses(self, freq) -> Tuple[np.ndarray, np.ndarray]:
        """Open-loop response at unit gain, and the noise path H_del·H_con."""
        s = 2j * math.pi * np.asarray(freq, dtype=np.float64)
        sT = s * self.T
        zinv = np.exp(-sT)

        h_wfs = (1 - zinv) / sT
        h_del = np.exp(-s * self.delay)
        taps = sum(b * zinv**j for j, b in enumerate(self.coefficients))
        h_con = taps / (1 - zinv)

        noise_path = h_del * h_con
        return h_wfs * noise_path, noise_path

    def transfer_functions(self, gain: float) -> Tuple[np.ndarray, np.ndarray]:
        """
        Error and noise transfer functions (power) at ``gain``.

        Returns:
            (ETF, NTF) arrays over the frequency grid
        """
        denom = np.abs(1 + gain * self._plant) ** 2
        etf = 1.0 / denom
        ntf = np.abs(gain * self._noise_path) ** 2 / denom
        return etf, ntf

    def residual_psd(self, gain: float, psd_ol, psd_noise) -> np.ndarray:
        etf, ntf = self.transfer_functions(gain)
        return etf * psd_ol + ntf * psd_noise

    def residual_variance(self, gain: float, psd_ol, psd_noise) -> float:
        """
        Σ (ETF·PSD_ol + NTF·PSD_n) Δf over the grid, plus the open-loop
        power-law tail beyond Nyquist weighted by ETF(f_N). The noise PSD
        stops at Nyquist.
        """
        psd_ol = np.asarray(psd_ol, dtype=np.float64)
        etf, ntf = self.transfer_functions(gain)
        var = float(np.sum(etf * psd_ol + ntf * psd_noise)) * self.df
        return var + float(etf[-1]) * power_law_tail(self.freq[-1], psd_ol[-1])

    def max_stable_gain(self, n_points: int = STABILITY_SCAN_POINTS) -> float:
        """
        Gain margin of the loop.

        Scans the open-loop response up to Nyquist and returns -1/Re(H) at the
        crossings of the negative real axis, keeping the smallest.
        """
        if self._ceiling is not None:
            return self._ceiling

        f_nyq = 0.5 / self.T
        f = np.linspace(f_nyq / n_points, f_nyq, n_points)
        h, _ = self._responses(f)

        im = h.imag
        re = h.real
        crossing = np.nonzero(np.sign(im[:-1]) * np.sign(im[1:]) < 0)[0]

        gains = []
        for i in crossing:
            t = im[i] / (im[i] - im[i + 1])
            re_c = re[i] + t * (re[i + 1] - re[i])
            if re_c < 0:
                gains.append(-1.0 / re_c)

        exact = np.nonzero((im == 0) & (re < 0))[0]
        gains.extend(-1.0 / re[i] for i in exact)

        if gains:
            ceiling = min(min(gains), MAX_GAIN)
        else:
            logger.debug("Open-loop response never crosses the negative real axis")
            ceiling = MAX_GAIN

        self._ceiling = float(ceiling)
        return self._ceiling

    def optimal_gain(self, psd_ol, psd_noise, gain_ceiling: Optional[float] = None) -> Tuple[float, float]:
        """
        Minimum-variance gain in (0, ceiling].

        A coarse scan locates the basin, then a bounded scalar search refines it.

        Returns:
            (gain, residual variance)
        """
        psd_ol = np.asarray(psd_ol, dtype=np.float64)
        psd_noise = np.asarray(psd_noise, dtype=np.float64)

        ceiling = self.max_stable_gain() if gain_ceiling is None else gain_ceiling
        upper = ceiling * (1 - GAIN_MARGIN)

        gains = np.linspace(upper / GAIN_SCAN_POINTS, upper, GAIN_SCAN_POINTS)
        variances = np.array([self.residual_variance(g, psd_ol, psd_noise) for g in gains])
        i = int(np.argmin(variances))
        best_gain, best_var = float(gains[i]), float(variances[i])

        lo = gains[i - 1] if i > 0 else gains[0] * 1e-3
        hi = gains[i + 1] if i < len(gains) - 1 else upper
        result = minimize_scalar(
            lambda g: self.residual_variance(g, psd_ol, psd_noise),
            bounds=(lo, hi),
            method='bounded',
            options={'xatol': upper * 1e-6},
        )
        if result.success and result.fun < best_var and 0 < result.x <= ceiling:
            best_gain, best_var = float(result.x), float(result.fun)

        return best_gain, best_var


# =============================================================================
# Linear Predictor Design
# =============================================================================

def autocorrelation(freq, psd, sample_period: float, n_lags: int) -> np.ndarray:
    """
    Autocorrelation of a one-sided PSD at lags l·T.

    R(l) = Σ PSD(f) cos(2π f l T) Δf
    """
    freq = np.asarray(freq, dtype=np.float64)
    psd = np.asarray(psd, dtype=np.float64)
    df = freq[1] - freq[0] if len(freq) > 1 else freq[0]
    lags = np.arange(n_lags)[:, None] * sample_period
    return np.sum(psd[None, :] * np.cos(2 * math.pi * freq[None, :] * lags), axis=1) * df


def predictor_coefficients(
    freq,
    psd,
    sample_period: float,
    n_coeff: int,
    horizon: int = 1,
) -> Optional[Tuple[float, ...]]:
    """
    Yule-Walker predictor of the signal ``horizon`` frames ahead.

    The taps are normalized to Σ b_j = 1. Returns None when the system is
    singular or the taps have no DC gain.
    """
    R = autocorrelation(freq, psd, sample_period, n_coeff + horizon)
    if R[0] <= 0:
        return None
    try:
        a = solve_toeplitz(R[:n_coeff], R[horizon:horizon + n_coeff])
    except (LinAlgError, ValueError):
        return None

    total = float(np.sum(a))
    if not np.all(np.isfinite(a)) or abs(total) < 1e-12:
        return None
    return tuple(float(b) for b in a / total)


def regularize_coefficients(
    freq,
    psd_ol,
    psd_noise,
    sample_period: float,
    delay: float,
    n_coeff: int,
    baseline: Optional[Tuple[float, float]] = None,
) -> Tuple[LinearPredictor, float, float]:
    """
    Best linear predictor over a sweep of noise regularizations.

    Each candidate solves the predictor of psd_ol + r·psd_noise and is
    scored with its own gain ceiling and optimal gain. The integrator
    (b = (1, 0, …, 0)) is always a candidate, so the result is never worse
    than a single integrator on the same PSDs.

    Args:
        baseline: (gain, variance) of the single integrator if already known

    Returns:
        (controller, residual variance, gain ceiling)
    """
    psd_ol = np.asarray(psd_ol, dtype=np.float64)
    psd_noise = np.asarray(psd_noise, dtype=np.float64)
    horizon = max(1, int(round(delay / sample_period)))

    integrator_taps = (1.0,) + (0.0,) * (n_coeff - 1)
    go = GainOptimizer(freq, sample_period, delay, integrator_taps)
    ceiling = go.max_stable_gain()
    if baseline is None:
        gain, var = go.optimal_gain(psd_ol, psd_noise, ceiling)
    else:
        gain, var = baseline
    best = (LinearPredictor(integrator_taps, gain), var, ceiling)

    if np.any(psd_noise > 0):
        floor = psd_noise
    else:
        floor = np.full_like(psd_ol, np.mean(psd_ol))

    for r in REGULARIZATIONS:
        taps = predictor_coefficients(freq, psd_ol + r * floor, sample_period, n_coeff, horizon)
        if taps is None:
            continue
        go = GainOptimizer(freq, sample_period, delay, taps)
        ceiling = go.max_stable_gain()
        if not ceiling > 0:
            continue
        gain, var = go.optimal_gain(psd_ol, psd_noise, ceiling)
        if var < best[1]:
            best = (LinearPredictor(taps, gain), var, ceiling)

    return best
