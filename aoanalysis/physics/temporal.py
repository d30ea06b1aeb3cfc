"""
Temporal PSDs of spatial Fourier modes.

Under Taylor's frozen-flow hypothesis a layer moving at velocity v turns the
spatial frequency k into the temporal frequency f = k·v. A Fourier mode seen
through an aperture of diameter D is not a single spatial frequency but a
window of width ~1/D around k0 = (m, n)/D, so each layer contributes a band
centred on f = k0·v_i:

    P_i(f) = 1/(v_i D) Σ± Φ_i(±f/v_i, k⊥) exp(-π D² (±f/v_i - k∥)²)

with k∥, k⊥ the mode frequency along and across the layer's wind. Above a
cutoff the spectrum is continued with the asymptotic f^(-17/3) law, and the
result is scaled so its integral equals the spatial variance of the mode.

The engine then builds the flat WFS noise PSD and optimizes the loop gain of
a single integrator and, optionally, of a linear predictor.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from ..errors import PreconditionError
from ..utils.compute import get_dtype
from ..utils.logging import get_logger
from .ao_system import AOSystemModel
from .control import (
    ControllerModel,
    GainOptimizer,
    SingleIntegrator,
    TAIL_EXPONENT,
    loop_delay,
    power_law_tail,
    regularize_coefficients,
)


logger = get_logger(__name__)


# =============================================================================
# Frequency grid helpers
# =============================================================================

def frequency_grid(fs: float, dfreq: float, dtype=None) -> np.ndarray:
    """
    Uniform grid f_j = j·Δf, j = 1 … ⌊fs/(2Δf)⌋, up to the loop Nyquist frequency.
    """
    if not fs > 0:
        raise PreconditionError("Loop rate must be > 0; set min_tau_wfs > 0 to specify it")
    if not dfreq > 0:
        raise PreconditionError("dfreq must be > 0 to specify the frequency sampling")

    n = int(math.floor(0.5 * fs / dfreq + 1e-9))
    if n < 1:
        raise PreconditionError(f"dfreq={dfreq} Hz is coarser than the Nyquist frequency {0.5 * fs} Hz")
    return (np.arange(1, n + 1) * dfreq).astype(dtype or get_dtype())


def frequency_step(freq) -> float:
    freq = np.asarray(freq)
    return float(freq[1] - freq[0]) if len(freq) > 1 else float(freq[0])


def psd_variance(freq, psd, alpha: float = TAIL_EXPONENT) -> float:
    """
    Variance of a one-sided PSD on a uniform grid.

    Rectangle rule over the grid plus the analytic power-law tail beyond the
    last bin (see ``power_law_tail``).
    """
    freq = np.asarray(freq, dtype=np.float64)
    psd = np.asarray(psd, dtype=np.float64)
    return float(np.sum(psd)) * frequency_step(freq) + power_law_tail(freq[-1], psd[-1], alpha)


def wfs_noise_psd(
    freq,
    beta_p: float,
    snr2: float,
    sample_period: float,
    lam_ratio: float = 1.0,
    dtype=None,
) -> np.ndarray:
    """
    Flat WFS noise PSD.

    A frame with noise variance σ² = β_p²/SNR² sampled every T spreads it
    uniformly over [0, 1/(2T)]: level 2T·σ², times (lam_wfs/lam_sci)².
    """
    level = 2 * sample_period * beta_p**2 / snr2 * lam_ratio**2 if snr2 > 0 else 0.0
    return np.full(len(freq), level, dtype=dtype or get_dtype())


# =============================================================================
# Results
# =============================================================================

@dataclass(frozen=True, eq=False)
class TemporalPSDResult:
    """
    Closed-loop analysis of one spatial mode.

    Attributes:
        m, n: Mode indices
        freq: Frequency grid (Hz)
        psd_ol: Open-loop PSD (rad²/Hz)
        psd_noise: WFS noise PSD (rad²/Hz)
        etf: Error transfer function |1/(1+H_ol)|²
        ntf: Noise transfer function
        controller: Chosen controller with its gain
        variance: Residual variance (rad²)
        gain_ceiling: Maximum stable gain of the controller
    """
    m: int
    n: int
    freq: np.ndarray
    psd_ol: np.ndarray
    psd_noise: np.ndarray
    etf: np.ndarray
    ntf: np.ndarray
    controller: ControllerModel
    variance: float
    gain_ceiling: float

    @property
    def gain(self) -> float:
        return self.controller.gain

    @property
    def open_loop_variance(self) -> float:
        return psd_variance(self.freq, self.psd_ol)

    @property
    def residual_psd(self) -> np.ndarray:
        return self.etf * self.psd_ol + self.ntf * self.psd_noise


# =============================================================================
# Engine
# =============================================================================

class TemporalPSDEngine:
    """
    Temporal PSD and loop optimization for the modes of an AO system.

    Args:
        model: AO system (atmosphere, PSD model, WFS, timing)
        dtype: Floating-point type of the returned arrays
    """

    def __init__(self, model: AOSystemModel, dtype=None):
        self.model = model
        self.dtype = dtype or get_dtype()

    @property
    def loop_rate(self) -> float:
        """Loop frequency 1/min_tau_wfs (Hz)."""
        tau = self.model.config.min_tau_wfs
        if not tau > 0:
            raise PreconditionError("You must set min_tau_wfs > 0 to specify the loop frequency")
        return 1.0 / tau

    def frequency_grid(self, dfreq: float, fs: Optional[float] = None) -> np.ndarray:
        return frequency_grid(self.loop_rate if fs is None else fs, dfreq, self.dtype)

    def _wind_frame(self, m: int, n: int):
        """Mode frequency along and across every layer's wind."""
        D = self.model.config.D
        atm = self.model.atmosphere
        kx, ky = m / D, n / D
        theta = atm.wind_directions
        k_par = kx * np.cos(theta) + ky * np.sin(theta)
        k_perp = -kx * np.sin(theta) + ky * np.cos(theta)
        return k_par, k_perp

    def default_fmax(self, m: int, n: int) -> float:
        """Highest wind-driven peak plus one window width: max_i v_i (|k∥,i| + 1/D)."""
        D = self.model.config.D
        k_par, _ = self._wind_frame(m, n)
        return float(np.max(self.model.atmosphere.wind_speeds * (np.abs(k_par) + 1.0 / D)))

    def layer_psd(self, freq, m: int, n: int, layer: int) -> np.ndarray:
        """
        Un-normalized temporal PSD contributed by one layer.

        A calm layer puts all of its variance in the first bin.
        """
        model = self.model
        cfg = model.config
        atm = model.atmosphere
        psd_model = model.psd
        freq = np.asarray(freq, dtype=np.float64)
        D = cfg.D

        v = atm.wind_speeds[layer]
        k_par, k_perp = self._wind_frame(m, n)
        k_par, k_perp = k_par[layer], k_perp[layer]

        if v <= 0:
            k0 = math.hypot(m, n) / D
            var = float(psd_model(atm, k0, cfg.lam_sci, cfg.lam_wfs, cfg.sec_zeta, layer=layer)) / D**2
            out = np.zeros_like(freq)
            out[0] = var / frequency_step(freq)
            return out

        q = freq / v
        out = np.zeros_like(freq)
        for sign in (1.0, -1.0):
            k = np.sqrt((sign * q) ** 2 + k_perp**2)
            phi = psd_model(atm, k, cfg.lam_sci, cfg.lam_wfs, cfg.sec_zeta, layer=layer)
            out += phi * np.exp(-math.pi * D**2 * (sign * q - k_par) ** 2)
        return out / (v * D)

    def open_loop_psd(self, freq, m: int, n: int, fmax: float = 0.0, normalize: bool = True) -> np.ndarray:
        """
        Open-loop temporal PSD of mode (m, n).

        Args:
            freq: Uniform frequency grid (Hz)
            m, n: Mode indices
            fmax: Start of the f^(-17/3) tail; 0 derives it from the winds
            normalize: Scale so the PSD integrates to the mode's spatial variance

        Returns:
            PSD (rad²/Hz) on ``freq``
        """
        freq64 = np.asarray(freq, dtype=np.float64)
        if not fmax or fmax <= 0:
            fmax = self.default_fmax(m, n)

        below = np.nonzero(freq64 <= fmax)[0]
        cut = int(below[-1]) if len(below) else 0

        psd = np.zeros_like(freq64)
        head = freq64[:cut + 1]
        for layer in range(self.model.atmosphere.n_layers):
            psd[:cut + 1] += self.layer_psd(head, m, n, layer)

        if cut < len(freq64) - 1:
            psd[cut + 1:] = psd[cut] * (freq64[cut + 1:] / freq64[cut]) ** TAIL_EXPONENT

        if normalize:
            target = float(self.model.variance(m, n))
            current = psd_variance(freq64, psd)
            psd = psd * (target / current) if current > 0 else np.zeros_like(psd)

        return psd.astype(self.dtype)

    def noise_psd(self, freq, m: int, n: int, fs: Optional[float] = None) -> np.ndarray:
        """WFS noise PSD of mode (m, n) for the model's star magnitude."""
        model = self.model
        cfg = model.config
        T = 1.0 / (self.loop_rate if fs is None else fs)
        beta = float(cfg.wfs.beta_p(m, n))
        return wfs_noise_psd(freq, beta, model.snr2(T), T, cfg.lam_wfs / cfg.lam_sci, self.dtype)

    def loop(self, fs: Optional[float] = None) -> Tuple[float, float]:
        """(sample period, total delay) of the loop."""
        T = 1.0 / (self.loop_rate if fs is None else fs)
        return T, loop_delay(T, self.model.config.delta_tau)

    def optimize(
        self,
        freq,
        psd_ol,
        psd_noise,
        m: int = 0,
        n: int = 0,
        lp_nc: int = 0,
        fs: Optional[float] = None,
    ) -> Tuple[TemporalPSDResult, Optional[TemporalPSDResult]]:
        """
        Optimize the single integrator and, when lp_nc > 1, the linear predictor.

        Returns:
            (integrator result, predictor result or None)
        """
        T, delay = self.loop(fs)

        go_si = GainOptimizer(freq, T, delay)
        ceiling_si = go_si.max_stable_gain()
        gain_si, var_si = go_si.optimal_gain(psd_ol, psd_noise, ceiling_si)
        si = self._result(m, n, freq, psd_ol, psd_noise, go_si,
                          SingleIntegrator(gain_si), var_si, ceiling_si)

        lp = None
        if lp_nc > 1:
            controller, var_lp, ceiling_lp = regularize_coefficients(
                freq, psd_ol, psd_noise, T, delay, lp_nc, baseline=(gain_si, var_si),
            )
            go_lp = GainOptimizer(freq, T, delay, controller.coefficients)
            lp = self._result(m, n, freq, psd_ol, psd_noise, go_lp,
                              controller, var_lp, ceiling_lp)
        return si, lp

    def _result(self, m, n, freq, psd_ol, psd_noise, go, controller, variance, ceiling):
        etf, ntf = go.transfer_functions(controller.gain)
        return TemporalPSDResult(
            m=int(m),
            n=int(n),
            freq=np.asarray(freq, dtype=self.dtype),
            psd_ol=np.asarray(psd_ol, dtype=self.dtype),
            psd_noise=np.asarray(psd_noise, dtype=self.dtype),
            etf=etf.astype(self.dtype),
            ntf=ntf.astype(self.dtype),
            controller=controller,
            variance=float(variance),
            gain_ceiling=float(ceiling),
        )

    def analyze_mode(
        self,
        m: int,
        n: int,
        dfreq: float,
        fmax: float = 0.0,
        lp_nc: int = 0,
        fs: Optional[float] = None,
    ) -> Tuple[TemporalPSDResult, Optional[TemporalPSDResult]]:
        """Build the PSDs of one mode on a fresh grid and optimize the loop."""
        freq = self.frequency_grid(dfreq, fs)
        psd_ol = self.open_loop_psd(freq, m, n, fmax)
        psd_noise = self.noise_psd(freq, m, n, fs)
        return self.optimize(freq, psd_ol, psd_noise, m, n, lp_nc, fs)
