"""
Speckle lifetime estimation.

Draws random time series whose spectrum follows a given one-sided PSD and
measures how long their autocorrelation takes to fall below 1/e. The result
is diagnostic only; it never feeds back into variances.
"""

from __future__ import annotations

import math
from typing import Tuple

import numpy as np


LIFETIME_THRESHOLD = math.exp(-1)


def mode_rng(seed: int, m: int, n: int) -> np.random.Generator:
    """
    Random generator for one mode.

    Seeding from (seed, m, n) makes every mode's draws independent of the
    order or process in which modes are evaluated.
    """
    entropy = [int(seed) & 0xFFFFFFFF, abs(int(m)), abs(int(n)), int(m < 0), int(n < 0)]
    return np.random.default_rng(np.random.SeedSequence(entropy))


def synthesize(freq, psd, rng: np.random.Generator) -> Tuple[np.ndarray, float]:
    """
    One random realization with the given PSD.

    Each frequency bin gets a complex Gaussian amplitude of variance PSD·Δf;
    the inverse real FFT yields a periodic series sampled at 1/(2 f_max).

    Returns:
        (series, time step)
    """
    freq = np.asarray(freq, dtype=np.float64)
    psd = np.asarray(psd, dtype=np.float64)
    n_freq = len(freq)
    df = freq[1] - freq[0] if n_freq > 1 else freq[0]
    n_samples = 2 * n_freq

    amplitude = np.sqrt(np.maximum(psd, 0.0) * df)
    spectrum = np.zeros(n_freq + 1, dtype=np.complex128)
    spectrum[1:] = amplitude * (rng.standard_normal(n_freq) + 1j * rng.standard_normal(n_freq))
    series = np.fft.irfft(spectrum * n_samples / 2, n=n_samples)
    return series, 1.0 / (n_samples * df)


def decorrelation_time(series, dt: float, threshold: float = LIFETIME_THRESHOLD) -> float:
    """
    First lag at which the (circular) autocorrelation drops below ``threshold``.

    Linear interpolation between lags; half the series length if it never
    does.
    """
    series = np.asarray(series, dtype=np.float64)
    series = series - series.mean()
    power = np.abs(np.fft.rfft(series)) ** 2
    acf = np.fft.irfft(power, n=len(series))
    if acf[0] <= 0:
        return 0.0
    acf = acf[:len(series) // 2] / acf[0]

    below = np.nonzero(acf < threshold)[0]
    if len(below) == 0:
        return len(acf) * dt
    i = int(below[0])
    frac = (acf[i - 1] - threshold) / (acf[i - 1] - acf[i])
    return (i - 1 + frac) * dt


def sample_lifetime(
    freq,
    psd,
    n_trials: int,
    rng: np.random.Generator,
    threshold: float = LIFETIME_THRESHOLD,
) -> Tuple[float, float]:
    """
    Mean and standard deviation of the decorrelation time over ``n_trials``
    independent realizations.
    """
    if n_trials <= 0:
        return 0.0, 0.0
    if not np.any(np.asarray(psd) > 0):
        return 0.0, 0.0

    times = []
    for _ in range(n_trials):
        series, dt = synthesize(freq, psd, rng)
        times.append(decorrelation_time(series, dt, threshold))
    times = np.array(times)
    return float(times.mean()), float(times.std())


def mode_lifetime(
    freq,
    psd,
    n_trials: int,
    seed: int,
    m: int,
    n: int,
) -> Tuple[float, float]:
    """Lifetime of mode (m, n), reproducible from ``seed``."""
    return sample_lifetime(freq, psd, n_trials, mode_rng(seed, m, n))
