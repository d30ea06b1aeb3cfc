"""
Tests for loop transfer functions and gain optimization.
"""

import math

import numpy as np
import pytest


@pytest.fixture
def freq():
    """1 Hz grid up to the Nyquist frequency of a 1 kHz loop."""
    return np.arange(1, 501, dtype=np.float64)


@pytest.fixture
def psd_pair(freq):
    """Red open-loop PSD with a flat noise floor."""
    psd_ol = 1e-2 * (1 + (freq / 5.0) ** 2) ** (-17 / 6)
    psd_noise = np.full_like(freq, 1e-7)
    return psd_ol, psd_noise


class TestTransferFunctions:
    """Tests for ETF and NTF."""

    def test_zero_gain_limit(self, freq):
        """At g → 0 nothing is corrected and no noise is injected."""
        from aoanalysis.physics.control import GainOptimizer

        go = GainOptimizer(freq, 1e-3, 1e-3)
        etf, ntf = go.transfer_functions(1e-9)

        np.testing.assert_allclose(etf, 1.0, rtol=1e-5)
        np.testing.assert_allclose(ntf, 0.0, atol=1e-12)

    def test_low_frequency_rejection(self, freq):
        """Integral action rejects slow disturbances."""
        from aoanalysis.physics.control import GainOptimizer

        go = GainOptimizer(freq, 1e-3, 1e-3)
        etf, _ = go.transfer_functions(0.5)
        assert etf[0] < 1e-2
        assert etf[0] < etf[-1]

    def test_zero_gain_residual_is_open_loop_variance(self, freq, psd_pair):
        """An open loop leaves the full variance, analytic tail included."""
        from aoanalysis.physics.control import GainOptimizer, power_law_tail
        from aoanalysis.physics.temporal import psd_variance

        go = GainOptimizer(freq, 1e-3, 1e-3)
        var = go.residual_variance(0.0, *psd_pair)
        assert var == pytest.approx(psd_variance(freq, psd_pair[0]), rel=1e-12)
        assert var > np.sum(psd_pair[0])
        assert power_law_tail(freq[-1], psd_pair[0][-1]) > 0

    def test_power_law_tail(self):
        """Integral of P_N (f/f_N)^α beyond f_N; zero for shallow slopes or empty bins."""
        from aoanalysis.physics.control import TAIL_EXPONENT, power_law_tail

        assert power_law_tail(100.0, 2.0) == pytest.approx(200.0 / (-TAIL_EXPONENT - 1))
        assert power_law_tail(100.0, 2.0, alpha=-1.0) == 0.0
        assert power_law_tail(100.0, 0.0) == 0.0


class TestGainCeiling:
    """Tests for the stability limit of the integrator."""

    @pytest.mark.parametrize('delay_frames,expected', [(1.0, math.pi / 2), (1.5, math.pi / 3)])
    def test_integrator_gain_margin(self, freq, delay_frames, expected):
        """For H = g e^{-sτ}/(sT) the limit is πT/(2τ)."""
        from aoanalysis.physics.control import GainOptimizer

        T = 1e-3
        go = GainOptimizer(freq, T, delay_frames * T)
        assert go.max_stable_gain() == pytest.approx(expected, rel=1e-3)

    def test_loop_delay(self):
        """Loop delay is one frame plus the extra latency."""
        from aoanalysis.physics.control import loop_delay

        assert loop_delay(1e-3, 5e-4) == pytest.approx(1.5e-3)


class TestOptimalGain:
    """Tests for the minimum-variance gain."""

    def test_gain_inside_ceiling(self, freq, psd_pair):
        """The optimum lies in (0, ceiling]."""
        from aoanalysis.physics.control import GainOptimizer

        go = GainOptimizer(freq, 1e-3, 1.5e-3)
        ceiling = go.max_stable_gain()
        gain, var = go.optimal_gain(*psd_pair)

        assert 0 < gain <= ceiling
        assert var == pytest.approx(go.residual_variance(gain, *psd_pair))

    def test_beats_open_loop(self, freq, psd_pair):
        """Closing the loop reduces the variance of a red disturbance."""
        from aoanalysis.physics.control import GainOptimizer

        go = GainOptimizer(freq, 1e-3, 1.5e-3)
        _, var = go.optimal_gain(*psd_pair)
        assert var < np.sum(psd_pair[0]) * 1.0

    def test_noisier_lower_gain(self, freq, psd_pair):
        """More noise pushes the optimal gain down."""
        from aoanalysis.physics.control import GainOptimizer

        go = GainOptimizer(freq, 1e-3, 1.5e-3)
        quiet, _ = go.optimal_gain(psd_pair[0], psd_pair[1])
        noisy, _ = go.optimal_gain(psd_pair[0], psd_pair[1] * 1e4)
        assert noisy < quiet


class TestLinearPredictor:
    """Tests for the linear predictor design."""

    def test_coefficients_unit_dc_gain(self, freq, psd_pair):
        """Predictor taps sum to one."""
        from aoanalysis.physics.control import predictor_coefficients

        taps = predictor_coefficients(freq, psd_pair[0] + psd_pair[1], 1e-3, 4, horizon=2)
        assert taps is not None
        assert len(taps) == 4
        assert sum(taps) == pytest.approx(1.0)

    @pytest.mark.parametrize('n_coeff', [2, 4, 8])
    def test_never_worse_than_integrator(self, freq, psd_pair, n_coeff):
        """More coefficients never increase the optimized residual variance."""
        from aoanalysis.physics.control import GainOptimizer, regularize_coefficients

        T, delay = 1e-3, 1.5e-3
        _, var_si = GainOptimizer(freq, T, delay).optimal_gain(*psd_pair)
        controller, var_lp, ceiling = regularize_coefficients(freq, *psd_pair, T, delay, n_coeff)

        assert var_lp <= var_si * (1 + 1e-12)
        assert controller.n_coefficients == n_coeff
        assert 0 < controller.gain <= ceiling

    def test_autocorrelation_zero_lag(self, freq, psd_pair):
        """R(0) is the variance on the grid."""
        from aoanalysis.physics.control import autocorrelation

        R = autocorrelation(freq, psd_pair[0], 1e-3, 3)
        assert R[0] == pytest.approx(np.sum(psd_pair[0]))
        assert R[1] < R[0]
