"""
Tests for temporal PSDs and the closed-loop analysis of single modes.
"""

import numpy as np
import pytest


class TestFrequencyGrid:
    """Tests for the frequency grid helpers."""

    def test_grid(self):
        """f_j = j Δf up to the Nyquist frequency."""
        from aoanalysis.physics.temporal import frequency_grid

        freq = frequency_grid(1000.0, 0.1)
        assert len(freq) == 5000
        assert freq[0] == pytest.approx(0.1)
        assert freq[-1] == pytest.approx(500.0)

    def test_invalid_step(self):
        """A non-positive frequency step is a precondition failure."""
        from aoanalysis.errors import PreconditionError
        from aoanalysis.physics.temporal import frequency_grid

        with pytest.raises(PreconditionError):
            frequency_grid(1000.0, 0.0)

    def test_precision(self, backend):
        """Grids follow the backend precision."""
        from aoanalysis.physics.temporal import frequency_grid
        from aoanalysis.utils.compute import init_backend

        init_backend(precision='float32')
        try:
            assert frequency_grid(100.0, 1.0).dtype == np.float32
        finally:
            init_backend(precision='float64')

    def test_variance_tail(self):
        """A pure f^(-17/3) spectrum integrates to its analytic value."""
        from aoanalysis.physics.temporal import TAIL_EXPONENT, psd_variance

        freq = np.arange(1, 11, dtype=np.float64)
        psd = freq ** TAIL_EXPONENT
        expected = np.sum(psd) + psd[-1] * freq[-1] / (-TAIL_EXPONENT - 1)
        assert psd_variance(freq, psd) == pytest.approx(expected)


class TestOpenLoopPSD:
    """Tests for the frozen-flow open-loop PSD."""

    def test_energy_conservation(self, model):
        """The PSD integrates to the spatial variance of the mode."""
        from aoanalysis.physics.temporal import TemporalPSDEngine, psd_variance

        engine = TemporalPSDEngine(model)
        freq = engine.frequency_grid(0.5)
        for m, n in [(1, 0), (2, 1), (0, 5)]:
            psd = engine.open_loop_psd(freq, m, n)
            assert psd_variance(freq, psd) == pytest.approx(float(model.variance(m, n)), rel=1e-9)

    def test_multi_layer_energy(self, system_config, layered_atmosphere, backend):
        """Energy conservation holds for several layers with their own winds."""
        from aoanalysis.physics.ao_system import AOSystemModel
        from aoanalysis.physics.temporal import TemporalPSDEngine, psd_variance

        model = AOSystemModel(system_config, layered_atmosphere)
        engine = TemporalPSDEngine(model)
        freq = engine.frequency_grid(0.5)
        psd = engine.open_loop_psd(freq, 3, -2)
        assert np.all(psd >= 0)
        assert psd_variance(freq, psd) == pytest.approx(float(model.variance(3, -2)), rel=1e-9)

    def test_high_frequency_tail(self, model):
        """Above the cutoff the PSD falls as f^(-17/3)."""
        from aoanalysis.physics.temporal import TAIL_EXPONENT, TemporalPSDEngine

        engine = TemporalPSDEngine(model)
        freq = engine.frequency_grid(0.1)
        psd = engine.open_loop_psd(freq, 1, 0)
        fmax = engine.default_fmax(1, 0)

        tail = psd[freq > fmax]
        f_tail = freq[freq > fmax]
        assert np.all(np.diff(tail) <= 0)
        slopes = np.diff(np.log(tail)) / np.diff(np.log(f_tail))
        np.testing.assert_allclose(slopes, TAIL_EXPONENT, rtol=1e-6)

    def test_default_fmax(self, model):
        """Default cutoff is v (|k∥| + 1/D)."""
        from aoanalysis.physics.temporal import TemporalPSDEngine

        engine = TemporalPSDEngine(model)
        assert engine.default_fmax(1, 0) == pytest.approx(10.0 * (1 / 8 + 1 / 8))
        assert engine.default_fmax(0, 3) == pytest.approx(10.0 / 8)

    def test_calm_layer(self, system_config, backend):
        """Without wind the variance sits at the lowest frequency."""
        from aoanalysis.physics.ao_system import AOSystemModel
        from aoanalysis.physics.atmosphere import create_single_layer_atmosphere
        from aoanalysis.physics.temporal import TemporalPSDEngine, frequency_step

        model = AOSystemModel(system_config, create_single_layer_atmosphere(wind_speed=0.0))
        engine = TemporalPSDEngine(model)
        freq = engine.frequency_grid(1.0)
        psd = engine.open_loop_psd(freq, 2, 0)
        assert psd[0] * frequency_step(freq) > 0.9 * float(model.variance(2, 0))

    def test_missing_loop_rate(self, system_config, atmosphere, backend):
        """A zero minimum integration time is a precondition failure."""
        from dataclasses import replace
        from aoanalysis.errors import PreconditionError
        from aoanalysis.physics.ao_system import AOSystemModel
        from aoanalysis.physics.temporal import TemporalPSDEngine

        model = AOSystemModel(replace(system_config, min_tau_wfs=0.0), atmosphere)
        with pytest.raises(PreconditionError):
            TemporalPSDEngine(model).loop_rate


class TestNoisePSD:
    """Tests for the WFS noise PSD."""

    def test_noise_integrates_to_measurement_variance(self, model):
        """The flat noise PSD carries β²/SNR² (λw/λs)² over [0, fs/2]."""
        from aoanalysis.physics.temporal import TemporalPSDEngine, frequency_step

        engine = TemporalPSDEngine(model)
        freq = engine.frequency_grid(1.0)
        noise = engine.noise_psd(freq, 3, 1)
        cfg = model.config
        T = cfg.min_tau_wfs
        expected = 1.0 / model.snr2(T) * (cfg.lam_wfs / cfg.lam_sci) ** 2

        assert np.all(noise == noise[0])
        assert np.sum(noise) * frequency_step(freq) == pytest.approx(expected)


class TestAnalyzeMode:
    """Tests for the single-mode loop optimization."""

    def test_integrator(self, model):
        """The integrator gain is stable and reduces the variance."""
        from aoanalysis.physics.temporal import TemporalPSDEngine

        si, lp = TemporalPSDEngine(model).analyze_mode(1, 0, dfreq=0.5)
        assert lp is None
        assert 0 < si.gain <= si.gain_ceiling
        assert si.variance < si.open_loop_variance
        assert si.controller.kind == 'si'

    def test_predictor_not_worse(self, model):
        """With lp_nc > 1 the predictor result is at least as good."""
        from aoanalysis.physics.temporal import TemporalPSDEngine

        si, lp = TemporalPSDEngine(model).analyze_mode(2, 1, dfreq=0.5, lp_nc=4)
        assert lp is not None
        assert lp.variance <= si.variance * (1 + 1e-12)
        assert lp.controller.kind == 'lp'

    def test_residual_psd(self, model):
        """Residual PSD is ETF·OL + NTF·noise."""
        from aoanalysis.physics.temporal import TemporalPSDEngine

        si, _ = TemporalPSDEngine(model).analyze_mode(1, 1, dfreq=1.0)
        np.testing.assert_allclose(si.residual_psd, si.etf * si.psd_ol + si.ntf * si.psd_noise)
