"""
Tests for the spatial PSD model.
"""

import numpy as np
import pytest


class TestVonKarman:
    """Tests for the von Kármán spectrum."""

    def test_psd_positive(self):
        """PSD is positive and decreasing in k."""
        from aoanalysis.physics.spatial_psd import von_karman_psd

        k = np.linspace(0.01, 10.0, 200)
        psd = von_karman_psd(k, r0=0.15, L0=25.0)

        assert np.all(psd > 0)
        assert np.all(np.diff(psd) < 0)

    def test_outer_scale_saturation(self):
        """The outer scale caps the power at low k."""
        from aoanalysis.physics.spatial_psd import von_karman_psd

        low = von_karman_psd(1e-6, r0=0.15, L0=25.0)
        zero = von_karman_psd(0.0, r0=0.15, L0=25.0)
        assert low == pytest.approx(zero, rel=1e-6)

    def test_r0_scaling(self):
        """Better seeing gives less power."""
        from aoanalysis.physics.spatial_psd import von_karman_psd

        assert von_karman_psd(1.0, 0.2, 25.0) < von_karman_psd(1.0, 0.1, 25.0)


class TestSpatialPSDModel:
    """Tests for SpatialPSDModel."""

    def test_phase_without_scintillation(self, atmosphere):
        """Without scintillation the phase component is the turbulence PSD itself."""
        from aoanalysis.physics.spatial_psd import SpatialPSDModel

        model = SpatialPSDModel()
        k = np.array([0.1, 1.0, 5.0])
        np.testing.assert_allclose(
            model(atmosphere, k, lam_sci=0.5e-6),
            model.turbulence_psd(atmosphere, k, lam_sci=0.5e-6),
        )

    def test_amplitude_zero_without_scintillation(self, layered_atmosphere):
        """Amplitude carries nothing unless scintillation is enabled."""
        from aoanalysis.physics.spatial_psd import PSDComponent, SpatialPSDModel

        model = SpatialPSDModel()
        amp = model(layered_atmosphere, np.array([1.0, 3.0]), 0.8e-6, component=PSDComponent.AMPLITUDE)
        np.testing.assert_array_equal(amp, 0.0)

    def test_fresnel_split_conserves_power(self, layered_atmosphere):
        """cos² + sin² = 1: phase and amplitude add up to the turbulence PSD."""
        from aoanalysis.physics.spatial_psd import PSDComponent, SpatialPSDModel

        model = SpatialPSDModel(scintillation=True)
        k = np.linspace(0.1, 20.0, 50)
        phase = model(layered_atmosphere, k, 0.8e-6, component=PSDComponent.PHASE)
        amplitude = model(layered_atmosphere, k, 0.8e-6, component=PSDComponent.AMPLITUDE)
        total = model.turbulence_psd(layered_atmosphere, k, 0.8e-6)

        np.testing.assert_allclose(phase + amplitude, total, rtol=1e-10)
        assert np.any(amplitude > 0)

    def test_layers_sum_to_total(self, layered_atmosphere):
        """Per-layer contributions add up to the full PSD."""
        from aoanalysis.physics.spatial_psd import SpatialPSDModel

        model = SpatialPSDModel(scintillation=True)
        k = np.array([0.5, 2.0])
        total = model(layered_atmosphere, k, 0.8e-6)
        parts = sum(model(layered_atmosphere, k, 0.8e-6, layer=i) for i in range(3))
        np.testing.assert_allclose(parts, total)

    def test_dispersion_vanishes_at_same_wavelength(self, layered_atmosphere):
        """Chromatic components are zero when sensing and science wavelengths match."""
        from aoanalysis.physics.spatial_psd import PSDComponent, SpatialPSDModel

        model = SpatialPSDModel(scintillation=True)
        k = np.array([1.0, 10.0])
        for component in (PSDComponent.DISP_PHASE, PSDComponent.DISP_AMPLITUDE):
            values = model(layered_atmosphere, k, 0.8e-6, lam_wfs=0.8e-6, component=component)
            np.testing.assert_allclose(values, 0.0, atol=1e-30)

    def test_unknown_component(self):
        """An unknown component name fails instead of being ignored."""
        from aoanalysis.errors import ConfigurationError
        from aoanalysis.physics.spatial_psd import SpatialPSDModel

        with pytest.raises(ConfigurationError):
            SpatialPSDModel(component='intensity')

    def test_component_names(self):
        """Components parse from their configuration names."""
        from aoanalysis.physics.spatial_psd import PSDComponent

        assert PSDComponent.parse('dispPhase') is PSDComponent.DISP_PHASE
        assert PSDComponent.parse('amplitude') is PSDComponent.AMPLITUDE


class TestModeVariance:
    """Tests for per-mode variances."""

    def test_piston_removed(self, atmosphere):
        """Piston carries no variance."""
        from aoanalysis.physics.spatial_psd import SpatialPSDModel

        var = SpatialPSDModel().mode_variance(atmosphere, 0, 0, 8.0, 0.5e-6)
        assert var == 0.0

    def test_tip_tilt_subtraction(self, atmosphere):
        """Tip/tilt subtraction zeroes exactly the modes with m² + n² = 1."""
        from aoanalysis.physics.spatial_psd import SpatialPSDModel

        m = np.array([1, 0, -1, 0, 1, 2])
        n = np.array([0, 1, 0, -1, 1, 0])
        with_tt = SpatialPSDModel().mode_variance(atmosphere, m, n, 8.0, 0.5e-6)
        without_tt = SpatialPSDModel(sub_tip_tilt=True).mode_variance(atmosphere, m, n, 8.0, 0.5e-6)

        np.testing.assert_array_equal(without_tt[:4], 0.0)
        np.testing.assert_allclose(without_tt[4:], with_tt[4:])
        assert np.all(with_tt > 0)

    def test_wavelength_scaling(self, atmosphere):
        """Phase variance scales as λ^-2."""
        from aoanalysis.physics.spatial_psd import SpatialPSDModel

        model = SpatialPSDModel()
        v1 = model.mode_variance(atmosphere, 3, 2, 8.0, 0.5e-6)
        v2 = model.mode_variance(atmosphere, 3, 2, 8.0, 1.0e-6)
        assert v1 / v2 == pytest.approx(4.0)
