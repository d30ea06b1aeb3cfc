"""
Spatial power spectrum of atmospheric turbulence.

Von Kármán phase spectrum at the science wavelength, optionally split into
phase and amplitude parts by Fresnel propagation of every layer
(scintillation), and into the chromatic residuals left when the wavefront is
sensed at one wavelength and corrected at another.

A spatial Fourier mode (m, n) on an aperture of diameter D sits at spatial
frequency k = (m, n)/D and carries variance Φ(|k|)/D².
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

import numpy as np

from ..errors import ConfigurationError
from .atmosphere import AtmosphereProfile


VON_KARMAN_CONSTANT = 0.023


# =============================================================================
# PSD Components
# =============================================================================

class PSDComponent(str, Enum):
    """Physical quantity returned by the spatial PSD model."""
    PHASE = 'phase'
    AMPLITUDE = 'amplitude'
    DISP_PHASE = 'dispPhase'
    DISP_AMPLITUDE = 'dispAmplitude'

    @classmethod
    def parse(cls, value: Union[str, 'PSDComponent']) -> 'PSDComponent':
        """Look up a component by name; unknown names are an error."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value or member.name.lower() == str(value).lower():
                return member
        raise ConfigurationError(
            f"Unknown PSD component: {value}. Available: {[m.value for m in cls]}"
        )


# =============================================================================
# Spectral Laws
# =============================================================================

def von_karman_psd(k, r0: float, L0: float):
    """
    Von Karman phase power spectral density (with outer scale).

    Φ(k) = 0.023 * r0^(-5/3) * (k^2 + 1/L0^2)^(-11/6)

    Args:
        k: Spatial frequency magnitude (cycles/meter)
        r0: Fried parameter (meters)
        L0: Outer scale (meters)

    Returns:
        Power spectral density (rad^2 m^2)
    """
    k = np.asarray(k, dtype=np.float64)
    return VON_KARMAN_CONSTANT * (r0 ** (-5/3)) * ((k**2 + 1.0/L0**2) ** (-11/6))


def fresnel_argument(k, altitude: float, wavelength: float, sec_zeta: float = 1.0):
    """Phase of the Fresnel propagator, π z secζ λ k², for one layer."""
    k = np.asarray(k, dtype=np.float64)
    return math.pi * altitude * sec_zeta * wavelength * k**2


def mode_frequency(m, n, D: float):
    """Spatial frequency magnitude |k| (cycles/m) of mode (m, n)."""
    m = np.asarray(m, dtype=np.float64)
    n = np.asarray(n, dtype=np.float64)
    return np.sqrt(m**2 + n**2) / D


# =============================================================================
# Spatial PSD Model
# =============================================================================

@dataclass(frozen=True)
class SpatialPSDModel:
    """
    Turbulence spatial PSD evaluated through an atmosphere profile.

    Attributes:
        sub_tip_tilt: Remove the tip/tilt modes (m² + n² = 1)
        scintillation: Split phase and amplitude by Fresnel propagation
        component: Default physical component returned
    """
    sub_tip_tilt: bool = False
    scintillation: bool = False
    component: PSDComponent = PSDComponent.PHASE

    def __post_init__(self):
        object.__setattr__(self, 'component', PSDComponent.parse(self.component))

    def turbulence_psd(self, atm: AtmosphereProfile, k, lam_sci: float, sec_zeta: float = 1.0):
        """
        Total phase PSD at the science wavelength, before any component split.

        The spectrum is referenced to ``lam_0`` and scales as (lam_0/lam_sci)²;
        the turbulence integral scales with the airmass sec(zeta).
        """
        return (von_karman_psd(k, atm.r0, atm.L0)
                * sec_zeta * (atm.lam_0 / lam_sci) ** 2)

    def layer_factors(
        self,
        atm: AtmosphereProfile,
        k,
        lam_sci: float,
        lam_wfs: float,
        sec_zeta: float = 1.0,
        component: Optional[PSDComponent] = None,
    ) -> np.ndarray:
        """
        Per-layer multiplicative factor applied to the phase PSD.

        Returns:
            Array of shape (n_layers,) + k.shape
        """
        component = self.component if component is None else PSDComponent.parse(component)
        k = np.asarray(k, dtype=np.float64)
        shape = (atm.n_layers,) + k.shape

        if component is PSDComponent.PHASE:
            if not self.scintillation:
                return np.ones(shape)
            args = [fresnel_argument(k, z, lam_sci, sec_zeta) for z in atm.altitudes]
            return np.cos(args) ** 2

        if component is PSDComponent.AMPLITUDE:
            if not self.scintillation:
                return np.zeros(shape)
            args = [fresnel_argument(k, z, lam_sci, sec_zeta) for z in atm.altitudes]
            return np.sin(args) ** 2

        sci = np.array([fresnel_argument(k, z, lam_sci, sec_zeta) for z in atm.altitudes])
        wfs = np.array([fresnel_argument(k, z, lam_wfs, sec_zeta) for z in atm.altitudes])
        if component is PSDComponent.DISP_PHASE:
            return (np.cos(sci) - np.cos(wfs)) ** 2
        return (np.sin(sci) - np.sin(wfs)) ** 2

    def __call__(
        self,
        atm: AtmosphereProfile,
        k,
        lam_sci: float,
        lam_wfs: Optional[float] = None,
        sec_zeta: float = 1.0,
        component: Optional[PSDComponent] = None,
        layer: Optional[int] = None,
    ):
        """
        Spatial PSD at frequency magnitude ``k``.

        Args:
            atm: Atmosphere profile
            k: Spatial frequency magnitude (cycles/m), scalar or array
            lam_sci: Science wavelength (m)
            lam_wfs: Sensing wavelength (m), used by the dispersion components
            sec_zeta: Airmass
            component: Physical component (defaults to the model's)
            layer: Return only this layer's weighted contribution

        Returns:
            PSD (rad^2 m^2), same shape as ``k``
        """
        lam_wfs = lam_sci if lam_wfs is None else lam_wfs
        factors = self.layer_factors(atm, k, lam_sci, lam_wfs, sec_zeta, component)
        weights = atm.weights.reshape((-1,) + (1,) * (factors.ndim - 1))
        weighted = weights * factors
        phi = self.turbulence_psd(atm, k, lam_sci, sec_zeta)
        if layer is not None:
            return phi * weighted[layer]
        return phi * weighted.sum(axis=0)

    def mode_variance(
        self,
        atm: AtmosphereProfile,
        m,
        n,
        D: float,
        lam_sci: float,
        lam_wfs: Optional[float] = None,
        sec_zeta: float = 1.0,
        component: Optional[PSDComponent] = None,
    ):
        """
        Variance carried by Fourier mode(s) (m, n): Φ(|k|)/D².

        Piston (0, 0) carries nothing; with tip/tilt subtraction the four
        modes with m² + n² = 1 are removed as well.
        """
        m = np.asarray(m)
        n = np.asarray(n)
        k = mode_frequency(m, n, D)
        var = self(atm, k, lam_sci, lam_wfs, sec_zeta, component) / D**2

        r2 = m**2 + n**2
        var = np.where(r2 == 0, 0.0, var)
        if self.sub_tip_tilt:
            var = np.where(r2 == 1, 0.0, var)
        return var
