"""
Layered turbulence profile.

The profile stores each layer's turbulence strength as a relative weight
together with the aggregate Fried parameter r0 referenced to ``lam_0``. The
absolute per-layer Cn2·dz values are always derived from those two, so the
layer strengths and r0 cannot drift apart: changing one side rebuilds the
profile with the other recomputed at the stored reference wavelength.

Profiles are immutable; every ``with_*`` method returns a new profile.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Sequence, Tuple

import numpy as np

from ..errors import ConfigurationError


# Cn2 integral to r0: r0^(-5/3) = 0.423 k^2 sec(zeta) * sum(Cn2 dz)
CN2_TO_R0 = 0.423


# =============================================================================
# Atmospheric Layer Model
# =============================================================================

@dataclass(frozen=True)
class AtmosphereLayer:
    """
    Single turbulent atmospheric layer.

    Attributes:
        Cn2: Relative turbulence strength (normalized over the profile)
        altitude: Height above telescope (meters)
        wind_speed: Wind velocity magnitude (m/s)
        wind_direction: Wind direction (radians, 0 = +x axis)
    """
    Cn2: float
    altitude: float = 0.0
    wind_speed: float = 10.0
    wind_direction: float = 0.0

    def __post_init__(self):
        if self.Cn2 < 0:
            raise ConfigurationError(f"Layer Cn2 must be non-negative, got {self.Cn2}")
        if self.altitude < 0:
            raise ConfigurationError(f"Layer altitude must be non-negative, got {self.altitude}")
        if self.wind_speed < 0:
            raise ConfigurationError(f"Layer wind speed must be non-negative, got {self.wind_speed}")

    @property
    def wind_velocity(self) -> Tuple[float, float]:
        """Return (vx, vy) wind velocity components."""
        return (
            self.wind_speed * math.cos(self.wind_direction),
            self.wind_speed * math.sin(self.wind_direction)
        )


@dataclass(frozen=True)
class AtmosphereProfile:
    """
    Multi-layer atmospheric turbulence profile.

    Attributes:
        layers: Ordered AtmosphereLayer tuple
        r0: Fried parameter at ``lam_0`` (meters)
        L0: Outer scale of turbulence (meters)
        lam_0: Reference wavelength for r0 (meters)
    """
    layers: Tuple[AtmosphereLayer, ...]
    r0: float = 0.15
    L0: float = 25.0
    lam_0: float = 0.5e-6

    def __post_init__(self):
        object.__setattr__(self, 'layers', tuple(self.layers))
        if len(self.layers) == 0:
            raise ConfigurationError("Atmosphere needs at least one layer")
        if sum(layer.Cn2 for layer in self.layers) <= 0:
            raise ConfigurationError("Total layer Cn2 must be positive")
        if self.r0 <= 0:
            raise ConfigurationError(f"r0 must be positive, got {self.r0}")
        if self.L0 <= 0:
            raise ConfigurationError(f"L0 must be positive, got {self.L0}")
        if self.lam_0 <= 0:
            raise ConfigurationError(f"lam_0 must be positive, got {self.lam_0}")

    @classmethod
    def from_vectors(
        cls,
        Cn2: Sequence[float],
        altitudes: Sequence[float],
        wind_speeds: Sequence[float],
        wind_directions: Sequence[float],
        r0: float = 0.15,
        L0: float = 25.0,
        lam_0: float = 0.5e-6,
    ) -> 'AtmosphereProfile':
        """Build a profile from per-layer vectors, which must share one length."""
        lengths = {
            'layer_Cn2': len(Cn2),
            'layer_z': len(altitudes),
            'layer_v_wind': len(wind_speeds),
            'layer_dir': len(wind_directions),
        }
        if len(set(lengths.values())) != 1:
            raise ConfigurationError(f"Atmosphere layer vectors differ in length: {lengths}")

        layers = tuple(
            AtmosphereLayer(float(c), float(z), float(v), float(d))
            for c, z, v, d in zip(Cn2, altitudes, wind_speeds, wind_directions)
        )
        return cls(layers=layers, r0=r0, L0=L0, lam_0=lam_0)

    # -------------------------------------------------------------------------
    # Per-layer vectors
    # -------------------------------------------------------------------------

    @property
    def n_layers(self) -> int:
        return len(self.layers)

    @property
    def weights(self) -> np.ndarray:
        """Fractional turbulence strength of every layer (sums to one)."""
        cn2 = np.array([layer.Cn2 for layer in self.layers], dtype=np.float64)
        return cn2 / cn2.sum()

    @property
    def altitudes(self) -> np.ndarray:
        return np.array([layer.altitude for layer in self.layers], dtype=np.float64)

    @property
    def wind_speeds(self) -> np.ndarray:
        return np.array([layer.wind_speed for layer in self.layers], dtype=np.float64)

    @property
    def wind_directions(self) -> np.ndarray:
        return np.array([layer.wind_direction for layer in self.layers], dtype=np.float64)

    @property
    def layer_Cn2(self) -> np.ndarray:
        """
        Absolute per-layer Cn2·dz (m^(1/3)) implied by r0 at ``lam_0``.

        sum(Cn2 dz) = r0^(-5/3) / (0.423 (2π/lam_0)^2)
        """
        k0 = 2 * math.pi / self.lam_0
        total = self.r0 ** (-5/3) / (CN2_TO_R0 * k0**2)
        return self.weights * total

    # -------------------------------------------------------------------------
    # Integrated quantities
    # -------------------------------------------------------------------------

    @property
    def v_wind(self) -> float:
        """
        Turbulence-weighted mean wind speed (5/3 moment).

        v̄ = (Σ w_i v_i^(5/3))^(3/5)
        """
        return float(np.sum(self.weights * self.wind_speeds ** (5/3)) ** (3/5))

    @property
    def z_mean(self) -> float:
        """
        Turbulence-weighted mean altitude (5/3 moment).

        z̄ = (Σ w_i z_i^(5/3))^(3/5)
        """
        return float(np.sum(self.weights * self.altitudes ** (5/3)) ** (3/5))

    def r0_at_wavelength(self, wavelength: float) -> float:
        """
        Scale r0 to a different wavelength.

        r0(λ) = r0(λ_0) * (λ/λ_0)^(6/5)
        """
        return self.r0 * (wavelength / self.lam_0) ** (6/5)

    def isoplanatic_angle(self, wavelength: float) -> float:
        """Isoplanatic angle θ0 = 0.314 r0 / z̄ (radians)."""
        z = self.z_mean
        if z <= 0:
            return math.inf
        return 0.314 * self.r0_at_wavelength(wavelength) / z

    def coherence_time(self, wavelength: float) -> float:
        """Atmospheric coherence time τ0 = 0.314 r0 / v̄ (seconds)."""
        v = self.v_wind
        if v <= 0:
            return math.inf
        return 0.314 * self.r0_at_wavelength(wavelength) / v

    # -------------------------------------------------------------------------
    # Derived profiles
    # -------------------------------------------------------------------------

    def _check_length(self, values: Sequence[float], name: str):
        if len(values) != self.n_layers:
            raise ConfigurationError(
                f"{name} has {len(values)} entries but the profile has {self.n_layers} layers"
            )

    def with_layer_Cn2(self, Cn2: Sequence[float], lam_0: float = 0.0) -> 'AtmosphereProfile':
        """
        Replace the layer strengths.

        When ``lam_0`` is positive the values are taken as absolute Cn2·dz at
        that wavelength and r0 is recomputed from their sum. Otherwise they are
        relative strengths and r0 is kept.
        """
        self._check_length(Cn2, 'layer_Cn2')
        layers = tuple(replace(layer, Cn2=float(c)) for layer, c in zip(self.layers, Cn2))
        if lam_0 and lam_0 > 0:
            total = float(np.sum(Cn2))
            if total <= 0:
                raise ConfigurationError("Total layer Cn2 must be positive")
            k0 = 2 * math.pi / lam_0
            r0 = (CN2_TO_R0 * k0**2 * total) ** (-3/5)
            return replace(self, layers=layers, r0=r0, lam_0=lam_0)
        return replace(self, layers=layers)

    def with_r0(self, r0: float, lam_0: float = 0.0) -> 'AtmosphereProfile':
        """Set r0 (optionally at a new reference wavelength); layer Cn2 rescales."""
        if lam_0 and lam_0 > 0:
            return replace(self, r0=r0, lam_0=lam_0)
        return replace(self, r0=r0)

    def with_L0(self, L0: float) -> 'AtmosphereProfile':
        return replace(self, L0=L0)

    def with_lam_0(self, lam_0: float) -> 'AtmosphereProfile':
        """Move the reference wavelength, keeping the turbulence itself unchanged."""
        return replace(self, r0=self.r0_at_wavelength(lam_0), lam_0=lam_0)

    def with_layer_v_wind(self, speeds: Sequence[float]) -> 'AtmosphereProfile':
        self._check_length(speeds, 'layer_v_wind')
        layers = tuple(replace(layer, wind_speed=float(v)) for layer, v in zip(self.layers, speeds))
        return replace(self, layers=layers)

    def with_layer_dir(self, directions: Sequence[float]) -> 'AtmosphereProfile':
        self._check_length(directions, 'layer_dir')
        layers = tuple(replace(layer, wind_direction=float(d)) for layer, d in zip(self.layers, directions))
        return replace(self, layers=layers)

    def with_layer_z(self, altitudes: Sequence[float]) -> 'AtmosphereProfile':
        self._check_length(altitudes, 'layer_z')
        layers = tuple(replace(layer, altitude=float(z)) for layer, z in zip(self.layers, altitudes))
        return replace(self, layers=layers)

    def with_v_wind(self, v_wind: float) -> 'AtmosphereProfile':
        """
        Rescale every layer's wind speed by v_wind / v̄.

        Layer weights and directions are untouched.
        """
        current = self.v_wind
        if current <= 0:
            raise ConfigurationError("Cannot rescale mean wind speed of a profile with no wind")
        factor = v_wind / current
        return self.with_layer_v_wind([layer.wind_speed * factor for layer in self.layers])

    def with_z_mean(self, z_mean: float) -> 'AtmosphereProfile':
        """Rescale every layer's altitude by z_mean / z̄."""
        current = self.z_mean
        if current <= 0:
            raise ConfigurationError("Cannot rescale mean altitude of a profile with all layers at the ground")
        factor = z_mean / current
        return self.with_layer_z([layer.altitude * factor for layer in self.layers])


def create_single_layer_atmosphere(
    r0: float = 0.15,
    wind_speed: float = 10.0,
    altitude: float = 0.0,
    wind_direction: float = 0.0,
    L0: float = 25.0,
    lam_0: float = 0.5e-6,
) -> AtmosphereProfile:
    """Convenience: a profile with one layer carrying all the turbulence."""
    return AtmosphereProfile(
        layers=(AtmosphereLayer(1.0, altitude, wind_speed, wind_direction),),
        r0=r0,
        L0=L0,
        lam_0=lam_0,
    )
