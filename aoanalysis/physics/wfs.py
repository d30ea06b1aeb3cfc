"""
Wavefront sensor noise sensitivity.

A sensor is a tag plus parameters; each tag maps to one pure function
β_p(m, n) giving the noise-propagation coefficient of spatial mode (m, n).
The measurement variance of a mode scales as β_p² / SNR².

New sensor types are added by decorating a sensitivity function with
``register_wfs``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Union

import numpy as np

from ..errors import ConfigurationError


class WFSType(str, Enum):
    """Available wavefront sensor variants."""
    IDEAL = 'ideal'
    UNMODULATED_PYRAMID = 'unmodPyWFS'
    ASYMPTOTIC_MODULATED_PYRAMID = 'asympModPyWFS'


# Names accepted in configuration files besides the enum values
WFS_ALIASES: Dict[str, WFSType] = {
    'idealWFS': WFSType.IDEAL,
    'unmodulated_pyramid': WFSType.UNMODULATED_PYRAMID,
    'modulated_pyramid': WFSType.ASYMPTOTIC_MODULATED_PYRAMID,
}


@dataclass(frozen=True)
class WFSModel:
    """
    Active wavefront sensor.

    Attributes:
        kind: Sensor variant
        modulation_radius: Pyramid modulation radius (λ/D), used by the
            modulated variant only
    """
    kind: WFSType = WFSType.IDEAL
    modulation_radius: float = 3.0

    def __post_init__(self):
        object.__setattr__(self, 'kind', parse_wfs_type(self.kind))
        if self.modulation_radius <= 0:
            raise ConfigurationError(
                f"Modulation radius must be positive, got {self.modulation_radius}"
            )

    @classmethod
    def from_name(cls, name: str, **kwargs) -> 'WFSModel':
        return cls(kind=parse_wfs_type(name), **kwargs)

    @property
    def name(self) -> str:
        return self.kind.value

    def beta_p(self, m, n):
        """Noise sensitivity of mode(s) (m, n); broadcasts over arrays."""
        return _SENSITIVITIES[self.kind](m, n, self)


# =============================================================================
# Sensitivity registry
# =============================================================================

_SENSITIVITIES: Dict[WFSType, Callable] = {}


def register_wfs(kind: WFSType):
    """
    Decorator to register a sensitivity function for a sensor variant.

    Usage:
        @register_wfs(WFSType.IDEAL)
        def ideal_beta_p(m, n, wfs):
            ...
    """
    def decorator(func: Callable):
        _SENSITIVITIES[kind] = func
        return func
    return decorator


def parse_wfs_type(value: Union[str, WFSType]) -> WFSType:
    """Resolve a sensor name; unknown names are a configuration error."""
    if isinstance(value, WFSType):
        return value
    if value in WFS_ALIASES:
        return WFS_ALIASES[value]
    try:
        return WFSType(value)
    except ValueError:
        raise ConfigurationError(
            f"Unknown WFS type: {value}. Available: {list_wfs()}"
        ) from None


def list_wfs() -> List[str]:
    """List registered sensor names."""
    return [kind.value for kind in _SENSITIVITIES]


@register_wfs(WFSType.IDEAL)
def ideal_beta_p(m, n, wfs: WFSModel):
    """Shot-noise-limited sensor: β_p = 1 for every mode."""
    return np.ones(np.broadcast(np.asarray(m), np.asarray(n)).shape)


@register_wfs(WFSType.UNMODULATED_PYRAMID)
def unmodulated_pyramid_beta_p(m, n, wfs: WFSModel):
    """Unmodulated pyramid: β_p = √2, independent of spatial frequency."""
    return math.sqrt(2) * ideal_beta_p(m, n, wfs)


@register_wfs(WFSType.ASYMPTOTIC_MODULATED_PYRAMID)
def asymptotic_modulated_pyramid_beta_p(m, n, wfs: WFSModel):
    """
    Modulated pyramid in the asymptotic regime.

    Inside the modulation radius the sensor behaves like a slope sensor and
    loses sensitivity linearly towards low spatial frequency; outside it
    matches the unmodulated pyramid.

    β_p = √2 · max(1, r_mod / √(m² + n²))

    Piston is evaluated as if it were at radius 1.
    """
    m = np.asarray(m, dtype=np.float64)
    n = np.asarray(n, dtype=np.float64)
    r = np.maximum(np.sqrt(m**2 + n**2), 1.0)
    return math.sqrt(2) * np.maximum(1.0, wfs.modulation_radius / r)
