"""
Distributions package — surfaces, lazy caching and correlation objects.

  surface.py      — (date × level × group) value grid with interpolation
  lazy.py         — compute-on-demand controller with suffix recompute
  correlation.py  — single-factor, general, term-structure, mixed and base correlations
"""

from .surface import Surface
from .lazy import LazySurface, SurfaceState
from .correlation import (
    BaseCorrelation,
    Correlation,
    CorrelationTermStruct,
    GeneralCorrelation,
    MixedCorrelation,
    SingleFactorCorrelation,
    StrikeMethod,
    correlation_matrix,
    factor_array,
    intersection_factors,
)

__all__ = [
    "Surface",
    "LazySurface",
    "SurfaceState",
    "BaseCorrelation",
    "Correlation",
    "CorrelationTermStruct",
    "GeneralCorrelation",
    "MixedCorrelation",
    "SingleFactorCorrelation",
    "StrikeMethod",
    "correlation_matrix",
    "factor_array",
    "intersection_factors",
]
