"""
Calibration package — bracketed root finding shared by the correlation
calibrations.
"""

from .solver import solve, solver_tolerances

__all__ = [
    "solve",
    "solver_tolerances",
]
