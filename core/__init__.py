"""
Core package — enums, configuration, errors and shared grid/level utilities.
No pricing logic lives here.
"""

from .schema import Copula, CopulaType, ResetFlag, TimeUnit
from .config import EngineConfig
from .errors import (
    BasketError,
    ConfigurationError,
    CorrelationTypeError,
    DomainError,
    NonConvergenceError,
    ReentrantComputationError,
)
from .levels import TrancheLevelAdjuster
from .utils import add_period, build_date_grid, round_loss_level, year_fraction

__all__ = [
    "Copula",
    "CopulaType",
    "ResetFlag",
    "TimeUnit",
    "EngineConfig",
    "BasketError",
    "ConfigurationError",
    "CorrelationTypeError",
    "DomainError",
    "NonConvergenceError",
    "ReentrantComputationError",
    "TrancheLevelAdjuster",
    "add_period",
    "build_date_grid",
    "round_loss_level",
    "year_fraction",
]
