"""
Engine configuration.

Numerical settings are passed explicitly to every basket strategy; nothing is
read from process-wide state at computation time. ``EngineConfig.from_env``
builds a config from environment variables prefixed with ``TRANCHE_``:

TRANCHE_QUADRATURE_POINTS : int
    Gauss-Hermite nodes for the factor integration (default 25).
TRANCHE_SAMPLE_SIZE : int
    Monte Carlo paths (default 10000).
TRANCHE_SEED : int
    Monte Carlo seed, negative means draw one from the system (default 0).
TRANCHE_LOG_LEVEL : str
    Logging level (DEBUG, INFO, WARNING, ERROR).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any

from .schema import TimeUnit

ENV_PREFIX = "TRANCHE_"


def _get_env(key: str, default: Any, value_type: type = str) -> Any:
    """
    Get an environment variable with type conversion.

    Parameters
    ----------
    key : str
        Variable name without the ``TRANCHE_`` prefix.
    default : Any
        Value used when the variable is not set.
    value_type : type
        One of str, int, float, bool.
    """
    value = os.environ.get(f"{ENV_PREFIX}{key}")
    if value is None:
        return default
    if value_type is bool:
        return value.lower() in ("true", "1", "yes", "on")
    if value_type is TimeUnit:
        return TimeUnit(value.upper())
    try:
        return value_type(value)
    except ValueError as exc:
        raise ValueError(f"Invalid value for {ENV_PREFIX}{key}: {value!r}") from exc


@dataclass(frozen=True)
class EngineConfig:
    # factor integration
    quadrature_points: int = 25
    # loss lattice bucket size as a fraction of the pool; 0 picks it from the principals
    grid_size: float = 0.0
    effective_digits: int = 8

    # Monte Carlo
    sample_size: int = 10000
    seed: int = 0

    # opaque capability flag handed to the kernels
    parallel: bool = False

    # price fee legs on the original notional instead of the surviving one
    use_original_notional: bool = False

    # calibration
    max_solver_evaluations: int = 200

    default_step_size: int = 3
    default_step_unit: TimeUnit = TimeUnit.MONTHS

    log_level: str = "WARNING"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    def __post_init__(self):
        if self.quadrature_points < 1:
            raise ValueError("quadrature_points must be positive.")
        if self.sample_size < 1:
            raise ValueError("sample_size must be positive.")
        if not 0 < self.effective_digits <= 15:
            raise ValueError("effective_digits must be in (0, 15].")
        if self.grid_size < 0.0:
            raise ValueError("grid_size cannot be negative.")

    @classmethod
    def from_env(cls, **overrides) -> "EngineConfig":
        values = {}
        for f in fields(cls):
            default = f.default
            values[f.name] = _get_env(f.name.upper(), default, type(default))
        values.update(overrides)
        return cls(**values)

    def with_seed(self, seed: int) -> "EngineConfig":
        return replace(self, seed=seed)

    @property
    def log_level_int(self) -> int:
        return getattr(logging, self.log_level.upper(), logging.WARNING)

    def configure_logging(self) -> None:
        """Set up root logging from the configured level and format."""
        logging.basicConfig(level=self.log_level_int, format=self.log_format)
