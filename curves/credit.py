"""
Credit curves consumed by the basket strategies.

Survival curves carry a piecewise-constant hazard rate between tenor dates, so
survival interpolates log-linearly. A curve can be flagged as defaulted with a
default date; the basket removes such names when the default precedes the
portfolio start.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from core.utils import year_fraction


@dataclass(frozen=True)
class SurvivalCurve:
    as_of: pd.Timestamp
    # hazard_rates[k] applies up to tenors[k]; the last rate extends flat
    tenors: Tuple[pd.Timestamp, ...]
    hazard_rates: Tuple[float, ...]
    name: str = ""
    default_date: Optional[pd.Timestamp] = None

    def __post_init__(self):
        if not self.hazard_rates:
            raise ValueError("Survival curve needs at least one hazard rate.")
        if len(self.tenors) not in (len(self.hazard_rates), len(self.hazard_rates) - 1):
            raise ValueError("Tenors and hazard rates do not line up.")
        if any(h < 0 for h in self.hazard_rates):
            raise ValueError("Hazard rates must be non-negative.")
        times = [year_fraction(self.as_of, d) for d in self.tenors]
        if any(b <= a for a, b in zip(times, times[1:])):
            raise ValueError("Tenor dates must be strictly increasing.")

    @classmethod
    def from_hazard_rate(
        cls,
        as_of: pd.Timestamp,
        hazard_rate: float,
        name: str = "",
        default_date: Optional[pd.Timestamp] = None,
    ) -> "SurvivalCurve":
        return cls(
            as_of=pd.Timestamp(as_of),
            tenors=(),
            hazard_rates=(float(hazard_rate),),
            name=name,
            default_date=None if default_date is None else pd.Timestamp(default_date),
        )

    @classmethod
    def from_hazard_rates(
        cls,
        as_of: pd.Timestamp,
        tenors: Sequence[pd.Timestamp],
        hazard_rates: Sequence[float],
        name: str = "",
    ) -> "SurvivalCurve":
        return cls(
            as_of=pd.Timestamp(as_of),
            tenors=tuple(pd.Timestamp(d) for d in tenors),
            hazard_rates=tuple(float(h) for h in hazard_rates),
            name=name,
        )

    @property
    def defaulted(self) -> bool:
        return self.default_date is not None

    def defaulted_before(self, date: pd.Timestamp) -> bool:
        return self.default_date is not None and self.default_date <= pd.Timestamp(date)

    def integrated_hazard(self, date: pd.Timestamp) -> float:
        t = year_fraction(self.as_of, date)
        if t <= 0.0:
            return 0.0
        ih = 0.0
        t_prev = 0.0
        for tenor, lam in zip(self.tenors, self.hazard_rates):
            t_end = year_fraction(self.as_of, tenor)
            if t <= t_end:
                return ih + lam * (t - t_prev)
            ih += lam * max(t_end - t_prev, 0.0)
            t_prev = max(t_end, t_prev)
        return ih + self.hazard_rates[-1] * (t - t_prev)

    def interpolate(self, date: pd.Timestamp) -> float:
        """Survival probability to ``date``."""
        if self.defaulted_before(date):
            return 0.0
        return math.exp(-self.integrated_hazard(date))

    def survival_probabilities(self, dates: Sequence[pd.Timestamp]) -> np.ndarray:
        return np.array([self.interpolate(d) for d in dates], dtype=float)

    def default_probability(self, date: pd.Timestamp) -> float:
        return 1.0 - self.interpolate(date)

    def shifted(self, bump: float) -> "SurvivalCurve":
        """Same curve with every hazard rate moved by ``bump``."""
        return replace(self, hazard_rates=tuple(max(h + bump, 0.0) for h in self.hazard_rates))


@dataclass(frozen=True)
class RecoveryCurve:
    """Flat recovery rate with an optional dispersion (standard deviation)."""

    rate: float = 0.4
    dispersion: float = 0.0

    def __post_init__(self):
        if not 0.0 <= self.rate <= 1.0:
            raise ValueError("Recovery rate must be in [0, 1].")
        if self.dispersion < 0.0:
            raise ValueError("Recovery dispersion cannot be negative.")

    def interpolate(self, date: pd.Timestamp = None) -> float:
        return self.rate
