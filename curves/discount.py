from __future__ import annotations

import math
from dataclasses import dataclass

import pandas as pd

from core.utils import year_fraction


@dataclass(frozen=True)
class DiscountCurve:
    """Flat continuously compounded rate, P(t) = exp(-r t)."""

    as_of: pd.Timestamp
    rate: float = 0.0

    def interpolate(self, date: pd.Timestamp) -> float:
        t = year_fraction(self.as_of, date)
        if t <= 0.0:
            return 1.0
        return math.exp(-self.rate * t)

    def df(self, date: pd.Timestamp) -> float:
        return self.interpolate(date)
