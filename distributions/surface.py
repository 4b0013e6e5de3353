"""
Distribution surface — values on a (date × loss level × group) grid.

A group is a scenario or quadrature node; plain baskets use a single group.
Values are either cumulative probabilities P(L <= x) or expected loss amounts
E[min(L, x)], non-decreasing in the level for a fixed date.

Coordinates are fixed with ``set_as_of`` / ``set_date`` / ``set_level`` before
the kernel writes into ``values``. Interpolation is linear in time (days from
the as-of date) and then linear in level, flat outside the grid.
"""

from __future__ import annotations

import copy
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd


class Surface:
    def __init__(self, as_of: Optional[pd.Timestamp] = None):
        self.as_of = None if as_of is None else pd.Timestamp(as_of)
        self.dates: List[pd.Timestamp] = []
        self.levels = np.zeros(0, dtype=float)
        self.values = np.zeros((0, 0, 1), dtype=float)

    # ------------------------------------------------------------------
    # Shape and coordinates
    # ------------------------------------------------------------------

    @classmethod
    def allocate(
        cls,
        as_of: pd.Timestamp,
        dates: Sequence[pd.Timestamp],
        levels: Sequence[float],
        n_groups: int = 1,
    ) -> "Surface":
        """A zero surface with its coordinates already set."""
        surface = cls(as_of)
        surface.initialize(len(dates), len(levels), n_groups)
        surface.set_dates(dates)
        surface.set_levels(levels)
        return surface

    def initialize(self, n_dates: int, n_levels: int, n_groups: int = 1) -> None:
        self.dates = [pd.NaT] * n_dates
        self.levels = np.zeros(n_levels, dtype=float)
        self.values = np.zeros((n_dates, n_levels, n_groups), dtype=float)

    @property
    def num_dates(self) -> int:
        return self.values.shape[0]

    @property
    def num_levels(self) -> int:
        return self.values.shape[1]

    @property
    def num_groups(self) -> int:
        return self.values.shape[2]

    def set_as_of(self, as_of: pd.Timestamp) -> None:
        self.as_of = pd.Timestamp(as_of)

    def set_date(self, i: int, date: pd.Timestamp) -> None:
        self.dates[i] = pd.Timestamp(date)

    def set_dates(self, dates: Sequence[pd.Timestamp]) -> None:
        for i, d in enumerate(dates):
            self.set_date(i, d)

    def set_level(self, j: int, level: float) -> None:
        self.levels[j] = level

    def set_levels(self, levels: Sequence[float]) -> None:
        self.levels[:] = np.asarray(levels, dtype=float)

    def get_value(self, i: int, j: int, group: int = 0) -> float:
        return float(self.values[i, j, group])

    def _times(self) -> np.ndarray:
        return np.array([(d - self.as_of).days for d in self.dates], dtype=float)

    # ------------------------------------------------------------------
    # Interpolation
    # ------------------------------------------------------------------

    def _date_weights(self, date: pd.Timestamp) -> List[Tuple[int, float]]:
        if self.num_dates == 0:
            raise ValueError("Surface has not been initialized.")
        times = self._times()
        t = float((pd.Timestamp(date) - self.as_of).days)
        if self.num_dates == 1 or t <= times[0]:
            return [(0, 1.0)]
        if t >= times[-1]:
            return [(self.num_dates - 1, 1.0)]
        k = int(np.searchsorted(times, t, side="right"))
        w = (t - times[k - 1]) / (times[k] - times[k - 1])
        return [(k - 1, 1.0 - w), (k, w)]

    def interpolate(
        self,
        date: pd.Timestamp,
        level: float,
        level_hi: Optional[float] = None,
        group: int = 0,
    ) -> float:
        """
        Value at (date, level), or the area between ``level`` and ``level_hi``.

        The two-level form differences each date row before mixing the rows,
        which keeps thin tranches free of cancellation between dates.
        """
        total = 0.0
        for i, w in self._date_weights(date):
            row = self.values[i, :, group]
            if level_hi is None:
                v = np.interp(level, self.levels, row)
            else:
                v = np.interp(level_hi, self.levels, row) - np.interp(level, self.levels, row)
            total += w * v
        return float(total)

    def curve_at(self, date: pd.Timestamp, group: int = 0) -> np.ndarray:
        """The level curve at ``date`` (interpolated in time)."""
        out = np.zeros(self.num_levels, dtype=float)
        for i, w in self._date_weights(date):
            out += w * self.values[i, :, group]
        return out

    # ------------------------------------------------------------------
    # Resize / copy
    # ------------------------------------------------------------------

    def resize_by_dates(self, new_count: int, preserve_count: int) -> None:
        """Keep the first ``preserve_count`` date rows and zero the rest."""
        preserve_count = max(0, min(preserve_count, self.num_dates, new_count))
        values = np.zeros((new_count, self.num_levels, self.num_groups), dtype=float)
        values[:preserve_count] = self.values[:preserve_count]
        self.values = values
        self.dates = self.dates[:preserve_count] + [pd.NaT] * (new_count - preserve_count)

    def clone(self) -> "Surface":
        return copy.deepcopy(self)
