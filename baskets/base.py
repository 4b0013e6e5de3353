"""
The basket distribution interface.

A strategy answers three questions for a tranche [begin, end] of the
original pool:

    accumulated_loss(date, begin, end)    expected loss to date (fraction of pool)
    amortized_amount(date, begin, end)    expected amortization to date
    calc_loss_distribution(want_probability, date, levels)
                                          one-shot (level, value) table

and manages its cached surfaces through ``reset`` / ``clone`` /
``duplicate``:

    clone()      deep copy, cached surfaces included
    duplicate()  shares the static data and correlation, empty cache

Principal, curve and correlation setters swap in new objects (never mutate
shared ones) and reset the cache, so a duplicate can be reconfigured without
affecting the basket it came from.
"""

from __future__ import annotations

import copy
from dataclasses import replace
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from core.errors import ConfigurationError
from core.schema import ResetFlag
from distributions.correlation import Correlation
from distributions.lazy import LazySurface

from .data import BasketData


class BasketDistribution:
    """Interface for tranche loss/amortization distributions."""

    def __init__(self, data: BasketData, correlation: Optional[Correlation]):
        if correlation is None:
            raise ConfigurationError(f"{type(self).__name__} requires a correlation object.")
        self.data = data
        self._correlation = correlation
        self._lazy = LazySurface(type(self).__name__)

    # ------------------------------------------------------------------
    # Interface
    # ------------------------------------------------------------------

    def accumulated_loss(self, date: pd.Timestamp, begin: float, end: float) -> float:
        raise NotImplementedError

    def amortized_amount(self, date: pd.Timestamp, begin: float, end: float) -> float:
        raise NotImplementedError

    def calc_loss_distribution(
        self, want_probability: bool, date: pd.Timestamp, levels: Sequence[float]
    ) -> np.ndarray:
        raise NotImplementedError

    def reset(self, flag: Optional[ResetFlag] = None) -> None:
        """
        Invalidate the cached distribution.

        A pure ``ResetFlag.SETTLE`` only moves the as-of coordinate of the
        cached surfaces; anything else discards them.
        """
        if flag == ResetFlag.SETTLE:
            self._lazy.rebase(self.data.as_of)
        else:
            self._lazy.reset()

    def clone(self) -> "BasketDistribution":
        return copy.deepcopy(self)

    def duplicate(self) -> "BasketDistribution":
        dup = copy.copy(self)
        dup._lazy = LazySurface(self._lazy.label)
        return dup

    # ------------------------------------------------------------------
    # Shared data
    # ------------------------------------------------------------------

    @property
    def computed(self) -> bool:
        return self._lazy.computed

    @property
    def as_of(self) -> pd.Timestamp:
        return self.data.as_of

    @as_of.setter
    def as_of(self, value: pd.Timestamp) -> None:
        # callers follow up with reset(ResetFlag.SETTLE) or a full reset
        self.data = replace(self.data, as_of=value)

    @property
    def settle(self) -> pd.Timestamp:
        return self.data.settle

    @property
    def maturity(self) -> pd.Timestamp:
        return self.data.maturity

    @maturity.setter
    def maturity(self, value: pd.Timestamp) -> None:
        self.data = replace(self.data, maturity=value)
        self.reset()

    @property
    def portfolio_start(self) -> pd.Timestamp:
        return self.data.start

    @property
    def time_grid(self) -> List[pd.Timestamp]:
        return self.data.time_grid

    @property
    def total_principal(self) -> float:
        return self.data.total_principal

    @property
    def names(self) -> List[str]:
        return self.data.pool.name_list

    @property
    def principals(self) -> np.ndarray:
        return self.data.pool.principal_array

    @principals.setter
    def principals(self, value) -> None:
        self.data = self.data.with_pool(principals=value)
        self.reset()

    @property
    def survival_curves(self) -> list:
        return list(self.data.pool.survival_curves)

    @survival_curves.setter
    def survival_curves(self, value) -> None:
        self.data = self.data.with_pool(survival_curves=list(value))
        self.reset()

    @property
    def recovery_curves(self) -> list:
        return list(self.data.pool.recovery_curves)

    @recovery_curves.setter
    def recovery_curves(self, value) -> None:
        self.data = self.data.with_pool(recovery_curves=list(value))
        self.reset(ResetFlag.RECOVERY)

    @property
    def correlation(self) -> Correlation:
        return self._correlation

    @correlation.setter
    def correlation(self, value: Correlation) -> None:
        if value is None:
            raise ConfigurationError(f"{type(self).__name__} requires a correlation object.")
        self._correlation = value
        self.reset(ResetFlag.CORRELATION)

    def set_factor(self, factor: float) -> None:
        """Set the single factor loading on a private copy of the correlation."""
        correlation = self._correlation.copy()
        if not hasattr(correlation, "set_factor"):
            raise ConfigurationError(
                f"{type(correlation).__name__} has no single factor to set."
            )
        correlation.set_factor(factor)
        self.correlation = correlation

    def add_levels(self, levels: Sequence[float]) -> None:
        """Make sure the distribution is built on these raw levels."""
        data = self.data.with_levels(levels)
        if data.loss_levels != self.data.loss_levels:
            self.data = data
            self.reset()

    def apply_config(self, other: "BasketDistribution") -> None:
        """Push this basket's static data and correlation onto ``other``."""
        other.data = self.data
        other.correlation = self._correlation

    # ------------------------------------------------------------------
    # Sensitivities
    # ------------------------------------------------------------------

    def bumped_pvs(self, pricers: Sequence, bumped_curves: Sequence) -> np.ndarray:
        """
        Tranche PVs with one survival curve replaced at a time.

        Returns an array (1 + len(bumped_curves), len(pricers)); row 0 is the
        unbumped PV, row i + 1 has curve i replaced by ``bumped_curves[i]``
        (``None`` leaves it unbumped).
        """
        base = np.array([p.pv() for p in pricers], dtype=float)
        out = np.tile(base, (len(bumped_curves) + 1, 1))
        work = self.duplicate()
        curves = self.survival_curves
        for i, bumped in enumerate(bumped_curves):
            if bumped is None:
                continue
            work.survival_curves = curves[:i] + [bumped] + curves[i + 1:]
            out[i + 1] = [p.with_basket(work).pv() for p in pricers]
        return out
