"""
Static basket data shared by every strategy.

``BasketData`` is immutable: strategies that ``duplicate()`` share it by
reference, and a strategy that changes its principals or curves swaps in a
modified copy (``with_pool`` / ``with_levels``) instead of touching the shared
one. Everything derived from it (time grid, cooked levels, names removed by
prior defaults) is computed once and cached on the instance.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from functools import cached_property
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from core.config import EngineConfig
from core.errors import DomainError
from core.levels import TrancheLevelAdjuster
from core.schema import Copula, TimeUnit
from core.utils import build_date_grid, round_loss_level

from .pool import CreditPool


@dataclass(frozen=True)
class BasketData:
    as_of: pd.Timestamp
    settle: pd.Timestamp
    maturity: pd.Timestamp
    pool: CreditPool
    copula: Copula = field(default_factory=Copula)
    config: EngineConfig = field(default_factory=EngineConfig)
    step_size: int = 0
    step_unit: Optional[TimeUnit] = None
    # raw loss levels requested by pricers, as fractions of the original pool
    loss_levels: Tuple[float, ...] = (0.0, 1.0)
    add_complement: bool = True
    portfolio_start: Optional[pd.Timestamp] = None
    extra_grid_dates: Tuple[pd.Timestamp, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "as_of", pd.Timestamp(self.as_of))
        object.__setattr__(self, "settle", pd.Timestamp(self.settle))
        object.__setattr__(self, "maturity", pd.Timestamp(self.maturity))
        if self.portfolio_start is not None:
            object.__setattr__(self, "portfolio_start", pd.Timestamp(self.portfolio_start))
        object.__setattr__(self, "loss_levels", tuple(float(x) for x in self.loss_levels))
        if self.maturity < self.start:
            raise DomainError("Maturity is before the portfolio start.")

    # ------------------------------------------------------------------
    # Modified copies
    # ------------------------------------------------------------------

    def with_pool(self, **changes) -> "BasketData":
        return replace(self, pool=self.pool.replace(**changes))

    def with_levels(self, levels: Sequence[float]) -> "BasketData":
        merged = tuple(sorted(set(self.loss_levels).union(float(x) for x in levels)))
        return replace(self, loss_levels=merged)

    # ------------------------------------------------------------------
    # Time grid
    # ------------------------------------------------------------------

    @property
    def start(self) -> pd.Timestamp:
        return self.portfolio_start if self.portfolio_start is not None else self.settle

    @cached_property
    def time_grid(self) -> List[pd.Timestamp]:
        step_size = self.step_size
        step_unit = self.step_unit
        if step_size <= 0 or step_unit is None:
            step_size, step_unit = self.config.default_step_size, self.config.default_step_unit
        return build_date_grid(self.start, self.maturity, step_size, step_unit, self.extra_grid_dates)

    def check_date(self, date: pd.Timestamp) -> pd.Timestamp:
        date = pd.Timestamp(date)
        if date < self.start or date > self.maturity:
            raise DomainError(
                f"Date {date.date()} is outside [{self.start.date()}, {self.maturity.date()}]."
            )
        return date

    # ------------------------------------------------------------------
    # Names and prior defaults
    # ------------------------------------------------------------------

    @cached_property
    def defaulted(self) -> np.ndarray:
        """Names that defaulted on or before the portfolio start."""
        return np.array([c.defaulted_before(self.start) for c in self.pool.survival_curves])

    @cached_property
    def active(self) -> np.ndarray:
        return np.flatnonzero(~self.defaulted & (self.pool.principal_array != 0.0))

    @property
    def total_principal(self) -> float:
        return float(self.pool.principal_array.sum())

    @cached_property
    def recoveries(self) -> np.ndarray:
        return np.array([r.interpolate(self.start) for r in self.pool.recovery_curves], dtype=float)

    @cached_property
    def dispersions(self) -> np.ndarray:
        return np.array([r.dispersion for r in self.pool.recovery_curves], dtype=float)

    @cached_property
    def adjuster(self) -> TrancheLevelAdjuster:
        total = self.total_principal
        principals = self.pool.principal_array
        d = self.defaulted
        prev_loss = float((principals[d] * (1.0 - self.recoveries[d])).sum() / total)
        prev_amor = float((principals[d] * self.recoveries[d]).sum() / total)
        return TrancheLevelAdjuster(prev_loss, prev_amor, self.config.use_original_notional)

    @property
    def remaining_principal(self) -> float:
        return float(self.pool.principal_array[self.active].sum())

    @property
    def level_scale(self) -> float:
        """Currency amount of one unit of surface level."""
        if self.config.use_original_notional:
            return self.total_principal
        return self.remaining_principal

    @cached_property
    def cooked_levels(self) -> np.ndarray:
        return np.array(
            self.adjuster.cook_loss_levels(
                self.loss_levels, self.config.effective_digits, self.add_complement
            ),
            dtype=float,
        )

    def round_level(self, x: float) -> float:
        return round_loss_level(x, self.config.effective_digits)

    def default_probabilities(self, dates: Sequence[pd.Timestamp], curves=None) -> np.ndarray:
        """
        Default probabilities of the active names by each date, conditional on
        survival to the portfolio start. Shape (n_dates, n_active).
        """
        curves = self.pool.survival_curves if curves is None else curves
        active = [curves[i] for i in self.active]
        start = self.start
        out = np.zeros((len(dates), len(active)), dtype=float)
        for j, curve in enumerate(active):
            s0 = curve.interpolate(start)
            if s0 <= 0.0:
                out[:, j] = 1.0
                continue
            s = curve.survival_probabilities(dates)
            out[:, j] = np.clip(1.0 - s / s0, 0.0, 1.0)
        return out

    # ------------------------------------------------------------------
    # Reading a tranche off a surface
    # ------------------------------------------------------------------

    def tranche_value(
        self,
        surface,
        date: pd.Timestamp,
        begin: float,
        end: float,
        for_amortization: bool = False,
    ) -> float:
        """
        Tranche loss (or amortization) as a fraction of the original pool.

        The surface must hold E[min(X, x · level_scale)] on the cooked levels.
        """
        if begin > end:
            raise DomainError("Attachment cannot be greater than Detachment.")
        date = self.check_date(date)
        if for_amortization:
            begin, end = 1.0 - end, 1.0 - begin
        b, e, baseline = self.adjuster.adjust_levels(for_amortization, begin, end)
        b = self.round_level(b)
        e = self.round_level(e)
        value = baseline
        if e > b:
            value += surface.interpolate(date, b, e) / self.total_principal
        return min(max(value, 0.0), 1.0)
