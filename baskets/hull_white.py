"""
Hull-White style dynamic jump basket.

The pool is reduced to a homogeneous one (average survival, average
recovery) so that losses and amortizations are proportional to the number
of defaults. Loss levels are read in default-count units by dividing them by
the loss rate, amortization levels by the average recovery.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.optimize import minimize

from core.errors import ConfigurationError, NonConvergenceError
from core.utils import year_fraction
from distributions.correlation import Correlation, SingleFactorCorrelation
from distributions.surface import Surface
from models.hull_white import JumpParameters, count_level_values, default_count_distribution

from .base import BasketDistribution
from .data import BasketData

logger = logging.getLogger(__name__)


class HullWhiteBasket(BasketDistribution):
    def __init__(
        self,
        data: BasketData,
        parameters: Optional[JumpParameters] = None,
        correlation: Optional[Correlation] = None,
    ):
        principals = data.pool.principal_array[data.active]
        if len(principals) and not np.allclose(principals, principals[0]):
            raise ConfigurationError("The jump model requires equal principals for all names.")
        if correlation is None:
            # the jump model carries its own dependence, the factor is unused
            correlation = SingleFactorCorrelation(data.pool.name_list, 0.0)
        super().__init__(replace(data, add_complement=False), correlation)
        self._parameters = parameters or JumpParameters()

    @property
    def parameters(self) -> JumpParameters:
        return self._parameters

    @parameters.setter
    def parameters(self, value: JumpParameters) -> None:
        self._parameters = value
        self.reset()

    # ------------------------------------------------------------------
    # Homogeneous pool
    # ------------------------------------------------------------------

    @property
    def average_recovery(self) -> float:
        active = self.data.active
        if len(active) == 0:
            return 0.0
        return float(self.data.recoveries[active].mean())

    def average_survival(self, dates: Sequence[pd.Timestamp]) -> np.ndarray:
        probs = self.data.default_probabilities(dates)
        if probs.shape[1] == 0:
            return np.ones(len(dates))
        return 1.0 - probs.mean(axis=1)

    def _rows(self, dates, levels, want_probability, start=0):
        data = self.data
        n_names = len(data.active)
        remaining = data.remaining_principal
        survival = self.average_survival(dates)
        recovery = self.average_recovery
        # levels as fractions of the remaining pool
        fractions = np.asarray(levels, dtype=float) * data.level_scale / remaining
        loss_rows, amor_rows = [], []
        for i in range(start, len(dates)):
            t = year_fraction(data.start, dates[i])
            pmf = default_count_distribution(n_names, survival[i], t, self._parameters)
            loss_rows.append(count_level_values(pmf, 1.0 - recovery, fractions, remaining, want_probability))
            amor_rows.append(count_level_values(pmf, recovery, fractions, remaining, want_probability))
        return np.array(loss_rows), np.array(amor_rows)

    # ------------------------------------------------------------------
    # Lazy surfaces
    # ------------------------------------------------------------------

    def _build(self) -> Dict[str, Surface]:
        grid = self.time_grid
        levels = self.data.cooked_levels
        return {key: Surface.allocate(self.as_of, grid, levels) for key in ("loss", "amortization")}

    def _fill(self, surfaces: Dict[str, Surface], start: int) -> None:
        grid = self.time_grid
        if len(self.data.active) == 0:
            return
        loss, amor = self._rows(grid, self.data.cooked_levels, False, start)
        for key, values in (("loss", loss), ("amortization", amor)):
            surface = surfaces[key]
            for i in range(start, len(grid)):
                surface.set_date(i, grid[i])
            surface.values[start:, :, 0] = values

    def surfaces(self) -> Dict[str, Surface]:
        return self._lazy.get(self._build, self._fill)

    def set_recalculation_start(self, date: pd.Timestamp) -> int:
        grid = self.time_grid
        date = pd.Timestamp(date)
        index = next((i for i, d in enumerate(grid) if d >= date), len(grid) - 1)
        self._lazy.set_recalculation_start(index, len(grid))
        return index

    # ------------------------------------------------------------------
    # Interface
    # ------------------------------------------------------------------

    def accumulated_loss(self, date: pd.Timestamp, begin: float, end: float) -> float:
        return self.data.tranche_value(self.surfaces()["loss"], date, begin, end)

    def amortized_amount(self, date: pd.Timestamp, begin: float, end: float) -> float:
        return self.data.tranche_value(
            self.surfaces()["amortization"], date, begin, end, for_amortization=True
        )

    def calc_loss_distribution(
        self, want_probability: bool, date: pd.Timestamp, levels: Sequence[float]
    ) -> np.ndarray:
        data = self.data
        date = data.check_date(date)
        adjuster = data.adjuster
        levels = [data.round_level(x) for x in levels]
        adjusted = np.array([adjuster.adjust_level(False, x) for x in levels])
        if len(data.active) == 0:
            values = np.ones(len(levels)) if want_probability else np.zeros(len(levels))
        else:
            loss, _ = self._rows([date], adjusted, want_probability)
            values = loss[0]
        if want_probability:
            values = np.where(np.array(levels) < adjuster.prev_loss, 0.0, values)
        else:
            values = np.minimum(levels, adjuster.prev_loss) + values / data.total_principal
        return np.column_stack([levels, values])

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------

    def implied_parameters(
        self,
        pricers: Sequence,
        target_pvs: Sequence[float],
        weights: Optional[Sequence[float]] = None,
        initial: Optional[JumpParameters] = None,
    ) -> JumpParameters:
        """
        Fit [gamma0, alpha, w] to tranche PVs by weighted least squares.

        The fitted parameters are left on the basket and returned. On failure
        the original parameters are restored.
        """
        targets = np.asarray(target_pvs, dtype=float)
        if len(pricers) != len(targets):
            raise ConfigurationError("One target PV per pricer is required.")
        weights = np.ones(len(targets)) if weights is None else np.asarray(weights, dtype=float)
        if len(weights) != len(targets):
            raise ConfigurationError("One weight per pricer is required.")
        bound = [p.with_basket(self) for p in pricers]

        def objective(x: np.ndarray) -> float:
            self.parameters = JumpParameters.from_vector(x)
            pvs = np.array([p.pv() for p in bound])
            return float((weights * (pvs - targets) ** 2).sum())

        original = self._parameters
        x0 = (initial or original).as_vector()
        fitted = None
        try:
            result = minimize(
                objective,
                x0,
                method="Nelder-Mead",
                options={"maxfev": 10 * self.data.config.max_solver_evaluations, "xatol": 1e-6, "fatol": 1e-12},
            )
            if not result.success:
                raise NonConvergenceError(f"Jump model calibration failed: {result.message}")
            fitted = JumpParameters.from_vector(result.x)
        finally:
            # a failed fit leaves the basket as it was
            self.parameters = original if fitted is None else fitted
        logger.debug("Implied jump parameters %s, objective %.3e", self.parameters, result.fun)
        return self.parameters
