"""
Monte Carlo basket — simulated default times binned onto the level grid.

The correlation can be any factor-style object or a general pairwise matrix.
A term-structure correlation is frozen at its value on the maturity date for
the whole simulation, since one draw drives every grid date.
"""

from __future__ import annotations

from typing import Dict, Sequence

import numpy as np
import pandas as pd

from distributions.correlation import GeneralCorrelation, correlation_matrix, factor_array
from distributions.surface import Surface
from models.monte_carlo import LatentDraws, MonteCarloKernel, sample_level_values

from .base import BasketDistribution


class MonteCarloBasket(BasketDistribution):
    def kernel(self) -> MonteCarloKernel:
        cfg = self.data.config
        return MonteCarloKernel(self.data.copula, cfg.sample_size, cfg.seed, cfg.quadrature_points)

    def draw(self, kernel: MonteCarloKernel) -> LatentDraws:
        data = self.data
        active = data.active
        n = data.pool.size
        date = data.maturity
        if isinstance(self.correlation, GeneralCorrelation):
            matrix = correlation_matrix(self.correlation, date, n)[np.ix_(active, active)]
            return kernel.draw(
                len(active), matrix=matrix,
                recoveries=data.recoveries[active], dispersions=data.dispersions[active],
            )
        factors = factor_array(self.correlation, date, n)[active]
        return kernel.draw(
            len(active), factors=factors,
            recoveries=data.recoveries[active], dispersions=data.dispersions[active],
        )

    def _build(self) -> Dict[str, Surface]:
        grid = self.time_grid
        levels = self.data.cooked_levels
        return {
            key: Surface.allocate(self.as_of, grid, levels)
            for key in ("loss", "amortization")
        }

    def _rows(self, dates, level_amounts, want_probability):
        data = self.data
        active = data.active
        kernel = self.kernel()
        draws = self.draw(kernel)
        principals = data.pool.principal_array[active]
        recoveries = data.recoveries[active]
        probs = data.default_probabilities(dates)
        loss_rows, amor_rows = [], []
        for i in range(len(dates)):
            mask = kernel.defaulted(draws, probs[i])
            loss, amor = kernel.pool_losses(draws, mask, principals, recoveries)
            loss_rows.append(sample_level_values(loss, level_amounts, want_probability))
            amor_rows.append(sample_level_values(amor, level_amounts, want_probability))
        return np.array(loss_rows), np.array(amor_rows)

    def _fill(self, surfaces: Dict[str, Surface], start: int) -> None:
        # one draw drives every date, so the whole grid is refilled
        levels = self.data.cooked_levels
        loss, amor = self._rows(self.time_grid, levels * self.data.level_scale, False)
        surfaces["loss"].values[:, :, 0] = loss
        surfaces["amortization"].values[:, :, 0] = amor

    def surfaces(self) -> Dict[str, Surface]:
        return self._lazy.get(self._build, self._fill)

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
        loss, _ = self._rows([date], adjusted * data.level_scale, want_probability)
        values = loss[0]
        if want_probability:
            values = np.where(np.array(levels) < adjuster.prev_loss, 0.0, values)
        else:
            values = np.minimum(levels, adjuster.prev_loss) + values / data.total_principal
        return np.column_stack([levels, values])
