"""
Quadrature baskets — one-factor copula integrated over Gauss-Hermite nodes.

SemiAnalyticBasket carries recovery dispersion (two-point recoveries);
AnalyticBasket uses the point recoveries only. Both fill the surface date by
date, so a bootstrap caller can ask for only a suffix of the grid to be
recomputed with ``set_recalculation_start``.
"""

from __future__ import annotations

import logging
from typing import Dict, Sequence

import numpy as np
import pandas as pd

from core.schema import Copula
from distributions.correlation import factor_array
from distributions.surface import Surface
from models.semi_analytic import PoolAmounts, QuadratureKernel

from .base import BasketDistribution

logger = logging.getLogger(__name__)


class SemiAnalyticBasket(BasketDistribution):
    use_dispersion = True

    # ------------------------------------------------------------------
    # Kernel inputs
    # ------------------------------------------------------------------

    def kernel(self, copula: Copula = None) -> QuadratureKernel:
        cfg = self.data.config
        return QuadratureKernel(
            copula or self.data.copula, cfg.quadrature_points, cfg.grid_size, cfg.parallel
        )

    def pool_amounts(self) -> PoolAmounts:
        data = self.data
        active = data.active
        dispersions = data.dispersions[active] if self.use_dispersion else None
        return PoolAmounts.build(data.pool.principal_array[active], data.recoveries[active], dispersions)

    def factors(self, dates: Sequence[pd.Timestamp]) -> np.ndarray:
        n = self.data.pool.size
        active = self.data.active
        return np.stack([factor_array(self.correlation, d, n)[active] for d in dates])

    def level_amounts(self, levels: np.ndarray) -> np.ndarray:
        return np.asarray(levels, dtype=float) * self.data.level_scale

    # ------------------------------------------------------------------
    # Lazy surfaces
    # ------------------------------------------------------------------

    def _build(self) -> Dict[str, Surface]:
        grid = self.time_grid
        levels = self.data.cooked_levels
        return {
            key: Surface.allocate(self.as_of, grid, levels)
            for key in ("loss", "amortization")
        }

    def _fill(self, surfaces: Dict[str, Surface], start: int) -> None:
        grid = self.time_grid
        levels = self.data.cooked_levels
        loss, amor = self.kernel().compute(
            self.data.default_probabilities(grid),
            self.factors(grid),
            self.pool_amounts(),
            self.level_amounts(levels),
            self.data.level_scale,
            want_probability=False,
            start=start,
        )
        for key, values in (("loss", loss), ("amortization", amor)):
            surface = surfaces[key]
            for i in range(start, len(grid)):
                surface.set_date(i, grid[i])
            surface.values[start:, :, 0] = values

    def surfaces(self) -> Dict[str, Surface]:
        return self._lazy.get(self._build, self._fill)

    def set_recalculation_start(self, date: pd.Timestamp) -> int:
        """
        Keep the grid rows before ``date`` and recompute the rest on the next
        read. Returns the first recomputed index.
        """
        grid = self.time_grid
        date = pd.Timestamp(date)
        index = next((i for i, d in enumerate(grid) if d >= date), len(grid) - 1)
        self._lazy.set_recalculation_start(index, len(grid))
        return index

    @property
    def recalculation_start_index(self) -> int:
        return self._lazy.recalc_start_index

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
        """
        (level, value) rows at one date for original-pool levels.

        Values are P(pool loss <= level) or the expected loss of the [0, level]
        tranche as a fraction of the original pool.
        """
        data = self.data
        date = data.check_date(date)
        adjuster = data.adjuster
        levels = [data.round_level(x) for x in levels]
        adjusted = np.array([adjuster.adjust_level(False, x) for x in levels])
        loss, _ = self.kernel().compute(
            data.default_probabilities([date]),
            self.factors([date]),
            self.pool_amounts(),
            self.level_amounts(adjusted),
            data.level_scale,
            want_probability=want_probability,
        )
        values = loss[0]
        if not want_probability:
            values = np.array([
                min(x, adjuster.prev_loss) + v / data.total_principal
                for x, v in zip(levels, values)
            ])
        else:
            # levels below the realized loss cannot be reached
            values = np.where(np.array(levels) < adjuster.prev_loss, 0.0, values)
        return np.column_stack([levels, values])


class AnalyticBasket(SemiAnalyticBasket):
    """Quadrature basket with point recoveries."""

    use_dispersion = False
