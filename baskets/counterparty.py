"""
Counterparty risk on top of a quadrature basket.

The protection seller defaults with its own survival curve, correlated with
the names through the common factor. Loss is paid only while the
counterparty is alive; once it defaults, the tranche notional still
outstanding is treated as amortized.

Conditioning is skipped, and the inner basket answers unchanged, when there
is no counterparty curve, the correlation is NaN, or the pool carries
refinancing curves.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd

from core.errors import ConfigurationError, DomainError
from curves.credit import SurvivalCurve
from distributions.surface import Surface
from models.counterparty import conditional_survival, survival_weighted_values

from .base import BasketDistribution
from .semi_analytic import SemiAnalyticBasket

logger = logging.getLogger(__name__)


def counterparty_factor(rho: float) -> float:
    """Signed factor loading, -sqrt(-rho) for a negative correlation."""
    if rho < 0.0:
        return -math.sqrt(-rho)
    return math.sqrt(rho)


class CounterpartyBasket(BasketDistribution):
    def __init__(
        self,
        inner: BasketDistribution,
        counterparty_curve: Optional[SurvivalCurve] = None,
        counterparty_correlation: float = float("nan"),
    ):
        super().__init__(inner.data, inner.correlation)
        self.inner = inner
        self.counterparty_curve = counterparty_curve
        self.counterparty_correlation = float(counterparty_correlation)
        if not -1.0 <= self.counterparty_correlation <= 1.0 and not self.conditioning_skipped:
            raise DomainError("Counterparty correlation must lie in [-1, 1].")
        if self.counterparty_curve is not None and inner.data.pool.has_refinancing:
            logger.warning(
                "Pool has refinancing curves, counterparty risk is not applied to this basket."
            )
        if not self.conditioning_skipped and not isinstance(inner, SemiAnalyticBasket):
            raise ConfigurationError(
                f"Counterparty conditioning needs a quadrature basket, got {type(inner).__name__}."
            )

    @property
    def conditioning_skipped(self) -> bool:
        return (
            self.counterparty_curve is None
            or math.isnan(self.counterparty_correlation)
            or self.data.pool.has_refinancing
        )

    def counterparty_survival_probability(self, date: pd.Timestamp) -> float:
        """Probability that the counterparty survives from the portfolio start to ``date``."""
        if self.counterparty_curve is None:
            return 1.0
        date = self.data.check_date(date)
        s0 = self.counterparty_curve.interpolate(self.portfolio_start)
        if s0 <= 0.0:
            return 0.0
        return min(self.counterparty_curve.interpolate(date) / s0, 1.0)

    # ------------------------------------------------------------------
    # Configuration shared with the inner basket
    # ------------------------------------------------------------------

    def reset(self, flag=None) -> None:
        super().reset(flag)
        self.inner.data = self.data
        if self.inner.correlation is not self.correlation:
            self.inner.correlation = self.correlation
        else:
            self.inner.reset(flag)

    def duplicate(self) -> "CounterpartyBasket":
        dup = super().duplicate()
        dup.inner = self.inner.duplicate()
        return dup

    def set_recalculation_start(self, date: pd.Timestamp) -> int:
        grid = self.time_grid
        date = pd.Timestamp(date)
        index = next((i for i, d in enumerate(grid) if d >= date), len(grid) - 1)
        self._lazy.set_recalculation_start(index, len(grid))
        if hasattr(self.inner, "set_recalculation_start"):
            self.inner.set_recalculation_start(date)
        return index

    # ------------------------------------------------------------------
    # Conditioned surfaces
    # ------------------------------------------------------------------

    def _build(self) -> Dict[str, Surface]:
        grid = self.time_grid
        levels = self.data.cooked_levels
        n_nodes = self.data.config.quadrature_points
        return {
            "nodes": Surface.allocate(self.as_of, grid, levels, n_nodes),
            "loss": Surface.allocate(self.as_of, grid, levels),
        }

    def _fill(self, surfaces: Dict[str, Surface], start: int) -> None:
        inner = self.inner
        data = self.data
        grid = self.time_grid
        kernel = inner.kernel()
        node_loss, _ = kernel.compute(
            data.default_probabilities(grid),
            inner.factors(grid),
            inner.pool_amounts(),
            inner.level_amounts(data.cooked_levels),
            data.level_scale,
            want_probability=False,
            start=start,
            keep_nodes=True,
        )
        nodes = surfaces["nodes"]
        nodes.values[start:] = node_loss
        for i in range(start, len(grid)):
            nodes.set_date(i, grid[i])
            surfaces["loss"].set_date(i, grid[i])

        s0 = self.counterparty_curve.interpolate(data.start)
        cp_default = np.array([
            1.0 if s0 <= 0.0 else min(max(1.0 - self.counterparty_curve.interpolate(d) / s0, 0.0), 1.0)
            for d in grid
        ])
        survival = conditional_survival(
            cp_default,
            counterparty_factor(self.counterparty_correlation),
            kernel.nodes,
            kernel.copula,
            kernel.quadrature_points,
        )
        surfaces["loss"].values[:, :, 0] = survival_weighted_values(nodes.values, survival, kernel.weights)
        logger.debug("Counterparty conditioning applied from grid index %d", start)

    def surfaces(self) -> Dict[str, Surface]:
        return self._lazy.get(self._build, self._fill)

    @property
    def computed(self) -> bool:
        if self.conditioning_skipped:
            return self.inner.computed
        return self._lazy.computed

    # ------------------------------------------------------------------
    # Interface
    # ------------------------------------------------------------------

    def accumulated_loss(self, date: pd.Timestamp, begin: float, end: float) -> float:
        if self.conditioning_skipped:
            return self.inner.accumulated_loss(date, begin, end)
        return self.data.tranche_value(self.surfaces()["loss"], date, begin, end)

    def amortized_amount(self, date: pd.Timestamp, begin: float, end: float) -> float:
        amortized = self.inner.amortized_amount(date, begin, end)
        if self.conditioning_skipped:
            return amortized
        loss = self.accumulated_loss(date, begin, end)
        dead = 1.0 - self.counterparty_survival_probability(date)
        return amortized + dead * max(end - begin - loss - amortized, 0.0)

    def calc_loss_distribution(
        self, want_probability: bool, date: pd.Timestamp, levels: Sequence[float]
    ) -> np.ndarray:
        if self.conditioning_skipped:
            return self.inner.calc_loss_distribution(want_probability, date, levels)
        raise NotImplementedError("Loss distribution is not available under counterparty risk.")
