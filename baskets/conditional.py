"""
Quadrature-conditioned basket for a single tranche.

For every factor node the basket keeps the conditional tranche loss and
amortization curves and the probability that the tranche is exhausted. An
outer integration over the same nodes picks one with ``condition_on(i)``
and reads the tranche through the usual interface; ``condition_on(None)``
goes back to the node-weighted average.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd

from core.errors import ConfigurationError, DomainError
from distributions.correlation import BaseCorrelation, Correlation, factor_array
from distributions.surface import Surface
from engine.product import SyntheticCDO
from models.lattice import exceedance_probabilities, level_values

from .data import BasketData
from .semi_analytic import SemiAnalyticBasket

logger = logging.getLogger(__name__)

_KEYS = ("loss", "amortization", "exhaustion")


class ConditionalBasket(SemiAnalyticBasket):
    def __init__(
        self,
        data: BasketData,
        correlation: Correlation,
        attachment: float,
        detachment: float,
        discount_curve=None,
    ):
        if attachment > detachment:
            raise DomainError("Attachment cannot be greater than Detachment.")
        if isinstance(correlation, BaseCorrelation) and discount_curve is None:
            raise ConfigurationError("Base correlation calibration needs a discount curve.")
        super().__init__(data.with_levels((attachment, detachment)), correlation)
        self.attachment = float(attachment)
        self.detachment = float(detachment)
        self.discount_curve = discount_curve
        self._node: Optional[int] = None
        self._working: Optional[Dict[str, Surface]] = None

    # ------------------------------------------------------------------
    # Correlation
    # ------------------------------------------------------------------

    def factors(self, dates: Sequence[pd.Timestamp]) -> np.ndarray:
        correlation = self.correlation
        if isinstance(correlation, BaseCorrelation):
            probe = SemiAnalyticBasket(self.data, correlation)
            product = SyntheticCDO(self.portfolio_start, self.maturity, 0.0, self.detachment)
            correlation = correlation.get_correlations(
                product, self.names, probe, self.discount_curve
            )
            logger.debug(
                "Conditional basket uses factor %.6f for detachment %.4f",
                correlation.max_correlation, self.detachment,
            )
        n = self.data.pool.size
        active = self.data.active
        return np.stack([factor_array(correlation, d, n)[active] for d in dates])

    # ------------------------------------------------------------------
    # Per-node surfaces
    # ------------------------------------------------------------------

    @property
    def n_nodes(self) -> int:
        return self.data.config.quadrature_points

    def node_weights(self) -> np.ndarray:
        return self.kernel().weights

    def _build(self) -> Dict[str, Surface]:
        grid = self.time_grid
        levels = self.data.cooked_levels
        surfaces = {
            key: Surface.allocate(self.as_of, grid, levels, self.n_nodes)
            for key in ("loss", "amortization")
        }
        surfaces["exhaustion"] = Surface.allocate(self.as_of, grid, [0.0], self.n_nodes)
        return surfaces

    def _fill(self, surfaces: Dict[str, Surface], start: int) -> None:
        data = self.data
        grid = self.time_grid
        kernel = self.kernel()
        amounts = self.pool_amounts()
        scale = data.level_scale
        level_amounts = self.level_amounts(data.cooked_levels)
        lattices = kernel.lattices(amounts, scale)
        probs = data.default_probabilities(grid)
        factors = self.factors(grid)
        _, top, _ = data.adjuster.adjust_levels(False, self.attachment, self.detachment)
        exhaust_amount = data.round_level(top) * scale
        for i in range(start, len(grid)):
            loss, amor = kernel.conditional_distributions(probs[i], factors[i], amounts, lattices)
            surfaces["loss"].values[i] = level_values(loss, lattices[0], level_amounts, False).T
            surfaces["amortization"].values[i] = level_values(amor, lattices[1], level_amounts, False).T
            surfaces["exhaustion"].values[i, 0] = exceedance_probabilities(loss, lattices[0], exhaust_amount)
            for key in _KEYS:
                surfaces[key].set_date(i, grid[i])
        self._working = None

    # ------------------------------------------------------------------
    # Working curves
    # ------------------------------------------------------------------

    def condition_on(self, node: Optional[int]) -> None:
        """Read the tranche at factor node ``node``, or averaged over nodes with None."""
        if node is not None and not 0 <= node < self.n_nodes:
            raise DomainError(f"Quadrature node {node} is outside [0, {self.n_nodes}).")
        self._node = node
        self._working = None

    def _working_surfaces(self) -> Dict[str, Surface]:
        surfaces = self.surfaces()
        if self._working is None:
            weights = self.node_weights() if self._node is None else None
            working = {}
            for key in _KEYS:
                source = surfaces[key]
                surface = Surface.allocate(source.as_of, source.dates, source.levels)
                if weights is None:
                    surface.values[:, :, 0] = source.values[:, :, self._node]
                else:
                    surface.values[:, :, 0] = source.values @ weights
                working[key] = surface
            self._working = working
        return self._working

    def reset(self, flag=None) -> None:
        super().reset(flag)
        self._working = None

    def duplicate(self) -> "ConditionalBasket":
        dup = super().duplicate()
        dup._working = None
        return dup

    def _check_tranche(self, begin: float, end: float) -> None:
        if begin > end:
            raise DomainError("Attachment cannot be greater than Detachment.")
        rounded = (self.data.round_level(begin), self.data.round_level(end))
        if rounded != (self.data.round_level(self.attachment), self.data.round_level(self.detachment)):
            raise DomainError(
                f"Tranche [{begin}, {end}] does not match the conditioned tranche "
                f"[{self.attachment}, {self.detachment}]."
            )

    # ------------------------------------------------------------------
    # Interface
    # ------------------------------------------------------------------

    def accumulated_loss(self, date: pd.Timestamp, begin: float, end: float) -> float:
        self._check_tranche(begin, end)
        return self.data.tranche_value(self._working_surfaces()["loss"], date, begin, end)

    def amortized_amount(self, date: pd.Timestamp, begin: float, end: float) -> float:
        self._check_tranche(begin, end)
        return self.data.tranche_value(
            self._working_surfaces()["amortization"], date, begin, end, for_amortization=True
        )

    def exhaustion_probability(self, date: pd.Timestamp) -> float:
        """Probability that the tranche is wiped out by ``date``."""
        date = self.data.check_date(date)
        value = self._working_surfaces()["exhaustion"].interpolate(date, 0.0)
        return min(max(value, 0.0), 1.0)

    def calc_loss_distribution(
        self, want_probability: bool, date: pd.Timestamp, levels: Sequence[float]
    ) -> np.ndarray:
        raise NotImplementedError("Loss distribution is not available for a conditioned basket.")
