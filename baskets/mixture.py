"""
Mixture of correlation scenarios.

Every component of a ``MixedCorrelation`` with a non-negligible weight gets
its own basket on the shared data. Tranche losses, amortizations and loss
distributions are the weighted averages of the components' values.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from core.errors import ConfigurationError
from core.schema import ResetFlag
from distributions.correlation import Correlation, MixedCorrelation

from .base import BasketDistribution
from .data import BasketData
from .semi_analytic import SemiAnalyticBasket


ComponentFactory = Callable[[BasketData, Correlation], BasketDistribution]


class MixtureBasket(BasketDistribution):
    """
    Weighted average over correlation scenarios.

    ``component_factory(data, correlation)`` builds the basket for one
    scenario. Strategies with other constructor arguments are wrapped, e.g.
    ``lambda d, c: HullWhiteBasket(d, parameters, c)``.
    """

    def __init__(
        self,
        data: BasketData,
        correlation: MixedCorrelation,
        component_factory: ComponentFactory = SemiAnalyticBasket,
    ):
        if not isinstance(correlation, MixedCorrelation):
            raise ConfigurationError("MixtureBasket requires a mixed correlation.")
        super().__init__(data, correlation)
        self.component_factory = component_factory
        self._components: Optional[List[Tuple[float, BasketDistribution]]] = None

    def components(self) -> List[Tuple[float, BasketDistribution]]:
        """(weight, basket) per active scenario, built on first use."""
        if self._components is None:
            # validates the weight sum before any basket is built
            self.correlation.normalized_weights()
            self._components = [
                (w, self.component_factory(self.data, c))
                for w, c in self.correlation.active_components()
            ]
        return self._components

    def _mix(self, values: Sequence) -> float:
        weights = [w for w, _ in self.components()]
        return sum(w * v for w, v in zip(weights, values)) / sum(weights)

    def reset(self, flag=None) -> None:
        super().reset(flag)
        if flag == ResetFlag.SETTLE and self._components is not None:
            for _, basket in self._components:
                basket.as_of = self.data.as_of
                basket.reset(flag)
        else:
            self._components = None

    def duplicate(self) -> "MixtureBasket":
        dup = super().duplicate()
        dup._components = None
        return dup

    @property
    def computed(self) -> bool:
        return self._components is not None and all(b.computed for _, b in self._components)

    def accumulated_loss(self, date: pd.Timestamp, begin: float, end: float) -> float:
        return self._mix([b.accumulated_loss(date, begin, end) for _, b in self.components()])

    def amortized_amount(self, date: pd.Timestamp, begin: float, end: float) -> float:
        return self._mix([b.amortized_amount(date, begin, end) for _, b in self.components()])

    def calc_loss_distribution(
        self, want_probability: bool, date: pd.Timestamp, levels: Sequence[float]
    ) -> np.ndarray:
        tables = [
            b.calc_loss_distribution(want_probability, date, levels)
            for _, b in self.components()
        ]
        values = self._mix([t[:, 1] for t in tables])
        return np.column_stack([tables[0][:, 0], values])
