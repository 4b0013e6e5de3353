"""
Bootstrap basket for tenor-by-tenor correlation fitting.

The wrapper owns a term-structure correlation and an inner quadrature
basket. ``set_factor`` moves only the tenor that covers the calibration
maturity and has the inner basket recompute the grid from the previous
tenor date onwards. Grid rows before that date keep their old values, so a
factor fitted for an earlier tenor is never priced again.

This differs from the plain baskets, where any factor change recomputes
the whole surface.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Type

import numpy as np
import pandas as pd

from core.errors import ConfigurationError
from core.schema import ResetFlag
from distributions.correlation import CorrelationTermStruct

from .base import BasketDistribution
from .data import BasketData
from .semi_analytic import SemiAnalyticBasket

logger = logging.getLogger(__name__)


class BootstrapBasket(BasketDistribution):
    def __init__(
        self,
        data: BasketData,
        correlation: CorrelationTermStruct,
        calibration_maturity: Optional[pd.Timestamp] = None,
        inner_class: Type[SemiAnalyticBasket] = SemiAnalyticBasket,
    ):
        if not isinstance(correlation, CorrelationTermStruct):
            raise ConfigurationError("BootstrapBasket requires a term-structure correlation.")
        super().__init__(data, correlation.copy())
        self.calibration_maturity = pd.Timestamp(
            data.maturity if calibration_maturity is None else calibration_maturity
        )
        self.inner = inner_class(self.data, self._correlation)

    @property
    def tenor_index(self) -> int:
        """First tenor on or after the calibration maturity."""
        return self._correlation.tenor_index(self.calibration_maturity)

    def apply_config(self, other: Optional[BasketDistribution] = None) -> None:
        super().apply_config(self.inner if other is None else other)

    def reset(self, flag=None) -> None:
        super().reset(flag)
        if flag == ResetFlag.SETTLE:
            self.inner.as_of = self.data.as_of
            self.inner.reset(flag)
        else:
            self.apply_config()

    def set_factor(self, factor: float) -> None:
        index = self.tenor_index
        self._correlation.set_factor_at_date(index, factor)
        if index > 0:
            boundary = self._correlation.dates[index - 1]
        else:
            boundary = self.portfolio_start
        start = self.inner.set_recalculation_start(boundary)
        logger.debug("Tenor %d factor set to %.6f, recomputing from grid index %d", index, factor, start)

    def duplicate(self) -> "BootstrapBasket":
        dup = super().duplicate()
        dup._correlation = self._correlation.copy()
        dup.inner = self.inner.duplicate()
        dup.apply_config()
        return dup

    @property
    def computed(self) -> bool:
        return self.inner.computed

    @property
    def recalculation_start_index(self) -> int:
        return self.inner.recalculation_start_index

    def accumulated_loss(self, date: pd.Timestamp, begin: float, end: float) -> float:
        return self.inner.accumulated_loss(date, begin, end)

    def amortized_amount(self, date: pd.Timestamp, begin: float, end: float) -> float:
        return self.inner.amortized_amount(date, begin, end)

    def calc_loss_distribution(
        self, want_probability: bool, date: pd.Timestamp, levels: Sequence[float]
    ) -> np.ndarray:
        return self.inner.calc_loss_distribution(want_probability, date, levels)
