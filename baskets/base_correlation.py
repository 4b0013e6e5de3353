"""
Base correlation basket.

A tranche [a, d] is priced as the difference of two equity tranches, [0, d]
at the base correlation implied for d and [0, a] at the one implied for a.
Each detachment gets its own semi-analytic basket, built on first use and
kept until the next reset.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd

from core.errors import DomainError
from core.schema import LEVEL_TOLERANCE
from distributions.correlation import BaseCorrelation, SingleFactorCorrelation
from engine.product import SyntheticCDO

from .base import BasketDistribution
from .data import BasketData
from .semi_analytic import SemiAnalyticBasket

logger = logging.getLogger(__name__)


class BaseCorrelationBasket(BasketDistribution):
    def __init__(
        self,
        data: BasketData,
        correlation: Optional[BaseCorrelation],
        discount_curve,
        tolerance_f: float = 0.0,
        tolerance_x: float = 0.0,
    ):
        if not isinstance(correlation, BaseCorrelation):
            raise DomainError("BaseCorrelationBasket requires a base correlation object.")
        super().__init__(data, correlation)
        self.discount_curve = discount_curve
        self.tolerance_f = tolerance_f
        self.tolerance_x = tolerance_x
        self._equity: Dict[float, SemiAnalyticBasket] = {}

    def equity_basket(self, detachment: float) -> SemiAnalyticBasket:
        """The basket pricing [0, detachment] at its implied base correlation."""
        d = self.data.round_level(detachment)
        basket = self._equity.get(d)
        if basket is not None:
            return basket
        names = self.names
        basket = SemiAnalyticBasket(
            replace(self.data, loss_levels=(0.0, d)), SingleFactorCorrelation(names, 0.0)
        )
        product = SyntheticCDO(self.portfolio_start, self.maturity, 0.0, d)
        basket.correlation = self.correlation.get_correlations(
            product, names, basket, self.discount_curve, self.tolerance_f, self.tolerance_x
        )
        self._equity[d] = basket
        return basket

    def reset(self, flag=None) -> None:
        super().reset(flag)
        self._equity = {}

    def duplicate(self) -> "BaseCorrelationBasket":
        dup = super().duplicate()
        dup._equity = {}
        return dup

    def _difference(self, date, begin, end, method: str) -> float:
        if begin > end:
            raise DomainError("Attachment cannot be greater than Detachment.")
        self.data.check_date(date)
        if end < LEVEL_TOLERANCE:
            return 0.0
        hi = getattr(self.equity_basket(end), method)(date, 0.0, end)
        if begin < LEVEL_TOLERANCE:
            return hi
        lo = getattr(self.equity_basket(begin), method)(date, 0.0, begin)
        return hi - lo

    def accumulated_loss(self, date: pd.Timestamp, begin: float, end: float) -> float:
        return self._difference(date, begin, end, "accumulated_loss")

    def amortized_amount(self, date: pd.Timestamp, begin: float, end: float) -> float:
        return self._difference(date, begin, end, "amortized_amount")

    def calc_loss_distribution(
        self, want_probability: bool, date: pd.Timestamp, levels: Sequence[float]
    ) -> np.ndarray:
        """Each level read off the equity basket at its own base correlation."""
        rows = [
            self.equity_basket(x).calc_loss_distribution(want_probability, date, [x])[0]
            for x in levels
        ]
        return np.array(rows)
