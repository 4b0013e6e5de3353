"""
Tranche pricer on top of a basket distribution.

Legs are per unit of tranche notional and discretized on the premium
schedule. Loss and amortization fractions come straight from the basket's
``accumulated_loss`` / ``amortized_amount``:

  protection = Σ DF(t_k) [EL(t_k) - EL(t_k-1)]
  fee        = premium · Σ DF(t_k) · τ_k · (outstanding(t_k-1) + outstanding(t_k)) / 2
"""

from __future__ import annotations

from typing import List

import pandas as pd

from core.errors import DomainError
from core.schema import TimeUnit
from core.utils import build_date_grid, year_fraction

from .product import SyntheticCDO


class TranchePricer:
    def __init__(self, product: SyntheticCDO, basket, discount_curve):
        if product.width <= 0.0:
            raise DomainError("Tranche has zero width.")
        self.product = product
        self.basket = basket
        self.discount_curve = discount_curve
        # the distribution must be built on this tranche's levels
        basket.add_levels((product.attachment, product.detachment))

    def with_basket(self, basket) -> "TranchePricer":
        return TranchePricer(self.product, basket, self.discount_curve)

    @property
    def maturity(self) -> pd.Timestamp:
        return pd.Timestamp(self.product.maturity)

    def schedule(self) -> List[pd.Timestamp]:
        start = max(pd.Timestamp(self.product.effective), self.basket.portfolio_start)
        stop = min(self.maturity, self.basket.maturity)
        return build_date_grid(start, stop, self.product.frequency_months, TimeUnit.MONTHS)

    def expected_loss(self, date: pd.Timestamp) -> float:
        """Tranche loss to ``date`` as a fraction of the tranche notional."""
        p = self.product
        return self.basket.accumulated_loss(date, p.attachment, p.detachment) / p.width

    def expected_amortization(self, date: pd.Timestamp) -> float:
        p = self.product
        return self.basket.amortized_amount(date, p.attachment, p.detachment) / p.width

    def outstanding(self, date: pd.Timestamp) -> float:
        return max(1.0 - self.expected_loss(date) - self.expected_amortization(date), 0.0)

    def protection_pv(self) -> float:
        dates = self.schedule()
        pv = 0.0
        prev = self.expected_loss(dates[0])
        for d in dates[1:]:
            loss = self.expected_loss(d)
            pv += self.discount_curve.df(d) * (loss - prev)
            prev = loss
        return pv

    def risky_annuity(self) -> float:
        """Fee leg value per unit of running premium."""
        dates = self.schedule()
        value = 0.0
        prev_date = dates[0]
        prev_out = self.outstanding(prev_date)
        for d in dates[1:]:
            out = self.outstanding(d)
            value += self.discount_curve.df(d) * year_fraction(prev_date, d) * 0.5 * (prev_out + out)
            prev_date, prev_out = d, out
        return value

    def fee_pv(self) -> float:
        return self.product.premium * self.risky_annuity()

    def pv(self) -> float:
        """Protection buyer's value."""
        return self.protection_pv() - self.fee_pv()

    def breakeven_premium(self) -> float:
        annuity = self.risky_annuity()
        if annuity <= 0.0:
            return 0.0
        return self.protection_pv() / annuity
