"""
Basket distribution strategies.

Every strategy answers accumulated_loss / amortized_amount /
calc_loss_distribution for tranches of its pool and caches its surfaces in a
LazySurface:

  semi_analytic.py      — quadrature copula (SemiAnalyticBasket, AnalyticBasket)
  monte_carlo.py        — simulated default times
  hull_white.py         — dynamic jump model
  conditional.py        — per-node curves for one tranche
  counterparty.py       — losses paid while a counterparty survives
  mixture.py            — weighted correlation scenarios
  bootstrap.py          — tenor-by-tenor factor fitting with suffix recompute
  base_correlation.py   — tranches as differences of equity tranches
  nested.py             — CDO-squared with optional cross-subordination
"""

from .pool import CreditPool
from .data import BasketData
from .base import BasketDistribution
from .semi_analytic import AnalyticBasket, SemiAnalyticBasket
from .monte_carlo import MonteCarloBasket
from .hull_white import HullWhiteBasket
from .conditional import ConditionalBasket
from .counterparty import CounterpartyBasket
from .mixture import MixtureBasket
from .bootstrap import BootstrapBasket
from .base_correlation import BaseCorrelationBasket
from .cross_subordination import CrossSubordination
from .nested import NestedBasket

__all__ = [
    "CreditPool",
    "BasketData",
    "BasketDistribution",
    "AnalyticBasket",
    "SemiAnalyticBasket",
    "MonteCarloBasket",
    "HullWhiteBasket",
    "ConditionalBasket",
    "CounterpartyBasket",
    "MixtureBasket",
    "BootstrapBasket",
    "BaseCorrelationBasket",
    "CrossSubordination",
    "NestedBasket",
]
