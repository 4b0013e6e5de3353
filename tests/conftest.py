"""
Shared fixtures: a small homogeneous pool, five years of quarterly grid.
"""

import pandas as pd
import pytest

from baskets import BasketData, CreditPool
from core import EngineConfig
from curves import DiscountCurve, RecoveryCurve, SurvivalCurve
from distributions import SingleFactorCorrelation

AS_OF = pd.Timestamp("2024-01-15")
MATURITY = pd.Timestamp("2029-01-15")


@pytest.fixture
def as_of():
    return AS_OF


@pytest.fixture
def maturity():
    return MATURITY


@pytest.fixture
def config():
    return EngineConfig(quadrature_points=15, sample_size=4000, seed=7)


@pytest.fixture
def discount():
    return DiscountCurve(AS_OF, 0.03)


def make_pool(n=10, hazard=0.02, recovery=0.4, principal=1.0, dispersion=0.0):
    curves = [SurvivalCurve.from_hazard_rate(AS_OF, hazard, name=f"N{i}") for i in range(n)]
    return CreditPool.homogeneous(curves, recovery, principal, dispersion)


def make_data(pool=None, config=None, **kwargs):
    return BasketData(
        as_of=AS_OF,
        settle=AS_OF,
        maturity=kwargs.pop("maturity", MATURITY),
        pool=pool if pool is not None else make_pool(),
        config=config if config is not None else EngineConfig(quadrature_points=15, sample_size=4000, seed=7),
        **kwargs,
    )


@pytest.fixture
def pool():
    return make_pool()


@pytest.fixture
def data(pool, config):
    return make_data(pool, config)


@pytest.fixture
def factor(pool):
    return SingleFactorCorrelation(pool.name_list, 0.5)


@pytest.fixture
def recovery():
    return RecoveryCurve(0.4)
