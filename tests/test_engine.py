"""
Tests for the credit pool model, the tranche product and the pricer.
"""

import numpy as np
import pandas as pd
import pytest
from pydantic import ValidationError

from baskets import AnalyticBasket, CreditPool, SemiAnalyticBasket
from core import DomainError
from curves import DiscountCurve, RecoveryCurve, SurvivalCurve
from distributions import SingleFactorCorrelation
from engine import SyntheticCDO, TranchePricer

from conftest import AS_OF, MATURITY, make_data, make_pool


class TestCreditPool:
    def test_length_mismatch(self):
        curves = [SurvivalCurve.from_hazard_rate(AS_OF, 0.01)] * 3
        with pytest.raises(ValidationError, match="principals"):
            CreditPool(survival_curves=curves, recovery_curves=[RecoveryCurve()] * 3, principals=[1.0, 1.0])

    def test_refinancing_lengths(self):
        curves = [SurvivalCurve.from_hazard_rate(AS_OF, 0.01)] * 2
        with pytest.raises(ValidationError):
            CreditPool(
                survival_curves=curves,
                recovery_curves=[RecoveryCurve()] * 2,
                principals=[1.0, 1.0],
                refinance_curves=curves[:1],
            )

    def test_zero_principal_keeps_name(self):
        pool = make_pool(4).replace(principals=[1.0, 0.0, 1.0, 1.0])
        assert pool.size == 4
        data = make_data(pool)
        assert data.active.tolist() == [0, 2, 3]

    def test_frozen(self):
        pool = make_pool(2)
        with pytest.raises(ValidationError):
            pool.principals = [2.0, 2.0]

    def test_names(self):
        assert make_pool(3).name_list == ["N0", "N1", "N2"]


class TestSyntheticCDO:
    def test_validation(self):
        with pytest.raises(ValueError):
            SyntheticCDO(AS_OF, MATURITY, 0.1, 0.05)
        with pytest.raises(ValueError):
            SyntheticCDO(MATURITY, AS_OF)

    def test_with_tranche(self):
        cdo = SyntheticCDO(AS_OF, MATURITY, 0.0, 0.1, premium=0.05)
        other = cdo.with_tranche(0.1, 0.3)
        assert other.width == pytest.approx(0.2)
        assert other.premium == 0.05


class TestTranchePricer:
    @pytest.fixture
    def basket(self, data, factor):
        return SemiAnalyticBasket(data, factor)

    def test_zero_width_rejected(self, basket, discount):
        with pytest.raises(DomainError):
            TranchePricer(SyntheticCDO(AS_OF, MATURITY, 0.1, 0.1), basket, discount)

    def test_pricer_adds_levels(self, basket, discount):
        TranchePricer(SyntheticCDO(AS_OF, MATURITY, 0.03, 0.07), basket, discount)
        assert 0.03 in basket.data.loss_levels
        assert 0.07 in basket.data.loss_levels

    def test_breakeven_zeroes_pv(self, basket, discount):
        cdo = SyntheticCDO(AS_OF, MATURITY, 0.0, 0.1)
        spread = TranchePricer(cdo, basket, discount).breakeven_premium()
        assert spread > 0.0
        pricer = TranchePricer(SyntheticCDO(AS_OF, MATURITY, 0.0, 0.1, premium=spread), basket, discount)
        assert pricer.pv() == pytest.approx(0.0, abs=1e-12)

    def test_senior_cheaper_than_equity(self, basket, discount):
        equity = TranchePricer(SyntheticCDO(AS_OF, MATURITY, 0.0, 0.1), basket, discount)
        senior = TranchePricer(SyntheticCDO(AS_OF, MATURITY, 0.3, 1.0), basket, discount)
        assert equity.breakeven_premium() > senior.breakeven_premium()

    def test_index_protection_matches_pool_loss(self, data):
        # zero rates: protection on [0, 1] is the expected pool loss at maturity
        basket = AnalyticBasket(data, SingleFactorCorrelation(data.pool.name_list, 0.3))
        flat = DiscountCurve(AS_OF, 0.0)
        pricer = TranchePricer(SyntheticCDO(AS_OF, MATURITY, 0.0, 1.0), basket, flat)
        p = 1.0 - data.pool.survival_curves[0].interpolate(MATURITY)
        assert pricer.protection_pv() == pytest.approx(0.6 * p, rel=1e-6)

    def test_schedule_clipped_to_basket(self, basket, discount):
        cdo = SyntheticCDO(AS_OF - pd.DateOffset(months=6), MATURITY + pd.DateOffset(years=1), 0.0, 0.1)
        schedule = TranchePricer(cdo, basket, discount).schedule()
        assert schedule[0] == AS_OF
        assert schedule[-1] == MATURITY
        assert np.all(np.diff([d.value for d in schedule]) > 0)
