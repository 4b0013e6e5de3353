"""
Tests for the plain basket strategies: quadrature, Monte Carlo, the shared
interface (reset / clone / duplicate), prior defaults and bumped PVs.
"""

from dataclasses import replace

import numpy as np
import pandas as pd
import pytest

from baskets import AnalyticBasket, CreditPool, MonteCarloBasket, SemiAnalyticBasket
from core import ConfigurationError, DomainError, EngineConfig, ResetFlag
from core.schema import Copula, CopulaType
from curves import RecoveryCurve, SurvivalCurve
from distributions import GeneralCorrelation, SingleFactorCorrelation
from engine import SyntheticCDO, TranchePricer

from conftest import AS_OF, MATURITY, make_data, make_pool

MID = pd.Timestamp("2026-07-15")


def _levels_monotone(table):
    return np.all(np.diff(table[:, 1]) >= -1e-12)


@pytest.fixture(params=[SemiAnalyticBasket, AnalyticBasket, MonteCarloBasket])
def basket(request, data, factor):
    b = request.param(data, factor)
    b.add_levels((0.03, 0.07, 0.1, 0.3))
    return b


class TestCommonContract:
    def test_missing_correlation(self, data):
        with pytest.raises(ConfigurationError):
            SemiAnalyticBasket(data, None)

    def test_loss_in_unit_interval_and_increasing_in_time(self, basket):
        grid = basket.time_grid
        losses = [basket.accumulated_loss(d, 0.0, 0.1) for d in grid]
        assert losses[0] == pytest.approx(0.0, abs=1e-12)
        assert all(0.0 <= x <= 0.1 + 1e-12 for x in losses)
        assert np.all(np.diff(losses) >= -1e-12)

    def test_surface_monotone_in_level(self, basket):
        loss = basket.surfaces()["loss"]
        for i in range(loss.num_dates):
            assert np.all(np.diff(loss.values[i, :, 0]) >= -1e-12)

    def test_tranches_add_up(self, basket):
        whole = basket.accumulated_loss(MATURITY, 0.0, 0.1)
        parts = basket.accumulated_loss(MATURITY, 0.0, 0.03) + basket.accumulated_loss(MATURITY, 0.03, 0.1)
        assert parts == pytest.approx(whole, abs=1e-12)

    def test_attachment_above_detachment(self, basket):
        with pytest.raises(DomainError, match="Attachment cannot be greater than Detachment"):
            basket.accumulated_loss(MATURITY, 0.1, 0.03)

    def test_date_outside_range(self, basket):
        with pytest.raises(DomainError):
            basket.accumulated_loss(MATURITY + pd.Timedelta(days=1), 0.0, 0.1)
        with pytest.raises(DomainError):
            basket.amortized_amount(AS_OF - pd.Timedelta(days=1), 0.0, 0.1)

    def test_amortization_hits_senior_only(self, basket):
        assert basket.amortized_amount(MATURITY, 0.0, 0.1) == pytest.approx(0.0, abs=1e-12)
        assert basket.amortized_amount(MATURITY, 0.3, 1.0) > 0.0

    def test_loss_distribution_table(self, basket):
        levels = [0.0, 0.03, 0.07, 0.1, 0.3]
        table = basket.calc_loss_distribution(False, MID, levels)
        assert table[:, 0].tolist() == levels
        assert _levels_monotone(table)
        probs = basket.calc_loss_distribution(True, MID, levels)
        assert _levels_monotone(probs)
        assert np.all((probs[:, 1] >= 0.0) & (probs[:, 1] <= 1.0))

    def test_loss_distribution_matches_tranche(self, basket):
        table = basket.calc_loss_distribution(False, MATURITY, [0.1])
        assert table[0, 1] == pytest.approx(basket.accumulated_loss(MATURITY, 0.0, 0.1), abs=1e-9)


class TestResetCloneDuplicate:
    def test_lazy_and_reset(self, data, factor):
        basket = SemiAnalyticBasket(data, factor)
        assert not basket.computed
        basket.accumulated_loss(MATURITY, 0.0, 0.1)
        assert basket.computed
        basket.reset(ResetFlag.CORRELATION | ResetFlag.RECOVERY)
        assert not basket.computed

    def test_settle_reset_keeps_surface(self, data, factor):
        basket = SemiAnalyticBasket(data, factor)
        before = basket.accumulated_loss(MID, 0.0, 0.1)
        basket.reset(ResetFlag.SETTLE)
        assert basket.computed
        assert basket.accumulated_loss(MID, 0.0, 0.1) == before

    def test_clone_carries_surface(self, data, factor):
        basket = SemiAnalyticBasket(data, factor)
        value = basket.accumulated_loss(MID, 0.0, 0.1)
        clone = basket.clone()
        assert clone.computed
        assert clone.accumulated_loss(MID, 0.0, 0.1) == value
        clone.set_factor(0.1)
        assert basket.accumulated_loss(MID, 0.0, 0.1) == value

    def test_duplicate_is_independent(self, data, factor):
        basket = SemiAnalyticBasket(data, factor)
        value = basket.accumulated_loss(MID, 0.0, 0.1)
        dup = basket.duplicate()
        assert not dup.computed
        assert dup.data is basket.data
        dup.set_factor(0.9)
        dup.principals = [2.0] * 10
        assert basket.correlation.max_correlation == 0.5
        assert basket.computed
        assert basket.accumulated_loss(MID, 0.0, 0.1) == value
        assert dup.accumulated_loss(MID, 0.0, 0.1) != value

    def test_higher_correlation_lowers_equity_loss(self, data, factor):
        low = SemiAnalyticBasket(data, factor)
        high = low.duplicate()
        high.set_factor(0.8)
        assert high.accumulated_loss(MATURITY, 0.0, 0.03) < low.accumulated_loss(MATURITY, 0.0, 0.03)
        assert high.accumulated_loss(MATURITY, 0.3, 1.0) > low.accumulated_loss(MATURITY, 0.3, 1.0)

    def test_maturity_setter_resets(self, data, factor):
        basket = SemiAnalyticBasket(data, factor)
        basket.accumulated_loss(MID, 0.0, 0.1)
        basket.maturity = MID
        assert not basket.computed
        assert basket.time_grid[-1] == MID


class TestQuadrature:
    def test_dispersion_changes_senior_amortization(self, config):
        pool = make_pool(dispersion=0.2)
        data = make_data(pool, config)
        corr = SingleFactorCorrelation(pool.name_list, 0.5)
        semi = SemiAnalyticBasket(data, corr)
        plain = AnalyticBasket(data, corr)
        assert semi.accumulated_loss(MATURITY, 0.0, 1.0) == pytest.approx(
            plain.accumulated_loss(MATURITY, 0.0, 1.0), rel=1e-6
        )
        assert semi.accumulated_loss(MATURITY, 0.0, 0.05) != pytest.approx(
            plain.accumulated_loss(MATURITY, 0.0, 0.05), rel=1e-9
        )

    def test_student_t_copula(self, pool):
        data = make_data(pool, copula=Copula(CopulaType.STUDENT_T, 5, 5))
        basket = SemiAnalyticBasket(data, SingleFactorCorrelation(pool.name_list, 0.5))
        loss = basket.accumulated_loss(MATURITY, 0.0, 1.0)
        p = 1.0 - pool.survival_curves[0].interpolate(MATURITY)
        assert loss == pytest.approx(0.6 * p, rel=5e-3)

    def test_parallel_flag_gives_same_surface(self, pool, factor):
        serial = SemiAnalyticBasket(make_data(pool, EngineConfig(quadrature_points=15)), factor)
        parallel = SemiAnalyticBasket(make_data(pool, EngineConfig(quadrature_points=15, parallel=True)), factor)
        np.testing.assert_array_equal(
            serial.surfaces()["loss"].values, parallel.surfaces()["loss"].values
        )

    def test_suffix_recompute_keeps_prefix(self, data, factor):
        basket = SemiAnalyticBasket(data, factor)
        before = basket.surfaces()["loss"].values.copy()
        index = basket.set_recalculation_start(MID)
        assert basket.recalculation_start_index == index
        after = basket.surfaces()["loss"].values
        np.testing.assert_array_equal(after, before)


class TestMonteCarlo:
    def test_same_seed_bit_identical(self, data, factor):
        a = MonteCarloBasket(data, factor)
        b = MonteCarloBasket(data, factor)
        np.testing.assert_array_equal(a.surfaces()["loss"].values, b.surfaces()["loss"].values)

    def test_different_seed_differs(self, data, factor):
        a = MonteCarloBasket(data, factor)
        b = MonteCarloBasket(replace(data, config=data.config.with_seed(8)), factor)
        assert not np.array_equal(a.surfaces()["loss"].values, b.surfaces()["loss"].values)

    def test_negative_seed_draws_one(self, pool, factor):
        basket = MonteCarloBasket(make_data(pool, EngineConfig(sample_size=100, seed=-1)), factor)
        assert basket.kernel().seed >= 0

    def test_non_integer_seed_rejected(self, pool, factor):
        basket = MonteCarloBasket(make_data(pool, EngineConfig(sample_size=100, seed=1.5)), factor)
        with pytest.raises(ConfigurationError):
            basket.accumulated_loss(MATURITY, 0.0, 0.1)

    def test_agrees_with_quadrature(self, pool, factor):
        cfg = EngineConfig(quadrature_points=25, sample_size=40000, seed=3)
        data = make_data(pool, cfg)
        mc = MonteCarloBasket(data, factor).accumulated_loss(MATURITY, 0.0, 1.0)
        qa = SemiAnalyticBasket(data, factor).accumulated_loss(MATURITY, 0.0, 1.0)
        assert mc == pytest.approx(qa, rel=0.05)

    def test_student_t_agrees_with_quadrature(self, pool, factor):
        cfg = EngineConfig(quadrature_points=25, sample_size=40000, seed=3)
        data = make_data(pool, cfg, copula=Copula(CopulaType.STUDENT_T, 5, 8))
        mc = MonteCarloBasket(data, factor)
        qa = SemiAnalyticBasket(data, factor)
        for end in (0.1, 1.0):
            assert mc.accumulated_loss(MATURITY, 0.0, end) == pytest.approx(
                qa.accumulated_loss(MATURITY, 0.0, end), rel=0.05
            )

    def test_general_correlation_matrix(self, pool):
        n = pool.size
        matrix = np.full((n, n), 0.25)
        np.fill_diagonal(matrix, 1.0)
        data = make_data(pool)
        general = MonteCarloBasket(data, GeneralCorrelation(pool.name_list, matrix))
        factor = MonteCarloBasket(data, SingleFactorCorrelation(pool.name_list, 0.5))
        assert general.accumulated_loss(MATURITY, 0.0, 0.1) == pytest.approx(
            factor.accumulated_loss(MATURITY, 0.0, 0.1), rel=0.1
        )


class TestPriorDefaults:
    def _data(self):
        n = 10
        curves = [SurvivalCurve.from_hazard_rate(AS_OF, 0.03, name=f"N{i}") for i in range(n)]
        curves[0] = SurvivalCurve.from_hazard_rate(
            AS_OF, 0.03, name="N0", default_date=AS_OF - pd.Timedelta(days=30)
        )
        pool = CreditPool(
            survival_curves=curves,
            recovery_curves=[RecoveryCurve(0.0)] * n,
            principals=[0.1] * n,
        )
        return make_data(pool)

    def test_closed_form_equity_loss(self):
        data = self._data()
        basket = SemiAnalyticBasket(data, SingleFactorCorrelation(data.pool.name_list, 0.0))
        basket.add_levels((0.0, 0.2))
        p = 1.0 - data.pool.survival_curves[1].interpolate(MATURITY)
        expected = 0.1 + 0.1 * (1.0 - (1.0 - p) ** 9)
        assert basket.accumulated_loss(MATURITY, 0.0, 0.2) == pytest.approx(expected, rel=1e-6)

    def test_realized_loss_at_start(self):
        data = self._data()
        basket = SemiAnalyticBasket(data, SingleFactorCorrelation(data.pool.name_list, 0.3))
        basket.add_levels((0.0, 0.05, 0.2))
        assert basket.accumulated_loss(AS_OF, 0.0, 0.2) == pytest.approx(0.1)
        assert basket.accumulated_loss(MATURITY, 0.0, 0.05) == pytest.approx(0.05)
        assert data.adjuster.prev_loss == pytest.approx(0.1)
        assert data.active.tolist() == list(range(1, 10))


class TestBumpedPvs:
    def test_rows_and_unbumped_entries(self, data, factor, discount):
        basket = SemiAnalyticBasket(data, factor)
        pricers = [
            TranchePricer(SyntheticCDO(AS_OF, MATURITY, 0.0, 0.1, premium=0.05), basket, discount),
            TranchePricer(SyntheticCDO(AS_OF, MATURITY, 0.1, 0.3, premium=0.01), basket, discount),
        ]
        curves = basket.survival_curves
        bumped = [curves[0].shifted(0.01), None]
        pvs = basket.bumped_pvs(pricers, bumped)
        assert pvs.shape == (3, 2)
        np.testing.assert_allclose(pvs[0], [p.pv() for p in pricers])
        np.testing.assert_array_equal(pvs[2], pvs[0])
        assert pvs[1, 0] > pvs[0, 0]
        assert basket.survival_curves == curves
