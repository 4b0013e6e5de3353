"""
Tests for the core package: date grid, level rounding, prior-default level
adjustment, configuration and errors.
"""

import logging

import pandas as pd
import pytest

from core import (
    BasketError,
    ConfigurationError,
    CorrelationTypeError,
    DomainError,
    EngineConfig,
    TimeUnit,
    TrancheLevelAdjuster,
    add_period,
    build_date_grid,
    round_loss_level,
)
from core.schema import Copula, CopulaType


class TestDateGrid:
    def test_fourteen_month_span(self):
        start = pd.Timestamp("2024-01-31")
        stop = pd.Timestamp("2025-03-31")
        grid = build_date_grid(start, stop, 3, TimeUnit.MONTHS)
        expected = ["2024-01-31", "2024-04-30", "2024-07-30", "2024-10-30", "2025-01-30", "2025-03-31"]
        assert grid == [pd.Timestamp(d) for d in expected]

    def test_first_is_start_last_is_stop(self):
        start = pd.Timestamp("2024-01-15")
        stop = pd.Timestamp("2024-08-02")
        grid = build_date_grid(start, stop, 1, TimeUnit.MONTHS)
        assert grid[0] == start
        assert grid[-1] == stop
        assert all(a < b for a, b in zip(grid, grid[1:]))

    def test_default_step_is_three_months(self):
        start = pd.Timestamp("2024-01-15")
        stop = pd.Timestamp("2025-01-15")
        assert build_date_grid(start, stop, 0, None) == build_date_grid(start, stop, 3, TimeUnit.MONTHS)

    def test_stop_on_step_is_not_duplicated(self):
        start = pd.Timestamp("2024-01-15")
        stop = pd.Timestamp("2024-07-15")
        grid = build_date_grid(start, stop, 3, TimeUnit.MONTHS)
        assert grid == [start, pd.Timestamp("2024-04-15"), stop]

    def test_month_steps_chain_from_previous_date(self):
        start = pd.Timestamp("2024-01-31")
        grid = build_date_grid(start, pd.Timestamp("2024-06-30"), 1, TimeUnit.MONTHS)
        expected = ["2024-01-31", "2024-02-29", "2024-03-29", "2024-04-29", "2024-05-29", "2024-06-29", "2024-06-30"]
        assert grid == [pd.Timestamp(d) for d in expected]
        assert grid[1] == add_period(start, 1, TimeUnit.MONTHS)

    def test_extra_dates_merged(self):
        start = pd.Timestamp("2024-01-15")
        stop = pd.Timestamp("2025-01-15")
        extra = pd.Timestamp("2024-05-01")
        grid = build_date_grid(start, stop, 3, TimeUnit.MONTHS, [extra, pd.Timestamp("2026-01-01")])
        assert extra in grid
        assert grid[-1] == stop
        assert len(grid) == 6


class TestRoundLossLevel:
    @pytest.mark.parametrize("x", [0.0, 0.1, 1 / 3, 0.2 / 0.9, 0.999999999999954, 0.123456789123])
    @pytest.mark.parametrize("digits", [4, 8, 12])
    def test_idempotent(self, x, digits):
        once = round_loss_level(x, digits)
        assert round_loss_level(once, digits) == once

    def test_collapses_onto_breakpoint(self):
        assert round_loss_level(0.999999999999954, 8) == 1.0
        assert round_loss_level(0.3 / 3.0 * 3.0, 8) == 0.3

    def test_clamped(self):
        assert round_loss_level(1.5, 8) == 1.0
        assert round_loss_level(-0.2, 8) == 0.0


class TestTrancheLevelAdjuster:
    def test_no_prior_defaults_is_identity(self):
        adj = TrancheLevelAdjuster()
        assert adj.adjust_levels(False, 0.03, 0.07) == (0.03, 0.07, 0.0)

    def test_tranche_straddling_realized_loss(self):
        adj = TrancheLevelAdjuster(prev_loss=0.1)
        begin, end, baseline = adj.adjust_levels(False, 0.0, 0.2)
        assert begin == 0.0
        assert end == pytest.approx(0.1 / 0.9)
        assert baseline == pytest.approx(0.1)

    def test_tranche_below_realized_loss_is_absorbed(self):
        adj = TrancheLevelAdjuster(prev_loss=0.1)
        assert adj.adjust_levels(False, 0.0, 0.05) == (0.0, 0.0, 0.05)

    def test_tranche_above_realized_loss_is_shifted(self):
        adj = TrancheLevelAdjuster(prev_loss=0.06, prev_amortization=0.04)
        begin, end, baseline = adj.adjust_levels(False, 0.1, 0.3)
        assert begin == pytest.approx(0.04 / 0.9)
        assert end == pytest.approx(0.24 / 0.9)
        assert baseline == 0.0

    def test_original_notional_skips_rescaling(self):
        adj = TrancheLevelAdjuster(prev_loss=0.1, use_original_notional=True)
        begin, end, _ = adj.adjust_levels(False, 0.1, 0.3)
        assert (begin, end) == (pytest.approx(0.0), pytest.approx(0.2))

    def test_restore_inverts_adjust(self):
        adj = TrancheLevelAdjuster(prev_loss=0.1, prev_amortization=0.05)
        for x in (0.2, 0.5, 0.8):
            assert adj.restore_level(False, adj.adjust_level(False, x)) == pytest.approx(x)

    def test_cook_levels_drops_and_adds(self):
        adj = TrancheLevelAdjuster(prev_loss=0.1)
        cooked = adj.cook_loss_levels([0.05, 0.2], 8, add_complement=False)
        assert cooked == [0.0, round_loss_level(0.1 / 0.9, 8)]
        with_complement = adj.cook_loss_levels([0.2], 8)
        assert round_loss_level(0.8 / 0.9, 8) in with_complement


class TestEngineConfig:
    def test_defaults(self):
        cfg = EngineConfig()
        assert cfg.quadrature_points == 25
        assert cfg.default_step_unit is TimeUnit.MONTHS

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("TRANCHE_SAMPLE_SIZE", "500")
        monkeypatch.setenv("TRANCHE_PARALLEL", "yes")
        monkeypatch.setenv("TRANCHE_DEFAULT_STEP_UNIT", "w")
        cfg = EngineConfig.from_env(seed=3)
        assert cfg.sample_size == 500
        assert cfg.parallel is True
        assert cfg.default_step_unit is TimeUnit.WEEKS
        assert cfg.seed == 3

    def test_from_env_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("TRANCHE_QUADRATURE_POINTS", "many")
        with pytest.raises(ValueError, match="TRANCHE_QUADRATURE_POINTS"):
            EngineConfig.from_env()

    def test_invalid_values(self):
        with pytest.raises(ValueError):
            EngineConfig(quadrature_points=0)
        with pytest.raises(ValueError):
            EngineConfig(grid_size=-0.1)

    def test_log_level(self):
        assert EngineConfig(log_level="debug").log_level_int == logging.DEBUG


class TestSchemaAndErrors:
    def test_student_t_needs_degrees_of_freedom(self):
        with pytest.raises(ValueError):
            Copula(CopulaType.STUDENT_T, 2, 2)
        with pytest.raises(ValueError):
            Copula(CopulaType.STUDENT_T, 5, 2)
        assert Copula(CopulaType.STUDENT_T, 5, 0).df_idiosyncratic == 0
        assert not Copula(CopulaType.STUDENT_T, 5, 5).is_gauss

    def test_hierarchy(self):
        assert issubclass(ConfigurationError, BasketError)
        assert issubclass(DomainError, ValueError)
        err = CorrelationTypeError(object())
        assert isinstance(err, DomainError)
        assert isinstance(err, TypeError)
        assert "object" in str(err)
