"""
Tests for distribution surfaces, the lazy controller and correlation objects.
"""

import numpy as np
import pandas as pd
import pytest

from core import ConfigurationError, CorrelationTypeError, DomainError, ReentrantComputationError
from distributions import (
    BaseCorrelation,
    CorrelationTermStruct,
    GeneralCorrelation,
    LazySurface,
    MixedCorrelation,
    SingleFactorCorrelation,
    Surface,
    SurfaceState,
    correlation_matrix,
    factor_array,
    intersection_factors,
)

AS_OF = pd.Timestamp("2024-01-01")
DATES = [AS_OF, pd.Timestamp("2024-01-11"), pd.Timestamp("2024-01-31")]
LEVELS = [0.0, 0.5, 1.0]


def _surface():
    surface = Surface.allocate(AS_OF, DATES, LEVELS)
    surface.values[:, :, 0] = [[0.0, 0.0, 0.0], [0.0, 1.0, 2.0], [0.0, 3.0, 4.0]]
    return surface


class TestSurface:
    def test_allocate_shape(self):
        surface = Surface.allocate(AS_OF, DATES, LEVELS, n_groups=4)
        assert (surface.num_dates, surface.num_levels, surface.num_groups) == (3, 3, 4)
        assert surface.get_value(2, 2, 3) == 0.0

    def test_interpolate_on_nodes(self):
        surface = _surface()
        assert surface.interpolate(DATES[1], 0.5) == pytest.approx(1.0)
        assert surface.interpolate(DATES[2], 1.0) == pytest.approx(4.0)

    def test_interpolate_in_time_then_level(self):
        surface = _surface()
        # halfway between day 10 and day 30
        date = pd.Timestamp("2024-01-21")
        assert surface.interpolate(date, 0.5) == pytest.approx(2.0)
        assert surface.interpolate(date, 0.75) == pytest.approx(2.5)

    def test_flat_outside_grid(self):
        surface = _surface()
        assert surface.interpolate(pd.Timestamp("2025-01-01"), 0.5) == pytest.approx(3.0)
        assert surface.interpolate(pd.Timestamp("2023-01-01"), 0.5) == 0.0

    def test_two_level_form_is_area_between(self):
        surface = _surface()
        date = pd.Timestamp("2024-01-21")
        area = surface.interpolate(date, 0.25, 1.0)
        assert area == pytest.approx(surface.interpolate(date, 1.0) - surface.interpolate(date, 0.25))

    def test_curve_at(self):
        surface = _surface()
        np.testing.assert_allclose(surface.curve_at(DATES[2]), [0.0, 3.0, 4.0])

    def test_resize_preserves_prefix(self):
        surface = _surface()
        surface.resize_by_dates(3, 2)
        np.testing.assert_array_equal(surface.values[:2, :, 0], [[0.0, 0.0, 0.0], [0.0, 1.0, 2.0]])
        np.testing.assert_array_equal(surface.values[2, :, 0], [0.0, 0.0, 0.0])
        assert pd.isna(surface.dates[2])

    def test_clone_is_independent(self):
        surface = _surface()
        copy = surface.clone()
        copy.values[1, 1, 0] = 99.0
        assert surface.get_value(1, 1) == 1.0

    def test_uninitialized_raises(self):
        with pytest.raises(ValueError):
            Surface(AS_OF).interpolate(AS_OF, 0.5)


class TestLazySurface:
    def _build(self):
        return {"loss": Surface.allocate(AS_OF, DATES, LEVELS)}

    def test_computes_once(self):
        calls = []

        def fill(surfaces, start):
            calls.append(start)
            surfaces["loss"].values[start:] = 1.0

        lazy = LazySurface("test")
        lazy.get(self._build, fill)
        lazy.get(self._build, fill)
        assert calls == [0]
        assert lazy.state is SurfaceState.COMPUTED

    def test_failed_fill_leaves_uncomputed(self):
        def fill(surfaces, start):
            raise RuntimeError("kernel failed")

        lazy = LazySurface()
        with pytest.raises(RuntimeError):
            lazy.get(self._build, fill)
        assert lazy.state is SurfaceState.UNCOMPUTED
        assert lazy.surfaces is None

    def test_reentrant_request_raises(self):
        lazy = LazySurface()

        def fill(surfaces, start):
            lazy.get(self._build, fill)

        with pytest.raises(ReentrantComputationError):
            lazy.get(self._build, fill)
        assert not lazy.computed

    def test_suffix_recompute(self):
        starts = []

        def fill(surfaces, start):
            starts.append(start)
            surfaces["loss"].values[start:] = len(starts)

        lazy = LazySurface()
        surfaces = lazy.get(self._build, fill)
        lazy.set_recalculation_start(2, 3)
        surfaces = lazy.get(self._build, fill)
        assert starts == [0, 2]
        assert surfaces["loss"].get_value(1, 1) == 1.0
        assert surfaces["loss"].get_value(2, 1) == 2.0

    def test_pending_recompute_keeps_earliest_start(self):
        starts = []

        def fill(surfaces, start):
            starts.append(start)
            surfaces["loss"].values[start:] = len(starts)

        lazy = LazySurface()
        lazy.get(self._build, fill)
        lazy.set_recalculation_start(1, 3)
        lazy.set_recalculation_start(2, 3)
        assert lazy.recalc_start_index == 1
        surfaces = lazy.get(self._build, fill)
        assert starts == [0, 1]
        assert surfaces["loss"].get_value(1, 1) == 2.0

    def test_recalculation_start_without_surface_is_reset(self):
        lazy = LazySurface()
        lazy.set_recalculation_start(2, 3)
        assert lazy.recalc_start_index == -1

    def test_rebase_keeps_values(self):
        lazy = LazySurface()
        lazy.get(self._build, lambda s, i: None)
        lazy.rebase(pd.Timestamp("2024-01-05"))
        assert lazy.computed
        assert lazy.surfaces["loss"].as_of == pd.Timestamp("2024-01-05")


class TestCorrelations:
    names = ["A", "B", "C"]

    def test_single_factor(self):
        corr = SingleFactorCorrelation(self.names, 0.4)
        np.testing.assert_allclose(factor_array(corr, AS_OF, 3), [0.4, 0.4, 0.4])
        assert corr.max_correlation == 0.4

    def test_general_matrix(self):
        matrix = np.array([[1.0, 0.2, 0.1], [0.2, 1.0, 0.3], [0.1, 0.3, 1.0]])
        corr = GeneralCorrelation(self.names, matrix)
        np.testing.assert_allclose(correlation_matrix(corr, AS_OF, 3), matrix, atol=1e-12)
        with pytest.raises(CorrelationTypeError, match="GeneralCorrelation"):
            factor_array(corr, AS_OF, 3)

    def test_factor_matrix(self):
        corr = SingleFactorCorrelation(self.names, 0.5)
        matrix = correlation_matrix(corr, AS_OF, 3)
        assert matrix[0, 1] == pytest.approx(0.25)
        assert matrix[2, 2] == 1.0

    def test_term_structure_lookup(self):
        dates = [pd.Timestamp("2025-01-01"), pd.Timestamp("2027-01-01")]
        corr = CorrelationTermStruct(self.names, dates, [0.3, 0.6])
        assert factor_array(corr, pd.Timestamp("2024-06-01"), 3)[0] == 0.3
        assert factor_array(corr, pd.Timestamp("2025-01-01"), 3)[0] == 0.3
        assert factor_array(corr, pd.Timestamp("2026-01-01"), 3)[0] == 0.6
        assert factor_array(corr, pd.Timestamp("2030-01-01"), 3)[0] == 0.6
        np.testing.assert_array_equal(corr.dates_as_int(pd.Timestamp("2024-12-31")), [1, 731])

    def test_term_structure_setters(self):
        dates = [pd.Timestamp("2025-01-01"), pd.Timestamp("2027-01-01")]
        corr = CorrelationTermStruct(self.names, dates, [0.3, 0.6])
        assert corr.set_factor_from(pd.Timestamp("2026-01-01"), 0.1) == 1
        assert corr.factors[:, 0].tolist() == [0.3, 0.1]
        corr.set_factor(0.2)
        assert corr.factors[:, 0].tolist() == [0.2, 0.2]

    def test_term_structure_dates_must_increase(self):
        dates = [pd.Timestamp("2027-01-01"), pd.Timestamp("2025-01-01")]
        with pytest.raises(ConfigurationError):
            CorrelationTermStruct(self.names, dates, [0.3, 0.6])

    def test_mixture(self):
        mix = MixedCorrelation(
            [SingleFactorCorrelation(self.names, 0.2), SingleFactorCorrelation(self.names, 0.6)],
            [2.0, 2.0],
        )
        np.testing.assert_allclose(mix.normalized_weights(), [0.5, 0.5])
        assert factor_array(mix, AS_OF, 3)[0] == pytest.approx(0.4)

    def test_mixture_skips_zero_weights_and_rejects_zero_sum(self):
        comps = [SingleFactorCorrelation(self.names, 0.2), SingleFactorCorrelation(self.names, 0.6)]
        assert len(MixedCorrelation(comps, [1.0, 0.0]).active_components()) == 1
        with pytest.raises(DomainError):
            MixedCorrelation(comps, [1.0, -1.0]).normalized_weights()

    def test_base_correlation_has_no_factor_array(self):
        base = BaseCorrelation([0.03, 0.07, 0.1], [0.2, 0.3, 0.4])
        assert base.correlation_at_strike(0.05) == pytest.approx(0.25)
        assert base.correlation_at_strike(0.5) == pytest.approx(0.4)
        with pytest.raises(CorrelationTypeError):
            factor_array(base, AS_OF, 3)

    def test_base_correlation_validation(self):
        with pytest.raises(ConfigurationError):
            BaseCorrelation([0.1, 0.05], [0.2, 0.3])
        with pytest.raises(ConfigurationError):
            BaseCorrelation([0.1], [1.2])

    def test_intersection_factors(self):
        f = intersection_factors([0.2, 0.6])
        assert f[0, 0] == pytest.approx(np.sqrt(0.2))
        assert f[0, 1] == pytest.approx(np.sqrt(0.4))
        assert f[1, 0] == f[0, 1]

    def test_copy_is_deep(self):
        corr = SingleFactorCorrelation(self.names, 0.4)
        other = corr.copy()
        other.set_factor(0.1)
        assert corr.max_correlation == 0.4
