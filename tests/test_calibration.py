"""
Tests for the bracketed solver and its tolerance defaults.
"""

import math

import pytest

from calibration import solve, solver_tolerances
from core import NonConvergenceError


class TestSolverTolerances:
    def test_defaults_from_principal(self):
        tol_f, tol_x = solver_tolerances(1e8)
        assert tol_f == pytest.approx(1e-8)
        assert tol_x == pytest.approx(1e-6)

    def test_small_principal_is_capped(self):
        tol_f, tol_x = solver_tolerances(10.0)
        assert tol_f == 1e-6
        assert tol_x == pytest.approx(1e-4)

    def test_explicit_values_kept(self):
        assert solver_tolerances(1e8, 1e-3, 1e-2) == (1e-3, 1e-2)


class TestSolve:
    def test_square_root(self):
        root = solve("square", 2.0, lambda x: x * x, 1e-12, 1e-12, 0.0, 2.0)
        assert root == pytest.approx(math.sqrt(2.0), abs=1e-10)

    def test_root_on_bracket_end(self):
        assert solve("identity", 1.0, lambda x: x, 1e-12, 1e-12, 0.0, 1.0) == 1.0

    def test_unbracketed_target_raises(self):
        with pytest.raises(NonConvergenceError, match="not bracketed"):
            solve("square", 5.0, lambda x: x * x, 1e-12, 1e-12, 0.0, 2.0)

    def test_budget_exceeded_raises(self):
        with pytest.raises(NonConvergenceError, match="exceeded 3 evaluations"):
            solve("cube", 0.3, lambda x: x ** 3, 1e-15, 1e-15, 0.0, 1.0, max_evaluations=3)
