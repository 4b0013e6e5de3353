"""
Correlation objects for the basket strategies.

Factor-style objects store factor loadings β (pairwise correlation β_i β_j):

  SingleFactorCorrelation — one loading shared by all names
  CorrelationTermStruct   — loadings indexed by tenor date, shared or per name
  MixedCorrelation        — weighted list of other correlation objects
  GeneralCorrelation      — full pairwise correlation matrix
  BaseCorrelation         — correlation by tranche detachment (a strike curve)

Base correlations store correlations ρ, not loadings; the implied loading is
sqrt(ρ). A base correlation has no factor array of its own: it must first be
mapped to a term structure for a specific tranche via ``get_correlations``.
"""

from __future__ import annotations

import copy
import logging
import math
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from calibration.solver import solve, solver_tolerances
from core.errors import ConfigurationError, CorrelationTypeError, DomainError
from core.schema import FULL_DETACHMENT, LEVEL_TOLERANCE
from engine.pricer import TranchePricer

logger = logging.getLogger(__name__)


def _ensure_positive_definite(matrix: np.ndarray) -> np.ndarray:
    """
    Force a correlation matrix to be positive semi-definite.

    Hand-built pairwise matrices are not always valid for multivariate
    sampling. This uses eigenvalue clipping to fix that.
    """
    eigenvalues, eigenvectors = np.linalg.eigh(matrix)
    eigenvalues = np.maximum(eigenvalues, 1e-8)
    fixed = eigenvectors @ np.diag(eigenvalues) @ eigenvectors.T
    # Re-normalize to correlation matrix (diagonal = 1)
    d = np.sqrt(np.diag(fixed))
    fixed = fixed / np.outer(d, d)
    np.fill_diagonal(fixed, 1.0)
    return fixed


class Correlation:
    """Interface shared by every correlation variant."""

    names: Tuple[str, ...] = ()

    def correlations_at(self, date: pd.Timestamp) -> np.ndarray:
        raise NotImplementedError

    @property
    def max_correlation(self) -> float:
        raise NotImplementedError

    def copy(self) -> "Correlation":
        return copy.deepcopy(self)


def _check_factor(value: float) -> float:
    value = float(value)
    if not -1.0 <= value <= 1.0:
        raise ConfigurationError(f"Factor loading {value} outside [-1, 1].")
    return value


class SingleFactorCorrelation(Correlation):
    def __init__(self, names: Sequence[str] = (), factor: float = 0.0):
        self.names = tuple(names)
        self.factor = _check_factor(factor)

    def correlations_at(self, date: pd.Timestamp = None) -> np.ndarray:
        return np.array([self.factor], dtype=float)

    @property
    def max_correlation(self) -> float:
        return self.factor

    def set_factor(self, factor: float) -> None:
        self.factor = _check_factor(factor)

    def __repr__(self):
        return f"SingleFactorCorrelation(factor={self.factor})"


class GeneralCorrelation(Correlation):
    def __init__(self, names: Sequence[str], matrix: np.ndarray):
        matrix = np.asarray(matrix, dtype=float)
        if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
            raise ConfigurationError("Correlation matrix must be square.")
        if names and len(names) != matrix.shape[0]:
            raise ConfigurationError("Correlation matrix does not match the names.")
        if not np.allclose(matrix, matrix.T):
            raise ConfigurationError("Correlation matrix must be symmetric.")
        self.names = tuple(names)
        self.matrix = matrix.copy()
        np.fill_diagonal(self.matrix, 1.0)

    def correlations_at(self, date: pd.Timestamp = None) -> np.ndarray:
        return self.matrix.copy()

    @property
    def max_correlation(self) -> float:
        n = self.matrix.shape[0]
        if n < 2:
            return 0.0
        return float(self.matrix[~np.eye(n, dtype=bool)].max())


class CorrelationTermStruct(Correlation):
    """
    Loadings per tenor date. ``factors`` has one row per tenor and either one
    column (shared loading) or one column per name.

    A date uses the row of the first tenor on or after it, the last row beyond
    the final tenor.
    """

    def __init__(
        self,
        names: Sequence[str],
        dates: Sequence[pd.Timestamp],
        factors,
    ):
        dates = [pd.Timestamp(d) for d in dates]
        if not dates:
            raise ConfigurationError("Term structure needs at least one date.")
        if any(b <= a for a, b in zip(dates, dates[1:])):
            raise ConfigurationError("Term structure dates must be strictly increasing.")
        factors = np.array(factors, dtype=float)
        if factors.ndim == 0:
            factors = np.full((len(dates), 1), float(factors))
        elif factors.ndim == 1:
            factors = factors[:, None]
        if factors.shape[0] != len(dates):
            raise ConfigurationError("One factor row per tenor date is required.")
        if names and factors.shape[1] not in (1, len(names)):
            raise ConfigurationError("Factor columns must be 1 or one per name.")
        if np.any(np.abs(factors) > 1.0):
            raise ConfigurationError("Factor loadings must lie in [-1, 1].")
        self.names = tuple(names)
        self.dates = dates
        self.factors = factors

    @classmethod
    def flat(cls, names: Sequence[str], dates: Sequence[pd.Timestamp], factor: float):
        return cls(names, dates, np.full((len(dates), 1), factor))

    def tenor_index(self, date: pd.Timestamp) -> int:
        date = pd.Timestamp(date)
        for i, d in enumerate(self.dates):
            if d >= date:
                return i
        return len(self.dates) - 1

    def correlations_at(self, date: pd.Timestamp) -> np.ndarray:
        return self.factors[self.tenor_index(date)].copy()

    @property
    def max_correlation(self) -> float:
        return float(self.factors.max())

    def dates_as_int(self, as_of: pd.Timestamp) -> np.ndarray:
        as_of = pd.Timestamp(as_of)
        return np.array([(d - as_of).days for d in self.dates], dtype=int)

    def set_factor(self, factor: float) -> None:
        self.factors[:, :] = _check_factor(factor)

    def set_factor_at_date(self, index: int, factor: float) -> None:
        self.factors[index, :] = _check_factor(factor)

    def set_factor_from(self, date: pd.Timestamp, factor: float) -> int:
        """Set the tenor covering ``date``; returns its index."""
        index = self.tenor_index(date)
        self.set_factor_at_date(index, factor)
        return index


class MixedCorrelation(Correlation):
    def __init__(self, components: Sequence[Correlation], weights: Sequence[float]):
        if len(components) != len(weights):
            raise ConfigurationError("One weight per correlation component is required.")
        if not components:
            raise ConfigurationError("Mixture needs at least one component.")
        self.components = list(components)
        self.weights = np.asarray(weights, dtype=float)
        self.names = components[0].names

    def normalized_weights(self) -> np.ndarray:
        total = self.weights.sum()
        if abs(total) < LEVEL_TOLERANCE:
            raise DomainError("Sum of mixture weights is too close to zero.")
        return self.weights / total

    def active_components(self) -> List[Tuple[float, Correlation]]:
        """Components whose weight is not negligible."""
        return [
            (float(w), c) for w, c in zip(self.weights, self.components)
            if abs(w) >= LEVEL_TOLERANCE
        ]

    def correlations_at(self, date: pd.Timestamp) -> np.ndarray:
        weights = self.normalized_weights()
        arrays = [np.atleast_1d(c.correlations_at(date)) for c in self.components]
        return sum(w * a for w, a in zip(weights, arrays))

    @property
    def max_correlation(self) -> float:
        return max(c.max_correlation for c in self.components)


class StrikeMethod(Enum):
    UNSCALED = "unscaled"
    EXPECTED_LOSS = "expected_loss"
    PROTECTION = "protection"


class BaseCorrelation(Correlation):
    """
    Correlation by tranche detachment.

    ``strikes`` are detachment strikes (increasing) and ``correlations`` the
    base correlations quoted at them; interpolation is linear and flat
    outside the quoted range. The strike method says how a tranche
    detachment maps to a strike:

      UNSCALED       strike = detachment
      EXPECTED_LOSS  strike = detachment / pool expected loss at maturity
      PROTECTION     strike = protection PV of [0, d] / protection PV of [0, 1],
                     which depends on the correlation itself and is solved for
    """

    def __init__(
        self,
        strikes: Sequence[float],
        correlations: Sequence[float],
        strike_method: StrikeMethod = StrikeMethod.UNSCALED,
        names: Sequence[str] = (),
    ):
        strikes = np.asarray(strikes, dtype=float)
        correlations = np.asarray(correlations, dtype=float)
        if strikes.shape != correlations.shape or strikes.size == 0:
            raise ConfigurationError("Strikes and correlations must have the same non-zero length.")
        if np.any(np.diff(strikes) <= 0):
            raise ConfigurationError("Strikes must be strictly increasing.")
        if np.any(correlations < 0) or np.any(correlations > 1):
            raise ConfigurationError("Base correlations must lie in [0, 1].")
        self.strikes = strikes
        self.correlations = correlations
        self.strike_method = strike_method
        self.names = tuple(names)

    @classmethod
    def flat(cls, correlation: float, names: Sequence[str] = ()) -> "BaseCorrelation":
        return cls([0.0, 1.0], [correlation, correlation], StrikeMethod.UNSCALED, names)

    def correlation_at_strike(self, strike: float) -> float:
        return float(np.interp(strike, self.strikes, self.correlations))

    def correlations_at(self, date: pd.Timestamp = None) -> np.ndarray:
        raise CorrelationTypeError(self, "a factor array without a tranche detachment")

    @property
    def max_correlation(self) -> float:
        return float(self.correlations.max())

    def get_correlations(
        self,
        product,
        names: Sequence[str],
        basket,
        discount_curve,
        tolerance_f: float = 0.0,
        tolerance_x: float = 0.0,
    ) -> CorrelationTermStruct:
        """
        Implied single-factor term structure for the equity tranche [0, d] of
        ``product``, priced on a duplicate of ``basket``.
        """
        tolerance_f, tolerance_x = solver_tolerances(
            basket.total_principal, tolerance_f, tolerance_x
        )
        rho = self._implied_correlation(
            product, names, basket, discount_curve, tolerance_f, tolerance_x
        )
        logger.debug("Base correlation for detachment %.6f: %.6f", product.detachment, rho)
        return CorrelationTermStruct.flat(names, [product.maturity], math.sqrt(rho))

    def _implied_correlation(
        self, product, names, basket, discount_curve, tolerance_f, tolerance_x
    ) -> float:
        detachment = product.detachment
        if detachment > FULL_DETACHMENT:
            return 0.0
        if self.strike_method is StrikeMethod.UNSCALED:
            return self.correlation_at_strike(detachment)

        work = basket.duplicate()
        work.correlation = SingleFactorCorrelation(names, 0.0)
        if self.strike_method is StrikeMethod.EXPECTED_LOSS:
            pool_loss = work.accumulated_loss(product.maturity, 0.0, 1.0)
            if pool_loss <= 0.0:
                return self.correlation_at_strike(self.strikes[-1])
            return self.correlation_at_strike(detachment / pool_loss)

        equity = TranchePricer(product.with_tranche(0.0, detachment), work, discount_curve)
        index = TranchePricer(product.with_tranche(0.0, 1.0), work, discount_curve)
        index_pv = index.protection_pv()
        if index_pv <= 0.0:
            return self.correlation_at_strike(detachment)

        def mismatch(rho: float) -> float:
            work.correlation = SingleFactorCorrelation(names, math.sqrt(rho))
            strike = equity.protection_pv() / index_pv
            return self.correlation_at_strike(strike) - rho

        lo = float(self.correlations.min())
        hi = float(self.correlations.max())
        if hi - lo < LEVEL_TOLERANCE:
            return lo
        return solve(
            "base correlation",
            0.0,
            mismatch,
            tolerance_f,
            tolerance_x,
            lo,
            hi,
        )


def factor_array(correlation: Correlation, date: pd.Timestamp, n: int) -> np.ndarray:
    """Per-name loadings at ``date``; general and base correlations cannot supply one."""
    if not isinstance(correlation, (SingleFactorCorrelation, CorrelationTermStruct, MixedCorrelation)):
        raise CorrelationTypeError(correlation)
    factors = np.atleast_1d(correlation.correlations_at(date)).astype(float)
    if factors.size == 1:
        return np.full(n, factors[0])
    if factors.size != n:
        raise ConfigurationError(
            f"{type(correlation).__name__} has {factors.size} loadings for {n} names."
        )
    return factors


def correlation_matrix(correlation: Correlation, date: pd.Timestamp, n: int) -> np.ndarray:
    """Pairwise correlation matrix at ``date``."""
    if isinstance(correlation, GeneralCorrelation):
        if correlation.matrix.shape[0] != n:
            raise ConfigurationError("Correlation matrix does not match the basket size.")
        return _ensure_positive_definite(correlation.correlations_at(date))
    factors = factor_array(correlation, date, n)
    matrix = np.outer(factors, factors)
    np.fill_diagonal(matrix, 1.0)
    return matrix


def intersection_factors(correlations: Sequence[float]) -> np.ndarray:
    """
    Loadings for names shared by sub-baskets i and j: sqrt((ρ_i + ρ_j) / 2).

    This averaging rule is an approximation kept for compatibility with
    existing calibrations; it is not derived from a joint model.
    """
    rho = np.asarray(correlations, dtype=float)
    return np.sqrt(np.clip((rho[:, None] + rho[None, :]) / 2.0, 0.0, 1.0))
