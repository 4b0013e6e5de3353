"""
CDO-squared basket: an outer tranche on a set of sub-basket tranches.

Sub-basket i holds principals P[i, :] over the shared names and loses
through its own tranche [a_i, d_i]. The outer notional is
T = Σ (d_i - a_i) S_i with S_i = Σ_k P[i, k]; outer levels are fractions of T.

Losses are simulated: one latent draw per path and name drives every
sub-basket, so names shared between sub-baskets default together. A
sub-basket with an earlier maturity stops taking losses after it.

With a base correlation the sub-baskets are first calibrated one at a time
to flat single-factor correlations that reproduce their base-correlation
protection PV, and the names pick up loadings from the sub-baskets they
belong to.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from calibration.solver import solve, solver_tolerances
from core.errors import ConfigurationError, DomainError
from core.schema import FULL_DETACHMENT, ResetFlag
from core.utils import round_loss_level
from distributions.correlation import (
    BaseCorrelation,
    Correlation,
    GeneralCorrelation,
    SingleFactorCorrelation,
    correlation_matrix,
    factor_array,
    intersection_factors,
)
from distributions.surface import Surface
from engine.pricer import TranchePricer
from engine.product import SyntheticCDO
from models.monte_carlo import LatentDraws, MonteCarloKernel, sample_level_values

from .base import BasketDistribution
from .base_correlation import BaseCorrelationBasket
from .cross_subordination import CrossSubordination
from .data import BasketData
from .semi_analytic import SemiAnalyticBasket

logger = logging.getLogger(__name__)


def _principal_matrix(value, n_sub: int, n_names: int) -> np.ndarray:
    matrix = np.asarray(value, dtype=float)
    if matrix.ndim == 1 and matrix.size == n_sub * n_names:
        matrix = matrix.reshape(n_sub, n_names)
    matrix = np.atleast_2d(matrix)
    if matrix.shape[1] != n_names:
        raise ConfigurationError(
            f"Sub-basket principals cover {matrix.shape[1]} names, the pool has {n_names}."
        )
    if matrix.shape[0] != n_sub:
        raise ConfigurationError(
            f"Got principals for {matrix.shape[0]} sub-baskets, expected {n_sub}."
        )
    return matrix


class NestedBasket(BasketDistribution):
    def __init__(
        self,
        data: BasketData,
        correlation: Correlation,
        sub_principals: np.ndarray,
        attachments: Sequence[float],
        detachments: Sequence[float],
        cross_subordination: bool = False,
        maturities: Optional[Sequence[pd.Timestamp]] = None,
        discount_curve=None,
        tolerance_f: float = 0.0,
        tolerance_x: float = 0.0,
    ):
        sub_principals = _principal_matrix(sub_principals, len(attachments), data.pool.size)
        n_sub = sub_principals.shape[0]
        attachments = np.asarray(attachments, dtype=float)
        detachments = np.asarray(detachments, dtype=float)
        if attachments.shape != (n_sub,) or detachments.shape != (n_sub,):
            raise ConfigurationError("Need one attachment and one detachment per sub-basket.")
        if np.any(attachments > detachments):
            raise DomainError("Attachment cannot be greater than Detachment.")
        if np.any(attachments < 0.0) or np.any(detachments > 1.0):
            raise DomainError("Sub-basket attachments and detachments must lie in [0, 1].")
        if maturities is None:
            maturities = [data.maturity] * n_sub
        maturities = [pd.Timestamp(m) for m in maturities]
        if len(maturities) != n_sub:
            raise ConfigurationError("Need one maturity per sub-basket.")
        if isinstance(correlation, BaseCorrelation) and discount_curve is None:
            raise ConfigurationError("Base correlation calibration needs a discount curve.")

        data = data.with_pool(principals=sub_principals.sum(axis=0).tolist())
        if data.defaulted.any():
            names = [n for n, d in zip(data.pool.name_list, data.defaulted) if d]
            raise ConfigurationError(
                f"Names defaulted before the portfolio start are not supported: {names}."
            )
        super().__init__(data, correlation)

        self.attachments = attachments
        self.detachments = detachments
        self.cross_subordination = cross_subordination
        self.maturities = maturities
        self.discount_curve = discount_curve
        self.tolerance_f = tolerance_f
        self.tolerance_x = tolerance_x

        self._calibrated: Optional[np.ndarray] = None
        self._set_sub_principals(sub_principals)

    def _set_sub_principals(self, sub_principals: np.ndarray) -> None:
        self.sub_principals = sub_principals
        self.sub_totals = sub_principals.sum(axis=1)
        self.transform = CrossSubordination.from_sub_baskets(
            sub_principals, self.attachments, self.detachments, self.cross_subordination
        )

    @property
    def principals(self) -> np.ndarray:
        """Sub-basket principal matrix, one row per sub-basket."""
        return self.sub_principals.copy()

    @principals.setter
    def principals(self, value) -> None:
        """
        Accepts the (sub-basket, name) matrix or its row-major flattening.
        The pool principals, sub-basket totals and the cross-subordination
        transform all follow.
        """
        matrix = _principal_matrix(value, len(self.attachments), self.data.pool.size)
        self.data = self.data.with_pool(principals=matrix.sum(axis=0).tolist())
        self._set_sub_principals(matrix)
        self.reset()

    # ------------------------------------------------------------------
    # Notionals and levels
    # ------------------------------------------------------------------

    @property
    def total_principal(self) -> float:
        return float((self.sub_totals * (self.detachments - self.attachments)).sum())

    def current_total_principal(self, date: pd.Timestamp) -> float:
        """Outer notional from the sub-baskets that have not matured by ``date``."""
        date = pd.Timestamp(date)
        alive = np.array([m >= date for m in self.maturities])
        widths = self.sub_totals * (self.detachments - self.attachments)
        return float(widths[alive].sum())

    @property
    def level_unit(self) -> float:
        """Currency amount of one unit of surface level."""
        if self.transform.enabled:
            return float((self.sub_totals * self.detachments).sum())
        return self.total_principal

    def _surface_level(self, level: float) -> float:
        return round_loss_level(self.transform.forward(level), self.data.config.effective_digits)

    @property
    def surface_levels(self) -> np.ndarray:
        levels = {0.0, 1.0}
        levels.update(self._surface_level(x) for x in self.data.loss_levels if x >= 0.0)
        return np.array(sorted(levels), dtype=float)

    # ------------------------------------------------------------------
    # Correlation
    # ------------------------------------------------------------------

    def _sub_basket_data(self, i: int) -> BasketData:
        data = self.data
        pool = data.pool
        members = np.flatnonzero(self.sub_principals[i] != 0.0)
        names = pool.name_list
        sub_pool = pool.replace(
            survival_curves=[pool.survival_curves[k] for k in members],
            recovery_curves=[pool.recovery_curves[k] for k in members],
            principals=self.sub_principals[i][members].tolist(),
            names=[names[k] for k in members],
            refinance_curves=None,
            refinance_correlations=None,
        )
        return replace(
            data,
            pool=sub_pool,
            maturity=self.maturities[i],
            loss_levels=(float(self.attachments[i]), float(self.detachments[i])),
        )

    def calibrate_correlations(self) -> np.ndarray:
        """
        Flat correlation per sub-basket matching its base-correlation
        protection PV. A sub-basket tranche covering the whole pool gets 0.
        """
        if not isinstance(self.correlation, BaseCorrelation):
            raise DomainError("Sub-basket calibration requires a base correlation.")
        n_sub = len(self.attachments)
        out = np.zeros(n_sub, dtype=float)
        max_evaluations = self.data.config.max_solver_evaluations
        for i in range(n_sub):
            a, d = float(self.attachments[i]), float(self.detachments[i])
            if a <= 0.0 and d > FULL_DETACHMENT:
                continue
            sub_data = self._sub_basket_data(i)
            names = sub_data.pool.name_list
            product = SyntheticCDO(sub_data.start, sub_data.maturity, a, d)

            target_basket = BaseCorrelationBasket(
                sub_data, self.correlation, self.discount_curve, self.tolerance_f, self.tolerance_x
            )
            target = TranchePricer(product, target_basket, self.discount_curve).protection_pv()

            proxy = SemiAnalyticBasket(sub_data, SingleFactorCorrelation(names, 0.0))
            pricer = TranchePricer(product, proxy, self.discount_curve)

            def protection(rho: float) -> float:
                proxy.correlation = SingleFactorCorrelation(names, math.sqrt(rho))
                return pricer.protection_pv()

            tolerance_f, tolerance_x = solver_tolerances(
                self.sub_totals[i], self.tolerance_f, self.tolerance_x
            )
            out[i] = solve(
                "sub-basket protection",
                target,
                protection,
                tolerance_f,
                tolerance_x,
                0.0,
                1.0,
                max_evaluations,
            )
            logger.debug("Sub-basket %d [%.4f, %.4f] correlation %.6f", i, a, d, out[i])
        return out

    def name_factors(self, correlations: Sequence[float]) -> np.ndarray:
        """
        Loading of each name given the sub-basket correlations.

        A name in one or two sub-baskets takes the matching entry of
        ``intersection_factors``; a name in more takes the square root of the
        average correlation over them.
        """
        correlations = np.asarray(correlations, dtype=float)
        shared = intersection_factors(correlations)
        factors = np.zeros(self.sub_principals.shape[1], dtype=float)
        for k in range(len(factors)):
            members = np.flatnonzero(self.sub_principals[:, k] != 0.0)
            if len(members) == 0:
                continue
            if len(members) <= 2:
                factors[k] = shared[members[0], members[-1]]
            else:
                factors[k] = math.sqrt(float(correlations[members].mean()))
        return factors

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    def kernel(self) -> MonteCarloKernel:
        cfg = self.data.config
        return MonteCarloKernel(self.data.copula, cfg.sample_size, cfg.seed, cfg.quadrature_points)

    def draw(self, kernel: MonteCarloKernel) -> LatentDraws:
        data = self.data
        active = data.active
        n = data.pool.size
        rec, disp = data.recoveries[active], data.dispersions[active]
        if isinstance(self.correlation, BaseCorrelation):
            if self._calibrated is None:
                self._calibrated = self.calibrate_correlations()
            factors = self.name_factors(self._calibrated)[active]
            return kernel.draw(len(active), factors=factors, recoveries=rec, dispersions=disp)
        if isinstance(self.correlation, GeneralCorrelation):
            matrix = correlation_matrix(self.correlation, data.maturity, n)[np.ix_(active, active)]
            return kernel.draw(len(active), matrix=matrix, recoveries=rec, dispersions=disp)
        factors = factor_array(self.correlation, data.maturity, n)[active]
        return kernel.draw(len(active), factors=factors, recoveries=rec, dispersions=disp)

    def _outer_losses(self, kernel: MonteCarloKernel, draws: LatentDraws, date: pd.Timestamp) -> np.ndarray:
        data = self.data
        active = data.active
        recoveries = data.recoveries[active]
        attachments = self.transform.effective_attachments(self.attachments)
        total = np.zeros(draws.n_paths, dtype=float)
        for i in range(len(self.attachments)):
            p = data.default_probabilities([min(date, self.maturities[i])])[0]
            mask = kernel.defaulted(draws, p)
            loss, _ = kernel.pool_losses(draws, mask, self.sub_principals[i][active], recoveries)
            # pooled attachments come off the outer level instead
            lo = attachments[i] * self.sub_totals[i]
            hi = self.detachments[i] * self.sub_totals[i]
            total += np.clip(loss - lo, 0.0, hi - lo)
        return total

    def _rows(self, dates, levels, want_probability) -> np.ndarray:
        kernel = self.kernel()
        draws = self.draw(kernel)
        amounts = np.asarray(levels, dtype=float) * self.level_unit
        return np.array([
            sample_level_values(self._outer_losses(kernel, draws, d), amounts, want_probability)
            for d in dates
        ])

    def _build(self) -> Dict[str, Surface]:
        return {"loss": Surface.allocate(self.as_of, self.time_grid, self.surface_levels)}

    def _fill(self, surfaces: Dict[str, Surface], start: int) -> None:
        surfaces["loss"].values[:, :, 0] = self._rows(self.time_grid, self.surface_levels, False)

    def surfaces(self) -> Dict[str, Surface]:
        return self._lazy.get(self._build, self._fill)

    def reset(self, flag=None) -> None:
        super().reset(flag)
        if flag != ResetFlag.SETTLE:
            self._calibrated = None

    # ------------------------------------------------------------------
    # Interface
    # ------------------------------------------------------------------

    def accumulated_loss(self, date: pd.Timestamp, begin: float, end: float) -> float:
        if begin > end:
            raise DomainError("Attachment cannot be greater than Detachment.")
        date = self.data.check_date(date)
        b = self._surface_level(begin)
        e = self._surface_level(end)
        if e <= b:
            return 0.0
        value = self.surfaces()["loss"].interpolate(date, b, e) / self.total_principal
        return min(max(value, 0.0), 1.0)

    def amortized_amount(self, date: pd.Timestamp, begin: float, end: float) -> float:
        """Sub-basket recoveries never reach the outer tranche."""
        if begin > end:
            raise DomainError("Attachment cannot be greater than Detachment.")
        self.data.check_date(date)
        return 0.0

    def calc_loss_distribution(
        self, want_probability: bool, date: pd.Timestamp, levels: Sequence[float]
    ) -> np.ndarray:
        """
        (level, value) rows on the outer scale.

        Levels are mapped through the cross-subordination transform for the
        simulation and reported back in outer units; the expected-loss values
        are fractions of the outer notional.
        """
        date = pd.Timestamp(date)
        if date < self.settle or date > self.maturity:
            raise DomainError(
                f"Date {date.date()} is outside [{self.settle.date()}, {self.maturity.date()}]."
            )
        surface_levels: List[float] = [self._surface_level(x) for x in levels]
        values = self._rows([date], surface_levels, want_probability)[0]
        if not want_probability:
            values = values / self.total_principal
        reported = [self.transform.inverse(s) for s in surface_levels]
        return np.column_stack([reported, values])
