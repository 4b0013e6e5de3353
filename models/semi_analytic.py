"""
Semi-analytic one-factor kernel.

For every grid date the kernel conditions on the common factor, builds the
conditional loss and amortization (recovered principal) distributions on a
bucket lattice and turns them into level values:

    want_probability  -> P(L <= x · scale)
    otherwise         -> E[min(L, x · scale)]   (currency)

and the same for amortization. Values are either averaged over the factor
nodes or returned per node (for conditioning strategies).
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from core.schema import Copula

from .lattice import Lattice, conditional_distribution, level_values
from .quadrature import conditional_default_probabilities, factor_nodes


@dataclass(frozen=True)
class PoolAmounts:
    """Per-name loss and recovered amounts on default, in currency."""

    loss: np.ndarray
    recovery: np.ndarray
    # two-point dispersion: alternative amounts, None without dispersion
    loss_alt: Optional[np.ndarray] = None
    recovery_alt: Optional[np.ndarray] = None

    @classmethod
    def build(
        cls,
        principals: np.ndarray,
        recoveries: np.ndarray,
        dispersions: Optional[np.ndarray] = None,
    ) -> "PoolAmounts":
        principals = np.asarray(principals, dtype=float)
        recoveries = np.asarray(recoveries, dtype=float)
        if dispersions is None or not np.any(np.asarray(dispersions) > 0.0):
            return cls(loss=principals * (1.0 - recoveries), recovery=principals * recoveries)
        lo = np.clip(recoveries - dispersions, 0.0, 1.0)
        hi = np.clip(recoveries + dispersions, 0.0, 1.0)
        return cls(
            loss=principals * (1.0 - lo),
            recovery=principals * lo,
            loss_alt=principals * (1.0 - hi),
            recovery_alt=principals * hi,
        )

    @property
    def max_loss(self) -> np.ndarray:
        if self.loss_alt is None:
            return self.loss
        return np.maximum(self.loss, self.loss_alt)

    @property
    def max_recovery(self) -> np.ndarray:
        if self.recovery_alt is None:
            return self.recovery
        return np.maximum(self.recovery, self.recovery_alt)


class QuadratureKernel:
    def __init__(
        self,
        copula: Copula,
        quadrature_points: int,
        grid_size: float = 0.0,
        parallel: bool = False,
    ):
        self.copula = copula
        self.quadrature_points = quadrature_points
        self.grid_size = grid_size
        self.parallel = parallel
        self.nodes, self.weights = factor_nodes(quadrature_points, copula)

    def lattices(self, amounts: PoolAmounts, scale: float) -> Tuple[Lattice, Lattice]:
        return (
            Lattice.for_amounts(amounts.max_loss, scale, self.grid_size),
            Lattice.for_amounts(amounts.max_recovery, scale, self.grid_size),
        )

    def conditional_probabilities(self, p: np.ndarray, beta: np.ndarray) -> np.ndarray:
        return conditional_default_probabilities(
            p, beta, self.nodes, self.copula, self.quadrature_points
        )

    def conditional_distributions(
        self,
        p: np.ndarray,
        beta: np.ndarray,
        amounts: PoolAmounts,
        lattices: Tuple[Lattice, Lattice],
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Loss and amortization distributions per node at one date."""
        q = self.conditional_probabilities(p, beta)
        loss = conditional_distribution(q, amounts.loss, lattices[0], amounts.loss_alt)
        amor = conditional_distribution(q, amounts.recovery, lattices[1], amounts.recovery_alt)
        return loss, amor

    def compute(
        self,
        default_probs: np.ndarray,
        factors: np.ndarray,
        amounts: PoolAmounts,
        level_amounts: np.ndarray,
        level_scale: float,
        want_probability: bool,
        start: int = 0,
        keep_nodes: bool = False,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Loss and amortization level values for date rows ``start`` onwards.

        Parameters
        ----------
        default_probs, factors : np.ndarray
            Shape (n_dates, n_names).
        level_amounts : np.ndarray
            Levels already multiplied by ``level_scale``.
        level_scale : float
            Currency amount of a unit level; sizes the lattice buckets.

        Returns
        -------
        (loss, amortization)
            Shape (n_dates - start, n_levels), or (n_dates - start, n_levels,
            n_nodes) with ``keep_nodes``.
        """
        lattices = self.lattices(amounts, level_scale)

        def row(i: int) -> Tuple[np.ndarray, np.ndarray]:
            loss, amor = self.conditional_distributions(
                default_probs[i], factors[i], amounts, lattices
            )
            lv = level_values(loss, lattices[0], level_amounts, want_probability)
            av = level_values(amor, lattices[1], level_amounts, want_probability)
            if keep_nodes:
                return lv.T, av.T
            return self.weights @ lv, self.weights @ av

        rows = range(start, default_probs.shape[0])
        if self.parallel:
            with ThreadPoolExecutor() as pool:
                results = list(pool.map(row, rows))
        else:
            results = [row(i) for i in rows]
        if not results:
            shape = (0, len(level_amounts)) + ((len(self.weights),) if keep_nodes else ())
            return np.zeros(shape), np.zeros(shape)
        loss = np.stack([r[0] for r in results])
        amor = np.stack([r[1] for r in results])
        return loss, amor
