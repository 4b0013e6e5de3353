"""
Conditional loss distributions on a bucket lattice.

Given conditional default probabilities for every factor node, the pool loss
distribution is built name by name (the classic recursion). A name's loss
amount rarely falls on a bucket boundary, so its mass is split linearly
between the two neighbouring buckets; this keeps the expected loss exact.
Losses beyond the last bucket pile up in it.

Recovery dispersion uses two equally likely recoveries R ± σ (clipped to
[0, 1]), which doubles the number of shifted terms but keeps the mean.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

MAX_BUCKETS = 4000


@dataclass(frozen=True)
class Lattice:
    unit: float
    n_buckets: int

    @classmethod
    def for_amounts(cls, amounts: np.ndarray, scale: float, grid_size: float = 0.0) -> "Lattice":
        """
        Bucket lattice covering the sum of ``amounts``.

        ``grid_size`` is the bucket size as a fraction of ``scale``; 0 picks a
        quarter of the smallest positive amount, bounded by MAX_BUCKETS.
        """
        amounts = np.abs(np.asarray(amounts, dtype=float))
        total = float(amounts.sum())
        if total <= 0.0:
            return cls(unit=max(scale, 1.0), n_buckets=1)
        if grid_size > 0.0:
            unit = grid_size * scale
        else:
            unit = float(amounts[amounts > 0].min()) / 4.0
        unit = max(unit, total / MAX_BUCKETS)
        n = int(math.ceil(total / unit - 1e-9)) + 1
        return cls(unit=unit, n_buckets=n)

    @property
    def values(self) -> np.ndarray:
        return np.arange(self.n_buckets, dtype=float) * self.unit


def _shift_into(target: np.ndarray, source: np.ndarray, weight: np.ndarray, x: float) -> None:
    """target += weight * source shifted by x buckets (split linearly)."""
    n = source.shape[1]
    k = int(math.floor(x + 1e-9))
    frac = max(x - k, 0.0)
    for shift, w in ((k, 1.0 - frac), (k + 1, frac)):
        if w <= 0.0:
            continue
        if shift >= n - 1:
            target[:, n - 1] += weight * w * source.sum(axis=1)
            continue
        target[:, shift:n - 1] += (weight * w)[:, None] * source[:, :n - 1 - shift]
        target[:, n - 1] += weight * w * source[:, n - 1 - shift:].sum(axis=1)


def conditional_distribution(
    q: np.ndarray,
    amounts: np.ndarray,
    lattice: Lattice,
    amounts_alt: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Loss distribution per factor node, shape (n_nodes, n_buckets).

    Parameters
    ----------
    q : np.ndarray
        Conditional default probabilities, shape (n_nodes, n_names).
    amounts : np.ndarray
        Loss amount of each name on default.
    amounts_alt : np.ndarray, optional
        Second loss amount for two-point recovery dispersion; each of the two
        amounts then carries half the default probability.
    """
    n_nodes, n_names = q.shape
    dist = np.zeros((n_nodes, lattice.n_buckets), dtype=float)
    dist[:, 0] = 1.0
    for i in range(n_names):
        qi = q[:, i]
        if amounts[i] == 0.0 or not np.any(qi > 0.0):
            continue
        new = dist * (1.0 - qi)[:, None]
        if amounts_alt is None or amounts_alt[i] == amounts[i]:
            _shift_into(new, dist, qi, amounts[i] / lattice.unit)
        else:
            _shift_into(new, dist, 0.5 * qi, amounts[i] / lattice.unit)
            _shift_into(new, dist, 0.5 * qi, amounts_alt[i] / lattice.unit)
        dist = new
    return dist


def level_values(
    dist: np.ndarray,
    lattice: Lattice,
    level_amounts: np.ndarray,
    want_probability: bool,
) -> np.ndarray:
    """
    P(L <= x) or E[min(L, x)] for each node and level amount x.

    Returns shape (n_nodes, n_levels).
    """
    losses = lattice.values
    level_amounts = np.asarray(level_amounts, dtype=float)
    if want_probability:
        tol = 1e-9 * lattice.unit
        indicator = (losses[:, None] <= level_amounts[None, :] + tol).astype(float)
        return np.clip(dist @ indicator, 0.0, 1.0)
    return dist @ np.minimum(losses[:, None], level_amounts[None, :])


def exceedance_probabilities(dist: np.ndarray, lattice: Lattice, amount: float) -> np.ndarray:
    """P(L >= amount) for each node."""
    tol = 1e-9 * lattice.unit
    mask = lattice.values >= amount - tol
    return np.clip(dist[:, mask].sum(axis=1), 0.0, 1.0)
