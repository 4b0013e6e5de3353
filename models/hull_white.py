"""
Dynamic jump model for a homogeneous pool.

Systematic jumps arrive as a Poisson process with intensity
γ(t) = γ0 · exp(α t); at every jump each surviving name defaults with
probability 1 - exp(-w). On top of that each name carries a deterministic
idiosyncratic hazard H(t), chosen so the marginal survival matches the
curves:

    S(t) = exp(-H(t)) · exp(-Γ(t) (1 - e^{-w})),   Γ(t) = ∫ γ

Conditional on J(t) = j jumps the names default independently with
probability 1 - exp(-H - w j), so the default count is a Poisson mixture of
binomials. Parameters are [γ0, α, w].
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from scipy import stats

logger = logging.getLogger(__name__)

# Poisson tail mass ignored when truncating the jump count
_TAIL = 1e-14


@dataclass(frozen=True)
class JumpParameters:
    gamma0: float = 0.05
    alpha: float = 0.0
    jump: float = 0.1

    def __post_init__(self):
        if self.gamma0 < 0.0:
            raise ValueError("Jump intensity must be non-negative.")
        if self.jump < 0.0:
            raise ValueError("Jump size must be non-negative.")

    @classmethod
    def from_vector(cls, x: Sequence[float]) -> "JumpParameters":
        return cls(gamma0=abs(float(x[0])), alpha=float(x[1]), jump=abs(float(x[2])))

    def as_vector(self) -> np.ndarray:
        return np.array([self.gamma0, self.alpha, self.jump], dtype=float)

    def integrated_intensity(self, t: float) -> float:
        if t <= 0.0:
            return 0.0
        if abs(self.alpha) < 1e-12:
            return self.gamma0 * t
        return self.gamma0 * math.expm1(self.alpha * t) / self.alpha


def default_count_distribution(
    n_names: int, survival: float, t: float, params: JumpParameters
) -> np.ndarray:
    """Probability of k = 0..n_names defaults by time t."""
    if survival <= 0.0:
        pmf = np.zeros(n_names + 1)
        pmf[-1] = 1.0
        return pmf
    big_gamma = params.integrated_intensity(t)
    jump_default = -math.expm1(-params.jump)
    idio = -math.log(min(survival, 1.0)) - big_gamma * jump_default
    if idio < 0.0:
        logger.debug("Jump component exceeds the marginal default probability at t=%.4f", t)
        idio = 0.0

    k = np.arange(n_names + 1)
    if big_gamma <= 0.0 or params.jump == 0.0:
        return stats.binom.pmf(k, n_names, -math.expm1(-idio - big_gamma * jump_default))

    j_max = int(stats.poisson.ppf(1.0 - _TAIL, big_gamma)) + 1
    j = np.arange(j_max + 1)
    weights = stats.poisson.pmf(j, big_gamma)
    weights /= weights.sum()
    p = -np.expm1(-idio - params.jump * j)
    pmf = weights @ stats.binom.pmf(k[None, :], n_names, p[:, None])
    return pmf / pmf.sum()


def count_level_values(
    pmf: np.ndarray, unit_rate: float, levels: np.ndarray, scale: float, want_probability: bool
) -> np.ndarray:
    """
    Level values for an amount proportional to the default fraction k/N.

    ``unit_rate`` is the amount fraction per defaulted fraction (loss rate for
    losses, average recovery for amortization); levels are divided by it.
    """
    n = len(pmf) - 1
    fractions = np.arange(n + 1) / n
    if unit_rate <= 0.0:
        if want_probability:
            return np.ones(len(levels))
        return np.zeros(len(levels))
    scaled = np.asarray(levels, dtype=float) / unit_rate
    if want_probability:
        below = (fractions[:, None] <= scaled[None, :] + 1e-12).astype(float)
        return np.clip(pmf @ below, 0.0, 1.0)
    return scale * unit_rate * (pmf @ np.minimum(fractions[:, None], scaled[None, :]))
