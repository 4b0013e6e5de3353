"""
Monte Carlo default-time kernel.

Latent variables are drawn once per path and name:

    Gauss (factor):   X_i = β_i M + sqrt(1 - β_i²) ε_i
    Gauss (matrix):   X = Z Cᵀ with C the Cholesky factor of the correlation
    Student-t factor: X_i = β_i M + sqrt(1 - β_i²) ε_i with M ~ t(df_common)
                      and ε_i ~ t(df_idiosyncratic), both scaled to unit
                      variance (the double-t of the quadrature baskets)
    Student-t matrix: the Gaussian X scaled by sqrt(df / W), W ~ χ²(df_common)

and mapped to uniforms U_i through the latent distribution function. Name i
has defaulted by t when U_i <= p_i(t), so one draw gives consistent default
times across the whole date grid. Recovery dispersion draws a recovery per
path and name from N(R, σ) clipped to [0, 1].

For a fixed seed the draws, and therefore the surfaces, are bit-identical.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from scipy import stats

from core.errors import ConfigurationError
from core.schema import Copula, CopulaType

from distributions.correlation import _ensure_positive_definite

from .quadrature import latent_cdf, t_scale

logger = logging.getLogger(__name__)


def resolve_seed(seed: int) -> int:
    """Negative seeds mean "pick one": draw from the system entropy source."""
    if isinstance(seed, bool) or not isinstance(seed, (int, np.integer)):
        raise ConfigurationError(f"Random seed must be an integer, got {seed!r}.")
    if seed >= 0:
        return int(seed)
    drawn = int(np.random.SeedSequence().entropy % (2**32))
    logger.info("Negative seed supplied, using system-random seed %d", drawn)
    return drawn


@dataclass
class LatentDraws:
    """Uniform default-time drivers and per-path recoveries."""

    uniforms: np.ndarray                    # (n_paths, n_names)
    recoveries: Optional[np.ndarray] = None  # (n_paths, n_names) when dispersed

    @property
    def n_paths(self) -> int:
        return self.uniforms.shape[0]


class MonteCarloKernel:
    def __init__(self, copula: Copula, sample_size: int, seed: int, quadrature_points: int = 25):
        self.copula = copula
        self.sample_size = sample_size
        self.seed = resolve_seed(seed)
        # tabulates the double-t latent distribution
        self.quadrature_points = quadrature_points

    def draw(
        self,
        n_names: int,
        factors: Optional[np.ndarray] = None,
        matrix: Optional[np.ndarray] = None,
        recoveries: Optional[np.ndarray] = None,
        dispersions: Optional[np.ndarray] = None,
    ) -> LatentDraws:
        """
        Draw latent uniforms from either factor loadings or a correlation matrix.
        """
        rng = np.random.default_rng(self.seed)
        n = self.sample_size
        copula = self.copula
        student = copula.type is CopulaType.STUDENT_T
        if matrix is not None:
            chol = np.linalg.cholesky(_ensure_positive_definite(matrix))
            x = rng.standard_normal((n, n_names)) @ chol.T
            if student:
                df = copula.df_common
                w = rng.chisquare(df, size=(n, 1))
                u = stats.t.cdf(x * np.sqrt(df / w), df)
            else:
                u = stats.norm.cdf(x)
        else:
            beta = np.zeros(n_names) if factors is None else np.asarray(factors, dtype=float)
            if student:
                df_idio = copula.df_idiosyncratic or copula.df_common
                m = rng.standard_t(copula.df_common, size=(n, 1)) * t_scale(copula.df_common)
                eps = rng.standard_t(df_idio, size=(n, n_names)) * t_scale(df_idio)
            else:
                m = rng.standard_normal((n, 1))
                eps = rng.standard_normal((n, n_names))
            x = beta[None, :] * m + np.sqrt(np.clip(1.0 - beta * beta, 0.0, 1.0))[None, :] * eps
            u = latent_cdf(x, beta, copula, self.quadrature_points)

        dispersed = None
        if recoveries is not None and dispersions is not None and np.any(np.asarray(dispersions) > 0.0):
            dispersed = np.clip(
                rng.normal(recoveries[None, :], np.asarray(dispersions)[None, :], size=(n, n_names)),
                0.0,
                1.0,
            )
        return LatentDraws(uniforms=u, recoveries=dispersed)

    @staticmethod
    def defaulted(draws: LatentDraws, p: np.ndarray) -> np.ndarray:
        """Boolean (n_paths, n_names) mask of names defaulted by a date."""
        return draws.uniforms <= np.asarray(p, dtype=float)[None, :]

    @staticmethod
    def pool_losses(
        draws: LatentDraws,
        mask: np.ndarray,
        principals: np.ndarray,
        recoveries: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Loss and recovered amount per path."""
        rec = draws.recoveries if draws.recoveries is not None else recoveries[None, :]
        hit = mask * principals[None, :]
        loss = (hit * (1.0 - rec)).sum(axis=1)
        amor = (hit * rec).sum(axis=1)
        return loss, amor


def sample_level_values(
    amounts: np.ndarray, level_amounts: np.ndarray, want_probability: bool
) -> np.ndarray:
    """P(L <= x) or E[min(L, x)] over paths for each level amount."""
    level_amounts = np.asarray(level_amounts, dtype=float)
    if want_probability:
        tol = 1e-12 * max(float(np.max(np.abs(level_amounts))), 1.0)
        return (amounts[:, None] <= level_amounts[None, :] + tol).mean(axis=0)
    return np.minimum(amounts[:, None], level_amounts[None, :]).mean(axis=0)
