"""
One-factor copula integration.

Conditional on the common factor m, name i defaults by t with probability

    Gauss:     Φ((Φ⁻¹(p_i(t)) - β_i m) / sqrt(1 - β_i²))
    Student-t: T_idio((F⁻¹(p_i(t)) - β_i m) / sqrt(1 - β_i²))

where for the (double) Student-t copula both the factor and the
idiosyncratic term are unit-variance t variables and F is the distribution of
their mixture, tabulated numerically. The factor is integrated with
Gauss-Hermite nodes; t factors reuse the Gaussian nodes with density-ratio
weights.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Tuple

import numpy as np
from numpy.polynomial.hermite import hermgauss
from scipy import stats

from core.schema import Copula, CopulaType

# x grid used to tabulate the double-t latent distribution
_T_GRID = np.linspace(-15.0, 15.0, 3001)


@lru_cache(maxsize=32)
def _hermite(n: int) -> Tuple[np.ndarray, np.ndarray]:
    x, w = hermgauss(n)
    return np.sqrt(2.0) * x, w / np.sqrt(np.pi)


def t_scale(df: int) -> float:
    """Factor turning a t(df) variable into a unit-variance one."""
    return np.sqrt((df - 2.0) / df)


def factor_nodes(n: int, copula: Copula) -> Tuple[np.ndarray, np.ndarray]:
    """Factor values and probability weights (summing to 1)."""
    nodes, weights = _hermite(n)
    nodes = nodes.copy()
    weights = weights.copy()
    if copula.type is CopulaType.STUDENT_T:
        s = t_scale(copula.df_common)
        ratio = stats.t.pdf(nodes / s, copula.df_common) / s / stats.norm.pdf(nodes)
        weights = weights * ratio
        weights /= weights.sum()
    return nodes, weights


def _idiosyncratic_cdf(x: np.ndarray, copula: Copula) -> np.ndarray:
    if copula.type is CopulaType.STUDENT_T:
        df = copula.df_idiosyncratic or copula.df_common
        return stats.t.cdf(x / t_scale(df), df)
    return stats.norm.cdf(x)


def _latent_table(b: float, copula: Copula, n_nodes: int) -> np.ndarray:
    """Double-t latent distribution for loading b, tabulated on _T_GRID."""
    nodes, weights = factor_nodes(n_nodes, copula)
    s = np.sqrt(max(1.0 - b * b, 0.0))
    if s == 0.0:
        return np.interp(_T_GRID, np.sort(b * nodes), np.cumsum(weights[np.argsort(b * nodes)]))
    return _idiosyncratic_cdf((_T_GRID[:, None] - b * nodes[None, :]) / s, copula) @ weights


def latent_cdf(x: np.ndarray, beta: np.ndarray, copula: Copula, n_nodes: int) -> np.ndarray:
    """
    Distribution function of the latent variables, column j with loading
    ``beta[j]``. Used to turn simulated latent draws into uniforms that
    match the quadrature thresholds.
    """
    x = np.asarray(x, dtype=float)
    if copula.type is CopulaType.GAUSS:
        return stats.norm.cdf(x)
    beta = np.asarray(beta, dtype=float)
    out = np.empty_like(x)
    for b in np.unique(beta):
        mask = beta == b
        out[..., mask] = np.interp(x[..., mask], _T_GRID, _latent_table(float(b), copula, n_nodes))
    return out


def _latent_thresholds(p: np.ndarray, beta: np.ndarray, copula: Copula, n_nodes: int) -> np.ndarray:
    """Inverse of the latent variable distribution at probabilities p."""
    if copula.type is CopulaType.GAUSS:
        with np.errstate(divide="ignore"):
            return stats.norm.ppf(p)
    out = np.empty_like(p)
    for b in np.unique(beta):
        mask = beta == b
        cdf = _latent_table(float(b), copula, n_nodes)
        out[mask] = np.interp(p[mask], cdf, _T_GRID, left=-np.inf, right=np.inf)
    return out


def conditional_default_probabilities(
    p: np.ndarray,
    beta: np.ndarray,
    nodes: np.ndarray,
    copula: Copula,
    n_nodes: int,
) -> np.ndarray:
    """
    Conditional default probabilities, shape (n_nodes, n_names).

    Parameters
    ----------
    p : np.ndarray
        Unconditional default probabilities by the date, shape (n_names,).
    beta : np.ndarray
        Factor loadings, shape (n_names,).
    nodes : np.ndarray
        Factor values.
    """
    p = np.clip(np.asarray(p, dtype=float), 0.0, 1.0)
    beta = np.asarray(beta, dtype=float)
    threshold = _latent_thresholds(p, beta, copula, n_nodes)
    s = np.sqrt(np.clip(1.0 - beta * beta, 0.0, 1.0))
    with np.errstate(divide="ignore", invalid="ignore"):
        z = (threshold[None, :] - beta[None, :] * nodes[:, None]) / s[None, :]
    # fully correlated names: default iff the factor is below the threshold
    z = np.where(np.isnan(z), -np.inf, z)
    q = _idiosyncratic_cdf(z, copula)
    q[:, p <= 0.0] = 0.0
    q[:, p >= 1.0] = 1.0
    return q
