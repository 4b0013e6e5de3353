"""
Losses counted only while a counterparty survives.

Conditional on the common factor the counterparty defaults independently of
the names. Loss already booked when the counterparty defaults stays booked,
later losses are not paid, so on the date grid t_0 < ... < t_j:

    V_cp(t_j) = Σ_k w_k [ V_k(t_j) S_k(t_j) + Σ_{l<=j} V_k(t_l) (S_k(t_l-1) - S_k(t_l)) ]

with V_k the conditional tranche value and S_k the conditional counterparty
survival at node k.
"""

from __future__ import annotations

import numpy as np

from core.schema import Copula

from .quadrature import conditional_default_probabilities


def conditional_survival(
    default_probs: np.ndarray, factor: float, nodes: np.ndarray, copula: Copula, n_nodes: int
) -> np.ndarray:
    """Counterparty survival per date and node, shape (n_dates, n_nodes)."""
    default_probs = np.asarray(default_probs, dtype=float)
    beta = np.array([factor])
    rows = [
        1.0 - conditional_default_probabilities(np.array([p]), beta, nodes, copula, n_nodes)[:, 0]
        for p in default_probs
    ]
    return np.stack(rows)


def survival_weighted_values(
    node_values: np.ndarray, survival: np.ndarray, weights: np.ndarray
) -> np.ndarray:
    """
    Parameters
    ----------
    node_values : np.ndarray
        Shape (n_dates, n_levels, n_nodes).
    survival : np.ndarray
        Shape (n_dates, n_nodes), the first row at the portfolio start.
    """
    drop = np.zeros_like(survival)
    drop[1:] = survival[:-1] - survival[1:]
    booked = np.cumsum(node_values * drop[:, None, :], axis=0)
    alive = node_values * survival[:, None, :]
    return (alive + booked) @ weights
