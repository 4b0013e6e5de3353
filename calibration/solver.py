"""
Bracketed 1-D root finding with an evaluation budget.

Wraps ``scipy.optimize.brentq``. The evaluator is counted and the search is
abandoned with ``NonConvergenceError`` once the budget is spent, so a
calibration never loops indefinitely or hands back an unchecked root.
"""

from __future__ import annotations

import logging
from typing import Callable, Tuple

from scipy.optimize import brentq

from core.errors import NonConvergenceError

logger = logging.getLogger(__name__)

DEFAULT_MAX_EVALUATIONS = 200


def solver_tolerances(
    total_principal: float, tolerance_f: float = 0.0, tolerance_x: float = 0.0
) -> Tuple[float, float]:
    """
    Fill in non-positive tolerances.

    tolerance_f defaults to 1/|total principal| capped at 1e-6,
    tolerance_x to min(100 tolerance_f, 1e-4).
    """
    if tolerance_f <= 0.0:
        tolerance_f = 1.0 / abs(total_principal) if total_principal else 1e-6
        tolerance_f = min(tolerance_f, 1e-6)
    if tolerance_x <= 0.0:
        tolerance_x = min(100.0 * tolerance_f, 1e-4)
    return tolerance_f, tolerance_x


def solve(
    measure: str,
    target: float,
    evaluator: Callable[[float], float],
    tolerance_f: float,
    tolerance_x: float,
    lower: float,
    upper: float,
    max_evaluations: int = DEFAULT_MAX_EVALUATIONS,
) -> float:
    """
    Find x in [lower, upper] with evaluator(x) == target.

    Parameters
    ----------
    measure : str
        Name of the quantity being matched, used in error messages.
    target : float
        Value the evaluator must reproduce.
    evaluator : callable
        x -> measure value.
    tolerance_f, tolerance_x : float
        Accepted error on the measure and on x.
    lower, upper : float
        Bracket; the target must be crossed inside it.
    max_evaluations : int
        Evaluation budget.
    """
    calls = [0]

    def f(x: float) -> float:
        calls[0] += 1
        if calls[0] > max_evaluations:
            raise NonConvergenceError(
                f"Solving for {measure} exceeded {max_evaluations} evaluations."
            )
        return evaluator(x) - target

    f_lo = f(lower)
    if abs(f_lo) <= tolerance_f:
        return lower
    f_hi = f(upper)
    if abs(f_hi) <= tolerance_f:
        return upper
    if f_lo * f_hi > 0.0:
        raise NonConvergenceError(
            f"Target {target} for {measure} is not bracketed by [{lower}, {upper}]."
        )

    try:
        root = brentq(f, lower, upper, xtol=tolerance_x, maxiter=max_evaluations)
    except RuntimeError as exc:
        if isinstance(exc, NonConvergenceError):
            raise
        raise NonConvergenceError(f"Solving for {measure} failed: {exc}") from exc
    logger.debug("Solved %s = %.8f after %d evaluations", measure, root, calls[0])
    return float(root)
