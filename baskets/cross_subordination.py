"""
Cross-subordination transform for CDO-squared baskets.

Without cross-subordination each sub-basket i loses through its own tranche
[a_i, d_i] and the outer level coordinates are used as they are.

With it, sub-basket losses are capped at d_i S_i (S_i the sub-basket
principal) but the attachments are pooled into one shared buffer
D = Σ a_i S_i. Measured against N = Σ d_i S_i, an outer level ℓ (a fraction of
the outer notional T = Σ (d_i - a_i) S_i) sits at

    forward(ℓ) = min(1, D/N + (T/N) ℓ)

and a surface level s maps back through inverse(s) = (s - D/N) / (T/N).
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class CrossSubordination:
    base_level: float = 0.0
    scale_factor: float = 1.0
    enabled: bool = False

    @classmethod
    def from_sub_baskets(
        cls,
        principals: np.ndarray,
        attachments: np.ndarray,
        detachments: np.ndarray,
        enabled: bool,
    ) -> "CrossSubordination":
        """
        Parameters
        ----------
        principals : np.ndarray
            Shape (n_sub, n_names), principal of each name in each sub-basket.
        """
        if not enabled:
            return cls()
        sums = np.asarray(principals, dtype=float).sum(axis=1)
        attachments = np.asarray(attachments, dtype=float)
        detachments = np.asarray(detachments, dtype=float)
        total = float((sums * (detachments - attachments)).sum())
        new_total = float((sums * detachments).sum())
        deduct = float((sums * attachments).sum())
        if new_total <= 0.0:
            raise ValueError("Sub-baskets have no detachable principal.")
        return cls(base_level=deduct / new_total, scale_factor=total / new_total, enabled=True)

    def effective_attachments(self, attachments: np.ndarray) -> np.ndarray:
        attachments = np.asarray(attachments, dtype=float)
        return np.zeros_like(attachments) if self.enabled else attachments

    def forward(self, level: float) -> float:
        return min(1.0, self.base_level + self.scale_factor * level)

    def inverse(self, level: float) -> float:
        return (level - self.base_level) / self.scale_factor
