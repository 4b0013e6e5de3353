"""
Tranche level adjustment for losses and amortizations realized before settle.

Names that defaulted before the portfolio start are taken out of the basket.
Their loss ``p (1 - R)`` and amortization ``p R`` (as fractions of the original
pool) are the previous loss/amortization. Requested tranche levels are
expressed on the original notional, while the distribution surfaces only see
the remaining pool, so every level must be shifted past the realized amount
and rescaled by the remaining fraction.

Amortization eats the pool from the top: an amortization tranche (1 - d, 1 - a)
is measured against the previously amortized fraction exactly the way a loss
tranche (a, d) is measured against the previous loss.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Tuple

from .schema import LEVEL_TOLERANCE
from .utils import round_loss_level


@dataclass(frozen=True)
class TrancheLevelAdjuster:
    prev_loss: float = 0.0
    prev_amortization: float = 0.0
    # keep levels on the original notional instead of rescaling to the survivors
    use_original_notional: bool = False

    @property
    def remaining(self) -> float:
        rem = 1.0 - self.prev_loss - self.prev_amortization
        return min(rem, 1.0)

    def _previous(self, for_amortization: bool) -> float:
        return self.prev_amortization if for_amortization else self.prev_loss

    def _rescale(self, level: float) -> float:
        if self.use_original_notional:
            return level
        remaining = self.remaining
        if remaining < LEVEL_TOLERANCE:
            return 0.0
        return min(level / remaining, 1.0)

    def adjust_level(self, for_amortization: bool, level: float) -> float:
        """Map one original-notional level onto the remaining pool."""
        level -= self._previous(for_amortization)
        if level <= 0.0:
            return 0.0
        return self._rescale(level)

    def restore_level(self, for_amortization: bool, level: float) -> float:
        """Inverse of ``adjust_level`` for levels above the realized amount."""
        if not self.use_original_notional:
            level *= self.remaining
        return level + self._previous(for_amortization)

    def adjust_levels(
        self, for_amortization: bool, begin: float, end: float
    ) -> Tuple[float, float, float]:
        """
        Shift a tranche interval past the realized amount.

        Returns
        -------
        (begin, end, baseline)
            ``begin``/``end`` on the remaining pool and ``baseline``, the part of
            the tranche already wiped out, on the original notional. When the
            whole interval lies below the realized amount the baseline is the
            full tranche width and both levels are 0.
        """
        prev = self._previous(for_amortization)
        if begin >= prev:
            baseline = 0.0
            begin -= prev
            end -= prev
        elif end >= prev:
            baseline = prev - begin
            end -= prev
            begin = 0.0
        else:
            baseline = end - begin
            begin = end = 0.0

        if not self.use_original_notional:
            if self.remaining < LEVEL_TOLERANCE:
                begin = end = 0.0
            else:
                begin = self._rescale(begin)
                end = self._rescale(end)
        return begin, end, baseline

    def cook_loss_levels(
        self, raw_levels: Iterable[float], digits: int, add_complement: bool = True
    ) -> List[float]:
        """
        Levels the distribution is actually built on.

        Always contains 0. Raw levels below the realized loss are dropped; with
        ``add_complement`` the amortization side 1 - x of each level is added.
        """
        remaining = self.remaining
        cooked = {0.0}
        if remaining < LEVEL_TOLERANCE:
            return [0.0]
        for x in raw_levels:
            dp = (x - self.prev_loss) / remaining
            if dp >= 0.0:
                cooked.add(round_loss_level(min(dp, 1.0), digits))
            if add_complement:
                dp = (1.0 - x - self.prev_amortization) / remaining
                if dp >= 0.0:
                    cooked.add(round_loss_level(min(dp, 1.0), digits))
        return sorted(cooked)
