"""
Curves package — survival, recovery and discount curves.
"""

from .credit import RecoveryCurve, SurvivalCurve
from .discount import DiscountCurve

__all__ = [
    "RecoveryCurve",
    "SurvivalCurve",
    "DiscountCurve",
]
