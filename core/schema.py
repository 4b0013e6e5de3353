from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntFlag

# Loss levels closer than this are treated as the same grid breakpoint.
LEVEL_TOLERANCE = 1e-15

# Detachments above this are treated as the full notional (no solve needed).
FULL_DETACHMENT = 0.9999999999


class TimeUnit(Enum):
    DAYS = "D"
    WEEKS = "W"
    MONTHS = "M"
    YEARS = "Y"


class CopulaType(Enum):
    GAUSS = "gauss"
    STUDENT_T = "student_t"


class ResetFlag(IntFlag):
    """What changed since the distribution was last computed."""

    NONE = 0
    CORRELATION = 1
    RECOVERY = 2
    SETTLE = 4
    SURVIVAL = 8


@dataclass(frozen=True)
class Copula:
    """
    Dependence structure linking default times.

    df_common / df_idiosyncratic are the degrees of freedom of the Student-t
    copula and are ignored for the Gaussian one. With factor loadings the
    Student-t copula is a double-t: factor and idiosyncratic terms are
    unit-variance t variables with their own degrees of freedom
    (df_idiosyncratic 0 means df_common). A full correlation matrix has no
    factor to split, so Monte Carlo draws a multivariate t with df_common
    there and df_idiosyncratic plays no part.
    """

    type: CopulaType = CopulaType.GAUSS
    df_common: int = 0
    df_idiosyncratic: int = 0

    def __post_init__(self):
        if self.type is CopulaType.STUDENT_T and self.df_common <= 2:
            raise ValueError("Student-t copula requires more than 2 degrees of freedom.")
        if self.type is CopulaType.STUDENT_T and 0 < self.df_idiosyncratic <= 2:
            raise ValueError("Student-t copula requires more than 2 degrees of freedom.")

    @property
    def is_gauss(self) -> bool:
        return self.type is CopulaType.GAUSS
