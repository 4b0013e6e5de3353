from __future__ import annotations

from dataclasses import dataclass, replace

import pandas as pd


@dataclass(frozen=True)
class SyntheticCDO:
    """
    A synthetic tranche on a basket.

    attachment / detachment are fractions of the original pool notional and
    premium is the annual running spread (0.05 = 500bp).
    """

    effective: pd.Timestamp
    maturity: pd.Timestamp
    attachment: float = 0.0
    detachment: float = 1.0
    premium: float = 0.0
    frequency_months: int = 3

    def __post_init__(self):
        if self.attachment > self.detachment:
            raise ValueError("Attachment cannot be greater than Detachment.")
        if not 0.0 <= self.attachment <= 1.0 or not 0.0 <= self.detachment <= 1.0:
            raise ValueError("Attachment and detachment must lie in [0, 1].")
        if pd.Timestamp(self.maturity) <= pd.Timestamp(self.effective):
            raise ValueError("Maturity must be after the effective date.")

    @property
    def width(self) -> float:
        return self.detachment - self.attachment

    def with_tranche(self, attachment: float, detachment: float) -> "SyntheticCDO":
        return replace(self, attachment=attachment, detachment=detachment)
