from __future__ import annotations

from typing import Any, List, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, InstanceOf, field_validator, model_validator

from curves.credit import RecoveryCurve, SurvivalCurve


class CreditPool(BaseModel):
    """
    The names of a basket: one survival curve, recovery curve and principal
    each, plus optional refinancing curves and correlations.

    A zero principal keeps a name in the arrays while leaving it out of the
    basket.
    """

    model_config = ConfigDict(frozen=True)

    survival_curves: List[InstanceOf[SurvivalCurve]]
    recovery_curves: List[InstanceOf[RecoveryCurve]]
    principals: List[float]
    names: List[str] = Field(default_factory=list)
    refinance_curves: Optional[List[InstanceOf[SurvivalCurve]]] = None
    refinance_correlations: Optional[List[float]] = None

    @field_validator("principals", "refinance_correlations", mode="before")
    @classmethod
    def _as_float_list(cls, value):
        if value is None:
            return None
        return [float(x) for x in value]

    @model_validator(mode="after")
    def _check_lengths(self) -> "CreditPool":
        n = len(self.survival_curves)
        if n == 0:
            raise ValueError("Pool must contain at least one name.")
        if len(self.recovery_curves) != n:
            raise ValueError(
                f"Number of recovery curves ({len(self.recovery_curves)}) "
                f"does not match number of survival curves ({n})."
            )
        if len(self.principals) != n:
            raise ValueError(
                f"Number of principals ({len(self.principals)}) "
                f"does not match number of survival curves ({n})."
            )
        if self.names and len(self.names) != n:
            raise ValueError("Number of names does not match number of survival curves.")
        if self.refinance_curves is not None and len(self.refinance_curves) != n:
            raise ValueError("Number of refinancing curves does not match number of survival curves.")
        if self.refinance_correlations is not None:
            if self.refinance_curves is None:
                raise ValueError("Refinancing correlations given without refinancing curves.")
            if len(self.refinance_correlations) != n:
                raise ValueError("Number of refinancing correlations does not match number of names.")
        if sum(abs(p) for p in self.principals) <= 0.0:
            raise ValueError("Pool has no principal.")
        return self

    @property
    def size(self) -> int:
        return len(self.survival_curves)

    @property
    def name_list(self) -> List[str]:
        if self.names:
            return list(self.names)
        return [c.name or f"name{i}" for i, c in enumerate(self.survival_curves)]

    @property
    def principal_array(self) -> np.ndarray:
        return np.asarray(self.principals, dtype=float)

    @property
    def has_refinancing(self) -> bool:
        return self.refinance_curves is not None

    def replace(self, **changes: Any) -> "CreditPool":
        """Validated copy with some fields changed."""
        values = {name: getattr(self, name) for name in type(self).model_fields}
        values.update(changes)
        return type(self)(**values)

    @classmethod
    def homogeneous(
        cls,
        survival_curves: List[SurvivalCurve],
        recovery: float = 0.4,
        principal: float = 1.0,
        dispersion: float = 0.0,
    ) -> "CreditPool":
        n = len(survival_curves)
        return cls(
            survival_curves=list(survival_curves),
            recovery_curves=[RecoveryCurve(recovery, dispersion)] * n,
            principals=[principal] * n,
        )
