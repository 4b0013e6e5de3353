"""
Lazy surface controller — compute on demand, invalidate on mutation.

Each basket strategy owns one ``LazySurface`` holding its named surfaces
("loss", "amortization", ...). The strategy supplies two callables:

    build(n_dates)         -> dict of freshly initialized surfaces
    fill(surfaces, start)  -> writes date rows start..end into them

A full computation builds and fills from row 0. After
``set_recalculation_start`` only the suffix is refilled, the prefix rows are
kept bit for bit.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, Dict, Optional

import pandas as pd

from core.errors import ReentrantComputationError

from .surface import Surface

logger = logging.getLogger(__name__)

Builder = Callable[[], Dict[str, Surface]]
Filler = Callable[[Dict[str, Surface], int], None]


class SurfaceState(Enum):
    UNCOMPUTED = 1
    COMPUTING = 2
    COMPUTED = 3


class LazySurface:
    def __init__(self, label: str = ""):
        self.label = label
        self.surfaces: Optional[Dict[str, Surface]] = None
        self.state = SurfaceState.UNCOMPUTED
        # -1 means compute from scratch
        self.recalc_start_index = -1

    @property
    def computed(self) -> bool:
        return self.state is SurfaceState.COMPUTED

    def get(self, build: Builder, fill: Filler) -> Dict[str, Surface]:
        if self.state is SurfaceState.COMPUTED:
            return self.surfaces
        if self.state is SurfaceState.COMPUTING:
            raise ReentrantComputationError(
                f"Distribution of {self.label or 'basket'} requested while computing it."
            )

        self.state = SurfaceState.COMPUTING
        t0 = time.perf_counter()
        try:
            if self.surfaces is None or self.recalc_start_index < 0:
                surfaces = build()
                start = 0
            else:
                surfaces = self.surfaces
                start = self.recalc_start_index
            fill(surfaces, start)
        except Exception:
            self.surfaces = None
            self.recalc_start_index = -1
            self.state = SurfaceState.UNCOMPUTED
            raise

        self.surfaces = surfaces
        self.state = SurfaceState.COMPUTED
        logger.debug(
            "Computed %s distribution from date index %d in %.3fs",
            self.label or "basket", start, time.perf_counter() - t0,
        )
        return surfaces

    def reset(self) -> None:
        """Discard everything."""
        self.surfaces = None
        self.state = SurfaceState.UNCOMPUTED
        self.recalc_start_index = -1

    def rebase(self, as_of: pd.Timestamp) -> None:
        """Move the as-of coordinate of existing surfaces; values are kept."""
        if self.surfaces is None:
            self.state = SurfaceState.UNCOMPUTED
            return
        for surface in self.surfaces.values():
            surface.set_as_of(as_of)

    def set_recalculation_start(self, index: int, n_dates: int) -> None:
        """
        Keep rows before ``index`` and recompute the rest on the next read.

        Without a computed surface there is nothing to keep and this is a
        plain reset. Pending invalidations accumulate: the earliest start
        index wins until the next read.
        """
        if self.surfaces is None or index <= 0:
            self.reset()
            return
        if self.state is SurfaceState.UNCOMPUTED and self.recalc_start_index >= 0:
            index = min(index, self.recalc_start_index)
        for surface in self.surfaces.values():
            surface.resize_by_dates(n_dates, index)
        self.recalc_start_index = index
        self.state = SurfaceState.UNCOMPUTED
