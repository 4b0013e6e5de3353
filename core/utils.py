from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List, Optional

import pandas as pd
from dateutil.relativedelta import relativedelta

from .schema import TimeUnit

DEFAULT_STEP_SIZE = 3
DEFAULT_STEP_UNIT = TimeUnit.MONTHS
DAYS_PER_YEAR = 365.25


def add_period(date: pd.Timestamp, size: int, unit: TimeUnit) -> pd.Timestamp:
    """Advance a date by ``size`` units; month and year steps keep the day of month where possible."""
    date = pd.Timestamp(date)
    if unit is TimeUnit.DAYS:
        return date + pd.Timedelta(days=size)
    if unit is TimeUnit.WEEKS:
        return date + pd.Timedelta(weeks=size)
    if unit is TimeUnit.MONTHS:
        return pd.Timestamp(date + relativedelta(months=size))
    if unit is TimeUnit.YEARS:
        return pd.Timestamp(date + relativedelta(years=size))
    raise ValueError(f"Unknown time unit: {unit}")


def build_date_grid(
    start: pd.Timestamp,
    stop: pd.Timestamp,
    step_size: int = 0,
    step_unit: Optional[TimeUnit] = None,
    extra_dates: Iterable[pd.Timestamp] = (),
) -> List[pd.Timestamp]:
    """
    Dates from ``start`` stepping by (size, unit) while strictly before ``stop``,
    terminated by ``stop`` itself.

    The last interval may be shorter than the nominal step. Extra dates strictly
    inside (start, stop) are merged in.
    """
    if step_size <= 0 or step_unit is None:
        step_size, step_unit = DEFAULT_STEP_SIZE, DEFAULT_STEP_UNIT
    start = pd.Timestamp(start)
    stop = pd.Timestamp(stop)

    # each date steps from the previous one, so a clamped month end carries on
    dates = []
    date = start
    while date < stop:
        dates.append(date)
        date = add_period(date, step_size, step_unit)
    dates.append(max(start, stop))

    extras = [pd.Timestamp(d) for d in extra_dates]
    extras = [d for d in extras if start < d < stop]
    if extras:
        dates = sorted(set(dates).union(extras))
    return dates


def round_loss_level(x: float, digits: int) -> float:
    """
    Round a fractional loss level to ``digits`` decimal places and clamp it to [0, 1].

    Rounding goes through ``Decimal`` so ratios such as 1.999999999999954
    collapse onto the breakpoint they were meant to hit.
    """
    rounded = float(round(Decimal(repr(float(x))), digits))
    if rounded > 1.0:
        return 1.0
    if rounded < 0.0:
        return 0.0
    return rounded


def year_fraction(start: pd.Timestamp, end: pd.Timestamp) -> float:
    return (pd.Timestamp(end) - pd.Timestamp(start)).days / DAYS_PER_YEAR


def days_between(start: pd.Timestamp, end: pd.Timestamp) -> int:
    return (pd.Timestamp(end) - pd.Timestamp(start)).days
