import logging
from dataclasses import dataclass
from typing import List

import pandas as pd

from ..analytics.returns import CashFlow
from ..config import DEFAULT_CONFIG, EngineConfig
from ..data.series import next_available_on_or_after
from ..results import PreconditionError
from ..utils import add_months, iso, to_timestamp

logger = logging.getLogger(__name__)


def _step_months_from_frequency(frequency: str):
    # monthly -> 1 month, quarterly -> 3 months, custom -> fixed day interval
    if frequency == "monthly":
        return 1
    if frequency == "quarterly":
        return 3
    if frequency == "custom":
        return None
    raise PreconditionError(f"Unknown withdrawal frequency: {frequency}")


def periods_per_year(frequency: str, custom_interval_days: int = 30) -> float:
    step = _step_months_from_frequency(frequency)
    if step is not None:
        return 12.0 / step
    days = max(1, int(custom_interval_days or 30))
    return max(1.0, 365.25 / days)


def withdrawal_dates(start, end, frequency: str, custom_interval_days: int = 30) -> List[pd.Timestamp]:
    """Planned withdrawal dates from ``start`` while on or before ``end``."""
    start, end = to_timestamp(start), to_timestamp(end)
    step = _step_months_from_frequency(frequency)
    if step is None and custom_interval_days <= 0:
        raise PreconditionError("Custom withdrawal interval must be a positive number of days")
    dates = []
    k = 0
    while True:
        if step is not None:
            d = add_months(start, k * step)
        else:
            d = start + pd.Timedelta(days=k * custom_interval_days)
        if d > end:
            break
        dates.append(d)
        k += 1
    return dates


@dataclass(frozen=True)
class SIPDate:
    planned: pd.Timestamp
    actual: pd.Timestamp


def _month(d: pd.Timestamp):
    return (d.year, d.month)


def sip_schedule(reference: pd.Series, start, end, cfg: EngineConfig = DEFAULT_CONFIG) -> List[SIPDate]:
    """
    Monthly SIP dates resolved against a reference price series.

    Planned dates keep the start date's day of month. An instalment is kept
    when its planned month is on or before the end month, or when its actual
    trade date lands at most ``sip_grace_days`` after the end date. Generation
    stops after an instalment in the end month, at the first instalment that is
    not kept, or once the planned date is more than ``sip_overrun_days`` past
    the end date.
    """
    start, end = to_timestamp(start), to_timestamp(end)
    end_month = _month(end)
    overrun = end + pd.Timedelta(days=cfg.sip_overrun_days)
    near_end = end - pd.Timedelta(days=60)
    # NAVs past the overrun horizon can never fund an instalment of this range
    reference = reference.loc[:overrun]

    schedule = []
    k = 0
    while True:
        planned = add_months(start, k)
        if planned > overrun:
            logger.debug("SIP schedule stopped: planned %s is past %s", iso(planned), iso(overrun))
            break

        point = next_available_on_or_after(reference, planned)
        if point is None and _month(planned) == end_month:
            point = next_available_on_or_after(reference, planned.replace(day=1))
        if point is None:
            k += 1
            continue

        days_after_end = (point.date - end).days
        planned_in_range = _month(planned) <= end_month
        keep = planned_in_range or 0 <= days_after_end <= cfg.sip_grace_days
        if planned > near_end:
            logger.debug("SIP date check: planned=%s actual=%s end=%s days_after_end=%d keep=%s",
                         iso(planned), iso(point.date), iso(end), days_after_end, keep)
        if not keep:
            break

        schedule.append(SIPDate(planned, point.date))
        if _month(point.date) == end_month:
            break
        k += 1

    return schedule


def merge_cashflows(flows: List[CashFlow]) -> List[CashFlow]:
    """Net flows that fall on the same date, in date order."""
    if not flows:
        return []
    df = pd.DataFrame({"date": [f.date for f in flows], "amount": [f.amount for f in flows]})
    agg = df.groupby("date", as_index=False)["amount"].sum().sort_values("date")
    return [CashFlow(row.date, float(row.amount)) for row in agg.itertuples(index=False)]
