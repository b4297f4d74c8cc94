"""Price series normalisation and date lookups. Lookups return None when nothing matches."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

import numpy as np
import pandas as pd

from ..results import MissingDataError, PreconditionError
from ..utils import to_timestamp


@dataclass(frozen=True)
class PricePoint:
    date: pd.Timestamp
    price: float


def to_price_series(data, name: Optional[str] = None) -> pd.Series:
    """
    Accepts a Series, a {date: price} mapping, or a sequence of (date, price)
    pairs / {"date": ..., "nav"|"price": ...} dicts. Rejects unsorted input,
    duplicate dates and non-positive prices.
    """
    if isinstance(data, pd.Series):
        s = data.copy()
        s.index = pd.to_datetime(s.index)
    elif isinstance(data, Mapping):
        s = pd.Series(list(data.values()), index=pd.to_datetime(list(data.keys())))
    else:
        rows = list(data)
        if rows and isinstance(rows[0], Mapping):
            key = "nav" if "nav" in rows[0] else "price"
            dates = [r["date"] for r in rows]
            prices = [r[key] for r in rows]
        else:
            dates = [r[0] for r in rows]
            prices = [r[1] for r in rows]
        s = pd.Series(prices, index=pd.to_datetime(dates))

    s = pd.to_numeric(s, errors="coerce").astype(float)
    s.index = s.index.normalize()
    s.name = name

    if s.isna().any():
        raise PreconditionError(f"Price series {name or ''} contains non-numeric prices".strip())
    if (s <= 0).any():
        raise PreconditionError(f"Price series {name or ''} contains non-positive prices".strip())
    if s.index.has_duplicates:
        raise PreconditionError(f"Price series {name or ''} has duplicate dates".strip())
    if not s.index.is_monotonic_increasing:
        raise PreconditionError(f"Price series {name or ''} must be sorted by ascending date".strip())
    return s


def prepare_series_map(series_by_fund: Mapping, fund_ids) -> dict:
    """Normalise the series of every selected fund; a missing or empty one is fatal."""
    out = {}
    for fid in fund_ids:
        raw = series_by_fund.get(fid)
        if raw is None:
            raise MissingDataError(f"No price history found for fund {fid}")
        s = to_price_series(raw, name=fid)
        if s.empty:
            raise MissingDataError(f"Price history is empty for fund {fid}")
        out[fid] = s
    return out


def next_available_on_or_after(series: pd.Series, when) -> Optional[PricePoint]:
    if series is None or len(series) == 0:
        return None
    pos = series.index.searchsorted(to_timestamp(when), side="left")
    if pos >= len(series):
        return None
    return PricePoint(series.index[pos], float(series.iloc[pos]))


def latest_on_or_before(series: pd.Series, when) -> Optional[PricePoint]:
    if series is None or len(series) == 0:
        return None
    pos = series.index.searchsorted(to_timestamp(when), side="right") - 1
    if pos < 0:
        return None
    return PricePoint(series.index[pos], float(series.iloc[pos]))


def price_on_or_nearest(series: pd.Series, when) -> Optional[PricePoint]:
    """Latest price on or before ``when``; the next one after if the series starts later."""
    return latest_on_or_before(series, when) or next_available_on_or_after(series, when)


def month_end_returns(series: pd.Series) -> pd.Series:
    """Simple returns between month-end prices."""
    if series is None or len(series) < 2:
        return pd.Series(dtype=float)
    monthly = series.resample("ME").last().dropna()
    return monthly.pct_change().dropna().replace([np.inf, -np.inf], np.nan).dropna()
