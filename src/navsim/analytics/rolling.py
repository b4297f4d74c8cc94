"""Rolling return analysis. Too little history gives window_type "insufficient", not an error."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

import pandas as pd

from ..config import DEFAULT_CONFIG, Bucket, EngineConfig
from ..data.series import to_price_series
from .metrics import distribution_stats
from .returns import cagr

logger = logging.getLogger(__name__)

THREE_YEAR_DAYS = 1095
ONE_YEAR_DAYS = 365
INSUFFICIENT = "insufficient"


def window_label(window_days: int) -> str:
    if window_days == THREE_YEAR_DAYS:
        return "3-year"
    if window_days == ONE_YEAR_DAYS:
        return "1-year"
    return f"{window_days}-day"


@dataclass(frozen=True)
class RollingReturnResult:
    window_type: str
    window_days: int
    returns: pd.Series = field(default_factory=lambda: pd.Series(dtype=float))
    mean: Optional[float] = None
    median: Optional[float] = None
    std: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    positive_percent: Optional[float] = None

    @property
    def insufficient(self) -> bool:
        return self.window_type == INSUFFICIENT

    def to_dict(self):
        if self.insufficient:
            return {"windowType": INSUFFICIENT}
        return {
            "windowType": self.window_type,
            "mean": self.mean,
            "median": self.median,
            "std": self.std,
            "min": self.min,
            "max": self.max,
            "positivePercent": self.positive_percent,
        }


@dataclass(frozen=True)
class BucketRollingResult:
    bucket: RollingReturnResult
    funds: Dict[str, RollingReturnResult]


def _insufficient(window_days: int) -> RollingReturnResult:
    return RollingReturnResult(window_type=INSUFFICIENT, window_days=window_days)


def _from_returns(returns: pd.Series, window_days: int) -> RollingReturnResult:
    stats = distribution_stats(returns.values)
    if stats is None:
        return _insufficient(window_days)
    return RollingReturnResult(window_type=window_label(window_days), window_days=window_days,
                               returns=returns, **stats)


def _resolve_end(index: pd.DatetimeIndex, start: pd.Timestamp, window_days: int, tol_days: int):
    """Position of the observation nearest to start + window_days, if it lies in the band."""
    target = start + pd.Timedelta(days=window_days)
    # latest on/before the target, then next on/after it
    before = index.searchsorted(target, side="right") - 1
    after = index.searchsorted(target, side="left")
    best = None
    for pos in (before, after):
        if pos < 0 or pos >= len(index):
            continue
        end = index[pos]
        if end <= start or abs((end - target).days) > tol_days:
            continue
        if best is None or abs((end - target).days) < abs((index[best] - target).days):
            best = pos
    return best


def _spans_window(index: pd.DatetimeIndex, window_days: int, tol_days: int) -> bool:
    # at least one start must reach the tolerance band of its target
    return len(index) >= 2 and (index[-1] - index[0]).days >= window_days - tol_days


def rolling_returns(series, window_days: int = THREE_YEAR_DAYS,
                    cfg: EngineConfig = DEFAULT_CONFIG) -> RollingReturnResult:
    s = to_price_series(series)
    tol = cfg.rolling_tolerance_days
    if not _spans_window(s.index, window_days, tol):
        return _insufficient(window_days)

    out_dates, out_returns = [], []
    skipped = 0
    last = s.index[-1]
    for i, start in enumerate(s.index):
        if start + pd.Timedelta(days=window_days - tol) > last:
            break
        pos = _resolve_end(s.index, start, window_days, tol)
        if pos is None:
            skipped += 1
            continue
        end = s.index[pos]
        years = (end - start).days / cfg.days_per_year
        out_dates.append(end)
        out_returns.append(cagr(float(s.iloc[i]), float(s.iloc[pos]), years))

    if skipped:
        logger.debug("rolling %s: skipped %d start date(s) with no end observation in band",
                     window_label(window_days), skipped)
    returns = pd.Series(out_returns, index=pd.DatetimeIndex(out_dates), dtype=float, name="rolling_return")
    return _from_returns(returns, window_days)


def best_available_rolling(series, cfg: EngineConfig = DEFAULT_CONFIG) -> RollingReturnResult:
    """3-year rolling returns when the history allows, else 1-year, else insufficient."""
    for window in (THREE_YEAR_DAYS, ONE_YEAR_DAYS):
        res = rolling_returns(series, window, cfg)
        if not res.insufficient:
            return res
    return _insufficient(ONE_YEAR_DAYS)


def bucket_rolling_returns(bucket: Bucket, series_by_fund: Mapping, window_days: int = THREE_YEAR_DAYS,
                           cfg: EngineConfig = DEFAULT_CONFIG) -> BucketRollingResult:
    """Bucket growth factor per window is sum(w_i * end_i / start_i) over funds with history."""
    weights = bucket.target_weights()
    prices = {}
    fund_results = {}
    for fund in bucket.funds:
        raw = series_by_fund.get(fund.fund_id)
        s = to_price_series(raw, name=fund.fund_id) if raw is not None else pd.Series(dtype=float)
        if len(s):
            prices[fund.fund_id] = s
        fund_results[fund.fund_id] = rolling_returns(s, window_days, cfg) if len(s) else _insufficient(window_days)

    coverage = sum(weights.get(fid, 0.0) for fid in prices)
    if not prices or coverage < cfg.bucket_min_coverage:
        logger.info("bucket rolling %s: weight coverage %.2f below %.2f",
                    window_label(window_days), coverage, cfg.bucket_min_coverage)
        return BucketRollingResult(_insufficient(window_days), fund_results)

    frame = pd.DataFrame(prices).dropna(how="any")
    tol = cfg.rolling_tolerance_days
    if not _spans_window(frame.index, window_days, tol):
        return BucketRollingResult(_insufficient(window_days), fund_results)

    w = pd.Series({fid: weights[fid] for fid in frame.columns})
    w = w / w.sum()
    values = frame.to_numpy()
    out_dates, out_returns = [], []
    for i, start in enumerate(frame.index):
        pos = _resolve_end(frame.index, start, window_days, tol)
        if pos is None:
            continue
        end = frame.index[pos]
        factor = float((w.to_numpy() * values[pos] / values[i]).sum())
        years = (end - start).days / cfg.days_per_year
        out_dates.append(end)
        out_returns.append(cagr(1.0, factor, years))

    returns = pd.Series(out_returns, index=pd.DatetimeIndex(out_dates), dtype=float, name="bucket_rolling_return")
    return BucketRollingResult(_from_returns(returns, window_days), fund_results)
