import math

import numpy as np
import pandas as pd

from ..data.series import month_end_returns


def annualized_volatility(series: pd.Series):
    """Std-dev of month-end returns scaled by sqrt(12), in percent. None with < 2 monthly returns."""
    rets = month_end_returns(series)
    if len(rets) < 2:
        return None
    return float(rets.std(ddof=1) * np.sqrt(12) * 100.0)


def max_drawdown(values):
    """Largest peak-to-trough decline of a value path, as a positive percentage."""
    x = np.asarray(list(values), dtype=float)
    if x.size == 0:
        return 0.0
    peak = np.maximum.accumulate(x)
    with np.errstate(divide='ignore', invalid='ignore'):
        dd = np.where(peak > 0, (peak - x) / peak, 0.0)
    return float(dd.max() * 100.0)


def weighted_average(values: dict, weights: dict):
    """
    sum(w_i * v_i) / sum(w_i) over the keys whose value is usable.
    Missing values are excluded, not treated as zero; None if nothing contributes.
    """
    num = 0.0
    den = 0.0
    for key, value in values.items():
        if value is None or (isinstance(value, float) and math.isnan(value)):
            continue
        w = float(weights.get(key, 0.0))
        if w <= 0:
            continue
        num += w * float(value)
        den += w
    return num / den if den > 0 else None


def distribution_stats(returns):
    """mean / median / population std / min / max / % positive of a return distribution."""
    r = np.asarray(list(returns), dtype=float)
    if r.size == 0:
        return None
    return {
        "mean": float(r.mean()),
        "median": float(np.median(r)),
        "std": float(r.std(ddof=0)),
        "min": float(r.min()),
        "max": float(r.max()),
        "positive_percent": float((r > 0).sum() / r.size * 100.0),
    }
