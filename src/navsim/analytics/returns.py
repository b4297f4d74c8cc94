"""
Annualised return calculators.

Both return percentages (12.5 means 12.5%). Degenerate inputs are not
errors: ``cagr`` returns 0.0 and ``xirr`` returns None, which callers render
as "not yet computable".
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np
import pandas as pd
from scipy import optimize

from ..config import DEFAULT_CONFIG, EngineConfig
from ..utils import to_timestamp

logger = logging.getLogger(__name__)

# Rates below -100% are meaningless; the upper bound only needs to bracket a root.
_BRACKET = (-0.9999, 1e6)


@dataclass(frozen=True)
class CashFlow:
    date: pd.Timestamp
    amount: float   # negative = money in (investment), positive = money out (withdrawal / final value)


def years_between(start, end, cfg: EngineConfig = DEFAULT_CONFIG) -> float:
    return (to_timestamp(end) - to_timestamp(start)).days / cfg.days_per_year


def cagr(begin_value: float, end_value: float, years: float) -> float:
    if begin_value <= 0 or end_value <= 0 or years <= 0:
        return 0.0
    return ((end_value / begin_value) ** (1.0 / years) - 1.0) * 100.0


def fund_cagr(series: pd.Series, cfg: EngineConfig = DEFAULT_CONFIG) -> Optional[float]:
    """CAGR between the first and last observation; None with fewer than two points."""
    if series is None or len(series) < 2:
        return None
    years = years_between(series.index[0], series.index[-1], cfg)
    if years <= 0:
        return None
    return cagr(float(series.iloc[0]), float(series.iloc[-1]), years)


def _as_arrays(cashflows: Iterable, cfg: EngineConfig):
    dates, amounts = [], []
    for cf in cashflows:
        if isinstance(cf, CashFlow):
            d, a = cf.date, cf.amount
        else:
            d, a = cf
        dates.append(to_timestamp(d))
        amounts.append(float(a))
    order = np.argsort(np.array(dates, dtype="datetime64[ns]"), kind="stable")
    dates = [dates[i] for i in order]
    amounts = np.array(amounts, dtype=float)[order]
    t0 = dates[0]
    years = np.array([(d - t0).days for d in dates], dtype=float) / cfg.days_per_year
    return amounts, years


def xnpv(rate: float, amounts: np.ndarray, years: np.ndarray) -> float:
    return float(np.sum(amounts / (1.0 + rate) ** years))


def _dxnpv(rate: float, amounts: np.ndarray, years: np.ndarray) -> float:
    return float(np.sum(-years * amounts / (1.0 + rate) ** (years + 1.0)))


def xirr(cashflows: Iterable, cfg: EngineConfig = DEFAULT_CONFIG) -> Optional[float]:
    """
    Money-weighted annual return for irregularly dated cash flows.

    Solves sum(a_i / (1 + r) ** (d_i / 365.25)) = 0 with d_i counted from the
    earliest flow. Newton-Raphson first, then a bracketed Brent search.
    Returns the rate in percent, or None when it cannot be computed.
    """
    flows = list(cashflows)
    if len(flows) < 2:
        logger.debug("XIRR skipped: %d cash flow(s), need at least 2", len(flows))
        return None

    amounts, years = _as_arrays(flows, cfg)
    if not (amounts > 0).any() or not (amounts < 0).any():
        logger.debug("XIRR skipped: need both positive and negative cash flows")
        return None

    scale = max(1.0, float(np.abs(amounts).sum()))

    def f(r):
        return xnpv(r, amounts, years)

    def fprime(r):
        return _dxnpv(r, amounts, years)

    with np.errstate(over="ignore", divide="ignore", invalid="ignore"):
        rate, info = optimize.newton(
            f, cfg.xirr_guess, fprime=fprime, tol=cfg.xirr_tolerance,
            maxiter=cfg.xirr_max_iterations, full_output=True, disp=False,
        )
        if info.converged and np.isfinite(rate) and rate > -1.0 and abs(f(rate)) <= 1e-6 * scale:
            return float(rate) * 100.0

        lo, hi = _BRACKET
        try:
            rate = optimize.brentq(f, lo, hi, xtol=cfg.xirr_tolerance, maxiter=cfg.xirr_max_iterations * 5)
        except (ValueError, RuntimeError) as e:
            logger.warning("XIRR did not converge for %d cash flows: %s", len(flows), e)
            return None
    return float(rate) * 100.0
