"""
Bucket-level figures from per-fund metrics.

Each metric is a target-weight average over the funds that have a value for
it. A fund with too little history is left out of the average rather than
counted as zero; the bucket figure is only insufficient when no fund
contributes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from ..config import DEFAULT_CONFIG, Bucket, EngineConfig
from ..data.series import to_price_series
from ..results import InsufficientDataError, returns_outcome
from .metrics import annualized_volatility, weighted_average
from .returns import fund_cagr

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BucketStatistics:
    cagr: Optional[float]
    volatility: Optional[float]
    safe_withdrawal_rate: Optional[float]      # annual, percent of corpus
    risk_factor: float
    contributing: List[str] = field(default_factory=list)
    fund_cagr: Dict[str, Optional[float]] = field(default_factory=dict)
    fund_volatility: Dict[str, Optional[float]] = field(default_factory=dict)

    def to_dict(self):
        return {
            "cagr": self.cagr,
            "volatility": self.volatility,
            "safeWithdrawalRate": self.safe_withdrawal_rate,
            "riskFactor": self.risk_factor,
        }


def effective_risk_factor(risk_factor: Optional[float], cfg: EngineConfig = DEFAULT_CONFIG) -> float:
    if risk_factor is None:
        risk_factor = cfg.default_risk_factor
    return max(cfg.min_risk_factor, float(risk_factor))


def safe_withdrawal_rate(portfolio_cagr: Optional[float], risk_factor: Optional[float] = None,
                         cfg: EngineConfig = DEFAULT_CONFIG) -> Optional[float]:
    """Annual safe withdrawal rate (percent): weighted CAGR discounted by the risk factor."""
    if portfolio_cagr is None:
        return None
    return portfolio_cagr / effective_risk_factor(risk_factor, cfg)


def weighted_metric(bucket: Bucket, values: Mapping[str, Optional[float]]) -> Optional[float]:
    return weighted_average(dict(values), bucket.target_weights())


def bucket_statistics(bucket: Bucket, series_by_fund: Mapping, risk_factor: Optional[float] = None,
                      cfg: EngineConfig = DEFAULT_CONFIG) -> BucketStatistics:
    cagrs: Dict[str, Optional[float]] = {}
    vols: Dict[str, Optional[float]] = {}
    for fund in bucket.funds:
        raw = series_by_fund.get(fund.fund_id)
        s = to_price_series(raw, name=fund.fund_id) if raw is not None else None
        cagrs[fund.fund_id] = fund_cagr(s, cfg) if s is not None else None
        vols[fund.fund_id] = annualized_volatility(s) if s is not None else None

    contributing = [fid for fid, v in cagrs.items() if v is not None]
    excluded = [fid for fid in cagrs if fid not in contributing]
    if excluded:
        logger.debug("bucket statistics: no CAGR for %s, excluded from weighting", excluded)

    portfolio_cagr = weighted_metric(bucket, cagrs)
    return BucketStatistics(
        cagr=portfolio_cagr,
        volatility=weighted_metric(bucket, vols),
        safe_withdrawal_rate=safe_withdrawal_rate(portfolio_cagr, risk_factor, cfg),
        risk_factor=effective_risk_factor(risk_factor, cfg),
        contributing=contributing,
        fund_cagr=cagrs,
        fund_volatility=vols,
    )


@returns_outcome
def aggregate_bucket(bucket: Bucket, series_by_fund: Mapping, risk_factor: Optional[float] = None,
                     cfg: EngineConfig = DEFAULT_CONFIG) -> BucketStatistics:
    stats = bucket_statistics(bucket, series_by_fund, risk_factor, cfg)
    if stats.cagr is None:
        raise InsufficientDataError("No fund in the bucket has enough history for a return figure.")
    return stats


def combine_summaries(bucket: Bucket, summaries: Mapping) -> Dict[str, Optional[float]]:
    """Weighted CAGR / XIRR across per-fund performance summaries (objects with .cagr / .xirr)."""
    return {
        "cagr": weighted_metric(bucket, {fid: s.cagr for fid, s in summaries.items()}),
        "xirr": weighted_metric(bucket, {fid: s.xirr for fid, s in summaries.items()}),
    }
