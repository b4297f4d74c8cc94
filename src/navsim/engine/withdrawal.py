# SWP strategies: PROPORTIONAL by target weight, OVERWEIGHT_FIRST sells drifted funds first,
# RISK_BUCKET drains liquid -> debt -> hybrid -> equity (large, mid, small) in order.
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import numpy_financial as npf
import pandas as pd

from ..analytics.aggregate import bucket_statistics, effective_risk_factor
from ..analytics.metrics import max_drawdown
from ..analytics.returns import CashFlow, xirr
from ..config import DEFAULT_CONFIG, RISK_ORDER, Bucket, EngineConfig, SWPParams
from ..data.series import prepare_series_map, price_on_or_nearest
from ..results import InsufficientDataError, MissingDataError, PreconditionError, returns_outcome
from ..utils import iso, to_timestamp
from .cashflows import periods_per_year, withdrawal_dates
from .investment import check_inception
from .ledger import UnitLedger
from .timeline import FundSale, TimelineEntry

logger = logging.getLogger(__name__)

# Money below this is treated as zero when planning redemptions.
_EPS = 1e-9


@dataclass(frozen=True)
class SWPInsights:
    portfolio_cagr: Optional[float]
    portfolio_volatility: Optional[float]
    swr_annual_percent: Optional[float]
    swr_period_percent: Optional[float]
    risk_factor: float
    periods_per_year: float
    safe_withdrawal_per_period: Optional[float]
    required_corpus_indefinite: Optional[float]
    required_corpus_fixed_horizon: Optional[float]
    adjusted_return_percent: Optional[float]

    def to_dict(self):
        return {
            "portfolioCAGR": self.portfolio_cagr,
            "portfolioVolatility": self.portfolio_volatility,
            "swrAnnualPercent": self.swr_annual_percent,
            "swrPeriodPercent": self.swr_period_percent,
            "riskFactor": self.risk_factor,
            "safeWithdrawalPerPeriod": self.safe_withdrawal_per_period,
            "requiredCorpusIndefinite": self.required_corpus_indefinite,
            "requiredCorpusFixedHorizon": self.required_corpus_fixed_horizon,
            "adjustedReturnPercent": self.adjusted_return_percent,
        }


@dataclass(frozen=True)
class SWPFundSummary:
    fund_id: str
    fund_name: str
    weight: float
    price_at_purchase: float
    units_purchased: float
    remaining_units: float
    total_withdrawn: float
    current_value: float


@dataclass(frozen=True)
class SWPResult:
    total_invested: float
    total_withdrawn: float
    withdrawal_amount: float
    initial_value: float
    final_corpus: float
    final_principal_remaining: float
    final_profit_remaining: float
    xirr: Optional[float]
    max_drawdown: float
    survival_periods: int
    scheduled_periods: int
    depleted_on: Optional[pd.Timestamp]
    timeline: List[TimelineEntry]
    funds: List[SWPFundSummary]
    insights: SWPInsights
    cashflows: List[CashFlow] = field(default_factory=list)

    def to_dict(self):
        return {
            "invested": self.total_invested,
            "totalWithdrawn": self.total_withdrawn,
            "currentValue": self.final_corpus,
            "profit": self.final_corpus + self.total_withdrawn - self.total_invested,
            "xirr": self.xirr,
            "maxDrawdown": self.max_drawdown,
            "survivalPeriods": self.survival_periods,
            "depletedOn": iso(self.depleted_on) if self.depleted_on is not None else None,
            "timeline": [e.to_dict() for e in self.timeline],
            "insights": self.insights.to_dict(),
        }


# ------------------------------------------------------------
# Insights: safe withdrawal rate and required corpus
# ------------------------------------------------------------

def required_corpus_fixed_horizon(per_period: float, periods: float, years: float,
                                  adjusted_return_percent: Optional[float]) -> Optional[float]:
    """
    Present value of ``years`` of annual withdrawals, discounted at the adjusted
    return (ordinary annuity). Falls back to the undiscounted total when the
    adjusted return is not positive.
    """
    if per_period <= 0 or years <= 0:
        return None
    annual = per_period * periods
    rate = (adjusted_return_percent or 0.0) / 100.0
    if rate > 0:
        return float(npf.pv(rate, years, -annual))
    return annual * years


def compute_insights(bucket: Bucket, series_by_fund: Mapping, corpus: float, frequency: str,
                     custom_interval_days: int = 30, risk_factor: Optional[float] = None,
                     desired_per_period: Optional[float] = None, duration_years: float = 0.0,
                     cfg: EngineConfig = DEFAULT_CONFIG) -> SWPInsights:
    stats = bucket_statistics(bucket, series_by_fund, risk_factor, cfg)
    periods = periods_per_year(frequency, custom_interval_days)

    swr_annual = stats.safe_withdrawal_rate
    swr_period = swr_annual / periods if swr_annual is not None else None
    period_rate = swr_period / 100.0 if swr_period is not None else None

    safe_per_period = corpus * period_rate if period_rate and period_rate > 0 and corpus > 0 else None
    desired = desired_per_period if desired_per_period and desired_per_period > 0 else None
    corpus_indefinite = desired / period_rate if desired and period_rate and period_rate > 0 else None

    adjusted = max(0.0, stats.cagr - (stats.volatility or 0.0)) if stats.cagr is not None else None
    corpus_horizon = None
    if desired and duration_years > 0:
        corpus_horizon = required_corpus_fixed_horizon(desired, periods, duration_years, adjusted)

    return SWPInsights(
        portfolio_cagr=stats.cagr,
        portfolio_volatility=stats.volatility,
        swr_annual_percent=swr_annual,
        swr_period_percent=swr_period,
        risk_factor=effective_risk_factor(risk_factor, cfg),
        periods_per_year=periods,
        safe_withdrawal_per_period=safe_per_period,
        required_corpus_indefinite=corpus_indefinite,
        required_corpus_fixed_horizon=corpus_horizon,
        adjusted_return_percent=adjusted,
    )


# ------------------------------------------------------------
# Redemption strategies
# ------------------------------------------------------------

def _proportional(amount: float, values: Dict[str, float], weights: Dict[str, float]) -> Dict[str, float]:
    """Split by target weight; a fund that runs dry passes its shortfall to the others."""
    plan = {fid: 0.0 for fid in values}
    remaining = amount
    active = [fid for fid in values if values[fid] > _EPS and weights.get(fid, 0.0) > 0]
    while remaining > _EPS and active:
        wsum = sum(weights[fid] for fid in active)
        spent = 0.0
        still_active = []
        for fid in active:
            room = values[fid] - plan[fid]
            take = min(remaining * weights[fid] / wsum, room)
            plan[fid] += take
            spent += take
            if room - take > _EPS:
                still_active.append(fid)
        remaining -= spent
        active = still_active
    return plan


def _overweight_first(amount: float, values: Dict[str, float], weights: Dict[str, float]) -> Dict[str, float]:
    total = sum(values.values())
    post_total = max(0.0, total - amount)
    # capacity: what an overweight fund can give before it drops to target after this withdrawal
    capacity = {
        fid: values[fid] - weights.get(fid, 0.0) * post_total
        for fid in values
        if total > 0 and values[fid] / total > weights.get(fid, 0.0) + _EPS
    }
    capacity = {fid: c for fid, c in capacity.items() if c > _EPS}
    plan = {fid: 0.0 for fid in values}
    cap_total = sum(capacity.values())
    if cap_total > 0:
        from_overweight = min(amount, cap_total)
        for fid, c in capacity.items():
            plan[fid] = min(values[fid], from_overweight * c / cap_total)
    remaining = amount - sum(plan.values())
    if remaining > _EPS:
        rest = _proportional(remaining, {fid: values[fid] - plan[fid] for fid in values}, weights)
        for fid, take in rest.items():
            plan[fid] += take
    return plan


def _risk_bucket(amount: float, values: Dict[str, float], risk: Dict[str, str]) -> Dict[str, float]:
    plan = {fid: 0.0 for fid in values}
    remaining = amount
    for category in RISK_ORDER:
        if remaining <= _EPS:
            break
        members = [fid for fid in values if risk.get(fid) == category and values[fid] > _EPS]
        held = sum(values[fid] for fid in members)
        if held <= 0:
            continue
        take = min(remaining, held)
        for fid in members:
            plan[fid] = take * values[fid] / held
        remaining -= take
    return plan


def plan_redemptions(strategy: str, amount: float, values: Dict[str, float], weights: Dict[str, float],
                     risk: Optional[Dict[str, str]] = None) -> Dict[str, float]:
    """Per-fund amounts to redeem so that they sum to ``amount`` (given enough value)."""
    if strategy == "PROPORTIONAL":
        return _proportional(amount, values, weights)
    elif strategy == "OVERWEIGHT_FIRST":
        return _overweight_first(amount, values, weights)
    elif strategy == "RISK_BUCKET":
        return _risk_bucket(amount, values, risk or {})
    else:
        raise PreconditionError(f"Unknown withdrawal strategy: {strategy}")


# ------------------------------------------------------------
# Simulation
# ------------------------------------------------------------

def _validate(bucket: Bucket, params: SWPParams, as_of):
    if not bucket.funds:
        raise PreconditionError("Please select at least one fund.")
    if bucket.total_weight() <= 0:
        raise PreconditionError("Fund weightages must sum to a positive number.")
    purchase = to_timestamp(params.purchase_date)
    start = to_timestamp(params.start_date)
    end = to_timestamp(params.end_date)
    today = to_timestamp(as_of if as_of is not None else pd.Timestamp.today())
    check_inception(bucket, purchase)
    if purchase > start:
        raise PreconditionError("SWP start date must be on or after the investment date.")
    if start > end:
        raise PreconditionError("End date must be after the SWP start date.")
    if end > today:
        raise PreconditionError(f"End date {iso(end)} cannot be in the future.")
    if params.mode not in ("normal", "corpus", "target"):
        raise PreconditionError(f"Unknown SWP mode: {params.mode}")
    if params.mode in ("normal", "corpus") and params.total_investment <= 0:
        raise PreconditionError("Please enter the total investment amount.")
    if params.mode == "normal" and params.withdrawal_amount <= 0:
        raise PreconditionError("Withdrawal amount must be greater than zero.")
    if params.mode == "target" and params.desired_withdrawal <= 0:
        raise PreconditionError("Please enter the desired withdrawal per period.")
    if params.strategy not in ("PROPORTIONAL", "OVERWEIGHT_FIRST", "RISK_BUCKET"):
        raise PreconditionError(f"Unknown withdrawal strategy: {params.strategy}")
    if params.strategy == "RISK_BUCKET":
        missing = [f.name for f in bucket.funds if not f.risk_category]
        if missing:
            raise PreconditionError(
                "Assign a risk bucket to every fund to use the risk-based strategy "
                f"(missing: {', '.join(missing)})."
            )
        unknown = [f.name for f in bucket.funds if f.risk_category not in RISK_ORDER]
        if unknown:
            raise PreconditionError(f"Unknown risk category for: {', '.join(unknown)}.")
    return purchase, start, end


def _resolve_amounts(params: SWPParams, insights: SWPInsights):
    """Investment and per-period withdrawal actually simulated for the chosen mode."""
    if params.mode == "corpus":
        if not insights.safe_withdrawal_per_period:
            raise InsufficientDataError(
                "Unable to calculate a safe withdrawal for the selected funds. "
                "Try adjusting your fund selection or risk factor."
            )
        return params.total_investment, insights.safe_withdrawal_per_period
    if params.mode == "target":
        corpus = None
        if params.duration_years > 0 and insights.required_corpus_fixed_horizon:
            corpus = insights.required_corpus_fixed_horizon
        elif insights.required_corpus_indefinite:
            corpus = insights.required_corpus_indefinite
        if not corpus or corpus <= 0:
            raise InsufficientDataError(
                "Unable to calculate the required corpus for the target withdrawal with the current data."
            )
        return corpus, params.desired_withdrawal
    return params.total_investment, params.withdrawal_amount


@returns_outcome
def simulate_swp(bucket: Bucket, series_by_fund: Mapping, params: SWPParams,
                 cfg: EngineConfig = DEFAULT_CONFIG, as_of=None) -> SWPResult:
    purchase, start, end = _validate(bucket, params, as_of)
    schedule = withdrawal_dates(start, end, params.frequency, params.custom_interval_days)
    if not schedule:
        raise PreconditionError("No withdrawal dates generated for the selected range.")

    prices = prepare_series_map(series_by_fund, bucket.fund_ids())
    in_range = {fid: s.loc[purchase:end] for fid, s in prices.items()}
    for fund in bucket.funds:
        if in_range[fund.fund_id].empty:
            raise MissingDataError(
                f"No NAV history found for {fund.name} between {iso(purchase)} and {iso(end)}.")
    insights = compute_insights(
        bucket, in_range, params.total_investment, params.frequency, params.custom_interval_days,
        params.risk_factor, desired_per_period=params.desired_withdrawal if params.mode == "target" else None,
        duration_years=params.duration_years, cfg=cfg,
    )
    corpus, amount = _resolve_amounts(params, insights)

    weights = bucket.target_weights()
    risk = {f.fund_id: f.risk_category for f in bucket.funds}
    ledger = UnitLedger(bucket.fund_ids())
    purchase_price: Dict[str, float] = {}
    units_purchased: Dict[str, float] = {}
    for fund in bucket.funds:
        point = price_on_or_nearest(prices[fund.fund_id], purchase)
        if point is None:
            raise MissingDataError(f"No NAV available around {iso(purchase)} for {fund.name}.")
        purchase_price[fund.fund_id] = point.price
        units_purchased[fund.fund_id] = ledger.buy(fund.fund_id, corpus * weights[fund.fund_id], point.price)

    timeline: List[TimelineEntry] = []
    flows: List[CashFlow] = [CashFlow(purchase, -corpus)]
    withdrawn_by_fund = {fid: 0.0 for fid in bucket.fund_ids()}
    total_withdrawn = 0.0
    depleted_on = None
    depleted_value = 0.0

    for when in schedule:
        points = {fid: price_on_or_nearest(prices[fid], when) for fid in bucket.fund_ids()}
        values = {fid: ledger.value(fid, points[fid].price) for fid in bucket.fund_ids()}
        portfolio_value = sum(values.values())

        if portfolio_value <= _EPS or portfolio_value + _EPS < amount:
            depleted_on = when
            depleted_value = portfolio_value
            logger.info("SWP depleted on %s after %d withdrawal(s): value %.2f < withdrawal %.2f",
                        iso(when), len(timeline), portfolio_value, amount)
            break

        plan = plan_redemptions(params.strategy, amount, values, weights, risk)
        sales = []
        for fund in bucket.funds:
            fid = fund.fund_id
            take = plan.get(fid, 0.0)
            if take <= _EPS:
                continue
            units = ledger.sell_amount(fid, take, points[fid].price)
            sales.append(FundSale(fid, points[fid].date, points[fid].price, take, units))
            withdrawn_by_fund[fid] += take

        period_amount = sum(s.amount for s in sales)
        total_withdrawn += period_amount
        remaining_value = sum(ledger.value(fid, points[fid].price) for fid in bucket.fund_ids())
        timeline.append(TimelineEntry(date=when, units=ledger.snapshot(), portfolio_value=remaining_value,
                                      action="WITHDRAWAL", amount=period_amount, sales=sales))
        flows.append(CashFlow(when, period_amount))

    fund_summaries = []
    final_corpus = 0.0
    principal = 0.0
    for fund in bucket.funds:
        fid = fund.fund_id
        if depleted_on is not None:
            value = ledger.value(fid, price_on_or_nearest(prices[fid], depleted_on).price)
        else:
            value = ledger.value(fid, price_on_or_nearest(prices[fid], end).price)
        final_corpus += value
        principal += ledger.units(fid) * purchase_price[fid]
        fund_summaries.append(SWPFundSummary(
            fund_id=fid, fund_name=fund.name, weight=fund.weight,
            price_at_purchase=purchase_price[fid], units_purchased=units_purchased[fid],
            remaining_units=ledger.units(fid), total_withdrawn=withdrawn_by_fund[fid], current_value=value,
        ))
    if depleted_on is not None:
        final_corpus = depleted_value

    terminal_date = depleted_on if depleted_on is not None else end
    if final_corpus > 0:
        flows.append(CashFlow(terminal_date, final_corpus))
    rate = xirr(flows, cfg)

    initial_value = sum(units_purchased[fid] * purchase_price[fid] for fid in bucket.fund_ids())
    drawdown = max_drawdown([initial_value] + [e.portfolio_value for e in timeline])
    survival = len(timeline) if depleted_on is not None else len(schedule)

    logger.info("SWP %s: %d/%d withdrawals, withdrawn=%.2f, final=%.2f", params.strategy,
                len(timeline), len(schedule), total_withdrawn, final_corpus)
    return SWPResult(
        total_invested=corpus,
        total_withdrawn=total_withdrawn,
        withdrawal_amount=amount,
        initial_value=initial_value,
        final_corpus=final_corpus,
        final_principal_remaining=principal,
        final_profit_remaining=final_corpus - principal,
        xirr=rate,
        max_drawdown=drawdown,
        survival_periods=survival,
        scheduled_periods=len(schedule),
        depleted_on=depleted_on,
        timeline=timeline,
        funds=fund_summaries,
        insights=insights,
        cashflows=flows,
    )
