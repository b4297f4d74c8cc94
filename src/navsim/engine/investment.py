from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import pandas as pd

from ..analytics.returns import CashFlow, cagr, xirr, years_between
from ..config import (DEFAULT_CONFIG, Bucket, EngineConfig, LumpsumParams, LumpsumTopUp,
                      SIPLumpsumParams, SIPParams)
from ..data.series import latest_on_or_before, next_available_on_or_after, prepare_series_map
from ..results import MissingDataError, PreconditionError, returns_outcome
from ..utils import iso, to_timestamp
from .cashflows import SIPDate, merge_cashflows, sip_schedule
from .ledger import UnitLedger
from .timeline import TimelineEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PerformanceSummary:
    invested: float
    current_value: float
    profit: float
    profit_percent: float
    cagr: float
    xirr: Optional[float]

    @classmethod
    def build(cls, invested: float, current_value: float, years: float, flows, cfg: EngineConfig = DEFAULT_CONFIG):
        profit = current_value - invested
        return cls(
            invested=invested,
            current_value=current_value,
            profit=profit,
            profit_percent=(profit / invested * 100.0) if invested > 0 else 0.0,
            cagr=cagr(invested, current_value, years),
            xirr=xirr(flows, cfg),
        )

    def to_dict(self):
        return {
            "invested": self.invested,
            "currentValue": self.current_value,
            "profit": self.profit,
            "profitPercent": self.profit_percent,
            "cagr": self.cagr,
            "xirr": self.xirr,
        }


@dataclass(frozen=True)
class FundResult:
    fund_id: str
    fund_name: str
    weight: float
    units: float
    final_price: float
    performance: PerformanceSummary
    cashflows: List[CashFlow] = field(default_factory=list)


@dataclass(frozen=True)
class InvestmentResult:
    kind: str                           # "lumpsum" | "sip" | "sip_lumpsum"
    funds: List[FundResult]
    portfolio: PerformanceSummary
    cashflows: List[CashFlow]
    timeline: List[TimelineEntry]
    schedule: List[SIPDate] = field(default_factory=list)

    def fund(self, fund_id: str) -> FundResult:
        return next(f for f in self.funds if f.fund_id == fund_id)

    def to_dict(self):
        return {
            "kind": self.kind,
            "portfolio": self.portfolio.to_dict(),
            "funds": {f.fund_id: f.performance.to_dict() for f in self.funds},
            "timeline": [e.to_dict() for e in self.timeline],
        }


@dataclass(frozen=True)
class _Contribution:
    planned: pd.Timestamp
    amounts: Dict[str, float]
    kind: str


def check_bucket(bucket: Bucket, cfg: EngineConfig = DEFAULT_CONFIG, require_full: bool = True):
    if not bucket.funds:
        raise PreconditionError("Please select at least one fund.")
    total = bucket.total_weight()
    if total <= 0:
        raise PreconditionError("Fund weightages must sum to a positive number.")
    if require_full and abs(total - 100.0) > cfg.weight_sum_tolerance:
        raise PreconditionError(f"Fund weightages must sum to 100% (got {total:.2f}%).")


def check_inception(bucket: Bucket, start):
    first = bucket.earliest_start()
    if first is not None and to_timestamp(start) < to_timestamp(first):
        raise PreconditionError(f"{iso(start)} is before {iso(first)}, when every selected fund became available.")


def check_dates(start, end, as_of=None):
    start, end = to_timestamp(start), to_timestamp(end)
    today = to_timestamp(as_of if as_of is not None else pd.Timestamp.today())
    if start > end:
        raise PreconditionError(f"Start date {iso(start)} must be on or before end date {iso(end)}.")
    if end > today:
        raise PreconditionError(f"End date {iso(end)} cannot be in the future.")
    return start, end


def _run_contributions(bucket: Bucket, prices: Dict[str, pd.Series], contributions: List[_Contribution]):
    """Book every contribution into a fresh ledger; returns ledger, per-fund flows, timeline."""
    ledger = UnitLedger(bucket.fund_ids())
    flows: Dict[str, List[CashFlow]] = {fid: [] for fid in bucket.fund_ids()}
    timeline: List[TimelineEntry] = []

    for c in sorted(contributions, key=lambda c: c.planned):
        trade_date = None
        for fund in bucket.funds:
            amount = c.amounts.get(fund.fund_id, 0.0)
            if amount <= 0:
                continue
            point = next_available_on_or_after(prices[fund.fund_id], c.planned)
            if point is None:
                raise MissingDataError(f"No NAV available on or after {iso(c.planned)} for {fund.name}.")
            ledger.buy(fund.fund_id, amount, point.price)
            flows[fund.fund_id].append(CashFlow(point.date, -amount))
            trade_date = point.date if trade_date is None else max(trade_date, point.date)

        if trade_date is None:
            continue
        value = 0.0
        for fund in bucket.funds:
            pt = latest_on_or_before(prices[fund.fund_id], trade_date)
            if pt is not None:
                value += ledger.value(fund.fund_id, pt.price)
        timeline.append(TimelineEntry(date=trade_date, units=ledger.snapshot(), portfolio_value=value,
                                      action=c.kind, amount=sum(c.amounts.values())))
    return ledger, flows, timeline


def _summarise(kind, bucket, prices, ledger, flows, timeline, end, years_for, cfg, schedule=None):
    fund_results = []
    all_flows: List[CashFlow] = []
    total_invested = 0.0
    total_value = 0.0
    first_trade = None

    for fund in bucket.funds:
        fid = fund.fund_id
        final = latest_on_or_before(prices[fid], end)
        if final is None:
            raise MissingDataError(f"No NAV available on or before {iso(end)} for {fund.name}.")
        invested = -sum(f.amount for f in flows[fid])
        value = ledger.value(fid, final.price)
        fund_flows = list(flows[fid])
        if fund_flows:
            first = min(f.date for f in fund_flows)
            first_trade = first if first_trade is None else min(first_trade, first)
            fund_flows.append(CashFlow(years_for.terminal_date(final.date), value))
            years = years_for.years(first, final.date)
        else:
            years = 0.0
        fund_results.append(FundResult(
            fund_id=fid, fund_name=fund.name, weight=fund.weight, units=ledger.units(fid),
            final_price=final.price,
            performance=PerformanceSummary.build(invested, value, years, fund_flows, cfg),
            cashflows=fund_flows,
        ))
        all_flows.extend(flows[fid])
        total_invested += invested
        total_value += value

    terminal = years_for.terminal_date(end)
    portfolio_flows = merge_cashflows(all_flows) + [CashFlow(terminal, total_value)]
    years = years_for.years(first_trade if first_trade is not None else end, terminal)
    portfolio = PerformanceSummary.build(total_invested, total_value, years, portfolio_flows, cfg)
    logger.info("%s run: invested=%.2f value=%.2f xirr=%s", kind, total_invested, total_value,
                "n/a" if portfolio.xirr is None else f"{portfolio.xirr:.2f}%")
    return InvestmentResult(kind=kind, funds=fund_results, portfolio=portfolio,
                            cashflows=portfolio_flows, timeline=timeline, schedule=schedule or [])


class _ExactYears:
    """Lumpsum: CAGR over the actual purchase -> valuation dates, terminal flow on the valuation date."""

    def __init__(self, cfg, valuation_dates):
        self.cfg = cfg
        self.valuation = max(valuation_dates)

    def terminal_date(self, date):
        return min(date, self.valuation)

    def years(self, start, end):
        return years_between(start, end, self.cfg)


class _PlanYears:
    """SIP: CAGR over the planned start -> end range, terminal flow on the end date."""

    def __init__(self, cfg, start, end):
        self.cfg = cfg
        self.start = start
        self.end = end

    def terminal_date(self, date):
        return self.end

    def years(self, start, end):
        return years_between(self.start, self.end, self.cfg)


def _sip_contributions(bucket: Bucket, schedule: List[SIPDate], monthly_amount: float):
    weights = bucket.target_weights()
    return [_Contribution(sd.planned, {fid: monthly_amount * w for fid, w in weights.items()}, "INVEST")
            for sd in schedule]


def _top_up_contribution(bucket: Bucket, top_up: LumpsumTopUp, start, end) -> _Contribution:
    on = to_timestamp(top_up.on_date)
    if top_up.amount <= 0:
        raise PreconditionError("Lumpsum amount must be greater than zero.")
    if on < start or on > end:
        raise PreconditionError("Lumpsum date must be between SIP start and end dates.")
    if top_up.mode == "weightage":
        amounts = {fid: top_up.amount * w for fid, w in bucket.target_weights().items()}
    elif top_up.mode == "specific":
        if top_up.fund_id is None or bucket.get(top_up.fund_id) is None:
            raise PreconditionError("Select a fund from the bucket to receive the lumpsum.")
        amounts = {top_up.fund_id: float(top_up.amount)}
    else:
        raise PreconditionError(f"Unknown lumpsum mode: {top_up.mode}")
    return _Contribution(on, amounts, "LUMPSUM")


@returns_outcome
def simulate_lumpsum(bucket: Bucket, series_by_fund: Mapping, params: LumpsumParams,
                     cfg: EngineConfig = DEFAULT_CONFIG, as_of=None) -> InvestmentResult:
    start, end = check_dates(params.start_date, params.end_date, as_of)
    if params.amount <= 0:
        raise PreconditionError("Investment amount must be greater than zero.")
    check_bucket(bucket, cfg)
    check_inception(bucket, start)
    prices = prepare_series_map(series_by_fund, bucket.fund_ids())

    weights = bucket.target_weights()
    contribution = _Contribution(start, {fid: params.amount * w for fid, w in weights.items()}, "LUMPSUM")
    for fund in bucket.funds:
        point = next_available_on_or_after(prices[fund.fund_id], start)
        if point is None or point.date > end:
            raise MissingDataError(f"No NAV available between {iso(start)} and {iso(end)} for {fund.name}.")

    ledger, flows, timeline = _run_contributions(bucket, prices, [contribution])
    valuation = [latest_on_or_before(prices[fid], end).date for fid in bucket.fund_ids()]
    return _summarise("lumpsum", bucket, prices, ledger, flows, timeline, end,
                      _ExactYears(cfg, valuation), cfg)


@returns_outcome
def simulate_sip(bucket: Bucket, series_by_fund: Mapping, params: SIPParams,
                 cfg: EngineConfig = DEFAULT_CONFIG, as_of=None) -> InvestmentResult:
    return _simulate_sip(bucket, series_by_fund, SIPLumpsumParams(sip=params), cfg, as_of, kind="sip")


@returns_outcome
def simulate_sip_lumpsum(bucket: Bucket, series_by_fund: Mapping, params: SIPLumpsumParams,
                         cfg: EngineConfig = DEFAULT_CONFIG, as_of=None) -> InvestmentResult:
    return _simulate_sip(bucket, series_by_fund, params, cfg, as_of, kind="sip_lumpsum")


def _simulate_sip(bucket, series_by_fund, params: SIPLumpsumParams, cfg, as_of, kind):
    sip = params.sip
    start, end = check_dates(sip.start_date, sip.end_date, as_of)
    if sip.monthly_amount <= 0:
        raise PreconditionError("Monthly investment must be greater than zero.")
    check_bucket(bucket, cfg)
    check_inception(bucket, start)
    prices = prepare_series_map(series_by_fund, bucket.fund_ids())
    for fund in bucket.funds:
        if prices[fund.fund_id].loc[start:end].empty:
            raise MissingDataError(f"No NAV history found for {fund.name} between {iso(start)} and {iso(end)}.")

    # the first fund's trading calendar drives the schedule
    schedule = sip_schedule(prices[bucket.funds[0].fund_id], start, end, cfg)
    if not schedule:
        raise MissingDataError(f"No NAV data available between {iso(start)} and {iso(end)} to schedule the SIP.")
    logger.info("SIP schedule: %d instalments, %s -> %s", len(schedule),
                iso(schedule[0].actual), iso(schedule[-1].actual))

    contributions = _sip_contributions(bucket, schedule, sip.monthly_amount)
    if params.top_up is not None:
        contributions.append(_top_up_contribution(bucket, params.top_up, start, end))

    ledger, flows, timeline = _run_contributions(bucket, prices, contributions)
    return _summarise(kind, bucket, prices, ledger, flows, timeline, end,
                      _PlanYears(cfg, start, end), cfg, schedule=schedule)
