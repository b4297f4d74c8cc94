import math

import pandas as pd
import pytest

from navsim.analytics.aggregate import aggregate_bucket, bucket_statistics, combine_summaries, safe_withdrawal_rate
from navsim.analytics.metrics import annualized_volatility, distribution_stats, max_drawdown, weighted_average
from navsim.config import Bucket, Fund
from navsim.engine.investment import PerformanceSummary
from navsim.results import Insufficient, Ok


def test_weighted_average_excludes_missing_values():
    assert weighted_average({"A": 10.0, "B": None}, {"A": 0.5, "B": 0.5}) == pytest.approx(10.0)
    assert weighted_average({"A": 10.0, "B": math.nan}, {"A": 0.25, "B": 0.75}) == pytest.approx(10.0)
    assert weighted_average({"A": 10.0, "B": 20.0}, {"A": 0.25, "B": 0.75}) == pytest.approx(17.5)


def test_weighted_average_of_nothing_is_none():
    assert weighted_average({"A": None}, {"A": 1.0}) is None
    assert weighted_average({}, {}) is None


def test_max_drawdown_is_largest_peak_to_trough():
    assert max_drawdown([100, 120, 90, 130, 117]) == pytest.approx(25.0)
    assert max_drawdown([100, 110, 120]) == 0.0
    assert max_drawdown([]) == 0.0


def test_distribution_stats():
    stats = distribution_stats([-2.0, 1.0, 4.0, 5.0])
    assert stats["mean"] == pytest.approx(2.0)
    assert stats["median"] == pytest.approx(2.5)
    assert stats["std"] == pytest.approx(math.sqrt(7.5))
    assert stats["positive_percent"] == pytest.approx(75.0)
    assert distribution_stats([]) is None


def test_volatility_needs_two_monthly_returns(constant_series):
    assert annualized_volatility(constant_series("2024-01-01", "2024-02-20")) is None
    assert annualized_volatility(constant_series("2023-01-01", "2024-01-31")) == pytest.approx(0.0)


def test_fund_without_history_is_excluded_not_zeroed(growth_series):
    bucket = Bucket([Fund("A", "A", 50), Fund("NEW", "New Fund", 50)])
    navs = {
        "A": growth_series("2018-01-01", "2022-12-30", 10.0),
        "NEW": pd.Series([10.0], index=pd.DatetimeIndex(["2022-12-30"])),
    }
    stats = bucket_statistics(bucket, navs)
    assert stats.cagr == pytest.approx(10.0)
    assert stats.contributing == ["A"]
    assert stats.fund_cagr["NEW"] is None
    assert stats.safe_withdrawal_rate == pytest.approx(10.0 / 3)


def test_aggregate_is_insufficient_when_no_fund_contributes():
    bucket = Bucket([Fund("A", "A", 100)])
    out = aggregate_bucket(bucket, {"A": pd.Series([10.0], index=pd.DatetimeIndex(["2022-12-30"]))})
    assert isinstance(out, Insufficient)


def test_aggregate_weights_by_target_allocation(growth_series):
    bucket = Bucket([Fund("A", "A", 25), Fund("B", "B", 75)])
    navs = {"A": growth_series("2018-01-01", "2022-12-30", 4.0), "B": growth_series("2018-01-01", "2022-12-30", 12.0)}
    out = aggregate_bucket(bucket, navs, risk_factor=2.0)
    assert isinstance(out, Ok)
    assert out.value.cagr == pytest.approx(10.0)
    assert out.value.safe_withdrawal_rate == pytest.approx(5.0)
    assert out.value.to_dict()["riskFactor"] == 2.0


def test_safe_withdrawal_rate_without_cagr():
    assert safe_withdrawal_rate(None) is None
    assert safe_withdrawal_rate(9.0, None) == pytest.approx(3.0)


def test_combine_summaries_skips_missing_xirr():
    bucket = Bucket([Fund("A", "A", 50), Fund("B", "B", 50)])
    summaries = {
        "A": PerformanceSummary(100, 120, 20, 20, 8.0, 9.0),
        "B": PerformanceSummary(100, 110, 10, 10, 4.0, None),
    }
    combined = combine_summaries(bucket, summaries)
    assert combined["cagr"] == pytest.approx(6.0)
    assert combined["xirr"] == pytest.approx(9.0)
