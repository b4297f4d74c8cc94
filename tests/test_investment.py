import pandas as pd
import pytest

from navsim.config import Bucket, Fund, LumpsumParams, LumpsumTopUp, SIPLumpsumParams, SIPParams
from navsim.engine.investment import simulate_lumpsum, simulate_sip, simulate_sip_lumpsum
from navsim.results import Failed, Ok


@pytest.fixture
def flat_navs(constant_series):
    return {"A": constant_series("2019-12-01", "2021-06-30"), "B": constant_series("2019-12-01", "2021-06-30")}


@pytest.fixture
def growing_navs(growth_series):
    return {"A": growth_series("2019-12-02", "2023-06-30", 10.0), "B": growth_series("2019-12-02", "2023-06-30", 5.0)}


# ------------------------------------------------------------
# Lumpsum
# ------------------------------------------------------------

def test_lumpsum_round_trip(two_fund_bucket, growing_navs):
    out = simulate_lumpsum(two_fund_bucket, growing_navs, LumpsumParams(100_000, "2020-01-01", "2022-12-31"))
    assert isinstance(out, Ok)
    res = out.value
    for perf in [res.portfolio] + [f.performance for f in res.funds]:
        assert perf.profit == pytest.approx(perf.current_value - perf.invested)
        assert perf.profit_percent == pytest.approx(100 * perf.profit / perf.invested)
    assert res.portfolio.invested == pytest.approx(100_000)
    assert res.fund("A").performance.invested == pytest.approx(60_000)


def test_lumpsum_fund_cagr_tracks_nav_growth(two_fund_bucket, growing_navs):
    res = simulate_lumpsum(two_fund_bucket, growing_navs, LumpsumParams(100_000, "2020-01-01", "2022-12-31")).value
    assert res.fund("A").performance.cagr == pytest.approx(10.0, rel=1e-9)
    assert res.fund("B").performance.cagr == pytest.approx(5.0, rel=1e-9)
    assert res.fund("A").performance.xirr == pytest.approx(10.0, abs=1e-4)
    assert 5.0 < res.portfolio.cagr < 10.0


def test_lumpsum_buys_on_next_trading_day(two_fund_bucket, flat_navs):
    # Jan 4 2020 is a Saturday
    res = simulate_lumpsum(two_fund_bucket, flat_navs, LumpsumParams(10_000, "2020-01-04", "2020-12-31")).value
    assert res.timeline[0].date == pd.Timestamp("2020-01-06")
    assert res.fund("A").units == pytest.approx(600.0)


def test_lumpsum_rejects_future_end_date(two_fund_bucket, flat_navs):
    out = simulate_lumpsum(two_fund_bucket, flat_navs, LumpsumParams(10_000, "2020-01-01", "2021-06-30"),
                           as_of="2021-01-01")
    assert isinstance(out, Failed)
    assert out.kind == "precondition"


def test_lumpsum_rejects_inverted_range(two_fund_bucket, flat_navs):
    out = simulate_lumpsum(two_fund_bucket, flat_navs, LumpsumParams(10_000, "2020-12-31", "2020-01-01"))
    assert not out.ok
    assert out.kind == "precondition"


def test_lumpsum_rejects_weights_not_summing_to_100(flat_navs):
    bucket = Bucket([Fund("A", "A", 60), Fund("B", "B", 30)])
    out = simulate_lumpsum(bucket, flat_navs, LumpsumParams(10_000, "2020-01-01", "2020-12-31"))
    assert out.kind == "precondition"
    assert "100" in out.reason


def test_start_before_fund_inception_is_rejected(flat_navs):
    from datetime import date

    bucket = Bucket([Fund("A", "A", 50, inception_date=date(2019, 1, 1)),
                     Fund("B", "Late Launch", 50, inception_date=date(2020, 3, 1))])
    out = simulate_sip(bucket, flat_navs, SIPParams(1000, "2020-01-01", "2020-12-31"))
    assert out.kind == "precondition"
    assert "2020-03-01" in out.reason
    assert simulate_sip(bucket, flat_navs, SIPParams(1000, "2020-03-02", "2020-12-31")).ok


def test_lumpsum_missing_series_is_reported(two_fund_bucket, flat_navs):
    out = simulate_lumpsum(two_fund_bucket, {"A": flat_navs["A"]}, LumpsumParams(10_000, "2020-01-01", "2020-12-31"))
    assert isinstance(out, Failed)
    assert out.kind == "missing_data"


def test_lumpsum_without_nav_in_range_is_missing_data(two_fund_bucket, constant_series):
    navs = {"A": constant_series("2022-01-01", "2022-12-31"), "B": constant_series("2019-01-01", "2022-12-31")}
    out = simulate_lumpsum(two_fund_bucket, navs, LumpsumParams(10_000, "2020-01-01", "2020-12-31"))
    assert out.kind == "missing_data"


# ------------------------------------------------------------
# SIP
# ------------------------------------------------------------

def test_sip_at_constant_price_buys_n_times_a_over_p(two_fund_bucket, flat_navs):
    out = simulate_sip(two_fund_bucket, flat_navs, SIPParams(1000, "2020-01-01", "2020-12-31"))
    res = out.value
    n = len(res.schedule)
    assert n == 12
    total_units = sum(f.units for f in res.funds)
    assert total_units == pytest.approx(n * 1000 / 10.0)
    assert res.fund("A").units == pytest.approx(0.6 * n * 1000 / 10.0)
    assert res.portfolio.invested == pytest.approx(12_000)
    assert res.portfolio.current_value == pytest.approx(12_000)
    assert res.portfolio.xirr == pytest.approx(0.0, abs=1e-3)


def test_sip_timeline_accumulates_units(two_fund_bucket, flat_navs):
    res = simulate_sip(two_fund_bucket, flat_navs, SIPParams(1000, "2020-01-01", "2020-06-30")).value
    values = [e.portfolio_value for e in res.timeline]
    assert values == pytest.approx([1000.0 * (i + 1) for i in range(6)])
    assert all(e.action == "INVEST" for e in res.timeline)


def test_sip_positive_growth_gives_positive_xirr(two_fund_bucket, growing_navs):
    res = simulate_sip(two_fund_bucket, growing_navs, SIPParams(5000, "2020-01-01", "2022-12-31")).value
    assert res.fund("A").performance.xirr == pytest.approx(10.0, abs=0.5)
    assert res.portfolio.profit > 0
    # one netted flow per instalment date plus the terminal value
    assert len(res.cashflows) == len(res.schedule) + 1


def test_sip_rejects_zero_amount(two_fund_bucket, flat_navs):
    out = simulate_sip(two_fund_bucket, flat_navs, SIPParams(0, "2020-01-01", "2020-12-31"))
    assert out.kind == "precondition"


def test_sip_fund_with_only_old_history_fails(two_fund_bucket, flat_navs, constant_series):
    navs = {"A": flat_navs["A"], "B": constant_series("2010-01-01", "2011-12-31")}
    out = simulate_sip(two_fund_bucket, navs, SIPParams(1000, "2020-01-01", "2020-12-31"))
    assert out.kind == "missing_data"
    assert "Beta Debt" in out.reason


def test_sip_with_no_nav_in_range_fails(two_fund_bucket, constant_series):
    navs = {"A": constant_series("2022-01-01", "2022-12-31"), "B": constant_series("2022-01-01", "2022-12-31")}
    out = simulate_sip(two_fund_bucket, navs, SIPParams(1000, "2020-01-01", "2020-06-30"))
    assert out.kind == "missing_data"


# ------------------------------------------------------------
# SIP + lumpsum
# ------------------------------------------------------------

def test_top_up_into_specific_fund(two_fund_bucket, flat_navs):
    params = SIPLumpsumParams(SIPParams(1000, "2020-01-01", "2020-12-31"),
                              LumpsumTopUp(5000, "2020-06-15", mode="specific", fund_id="A"))
    res = simulate_sip_lumpsum(two_fund_bucket, flat_navs, params).value
    assert res.fund("A").units == pytest.approx(720 + 500)
    assert res.fund("B").units == pytest.approx(480)
    assert res.portfolio.invested == pytest.approx(17_000)
    lumps = [e for e in res.timeline if e.action == "LUMPSUM"]
    assert len(lumps) == 1 and lumps[0].date == pd.Timestamp("2020-06-15")


def test_top_up_by_weightage(two_fund_bucket, flat_navs):
    params = SIPLumpsumParams(SIPParams(1000, "2020-01-01", "2020-12-31"), LumpsumTopUp(5000, "2020-06-15"))
    res = simulate_sip_lumpsum(two_fund_bucket, flat_navs, params).value
    assert res.fund("A").performance.invested == pytest.approx(0.6 * 17_000)
    assert res.fund("B").performance.invested == pytest.approx(0.4 * 17_000)
    assert res.kind == "sip_lumpsum"


@pytest.mark.parametrize("top_up", [
    LumpsumTopUp(5000, "2021-03-01"),
    LumpsumTopUp(0, "2020-06-15"),
    LumpsumTopUp(5000, "2020-06-15", mode="specific", fund_id="Z"),
    LumpsumTopUp(5000, "2020-06-15", mode="specific"),
])
def test_invalid_top_up_is_rejected(two_fund_bucket, flat_navs, top_up):
    params = SIPLumpsumParams(SIPParams(1000, "2020-01-01", "2020-12-31"), top_up)
    out = simulate_sip_lumpsum(two_fund_bucket, flat_navs, params)
    assert isinstance(out, Failed)
    assert out.kind == "precondition"


def test_runs_do_not_share_state(two_fund_bucket, flat_navs):
    params = SIPParams(1000, "2020-01-01", "2020-12-31")
    first = simulate_sip(two_fund_bucket, flat_navs, params).value
    second = simulate_sip(two_fund_bucket, flat_navs, params).value
    assert first.fund("A").units == second.fund("A").units
