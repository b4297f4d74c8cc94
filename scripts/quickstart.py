from navsim.analytics.aggregate import aggregate_bucket
from navsim.analytics.rolling import best_available_rolling, bucket_rolling_returns
from navsim.config import Bucket, Fund, LumpsumParams, LumpsumTopUp, SIPLumpsumParams, SIPParams, SWPParams
from navsim.engine.investment import simulate_lumpsum, simulate_sip, simulate_sip_lumpsum
from navsim.engine.withdrawal import simulate_swp
from navsim.utils import get_logger
import numpy as np
import pandas as pd

log = get_logger("navsim.quickstart")


def synthetic_nav(start, end, annual_return, annual_vol, seed, base=10.0):
    """Business-day NAV path with a sprinkling of missing days (holidays)."""
    rng = np.random.default_rng(seed)
    days = pd.bdate_range(start, end)
    daily = rng.normal(annual_return / 252, annual_vol / np.sqrt(252), size=len(days))
    nav = base * np.cumprod(1.0 + daily)
    keep = rng.random(len(days)) > 0.03
    return pd.Series(nav[keep], index=days[keep])


def main():
    # 1) Bucket
    bucket = Bucket([
        Fund("LIQ", "Liquid Fund", 20, risk_category="liquid"),
        Fund("DEBT", "Short Duration Debt Fund", 20, risk_category="debt"),
        Fund("LARGE", "Large Cap Index Fund", 40, risk_category="equity_large"),
        Fund("MID", "Mid Cap Fund", 20, risk_category="equity_mid"),
    ])

    # 2) Data
    navs = {
        "LIQ": synthetic_nav("2015-01-01", "2024-12-31", 0.06, 0.01, seed=1),
        "DEBT": synthetic_nav("2015-01-01", "2024-12-31", 0.07, 0.03, seed=2),
        "LARGE": synthetic_nav("2015-01-01", "2024-12-31", 0.12, 0.16, seed=3),
        "MID": synthetic_nav("2015-01-01", "2024-12-31", 0.15, 0.22, seed=4),
    }

    def pct(x): return "n/a" if x is None else f"{x:.2f}%"

    # 3) Investment calculators
    lump = simulate_lumpsum(bucket, navs, LumpsumParams(100_000, "2016-01-01", "2024-12-31"))
    sip = simulate_sip(bucket, navs, SIPParams(10_000, "2016-01-01", "2024-12-31"))
    combo = simulate_sip_lumpsum(bucket, navs, SIPLumpsumParams(
        SIPParams(10_000, "2016-01-01", "2024-12-31"), LumpsumTopUp(50_000, "2020-03-25")))
    print("=== Investment Summary ===")
    for label, out in (("Lumpsum", lump), ("SIP", sip), ("SIP + Lumpsum", combo)):
        if not out.ok:
            print(f"{label}: {out.reason}")
            continue
        p = out.value.portfolio
        print(f"{label}: invested {p.invested:,.0f} -> {p.current_value:,.0f} "
              f"| CAGR {pct(p.cagr)} | XIRR {pct(p.xirr)}")

    # 4) Withdrawals under each strategy
    print("\n=== SWP Summary ===")
    for strategy in ("PROPORTIONAL", "OVERWEIGHT_FIRST", "RISK_BUCKET"):
        out = simulate_swp(bucket, navs, SWPParams(
            purchase_date="2016-01-01", start_date="2016-02-01", end_date="2024-12-31",
            total_investment=1_000_000, withdrawal_amount=12_000, strategy=strategy))
        if not out.ok:
            print(f"{strategy}: {out.reason}")
            continue
        r = out.value
        print(f"{strategy}: withdrawn {r.total_withdrawn:,.0f} | final {r.final_corpus:,.0f} "
              f"| survived {r.survival_periods}/{r.scheduled_periods} | max DD {r.max_drawdown:.1f}% "
              f"| depleted {r.depleted_on.date() if r.depleted_on is not None else 'never'}")

    # 5) Rolling returns and bucket statistics
    print("\n=== Rolling Returns ===")
    for fid, s in navs.items():
        print(fid, best_available_rolling(s).to_dict())
    print("Bucket", bucket_rolling_returns(bucket, navs).bucket.to_dict())
    stats = aggregate_bucket(bucket, navs)
    if stats.ok:
        print("Bucket stats", stats.value.to_dict())


if __name__ == "__main__":
    main()
