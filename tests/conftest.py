import numpy as np
import pandas as pd
import pytest

from navsim.config import Bucket, Fund


def make_constant(start, end, price=10.0):
    days = pd.bdate_range(start, end)
    return pd.Series(price, index=days, dtype=float)


def make_growth(start, end, annual_pct, base=10.0):
    """Business-day NAVs growing at exactly ``annual_pct`` per 365.25-day year."""
    days = pd.bdate_range(start, end)
    elapsed = np.asarray((days - days[0]).days, dtype=float) / 365.25
    return pd.Series(base * (1.0 + annual_pct / 100.0) ** elapsed, index=days)


@pytest.fixture
def constant_series():
    return make_constant


@pytest.fixture
def growth_series():
    return make_growth


@pytest.fixture
def two_fund_bucket():
    return Bucket([
        Fund("A", "Alpha Large Cap", 60, risk_category="equity_large"),
        Fund("B", "Beta Debt", 40, risk_category="debt"),
    ])
