import os
from dataclasses import dataclass, fields
from datetime import date
from typing import Dict, List, Literal, Optional, Union

DateLike = Union[str, date]

RiskCategory = Literal["liquid", "debt", "hybrid", "equity_large", "equity_mid", "equity_small"]

# Redemption priority for the risk-bucket strategy: lowest risk is sold first.
RISK_ORDER = ("liquid", "debt", "hybrid", "equity_large", "equity_mid", "equity_small")

Frequency = Literal["monthly", "quarterly", "custom"]
Strategy = Literal["PROPORTIONAL", "OVERWEIGHT_FIRST", "RISK_BUCKET"]
SWPMode = Literal["normal", "corpus", "target"]
TopUpMode = Literal["weightage", "specific"]


@dataclass(frozen=True)
class Fund:
    fund_id: str
    name: str
    weight: float                                # 0..100
    risk_category: Optional[RiskCategory] = None
    inception_date: Optional[date] = None


@dataclass(frozen=True)
class Bucket:
    funds: List[Fund]

    def fund_ids(self):
        return [f.fund_id for f in self.funds]

    def total_weight(self) -> float:
        return float(sum(f.weight for f in self.funds))

    def target_weights(self) -> Dict[str, float]:
        """Weights normalised to sum 1 (empty if the total is not positive)."""
        total = self.total_weight()
        if total <= 0:
            return {}
        return {f.fund_id: f.weight / total for f in self.funds}

    def get(self, fund_id: str) -> Optional[Fund]:
        for f in self.funds:
            if f.fund_id == fund_id:
                return f
        return None

    def earliest_start(self) -> Optional[date]:
        # latest inception across the bucket is the first date every fund can be bought
        dates = [f.inception_date for f in self.funds if f.inception_date is not None]
        return max(dates) if dates else None


@dataclass(frozen=True)
class LumpsumParams:
    amount: float
    start_date: DateLike
    end_date: DateLike


@dataclass(frozen=True)
class SIPParams:
    monthly_amount: float
    start_date: DateLike
    end_date: DateLike


@dataclass(frozen=True)
class LumpsumTopUp:
    amount: float
    on_date: DateLike
    mode: TopUpMode = "weightage"
    fund_id: Optional[str] = None   # required when mode == "specific"


@dataclass(frozen=True)
class SIPLumpsumParams:
    sip: SIPParams
    top_up: Optional[LumpsumTopUp] = None


@dataclass(frozen=True)
class SWPParams:
    purchase_date: DateLike
    start_date: DateLike
    end_date: DateLike
    total_investment: float = 0.0
    withdrawal_amount: float = 0.0
    frequency: Frequency = "monthly"
    custom_interval_days: int = 30
    strategy: Strategy = "PROPORTIONAL"
    risk_factor: float = 3.0
    mode: SWPMode = "normal"
    desired_withdrawal: float = 0.0     # target mode: withdrawal wanted per period
    duration_years: float = 0.0         # target mode: 0 => withdraw indefinitely


@dataclass(frozen=True)
class EngineConfig:
    days_per_year: float = 365.25
    xirr_tolerance: float = 1e-7
    xirr_max_iterations: int = 100
    xirr_guess: float = 0.1
    rolling_tolerance_days: int = 30
    bucket_min_coverage: float = 0.99
    sip_grace_days: int = 7
    sip_overrun_days: int = 32
    weight_sum_tolerance: float = 0.01
    default_risk_factor: float = 3.0
    min_risk_factor: float = 0.1

    @classmethod
    def from_env(cls, prefix: str = "NAVSIM_") -> "EngineConfig":
        """Build a config, overriding defaults with e.g. NAVSIM_XIRR_TOLERANCE=1e-9."""
        overrides = {}
        for f in fields(cls):
            raw = os.environ.get(prefix + f.name.upper())
            if raw is None:
                continue
            try:
                overrides[f.name] = type(f.default)(raw)
            except ValueError as e:
                raise ValueError(f"Invalid value for {prefix + f.name.upper()}: {raw!r}") from e
        return cls(**overrides)


DEFAULT_CONFIG = EngineConfig()
