from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd

from ..utils import iso


@dataclass(frozen=True)
class FundSale:
    fund_id: str
    price_date: pd.Timestamp
    price: float
    amount: float
    units_sold: float

    def to_dict(self):
        return {
            "fundId": self.fund_id,
            "navDate": iso(self.price_date),
            "nav": self.price,
            "amount": self.amount,
            "unitsSold": self.units_sold,
        }


@dataclass(frozen=True)
class TimelineEntry:
    date: pd.Timestamp
    units: Dict[str, float]
    portfolio_value: float
    action: Optional[str] = None        # "INVEST" | "LUMPSUM" | "WITHDRAWAL"
    amount: float = 0.0                 # invested or withdrawn on this date
    sales: List[FundSale] = field(default_factory=list)

    def to_dict(self):
        out = {
            "date": iso(self.date),
            "totalUnits": dict(self.units),
            "portfolioValue": self.portfolio_value,
        }
        if self.action:
            out["action"] = {
                "type": self.action,
                "amount": self.amount,
                "perFund": [s.to_dict() for s in self.sales],
            }
        return out
