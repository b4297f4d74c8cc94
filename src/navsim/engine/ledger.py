from typing import Dict, Iterable

# Units below this are treated as fully redeemed.
UNIT_EPSILON = 1e-9


class UnitLedger:
    """Per-fund unit balances for a single simulation run. Never shared between runs."""

    def __init__(self, fund_ids: Iterable[str]):
        self._units: Dict[str, float] = {fid: 0.0 for fid in fund_ids}

    def buy(self, fund_id: str, amount: float, price: float) -> float:
        if price <= 0:
            raise ValueError(f"Cannot buy {fund_id} at non-positive price {price}")
        units = amount / price
        self._units[fund_id] += units
        return units

    def sell_amount(self, fund_id: str, amount: float, price: float) -> float:
        """Redeem ``amount`` of value (capped at the holding); returns units sold."""
        held = self._units[fund_id]
        units = min(held, amount / price)
        remaining = held - units
        self._units[fund_id] = remaining if remaining > UNIT_EPSILON else 0.0
        return units

    def units(self, fund_id: str) -> float:
        return self._units[fund_id]

    def value(self, fund_id: str, price: float) -> float:
        return self._units[fund_id] * price

    def snapshot(self) -> Dict[str, float]:
        return dict(self._units)
