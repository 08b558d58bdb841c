"""
Portfolio valuation: rolls per-asset cost and market value up into
portfolio totals (value, cost, profit/loss and profit/loss percentage).
"""

import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Dict, List, Optional


# ── Data classes ──────────────────────────────────────────────────────────

@dataclass
class PriceQuote:
    price: float
    change_24h: float = 0.0


@dataclass
class PortfolioAsset:
    id: str
    project_id: Optional[str]
    symbol: str
    amount: float
    purchase_price: float
    purchase_date: str
    current_price: Optional[float] = None
    current_value: float = 0.0
    profit_loss: float = 0.0
    profit_loss_percentage: float = 0.0
    change_24h: float = 0.0

    @property
    def cost(self) -> float:
        return self.amount * self.purchase_price


@dataclass
class Portfolio:
    id: str
    user_id: int
    name: str
    created_at: str
    description: str = ""
    assets: List[PortfolioAsset] = field(default_factory=list)
    total_value: float = 0.0
    total_cost: float = 0.0
    total_profit_loss: float = 0.0
    total_profit_loss_percentage: float = 0.0
    updated_at: Optional[str] = None
    last_updated: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Portfolio":
        names = {f.name for f in fields(cls)}
        asset_names = {f.name for f in fields(PortfolioAsset)}
        data = {k: v for k, v in data.items() if k in names}
        data["assets"] = [
            PortfolioAsset(**{k: v for k, v in a.items() if k in asset_names})
            for a in data.get("assets", [])
        ]
        return cls(**data)

    def get_asset(self, asset_id: str) -> Optional[PortfolioAsset]:
        for asset in self.assets:
            if asset.id == asset_id:
                return asset
        return None

    def symbols(self) -> List[str]:
        return sorted({asset.symbol for asset in self.assets})


# ── Valuation ─────────────────────────────────────────────────────────────

def _percentage(gain: float, cost: float) -> float:
    return (gain / cost) * 100 if cost > 0 else 0.0


def value_asset(asset: PortfolioAsset, quote: Optional[PriceQuote] = None) -> PortfolioAsset:
    """
    Revalue a single asset in place.

    The current price is the fresh quote when one is given, else the last
    known price, else the purchase price.
    """
    if quote is not None and quote.price:
        asset.current_price = quote.price
        asset.change_24h = quote.change_24h
    elif not asset.current_price:
        asset.current_price = asset.purchase_price

    cost = asset.cost
    asset.current_value = asset.amount * asset.current_price
    asset.profit_loss = asset.current_value - cost
    asset.profit_loss_percentage = _percentage(asset.profit_loss, cost)
    return asset


def calculate_metrics(portfolio: Portfolio, prices: Optional[Dict[str, PriceQuote]] = None) -> Portfolio:
    """
    Revalue every asset and recompute portfolio totals in place.

    Args:
        portfolio: Portfolio to update
        prices: Fresh quotes keyed by uppercase symbol (missing symbols keep
            their previous price)

    Returns:
        The same portfolio, for chaining
    """
    prices = prices or {}
    total_value = 0.0
    total_cost = 0.0

    for asset in portfolio.assets:
        value_asset(asset, prices.get(asset.symbol.upper()))
        total_cost += asset.cost
        total_value += asset.current_value

    portfolio.total_value = total_value
    portfolio.total_cost = total_cost
    portfolio.total_profit_loss = total_value - total_cost
    portfolio.total_profit_loss_percentage = _percentage(total_value - total_cost, total_cost)
    portfolio.last_updated = datetime.now(timezone.utc).isoformat()
    return portfolio


def _positive_float(value, label: str) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{label} must be a number")
    if parsed <= 0:
        raise ValueError(f"{label} must be greater than zero")
    return parsed


def build_asset(
    symbol: str,
    amount,
    purchase_price,
    purchase_date: Optional[str] = None,
    project_id: Optional[str] = None,
) -> PortfolioAsset:
    """
    Validate raw input and build a new holding valued at its purchase price.

    Raises:
        ValueError: symbol is empty or amount/price are not positive numbers
    """
    if not symbol or not symbol.strip():
        raise ValueError("Asset must have symbol, amount, and purchase price")
    parsed_amount = _positive_float(amount, "Amount")
    parsed_price = _positive_float(purchase_price, "Purchase price")

    asset = PortfolioAsset(
        id=uuid.uuid4().hex,
        project_id=project_id,
        symbol=symbol.strip().upper(),
        amount=parsed_amount,
        purchase_price=parsed_price,
        purchase_date=purchase_date or datetime.now(timezone.utc).isoformat(),
        current_price=parsed_price,
    )
    return value_asset(asset)


def summarize_portfolios(portfolios: List[Portfolio], active_alerts: int = 0) -> dict:
    """Dashboard roll-up across all of a user's portfolios."""
    total_value = sum(p.total_value for p in portfolios)
    total_cost = sum(p.total_cost for p in portfolios)
    # 24h change weighted by each holding's current value
    weighted_change = sum(a.current_value * a.change_24h for p in portfolios for a in p.assets)
    return {
        "totalValue": total_value,
        "totalCost": total_cost,
        "totalProfitLoss": total_value - total_cost,
        "totalProfitLossPercentage": _percentage(total_value - total_cost, total_cost),
        "change24h": weighted_change / total_value if total_value > 0 else 0.0,
        "totalProjects": len({a.symbol for p in portfolios for a in p.assets}),
        "portfolioCount": len(portfolios),
        "activeAlerts": active_alerts,
    }
