import uuid
from dataclasses import asdict
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from web3dash import coingecko
from web3dash.alerts import count_active_alerts
from web3dash.auth import get_current_user
from web3dash.coingecko import MarketDataError
from web3dash.db import User
from web3dash.portfolio import Portfolio, PriceQuote, build_asset, calculate_metrics, summarize_portfolios
from web3dash.user_data_store import load_portfolios, log_activity, save_portfolios

router = APIRouter()

MAX_NAME_LENGTH = 100


class AssetRequest(BaseModel):
    symbol: str
    amount: float
    purchase_price: float
    purchase_date: Optional[str] = None
    project_id: Optional[str] = None


class UpdateAssetRequest(BaseModel):
    amount: Optional[float] = None
    purchase_price: Optional[float] = None
    purchase_date: Optional[str] = None


class CreatePortfolioRequest(BaseModel):
    name: str
    description: str = ""
    assets: List[AssetRequest] = []


class UpdatePortfolioRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _clean_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Portfolio name is required")
    if len(name) > MAX_NAME_LENGTH:
        raise HTTPException(status_code=400, detail=f"Portfolio name cannot exceed {MAX_NAME_LENGTH} characters")
    return name


def _build_asset(body: AssetRequest):
    try:
        return build_asset(body.symbol, body.amount, body.purchase_price, body.purchase_date, body.project_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


def _find_portfolio(portfolios: List[Portfolio], portfolio_id: str) -> Portfolio:
    for portfolio in portfolios:
        if portfolio.id == portfolio_id:
            return portfolio
    raise HTTPException(status_code=404, detail="Portfolio not found")


def _check_unique_name(portfolios: List[Portfolio], name: str, exclude_id: Optional[str] = None):
    for portfolio in portfolios:
        if portfolio.id != exclude_id and portfolio.name.lower() == name.lower():
            raise HTTPException(status_code=409, detail="A portfolio with this name already exists")


def fetch_quotes(symbols: List[str]) -> dict:
    """Fresh quotes by symbol; empty when the market-data API is unavailable."""
    if not symbols:
        return {}
    try:
        prices = coingecko.get_prices_by_symbols(symbols)
    except MarketDataError as e:
        print(f"[CoinGecko] Using stored prices: {e}")
        return {}
    return {s: PriceQuote(price=q["price"], change_24h=q["change_24h"]) for s, q in prices.items()}


@router.get("/api/portfolios")
def list_portfolios(refresh: bool = False, current_user: User = Depends(get_current_user)):
    """List user's portfolios; refresh=true revalues them with fresh prices."""
    portfolios = load_portfolios(current_user.id)
    if refresh and portfolios:
        quotes = fetch_quotes(sorted({s for p in portfolios for s in p.symbols()}))
        for portfolio in portfolios:
            calculate_metrics(portfolio, quotes)
        save_portfolios(current_user.id, portfolios)
    return [asdict(p) for p in portfolios]


@router.post("/api/portfolios", status_code=201)
def create_portfolio(body: CreatePortfolioRequest, current_user: User = Depends(get_current_user)):
    now = _now()
    portfolio = Portfolio(
        id=uuid.uuid4().hex,
        user_id=current_user.id,
        name=_clean_name(body.name),
        description=body.description.strip(),
        assets=[_build_asset(a) for a in body.assets],
        created_at=now,
        updated_at=now,
    )
    calculate_metrics(portfolio)

    portfolios = load_portfolios(current_user.id)
    _check_unique_name(portfolios, portfolio.name)
    portfolios.insert(0, portfolio)
    save_portfolios(current_user.id, portfolios)
    log_activity(current_user.id, "portfolio_update", f"Created portfolio {portfolio.name}",
                 metadata={"portfolioId": portfolio.id})
    return asdict(portfolio)


@router.get("/api/portfolios/{portfolio_id}")
def get_portfolio(portfolio_id: str, current_user: User = Depends(get_current_user)):
    return asdict(_find_portfolio(load_portfolios(current_user.id), portfolio_id))


@router.put("/api/portfolios/{portfolio_id}")
def update_portfolio(
    portfolio_id: str,
    body: UpdatePortfolioRequest,
    current_user: User = Depends(get_current_user),
):
    portfolios = load_portfolios(current_user.id)
    portfolio = _find_portfolio(portfolios, portfolio_id)
    if body.name is not None:
        name = _clean_name(body.name)
        _check_unique_name(portfolios, name, exclude_id=portfolio.id)
        portfolio.name = name
    if body.description is not None:
        portfolio.description = body.description.strip()
    portfolio.updated_at = _now()
    save_portfolios(current_user.id, portfolios)
    log_activity(current_user.id, "portfolio_update", f"Updated portfolio {portfolio.name}",
                 metadata={"portfolioId": portfolio.id})
    return asdict(portfolio)


@router.delete("/api/portfolios/{portfolio_id}")
def delete_portfolio(portfolio_id: str, current_user: User = Depends(get_current_user)):
    portfolios = load_portfolios(current_user.id)
    portfolio = _find_portfolio(portfolios, portfolio_id)
    portfolios.remove(portfolio)
    save_portfolios(current_user.id, portfolios)
    log_activity(current_user.id, "portfolio_update", f"Deleted portfolio {portfolio.name}",
                 metadata={"portfolioId": portfolio.id})
    return {"status": "deleted"}


@router.get("/api/portfolios/{portfolio_id}/assets")
def list_assets(portfolio_id: str, current_user: User = Depends(get_current_user)):
    portfolio = _find_portfolio(load_portfolios(current_user.id), portfolio_id)
    return [asdict(a) for a in portfolio.assets]


@router.post("/api/portfolios/{portfolio_id}/assets", status_code=201)
def add_asset(portfolio_id: str, body: AssetRequest, current_user: User = Depends(get_current_user)):
    portfolios = load_portfolios(current_user.id)
    portfolio = _find_portfolio(portfolios, portfolio_id)
    asset = _build_asset(body)
    portfolio.assets.append(asset)
    calculate_metrics(portfolio)
    portfolio.updated_at = _now()
    save_portfolios(current_user.id, portfolios)
    log_activity(current_user.id, "portfolio_update", f"Added {asset.amount:g} {asset.symbol} to {portfolio.name}",
                 metadata={"portfolioId": portfolio.id, "assetId": asset.id})
    return asdict(portfolio)


@router.put("/api/portfolios/{portfolio_id}/assets/{asset_id}")
def update_asset(
    portfolio_id: str,
    asset_id: str,
    body: UpdateAssetRequest,
    current_user: User = Depends(get_current_user),
):
    portfolios = load_portfolios(current_user.id)
    portfolio = _find_portfolio(portfolios, portfolio_id)
    asset = portfolio.get_asset(asset_id)
    if not asset:
        raise HTTPException(status_code=404, detail="Asset not found")

    if body.amount is not None:
        if body.amount <= 0:
            raise HTTPException(status_code=400, detail="Amount must be greater than zero")
        asset.amount = body.amount
    if body.purchase_price is not None:
        if body.purchase_price <= 0:
            raise HTTPException(status_code=400, detail="Purchase price must be greater than zero")
        asset.purchase_price = body.purchase_price
    if body.purchase_date is not None:
        asset.purchase_date = body.purchase_date

    calculate_metrics(portfolio)
    portfolio.updated_at = _now()
    save_portfolios(current_user.id, portfolios)
    return asdict(portfolio)


@router.delete("/api/portfolios/{portfolio_id}/assets/{asset_id}")
def remove_asset(portfolio_id: str, asset_id: str, current_user: User = Depends(get_current_user)):
    portfolios = load_portfolios(current_user.id)
    portfolio = _find_portfolio(portfolios, portfolio_id)
    asset = portfolio.get_asset(asset_id)
    if not asset:
        raise HTTPException(status_code=404, detail="Asset not found")

    portfolio.assets.remove(asset)
    calculate_metrics(portfolio)
    portfolio.updated_at = _now()
    save_portfolios(current_user.id, portfolios)
    log_activity(current_user.id, "portfolio_update", f"Removed {asset.symbol} from {portfolio.name}",
                 metadata={"portfolioId": portfolio.id, "assetId": asset.id})
    return asdict(portfolio)


@router.get("/api/portfolio/summary")
def portfolio_summary(current_user: User = Depends(get_current_user)):
    """Dashboard totals across all portfolios, revalued with fresh prices when available."""
    portfolios = load_portfolios(current_user.id)
    if portfolios:
        quotes = fetch_quotes(sorted({s for p in portfolios for s in p.symbols()}))
        for portfolio in portfolios:
            calculate_metrics(portfolio, quotes)
        save_portfolios(current_user.id, portfolios)
    return summarize_portfolios(portfolios, active_alerts=count_active_alerts(current_user.id))
