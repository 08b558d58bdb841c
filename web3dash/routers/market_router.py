from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, HTTPException

from web3dash import coingecko, defillama
from web3dash.catalog import get_catalog
from web3dash.coingecko import MarketDataError

router = APIRouter()

MAX_SYMBOLS = 50
HISTORY_DAYS = (1, 7, 14, 30, 90, 180, 365)


def _upstream(call, *args, **kwargs):
    """Run a market-data call, mapping API failures to 502."""
    try:
        return call(*args, **kwargs)
    except MarketDataError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e


@router.get("/api/market-data")
def market_overview(limit: int = 100, page: int = 1, ids: Optional[str] = None):
    """Coins ordered by market cap."""
    coin_ids = [i.strip() for i in ids.split(",") if i.strip()] if ids else None
    return _upstream(coingecko.get_coins_markets, ids=coin_ids, per_page=min(max(1, limit), 250), page=max(1, page))


@router.get("/api/market-data/prices")
def prices(symbols: str):
    """Price and 24h change for comma-separated ticker symbols."""
    symbol_list = [s.strip().upper() for s in symbols.split(",") if s.strip()]
    if not symbol_list:
        raise HTTPException(status_code=400, detail="At least one symbol is required")
    if len(symbol_list) > MAX_SYMBOLS:
        raise HTTPException(status_code=400, detail=f"At most {MAX_SYMBOLS} symbols per request")
    return _upstream(coingecko.get_prices_by_symbols, symbol_list)


@router.get("/api/market-data/search")
def search(q: str = ""):
    if len(q.strip()) < 2:
        raise HTTPException(status_code=400, detail="Search query must be at least 2 characters")
    return _upstream(coingecko.search_coins, q.strip())


@router.get("/api/market-data/trending")
def upstream_trending():
    return _upstream(coingecko.get_trending)


@router.get("/api/market-data/global")
def global_stats():
    return _upstream(coingecko.get_global)


@router.get("/api/market-data/defi")
def defi_overview(chain: Optional[str] = None):
    """DeFi TVL summary, history and distributions."""
    return _upstream(defillama.get_defi_overview, chain)


@router.get("/api/market-data/{coin_id}")
def coin_details(coin_id: str):
    return _upstream(coingecko.get_coin_details, coin_id)


@router.get("/api/market-data/{coin_id}/history")
def coin_history(coin_id: str, days: int = 7):
    if days not in HISTORY_DAYS:
        raise HTTPException(status_code=400, detail=f"Days must be one of: {', '.join(map(str, HISTORY_DAYS))}")
    return _upstream(coingecko.get_market_chart, coin_id, days=days)


@router.get("/api/trending")
def stored_trending(category: Optional[str] = None, limit: int = 10):
    """Trending coins from the last sync, highest score first."""
    coins = get_catalog().list_trending_coins(category, min(max(1, limit), 50))
    return {"coins": [asdict(c) for c in coins]}
