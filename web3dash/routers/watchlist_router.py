from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from web3dash import coingecko
from web3dash.auth import get_current_user
from web3dash.catalog import get_catalog
from web3dash.coingecko import MarketDataError
from web3dash.db import User
from web3dash.user_data_store import load_watchlist, log_activity, new_record_id, save_watchlist

router = APIRouter()


class WatchlistAddRequest(BaseModel):
    coin_id: str
    symbol: str
    name: str
    alert_price: Optional[float] = None
    notes: str = ""


class WatchlistUpdateRequest(BaseModel):
    alert_price: Optional[float] = None
    notes: Optional[str] = None


def _attach_prices(items: list) -> list:
    try:
        prices = coingecko.get_simple_prices([item["coin_id"] for item in items])
    except MarketDataError as e:
        print(f"[CoinGecko] Watchlist prices unavailable: {e}")
        return items

    for item in items:
        data = prices.get(item["coin_id"])
        if not data:
            continue
        item["current_price"] = data.get("usd")
        item["change_24h"] = data.get("usd_24h_change")
        item["volume_24h"] = data.get("usd_24h_vol")
        item["market_cap"] = data.get("usd_market_cap")
    return items


@router.get("/api/watchlist")
def get_watchlist(with_prices: bool = True, current_user: User = Depends(get_current_user)):
    """Watchlist entries, newest first, with live prices when available."""
    items = load_watchlist(current_user.id)
    if with_prices and items:
        items = _attach_prices(items)
    return items


@router.post("/api/watchlist", status_code=201)
def add_to_watchlist(body: WatchlistAddRequest, current_user: User = Depends(get_current_user)):
    coin_id = body.coin_id.strip().lower()
    symbol = body.symbol.strip().upper()
    if not coin_id or not symbol or not body.name.strip():
        raise HTTPException(status_code=400, detail="Coin id, symbol and name are required")

    items = load_watchlist(current_user.id)
    if any(item["coin_id"] == coin_id for item in items):
        raise HTTPException(status_code=409, detail="Coin is already in your watchlist")

    item = {
        "id": new_record_id("watch"),
        "coin_id": coin_id,
        "symbol": symbol,
        "name": body.name.strip(),
        "alert_price": body.alert_price,
        "notes": body.notes,
        "added_at": datetime.now(timezone.utc).isoformat(),
    }
    items.insert(0, item)
    save_watchlist(current_user.id, items)
    get_catalog().adjust_watchlist_count(coin_id, symbol, 1)
    log_activity(current_user.id, "watchlist_add", f"Added {symbol} to watchlist", metadata={"coinId": coin_id})
    return item


@router.put("/api/watchlist/{item_id}")
def update_watchlist_item(
    item_id: str,
    body: WatchlistUpdateRequest,
    current_user: User = Depends(get_current_user),
):
    items = load_watchlist(current_user.id)
    for item in items:
        if item["id"] == item_id:
            if body.alert_price is not None:
                item["alert_price"] = body.alert_price
            if body.notes is not None:
                item["notes"] = body.notes
            save_watchlist(current_user.id, items)
            return item
    raise HTTPException(status_code=404, detail="Watchlist item not found")


@router.delete("/api/watchlist/{item_id}")
def remove_from_watchlist(item_id: str, current_user: User = Depends(get_current_user)):
    items = load_watchlist(current_user.id)
    for item in items:
        if item["id"] == item_id:
            items.remove(item)
            save_watchlist(current_user.id, items)
            get_catalog().adjust_watchlist_count(item["coin_id"], item["symbol"], -1)
            log_activity(current_user.id, "watchlist_remove", f"Removed {item['symbol']} from watchlist",
                         metadata={"coinId": item["coin_id"]})
            return {"status": "deleted"}
    raise HTTPException(status_code=404, detail="Watchlist item not found")
