"""
Periodic synchronization with external market-data APIs.

Each step can be triggered on its own (cron endpoints) or together through
run_full_sync(), which the background scheduler calls every
AUTO_SYNC_INTERVAL_MINUTES when AUTO_SYNC_ENABLED is set.
"""

import time
from datetime import datetime, timezone

from web3dash import coingecko, config
from web3dash.alerts import evaluate_alerts
from web3dash.catalog import get_catalog, MarketData, TrendingCoin
from web3dash.coingecko import MarketDataError
from web3dash.db import get_database
from web3dash.explorer import ExplorerError, NATIVE_SYMBOLS
from web3dash.portfolio import PriceQuote, calculate_metrics
from web3dash.scoring import recompute_project_scores, classify_trending_category, trending_rank_score
from web3dash.user_data_store import load_portfolios, save_portfolios
from web3dash.whales import get_whale_store


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def recompute_scores() -> int:
    """Recompute trending/hype/social scores of every active project."""
    catalog = get_catalog()
    count = 0
    for project in catalog.projects:
        if not project.is_active:
            continue
        recompute_project_scores(project)
        count += 1
    catalog.save()
    return count


def update_market_data(limit: int = 100) -> dict:
    """
    Refresh market data of active projects, then recompute their scores.

    Raises:
        MarketDataError: the market-data API request failed
    """
    catalog = get_catalog()
    projects = [p for p in catalog.projects if p.is_active][:limit]
    symbols = sorted({p.symbol for p in projects})
    if not symbols:
        print("[Sync] No active projects to update")
        return {"updated": 0, "symbols": 0}

    known_ids = {p.symbol: p.coin_id for p in projects if p.coin_id}
    market = coingecko.fetch_market_data(symbols, known_ids=known_ids)

    updated = 0
    now = _now()
    for project in projects:
        data = market.get(project.symbol)
        if not data:
            continue
        project.coin_id = project.coin_id or data["coin_id"]
        fields = {k: v for k, v in data.items() if k != "coin_id"}
        project.market_data = MarketData(**{**vars(project.market_data), **fields})
        project.last_updated = now
        updated += 1

    scored = recompute_scores()
    print(f"[Sync] Market data updated for {updated}/{len(projects)} projects, {scored} rescored")
    return {"updated": updated, "symbols": len(symbols)}


def sync_trending_coins() -> int:
    """
    Store the upstream trending list with price data and rank scores.

    Raises:
        MarketDataError: the market-data API request failed
    """
    items = coingecko.get_trending()
    if not items:
        print("[Sync] Upstream trending list is empty")
        return 0

    prices = coingecko.get_simple_prices([item["id"] for item in items])
    catalog = get_catalog()
    now = _now()

    for index, item in enumerate(items):
        price_info = prices.get(item["id"], {})
        rank = item.get("market_cap_rank") or 9999
        catalog.upsert_trending_coin(TrendingCoin(
            coin_id=item["id"],
            name=item.get("name", ""),
            symbol=(item.get("symbol") or "").upper(),
            thumb=item.get("thumb", ""),
            market_cap_rank=rank,
            category=classify_trending_category(item.get("name"), item.get("symbol"), item.get("market_cap_rank")),
            price=price_info.get("usd") or 0,
            price_change_24h=price_info.get("usd_24h_change") or 0,
            volume_24h=price_info.get("usd_24h_vol") or 0,
            market_cap=price_info.get("usd_market_cap") or 0,
            trending_score=trending_rank_score(index),
            last_updated=now,
        ))
    catalog.save()
    print(f"[Sync] Stored {len(items)} trending coins")
    return len(items)


def native_prices() -> dict[str, float]:
    """USD price per chain of its native coin; chains without a quote are absent."""
    quotes = coingecko.get_prices_by_symbols(sorted(set(NATIVE_SYMBOLS.values())))
    return {
        chain: quotes[symbol]["price"]
        for chain, symbol in NATIVE_SYMBOLS.items()
        if symbol in quotes
    }


def sync_whale_wallets() -> int:
    """Refresh balance and transactions of tracked whale wallets."""
    store = get_whale_store()
    wallets = [w for w in store.wallets if w.is_tracked]
    if not wallets:
        return 0

    try:
        prices = native_prices()
    except MarketDataError as e:
        print(f"[Sync] Native coin prices unavailable, valuing whales at 0: {e}")
        prices = {}

    refreshed = 0
    for wallet in wallets:
        try:
            store.refresh_whale(wallet, prices.get(wallet.chain, 0.0))
            refreshed += 1
        except ExplorerError as e:
            print(f"[Sync] Could not refresh whale {wallet.address}: {e}")
    return refreshed


def update_portfolio_values() -> int:
    """Revalue every user's portfolios with fresh prices."""
    user_ids = [user.id for user in get_database().get_all_users()]
    symbols = sorted({
        symbol
        for user_id in user_ids
        for portfolio in load_portfolios(user_id)
        for symbol in portfolio.symbols()
    })
    if not symbols:
        return 0

    quotes = {
        symbol: PriceQuote(price=q["price"], change_24h=q["change_24h"])
        for symbol, q in coingecko.get_prices_by_symbols(symbols).items()
    }

    # Reload after the quote fetch so edits made meanwhile are kept
    count = 0
    for user_id in user_ids:
        portfolios = load_portfolios(user_id)
        if not portfolios:
            continue
        for portfolio in portfolios:
            calculate_metrics(portfolio, quotes)
            count += 1
        save_portfolios(user_id, portfolios)
    print(f"[Sync] Revalued {count} portfolios")
    return count


def run_full_sync() -> dict:
    """Run every sync step; a failing step is logged and does not stop the rest."""
    results = {
        "marketData": False,
        "trending": False,
        "whales": False,
        "portfolios": False,
        "alerts": False,
        "timestamp": _now(),
    }
    steps = (
        ("marketData", update_market_data),
        ("trending", sync_trending_coins),
        ("whales", sync_whale_wallets),
        ("portfolios", update_portfolio_values),
        ("alerts", evaluate_alerts),
    )
    for key, step in steps:
        try:
            step()
            results[key] = True
        except Exception as e:
            print(f"[Sync] Step {key} failed: {e}")
    return results


def run_scheduler() -> None:
    """Background thread running run_full_sync every AUTO_SYNC_INTERVAL_MINUTES."""
    interval = config.AUTO_SYNC_INTERVAL_MINUTES * 60
    print(f"[Scheduler] Starting scheduler thread (full sync every {config.AUTO_SYNC_INTERVAL_MINUTES} min)")

    while True:
        try:
            print(f"[Scheduler] Triggering full sync at {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S')} UTC")
            results = run_full_sync()
            print(f"[Scheduler] Sync finished: {results}")
            time.sleep(interval)
        except Exception as e:
            print(f"[Scheduler] Error in scheduler loop: {e}")
            time.sleep(60)
