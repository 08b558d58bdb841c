from dataclasses import asdict
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException

from web3dash import sync
from web3dash.alerts import count_active_alerts
from web3dash.auth import get_current_user, verify_cron_secret
from web3dash.catalog import get_catalog
from web3dash.coingecko import MarketDataError
from web3dash.db import Database, User, get_db
from web3dash.user_data_store import load_portfolios, load_tracked_wallets, load_watchlist
from web3dash.whales import get_whale_store

LANDING_LIMIT = 5


def create_system_router(
    *,
    auto_sync_enabled: bool,
    auto_sync_interval_minutes: int,
    invite_only: bool,
) -> APIRouter:
    router = APIRouter()

    @router.get("/api/health")
    def health():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    @router.get("/api/settings")
    def get_settings():
        """Get application settings."""
        return {
            "auto_sync_enabled": auto_sync_enabled,
            "auto_sync_interval_minutes": auto_sync_interval_minutes,
            "invite_only": invite_only,
        }

    @router.get("/api/stats")
    def get_user_stats(current_user: User = Depends(get_current_user)):
        """Counts for the current user's dashboard header."""
        portfolios = load_portfolios(current_user.id)
        return {
            "portfolios": len(portfolios),
            "assets": sum(len(p.assets) for p in portfolios),
            "totalValue": sum(p.total_value for p in portfolios),
            "trackedProjects": len(current_user.tracked_projects),
            "watchlist": len(load_watchlist(current_user.id)),
            "activeAlerts": count_active_alerts(current_user.id),
            "trackedWallets": len(load_tracked_wallets(current_user.id)),
            "trackedWhales": len(get_whale_store().tracked_by(current_user.id)),
        }

    @router.get("/api/landing-data")
    def landing_data(db: Database = Depends(get_db)):
        """Public numbers and highlights for the landing page."""
        catalog = get_catalog()
        projects = catalog.list_projects()
        top_trending = sorted(projects, key=lambda p: p.metrics.trending_score, reverse=True)
        return {
            "stats": {
                "users": len(db.get_all_users()),
                "projects": len(projects),
                "whaleWallets": len(get_whale_store().wallets),
                "trendingCoins": len(catalog.trending),
            },
            "topProjects": [
                {
                    "id": p.id,
                    "name": p.name,
                    "symbol": p.symbol,
                    "logo": p.logo,
                    "price": p.market_data.price,
                    "change_24h": p.market_data.change_24h,
                    "market_cap": p.market_data.market_cap,
                }
                for p in projects[:LANDING_LIMIT]
            ],
            "trendingProjects": [
                {"id": p.id, "name": p.name, "symbol": p.symbol, "trending_score": p.metrics.trending_score}
                for p in top_trending[:LANDING_LIMIT]
            ],
            "trendingCoins": [asdict(c) for c in catalog.list_trending_coins(limit=LANDING_LIMIT)],
        }

    # Scheduled jobs (Authorization: Bearer CRON_SECRET)

    @router.get("/api/cron", dependencies=[Depends(verify_cron_secret)])
    def cron_full_sync():
        return {"success": True, "message": "Cron job completed", "results": sync.run_full_sync()}

    @router.get("/api/cron/update-market-data", dependencies=[Depends(verify_cron_secret)])
    def cron_update_market_data(limit: int = 100):
        try:
            result = sync.update_market_data(limit=limit)
        except MarketDataError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e
        triggered = sync.evaluate_alerts()
        return {"success": True, **result, "alertsTriggered": triggered}

    @router.get("/api/cron/sync-trending", dependencies=[Depends(verify_cron_secret)])
    def cron_sync_trending():
        return _sync_trending()

    @router.post("/api/trending", dependencies=[Depends(verify_cron_secret)])
    def sync_trending():
        return _sync_trending()

    def _sync_trending():
        try:
            count = sync.sync_trending_coins()
        except MarketDataError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e
        return {"success": True, "message": "Trending data synced successfully", "count": count}

    return router
