import sys
import threading

# line_buffering=True ensures logs appear immediately (important for background threads)
if hasattr(sys.stdout, "reconfigure"):
    sys.stdout.reconfigure(encoding="utf-8", errors="replace", line_buffering=True)
    sys.stderr.reconfigure(encoding="utf-8", errors="replace", line_buffering=True)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from web3dash import config
from web3dash.db import init_db
from web3dash.routers.activity_router import router as activity_router
from web3dash.routers.admin_router import router as admin_router
from web3dash.routers.alerts_router import router as alerts_router
from web3dash.routers.auth_router import router as auth_router
from web3dash.routers.market_router import router as market_router
from web3dash.routers.portfolios_router import router as portfolios_router
from web3dash.routers.projects_router import router as projects_router
from web3dash.routers.system_router import create_system_router
from web3dash.routers.watchlist_router import router as watchlist_router
from web3dash.routers.whales_router import router as whales_router
from web3dash.sync import run_scheduler
from web3dash.whales import get_whale_store

app = FastAPI(title="Web3 Dashboard API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)


@app.on_event("startup")
def startup_event():
    """Initialize storage and start the sync scheduler on startup."""
    init_db()
    get_whale_store().seed_known_whales()
    print(f"[Init] Data directory: {config.DATA_DIR}")

    if config.AUTO_SYNC_ENABLED:
        scheduler_thread = threading.Thread(target=run_scheduler, daemon=True)
        scheduler_thread.start()
        print(f"[Scheduler] Auto-sync enabled: every {config.AUTO_SYNC_INTERVAL_MINUTES} min")
    else:
        print("[Scheduler] Auto-sync disabled (AUTO_SYNC_ENABLED=false)")


app.include_router(auth_router)
app.include_router(projects_router)
app.include_router(portfolios_router)
app.include_router(watchlist_router)
app.include_router(alerts_router)
app.include_router(activity_router)
app.include_router(whales_router)
app.include_router(market_router)
app.include_router(admin_router)
app.include_router(create_system_router(
    auto_sync_enabled=config.AUTO_SYNC_ENABLED,
    auto_sync_interval_minutes=config.AUTO_SYNC_INTERVAL_MINUTES,
    invite_only=config.INVITE_ONLY,
))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("web3dash.server:app", host="0.0.0.0", port=8000)
