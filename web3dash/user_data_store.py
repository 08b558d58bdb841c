import json
import math
import secrets
import time
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from pathlib import Path

from web3dash import config
from web3dash.portfolio import Portfolio

ACTIVITY_TYPES = (
    "login",
    "logout",
    "portfolio_update",
    "project_add",
    "project_remove",
    "watchlist_add",
    "watchlist_remove",
    "transaction",
    "wallet_connect",
    "settings_update",
    "whale_track",
    "alert_create",
    "alert_trigger",
)
ACTIVITY_STATUSES = ("success", "failed", "pending")
MAX_ACTIVITY_DESCRIPTION = 500
MAX_STORED_ACTIVITIES = 1000


def get_user_data_dir(user_id: int) -> Path:
    """Get user-specific data directory."""
    user_dir = config.DATA_DIR / "users" / str(user_id)
    user_dir.mkdir(parents=True, exist_ok=True)
    return user_dir


def new_record_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(3)}"


def _load_list(user_id: int, filename: str) -> list:
    path = get_user_data_dir(user_id) / filename
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
                return data if isinstance(data, list) else []
        except Exception as e:
            print(f"[DB] Error reading {path}: {e}")
            return []
    return []


def _save_list(user_id: int, filename: str, items: list) -> None:
    path = get_user_data_dir(user_id) / filename
    with open(path, "w", encoding="utf-8") as f:
        json.dump(items, f, indent=2, ensure_ascii=False)


def delete_user_data(user_id: int) -> None:
    """Remove all per-user files (used when an account is deleted)."""
    user_dir = config.DATA_DIR / "users" / str(user_id)
    if not user_dir.exists():
        return
    for child in user_dir.iterdir():
        if child.is_file():
            child.unlink()
    user_dir.rmdir()


# ── Portfolios ────────────────────────────────────────────────────────────

def load_portfolios(user_id: int) -> list[Portfolio]:
    """Load user's portfolios."""
    return [Portfolio.from_dict(p) for p in _load_list(user_id, "portfolios.json")]


def save_portfolios(user_id: int, portfolios: list[Portfolio]) -> None:
    """Save user's portfolios."""
    _save_list(user_id, "portfolios.json", [asdict(p) for p in portfolios])


# ── Watchlist ─────────────────────────────────────────────────────────────

def load_watchlist(user_id: int) -> list:
    """Load watchlist entries (newest first)."""
    return _load_list(user_id, "watchlist.json")


def save_watchlist(user_id: int, items: list) -> None:
    _save_list(user_id, "watchlist.json", items)


# ── Alerts ────────────────────────────────────────────────────────────────

def load_alerts(user_id: int) -> list:
    return _load_list(user_id, "alerts.json")


def save_alerts(user_id: int, alerts: list) -> None:
    _save_list(user_id, "alerts.json", alerts)


# ── Tracked wallets ───────────────────────────────────────────────────────

def load_tracked_wallets(user_id: int) -> list:
    return _load_list(user_id, "tracked_wallets.json")


def save_tracked_wallets(user_id: int, wallets: list) -> None:
    _save_list(user_id, "tracked_wallets.json", wallets)


# ── Activities ────────────────────────────────────────────────────────────

def load_activities(user_id: int) -> list:
    """Load activity log (newest first)."""
    return _load_list(user_id, "activities.json")


def save_activities(user_id: int, activities: list) -> None:
    _save_list(user_id, "activities.json", activities[:MAX_STORED_ACTIVITIES])


def log_activity(
    user_id: int,
    activity_type: str,
    description: str,
    metadata: dict | None = None,
    status: str = "success",
) -> dict:
    """
    Append an entry to the user's activity log.

    Raises:
        ValueError: unknown activity type or status
    """
    if activity_type not in ACTIVITY_TYPES:
        raise ValueError(f"Invalid activity type: {activity_type}")
    if status not in ACTIVITY_STATUSES:
        raise ValueError("Status must be success, failed, or pending")

    activity = {
        "id": new_record_id("act"),
        "type": activity_type,
        "description": description[:MAX_ACTIVITY_DESCRIPTION],
        "metadata": metadata or {},
        "status": status,
        "createdAt": datetime.now(timezone.utc).isoformat(),
    }
    activities = load_activities(user_id)
    activities.insert(0, activity)
    save_activities(user_id, activities)
    return activity


def get_user_activities(user_id: int, limit: int = 50, page: int = 1, activity_type: str | None = None) -> dict:
    """Paginated activity log, optionally filtered by type."""
    limit = max(1, limit)
    page = max(1, page)
    activities = load_activities(user_id)
    if activity_type:
        activities = [a for a in activities if a.get("type") == activity_type]

    total = len(activities)
    skip = (page - 1) * limit
    return {
        "activities": activities[skip:skip + limit],
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit),
        "hasNext": page * limit < total,
        "hasPrev": page > 1,
    }


def get_activity_stats(user_id: int, days: int = 30) -> dict:
    """Count activities per type within the last `days` days."""
    start = datetime.now(timezone.utc) - timedelta(days=days)
    grouped: dict[str, dict] = {}
    total = 0

    for activity in load_activities(user_id):
        created = datetime.fromisoformat(activity["createdAt"])
        if created < start:
            continue
        total += 1
        entry = grouped.setdefault(activity["type"], {"type": activity["type"], "count": 0, "lastActivity": None})
        entry["count"] += 1
        if entry["lastActivity"] is None or activity["createdAt"] > entry["lastActivity"]:
            entry["lastActivity"] = activity["createdAt"]

    stats = sorted(grouped.values(), key=lambda s: s["count"], reverse=True)
    return {"stats": stats, "totalActivities": total, "period": days}
