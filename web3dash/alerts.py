"""
Price, volume, whale and social alerts.

Alerts are stored per user (users/<id>/alerts.json) as plain dicts and are
evaluated after each market-data sync.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from web3dash import config
from web3dash.catalog import get_catalog, Project
from web3dash.db import get_database
from web3dash.email_service import send_alert_notification
from web3dash.user_data_store import load_alerts, save_alerts, log_activity, new_record_id
from web3dash.whales import get_whale_store, WhaleWallet

ALERT_TYPES = ("price", "volume", "whale", "social")
OPERATORS = {
    "gt": lambda a, b: a > b,
    "lt": lambda a, b: a < b,
    "eq": lambda a, b: a == b,
    "gte": lambda a, b: a >= b,
    "lte": lambda a, b: a <= b,
}
NOTIFICATION_CHANNELS = ("email", "sms", "push", "telegram")
MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500

# Default condition field per alert type
DEFAULT_FIELDS = {
    "price": "price",
    "volume": "volume_24h",
    "whale": "balance_usd",
    "social": "social_score",
}
PROJECT_METRIC_FIELDS = ("social_score", "trending_score", "hype_score")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def condition_met(condition: dict, observed: Optional[float]) -> bool:
    if observed is None:
        return False
    compare = OPERATORS.get(condition.get("operator"))
    if compare is None:
        return False
    return compare(observed, float(condition.get("value", 0)))


def observed_value(alert: dict, project: Optional[Project] = None, whale: Optional[WhaleWallet] = None) -> Optional[float]:
    """Current value of the alert's condition field, None if unavailable."""
    field_name = alert["condition"].get("field") or DEFAULT_FIELDS[alert["type"]]

    if alert["type"] == "whale":
        if whale is None:
            return None
        if field_name == "large_transactions":
            return float(len(whale.large_transactions()))
        value = getattr(whale, field_name, None)
        return float(value) if isinstance(value, (int, float)) else None

    if project is None:
        return None
    if field_name in PROJECT_METRIC_FIELDS:
        return float(getattr(project.metrics, field_name))
    if field_name in ("views", "watchlist_count", "like_count"):
        return float(getattr(project, field_name))
    value = getattr(project.market_data, field_name, None)
    return float(value) if isinstance(value, (int, float)) else None


def build_alert(
    alert_type: str,
    name: str,
    condition: dict,
    project_id: Optional[str] = None,
    whale_address: Optional[str] = None,
    description: str = "",
    notification_channels: Optional[list] = None,
) -> dict:
    """
    Validate input and build a new alert record.

    Raises:
        ValueError: invalid type, condition, channel or missing target
    """
    if alert_type not in ALERT_TYPES:
        raise ValueError(f"Alert type must be one of: {', '.join(ALERT_TYPES)}")
    if not name or not name.strip():
        raise ValueError("Alert name is required")
    if len(name) > MAX_NAME_LENGTH:
        raise ValueError(f"Alert name cannot exceed {MAX_NAME_LENGTH} characters")
    if len(description or "") > MAX_DESCRIPTION_LENGTH:
        raise ValueError(f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters")

    if condition.get("operator") not in OPERATORS:
        raise ValueError(f"Operator must be one of: {', '.join(OPERATORS)}")
    try:
        value = float(condition.get("value"))
    except (TypeError, ValueError):
        raise ValueError("Condition value must be a number")

    if alert_type == "whale" and not whale_address:
        raise ValueError("Whale alerts need a whale wallet address")
    if alert_type != "whale" and not project_id:
        raise ValueError("Project alerts need a project")

    channels = notification_channels or ["email"]
    for channel in channels:
        if channel not in NOTIFICATION_CHANNELS:
            raise ValueError(f"Unknown notification channel: {channel}")

    now = _now()
    return {
        "id": new_record_id("alert"),
        "type": alert_type,
        "project_id": project_id,
        "whale_address": whale_address.lower() if whale_address else None,
        "name": name.strip(),
        "description": description or "",
        "condition": {
            "field": condition.get("field") or DEFAULT_FIELDS[alert_type],
            "operator": condition["operator"],
            "value": value,
        },
        "notification_channels": channels,
        "is_active": True,
        "last_triggered": None,
        "trigger_count": 0,
        "created_at": now,
        "updated_at": now,
    }


def count_active_alerts(user_id: int) -> int:
    return sum(1 for a in load_alerts(user_id) if a.get("is_active"))


def _in_cooldown(alert: dict, now: datetime) -> bool:
    if not alert.get("last_triggered"):
        return False
    last = datetime.fromisoformat(alert["last_triggered"])
    return now - last < timedelta(minutes=config.ALERT_COOLDOWN_MINUTES)


def trigger_alert(user, alert: dict, observed: float, now: datetime) -> str:
    """Record a trigger on the alert dict and in the activity log. Returns the detail line."""
    alert["trigger_count"] = alert.get("trigger_count", 0) + 1
    alert["last_triggered"] = now.isoformat()
    condition = alert["condition"]
    detail = f"{condition['field']} is {observed:g} ({condition['operator']} {condition['value']:g})"

    log_activity(
        user.id,
        "alert_trigger",
        f"Alert \"{alert['name']}\" triggered: {detail}",
        metadata={"alertId": alert["id"], "observed": observed},
    )
    print(f"[Alerts] Triggered '{alert['name']}' for user {user.id}: {detail}")
    return detail


def evaluate_alerts() -> int:
    """
    Check every active alert of every user against current data.

    Alerts that fired within ALERT_COOLDOWN_MINUTES are skipped.

    Returns:
        Number of alerts triggered
    """
    catalog = get_catalog()
    whales = get_whale_store()
    now = datetime.now(timezone.utc)
    triggered = 0

    for user in get_database().get_all_users():
        alerts = load_alerts(user.id)
        notifications = []
        changed = False
        for alert in alerts:
            if not alert.get("is_active") or _in_cooldown(alert, now):
                continue
            project = catalog.get_project(alert["project_id"]) if alert.get("project_id") else None
            whale = whales.get_whale(alert["whale_address"]) if alert.get("whale_address") else None
            observed = observed_value(alert, project, whale)
            if condition_met(alert["condition"], observed):
                detail = trigger_alert(user, alert, observed, now)
                if "email" in alert.get("notification_channels", []):
                    notifications.append((alert["name"], detail))
                changed = True
                triggered += 1
        if changed:
            save_alerts(user.id, alerts)

        # Mail goes out only after the trigger state is stored
        for name, detail in notifications:
            send_alert_notification(user.email, name, detail)

    if triggered:
        print(f"[Alerts] {triggered} alert(s) triggered")
    return triggered
