from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from web3dash.alerts import NOTIFICATION_CHANNELS, OPERATORS, build_alert
from web3dash.auth import get_current_user
from web3dash.catalog import get_catalog
from web3dash.db import User
from web3dash.user_data_store import load_alerts, log_activity, save_alerts
from web3dash.whales import get_whale_store

router = APIRouter()


class AlertCondition(BaseModel):
    field: Optional[str] = None
    operator: str
    value: float


class CreateAlertRequest(BaseModel):
    type: str
    name: str
    condition: AlertCondition
    project_id: Optional[str] = None
    whale_address: Optional[str] = None
    description: str = ""
    notification_channels: List[str] = ["email"]


class UpdateAlertRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    condition: Optional[AlertCondition] = None
    notification_channels: Optional[List[str]] = None
    is_active: Optional[bool] = None


@router.get("/api/alerts")
def list_alerts(is_active: Optional[bool] = None, current_user: User = Depends(get_current_user)):
    alerts = load_alerts(current_user.id)
    if is_active is not None:
        alerts = [a for a in alerts if a.get("is_active") == is_active]
    return alerts


@router.post("/api/alerts", status_code=201)
def create_alert(body: CreateAlertRequest, current_user: User = Depends(get_current_user)):
    try:
        alert = build_alert(
            body.type,
            body.name,
            body.condition.model_dump(),
            project_id=body.project_id,
            whale_address=body.whale_address,
            description=body.description,
            notification_channels=body.notification_channels,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    if alert["project_id"] and not get_catalog().get_project(alert["project_id"]):
        raise HTTPException(status_code=404, detail="Project not found")
    if alert["whale_address"] and not get_whale_store().get_whale(alert["whale_address"]):
        raise HTTPException(status_code=404, detail="Whale wallet not found")

    alerts = load_alerts(current_user.id)
    alerts.insert(0, alert)
    save_alerts(current_user.id, alerts)
    log_activity(current_user.id, "alert_create", f"Created {alert['type']} alert \"{alert['name']}\"",
                 metadata={"alertId": alert["id"]})
    return alert


@router.put("/api/alerts/{alert_id}")
def update_alert(alert_id: str, body: UpdateAlertRequest, current_user: User = Depends(get_current_user)):
    alerts = load_alerts(current_user.id)
    alert = next((a for a in alerts if a["id"] == alert_id), None)
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")

    if body.name is not None:
        if not body.name.strip():
            raise HTTPException(status_code=400, detail="Alert name is required")
        alert["name"] = body.name.strip()
    if body.description is not None:
        alert["description"] = body.description
    if body.condition is not None:
        if body.condition.operator not in OPERATORS:
            raise HTTPException(status_code=400, detail=f"Operator must be one of: {', '.join(OPERATORS)}")
        alert["condition"] = {
            "field": body.condition.field or alert["condition"]["field"],
            "operator": body.condition.operator,
            "value": body.condition.value,
        }
    if body.notification_channels is not None:
        if any(c not in NOTIFICATION_CHANNELS for c in body.notification_channels):
            raise HTTPException(status_code=400, detail="Unknown notification channel")
        alert["notification_channels"] = body.notification_channels
    if body.is_active is not None:
        alert["is_active"] = body.is_active

    alert["updated_at"] = datetime.now(timezone.utc).isoformat()
    save_alerts(current_user.id, alerts)
    return alert


@router.delete("/api/alerts/{alert_id}")
def delete_alert(alert_id: str, current_user: User = Depends(get_current_user)):
    alerts = load_alerts(current_user.id)
    remaining = [a for a in alerts if a["id"] != alert_id]
    if len(remaining) == len(alerts):
        raise HTTPException(status_code=404, detail="Alert not found")
    save_alerts(current_user.id, remaining)
    return {"status": "deleted"}
