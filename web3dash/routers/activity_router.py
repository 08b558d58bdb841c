from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from web3dash.auth import get_current_user
from web3dash.db import User
from web3dash.user_data_store import ACTIVITY_TYPES, get_activity_stats, get_user_activities

router = APIRouter()


@router.get("/api/user/activities")
def list_activities(
    limit: int = 50,
    page: int = 1,
    type: Optional[str] = None,
    current_user: User = Depends(get_current_user),
):
    """Paginated activity log of the current user."""
    if type and type not in ACTIVITY_TYPES:
        raise HTTPException(status_code=400, detail=f"Invalid activity type: {type}")
    return get_user_activities(current_user.id, limit=min(limit, 100), page=page, activity_type=type)


@router.get("/api/user/activities/stats")
def activity_stats(days: int = 30, current_user: User = Depends(get_current_user)):
    if days < 1:
        raise HTTPException(status_code=400, detail="Days must be positive")
    return get_activity_stats(current_user.id, days=days)
