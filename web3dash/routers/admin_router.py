from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from web3dash.auth import get_admin_user
from web3dash.catalog import PROJECT_CATEGORIES, get_catalog
from web3dash.db import SUBSCRIPTIONS, Database, User, get_db
from web3dash.routers.auth_router import build_auth_user_payload
from web3dash.user_data_store import delete_user_data
from web3dash.whales import get_whale_store

router = APIRouter(prefix="/api/admin")

MAX_INVITE_BATCH = 50


class AdminUserUpdate(BaseModel):
    subscription: Optional[str] = None
    is_verified: Optional[bool] = None
    name: Optional[str] = None


class CreateInviteRequest(BaseModel):
    count: int = 1
    expires_in_days: Optional[int] = None


class AdminProjectUpdate(BaseModel):
    is_active: Optional[bool] = None
    is_public: Optional[bool] = None
    category: Optional[str] = None


@router.get("/users")
def list_users(admin: User = Depends(get_admin_user), db: Database = Depends(get_db)):
    return [build_auth_user_payload(u) for u in db.get_all_users()]


@router.put("/users/{user_id}")
def update_user(
    user_id: int,
    body: AdminUserUpdate,
    admin: User = Depends(get_admin_user),
    db: Database = Depends(get_db),
):
    user = db.get_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if body.subscription is not None and body.subscription not in SUBSCRIPTIONS:
        raise HTTPException(status_code=400, detail=f"Subscription must be one of: {', '.join(SUBSCRIPTIONS)}")

    db.update_user_profile(user, **body.model_dump(exclude_none=True))
    return build_auth_user_payload(user)


@router.delete("/users/{user_id}")
def delete_user(user_id: int, admin: User = Depends(get_admin_user), db: Database = Depends(get_db)):
    """Delete an account with all its per-user data."""
    if user_id == admin.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    if not db.delete_user(user_id):
        raise HTTPException(status_code=404, detail="User not found")

    delete_user_data(user_id)
    get_whale_store().forget_user(user_id)
    print(f"[DB] Admin {admin.email} deleted user {user_id}")
    return {"status": "deleted"}


@router.get("/invite-codes")
def list_invite_codes(admin: User = Depends(get_admin_user), db: Database = Depends(get_db)):
    return [asdict(ic) for ic in db.list_invite_codes()]


@router.post("/invite-codes", status_code=201)
def create_invite_codes(
    body: CreateInviteRequest,
    admin: User = Depends(get_admin_user),
    db: Database = Depends(get_db),
):
    if not 1 <= body.count <= MAX_INVITE_BATCH:
        raise HTTPException(status_code=400, detail=f"Count must be between 1 and {MAX_INVITE_BATCH}")
    if body.expires_in_days is not None and body.expires_in_days < 1:
        raise HTTPException(status_code=400, detail="Expiry must be at least one day")

    expires_at = None
    if body.expires_in_days:
        expires_at = datetime.now(timezone.utc) + timedelta(days=body.expires_in_days)
    codes = [db.create_invite_code(admin.id, expires_at=expires_at) for _ in range(body.count)]
    return [asdict(ic) for ic in codes]


@router.delete("/invite-codes/{invite_id}")
def delete_invite_code(invite_id: int, admin: User = Depends(get_admin_user), db: Database = Depends(get_db)):
    if not db.delete_invite_code(invite_id):
        raise HTTPException(status_code=404, detail="Invite code not found")
    return {"status": "deleted"}


@router.get("/projects")
def list_all_projects(admin: User = Depends(get_admin_user)):
    """Every project, including private and deactivated ones."""
    catalog = get_catalog()
    return [asdict(p) for p in sorted(catalog.projects, key=lambda p: p.created_at, reverse=True)]


@router.put("/projects/{project_id}")
def update_project(project_id: str, body: AdminProjectUpdate, admin: User = Depends(get_admin_user)):
    catalog = get_catalog()
    project = catalog.get_project(project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    if body.category is not None and body.category not in PROJECT_CATEGORIES:
        raise HTTPException(status_code=400, detail=f"Category must be one of: {', '.join(PROJECT_CATEGORIES)}")

    catalog.update_project(project, **body.model_dump(exclude_none=True))
    return asdict(project)


@router.delete("/projects/{project_id}")
def delete_project(project_id: str, admin: User = Depends(get_admin_user), db: Database = Depends(get_db)):
    if not get_catalog().delete_project(project_id):
        raise HTTPException(status_code=404, detail="Project not found")
    db.forget_project(project_id)
    return {"status": "deleted"}
