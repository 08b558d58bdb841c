from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel

from web3dash import config
from web3dash.auth import (
    create_jwt_token,
    create_verification_code,
    get_current_user,
    get_or_create_user_from_google,
    is_admin,
    verify_code,
    verify_google_token,
)
from web3dash.db import EMAIL_RE, USERNAME_RE, WALLET_RE, Database, User, get_db
from web3dash.rate_limit import auth_limiter, rate_limited
from web3dash.user_data_store import log_activity

router = APIRouter()

TOKEN_COOKIE = "token"


def build_auth_user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "name": user.name,
        "avatar": user.avatar,
        "wallet_address": user.wallet_address,
        "registration_method": user.registration_method,
        "subscription": user.subscription,
        "is_verified": user.is_verified,
        "is_admin": is_admin(user),
        "created_at": user.created_at,
        "last_login": user.last_login,
    }


def _login_response(response: Response, user: User) -> dict:
    token = create_jwt_token(user)
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        httponly=True,
        samesite="lax",
        max_age=config.JWT_EXPIRATION_DAYS * 24 * 60 * 60,
    )
    log_activity(user.id, "login", f"Signed in via {user.registration_method}")
    return {
        "token": token,
        "user": build_auth_user_payload(user),
    }


class RequestCodeRequest(BaseModel):
    """Request body for /api/auth/request-code."""

    email: str


class VerifyCodeRequest(BaseModel):
    """Request body for /api/auth/verify-code."""

    email: str
    code: str
    username: Optional[str] = None
    invite_code: Optional[str] = None


class GoogleAuthRequest(BaseModel):
    """Request body for /api/auth/google."""

    token: str
    invite_code: Optional[str] = None


class ValidateInviteRequest(BaseModel):
    code: str


class UpdateUserRequest(BaseModel):
    name: Optional[str] = None
    username: Optional[str] = None
    avatar: Optional[str] = None
    wallet_address: Optional[str] = None


@router.get("/api/auth/config")
async def auth_config():
    """Return public auth config for frontend."""
    return {
        "google_client_id": config.GOOGLE_CLIENT_ID or "",
        "invite_only": config.INVITE_ONLY,
    }


@router.post("/api/auth/request-code", dependencies=[Depends(rate_limited(auth_limiter))])
async def request_code(body: RequestCodeRequest, db: Database = Depends(get_db)):
    """Send verification code to email."""
    email = body.email.lower().strip()
    if not EMAIL_RE.match(email):
        raise HTTPException(status_code=400, detail="Please provide a valid email address")

    try:
        create_verification_code(db, email)
    except Exception as e:
        print(f"[Auth] Error sending code: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e

    return {
        "status": "sent",
        "email": email,
        "is_new_user": db.get_user_by_email(email) is None,
    }


@router.post("/api/auth/verify-code", dependencies=[Depends(rate_limited(auth_limiter))])
async def verify_code_endpoint(
    body: VerifyCodeRequest,
    response: Response,
    db: Database = Depends(get_db),
):
    """Verify code (registering new users) and return JWT token."""
    email = body.email.lower().strip()
    user = verify_code(db, email, body.code.strip(), username=body.username, invite_code=body.invite_code)

    if not user:
        raise HTTPException(status_code=401, detail="Invalid or expired code")

    return _login_response(response, user)


@router.post("/api/auth/google", dependencies=[Depends(rate_limited(auth_limiter))])
async def google_auth(body: GoogleAuthRequest, response: Response, db: Database = Depends(get_db)):
    """Authenticate with Google OAuth token."""
    google_info = verify_google_token(body.token)

    if not google_info:
        raise HTTPException(status_code=401, detail="Invalid Google token")

    user = get_or_create_user_from_google(db, google_info, invite_code=body.invite_code)
    return _login_response(response, user)


@router.post("/api/auth/validate-invite")
async def validate_invite(body: ValidateInviteRequest, db: Database = Depends(get_db)):
    """Check an invite code without consuming it."""
    valid, reason = db.invite_code_status(body.code)
    return {"valid": valid, "message": reason or "Invite code is valid"}


@router.get("/api/auth/me")
async def get_me(current_user: User = Depends(get_current_user)):
    """Get current user info."""
    return build_auth_user_payload(current_user)


@router.post("/api/auth/logout")
async def logout(response: Response, current_user: User = Depends(get_current_user)):
    log_activity(current_user.id, "logout", "Signed out")
    response.delete_cookie(TOKEN_COOKIE)
    return {"status": "logged_out"}


@router.put("/api/user/update")
async def update_user(
    body: UpdateUserRequest,
    current_user: User = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """Update profile fields of the current user."""
    changes = body.model_dump(exclude_none=True)

    if "name" in changes:
        changes["name"] = changes["name"].strip()
        if len(changes["name"]) > 50:
            raise HTTPException(status_code=400, detail="Name cannot exceed 50 characters")

    if "username" in changes:
        username = changes["username"].strip()
        if not USERNAME_RE.match(username):
            raise HTTPException(
                status_code=400,
                detail="Username must be 3-30 characters: letters, numbers, underscores, hyphens",
            )
        existing = db.get_user_by_username(username)
        if existing and existing.id != current_user.id:
            raise HTTPException(status_code=409, detail="Username is already taken")
        changes["username"] = username

    if "wallet_address" in changes:
        wallet = changes["wallet_address"].strip().lower()
        if not WALLET_RE.match(wallet):
            raise HTTPException(status_code=400, detail="Invalid wallet address")
        existing = db.get_user_by_wallet(wallet)
        if existing and existing.id != current_user.id:
            raise HTTPException(status_code=409, detail="Wallet address is already linked to another account")
        changes["wallet_address"] = wallet

    if not changes:
        raise HTTPException(status_code=400, detail="No changes provided")

    user = db.update_user_profile(current_user, **changes)
    log_activity(user.id, "settings_update", "Profile updated", metadata={"fields": sorted(changes)})
    return build_auth_user_payload(user)
