"""
Authentication logic.

Features:
- Passwordless e-mail verification codes
- Google OAuth token verification
- Invite-code gated registration
- JWT token creation and validation
- FastAPI dependencies for protected, admin and cron endpoints
"""

import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict

import jwt
from fastapi import HTTPException, Depends, Header, Cookie
from google.oauth2 import id_token
from google.auth.transport import requests as google_requests

from web3dash import config
from web3dash.db import get_db, User, Database, USERNAME_RE
from web3dash.email_service import send_verification_code

CODE_EXPIRATION_MINUTES = 10


def generate_verification_code() -> str:
    """Generate a random 6-digit verification code."""
    return str(secrets.randbelow(1000000)).zfill(6)


def create_verification_code(db: Database, email: str) -> str:
    """
    Create and send verification code for email.

    Args:
        db: Database instance
        email: User email address

    Returns:
        Generated verification code (6 digits)
    """
    code = generate_verification_code()
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=CODE_EXPIRATION_MINUTES)

    # Invalidate all previous unused codes for this email
    db.invalidate_codes_for_email(email)
    db.create_verification_code(email, code, expires_at)

    send_verification_code(email, code)

    return code


def derive_username(db: Database, email: str) -> str:
    """Build a unique username from the local part of an e-mail address."""
    base = re.sub(r"[^a-zA-Z0-9_-]", "", email.split("@")[0])[:26]
    if len(base) < 3:
        base = f"{base}user"

    candidate = base
    suffix = 1
    while db.get_user_by_username(candidate):
        suffix += 1
        candidate = f"{base}{suffix}"
    return candidate


def register_user(
    db: Database,
    email: str,
    username: Optional[str] = None,
    invite_code: Optional[str] = None,
    registration_method: str = "email",
    name: str = "",
) -> User:
    """
    Create a new account, enforcing invite codes and username rules.

    Raises:
        HTTPException: 400 on invalid invite code or username, 409 if taken
    """
    if config.INVITE_ONLY:
        if not invite_code:
            raise HTTPException(status_code=400, detail="Invite code is required for registration")
        valid, reason = db.invite_code_status(invite_code)
        if not valid:
            raise HTTPException(status_code=400, detail=reason)

    if username:
        username = username.strip()
        if not USERNAME_RE.match(username):
            raise HTTPException(
                status_code=400,
                detail="Username must be 3-30 characters: letters, numbers, underscores, hyphens",
            )
        if db.get_user_by_username(username):
            raise HTTPException(status_code=409, detail="Username is already taken")
    else:
        username = derive_username(db, email)

    print(f"[Auth] Creating new user: {email} ({username})")
    user = db.create_user(email, username, registration_method=registration_method, name=name)

    if config.INVITE_ONLY and invite_code:
        db.use_invite_code(invite_code, user.id)

    return user


def verify_code(
    db: Database,
    email: str,
    code: str,
    username: Optional[str] = None,
    invite_code: Optional[str] = None,
) -> Optional[User]:
    """
    Verify code and return/create user.

    Args:
        db: Database instance
        email: User email address
        code: Verification code to verify
        username: Desired username for a new account
        invite_code: Invite code for a new account

    Returns:
        User object if code is valid, None otherwise
    """
    vcode = db.get_valid_code(email, code)
    if not vcode:
        return None

    user = db.get_user_by_email(email)
    if not user:
        # Registration errors leave the code usable for a retry
        user = register_user(db, email, username=username, invite_code=invite_code)

    db.mark_code_used(vcode)
    db.update_user_login(user)

    return user


def create_jwt_token(user: User) -> str:
    """
    Create JWT token for user.

    Args:
        user: Authenticated user

    Returns:
        JWT token string
    """
    payload = {
        "user_id": user.id,
        "email": user.email,
        "username": user.username,
        "subscription": user.subscription,
        "exp": datetime.now(timezone.utc) + timedelta(days=config.JWT_EXPIRATION_DAYS)
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_jwt_token(token: str) -> Optional[dict]:
    """
    Decode and validate JWT token.

    Returns:
        Decoded payload dict if valid, None otherwise
    """
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        print("[Auth] Token expired")
        return None
    except jwt.InvalidTokenError as e:
        print(f"[Auth] Invalid token: {e}")
        return None


def _extract_token(authorization: Optional[str], cookie_token: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):]
    return cookie_token or None


def _resolve_user(token: Optional[str], db: Database) -> Optional[User]:
    if not token:
        return None
    payload = decode_jwt_token(token)
    if not payload:
        return None
    return db.get_user_by_id(payload.get("user_id"))


async def get_current_user(
    authorization: Optional[str] = Header(None),
    token: Optional[str] = Cookie(None),
    db: Database = Depends(get_db)
) -> User:
    """
    FastAPI dependency: extract and validate current user from JWT.

    The token is read from the Authorization header first, then from the
    `token` cookie.

    Raises:
        HTTPException: If token is missing, invalid, or expired
    """
    raw_token = _extract_token(authorization, token)
    if not raw_token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    payload = decode_jwt_token(raw_token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = db.get_user_by_id(payload.get("user_id"))
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return user


async def get_optional_user(
    authorization: Optional[str] = Header(None),
    token: Optional[str] = Cookie(None),
    db: Database = Depends(get_db)
) -> Optional[User]:
    """Like get_current_user, but anonymous requests get None instead of 401."""
    return _resolve_user(_extract_token(authorization, token), db)


def is_admin(user: User) -> bool:
    return user.email.lower() in config.ADMIN_EMAILS


async def get_admin_user(current_user: User = Depends(get_current_user)) -> User:
    """FastAPI dependency: current user must be listed in ADMIN_EMAILS."""
    if not is_admin(current_user):
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user


async def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """FastAPI dependency for scheduled-job endpoints (Bearer CRON_SECRET)."""
    if not config.CRON_SECRET:
        print("[Auth] Cron call rejected: CRON_SECRET is not configured")
        raise HTTPException(status_code=401, detail="Unauthorized")
    expected = f"Bearer {config.CRON_SECRET}"
    if not secrets.compare_digest((authorization or "").encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")


def verify_google_token(token: str) -> Optional[Dict]:
    """
    Verify Google OAuth ID token.

    Returns:
        User info dict with 'email', 'name', 'picture' if valid, None otherwise
    """
    if not config.GOOGLE_CLIENT_ID:
        print("[Auth] Google OAuth not configured (missing GOOGLE_CLIENT_ID)")
        return None

    try:
        idinfo = id_token.verify_oauth2_token(
            token,
            google_requests.Request(),
            config.GOOGLE_CLIENT_ID
        )

        if idinfo['iss'] not in ['accounts.google.com', 'https://accounts.google.com']:
            print("[Auth] Invalid Google token issuer")
            return None

        return {
            'email': idinfo['email'],
            'name': idinfo.get('name', ''),
            'picture': idinfo.get('picture', '')
        }

    except ValueError as e:
        print(f"[Auth] Invalid Google token: {e}")
        return None


def get_or_create_user_from_google(
    db: Database,
    google_info: Dict,
    invite_code: Optional[str] = None,
) -> User:
    """
    Get or create user from Google OAuth info.

    Args:
        db: Database instance
        google_info: Dict with 'email', 'name', 'picture' from Google
        invite_code: Invite code, required for new accounts in invite-only mode
    """
    email = google_info['email'].lower().strip()

    user = db.get_user_by_email(email)
    if not user:
        user = register_user(
            db,
            email,
            invite_code=invite_code,
            registration_method="google",
            name=google_info.get('name', ''),
        )
        if google_info.get('picture'):
            db.update_user_profile(user, avatar=google_info['picture'])

    db.update_user_login(user)

    return user
