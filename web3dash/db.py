"""
Account storage using JSON files.

Holds users, e-mail verification codes and registration invite codes in
data/users.json.
"""

import json
import re
import secrets
import string
import threading
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from web3dash import config

USERNAME_RE = re.compile(r"^[a-zA-Z0-9_-]{3,30}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
WALLET_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")

SUBSCRIPTIONS = ("free", "pro", "enterprise")
INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits

# Thread lock for concurrent access
_db_lock = threading.Lock()


def _db_path() -> Path:
    return config.DATA_DIR / "users.json"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class User:
    """User account (identified by email)."""
    id: int
    email: str
    username: str
    created_at: str
    last_login: Optional[str] = None
    name: str = ""
    avatar: Optional[str] = None
    wallet_address: Optional[str] = None
    registration_method: str = "email"
    subscription: str = "free"
    is_verified: bool = False
    tracked_projects: List[str] = field(default_factory=list)


@dataclass
class VerificationCode:
    """Email verification codes for passwordless authentication."""
    id: int
    email: str
    code: str
    created_at: str
    used: bool
    expires_at: str


@dataclass
class InviteCode:
    """Single-use registration code handed out by admins."""
    id: int
    code: str
    created_by: int
    created_at: str
    is_used: bool = False
    used_by: Optional[int] = None
    used_at: Optional[str] = None
    expires_at: Optional[str] = None

    def is_expired(self) -> bool:
        if not self.expires_at:
            return False
        return datetime.fromisoformat(self.expires_at) < datetime.now(timezone.utc)


def generate_invite_code(length: int = 8) -> str:
    """Generate a random uppercase alphanumeric invite code."""
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


class Database:
    """JSON-based database for users, verification and invite codes."""

    def __init__(self):
        self.users: List[User] = []
        self.verification_codes: List[VerificationCode] = []
        self.invite_codes: List[InviteCode] = []
        self._next_user_id = 1
        self._next_code_id = 1
        self._next_invite_id = 1

    def load(self):
        """Load database from JSON file."""
        db_path = _db_path()
        if not db_path.exists():
            return

        with _db_lock:
            try:
                with open(db_path, 'r', encoding='utf-8') as f:
                    data = json.load(f)

                self.users = [User(**u) for u in data.get('users', [])]
                if self.users:
                    self._next_user_id = max(u.id for u in self.users) + 1

                self.verification_codes = [
                    VerificationCode(**vc) for vc in data.get('verification_codes', [])
                ]
                if self.verification_codes:
                    self._next_code_id = max(vc.id for vc in self.verification_codes) + 1

                self.invite_codes = [InviteCode(**ic) for ic in data.get('invite_codes', [])]
                if self.invite_codes:
                    self._next_invite_id = max(ic.id for ic in self.invite_codes) + 1

            except Exception as e:
                print(f"[DB] Error loading database: {e}")

    def save(self):
        """Save database to JSON file."""
        with _db_lock:
            try:
                db_path = _db_path()
                db_path.parent.mkdir(parents=True, exist_ok=True)

                data = {
                    'users': [asdict(u) for u in self.users],
                    'verification_codes': [asdict(vc) for vc in self.verification_codes],
                    'invite_codes': [asdict(ic) for ic in self.invite_codes],
                }

                with open(db_path, 'w', encoding='utf-8') as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)

            except Exception as e:
                print(f"[DB] Error saving database: {e}")

    # User operations
    def get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by email."""
        for user in self.users:
            if user.email.lower() == email.lower():
                return user
        return None

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        """Get user by ID."""
        for user in self.users:
            if user.id == user_id:
                return user
        return None

    def get_user_by_username(self, username: str) -> Optional[User]:
        """Get user by username (case-insensitive)."""
        for user in self.users:
            if user.username.lower() == username.lower():
                return user
        return None

    def get_user_by_wallet(self, wallet_address: str) -> Optional[User]:
        wallet_lower = wallet_address.lower()
        for user in self.users:
            if user.wallet_address and user.wallet_address.lower() == wallet_lower:
                return user
        return None

    def get_all_users(self) -> List[User]:
        return list(self.users)

    def create_user(self, email: str, username: str, registration_method: str = "email",
                    name: str = "") -> User:
        """Create new user."""
        user = User(
            id=self._next_user_id,
            email=email.lower().strip(),
            username=username,
            created_at=_now(),
            name=name,
            registration_method=registration_method,
            is_verified=True,
        )
        self._next_user_id += 1
        self.users.append(user)
        self.save()
        return user

    def update_user_login(self, user: User):
        """Update user's last login time."""
        user.last_login = _now()
        self.save()

    def update_user_profile(self, user: User, **changes) -> User:
        """Apply profile changes (only known attributes) and persist."""
        for key, value in changes.items():
            if value is not None and hasattr(user, key):
                setattr(user, key, value)
        self.save()
        return user

    def delete_user(self, user_id: int) -> bool:
        """Remove user. Returns False if no such user."""
        user = self.get_user_by_id(user_id)
        if not user:
            return False
        self.users.remove(user)
        self.save()
        return True

    def track_project(self, user: User, project_id: str) -> bool:
        """
        Add project to user's tracked list.

        Returns:
            True if added, False if already tracked
        """
        if project_id in user.tracked_projects:
            return False
        user.tracked_projects.append(project_id)
        self.save()
        return True

    def untrack_project(self, user: User, project_id: str) -> bool:
        if project_id not in user.tracked_projects:
            return False
        user.tracked_projects.remove(project_id)
        self.save()
        return True

    def forget_project(self, project_id: str):
        """Drop a deleted project from every user's tracked list."""
        changed = False
        for user in self.users:
            if project_id in user.tracked_projects:
                user.tracked_projects.remove(project_id)
                changed = True
        if changed:
            self.save()

    # Verification code operations
    def create_verification_code(self, email: str, code: str, expires_at: datetime) -> VerificationCode:
        """Create new verification code."""
        vcode = VerificationCode(
            id=self._next_code_id,
            email=email.lower().strip(),
            code=code,
            created_at=_now(),
            used=False,
            expires_at=expires_at.isoformat()
        )
        self._next_code_id += 1
        self.verification_codes.append(vcode)
        self.save()
        return vcode

    def invalidate_codes_for_email(self, email: str):
        """Mark all unused codes for email as used."""
        changed = False
        for vcode in self.verification_codes:
            if vcode.email.lower() == email.lower() and not vcode.used:
                vcode.used = True
                changed = True
        if changed:
            self.save()

    def get_valid_code(self, email: str, code: str) -> Optional[VerificationCode]:
        """Get valid (unused, not expired) verification code."""
        now = datetime.now(timezone.utc)
        for vcode in self.verification_codes:
            if (vcode.email.lower() == email.lower() and
                vcode.code == code and
                not vcode.used and
                datetime.fromisoformat(vcode.expires_at) > now):
                return vcode
        return None

    def mark_code_used(self, vcode: VerificationCode):
        """Mark verification code as used."""
        vcode.used = True
        self.save()

    def cleanup_old_codes(self, days: int = 7):
        """Remove verification codes older than N days."""
        cutoff = datetime.now(timezone.utc).timestamp() - (days * 86400)
        original_count = len(self.verification_codes)

        self.verification_codes = [
            vc for vc in self.verification_codes
            if datetime.fromisoformat(vc.created_at).timestamp() > cutoff
        ]

        if len(self.verification_codes) < original_count:
            self.save()
            print(f"[DB] Cleaned up {original_count - len(self.verification_codes)} old verification codes")

    # Invite code operations
    def create_invite_code(self, created_by: int, expires_at: Optional[datetime] = None,
                           code: Optional[str] = None) -> InviteCode:
        """Create a new invite code (random unless given)."""
        code = (code or generate_invite_code()).strip().upper()
        while self.get_invite_code(code):
            code = generate_invite_code()

        invite = InviteCode(
            id=self._next_invite_id,
            code=code,
            created_by=created_by,
            created_at=_now(),
            expires_at=expires_at.isoformat() if expires_at else None,
        )
        self._next_invite_id += 1
        self.invite_codes.append(invite)
        self.save()
        return invite

    def get_invite_code(self, code: str) -> Optional[InviteCode]:
        code_upper = code.strip().upper()
        for invite in self.invite_codes:
            if invite.code == code_upper:
                return invite
        return None

    def list_invite_codes(self) -> List[InviteCode]:
        return sorted(self.invite_codes, key=lambda ic: ic.created_at, reverse=True)

    def delete_invite_code(self, invite_id: int) -> bool:
        for invite in self.invite_codes:
            if invite.id == invite_id:
                self.invite_codes.remove(invite)
                self.save()
                return True
        return False

    def invite_code_status(self, code: str) -> Tuple[bool, str]:
        """
        Check whether an invite code can be used.

        Returns:
            (valid, reason) where reason is empty for a valid code
        """
        if not code or not 6 <= len(code.strip()) <= 20:
            return False, "Invalid invite code"
        invite = self.get_invite_code(code)
        if not invite:
            return False, "Invalid invite code"
        if invite.is_used:
            return False, "Invite code has already been used"
        if invite.is_expired():
            return False, "Invite code has expired"
        return True, ""

    def use_invite_code(self, code: str, user_id: int) -> bool:
        """Consume invite code for user. Returns False if code is not usable."""
        valid, _reason = self.invite_code_status(code)
        if not valid:
            return False
        invite = self.get_invite_code(code)
        invite.is_used = True
        invite.used_by = user_id
        invite.used_at = _now()
        self.save()
        return True


# Global database instance
_db_instance: Optional[Database] = None


def get_database() -> Database:
    """Get global database instance (singleton)."""
    global _db_instance
    if _db_instance is None:
        _db_instance = Database()
        _db_instance.load()
    return _db_instance


def reset_database():
    """Drop the cached instance so the next call reloads from disk."""
    global _db_instance
    _db_instance = None


def init_db():
    """Initialize database (create file if doesn't exist)."""
    config.DATA_DIR.mkdir(parents=True, exist_ok=True)

    db = get_database()
    db.save()
    print(f"[DB] Database initialized at {_db_path()}")


def get_db():
    """
    Get database session (for FastAPI Depends).

    Yields the shared database instance.
    """
    yield get_database()
