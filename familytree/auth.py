"""Authentication: password hashing, session tokens, user accounts, and FastAPI dependencies."""
import hashlib
import hmac
import logging
import os
import time
from datetime import datetime, timezone

import bcrypt as _bcrypt
import kuzu
from fastapi import Depends, HTTPException, Request

from .db import get_conn, write_transaction

logger = logging.getLogger(__name__)

COOKIE_SECRET = os.environ.get("COOKIE_SECRET", "")
SETUP_TOKEN = os.environ.get("SETUP_TOKEN", "")
SESSION_COOKIE = "session"

ROLE_ADMIN = "admin"
ROLE_USER = "user"


# ── Password hashing ──

def validate_password(password: str):
    """Validate password meets minimum requirements."""
    if len(password) < 8:
        raise ValueError("Password must be at least 8 characters")
    if len(password.encode("utf-8")) > 72:
        raise ValueError("Password is too long (max 72 bytes)")


def hash_password(password: str) -> str:
    validate_password(password)
    pw_bytes = password.encode("utf-8")
    return _bcrypt.hashpw(pw_bytes, _bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return _bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# ── Session tokens ──

def create_session_token(user_id: int) -> str:
    """Create an HMAC-signed session token: user_id:timestamp:signature."""
    ts = str(int(time.time()))
    payload = f"{user_id}:{ts}"
    sig = hmac.new(COOKIE_SECRET.encode(), payload.encode(), hashlib.sha256).hexdigest()
    return f"{payload}:{sig}"


def verify_session_token(token: str | None) -> int | None:
    """Verify session token. Returns the user id if valid, None otherwise."""
    if not token or not COOKIE_SECRET:
        return None
    parts = token.split(":")
    if len(parts) != 3:
        return None
    user_id, ts, sig = parts
    payload = f"{user_id}:{ts}"
    expected = hmac.new(COOKIE_SECRET.encode(), payload.encode(), hashlib.sha256).hexdigest()
    if not hmac.compare_digest(sig, expected):
        return None
    try:
        return int(user_id)
    except ValueError:
        return None


# ── User CRUD ──

_USER_COLUMNS = "u.id, u.email, u.name, u.password_hash, u.role, u.is_approved, u.created_at"


def _row_to_user(row) -> dict:
    return {"id": row[0], "email": row[1], "name": row[2], "password_hash": row[3],
            "role": row[4], "is_approved": row[5], "created_at": row[6]}


def public_user(user: dict) -> dict:
    return {k: v for k, v in user.items() if k != "password_hash"}


def create_user(conn: kuzu.Connection, email: str, name: str, password: str,
                role: str = ROLE_USER, is_approved: bool = False) -> dict:
    """Create a new user account. New accounts wait for admin approval unless told otherwise."""
    email = email.strip().lower()
    now = datetime.now(timezone.utc).isoformat()
    pw_hash = hash_password(password)
    with write_transaction(conn):
        if get_user_by_email(conn, email):
            raise ValueError("User already exists")
        result = conn.execute(
            "CREATE (u:User {email: $email, name: $name, password_hash: $hash, "
            "role: $role, is_approved: $approved, created_at: $ts}) RETURN u.id",
            {"email": email, "name": name, "hash": pw_hash,
             "role": role, "approved": is_approved, "ts": now}
        )
        uid = result.get_next()[0]
    logger.info("Created %s account %s (id=%s, approved=%s)", role, email, uid, is_approved)
    return {"id": uid, "email": email, "name": name, "role": role,
            "is_approved": is_approved, "created_at": now}


def get_user_by_email(conn: kuzu.Connection, email: str) -> dict | None:
    email = email.strip().lower()
    result = conn.execute(
        f"MATCH (u:User) WHERE u.email = $email RETURN {_USER_COLUMNS}",
        {"email": email}
    )
    if result.has_next():
        return _row_to_user(result.get_next())
    return None


def get_user_by_id(conn: kuzu.Connection, user_id: int) -> dict | None:
    result = conn.execute(
        f"MATCH (u:User) WHERE u.id = $id RETURN {_USER_COLUMNS}",
        {"id": user_id}
    )
    if result.has_next():
        return _row_to_user(result.get_next())
    return None


def count_users(conn: kuzu.Connection) -> int:
    result = conn.execute("MATCH (u:User) RETURN count(*)")
    if result.has_next():
        return result.get_next()[0]
    return 0


def set_user_approved(conn: kuzu.Connection, email: str, approved: bool = True) -> dict | None:
    """Flip the approval flag. Returns the updated user, or None if no such account."""
    with write_transaction(conn):
        user = get_user_by_email(conn, email)
        if not user:
            return None
        conn.execute(
            "MATCH (u:User) WHERE u.id = $id SET u.is_approved = $approved",
            {"id": user["id"], "approved": approved}
        )
    user["is_approved"] = approved
    return public_user(user)


def authenticate_user(conn: kuzu.Connection, email: str, password: str) -> dict | None:
    """Verify email+password. Returns user dict (without password_hash) or None."""
    user = get_user_by_email(conn, email)
    if not user:
        return None
    if not verify_password(password, user["password_hash"]):
        return None
    return public_user(user)


def is_admin(user: dict) -> bool:
    return user.get("role") == ROLE_ADMIN


# ── FastAPI dependencies ──

def _request_token(request: Request) -> str | None:
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        return token
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return None


def get_current_user(request: Request, conn=Depends(get_conn)) -> dict:
    """FastAPI dependency: resolve the approved user behind the session. Raises 401/403."""
    user_id = verify_session_token(_request_token(request))
    if user_id is None:
        raise HTTPException(401, "Not authenticated")
    user = get_user_by_id(conn, user_id)
    if not user:
        raise HTTPException(401, "User not found")
    if not user["is_approved"]:
        raise HTTPException(403, "Account not approved yet")
    return public_user(user)


def require_admin(user: dict = Depends(get_current_user)) -> dict:
    """FastAPI dependency: like get_current_user, but only for administrators."""
    if not is_admin(user):
        raise HTTPException(403, "Admin access required")
    return user
