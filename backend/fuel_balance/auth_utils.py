import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from .config import settings

active_sessions: dict[str, dict[str, Any]] = {}


def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.sha256(f"{salt}:{password}".encode("utf-8")).hexdigest()
    return f"{salt}${digest}"


def verify_password(password: str, stored_hash: str | None) -> bool:
    if not stored_hash:
        return False
    try:
        salt, expected = stored_hash.split("$", 1)
    except ValueError:
        return False
    digest = hashlib.sha256(f"{salt}:{password}".encode("utf-8")).hexdigest()
    return secrets.compare_digest(digest, expected)


def create_session(user_id: str) -> str:
    token = secrets.token_urlsafe(32)
    active_sessions[token] = {"user_id": user_id, "last_seen": datetime.now(timezone.utc)}
    return token


def session_user_id(token: str | None) -> str | None:
    if not token:
        return None
    session = active_sessions.get(token)
    if session is None:
        return None
    now = datetime.now(timezone.utc)
    timeout = settings.session_timeout_minutes
    if timeout and (now - session["last_seen"]) > timedelta(minutes=timeout):
        del active_sessions[token]
        return None
    session["last_seen"] = now
    return session["user_id"]


def drop_session(token: str | None) -> None:
    if token and token in active_sessions:
        del active_sessions[token]


def drop_user_sessions(user_id: str) -> None:
    tokens = [token for token, data in active_sessions.items() if data.get("user_id") == user_id]
    for token in tokens:
        del active_sessions[token]
