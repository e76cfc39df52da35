from __future__ import annotations

import hashlib
import hmac
import secrets
import time
import uuid
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime, timedelta
from functools import wraps
from typing import Any

from flask import Blueprint, current_app, g, jsonify, request, session
from sqlalchemy import func
from werkzeug.security import check_password_hash, generate_password_hash

from app.halfride.audit import record_event
from app.halfride.db import db_session
from app.halfride.errors import bad_request, conflict, too_many_requests, unauthorized
from app.halfride.models import User
from app.halfride.utils import (
    NAME_MAX_LENGTH,
    PASSWORD_MIN_LENGTH,
    USERNAME_MAX_LENGTH,
    USERNAME_MIN_LENGTH,
    clean_str,
    is_valid_name,
    is_valid_password,
    is_valid_username,
    json_body,
    parse_iso_date,
)

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds

_PUBLIC_PREFIXES = ("/static/", "/health", "/healthz", "/api/health")


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def _hash_sid(sid: str) -> str:
    return hashlib.sha256(sid.encode("utf-8")).hexdigest()


def _sid_matches(user: User, sid: str | None) -> bool:
    if not sid or not user.session_jti_hash:
        return False
    return hmac.compare_digest(user.session_jti_hash, _hash_sid(sid))


def start_session(user: User) -> None:
    """Issue a fresh session id for `user`; any previously issued id stops working."""
    sid = secrets.token_urlsafe(32)
    user.session_jti_hash = _hash_sid(sid)
    user.session_updated_at = datetime.utcnow()
    session.clear()
    session.permanent = True
    session["user_id"] = user.id
    session["sid"] = sid
    session["issued_at"] = int(time.time())


def revoke_sessions(user: User) -> None:
    user.session_jti_hash = None
    user.session_updated_at = datetime.utcnow()


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a per-request request_id (for audit/log correlation).

    g.session_expired is True when the session id is still valid but its
    access window has elapsed; only /api/auth/refresh accepts such a session.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    g.session_expired = False
    if request.path.startswith(_PUBLIC_PREFIXES):
        return

    user_id = session.get("user_id")
    if not user_id:
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.clear()
        return

    if not user or not user.is_active or not _sid_matches(user, session.get("sid")):
        session.clear()
        return

    ttl = int(current_app.config.get("SESSION_ACCESS_TTL_SECONDS") or 0)
    issued_at = int(session.get("issued_at") or 0)
    g.session_expired = bool(ttl) and time.time() - issued_at > ttl
    g.current_user = user


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise unauthorized("Authentication required")
    return u


def require_session(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user:
            raise unauthorized("Missing access token")
        if getattr(g, "session_expired", False):
            raise unauthorized("Access token expired", code="ACCESS_TOKEN_EXPIRED")
        return fn(*args, **kwargs)

    return wrapped


def _find_user_by_username(s, username: str) -> User | None:
    return s.query(User).filter(func.lower(User.username) == username.lower()).one_or_none()


def _parse_is_female(raw: Any) -> bool | None:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and raw.strip().lower() in ("true", "false"):
        return raw.strip().lower() == "true"
    return None


@bp.post("/signup/complete")
def signup_complete():
    body = json_body()
    username = clean_str(body.get("username"))
    password = body.get("password") or ""
    first_name = clean_str(body.get("FirstName"))
    last_name = clean_str(body.get("LastName"))
    dob_raw = clean_str(body.get("DOB"))
    phone = clean_str(body.get("Phone"))
    is_female = _parse_is_female(body.get("isFemale"))

    if not is_valid_username(username):
        raise bad_request(
            f"Username must be {USERNAME_MIN_LENGTH}-{USERNAME_MAX_LENGTH} characters "
            "(letters, numbers, underscore)"
        )
    if not is_valid_password(password):
        raise bad_request(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if not is_valid_name(first_name) or not is_valid_name(last_name):
        raise bad_request(f"FirstName and LastName are required (max {NAME_MAX_LENGTH} characters)")
    dob = parse_iso_date(dob_raw)
    if dob is None:
        raise bad_request("DOB must be a valid date (YYYY-MM-DD)")
    if is_female is None:
        raise bad_request("isFemale must be a boolean")
    if not phone:
        raise bad_request("Phone is required")

    s = db_session()
    if _find_user_by_username(s, username):
        raise conflict("Username is already taken", code="USERNAME_TAKEN")

    now = datetime.utcnow()
    user = User(
        username=username,
        password_hash=generate_password_hash(password),
        first_name=first_name,
        last_name=last_name,
        dob=dob,
        is_female=is_female,
        phone=phone,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    s.add(user)
    s.flush()
    start_session(user)
    record_event(s, actor=user, action="auth.signup", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify({"ok": True, "uid": str(user.id)}), 201


@bp.post("/login")
def login():
    body = json_body()
    username = clean_str(body.get("username"))
    password = body.get("password") or ""
    ip = request.remote_addr or "unknown"

    if not username or not password:
        raise bad_request("username and password are required")
    if not isinstance(password, str):
        raise bad_request("password must be a string", code="VALIDATION_ERROR")
    if _check_rate_limit(ip):
        raise too_many_requests("Too many login attempts. Please wait 5 minutes.")

    _record_attempt(ip)

    s = db_session()
    user = _find_user_by_username(s, username)
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=username,
            reason="Invalid credentials",
        )
        s.commit()
        raise unauthorized("Invalid username or password", code="INVALID_CREDENTIALS")

    start_session(user)
    _login_attempts[ip].clear()
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify({"ok": True, "uid": str(user.id), "username": user.username})


@bp.post("/refresh")
def refresh():
    user: User | None = getattr(g, "current_user", None)
    if not user:
        session.clear()
        raise unauthorized("Refresh token revoked", code="REFRESH_REVOKED")
    s = db_session()
    start_session(user)
    s.commit()
    return jsonify({"ok": True})


@bp.post("/logout")
def logout():
    user: User | None = getattr(g, "current_user", None)
    if user:
        s = db_session()
        revoke_sessions(user)
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.clear()
    return jsonify({"ok": True})


@bp.get("/me")
@require_session
def me():
    user = current_user()
    return jsonify({"ok": True, "uid": str(user.id), "username": user.username})


@bp.post("/forgot-password/complete")
def forgot_password_complete():
    body = json_body()
    username = clean_str(body.get("username"))
    phone = clean_str(body.get("Phone"))
    new_password = body.get("newPassword") or ""

    if not username or not phone:
        raise bad_request("username and Phone are required")
    if not is_valid_password(new_password):
        raise bad_request(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")

    s = db_session()
    user = _find_user_by_username(s, username)
    if not user or not user.phone or user.phone != phone:
        raise bad_request("Phone number does not match this account", code="PHONE_MISMATCH")

    user.password_hash = generate_password_hash(new_password)
    user.updated_at = datetime.utcnow()
    revoke_sessions(user)
    record_event(s, actor=user, action="auth.password_reset", entity_type="User", entity_id=str(user.id))
    s.commit()
    session.clear()
    return jsonify({"ok": True, "message": "Password updated. Please log in again."})
