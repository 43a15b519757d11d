from __future__ import annotations

import uuid
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime, timedelta
from functools import wraps
from typing import Any

from flask import Blueprint, current_app, g, jsonify, request, session

from app.menfem import paths
from app.menfem.api import request_payload, user_to_dict
from app.menfem.db import db_session
from app.menfem.errors import NotFound
from app.menfem.models import User
from app.menfem.modules.accounts import service as accounts
from app.menfem.utils import utcnow

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _check_rate_limit(ip: str) -> bool:
    now = utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(utcnow())


def _settings():
    return current_app.config["SETTINGS"]


def load_current_user() -> None:
    """
    Loads g.current_user from the store session referenced by the signed cookie.
    Also assigns a simple per-request request_id (for log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    g.current_session_id = None
    if request.path.startswith(("/static/", "/health", "/healthz")):
        return

    session_id = session.get("session_id")
    if not session_id:
        return

    try:
        sess = accounts.get_valid_session(db_session(), session_id)
    except NotFound:
        session.pop("session_id", None)
        return
    g.current_user = sess.user
    g.current_session_id = sess.id


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if not getattr(g, "current_user", None):
            return jsonify({"ok": False, "error": "unauthorized", "message": "Sign in required."}), 401
        return fn(*args, **kwargs)

    return wrapped


def _start_session(user: User):
    s = db_session()
    sess = accounts.create_session(s, user, lifetime=timedelta(days=_settings().session_lifetime_days))
    session.clear()
    session["session_id"] = sess.id
    session.permanent = True
    return sess


@bp.post(paths.AUTH["SIGN_UP"])
def sign_up():
    s = db_session()
    payload = request_payload()
    user = accounts.create_user(
        s,
        email=payload.get("email") or "",
        password=payload.get("password") or "",
        username=payload.get("username"),
    )
    accounts.issue_email_verification_token(
        s, user, ttl=timedelta(hours=_settings().email_token_ttl_hours)
    )
    _start_session(user)
    s.commit()
    return jsonify({"ok": True, "user": user_to_dict(user)}), 201


@bp.post(paths.AUTH["SIGN_IN"])
def sign_in():
    payload = request_payload()
    email = accounts.normalize_email(payload.get("email"))
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        return jsonify({"ok": False, "error": "rate_limited", "message": "Too many sign-in attempts."}), 429

    _record_attempt(ip)

    s = db_session()
    try:
        user = accounts.authenticate(s, email, payload.get("password") or "")
    except NotFound:
        current_app.logger.info("Sign-in failed request_id=%s", getattr(g, "request_id", None))
        return jsonify({"ok": False, "error": "invalid_credentials", "message": "Invalid credentials."}), 401

    _start_session(user)
    _login_attempts[ip].clear()
    s.commit()
    return jsonify({"ok": True, "user": user_to_dict(user)})


@bp.post(paths.AUTH["SIGN_OUT"])
def sign_out():
    s = db_session()
    session_id = getattr(g, "current_session_id", None)
    if session_id:
        accounts.delete_session(s, session_id)
        s.commit()
    session.pop("session_id", None)
    return jsonify({"ok": True})


@bp.post(paths.AUTH["VERIFY_EMAIL"])
def verify_email():
    s = db_session()
    token = (request_payload().get("token") or "").strip()
    user = accounts.consume_email_verification(s, token)
    s.commit()
    return jsonify({"ok": True, "user": user_to_dict(user)})


@bp.post(paths.AUTH["VERIFY_EMAIL"] + "/resend")
@login_required
def resend_verification():
    s = db_session()
    user = current_user()
    if not user.email_verified:
        accounts.issue_email_verification_token(
            s, user, ttl=timedelta(hours=_settings().email_token_ttl_hours)
        )
        s.commit()
    return jsonify({"ok": True})


@bp.post(paths.AUTH["RESET_PASSWORD"])
def reset_password():
    """
    Without a token: issue a reset token for the email (always 200, no account enumeration).
    With a token: set the new password and revoke every session of the user.
    """
    s = db_session()
    payload = request_payload()
    token = (payload.get("token") or "").strip()
    if not token:
        user = s.query(User).filter(User.email == accounts.normalize_email(payload.get("email"))).one_or_none()
        if user is not None:
            accounts.issue_password_reset_token(
                s, user, ttl=timedelta(hours=_settings().password_reset_ttl_hours)
            )
            s.commit()
        return jsonify({"ok": True})

    accounts.reset_password(s, token, payload.get("password") or "")
    s.commit()
    session.pop("session_id", None)
    return jsonify({"ok": True})
