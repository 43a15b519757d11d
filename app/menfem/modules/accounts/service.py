from __future__ import annotations

import logging
import re
import secrets
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import delete as sa_delete, select
from werkzeug.security import check_password_hash, generate_password_hash

from app.menfem import store
from app.menfem.errors import NotFound, ValidationError
from app.menfem.models import EmailVerificationToken, PasswordResetToken, User, UserSession
from app.menfem.utils import clean, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
USERNAME_RE = re.compile(r"^[a-z0-9_]{3,32}$")
MIN_PASSWORD_LENGTH = 8

DEFAULT_SESSION_LIFETIME = timedelta(days=30)
DEFAULT_EMAIL_TOKEN_TTL = timedelta(hours=24)
DEFAULT_PASSWORD_RESET_TTL = timedelta(hours=1)


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def validate_user_payload(payload: dict, *, require_password: bool = True) -> list[str]:
    """Validate sign-up / profile payload. Returns list of errors."""
    errors = []
    email = normalize_email(payload.get("email"))
    if not email or not EMAIL_RE.match(email) or len(email) > 320:
        errors.append("A valid email is required.")
    username = clean(payload.get("username"))
    if username is not None and not USERNAME_RE.match(username.lower()):
        errors.append("Username must be 3-32 characters: letters, digits or underscore.")
    password = payload.get("password") or ""
    if require_password and len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    return errors


def _raise_if_errors(errors: list[str], entity: str) -> None:
    if errors:
        raise ValidationError(" ".join(errors), entity=entity)


# ---------- Users ----------
def create_user(s: "Session", email: str, password: str, username: str | None = None) -> User:
    _raise_if_errors(
        validate_user_payload({"email": email, "password": password, "username": username}),
        "User",
    )
    user = store.create(
        s,
        User,
        email=normalize_email(email),
        username=(clean(username) or "").lower() or None,
        password_hash=generate_password_hash(password),
    )
    logger.info("User created id=%s", user.id)
    return user


def get_user_by_email(s: "Session", email: str) -> User:
    return store.get_by(s, User, email=normalize_email(email))


def verify_password(user: User, password: str) -> bool:
    return check_password_hash(user.password_hash, password)


def authenticate(s: "Session", email: str, password: str) -> User:
    """Return the user for valid credentials; NotFound otherwise (no hint which part failed)."""
    user = store.find_by(s, User, email=normalize_email(email))
    if user is None or not verify_password(user, password):
        raise NotFound("Invalid credentials.", entity="User")
    return user


def update_user(s: "Session", user: User, payload: dict) -> User:
    changes: dict[str, object] = {}
    if "email" in payload:
        email = normalize_email(payload.get("email"))
        if not EMAIL_RE.match(email):
            raise ValidationError("A valid email is required.", entity="User", field="email")
        if email != user.email:
            changes["email"] = email
            changes["email_verified"] = False
    if "username" in payload:
        username = (clean(payload.get("username")) or "").lower() or None
        if username is not None and not USERNAME_RE.match(username):
            raise ValidationError("Invalid username.", entity="User", field="username")
        changes["username"] = username
    if "password" in payload:
        password = payload.get("password") or ""
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError("Password too short.", entity="User", field="password")
        changes["password_hash"] = generate_password_hash(password)
    return store.update(s, user, **changes)


def delete_user(s: "Session", user: User) -> None:
    """
    Sessions, bookmarks, comments, RSVPs and membership cascade; newsletter rows
    are unlinked. Verification/reset tokens are left in place (no FK).
    Raises ForeignKeyViolation while the user still authors articles.
    """
    user_id = user.id
    store.delete(s, user)
    logger.info("User deleted id=%s", user_id)


# ---------- Sessions ----------
def create_session(
    s: "Session",
    user: User,
    *,
    lifetime: timedelta = DEFAULT_SESSION_LIFETIME,
    now: datetime | None = None,
) -> UserSession:
    now = now or utcnow()
    return store.create(s, UserSession, user_id=user.id, expires_at=now + lifetime)


def get_valid_session(s: "Session", session_id: str, now: datetime | None = None) -> UserSession:
    """Expired sessions read as NotFound; the row itself is left for cleanup."""
    sess = store.get(s, UserSession, session_id)
    if sess.is_expired(now):
        raise NotFound("Session expired.", entity="UserSession")
    return sess


def delete_session(s: "Session", session_id: str) -> None:
    sess = s.get(UserSession, session_id)
    if sess is not None:
        store.delete(s, sess)


def delete_user_sessions(s: "Session", user: User) -> int:
    result = s.execute(sa_delete(UserSession).where(UserSession.user_id == user.id))
    return result.rowcount or 0


# ---------- Tokens ----------
def _issue_token(s: "Session", model, user: User, ttl: timedelta, now: datetime | None):
    now = now or utcnow()
    token = store.create(
        s,
        model,
        token=secrets.token_urlsafe(32),
        email=user.email,
        user_id=user.id,
        expires_at=now + ttl,
        created_at=now,
    )
    # Token value is never logged.
    logger.info("%s issued user_id=%s", model.__name__, user.id)
    return token


def issue_email_verification_token(
    s: "Session", user: User, *, ttl: timedelta = DEFAULT_EMAIL_TOKEN_TTL, now: datetime | None = None
) -> EmailVerificationToken:
    return _issue_token(s, EmailVerificationToken, user, ttl, now)


def issue_password_reset_token(
    s: "Session", user: User, *, ttl: timedelta = DEFAULT_PASSWORD_RESET_TTL, now: datetime | None = None
) -> PasswordResetToken:
    return _issue_token(s, PasswordResetToken, user, ttl, now)


def find_valid_token(s: "Session", model, token: str, now: datetime | None = None):
    row = s.scalars(select(model).where(model.token == token)).one_or_none()
    if row is None or row.is_expired(now):
        raise NotFound("Token is invalid or expired.", entity=model.__name__)
    return row


def consume_email_verification(s: "Session", token: str, now: datetime | None = None) -> User:
    row = find_valid_token(s, EmailVerificationToken, token, now)
    user = store.get(s, User, row.user_id)
    if user.email != row.email:
        # Email changed after the token was issued.
        raise NotFound("Token is invalid or expired.", entity="EmailVerificationToken")
    store.update(s, user, email_verified=True)
    store.delete(s, row)
    return user


def reset_password(s: "Session", token: str, new_password: str, now: datetime | None = None) -> User:
    row = find_valid_token(s, PasswordResetToken, token, now)
    if len(new_password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError("Password too short.", entity="User", field="password")
    user = store.get(s, User, row.user_id)
    store.update(s, user, password_hash=generate_password_hash(new_password))
    store.delete(s, row)
    revoked = delete_user_sessions(s, user)
    logger.info("Password reset user_id=%s sessions_revoked=%s", user.id, revoked)
    return user
