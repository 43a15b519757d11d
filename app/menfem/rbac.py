from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import current_app, g, jsonify

from app.menfem.models import User


def user_is_admin(user: User | None) -> bool:
    """Allow-listed email that the user has proven to own."""
    if not user or not user.email_verified:
        return False
    return user.email in current_app.config["SETTINGS"].admin_emails


def admin_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        # Unauthenticated → 401
        if not user:
            return jsonify({"ok": False, "error": "unauthorized", "message": "Sign in required."}), 401
        # Authenticated but not allow-listed → 403
        if not user_is_admin(user):
            current_app.logger.warning(
                "Admin access denied user_id=%s request_id=%s", user.id, getattr(g, "request_id", None)
            )
            return jsonify({"ok": False, "error": "forbidden", "message": "Admin access required."}), 403
        return fn(*args, **kwargs)

    return wrapped
