from __future__ import annotations

from flask import Blueprint, jsonify

from app.menfem import paths, store
from app.menfem.api import membership_to_dict, request_payload
from app.menfem.rbac import admin_required
from app.menfem.db import db_session
from app.menfem.errors import ValidationError
from app.menfem.models import User
from app.menfem.modules.membership.service import apply_billing_update, cancel_membership, find_membership
from app.menfem.utils import parse_datetime

bp = Blueprint("membership_admin", __name__)

MEMBERSHIP = paths.ADMIN["USERS"] + "/<user_id>/membership"


@bp.get(MEMBERSHIP)
@admin_required
def membership_get(user_id: str):
    s = db_session()
    user = store.get(s, User, user_id)
    return jsonify({"ok": True, "membership": membership_to_dict(find_membership(s, user))})


@bp.put(MEMBERSHIP)
@admin_required
def membership_put(user_id: str):
    """Manual billing correction; same write path as the billing webhook."""
    s = db_session()
    user = store.get(s, User, user_id)
    payload = request_payload()
    fields = {}
    for key in ("external_customer_id", "external_subscription_id"):
        if key in payload:
            fields[key] = (payload.get(key) or "").strip() or None
    for key in ("current_period_end", "cancelled_at"):
        if key in payload:
            try:
                fields[key] = parse_datetime(payload.get(key))
            except ValueError as e:
                raise ValidationError(f"{key} must be an ISO-8601 timestamp.", field=key) from e
    membership = apply_billing_update(s, user, status=payload.get("status") or "", **fields)
    s.commit()
    return jsonify({"ok": True, "membership": membership_to_dict(membership)})


@bp.delete(MEMBERSHIP)
@admin_required
def membership_cancel(user_id: str):
    s = db_session()
    user = store.get(s, User, user_id)
    membership = cancel_membership(s, user)
    s.commit()
    return jsonify({"ok": True, "membership": membership_to_dict(membership)})
