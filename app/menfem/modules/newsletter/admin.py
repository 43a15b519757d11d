from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.menfem import paths
from app.menfem.api import newsletter_to_dict, page_to_dict
from app.menfem.rbac import admin_required
from app.menfem.db import db_session
from app.menfem.modules.newsletter.service import list_active_subscriptions, unsubscribe

bp = Blueprint("newsletter_admin", __name__)


@bp.get(paths.ADMIN["NEWSLETTER"])
@admin_required
def subscribers_list():
    s = db_session()
    try:
        page = int(request.args.get("page") or 1)
    except ValueError:
        page = 1
    return jsonify(page_to_dict(list_active_subscriptions(s, page=page, per_page=50), newsletter_to_dict))


@bp.delete(paths.ADMIN["NEWSLETTER"] + "/<path:email>")
@admin_required
def subscriber_remove(email: str):
    s = db_session()
    sub = unsubscribe(s, email)
    s.commit()
    return jsonify({"ok": True, "subscription": newsletter_to_dict(sub)})
