from __future__ import annotations

from flask import Blueprint, jsonify, request
from sqlalchemy import func, select

from app.menfem import paths, store
from app.menfem.api import page_to_dict, user_to_dict
from app.menfem.rbac import admin_required
from app.menfem.db import db_session
from app.menfem.models import User
from app.menfem.modules.accounts import service as accounts
from app.menfem.modules.content.models import Article, Comment
from app.menfem.modules.events.models import Event
from app.menfem.modules.membership.models import MembershipSubscription, SubscriptionStatus
from app.menfem.modules.newsletter.models import NewsletterSubscription

bp = Blueprint("admin", __name__)


def _count(s, stmt) -> int:
    return s.scalar(stmt) or 0


@bp.get(paths.ADMIN["DASHBOARD"])
@admin_required
def index():
    s = db_session()
    counts = {
        "users": _count(s, select(func.count()).select_from(User)),
        "articles": _count(s, select(func.count()).select_from(Article)),
        "published_articles": _count(
            s, select(func.count()).select_from(Article).where(Article.is_published.is_(True))
        ),
        "comments": _count(s, select(func.count()).select_from(Comment)),
        "events": _count(s, select(func.count()).select_from(Event)),
        "newsletter_active": _count(
            s,
            select(func.count())
            .select_from(NewsletterSubscription)
            .where(NewsletterSubscription.is_active.is_(True)),
        ),
    }
    memberships = {st.value: 0 for st in SubscriptionStatus}
    rows = s.execute(
        select(MembershipSubscription.status, func.count()).group_by(MembershipSubscription.status)
    )
    for status, n in rows:
        memberships[SubscriptionStatus(status).value] = n
    counts["memberships"] = memberships
    return jsonify({"ok": True, "counts": counts})


@bp.get(paths.ADMIN["USERS"])
@admin_required
def users_list():
    s = db_session()
    try:
        page = int(request.args.get("page") or 1)
    except ValueError:
        page = 1
    q = (request.args.get("q") or "").strip().lower()
    stmt = select(User)
    if q:
        like = f"%{q}%"
        stmt = stmt.where(User.email.ilike(like) | User.username.ilike(like))
    stmt = stmt.order_by(User.created_at.desc(), User.id.desc())
    result = store.paginate(s, stmt, page=page, per_page=50)
    return jsonify(page_to_dict(result, user_to_dict))


@bp.get(paths.ADMIN["USERS"] + "/<user_id>")
@admin_required
def user_detail(user_id: str):
    s = db_session()
    user = store.get(s, User, user_id)
    return jsonify({"ok": True, "user": user_to_dict(user)})


@bp.delete(paths.ADMIN["USERS"] + "/<user_id>")
@admin_required
def user_delete(user_id: str):
    s = db_session()
    user = store.get(s, User, user_id)
    accounts.delete_user(s, user)
    s.commit()
    return jsonify({"ok": True})
