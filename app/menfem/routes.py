from __future__ import annotations

from flask import Blueprint, g, jsonify, request, session

from app.menfem import paths
from app.menfem.api import (
    article_to_dict,
    comment_to_dict,
    event_to_dict,
    membership_to_dict,
    newsletter_to_dict,
    page_args,
    page_to_dict,
    request_payload,
    rsvp_to_dict,
    user_to_dict,
)
from app.menfem.auth import current_user, login_required
from app.menfem.db import db_session
from app.menfem.modules.accounts import service as accounts
from app.menfem.modules.content import service as content
from app.menfem.modules.events import service as events
from app.menfem.modules.events.models import EventRsvp
from app.menfem.modules.membership import service as membership
from app.menfem.modules.newsletter import service as newsletter

bp = Blueprint("routes", __name__)

ARTICLE_DETAIL_RULE = paths.ARTICLES["LIST"] + "/<slug>"


@bp.get(paths.HOME)
def index():
    s = db_session()
    latest = content.list_published_articles(s, per_page=5)
    return jsonify({"ok": True, "latest_articles": [article_to_dict(a) for a in latest.items]})


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for k8s probes. No DB access, minimal overhead.
    """
    return "ok", 200


# ---------- Articles ----------
@bp.get(paths.ARTICLES["LIST"])
def articles_list():
    s = db_session()
    args = page_args()
    premium = request.args.get("premium")
    result = content.list_published_articles(
        s,
        page=args["page"],
        per_page=args["per_page"],
        cursor=args["cursor"],
        category_slug=(request.args.get("category") or "").strip() or None,
        tag_slug=(request.args.get("tag") or "").strip() or None,
        premium=None if premium is None else premium.lower() in ("1", "true", "yes"),
    )
    return jsonify(page_to_dict(result, article_to_dict))


@bp.get(ARTICLE_DETAIL_RULE)
def article_detail(slug: str):
    s = db_session()
    article = content.get_article(s, slug)
    content.record_view(s, article)
    s.commit()

    user = getattr(g, "current_user", None)
    can_read = not article.is_premium or membership.has_premium_access(s, user)
    data = article_to_dict(article, include_content=can_read)
    data["locked"] = not can_read
    data["comment_count"] = content.count_comments(s, article)
    if user is not None:
        data["saved"] = any(a.id == article.id for a in content.list_saved_articles(s, user))
    return jsonify({"ok": True, "article": data})


@bp.post(ARTICLE_DETAIL_RULE + "/save")
@login_required
def article_save(slug: str):
    s = db_session()
    article = content.get_article(s, slug)
    content.save_article(s, current_user(), article)
    s.commit()
    return jsonify({"ok": True, "saved": True})


@bp.delete(ARTICLE_DETAIL_RULE + "/save")
@login_required
def article_unsave(slug: str):
    s = db_session()
    article = content.get_article(s, slug)
    removed = content.unsave_article(s, current_user(), article)
    s.commit()
    return jsonify({"ok": True, "saved": False, "removed": removed})


@bp.get(ARTICLE_DETAIL_RULE + "/comments")
def article_comments(slug: str):
    s = db_session()
    article = content.get_article(s, slug)
    return jsonify({"ok": True, "items": [comment_to_dict(c) for c in content.list_comments(s, article)]})


@bp.post(ARTICLE_DETAIL_RULE + "/comments")
@login_required
def article_comment_add(slug: str):
    s = db_session()
    article = content.get_article(s, slug)
    comment = content.add_comment(s, current_user(), article, request_payload().get("content") or "")
    s.commit()
    return jsonify({"ok": True, "comment": comment_to_dict(comment)}), 201


# ---------- Events ----------
@bp.get("/events")
def events_list():
    s = db_session()
    args = page_args()
    upcoming = (request.args.get("upcoming") or "1").lower() in ("1", "true", "yes")
    result = events.list_published_events(s, upcoming_only=upcoming, cursor=args["cursor"], per_page=args["per_page"])
    return jsonify(page_to_dict(result, event_to_dict))


@bp.get("/events/<event_id>")
def event_detail(event_id: str):
    s = db_session()
    event = events.get_event(s, event_id)
    data = event_to_dict(event)
    data["attendance"] = events.event_attendance(s, event)
    user = getattr(g, "current_user", None)
    if user is not None:
        row = events.get_rsvp(s, user, event)
        data["my_rsvp"] = rsvp_to_dict(row) if row else None
    return jsonify({"ok": True, "event": data})


@bp.post("/events/<event_id>/rsvp")
@login_required
def event_rsvp(event_id: str):
    s = db_session()
    row = events.rsvp(s, current_user(), event_id)
    s.commit()
    return jsonify({"ok": True, "rsvp": rsvp_to_dict(row)})


@bp.delete("/events/<event_id>/rsvp")
@login_required
def event_rsvp_cancel(event_id: str):
    s = db_session()
    row = events.cancel_rsvp(s, current_user(), event_id)
    s.commit()
    return jsonify({"ok": True, "rsvp": rsvp_to_dict(row)})


# ---------- Newsletter ----------
@bp.post("/newsletter/subscribe")
def newsletter_subscribe():
    s = db_session()
    sub = newsletter.subscribe(s, request_payload().get("email") or "", user=getattr(g, "current_user", None))
    s.commit()
    return jsonify({"ok": True, "subscription": newsletter_to_dict(sub)})


@bp.post("/newsletter/confirm")
def newsletter_confirm():
    s = db_session()
    sub = newsletter.confirm_subscription(s, (request_payload().get("token") or "").strip())
    s.commit()
    return jsonify({"ok": True, "subscription": newsletter_to_dict(sub)})


@bp.post("/newsletter/unsubscribe")
def newsletter_unsubscribe():
    s = db_session()
    sub = newsletter.unsubscribe(s, request_payload().get("email") or "")
    s.commit()
    return jsonify({"ok": True, "subscription": newsletter_to_dict(sub)})


# ---------- Profile / dashboard ----------
@bp.get(paths.PROFILE)
@login_required
def profile():
    s = db_session()
    user = current_user()
    return jsonify(
        {
            "ok": True,
            "user": user_to_dict(user),
            "membership": membership_to_dict(membership.find_membership(s, user)),
            "premium_access": membership.has_premium_access(s, user),
        }
    )


@bp.patch(paths.PROFILE)
@login_required
def profile_update():
    s = db_session()
    payload = {k: v for k, v in request_payload().items() if k in ("email", "username", "password")}
    user = accounts.update_user(s, current_user(), payload)
    s.commit()
    return jsonify({"ok": True, "user": user_to_dict(user)})


@bp.delete(paths.PROFILE)
@login_required
def profile_delete():
    s = db_session()
    accounts.delete_user(s, current_user())
    s.commit()
    session.pop("session_id", None)
    return jsonify({"ok": True})


@bp.get(paths.DASHBOARD)
@login_required
def dashboard():
    s = db_session()
    user = current_user()
    rsvps = s.query(EventRsvp).filter(EventRsvp.user_id == user.id).order_by(EventRsvp.created_at.desc()).all()
    return jsonify(
        {
            "ok": True,
            "saved_articles": [article_to_dict(a) for a in content.list_saved_articles(s, user)],
            "rsvps": [rsvp_to_dict(r) for r in rsvps],
            "membership": membership_to_dict(membership.find_membership(s, user)),
        }
    )
