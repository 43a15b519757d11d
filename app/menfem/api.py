"""JSON helpers shared by the blueprints."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from flask import request

from app.menfem.errors import ValidationError
from app.menfem.store import Page


def request_payload() -> dict:
    """JSON body when present, else form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def page_args() -> dict[str, Any]:
    try:
        page = int(request.args["page"]) if request.args.get("page") else None
        per_page = int(request.args["per_page"]) if request.args.get("per_page") else None
    except ValueError as e:
        raise ValidationError("page and per_page must be integers.", field="page") from e
    return {"page": page, "per_page": per_page, "cursor": request.args.get("cursor") or None}


def iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def page_to_dict(page: Page, serialize) -> dict:
    out: dict[str, Any] = {
        "ok": True,
        "items": [serialize(item) for item in page.items],
        "per_page": page.per_page,
        "has_next": page.has_next,
        "next_cursor": page.next_cursor,
    }
    if page.page is not None:
        out.update(page=page.page, total=page.total, total_pages=page.total_pages)
    return out


def user_to_dict(user) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "email_verified": user.email_verified,
        "created_at": iso(user.created_at),
    }


def category_to_dict(category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "color": category.color,
        "order": category.order,
    }


def article_to_dict(article, *, include_content: bool = False) -> dict:
    from app.menfem import paths

    out = {
        "id": article.id,
        "slug": article.slug,
        "url": paths.article_detail(article.slug),
        "title": article.title,
        "excerpt": article.excerpt,
        "cover_image": article.cover_image,
        "reading_time": article.reading_time,
        "is_premium": article.is_premium,
        "is_published": article.is_published,
        "published_at": iso(article.published_at),
        "view_count": article.view_count,
        "meta_title": article.meta_title,
        "meta_description": article.meta_description,
        "author_id": article.author_id,
        "category": category_to_dict(article.category),
        "tags": [{"name": t.name, "slug": t.slug} for t in article.tags],
        "updated_at": iso(article.updated_at),
    }
    if include_content:
        out["content"] = article.content
    return out


def comment_to_dict(comment) -> dict:
    return {
        "id": comment.id,
        "content": comment.content,
        "user_id": comment.user_id,
        "article_id": comment.article_id,
        "created_at": iso(comment.created_at),
        "updated_at": iso(comment.updated_at),
    }


def event_to_dict(event) -> dict:
    return {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "location": event.location,
        "start_at": iso(event.start_at),
        "end_at": iso(event.end_at),
        "capacity": event.capacity,
        "image": event.image,
        "is_published": event.is_published,
    }


def rsvp_to_dict(row) -> dict:
    return {
        "id": row.id,
        "event_id": row.event_id,
        "user_id": row.user_id,
        "status": row.status.value,
        "updated_at": iso(row.updated_at),
    }


def newsletter_to_dict(sub) -> dict:
    return {
        "id": sub.id,
        "email": sub.email,
        "user_id": sub.user_id,
        "is_active": sub.is_active,
        "is_confirmed": sub.is_confirmed,
        "subscribed_at": iso(sub.subscribed_at),
        "unsubscribed_at": iso(sub.unsubscribed_at),
    }


def membership_to_dict(membership) -> dict | None:
    if membership is None:
        return None
    return {
        "status": membership.status.value,
        "current_period_end": iso(membership.current_period_end),
        "cancelled_at": iso(membership.cancelled_at),
    }
