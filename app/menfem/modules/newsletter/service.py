from __future__ import annotations

import logging
import secrets
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.menfem import store
from app.menfem.errors import NotFound, ValidationError
from app.menfem.modules.accounts.service import EMAIL_RE, normalize_email
from app.menfem.modules.newsletter.models import NewsletterSubscription
from app.menfem.utils import utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.menfem.models import User

logger = logging.getLogger(__name__)


def subscribe(
    s: "Session", email: str, user: "User | None" = None, now: datetime | None = None
) -> NewsletterSubscription:
    """
    Create an active subscription awaiting confirmation, or reactivate an
    existing row for the same email. Returns the row (confirm_token set when
    confirmation is pending).
    """
    email = normalize_email(email)
    if not EMAIL_RE.match(email):
        raise ValidationError("A valid email is required.", entity="NewsletterSubscription", field="email")
    now = now or utcnow()

    existing = store.find_by(s, NewsletterSubscription, email=email)
    if existing is None:
        sub = store.create(
            s,
            NewsletterSubscription,
            email=email,
            user_id=user.id if user else None,
            is_active=True,
            subscribed_at=now,
            confirm_token=secrets.token_urlsafe(32),
        )
        logger.info("Newsletter subscription created id=%s", sub.id)
        return sub

    changes: dict[str, object] = {}
    if not existing.is_active:
        changes.update(is_active=True, subscribed_at=now, unsubscribed_at=None)
        logger.info("Newsletter subscription reactivated id=%s", existing.id)
    if user is not None and existing.user_id is None:
        changes["user_id"] = user.id
    if changes:
        store.update(s, existing, **changes)
    return existing


def confirm_subscription(s: "Session", token: str) -> NewsletterSubscription:
    sub = s.scalars(
        select(NewsletterSubscription).where(NewsletterSubscription.confirm_token == token)
    ).one_or_none()
    if sub is None:
        raise NotFound("Confirmation token not found.", entity="NewsletterSubscription")
    return store.update(s, sub, confirm_token=None)


def unsubscribe(s: "Session", email: str, now: datetime | None = None) -> NewsletterSubscription:
    sub = store.get_by(s, NewsletterSubscription, email=normalize_email(email))
    if sub.is_active:
        store.update(s, sub, is_active=False, unsubscribed_at=now or utcnow())
        logger.info("Newsletter unsubscribed id=%s", sub.id)
    return sub


def list_active_subscriptions(s: "Session", *, page: int = 1, per_page: int | None = None) -> store.Page:
    stmt = (
        select(NewsletterSubscription)
        .where(NewsletterSubscription.is_active.is_(True))
        .order_by(NewsletterSubscription.subscribed_at.desc(), NewsletterSubscription.id.desc())
    )
    return store.paginate(s, stmt, page=page, per_page=per_page)
