from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from app.menfem.utils import new_id, utcnow

if TYPE_CHECKING:
    from app.menfem.modules.content.models import Article, Comment, SavedArticle
    from app.menfem.modules.events.models import EventRsvp
    from app.menfem.modules.membership.models import MembershipSubscription
    from app.menfem.modules.newsletter.models import NewsletterSubscription


class Base(DeclarativeBase):
    pass


def id_column() -> Mapped[str]:
    return mapped_column(String(32), primary_key=True, default=new_id)


def created_at_column() -> Mapped[datetime]:
    return mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)


def updated_at_column() -> Mapped[datetime]:
    # onupdate fires on every ORM UPDATE of the row.
    return mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = id_column()
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    username: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    # passive_deletes: the database applies ON DELETE rules; the ORM does not load children first.
    sessions: Mapped[list["UserSession"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    articles: Mapped[list["Article"]] = relationship(
        back_populates="author",
        passive_deletes="all",
    )
    saved_articles: Mapped[list["SavedArticle"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    comments: Mapped[list["Comment"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    newsletter_subscriptions: Mapped[list["NewsletterSubscription"]] = relationship(
        back_populates="user",
        passive_deletes=True,
    )
    event_rsvps: Mapped[list["EventRsvp"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    membership: Mapped[Optional["MembershipSubscription"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
        uselist=False,
    )


class UserSession(Base):
    """Login session; validity is checked against expires_at at read time."""

    __tablename__ = "sessions"
    __table_args__ = (Index("idx_sessions_user", "user_id"),)

    id: Mapped[str] = id_column()
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    user: Mapped[User] = relationship(back_populates="sessions")

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at <= (now or utcnow())


class _TokenMixin:
    # user_id is not a foreign key: token rows survive deletion of their user.
    id: Mapped[str] = id_column()
    token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    created_at: Mapped[datetime] = created_at_column()

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at <= (now or utcnow())


class EmailVerificationToken(_TokenMixin, Base):
    __tablename__ = "email_verification_tokens"


class PasswordResetToken(_TokenMixin, Base):
    __tablename__ = "password_reset_tokens"


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.menfem.modules.content.models import (  # noqa: E402,F401
    Article,
    ArticleTag,
    Category,
    Comment,
    SavedArticle,
    Tag,
)
from app.menfem.modules.newsletter.models import NewsletterSubscription  # noqa: E402,F401
from app.menfem.modules.events.models import Event, EventRsvp, RsvpStatus  # noqa: E402,F401
from app.menfem.modules.membership.models import MembershipSubscription, SubscriptionStatus  # noqa: E402,F401
