from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.menfem.models import Base, id_column
from app.menfem.utils import utcnow

if TYPE_CHECKING:
    from app.menfem.models import User


class NewsletterSubscription(Base):
    __tablename__ = "newsletter_subscriptions"
    __table_args__ = (Index("idx_newsletter_active", "is_active"),)

    id: Mapped[str] = id_column()
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    # Survives user deletion; the link is cleared instead.
    user_id: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    subscribed_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    unsubscribed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    confirm_token: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)

    user: Mapped[Optional["User"]] = relationship(back_populates="newsletter_subscriptions")

    @property
    def is_confirmed(self) -> bool:
        return self.confirm_token is None
