from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Enum as SQLEnum, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.menfem.models import Base, created_at_column, id_column, updated_at_column

if TYPE_CHECKING:
    from app.menfem.models import User


class RsvpStatus(str, enum.Enum):
    CONFIRMED = "CONFIRMED"
    WAITLISTED = "WAITLISTED"
    CANCELLED = "CANCELLED"


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (Index("idx_events_published_start", "is_published", "start_at"),)

    id: Mapped[str] = id_column()
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    capacity: Mapped[int | None] = mapped_column(Integer, nullable=True)  # None = unlimited
    image: Mapped[str | None] = mapped_column(String(1024), nullable=True)  # URL
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    rsvps: Mapped[list["EventRsvp"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="EventRsvp.created_at",
    )


class EventRsvp(Base):
    """One row per (user, event); status changes are written in place."""

    __tablename__ = "event_rsvps"
    __table_args__ = (
        UniqueConstraint("user_id", "event_id", name="uq_event_rsvps_user_event"),
        Index("idx_event_rsvps_event_status", "event_id", "status"),
    )

    id: Mapped[str] = id_column()
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    event_id: Mapped[str] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[RsvpStatus] = mapped_column(
        SQLEnum(RsvpStatus, name="rsvp_status"),
        nullable=False,
        default=RsvpStatus.CONFIRMED,
    )
    created_at: Mapped[datetime] = created_at_column()
    updated_at: Mapped[datetime] = updated_at_column()

    user: Mapped["User"] = relationship(back_populates="event_rsvps")
    event: Mapped[Event] = relationship(back_populates="rsvps")
