from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from app.menfem import store
from app.menfem.errors import NotFound, ValidationError
from app.menfem.modules.events.models import Event, EventRsvp, RsvpStatus
from app.menfem.utils import clean, parse_bool, parse_datetime, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.menfem.models import User

logger = logging.getLogger(__name__)

# Whether an RSVP in this state occupies one unit of capacity.
HOLDS_SEAT: dict[RsvpStatus, bool] = {
    RsvpStatus.CONFIRMED: True,
    RsvpStatus.WAITLISTED: False,
    RsvpStatus.CANCELLED: False,
}


def parse_status(value: "str | RsvpStatus") -> RsvpStatus:
    try:
        return RsvpStatus(value)
    except ValueError as e:
        allowed = ", ".join(st.value for st in RsvpStatus)
        raise ValidationError(f"Invalid RSVP status. Must be one of: {allowed}", entity="EventRsvp", field="status") from e


def _parse_when(payload: dict, key: str) -> datetime | None:
    try:
        return parse_datetime(payload.get(key))
    except ValueError as e:
        raise ValidationError(f"{key} must be an ISO-8601 timestamp.", entity="Event", field=key) from e


def _parse_flag(payload: dict, key: str) -> bool:
    raw = payload.get(key)
    if raw is None:
        return False
    try:
        return parse_bool(raw)
    except ValueError as e:
        raise ValidationError(f"{key} must be true or false.", entity="Event", field=key) from e


def _parse_capacity(raw) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        capacity = int(raw)
    except (TypeError, ValueError) as e:
        raise ValidationError("Capacity must be an integer.", entity="Event", field="capacity") from e
    if capacity < 1:
        raise ValidationError("Capacity must be at least 1.", entity="Event", field="capacity")
    return capacity


def validate_event_payload(payload: dict) -> list[str]:
    """Validate event creation payload. Returns list of errors."""
    errors = []
    for key in ("title", "description", "location"):
        if not clean(payload.get(key)):
            errors.append(f"{key.capitalize()} is required.")
    start_at = _parse_when(payload, "start_at")
    end_at = _parse_when(payload, "end_at")
    if start_at is None or end_at is None:
        errors.append("Start and end times are required.")
    elif end_at <= start_at:
        errors.append("End time must be after start time.")
    return errors


def create_event(s: "Session", payload: dict) -> Event:
    errors = validate_event_payload(payload)
    if errors:
        raise ValidationError(" ".join(errors), entity="Event")
    return store.create(
        s,
        Event,
        title=clean(payload.get("title")),
        description=clean(payload.get("description")),
        location=clean(payload.get("location")),
        start_at=_parse_when(payload, "start_at"),
        end_at=_parse_when(payload, "end_at"),
        capacity=_parse_capacity(payload.get("capacity")),
        image=clean(payload.get("image")),
        is_published=_parse_flag(payload, "is_published"),
    )


def update_event(s: "Session", event: Event, payload: dict) -> Event:
    changes: dict[str, object] = {}
    for key in ("title", "description", "location"):
        if key in payload:
            value = clean(payload.get(key))
            if not value:
                raise ValidationError(f"{key.capitalize()} is required.", entity="Event", field=key)
            changes[key] = value
    for key in ("start_at", "end_at"):
        if key in payload:
            value = _parse_when(payload, key)
            if value is None:
                raise ValidationError(f"{key} is required.", entity="Event", field=key)
            changes[key] = value
    start_at = changes.get("start_at", event.start_at)
    end_at = changes.get("end_at", event.end_at)
    if end_at <= start_at:  # type: ignore[operator]
        raise ValidationError("End time must be after start time.", entity="Event", field="end_at")
    if "capacity" in payload:
        changes["capacity"] = _parse_capacity(payload.get("capacity"))
    if "image" in payload:
        changes["image"] = clean(payload.get("image"))
    if "is_published" in payload:
        changes["is_published"] = _parse_flag(payload, "is_published")
    return store.update(s, event, **changes)


def delete_event(s: "Session", event: Event) -> None:
    store.delete(s, event)


def get_event(s: "Session", event_id: str, *, published_only: bool = True) -> Event:
    event = store.get(s, Event, event_id)
    if published_only and not event.is_published:
        raise NotFound("Event not found.", entity="Event")
    return event


def list_published_events(
    s: "Session",
    *,
    upcoming_only: bool = False,
    now: datetime | None = None,
    cursor: str | None = None,
    per_page: int | None = None,
) -> store.Page:
    """Soonest first (start_at asc, id asc)."""
    stmt = select(Event).where(Event.is_published.is_(True))
    if upcoming_only:
        stmt = stmt.where(Event.end_at >= (now or utcnow()))
    return store.keyset_page(
        s,
        stmt,
        order_column=Event.start_at,
        id_column=Event.id,
        descending=False,
        cursor=cursor,
        per_page=per_page,
    )


def list_all_events(s: "Session", *, page: int = 1, per_page: int | None = None) -> store.Page:
    stmt = select(Event).order_by(Event.start_at.desc(), Event.id.desc())
    return store.paginate(s, stmt, page=page, per_page=per_page)


# ---------- RSVPs ----------
def _lock_event(s: "Session", event_id: str) -> Event:
    # Serializes capacity checks per event. SQLite omits FOR UPDATE.
    event = s.scalars(
        select(Event).where(Event.id == event_id).with_for_update().execution_options(populate_existing=True)
    ).one_or_none()
    if event is None:
        raise NotFound("Event not found.", entity="Event")
    return event


def confirmed_count(s: "Session", event: Event) -> int:
    stmt = (
        select(func.count())
        .select_from(EventRsvp)
        .where(EventRsvp.event_id == event.id, EventRsvp.status == RsvpStatus.CONFIRMED)
    )
    return s.scalar(stmt) or 0


def has_free_seat(s: "Session", event: Event) -> bool:
    return event.capacity is None or confirmed_count(s, event) < event.capacity


def get_rsvp(s: "Session", user: "User", event: Event) -> EventRsvp | None:
    return store.find_by(s, EventRsvp, user_id=user.id, event_id=event.id)


def rsvp(s: "Session", user: "User", event_id: str) -> EventRsvp:
    """
    Reserve a seat or join the waitlist. The capacity check and the write run
    in the caller's transaction; commit once after this returns.
    An existing RSVP for (user, event) is updated in place.
    """
    event = _lock_event(s, event_id)
    if not event.is_published:
        raise NotFound("Event not found.", entity="Event")

    existing = get_rsvp(s, user, event)
    if existing is not None and HOLDS_SEAT[existing.status]:
        return existing

    status = RsvpStatus.CONFIRMED if has_free_seat(s, event) else RsvpStatus.WAITLISTED
    if existing is None:
        row = store.create(s, EventRsvp, user_id=user.id, event_id=event.id, status=status)
    else:
        row = store.update(s, existing, status=status)
    if status is RsvpStatus.WAITLISTED:
        logger.info("RSVP waitlisted event_id=%s user_id=%s", event.id, user.id)
    return row


def cancel_rsvp(s: "Session", user: "User", event_id: str) -> EventRsvp:
    """Cancel and, if a seat was freed, promote the oldest waitlisted RSVP."""
    event = _lock_event(s, event_id)
    row = get_rsvp(s, user, event)
    if row is None:
        raise NotFound("RSVP not found.", entity="EventRsvp")
    freed_seat = HOLDS_SEAT[row.status]
    store.update(s, row, status=RsvpStatus.CANCELLED)
    if freed_seat:
        promote_waitlisted(s, event)
    return row


def promote_waitlisted(s: "Session", event: Event) -> list[EventRsvp]:
    promoted: list[EventRsvp] = []
    stmt = (
        select(EventRsvp)
        .where(EventRsvp.event_id == event.id, EventRsvp.status == RsvpStatus.WAITLISTED)
        .order_by(EventRsvp.created_at.asc(), EventRsvp.id.asc())
    )
    for row in s.scalars(stmt).all():
        if not has_free_seat(s, event):
            break
        store.update(s, row, status=RsvpStatus.CONFIRMED)
        promoted.append(row)
        logger.info("RSVP promoted from waitlist event_id=%s user_id=%s", event.id, row.user_id)
    return promoted


def set_rsvp_status(s: "Session", row: EventRsvp, status: "str | RsvpStatus") -> EventRsvp:
    """Write any status; transitions are not constrained at this layer."""
    return store.update(s, row, status=parse_status(status))


def event_attendance(s: "Session", event: Event) -> dict[str, int]:
    counts = {st.value: 0 for st in RsvpStatus}
    stmt = (
        select(EventRsvp.status, func.count())
        .where(EventRsvp.event_id == event.id)
        .group_by(EventRsvp.status)
    )
    for status, n in s.execute(stmt):
        counts[RsvpStatus(status).value] = n
    return counts
