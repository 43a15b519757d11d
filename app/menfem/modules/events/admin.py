from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.menfem import paths, store
from app.menfem.api import event_to_dict, page_to_dict, request_payload, rsvp_to_dict
from app.menfem.rbac import admin_required
from app.menfem.db import db_session
from app.menfem.modules.events.models import Event, EventRsvp
from app.menfem.modules.events.service import (
    create_event,
    delete_event,
    event_attendance,
    list_all_events,
    promote_waitlisted,
    set_rsvp_status,
    update_event,
)

bp = Blueprint("events_admin", __name__)

EVENTS = paths.ADMIN["EVENTS"]


@bp.get(EVENTS)
@admin_required
def events_list():
    s = db_session()
    try:
        page = int(request.args.get("page") or 1)
    except ValueError:
        page = 1
    return jsonify(page_to_dict(list_all_events(s, page=page, per_page=50), event_to_dict))


@bp.post(EVENTS)
@admin_required
def events_create():
    s = db_session()
    event = create_event(s, request_payload())
    s.commit()
    return jsonify({"ok": True, "event": event_to_dict(event)}), 201


@bp.patch(EVENTS + "/<event_id>")
@admin_required
def event_update(event_id: str):
    s = db_session()
    event = update_event(s, store.get(s, Event, event_id), request_payload())
    # Raised capacity may open seats for the waitlist.
    promote_waitlisted(s, event)
    s.commit()
    return jsonify({"ok": True, "event": event_to_dict(event)})


@bp.delete(EVENTS + "/<event_id>")
@admin_required
def event_delete(event_id: str):
    s = db_session()
    delete_event(s, store.get(s, Event, event_id))
    s.commit()
    return jsonify({"ok": True})


@bp.get(EVENTS + "/<event_id>/rsvps")
@admin_required
def event_rsvps(event_id: str):
    s = db_session()
    event = store.get(s, Event, event_id)
    return jsonify(
        {
            "ok": True,
            "attendance": event_attendance(s, event),
            "items": [rsvp_to_dict(r) for r in event.rsvps],
        }
    )


@bp.patch(EVENTS + "/<event_id>/rsvps/<rsvp_id>")
@admin_required
def rsvp_set_status(event_id: str, rsvp_id: str):
    s = db_session()
    row = store.get(s, EventRsvp, rsvp_id)
    if row.event_id != event_id:
        return jsonify({"ok": False, "error": "not_found", "message": "RSVP not found."}), 404
    set_rsvp_status(s, row, request_payload().get("status") or "")
    s.commit()
    return jsonify({"ok": True, "rsvp": rsvp_to_dict(row)})
