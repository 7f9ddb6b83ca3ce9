# key_events/views.py
from flask import request

from . import key_events_bp
from key_events.services import complete_event, events_for_key, keys_with_incomplete_events
from key_loans.services import load_keys
from utilities.database import db, KeyEvent, log_activity
from utilities.errors import BadRequest, Conflict, NotFound
from utilities.responses import content, paginate_select
from utilities.schemas import KeyEventCreate, KeyEventUpdate, load_body


def _get_event_or_404(event_id: str) -> KeyEvent:
    event = db.session.get(KeyEvent, event_id)
    if event is None:
        raise NotFound("Key event not found")
    return event


@key_events_bp.route("", methods=["GET"])
def list_key_events():
    return paginate_select(db.select(KeyEvent).order_by(KeyEvent.created_at.desc()))


@key_events_bp.route("/by-key/<key_id>", methods=["GET"])
def key_events_by_key(key_id):
    limit = request.args.get("limit", type=int)
    return content([event.to_dict() for event in events_for_key(key_id, limit)])


@key_events_bp.route("/<event_id>", methods=["GET"])
def get_key_event(event_id):
    return content(_get_event_or_404(event_id).to_dict())


@key_events_bp.route("", methods=["POST"])
def create_key_event():
    body = load_body(KeyEventCreate)
    keys = load_keys(body.keys)
    key_ids = [key.id for key in keys]

    busy = keys_with_incomplete_events(key_ids)
    if busy:
        raise Conflict("One or more keys have incomplete events", conflicting_keys=busy)

    event = KeyEvent(keys=key_ids, type=body.type, status="ORDERED", work_order_id=body.work_order_id)
    db.session.add(event)
    db.session.flush()
    if body.status == "COMPLETED":
        complete_event(event)
    else:
        event.status = body.status
    log_activity("creation", "keyEvent", target=event, description=f"{event.type} event for {len(key_ids)} key(s)")
    db.session.commit()
    return content(event.to_dict(), 201)


@key_events_bp.route("/<event_id>", methods=["PATCH", "PUT"])
def update_key_event(event_id):
    event = _get_event_or_404(event_id)
    changes = load_body(KeyEventUpdate).model_dump(exclude_unset=True)
    status = changes.get("status")
    if event.is_complete and status and status != "COMPLETED":
        raise BadRequest("A completed key event cannot be reopened")

    if "work_order_id" in changes:
        event.work_order_id = changes["work_order_id"]
    if status == "COMPLETED":
        complete_event(event)
    elif status:
        event.status = status

    log_activity("update", "keyEvent", target=event, description=f"{event.type} event is {event.status}")
    db.session.commit()
    return content(event.to_dict())
