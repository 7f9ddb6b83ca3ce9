# keys/views.py
import logging

from flask import request

from . import keys_bp
from key_events.services import latest_event_by_key
from key_loans.services import active_loan_for_key, find_conflicting_keys
from utilities.database import db, Key, KeySystem, key_loan_keys, log_activity
from utilities.errors import BadRequest, Conflict, Forbidden, NotFound
from utilities.responses import content, paginate_select, query_flag
from utilities.schemas import BulkDeleteKeys, BulkUpdateFlex, KeyCreate, KeyUpdate, load_body
from utilities.search import build_search

logger = logging.getLogger(__name__)

KEY_COLUMNS = {
    "keyName": Key.key_name,
    "keyType": Key.key_type,
    "keySequenceNumber": Key.key_sequence_number,
    "flexNumber": Key.flex_number,
    "rentalObjectCode": Key.rental_object_code,
    "keySystemId": Key.key_system_id,
    "disposed": Key.disposed,
    "createdAt": Key.created_at,
    "updatedAt": Key.updated_at,
}


# --- Helpers ---

def _get_key_or_404(key_id: str) -> Key:
    key = db.session.get(Key, key_id)
    if key is None:
        raise NotFound("Key not found")
    return key


def _apply_disposed_filter(stmt):
    """Hide disposed keys unless the caller asks for them."""
    if query_flag("includeDisposed", False):
        return stmt
    disposed = query_flag("disposed")
    if disposed is None:
        return stmt.where(Key.disposed.is_(False))
    return stmt.where(Key.disposed.is_(disposed))


def _ensure_key_system(key_system_id):
    if key_system_id and db.session.get(KeySystem, key_system_id) is None:
        raise BadRequest("Key system not found", keySystemId=key_system_id)


def _detach_from_loans(key_ids):
    # Delete link rows manually (for databases without CASCADE)
    db.session.execute(key_loan_keys.delete().where(key_loan_keys.c.key_id.in_(list(key_ids))))


def _ensure_deletable(keys):
    protected = [key.id for key in keys if key.is_protected]
    if protected:
        raise Forbidden("Master keys (HN) and property keys (FS) cannot be deleted", conflicting_keys=protected)
    loaned = find_conflicting_keys([key.id for key in keys])
    if loaned:
        raise Conflict("Cannot delete keys with active loans", conflicting_keys=loaned)


def _ensure_disposable(key: Key) -> None:
    if find_conflicting_keys([key.id]):
        raise Conflict("Cannot dispose a key with an active loan", conflicting_keys=[key.id])


# --- Collection ---

@keys_bp.route("", methods=["GET"])
def list_keys():
    stmt = _apply_disposed_filter(db.select(Key)).order_by(Key.key_name, Key.key_sequence_number)
    return paginate_select(stmt)


@keys_bp.route("/search", methods=["GET"])
def search_keys():
    stmt = build_search(Key, KEY_COLUMNS, ("keyName", "rentalObjectCode"))
    if "disposed" not in request.args:
        stmt = _apply_disposed_filter(stmt)
    return paginate_select(stmt.order_by(Key.key_name, Key.key_sequence_number))


@keys_bp.route("/by-rental-object/<code>", methods=["GET"])
def keys_by_rental_object(code):
    stmt = _apply_disposed_filter(db.select(Key).where(Key.rental_object_code == code))
    keys = list(db.session.scalars(stmt.order_by(Key.key_type, Key.key_name, Key.key_sequence_number)))

    include_loans = query_flag("includeLoans", False)
    include_events = query_flag("includeEvents", False)
    latest = latest_event_by_key([key.id for key in keys]) if include_events else {}

    rows = []
    for key in keys:
        row = key.to_dict()
        if include_loans:
            loan = active_loan_for_key(key.id)
            row["activeLoan"] = loan.to_dict() if loan else None
        if include_events:
            event = latest.get(key.id)
            row["latestEvent"] = event.to_dict() if event else None
        rows.append(row)
    return content(rows)


@keys_bp.route("", methods=["POST"])
def create_key():
    body = load_body(KeyCreate)
    _ensure_key_system(body.key_system_id)
    key = Key(**body.model_dump())
    db.session.add(key)
    db.session.flush()
    log_activity("creation", "key", target=key, description=f"Created key {key.key_name} ({key.key_type})")
    db.session.commit()
    return content(key.to_dict(), 201)


@keys_bp.route("/bulk-delete", methods=["POST"])
def bulk_delete_keys():
    body = load_body(BulkDeleteKeys)
    ids = list(dict.fromkeys(body.key_ids))
    keys = list(db.session.scalars(db.select(Key).where(Key.id.in_(ids))))
    missing = sorted(set(ids) - {key.id for key in keys})
    if missing:
        raise NotFound("One or more keys were not found", missingKeys=missing)
    _ensure_deletable(keys)
    _detach_from_loans(ids)

    for key in keys:
        log_activity("delete", "key", object_id=key.id, description=f"Bulk deleted key {key.key_name}")
        db.session.delete(key)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Bulk delete of %d keys failed", len(keys))
        raise
    return content({"deletedCount": len(keys)})


@keys_bp.route("/bulk-update-flex", methods=["POST"])
def bulk_update_flex():
    body = load_body(BulkUpdateFlex)
    keys = list(db.session.scalars(db.select(Key).where(Key.rental_object_code == body.rental_object_code)))
    for key in keys:
        key.flex_number = body.flex_number
    if keys:
        log_activity(
            "update", "key", object_id=keys[0].id,
            description=f"Set flex number {body.flex_number} on {len(keys)} key(s) for {body.rental_object_code}",
        )
    db.session.commit()
    return content({"updatedCount": len(keys)})


# --- Item ---

@keys_bp.route("/<key_id>", methods=["GET"])
def get_key(key_id):
    return content(_get_key_or_404(key_id).to_dict())


@keys_bp.route("/<key_id>", methods=["PUT", "PATCH"])
def update_key(key_id):
    key = _get_key_or_404(key_id)
    changes = load_body(KeyUpdate).model_dump(exclude_unset=True)
    if "key_system_id" in changes:
        _ensure_key_system(changes["key_system_id"])
    if changes.get("disposed") and not key.disposed:
        _ensure_disposable(key)
    for field, value in changes.items():
        setattr(key, field, value)
    log_activity("update", "key", target=key, description=f"Updated key {key.key_name}")
    db.session.commit()
    return content(key.to_dict())


@keys_bp.route("/<key_id>/dispose", methods=["POST"])
def dispose_key(key_id):
    key = _get_key_or_404(key_id)
    _ensure_disposable(key)
    key.disposed = True
    log_activity("update", "key", target=key, description=f"Disposed key {key.key_name}")
    db.session.commit()
    return content(key.to_dict())


@keys_bp.route("/<key_id>", methods=["DELETE"])
def delete_key(key_id):
    key = _get_key_or_404(key_id)
    _ensure_deletable([key])
    _detach_from_loans([key.id])
    log_activity("delete", "key", object_id=key.id, description=f"Deleted key {key.key_name}")
    db.session.delete(key)
    db.session.commit()
    return "", 204
