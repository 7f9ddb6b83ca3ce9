# key_notes/views.py
from . import key_notes_bp
from utilities.database import db, KeyNote, log_activity
from utilities.errors import NotFound
from utilities.responses import content
from utilities.schemas import KeyNoteCreate, KeyNoteUpdate, load_body


def _get_note_or_404(note_id: str) -> KeyNote:
    note = db.session.get(KeyNote, note_id)
    if note is None:
        raise NotFound("Key note not found")
    return note


@key_notes_bp.route("/by-rental-object/<code>", methods=["GET"])
def key_notes_by_rental_object(code):
    stmt = db.select(KeyNote).where(KeyNote.rental_object_code == code).order_by(KeyNote.created_at.desc())
    return content([note.to_dict() for note in db.session.scalars(stmt)])


@key_notes_bp.route("/<note_id>", methods=["GET"])
def get_key_note(note_id):
    return content(_get_note_or_404(note_id).to_dict())


@key_notes_bp.route("", methods=["POST"])
def create_key_note():
    body = load_body(KeyNoteCreate)
    note = KeyNote(rental_object_code=body.rental_object_code, description=body.description)
    db.session.add(note)
    db.session.flush()
    log_activity("creation", "keyNote", target=note, description=f"Note added for {note.rental_object_code}")
    db.session.commit()
    return content(note.to_dict(), 201)


@key_notes_bp.route("/<note_id>", methods=["PATCH", "PUT"])
def update_key_note(note_id):
    note = _get_note_or_404(note_id)
    for field, value in load_body(KeyNoteUpdate).model_dump(exclude_unset=True).items():
        setattr(note, field, value)
    log_activity("update", "keyNote", target=note, description=f"Note updated for {note.rental_object_code}")
    db.session.commit()
    return content(note.to_dict())


@key_notes_bp.route("/<note_id>", methods=["DELETE"])
def delete_key_note(note_id):
    note = _get_note_or_404(note_id)
    log_activity("delete", "keyNote", object_id=note.id, description=f"Note removed for {note.rental_object_code}")
    db.session.delete(note)
    db.session.commit()
    return "", 204
