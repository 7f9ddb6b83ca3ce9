# key_events/services.py
from typing import Dict, Iterable, List, Optional

from utilities.database import db, Key, KeyEvent

INCOMPLETE_STATUSES = ("ORDERED", "RECEIVED")


def _events_newest_first(statuses: Optional[Iterable[str]] = None) -> List[KeyEvent]:
    stmt = db.select(KeyEvent).order_by(KeyEvent.created_at.desc())
    if statuses:
        stmt = stmt.where(KeyEvent.status.in_(list(statuses)))
    return list(db.session.scalars(stmt))


def events_for_key(key_id: str, limit: Optional[int] = None) -> List[KeyEvent]:
    events = [event for event in _events_newest_first() if key_id in (event.keys or [])]
    return events[:limit] if limit else events


def latest_event_by_key(key_ids: Iterable[str]) -> Dict[str, KeyEvent]:
    wanted = set(key_ids)
    latest: Dict[str, KeyEvent] = {}
    for event in _events_newest_first():
        for key_id in event.keys or []:
            if key_id in wanted and key_id not in latest:
                latest[key_id] = event
    return latest


def incomplete_events_for_keys(key_ids: Iterable[str]) -> List[KeyEvent]:
    wanted = set(key_ids)
    return [
        event for event in _events_newest_first(INCOMPLETE_STATUSES)
        if wanted.intersection(event.keys or [])
    ]


def keys_with_incomplete_events(key_ids: Iterable[str]) -> List[str]:
    ids = list(dict.fromkeys(key_ids))
    busy = {kid for event in incomplete_events_for_keys(ids) for kid in event.keys or []}
    return [kid for kid in ids if kid in busy]


def complete_event(event: KeyEvent) -> None:
    """Mark ``event`` COMPLETED; a finished FLEX event bumps the keys' flex number."""
    if event.is_complete:
        return
    event.status = "COMPLETED"
    if event.type == "FLEX" and event.keys:
        for key in db.session.scalars(db.select(Key).where(Key.id.in_(event.keys))):
            key.flex_number = (key.flex_number or 0) + 1
