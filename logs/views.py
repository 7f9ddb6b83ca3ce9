# logs/views.py
from flask import request

from . import logs_bp
from utilities.database import db, Log
from utilities.errors import NotFound
from utilities.responses import content, paginate_select
from utilities.schemas import LogCreate, load_body

LOG_FILTERS = {
    "objectType": Log.object_type,
    "eventType": Log.event_type,
    "userName": Log.user_name,
    "objectId": Log.object_id,
}


@logs_bp.route("", methods=["GET"])
def list_logs():
    stmt = db.select(Log).order_by(Log.event_time.desc())
    for param, column in LOG_FILTERS.items():
        value = request.args.get(param)
        if value:
            stmt = stmt.where(column == value)
    return paginate_select(stmt)


@logs_bp.route("/object/<object_id>", methods=["GET"])
def logs_for_object(object_id):
    stmt = db.select(Log).where(Log.object_id == object_id).order_by(Log.event_time.desc())
    return content([entry.to_dict() for entry in db.session.scalars(stmt)])


@logs_bp.route("/<log_id>", methods=["GET"])
def get_log(log_id):
    entry = db.session.get(Log, log_id)
    if entry is None:
        raise NotFound("Log entry not found")
    return content(entry.to_dict())


@logs_bp.route("", methods=["POST"])
def create_log():
    body = load_body(LogCreate)
    entry = Log(**body.model_dump())
    db.session.add(entry)
    db.session.commit()
    return content(entry.to_dict(), 201)
