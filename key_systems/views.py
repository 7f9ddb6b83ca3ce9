# key_systems/views.py
from . import key_systems_bp
from utilities.database import db, Key, KeySystem, current_user_name, log_activity
from utilities.errors import Conflict, NotFound
from utilities.responses import content, paginate_select
from utilities.schemas import KeySystemCreate, KeySystemUpdate, load_body
from utilities.search import build_search

KEY_SYSTEM_COLUMNS = {
    "systemCode": KeySystem.system_code,
    "name": KeySystem.name,
    "manufacturer": KeySystem.manufacturer,
    "managingSupplier": KeySystem.managing_supplier,
    "type": KeySystem.type,
    "isActive": KeySystem.is_active,
    "description": KeySystem.description,
    "installationDate": KeySystem.installation_date,
    "createdAt": KeySystem.created_at,
}


def _get_system_or_404(system_id: str) -> KeySystem:
    system = db.session.get(KeySystem, system_id)
    if system is None:
        raise NotFound("Key system not found")
    return system


def _ensure_unique_code(code: str, exclude_id=None):
    stmt = db.select(KeySystem).where(KeySystem.system_code == code)
    if exclude_id:
        stmt = stmt.where(KeySystem.id != exclude_id)
    if db.session.scalars(stmt).first() is not None:
        raise Conflict(f"Key system with code {code} already exists")


@key_systems_bp.route("", methods=["GET"])
def list_key_systems():
    return paginate_select(db.select(KeySystem).order_by(KeySystem.system_code))


@key_systems_bp.route("/search", methods=["GET"])
def search_key_systems():
    stmt = build_search(KeySystem, KEY_SYSTEM_COLUMNS, ("systemCode", "name", "manufacturer"))
    return paginate_select(stmt.order_by(KeySystem.system_code))


@key_systems_bp.route("/<system_id>", methods=["GET"])
def get_key_system(system_id):
    return content(_get_system_or_404(system_id).to_dict())


@key_systems_bp.route("", methods=["POST"])
def create_key_system():
    body = load_body(KeySystemCreate)
    _ensure_unique_code(body.system_code)
    user_name = current_user_name()
    system = KeySystem(**body.model_dump(), created_by=user_name, updated_by=user_name)
    db.session.add(system)
    db.session.flush()
    log_activity("creation", "keySystem", target=system, description=f"Created key system {system.system_code}")
    db.session.commit()
    return content(system.to_dict(), 201)


@key_systems_bp.route("/<system_id>", methods=["PUT", "PATCH"])
def update_key_system(system_id):
    system = _get_system_or_404(system_id)
    changes = load_body(KeySystemUpdate).model_dump(exclude_unset=True)
    if changes.get("system_code"):
        _ensure_unique_code(changes["system_code"], exclude_id=system.id)
    for field, value in changes.items():
        setattr(system, field, value)
    system.updated_by = current_user_name()
    log_activity("update", "keySystem", target=system, description=f"Updated key system {system.system_code}")
    db.session.commit()
    return content(system.to_dict())


@key_systems_bp.route("/<system_id>", methods=["DELETE"])
def delete_key_system(system_id):
    system = _get_system_or_404(system_id)
    db.session.execute(db.update(Key).where(Key.key_system_id == system.id).values(key_system_id=None))
    log_activity("delete", "keySystem", object_id=system.id, description=f"Deleted key system {system.system_code}")
    db.session.delete(system)
    db.session.commit()
    return "", 204
