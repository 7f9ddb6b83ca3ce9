# key_bundles/views.py
from . import key_bundles_bp
from key_events.services import latest_event_by_key
from key_loans.services import active_loan_for_key, load_keys
from utilities.database import db, Key, KeyBundle, log_activity
from utilities.errors import BadRequest, NotFound
from utilities.responses import content, paginate_list, paginate_select
from utilities.schemas import KeyBundleCreate, KeyBundleUpdate, load_body
from utilities.search import build_search

KEY_BUNDLE_COLUMNS = {
    "name": KeyBundle.name,
    "description": KeyBundle.description,
}


def _get_bundle_or_404(bundle_id: str) -> KeyBundle:
    bundle = db.session.get(KeyBundle, bundle_id)
    if bundle is None:
        raise NotFound("Key bundle not found")
    return bundle


def _validated_key_ids(key_ids):
    ids = list(dict.fromkeys(key_ids))
    try:
        load_keys(ids)
    except NotFound as exc:
        raise BadRequest("Bundle references unknown keys", **exc.extra)
    return ids


@key_bundles_bp.route("", methods=["GET"])
def list_key_bundles():
    return paginate_select(db.select(KeyBundle).order_by(KeyBundle.name))


@key_bundles_bp.route("/search", methods=["GET"])
def search_key_bundles():
    stmt = build_search(KeyBundle, KEY_BUNDLE_COLUMNS, ("name", "description"))
    return paginate_select(stmt.order_by(KeyBundle.name))


@key_bundles_bp.route("/by-key/<key_id>", methods=["GET"])
def key_bundles_by_key(key_id):
    bundles = db.session.scalars(db.select(KeyBundle).order_by(KeyBundle.name))
    return paginate_list([bundle for bundle in bundles if key_id in (bundle.keys or [])])


@key_bundles_bp.route("/<bundle_id>", methods=["GET"])
def get_key_bundle(bundle_id):
    return content(_get_bundle_or_404(bundle_id).to_dict())


@key_bundles_bp.route("/<bundle_id>/keys-with-loan-status", methods=["GET"])
def key_bundle_keys_with_loan_status(bundle_id):
    """Bundle keys annotated with their active maintenance loan and newest event."""
    bundle = _get_bundle_or_404(bundle_id)
    # keys deleted after bundling are skipped
    found = {key.id: key for key in db.session.scalars(db.select(Key).where(Key.id.in_(bundle.keys or [])))}
    keys = [found[kid] for kid in bundle.keys or [] if kid in found]
    latest = latest_event_by_key([key.id for key in keys])

    rows = []
    for key in keys:
        loan = active_loan_for_key(key.id, loan_type="MAINTENANCE")
        event = latest.get(key.id)
        rows.append({
            **key.to_dict(),
            "maintenanceLoan": loan.to_dict() if loan else None,
            "latestEvent": event.to_dict() if event else None,
        })
    return content({"bundle": bundle.to_dict(), "keys": rows})


@key_bundles_bp.route("", methods=["POST"])
def create_key_bundle():
    body = load_body(KeyBundleCreate)
    bundle = KeyBundle(name=body.name, description=body.description, keys=_validated_key_ids(body.keys))
    db.session.add(bundle)
    db.session.flush()
    log_activity("creation", "keyBundle", target=bundle, description=f"Created key bundle {bundle.name}")
    db.session.commit()
    return content(bundle.to_dict(), 201)


@key_bundles_bp.route("/<bundle_id>", methods=["PUT", "PATCH"])
def update_key_bundle(bundle_id):
    bundle = _get_bundle_or_404(bundle_id)
    changes = load_body(KeyBundleUpdate).model_dump(exclude_unset=True)
    if changes.get("keys") is not None:
        changes["keys"] = _validated_key_ids(changes["keys"])
    for field, value in changes.items():
        if value is not None or field == "description":
            setattr(bundle, field, value)
    log_activity("update", "keyBundle", target=bundle, description=f"Updated key bundle {bundle.name}")
    db.session.commit()
    return content(bundle.to_dict())


@key_bundles_bp.route("/<bundle_id>", methods=["DELETE"])
def delete_key_bundle(bundle_id):
    bundle = _get_bundle_or_404(bundle_id)
    log_activity("delete", "keyBundle", object_id=bundle.id, description=f"Deleted key bundle {bundle.name}")
    db.session.delete(bundle)
    db.session.commit()
    return "", 204
