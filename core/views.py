# core/views.py
import logging

import requests
from flask import current_app, jsonify, request

from . import core_bp
from core.adapters import KeysAdapter, KeysServiceClient, Result, http_status_for

logger = logging.getLogger(__name__)


def _adapter() -> KeysAdapter:
    session = current_app.extensions.get("keys_session")
    if session is None:
        session = requests.Session()
        current_app.extensions["keys_session"] = session
    client = KeysServiceClient(
        current_app.config["KEYS_SERVICE_URL"],
        timeout=current_app.config["KEYS_SERVICE_TIMEOUT"],
        session=session,
        user_name=request.headers.get("X-User-Name"),
    )
    return KeysAdapter(client)


def _error(result: Result):
    body = {"error": result.err}
    if isinstance(result.body, dict):
        body["details"] = result.body
    return jsonify(body), http_status_for(result.err)


@core_bp.route("/rental-objects/<code>/keys", methods=["GET"])
def rental_object_keys(code):
    """Keys of a rental object with their loans split into active and returned."""
    adapter = _adapter()

    keys = adapter.keys.by_rental_object(code, include_loans=True, include_events=True)
    if not keys.ok:
        return _error(keys)
    loans = adapter.key_loans.by_rental_object(code)
    if not loans.ok:
        return _error(loans)

    active, returned = [], []
    for loan in loans.data or []:
        receipts = adapter.receipts.by_key_loan(loan["id"])
        if not receipts.ok:
            return _error(receipts)
        loan = {**loan, "receipts": receipts.data or []}
        (returned if loan.get("returnedAt") else active).append(loan)

    return jsonify({
        "rentalObjectCode": code,
        "keys": keys.data or [],
        "activeLoans": active,
        "returnedLoans": returned,
    })


@core_bp.route("/key-loans/<loan_id>", methods=["GET"])
def key_loan_with_receipts(loan_id):
    adapter = _adapter()
    loan = adapter.key_loans.get(loan_id)
    if not loan.ok:
        return _error(loan)
    receipts = adapter.receipts.by_key_loan(loan_id)
    if not receipts.ok:
        return _error(receipts)
    return jsonify({**loan.data, "receipts": receipts.data or []})


@core_bp.route("/key-loans/loan", methods=["POST"])
def loan_keys():
    payload = request.get_json(silent=True) or {}
    result = _adapter().key_loans.loan(payload)
    if not result.ok:
        return _error(result)
    return jsonify(result.data), 201


@core_bp.route("/key-loans/return", methods=["POST"])
def return_keys():
    payload = request.get_json(silent=True) or {}
    result = _adapter().key_loans.return_keys(payload)
    if not result.ok:
        return _error(result)
    return jsonify(result.data)


@core_bp.route("/key-bundles/<bundle_id>", methods=["GET"])
def key_bundle_with_loan_status(bundle_id):
    result = _adapter().key_bundles.with_loan_status(bundle_id)
    if not result.ok:
        return _error(result)
    return jsonify(result.data)


@core_bp.route("/receipts/<receipt_id>/download", methods=["GET"])
def receipt_download_url(receipt_id):
    result = _adapter().receipts.download_url(receipt_id)
    if not result.ok:
        return _error(result)
    return jsonify(result.data)
