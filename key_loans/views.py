# key_loans/views.py
import logging

from flask import request

from . import key_loans_bp
from key_loans import lifecycle
from key_loans.services import find_conflicting_keys, get_loan_or_404, load_keys
from utilities.database import db, Key, KeyLoan, current_user_name, key_loan_keys, log_activity
from utilities.errors import BadRequest, Conflict
from utilities.file_storage import file_storage
from utilities.responses import content, paginate_list, paginate_select, query_flag
from utilities.schemas import (
    KeyLoanCreate,
    KeyLoanUpdate,
    LoanKeysRequest,
    ReturnKeysRequest,
    SwitchKeysRequest,
    TransferKeysRequest,
    load_body,
)

logger = logging.getLogger(__name__)

SEARCH_PARAMS = ("q", "loanType", "minKeys", "maxKeys", "hasPickedUp", "hasReturned", "contact")


# --- Helpers ---

def _matches_query(loan: KeyLoan, needle: str) -> bool:
    haystack = [loan.contact, loan.contact2, loan.contact_person]
    for key in loan.key_records:
        haystack.extend([key.key_name, key.rental_object_code])
    return any(needle in value.lower() for value in haystack if value)


def _loans_for_rental_object(code: str):
    stmt = (
        db.select(KeyLoan)
        .join(key_loan_keys, key_loan_keys.c.key_loan_id == KeyLoan.id)
        .join(Key, Key.id == key_loan_keys.c.key_id)
        .where(Key.rental_object_code == code)
        .distinct()
        .order_by(KeyLoan.created_at.desc())
    )
    return list(db.session.scalars(stmt))


# --- Collection ---

@key_loans_bp.route("", methods=["GET"])
def list_key_loans():
    stmt = db.select(KeyLoan).order_by(KeyLoan.created_at.desc())
    return paginate_select(stmt)


@key_loans_bp.route("/search", methods=["GET"])
def search_key_loans():
    if not any(request.args.get(name) for name in SEARCH_PARAMS):
        raise BadRequest("At least one search parameter is required")

    stmt = db.select(KeyLoan).order_by(KeyLoan.created_at.desc())
    loan_type = request.args.get("loanType")
    if loan_type:
        stmt = stmt.where(KeyLoan.loan_type == loan_type.upper())
    contact = request.args.get("contact")
    if contact:
        stmt = stmt.where(db.or_(KeyLoan.contact == contact, KeyLoan.contact2 == contact))
    has_picked_up = query_flag("hasPickedUp")
    if has_picked_up is not None:
        column = KeyLoan.picked_up_at
        stmt = stmt.where(column.is_not(None) if has_picked_up else column.is_(None))
    has_returned = query_flag("hasReturned")
    if has_returned is not None:
        column = KeyLoan.returned_at
        stmt = stmt.where(column.is_not(None) if has_returned else column.is_(None))

    loans = list(db.session.scalars(stmt))

    needle = (request.args.get("q") or "").strip().lower()
    if needle:
        loans = [loan for loan in loans if _matches_query(loan, needle)]
    min_keys = request.args.get("minKeys", type=int)
    if min_keys is not None:
        loans = [loan for loan in loans if len(loan.key_records) >= min_keys]
    max_keys = request.args.get("maxKeys", type=int)
    if max_keys is not None:
        loans = [loan for loan in loans if len(loan.key_records) <= max_keys]
    if not query_flag("includeDisposed", False):
        # a loan whose every key is disposed is history
        loans = [loan for loan in loans if not loan.key_records or any(not k.disposed for k in loan.key_records)]

    return paginate_list(loans)


@key_loans_bp.route("/by-key/<key_id>", methods=["GET"])
def key_loans_by_key(key_id):
    stmt = (
        db.select(KeyLoan)
        .join(key_loan_keys, key_loan_keys.c.key_loan_id == KeyLoan.id)
        .where(key_loan_keys.c.key_id == key_id)
        .order_by(KeyLoan.created_at.desc())
    )
    return content([loan.to_dict() for loan in db.session.scalars(stmt)])


@key_loans_bp.route("/by-rental-object/<code>", methods=["GET"])
def key_loans_by_rental_object(code):
    loans = _loans_for_rental_object(code)

    contact = request.args.get("contact")
    if contact:
        loans = [loan for loan in loans if loan.contact == contact]
    contact2 = request.args.get("contact2")
    if contact2:
        loans = [loan for loan in loans if loan.contact2 == contact2]
    returned = query_flag("returned")
    if returned is not None:
        loans = [loan for loan in loans if (loan.returned_at is not None) == returned]

    include_receipts = bool(query_flag("includeReceipts", False))
    return content([loan.to_dict(include_receipts=include_receipts, include_key_details=True) for loan in loans])


@key_loans_bp.route("", methods=["POST"])
def create_key_loan():
    body = load_body(KeyLoanCreate)
    keys = load_keys(body.keys)
    conflicts = find_conflicting_keys([key.id for key in keys])
    if conflicts:
        raise Conflict("One or more keys are already in an active loan", conflicting_keys=conflicts)

    user_name = current_user_name()
    loan = KeyLoan(
        loan_type=body.loan_type,
        contact=body.contact,
        contact2=body.contact2,
        contact_person=body.contact_person,
        description=body.description,
        picked_up_at=body.picked_up_at,
        available_to_next_tenant_from=body.available_to_next_tenant_from,
        created_by=user_name,
        updated_by=user_name,
    )
    loan.key_records = keys
    db.session.add(loan)
    db.session.flush()
    log_activity("creation", "keyLoan", target=loan, description=f"Created key loan with {len(keys)} key(s)")
    db.session.commit()
    return content(loan.to_dict(), 201)


# --- Item ---

@key_loans_bp.route("/<loan_id>", methods=["GET"])
def get_key_loan(loan_id):
    loan = get_loan_or_404(loan_id)
    return content(loan.to_dict(include_receipts=True, include_key_details=True))


@key_loans_bp.route("/<loan_id>", methods=["PATCH", "PUT"])
def update_key_loan(loan_id):
    loan = get_loan_or_404(loan_id)
    body = load_body(KeyLoanUpdate)
    changes = body.model_dump(exclude_unset=True)

    keys = load_keys(changes.pop("keys")) if "keys" in changes else loan.key_records
    returned_at = changes["returned_at"] if "returned_at" in changes else loan.returned_at
    # an active loan, including one being reopened, must hold its keys exclusively
    if returned_at is None:
        conflicts = find_conflicting_keys([key.id for key in keys], exclude_loan_ids=[loan.id])
        if conflicts:
            raise Conflict("One or more keys are already in an active loan", conflicting_keys=conflicts)
    loan.key_records = list(keys)

    for field, value in changes.items():
        setattr(loan, field, value)
    loan.updated_by = current_user_name()
    log_activity("update", "keyLoan", target=loan, description="Updated key loan")
    db.session.commit()
    return content(loan.to_dict())


@key_loans_bp.route("/<loan_id>", methods=["DELETE"])
def delete_key_loan(loan_id):
    loan = get_loan_or_404(loan_id)
    file_ids = [receipt.file_id for receipt in loan.receipts if receipt.file_id]
    log_activity("delete", "keyLoan", object_id=loan.id, description="Deleted key loan")
    db.session.delete(loan)
    db.session.commit()
    for file_id in file_ids:
        file_storage.discard_file(file_id)
    return "", 204


# --- Workflows ---

@key_loans_bp.route("/loan", methods=["POST"])
def loan_keys():
    result = lifecycle.loan_keys(load_body(LoanKeysRequest), current_user_name())
    return content(result, 201)


@key_loans_bp.route("/return", methods=["POST"])
def return_keys():
    return content(lifecycle.return_keys(load_body(ReturnKeysRequest), current_user_name()))


@key_loans_bp.route("/switch", methods=["POST"])
def switch_keys():
    return content(lifecycle.switch_keys(load_body(SwitchKeysRequest), current_user_name()), 201)


@key_loans_bp.route("/transfer", methods=["POST"])
def transfer_keys():
    return content(lifecycle.transfer_keys(load_body(TransferKeysRequest), current_user_name()), 201)
