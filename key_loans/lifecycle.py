# key_loans/lifecycle.py
"""
Loan, return, switch and transfer workflows.

Each workflow validates everything up front, then writes its loans,
receipts and log rows in a single transaction.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from key_loans.services import active_loans_for_keys, find_conflicting_keys, load_keys, unique_ids
from utilities.database import db, Key, KeyLoan, Receipt, log_activity, utc_now
from utilities.errors import BadRequest, Conflict, NotFound
from utilities.schemas import LoanKeysRequest, ReturnKeysRequest, SwitchKeysRequest, TransferKeysRequest

logger = logging.getLogger(__name__)


def _commit() -> None:
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Key loan transaction failed")
        raise


def _ensure_loanable(keys: List[Key], exclude_loan_ids: Optional[Iterable[str]] = None) -> None:
    disposed = [key.id for key in keys if key.disposed]
    if disposed:
        raise BadRequest("Disposed keys cannot be loaned", conflicting_keys=disposed)
    conflicts = find_conflicting_keys([key.id for key in keys], exclude_loan_ids)
    if conflicts:
        raise Conflict("One or more keys are already in an active loan", conflicting_keys=conflicts)


def _open_loan(keys: List[Key], *, loan_type: str, contact: Optional[str], contact2: Optional[str],
               contact_person: Optional[str], description: Optional[str], user_name: str) -> KeyLoan:
    # picked_up_at stays empty until the signed receipt is uploaded
    loan = KeyLoan(
        loan_type=loan_type,
        contact=contact,
        contact2=contact2,
        contact_person=contact_person,
        description=description,
        created_by=user_name,
        updated_by=user_name,
    )
    loan.key_records = list(keys)
    db.session.add(loan)
    db.session.flush()
    log_activity(
        "creation", "keyLoan", target=loan, user_name=user_name,
        description=f"Loaned {len(keys)} key(s) to {contact or contact_person or 'unknown'}",
    )
    return loan


def _close_loan(loan: KeyLoan, user_name: str, available_from=None) -> None:
    now = utc_now()
    loan.returned_at = now
    loan.available_to_next_tenant_from = available_from or now
    loan.updated_by = user_name
    log_activity(
        "update", "keyLoan", target=loan, user_name=user_name,
        description=f"Returned {len(loan.key_records)} key(s)",
    )


def _issue_receipt(loan: KeyLoan, receipt_type: str, user_name: str) -> Receipt:
    receipt = Receipt(key_loan=loan, receipt_type=receipt_type, type="PHYSICAL")
    db.session.add(receipt)
    db.session.flush()
    log_activity(
        "creation", "receipt", target=receipt, user_name=user_name,
        description=f"{receipt_type.title()} receipt for key loan {loan.id}",
    )
    return receipt


def loan_keys(req: LoanKeysRequest, user_name: str) -> Dict[str, Any]:
    keys = load_keys(req.key_ids)
    _ensure_loanable(keys)

    loan = _open_loan(
        keys,
        loan_type=req.loan_type,
        contact=req.contact,
        contact2=req.contact2,
        contact_person=req.contact_person,
        description=req.description,
        user_name=user_name,
    )
    receipt = _issue_receipt(loan, "LOAN", user_name)
    _commit()
    logger.info("Key loan %s created with %d key(s)", loan.id, len(keys))
    return {"keyLoanId": loan.id, "receiptId": receipt.id}


def return_keys(req: ReturnKeysRequest, user_name: str) -> Dict[str, Any]:
    key_ids = unique_ids(req.key_ids)
    load_keys(key_ids)
    loans = active_loans_for_keys(key_ids)
    if not loans:
        raise NotFound("No active loans found for the given keys")

    requested = set(key_ids)
    for loan in loans:
        missing = [kid for kid in loan.key_ids if kid not in requested]
        if missing:
            raise BadRequest(
                f"All keys in the loan must be returned together ({len(missing)} key(s) missing)",
                keyLoanId=loan.id,
                missingKeys=missing,
            )

    receipts = []
    for loan in loans:
        _close_loan(loan, user_name, req.available_to_next_tenant_from)
        receipts.append(_issue_receipt(loan, "RETURN", user_name))
    _commit()
    logger.info("Returned key loans %s", ", ".join(loan.id for loan in loans))
    return {"keyLoanIds": [loan.id for loan in loans], "receiptIds": [r.id for r in receipts]}


def switch_keys(req: SwitchKeysRequest, user_name: str) -> Dict[str, Any]:
    """Move whole loans to new contacts, keeping every key of each loan."""
    key_ids = unique_ids(req.key_ids)
    load_keys(key_ids)
    loans = active_loans_for_keys(key_ids)
    if not loans:
        raise NotFound("No active loans found for the given keys")

    return_receipts, new_loans, new_receipts = [], [], []
    for old in loans:
        keys = list(old.key_records)
        _close_loan(old, user_name)
        return_receipts.append(_issue_receipt(old, "RETURN", user_name))
        db.session.flush()

        new = _open_loan(
            keys,
            loan_type=old.loan_type,
            contact=req.contact,
            contact2=req.contact2,
            contact_person=old.contact_person,
            description=old.description,
            user_name=user_name,
        )
        new_loans.append(new)
        new_receipts.append(_issue_receipt(new, "LOAN", user_name))
    _commit()
    return {
        "returnReceiptIds": [r.id for r in return_receipts],
        "newKeyLoanIds": [loan.id for loan in new_loans],
        "newLoanReceiptIds": [r.id for r in new_receipts],
    }


def transfer_keys(req: TransferKeysRequest, user_name: str) -> Dict[str, Any]:
    """Close ``from_loan_ids`` and open one loan holding the new keys plus the carried-over ones."""
    loan_ids = unique_ids(req.from_loan_ids)
    loans = []
    for loan_id in loan_ids:
        loan = db.session.get(KeyLoan, loan_id)
        if loan is None:
            raise NotFound("Key loan not found", keyLoanId=loan_id)
        if not loan.is_active:
            raise BadRequest("Key loan has already been returned", keyLoanId=loan_id)
        loans.append(loan)

    new_keys = load_keys(req.key_ids)
    _ensure_loanable(new_keys, exclude_loan_ids=loan_ids)

    carried = [key for loan in loans for key in loan.key_records if not key.disposed]
    combined = list({key.id: key for key in [*new_keys, *carried]}.values())
    if not combined:
        raise BadRequest("Nothing to transfer: no keys left after removing disposed keys")

    return_receipts = []
    for loan in loans:
        _close_loan(loan, user_name)
        return_receipts.append(_issue_receipt(loan, "RETURN", user_name))
    db.session.flush()

    new = _open_loan(
        combined,
        loan_type=req.loan_type,
        contact=req.contact,
        contact2=req.contact2,
        contact_person=req.contact_person,
        description=req.description,
        user_name=user_name,
    )
    receipt = _issue_receipt(new, "LOAN", user_name)
    _commit()
    return {
        "keyLoan": new.to_dict(),
        "receiptId": receipt.id,
        "returnReceiptIds": [r.id for r in return_receipts],
        "transferred": len(combined) - len(new_keys),
        "new": len(new_keys),
    }
