# receipts/activation.py
"""
Receipt activation.

Storing a signed scan on a receipt is what makes a loan real: the loan gets
its pickup time and any outstanding ordered/received key events for the
loaned keys are closed. All of it happens in one transaction.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from key_events.services import complete_event, incomplete_events_for_keys
from utilities.database import db, Receipt, log_activity, utc_now

logger = logging.getLogger(__name__)

RECEIPT_NOT_FOUND = "receipt-not-found"
TRANSACTION_FAILED = "transaction-failed"


@dataclass
class ActivationResult:
    ok: bool
    key_loan_activated: bool = False
    key_events_completed: int = 0
    err: Optional[str] = None

    def to_dict(self):
        return {"keyLoanActivated": self.key_loan_activated, "keyEventsCompleted": self.key_events_completed}


def activate_receipt(receipt_id: str, file_id: str, user_name: Optional[str] = None) -> ActivationResult:
    receipt = db.session.get(Receipt, receipt_id)
    if receipt is None:
        return ActivationResult(ok=False, err=RECEIPT_NOT_FOUND)

    try:
        receipt.file_id = file_id
        log_activity(
            "creation", "signature", target=receipt, user_name=user_name,
            description=f"Signed {receipt.receipt_type.lower()} receipt uploaded",
        )

        activated, completed = False, 0
        loan = receipt.key_loan
        if receipt.receipt_type == "LOAN" and loan is not None and not loan.is_picked_up:
            loan.picked_up_at = utc_now()
            activated = True
            events = incomplete_events_for_keys(loan.key_ids)
            for event in events:
                complete_event(event)
            completed = len(events)
            log_activity(
                "update", "keyLoan", target=loan, user_name=user_name,
                description=f"Key loan activated, {completed} key event(s) completed",
            )

        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Activation of receipt %s failed", receipt_id)
        return ActivationResult(ok=False, err=TRANSACTION_FAILED)

    logger.info("Receipt %s activated (loan activated: %s, events completed: %d)", receipt_id, activated, completed)
    return ActivationResult(ok=True, key_loan_activated=activated, key_events_completed=completed)
