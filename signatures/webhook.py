# signatures/webhook.py
"""
SimpleSign status callbacks.

A ``signed`` callback for a receipt pulls the signed PDF from SimpleSign,
stores it in the object store and activates the receipt exactly like a
scanned upload would. Signature status, superseded requests and the
activation are committed together; when any step fails nothing is kept.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from receipts.activation import activate_receipt
from signatures.simplesign import SimpleSignClient, SimpleSignError
from utilities.database import db, Receipt, Signature, log_activity, utc_now
from utilities.file_storage import file_storage

logger = logging.getLogger(__name__)

SIGNED = "signed"
SUPERSEDED = "superseded"

SIGNATURE_NOT_FOUND = "signature-not-found"
RECEIPT_NOT_FOUND = "receipt-not-found"
DOWNLOAD_FAILED = "download-pdf"
UPLOAD_FAILED = "upload-file"
TRANSACTION_FAILED = "transaction-failed"


@dataclass
class WebhookResult:
    ok: bool
    data: Dict[str, Any] = field(default_factory=dict)
    err: Optional[str] = None


def find_by_document_id(document_id: int) -> Optional[Signature]:
    return db.session.scalar(db.select(Signature).where(Signature.simple_sign_document_id == document_id))


def supersede_pending(signature: Signature) -> int:
    """Mark the other open requests for the same document as superseded."""
    stmt = db.select(Signature).where(
        Signature.resource_type == signature.resource_type,
        Signature.resource_id == signature.resource_id,
        Signature.id != signature.id,
    )
    count = 0
    for other in db.session.scalars(stmt):
        if other.is_pending:
            other.status = SUPERSEDED
            other.last_synced_at = utc_now()
            count += 1
    return count


def _mark_status(signature: Signature, status: str, updated_at: Optional[datetime]) -> None:
    signature.status = status
    signature.last_synced_at = utc_now()
    if status == SIGNED:
        signature.completed_at = updated_at or utc_now()


def process_signature_webhook(
    document_id: int,
    status: str,
    status_updated_at: Optional[datetime] = None,
    client: Optional[SimpleSignClient] = None,
    user_name: Optional[str] = None,
) -> WebhookResult:
    signature = find_by_document_id(document_id)
    if signature is None:
        logger.warning("Webhook received for unknown SimpleSign document %s", document_id)
        return WebhookResult(ok=False, err=SIGNATURE_NOT_FOUND)

    if status != SIGNED or signature.resource_type != "receipt":
        _mark_status(signature, status, status_updated_at)
        db.session.commit()
        return WebhookResult(ok=True, data={"status": status})

    receipt = db.session.get(Receipt, signature.resource_id)
    if receipt is None:
        return WebhookResult(ok=False, err=RECEIPT_NOT_FOUND)

    if receipt.file_id:
        logger.info("Receipt %s already has file %s, skipping signed PDF", receipt.id, receipt.file_id)
        _mark_status(signature, status, status_updated_at)
        db.session.commit()
        return WebhookResult(ok=True, data={"fileId": receipt.file_id})

    client = client or SimpleSignClient.from_app()
    try:
        pdf = client.download_signed_pdf(document_id)
    except SimpleSignError:
        return WebhookResult(ok=False, err=DOWNLOAD_FAILED)

    file_id = f"receipt-{receipt.id}-signed.pdf"
    try:
        file_storage.upload_file(
            file_id, pdf, "application/pdf",
            {"signed": "true", "signature-id": signature.id, "receipt-id": receipt.id},
        )
    except Exception:
        logger.exception("Storing signed PDF for receipt %s failed", receipt.id)
        return WebhookResult(ok=False, err=UPLOAD_FAILED)

    try:
        _mark_status(signature, status, status_updated_at)
        superseded = supersede_pending(signature)
        log_activity(
            "update", "signature", target=signature, user_name=user_name,
            description=f"Receipt signed digitally, {superseded} older request(s) superseded",
        )
    except Exception:
        db.session.rollback()
        file_storage.discard_file(file_id)
        logger.exception("Updating signature %s failed", signature.id)
        return WebhookResult(ok=False, err=TRANSACTION_FAILED)

    # activation commits the signature changes together with the receipt
    activation = activate_receipt(receipt.id, file_id, user_name)
    if not activation.ok:
        db.session.rollback()
        file_storage.discard_file(file_id)
        return WebhookResult(ok=False, err=activation.err)

    logger.info("Signed PDF for receipt %s stored as %s", receipt.id, file_id)
    return WebhookResult(ok=True, data={"fileId": file_id, **activation.to_dict()})
