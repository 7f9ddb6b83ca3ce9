# receipts/views.py
import base64
import binascii
import logging
import time

from flask import Response, current_app, request

from . import receipts_bp
from key_loans.services import get_loan_or_404
from receipts.activation import RECEIPT_NOT_FOUND, activate_receipt
from utilities.database import db, Receipt, current_user_name, log_activity
from utilities.errors import BadRequest, NotFound
from utilities.file_storage import file_storage
from utilities.receipt_pdf import ReceiptData, receipt_file_name, render_receipt
from utilities.responses import attachment_disposition, content
from utilities.schemas import ReceiptBase64Upload, ReceiptCreate, ReceiptUpdate, load_body

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


# --- Helpers ---

def _get_receipt_or_404(receipt_id: str) -> Receipt:
    receipt = db.session.get(Receipt, receipt_id)
    if receipt is None:
        raise NotFound("Receipt not found")
    return receipt


def _validate_pdf(data: bytes, content_type: str) -> None:
    if content_type != PDF_CONTENT_TYPE:
        raise BadRequest("Only PDF files are allowed")
    if not data:
        raise BadRequest("Uploaded file is empty")
    max_bytes = current_app.config["RECEIPT_MAX_UPLOAD_BYTES"]
    if len(data) > max_bytes:
        raise BadRequest(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB")


def _store_and_activate(receipt: Receipt, data: bytes, extra_metadata=None):
    file_name = f"{receipt.id}-{int(time.time() * 1000)}.pdf"
    metadata = {
        **(extra_metadata or {}),
        "receipt-id": receipt.id,
        "receipt-type": receipt.receipt_type,
        "key-loan-id": receipt.key_loan_id,
    }
    previous_file_id = receipt.file_id

    try:
        file_storage.upload_file(file_name, data, PDF_CONTENT_TYPE, metadata)
    except Exception as exc:
        return {"error": "Failed to upload file", "message": str(exc)}, 500

    result = activate_receipt(receipt.id, file_name, current_user_name())
    if not result.ok:
        file_storage.discard_file(file_name)
        if result.err == RECEIPT_NOT_FOUND:
            raise NotFound("Receipt not found")
        return {"error": "Failed to activate receipt", "message": result.err}, 500

    if previous_file_id and previous_file_id != file_name:
        file_storage.discard_file(previous_file_id)

    return content({
        "fileId": file_name,
        "fileName": file_name,
        "size": len(data),
        **result.to_dict(),
    })


# --- Collection ---

@receipts_bp.route("", methods=["POST"])
def create_receipt():
    body = load_body(ReceiptCreate)
    loan = get_loan_or_404(body.key_loan_id)
    receipt = Receipt(key_loan_id=loan.id, receipt_type=body.receipt_type, type=body.type, file_id=body.file_id)
    db.session.add(receipt)
    db.session.flush()
    log_activity("creation", "receipt", target=receipt, description=f"{receipt.receipt_type.title()} receipt created")
    db.session.commit()
    return content(receipt.to_dict(), 201)


@receipts_bp.route("/by-key-loan/<loan_id>", methods=["GET"])
def receipts_by_key_loan(loan_id):
    stmt = db.select(Receipt).where(Receipt.key_loan_id == loan_id).order_by(Receipt.created_at.desc())
    return content([receipt.to_dict() for receipt in db.session.scalars(stmt)])


# --- Item ---

@receipts_bp.route("/<receipt_id>", methods=["GET"])
def get_receipt(receipt_id):
    return content(_get_receipt_or_404(receipt_id).to_dict())


@receipts_bp.route("/<receipt_id>", methods=["PATCH", "PUT"])
def update_receipt(receipt_id):
    receipt = _get_receipt_or_404(receipt_id)
    changes = load_body(ReceiptUpdate).model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(receipt, field, value)
    log_activity("update", "receipt", target=receipt, description="Receipt updated")
    db.session.commit()
    return content(receipt.to_dict())


@receipts_bp.route("/<receipt_id>", methods=["DELETE"])
def delete_receipt(receipt_id):
    receipt = _get_receipt_or_404(receipt_id)
    if receipt.file_id:
        file_storage.discard_file(receipt.file_id)
    log_activity("delete", "receipt", object_id=receipt.id, description="Receipt deleted")
    db.session.delete(receipt)
    db.session.commit()
    return "", 204


# --- Files ---

@receipts_bp.route("/<receipt_id>/upload", methods=["POST"])
def upload_receipt_file(receipt_id):
    receipt = _get_receipt_or_404(receipt_id)
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise BadRequest("No file uploaded")
    data = upload.read()
    _validate_pdf(data, upload.mimetype)
    return _store_and_activate(receipt, data)


@receipts_bp.route("/<receipt_id>/upload-base64", methods=["POST"])
def upload_receipt_file_base64(receipt_id):
    receipt = _get_receipt_or_404(receipt_id)
    body = load_body(ReceiptBase64Upload)
    encoded = body.file_content
    if encoded.startswith("data:") and "," in encoded:
        encoded = encoded.split(",", 1)[1]
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise BadRequest("fileContent is not valid base64")
    _validate_pdf(data, PDF_CONTENT_TYPE)
    if not data.startswith(b"%PDF"):
        raise BadRequest("Only PDF files are allowed")
    return _store_and_activate(receipt, data, body.metadata)


@receipts_bp.route("/<receipt_id>/download", methods=["GET"])
def download_receipt_file(receipt_id):
    receipt = _get_receipt_or_404(receipt_id)
    if not receipt.file_id:
        raise NotFound("Receipt has no uploaded file")
    expiry = current_app.config["RECEIPT_URL_EXPIRY_SECONDS"]
    url = file_storage.get_file_url(receipt.file_id, expiry)
    return content({"url": url, "expiresIn": expiry, "fileId": receipt.file_id})


@receipts_bp.route("/<receipt_id>/pdf", methods=["GET"])
def render_receipt_pdf(receipt_id):
    """Render a printable receipt for the loan behind ``receipt_id``."""
    receipt = _get_receipt_or_404(receipt_id)
    loan = receipt.key_loan
    keys = [key.to_dict() for key in loan.key_records]

    data = ReceiptData(
        receipt_type=receipt.receipt_type,
        loan_type=loan.loan_type,
        keys=keys,
        tenant_name=request.args.get("tenantName"),
        personal_number=request.args.get("personalNumber"),
        address=request.args.get("address"),
        contact=loan.contact,
        contact_person=loan.contact_person,
        rental_object_code=request.args.get("rentalObjectCode") or next(
            (k["rentalObjectCode"] for k in keys if k["rentalObjectCode"]), None
        ),
        lease_id=request.args.get("leaseId"),
        lease_number=request.args.get("leaseNumber"),
        organisation_name=current_app.config.get("ORGANISATION_NAME", ""),
        organisation_footer=current_app.config.get("ORGANISATION_FOOTER", ""),
    )
    response = Response(render_receipt(data), mimetype=PDF_CONTENT_TYPE)
    response.headers["Content-Disposition"] = attachment_disposition(receipt_file_name(data))
    return response
