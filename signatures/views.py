# signatures/views.py
import base64
import binascii
import logging

from flask import current_app, jsonify, request

from . import signatures_bp
from signatures.simplesign import SimpleSignClient, SimpleSignError
from signatures.webhook import RECEIPT_NOT_FOUND, SIGNATURE_NOT_FOUND, process_signature_webhook
from utilities.database import db, Receipt, Signature, current_user_name, log_activity
from utilities.errors import BadRequest, Conflict, NotFound
from utilities.responses import content
from utilities.schemas import SendSignatureRequest, SignatureCreate, SimpleSignWebhook, load_body

logger = logging.getLogger(__name__)


def _ensure_resource(resource_type: str, resource_id: str) -> None:
    if resource_type == "receipt" and db.session.get(Receipt, resource_id) is None:
        raise NotFound("Receipt not found")


def _ensure_new_document(document_id: int) -> None:
    existing = db.session.scalar(db.select(Signature).where(Signature.simple_sign_document_id == document_id))
    if existing is not None:
        raise Conflict(f"SimpleSign document {document_id} is already registered")


def _save(signature: Signature):
    db.session.add(signature)
    db.session.flush()
    log_activity(
        "creation", "signature", target=signature,
        description=f"Signature requested from {signature.recipient_email}",
    )
    db.session.commit()
    return content(signature.to_dict(), 201)


@signatures_bp.route("/signatures", methods=["POST"])
def create_signature():
    body = load_body(SignatureCreate)
    _ensure_resource(body.resource_type, body.resource_id)
    _ensure_new_document(body.simple_sign_document_id)
    return _save(Signature(**body.model_dump()))


@signatures_bp.route("/signatures/send", methods=["POST"])
def send_for_signature():
    """Send a PDF to SimpleSign and track the request."""
    body = load_body(SendSignatureRequest)
    _ensure_resource(body.resource_type, body.resource_id)

    encoded = body.pdf_base64
    if encoded.startswith("data:") and "," in encoded:
        encoded = encoded.split(",", 1)[1]
    try:
        pdf = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise BadRequest("pdfBase64 is not valid base64")

    try:
        document_id = SimpleSignClient.from_app().send_pdf_for_signature(
            pdf, body.recipient_email, body.recipient_name, title=f"{body.resource_type}-{body.resource_id}.pdf",
        )
    except SimpleSignError as exc:
        return jsonify({"error": "Failed to send signature request", "reason": str(exc)}), 500

    return _save(Signature(
        resource_type=body.resource_type,
        resource_id=body.resource_id,
        simple_sign_document_id=document_id,
        recipient_email=body.recipient_email,
        recipient_name=body.recipient_name,
        status="sent",
    ))


@signatures_bp.route("/signatures/<signature_id>", methods=["GET"])
def get_signature(signature_id):
    signature = db.session.get(Signature, signature_id)
    if signature is None:
        raise NotFound("Signature not found")
    return content(signature.to_dict())


@signatures_bp.route("/signatures/resource/<resource_type>/<resource_id>", methods=["GET"])
def signatures_for_resource(resource_type, resource_id):
    stmt = (
        db.select(Signature)
        .where(Signature.resource_type == resource_type, Signature.resource_id == resource_id)
        .order_by(Signature.sent_at.desc())
    )
    return content([signature.to_dict() for signature in db.session.scalars(stmt)])


@signatures_bp.route("/webhooks/simplesign", methods=["POST"])
def simplesign_webhook():
    secret = current_app.config.get("SIMPLESIGN_WEBHOOK_SECRET")
    if secret and request.headers.get("webhookSecret") != secret:
        logger.warning("SimpleSign webhook with invalid secret")
        return jsonify({"reason": "Unauthorized"}), 401

    payload = load_body(SimpleSignWebhook)
    logger.info("SimpleSign webhook for document %s: %s", payload.id, payload.status)
    result = process_signature_webhook(payload.id, payload.status, payload.status_updated_at,
                                       user_name=current_user_name())
    if result.ok:
        return jsonify({"message": "Webhook processed successfully", **result.data})
    if result.err == SIGNATURE_NOT_FOUND:
        raise NotFound("Signature not found")
    if result.err == RECEIPT_NOT_FOUND:
        raise NotFound("Receipt not found")
    return jsonify({"error": "Internal server error", "reason": result.err}), 500
