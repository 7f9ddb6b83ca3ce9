# utilities/database.py
import uuid
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional

from flask import has_request_context, request
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

KEY_TYPES = ("HN", "FS", "MV", "LGH", "PB", "GAR", "LOK", "HL", "FÖR", "SOP", "ÖVR")
KEY_TYPE_LABELS = {
    "HN": "Huvudnyckel",
    "FS": "Fastighet",
    "MV": "Motorvärmarnyckel",
    "LGH": "Lägenhet",
    "PB": "Postbox",
    "GAR": "Garagenyckel",
    "LOK": "Lokalnyckel",
    "HL": "Hänglås",
    "FÖR": "Förrådsnyckel",
    "SOP": "Sopsug",
    "ÖVR": "Övrigt",
}
# Master and property keys may never be deleted
PROTECTED_KEY_TYPES = ("HN", "FS")

KEY_SYSTEM_TYPES = ("MECHANICAL", "ELECTRONIC", "HYBRID")
LOAN_TYPES = ("TENANT", "MAINTENANCE")
RECEIPT_TYPES = ("LOAN", "RETURN")
RECEIPT_FORMATS = ("DIGITAL", "PHYSICAL")
KEY_EVENT_TYPES = ("FLEX", "ORDER", "LOST")
KEY_EVENT_STATUSES = ("ORDERED", "RECEIVED", "COMPLETED")
LOG_EVENT_TYPES = ("creation", "update", "delete")
LOG_OBJECT_TYPES = ("key", "keySystem", "keyLoan", "keyBundle", "receipt", "keyEvent", "keyNote", "signature")
SIGNATURE_RESOURCE_TYPES = ("receipt",)
SIGNATURE_PENDING_STATUSES = ("sent", "pending")


def utc_now() -> datetime:
    """Return a naive UTC datetime without relying on deprecated utcnow()."""
    return datetime.now(UTC).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


key_loan_keys = db.Table(
    "key_loan_keys",
    db.Column("key_loan_id", db.String(36), db.ForeignKey("key_loans.id", ondelete="CASCADE"), primary_key=True),
    db.Column("key_id", db.String(36), db.ForeignKey("keys.id", ondelete="CASCADE"), primary_key=True),
)


class KeySystem(db.Model):
    __tablename__ = "key_systems"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    system_code = db.Column(db.String(50), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=True)
    manufacturer = db.Column(db.String(120), nullable=True)
    managing_supplier = db.Column(db.String(120), nullable=True)
    type = db.Column(db.String(20), nullable=False, default="MECHANICAL")
    property_ids = db.Column(db.JSON, nullable=True)
    installation_date = db.Column(db.DateTime, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    description = db.Column(db.Text, nullable=True)
    schema_file_id = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)
    created_by = db.Column(db.String(120), nullable=True)
    updated_by = db.Column(db.String(120), nullable=True)

    keys = db.relationship("Key", back_populates="key_system")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "systemCode": self.system_code,
            "name": self.name,
            "manufacturer": self.manufacturer,
            "managingSupplier": self.managing_supplier,
            "type": self.type,
            "propertyIds": list(self.property_ids or []),
            "installationDate": _iso(self.installation_date),
            "isActive": self.is_active,
            "description": self.description,
            "schemaFileId": self.schema_file_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "createdBy": self.created_by,
            "updatedBy": self.updated_by,
        }


class Key(db.Model):
    __tablename__ = "keys"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    key_name = db.Column(db.String(120), nullable=False)
    key_sequence_number = db.Column(db.Integer, nullable=True)
    flex_number = db.Column(db.Integer, nullable=True)
    rental_object_code = db.Column(db.String(50), nullable=True, index=True)
    key_type = db.Column(db.String(10), nullable=False)
    key_system_id = db.Column(db.String(36), db.ForeignKey("key_systems.id"), nullable=True, index=True)
    disposed = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    key_system = db.relationship("KeySystem", back_populates="keys")

    @property
    def is_protected(self) -> bool:
        return self.key_type in PROTECTED_KEY_TYPES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "keyName": self.key_name,
            "keySequenceNumber": self.key_sequence_number,
            "flexNumber": self.flex_number,
            "rentalObjectCode": self.rental_object_code,
            "keyType": self.key_type,
            "keySystemId": self.key_system_id,
            "disposed": self.disposed,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class KeyLoan(db.Model):
    """A hand-over of one or more keys to a contact.

    A loan is active until ``returned_at`` is set. Until ``picked_up_at`` is
    set the loan is pending: it still reserves its keys but nobody has signed
    for them yet.
    """

    __tablename__ = "key_loans"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    loan_type = db.Column(db.String(20), nullable=False, default="TENANT")
    contact = db.Column(db.String(120), nullable=True, index=True)
    contact2 = db.Column(db.String(120), nullable=True)
    contact_person = db.Column(db.String(120), nullable=True)
    description = db.Column(db.Text, nullable=True)
    picked_up_at = db.Column(db.DateTime, nullable=True)
    returned_at = db.Column(db.DateTime, nullable=True, index=True)
    available_to_next_tenant_from = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)
    created_by = db.Column(db.String(120), nullable=True)
    updated_by = db.Column(db.String(120), nullable=True)

    key_records = db.relationship("Key", secondary=key_loan_keys, lazy="selectin", order_by="Key.key_name")
    receipts = db.relationship(
        "Receipt",
        back_populates="key_loan",
        cascade="all, delete-orphan",
        order_by="Receipt.created_at.desc()",
    )

    @property
    def key_ids(self) -> List[str]:
        return [key.id for key in self.key_records]

    @property
    def is_active(self) -> bool:
        return self.returned_at is None

    @property
    def is_picked_up(self) -> bool:
        return self.picked_up_at is not None

    def to_dict(self, include_receipts: bool = False, include_key_details: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "keys": self.key_ids,
            "loanType": self.loan_type,
            "contact": self.contact,
            "contact2": self.contact2,
            "contactPerson": self.contact_person,
            "description": self.description,
            "pickedUpAt": _iso(self.picked_up_at),
            "returnedAt": _iso(self.returned_at),
            "availableToNextTenantFrom": _iso(self.available_to_next_tenant_from),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "createdBy": self.created_by,
            "updatedBy": self.updated_by,
        }
        if include_key_details:
            data["keysArray"] = [key.to_dict() for key in self.key_records]
        if include_receipts:
            data["receipts"] = [receipt.to_dict() for receipt in self.receipts]
        return data


class KeyBundle(db.Model):
    __tablename__ = "key_bundles"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    keys = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "keys": list(self.keys or []),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class Receipt(db.Model):
    __tablename__ = "receipts"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    key_loan_id = db.Column(db.String(36), db.ForeignKey("key_loans.id", ondelete="CASCADE"), nullable=False, index=True)
    receipt_type = db.Column(db.String(10), nullable=False)   # LOAN | RETURN
    type = db.Column(db.String(10), nullable=False, default="PHYSICAL")  # DIGITAL | PHYSICAL
    file_id = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    key_loan = db.relationship("KeyLoan", back_populates="receipts")

    @property
    def is_signed(self) -> bool:
        return self.file_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "keyLoanId": self.key_loan_id,
            "receiptType": self.receipt_type,
            "type": self.type,
            "fileId": self.file_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class KeyEvent(db.Model):
    __tablename__ = "key_events"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    keys = db.Column(db.JSON, nullable=False, default=list)
    type = db.Column(db.String(10), nullable=False)      # FLEX | ORDER | LOST
    status = db.Column(db.String(10), nullable=False)    # ORDERED | RECEIVED | COMPLETED
    work_order_id = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    @property
    def is_complete(self) -> bool:
        return self.status == "COMPLETED"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "keys": list(self.keys or []),
            "type": self.type,
            "status": self.status,
            "workOrderId": self.work_order_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class KeyNote(db.Model):
    """Free-text note about the keys of one rental object."""

    __tablename__ = "key_notes"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    rental_object_code = db.Column(db.String(50), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "rentalObjectCode": self.rental_object_code,
            "description": self.description,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class Signature(db.Model):
    """A document sent to SimpleSign for digital signing.

    ``resource_type``/``resource_id`` point at what is being signed; only
    receipts are signed today.
    """

    __tablename__ = "signatures"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    resource_type = db.Column(db.String(30), nullable=False)
    resource_id = db.Column(db.String(36), nullable=False)
    simple_sign_document_id = db.Column(db.Integer, nullable=False, unique=True, index=True)
    recipient_email = db.Column(db.String(255), nullable=False)
    recipient_name = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(30), nullable=False, default="sent")
    sent_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    completed_at = db.Column(db.DateTime, nullable=True)
    last_synced_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (db.Index("ix_signatures_resource", "resource_type", "resource_id"),)

    @property
    def is_pending(self) -> bool:
        return self.status in SIGNATURE_PENDING_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "resourceType": self.resource_type,
            "resourceId": self.resource_id,
            "simpleSignDocumentId": self.simple_sign_document_id,
            "recipientEmail": self.recipient_email,
            "recipientName": self.recipient_name,
            "status": self.status,
            "sentAt": _iso(self.sent_at),
            "completedAt": _iso(self.completed_at),
            "lastSyncedAt": _iso(self.last_synced_at),
        }


class Log(db.Model):
    __tablename__ = "logs"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_name = db.Column(db.String(120), nullable=False)
    event_type = db.Column(db.String(20), nullable=False)
    object_type = db.Column(db.String(20), nullable=False, index=True)
    object_id = db.Column(db.String(36), nullable=True, index=True)
    event_time = db.Column(db.DateTime, nullable=False, default=utc_now, index=True)
    description = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userName": self.user_name,
            "eventType": self.event_type,
            "objectType": self.object_type,
            "objectId": self.object_id,
            "eventTime": _iso(self.event_time),
            "description": self.description,
        }


def current_user_name() -> str:
    """Name of whoever is acting, taken from the ``X-User-Name`` header."""
    if has_request_context():
        name = (request.headers.get("X-User-Name") or "").strip()
        if name:
            return name
    return "system"


def log_activity(
    event_type: str,
    object_type: str,
    *,
    target: Optional[Any] = None,
    object_id: Optional[str] = None,
    description: Optional[str] = None,
    user_name: Optional[str] = None,
    commit: bool = False,
) -> Log:
    """Persist a structured audit trail entry."""
    entry = Log(
        event_type=event_type,
        object_type=object_type,
        object_id=object_id or _extract_id(target),
        description=(description or "")[:255] or None,
        user_name=user_name or current_user_name(),
    )
    db.session.add(entry)

    if commit:
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    return entry


def _extract_id(candidate: Optional[Any]) -> Optional[str]:
    if candidate is None:
        return None
    if isinstance(candidate, str):
        return candidate
    return getattr(candidate, "id", None)
