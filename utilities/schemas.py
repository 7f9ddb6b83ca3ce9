"""
Pydantic schemas for request bodies.

Bodies arrive in camelCase; schema fields are snake_case and line up with the
model columns in ``utilities.database`` so a validated payload can be applied
to a row with ``setattr``.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from flask import request
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from utilities.errors import BadRequest

KeyType = Literal["HN", "FS", "MV", "LGH", "PB", "GAR", "LOK", "HL", "FÖR", "SOP", "ÖVR"]
KeySystemType = Literal["MECHANICAL", "ELECTRONIC", "HYBRID"]
LoanType = Literal["TENANT", "MAINTENANCE"]
ReceiptType = Literal["LOAN", "RETURN"]
ReceiptFormat = Literal["DIGITAL", "PHYSICAL"]
KeyEventType = Literal["FLEX", "ORDER", "LOST"]
KeyEventStatus = Literal["ORDERED", "RECEIVED", "COMPLETED"]
LogEventType = Literal["creation", "update", "delete"]
LogObjectType = Literal["key", "keySystem", "keyLoan", "keyBundle", "receipt", "keyEvent", "keyNote", "signature"]
SignatureResourceType = Literal["receipt"]

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class BaseSchema(BaseModel):
    """Base schema for all request bodies."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


def _coerce_id_list(value):
    """Key lists are sometimes sent as a JSON-encoded string."""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            raise ValueError("keys must be a JSON array of key ids")
    if not isinstance(value, list):
        raise ValueError("keys must be a JSON array of key ids")
    return value


def _not_null(value):
    """Partial updates may omit a required field but never clear it."""
    if value is None:
        raise ValueError("may not be null")
    return value


# --- Keys ---

class KeyCreate(BaseSchema):
    key_name: str = Field(min_length=1, max_length=120)
    key_type: KeyType
    key_sequence_number: Optional[int] = None
    flex_number: Optional[int] = Field(None, ge=1, le=3)
    rental_object_code: Optional[str] = None
    key_system_id: Optional[str] = None
    disposed: bool = False


class KeyUpdate(BaseSchema):
    key_name: Optional[str] = Field(None, min_length=1, max_length=120)
    key_type: Optional[KeyType] = None
    key_sequence_number: Optional[int] = None
    flex_number: Optional[int] = Field(None, ge=1, le=3)
    rental_object_code: Optional[str] = None
    key_system_id: Optional[str] = None
    disposed: Optional[bool] = None

    @field_validator("key_name", "key_type", "disposed", mode="before")
    @classmethod
    def reject_null(cls, v):
        return _not_null(v)


class BulkDeleteKeys(BaseSchema):
    key_ids: List[str] = Field(min_length=1)


class BulkUpdateFlex(BaseSchema):
    rental_object_code: str = Field(min_length=1)
    flex_number: int = Field(ge=1, le=3)


# --- Key systems ---

class KeySystemCreate(BaseSchema):
    system_code: str = Field(min_length=1, max_length=50)
    name: Optional[str] = None
    manufacturer: Optional[str] = None
    managing_supplier: Optional[str] = None
    type: KeySystemType = "MECHANICAL"
    property_ids: List[str] = Field(default_factory=list)
    installation_date: Optional[datetime] = None
    is_active: bool = True
    description: Optional[str] = None
    schema_file_id: Optional[str] = None

    @field_validator("property_ids", mode="before")
    @classmethod
    def validate_property_ids(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            try:
                return json.loads(v)
            except ValueError:
                return [part.strip() for part in v.split(",") if part.strip()]
        return v


class KeySystemUpdate(KeySystemCreate):
    system_code: Optional[str] = Field(None, min_length=1, max_length=50)
    type: Optional[KeySystemType] = None
    property_ids: Optional[List[str]] = None
    is_active: Optional[bool] = None

    @field_validator("system_code", "type", "is_active", mode="before")
    @classmethod
    def reject_null(cls, v):
        return _not_null(v)


# --- Key bundles ---

class KeyBundleCreate(BaseSchema):
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = None
    keys: List[str] = Field(default_factory=list)

    @field_validator("keys", mode="before")
    @classmethod
    def validate_keys(cls, v):
        return [] if v is None else _coerce_id_list(v)


class KeyBundleUpdate(BaseSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    description: Optional[str] = None
    keys: Optional[List[str]] = None

    @field_validator("keys", mode="before")
    @classmethod
    def validate_keys(cls, v):
        return _coerce_id_list(_not_null(v))

    @field_validator("name", mode="before")
    @classmethod
    def reject_null(cls, v):
        return _not_null(v)


# --- Key loans ---

class KeyLoanCreate(BaseSchema):
    keys: List[str] = Field(min_length=1)
    loan_type: LoanType = "TENANT"
    contact: Optional[str] = None
    contact2: Optional[str] = None
    contact_person: Optional[str] = None
    description: Optional[str] = None
    picked_up_at: Optional[datetime] = None
    available_to_next_tenant_from: Optional[datetime] = None

    @field_validator("keys", mode="before")
    @classmethod
    def validate_keys(cls, v):
        if not isinstance(v, list):
            raise ValueError("keys must be a JSON array of key ids")
        return v


class KeyLoanUpdate(BaseSchema):
    keys: Optional[List[str]] = None
    loan_type: Optional[LoanType] = None
    contact: Optional[str] = None
    contact2: Optional[str] = None
    contact_person: Optional[str] = None
    description: Optional[str] = None
    picked_up_at: Optional[datetime] = None
    returned_at: Optional[datetime] = None
    available_to_next_tenant_from: Optional[datetime] = None

    @field_validator("keys", mode="before")
    @classmethod
    def validate_keys(cls, v):
        if not isinstance(_not_null(v), list):
            raise ValueError("keys must be a JSON array of key ids")
        return v

    @field_validator("loan_type", mode="before")
    @classmethod
    def reject_null(cls, v):
        return _not_null(v)


class LoanKeysRequest(BaseSchema):
    key_ids: List[str] = Field(min_length=1)
    loan_type: LoanType = "TENANT"
    contact: Optional[str] = None
    contact2: Optional[str] = None
    contact_person: Optional[str] = None
    description: Optional[str] = None


class ReturnKeysRequest(BaseSchema):
    key_ids: List[str] = Field(min_length=1)
    available_to_next_tenant_from: Optional[datetime] = None


class SwitchKeysRequest(BaseSchema):
    key_ids: List[str] = Field(min_length=1)
    contact: Optional[str] = None
    contact2: Optional[str] = None


class TransferKeysRequest(BaseSchema):
    key_ids: List[str] = Field(default_factory=list)
    from_loan_ids: List[str] = Field(min_length=1)
    loan_type: LoanType = "TENANT"
    contact: Optional[str] = None
    contact2: Optional[str] = None
    contact_person: Optional[str] = None
    description: Optional[str] = None


# --- Receipts ---

class ReceiptCreate(BaseSchema):
    key_loan_id: str = Field(min_length=1)
    receipt_type: ReceiptType
    type: ReceiptFormat = "PHYSICAL"
    file_id: Optional[str] = None


class ReceiptUpdate(BaseSchema):
    file_id: Optional[str] = None


class ReceiptBase64Upload(BaseSchema):
    file_content: str = Field(min_length=1)
    file_name: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)


# --- Key events ---

class KeyEventCreate(BaseSchema):
    keys: List[str] = Field(min_length=1)
    type: KeyEventType
    status: KeyEventStatus = "ORDERED"
    work_order_id: Optional[str] = None

    @field_validator("keys", mode="before")
    @classmethod
    def validate_keys(cls, v):
        return _coerce_id_list(v)


class KeyEventUpdate(BaseSchema):
    status: Optional[KeyEventStatus] = None
    work_order_id: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def reject_null(cls, v):
        return _not_null(v)


# --- Key notes ---

class KeyNoteCreate(BaseSchema):
    rental_object_code: str = Field(min_length=1, max_length=50)
    description: str = Field(min_length=1)


class KeyNoteUpdate(BaseSchema):
    rental_object_code: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, min_length=1)

    @field_validator("rental_object_code", "description", mode="before")
    @classmethod
    def reject_null(cls, v):
        return _not_null(v)


# --- Signatures ---

class SignatureCreate(BaseSchema):
    resource_type: SignatureResourceType
    resource_id: str = Field(min_length=1)
    simple_sign_document_id: int
    recipient_email: str = Field(min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    recipient_name: Optional[str] = None
    status: str = "sent"


class SendSignatureRequest(BaseSchema):
    resource_type: SignatureResourceType
    resource_id: str = Field(min_length=1)
    recipient_email: str = Field(min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    recipient_name: Optional[str] = None
    pdf_base64: str = Field(min_length=1)


class SimpleSignWebhook(BaseSchema):
    """Status callback posted by SimpleSign; its field names are snake_case."""

    id: int
    status: str = Field(min_length=1)
    status_updated_at: Optional[datetime] = Field(None, alias="status_updated_at")


# --- Logs ---

class LogCreate(BaseSchema):
    user_name: str = Field(min_length=1)
    event_type: LogEventType
    object_type: LogObjectType
    object_id: Optional[str] = None
    description: Optional[str] = Field(None, max_length=255)


# --- Files ---

class FileUpload(BaseSchema):
    file_name: str = Field(min_length=1)
    file_data: str = Field(min_length=1)
    content_type: str = Field(min_length=1)


def format_errors(exc: ValidationError) -> List[Dict[str, Any]]:
    return [
        {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]


def load_body(schema: Type[SchemaT], payload: Optional[Any] = None) -> SchemaT:
    """Validate the JSON body (or ``payload``) against ``schema``.

    Raises ``BadRequest`` carrying the field errors when validation fails.
    """
    if payload is None:
        payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise BadRequest("Request body must be a JSON object")
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        raise BadRequest("Invalid request body", errors=format_errors(exc))
