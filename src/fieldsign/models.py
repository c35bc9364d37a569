"""Core data models for FieldSign.

Enums shared by the database tables and the API, plus the pydantic read
models handed back to callers. The ORM rows in ``db.py`` never leave the
persistence layer; everything above it works with these records.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class FieldType(str, Enum):
    """Kinds of fields a recipient can fill in."""

    SIGNATURE = "signature"
    FREE_SIGNATURE = "free_signature"
    DATE = "date"
    TEXT = "text"
    NAME = "name"
    EMAIL = "email"
    NUMBER = "number"

    @property
    def is_signature(self) -> bool:
        """Signature fields store an image or typed text, not custom text."""
        return self in (FieldType.SIGNATURE, FieldType.FREE_SIGNATURE)


class DocumentStatus(str, Enum):
    """Lifecycle states for a signing document."""

    DRAFT = "draft"
    PENDING = "pending"
    COMPLETED = "completed"


class SigningStatus(str, Enum):
    """Whether a recipient has finished signing."""

    NOT_SIGNED = "not_signed"
    SIGNED = "signed"


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------

class SignatureRecord(BaseModel):
    """Captured proof of a recipient's signing action on one field.

    Exactly one of ``signature_image_as_base64`` and ``typed_signature``
    is populated.

    Attributes:
        id: Primary key.
        field_id: The field this signature belongs to (unique).
        recipient_id: Recipient who produced the signature.
        signature_image_as_base64: Drawn/uploaded signature image.
        typed_signature: Signature typed as text.
        created_at: When the record was first written.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    field_id: int
    recipient_id: int
    signature_image_as_base64: Optional[str] = None
    typed_signature: Optional[str] = None
    created_at: Optional[datetime] = None


class FieldRecord(BaseModel):
    """A placeholder in a document that a recipient fills in.

    Attributes:
        id: Primary key.
        document_id: Owning document.
        recipient_id: Recipient responsible for the field, if assigned.
        field_type: Kind of field.
        page: 1-indexed page number.
        position_x: Horizontal position (0-100, percent of page width).
        position_y: Vertical position (0-100, percent of page height).
        width: Width as percent of page width.
        height: Height as percent of page height.
        custom_text: Stored value for non-signature fields.
        inserted: Whether the value has been finalized.
        signature: Signature record for signature fields, once signed.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    document_id: int
    recipient_id: Optional[int] = None
    field_type: FieldType
    page: int = 1
    position_x: float = 0.0
    position_y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    custom_text: Optional[str] = None
    inserted: bool = False
    signature: Optional[SignatureRecord] = None


class RecipientRecord(BaseModel):
    """A party invited to act on a document."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    document_id: int
    name: str = ""
    email: Optional[str] = None
    token: str
    signing_status: SigningStatus = SigningStatus.NOT_SIGNED
    signed_at: Optional[datetime] = None


class DocumentRecord(BaseModel):
    """A document with its recipients and fields."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    status: DocumentStatus = DocumentStatus.DRAFT
    created_at: Optional[datetime] = None
    recipients: list[RecipientRecord] = []
    fields: list[FieldRecord] = []

    @property
    def pending_recipients(self) -> list[RecipientRecord]:
        """Recipients who haven't signed yet."""
        return [
            r for r in self.recipients
            if r.signing_status != SigningStatus.SIGNED
        ]
