"""FieldSign signing engine — inserting a recipient's value into a field.

One operation: ``sign_field``. It resolves the field through the
recipient's access token, checks the document, recipient and field are
still signable, derives what to store from the field type, and writes
the field update plus the signature row in a single transaction.

Validation order is fixed: completed document, signed recipient,
inserted field, missing recipient. The first failing check wins.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from .config import Settings, get_settings
from .db import Field
from .errors import ConflictError, FieldSignError, NotFoundError, SigningValidationError
from .models import (
    DocumentStatus,
    FieldRecord,
    FieldType,
    SignatureRecord,
    SigningStatus,
)
from .store import FieldStore

logger = logging.getLogger("fieldsign.engine")


def format_date_stamp(moment: datetime) -> str:
    """Render a moment as ``yyyy-MM-dd hh:mm AM/PM``.

    The meridiem is spelled out rather than taken from ``%p`` so the
    output doesn't depend on the process locale.
    """
    meridiem = "AM" if moment.hour < 12 else "PM"
    return f"{moment.strftime('%Y-%m-%d %I:%M')} {meridiem}"


def derive_values(
    field_type: FieldType,
    value: str,
    is_base64: bool,
    now: datetime,
) -> tuple[Optional[str], Optional[str], Optional[str]]:
    """Work out what a field stores for a submitted value.

    Args:
        field_type: Kind of field being signed.
        value: Value supplied by the recipient.
        is_base64: For signature fields, whether ``value`` is an image.
        now: Current time, used for date fields.

    Returns:
        ``(custom_text, signature_image_as_base64, typed_signature)``.

    Raises:
        SigningValidationError: If a signature field gets an empty value.
    """
    if field_type.is_signature:
        image = value if is_base64 and value else None
        typed = value if not is_base64 and value else None
        if not image and not typed:
            raise SigningValidationError("Signature field must have a signature")
        return None, image, typed

    if field_type == FieldType.DATE:
        return format_date_stamp(now), None, None

    return value, None, None


class SigningService:
    """Inserts recipient values into document fields.

    Args:
        store: Persistence layer.
        settings: Settings; only ``date_timezone`` is read here.
        clock: Returns the current aware datetime. Defaults to UTC now.
    """

    def __init__(
        self,
        store: FieldStore,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def sign_field(
        self,
        token: str,
        field_id: int,
        value: str,
        is_base64: bool = False,
    ) -> FieldRecord:
        """Insert ``value`` into a field on behalf of the token's recipient.

        Args:
            token: Recipient access token.
            field_id: Field to sign.
            value: Text, typed signature, or base64 image payload.
            is_base64: Treat ``value`` as an image for signature fields.

        Returns:
            The updated field, with its signature attached for
            signature fields.

        Raises:
            NotFoundError: Token and field don't belong together.
            ConflictError: Document completed, recipient already signed,
                or field already inserted.
            SigningValidationError: Empty signature or no recipient.
        """
        try:
            with self._store.session_scope() as session:
                field = self._store.get_field_for_token(session, field_id, token)
                if field is None:
                    raise NotFoundError(
                        f"Field {field_id} not found for the given token"
                    )

                self._validate_signing_state(field)

                field_type = FieldType(field.field_type)
                now = self._clock().astimezone(self._settings.tzinfo)
                custom_text, image, typed = derive_values(
                    field_type, value, is_base64, now
                )

                # Signature fields keep whatever text the field already holds.
                self._store.mark_inserted(
                    session, field, custom_text, update_text=not field_type.is_signature
                )
                record = FieldRecord.model_validate(field)

                if field_type.is_signature:
                    signature = self._store.upsert_signature(
                        session,
                        field_id=field.id,
                        recipient_id=field.recipient_id,
                        signature_image_as_base64=image,
                        typed_signature=typed,
                    )
                    record = record.model_copy(
                        update={"signature": SignatureRecord.model_validate(signature)}
                    )
        except FieldSignError as exc:
            logger.warning(
                "Rejected signing of field %s: %s (%s)",
                field_id,
                exc.message,
                exc.code.value,
            )
            raise

        logger.info(
            "Recipient %s inserted %s field %s",
            record.recipient_id,
            record.field_type.value,
            record.id,
        )
        return record

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_signing_state(field: Field) -> None:
        """Ensure the document, recipient and field are still signable."""
        document = field.document
        recipient = field.recipient

        if document.status == DocumentStatus.COMPLETED:
            raise ConflictError(f"Document {document.id} has already been completed")
        if recipient is not None and recipient.signing_status == SigningStatus.SIGNED:
            raise ConflictError(f"Recipient {recipient.id} has already signed")
        if field.inserted:
            raise ConflictError(f"Field {field.id} has already been inserted")
        # The token join makes this unreachable short of a schema change.
        if field.recipient_id is None:
            raise SigningValidationError(f"Field {field.id} has no recipient")
