"""SQL-backed persistence layer for FieldSign.

Wraps a SQLAlchemy session factory and exposes exactly what the signing
service needs: a point lookup of a field scoped to a recipient token,
a transactional session scope, the field update, and an upsert of the
signature row keyed by field id. The seed helpers at the bottom create
documents, recipients and fields for the CLI and the tests.
"""

import logging
import secrets
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from sqlalchemy import Select, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, contains_eager, joinedload, selectinload, sessionmaker

from .config import Settings
from .db import Document, Field, Recipient, Signature, build_engine, build_session_factory, init_db
from .errors import NotFoundError
from .models import (
    DocumentRecord,
    DocumentStatus,
    FieldRecord,
    FieldType,
    RecipientRecord,
    SigningStatus,
)

logger = logging.getLogger("fieldsign.store")

# Dialects with native INSERT ... ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def field_for_token_query(field_id: int, token: str, lock: bool = True) -> Select:
    """SELECT for a field joined to the recipient holding ``token``.

    With ``lock`` the field row is taken ``FOR UPDATE`` (ignored by
    SQLite, which locks the whole database on write).
    """
    stmt = (
        select(Field)
        .join(Field.recipient)
        .where(Field.id == field_id, Recipient.token == token)
        .options(contains_eager(Field.recipient), joinedload(Field.document))
    )
    if lock:
        stmt = stmt.with_for_update(of=Field)
    return stmt


class FieldStore:
    """Database access for documents, recipients, fields and signatures.

    Args:
        session_factory: Configured ``sessionmaker``.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    @classmethod
    def from_url(
        cls,
        database_url: Optional[str] = None,
        settings: Optional[Settings] = None,
        create_tables: bool = True,
    ) -> "FieldStore":
        """Build a store (and optionally its tables) from a database URL."""
        engine = build_engine(database_url, settings=settings)
        if create_tables:
            init_db(engine)
        return cls(build_session_factory(engine))

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Yield a session inside one transaction.

        Commits when the block exits normally; any exception rolls the
        whole transaction back and propagates.
        """
        with self._session_factory() as session:
            with session.begin():
                yield session

    # ------------------------------------------------------------------
    # Signing primitives
    # ------------------------------------------------------------------

    @staticmethod
    def get_field_for_token(
        session: Session, field_id: int, token: str, lock: bool = True
    ) -> Optional[Field]:
        """Load a field owned by the recipient holding ``token``.

        Document and recipient are fetched in the same query.

        Args:
            session: Session with an open transaction.
            field_id: Field to load.
            token: Recipient access token.
            lock: Lock the field row until the transaction ends, so two
                concurrent signings of one field serialize on it.

        Returns:
            The Field, or None if the id/token pair doesn't match.
        """
        stmt = field_for_token_query(field_id, token, lock=lock)
        return session.execute(stmt).unique().scalar_one_or_none()

    @staticmethod
    def mark_inserted(
        session: Session,
        field: Field,
        custom_text: Optional[str],
        update_text: bool = True,
    ) -> Field:
        """Flag the field as inserted.

        ``custom_text`` is only written when ``update_text`` is set;
        otherwise the stored text is left as it is.
        """
        if update_text:
            field.custom_text = custom_text
        field.inserted = True
        session.flush()
        return field

    @staticmethod
    def upsert_signature(
        session: Session,
        field_id: int,
        recipient_id: int,
        signature_image_as_base64: Optional[str],
        typed_signature: Optional[str],
    ) -> Signature:
        """Create or replace the signature row for a field.

        Keyed on the unique ``field_id``. An existing row keeps its
        recipient and gets both signature columns overwritten.

        Returns:
            The persisted Signature, freshly read back.
        """
        dialect = session.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect)

        if insert is not None:
            stmt = insert(Signature).values(
                field_id=field_id,
                recipient_id=recipient_id,
                signature_image_as_base64=signature_image_as_base64,
                typed_signature=typed_signature,
                created_at=datetime.now(timezone.utc),
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["field_id"],
                set_={
                    "signature_image_as_base64": signature_image_as_base64,
                    "typed_signature": typed_signature,
                },
            )
            session.execute(stmt)
        else:
            existing = session.execute(
                select(Signature).where(Signature.field_id == field_id)
            ).scalar_one_or_none()
            if existing is None:
                session.add(
                    Signature(
                        field_id=field_id,
                        recipient_id=recipient_id,
                        signature_image_as_base64=signature_image_as_base64,
                        typed_signature=typed_signature,
                    )
                )
            else:
                existing.signature_image_as_base64 = signature_image_as_base64
                existing.typed_signature = typed_signature
            session.flush()

        return session.execute(
            select(Signature)
            .where(Signature.field_id == field_id)
            .execution_options(populate_existing=True)
        ).scalar_one()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_field(self, field_id: int) -> FieldRecord:
        """Load a field with its signature.

        Raises:
            NotFoundError: If the field doesn't exist.
        """
        with self.session_scope() as session:
            field = session.execute(
                select(Field)
                .where(Field.id == field_id)
                .options(selectinload(Field.signature))
            ).scalar_one_or_none()
            if field is None:
                raise NotFoundError(f"Field {field_id} not found")
            return FieldRecord.model_validate(field)

    def get_field_for_recipient(self, field_id: int, token: str) -> FieldRecord:
        """Load a field with its signature, as seen by the token's recipient.

        Raises:
            NotFoundError: If the id/token pair doesn't match.
        """
        with self.session_scope() as session:
            field = self.get_field_for_token(session, field_id, token, lock=False)
            if field is None:
                raise NotFoundError(f"Field {field_id} not found for the given token")
            return FieldRecord.model_validate(field)

    def get_document(self, document_id: int) -> DocumentRecord:
        """Load a document with its recipients and fields.

        Raises:
            NotFoundError: If the document doesn't exist.
        """
        with self.session_scope() as session:
            document = session.execute(
                select(Document)
                .where(Document.id == document_id)
                .options(
                    selectinload(Document.recipients),
                    selectinload(Document.fields).selectinload(Field.signature),
                )
            ).scalar_one_or_none()
            if document is None:
                raise NotFoundError(f"Document {document_id} not found")
            return DocumentRecord.model_validate(document)

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def create_document(
        self,
        title: str,
        status: DocumentStatus = DocumentStatus.PENDING,
    ) -> DocumentRecord:
        """Insert a new, empty document."""
        with self.session_scope() as session:
            document = Document(title=title, status=DocumentStatus(status).value)
            session.add(document)
            session.flush()
            logger.info("Created document %s (%s)", document.id, title)
            return DocumentRecord(
                id=document.id,
                title=document.title,
                status=document.status,
                created_at=document.created_at,
            )

    def add_recipient(
        self,
        document_id: int,
        name: str,
        email: Optional[str] = None,
        token: Optional[str] = None,
    ) -> RecipientRecord:
        """Add a recipient to a document.

        A random URL-safe token is generated when none is given.
        """
        with self.session_scope() as session:
            if session.get(Document, document_id) is None:
                raise NotFoundError(f"Document {document_id} not found")
            recipient = Recipient(
                document_id=document_id,
                name=name,
                email=email,
                token=token or secrets.token_urlsafe(24),
            )
            session.add(recipient)
            session.flush()
            logger.info("Added recipient %s to document %s", recipient.id, document_id)
            return RecipientRecord.model_validate(recipient)

    def add_field(
        self,
        document_id: int,
        field_type: FieldType,
        recipient_id: Optional[int] = None,
        page: int = 1,
        position_x: float = 0.0,
        position_y: float = 0.0,
        width: float = 0.0,
        height: float = 0.0,
    ) -> FieldRecord:
        """Place a new, not-yet-inserted field on a document."""
        with self.session_scope() as session:
            if session.get(Document, document_id) is None:
                raise NotFoundError(f"Document {document_id} not found")
            field = Field(
                document_id=document_id,
                recipient_id=recipient_id,
                field_type=FieldType(field_type).value,
                page=page,
                position_x=position_x,
                position_y=position_y,
                width=width,
                height=height,
                inserted=False,
            )
            session.add(field)
            session.flush()
            return FieldRecord(
                id=field.id,
                document_id=field.document_id,
                recipient_id=field.recipient_id,
                field_type=field.field_type,
                page=field.page,
                position_x=field.position_x,
                position_y=field.position_y,
                width=field.width,
                height=field.height,
                custom_text=field.custom_text,
                inserted=field.inserted,
            )

    def set_document_status(self, document_id: int, status: DocumentStatus) -> None:
        with self.session_scope() as session:
            document = session.get(Document, document_id)
            if document is None:
                raise NotFoundError(f"Document {document_id} not found")
            document.status = DocumentStatus(status).value

    def set_recipient_status(self, recipient_id: int, status: SigningStatus) -> None:
        with self.session_scope() as session:
            recipient = session.get(Recipient, recipient_id)
            if recipient is None:
                raise NotFoundError(f"Recipient {recipient_id} not found")
            recipient.signing_status = SigningStatus(status).value
            recipient.signed_at = (
                datetime.now(timezone.utc) if status == SigningStatus.SIGNED else None
            )
