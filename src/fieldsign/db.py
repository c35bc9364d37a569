"""
Database tables and engine setup.

Four tables: documents, recipients, fields and signatures. A signature
is one-to-one with its field through the unique ``signatures.field_id``
column, which is what the signing upsert conflicts on.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, relationship, sessionmaker

from .config import Settings, get_settings
from .models import DocumentStatus, FieldType, SigningStatus

logger = logging.getLogger("fieldsign.db")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Document(Base):
    """A document in the signing workflow."""

    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=DocumentStatus.DRAFT.value)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    recipients = relationship(
        "Recipient", back_populates="document", cascade="all, delete-orphan"
    )
    fields = relationship(
        "Field", back_populates="document", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Document {self.id} - {self.status}>"


class Recipient(Base):
    """A party invited to sign, addressed by a unique access token."""

    __tablename__ = "recipients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False, default="")
    email = Column(String(255), nullable=True)

    # Security
    token = Column(String(100), unique=True, nullable=False, index=True)

    signing_status = Column(
        String(20), nullable=False, default=SigningStatus.NOT_SIGNED.value
    )
    signed_at = Column(DateTime(timezone=True), nullable=True)

    document = relationship("Document", back_populates="recipients")
    fields = relationship("Field", back_populates="recipient")

    def __repr__(self):
        return f"<Recipient {self.id} - {self.signing_status}>"


class Field(Base):
    """A fillable placeholder on a document page."""

    __tablename__ = "fields"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recipient_id = Column(
        Integer, ForeignKey("recipients.id", ondelete="CASCADE"), nullable=True, index=True
    )
    field_type = Column("type", String(30), nullable=False, default=FieldType.TEXT.value)

    # Placement, percent of page size
    page = Column(Integer, nullable=False, default=1)
    position_x = Column(Float, nullable=False, default=0.0)
    position_y = Column(Float, nullable=False, default=0.0)
    width = Column(Float, nullable=False, default=0.0)
    height = Column(Float, nullable=False, default=0.0)

    custom_text = Column(Text, nullable=True)
    inserted = Column(Boolean, nullable=False, default=False)

    document = relationship("Document", back_populates="fields")
    recipient = relationship("Recipient", back_populates="fields")
    signature = relationship(
        "Signature", back_populates="field", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Field {self.id} {self.field_type} inserted={self.inserted}>"


class Signature(Base):
    """Captured signature data for one field."""

    __tablename__ = "signatures"

    id = Column(Integer, primary_key=True, autoincrement=True)
    field_id = Column(
        Integer, ForeignKey("fields.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    recipient_id = Column(
        Integer, ForeignKey("recipients.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Exactly one of these is set
    signature_image_as_base64 = Column(Text, nullable=True)
    typed_signature = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)

    field = relationship("Field", back_populates="signature")
    recipient = relationship("Recipient")

    def __repr__(self):
        return f"<Signature {self.id} field={self.field_id}>"


# ---------------------------------------------------------------------------
# Engine / sessions
# ---------------------------------------------------------------------------

def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(
    database_url: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> Engine:
    """Create an engine for the configured database.

    SQLite files get their parent directory created and foreign keys
    switched on, so cascades behave the same as on PostgreSQL.
    """
    settings = settings or get_settings()
    url = make_url(database_url or settings.database_url)

    if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url, echo=settings.sqlalchemy_echo, future=True)
    if url.get_backend_name() == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    logger.debug("Created %s engine", url.get_backend_name())
    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    """Session factory; objects stay readable after commit."""
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)


def init_db(engine: Engine) -> None:
    """Initialize database tables."""
    Base.metadata.create_all(engine)
    logger.info("Database tables ready")
