"""Shared fixtures for FieldSign tests."""

from dataclasses import dataclass
from datetime import datetime, timezone

import pytest

from fieldsign.config import Settings
from fieldsign.models import DocumentRecord, DocumentStatus, FieldRecord, FieldType, RecipientRecord
from fieldsign.store import FieldStore


ADA_TOKEN = "tok-ada-0001"
BOB_TOKEN = "tok-bob-0002"

# 2026-10-18 15:07 UTC
FIXED_NOW = datetime(2026, 10, 18, 15, 7, 42, tzinfo=timezone.utc)


@dataclass
class Seeded:
    """A pending document with two recipients and a field of every type for Ada."""

    document: DocumentRecord
    ada: RecipientRecord
    bob: RecipientRecord
    fields: dict[FieldType, FieldRecord]
    bob_text: FieldRecord


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'fieldsign.db'}",
        date_timezone="UTC",
    )


@pytest.fixture
def tmp_store(settings) -> FieldStore:
    """Create a FieldStore on a temporary SQLite file."""
    return FieldStore.from_url(settings=settings)


@pytest.fixture
def seeded(tmp_store) -> Seeded:
    doc = tmp_store.create_document("Mutual NDA", status=DocumentStatus.PENDING)
    ada = tmp_store.add_recipient(doc.id, "Ada", email="ada@example.org", token=ADA_TOKEN)
    bob = tmp_store.add_recipient(doc.id, "Bob", token=BOB_TOKEN)

    fields = {
        ft: tmp_store.add_field(doc.id, ft, recipient_id=ada.id, page=i + 1)
        for i, ft in enumerate(FieldType)
    }
    bob_text = tmp_store.add_field(doc.id, FieldType.TEXT, recipient_id=bob.id)
    return Seeded(document=doc, ada=ada, bob=bob, fields=fields, bob_text=bob_text)
