"""Tests for the FieldSign persistence layer."""

import pytest
from sqlalchemy import select
from sqlalchemy.dialects import postgresql

from fieldsign.db import Signature
from fieldsign.errors import NotFoundError
from fieldsign.models import DocumentStatus, FieldType, SigningStatus
from fieldsign.store import field_for_token_query

from conftest import ADA_TOKEN, BOB_TOKEN


class TestSeeding:
    """Documents, recipients and fields."""

    def test_create_document(self, tmp_store):
        doc = tmp_store.create_document("Lease")
        loaded = tmp_store.get_document(doc.id)
        assert loaded.title == "Lease"
        assert loaded.status == DocumentStatus.PENDING
        assert loaded.recipients == []
        assert loaded.fields == []

    def test_generated_tokens_are_unique(self, tmp_store):
        doc = tmp_store.create_document("Lease")
        r1 = tmp_store.add_recipient(doc.id, "A")
        r2 = tmp_store.add_recipient(doc.id, "B")
        assert r1.token and r2.token
        assert r1.token != r2.token

    def test_add_recipient_to_missing_document(self, tmp_store):
        with pytest.raises(NotFoundError):
            tmp_store.add_recipient(12345, "Nobody")

    def test_add_field(self, tmp_store, seeded):
        field = seeded.fields[FieldType.DATE]
        assert field.inserted is False
        assert field.custom_text is None
        assert field.recipient_id == seeded.ada.id

    def test_document_lists_everything(self, tmp_store, seeded):
        doc = tmp_store.get_document(seeded.document.id)
        assert {r.name for r in doc.recipients} == {"Ada", "Bob"}
        assert len(doc.fields) == len(FieldType) + 1
        assert len(doc.pending_recipients) == 2

    def test_set_statuses(self, tmp_store, seeded):
        tmp_store.set_recipient_status(seeded.ada.id, SigningStatus.SIGNED)
        tmp_store.set_document_status(seeded.document.id, DocumentStatus.COMPLETED)

        doc = tmp_store.get_document(seeded.document.id)
        assert doc.status == DocumentStatus.COMPLETED
        ada = next(r for r in doc.recipients if r.id == seeded.ada.id)
        assert ada.signing_status == SigningStatus.SIGNED
        assert ada.signed_at is not None
        assert [r.name for r in doc.pending_recipients] == ["Bob"]

    def test_missing_field(self, tmp_store):
        with pytest.raises(NotFoundError, match="Field 42 not found"):
            tmp_store.get_field(42)


class TestTokenLookup:
    """Point lookup scoped to the recipient token."""

    def test_matching_token(self, tmp_store, seeded):
        field_id = seeded.fields[FieldType.TEXT].id
        with tmp_store.session_scope() as session:
            field = tmp_store.get_field_for_token(session, field_id, ADA_TOKEN)
            assert field is not None
            assert field.document.title == "Mutual NDA"
            assert field.recipient.token == ADA_TOKEN

    def test_wrong_token(self, tmp_store, seeded):
        field_id = seeded.fields[FieldType.TEXT].id
        with tmp_store.session_scope() as session:
            assert tmp_store.get_field_for_token(session, field_id, BOB_TOKEN) is None

    def test_lookup_locks_field_row(self):
        sql = str(field_for_token_query(1, "t").compile(dialect=postgresql.dialect()))
        assert "FOR UPDATE OF fields" in sql

    def test_read_only_lookup_takes_no_lock(self):
        sql = str(field_for_token_query(1, "t", lock=False).compile(dialect=postgresql.dialect()))
        assert "FOR UPDATE" not in sql

    def test_recipient_read(self, tmp_store, seeded):
        field_id = seeded.fields[FieldType.TEXT].id
        assert tmp_store.get_field_for_recipient(field_id, ADA_TOKEN).id == field_id
        with pytest.raises(NotFoundError):
            tmp_store.get_field_for_recipient(field_id, BOB_TOKEN)


class TestSignatureUpsert:
    """One signature row per field."""

    def test_insert_then_replace(self, tmp_store, seeded):
        field_id = seeded.fields[FieldType.SIGNATURE].id

        with tmp_store.session_scope() as session:
            first = tmp_store.upsert_signature(session, field_id, seeded.ada.id, "aW1n", None)
            first_id = first.id

        with tmp_store.session_scope() as session:
            second = tmp_store.upsert_signature(session, field_id, seeded.bob.id, None, "Ada")
            assert second.id == first_id
            assert second.signature_image_as_base64 is None
            assert second.typed_signature == "Ada"
            # The owning recipient is set on insert only.
            assert second.recipient_id == seeded.ada.id

        with tmp_store.session_scope() as session:
            rows = session.execute(
                select(Signature).where(Signature.field_id == field_id)
            ).scalars().all()
            assert len(rows) == 1

    def test_rollback_discards_upsert(self, tmp_store, seeded):
        field_id = seeded.fields[FieldType.SIGNATURE].id

        with pytest.raises(RuntimeError):
            with tmp_store.session_scope() as session:
                tmp_store.upsert_signature(session, field_id, seeded.ada.id, None, "Ada")
                raise RuntimeError("abort")

        assert tmp_store.get_field(field_id).signature is None
