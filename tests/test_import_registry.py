from __future__ import annotations

from sqlalchemy import select

from trip_importer.core.db import SessionLocal
from trip_importer.modules.imports.models import ImportedDocument


def _processed_item():
    from trip_importer.modules.extraction.fallback import build_fallback
    from trip_importer.modules.extraction.review import to_review_state
    from trip_importer.modules.extraction.schemas import ImportType
    from trip_importer.modules.imports.queue import QueueItem
    from trip_importer.modules.imports.registry import with_import_hash

    item = QueueItem(file_name="latam.txt", content_type="text/plain", body=b"LATAM LA3301 FLN-GRU")
    draft = build_fallback("LATAM LA3301 FLN-GRU", item.file_name)
    item.canonical = with_import_hash(draft.canonical, item.sha256, item.file_name)
    item.review = to_review_state(draft, ImportType.FLIGHT)
    item.identified_type = ImportType.FLIGHT
    item.confidence = draft.confidence
    return item


def test_with_import_hash_returns_stamped_copy():
    from trip_importer.modules.extraction.schemas import CanonicalRecord
    from trip_importer.modules.imports.registry import with_import_hash

    original = CanonicalRecord.model_validate({"metadata": {"tipo": "Voo"}})
    stamped = with_import_hash(original, "abc", "voo.pdf")

    assert stamped.metadata.arquivo_hash == "abc"
    assert stamped.metadata.arquivo_nome == "voo.pdf"
    assert stamped.metadata.tipo == "Voo"
    assert original.metadata.arquivo_hash is None
    assert with_import_hash(None, "abc", "x.pdf").metadata.arquivo_nome == "x.pdf"


def test_only_imported_documents_count_as_duplicates():
    from trip_importer.modules.imports.registry import (
        find_imported_document_by_hash,
        record_imported_document,
        store_confirmed_reservation,
    )

    item = _processed_item()
    with SessionLocal() as session:
        store_confirmed_reservation(session, item=item, review=item.review)
        session.commit()
        assert find_imported_document_by_hash(session, sha256=item.sha256) is None

        doc = record_imported_document(session, item=item)
        session.commit()

        found = find_imported_document_by_hash(session, sha256=item.sha256)
        assert found is not None
        assert found.id == doc.id
        assert find_imported_document_by_hash(session, sha256="") is None

        rows = session.scalars(select(ImportedDocument)).all()
        assert len(rows) == 1
        row = rows[0]
        assert row.importado is True
        assert row.tipo == "voo"
        assert row.extracao_scope == "trip_related"
        assert row.extracao_payload["metadata"]["arquivo_hash"] == item.sha256
        assert row.reserva_payload["type"] == "voo"
        assert row.reserva_payload["dados"]["numero"] == "LA3301"


def test_registry_record_sink_persists_review():
    from trip_importer.modules.imports.service import RegistryRecordSink

    item = _processed_item()
    RegistryRecordSink().save(item, item.review)

    with SessionLocal() as session:
        row = session.scalar(select(ImportedDocument).where(ImportedDocument.sha256 == item.sha256))
        assert row is not None
        assert row.importado is False
        assert row.reserva_payload["dados"]["origem"] == "FLN"
