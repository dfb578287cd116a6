from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from trip_importer.modules.extraction.review import ReviewState
from trip_importer.modules.extraction.schemas import CanonicalRecord
from trip_importer.modules.imports.models import ImportedDocument
from trip_importer.modules.imports.queue import QueueItem


def with_import_hash(
    canonical: CanonicalRecord | None, sha256: str, file_name: str
) -> CanonicalRecord:
    """Return a copy of `canonical` stamped with the source file hash and name."""
    base = canonical or CanonicalRecord()
    stamped = base.model_copy(deep=True)
    stamped.metadata.arquivo_hash = sha256
    stamped.metadata.arquivo_nome = file_name
    return stamped


def find_imported_document_by_hash(session: Session, *, sha256: str) -> ImportedDocument | None:
    if not sha256:
        return None
    return session.scalar(
        select(ImportedDocument)
        .where(ImportedDocument.sha256 == sha256, ImportedDocument.importado.is_(True))
        .order_by(ImportedDocument.created_at.asc())
        .limit(1)
    )


def record_imported_document(session: Session, *, item: QueueItem) -> ImportedDocument:
    """Upsert the registry row for `item` and mark it imported."""
    doc = session.scalar(
        select(ImportedDocument)
        .where(ImportedDocument.sha256 == item.sha256, ImportedDocument.importado.is_(False))
        .limit(1)
    )
    if doc is None:
        doc = ImportedDocument(nome=item.file_name, sha256=item.sha256)

    review_type = item.review.type.value if item.review else None
    doc.nome = item.file_name
    doc.tipo = review_type
    doc.extracao_tipo = item.identified_type.value if item.identified_type else None
    doc.extracao_scope = item.scope.value
    doc.extracao_confianca = item.confidence
    doc.extracao_payload = item.canonical.model_dump(mode="json") if item.canonical else {}
    doc.importado = True
    session.add(doc)
    session.flush()
    return doc


def store_confirmed_reservation(session: Session, *, item: QueueItem, review: ReviewState) -> None:
    doc = session.scalar(
        select(ImportedDocument).where(ImportedDocument.sha256 == item.sha256).limit(1)
    )
    if doc is None:
        doc = ImportedDocument(nome=item.file_name, sha256=item.sha256, importado=False)
    doc.reserva_payload = {
        "type": review.type.value,
        "dados": review.section().model_dump(mode="json"),
    }
    session.add(doc)
    session.flush()
