from __future__ import annotations

import threading

import pytest

from trip_importer.core.db import SessionLocal

FLIGHT_TEXT = "LATAM LA3301 FLN-GRU 02/04/2026 R$ 1.299,90"


class _RecordingSink:
    def __init__(self, *, fail: bool = False) -> None:
        self.saved: list[tuple[str, str]] = []
        self.fail = fail

    def save(self, item, review) -> None:
        if self.fail:
            raise RuntimeError("sink offline")
        self.saved.append((item.id, review.type.value))


def _native_text(file_name, content_type, body):
    from trip_importer.modules.extraction.text import ExtractedText

    return ExtractedText(text=body.decode("utf-8"), method="native")


def _collaborators(*, structured=None, extract_text=_native_text, sink=None):
    from trip_importer.modules.imports.service import ImportCollaborators

    return ImportCollaborators(
        extract_text=extract_text,
        extract_structured=structured or (lambda _text, _file_name: None),
        sink=sink or _RecordingSink(),
    )


def _ai_flight_draft(_text, _file_name):
    from trip_importer.modules.extraction.ai import sanitize_canonical

    return sanitize_canonical(
        {
            "scope": "trip_related",
            "extraction_quality": "high",
            "metadata": {"tipo": "Voo", "confianca": 92, "status": "Confirmado"},
            "dados_principais": {
                "provedor": "LATAM",
                "codigo_reserva": "abc123",
                "origem": "FLN",
                "destino": "GRU",
                "data_inicio": "2026-04-02",
                "hora_inicio": "08:15",
            },
            "financeiro": {"valor_total": 1299.9, "moeda": "BRL"},
        }
    )


def _process(queue, collaborators, **kwargs):
    from trip_importer.modules.imports.service import run_batch

    return run_batch(queue, collaborators=collaborators, **kwargs)


def test_fallback_draft_when_ai_returns_nothing():
    from trip_importer.modules.extraction.schemas import ImportScope, ImportType
    from trip_importer.modules.imports.queue import ImportQueue, QueueStatus

    queue = ImportQueue()
    item = queue.enqueue(file_name="latam.txt", content_type="text/plain", body=FLIGHT_TEXT.encode())

    _process(queue, _collaborators())

    assert item.status == QueueStatus.NEEDS_CONFIRMATION
    assert item.needs_user_confirmation is True
    assert item.scope == ImportScope.TRIP_RELATED
    assert item.identified_type == ImportType.FLIGHT
    assert item.missing_fields == []
    assert item.type_confidence == pytest.approx(0.45)
    assert item.provider_meta["fallback_used"] is True
    assert item.review.voo.numero == "LA3301"
    assert item.review.voo.valor == "1299.9"
    assert item.canonical.metadata.arquivo_hash == item.sha256
    assert item.canonical.metadata.arquivo_nome == "latam.txt"
    assert item.raw_text == FLIGHT_TEXT


def test_ai_error_is_a_warning_and_falls_back():
    from trip_importer.modules.extraction.ai import AIExtractionError
    from trip_importer.modules.imports.queue import ImportQueue, QueueStatus
    from trip_importer.modules.imports.summary import user_warnings

    def _boom(_text, _file_name):
        raise AIExtractionError("Falha na extração por IA: timeout")

    queue = ImportQueue()
    item = queue.enqueue(file_name="latam.txt", content_type="text/plain", body=FLIGHT_TEXT.encode())

    _process(queue, _collaborators(structured=_boom))

    assert item.status == QueueStatus.NEEDS_CONFIRMATION
    assert "Falha na extração por IA: timeout" in item.warnings
    assert item.provider_meta["selected"] == "fallback"
    assert any("IA não respondeu" in w for w in user_warnings(item.warnings))


def test_complete_ai_draft_is_auto_extracted():
    from trip_importer.modules.extraction.schemas import ExtractionQuality, ImportType
    from trip_importer.modules.imports.queue import ImportQueue, QueueStatus

    queue = ImportQueue()
    item = queue.enqueue(file_name="latam.txt", content_type="text/plain", body=FLIGHT_TEXT.encode())

    _process(queue, _collaborators(structured=_ai_flight_draft))

    assert item.status == QueueStatus.AUTO_EXTRACTED
    assert item.needs_user_confirmation is False
    assert item.identified_type == ImportType.FLIGHT
    assert item.type_confidence == pytest.approx(0.92)
    assert item.extraction_quality == ExtractionQuality.HIGH
    assert item.review.voo.codigo_reserva == "ABC123"
    assert item.review.voo.hora_inicio == "08:15"
    assert item.warnings == []


def test_short_text_skips_ai():
    from trip_importer.modules.imports.queue import ImportQueue
    from trip_importer.modules.imports.service import SHORT_TEXT_WARNING

    calls: list[str] = []

    def _structured(text, _file_name):
        calls.append(text)
        return None

    queue = ImportQueue()
    item = queue.enqueue(file_name="nota.txt", content_type="text/plain", body=b"GRU-LIS")

    _process(queue, _collaborators(structured=_structured))

    assert calls == []
    assert SHORT_TEXT_WARNING in item.warnings
    assert item.review.voo.origem == "GRU"


def test_outside_scope_document_has_no_review_and_saves_as_document():
    from trip_importer.modules.extraction.ai import sanitize_canonical
    from trip_importer.modules.extraction.schemas import ImportScope
    from trip_importer.modules.imports.queue import ImportQueue, QueueStatus
    from trip_importer.modules.imports.service import confirm_item

    def _structured(_text, _file_name):
        return sanitize_canonical(
            {"scope": "outside_scope", "financeiro": {"valor_total": 25.9, "moeda": "BRL"}}
        )

    sink = _RecordingSink()
    queue = ImportQueue()
    item = queue.enqueue(
        file_name="cupom.txt",
        content_type="text/plain",
        body="Supermercado Bom Preço\nArroz 5kg R$ 25,90\nTotal R$ 25,90".encode(),
    )

    _process(queue, _collaborators(structured=_structured, sink=sink))

    assert item.status == QueueStatus.NEEDS_CONFIRMATION
    assert item.scope == ImportScope.OUTSIDE_SCOPE
    assert item.review is None
    assert item.identified_type is None
    assert item.missing_fields == []

    with SessionLocal() as session:
        confirm_item(item, session=session, sink=sink)

    assert item.status == QueueStatus.SAVED
    assert sink.saved == []
    assert item.summary["type"] == "documento"
    assert item.document_id


def test_text_extraction_failure_marks_item_failed_and_reprocess_recovers():
    from trip_importer.modules.extraction.text import TextExtractionError
    from trip_importer.modules.imports.queue import ImportQueue, QueueStatus
    from trip_importer.modules.imports.service import reprocess_item

    def _broken(file_name, content_type, body):
        raise TextExtractionError("OCR não encontrou texto na imagem.")

    queue = ImportQueue()
    item = queue.enqueue(file_name="foto.png", content_type="image/png", body=FLIGHT_TEXT.encode())

    _process(queue, _collaborators(extract_text=_broken))

    assert item.status == QueueStatus.FAILED
    assert item.error_message == "OCR não encontrou texto na imagem."

    with SessionLocal() as session:
        reprocess_item(item, session=session, collaborators=_collaborators())

    assert item.status == QueueStatus.NEEDS_CONFIRMATION
    assert item.error_message is None


def test_empty_text_marks_item_failed():
    from trip_importer.modules.extraction.text import ExtractedText
    from trip_importer.modules.imports.queue import ImportQueue, QueueStatus

    queue = ImportQueue()
    item = queue.enqueue(file_name="vazio.pdf", content_type="application/pdf", body=b"%PDF")

    _process(
        queue,
        _collaborators(extract_text=lambda *_args: ExtractedText(text="  ", method="native")),
    )

    assert item.status == QueueStatus.FAILED


def test_reprocess_without_changes_warns_and_keeps_history():
    from trip_importer.modules.imports.queue import ImportQueue
    from trip_importer.modules.imports.service import UNCHANGED_REPROCESS_WARNING, reprocess_item

    queue = ImportQueue()
    item = queue.enqueue(file_name="latam.txt", content_type="text/plain", body=FLIGHT_TEXT.encode())
    collaborators = _collaborators()
    _process(queue, collaborators)
    first = item.canonical

    with SessionLocal() as session:
        reprocess_item(item, session=session, collaborators=collaborators)

    assert UNCHANGED_REPROCESS_WARNING in item.warnings
    assert item.extraction_history == [first]


def test_reprocess_rejects_saved_items():
    from trip_importer.modules.imports.queue import InvalidTransitionError, QueueItem, QueueStatus
    from trip_importer.modules.imports.service import reprocess_item

    item = QueueItem(file_name="a.txt", content_type=None, body=b"x", status=QueueStatus.SAVED)
    with SessionLocal() as session:
        with pytest.raises(InvalidTransitionError):
            reprocess_item(item, session=session, collaborators=_collaborators())


def test_batch_size_and_cancellation_leave_items_pending(monkeypatch):
    from trip_importer.core.config import settings
    from trip_importer.modules.imports.queue import ImportQueue, QueueStatus

    monkeypatch.setattr(settings, "import_batch_size", 2)
    queue = ImportQueue()
    for i in range(3):
        queue.enqueue(file_name=f"{i}.txt", content_type="text/plain", body=f"{FLIGHT_TEXT} {i}".encode())

    processed = _process(queue, _collaborators())
    assert len(processed) == 2
    assert len(queue.pending()) == 1

    cancel = threading.Event()
    cancel.set()
    assert _process(queue, _collaborators(), cancel_event=cancel) == []
    assert [i.status for i in queue.items()][-1] == QueueStatus.PENDING


def test_cancellation_mid_batch():
    from trip_importer.modules.imports.queue import ImportQueue

    cancel = threading.Event()

    def _extract_then_cancel(file_name, content_type, body):
        cancel.set()
        return _native_text(file_name, content_type, body)

    queue = ImportQueue()
    for i in range(3):
        queue.enqueue(file_name=f"{i}.txt", content_type="text/plain", body=f"{FLIGHT_TEXT} {i}".encode())

    processed = _process(
        queue, _collaborators(extract_text=_extract_then_cancel), cancel_event=cancel
    )
    assert len(processed) == 1
    assert len(queue.pending()) == 2



def test_overlapping_batches_process_each_item_once():
    from trip_importer.modules.imports.queue import ImportQueue, QueueStatus
    from trip_importer.modules.imports.service import UNCHANGED_REPROCESS_WARNING

    queue = ImportQueue()
    calls: list[str] = []
    inner: list = []

    def _extract_and_start_another_batch(file_name, content_type, body):
        calls.append(file_name)
        if file_name == "a.txt":
            inner.extend(_process(queue, collaborators))
        return _native_text(file_name, content_type, body)

    collaborators = _collaborators(extract_text=_extract_and_start_another_batch)
    a = queue.enqueue(file_name="a.txt", content_type="text/plain", body=f"{FLIGHT_TEXT} a".encode())
    b = queue.enqueue(file_name="b.txt", content_type="text/plain", body=f"{FLIGHT_TEXT} b".encode())

    outer = _process(queue, collaborators)

    assert sorted(calls) == ["a.txt", "b.txt"]
    assert [i.id for i in outer] == [a.id]
    assert [i.id for i in inner] == [b.id]
    assert b.status == QueueStatus.NEEDS_CONFIRMATION
    assert b.extraction_history == []
    assert UNCHANGED_REPROCESS_WARNING not in b.warnings


def test_queue_claim_is_exclusive():
    from trip_importer.modules.imports.queue import ImportQueue

    queue = ImportQueue()
    item = queue.enqueue(file_name="a.txt", content_type="text/plain", body=b"x")

    assert queue.claim(item) is True
    assert queue.claim(item) is False
    queue.release(item)
    assert queue.claim(item) is True

def test_confirm_requires_missing_fields_then_saves_with_summary():
    from trip_importer.modules.extraction.schemas import ImportType
    from trip_importer.modules.imports.queue import ImportQueue, QueueStatus
    from trip_importer.modules.imports.service import confirm_item, update_review

    sink = _RecordingSink()
    queue = ImportQueue()
    item = queue.enqueue(
        file_name="hotel.txt",
        content_type="text/plain",
        body="Hotel Central check-in amanhã, quarto duplo".encode(),
    )
    _process(queue, _collaborators(sink=sink))

    assert item.identified_type == ImportType.LODGING
    assert item.missing_fields == [
        "hospedagem.data_inicio",
        "hospedagem.data_fim",
        "hospedagem.valor_total",
    ]

    with SessionLocal() as session:
        confirm_item(item, session=session, sink=sink)
    assert item.status == QueueStatus.NEEDS_CONFIRMATION
    assert sink.saved == []

    update_review(
        item,
        patch={
            "hospedagem": {
                "check_in": "2026-05-10",
                "check_out": "2026-05-15",
                "valor": "1000",
                "moeda": "EUR",
            }
        },
    )
    assert item.missing_fields == []

    with SessionLocal() as session:
        confirm_item(item, session=session, sink=sink)

    assert item.status == QueueStatus.SAVED
    assert sink.saved == [(item.id, "hospedagem")]
    assert item.summary["nights"] == 5
    assert item.summary["currency"] == "EUR"
    assert item.summary["estimated_brl"] == pytest.approx(5800.0)


def test_update_review_can_change_type():
    from trip_importer.modules.extraction.schemas import ImportType
    from trip_importer.modules.imports.queue import ImportQueue
    from trip_importer.modules.imports.service import update_review

    queue = ImportQueue()
    item = queue.enqueue(file_name="latam.txt", content_type="text/plain", body=FLIGHT_TEXT.encode())
    _process(queue, _collaborators())

    update_review(
        item, patch={"type": "transporte", "transporte": {"origem": "Lisboa", "destino": ""}}
    )

    assert item.identified_type == ImportType.TRANSPORT
    assert item.review.transporte.origem == "Lisboa"
    assert item.review.transporte.data_inicio == "2026-04-02"
    assert item.missing_fields == ["transporte.destino"]
    assert item.needs_user_confirmation is True


def test_update_review_rejects_unreviewable_items():
    from trip_importer.modules.imports.queue import ImportQueue, ImportStateError
    from trip_importer.modules.imports.service import update_review

    queue = ImportQueue()
    item = queue.enqueue(file_name="latam.txt", content_type="text/plain", body=FLIGHT_TEXT.encode())

    with pytest.raises(ImportStateError):
        update_review(item, patch={"voo": {"origem": "GRU"}})


def test_sink_failure_returns_item_to_review():
    from trip_importer.modules.imports.queue import ImportQueue, QueueStatus
    from trip_importer.modules.imports.service import confirm_item

    sink = _RecordingSink(fail=True)
    queue = ImportQueue()
    item = queue.enqueue(file_name="latam.txt", content_type="text/plain", body=FLIGHT_TEXT.encode())
    _process(queue, _collaborators(structured=_ai_flight_draft, sink=sink))

    with SessionLocal() as session:
        confirm_item(item, session=session, sink=sink)

    assert item.status == QueueStatus.NEEDS_CONFIRMATION
    assert any(w.startswith("Falha ao salvar") for w in item.warnings)
    assert item.document_id is None


def test_already_imported_file_short_circuits_to_saved():
    from trip_importer.modules.imports.queue import ImportQueue, QueueStatus
    from trip_importer.modules.imports.service import DUPLICATE_WARNING, confirm_item

    sink = _RecordingSink()
    collaborators = _collaborators(structured=_ai_flight_draft, sink=sink)
    queue = ImportQueue()
    first = queue.enqueue(file_name="latam.txt", content_type="text/plain", body=FLIGHT_TEXT.encode())
    _process(queue, collaborators)
    with SessionLocal() as session:
        confirm_item(first, session=session, sink=sink)
    assert first.status == QueueStatus.SAVED

    again = queue.enqueue(file_name="copia.txt", content_type="text/plain", body=FLIGHT_TEXT.encode())
    _process(queue, collaborators)

    assert again.status == QueueStatus.SAVED
    assert again.document_id == first.document_id
    assert DUPLICATE_WARNING in again.warnings
    assert again.review is None
