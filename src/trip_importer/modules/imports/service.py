from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from fastapi import HTTPException
from sqlalchemy.orm import Session

from trip_importer.core.config import settings
from trip_importer.core.db import SessionLocal
from trip_importer.core.logging import (
    get_logger,
    log_event,
    log_exception,
    item_context,
    monotonic_ms,
)
from trip_importer.modules.extraction import ai
from trip_importer.modules.extraction import text as text_extraction
from trip_importer.modules.extraction.classification import resolve_scope, resolve_type
from trip_importer.modules.extraction.fallback import build_fallback
from trip_importer.modules.extraction.missing import compute_missing, merge_missing
from trip_importer.modules.extraction.review import ReviewState, to_review_state
from trip_importer.modules.extraction.schemas import (
    ExtractionQuality,
    ImportScope,
    WeakDraft,
)
from trip_importer.modules.imports.queue import (
    REVIEWABLE_STATUSES,
    ImportQueue,
    ImportStateError,
    InvalidTransitionError,
    QueueItem,
    QueueStatus,
)
from trip_importer.modules.imports.registry import (
    find_imported_document_by_hash,
    record_imported_document,
    store_confirmed_reservation,
    with_import_hash,
)
from trip_importer.modules.imports.summary import build_summary

logger = get_logger(__name__)

SHORT_TEXT_WARNING = "Texto insuficiente para extração automática."
UNCHANGED_REPROCESS_WARNING = (
    "Reprocessamento concluído sem mudanças relevantes nos dados extraídos."
)
DUPLICATE_WARNING = "Este arquivo já foi importado anteriormente."
LOW_QUALITY_WARNING = "Texto extraído com baixa qualidade."
MISSING_FIELDS_WARNING = "Campos obrigatórios pendentes"


class RecordSink(Protocol):
    def save(self, item: QueueItem, review: ReviewState) -> None: ...


class RegistryRecordSink:
    """Stores the confirmed review form alongside the registry row."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory

    def save(self, item: QueueItem, review: ReviewState) -> None:
        with self._session_factory() as session:
            store_confirmed_reservation(session, item=item, review=review)
            session.commit()


def _default_extract_text(
    file_name: str, content_type: str | None, body: bytes
) -> text_extraction.ExtractedText:
    return text_extraction.extract_text(file_name, content_type, body)


def _default_extract_structured(text: str, file_name: str) -> WeakDraft | None:
    return ai.extract_structured(text, file_name)


@dataclass
class ImportCollaborators:
    extract_text: Callable[[str, str | None, bytes], text_extraction.ExtractedText] = (
        _default_extract_text
    )
    extract_structured: Callable[[str, str], WeakDraft | None] = _default_extract_structured
    sink: RecordSink = field(default_factory=RegistryRecordSink)


def get_item_or_404(queue: ImportQueue, item_id: str) -> QueueItem:
    item = queue.get(item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Import item not found")
    return item


def _quality_from_length(text: str) -> ExtractionQuality:
    n = len(text.strip())
    if n > 500:
        return ExtractionQuality.HIGH
    if n > 120:
        return ExtractionQuality.MEDIUM
    return ExtractionQuality.LOW


def _canonical_changed(previous, current) -> bool:
    if previous is None:
        return True
    exclude = {"metadata": {"arquivo_hash", "arquivo_nome"}}
    return previous.model_dump(exclude=exclude) != current.model_dump(exclude=exclude)


def _draft_for_text(
    item: QueueItem,
    *,
    text: str,
    collaborators: ImportCollaborators,
    trip_destination: str | None,
) -> tuple[WeakDraft, bool]:
    """Return the draft to use for `text` and whether it came from the fallback builder."""
    if len(text.strip()) <= settings.min_text_chars_for_ai:
        item.add_warning(SHORT_TEXT_WARNING)
        return build_fallback(text, item.file_name, trip_destination), True

    try:
        draft = collaborators.extract_structured(text, item.file_name)
    except ai.AIExtractionError as e:
        log_event(logger, "import.item.ai_error", error=str(e))
        item.add_warning(str(e))
        draft = None

    if draft is None:
        return build_fallback(text, item.file_name, trip_destination), True
    return draft, False


def process_item(
    item: QueueItem,
    *,
    session: Session,
    collaborators: ImportCollaborators,
    trip_destination: str | None = None,
) -> QueueItem:
    """
    Run one queue item through extraction, classification and review preparation.

    Pending items whose file was already imported short-circuit to `saved`.
    Collaborator failures end in `failed`; everything else ends in
    `needs_confirmation` or `auto_extracted`.
    """
    start = time.monotonic()
    with item_context(item.id):
        log_event(
            logger,
            "import.item.start",
            file_name=item.file_name,
            status=item.status.value,
            byte_size=len(item.body),
        )

        if item.status == QueueStatus.PENDING:
            duplicate = find_imported_document_by_hash(session, sha256=item.sha256)
            if duplicate is not None:
                item.document_id = str(duplicate.id)
                item.needs_user_confirmation = False
                item.add_warning(DUPLICATE_WARNING)
                item.move_to(QueueStatus.SAVED)
                log_event(logger, "import.item.duplicate", document_id=item.document_id)
                return item

        item.move_to(QueueStatus.PROCESSING)
        previous_canonical = item.canonical
        reprocessing = previous_canonical is not None

        try:
            _run_extraction(
                item,
                collaborators=collaborators,
                trip_destination=trip_destination,
                previous_canonical=previous_canonical,
            )
        except InvalidTransitionError:
            raise
        except Exception as e:  # noqa: BLE001
            log_exception(logger, "import.item.error", file_name=item.file_name)
            item.error_message = str(e)[:500]
            item.add_warning(str(e)[:300] or type(e).__name__)
            item.move_to(QueueStatus.FAILED)
        else:
            if reprocessing and not _canonical_changed(previous_canonical, item.canonical):
                item.add_warning(UNCHANGED_REPROCESS_WARNING)

        log_event(
            logger,
            "import.item.finish",
            status=item.status.value,
            scope=item.scope.value,
            identified_type=item.identified_type.value if item.identified_type else None,
            missing_count=len(item.missing_fields),
            duration_ms=monotonic_ms(start),
        )
        return item


def _run_extraction(
    item: QueueItem,
    *,
    collaborators: ImportCollaborators,
    trip_destination: str | None,
    previous_canonical,
) -> None:
    extracted = collaborators.extract_text(item.file_name, item.content_type, item.body)
    for warning in extracted.warnings:
        item.add_warning(warning)
    text = extracted.text or ""
    if not text.strip():
        raise text_extraction.TextExtractionError("Nenhum texto utilizável no documento.")

    item.raw_text = text
    item.extraction_method = extracted.method
    item.error_message = None

    draft, used_fallback = _draft_for_text(
        item, text=text, collaborators=collaborators, trip_destination=trip_destination
    )
    if used_fallback:
        log_event(logger, "import.item.fallback", text_chars=len(text.strip()))

    scope = resolve_scope(draft, text, item.file_name)
    resolved_type = resolve_type(draft, text, item.file_name)
    canonical = with_import_hash(draft.canonical, item.sha256, item.file_name)
    draft = draft.model_copy(update={"canonical": canonical})

    review = to_review_state(draft, resolved_type) if scope == ImportScope.TRIP_RELATED else None
    identified_type = review.type if review is not None else None

    if scope == ImportScope.OUTSIDE_SCOPE:
        missing: list[str] = []
    else:
        missing = merge_missing(
            draft.missing_fields, compute_missing(identified_type, review, scope)
        )

    quality = draft.extraction_quality or _quality_from_length(text)
    if extracted.method == "ocr" and len(text.strip()) < settings.low_quality_text_chars:
        item.add_warning(LOW_QUALITY_WARNING)

    if canonical.metadata.confianca is not None:
        type_confidence = max(0.0, min(1.0, canonical.metadata.confianca / 100))
    elif draft.type_confidence is not None:
        type_confidence = draft.type_confidence
    else:
        type_confidence = draft.confidence

    if previous_canonical is not None:
        item.extraction_history.append(previous_canonical)

    item.scope = scope
    item.identified_type = identified_type
    item.review = review
    item.canonical = canonical
    item.missing_fields = missing
    item.confidence = draft.confidence
    item.type_confidence = type_confidence
    item.extraction_quality = quality
    item.provider_meta = draft.provider_meta
    item.needs_user_confirmation = (
        used_fallback or bool(missing) or scope == ImportScope.OUTSIDE_SCOPE
    )

    log_event(
        logger,
        "import.item.classified",
        scope=scope.value,
        identified_type=identified_type.value if identified_type else None,
        fallback_used=used_fallback,
        type_confidence=type_confidence,
    )

    if missing:
        item.add_warning(f"{MISSING_FIELDS_WARNING}: {', '.join(missing)}")
    item.move_to(
        QueueStatus.NEEDS_CONFIRMATION if item.needs_user_confirmation else QueueStatus.AUTO_EXTRACTED
    )


def run_batch(
    queue: ImportQueue,
    *,
    collaborators: ImportCollaborators,
    session_factory: Callable[[], Session] = SessionLocal,
    trip_destination: str | None = None,
    cancel_event: threading.Event | None = None,
    limit: int | None = None,
) -> list[QueueItem]:
    """
    Process up to `import_batch_size` pending items, one at a time.

    Once `cancel_event` is set the remaining items stay pending. Items another
    run has already claimed are skipped.
    """
    batch_size = limit if limit is not None else settings.import_batch_size
    items = queue.pending(limit=batch_size)
    start = time.monotonic()
    log_event(logger, "import.batch.start", item_count=len(items))

    processed: list[QueueItem] = []
    for item in items:
        if cancel_event is not None and cancel_event.is_set():
            log_event(logger, "import.batch.cancelled", remaining=len(items) - len(processed))
            break
        if not queue.claim(item):
            log_event(
                logger, "import.batch.skipped", import_item_id=item.id, status=item.status.value
            )
            continue
        try:
            with session_factory() as session:
                process_item(
                    item,
                    session=session,
                    collaborators=collaborators,
                    trip_destination=trip_destination,
                )
        finally:
            queue.release(item)
        processed.append(item)

    log_event(
        logger,
        "import.batch.finish",
        processed=len(processed),
        failed=sum(1 for i in processed if i.status == QueueStatus.FAILED),
        duration_ms=monotonic_ms(start),
    )
    return processed


def reprocess_item(
    item: QueueItem,
    *,
    session: Session,
    collaborators: ImportCollaborators,
    trip_destination: str | None = None,
) -> QueueItem:
    if item.status not in {*REVIEWABLE_STATUSES, QueueStatus.FAILED}:
        raise InvalidTransitionError(item.status, QueueStatus.PROCESSING)
    return process_item(
        item, session=session, collaborators=collaborators, trip_destination=trip_destination
    )


def update_review(item: QueueItem, *, patch: dict[str, Any]) -> QueueItem:
    """
    Apply a partial review edit and recompute the missing-field checklist.

    `patch` may carry a new `type` and any subset of section fields.
    """
    if item.status not in REVIEWABLE_STATUSES:
        raise ImportStateError(f"Review cannot be edited while item is {item.status.value}")
    if item.scope == ImportScope.OUTSIDE_SCOPE or item.review is None:
        raise ImportStateError("Item is outside the trip scope and has no review form")

    merged = item.review.model_dump()
    for key, value in patch.items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key].update({k: v for k, v in value.items() if v is not None})
        else:
            merged[key] = value
    review = ReviewState.model_validate(merged)

    item.review = review
    item.identified_type = review.type
    item.missing_fields = merge_missing(
        item.missing_fields, compute_missing(review.type, review, item.scope)
    )
    item.needs_user_confirmation = bool(item.missing_fields)
    item.updated_at = datetime.now(UTC)
    return item


def confirm_item(item: QueueItem, *, session: Session, sink: RecordSink) -> QueueItem:
    """
    Save a reviewed item.

    Trip-related items go through `sink`; outside-scope documents are only
    recorded in the registry. Missing required fields send the item back to
    `needs_confirmation`.
    """
    with item_context(item.id):
        item.move_to(QueueStatus.SAVING)
        if item.scope == ImportScope.TRIP_RELATED and item.review is not None:
            computed = compute_missing(item.review.type, item.review, item.scope)
            item.missing_fields = merge_missing(item.missing_fields, computed)
            if computed:
                item.add_warning(f"{MISSING_FIELDS_WARNING}: {', '.join(computed)}")
                item.move_to(QueueStatus.NEEDS_CONFIRMATION)
                log_event(logger, "import.item.confirm_blocked", missing=computed)
                return item

        try:
            if item.scope == ImportScope.TRIP_RELATED and item.review is not None:
                sink.save(item, item.review)
            doc = record_imported_document(session, item=item)
            session.commit()
        except Exception as e:  # noqa: BLE001
            session.rollback()
            log_exception(logger, "import.item.save_error", file_name=item.file_name)
            item.add_warning(f"Falha ao salvar: {str(e)[:200]}")
            if item.review is not None:
                item.move_to(QueueStatus.NEEDS_CONFIRMATION)
            else:
                item.error_message = str(e)[:500]
                item.move_to(QueueStatus.FAILED)
            return item

        item.document_id = str(doc.id)
        item.summary = build_summary(item)
        item.needs_user_confirmation = False
        item.move_to(QueueStatus.SAVED)
        log_event(
            logger,
            "import.item.saved",
            document_id=item.document_id,
            identified_type=item.identified_type.value if item.identified_type else None,
        )
        return item
