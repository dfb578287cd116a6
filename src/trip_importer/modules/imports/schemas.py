from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from trip_importer.modules.extraction.missing import missing_field_label
from trip_importer.modules.extraction.review import ReviewState
from trip_importer.modules.extraction.schemas import (
    CanonicalRecord,
    ExtractionQuality,
    ImportScope,
    ImportType,
)
from trip_importer.modules.imports.queue import QueueItem, QueueStatus
from trip_importer.modules.imports.summary import type_label, user_warnings


class QueueItemOut(BaseModel):
    id: str
    file_name: str
    content_type: str | None
    byte_size: int
    sha256: str
    status: QueueStatus
    scope: ImportScope
    identified_type: ImportType | None
    type_label: str
    confidence: float | None
    type_confidence: float | None
    extraction_quality: ExtractionQuality
    extraction_method: str | None
    needs_user_confirmation: bool
    missing_fields: list[str]
    missing_field_labels: list[str]
    warnings: list[str]
    user_warnings: list[str]
    review: ReviewState | None
    canonical: CanonicalRecord | None
    history_count: int
    summary: dict[str, Any] | None
    document_id: str | None
    error_message: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_item(cls, item: QueueItem) -> QueueItemOut:
        return cls(
            id=item.id,
            file_name=item.file_name,
            content_type=item.content_type,
            byte_size=len(item.body),
            sha256=item.sha256,
            status=item.status,
            scope=item.scope,
            identified_type=item.identified_type,
            type_label=type_label(item.identified_type),
            confidence=item.confidence,
            type_confidence=item.type_confidence,
            extraction_quality=item.extraction_quality,
            extraction_method=item.extraction_method,
            needs_user_confirmation=item.needs_user_confirmation,
            missing_fields=list(item.missing_fields),
            missing_field_labels=[missing_field_label(k) for k in item.missing_fields],
            warnings=list(item.warnings),
            user_warnings=user_warnings(item.warnings),
            review=item.review,
            canonical=item.canonical,
            history_count=len(item.extraction_history),
            summary=item.summary,
            document_id=item.document_id,
            error_message=item.error_message,
            created_at=item.created_at,
            updated_at=item.updated_at,
        )


class ReviewPatch(BaseModel):
    """Partial review edit; sections are merged field by field."""

    model_config = ConfigDict(extra="forbid")

    type: ImportType | None = None
    voo: dict[str, str] | None = None
    hospedagem: dict[str, str] | None = None
    transporte: dict[str, str] | None = None
    restaurante: dict[str, str] | None = None


class RunBatchIn(BaseModel):
    trip_destination: str | None = None
    limit: int | None = None


class RunBatchOut(BaseModel):
    processed: list[QueueItemOut]
    remaining: int
