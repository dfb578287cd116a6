from __future__ import annotations

import enum
import hashlib
import threading
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from trip_importer.core.config import settings
from trip_importer.modules.extraction.review import ReviewState
from trip_importer.modules.extraction.schemas import (
    CanonicalRecord,
    ExtractionQuality,
    ImportScope,
    ImportType,
)


class QueueStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    NEEDS_CONFIRMATION = "needs_confirmation"
    AUTO_EXTRACTED = "auto_extracted"
    SAVING = "saving"
    SAVED = "saved"
    FAILED = "failed"


ALLOWED_TRANSITIONS: MappingProxyType[QueueStatus, frozenset[QueueStatus]] = MappingProxyType(
    {
        QueueStatus.PENDING: frozenset({QueueStatus.PROCESSING, QueueStatus.SAVED}),
        QueueStatus.PROCESSING: frozenset(
            {QueueStatus.NEEDS_CONFIRMATION, QueueStatus.AUTO_EXTRACTED, QueueStatus.FAILED}
        ),
        QueueStatus.NEEDS_CONFIRMATION: frozenset({QueueStatus.SAVING, QueueStatus.PROCESSING}),
        QueueStatus.AUTO_EXTRACTED: frozenset({QueueStatus.SAVING, QueueStatus.PROCESSING}),
        QueueStatus.SAVING: frozenset(
            {QueueStatus.SAVED, QueueStatus.FAILED, QueueStatus.NEEDS_CONFIRMATION}
        ),
        QueueStatus.FAILED: frozenset({QueueStatus.PROCESSING}),
        QueueStatus.SAVED: frozenset(),
    }
)

REVIEWABLE_STATUSES: frozenset[QueueStatus] = frozenset(
    {QueueStatus.NEEDS_CONFIRMATION, QueueStatus.AUTO_EXTRACTED}
)


class ImportStateError(Exception):
    pass


class InvalidTransitionError(ImportStateError):
    def __init__(self, current: QueueStatus, target: QueueStatus) -> None:
        super().__init__(f"Invalid import transition: {current.value} -> {target.value}")
        self.current = current
        self.target = target


def can_transition(current: QueueStatus, target: QueueStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


@dataclass
class QueueItem:
    file_name: str
    content_type: str | None
    body: bytes
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    sha256: str = ""
    status: QueueStatus = QueueStatus.PENDING
    scope: ImportScope = ImportScope.TRIP_RELATED
    warnings: list[str] = field(default_factory=list)
    confidence: float | None = None
    type_confidence: float | None = None
    extraction_quality: ExtractionQuality = ExtractionQuality.LOW
    extraction_method: str | None = None
    missing_fields: list[str] = field(default_factory=list)
    identified_type: ImportType | None = None
    needs_user_confirmation: bool = True
    review: ReviewState | None = None
    raw_text: str = ""
    canonical: CanonicalRecord | None = None
    extraction_history: list[CanonicalRecord] = field(default_factory=list)
    provider_meta: dict[str, Any] | None = None
    summary: dict[str, Any] | None = None
    document_id: str | None = None
    error_message: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        if not self.sha256:
            self.sha256 = hashlib.sha256(self.body or b"").hexdigest()

    def move_to(self, target: QueueStatus) -> None:
        if not can_transition(self.status, target):
            raise InvalidTransitionError(self.status, target)
        self.status = target
        self.updated_at = datetime.now(UTC)

    def add_warning(self, message: str) -> None:
        msg = (message or "").strip()
        if not msg or msg in self.warnings:
            return
        if len(self.warnings) >= settings.max_item_warnings:
            return
        self.warnings.append(msg)


class ImportQueue:
    """In-memory queue of uploaded documents, in upload order."""

    def __init__(self) -> None:
        self._items: dict[str, QueueItem] = {}
        self._lock = threading.Lock()
        self._claimed: set[str] = set()

    def enqueue(self, *, file_name: str, content_type: str | None, body: bytes) -> QueueItem:
        item = QueueItem(file_name=file_name, content_type=content_type, body=body)
        with self._lock:
            self._items[item.id] = item
        return item

    def get(self, item_id: str) -> QueueItem | None:
        with self._lock:
            return self._items.get(item_id)

    def items(self) -> list[QueueItem]:
        with self._lock:
            return list(self._items.values())

    def pending(self, *, limit: int | None = None) -> list[QueueItem]:
        with self._lock:
            items = [i for i in self._items.values() if i.status == QueueStatus.PENDING]
        if limit is not None:
            return items[: max(0, limit)]
        return items

    def claim(self, item: QueueItem) -> bool:
        """Reserve a pending item for one batch run; False if another run has it."""
        with self._lock:
            if item.status != QueueStatus.PENDING or item.id in self._claimed:
                return False
            self._claimed.add(item.id)
            return True

    def release(self, item: QueueItem) -> None:
        with self._lock:
            self._claimed.discard(item.id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
