from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from trip_importer.api.deps import get_collaborators, get_import_queue
from trip_importer.core.db import SessionLocal, db_session
from trip_importer.core.logging import get_logger, log_event
from trip_importer.modules.extraction.text import is_allowed_import_file
from trip_importer.modules.imports.queue import ImportQueue, ImportStateError
from trip_importer.modules.imports.schemas import (
    QueueItemOut,
    ReviewPatch,
    RunBatchIn,
    RunBatchOut,
)
from trip_importer.modules.imports.service import (
    ImportCollaborators,
    confirm_item,
    get_item_or_404,
    reprocess_item,
    run_batch,
    update_review,
)

router = APIRouter(tags=["imports"])
logger = get_logger(__name__)


def _conflict(e: ImportStateError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.post("/imports", response_model=list[QueueItemOut])
async def upload_imports(
    uploads: list[UploadFile] = File(...),
    queue: ImportQueue = Depends(get_import_queue),
) -> list[QueueItemOut]:
    rejected = [u.filename or "" for u in uploads if not is_allowed_import_file(u.filename)]
    if rejected:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported file type: {', '.join(rejected)}",
        )

    out: list[QueueItemOut] = []
    for upload in uploads:
        body = await upload.read()
        item = queue.enqueue(
            file_name=upload.filename or "upload.bin",
            content_type=upload.content_type,
            body=body,
        )
        log_event(
            logger,
            "upload.received",
            import_item_id=item.id,
            file_name=item.file_name,
            content_type=item.content_type,
            byte_size=len(body),
        )
        out.append(QueueItemOut.from_item(item))
    return out


@router.get("/imports", response_model=list[QueueItemOut])
def list_imports(queue: ImportQueue = Depends(get_import_queue)) -> list[QueueItemOut]:
    return [QueueItemOut.from_item(i) for i in queue.items()]


@router.post("/imports/run", response_model=RunBatchOut)
def run_imports(
    payload: RunBatchIn | None = None,
    queue: ImportQueue = Depends(get_import_queue),
    collaborators: ImportCollaborators = Depends(get_collaborators),
) -> RunBatchOut:
    payload = payload or RunBatchIn()
    try:
        processed = run_batch(
            queue,
            collaborators=collaborators,
            session_factory=SessionLocal,
            trip_destination=payload.trip_destination,
            limit=payload.limit,
        )
    except ImportStateError as e:
        raise _conflict(e) from e
    return RunBatchOut(
        processed=[QueueItemOut.from_item(i) for i in processed],
        remaining=len(queue.pending()),
    )


@router.get("/imports/{item_id}", response_model=QueueItemOut)
def get_import(item_id: str, queue: ImportQueue = Depends(get_import_queue)) -> QueueItemOut:
    return QueueItemOut.from_item(get_item_or_404(queue, item_id))


@router.post("/imports/{item_id}/reprocess", response_model=QueueItemOut)
def reprocess_import(
    item_id: str,
    payload: RunBatchIn | None = None,
    session: Session = Depends(db_session),
    queue: ImportQueue = Depends(get_import_queue),
    collaborators: ImportCollaborators = Depends(get_collaborators),
) -> QueueItemOut:
    item = get_item_or_404(queue, item_id)
    try:
        reprocess_item(
            item,
            session=session,
            collaborators=collaborators,
            trip_destination=payload.trip_destination if payload else None,
        )
    except ImportStateError as e:
        raise _conflict(e) from e
    return QueueItemOut.from_item(item)


@router.patch("/imports/{item_id}/review", response_model=QueueItemOut)
def patch_review(
    item_id: str,
    payload: ReviewPatch,
    queue: ImportQueue = Depends(get_import_queue),
) -> QueueItemOut:
    item = get_item_or_404(queue, item_id)
    try:
        update_review(item, patch=payload.model_dump(mode="json", exclude_none=True))
    except ImportStateError as e:
        raise _conflict(e) from e
    return QueueItemOut.from_item(item)


@router.post("/imports/{item_id}/confirm", response_model=QueueItemOut)
def confirm_import(
    item_id: str,
    session: Session = Depends(db_session),
    queue: ImportQueue = Depends(get_import_queue),
    collaborators: ImportCollaborators = Depends(get_collaborators),
) -> QueueItemOut:
    item = get_item_or_404(queue, item_id)
    try:
        confirm_item(item, session=session, sink=collaborators.sink)
    except ImportStateError as e:
        raise _conflict(e) from e
    return QueueItemOut.from_item(item)
