from __future__ import annotations

from fastapi import APIRouter

from trip_importer.modules.imports.api import router as imports_router

router = APIRouter()

router.include_router(imports_router, prefix="/api")


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}
