from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from trip_importer.api.router import router as api_router
from trip_importer.bootstrap import bootstrap
from trip_importer.core.logging import RequestContextMiddleware
from trip_importer.modules.imports.queue import ImportQueue
from trip_importer.modules.imports.service import ImportCollaborators


def create_app(*, collaborators: ImportCollaborators | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI):
        bootstrap()
        yield

    app = FastAPI(title="Trip Importer", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)
    app.state.import_queue = ImportQueue()
    app.state.import_collaborators = collaborators or ImportCollaborators()
    app.include_router(api_router)
    return app


app = create_app()
