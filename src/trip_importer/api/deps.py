from __future__ import annotations

from fastapi import Request

from trip_importer.modules.imports.queue import ImportQueue
from trip_importer.modules.imports.service import ImportCollaborators


def get_import_queue(request: Request) -> ImportQueue:
    queue = getattr(request.app.state, "import_queue", None)
    if queue is None:
        queue = ImportQueue()
        request.app.state.import_queue = queue
    return queue


def get_collaborators(request: Request) -> ImportCollaborators:
    collaborators = getattr(request.app.state, "import_collaborators", None)
    if collaborators is None:
        collaborators = ImportCollaborators()
        request.app.state.import_collaborators = collaborators
    return collaborators
