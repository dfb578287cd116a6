from __future__ import annotations

import trip_importer.models  # noqa: F401
from trip_importer.core.config import settings
from trip_importer.core.db import Base, engine


def bootstrap() -> None:
    if settings.environment in {"dev", "test"} and str(settings.database_url).startswith("sqlite"):
        Base.metadata.create_all(engine)
