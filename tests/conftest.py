from __future__ import annotations

import os

import pytest

# Set env before any trip_importer imports (settings/engine are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./.trip_importer_test.db")
os.environ.setdefault("AI_ENABLED", "false")


@pytest.fixture(autouse=True)
def _reset_db() -> None:
    import trip_importer.models  # noqa: F401
    from trip_importer.core.db import Base, engine

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield
