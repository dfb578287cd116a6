"""
Model import hook.

Importing this module ensures all SQLAlchemy models are registered on Base.metadata.
"""

from __future__ import annotations

from trip_importer.modules.extraction.models import ExtractionAICache  # noqa: F401
from trip_importer.modules.imports.models import ImportedDocument  # noqa: F401
