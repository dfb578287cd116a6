from __future__ import annotations

from sqlalchemy import JSON, Boolean, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from trip_importer.core.db import Base, Timestamped, UUIDPrimaryKey


class ImportedDocument(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "imports_imported_document"

    nome: Mapped[str] = mapped_column(String(512))
    sha256: Mapped[str] = mapped_column(String(64), index=True)
    tipo: Mapped[str | None] = mapped_column(String(30), nullable=True)

    extracao_tipo: Mapped[str | None] = mapped_column(String(30), nullable=True)
    extracao_scope: Mapped[str | None] = mapped_column(String(30), nullable=True)
    extracao_confianca: Mapped[float | None] = mapped_column(Float, nullable=True)
    extracao_payload: Mapped[dict] = mapped_column(JSON, default=dict)
    reserva_payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    importado: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
