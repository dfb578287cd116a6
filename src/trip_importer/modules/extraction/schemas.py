from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ImportType(str, enum.Enum):
    FLIGHT = "voo"
    LODGING = "hospedagem"
    TRANSPORT = "transporte"
    RESTAURANT = "restaurante"


# Tie-break order for scoring and the order review forms are rendered in.
TYPE_ORDER: tuple[ImportType, ...] = (
    ImportType.FLIGHT,
    ImportType.LODGING,
    ImportType.TRANSPORT,
    ImportType.RESTAURANT,
)

CANONICAL_TYPE_LABELS: dict[ImportType, str] = {
    ImportType.FLIGHT: "Voo",
    ImportType.LODGING: "Hospedagem",
    ImportType.TRANSPORT: "Transporte",
    ImportType.RESTAURANT: "Restaurante",
}


class ImportScope(str, enum.Enum):
    TRIP_RELATED = "trip_related"
    OUTSIDE_SCOPE = "outside_scope"


class ExtractionQuality(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def import_type_from_label(value: str | None) -> ImportType | None:
    if not value:
        return None
    try:
        return ImportType(str(value).strip().lower())
    except ValueError:
        return None


class _Bag(BaseModel):
    model_config = ConfigDict(extra="ignore")


class FlightDraft(_Bag):
    numero: str | None = None
    companhia: str | None = None
    origem: str | None = None
    destino: str | None = None
    data: str | None = None
    status: str | None = None
    valor: float | None = None
    moeda: str | None = None


class LodgingDraft(_Bag):
    nome: str | None = None
    localizacao: str | None = None
    check_in: str | None = None
    check_out: str | None = None
    status: str | None = None
    valor: float | None = None
    moeda: str | None = None


class TransportDraft(_Bag):
    tipo: str | None = None
    operadora: str | None = None
    origem: str | None = None
    destino: str | None = None
    data: str | None = None
    status: str | None = None
    valor: float | None = None
    moeda: str | None = None


class RestaurantDraft(_Bag):
    nome: str | None = None
    cidade: str | None = None
    tipo: str | None = None
    rating: float | None = None


class DraftData(_Bag):
    voo: FlightDraft | None = None
    hospedagem: LodgingDraft | None = None
    transporte: TransportDraft | None = None
    restaurante: RestaurantDraft | None = None

    def bag(self, import_type: ImportType) -> _Bag | None:
        return getattr(self, import_type.value)


class CanonicalMetadata(_Bag):
    tipo: str | None = None
    confianca: int | None = None
    status: str | None = None
    arquivo_hash: str | None = None
    arquivo_nome: str | None = None


class CanonicalMain(_Bag):
    nome_exibicao: str | None = None
    provedor: str | None = None
    codigo_reserva: str | None = None
    passageiro_hospede: str | None = None
    data_inicio: str | None = None
    hora_inicio: str | None = None
    data_fim: str | None = None
    hora_fim: str | None = None
    origem: str | None = None
    destino: str | None = None


class CanonicalFinance(_Bag):
    valor_total: float | None = None
    moeda: str | None = None
    metodo: str | None = None
    pontos_utilizados: float | None = None


class CanonicalEnrichment(_Bag):
    dica_viagem: str | None = None
    como_chegar: str | None = None
    atracoes_proximas: str | None = None
    restaurantes_proximos: str | None = None


class CanonicalRecord(_Bag):
    metadata: CanonicalMetadata = Field(default_factory=CanonicalMetadata)
    dados_principais: CanonicalMain = Field(default_factory=CanonicalMain)
    financeiro: CanonicalFinance = Field(default_factory=CanonicalFinance)
    enriquecimento_ia: CanonicalEnrichment = Field(default_factory=CanonicalEnrichment)


class WeakDraft(_Bag):
    """A structured guess about one document, possibly incomplete."""

    type: ImportType | None = None
    scope: ImportScope | None = None
    confidence: float | None = None
    type_confidence: float | None = None
    extraction_quality: ExtractionQuality | None = None
    missing_fields: list[str] = Field(default_factory=list)
    data: DraftData = Field(default_factory=DraftData)
    canonical: CanonicalRecord | None = None
    provider_meta: dict[str, Any] | None = None
