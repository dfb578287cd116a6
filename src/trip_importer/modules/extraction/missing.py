from __future__ import annotations

from collections.abc import Iterable
from types import MappingProxyType

from trip_importer.modules.extraction.review import ReviewState
from trip_importer.modules.extraction.schemas import ImportScope, ImportType

# Transient marker added by the fallback builder; dropped on every merge.
REVIEW_MARKER = "review_manual_requerida"

_TYPE_PREFIXES: tuple[str, ...] = tuple(f"{t.value}." for t in ImportType)

MISSING_FIELD_LABELS: MappingProxyType[str, str] = MappingProxyType(
    {
        "voo.origem": "Origem do voo",
        "voo.destino": "Destino do voo",
        "voo.data_inicio": "Data do voo",
        "voo.identificador": "Código da reserva ou número do voo",
        "hospedagem.nome_exibicao": "Nome da hospedagem",
        "hospedagem.data_inicio": "Check-in",
        "hospedagem.data_fim": "Check-out",
        "hospedagem.valor_total": "Valor total da hospedagem",
        "transporte.origem": "Origem do transporte",
        "transporte.destino": "Destino do transporte",
        "transporte.data_inicio": "Data do transporte",
        "restaurante.nome": "Nome do restaurante",
        "restaurante.cidade": "Cidade do restaurante",
        REVIEW_MARKER: "Validação manual recomendada",
    }
)


def missing_field_label(key: str) -> str:
    return MISSING_FIELD_LABELS.get(key, key)


def _blank(value: str | None) -> bool:
    return not (value or "").strip()


def compute_missing(
    import_type: ImportType | None,
    review: ReviewState | None,
    scope: ImportScope | None,
) -> list[str]:
    if scope == ImportScope.OUTSIDE_SCOPE or import_type is None or review is None:
        return []

    out: list[str] = []
    if import_type == ImportType.FLIGHT:
        flight = review.voo
        if _blank(flight.origem):
            out.append("voo.origem")
        if _blank(flight.destino):
            out.append("voo.destino")
        if _blank(flight.data_inicio):
            out.append("voo.data_inicio")
        if _blank(flight.codigo_reserva) and _blank(flight.numero) and _blank(flight.nome_exibicao):
            out.append("voo.identificador")
    elif import_type == ImportType.LODGING:
        lodging = review.hospedagem
        if _blank(lodging.nome_exibicao) and _blank(lodging.nome):
            out.append("hospedagem.nome_exibicao")
        if _blank(lodging.check_in):
            out.append("hospedagem.data_inicio")
        if _blank(lodging.check_out):
            out.append("hospedagem.data_fim")
        if _blank(lodging.valor):
            out.append("hospedagem.valor_total")
    elif import_type == ImportType.TRANSPORT:
        transport = review.transporte
        if _blank(transport.origem):
            out.append("transporte.origem")
        if _blank(transport.destino):
            out.append("transporte.destino")
        if _blank(transport.data_inicio):
            out.append("transporte.data_inicio")
    elif import_type == ImportType.RESTAURANT:
        restaurant = review.restaurante
        if _blank(restaurant.nome):
            out.append("restaurante.nome")
        if _blank(restaurant.cidade):
            out.append("restaurante.cidade")
    return out


def merge_missing(existing: Iterable[str] | None, computed: Iterable[str] | None) -> list[str]:
    """
    Keep entries that are not owned by the type checklist, then append `computed`.

    Type-prefixed keys and the transient review marker from `existing` are
    always replaced by the freshly computed list.
    """
    kept = [
        key
        for key in (existing or [])
        if key != REVIEW_MARKER and not key.startswith(_TYPE_PREFIXES)
    ]
    out: list[str] = []
    seen: set[str] = set()
    for key in [*kept, *(computed or [])]:
        if key in seen:
            continue
        seen.add(key)
        out.append(key)
    return out
