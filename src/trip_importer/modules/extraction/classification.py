from __future__ import annotations

import math
import re
from dataclasses import dataclass
from types import MappingProxyType

from trip_importer.modules.extraction.extractors import find_airport_pair
from trip_importer.modules.extraction.schemas import (
    TYPE_ORDER,
    ImportScope,
    ImportType,
    WeakDraft,
)

# Fields that identify a reservation of each type; scoring counts how many are filled.
IDENTITY_FIELDS: MappingProxyType[ImportType, tuple[str, ...]] = MappingProxyType(
    {
        ImportType.FLIGHT: ("numero", "companhia", "origem", "destino", "data", "valor"),
        ImportType.LODGING: ("nome", "localizacao", "check_in", "check_out", "valor"),
        ImportType.TRANSPORT: ("tipo", "operadora", "origem", "destino", "data", "valor"),
        ImportType.RESTAURANT: ("nome", "cidade", "tipo", "rating"),
    }
)

_FLIGHT_HINT_RE = re.compile(
    r"\b(latam|gol|azul|lufthansa|air france|american airlines|flight|boarding|v[ôo]o|"
    r"aeroporto|pnr|iata|ticket|itiner[áa]rio)\b"
)
_FLIGHT_NUMBER_HINT_RE = re.compile(r"\b[a-z]{2}\d{3,}[a-z0-9]*\b")
_RESTAURANT_HINT_RE = re.compile(
    r"\b(restaurant|restaurante|mesa|reservation at|reserva de mesa|opentable|tripadvisor)\b"
)
_LODGING_HINT_RE = re.compile(
    r"\b(airbnb|hotel|hospedagem|booking|check[\s-]?in|check[\s-]?out|pousada)\b"
)

_TRAVEL_SIGNAL_RE = re.compile(
    r"\b(v[ôo]o|flight|aeroporto|airport|pnr|iata|itiner[áa]rio|airbnb|hotel|booking|"
    r"check[\s-]?in|check[\s-]?out|transporte|trem|bus|restaurante|trip)\b"
)
_CARRIER_SIGNAL_RE = re.compile(
    r"\b(latam|gol|azul|lufthansa|air france|american airlines|booking\.com|airbnb)\b"
)


@dataclass(frozen=True)
class TypeScores:
    scores: MappingProxyType[ImportType, int]
    best_type: ImportType
    best_score: int


def _is_filled(value: object) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return math.isfinite(value)
    if isinstance(value, str):
        return bool(value.strip())
    return False


def score_types(draft: WeakDraft | None) -> TypeScores:
    scores: dict[ImportType, int] = {}
    for import_type in TYPE_ORDER:
        bag = draft.data.bag(import_type) if draft is not None else None
        if bag is None:
            scores[import_type] = 0
            continue
        scores[import_type] = sum(
            1 for name in IDENTITY_FIELDS[import_type] if _is_filled(getattr(bag, name, None))
        )

    best_type = TYPE_ORDER[0]
    for import_type in TYPE_ORDER[1:]:
        if scores[import_type] > scores[best_type]:
            best_type = import_type
    return TypeScores(
        scores=MappingProxyType(scores), best_type=best_type, best_score=scores[best_type]
    )


def classify_from_text(text: str | None, file_name: str | None) -> ImportType:
    """Keyword guess over text and filename. Unrecognized documents are transport."""
    raw_bag = f"{text or ''} {file_name or ''}"
    bag = raw_bag.lower()

    if (
        _FLIGHT_HINT_RE.search(bag)
        or _FLIGHT_NUMBER_HINT_RE.search(bag)
        or find_airport_pair(re.sub(r"\s+", " ", raw_bag))
    ):
        return ImportType.FLIGHT
    if _RESTAURANT_HINT_RE.search(bag):
        return ImportType.RESTAURANT
    if _LODGING_HINT_RE.search(bag):
        return ImportType.LODGING
    return ImportType.TRANSPORT


def resolve_type(draft: WeakDraft | None, text: str | None, file_name: str | None) -> ImportType:
    type_scores = score_types(draft)
    hint = classify_from_text(text, file_name)

    if type_scores.best_score == 0:
        return hint

    declared = draft.type if draft is not None else None
    if declared is not None and type_scores.scores[declared] >= max(
        2, type_scores.best_score - 1
    ):
        return declared

    if type_scores.best_score <= 1:
        return hint

    if hint != type_scores.best_type and type_scores.best_score <= 2:
        return hint

    return type_scores.best_type


def resolve_scope(draft: WeakDraft | None, text: str | None, file_name: str | None) -> ImportScope:
    if draft is not None and draft.scope is not None:
        return draft.scope

    bag = f"{text or ''} {file_name or ''}".lower()
    if _TRAVEL_SIGNAL_RE.search(bag) or _CARRIER_SIGNAL_RE.search(bag):
        return ImportScope.TRIP_RELATED
    return ImportScope.OUTSIDE_SCOPE
