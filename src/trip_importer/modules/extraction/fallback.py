from __future__ import annotations

import re

from trip_importer.core.config import settings
from trip_importer.modules.extraction.classification import resolve_type
from trip_importer.modules.extraction.extractors import (
    extract_address,
    extract_amount,
    extract_carrier,
    extract_first_time,
    extract_flight_number,
    extract_reservation_code,
    extract_route,
    extract_stay_dates,
)
from trip_importer.modules.extraction.missing import REVIEW_MARKER
from trip_importer.modules.extraction.normalizers import normalize_date
from trip_importer.modules.extraction.schemas import (
    CANONICAL_TYPE_LABELS,
    CanonicalEnrichment,
    CanonicalFinance,
    CanonicalMain,
    CanonicalMetadata,
    CanonicalRecord,
    DraftData,
    ExtractionQuality,
    FlightDraft,
    ImportScope,
    ImportType,
    LodgingDraft,
    RestaurantDraft,
    TransportDraft,
    WeakDraft,
)

FALLBACK_CONFIDENCE = 0.4
FALLBACK_TYPE_CONFIDENCE = 0.45
FALLBACK_CANONICAL_CONFIDENCE = 45
PENDING_STATUS = "pendente"


def clean_file_name(file_name: str | None) -> str:
    name = re.sub(r"\.[^.]+$", "", file_name or "")
    return re.sub(r"[-_]", " ", name).strip()


def _enrichment(destination: str | None) -> CanonicalEnrichment:
    if not destination:
        return CanonicalEnrichment()
    return CanonicalEnrichment(
        dica_viagem=f"Considere horários fora de pico para deslocamentos em {destination}.",
        como_chegar=f"Use transporte público ou app de mobilidade até {destination}.",
        atracoes_proximas=f"Pesquise atrações centrais e parques em {destination}.",
        restaurantes_proximos=f"Experimente culinária local em {destination}.",
    )


def build_fallback(
    text: str | None, file_name: str | None, trip_destination: str | None = None
) -> WeakDraft:
    """
    Assemble a low-confidence draft straight from raw text.

    Used when the AI step is unavailable or produced nothing usable. The result
    always asks for manual review.
    """
    raw = text or ""
    one_line = re.sub(r"\s+", " ", raw).strip()
    destination = (trip_destination or "").strip() or None

    import_type = resolve_type(None, raw, file_name)
    amount = extract_amount(raw)
    value = amount.value if amount else None
    currency = (amount.currency if amount else None) or "BRL"

    route = extract_route(one_line)
    origin = route.origin if route else None
    route_destination = route.destination if route else None
    inferred_date = normalize_date(one_line)
    check_in, check_out = extract_stay_dates(one_line)
    flight_number = extract_flight_number(raw, file_name)
    carrier = extract_carrier(raw, file_name)
    reservation_code = extract_reservation_code(one_line)
    start_time = extract_first_time(one_line)
    cleaned_name = clean_file_name(file_name)

    data = DraftData()
    if import_type == ImportType.FLIGHT:
        data.voo = FlightDraft(
            numero=flight_number,
            companhia=carrier,
            origem=origin,
            destino=route_destination,
            data=inferred_date,
            status=PENDING_STATUS,
            valor=value,
            moeda=currency,
        )
    elif import_type == ImportType.LODGING:
        data.hospedagem = LodgingDraft(
            nome=cleaned_name or "Hospedagem",
            localizacao=extract_address(raw) or destination,
            check_in=check_in,
            check_out=check_out,
            status=PENDING_STATUS,
            valor=value,
            moeda=currency,
        )
    elif import_type == ImportType.TRANSPORT:
        data.transporte = TransportDraft(
            tipo=cleaned_name or "Transporte",
            operadora=carrier,
            origem=origin,
            destino=route_destination,
            data=inferred_date,
            status=PENDING_STATUS,
            valor=value,
            moeda=currency,
        )
    else:
        data.restaurante = RestaurantDraft(
            nome=cleaned_name or "Reserva de restaurante",
            cidade=destination,
            tipo="Reserva",
        )

    is_lodging = import_type == ImportType.LODGING
    canonical = CanonicalRecord(
        metadata=CanonicalMetadata(
            tipo=CANONICAL_TYPE_LABELS[import_type],
            confianca=FALLBACK_CANONICAL_CONFIDENCE,
            status="Pendente",
        ),
        dados_principais=CanonicalMain(
            nome_exibicao=cleaned_name or None,
            provedor=carrier,
            codigo_reserva=reservation_code,
            data_inicio=check_in if is_lodging else inferred_date,
            hora_inicio=start_time,
            data_fim=check_out if is_lodging else None,
            origem=None if is_lodging else origin,
            destino=destination if is_lodging else route_destination,
        ),
        financeiro=CanonicalFinance(
            valor_total=value if import_type != ImportType.RESTAURANT else None,
            moeda=currency,
        ),
        enriquecimento_ia=_enrichment(destination),
    )

    if len(raw.strip()) > settings.low_quality_text_chars:
        quality = ExtractionQuality.MEDIUM
    else:
        quality = ExtractionQuality.LOW

    return WeakDraft(
        type=import_type,
        scope=ImportScope.TRIP_RELATED,
        confidence=FALLBACK_CONFIDENCE,
        type_confidence=FALLBACK_TYPE_CONFIDENCE,
        extraction_quality=quality,
        missing_fields=[REVIEW_MARKER],
        data=data,
        canonical=canonical,
        provider_meta={"selected": "fallback", "fallback_used": True},
    )
