from __future__ import annotations

import math
import re

from pydantic import BaseModel, ConfigDict, Field

from trip_importer.modules.extraction.normalizers import normalize_date, normalize_time
from trip_importer.modules.extraction.schemas import (
    CanonicalRecord,
    ImportType,
    WeakDraft,
    import_type_from_label,
)


class _Section(BaseModel):
    model_config = ConfigDict(extra="ignore")


class FlightReview(_Section):
    nome_exibicao: str = ""
    provedor: str = ""
    codigo_reserva: str = ""
    passageiro_hospede: str = ""
    numero: str = ""
    companhia: str = ""
    origem: str = ""
    destino: str = ""
    data_inicio: str = ""
    hora_inicio: str = ""
    data_fim: str = ""
    hora_fim: str = ""
    status: str = "pendente"
    valor: str = ""
    moeda: str = "BRL"
    metodo_pagamento: str = ""
    pontos_utilizados: str = ""


class LodgingReview(_Section):
    nome_exibicao: str = ""
    provedor: str = ""
    codigo_reserva: str = ""
    passageiro_hospede: str = ""
    nome: str = ""
    localizacao: str = ""
    check_in: str = ""
    hora_inicio: str = ""
    check_out: str = ""
    hora_fim: str = ""
    status: str = "pendente"
    valor: str = ""
    moeda: str = "BRL"
    metodo_pagamento: str = ""
    pontos_utilizados: str = ""
    dica_viagem: str = ""
    como_chegar: str = ""
    atracoes_proximas: str = ""
    restaurantes_proximos: str = ""
    dica_ia: str = ""


class TransportReview(_Section):
    nome_exibicao: str = ""
    provedor: str = ""
    codigo_reserva: str = ""
    passageiro_hospede: str = ""
    tipo: str = ""
    operadora: str = ""
    origem: str = ""
    destino: str = ""
    data_inicio: str = ""
    hora_inicio: str = ""
    data_fim: str = ""
    hora_fim: str = ""
    status: str = "pendente"
    valor: str = ""
    moeda: str = "BRL"
    metodo_pagamento: str = ""
    pontos_utilizados: str = ""


class RestaurantReview(_Section):
    nome: str = ""
    cidade: str = ""
    tipo: str = ""
    rating: str = ""


class ReviewState(BaseModel):
    """Editable form model a person corrects before a record is saved."""

    type: ImportType
    voo: FlightReview = Field(default_factory=FlightReview)
    hospedagem: LodgingReview = Field(default_factory=LodgingReview)
    transporte: TransportReview = Field(default_factory=TransportReview)
    restaurante: RestaurantReview = Field(default_factory=RestaurantReview)

    def section(self, import_type: ImportType | None = None) -> _Section:
        return getattr(self, (import_type or self.type).value)


def to_date_input(value: str | None) -> str:
    if not value:
        return ""
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", value):
        return value
    return normalize_date(value) or ""


def to_time_input(value: str | None) -> str:
    return normalize_time(value) or ""


def _text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if not math.isfinite(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value)


def _first(*values: object) -> object:
    for value in values:
        if value is not None:
            return value
    return None


def to_review_state(draft: WeakDraft, resolved_type: ImportType) -> ReviewState:
    """
    Build the review form from a draft and its canonical record.

    A valid `metadata.tipo` on the canonical record overrides `resolved_type`.
    Canonical values take precedence for dates and times; per-type bag values
    take precedence for identity fields and amounts.
    """
    canonical = draft.canonical or CanonicalRecord()
    main = canonical.dados_principais
    finance = canonical.financeiro
    enrichment = canonical.enriquecimento_ia

    final_type = import_type_from_label(canonical.metadata.tipo) or resolved_type

    provider = main.provedor or ""
    display_name = main.nome_exibicao or ""
    reservation_code = main.codigo_reserva or ""
    guest = main.passageiro_hospede or ""
    payment_method = finance.metodo or ""
    points = _text(finance.pontos_utilizados)
    start_time = to_time_input(main.hora_inicio)
    end_time = to_time_input(main.hora_fim)

    flight = draft.data.voo
    lodging = draft.data.hospedagem
    transport = draft.data.transporte
    restaurant = draft.data.restaurante

    return ReviewState(
        type=final_type,
        voo=FlightReview(
            nome_exibicao=display_name,
            provedor=provider,
            codigo_reserva=reservation_code,
            passageiro_hospede=guest,
            numero=_text(flight.numero if flight else None),
            companhia=_text(_first(flight.companhia if flight else None, provider)),
            origem=_text(_first(flight.origem if flight else None, main.origem)),
            destino=_text(_first(flight.destino if flight else None, main.destino)),
            data_inicio=to_date_input(_first(main.data_inicio, flight.data if flight else None)),
            hora_inicio=start_time,
            data_fim=to_date_input(main.data_fim),
            hora_fim=end_time,
            status=(flight.status if flight else None) or "pendente",
            valor=_text(_first(flight.valor if flight else None, finance.valor_total)),
            moeda=_text(_first(flight.moeda if flight else None, finance.moeda, "BRL")),
            metodo_pagamento=payment_method,
            pontos_utilizados=points,
        ),
        hospedagem=LodgingReview(
            nome_exibicao=display_name,
            provedor=provider,
            codigo_reserva=reservation_code,
            passageiro_hospede=guest,
            nome=_text(_first(lodging.nome if lodging else None, display_name)),
            localizacao=_text(_first(lodging.localizacao if lodging else None, main.destino)),
            check_in=to_date_input(_first(main.data_inicio, lodging.check_in if lodging else None)),
            hora_inicio=start_time,
            check_out=to_date_input(_first(main.data_fim, lodging.check_out if lodging else None)),
            hora_fim=end_time,
            status=(lodging.status if lodging else None) or "pendente",
            valor=_text(_first(lodging.valor if lodging else None, finance.valor_total)),
            moeda=_text(_first(lodging.moeda if lodging else None, finance.moeda, "BRL")),
            metodo_pagamento=payment_method,
            pontos_utilizados=points,
            dica_viagem=enrichment.dica_viagem or "",
            como_chegar=enrichment.como_chegar or "",
            atracoes_proximas=enrichment.atracoes_proximas or "",
            restaurantes_proximos=enrichment.restaurantes_proximos or "",
            dica_ia=enrichment.dica_viagem or "",
        ),
        transporte=TransportReview(
            nome_exibicao=display_name,
            provedor=provider,
            codigo_reserva=reservation_code,
            passageiro_hospede=guest,
            tipo=_text(_first(transport.tipo if transport else None, display_name)),
            operadora=_text(_first(transport.operadora if transport else None, provider)),
            origem=_text(_first(transport.origem if transport else None, main.origem)),
            destino=_text(_first(transport.destino if transport else None, main.destino)),
            data_inicio=to_date_input(
                _first(main.data_inicio, transport.data if transport else None)
            ),
            hora_inicio=start_time,
            data_fim=to_date_input(main.data_fim),
            hora_fim=end_time,
            status=(transport.status if transport else None) or "pendente",
            valor=_text(_first(transport.valor if transport else None, finance.valor_total)),
            moeda=_text(_first(transport.moeda if transport else None, finance.moeda, "BRL")),
            metodo_pagamento=payment_method,
            pontos_utilizados=points,
        ),
        restaurante=RestaurantReview(
            nome=_text(_first(restaurant.nome if restaurant else None, display_name)),
            cidade=_text(_first(restaurant.cidade if restaurant else None, main.destino)),
            tipo=_text(restaurant.tipo if restaurant else None),
            rating=_text(restaurant.rating if restaurant else None),
        ),
    )
