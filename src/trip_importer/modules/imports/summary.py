from __future__ import annotations

from datetime import date
from typing import Any

from trip_importer.core.currencies import convert_to_brl
from trip_importer.modules.extraction.normalizers import parse_amount
from trip_importer.modules.extraction.review import ReviewState
from trip_importer.modules.extraction.schemas import CANONICAL_TYPE_LABELS, ImportType
from trip_importer.modules.imports.queue import QueueItem

# Checked in order; the first matching keyword decides the user-facing message.
_WARNING_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("bucket", "storage"),
        "Não foi possível anexar o arquivo original agora. A importação segue normalmente.",
    ),
    (("ocr",), "A leitura automática ficou incompleta. Revise os campos antes de salvar."),
    (
        ("baixa qualidade",),
        "O texto foi extraído com baixa qualidade. Confira os principais dados antes de confirmar.",
    ),
    (
        ("extração", "edge function", "failed to send a request"),
        "A IA não respondeu com dados suficientes agora. "
        "Preenchemos um rascunho para sua confirmação final.",
    ),
    (
        ("metadados",),
        "O registro do anexo não foi concluído, mas você ainda pode salvar a reserva.",
    ),
    (
        ("campos obrigatórios pendentes",),
        "Preencha os campos obrigatórios destacados para concluir a importação.",
    ),
)
_DEFAULT_WARNING = "Alguns dados exigem confirmação antes de salvar."


def to_user_warning(message: str) -> str:
    lower = (message or "").lower()
    for keywords, friendly in _WARNING_RULES:
        if any(k in lower for k in keywords):
            return friendly
    return _DEFAULT_WARNING


def user_warnings(messages: list[str]) -> list[str]:
    out: list[str] = []
    for msg in messages:
        friendly = to_user_warning(msg)
        if friendly not in out:
            out.append(friendly)
    return out


def type_label(import_type: ImportType | None) -> str:
    if import_type is None:
        return "A definir"
    return CANONICAL_TYPE_LABELS[import_type]


def diff_nights(check_in: str | None, check_out: str | None) -> int | None:
    if not check_in or not check_out:
        return None
    try:
        start = date.fromisoformat(check_in)
        end = date.fromisoformat(check_out)
    except ValueError:
        return None
    nights = (end - start).days
    return nights if nights > 0 else None


def _title_and_subtitle(review: ReviewState) -> tuple[str, str]:
    if review.type == ImportType.FLIGHT:
        s = review.voo
        title = s.numero or s.codigo_reserva or s.nome_exibicao or "Voo"
        route = " → ".join(p for p in (s.origem, s.destino) if p)
        return title, " · ".join(p for p in (s.companhia, route, s.data_inicio) if p)
    if review.type == ImportType.LODGING:
        s = review.hospedagem
        title = s.nome or s.nome_exibicao or "Hospedagem"
        return title, s.localizacao
    if review.type == ImportType.TRANSPORT:
        s = review.transporte
        title = s.tipo or s.nome_exibicao or "Transporte"
        route = " → ".join(p for p in (s.origem, s.destino) if p)
        return title, " · ".join(p for p in (s.operadora, route, s.data_inicio) if p)
    s = review.restaurante
    return s.nome or "Restaurante", " · ".join(p for p in (s.tipo, s.cidade) if p)


def build_summary(item: QueueItem) -> dict[str, Any]:
    """Post-save summary card for one imported document."""
    review = item.review
    if review is None:
        return {
            "type": "documento",
            "title": item.file_name,
            "subtitle": "Documento salvo fora do escopo da viagem",
            "amount": None,
            "currency": "BRL",
            "estimated_brl": None,
            "check_in": None,
            "check_out": None,
            "nights": None,
        }

    title, subtitle = _title_and_subtitle(review)
    amount: float | None = None
    currency = "BRL"
    if review.type != ImportType.RESTAURANT:
        section = review.section()
        amount = parse_amount(section.valor)
        currency = (section.moeda or "BRL").upper()

    check_in = check_out = None
    if review.type == ImportType.LODGING:
        check_in = review.hospedagem.check_in or None
        check_out = review.hospedagem.check_out or None

    return {
        "type": review.type.value,
        "title": title,
        "subtitle": subtitle,
        "amount": amount,
        "currency": currency,
        "estimated_brl": round(convert_to_brl(amount, currency), 2) if amount is not None else None,
        "check_in": check_in,
        "check_out": check_out,
        "nights": diff_nights(check_in, check_out),
    }
