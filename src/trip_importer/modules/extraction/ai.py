from __future__ import annotations

import hashlib
import json
import math
import re
import time
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from trip_importer.core.config import settings
from trip_importer.core.currencies import normalize_currency
from trip_importer.core.db import SessionLocal
from trip_importer.core.logging import get_logger, log_event, monotonic_ms
from trip_importer.modules.extraction.models import ExtractionAICache
from trip_importer.modules.extraction.normalizers import normalize_date, normalize_time
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
    import_type_from_label,
)

logger = get_logger(__name__)

CACHE_SCHEMA_VERSION = 1

_ALLOWED_STATUSES: dict[str, str] = {
    "pendente": "Pendente",
    "confirmado": "Confirmado",
    "cancelado": "Cancelado",
}

_MAIN_TEXT_FIELDS = (
    "nome_exibicao",
    "provedor",
    "codigo_reserva",
    "passageiro_hospede",
    "origem",
    "destino",
)
_ENRICHMENT_FIELDS = (
    "dica_viagem",
    "como_chegar",
    "atracoes_proximas",
    "restaurantes_proximos",
)


class AIExtractionError(Exception):
    pass


def ai_available() -> bool:
    return bool(settings.ai_enabled and settings.ai_api_key)


def text_hash(text: str) -> str:
    return hashlib.sha256((text or "").encode("utf-8", errors="ignore")).hexdigest()


def extract_structured(text: str, file_name: str) -> WeakDraft | None:
    """
    Best-effort AI extraction of a canonical reservation record.

    Returns None when AI is disabled or the response is unusable. Raises
    AIExtractionError when the endpoint cannot be reached, so callers can warn
    and fall back to local extraction. Raw responses are cached by text hash.
    """
    if not ai_available():
        return None

    key = text_hash(f"{file_name}\n{text}")
    with SessionLocal() as session:
        cached = _get_cached_response(session, text_hash=key)
        if cached is None:
            cached = request_canonical_extraction(text, file_name)
            if cached is None:
                return None
            _upsert_cached_response(session, text_hash=key, response_json=cached)
            session.commit()
        else:
            log_event(logger, "ai.cache.hit", text_hash=key)

    return sanitize_canonical(cached)


def request_canonical_extraction(text: str, file_name: str) -> dict[str, Any] | None:
    cleaned = _truncate_text(text, max_chars=int(settings.ai_max_chars or 0) or 12000)
    numbered = _number_lines(cleaned, max_lines=300)
    if not numbered:
        return None

    payload = {
        "model": settings.ai_model,
        "temperature": 0,
        "response_format": {"type": "json_object"},
        "messages": [
            {
                "role": "system",
                "content": (
                    "You extract travel reservations (flights, lodging, ground transport, "
                    "restaurant bookings) from documents.\n"
                    "Only use information explicitly present in the text. Never guess.\n"
                    "If a field is not clearly present, return null for it.\n"
                    "Return JSON only."
                ),
            },
            {
                "role": "user",
                "content": (
                    f"File name: {file_name}\n"
                    "Return JSON with this exact shape:\n"
                    "{\n"
                    '  "scope": "trip_related"|"outside_scope",\n'
                    '  "type_confidence": number,\n'
                    '  "extraction_quality": "high"|"medium"|"low",\n'
                    '  "missing_fields": string[],\n'
                    '  "metadata": {"tipo": "Voo"|"Hospedagem"|"Transporte"|"Restaurante"|null, '
                    '"confianca": integer 0-100, "status": "Pendente"|"Confirmado"|"Cancelado"},\n'
                    '  "dados_principais": {"nome_exibicao": string|null, "provedor": string|null, '
                    '"codigo_reserva": string|null, "passageiro_hospede": string|null, '
                    '"data_inicio": "YYYY-MM-DD"|null, "hora_inicio": "HH:MM"|null, '
                    '"data_fim": "YYYY-MM-DD"|null, "hora_fim": "HH:MM"|null, '
                    '"origem": string|null, "destino": string|null},\n'
                    '  "financeiro": {"valor_total": number|null, "moeda": string|null, '
                    '"metodo": string|null, "pontos_utilizados": number|null},\n'
                    '  "enriquecimento_ia": {"dica_viagem": string|null, "como_chegar": '
                    'string|null, "atracoes_proximas": string|null, '
                    '"restaurantes_proximos": string|null}\n'
                    "}\n\n"
                    "Rules:\n"
                    "- Currency MUST be an ISO-4217 code.\n"
                    "- Dates are day-first when ambiguous.\n"
                    "- Use scope outside_scope for documents unrelated to a trip.\n\n"
                    "Numbered document text:\n" + numbered
                ),
            },
        ],
    }

    headers = {
        "Authorization": f"Bearer {settings.ai_api_key}",
        "Content-Type": "application/json",
    }
    url = settings.ai_base_url.rstrip("/") + "/chat/completions"

    start = time.monotonic()
    try:
        resp = httpx.post(
            url,
            headers=headers,
            json=payload,
            timeout=float(settings.ai_timeout_seconds or 25.0),
            follow_redirects=True,
        )
        resp.raise_for_status()
    except httpx.HTTPError as e:
        raise AIExtractionError(f"Falha na extração por IA: {e}") from e
    log_event(logger, "ai.request.finish", model=settings.ai_model, duration_ms=monotonic_ms(start))

    try:
        raw = resp.json()
        msg = raw["choices"][0]["message"]
        content = msg.get("content") if isinstance(msg, dict) else None
    except (ValueError, KeyError, IndexError, TypeError):
        return None

    if not isinstance(content, str) or not content.strip():
        return None

    obj = _parse_json_object(content)
    if not isinstance(obj, dict):
        return None
    return obj


def sanitize_canonical(obj: dict[str, Any]) -> WeakDraft | None:
    """Validate a raw AI response into a draft, dropping anything malformed."""
    if not isinstance(obj, dict):
        return None

    def _section(name: str) -> dict[str, Any]:
        val = obj.get(name)
        return val if isinstance(val, dict) else {}

    metadata_raw = _section("metadata")
    main_raw = _section("dados_principais")
    finance_raw = _section("financeiro")
    enrichment_raw = _section("enriquecimento_ia")

    import_type = import_type_from_label(_clean_str(metadata_raw.get("tipo"), max_len=20))
    confianca = _clamp_int(metadata_raw.get("confianca"), low=0, high=100)
    status_raw = (_clean_str(metadata_raw.get("status"), max_len=20) or "").lower()

    main_values: dict[str, Any] = {
        name: _clean_str(main_raw.get(name), max_len=200) for name in _MAIN_TEXT_FIELDS
    }
    if main_values["codigo_reserva"]:
        main_values["codigo_reserva"] = main_values["codigo_reserva"].upper()[:40]
    main = CanonicalMain(
        **main_values,
        data_inicio=normalize_date(_clean_str(main_raw.get("data_inicio"), max_len=40)),
        hora_inicio=normalize_time(_clean_str(main_raw.get("hora_inicio"), max_len=20)),
        data_fim=normalize_date(_clean_str(main_raw.get("data_fim"), max_len=40)),
        hora_fim=normalize_time(_clean_str(main_raw.get("hora_fim"), max_len=20)),
    )
    finance = CanonicalFinance(
        valor_total=_finite_float(finance_raw.get("valor_total"), minimum=0.0),
        moeda=normalize_currency(_clean_str(finance_raw.get("moeda"), max_len=10)),
        metodo=_clean_str(finance_raw.get("metodo"), max_len=100),
        pontos_utilizados=_finite_float(finance_raw.get("pontos_utilizados"), minimum=0.0),
    )
    enrichment = CanonicalEnrichment(
        **{name: _clean_str(enrichment_raw.get(name), max_len=500) for name in _ENRICHMENT_FIELDS}
    )
    canonical = CanonicalRecord(
        metadata=CanonicalMetadata(
            tipo=CANONICAL_TYPE_LABELS[import_type] if import_type else None,
            confianca=confianca,
            status=_ALLOWED_STATUSES.get(status_raw, "Pendente"),
        ),
        dados_principais=main,
        financeiro=finance,
        enriquecimento_ia=enrichment,
    )

    scope_raw = _clean_str(obj.get("scope"), max_len=20)
    try:
        scope = ImportScope(scope_raw) if scope_raw else None
    except ValueError:
        scope = None

    quality_raw = (_clean_str(obj.get("extraction_quality"), max_len=10) or "").lower()
    try:
        quality = ExtractionQuality(quality_raw) if quality_raw else None
    except ValueError:
        quality = None

    missing_raw = obj.get("missing_fields")
    missing: list[str] = []
    if isinstance(missing_raw, list):
        for x in missing_raw[:30]:
            s = _clean_str(x, max_len=80)
            if s and s not in missing:
                missing.append(s)

    type_confidence = _finite_float(obj.get("type_confidence"), minimum=0.0)
    if type_confidence is not None:
        type_confidence = min(type_confidence, 1.0)

    draft = WeakDraft(
        type=import_type,
        scope=scope,
        confidence=(confianca / 100) if confianca is not None else None,
        type_confidence=type_confidence,
        extraction_quality=quality,
        missing_fields=missing,
        data=legacy_bags_from_canonical(canonical, import_type),
        canonical=canonical,
        provider_meta={"selected": "ai", "model": settings.ai_model},
    )
    has_content = any(
        v is not None
        for section in (main, finance)
        for v in section.model_dump().values()
    )
    if import_type is None and scope is None and not has_content:
        return None
    return draft


def legacy_bags_from_canonical(
    canonical: CanonicalRecord, import_type: ImportType | None
) -> DraftData:
    """Derive the per-type field bag for the declared type from a canonical record."""
    main = canonical.dados_principais
    finance = canonical.financeiro
    status = (canonical.metadata.status or "Pendente").lower()
    data = DraftData()
    if import_type == ImportType.FLIGHT:
        data.voo = FlightDraft(
            companhia=main.provedor,
            origem=main.origem,
            destino=main.destino,
            data=main.data_inicio,
            status=status,
            valor=finance.valor_total,
            moeda=finance.moeda,
        )
    elif import_type == ImportType.LODGING:
        data.hospedagem = LodgingDraft(
            nome=main.nome_exibicao,
            localizacao=main.destino,
            check_in=main.data_inicio,
            check_out=main.data_fim,
            status=status,
            valor=finance.valor_total,
            moeda=finance.moeda,
        )
    elif import_type == ImportType.TRANSPORT:
        data.transporte = TransportDraft(
            tipo=main.nome_exibicao,
            operadora=main.provedor,
            origem=main.origem,
            destino=main.destino,
            data=main.data_inicio,
            status=status,
            valor=finance.valor_total,
            moeda=finance.moeda,
        )
    elif import_type == ImportType.RESTAURANT:
        data.restaurante = RestaurantDraft(nome=main.nome_exibicao, cidade=main.destino)
    return data


def _get_cached_response(session, *, text_hash: str) -> dict | None:
    cached = session.scalar(select(ExtractionAICache).where(ExtractionAICache.text_hash == text_hash))
    if not cached:
        return None
    if cached.schema_version != CACHE_SCHEMA_VERSION:
        return None
    if not isinstance(cached.response_json, dict):
        return None
    return cached.response_json


def _upsert_cached_response(session, *, text_hash: str, response_json: dict) -> None:
    cached = session.scalar(select(ExtractionAICache).where(ExtractionAICache.text_hash == text_hash))
    if not cached:
        candidate = ExtractionAICache(
            text_hash=text_hash,
            model=str(settings.ai_model or ""),
            schema_version=CACHE_SCHEMA_VERSION,
            response_json=response_json,
        )
        try:
            with session.begin_nested():
                session.add(candidate)
                session.flush()
            return
        except IntegrityError:
            cached = session.scalar(
                select(ExtractionAICache).where(ExtractionAICache.text_hash == text_hash)
            )
            if not cached:
                return
    cached.model = str(settings.ai_model or "")
    cached.schema_version = CACHE_SCHEMA_VERSION
    cached.response_json = response_json
    session.add(cached)
    session.flush()


def _clean_str(value: Any, *, max_len: int) -> str | None:
    if not isinstance(value, str):
        return None
    s = re.sub(r"\s+", " ", value).strip()
    if not s or s.lower() in {"null", "none", "n/a"}:
        return None
    return s[:max_len]


def _finite_float(value: Any, *, minimum: float | None = None) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        out = float(str(value).strip())
    except ValueError:
        return None
    if not math.isfinite(out):
        return None
    if minimum is not None and out < minimum:
        return None
    return out


def _clamp_int(value: Any, *, low: int, high: int) -> int | None:
    out = _finite_float(value)
    if out is None:
        return None
    return max(low, min(high, int(round(out))))


def _number_lines(text: str, *, max_lines: int) -> str:
    if not text:
        return ""
    out_lines: list[str] = []
    for idx, ln in enumerate(text.splitlines()):
        if len(out_lines) >= max_lines:
            break
        s = ln.strip("\r")
        if not s.strip():
            continue
        out_lines.append(f"{idx + 1}|{s[:300]}")
    return "\n".join(out_lines).strip()


def _truncate_text(text: str, *, max_chars: int) -> str:
    t = (text or "").replace("\u202f", " ").replace("\xa0", " ").strip()
    if not t:
        return ""
    if max_chars <= 0 or len(t) <= max_chars:
        return t
    return t[: max_chars - 20].rstrip() + "\n\n[TRUNCATED]"


def _parse_json_object(content: str) -> Any:
    c = (content or "").strip()
    if not c:
        return None
    try:
        return json.loads(c)
    except ValueError:
        pass

    # Models sometimes wrap the object in prose or code fences.
    m = re.search(r"\{.*\}", c, re.S)
    if not m:
        return None
    try:
        return json.loads(m.group(0))
    except ValueError:
        return None
