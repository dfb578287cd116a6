from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

from trip_importer.core.currencies import normalize_currency
from trip_importer.modules.extraction.normalizers import (
    clean_token,
    normalize_date,
    normalize_time,
    parse_amount,
)

KNOWN_CARRIERS: tuple[str, ...] = (
    "LATAM",
    "GOL",
    "AZUL",
    "Lufthansa",
    "Air France",
    "American Airlines",
)

# Three-letter uppercase tokens that show up in receipts but are not airports.
NON_AIRPORT_TOKENS: frozenset[str] = frozenset(
    {
        "BRL",
        "USD",
        "EUR",
        "CHF",
        "GBP",
        "PNR",
        "CPF",
        "CEP",
        "PDF",
        "VAT",
        "TAX",
        "IVA",
        "NIF",
        "LTD",
        "INC",
        "ETA",
        "ETD",
        "UTC",
        "GMT",
        "REF",
        "DOC",
        "NFE",
    }
)

_AIRPORT_PAIR_RE = re.compile(r"\b([A-Z]{3})\s*(?:->|-|→|/)\s*([A-Z]{3})\b")
_AIRPORT_LABELED_RE = re.compile(
    r"\b(?i:origem|from)\b\s*[:\-]?\s*([A-Z]{3})\b.*?"
    r"\b(?i:destino|to)\b\s*[:\-]?\s*([A-Z]{3})\b"
)
_AIRPORT_TOKEN_RE = re.compile(r"\b[A-Z]{3}\b")

_CITY = r"[A-ZÀ-Ý][^\W\d_]+(?:\s+(?:(?:de|do|da|dos|das|del)\s+)?[A-ZÀ-Ý][^\W\d_]+)*"
_CITY_PHRASE_RE = re.compile(rf"\b(?i:de)\s+({_CITY})\s+(?i:para|to)\s+({_CITY})")
_CITY_ARROW_RE = re.compile(rf"({_CITY})\s*(?:->|→)\s*({_CITY})")
_ORIGIN_LABEL_RE = re.compile(
    r"(?i)\b(?:origem|from)\s*:\s*(.+?)(?=\s+(?:destino|to|data|date|em|on|hora|valor|total)\b|[\n;|]|$)"
)
_DESTINATION_LABEL_RE = re.compile(
    r"(?i)\b(?:destino|to)\s*:\s*(.+?)(?=\s+(?:origem|from|data|date|em|on|hora|valor|total)\b|[\n;|]|$)"
)

_FLIGHT_NUMBER_RE = re.compile(r"\b([A-Z]{2}\d{3,}[A-Z0-9]*)\b")
_RESERVATION_CODE_RE = re.compile(
    r"(?i)\b(?:c[óo]digo de reserva|booking code|pnr|localizador)\s*[:#-]?\s*([A-Z0-9]{5,8})\b"
)

_DATE_TOKEN = (
    r"\d{1,2}[/.\-]\d{1,2}[/.\-](?:\d{4}|\d{2})"
    r"|\d{4}[/.\-]\d{1,2}[/.\-]\d{1,2}"
    r"|\d{1,2}\s+(?:de\s+)?[^\W\d_]+\.?,?\s+(?:de\s+)?\d{2,4}"
)
_CHECK_IN_RE = re.compile(rf"(?i)(?:check[\s-]?in|entrada)\s*[:\-]?\s*({_DATE_TOKEN})")
_CHECK_OUT_RE = re.compile(rf"(?i)(?:check[\s-]?out|sa[ií]da)\s*[:\-]?\s*({_DATE_TOKEN})")

_ADDRESS_RE = re.compile(
    r"(?i)\b(?:endere[çc]o|address|localiza[çc][ãa]o|location)\s*[:\-]?\s*(.+?)"
    r"(?=\s+(?:total|valor|check[\s-]?in|check[\s-]?out|entrada|sa[ií]da|c[óo]digo|pnr|"
    r"h[óo]spede|guest)\b|[\n;|]|$)"
)

_AMOUNT_RE = re.compile(
    r"(?i)(R\$|US\$|€|£|(?<![A-Za-z])(?:BRL|USD|EUR|CHF|GBP)(?![A-Za-z]))[^\S\n]*(\d(?:[\d.,]*\d)?)"
)
# Suffix form (`836,73 BRL`); never starts inside a date such as `02/04/2026 BRL`.
_SUFFIX_AMOUNT_RE = re.compile(
    r"(?i)(?<![\d/.\-])(\d(?:[\d.,]*\d)?)[^\S\n]*(BRL|USD|EUR|CHF|GBP|€)(?![A-Za-z])"
)


@dataclass(frozen=True)
class Route:
    origin: str | None
    destination: str | None
    rule: str


@dataclass(frozen=True)
class Amount:
    value: float
    currency: str | None


def _one_line(text: str | None) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def find_airport_pair(text: str) -> tuple[str | None, str | None] | None:
    for m in _AIRPORT_PAIR_RE.finditer(text):
        a, b = m.group(1), m.group(2)
        if a in NON_AIRPORT_TOKENS or b in NON_AIRPORT_TOKENS:
            continue
        return a, b
    return None


def _labeled_airports(text: str) -> tuple[str | None, str | None] | None:
    m = _AIRPORT_LABELED_RE.search(text)
    if not m:
        return None
    return m.group(1), m.group(2)


def _free_airport_tokens(text: str) -> tuple[str | None, str | None] | None:
    tokens = [t for t in _AIRPORT_TOKEN_RE.findall(text) if t not in NON_AIRPORT_TOKENS]
    if len(tokens) < 2:
        return None
    return tokens[0], tokens[1]


def _city_phrase(text: str) -> tuple[str | None, str | None] | None:
    m = _CITY_PHRASE_RE.search(text) or _CITY_ARROW_RE.search(text)
    if not m:
        return None
    return m.group(1), m.group(2)


def _labeled_cities(text: str) -> tuple[str | None, str | None] | None:
    origin = _ORIGIN_LABEL_RE.search(text)
    destination = _DESTINATION_LABEL_RE.search(text)
    if not origin and not destination:
        return None
    return (
        origin.group(1) if origin else None,
        destination.group(1) if destination else None,
    )


ROUTE_RULES: tuple[tuple[str, Callable[[str], tuple[str | None, str | None] | None]], ...] = (
    ("airport_pair", find_airport_pair),
    ("labeled_airports", _labeled_airports),
    ("free_airport_tokens", _free_airport_tokens),
    ("city_phrase", _city_phrase),
    ("labeled_cities", _labeled_cities),
)


def extract_route(text: str | None) -> Route | None:
    """First route rule that yields an origin or destination wins."""
    line = _one_line(text)
    if not line:
        return None
    for name, rule in ROUTE_RULES:
        found = rule(line)
        if not found:
            continue
        origin, destination = clean_token(found[0]), clean_token(found[1])
        if origin or destination:
            return Route(origin=origin, destination=destination, rule=name)
    return None


def extract_flight_number(text: str | None, file_name: str | None = None) -> str | None:
    m = _FLIGHT_NUMBER_RE.search(text or "")
    if m:
        return m.group(1)
    m = _FLIGHT_NUMBER_RE.search((file_name or "").upper())
    if m:
        return m.group(1)
    return None


def extract_reservation_code(text: str | None) -> str | None:
    m = _RESERVATION_CODE_RE.search(text or "")
    if not m:
        return None
    return m.group(1).upper()


def extract_carrier(text: str | None, file_name: str | None = None) -> str | None:
    bag = f"{text or ''} {file_name or ''}"
    for carrier in KNOWN_CARRIERS:
        pattern = r"\b" + r"\s+".join(re.escape(part) for part in carrier.split()) + r"\b"
        if re.search(pattern, bag, re.I):
            return carrier
    return None


def extract_stay_dates(text: str | None) -> tuple[str | None, str | None]:
    line = _one_line(text)
    check_in = _CHECK_IN_RE.search(line)
    check_out = _CHECK_OUT_RE.search(line)
    return (
        normalize_date(check_in.group(1)) if check_in else None,
        normalize_date(check_out.group(1)) if check_out else None,
    )


def extract_address(text: str | None) -> str | None:
    m = _ADDRESS_RE.search(text or "")
    if not m:
        return None
    address = clean_token(m.group(1))
    if not address:
        return None
    return address[:200]


def extract_first_time(text: str | None) -> str | None:
    return normalize_time(text)


def extract_amount(text: str | None) -> Amount | None:
    """
    First amount carrying a currency marker.

    Marker-first matches (`R$ 1.299,90`) win over the suffix form (`836,73 BRL`),
    which is only used when the text has no marker-first amount.
    """
    text = text or ""
    for m in _AMOUNT_RE.finditer(text):
        value = parse_amount(m.group(2))
        if value is not None:
            return Amount(value=value, currency=normalize_currency(m.group(1)))
    for m in _SUFFIX_AMOUNT_RE.finditer(text):
        value = parse_amount(m.group(1))
        if value is not None:
            return Amount(value=value, currency=normalize_currency(m.group(2)))
    return None
