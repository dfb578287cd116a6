from __future__ import annotations

import math
import re
from datetime import date
from types import MappingProxyType

# Portuguese and English month names, full and abbreviated.
MONTH_ALIASES: MappingProxyType[str, int] = MappingProxyType(
    {
        "janeiro": 1,
        "jan": 1,
        "january": 1,
        "fevereiro": 2,
        "fev": 2,
        "february": 2,
        "feb": 2,
        "março": 3,
        "marco": 3,
        "mar": 3,
        "march": 3,
        "abril": 4,
        "abr": 4,
        "april": 4,
        "apr": 4,
        "maio": 5,
        "mai": 5,
        "may": 5,
        "junho": 6,
        "jun": 6,
        "june": 6,
        "julho": 7,
        "jul": 7,
        "july": 7,
        "agosto": 8,
        "ago": 8,
        "august": 8,
        "aug": 8,
        "setembro": 9,
        "set": 9,
        "september": 9,
        "sept": 9,
        "sep": 9,
        "outubro": 10,
        "out": 10,
        "october": 10,
        "oct": 10,
        "novembro": 11,
        "nov": 11,
        "november": 11,
        "dezembro": 12,
        "dez": 12,
        "december": 12,
        "dec": 12,
    }
)

_ISO_DATE_RE = re.compile(r"\b(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})\b")
_BR_DATE_RE = re.compile(r"\b(\d{1,2})[-/.](\d{1,2})[-/.](\d{4}|\d{2})\b")
# The year sits in a lookahead so a rejected candidate does not swallow the
# day of the next one ("2 noites 15 de março de 2026").
_TEXT_DATE_RE = re.compile(
    r"\b(\d{1,2})\s+(?:de\s+)?([^\W\d_]+)\.?,?(?=\s+(?:de\s+)?(\d{4}|\d{2})\b)"
)
_TIME_RE = re.compile(r"\b([01]?\d|2[0-3])[:h]([0-5]\d)\b")


def _year(raw: str) -> int:
    value = int(raw)
    if len(raw) == 2:
        return 2000 + value
    return value


def _iso(year: int, month: int, day: int) -> str | None:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def _iso_candidates(text: str):
    for m in _ISO_DATE_RE.finditer(text):
        yield int(m.group(1)), int(m.group(2)), int(m.group(3))


def _br_candidates(text: str):
    for m in _BR_DATE_RE.finditer(text):
        yield _year(m.group(3)), int(m.group(2)), int(m.group(1))


def _textual_candidates(text: str):
    for m in _TEXT_DATE_RE.finditer(text.lower()):
        month = MONTH_ALIASES.get(m.group(2))
        if month is None:
            continue
        yield _year(m.group(3)), month, int(m.group(1))


_DATE_RULES = (
    ("iso", _iso_candidates),
    ("br", _br_candidates),
    ("textual", _textual_candidates),
)


def normalize_date(text: str | None) -> str | None:
    """
    Return the first date found in `text` as `YYYY-MM-DD`.

    Patterns are tried in priority order (ISO, then DD/MM/YYYY, then a textual
    day/month/year in Portuguese or English). Day-first is always assumed.
    Impossible calendar dates are skipped.
    """
    if not text:
        return None
    for _name, candidates in _DATE_RULES:
        for year, month, day in candidates(text):
            out = _iso(year, month, day)
            if out:
                return out
    return None


def normalize_time(text: str | None) -> str | None:
    if not text:
        return None
    m = _TIME_RE.search(text)
    if not m:
        return None
    return f"{int(m.group(1)):02d}:{m.group(2)}"


def parse_amount(raw: str | None) -> float | None:
    """
    Parse a loosely formatted money amount.

    When both `,` and `.` are present the one appearing later is the decimal
    separator. A single `,` is a decimal separator. Repeated separators of one
    kind (`1,234,567`) are ambiguous and give None.
    """
    if raw is None:
        return None
    s = re.sub(r"[^0-9,.\-]", "", str(raw))
    if not s or not any(ch.isdigit() for ch in s):
        return None

    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            normalized = s.replace(".", "").replace(",", ".")
        else:
            normalized = s.replace(",", "")
    elif "," in s:
        if s.count(",") > 1:
            return None
        normalized = s.replace(",", ".")
    else:
        normalized = s

    try:
        value = float(normalized)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def clean_token(value: str | None) -> str | None:
    if value is None:
        return None
    s = re.sub(r"\s+", " ", str(value))
    s = re.sub(r"^[\W_]+|[\W_]+$", "", s)
    return s or None
